"""Recovery of feature values in samples where no peak was detected."""

from __future__ import annotations

from functools import partial
from logging import getLogger
from typing import Sequence

import numpy

from ..assay.executors import Executor, SequentialExecutor
from ..core.enums import AggregationMethod, RetentionTimeBasis
from ..core.exceptions import IntegrationError
from ..core.models import Chromatogram, Feature, Peak, Scan
from ..core.storage import AssayStorage, ScanStore
from ..utils.numpy import FloatArray1D, compute_spacing
from .chromatogram import aggregate_scans
from .config import GapFillingConfiguration

logger = getLogger(__name__)


class FillRequest:
    """The integration windows of a feature in a sample without a detected peak."""

    def __init__(self, feature: Feature, mz_range: tuple[float, float], rt_range: tuple[float, float]) -> None:
        self.feature = feature
        self.mz_range = mz_range
        self.rt_range = rt_range

    def __repr__(self) -> str:
        return f"FillRequest(feature={self.feature.id}, mz_range={self.mz_range}, rt_range={self.rt_range})"


def compute_fill_windows(feature: Feature, peaks: Sequence[Peak]) -> tuple[tuple[float, float], tuple[float, float]]:
    """Compute the m/z and time integration windows of a feature.

    Windows are computed using the first quartile of the lower bounds and the third quartile of the
    upper bounds of detected member peaks. If less than two peaks are provided, the feature extents
    are used.

    :param feature: the feature
    :param peaks: the detected member peaks of the feature
    :return: the m/z window and the time window

    """
    if len(peaks) < 2:
        return (feature.mz_min, feature.mz_max), (feature.rt_min, feature.rt_max)

    mz_min = float(numpy.quantile([x.mz_min for x in peaks], 0.25))
    mz_max = float(numpy.quantile([x.mz_max for x in peaks], 0.75))
    rt_min = float(numpy.quantile([x.rt_min for x in peaks], 0.25))
    rt_max = float(numpy.quantile([x.rt_max for x in peaks], 0.75))
    return (mz_min, mz_max), (rt_min, rt_max)


def integrate_window(
    sample_id: str,
    sample_index: int,
    times: FloatArray1D,
    scans: Sequence[Scan],
    request: FillRequest,
    aggregation: AggregationMethod,
    basis: RetentionTimeBasis,
) -> Peak:
    """Create a filled peak by integrating a sample chromatogram inside the request windows.

    Windows that contain a single scan are integrated using the median scan spacing of the sample.

    :param sample_id: the sample id
    :param sample_index: the sample index in the scan store
    :param times: the scan times, in the feature time basis
    :param scans: the sample scans
    :param request: the integration windows
    :param aggregation: the rule used to combine intensities inside the m/z window
    :param basis: the time basis of `times`
    :raises IntegrationError: if the windows are inverted or do not contain any scan

    """
    (mz_min, mz_max), (rt_min, rt_max) = request.mz_range, request.rt_range
    if mz_min > mz_max or rt_min > rt_max:
        raise IntegrationError(f"Inverted integration window for feature {request.feature.id}.")

    start = numpy.searchsorted(times, rt_min, side="left")
    end = numpy.searchsorted(times, rt_max, side="right")
    if start >= end:
        raise IntegrationError(f"No scans found in sample `{sample_id}` for feature {request.feature.id}.")

    chromatogram = Chromatogram(
        sample_id=sample_id,
        time=times[start:end],
        spint=aggregate_scans(scans[start:end], mz_min, mz_max, aggregation),
        mz_min=mz_min,
        mz_max=mz_max,
        aggregation=aggregation,
        basis=basis,
    )
    apex = int(numpy.argmax(chromatogram.spint))
    return Peak(
        mz=min(max(request.feature.mz, mz_min), mz_max),
        mz_min=mz_min,
        mz_max=mz_max,
        rt=chromatogram.time[apex],
        rt_min=rt_min,
        rt_max=rt_max,
        area=chromatogram.integrate(compute_spacing(times)),
        height=float(chromatogram.spint[apex]),
        sample_index=sample_index,
        is_filled=True,
        feature=request.feature.id,
    )


def create_empty_peak(feature: Feature, sample_index: int) -> Peak:
    """Create a filled peak with zero intensity using the feature extents."""
    return Peak(
        mz=feature.mz,
        mz_min=feature.mz_min,
        mz_max=feature.mz_max,
        rt=feature.rt,
        rt_min=feature.rt_min,
        rt_max=feature.rt_max,
        area=0.0,
        height=0.0,
        sample_index=sample_index,
        is_filled=True,
        feature=feature.id,
    )


def fill_sample(
    data: tuple[str, int, FloatArray1D, Sequence[Scan], Sequence[FillRequest]],
    aggregation: AggregationMethod,
    basis: RetentionTimeBasis,
) -> list[tuple[Peak, IntegrationError | None]]:
    """Create filled peaks for all missing features of a sample.

    :param data: the sample id, sample index, scan times, scans and fill requests
    :param aggregation: the rule used to combine intensities inside the m/z window
    :param basis: the time basis of scan times and features
    :return: a filled peak for each request. If the integration failed, a zero intensity peak is created
        and the error is included.

    """
    sample_id, sample_index, times, scans, requests = data
    filled = list()
    for request in requests:
        try:
            filled.append((integrate_window(sample_id, sample_index, times, scans, request, aggregation, basis), None))
        except IntegrationError as e:
            filled.append((create_empty_peak(request.feature, sample_index), e))
    return filled


def create_fill_requests(
    store: ScanStore, storage: AssayStorage, sample_ids: Sequence[str]
) -> dict[str, list[FillRequest]]:
    """Find missing (feature, sample) pairs and compute their integration windows."""
    sample_indices = {store.get_sample_index(x): x for x in sample_ids}
    requests: dict[str, list[FillRequest]] = {x: list() for x in sample_ids}
    for feature in storage.list_features():
        detected = storage.fetch_peaks_by_feature(feature.id, include_filled=False)
        mz_range, rt_range = compute_fill_windows(feature, detected)
        present = {x.sample_index for x in detected}
        for sample_index, sample_id in sample_indices.items():
            if sample_index not in present:
                requests[sample_id].append(FillRequest(feature, mz_range, rt_range))
    return requests


def fill_missing(
    store: ScanStore,
    storage: AssayStorage,
    config: GapFillingConfiguration,
    basis: RetentionTimeBasis = RetentionTimeBasis.RAW,
    sample_ids: Sequence[str] | None = None,
    executor: Executor | None = None,
) -> tuple[dict[str, list[tuple[int, IntegrationError]]], dict[str, Exception]]:
    """Create filled peaks for every feature in samples without a detected member peak.

    Filled peaks are stored in the assay storage. Running this function again replaces previously
    filled peaks.

    :param store: the scan store with sample data
    :param storage: the assay storage with features
    :param config: the gap filling configuration
    :param basis: the time basis used by features
    :param sample_ids: the samples to fill. If not provided, all samples are used.
    :param executor: the executor used to process each sample. Sequential by default.
    :return: the integration warnings of each sample, as pairs of feature id and error, and the errors of
        samples that failed.

    """
    if sample_ids is None:
        sample_ids = [x.id for x in store.list_samples()]
    requests = create_fill_requests(store, storage, sample_ids)

    items = list()
    errors: dict[str, Exception] = dict()
    for sample_id in sample_ids:
        try:
            times, scans = store.fetch_scans(sample_id, basis=basis)
        except ValueError as e:
            errors[sample_id] = e
            continue
        items.append((sample_id, (sample_id, store.get_sample_index(sample_id), times, scans, requests[sample_id])))

    executor = SequentialExecutor() if executor is None else executor
    func = partial(fill_sample, aggregation=config.aggregation, basis=basis)
    result = executor.map(func, items)
    errors.update(result.errors)

    warnings: dict[str, list[tuple[int, IntegrationError]]] = dict()
    for sample_id in sample_ids:
        if sample_id not in result.results:
            continue
        filled = result.results[sample_id]
        storage.add_filled_peaks(*(peak for peak, _ in filled))
        warnings[sample_id] = [(peak.feature, error) for peak, error in filled if error is not None]
        for feature_id, error in warnings[sample_id]:
            logger.warning(f"Gap filling of feature {feature_id} in sample `{sample_id}`: {error}")
        logger.info(f"Filled {len(filled)} missing values in sample `{sample_id}`.")
    return warnings, errors
