"""Chromatogram extraction from sample scans."""

from __future__ import annotations

from functools import partial
from logging import getLogger
from typing import Sequence

import numpy

from ..assay.executors import Executor, SequentialExecutor
from ..core.enums import AggregationMethod, RetentionTimeBasis
from ..core.exceptions import ConfigurationError, EmptyInputError
from ..core.models import Chromatogram, Sample, Scan
from ..core.storage import ScanStore
from ..utils.numpy import FloatArray1D

logger = getLogger(__name__)


def aggregate_scans(
    scans: Sequence[Scan], mz_min: float, mz_max: float, aggregation: AggregationMethod = AggregationMethod.SUM
) -> FloatArray1D:
    """Aggregate the intensity of each scan inside a closed m/z window.

    :param scans: the scans to aggregate
    :param mz_min: the m/z window lower bound
    :param mz_max: the m/z window upper bound
    :param aggregation: the rule used to combine intensities in the window
    :return: an array with one value per scan. Scans without values in the window are set to zero.

    """
    aggregation = AggregationMethod(aggregation)
    spint = numpy.zeros(len(scans), dtype=float)
    for k, scan in enumerate(scans):
        start = numpy.searchsorted(scan.mz, mz_min, side="left")
        end = numpy.searchsorted(scan.mz, mz_max, side="right")
        if start < end:
            values = scan.spint[start:end]
            spint[k] = values.sum() if aggregation is AggregationMethod.SUM else values.max()
    return spint


def extract_chromatogram(
    store: ScanStore,
    sample_id: str,
    mz_range: tuple[float, float],
    rt_range: tuple[float, float] | None = None,
    aggregation: AggregationMethod = AggregationMethod.SUM,
    basis: RetentionTimeBasis = RetentionTimeBasis.RAW,
) -> Chromatogram:
    """Extract a chromatogram from a sample.

    :param store: the scan store containing the sample
    :param sample_id: the sample id
    :param mz_range: closed m/z window used to aggregate intensities
    :param rt_range: optional closed time window, in the time basis specified by `basis`
    :param aggregation: the rule used to combine intensities inside the m/z window
    :param basis: the time axis used to select scans and to build the chromatogram time
    :raises ConfigurationError: if the m/z window lower bound is greater than the upper bound
    :raises ProcessStatusError: if the adjusted basis is requested for a sample without adjustment

    """
    mz_min, mz_max = mz_range
    if mz_min > mz_max:
        raise ConfigurationError(f"Invalid m/z window: lower bound {mz_min} is greater than upper bound {mz_max}.")

    if rt_range is not None and rt_range[0] > rt_range[1]:
        time, scans = numpy.array([], dtype=float), []
    else:
        time, scans = store.fetch_scans(sample_id, rt_range=rt_range, basis=basis)

    return _build_chromatogram((sample_id, time, scans), mz_min, mz_max, aggregation, basis)


def extract_chromatograms(
    store: ScanStore,
    mz_range: tuple[float, float],
    rt_range: tuple[float, float] | None = None,
    aggregation: AggregationMethod = AggregationMethod.SUM,
    basis: RetentionTimeBasis = RetentionTimeBasis.RAW,
    sample_ids: Sequence[str] | None = None,
    executor: Executor | None = None,
) -> dict[str, Chromatogram]:
    """Extract a chromatogram from multiple samples.

    :param sample_ids: the samples to extract chromatograms from. If not provided, all samples in the
        store are used.
    :param executor: the executor used to process each sample. Sequential by default.
    :return: a dictionary from sample ids to chromatograms, sorted using the order in `sample_ids`.
        Samples where extraction failed are logged and not included.

    Refer to :py:func:`extract_chromatogram` for other parameters.

    """
    mz_min, mz_max = mz_range
    if mz_min > mz_max:
        raise ConfigurationError(f"Invalid m/z window: lower bound {mz_min} is greater than upper bound {mz_max}.")

    if sample_ids is None:
        sample_ids = [x.id for x in store.list_samples()]

    items = list()
    for sample_id in sample_ids:
        try:
            if rt_range is not None and rt_range[0] > rt_range[1]:
                time, scans = numpy.array([], dtype=float), []
            else:
                time, scans = store.fetch_scans(sample_id, rt_range=rt_range, basis=basis)
        except ValueError as e:
            logger.warning(f"Cannot extract chromatogram from sample `{sample_id}`: {e}")
            continue
        items.append((sample_id, (sample_id, time, scans)))

    executor = SequentialExecutor() if executor is None else executor
    func = partial(_build_chromatogram, mz_min=mz_min, mz_max=mz_max, aggregation=aggregation, basis=basis)
    result = executor.map(func, items)
    for sample_id, error in result.errors.items():
        logger.warning(f"Chromatogram extraction failed for sample `{sample_id}`: {error}")
    return {x: result.results[x] for x in sample_ids if x in result.results}


def _build_chromatogram(
    data: tuple[str, FloatArray1D, Sequence[Scan]],
    mz_min: float,
    mz_max: float,
    aggregation: AggregationMethod,
    basis: RetentionTimeBasis,
) -> Chromatogram:
    sample_id, time, scans = data
    spint = aggregate_scans(scans, mz_min, mz_max, aggregation)
    return Chromatogram(
        sample_id=sample_id,
        time=time,
        spint=spint,
        mz_min=mz_min,
        mz_max=mz_max,
        aggregation=aggregation,
        basis=basis,
    )


def select_scan_data(
    sample: Sample, rt_range: tuple[float, float] | None = None, mz_range: tuple[float, float] | None = None
) -> tuple[FloatArray1D, list[FloatArray1D], list[FloatArray1D]]:
    """Select raw scan data from a sample inside time and m/z ranges.

    :param sample: the sample to select data from
    :param rt_range: optional closed time range, using raw scan times
    :param mz_range: optional closed m/z range
    :return: the selected scan times, and the m/z and intensity arrays of each selected scan.
    :raises EmptyInputError: if no scans or no m/z values are found inside the selected ranges.

    """
    times = sample.get_times()
    scans = sample.scans
    if rt_range is not None:
        start = numpy.searchsorted(times, rt_range[0], side="left")
        end = numpy.searchsorted(times, rt_range[1], side="right")
        times = times[start:end]
        scans = scans[start:end] if start < end else []

    if not scans:
        raise EmptyInputError(f"Sample `{sample.id}` does not contain scans in time range {rt_range}.")

    mz_list = list()
    spint_list = list()
    for scan in scans:
        mz, spint = scan.mz, scan.spint
        if mz_range is not None:
            start = numpy.searchsorted(mz, mz_range[0], side="left")
            end = numpy.searchsorted(mz, mz_range[1], side="right")
            mz, spint = mz[start:end], spint[start:end]
        mz_list.append(mz)
        spint_list.append(spint)

    if not any(x.size for x in mz_list):
        raise EmptyInputError(f"Sample `{sample.id}` does not contain data in m/z range {mz_range}.")
    return times, mz_list, spint_list
