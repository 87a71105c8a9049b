"""Retention time alignment using dynamic time warping of sample profiles.

Each sample is represented by a profile: a matrix of binned m/z intensities per scan, resampled on a
common time grid. Profiles are warped against a reference profile and the warping path is converted
into a smooth, non-decreasing adjustment function.

"""

from __future__ import annotations

from functools import partial
from logging import getLogger
from typing import Sequence

import numpy
from scipy.interpolate import interp1d
from scipy.ndimage import gaussian_filter1d
from scipy.spatial.distance import cdist

from ..assay.executors import Executor, SequentialExecutor
from ..core.enums import DistanceMetric, RetentionTimeBasis
from ..core.exceptions import AlignmentDivergenceError, ConfigurationError, EmptyInputError
from ..core.models import AdjustmentFunction, Peak, SampleInfo, Scan
from ..core.storage import AssayStorage, ScanStore
from ..utils.numpy import FloatArray, FloatArray1D, is_non_decreasing
from .config import AlignmentConfiguration

logger = getLogger(__name__)


def create_time_grid(times: Sequence[FloatArray1D]) -> FloatArray1D:
    """Create a regular time grid that covers the scan times of all samples.

    The grid spacing is the median of the scan spacing of each sample.

    :raises EmptyInputError: if no sample has at least two scans.

    """
    spacings = [float(numpy.median(numpy.diff(x))) for x in times if x.size > 1]
    spacings = [x for x in spacings if x > 0.0]
    if not spacings:
        raise EmptyInputError("At least one sample with two or more scans is required to create a time grid.")
    step = float(numpy.median(spacings))
    start = min(x[0] for x in times if x.size)
    end = max(x[-1] for x in times if x.size)
    n_points = int(numpy.floor((end - start) / step)) + 1
    return start + step * numpy.arange(max(n_points, 2))


def build_profile(
    data: tuple[FloatArray1D, Sequence[Scan]], grid: FloatArray1D, bin_size: float, mz_bins: tuple[int, int]
) -> FloatArray:
    """Build a sample profile on a common time grid.

    :param data: the raw scan times and scans of the sample
    :param grid: the common time grid
    :param bin_size: the m/z bin width
    :param mz_bins: the first and last bin index, shared by all samples
    :return: an array with shape ``(grid size, number of bins)`` scaled to unit maximum
    :raises EmptyInputError: if the sample has less than two scans

    """
    times, scans = data
    if len(scans) < 2:
        raise EmptyInputError("At least two scans are required to build a profile.")

    first, last = mz_bins
    matrix = numpy.zeros((len(scans), last - first + 1), dtype=float)
    for k, scan in enumerate(scans):
        bins = numpy.floor(scan.mz / bin_size).astype(int) - first
        numpy.add.at(matrix[k], numpy.clip(bins, 0, last - first), scan.spint)

    interpolator = interp1d(times, matrix, axis=0, bounds_error=False, fill_value=0.0, assume_sorted=True)
    profile = interpolator(grid)
    max_value = profile.max()
    if max_value > 0.0:
        profile /= max_value
    return profile


def compute_reference_profile(
    profiles: dict[str, FloatArray], samples: Sequence[SampleInfo], config: AlignmentConfiguration
) -> FloatArray:
    """Compute the reference profile.

    The reference is the mean profile of samples in the reference groups. If no reference group is
    defined, the center sample profile is used. Otherwise, the mean of all profiles is used.

    :param profiles: a mapping from sample ids to profiles
    :param samples: the samples metadata
    :param config: the alignment configuration
    :raises EmptyInputError: if there are no profiles available to build the reference

    """
    if config.reference_groups:
        groups = set(config.reference_groups)
        selected = [profiles[x.id] for x in samples if x.group in groups and x.id in profiles]
    elif config.center_sample is not None:
        selected = [profiles[config.center_sample]] if config.center_sample in profiles else []
    else:
        selected = list(profiles.values())

    if not selected:
        raise EmptyInputError("No sample profiles available to build the reference profile.")
    return numpy.mean(selected, axis=0)


def compute_dtw_path(cost: FloatArray, band: int | None = None) -> tuple[numpy.ndarray, numpy.ndarray]:
    """Compute the optimal warping path of a cost matrix.

    The accumulated cost is computed by anti-diagonals using a symmetric step pattern, i.e., each cell
    is reached from its upper, left or upper-left neighbour.

    :param cost: the local cost matrix, with shape ``(n, m)``
    :param band: if provided, cells where ``abs(i - j) > band`` are not allowed
    :return: the row and column indices of the path, from ``(0, 0)`` to ``(n - 1, m - 1)``

    """
    n, m = cost.shape
    if band is not None:
        band = max(band, abs(n - m))

    acc = numpy.full((n + 1, m + 1), numpy.inf)
    acc[0, 0] = 0.0
    for d in range(n + m - 1):
        lower, upper = max(0, d - m + 1), min(n - 1, d)
        if band is not None:
            # cells in the anti-diagonal d with abs(i - j) <= band
            lower, upper = max(lower, (d - band + 1) // 2), min(upper, (d + band) // 2)
        i = numpy.arange(lower, upper + 1)
        j = d - i
        previous = numpy.minimum(numpy.minimum(acc[i, j + 1], acc[i + 1, j]), acc[i, j])
        acc[i + 1, j + 1] = cost[i, j] + previous

    path_rows = [n - 1]
    path_cols = [m - 1]
    i, j = n, m
    while i > 1 or j > 1:
        steps = ((i - 1, j - 1), (i - 1, j), (i, j - 1))
        i, j = min(steps, key=lambda x: acc[x])
        path_rows.append(i - 1)
        path_cols.append(j - 1)
    return numpy.array(path_rows[::-1]), numpy.array(path_cols[::-1])


def compute_adjustment(
    sample_id: str,
    profile: FloatArray,
    reference: FloatArray,
    grid: FloatArray1D,
    config: AlignmentConfiguration,
) -> AdjustmentFunction:
    """Compute the adjustment function that warps a sample profile into the reference profile.

    :param sample_id: the sample id
    :param profile: the sample profile
    :param reference: the reference profile
    :param grid: the time grid shared by both profiles
    :param config: the alignment configuration
    :raises AlignmentDivergenceError: if the smoothed adjustment is not non-decreasing after all
        smoothing iterations

    """
    metric = "cityblock" if config.distance is DistanceMetric.ABSOLUTE else "sqeuclidean"
    cost = cdist(profile, reference, metric=metric)

    band = None
    if config.max_rt_shift is not None:
        band = int(numpy.ceil(config.max_rt_shift / (grid[1] - grid[0])))
    rows, cols = compute_dtw_path(cost, band)

    counts = numpy.bincount(rows, minlength=grid.size)
    mapped = numpy.bincount(rows, weights=grid[cols], minlength=grid.size) / counts
    offset = mapped - grid

    # the DTW map is non-decreasing and gaussian smoothing preserves its order up to rounding errors
    # in flat segments, which are the only source of retries here
    sigma = config.smoothing
    for _ in range(config.max_smoothing_iterations + 1):
        adjusted = grid + gaussian_filter1d(offset, sigma, mode="nearest")
        if is_non_decreasing(adjusted):
            logger.debug(f"Adjustment for sample `{sample_id}` computed using smoothing {sigma}.")
            return AdjustmentFunction(sample_id=sample_id, raw=grid, adjusted=adjusted)
        sigma *= 2
    raise AlignmentDivergenceError(sample_id)


def adjust_peaks(peaks: Sequence[Peak], adjustment: AdjustmentFunction) -> list[Peak]:
    """Create copies of peaks with retention time values mapped to the adjusted time basis."""
    adjusted = list()
    for peak in peaks:
        rt_min, rt, rt_max = adjustment(numpy.array([peak.rt_min, peak.rt, peak.rt_max])).tolist()
        adjusted.append(peak.model_copy(update={"rt_min": rt_min, "rt": rt, "rt_max": rt_max}))
    return adjusted


def apply_adjustment(store: ScanStore, storage: AssayStorage, adjustment: AdjustmentFunction) -> None:
    """Register an adjustment function in the scan store and update the time of the sample peaks."""
    sample_index = store.get_sample_index(adjustment.sample_id)
    peaks = storage.list_peaks(sample_index=sample_index, include_filled=False)
    store.set_adjustment(adjustment)
    storage.replace_peaks(*adjust_peaks(peaks, adjustment))
    logger.info(f"Adjusted retention time of {len(peaks)} peaks in sample `{adjustment.sample_id}`.")


def check_reference_samples(samples: Sequence[SampleInfo], config: AlignmentConfiguration) -> None:
    """Check that the configured reference samples exist.

    :raises ConfigurationError: if no sample belongs to the reference groups or if the center sample
        is not found.

    """
    if config.reference_groups:
        groups = set(config.reference_groups)
        if not any(x.group in groups for x in samples):
            raise ConfigurationError(f"No samples found in reference groups {config.reference_groups}.")
    elif config.center_sample is not None and config.center_sample not in {x.id for x in samples}:
        raise ConfigurationError(f"Center sample `{config.center_sample}` not found.")


def compute_adjustments(
    store: ScanStore,
    config: AlignmentConfiguration,
    sample_ids: Sequence[str] | None = None,
    executor: Executor | None = None,
) -> tuple[dict[str, AdjustmentFunction], dict[str, Exception]]:
    """Compute adjustment functions for multiple samples.

    Profiles are built in parallel, the reference profile is computed once all profiles are
    available and each sample is warped against the reference in parallel.

    :param store: the scan store with the samples to align
    :param config: the alignment configuration
    :param sample_ids: the samples to align. If not provided, all samples are aligned.
    :param executor: the executor used to process each sample. Sequential by default.
    :return: the adjustment function of each sample and the errors of samples that failed.

    """
    samples = store.list_samples()
    if sample_ids is not None:
        selected = set(sample_ids)
        samples = [x for x in samples if x.id in selected]
    check_reference_samples(samples, config)

    executor = SequentialExecutor() if executor is None else executor
    scan_data = {x.id: store.fetch_scans(x.id, basis=RetentionTimeBasis.RAW) for x in samples}

    grid = create_time_grid([times for times, _ in scan_data.values()])
    mz_min = min((scan.mz[0] for _, scans in scan_data.values() for scan in scans if scan.mz.size), default=0.0)
    mz_max = max((scan.mz[-1] for _, scans in scan_data.values() for scan in scans if scan.mz.size), default=0.0)
    mz_bins = int(numpy.floor(mz_min / config.bin_size)), int(numpy.floor(mz_max / config.bin_size))
    logger.info(f"Building profiles for {len(samples)} samples using {grid.size} time points.")

    build = partial(build_profile, grid=grid, bin_size=config.bin_size, mz_bins=mz_bins)
    profile_result = executor.map(build, list(scan_data.items()))
    errors: dict[str, Exception] = dict(profile_result.errors)
    reference = compute_reference_profile(profile_result.results, samples, config)

    items = [(k, (k, v)) for k, v in profile_result.results.items()]
    warp = partial(_compute_adjustment_worker, reference=reference, grid=grid, config=config)
    adjustment_result = executor.map(warp, items)
    errors.update(adjustment_result.errors)
    return adjustment_result.results, errors


def _compute_adjustment_worker(
    data: tuple[str, FloatArray], reference: FloatArray, grid: FloatArray1D, config: AlignmentConfiguration
) -> AdjustmentFunction:
    sample_id, profile = data
    return compute_adjustment(sample_id, profile, reference, grid, config)
