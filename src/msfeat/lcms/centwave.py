"""Peak detection using regions of interest and a continuous wavelet transform."""

from __future__ import annotations

from logging import getLogger

import numpy
from scipy.ndimage import convolve1d, maximum_filter1d

from ..core.enums import PeakDetectionMethod
from ..core.models import Peak, Sample
from ..core.registry import detector_registry
from ..utils.numpy import FloatArray, FloatArray1D, compute_spacing, descend_to_minimum, integrate, weighted_mean
from .chromatogram import select_scan_data
from .config import CentWaveConfiguration

logger = getLogger(__name__)


class RegionOfInterest:
    """A sequence of centroids from consecutive scans with similar m/z.

    :param scan: index of the first scan in the region.
    :param mz: m/z of the first centroid.
    :param spint: intensity of the first centroid.

    """

    __slots__ = ("scans", "mz", "spint", "_mz_sum")

    def __init__(self, scan: int, mz: float, spint: float) -> None:
        self.scans = [scan]
        self.mz = [mz]
        self.spint = [spint]
        self._mz_sum = mz

    def __len__(self) -> int:
        return len(self.scans)

    @property
    def mean_mz(self) -> float:
        """The mean m/z of centroids in the region."""
        return self._mz_sum / len(self.mz)

    @property
    def start(self) -> int:
        """The first scan index."""
        return self.scans[0]

    @property
    def end(self) -> int:
        """The last scan index plus one."""
        return self.scans[-1] + 1

    def append(self, scan: int, mz: float, spint: float) -> None:
        """Add a centroid from the next scan."""
        self.scans.append(scan)
        self.mz.append(mz)
        self.spint.append(spint)
        self._mz_sum += mz

    def has_consecutive_points(self, k: int, threshold: float) -> bool:
        """Check if the region has at least `k` consecutive points with intensity greater or equal than `threshold`."""
        count = 0
        for value in self.spint:
            count = count + 1 if value >= threshold else 0
            if count >= k:
                return True
        return False


def build_regions_of_interest(
    mz_list: list[FloatArray1D], spint_list: list[FloatArray1D], ppm: float, noise: float = 0.0
) -> list[RegionOfInterest]:
    """Link centroids from consecutive scans into regions of interest.

    A centroid extends the active region with the closest mean m/z if the deviation is lower than
    `ppm`. Each region receives at most one centroid per scan. A region is closed when a scan does not
    extend it.

    :param mz_list: the m/z of each scan
    :param spint_list: the intensity of each scan
    :param ppm: the maximum m/z deviation, in parts per million
    :param noise: centroids with intensity lower than this value are ignored
    :return: the regions, sorted by closing scan

    """
    closed: list[RegionOfInterest] = list()
    active: list[RegionOfInterest] = list()
    for k, (mz, spint) in enumerate(zip(mz_list, spint_list)):
        keep = (spint > 0.0) & (spint >= noise)
        mz, spint = mz[keep], spint[keep]

        means = numpy.array([x.mean_mz for x in active])
        order = numpy.argsort(means)
        sorted_means = means[order]
        extended: set[int] = set()
        created: list[RegionOfInterest] = list()
        for mz_k, spint_k in zip(mz.tolist(), spint.tolist()):
            match = _find_closest_region(mz_k, sorted_means, order, extended, ppm)
            if match is None:
                created.append(RegionOfInterest(k, mz_k, spint_k))
            else:
                active[match].append(k, mz_k, spint_k)
                extended.add(match)

        closed.extend(x for j, x in enumerate(active) if j not in extended)
        active = [x for j, x in enumerate(active) if j in extended] + created
    closed.extend(active)
    return closed


def _find_closest_region(
    mz: float, sorted_means: FloatArray1D, order: numpy.ndarray, extended: set[int], ppm: float
) -> int | None:
    pos = numpy.searchsorted(sorted_means, mz)
    candidates = [x for x in (pos - 1, pos) if 0 <= x < sorted_means.size and order[x] not in extended]
    if not candidates:
        return None
    closest = min(candidates, key=lambda x: abs(sorted_means[x] - mz))
    tolerance = sorted_means[closest] * ppm * 1e-6
    if abs(sorted_means[closest] - mz) > tolerance:
        return None
    return int(order[closest])


def create_ricker_kernel(width: float) -> FloatArray1D:
    """Create a Ricker (mexican hat) wavelet.

    :param width: the wavelet width parameter, in number of points.

    """
    half = int(numpy.ceil(4 * width))
    x = numpy.arange(-half, half + 1, dtype=float)
    amplitude = 2 / (numpy.sqrt(3 * width) * numpy.pi**0.25)
    return amplitude * (1 - (x / width) ** 2) * numpy.exp(-(x**2) / (2 * width**2))


def compute_cwt(x: FloatArray1D, scales: FloatArray1D) -> FloatArray:
    """Compute the continuous wavelet transform of a signal using a Ricker wavelet.

    :return: an array with shape ``(n_scales, n_points)``.

    """
    return numpy.vstack([convolve1d(x, create_ricker_kernel(s), mode="constant", cval=0.0) for s in scales])


def find_ridges(coefficients: FloatArray, scales: FloatArray1D) -> list[list[tuple[int, int]]]:
    """Link local maxima of the wavelet coefficients across scales.

    Ridges start at the coarsest scale and are extended towards finer scales using the closest local
    maximum inside a window proportional to the scale.

    :return: a list of ridges. Each ridge is a list of ``(scale index, position)`` pairs.

    """
    ridges: list[list[tuple[int, int]]] = list()
    for k in range(scales.size - 1, -1, -1):
        row = coefficients[k]
        window = max(3, 2 * int(scales[k] / 2) + 1)
        is_max = (maximum_filter1d(row, size=window, mode="constant", cval=0.0) == row) & (row > 0.0)
        maxima = numpy.flatnonzero(is_max).tolist()

        tolerance = max(1, int(round(scales[k] / 2)))
        claimed: set[int] = set()
        for ridge in ridges:
            last_scale, last_pos = ridge[-1]
            if last_scale != k + 1:
                continue
            candidates = [x for x in maxima if abs(x - last_pos) <= tolerance and x not in claimed]
            if candidates:
                pos = min(candidates, key=lambda x: abs(x - last_pos))
                ridge.append((k, pos))
                claimed.add(pos)

        ridges.extend([(k, x)] for x in maxima if x not in claimed)
    return ridges


def estimate_noise(trace: FloatArray1D, roi_start: int, roi_end: int) -> tuple[float, float]:
    """Estimate the baseline and noise of a trace using positive values outside the region of interest.

    If less than three positive values are found outside the region, values in the lower quartile of
    the region are used.

    :return: the baseline and the noise standard deviation.

    """
    outside = numpy.hstack([trace[:roi_start], trace[roi_end:]])
    values = outside[outside > 0.0]
    if values.size < 3:
        roi = trace[roi_start:roi_end]
        values = roi[roi <= numpy.quantile(roi, 0.25)]
    return float(numpy.median(values)), float(numpy.std(values))


@detector_registry.register(PeakDetectionMethod.CENTWAVE.value)
def detect_centwave_peaks(sample: Sample, config: CentWaveConfiguration, sample_index: int = 0) -> list[Peak]:
    """Detect chromatographic peaks using the centWave algorithm.

    :param sample: the sample to process
    :param config: the detection parameters
    :param sample_index: the sample index assigned to detected peaks
    :return: the detected peaks, sorted by region of interest and time
    :raises EmptyInputError: if the sample does not have data inside the configured ranges

    """
    times, mz_list, spint_list = select_scan_data(sample, config.rt_range, config.mz_range)
    spacing = compute_spacing(times)

    min_width, max_width = config.peak_width
    min_scale = max(1.0, min_width / (2 * spacing))
    max_scale = max(min_scale, max_width / (2 * spacing))
    n_scales = max(1, min(10, int(max_scale - min_scale) + 1))
    scales = numpy.linspace(min_scale, max_scale, n_scales)
    extension = int(numpy.ceil(max_scale))

    k, threshold = config.prefilter
    rois = build_regions_of_interest(mz_list, spint_list, config.ppm, config.noise)
    rois = [x for x in rois if x.has_consecutive_points(k, threshold)]
    logger.debug(f"Found {len(rois)} regions of interest in sample `{sample.id}`.")

    peaks = list()
    for roi in rois:
        roi_peaks = _detect_roi_peaks(roi, times, mz_list, spint_list, scales, extension, spacing, config, sample_index)
        peaks.extend(roi_peaks)

    logger.debug(f"Detected {len(peaks)} peaks in sample `{sample.id}` using centWave.")
    return peaks


def _detect_roi_peaks(
    roi: RegionOfInterest,
    times: FloatArray1D,
    mz_list: list[FloatArray1D],
    spint_list: list[FloatArray1D],
    scales: FloatArray1D,
    extension: int,
    spacing: float,
    config: CentWaveConfiguration,
    sample_index: int,
) -> list[Peak]:
    roi_mz = numpy.array(roi.mz)
    roi_spint = numpy.array(roi.spint)
    roi_scans = numpy.array(roi.scans)
    mz_min, mz_max = float(roi_mz.min()), float(roi_mz.max())

    offset = max(0, roi.start - extension)
    end = min(times.size, roi.end + extension)
    trace = numpy.zeros(end - offset, dtype=float)
    for k in range(offset, end):
        lo = numpy.searchsorted(mz_list[k], mz_min, side="left")
        hi = numpy.searchsorted(mz_list[k], mz_max, side="right")
        if lo < hi:
            trace[k - offset] = spint_list[k][lo:hi].max()
    trace_times = times[offset:end]
    roi_start, roi_end = roi.start - offset, roi.end - offset

    baseline, noise = estimate_noise(trace, roi_start, roi_end)
    coefficients = compute_cwt(trace, scales)

    candidates = list()
    for ridge in find_ridges(coefficients, scales):
        values = [coefficients[s, p] for s, p in ridge]
        best = int(numpy.argmax(values))
        scale_index, center = ridge[best]
        strength = values[best]
        if strength <= 0.0:
            continue

        width = int(numpy.ceil(scales[scale_index]))
        window_start = max(0, center - width)
        window_end = min(trace.size, center + width + 1)
        apex = window_start + int(numpy.argmax(trace[window_start:window_end]))
        if not roi_start <= apex < roi_end or trace[apex] <= 0.0:
            continue

        start, stop = descend_to_minimum(trace, apex)
        snr = (trace[apex] - baseline) / max(noise, 1.0)
        if snr < config.sn_threshold:
            continue
        candidates.append((strength, apex, start, stop, snr))

    accepted: list[tuple[float, int, int, int, float]] = list()
    for candidate in sorted(candidates, key=lambda x: x[0], reverse=True):
        _, _, start, stop, _ = candidate
        if all(stop <= x[2] or start >= x[3] for x in accepted):
            accepted.append(candidate)

    peaks = list()
    for _, apex, start, stop, snr in sorted(accepted, key=lambda x: x[1]):
        in_region = (roi_scans >= start + offset) & (roi_scans < stop + offset)
        if in_region.any():
            peak_mz = weighted_mean(roi_mz[in_region], roi_spint[in_region])
        else:
            peak_mz = weighted_mean(roi_mz, roi_spint)
        region = trace[start:stop]
        region_times = trace_times[start:stop]
        peak = Peak(
            mz=min(max(peak_mz, mz_min), mz_max),
            mz_min=mz_min,
            mz_max=mz_max,
            rt=trace_times[apex],
            rt_min=region_times[0],
            rt_max=region_times[-1],
            area=integrate(region, region_times, spacing),
            height=float(trace[apex]),
            snr=float(snr),
            sample_index=sample_index,
        )
        peaks.append(peak)
    return peaks
