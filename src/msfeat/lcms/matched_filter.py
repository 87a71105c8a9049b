"""Peak detection using a matched filter over binned m/z slices."""

from __future__ import annotations

from logging import getLogger

import numpy
from scipy.ndimage import convolve1d

from ..core.enums import PeakDetectionMethod
from ..core.models import Peak, Sample
from ..core.registry import detector_registry
from ..utils.numpy import FloatArray1D, compute_spacing, descend_to_zero, integrate, robust_std, weighted_mean
from .chromatogram import select_scan_data
from .config import MatchedFilterConfiguration

logger = getLogger(__name__)

FWHM_TO_SIGMA = 2.3548
"""Ratio between the full width at half maximum and the standard deviation of a gaussian."""

MIN_NOISE = 1.0
"""Lower bound of noise estimates, in intensity units."""


def create_filter_kernel(sigma: float) -> FloatArray1D:
    """Create the negative second derivative of a gaussian, normalized to unit L2 norm.

    :param sigma: the gaussian standard deviation, in number of points.

    """
    half = int(max(8, numpy.ceil(3 * sigma)))
    x = numpy.arange(-half, half + 1, dtype=float)
    kernel = (1.0 - (x / sigma) ** 2) * numpy.exp(-(x**2) / (2 * sigma**2))
    return kernel / numpy.linalg.norm(kernel)


def estimate_local_noise(profile: FloatArray1D, start: int, end: int) -> tuple[float, float]:
    """Estimate the baseline and noise of a slice profile around a peak region.

    The peak region ``[start, end)`` is extended on both sides by its own length to exclude the peak
    tails. The next points on each side, up to the region length, are used as background. The
    baseline is the background median and the noise is the MAD based standard deviation of the
    background, bounded below by :py:data:`MIN_NOISE`.

    :param profile: the slice profile
    :param start: the peak region start index
    :param end: the peak region end index, not included
    :return: the baseline and the noise. If no background points are available, the baseline is
        zero and the noise is :py:data:`MIN_NOISE`.

    """
    length = end - start
    left = profile[max(0, start - 2 * length) : max(0, start - length)]
    right = profile[min(profile.size, end + length) : min(profile.size, end + 2 * length)]
    background = numpy.hstack([left, right])
    if background.size == 0:
        return 0.0, MIN_NOISE
    return float(numpy.median(background)), max(robust_std(background), MIN_NOISE)


@detector_registry.register(PeakDetectionMethod.MATCHED_FILTER.value)
def detect_matched_filter_peaks(
    sample: Sample, config: MatchedFilterConfiguration, sample_index: int = 0
) -> list[Peak]:
    """Detect chromatographic peaks using the matched filter algorithm.

    Centroids are grouped into disjoint m/z slices of width ``config.bin_size``. In each slice, a
    profile is built using the maximum intensity of each scan and filtered with the negative second
    derivative of a gaussian with the expected peak width. Peaks are found iteratively at the maximum
    of the filtered profile until the signal-to-noise ratio falls below the threshold. The
    signal-to-noise ratio is the peak height over the background noise around the peak, see
    :py:func:`estimate_local_noise`.

    :param sample: the sample to process
    :param config: the detection parameters
    :param sample_index: the sample index assigned to detected peaks
    :return: the detected peaks, sorted by m/z slice and decreasing filtered intensity
    :raises EmptyInputError: if the sample does not have data inside the configured ranges

    """
    times, mz_list, spint_list = select_scan_data(sample, config.rt_range, config.mz_range)

    scan_index = numpy.hstack([numpy.full(x.size, k, dtype=int) for k, x in enumerate(mz_list)])
    mz = numpy.hstack(mz_list)
    spint = numpy.hstack(spint_list)

    mz_start = config.mz_range[0] if config.mz_range is not None else float(mz.min())
    bins = numpy.floor((mz - mz_start) / config.bin_size).astype(int)

    spacing = compute_spacing(times)
    sigma = config.fwhm / FWHM_TO_SIGMA / spacing
    kernel = create_filter_kernel(sigma)

    order = numpy.argsort(bins, kind="stable")
    bins, scan_index, mz, spint = bins[order], scan_index[order], mz[order], spint[order]
    unique_bins, bin_start = numpy.unique(bins, return_index=True)
    bin_end = numpy.append(bin_start[1:], bins.size)

    peaks = list()
    for b, start, end in zip(unique_bins, bin_start, bin_end):
        slice_peaks = _detect_slice_peaks(
            times,
            scan_index[start:end],
            mz[start:end],
            spint[start:end],
            kernel,
            mz_start + b * config.bin_size,
            mz_start + (b + 1) * config.bin_size,
            config,
            sample_index,
        )
        peaks.extend(slice_peaks)

    logger.debug(f"Detected {len(peaks)} peaks in sample `{sample.id}` using matched filter.")
    return peaks


def _detect_slice_peaks(
    times: FloatArray1D,
    scan_index: numpy.ndarray,
    mz: FloatArray1D,
    spint: FloatArray1D,
    kernel: FloatArray1D,
    mz_min: float,
    mz_max: float,
    config: MatchedFilterConfiguration,
    sample_index: int,
) -> list[Peak]:
    profile = numpy.zeros(times.size, dtype=float)
    numpy.maximum.at(profile, scan_index, spint)

    if not numpy.any(profile > 0.0):
        return list()

    filtered = convolve1d(profile, kernel, mode="constant", cval=0.0)
    spacing = compute_spacing(times)

    peaks = list()
    for _ in range(config.max_peaks):
        apex = int(numpy.argmax(filtered))
        if filtered[apex] <= 0.0:
            break

        start, end = descend_to_zero(filtered, apex)
        region = profile[start:end]
        filtered[start:end] = 0.0
        height = float(region.max())
        if height <= 0.0:
            continue

        baseline, noise = estimate_local_noise(profile, start, end)
        snr = (height - baseline) / noise
        if snr < config.sn_threshold:
            break

        in_region = (scan_index >= start) & (scan_index < end)
        peak_mz = weighted_mean(mz[in_region], spint[in_region])
        peak_mz = min(max(peak_mz, mz_min), mz_max)

        peak = Peak(
            mz=peak_mz,
            mz_min=mz_min,
            mz_max=mz_max,
            rt=times[apex],
            rt_min=times[start],
            rt_max=times[end - 1],
            area=integrate(region, times[start:end], spacing),
            height=height,
            snr=snr,
            sample_index=sample_index,
        )
        peaks.append(peak)
    return peaks
