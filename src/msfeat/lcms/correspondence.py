"""Feature correspondence using kernel density estimation of peak retention times.

Peaks from all samples are sliced into overlapping m/z windows. In each window, the density of peak
retention times is estimated with a gaussian kernel and each density maximum defines a candidate
feature. Candidates are accepted using the fraction of samples of each group that contribute a peak.

"""

from __future__ import annotations

from collections import Counter
from logging import getLogger
from typing import Mapping, Sequence

import numpy

from ..core.exceptions import CorrespondenceAmbiguityError
from ..core.models import Feature, Peak
from ..utils.numpy import FloatArray1D, descend_to_minimum, weighted_mean
from .config import CorrespondenceConfiguration

logger = getLogger(__name__)

GRID_POINTS_PER_BANDWIDTH = 10


class DensityPeak:
    """A maximum of the retention time density and its support."""

    def __init__(self, center: float, lower: float, upper: float) -> None:
        self.center = center
        self.lower = lower
        self.upper = upper

    def __repr__(self) -> str:
        return f"DensityPeak(center={self.center}, lower={self.lower}, upper={self.upper})"

    def contains(self, rt: float) -> bool:
        """Check if a retention time is inside the support."""
        return self.lower <= rt <= self.upper


class Candidate:
    """A group of peaks, at most one per sample, that may become a feature."""

    def __init__(self, peaks: list[Peak], rt: float) -> None:
        self.peaks = peaks
        self.rt = rt
        self.mz = weighted_mean(numpy.array([x.mz for x in peaks]), numpy.array([x.height for x in peaks]))

    def __repr__(self) -> str:
        return f"Candidate(mz={self.mz}, rt={self.rt}, n_peaks={len(self.peaks)})"

    def get_sort_key(self) -> tuple[int, int, float, float]:
        """Candidates with more samples are preferred, then candidates with more peaks, lower m/z and lower rt."""
        n_samples = len({x.sample_index for x in self.peaks})
        return -n_samples, -len(self.peaks), self.mz, self.rt


def estimate_density(rt: FloatArray1D, bw: float) -> tuple[FloatArray1D, FloatArray1D]:
    """Estimate the density of retention times using a gaussian kernel.

    :param rt: peak retention times
    :param bw: the kernel bandwidth
    :return: the evaluation grid and the density at each grid point

    """
    step = bw / GRID_POINTS_PER_BANDWIDTH
    start = rt.min() - 3 * bw
    n_points = int(numpy.ceil((rt.max() + 3 * bw - start) / step)) + 1
    grid = start + step * numpy.arange(n_points)
    density = numpy.exp(-0.5 * ((grid[:, numpy.newaxis] - rt) / bw) ** 2).sum(axis=1)
    density /= rt.size * bw * numpy.sqrt(2 * numpy.pi)
    return grid, density


def find_density_peaks(rt: FloatArray1D, bw: float) -> list[DensityPeak]:
    """Find all maxima of the retention time density, from highest to lowest.

    The support of each maximum extends to the closest local minimum on each side. Ties are resolved
    in favour of the lowest retention time.

    """
    if rt.size == 0:
        return list()

    grid, density = estimate_density(rt, bw)
    remaining = density.copy()
    peaks = list()
    while True:
        index = int(numpy.argmax(remaining))
        if remaining[index] <= 0.0:
            break
        start, end = descend_to_minimum(density, index)
        remaining[start:end] = 0.0
        if is_local_maximum(density, index):
            peaks.append(DensityPeak(float(grid[index]), float(grid[start]), float(grid[end - 1])))
    return peaks


def is_local_maximum(x: FloatArray1D, index: int) -> bool:
    """Check if a value is greater than or equal to its neighbors."""
    left = x[index - 1] if index > 0 else -numpy.inf
    right = x[index + 1] if index + 1 < x.size else -numpy.inf
    return bool(left <= x[index] >= right)


def select_one_peak_per_sample(peaks: Sequence[Peak], center: float) -> list[Peak]:
    """Keep a single peak for each sample.

    The peak with the highest height is kept. Ties are resolved using the closest retention time to
    the center and then the lowest peak id.

    """
    selected: dict[int, Peak] = dict()
    for peak in sorted(peaks, key=lambda x: (-x.height, abs(x.rt - center), x.id)):
        selected.setdefault(peak.sample_index, peak)
    return sorted(selected.values(), key=lambda x: x.id)


def is_accepted(
    peaks: Sequence[Peak],
    sample_groups: Mapping[int, str],
    group_sizes: Mapping[str, int],
    config: CorrespondenceConfiguration,
) -> bool:
    """Check if a group of peaks contains enough samples to create a feature.

    :param peaks: the candidate peaks, at most one per sample
    :param sample_groups: a mapping from sample index to sample group
    :param group_sizes: the number of samples in each group
    :param config: the correspondence configuration

    """
    samples = {x.sample_index for x in peaks}
    if len(samples) < config.min_samples:
        return False
    counts = Counter(sample_groups[x] for x in samples)
    return any(count / group_sizes[group] >= config.min_fraction for group, count in counts.items())


def create_window_candidates(peaks: Sequence[Peak], config: CorrespondenceConfiguration) -> list[Candidate]:
    """Create candidate features from peaks inside an m/z window.

    Each peak is assigned to the closest density peak whose support contains the peak retention time.
    Peaks outside all supports are not assigned.

    """
    rt = numpy.array([x.rt for x in peaks])
    density_peaks = find_density_peaks(rt, config.bw)

    members: list[list[Peak]] = [list() for _ in density_peaks]
    for peak in peaks:
        containing = [k for k, x in enumerate(density_peaks) if x.contains(peak.rt)]
        if containing:
            closest = min(containing, key=lambda k: (abs(density_peaks[k].center - peak.rt), k))
            members[closest].append(peak)

    candidates = list()
    for density_peak, candidate_peaks in zip(density_peaks, members):
        if candidate_peaks:
            selected = select_one_peak_per_sample(candidate_peaks, density_peak.center)
            candidates.append(Candidate(selected, density_peak.center))
    return candidates


def create_feature(peaks: Sequence[Peak], sample_groups: Mapping[int, str]) -> Feature:
    """Create a feature from its member peaks, using height as weight for m/z and retention time."""
    height = numpy.array([x.height for x in peaks])
    counts = Counter(sample_groups[x.sample_index] for x in peaks)
    return Feature(
        mz=weighted_mean(numpy.array([x.mz for x in peaks]), height),
        mz_min=min(x.mz_min for x in peaks),
        mz_max=max(x.mz_max for x in peaks),
        rt=weighted_mean(numpy.array([x.rt for x in peaks]), height),
        rt_min=min(x.rt_min for x in peaks),
        rt_max=max(x.rt_max for x in peaks),
        peaks=[x.id for x in peaks],
        peak_count_per_group=dict(sorted(counts.items())),
    )


def group_features(
    peaks: Sequence[Peak], sample_groups: Mapping[int, str], config: CorrespondenceConfiguration
) -> tuple[list[Feature], list[int]]:
    """Match peaks across samples into features.

    Candidates are accepted in each m/z window before keeping, at most, ``config.max_features`` of
    them, preferring candidates with more samples.

    :param peaks: detected peaks from all samples. Peaks from samples not included in `sample_groups`
        are ignored. If no peak has an id, e.g., peaks created by peak detection that were not stored,
        the position of each peak in `peaks` is used as its id.
    :param sample_groups: a mapping from sample index to sample group, for all samples included in the
        correspondence
    :param config: the correspondence configuration
    :return: the features, sorted by m/z and retention time, and the ids of peaks not assigned to any
        feature.
    :raises CorrespondenceAmbiguityError: if peak ids are repeated, if only some peaks have an id or
        if a peak is assigned to more than one feature.

    """
    peaks = assign_peak_ids(peaks)
    peaks = [x for x in peaks if x.sample_index in sample_groups and not x.is_filled]
    group_sizes = Counter(sample_groups.values())
    if not peaks:
        return list(), list()

    peaks = sorted(peaks, key=lambda x: x.mz)
    mz = numpy.array([x.mz for x in peaks])
    step = config.mz_bin_width / 2
    window_start = numpy.floor(mz[0] / step) * step - step

    candidates: list[Candidate] = list()
    n_windows = int(numpy.ceil((mz[-1] - window_start) / step)) + 1
    for k in range(n_windows):
        lower = window_start + k * step
        start = numpy.searchsorted(mz, lower, side="left")
        end = numpy.searchsorted(mz, lower + config.mz_bin_width, side="left")
        if start < end:
            window_candidates = create_window_candidates(peaks[start:end], config)
            accepted = [x for x in window_candidates if is_accepted(x.peaks, sample_groups, group_sizes, config)]
            candidates.extend(sorted(accepted, key=Candidate.get_sort_key)[: config.max_features])
    logger.debug(f"Found {len(candidates)} candidate features in {n_windows} m/z windows.")

    claimed: set[int] = set()
    features = list()
    for candidate in sorted(candidates, key=Candidate.get_sort_key):
        remaining = [x for x in candidate.peaks if x.id not in claimed]
        if not remaining or not is_accepted(remaining, sample_groups, group_sizes, config):
            continue
        ids = {x.id for x in remaining}
        if len(ids) != len(remaining) or claimed.intersection(ids):
            raise CorrespondenceAmbiguityError(f"Peaks {sorted(ids)} claimed by more than one feature.")
        claimed.update(ids)
        features.append(create_feature(remaining, sample_groups))

    features.sort(key=lambda x: (x.mz, x.rt))
    unassigned = sorted(x.id for x in peaks if x.id not in claimed)
    logger.info(f"Created {len(features)} features. {len(unassigned)} peaks were not assigned to any feature.")
    return features, unassigned


def assign_peak_ids(peaks: Sequence[Peak]) -> list[Peak]:
    """Check that peak ids are unique, using positions as ids if no peak has an id.

    :raises CorrespondenceAmbiguityError: if ids are repeated or if only some peaks have an id.

    """
    n_stored = sum(x.id >= 0 for x in peaks)
    if n_stored == 0:
        return [x.model_copy(update={"id": k}) for k, x in enumerate(peaks)]
    if n_stored < len(peaks):
        raise CorrespondenceAmbiguityError("Mixing peaks with and without ids is not supported.")
    if len({x.id for x in peaks}) < len(peaks):
        raise CorrespondenceAmbiguityError("Peak ids must be unique.")
    return list(peaks)
