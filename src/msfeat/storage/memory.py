"""In memory scan and assay data storage implementation."""

from __future__ import annotations

from logging import getLogger
from typing import Sequence

import numpy

from ..core import exceptions
from ..core.enums import RetentionTimeBasis
from ..core.models import AdjustmentFunction, Feature, Peak, Sample, SampleInfo, Scan
from ..utils.numpy import FloatArray1D

logger = getLogger(__name__)


class OnMemoryScanStore:
    """Store sample scans in memory.

    Scans are never modified after a sample is added. Retention time adjustment is stored as a
    per-sample function, and queries select the raw or adjusted time axis explicitly.

    """

    def __init__(self) -> None:
        self._samples: dict[str, Sample] = dict()
        self._index: dict[str, int] = dict()
        self._raw_times: dict[str, FloatArray1D] = dict()
        self._adjusted_times: dict[str, FloatArray1D] = dict()
        self._adjustments: dict[str, AdjustmentFunction] = dict()

    def add_samples(self, *samples: Sample) -> None:
        """Add samples to the store.

        :param samples: the samples to add
        :raises RepeatedIdError: if a sample with the same id is already stored

        """
        for sample in samples:
            if self.has_sample(sample.id):
                raise exceptions.RepeatedIdError(sample.id)
            self._index[sample.id] = len(self._samples)
            self._samples[sample.id] = sample
            self._raw_times[sample.id] = sample.get_times()
            logger.info(f"Added sample `{sample.id}` with {len(sample.scans)} scans to scan store.")

    def get_sample(self, sample_id: str) -> Sample:
        """Retrieve a sample by id."""
        if not self.has_sample(sample_id):
            raise exceptions.SampleNotFound(sample_id)
        return self._samples[sample_id]

    def get_sample_index(self, sample_id: str) -> int:
        """Retrieve the position of a sample in the store."""
        if not self.has_sample(sample_id):
            raise exceptions.SampleNotFound(sample_id)
        return self._index[sample_id]

    def get_n_samples(self) -> int:
        """Retrieve the number of samples in the store."""
        return len(self._samples)

    def has_sample(self, sample_id: str) -> bool:
        """Check if a sample is in the store."""
        return sample_id in self._samples

    def list_samples(self) -> list[SampleInfo]:
        """List the metadata of all samples, sorted by insertion order."""
        return [x.get_info() for x in self._samples.values()]

    def get_times(self, sample_id: str, basis: RetentionTimeBasis = RetentionTimeBasis.RAW) -> FloatArray1D:
        """Retrieve a copy of scan times of a sample in the requested basis.

        :raises ProcessStatusError: if the adjusted basis is requested for a sample without adjustment.

        """
        if not self.has_sample(sample_id):
            raise exceptions.SampleNotFound(sample_id)

        if RetentionTimeBasis(basis) is RetentionTimeBasis.RAW:
            return self._raw_times[sample_id].copy()

        if sample_id not in self._adjusted_times:
            msg = f"Retention time of sample `{sample_id}` has not been adjusted."
            raise exceptions.ProcessStatusError(msg)
        return self._adjusted_times[sample_id].copy()

    def fetch_scans(
        self,
        sample_id: str,
        rt_range: tuple[float, float] | None = None,
        basis: RetentionTimeBasis = RetentionTimeBasis.RAW,
    ) -> tuple[FloatArray1D, Sequence[Scan]]:
        """Retrieve scans with time inside a closed range.

        :param sample_id: the sample id
        :param rt_range: the time range, in the requested basis. If ``None``, all scans are retrieved.
        :param basis: the time axis used to compare with `rt_range`
        :return: the scan times in the requested basis and the scans.

        """
        times = self.get_times(sample_id, basis)
        scans = self._samples[sample_id].scans
        if rt_range is None:
            return times, scans

        lower, upper = rt_range
        start = numpy.searchsorted(times, lower, side="left")
        end = numpy.searchsorted(times, upper, side="right")
        if start >= end:
            return times[:0], []
        return times[start:end], scans[start:end]

    def get_adjustment(self, sample_id: str) -> AdjustmentFunction | None:
        """Retrieve the adjustment function of a sample, or ``None`` if the sample was not adjusted."""
        if not self.has_sample(sample_id):
            raise exceptions.SampleNotFound(sample_id)
        return self._adjustments.get(sample_id)

    def set_adjustment(self, adjustment: AdjustmentFunction) -> None:
        """Store the adjustment function of a sample and compute its adjusted scan times."""
        sample_id = adjustment.sample_id
        if not self.has_sample(sample_id):
            raise exceptions.SampleNotFound(sample_id)
        self._adjustments[sample_id] = adjustment
        self._adjusted_times[sample_id] = adjustment(self._raw_times[sample_id])

    def is_adjusted(self, sample_id: str) -> bool:
        """Check if a sample has an adjustment function."""
        return sample_id in self._adjustments


class OnMemoryAssayStorage:
    """Store peaks and features in memory, using flat lists indexed by integer ids.

    Peaks created by gap filling are always stored after detected peaks. Setting new features
    discards previously filled peaks.

    """

    def __init__(self, id: str) -> None:
        self.id = id
        self._peaks: list[Peak] = list()
        self._n_detected = 0
        self._features: list[Feature] = list()
        self._unassigned: list[int] = list()
        self._filled: dict[tuple[int, int], int] = dict()

    def add_peaks(self, *peaks: Peak) -> list[int]:
        """Add detected peaks to the storage.

        :param peaks: the peaks to add. Stored copies receive a new id.
        :return: the ids of the stored peaks.
        :raises ProcessStatusError: if the storage already contains filled peaks.

        """
        if self._filled:
            raise exceptions.ProcessStatusError("Cannot add detected peaks after gap filling.")

        ids = list()
        for peak in peaks:
            if peak.is_filled:
                raise ValueError("Filled peaks must be added with `add_filled_peaks`.")
            peak_id = len(self._peaks)
            self._peaks.append(peak.model_copy(update={"id": peak_id, "feature": -1}))
            ids.append(peak_id)
        self._n_detected = len(self._peaks)
        return ids

    def replace_peaks(self, *peaks: Peak) -> None:
        """Replace stored detected peaks with new versions that share their ids."""
        for peak in peaks:
            old = self.get_peak(peak.id)
            if old.sample_index != peak.sample_index or old.is_filled:
                msg = f"Peak {peak.id} can only be replaced by a detected peak from the same sample."
                raise ValueError(msg)
            self._peaks[peak.id] = peak

    def get_peak(self, peak_id: int) -> Peak:
        """Retrieve a peak by id."""
        if not 0 <= peak_id < len(self._peaks):
            raise exceptions.PeakNotFound(peak_id)
        return self._peaks[peak_id]

    def get_n_peaks(self, include_filled: bool = True) -> int:
        """Get the number of stored peaks."""
        return len(self._peaks) if include_filled else self._n_detected

    def list_peaks(self, sample_index: int | None = None, include_filled: bool = True) -> list[Peak]:
        """List stored peaks.

        :param sample_index: if provided, only list peaks from this sample.
        :param include_filled: if set to ``False``, exclude peaks created by gap filling.

        """
        peaks = self._peaks if include_filled else self._peaks[: self._n_detected]
        if sample_index is None:
            return list(peaks)
        return [x for x in peaks if x.sample_index == sample_index]

    def set_features(self, features: Sequence[Feature], unassigned: Sequence[int]) -> None:
        """Store features and update peak back-references.

        Feature ids are set to their position in `features`. Filled peaks from previous features are
        discarded.

        :raises CorrespondenceAmbiguityError: if a peak is assigned to more than one feature or is
            also listed as unassigned.

        """
        self._peaks = self._peaks[: self._n_detected]
        self._filled = dict()

        assignment: dict[int, int] = dict()
        stored = list()
        for feature_id, feature in enumerate(features):
            feature = feature.model_copy(update={"id": feature_id, "peaks": list(feature.peaks)})
            for peak_id in feature.peaks:
                self.get_peak(peak_id)
                if peak_id in assignment:
                    msg = f"Peak {peak_id} assigned to features {assignment[peak_id]} and {feature_id}."
                    raise exceptions.CorrespondenceAmbiguityError(msg)
                assignment[peak_id] = feature_id
            stored.append(feature)

        if any(x in assignment for x in unassigned):
            raise exceptions.CorrespondenceAmbiguityError("Unassigned peaks cannot be feature members.")

        for peak in self._peaks:
            peak.feature = assignment.get(peak.id, -1)

        self._features = stored
        self._unassigned = sorted(unassigned)

    def get_feature(self, feature_id: int) -> Feature:
        """Retrieve a feature by id."""
        if not 0 <= feature_id < len(self._features):
            raise exceptions.FeatureNotFound(feature_id)
        return self._features[feature_id]

    def get_n_features(self) -> int:
        """Get the number of stored features."""
        return len(self._features)

    def list_features(self) -> list[Feature]:
        """List stored features."""
        return list(self._features)

    def list_unassigned(self) -> list[int]:
        """List ids of peaks not assigned to any feature."""
        return list(self._unassigned)

    def fetch_peaks_by_feature(self, feature_id: int, include_filled: bool = True) -> list[Peak]:
        """Retrieve the member peaks of a feature."""
        peaks = [self.get_peak(x) for x in self.get_feature(feature_id).peaks]
        if not include_filled:
            peaks = [x for x in peaks if not x.is_filled]
        return peaks

    def add_filled_peaks(self, *peaks: Peak) -> None:
        """Add peaks created by gap filling.

        A filled peak replaces a previous filled peak for the same feature and sample. Detected
        peaks are never replaced.

        :raises RepeatedIdError: if the feature already contains a detected peak from the same sample.

        """
        for peak in peaks:
            if not peak.is_filled:
                raise ValueError("Only peaks created by gap filling can be added as filled peaks.")

            feature = self.get_feature(peak.feature)
            key = (peak.feature, peak.sample_index)
            if key in self._filled:
                peak_id = self._filled[key]
                self._peaks[peak_id] = peak.model_copy(update={"id": peak_id})
                continue

            if any(self._peaks[x].sample_index == peak.sample_index for x in feature.peaks):
                msg = f"Feature {peak.feature} already contains a peak from sample {peak.sample_index}."
                raise exceptions.RepeatedIdError(msg)

            peak_id = len(self._peaks)
            self._peaks.append(peak.model_copy(update={"id": peak_id}))
            self._filled[key] = peak_id
            feature.peaks.append(peak_id)
