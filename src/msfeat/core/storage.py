"""Storage interfaces used by processing stages."""

from __future__ import annotations

from typing import Protocol, Sequence

from ..utils.numpy import FloatArray1D
from .enums import RetentionTimeBasis
from .models import AdjustmentFunction, Feature, Peak, Sample, SampleInfo, Scan


class ScanStore(Protocol):
    """Read-only access to sample scans, with optional per-sample retention time adjustment."""

    def add_samples(self, *samples: Sample) -> None:
        """Add samples to the store."""
        ...

    def get_sample(self, sample_id: str) -> Sample:
        """Retrieve a sample by id."""
        ...

    def get_sample_index(self, sample_id: str) -> int:
        """Retrieve the position of a sample in the store."""
        ...

    def has_sample(self, sample_id: str) -> bool:
        """Check if a sample is in the store."""
        ...

    def list_samples(self) -> list[SampleInfo]:
        """List the metadata of all samples, sorted by insertion order."""
        ...

    def get_times(self, sample_id: str, basis: RetentionTimeBasis) -> FloatArray1D:
        """Retrieve scan times of a sample in the requested basis."""
        ...

    def fetch_scans(
        self,
        sample_id: str,
        rt_range: tuple[float, float] | None = None,
        basis: RetentionTimeBasis = RetentionTimeBasis.RAW,
    ) -> tuple[FloatArray1D, Sequence[Scan]]:
        """Retrieve scans with time inside a range, along with their times in the requested basis."""
        ...

    def get_adjustment(self, sample_id: str) -> AdjustmentFunction | None:
        """Retrieve the adjustment function of a sample."""
        ...

    def set_adjustment(self, adjustment: AdjustmentFunction) -> None:
        """Store the adjustment function of a sample."""
        ...


class AssayStorage(Protocol):
    """Store peaks and features in flat indexed collections."""

    def add_peaks(self, *peaks: Peak) -> list[int]:
        """Add peaks to the storage and return their ids."""
        ...

    def replace_peaks(self, *peaks: Peak) -> None:
        """Replace stored peaks with new versions that share their ids."""
        ...

    def get_peak(self, peak_id: int) -> Peak:
        """Retrieve a peak by id."""
        ...

    def list_peaks(self, sample_index: int | None = None, include_filled: bool = True) -> list[Peak]:
        """List stored peaks."""
        ...

    def set_features(self, features: Sequence[Feature], unassigned: Sequence[int]) -> None:
        """Store features and the list of peaks not assigned to any feature."""
        ...

    def list_features(self) -> list[Feature]:
        """List stored features."""
        ...

    def list_unassigned(self) -> list[int]:
        """List ids of peaks not assigned to any feature."""
        ...

    def fetch_peaks_by_feature(self, feature_id: int, include_filled: bool = True) -> list[Peak]:
        """Retrieve the member peaks of a feature."""
        ...

    def add_filled_peaks(self, *peaks: Peak) -> None:
        """Add peaks created by gap filling."""
        ...
