"""msfeat core data models."""

from __future__ import annotations

from typing import Self

import numpy
import pydantic

from ..utils.numpy import FloatArray1D, integrate
from .enums import AggregationMethod, IntensityStatistic, RetentionTimeBasis


class MsfeatBaseModel(pydantic.BaseModel):
    """Base model that mutable library models inherit from."""

    model_config = pydantic.ConfigDict(validate_assignment=True, arbitrary_types_allowed=True)


class Scan(pydantic.BaseModel):
    """A centroided mass spectrum measured at a single retention time.

    Scans are immutable: both the model and its arrays are read-only after validation.

    """

    model_config = pydantic.ConfigDict(frozen=True, arbitrary_types_allowed=True)

    time: pydantic.NonNegativeFloat
    """Acquisition time of the scan, in seconds."""

    mz: FloatArray1D
    """Sorted m/z data. Values must be strictly increasing."""

    spint: FloatArray1D
    """Spectral intensity aligned with `mz`. All values must be non-negative."""

    @pydantic.model_validator(mode="after")
    def check_spectrum(self) -> Self:
        """Check array shapes, m/z order and intensity sign, then lock the arrays."""
        msg = "mz and spint must be 1D arrays with the same size."
        assert self.mz.ndim == 1 and self.mz.shape == self.spint.shape, msg

        msg = "mz values must be strictly increasing."
        assert numpy.all(numpy.diff(self.mz) > 0.0), msg

        msg = "All intensity values must be non-negative."
        assert numpy.all(self.spint >= 0.0), msg

        self.mz.flags.writeable = False
        self.spint.flags.writeable = False
        return self

    def get_nbytes(self) -> int:
        """Get the number of bytes stored in m/z and intensity arrays."""
        return self.spint.nbytes + self.mz.nbytes


class SampleInfo(pydantic.BaseModel):
    """Store metadata from an individual measurement."""

    model_config = pydantic.ConfigDict(frozen=True)

    id: str
    """A unique sample identifier"""

    group: str = ""
    """the sample group, e.g. ``"QC"`` or a treatment label."""

    order: pydantic.NonNegativeInt = 0
    """the sample measurement order in an assay"""


class Sample(SampleInfo):
    """A sample and its scans, sorted by acquisition time."""

    scans: list[Scan] = pydantic.Field(default_factory=list, repr=False)
    """The sample scans."""

    @pydantic.model_validator(mode="after")
    def check_scans_sorted(self) -> Self:
        """Check that scans are sorted by acquisition time."""
        times = [x.time for x in self.scans]
        msg = "Scans must be sorted by acquisition time."
        assert all(t1 <= t2 for t1, t2 in zip(times, times[1:])), msg
        return self

    def get_info(self) -> SampleInfo:
        """Create a copy of the sample metadata, without scan data."""
        return SampleInfo(id=self.id, group=self.group, order=self.order)

    def get_times(self) -> FloatArray1D:
        """Retrieve the acquisition time of each scan."""
        return numpy.array([x.time for x in self.scans], dtype=float)


class Chromatogram(MsfeatBaseModel):
    """Intensity as a function of retention time for an m/z window of a sample."""

    sample_id: str
    """The sample where the chromatogram was extracted from."""

    time: FloatArray1D
    """Retention time of each point, in the basis specified by `basis`."""

    spint: FloatArray1D
    """Aggregated intensity of each point."""

    mz_min: float
    """The m/z window lower bound."""

    mz_max: float
    """The m/z window upper bound."""

    aggregation: AggregationMethod = AggregationMethod.SUM
    """The rule used to combine intensities inside the m/z window."""

    basis: RetentionTimeBasis = RetentionTimeBasis.RAW
    """The time axis used to build the chromatogram."""

    def integrate(self, spacing: float = 0.0) -> float:
        """Compute the chromatogram area using the trapezoidal rule.

        :param spacing: the scan spacing of the sample. A chromatogram with a single point is
            integrated as a rectangle with this width. Empty chromatograms have zero area.

        """
        return integrate(self.spint, self.time, spacing)


class AdjustmentFunction(pydantic.BaseModel):
    """A non-decreasing mapping from raw to adjusted retention time for a sample.

    The mapping is defined by knots. Between knots, the offset ``adjusted - raw`` is linearly
    interpolated. Outside the knots range, the offset of the closest knot is used.

    """

    model_config = pydantic.ConfigDict(frozen=True, arbitrary_types_allowed=True)

    sample_id: str
    """The sample id associated with the function."""

    raw: FloatArray1D
    """Raw time knots. Must be strictly increasing."""

    adjusted: FloatArray1D
    """Adjusted time for each raw knot. Must be non-decreasing."""

    @pydantic.model_validator(mode="after")
    def check_knots(self) -> Self:
        """Check knot sizes and monotonicity."""
        msg = "raw and adjusted knots must be non-empty 1D arrays with the same size."
        assert self.raw.ndim == 1 and self.raw.size > 0 and self.raw.shape == self.adjusted.shape, msg

        msg = "raw knots must be strictly increasing."
        assert numpy.all(numpy.diff(self.raw) > 0.0), msg

        msg = "adjusted knots must be non-decreasing."
        assert numpy.all(numpy.diff(self.adjusted) >= 0.0), msg
        return self

    def __call__(self, time: FloatArray1D | float) -> FloatArray1D:
        """Map raw times to adjusted times."""
        time = numpy.asarray(time, dtype=float)
        return time + numpy.interp(time, self.raw, self.adjusted - self.raw)


class Peak(MsfeatBaseModel):
    """Representation of a chromatographic peak detected in a sample."""

    mz: float
    """Peak m/z."""

    mz_min: float
    """Peak m/z lower bound."""

    mz_max: float
    """Peak m/z upper bound."""

    rt: float
    """Peak retention time, in seconds."""

    rt_min: float
    """Peak start time."""

    rt_max: float
    """Peak end time."""

    area: pydantic.NonNegativeFloat
    """The integrated peak intensity."""

    height: pydantic.NonNegativeFloat
    """The maximum peak intensity."""

    snr: float | None = None
    """The peak signal-to-noise ratio, if computed by the detection algorithm."""

    sample_index: pydantic.NonNegativeInt = 0
    """Index of the sample in the scan store where the peak was detected."""

    is_filled: bool = False
    """``True`` if the peak was created by gap filling instead of peak detection."""

    id: int = -1
    """The peak index in an assay storage. Managed by the storage. If ``-1``, the peak is not stored."""

    feature: int = -1
    """The index of the feature that contains the peak. If ``-1``, the peak is not assigned to any feature."""

    @pydantic.model_validator(mode="after")
    def check_peak_definition(self) -> Self:
        """Check that peak location is inside the peak region."""
        msg = f"Peak m/z bounds must satisfy mz_min <= mz <= mz_max. Got {self.mz_min}, {self.mz}, {self.mz_max}."
        assert self.mz_min <= self.mz <= self.mz_max, msg

        msg = f"Peak time bounds must satisfy rt_min <= rt <= rt_max. Got {self.rt_min}, {self.rt}, {self.rt_max}."
        assert self.rt_min <= self.rt <= self.rt_max, msg
        return self

    def get(self, statistic: IntensityStatistic | str) -> float:
        """Retrieve the peak intensity statistic reported in a feature matrix."""
        statistic = IntensityStatistic(statistic)
        return self.area if statistic is IntensityStatistic.INTEGRATED else self.height


class Feature(MsfeatBaseModel):
    """A consensus signal matched across samples."""

    id: int = -1
    """The feature index in an assay storage."""

    mz: float
    """The height-weighted mean m/z of member peaks."""

    mz_min: float
    """The minimum m/z across member peaks."""

    mz_max: float
    """The maximum m/z across member peaks."""

    rt: float
    """The height-weighted mean retention time of member peaks."""

    rt_min: float
    """The minimum start time across member peaks."""

    rt_max: float
    """The maximum end time across member peaks."""

    peaks: list[int]
    """Ids of member peaks. At most one peak per sample."""

    peak_count_per_group: dict[str, int] = dict()
    """Number of member peaks in each sample group."""


class StageIssue(pydantic.BaseModel):
    """A failure or warning found while processing a sample."""

    stage: str
    """The processing stage where the issue was found."""

    sample_id: str
    """The sample where the issue was found."""

    feature: int | None = None
    """The feature associated with the issue, if any."""

    error: str
    """The exception class name."""

    message: str
    """The exception message."""


class ProcessingReport(pydantic.BaseModel):
    """Collect per-sample failures and warnings found across processing stages."""

    failures: list[StageIssue] = list()
    """Issues that prevented processing a sample."""

    warnings: list[StageIssue] = list()
    """Issues that did not prevent processing, e.g., empty inputs."""

    def add_failure(self, stage: str, sample_id: str, error: Exception, feature: int | None = None) -> None:
        """Record a failure."""
        issue = StageIssue(
            stage=stage, sample_id=sample_id, feature=feature, error=type(error).__name__, message=str(error)
        )
        self.failures.append(issue)

    def add_warning(self, stage: str, sample_id: str, error: Exception, feature: int | None = None) -> None:
        """Record a warning."""
        issue = StageIssue(
            stage=stage, sample_id=sample_id, feature=feature, error=type(error).__name__, message=str(error)
        )
        self.warnings.append(issue)

    def list_failed_samples(self, stage: str | None = None) -> list[str]:
        """List samples with at least one failure, optionally restricted to a stage."""
        failed = [x.sample_id for x in self.failures if stage is None or x.stage == stage]
        return sorted(set(failed))

    def has_failures(self) -> bool:
        """Check if any failure was recorded."""
        return bool(self.failures)
