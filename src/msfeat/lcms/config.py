"""Configuration of LC-MS processing stages."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Annotated, Literal, Self, TypeVar

import pydantic

from ..core.enums import (
    AggregationMethod,
    DistanceMetric,
    MSInstrument,
    PeakDetectionMethod,
    Polarity,
    SeparationMode,
)
from ..core.exceptions import ConfigurationError


class StageConfiguration(ABC, pydantic.BaseModel):
    """Base configuration which all stage configurations inherit from.

    Provides functionality to set default parameters using instrument type, separation type and polarity.

    """

    model_config = pydantic.ConfigDict(validate_assignment=True)

    @classmethod
    @abstractmethod
    def from_defaults(cls, instrument: MSInstrument, separation: SeparationMode, polarity: Polarity) -> Self:
        """Create a new configuration with sane defaults for the specified MS instrument, separation mode and polarity.

        :param instrument: The MS instrument used to measure the samples
        :param separation: The analytical method used for separation
        :param polarity: The polarity in which the samples where measured
        :return: A new configuration instance

        """
        ...


class MatchedFilterConfiguration(StageConfiguration):
    """Configure peak detection using a matched filter over binned m/z slices."""

    method: Literal["matched_filter"] = PeakDetectionMethod.MATCHED_FILTER.value

    bin_size: pydantic.PositiveFloat = 0.1
    """The m/z width of slices where profiles are built."""

    fwhm: pydantic.PositiveFloat = 30.0
    """The expected peak full width at half maximum, in seconds."""

    sn_threshold: pydantic.PositiveFloat = 10.0
    """Minimum ratio between the peak height and the background noise around the peak to accept it."""

    max_peaks: pydantic.PositiveInt = 10
    """Maximum number of peaks detected in each m/z slice."""

    rt_range: tuple[float, float] | None = None
    """If provided, only scans in this time range are used."""

    mz_range: tuple[float, float] | None = None
    """If provided, only m/z values in this range are used."""

    @classmethod
    def from_defaults(cls, instrument: MSInstrument, separation: SeparationMode, polarity: Polarity) -> Self:
        """Set defaults using the peak width expected for the separation mode."""
        fwhm = 30.0 if separation == SeparationMode.HPLC else 10.0
        bin_size = 0.1 if instrument == MSInstrument.QTOF else 0.05
        return cls(bin_size=bin_size, fwhm=fwhm)


class CentWaveConfiguration(StageConfiguration):
    """Configure peak detection using regions of interest and a continuous wavelet transform."""

    method: Literal["centwave"] = PeakDetectionMethod.CENTWAVE.value

    ppm: pydantic.PositiveFloat = 25.0
    """Maximum m/z deviation, in parts per million, between consecutive points of a region of interest."""

    peak_width: tuple[pydantic.PositiveFloat, pydantic.PositiveFloat] = (20.0, 50.0)
    """Minimum and maximum peak width, in seconds."""

    prefilter: tuple[pydantic.PositiveInt, pydantic.NonNegativeFloat] = (3, 100.0)
    """A region of interest is kept only if it has at least ``k`` consecutive points with intensity
    greater or equal than ``I``, where ``(k, I)`` is this tuple."""

    sn_threshold: pydantic.PositiveFloat = 10.0
    """Minimum signal-to-noise ratio to accept a peak."""

    noise: pydantic.NonNegativeFloat = 0.0
    """Centroids with intensity lower than this value are not used to build regions of interest."""

    rt_range: tuple[float, float] | None = None
    """If provided, only scans in this time range are used."""

    mz_range: tuple[float, float] | None = None
    """If provided, only m/z values in this range are used."""

    @pydantic.model_validator(mode="after")
    def check_peak_width(self) -> Self:
        """Check that the minimum peak width is lower than the maximum peak width."""
        min_width, max_width = self.peak_width
        msg = f"Minimum peak width must be lower than maximum peak width. Got {self.peak_width}."
        assert min_width < max_width, msg
        return self

    @classmethod
    def from_defaults(cls, instrument: MSInstrument, separation: SeparationMode, polarity: Polarity) -> Self:
        """Set defaults using the instrument mass accuracy and the separation mode peak width."""
        ppm = 25.0 if instrument == MSInstrument.QTOF else 5.0
        peak_width = (10.0, 90.0) if separation == SeparationMode.HPLC else (4.0, 30.0)
        return cls(ppm=ppm, peak_width=peak_width)


DetectionConfiguration = Annotated[
    MatchedFilterConfiguration | CentWaveConfiguration, pydantic.Field(discriminator="method")
]


class AlignmentConfiguration(StageConfiguration):
    """Configure retention time alignment using dynamic time warping of sample profiles."""

    bin_size: pydantic.PositiveFloat = 1.0
    """The m/z width of bins used to build sample profiles."""

    reference_groups: list[str] = list()
    """Samples from these groups are averaged to build the reference profile, e.g., ``["QC"]``."""

    center_sample: str | None = None
    """If no reference group is defined, the profile of this sample is used as reference. If neither
    is defined, the mean profile of all samples is used."""

    distance: DistanceMetric = DistanceMetric.ABSOLUTE
    """The local distance between profile rows."""

    max_rt_shift: pydantic.PositiveFloat | None = None
    """If provided, restrict the warping path to time shifts lower than this value, in seconds."""

    smoothing: pydantic.PositiveFloat = 1.0
    """Standard deviation, in grid points, of the gaussian kernel used to smooth time offsets."""

    max_smoothing_iterations: pydantic.PositiveInt = 5
    """Maximum number of times the smoothing strength is doubled to obtain a non-decreasing adjustment."""

    @classmethod
    def from_defaults(cls, instrument: MSInstrument, separation: SeparationMode, polarity: Polarity) -> Self:
        """Set defaults using the separation mode."""
        max_rt_shift = 60.0 if separation == SeparationMode.HPLC else 20.0
        return cls(max_rt_shift=max_rt_shift)


class CorrespondenceConfiguration(StageConfiguration):
    """Configure feature correspondence using retention time density estimation."""

    mz_bin_width: pydantic.PositiveFloat = 0.25
    """The width of overlapping m/z windows. Windows are shifted by half this value."""

    min_fraction: float = pydantic.Field(default=0.5, gt=0.0, le=1.0)
    """Minimum fraction of samples from a group that must contain a peak to accept a feature."""

    bw: pydantic.PositiveFloat = 30.0
    """Bandwidth, in seconds, of the gaussian kernel density estimation of peak retention times."""

    min_samples: pydantic.PositiveInt = 1
    """Minimum number of samples that must contain a peak to accept a feature."""

    max_features: pydantic.PositiveInt = 50
    """Maximum number of accepted features kept in each m/z window."""

    @classmethod
    def from_defaults(cls, instrument: MSInstrument, separation: SeparationMode, polarity: Polarity) -> Self:
        """Set defaults using the instrument mass accuracy and the separation mode peak width."""
        mz_bin_width = 0.025 if instrument == MSInstrument.QTOF else 0.01
        bw = 30.0 if separation == SeparationMode.HPLC else 10.0
        return cls(mz_bin_width=mz_bin_width, bw=bw)


class GapFillingConfiguration(StageConfiguration):
    """Configure the recovery of missing values."""

    aggregation: AggregationMethod = AggregationMethod.SUM
    """The rule used to combine intensities inside the m/z window of a feature."""

    @classmethod
    def from_defaults(cls, instrument: MSInstrument, separation: SeparationMode, polarity: Polarity) -> Self:
        """Create a configuration with default parameters."""
        return cls()


class AssayConfiguration(pydantic.BaseModel):
    """Aggregate the configuration of all processing stages."""

    model_config = pydantic.ConfigDict(validate_assignment=True)

    detection: DetectionConfiguration = pydantic.Field(default_factory=MatchedFilterConfiguration)
    """Peak detection configuration. The detection algorithm is selected using the `method` field."""

    alignment: AlignmentConfiguration | None = pydantic.Field(default_factory=AlignmentConfiguration)
    """Retention time alignment configuration. If ``None``, alignment is skipped."""

    correspondence: CorrespondenceConfiguration = pydantic.Field(default_factory=CorrespondenceConfiguration)
    """Feature correspondence configuration."""

    fill: GapFillingConfiguration | None = pydantic.Field(default_factory=GapFillingConfiguration)
    """Gap filling configuration. If ``None``, missing values are not recovered."""

    @classmethod
    def from_defaults(
        cls,
        instrument: MSInstrument,
        separation: SeparationMode,
        polarity: Polarity,
        method: PeakDetectionMethod = PeakDetectionMethod.MATCHED_FILTER,
    ) -> Self:
        """Create a configuration using defaults of each stage.

        :param method: the peak detection algorithm.

        """
        detection: MatchedFilterConfiguration | CentWaveConfiguration
        match PeakDetectionMethod(method):
            case PeakDetectionMethod.MATCHED_FILTER:
                detection = MatchedFilterConfiguration.from_defaults(instrument, separation, polarity)
            case PeakDetectionMethod.CENTWAVE:
                detection = CentWaveConfiguration.from_defaults(instrument, separation, polarity)
        return cls(
            detection=detection,
            alignment=AlignmentConfiguration.from_defaults(instrument, separation, polarity),
            correspondence=CorrespondenceConfiguration.from_defaults(instrument, separation, polarity),
            fill=GapFillingConfiguration.from_defaults(instrument, separation, polarity),
        )


ConfigurationType = TypeVar("ConfigurationType", bound=pydantic.BaseModel)


def validate_configuration(config: ConfigurationType) -> ConfigurationType:
    """Validate a configuration model again, e.g., after fields were modified without validation.

    :param config: the configuration to validate
    :return: a new validated configuration instance
    :raises ConfigurationError: if any parameter is invalid

    """
    try:
        return type(config).model_validate(config.model_dump())
    except pydantic.ValidationError as e:
        raise ConfigurationError(f"Invalid {type(config).__name__}: {e}") from e
