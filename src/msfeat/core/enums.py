"""msfeat constants."""

import enum


class AggregationMethod(str, enum.Enum):
    """Rules to combine intensities of a scan that fall inside an m/z window."""

    SUM = "sum"
    """Sum all intensities in the window."""

    MAX = "max"
    """Keep the maximum intensity in the window."""


class RetentionTimeBasis(str, enum.Enum):
    """Time axis used to query scans."""

    RAW = "raw"
    """Acquisition times as stored in the sample."""

    ADJUSTED = "adjusted"
    """Times after applying the sample adjustment function."""


class PeakDetectionMethod(str, enum.Enum):
    """Available chromatographic peak detection algorithms."""

    MATCHED_FILTER = "matched_filter"
    """Binned m/z slices filtered with a Gaussian matched filter."""

    CENTWAVE = "centwave"
    """Regions of interest analyzed with a continuous wavelet transform."""


class IntensityStatistic(str, enum.Enum):
    """Peak value reported in the feature matrix."""

    INTEGRATED = "integrated"
    """The integrated peak intensity, i.e. the peak area."""

    MAX = "max"
    """The peak maximum intensity, i.e. the peak height."""


class DistanceMetric(str, enum.Enum):
    """Local distance between scans used in dynamic time warping."""

    ABSOLUTE = "absolute"
    """Sum of absolute intensity differences."""

    SQUARED = "squared"
    """Sum of squared intensity differences."""


class MSInstrument(enum.Enum):
    """Available MS instrument types."""

    QTOF = "qtof"
    ORBITRAP = "orbitrap"


class SeparationMode(str, enum.Enum):
    """Analytical method separation platform."""

    HPLC = "HPLC"
    UPLC = "UPLC"


class Polarity(str, enum.Enum):
    """Scan polarity."""

    POSITIVE = "positive"
    NEGATIVE = "negative"
