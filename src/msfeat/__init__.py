"""msfeat: feature extraction from LC-MS untargeted metabolomics data."""

from .assay.assay import Assay
from .core.enums import (
    AggregationMethod,
    IntensityStatistic,
    MSInstrument,
    PeakDetectionMethod,
    Polarity,
    RetentionTimeBasis,
    SeparationMode,
)
from .core.matrix import FeatureMatrix
from .core.models import Chromatogram, Feature, Peak, ProcessingReport, Sample, Scan
from .lcms.assay import create_lcms_assay

__all__ = [
    "AggregationMethod",
    "Assay",
    "Chromatogram",
    "Feature",
    "FeatureMatrix",
    "IntensityStatistic",
    "MSInstrument",
    "Peak",
    "PeakDetectionMethod",
    "Polarity",
    "ProcessingReport",
    "RetentionTimeBasis",
    "Sample",
    "Scan",
    "SeparationMode",
    "create_lcms_assay",
]
