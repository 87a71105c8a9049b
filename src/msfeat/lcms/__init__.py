"""Utilities to process LC-MS datasets."""

from .chromatogram import extract_chromatogram, extract_chromatograms
from .config import (
    AlignmentConfiguration,
    AssayConfiguration,
    CentWaveConfiguration,
    CorrespondenceConfiguration,
    GapFillingConfiguration,
    MatchedFilterConfiguration,
)
from .detection import detect_peaks

__all__ = [
    "detect_peaks",
    "extract_chromatogram",
    "extract_chromatograms",
    "AlignmentConfiguration",
    "AssayConfiguration",
    "CentWaveConfiguration",
    "CorrespondenceConfiguration",
    "GapFillingConfiguration",
    "MatchedFilterConfiguration",
]
