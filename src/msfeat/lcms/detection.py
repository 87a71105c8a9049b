"""Chromatographic peak detection entry point."""

from __future__ import annotations

from logging import getLogger

from ..core.exceptions import EmptyInputError
from ..core.models import Peak, Sample
from ..core.registry import detector_registry
from . import centwave, matched_filter  # noqa: F401
from .config import CentWaveConfiguration, MatchedFilterConfiguration, validate_configuration

logger = getLogger(__name__)


def detect_peaks(
    sample: Sample,
    config: MatchedFilterConfiguration | CentWaveConfiguration,
    sample_index: int = 0,
    strict: bool = False,
) -> list[Peak]:
    """Detect chromatographic peaks in a sample.

    The detection algorithm is selected using the configuration `method` field.

    :param sample: the sample to process
    :param config: the detection algorithm configuration
    :param sample_index: the index of the sample in the scan store, assigned to detected peaks
    :param strict: if set to ``True``, raise an :py:class:`EmptyInputError` if the sample does not
        contain data inside the configured ranges. Otherwise, the error is logged and an empty list
        is returned.
    :raises ConfigurationError: if the configuration is not valid

    """
    config = validate_configuration(config)
    detector = detector_registry.get(config.method)
    try:
        peaks = detector(sample, config, sample_index)
    except EmptyInputError as e:
        if strict:
            raise
        logger.warning(str(e))
        peaks = list()
    logger.info(f"Detected {len(peaks)} peaks in sample `{sample.id}`.")
    return peaks
