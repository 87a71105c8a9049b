"""Utilities to create LC-MS assays."""

from ..assay.assay import Assay
from ..assay.executors import ParallelExecutor, SequentialExecutor
from ..core.enums import MSInstrument, PeakDetectionMethod, Polarity, SeparationMode
from .config import AssayConfiguration


def create_lcms_assay(
    id: str,
    *,
    instrument: MSInstrument,
    separation: SeparationMode,
    polarity: Polarity,
    method: PeakDetectionMethod = PeakDetectionMethod.MATCHED_FILTER,
    align: bool = True,
    fill: bool = True,
    partial_results: bool = False,
    max_workers: int = 1,
) -> Assay:
    """Create a new Assay instance for LC-MS data.

    :param id: the assay name
    :param instrument: the instrument used in the experimental measurements. Used to define stage defaults.
    :param separation: the separation mode used in the experimental measurements. Used to define stage defaults.
    :param polarity: the instrument polarity. Used to define stage defaults.
    :param method: the peak detection algorithm
    :param align: If set to ``True``, retention time alignment is included in the assay processing.
    :param fill: If set to ``True``, gap filling is included in the assay processing.
    :param partial_results: If set to ``True``, samples that fail in a stage are excluded from later
        stages instead of stopping the processing.
    :param max_workers: the number of processes used to process samples.

    """
    config = AssayConfiguration.from_defaults(instrument, separation, polarity, method=method)
    if not align:
        config.alignment = None
    if not fill:
        config.fill = None

    if max_workers == 1:
        executor = SequentialExecutor()
    else:
        executor = ParallelExecutor(max_workers=max_workers)

    return Assay(id, config, executor, partial_results=partial_results)
