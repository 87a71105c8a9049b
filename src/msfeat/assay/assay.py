"""A manager class for processing multiple samples."""

from __future__ import annotations

from functools import partial
from logging import getLogger

from ..core.enums import IntensityStatistic, RetentionTimeBasis
from ..core.exceptions import EmptyInputError, ProcessStatusError, SampleProcessorError
from ..core.matrix import FeatureMatrix, create_feature_matrix
from ..core.models import Feature, Peak, ProcessingReport, Sample, SampleInfo
from ..lcms.alignment import apply_adjustment, compute_adjustments
from ..lcms.config import AssayConfiguration, CentWaveConfiguration, MatchedFilterConfiguration, validate_configuration
from ..lcms.correspondence import group_features
from ..lcms.detection import detect_peaks
from ..lcms.fill import fill_missing
from ..storage.memory import OnMemoryAssayStorage, OnMemoryScanStore
from .executors import Executor, SequentialExecutor

logger = getLogger("assay")


class AssayProcessStatus:
    """Keep track of the stages applied to an assay."""

    def __init__(self) -> None:
        self.detected = False
        self.aligned = False
        self.grouped = False
        self.filled = False

    def __repr__(self) -> str:
        return (
            f"AssayProcessStatus(detected={self.detected}, aligned={self.aligned}, "
            f"grouped={self.grouped}, filled={self.filled})"
        )


class Assay:
    """The assay class.

    Stages must be applied in order: peak detection, retention time alignment (optional), feature
    correspondence and gap filling (optional). Within each stage, samples are processed independently
    using the assay executor.

    :param id: an identifier for the assay
    :param config: the configuration of all processing stages. If not provided, default parameters are used.
    :param executor: the executor used to process samples. If not provided, samples are processed sequentially.
    :param partial_results: if set to ``False``, a stage raises a :py:class:`SampleProcessorError` after
        processing all samples if any sample failed. If set to ``True``, failed samples are recorded in
        the report and excluded from later stages.

    """

    def __init__(
        self,
        id: str,
        config: AssayConfiguration | None = None,
        executor: Executor | None = None,
        partial_results: bool = False,
    ):
        self.id = id
        self.config = AssayConfiguration() if config is None else config
        self.executor = SequentialExecutor() if executor is None else executor
        self.partial_results = partial_results
        self.report = ProcessingReport()
        self.status = AssayProcessStatus()
        self._scans = OnMemoryScanStore()
        self._storage = OnMemoryAssayStorage(id)
        self._failed: set[str] = set()

    def add_samples(self, *samples: Sample) -> None:
        """Add samples to the assay.

        :param samples: the samples to add
        :raises ProcessStatusError: if peak detection was already applied
        :raises RepeatedIdError: if a sample with the same id was already added

        """
        if self.status.detected:
            raise ProcessStatusError("Samples cannot be added after peak detection.")
        self._scans.add_samples(*samples)
        logger.info(f"Added {len(samples)} samples to assay `{self.id}`.")

    def fetch_samples(self, include_failed: bool = False) -> list[SampleInfo]:
        """Retrieve the assay samples metadata.

        :param include_failed: if set to ``True``, include samples that failed in any stage.

        """
        samples = self._scans.list_samples()
        if include_failed:
            return samples
        return [x for x in samples if x.id not in self._failed]

    def fetch_peaks(self, sample_id: str | None = None, include_filled: bool = True) -> list[Peak]:
        """Retrieve copies of stored peaks.

        :param sample_id: if provided, only retrieve peaks from this sample.
        :param include_filled: if set to ``False``, exclude peaks created by gap filling.

        """
        sample_index = None if sample_id is None else self._scans.get_sample_index(sample_id)
        peaks = self._storage.list_peaks(sample_index=sample_index, include_filled=include_filled)
        return [x.model_copy(deep=True) for x in peaks]

    def fetch_features(self) -> list[Feature]:
        """Retrieve copies of stored features."""
        return [x.model_copy(deep=True) for x in self._storage.list_features()]

    def fetch_feature_peaks(self, feature_id: int, include_filled: bool = True) -> list[Peak]:
        """Retrieve copies of the member peaks of a feature."""
        peaks = self._storage.fetch_peaks_by_feature(feature_id, include_filled=include_filled)
        return [x.model_copy(deep=True) for x in peaks]

    def fetch_unassigned(self) -> list[Peak]:
        """Retrieve copies of peaks not assigned to any feature."""
        return [self._storage.get_peak(x).model_copy(deep=True) for x in self._storage.list_unassigned()]

    def get_time_basis(self) -> RetentionTimeBasis:
        """Retrieve the time basis of stored peaks and features."""
        return RetentionTimeBasis.ADJUSTED if self.status.aligned else RetentionTimeBasis.RAW

    def detect_peaks(self) -> None:
        """Detect peaks in all samples.

        Samples without data in the configured ranges are recorded as warnings and produce no peaks.

        """
        if self.status.detected:
            raise ProcessStatusError("Peak detection was already applied.")
        config: MatchedFilterConfiguration | CentWaveConfiguration = validate_configuration(self.config.detection)

        samples = self._list_included_samples()
        items = [(x.id, (self._scans.get_sample(x.id), self._scans.get_sample_index(x.id))) for x in samples]
        logger.info(f"Detecting peaks in {len(items)} samples using {config.method}.")
        result = self.executor.map(partial(_detect_sample_peaks, config=config), items)

        failed = dict()
        for sample_id, error in result.errors.items():
            if isinstance(error, EmptyInputError):
                self.report.add_warning("detection", sample_id, error)
                result.results[sample_id] = list()
            else:
                failed[sample_id] = error

        for sample in samples:
            if sample.id in result.results:
                self._storage.add_peaks(*result.results[sample.id])
        self.status.detected = True
        self._handle_failures("detection", failed)

    def align_retention_time(self) -> None:
        """Align the retention time of samples and update the time of detected peaks."""
        if not self.status.detected:
            raise ProcessStatusError("Peak detection must be applied before retention time alignment.")
        if self.status.aligned or self.status.grouped:
            raise ProcessStatusError("Retention time alignment must be applied once, before feature correspondence.")
        if self.config.alignment is None:
            raise ProcessStatusError("Retention time alignment is not configured.")
        config = validate_configuration(self.config.alignment)

        sample_ids = [x.id for x in self._list_included_samples()]
        logger.info(f"Aligning retention time of {len(sample_ids)} samples.")
        adjustments, errors = compute_adjustments(self._scans, config, sample_ids, self.executor)
        for sample_id in sample_ids:
            if sample_id in adjustments:
                apply_adjustment(self._scans, self._storage, adjustments[sample_id])
        self.status.aligned = True
        self._handle_failures("alignment", errors)

    def group_features(self) -> None:
        """Match peaks across samples into features."""
        if not self.status.detected:
            raise ProcessStatusError("Peak detection must be applied before feature correspondence.")
        config = validate_configuration(self.config.correspondence)

        samples = self._list_included_samples()
        sample_groups = {self._scans.get_sample_index(x.id): x.group for x in samples}
        peaks = self._storage.list_peaks(include_filled=False)
        features, unassigned = group_features(peaks, sample_groups, config)
        self._storage.set_features(features, unassigned)
        self.status.grouped = True
        self.status.filled = False

    def fill_missing(self) -> None:
        """Recover the values of features in samples where no peak was detected."""
        if not self.status.grouped:
            raise ProcessStatusError("Feature correspondence must be applied before gap filling.")
        if self.config.fill is None:
            raise ProcessStatusError("Gap filling is not configured.")
        config = validate_configuration(self.config.fill)

        sample_ids = [x.id for x in self._list_included_samples()]
        basis = self.get_time_basis()
        logger.info(f"Filling missing values of {len(sample_ids)} samples using {basis.value} time.")
        warnings, errors = fill_missing(self._scans, self._storage, config, basis, sample_ids, self.executor)
        for sample_id, sample_warnings in warnings.items():
            for feature_id, error in sample_warnings:
                self.report.add_warning("fill", sample_id, error, feature=feature_id)
        self.status.filled = True
        self._handle_failures("fill", errors)

    def fetch_feature_matrix(
        self, statistic: IntensityStatistic = IntensityStatistic.INTEGRATED, include_filled: bool = True
    ) -> FeatureMatrix:
        """Create the feature matrix.

        :param statistic: the peak value used to fill the matrix
        :param include_filled: if set to ``False``, values from gap filling are not included and missing
            values are represented as ``NaN``.
        :raises EmptyDataMatrix: if there are no samples or no features

        """
        if not self.status.grouped:
            raise ProcessStatusError("Feature correspondence must be applied before creating a feature matrix.")
        samples = self._list_included_samples()
        sample_indices = [self._scans.get_sample_index(x.id) for x in samples]
        peaks = [x for x in self._storage.list_peaks(include_filled=include_filled) if x.feature >= 0]
        return create_feature_matrix(samples, self._storage.list_features(), peaks, sample_indices, statistic)

    def process(self) -> FeatureMatrix:
        """Apply all configured stages and create the feature matrix."""
        self.detect_peaks()
        if self.config.alignment is not None:
            self.align_retention_time()
        self.group_features()
        if self.config.fill is not None:
            self.fill_missing()
        return self.fetch_feature_matrix()

    def _list_included_samples(self) -> list[SampleInfo]:
        return self.fetch_samples(include_failed=False)

    def _handle_failures(self, stage: str, errors: dict[str, Exception]) -> None:
        for sample_id, error in errors.items():
            logger.warning(f"Sample `{sample_id}` failed in {stage} stage: {error}")
            self.report.add_failure(stage, sample_id, error)
            self._failed.add(sample_id)

        if errors and not self.partial_results:
            failed = ", ".join(sorted(errors))
            raise SampleProcessorError(f"Failed to process samples in {stage} stage: {failed}.")


def _detect_sample_peaks(
    data: tuple[Sample, int], config: MatchedFilterConfiguration | CentWaveConfiguration
) -> list[Peak]:
    sample, sample_index = data
    return detect_peaks(sample, config, sample_index=sample_index, strict=True)
