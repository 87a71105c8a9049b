"""msfeat core exceptions."""


class AlignmentDivergenceError(ValueError):
    """Exception raised when retention time alignment cannot produce a non-decreasing time mapping."""

    def __init__(self, sample_id: str, msg: str | None = None):
        self.sample_id = sample_id
        if msg is None:
            msg = f"Retention time adjustment for sample `{sample_id}` is not monotonic."
        super().__init__(msg)


class ConfigurationError(ValueError):
    """Exception raised when an invalid or out of range parameter is passed to a processing stage."""


class CorrespondenceAmbiguityError(ValueError):
    """Exception raised when peaks cannot be identified unambiguously or end up assigned to more than one feature."""


class EmptyInputError(ValueError):
    """Exception raised when a sample has no scans in the requested range."""


class FeatureNotFound(ValueError):
    """Exception raised when a feature is not found in an assay storage or in a feature matrix."""


class IntegrationError(ValueError):
    """Exception raised when a gap filling integration window does not contain any data."""


class PeakNotFound(ValueError):
    """Exception raised when a Peak is not found in an assay storage."""


class ProcessStatusError(ValueError):
    """Exception raised when an action cannot be performed on sample data due to incorrect processing status."""


class RegistryError(ValueError):
    """Exception raised when an entry is not found in a registry."""


class RepeatedIdError(ValueError):
    """Exception raised when trying to add a resource with an existing id."""


class SampleNotFound(ValueError):
    """Exception raised when a sample is not found in the scan store or in a feature matrix."""


class SampleProcessorError(ValueError):
    """Exception raised when one or more samples fail in a processing stage."""


class EmptyDataMatrix(ValueError):
    """Exception raised when a feature matrix without samples or features is created."""
