"""
Error taxonomy for the facility ingestion pipeline.

Source errors are attributed to a single query unit, store errors to a single
batch. Only ConfigError and StoreUnavailableError end a run in the failed state.
"""


class PipelineError(Exception):
    """Base class for pipeline failures."""

    error_code = "PIPELINE_ERROR"


class ConfigError(PipelineError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class SourceError(PipelineError):
    """Raised when a source adapter cannot deliver records for a unit."""

    error_code = "SOURCE_ERROR"


class NetworkError(SourceError):
    """Connection failure, timeout or non-2xx response. Retryable."""

    error_code = "NETWORK_ERROR"

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class ParseError(SourceError):
    """Malformed payload (JSON/CSV). Not retried."""

    error_code = "PARSE_ERROR"

    def __init__(self, message: str, payload_size: int | None = None):
        self.payload_size = payload_size
        super().__init__(message)


class StoreError(PipelineError):
    """A batch write failed and was rolled back."""

    error_code = "STORE_ERROR"

    def __init__(self, message: str, facility_ids: list[str] | None = None):
        self.facility_ids = list(facility_ids or [])
        super().__init__(message)


class StoreUnavailableError(PipelineError):
    """The relational store cannot be reached at all."""

    error_code = "STORE_UNAVAILABLE"


class CheckpointError(PipelineError):
    """Checkpoint file could not be read or written."""

    error_code = "CHECKPOINT_ERROR"
