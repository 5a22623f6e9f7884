"""Domain errors and failure typing."""


class PipelineError(Exception):
    """Base class for pipeline failures."""

    error_code = "PIPELINE_ERROR"


class ConfigError(PipelineError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class StageError(PipelineError):
    """Raised for stage failures that are contained by the orchestrator."""

    error_code = "STAGE_ERROR"


class SkipTraceError(StageError):
    """Raised when a skip-trace batch cannot be submitted, polled or downloaded."""

    error_code = "SKIP_TRACE_ERROR"


class AnalysisError(StageError):
    """Raised when the text-analysis service call fails."""

    error_code = "ANALYSIS_ERROR"


class StorageError(StageError):
    """Raised when a result record cannot be written."""

    error_code = "STORAGE_ERROR"


class NotificationError(StageError):
    """Raised when the run summary cannot be delivered."""

    error_code = "NOTIFICATION_ERROR"
