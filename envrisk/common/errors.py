"""Domain errors and failure typing."""


class EngineError(Exception):
    """Base class for aggregation engine failures."""

    error_code = "ENGINE_ERROR"


class ConfigError(EngineError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class PreconditionError(EngineError):
    """Raised when a caller breaks the input contract, e.g. a Location without coordinates."""

    error_code = "PRECONDITION_ERROR"


class RunSupersededError(EngineError):
    """Raised to the caller of a run that a newer run replaced while in flight."""

    error_code = "RUN_SUPERSEDED"


class SourceError(EngineError):
    """Source-local failure. Never aborts an aggregation run."""

    error_code = "SOURCE_ERROR"


class NetworkError(SourceError):
    """The request did not complete."""

    error_code = "NETWORK_ERROR"


class UpstreamStatusError(SourceError):
    """The upstream answered with a non-success status."""

    error_code = "UPSTREAM_STATUS"

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RetryableStatusError(UpstreamStatusError):
    pass


class MalformedResponseError(SourceError):
    """The body could not be parsed into the expected shape."""

    error_code = "MALFORMED_RESPONSE"


class DataAbsentError(SourceError):
    """The jurisdiction has no extract or rows available."""

    error_code = "DATA_ABSENT"


class FetchCancelledError(SourceError):
    error_code = "FETCH_CANCELLED"
