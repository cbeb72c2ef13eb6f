"""
Error taxonomy shared by the operation supervisor, the catalog pipeline and the API layer.

Every error carries a stable ``code`` so the HTTP layer can turn it into a
structured response without inspecting messages.
"""
from typing import Optional


class MirrorWebError(Exception):
    """Base class for all application errors."""
    code = "internal_error"
    http_status = 500

    def __init__(self, message: str, *, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict:
        """Convert to the JSON body returned by the API."""
        payload = {"error": self.message, "code": self.code}
        if self.detail:
            payload["detail"] = self.detail
        return payload


class NotFound(MirrorWebError):
    """A configuration file or operation does not exist."""
    code = "not_found"
    http_status = 404


class ValidationError(MirrorWebError):
    """An identifier or request parameter is malformed."""
    code = "validation_error"
    http_status = 400


class OperationLimitReached(MirrorWebError):
    """The configured number of concurrent operations is already running."""
    code = "operation_limit_reached"
    http_status = 409


class ProcessSpawnError(MirrorWebError):
    """The external mirroring tool could not be launched."""
    code = "process_spawn_error"
    http_status = 500


class ExternalToolFailure(MirrorWebError):
    """The external tool exited non-zero or printed an error marker."""
    code = "external_tool_failure"
    http_status = 502


class CacheLoadError(MirrorWebError):
    """The pre-fetched catalog index is missing or unreadable."""
    code = "cache_load_error"
    http_status = 503


class FetchJobError(MirrorWebError):
    """Pulling or extracting one catalog image failed after all retries."""
    code = "fetch_job_error"
    http_status = 502


class ParseError(MirrorWebError):
    """One operator directory uses an unsupported or malformed layout."""
    code = "parse_error"
    http_status = 422
