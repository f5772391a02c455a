"""Error types for the search core.

Propagation policy:
- UpstreamUnavailableError is raised only inside provider adapters and is
  always caught at the call site, which degrades to a local fallback.
- InvalidArgumentError and PipelineFaultError are the only errors a caller
  of the orchestrator ever sees (carried on a FAILED SearchResponse).
"""

from datetime import datetime, timezone
from typing import Any


class SearchError(Exception):
    """Base search core error."""

    def __init__(
        self,
        message: str,
        error_code: str = "INTERNAL_ERROR",
        details: dict | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to a serializable dictionary."""
        result: dict[str, Any] = {"code": self.error_code, "message": self.message}
        if self.details:
            result["details"] = self.details
        return result


class InvalidArgumentError(SearchError, ValueError):
    """Caller misuse, e.g. a negative TTL or an empty product id."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(
            message=message,
            error_code="INVALID_ARGUMENT",
            details=details,
        )


class UpstreamUnavailableError(SearchError):
    """External provider down, timed out, or returned an unusable payload."""

    def __init__(self, service: str, reason: str = "", details: dict | None = None):
        message = f"Service '{service}' is unavailable"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message=message,
            error_code="UPSTREAM_UNAVAILABLE",
            details={"service": service, **(details or {})},
        )
        self.service = service


class PipelineFaultError(SearchError):
    """Unexpected failure inside a local pipeline stage."""

    def __init__(self, stage: str, cause: BaseException | None = None):
        message = f"Search pipeline failed during {stage}"
        details: dict[str, Any] = {"stage": stage}
        if cause is not None:
            message = f"{message}: {cause}"
            details["error_type"] = type(cause).__name__
        super().__init__(
            message=message,
            error_code="PIPELINE_FAULT",
            details=details,
        )
        self.stage = stage


def format_error_response(
    error: SearchError,
    request_id: str | None = None,
) -> dict[str, Any]:
    """Format standardized error payload."""
    response: dict[str, Any] = {
        "error": {
            "code": error.error_code,
            "message": error.message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
    }

    if error.details:
        response["error"]["details"] = error.details

    if request_id:
        response["error"]["request_id"] = request_id

    return response
