"""Exception hierarchy and HTTP error mapping for tagplan_mcp.

Local failures (missing project files, unparsable plans) are raised before
any remote call is issued.  Remote failures are mapped from HTTP responses
to typed exceptions so the executor can decide per kind whether to retry,
record, or abort.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class TagPlanError(Exception):
    """Base exception for tagplan_mcp.

    Attributes:
        details: Optional structured information (HTTP status, path, ...).
        cause: Optional original exception that triggered this error.
    """

    def __init__(
        self,
        message: str,
        *,
        details: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.details = details or {}
        self.cause = cause


# ---------------------------------------------------------------------------
# Local errors
# ---------------------------------------------------------------------------


class PrerequisiteError(TagPlanError):
    """Raised when a required local file or workflow step is missing.

    Attributes:
        step: Name of the workflow step that produces the missing input.
    """

    def __init__(
        self,
        message: str,
        *,
        step: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.step = step


class PlanNotFoundError(PrerequisiteError):
    """Raised when the tracking plan file does not exist."""


class PlanParseError(TagPlanError):
    """Raised when the tracking plan cannot be parsed or validated."""


class ContainerNotFoundError(TagPlanError):
    """Raised when no remote container matches the requested target."""


# ---------------------------------------------------------------------------
# Remote errors
# ---------------------------------------------------------------------------


class RemoteApiError(TagPlanError):
    """Raised for unclassified remote API errors (5xx, unknown 4xx)."""


class QuotaExceededError(RemoteApiError):
    """Raised when the remote API rejects a call for quota or rate reasons."""


class PermissionDeniedError(RemoteApiError):
    """Raised when the service identity lacks the required role (401/403)."""


class NotFoundError(RemoteApiError):
    """Raised when a remote resource is not found (404)."""


class ConflictError(RemoteApiError):
    """Raised on a remote conflict (409/412, or a version create conflict)."""


class InvalidRequestError(RemoteApiError):
    """Raised when the remote API rejects a request body (400)."""


class NetworkError(RemoteApiError):
    """Raised when network or timeout issues prevent the request."""


@dataclass(frozen=True)
class HttpErrorInfo:
    """Lightweight HTTP error information for mapping to typed exceptions."""

    status_code: int
    reason: str | None = None
    message: str | None = None
    details: dict[str, Any] | None = None


_QUOTA_REASON_KEYWORDS: tuple[str, ...] = (
    "quota",
    "rateLimitExceeded",
    "userRateLimitExceeded",
    "dailyLimitExceeded",
    "RESOURCE_EXHAUSTED",
)


def _is_quota_reason(reason: str | None) -> bool:
    if not reason:
        return False
    return any(key.lower() in reason.lower() for key in _QUOTA_REASON_KEYWORDS)


def map_http_error(
    info: HttpErrorInfo,
    *,
    cause: BaseException | None = None,
) -> RemoteApiError:
    """Map an HTTP error to a typed remote exception.

    Policy:
        - 429 -> QuotaExceededError
        - 403 with a quota/rate reason -> QuotaExceededError
        - 401/403 -> PermissionDeniedError
        - 404 -> NotFoundError
        - 409/412 -> ConflictError
        - 400 -> InvalidRequestError
        - otherwise -> RemoteApiError
    """
    details: dict[str, Any] = {
        "status_code": info.status_code,
        "reason": info.reason,
    }
    if info.details:
        details.update(info.details)

    message = info.message or f"HTTP error {info.status_code}"

    if info.status_code == 429:
        return QuotaExceededError(message, details=details, cause=cause)
    if info.status_code == 403 and _is_quota_reason(info.reason):
        return QuotaExceededError(message, details=details, cause=cause)
    if info.status_code in (401, 403):
        return PermissionDeniedError(message, details=details, cause=cause)
    if info.status_code == 404:
        return NotFoundError(message, details=details, cause=cause)
    if info.status_code in (409, 412):
        return ConflictError(message, details=details, cause=cause)
    if info.status_code == 400:
        return InvalidRequestError(message, details=details, cause=cause)

    return RemoteApiError(message, details=details, cause=cause)
