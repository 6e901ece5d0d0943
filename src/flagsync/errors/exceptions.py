"""Exception hierarchy and HTTP error mapping for flagsync."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional


class FlagSyncError(Exception):
    """
    Base exception for flagsync.

    Attributes:
        code: Machine-readable error code (stable across releases).
        details: Optional structured information (e.g., HTTP status, flag key).
        cause: Optional original exception that triggered this error.
    """

    code: str = "FLAGSYNC_ERROR"

    def __init__(
        self,
        message: str,
        *,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.cause = cause


class InvalidArgumentError(FlagSyncError):
    """Raised for malformed input (null report, duplicate keys, HTTP 400)."""

    code = "INVALID_ARGUMENT"


class InvalidStateError(FlagSyncError):
    """Raised when a plan or component is used in an invalid state."""

    code = "INVALID_STATE"


class RiskToleranceError(FlagSyncError):
    """Raised when a plan's overall risk exceeds the configured tolerance."""

    code = "RISK_TOLERANCE_EXCEEDED"


class AuthError(FlagSyncError):
    """Raised when the API token is rejected (HTTP 401)."""

    code = "AUTH_FAILED"


class PermissionError(FlagSyncError):
    """Raised when access is denied (HTTP 403)."""

    code = "PERMISSION_DENIED"


class NotFoundError(FlagSyncError):
    """Raised when a flag or environment is not found (HTTP 404)."""

    code = "NOT_FOUND"


class ConflictError(FlagSyncError):
    """Raised when the remote state conflicts with the request (HTTP 409/412)."""

    code = "CONFLICT"


class RateLimitError(FlagSyncError):
    """Raised when rate-limited (HTTP 429)."""

    code = "RATE_LIMITED"


class NetworkError(FlagSyncError):
    """Raised when network/timeout issues prevent the request."""

    code = "NETWORK_ERROR"


class ApiError(FlagSyncError):
    """Raised for unclassified API errors (5xx, unknown 4xx, bad payloads)."""

    code = "API_ERROR"


@dataclass(frozen=True)
class HttpErrorInfo:
    """Lightweight HTTP error information for mapping to flagsync exceptions."""

    status_code: int
    reason: str | None = None
    message: str | None = None
    details: dict[str, Any] | None = None


def map_http_error(
    info: HttpErrorInfo,
    *,
    cause: Optional[BaseException] = None,
) -> FlagSyncError:
    """
    Map an HTTP error to a flagsync exception.

    Policy:
        - 400/422 -> InvalidArgumentError
        - 401 -> AuthError
        - 403 -> PermissionError
        - 404 -> NotFoundError
        - 409/412 -> ConflictError
        - 429 -> RateLimitError
        - 5xx and anything else -> ApiError
    """
    details: dict[str, Any] = {
        "status_code": info.status_code,
        "reason": info.reason,
    }
    if info.details:
        details.update(info.details)

    message = info.message or f"HTTP error {info.status_code}"

    if info.status_code in (400, 422):
        return InvalidArgumentError(message, details=details, cause=cause)
    if info.status_code == 401:
        return AuthError(message, details=details, cause=cause)
    if info.status_code == 403:
        return PermissionError(message, details=details, cause=cause)
    if info.status_code == 404:
        return NotFoundError(message, details=details, cause=cause)
    if info.status_code in (409, 412):
        return ConflictError(message, details=details, cause=cause)
    if info.status_code == 429:
        return RateLimitError(message, details=details, cause=cause)

    return ApiError(message, details=details, cause=cause)


def is_retryable(exc: BaseException) -> bool:
    """Return True for errors worth retrying (rate limit, network, 5xx)."""
    if isinstance(exc, (RateLimitError, NetworkError)):
        return True
    if isinstance(exc, ApiError):
        status_code = exc.details.get("status_code")
        return isinstance(status_code, int) and 500 <= status_code <= 599
    return False
