"""Public error exports for flagsync."""

from __future__ import annotations

from .exceptions import (
    ApiError,
    AuthError,
    ConflictError,
    FlagSyncError,
    HttpErrorInfo,
    InvalidArgumentError,
    InvalidStateError,
    NetworkError,
    NotFoundError,
    PermissionError,
    RateLimitError,
    RiskToleranceError,
    is_retryable,
    map_http_error,
)

__all__ = [
    "FlagSyncError",
    "InvalidArgumentError",
    "InvalidStateError",
    "RiskToleranceError",
    "AuthError",
    "PermissionError",
    "NotFoundError",
    "ConflictError",
    "RateLimitError",
    "NetworkError",
    "ApiError",
    "HttpErrorInfo",
    "is_retryable",
    "map_http_error",
]
