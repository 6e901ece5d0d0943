"""Result models for plan execution and archive runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, Literal, Optional, TypeVar

from flagsync.errors import FlagSyncError

T = TypeVar("T")

OperationStatus = Literal["success", "failed", "rolled_back"]
ExecutionStatus = Literal["success", "partial_success", "failed"]


@dataclass
class Result(Generic[T]):
    """
    Explicit success/error value returned by every public boundary.

    Exactly one of `data` / `error` is set. Use `Result.ok` / `Result.fail`.
    """

    data: Optional[T] = None
    error: Optional[FlagSyncError] = None

    def __post_init__(self) -> None:
        if (self.data is None) == (self.error is None):
            raise ValueError("Result requires exactly one of data or error")

    @classmethod
    def ok(cls, data: T) -> "Result[T]":
        return cls(data=data)

    @classmethod
    def fail(cls, error: FlagSyncError) -> "Result[T]":
        return cls(error=error)

    @property
    def is_ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return data or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.data  # type: ignore[return-value]


@dataclass(slots=True)
class OperationError:
    """Machine-readable error attached to a failed operation."""

    code: str
    message: str
    details: Optional[dict[str, Any]] = None


@dataclass(slots=True)
class RollbackOutcome:
    """Outcome of an attempted rollback."""

    attempted: bool
    successful: bool
    message: str


@dataclass(slots=True)
class OperationResult:
    """Result for a single SyncOperation."""

    operation_id: str
    status: OperationStatus
    message: str
    start_time: datetime
    end_time: datetime
    duration_ms: int = 0

    flag_key: Optional[str] = None
    error: Optional[OperationError] = None
    rollback: Optional[RollbackOutcome] = None


@dataclass(slots=True)
class ExecutionSummary:
    total_executed: int = 0
    successful: int = 0
    failed: int = 0
    rolled_back: int = 0
    not_executed: int = 0


@dataclass(slots=True)
class SyncExecutionResult:
    """Aggregate result for ExecutionEngine.execute."""

    plan_id: str
    status: ExecutionStatus
    start_time: datetime
    end_time: datetime
    operation_results: list[OperationResult]
    summary: ExecutionSummary
    warnings: list[str] = field(default_factory=list)
    dry_run: bool = False


@dataclass(slots=True)
class ArchiveSummary:
    """Outcome of SafeArchiveGate.archive_unused_flags."""

    attempted: int = 0
    archived: int = 0
    skipped: int = 0
    skipped_reasons: dict[str, str] = field(default_factory=dict)
    dry_run: bool = False
