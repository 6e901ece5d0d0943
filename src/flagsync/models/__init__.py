"""Public model exports for flagsync."""

from __future__ import annotations

from .flag import EnvironmentState, Flag, FlagConsistencyValidation
from .results import (
    ArchiveSummary,
    ExecutionSummary,
    OperationError,
    OperationResult,
    Result,
    RollbackOutcome,
    SyncExecutionResult,
)
from .usage import FlagUsage, UsageReport, build_usage_report

__all__ = [
    "EnvironmentState",
    "Flag",
    "FlagConsistencyValidation",
    "FlagUsage",
    "UsageReport",
    "build_usage_report",
    "Result",
    "OperationError",
    "RollbackOutcome",
    "OperationResult",
    "ExecutionSummary",
    "SyncExecutionResult",
    "ArchiveSummary",
]
