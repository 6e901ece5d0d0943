"""Public plan exports for flagsync."""

from __future__ import annotations

from .actions import OperationType, RiskLevel, max_risk, risk_rank, risk_within
from .builder import PlanBuilder, PlanOptions, assess_risk, summarize_operations
from .classifier import (
    Classification,
    DifferenceType,
    FlagAnalysis,
    FlagDifference,
    analyze_differences,
    archive_risk,
    classify,
)
from .operation import (
    OperationContext,
    PreviousState,
    RollbackInfo,
    SyncOperation,
    ValidationCheck,
)
from .ordering import build_batches, order_by_risk
from .preconditions import default_validation_checks, mark_checks, snapshot_drift
from .sync_plan import (
    PlanProgress,
    PlanStatus,
    PlanSummary,
    PlanValidation,
    RiskAssessment,
    SyncPlan,
)

__all__ = [
    "OperationType",
    "RiskLevel",
    "risk_rank",
    "max_risk",
    "risk_within",
    "Classification",
    "classify",
    "archive_risk",
    "DifferenceType",
    "FlagDifference",
    "FlagAnalysis",
    "analyze_differences",
    "SyncOperation",
    "ValidationCheck",
    "RollbackInfo",
    "PreviousState",
    "OperationContext",
    "SyncPlan",
    "PlanStatus",
    "PlanSummary",
    "PlanValidation",
    "PlanProgress",
    "RiskAssessment",
    "PlanBuilder",
    "PlanOptions",
    "assess_risk",
    "summarize_operations",
    "order_by_risk",
    "build_batches",
    "default_validation_checks",
    "mark_checks",
    "snapshot_drift",
]
