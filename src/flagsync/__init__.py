"""flagsync public API."""

from __future__ import annotations

from flagsync.archive_gate import SafeArchiveGate
from flagsync.audit import AuditEvent, AuditTrail, JsonLinesAuditSink, MemoryAuditSink
from flagsync.auth import ApiCredentials
from flagsync.config import Settings, SyncOptions
from flagsync.controller import OptimizelyController
from flagsync.engine import ExecutionEngine
from flagsync.errors import (
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
    map_http_error,
)
from flagsync.interfaces import (
    ApprovalDecision,
    ApprovalPolicy,
    AuditSink,
    ExclusionPolicy,
    FlagSource,
    UsageSource,
)
from flagsync.manager import FlagSyncManager
from flagsync.models import (
    ArchiveSummary,
    EnvironmentState,
    Flag,
    FlagUsage,
    OperationResult,
    Result,
    SyncExecutionResult,
    UsageReport,
    build_usage_report,
)
from flagsync.plan import (
    OperationType,
    PlanBuilder,
    PlanOptions,
    RiskLevel,
    SyncOperation,
    SyncPlan,
    classify,
)
from flagsync.policy import ApprovalWorkflow, OverridePolicy, load_override_config
from flagsync.validation import ConsistencyValidator, ValidationReport, ValidatorOptions

__all__ = [
    # High-level
    "FlagSyncManager",
    "ExecutionEngine",
    "SafeArchiveGate",
    "PlanBuilder",
    "ConsistencyValidator",
    "OptimizelyController",
    # Config / auth
    "Settings",
    "SyncOptions",
    "PlanOptions",
    "ValidatorOptions",
    "ApiCredentials",
    # Collaborators
    "FlagSource",
    "UsageSource",
    "ExclusionPolicy",
    "ApprovalPolicy",
    "ApprovalDecision",
    "AuditSink",
    "OverridePolicy",
    "ApprovalWorkflow",
    "load_override_config",
    "AuditEvent",
    "AuditTrail",
    "MemoryAuditSink",
    "JsonLinesAuditSink",
    # Plan / Models
    "classify",
    "OperationType",
    "RiskLevel",
    "SyncOperation",
    "SyncPlan",
    "Flag",
    "EnvironmentState",
    "FlagUsage",
    "UsageReport",
    "build_usage_report",
    "Result",
    "OperationResult",
    "SyncExecutionResult",
    "ArchiveSummary",
    "ValidationReport",
    # Errors
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
    "map_http_error",
]
