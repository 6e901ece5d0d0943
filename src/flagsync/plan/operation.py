"""Sync operation model (explicit typed fields; no loose context payload)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional

from flagsync.models import Flag, FlagUsage, UsageReport

from .actions import OperationType, RiskLevel

CheckStatus = Literal["pending", "passed", "failed", "skipped"]

_CHECK_STATUSES = ("pending", "passed", "failed", "skipped")


@dataclass(slots=True)
class ValidationCheck:
    """A named pre-condition of an operation; status flips during execution."""

    check_id: str
    description: str
    required: bool = True
    status: CheckStatus = "pending"
    message: Optional[str] = None

    def mark(self, status: CheckStatus, message: Optional[str] = None) -> None:
        if status not in _CHECK_STATUSES:
            raise ValueError(f"Unsupported check status: {status}")
        self.status = status
        if message is not None:
            self.message = message


@dataclass(slots=True)
class PreviousState:
    archived: bool
    enabled_environments: list[str] = field(default_factory=list)


@dataclass(slots=True)
class RollbackInfo:
    supported: bool
    previous_state: Optional[PreviousState] = None
    instructions: str = ""


@dataclass(slots=True)
class OperationContext:
    """Snapshot taken at plan-build time; not re-fetched during execution."""

    current_flag: Optional[Flag] = None
    usages: list[FlagUsage] = field(default_factory=list)
    usage_report: Optional[UsageReport] = None


@dataclass(slots=True)
class SyncOperation:
    """
    A single required flag transition within a SyncPlan.

    Created by the PlanBuilder; the ExecutionEngine only flips the status of
    `validation_checks` in place. Operations are never removed from a plan.
    """

    op_id: str
    type: OperationType
    flag_key: str
    risk_level: RiskLevel
    reason: str
    context: OperationContext = field(default_factory=OperationContext)
    validation_checks: list[ValidationCheck] = field(default_factory=list)
    rollback_info: RollbackInfo = field(default_factory=lambda: RollbackInfo(False))

    def __post_init__(self) -> None:
        if not isinstance(self.flag_key, str) or not self.flag_key.strip():
            raise ValueError("Missing required field: flag_key")
        self.type = OperationType(self.type)
        self.risk_level = RiskLevel(self.risk_level)

    def check(self, check_id: str) -> Optional[ValidationCheck]:
        for item in self.validation_checks:
            if item.check_id == check_id:
                return item
        return None
