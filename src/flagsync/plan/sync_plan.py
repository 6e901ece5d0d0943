"""SyncPlan model."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Optional

from flagsync.errors import InvalidStateError

from .actions import OperationType, RiskLevel
from .operation import SyncOperation

if TYPE_CHECKING:
    from .classifier import FlagAnalysis


class PlanStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


# One-way transitions; terminal states have no successors.
_TRANSITIONS: dict[PlanStatus, set[PlanStatus]] = {
    PlanStatus.PENDING: {PlanStatus.IN_PROGRESS, PlanStatus.FAILED},
    PlanStatus.IN_PROGRESS: {PlanStatus.COMPLETED, PlanStatus.FAILED},
    PlanStatus.COMPLETED: set(),
    PlanStatus.FAILED: set(),
}


@dataclass(slots=True)
class PlanSummary:
    total_operations: int
    operations_by_type: dict[OperationType, int]
    operations_by_risk: dict[RiskLevel, int]
    estimated_duration_ms: float


@dataclass(slots=True)
class RiskAssessment:
    overall_risk: RiskLevel
    high_risk_operations: int = 0
    potential_impact: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)


@dataclass(slots=True)
class PlanValidation:
    is_valid: bool
    risk_assessment: RiskAssessment
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    info: list[str] = field(default_factory=list)


@dataclass(slots=True)
class PlanProgress:
    """Execution counters; written only by the engine's coordinating thread."""

    completed: int = 0
    failed: int = 0
    current_operation: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None


@dataclass(slots=True)
class SyncPlan:
    """A risk-scored plan that can be reviewed and then executed once."""

    plan_id: str
    created_at: datetime
    operations: list[SyncOperation]
    summary: PlanSummary
    validation: PlanValidation
    status: PlanStatus = PlanStatus.PENDING
    progress: PlanProgress = field(default_factory=PlanProgress)
    analysis: Optional["FlagAnalysis"] = None

    @property
    def overall_risk(self) -> RiskLevel:
        return self.validation.risk_assessment.overall_risk

    @property
    def is_valid(self) -> bool:
        return self.validation.is_valid

    def advance(self, new_status: PlanStatus) -> None:
        """
        Move the plan to new_status.

        Raises:
            InvalidStateError: if the transition is not allowed (status is
                monotonic: pending -> in_progress -> completed/failed).
        """
        new_status = PlanStatus(new_status)
        if new_status not in _TRANSITIONS[self.status]:
            raise InvalidStateError(
                f"Invalid plan status transition: {self.status.value} -> {new_status.value}",
                details={"plan_id": self.plan_id},
            )
        self.status = new_status
