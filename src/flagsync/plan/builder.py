"""PlanBuilder: turns remote flags + usage evidence into a validated SyncPlan."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, Optional, Sequence

import structlog

from flagsync.errors import FlagSyncError, InvalidArgumentError
from flagsync.models import Flag, Result, UsageReport
from flagsync.util.ids import new_op_id, new_plan_id
from flagsync.util.time import now_utc

from .actions import MUTATING_TYPES, OperationType, RiskLevel, max_risk
from .classifier import FlagDifference, analyze_differences
from .operation import OperationContext, PreviousState, RollbackInfo, SyncOperation
from .ordering import order_by_risk
from .preconditions import default_validation_checks
from .sync_plan import PlanSummary, PlanValidation, RiskAssessment, SyncPlan

logger = structlog.get_logger(__name__)

HIGH_RISK_WARNING_THRESHOLD = 5
ARCHIVE_WARNING_THRESHOLD = 50

_BASE_DURATION_MS: dict[OperationType, int] = {OperationType.ARCHIVE: 2000}
_DEFAULT_DURATION_MS = 1000
_RISK_MULTIPLIER: dict[RiskLevel, float] = {
    RiskLevel.LOW: 1.0,
    RiskLevel.MEDIUM: 1.2,
    RiskLevel.HIGH: 1.5,
    RiskLevel.CRITICAL: 2.0,
}

_ROLLBACK_INSTRUCTIONS: dict[OperationType, str] = {
    OperationType.ARCHIVE: "Unarchive flag {key} to restore previous state",
    OperationType.ENABLE: "Archive flag {key} to restore previous state",
    OperationType.DISABLE: "Re-enable flag {key} rulesets to restore previous state",
}


@dataclass(frozen=True)
class PlanOptions:
    """
    Plan building options.

    Attributes:
        require_confirmation: critical operations are allowed (as a warning)
            only when the caller has a confirmation step.
        recency_risk: score archive candidates by last modification time.
        order_by_risk: execute lower-risk operations first.
        max_operations: optional hard cap on plan size.
    """

    require_confirmation: bool = False
    recency_risk: bool = False
    order_by_risk: bool = True
    max_operations: Optional[int] = None

    def __post_init__(self) -> None:
        if self.max_operations is not None and self.max_operations < 1:
            raise ValueError("max_operations must be >= 1")


class PlanBuilder:
    """Single canonical plan builder (classification + structural checks)."""

    def __init__(
        self,
        options: Optional[PlanOptions] = None,
        *,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self._options = options or PlanOptions()
        self._clock = clock

    @property
    def options(self) -> PlanOptions:
        return self._options

    def build_plan(
        self,
        flags: Optional[Sequence[Flag]],
        usage_report: Optional[UsageReport],
    ) -> Result[SyncPlan]:
        """
        Build a SyncPlan. Never raises for expected failures.

        Input errors (missing arguments, duplicate flag keys, flags without a
        usage entry) are returned as Result.fail(InvalidArgumentError).
        A structurally unsafe plan is still returned, with is_valid=False.
        """
        try:
            plan = self._build(flags, usage_report)
        except FlagSyncError as exc:
            logger.error("plan_build_failed", error=exc.message, code=exc.code)
            return Result.fail(exc)
        return Result.ok(plan)

    def _build(
        self,
        flags: Optional[Sequence[Flag]],
        usage_report: Optional[UsageReport],
    ) -> SyncPlan:
        if flags is None:
            raise InvalidArgumentError("flags must not be None")
        if usage_report is None:
            raise InvalidArgumentError("usage_report must not be None")

        flag_list = list(flags)
        _check_unique_keys(flag_list)

        missing = usage_report.missing_keys(f.key for f in flag_list)
        if missing:
            raise InvalidArgumentError(
                "Usage report has no entry for remote flags",
                details={"missing_keys": missing},
            )

        now = self._clock()
        analysis = analyze_differences(
            flag_list,
            usage_report,
            recency_risk=self._options.recency_risk,
            now=now,
        )

        operations = [
            _operation_from_difference(diff, usage_report) for diff in analysis.actionable()
        ]
        if self._options.order_by_risk:
            operations = order_by_risk(operations)

        plan = SyncPlan(
            plan_id=new_plan_id(),
            created_at=now,
            operations=operations,
            summary=summarize_operations(operations),
            validation=self._validate(operations),
            analysis=analysis,
        )

        logger.info(
            "plan_built",
            plan_id=plan.plan_id,
            total_operations=len(operations),
            overall_risk=plan.overall_risk.value,
            is_valid=plan.is_valid,
            errors=len(plan.validation.errors),
            warnings=len(plan.validation.warnings),
        )
        return plan

    def _validate(self, operations: list[SyncOperation]) -> PlanValidation:
        errors: list[str] = []
        warnings: list[str] = []
        info: list[str] = []

        critical = [op for op in operations if op.risk_level is RiskLevel.CRITICAL]
        high = [op for op in operations if op.risk_level is RiskLevel.HIGH]
        archives = [op for op in operations if op.type is OperationType.ARCHIVE]
        no_rollback = [op for op in operations if not op.rollback_info.supported]

        if critical:
            message = f"Plan contains {len(critical)} critical risk operations"
            if self._options.require_confirmation:
                warnings.append(f"{message} (confirmation required before execution)")
            else:
                errors.append(message)

        if len(high) > HIGH_RISK_WARNING_THRESHOLD:
            warnings.append(f"Plan contains {len(high)} high-risk operations")

        if len(archives) > ARCHIVE_WARNING_THRESHOLD:
            warnings.append(
                f"Large number of archive operations ({len(archives)}). "
                "Consider smaller batches."
            )

        if no_rollback:
            warnings.append(f"{len(no_rollback)} operations do not support rollback")

        max_ops = self._options.max_operations
        if max_ops is not None and len(operations) > max_ops:
            errors.append(f"Plan exceeds maximum of {max_ops} operations ({len(operations)})")

        if not operations:
            info.append("No operations required; remote flags match code usage")

        return PlanValidation(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            info=info,
            risk_assessment=assess_risk(operations),
        )


def assess_risk(operations: Iterable[SyncOperation]) -> RiskAssessment:
    """Plan-level risk: ordinal max of operation risks plus impact notes."""
    ops = list(operations)
    high_count = sum(1 for op in ops if op.risk_level is RiskLevel.HIGH)
    archive_count = sum(1 for op in ops if op.type is OperationType.ARCHIVE)
    enable_count = sum(1 for op in ops if op.type is OperationType.ENABLE)

    impact: list[str] = []
    if archive_count:
        impact.append(f"{archive_count} flags will be archived and removed from active use")
    if enable_count:
        impact.append(f"{enable_count} flags will be unarchived and become available for use")

    recommendations: list[str] = []
    if high_count:
        recommendations.append("Review high-risk operations manually before execution")
        recommendations.append("Consider executing operations in smaller batches")
    recommendations.append("Monitor application behavior after flag changes")

    return RiskAssessment(
        overall_risk=max_risk(op.risk_level for op in ops),
        high_risk_operations=high_count,
        potential_impact=impact,
        recommendations=recommendations,
    )


def summarize_operations(operations: Iterable[SyncOperation]) -> PlanSummary:
    """Counts by type and risk plus a rough duration estimate."""
    by_type = {t: 0 for t in OperationType}
    by_risk = {r: 0 for r in RiskLevel}
    estimate = 0.0
    total = 0
    for op in operations:
        total += 1
        by_type[op.type] += 1
        by_risk[op.risk_level] += 1
        base = _BASE_DURATION_MS.get(op.type, _DEFAULT_DURATION_MS)
        estimate += base * _RISK_MULTIPLIER[op.risk_level]

    return PlanSummary(
        total_operations=total,
        operations_by_type=by_type,
        operations_by_risk=by_risk,
        estimated_duration_ms=estimate,
    )


def _check_unique_keys(flags: list[Flag]) -> None:
    seen: set[str] = set()
    duplicates: list[str] = []
    for flag in flags:
        if flag.key in seen and flag.key not in duplicates:
            duplicates.append(flag.key)
        seen.add(flag.key)
    if duplicates:
        raise InvalidArgumentError(
            "Duplicate flag keys in remote flag list",
            details={"duplicate_keys": duplicates},
        )


def _operation_from_difference(diff: FlagDifference, usage_report: UsageReport) -> SyncOperation:
    op_type = diff.operation_type
    flag = diff.flag
    previous = None
    if flag is not None:
        previous = PreviousState(
            archived=flag.archived,
            enabled_environments=flag.enabled_environments(),
        )

    supported = op_type in MUTATING_TYPES
    instructions = _ROLLBACK_INSTRUCTIONS.get(op_type, "No rollback procedure available")

    return SyncOperation(
        op_id=new_op_id(),
        type=op_type,
        flag_key=diff.flag_key,
        risk_level=diff.risk_level,
        reason=diff.description,
        context=OperationContext(
            current_flag=flag,
            usages=list(diff.usages),
            usage_report=usage_report,
        ),
        validation_checks=default_validation_checks(op_type),
        rollback_info=RollbackInfo(
            supported=supported,
            previous_state=previous,
            instructions=instructions.format(key=diff.flag_key),
        ),
    )
