"""ExecutionEngine: batch-parallel plan execution with validation gates and rollback."""

from __future__ import annotations

import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime
from typing import Callable, Optional

import structlog

from flagsync.audit import (
    EXECUTION_ABORTED,
    OPERATION_COMPLETED,
    PLAN_EXECUTION_COMPLETED,
    PLAN_EXECUTION_STARTED,
    ROLLBACK_ATTEMPTED,
    AuditTrail,
)
from flagsync.config import SyncOptions
from flagsync.errors import (
    FlagSyncError,
    InvalidArgumentError,
    InvalidStateError,
    RiskToleranceError,
)
from flagsync.interfaces import FlagSource
from flagsync.models import (
    ExecutionSummary,
    Flag,
    OperationError,
    OperationResult,
    Result,
    RollbackOutcome,
    SyncExecutionResult,
)
from flagsync.plan import (
    OperationType,
    PlanStatus,
    SyncOperation,
    SyncPlan,
    build_batches,
    mark_checks,
    risk_within,
)
from flagsync.plan.actions import MUTATING_TYPES
from flagsync.util.time import elapsed_ms, now_utc
from flagsync.validation import ConsistencyValidator, ValidationReport

logger = structlog.get_logger(__name__)

FAILURE_RATIO_THRESHOLD = 0.5
MIN_FAILURES_TO_ABORT = 3
ABORT_WARNING = "Stopping execution due to high failure rate"

PRE_VALIDATION_FAILED = "PRE_VALIDATION_FAILED"
EXECUTION_FAILED = "EXECUTION_FAILED"
POST_VALIDATION_FAILED = "POST_VALIDATION_FAILED"
ROLLBACK_FAILED = "ROLLBACK_FAILED"
OPERATION_TIMEOUT = "OPERATION_TIMEOUT"

_PAST_TENSE = {
    OperationType.ARCHIVE: "archived",
    OperationType.ENABLE: "enabled",
    OperationType.DISABLE: "disabled",
}

_ROLLBACK_REASONS = {
    POST_VALIDATION_FAILED: "Post-operation validation failed",
    OPERATION_TIMEOUT: "Operation timed out",
}


class ExecutionEngine:
    """
    Executes a SyncPlan against a FlagSource.

    Operations run in batches of `max_concurrent_operations`: concurrently
    within a batch, strictly sequentially across batches. Plan progress is
    updated only by the calling (coordinating) thread after a batch settles.
    """

    def __init__(
        self,
        flag_source: FlagSource,
        validator: Optional[ConsistencyValidator] = None,
        options: Optional[SyncOptions] = None,
        *,
        audit: Optional[AuditTrail] = None,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self._flag_source = flag_source
        self._validator = validator or ConsistencyValidator(flag_source)
        self._options = options or SyncOptions()
        self._audit = audit or AuditTrail()
        self._clock = clock

    @property
    def options(self) -> SyncOptions:
        return self._options

    def execute(self, plan: SyncPlan) -> Result[SyncExecutionResult]:
        """
        Execute plan once.

        Returns an error Result without any remote call when the plan is not
        pending, not valid, or riskier than the configured tolerance.
        """
        try:
            return Result.ok(self._execute(plan))
        except FlagSyncError as exc:
            logger.error(
                "plan_execution_rejected",
                plan_id=getattr(plan, "plan_id", None),
                code=exc.code,
                error=exc.message,
            )
            return Result.fail(exc)

    # ----------------------------
    # Internals
    # ----------------------------
    def _execute(self, plan: SyncPlan) -> SyncExecutionResult:
        self._check_preconditions(plan)

        plan.advance(PlanStatus.IN_PROGRESS)
        started = self._clock()
        plan.progress.start_time = started
        dry_run = self._options.dry_run

        logger.info(
            "plan_execution_started",
            plan_id=plan.plan_id,
            operations=len(plan.operations),
            dry_run=dry_run,
            batch_size=self._options.max_concurrent_operations,
        )
        self._audit.emit(
            PLAN_EXECUTION_STARTED,
            f"Executing plan {plan.plan_id}",
            plan_id=plan.plan_id,
            total_operations=len(plan.operations),
            dry_run=dry_run,
        )

        results: list[OperationResult] = []
        warnings: list[str] = []
        batches = build_batches(plan.operations, self._options.max_concurrent_operations)

        for index, batch in enumerate(batches):
            plan.progress.current_operation = batch[0].op_id
            batch_results, batch_warnings = self._run_batch(batch)
            warnings.extend(batch_warnings)
            for operation, result in zip(batch, batch_results):
                results.append(result)
                if result.status == "success":
                    plan.progress.completed += 1
                else:
                    plan.progress.failed += 1
                self._emit_operation(plan, operation, result)

            has_more = index < len(batches) - 1
            if has_more and _should_abort(plan.progress.completed, plan.progress.failed):
                warnings.append(ABORT_WARNING)
                not_executed = sum(len(b) for b in batches[index + 1 :])
                logger.warning(
                    "plan_execution_aborted",
                    plan_id=plan.plan_id,
                    completed=plan.progress.completed,
                    failed=plan.progress.failed,
                    not_executed=not_executed,
                )
                self._audit.emit(
                    EXECUTION_ABORTED,
                    ABORT_WARNING,
                    plan_id=plan.plan_id,
                    completed=plan.progress.completed,
                    failed=plan.progress.failed,
                    not_executed=not_executed,
                )
                break

        ended = self._clock()
        plan.progress.current_operation = None
        plan.progress.end_time = ended
        plan.advance(PlanStatus.COMPLETED if plan.progress.failed == 0 else PlanStatus.FAILED)

        summary = _summarize(results, len(plan.operations))
        execution = SyncExecutionResult(
            plan_id=plan.plan_id,
            status=_aggregate_status(summary),
            start_time=started,
            end_time=ended,
            operation_results=results,
            summary=summary,
            warnings=warnings,
            dry_run=dry_run,
        )
        logger.info(
            "plan_execution_completed",
            plan_id=plan.plan_id,
            status=execution.status,
            plan_status=plan.status.value,
            successful=summary.successful,
            failed=summary.failed,
            rolled_back=summary.rolled_back,
            not_executed=summary.not_executed,
            duration_ms=elapsed_ms(started, ended),
        )
        self._audit.emit(
            PLAN_EXECUTION_COMPLETED,
            f"Plan {plan.plan_id} finished with status {execution.status}",
            plan_id=plan.plan_id,
            status=execution.status,
            successful=summary.successful,
            failed=summary.failed,
            rolled_back=summary.rolled_back,
            not_executed=summary.not_executed,
        )
        return execution

    def _check_preconditions(self, plan: SyncPlan) -> None:
        """Raise before any remote call if the plan must not run."""
        if not isinstance(plan, SyncPlan):
            raise InvalidArgumentError("plan must be a SyncPlan")

        if plan.status is not PlanStatus.PENDING:
            raise InvalidStateError(
                f"Plan {plan.plan_id} is {plan.status.value}; only pending plans can be executed",
                details={"plan_id": plan.plan_id, "status": plan.status.value},
            )

        if not plan.is_valid:
            plan.advance(PlanStatus.FAILED)
            raise InvalidStateError(
                f"Cannot execute invalid plan: {'; '.join(plan.validation.errors)}",
                details={"plan_id": plan.plan_id, "errors": list(plan.validation.errors)},
            )

        tolerance = self._options.risk_tolerance
        if not risk_within(plan.overall_risk, tolerance):
            plan.advance(PlanStatus.FAILED)
            raise RiskToleranceError(
                f"Plan risk {plan.overall_risk.value} exceeds tolerance {tolerance.value}",
                details={
                    "plan_id": plan.plan_id,
                    "overall_risk": plan.overall_risk.value,
                    "risk_tolerance": tolerance.value,
                },
            )

    def _run_batch(
        self, batch: list[SyncOperation]
    ) -> tuple[list[OperationResult], list[str]]:
        """
        Run one batch concurrently; results keep batch order.

        A timed-out worker cannot be cancelled, so its outcome is reconciled
        once the pool has waited for it (see _settle_timed_out).
        """
        timeout_sec = self._options.operation_timeout_ms / 1000
        results: list[Optional[OperationResult]] = []
        timed_out: list[int] = []

        with ThreadPoolExecutor(max_workers=len(batch)) as pool:
            submitted: list[tuple[SyncOperation, datetime, float, Future[OperationResult]]] = []
            for op in batch:
                deadline = time.monotonic() + timeout_sec
                future = pool.submit(self._run_operation, op)
                submitted.append((op, self._clock(), deadline, future))
            for index, (op, _, deadline, future) in enumerate(submitted):
                try:
                    results.append(future.result(timeout=max(0.0, deadline - time.monotonic())))
                except FutureTimeoutError:
                    logger.warning(
                        "operation_timed_out",
                        operation_id=op.op_id,
                        flag_key=op.flag_key,
                        timeout_ms=self._options.operation_timeout_ms,
                    )
                    results.append(None)
                    timed_out.append(index)

        warnings: list[str] = []
        for index in timed_out:
            op, submitted_at, _, future = submitted[index]
            results[index] = self._settle_timed_out(op, submitted_at, future.result())
            warnings.append(
                f"Operation {op.op_id} on flag {op.flag_key} exceeded the "
                f"{self._options.operation_timeout_ms}ms timeout"
            )
        return [r for r in results if r is not None], warnings

    def _settle_timed_out(
        self, operation: SyncOperation, started: datetime, late: OperationResult
    ) -> OperationResult:
        """
        Turn the late outcome of a timed-out operation into its reported result.

        A late live mutation is rolled back when rollback is available;
        otherwise the late success is reported as it happened. A late dry-run
        or no-op success changed nothing and is reported as a timeout.
        """
        timeout_ms = self._options.operation_timeout_ms
        message = f"Operation timed out after {timeout_ms}ms"
        if late.status != "success":
            return late

        mutated = not self._options.dry_run and operation.type in MUTATING_TYPES
        if not mutated:
            return self._failed(operation, started, OPERATION_TIMEOUT, message)

        if self._options.enable_rollback and operation.rollback_info.supported:
            return self._rollback(operation, started, OPERATION_TIMEOUT, "timing out", [message])

        logger.warning(
            "timed_out_operation_applied",
            operation_id=operation.op_id,
            flag_key=operation.flag_key,
            timeout_ms=timeout_ms,
        )
        late.message = f"{late.message} (finished after the {timeout_ms}ms timeout)"
        return late

    def _run_operation(self, operation: SyncOperation) -> OperationResult:
        """Worker entry point: every outcome, including a crash, becomes a result."""
        started = self._clock()
        try:
            return self._process(operation, started)
        except Exception as exc:  # noqa: BLE001
            logger.exception(
                "operation_crashed",
                operation_id=operation.op_id,
                flag_key=operation.flag_key,
            )
            return self._failed(operation, started, EXECUTION_FAILED, f"Unexpected error: {exc}")

    def _process(self, operation: SyncOperation, started: datetime) -> OperationResult:
        key = operation.flag_key
        usage_report = operation.context.usage_report
        current = self._current_state(operation)

        pre = self._validator.validate_pre_operation(operation, current, usage_report)
        if not pre.is_ok:
            logger.warning(
                "pre_operation_validation_unavailable",
                operation_id=operation.op_id,
                flag_key=key,
                error=pre.error.message,
            )
            mark_checks(operation, None)
        else:
            mark_checks(operation, pre.data.outcomes())
            if _vetoes(pre.data):
                return self._failed(
                    operation,
                    started,
                    PRE_VALIDATION_FAILED,
                    "Pre-operation validation failed: "
                    f"{pre.data.summary.critical_issues} critical issues",
                    details={"issues": [issue.message for issue in pre.data.issues()]},
                )

        if self._options.dry_run:
            return self._succeeded(
                operation,
                started,
                f"DRY RUN: Would execute {operation.type.value} for flag {key}",
            )

        if operation.type not in MUTATING_TYPES:
            return self._succeeded(operation, started, f"No action required for flag {key}")

        mutation = self._apply(operation, inverse=False)
        if not mutation.is_ok:
            return self._failed(
                operation,
                started,
                EXECUTION_FAILED,
                f"Failed to {operation.type.value} flag {key}: {mutation.error.message}",
                details={"error_code": mutation.error.code},
            )

        result = self._succeeded(
            operation, started, f"Successfully {_PAST_TENSE[operation.type]} flag {key}"
        )
        post_state = self._post_state(operation)
        post = self._validator.validate_post_operation(
            operation, result, current, post_state, usage_report
        )
        if not post.is_ok:
            logger.warning(
                "post_operation_validation_unavailable",
                operation_id=operation.op_id,
                flag_key=key,
                error=post.error.message,
            )
            return result
        if post.data.passed:
            return result

        if (
            post.data.rollback_recommended
            and self._options.enable_rollback
            and operation.rollback_info.supported
        ):
            return self._rollback(
                operation,
                started,
                POST_VALIDATION_FAILED,
                "post-validation failure",
                [issue.message for issue in post.data.issues()],
            )

        return self._failed(
            operation,
            started,
            POST_VALIDATION_FAILED,
            f"Post-operation validation failed for flag {key}",
            details={"issues": [issue.message for issue in post.data.issues()]},
        )

    def _rollback(
        self,
        operation: SyncOperation,
        started: datetime,
        code: str,
        cause: str,
        issues: list[str],
    ) -> OperationResult:
        key = operation.flag_key
        logger.warning("rollback_started", operation_id=operation.op_id, flag_key=key)

        inverse = self._apply(operation, inverse=True)
        ended = self._clock()
        if inverse.is_ok:
            return OperationResult(
                operation_id=operation.op_id,
                status="rolled_back",
                message=f"Operation on flag {key} rolled back after {cause}",
                start_time=started,
                end_time=ended,
                duration_ms=elapsed_ms(started, ended),
                flag_key=key,
                error=OperationError(code, _ROLLBACK_REASONS[code], {"issues": issues}),
                rollback=RollbackOutcome(True, True, "Rollback completed successfully"),
            )

        logger.error(
            "rollback_failed",
            operation_id=operation.op_id,
            flag_key=key,
            error=inverse.error.message,
        )
        return OperationResult(
            operation_id=operation.op_id,
            status="failed",
            message=f"{_ROLLBACK_REASONS[code]} for flag {key} and rollback failed",
            start_time=started,
            end_time=ended,
            duration_ms=elapsed_ms(started, ended),
            flag_key=key,
            error=OperationError(
                ROLLBACK_FAILED,
                inverse.error.message,
                {"issues": issues, "error_code": inverse.error.code},
            ),
            rollback=RollbackOutcome(True, False, f"Rollback failed: {inverse.error.message}"),
        )

    def _apply(self, operation: SyncOperation, *, inverse: bool) -> Result[object]:
        """
        Invoke the remote transition (or its inverse).

        archive <-> unarchive, enable (restore archived flag) <-> archive,
        disable <-> enable.
        """
        key = operation.flag_key
        op_type = operation.type

        if op_type is OperationType.DISABLE:
            return self._flag_source.enable(key) if inverse else self._flag_source.disable(key)

        archive = (op_type is OperationType.ARCHIVE) != inverse
        call = self._flag_source.archive if archive else self._flag_source.unarchive
        outcome = call([key])
        if outcome.is_ok and key not in outcome.data:
            verb = "archive" if archive else "unarchive"
            return Result.fail(
                InvalidStateError(
                    f"Remote service did not {verb} flag {key}",
                    details={"flag_key": key},
                )
            )
        return outcome

    def _current_state(self, operation: SyncOperation) -> Optional[Flag]:
        """Live flag before the operation; falls back to the plan-time snapshot."""
        fetched = self._flag_source.get_flag(operation.flag_key)
        if fetched.is_ok:
            return fetched.data
        logger.warning(
            "pre_state_fetch_failed",
            flag_key=operation.flag_key,
            error=fetched.error.message,
        )
        return operation.context.current_flag

    def _post_state(self, operation: SyncOperation) -> Optional[Flag]:
        fetched = self._flag_source.get_flag(operation.flag_key)
        if fetched.is_ok:
            return fetched.data
        logger.warning(
            "post_state_fetch_failed",
            flag_key=operation.flag_key,
            error=fetched.error.message,
        )
        return None

    def _emit_operation(
        self, plan: SyncPlan, operation: SyncOperation, result: OperationResult
    ) -> None:
        if result.rollback is not None and result.rollback.attempted:
            self._audit.emit(
                ROLLBACK_ATTEMPTED,
                result.rollback.message,
                plan_id=plan.plan_id,
                operation_id=operation.op_id,
                flag_key=operation.flag_key,
                successful=result.rollback.successful,
            )
        self._audit.emit(
            OPERATION_COMPLETED,
            result.message,
            plan_id=plan.plan_id,
            operation_id=operation.op_id,
            flag_key=operation.flag_key,
            operation_type=operation.type.value,
            status=result.status,
            error_code=result.error.code if result.error else None,
        )

    def _succeeded(
        self, operation: SyncOperation, started: datetime, message: str
    ) -> OperationResult:
        ended = self._clock()
        return OperationResult(
            operation_id=operation.op_id,
            status="success",
            message=message,
            start_time=started,
            end_time=ended,
            duration_ms=elapsed_ms(started, ended),
            flag_key=operation.flag_key,
        )

    def _failed(
        self,
        operation: SyncOperation,
        started: datetime,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> OperationResult:
        ended = self._clock()
        logger.warning(
            "operation_failed",
            operation_id=operation.op_id,
            flag_key=operation.flag_key,
            code=code,
            error=message,
        )
        return OperationResult(
            operation_id=operation.op_id,
            status="failed",
            message=message,
            start_time=started,
            end_time=ended,
            duration_ms=elapsed_ms(started, ended),
            flag_key=operation.flag_key,
            error=OperationError(code, message, details),
        )


def _vetoes(report: ValidationReport) -> bool:
    return (
        not report.passed
        and report.summary.critical_issues > 0
        and report.rollback_recommended
    )


def _should_abort(completed: int, failed: int) -> bool:
    attempted = completed + failed
    if attempted == 0:
        return False
    return failed / attempted > FAILURE_RATIO_THRESHOLD and failed >= MIN_FAILURES_TO_ABORT


def _summarize(results: list[OperationResult], total_operations: int) -> ExecutionSummary:
    return ExecutionSummary(
        total_executed=len(results),
        successful=sum(1 for r in results if r.status == "success"),
        failed=sum(1 for r in results if r.status == "failed"),
        rolled_back=sum(1 for r in results if r.status == "rolled_back"),
        not_executed=total_operations - len(results),
    )


def _aggregate_status(summary: ExecutionSummary) -> str:
    if summary.failed == 0 and summary.rolled_back == 0:
        return "success"
    if summary.successful > 0:
        return "partial_success"
    return "failed"
