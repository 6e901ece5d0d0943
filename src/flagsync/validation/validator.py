"""ConsistencyValidator: pre/post operation checks and standalone consistency reports."""

from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, Optional, Sequence

import structlog

from flagsync.errors import FlagSyncError, InvalidArgumentError
from flagsync.interfaces import FlagSource
from flagsync.models import Flag, FlagConsistencyValidation, OperationResult, Result, UsageReport
from flagsync.plan.actions import MUTATING_TYPES, OperationType, RiskLevel
from flagsync.plan.operation import SyncOperation
from flagsync.plan.preconditions import snapshot_drift
from flagsync.util.time import now_utc

from .issues import (
    CheckResult,
    ConsistencyIssue,
    ConsistencyReport,
    CrossReferenceResult,
    DataIntegrityResult,
    FlagConsistencyResult,
    IssueType,
    ValidationReport,
    ValidationSummary,
    has_blocking,
)

logger = structlog.get_logger(__name__)

MAX_EXPECTED_DURATION_MS = 60_000
ROLLBACK_FAILED_CHECK_RATIO = 0.3


@dataclass(frozen=True)
class ValidatorOptions:
    """
    Options for ConsistencyValidator.

    Attributes:
        enable_auto_rollback: recommend rollback when post-validation fails.
        max_inconsistencies: inconsistencies tolerated before a deep check is
            reported as medium severity.
        deep_validation: run the remote cross-environment check.
        validation_timeout_ms: bound on the remote check.
    """

    enable_auto_rollback: bool = True
    max_inconsistencies: int = 5
    deep_validation: bool = True
    validation_timeout_ms: int = 30_000

    def __post_init__(self) -> None:
        if self.max_inconsistencies < 0:
            raise ValueError("max_inconsistencies must be >= 0")
        if self.validation_timeout_ms <= 0:
            raise ValueError("validation_timeout_ms must be > 0")


class ConsistencyValidator:
    """Checks flag state against usage evidence and (optionally) live remote truth."""

    def __init__(
        self,
        flag_source: Optional[FlagSource] = None,
        options: Optional[ValidatorOptions] = None,
        *,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self._flag_source = flag_source
        self._options = options or ValidatorOptions()
        self._clock = clock

    @property
    def options(self) -> ValidatorOptions:
        return self._options

    # ----------------------------
    # Pre / post operation
    # ----------------------------
    def validate_pre_operation(
        self,
        operation: SyncOperation,
        current_flag: Optional[Flag],
        usage_report: UsageReport,
    ) -> Result[ValidationReport]:
        """
        Validate an operation before any remote mutation.

        The remote deep check is best-effort: errors and timeouts degrade to a
        low-severity "deep check skipped" issue.
        """
        if operation is None or usage_report is None:
            return Result.fail(InvalidArgumentError("operation and usage_report are required"))

        validations = [
            self._check_flag_state(operation, current_flag, usage_report),
            self._check_prerequisites(operation),
            self._check_cross_references(operation, current_flag, usage_report),
            self._check_dependencies(operation, current_flag),
            self._check_risk(operation),
        ]
        if self._options.deep_validation:
            validations.append(self._deep_check(operation, current_flag))

        report = self._aggregate(validations)
        logger.info(
            "pre_operation_validation_completed",
            operation_id=operation.op_id,
            flag_key=operation.flag_key,
            passed=report.passed,
            total_issues=report.summary.total_issues,
            critical_issues=report.summary.critical_issues,
        )
        return Result.ok(report)

    def validate_post_operation(
        self,
        operation: SyncOperation,
        operation_result: OperationResult,
        pre_state: Optional[Flag],
        post_state: Optional[Flag],
        usage_report: UsageReport,
    ) -> Result[ValidationReport]:
        """
        Validate the observed effect of an executed operation.

        A failed operation result short-circuits to passed=False with
        rollback_recommended = enable_auto_rollback.
        """
        if operation is None or operation_result is None or usage_report is None:
            return Result.fail(
                InvalidArgumentError("operation, operation_result and usage_report are required")
            )

        if operation_result.status == "failed":
            check = CheckResult(
                check_id="operation_result_validation",
                description="Validate operation execution result",
                issues=[
                    ConsistencyIssue(
                        IssueType.CONFIGURATION_DRIFT,
                        RiskLevel.HIGH,
                        f"Operation failed: {operation_result.message}",
                        "Investigate and resolve operation failure",
                    )
                ],
            )
            report = self._aggregate([check])
            report.rollback_recommended = self._options.enable_auto_rollback
            return Result.ok(report)

        validations = [
            self._check_operation_result(operation_result),
            self._check_state_transition(operation, pre_state, post_state),
            self._check_cross_references(operation, post_state, usage_report),
            self._check_post_integrity(operation, post_state, usage_report),
        ]
        report = self._aggregate(validations)

        if not report.passed and self._options.enable_auto_rollback:
            report.rollback_recommended = True
            report.recommendations.insert(
                0, "Automatic rollback recommended due to validation failures"
            )

        logger.info(
            "post_operation_validation_completed",
            operation_id=operation.op_id,
            flag_key=operation.flag_key,
            passed=report.passed,
            rollback_recommended=report.rollback_recommended,
            total_issues=report.summary.total_issues,
        )
        return Result.ok(report)

    # ----------------------------
    # Standalone checks
    # ----------------------------
    def validate_cross_references(
        self,
        flag_key: str,
        flag: Optional[Flag],
        usage_report: UsageReport,
    ) -> Result[CrossReferenceResult]:
        if not flag_key or usage_report is None:
            return Result.fail(InvalidArgumentError("flag_key and usage_report are required"))

        usages = usage_report.usages_for(flag_key)
        issues = _reference_issues(flag_key, flag, len(usages))
        return Result.ok(
            CrossReferenceResult(
                flag_key=flag_key,
                references_valid=not has_blocking(issues),
                remote_exists=flag is not None,
                codebase_references=len(usages),
                issues=issues,
            )
        )

    def validate_data_integrity(
        self,
        flag_key: str,
        flag: Optional[Flag],
        usage_report: UsageReport,
    ) -> Result[DataIntegrityResult]:
        if not flag_key or usage_report is None:
            return Result.fail(InvalidArgumentError("flag_key and usage_report are required"))

        issues: list[ConsistencyIssue] = []
        used = usage_report.is_used(flag_key)
        if flag is not None:
            if flag.key != flag_key:
                issues.append(_key_mismatch(flag_key, flag.key))
            if not used and not flag.archived:
                issues.append(
                    ConsistencyIssue(
                        IssueType.ORPHANED_FLAG,
                        RiskLevel.MEDIUM,
                        f"Flag '{flag_key}' is not used in code and should potentially be archived",
                        "Consider archiving this flag",
                    )
                )
            if used and flag.archived:
                issues.append(
                    ConsistencyIssue(
                        IssueType.STATUS_MISMATCH,
                        RiskLevel.HIGH,
                        f"Flag '{flag_key}' is archived but still referenced in code",
                        "Remove code references or restore flag state",
                    )
                )
        elif used:
            issues.append(_missing_flag(flag_key))

        if has_blocking(issues):
            logger.warning(
                "data_integrity_issues_found",
                flag_key=flag_key,
                issues=[issue.type.value for issue in issues],
            )
        return Result.ok(
            DataIntegrityResult(
                flag_key=flag_key,
                integrity_maintained=not has_blocking(issues),
                timestamp=self._clock(),
                issues=issues,
            )
        )

    def generate_consistency_report(
        self,
        flag_keys: Iterable[str],
        flags: Sequence[Flag],
        usage_report: UsageReport,
    ) -> Result[ConsistencyReport]:
        """Report per-flag alignment between remote state and code usage."""
        if flags is None or usage_report is None:
            return Result.fail(InvalidArgumentError("flags and usage_report are required"))

        flag_map = {flag.key: flag for flag in flags}
        results: list[FlagConsistencyResult] = []
        critical = 0
        warnings = 0
        for key in flag_keys:
            result = _flag_consistency(key, flag_map.get(key), usage_report.is_used(key))
            results.append(result)
            for issue in result.issues:
                if issue.is_critical:
                    critical += 1
                else:
                    warnings += 1

        consistent = sum(1 for r in results if r.is_consistent)
        inconsistent = len(results) - consistent

        recommendations: list[str] = []
        if inconsistent:
            recommendations.append(f"Review and resolve {inconsistent} inconsistent flags")
        if critical:
            recommendations.append(f"Prioritize resolving {critical} critical issues")
        if warnings > len(results) * 0.1:
            recommendations.append(
                "Consider reviewing flag naming and usage patterns to reduce ambiguity"
            )

        report = ConsistencyReport(
            timestamp=self._clock(),
            total_flags=len(results),
            consistent_flags=consistent,
            inconsistent_flags=inconsistent,
            critical_issues=critical,
            warnings=warnings,
            flag_results=results,
            recommendations=recommendations,
        )
        logger.info(
            "consistency_report_generated",
            total_flags=report.total_flags,
            consistent_flags=consistent,
            inconsistent_flags=inconsistent,
            critical_issues=critical,
        )
        return Result.ok(report)

    # ----------------------------
    # Internals
    # ----------------------------
    def _check_flag_state(
        self,
        operation: SyncOperation,
        flag: Optional[Flag],
        usage_report: UsageReport,
    ) -> CheckResult:
        started = time.monotonic()
        issues: list[ConsistencyIssue] = []
        key = operation.flag_key

        if flag is None:
            if operation.type in MUTATING_TYPES:
                issues.append(
                    ConsistencyIssue(
                        IssueType.MISSING_FLAG,
                        RiskLevel.HIGH,
                        f"Flag '{key}' could not be resolved remotely",
                        "Refresh the flag list and rebuild the plan",
                    )
                )
            elif usage_report.is_used(key):
                issues.append(_missing_flag(key))
        else:
            drift = snapshot_drift(operation.context.current_flag, flag)
            if drift:
                issues.append(
                    ConsistencyIssue(
                        IssueType.CONFIGURATION_DRIFT,
                        RiskLevel.MEDIUM,
                        f"Flag '{key}': {drift}",
                        "Rebuild the plan from fresh remote state",
                    )
                )
            if operation.type is OperationType.ARCHIVE and flag.archived:
                issues.append(
                    ConsistencyIssue(
                        IssueType.CONFIGURATION_DRIFT,
                        RiskLevel.LOW,
                        f"Flag '{key}' is already archived",
                    )
                )
            if operation.type is OperationType.ENABLE and not flag.archived:
                issues.append(
                    ConsistencyIssue(
                        IssueType.CONFIGURATION_DRIFT,
                        RiskLevel.LOW,
                        f"Flag '{key}' is already active",
                    )
                )

        return CheckResult(
            check_id="flag_state_validation",
            description="Validate basic flag state consistency",
            issues=issues,
            duration_ms=_since(started),
        )

    def _check_prerequisites(self, operation: SyncOperation) -> CheckResult:
        started = time.monotonic()
        issues: list[ConsistencyIssue] = []

        failed = [c for c in operation.validation_checks if c.required and c.status == "failed"]
        if failed:
            issues.append(
                ConsistencyIssue(
                    IssueType.CONFIGURATION_DRIFT,
                    RiskLevel.HIGH,
                    f"Operation has {len(failed)} failed prerequisite checks",
                    "Resolve validation check failures before proceeding",
                )
            )
        if operation.type is OperationType.ARCHIVE and operation.risk_level is RiskLevel.CRITICAL:
            issues.append(
                ConsistencyIssue(
                    IssueType.CONFIGURATION_DRIFT,
                    RiskLevel.MEDIUM,
                    "Archive operation marked as critical risk - review carefully",
                    "Verify archive operation is safe to proceed",
                )
            )

        return CheckResult(
            check_id="operation_prerequisites",
            description="Validate operation prerequisites and safety checks",
            issues=issues,
            duration_ms=_since(started),
        )

    def _check_cross_references(
        self,
        operation: SyncOperation,
        flag: Optional[Flag],
        usage_report: UsageReport,
    ) -> CheckResult:
        started = time.monotonic()
        key = operation.flag_key
        references = len(usage_report.usages_for(key))
        issues: list[ConsistencyIssue] = []

        if references and flag is None:
            issues.append(_missing_flag(key))
        elif flag is not None and references:
            if operation.type is OperationType.ARCHIVE:
                issues.append(
                    ConsistencyIssue(
                        IssueType.STATUS_MISMATCH,
                        RiskLevel.CRITICAL,
                        f"Archive requested for flag '{key}' referenced {references} times in code",
                        "Remove code references before archiving",
                    )
                )
            elif flag.archived:
                # An enable operation exists to resolve exactly this mismatch.
                severity = (
                    RiskLevel.MEDIUM if operation.type is OperationType.ENABLE else RiskLevel.HIGH
                )
                issues.append(
                    ConsistencyIssue(
                        IssueType.STATUS_MISMATCH,
                        severity,
                        f"Flag '{key}' is archived but still referenced {references} times in code",
                        "Unarchive the flag or remove code references",
                    )
                )

        return CheckResult(
            check_id="cross_reference_validation",
            description="Validate cross-references between remote flags and codebase",
            issues=issues,
            duration_ms=_since(started),
            metadata={
                "code_usage_count": references,
                "flag_exists": flag is not None,
                "flag_archived": bool(flag and flag.archived),
            },
        )

    def _check_dependencies(self, operation: SyncOperation, flag: Optional[Flag]) -> CheckResult:
        started = time.monotonic()
        issues: list[ConsistencyIssue] = []

        if flag is not None and operation.type is OperationType.ARCHIVE:
            enabled = flag.enabled_environments()
            targeted = flag.targeted_environments()
            if enabled:
                issues.append(
                    ConsistencyIssue(
                        IssueType.CONFIGURATION_DRIFT,
                        RiskLevel.HIGH,
                        f"Flag '{flag.key}' is enabled in: {', '.join(enabled)}",
                        "Disable the flag in every environment before archiving",
                    )
                )
            if targeted:
                issues.append(
                    ConsistencyIssue(
                        IssueType.CONFIGURATION_DRIFT,
                        RiskLevel.HIGH,
                        f"Flag '{flag.key}' has targeting rules in: {', '.join(targeted)}",
                        "Remove targeting rules before archiving",
                    )
                )

        return CheckResult(
            check_id="dependency_validation",
            description="Check for targeting rules or active environments",
            issues=issues,
            duration_ms=_since(started),
        )

    def _check_risk(self, operation: SyncOperation) -> CheckResult:
        started = time.monotonic()
        issues: list[ConsistencyIssue] = []

        if operation.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL):
            issues.append(
                ConsistencyIssue(
                    IssueType.CONFIGURATION_DRIFT,
                    RiskLevel.MEDIUM,
                    f"Operation has {operation.risk_level.value} risk level"
                    " - requires careful review",
                    "Review operation details and ensure appropriate safety measures",
                )
            )
        if operation.risk_level is RiskLevel.HIGH and not operation.rollback_info.supported:
            issues.append(
                ConsistencyIssue(
                    IssueType.CONFIGURATION_DRIFT,
                    RiskLevel.HIGH,
                    "High-risk operation without rollback capability",
                    "Ensure rollback procedures are available for high-risk operations",
                )
            )

        return CheckResult(
            check_id="risk_assessment_validation",
            description="Validate operation risk assessment and safety measures",
            issues=issues,
            duration_ms=_since(started),
        )

    def _deep_check(self, operation: SyncOperation, flag: Optional[Flag]) -> CheckResult:
        started = time.monotonic()
        key = operation.flag_key
        issues: list[ConsistencyIssue] = []

        def done() -> CheckResult:
            return CheckResult(
                check_id="deep_validation",
                description="Live cross-environment consistency check",
                issues=issues,
                duration_ms=_since(started),
            )

        if flag is None:
            return done()
        if self._flag_source is None:
            issues.append(_deep_skipped(key, "no flag source configured"))
            return done()

        timeout_s = self._options.validation_timeout_ms / 1000.0
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="flagsync-deep-check")
        try:
            future = executor.submit(self._flag_source.validate_consistency, key)
            result = future.result(timeout=timeout_s)
        except FutureTimeoutError:
            logger.warning(
                "deep_validation_timeout",
                flag_key=key,
                timeout_ms=self._options.validation_timeout_ms,
            )
            issues.append(
                _deep_skipped(key, f"timed out after {self._options.validation_timeout_ms}ms")
            )
            return done()
        except FlagSyncError as exc:
            logger.warning("deep_validation_error", flag_key=key, error=exc.message)
            issues.append(_deep_skipped(key, exc.message))
            return done()
        finally:
            executor.shutdown(wait=False)

        if result.error is not None:
            logger.warning("deep_validation_error", flag_key=key, error=result.error.message)
            issues.append(_deep_skipped(key, result.error.message))
            return done()

        issues.extend(self._deep_issues(operation, result.data))  # type: ignore[arg-type]
        return done()

    def _deep_issues(
        self,
        operation: SyncOperation,
        live: FlagConsistencyValidation,
    ) -> list[ConsistencyIssue]:
        key = operation.flag_key
        issues: list[ConsistencyIssue] = []

        if not live.environments:
            issues.append(
                ConsistencyIssue(
                    IssueType.CONFIGURATION_DRIFT,
                    RiskLevel.LOW,
                    f"Flag '{key}' has no environment configurations",
                    "Verify flag is properly configured across environments",
                )
            )

        if operation.type is OperationType.ARCHIVE and live.any_enabled:
            enabled = [k for k, env in live.environments.items() if env.enabled]
            issues.append(
                ConsistencyIssue(
                    IssueType.CONFIGURATION_DRIFT,
                    RiskLevel.HIGH,
                    f"Live check: flag '{key}' is enabled in: {', '.join(enabled)}",
                    "Disable the flag in every environment before archiving",
                )
            )

        if live.inconsistencies:
            severity = (
                RiskLevel.MEDIUM
                if len(live.inconsistencies) > self._options.max_inconsistencies
                or any(i.get("type") == "mixed_enabled_status" for i in live.inconsistencies)
                else RiskLevel.LOW
            )
            issues.append(
                ConsistencyIssue(
                    IssueType.CONFIGURATION_DRIFT,
                    severity,
                    f"Flag '{key}' has {len(live.inconsistencies)}"
                    " cross-environment inconsistencies",
                    "Review per-environment configuration",
                )
            )
        return issues

    def _check_operation_result(self, result: OperationResult) -> CheckResult:
        issues: list[ConsistencyIssue] = []
        if result.duration_ms > MAX_EXPECTED_DURATION_MS:
            issues.append(
                ConsistencyIssue(
                    IssueType.CONFIGURATION_DRIFT,
                    RiskLevel.LOW,
                    f"Operation took longer than expected: {result.duration_ms}ms",
                    "Monitor operation performance",
                )
            )
        return CheckResult(
            check_id="operation_result_validation",
            description="Validate operation execution result",
            issues=issues,
        )

    def _check_state_transition(
        self,
        operation: SyncOperation,
        pre_state: Optional[Flag],
        post_state: Optional[Flag],
    ) -> CheckResult:
        """A transition that did not happen is critical; so is an unknown post-state."""
        started = time.monotonic()
        key = operation.flag_key
        issues: list[ConsistencyIssue] = []

        if post_state is None:
            if operation.type in MUTATING_TYPES:
                issues.append(
                    ConsistencyIssue(
                        IssueType.STATUS_MISMATCH,
                        RiskLevel.CRITICAL,
                        f"Post-operation state of flag '{key}' is unavailable",
                        "Verify the flag state manually",
                    )
                )
        elif operation.type is OperationType.ARCHIVE and not post_state.archived:
            issues.append(
                ConsistencyIssue(
                    IssueType.STATUS_MISMATCH,
                    RiskLevel.CRITICAL,
                    "Archive operation did not change flag status",
                    "Verify archive operation was executed correctly",
                )
            )
        elif operation.type is OperationType.ENABLE and post_state.archived:
            issues.append(
                ConsistencyIssue(
                    IssueType.STATUS_MISMATCH,
                    RiskLevel.CRITICAL,
                    "Enable operation did not unarchive the flag",
                    "Verify enable operation was executed correctly",
                )
            )
        elif operation.type is OperationType.DISABLE and post_state.is_enabled_anywhere:
            issues.append(
                ConsistencyIssue(
                    IssueType.STATUS_MISMATCH,
                    RiskLevel.CRITICAL,
                    "Disable operation left the flag enabled in some environment",
                    "Verify disable operation was executed correctly",
                )
            )

        return CheckResult(
            check_id="state_transition_validation",
            description="Validate flag state transition after operation",
            issues=issues,
            duration_ms=_since(started),
            metadata={
                "pre_archived": pre_state.archived if pre_state else None,
                "post_archived": post_state.archived if post_state else None,
            },
        )

    def _check_post_integrity(
        self,
        operation: SyncOperation,
        post_state: Optional[Flag],
        usage_report: UsageReport,
    ) -> CheckResult:
        issues: list[ConsistencyIssue] = []
        if post_state is not None and post_state.key != operation.flag_key:
            issues.append(_key_mismatch(operation.flag_key, post_state.key))
        if usage_report.timestamp > self._clock():
            issues.append(
                ConsistencyIssue(
                    IssueType.CONFIGURATION_DRIFT,
                    RiskLevel.LOW,
                    "Usage report timestamp is in the future",
                    "Regenerate usage report with valid timestamp",
                )
            )
        return CheckResult(
            check_id="data_integrity_validation",
            description="Validate data integrity after operation",
            issues=issues,
        )

    def _aggregate(self, validations: list[CheckResult]) -> ValidationReport:
        total = len(validations)
        passed_checks = sum(1 for v in validations if v.passed)
        failed_checks = total - passed_checks
        all_issues = [issue for v in validations for issue in v.issues]
        critical = sum(1 for issue in all_issues if issue.is_critical)
        warnings = len(all_issues) - critical

        recommendations: list[str] = []
        if critical:
            recommendations.append(
                f"Address {critical} critical consistency issues before proceeding"
            )
        if warnings:
            recommendations.append(f"Review {warnings} warnings to improve flag management")
        if failed_checks > total * 0.5:
            recommendations.append(
                "High validation failure rate - consider reviewing operation plan"
            )

        return ValidationReport(
            timestamp=self._clock(),
            passed=critical == 0 and failed_checks == 0,
            validations=validations,
            summary=ValidationSummary(
                total_checks=total,
                passed_checks=passed_checks,
                failed_checks=failed_checks,
                total_issues=len(all_issues),
                critical_issues=critical,
                warnings=warnings,
            ),
            recommendations=recommendations,
            rollback_recommended=critical > 0
            or failed_checks > total * ROLLBACK_FAILED_CHECK_RATIO,
        )


def _since(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def _missing_flag(key: str) -> ConsistencyIssue:
    return ConsistencyIssue(
        IssueType.MISSING_FLAG,
        RiskLevel.HIGH,
        f"Flag '{key}' is used in code but does not exist remotely",
        "Create the flag remotely or remove references from code",
    )


def _key_mismatch(expected: str, actual: str) -> ConsistencyIssue:
    return ConsistencyIssue(
        IssueType.DATA_CORRUPTION,
        RiskLevel.CRITICAL,
        f"Flag key mismatch: expected '{expected}', got '{actual}'",
        "Investigate the flag service client; returned data does not match the request",
    )


def _deep_skipped(key: str, detail: str) -> ConsistencyIssue:
    return ConsistencyIssue(
        IssueType.CONFIGURATION_DRIFT,
        RiskLevel.LOW,
        f"Deep check skipped for flag '{key}': {detail}",
    )


def _reference_issues(key: str, flag: Optional[Flag], references: int) -> list[ConsistencyIssue]:
    issues: list[ConsistencyIssue] = []
    if references and flag is None:
        issues.append(_missing_flag(key))
    if flag is not None and not references and not flag.archived:
        issues.append(
            ConsistencyIssue(
                IssueType.ORPHANED_FLAG,
                RiskLevel.MEDIUM,
                f"Flag '{key}' exists remotely but has no references in code",
                "Consider archiving this flag or verify code analysis accuracy",
            )
        )
    if flag is not None and flag.archived and references:
        issues.append(
            ConsistencyIssue(
                IssueType.STATUS_MISMATCH,
                RiskLevel.HIGH,
                f"Flag '{key}' is archived but still referenced {references} times in code",
                "Unarchive the flag or remove code references",
            )
        )
    return issues


def _flag_consistency(key: str, flag: Optional[Flag], used: bool) -> FlagConsistencyResult:
    issues = _reference_issues(key, flag, 1 if used else 0)
    exists = flag is not None
    return FlagConsistencyResult(
        flag_key=key,
        is_consistent=not has_blocking(issues),
        exists_remotely=exists,
        used_in_code=used,
        status_aligned=not exists or not used or not flag.archived,  # type: ignore[union-attr]
        issues=issues,
    )
