"""FlagSyncManager: orchestrates planning, consistency checks, execution and safe archiving."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Sequence, Union

import structlog

from flagsync.archive_gate import SafeArchiveGate
from flagsync.audit import PLAN_BUILT, AuditTrail
from flagsync.config import Settings, SyncOptions
from flagsync.controller import OptimizelyController
from flagsync.engine import ExecutionEngine
from flagsync.errors import (
    AuthError,
    FlagSyncError,
    InvalidArgumentError,
    InvalidStateError,
    PermissionError,
)
from flagsync.interfaces import ApprovalPolicy, AuditSink, ExclusionPolicy, FlagSource, UsageSource
from flagsync.models import (
    ArchiveSummary,
    Flag,
    Result,
    SyncExecutionResult,
    UsageReport,
    build_usage_report,
)
from flagsync.plan import FlagAnalysis, PlanBuilder, PlanOptions, SyncPlan, analyze_differences
from flagsync.policy import ApprovalWorkflow, OverridePolicy
from flagsync.util.logs import configure_logging
from flagsync.util.time import now_utc
from flagsync.validation import ConsistencyReport, ConsistencyValidator, ValidatorOptions

logger = structlog.get_logger(__name__)

_FATAL_ERRORS = (AuthError, PermissionError)


class FlagSyncManager:
    """High-level manager for safe flag sync: Plan -> Review -> Execute."""

    def __init__(
        self,
        flag_source: FlagSource,
        *,
        options: Optional[SyncOptions] = None,
        plan_options: Optional[PlanOptions] = None,
        validator_options: Optional[ValidatorOptions] = None,
        exclusion_policy: Optional[ExclusionPolicy] = None,
        approval_policy: Optional[ApprovalPolicy] = None,
        usage_source: Optional[UsageSource] = None,
        audit: Optional[AuditTrail] = None,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self._flag_source = flag_source
        self._options = options or SyncOptions()
        self._usage_source = usage_source
        self._audit = audit or AuditTrail(actor=self._options.actor)
        self._clock = clock

        self._builder = PlanBuilder(plan_options, clock=clock)
        self._validator = ConsistencyValidator(flag_source, validator_options, clock=clock)
        self._engine = ExecutionEngine(
            flag_source,
            self._validator,
            self._options,
            audit=self._audit,
            clock=clock,
        )
        self._gate = SafeArchiveGate(
            flag_source,
            self._options,
            exclusion_policy=exclusion_policy,
            approval_policy=approval_policy,
            audit=self._audit,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        *,
        root: Union[str, Path] = ".",
        usage_source: Optional[UsageSource] = None,
        audit_sink: Optional[AuditSink] = None,
    ) -> "FlagSyncManager":
        """
        Build a manager wired to the REST controller and override policies.

        Also configures logging at settings.log_level.

        Raises:
            ValueError: if credentials are missing or malformed.
            NotFoundError / InvalidArgumentError: if the override file is
                missing (explicit path) or invalid.
        """
        settings = settings or Settings()
        configure_logging(settings.log_level)
        controller = OptimizelyController(
            settings.to_credentials(),
            base_url=settings.optimizely_base_url,
            max_rps=settings.api_rate_limit,
            timeout_sec=settings.api_timeout,
            max_retries=settings.max_retries,
        )
        overrides = OverridePolicy.from_file(settings.overrides_path, root=root)
        options = settings.to_sync_options()
        return cls(
            controller,
            options=options,
            validator_options=settings.to_validator_options(),
            exclusion_policy=overrides,
            approval_policy=ApprovalWorkflow(overrides.requires_approval),
            usage_source=usage_source,
            audit=AuditTrail(audit_sink, actor=options.actor),
        )

    @property
    def options(self) -> SyncOptions:
        return self._options

    @property
    def flag_source(self) -> FlagSource:
        return self._flag_source

    def close(self) -> None:
        close = getattr(self._flag_source, "close", None)
        if callable(close):
            close()

    def __enter__(self) -> "FlagSyncManager":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ----------------------------
    # Inputs
    # ----------------------------
    def fetch_flags(self) -> Result[list[Flag]]:
        """Fetch the full remote flag list."""
        result = self._flag_source.list_flags()
        if not result.is_ok:
            _log_failure("fetch_flags", result.error)
        return result

    def scan_usage(
        self,
        flag_keys: Sequence[str],
        root: Union[str, Path] = ".",
    ) -> Result[UsageReport]:
        """Scan the codebase under root for flag_keys with the configured UsageSource."""
        if self._usage_source is None:
            return Result.fail(InvalidStateError("No usage source configured"))
        try:
            found = self._usage_source.scan(list(flag_keys), str(root))
        except FlagSyncError as exc:
            _log_failure("scan_usage", exc)
            return Result.fail(exc)
        return Result.ok(build_usage_report(flag_keys, found, timestamp=self._clock()))

    # ----------------------------
    # Core operations
    # ----------------------------
    def analyze_differences(
        self,
        flags: Sequence[Flag],
        usage_report: UsageReport,
    ) -> Result[FlagAnalysis]:
        if flags is None or usage_report is None:
            return Result.fail(InvalidArgumentError("flags and usage_report are required"))
        return Result.ok(
            analyze_differences(
                flags,
                usage_report,
                recency_risk=self._builder.options.recency_risk,
                now=self._clock(),
            )
        )

    def build_plan(self, flags: Sequence[Flag], usage_report: UsageReport) -> Result[SyncPlan]:
        """Build a reviewable SyncPlan (no remote calls)."""
        result = self._builder.build_plan(flags, usage_report)
        if result.is_ok:
            plan = result.data
            self._audit.emit(
                PLAN_BUILT,
                f"Built plan {plan.plan_id} with {len(plan.operations)} operations",
                plan_id=plan.plan_id,
                total_operations=len(plan.operations),
                overall_risk=plan.overall_risk.value,
                is_valid=plan.is_valid,
            )
        return result

    def validate_consistency(
        self,
        flags: Sequence[Flag],
        usage_report: UsageReport,
    ) -> Result[ConsistencyReport]:
        """Standalone report over every remote flag and every key found in code."""
        if flags is None or usage_report is None:
            return Result.fail(InvalidArgumentError("flags and usage_report are required"))
        keys = list(dict.fromkeys([f.key for f in flags] + list(usage_report.flag_usages)))
        return self._validator.generate_consistency_report(keys, flags, usage_report)

    def execute(self, plan: SyncPlan) -> Result[SyncExecutionResult]:
        result = self._engine.execute(plan)
        if not result.is_ok:
            _log_failure("execute", result.error)
        return result

    def archive_unused_flags(
        self,
        flags: Sequence[Flag],
        usage_report: UsageReport,
    ) -> Result[ArchiveSummary]:
        result = self._gate.archive_unused_flags(flags, usage_report)
        if not result.is_ok:
            _log_failure("archive_unused_flags", result.error)
        return result

    def sync(
        self,
        usage_report: UsageReport,
        *,
        execute: bool = False,
    ) -> Result[Union[SyncPlan, SyncExecutionResult]]:
        """
        Convenience API.

        - execute=False: fetch flags, build and return the SyncPlan
        - execute=True: fetch flags, build, execute and return the SyncExecutionResult
        """
        flags = self.fetch_flags()
        if not flags.is_ok:
            return Result.fail(flags.error)

        plan = self.build_plan(flags.data, usage_report)
        if not plan.is_ok or not execute:
            return plan
        return self.execute(plan.data)


def _log_failure(operation: str, error: FlagSyncError) -> None:
    if isinstance(error, _FATAL_ERRORS):
        logger.error(
            "fatal_remote_error", operation=operation, code=error.code, error=error.message
        )
    else:
        logger.warning(
            "operation_returned_error", operation=operation, code=error.code, error=error.message
        )
