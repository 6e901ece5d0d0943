"""SafeArchiveGate: archive unused flags directly, behind live checks and policies."""

from __future__ import annotations

import time
from typing import Any, Callable, Optional, Sequence

import structlog

from flagsync.audit import ARCHIVE_BATCH_COMPLETED, ARCHIVE_SKIPPED, AuditTrail
from flagsync.config import SyncOptions
from flagsync.errors import FlagSyncError, InvalidArgumentError
from flagsync.interfaces import ApprovalPolicy, ExclusionPolicy, FlagSource
from flagsync.models import ArchiveSummary, Flag, Result, UsageReport
from flagsync.plan import build_batches
from flagsync.util.time import days_since

logger = structlog.get_logger(__name__)

NOT_FOUND = "flag_not_found_in_optimizely"
ALREADY_ARCHIVED = "already_archived"
ENABLED_SOMEWHERE = "enabled_in_some_environment"
TARGETING_RULES = "targeting_rules_present"
MANUAL_EXCLUSION = "manual_exclusion"
APPROVAL_REQUIRED = "approval_required"
CONSISTENCY_CHECK_FAILED = "consistency_check_failed"
ARCHIVE_FAILED = "archive_failed"


class SafeArchiveGate:
    """
    Archives flags a usage report marks unused.

    Every unused key must survive, in order: remote existence, not already
    archived, a live per-environment check (not enabled, no targeting rules),
    the exclusion policy and the approval policy. Each skip records a
    machine-readable reason.
    """

    def __init__(
        self,
        flag_source: FlagSource,
        options: Optional[SyncOptions] = None,
        *,
        exclusion_policy: Optional[ExclusionPolicy] = None,
        approval_policy: Optional[ApprovalPolicy] = None,
        audit: Optional[AuditTrail] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._flag_source = flag_source
        self._options = options or SyncOptions()
        self._exclusion_policy = exclusion_policy
        self._approval_policy = approval_policy
        self._audit = audit or AuditTrail()
        self._sleep = sleep

    def archive_unused_flags(
        self,
        flags: Sequence[Flag],
        usage_report: UsageReport,
    ) -> Result[ArchiveSummary]:
        try:
            return Result.ok(self._archive_unused(flags, usage_report))
        except FlagSyncError as exc:
            logger.error("archive_unused_flags_failed", code=exc.code, error=exc.message)
            return Result.fail(exc)

    # ----------------------------
    # Internals
    # ----------------------------
    def _archive_unused(self, flags: Sequence[Flag], usage_report: UsageReport) -> ArchiveSummary:
        if flags is None or usage_report is None:
            raise InvalidArgumentError("flags and usage_report are required")

        dry_run = self._options.dry_run
        flag_map = {flag.key: flag for flag in flags}
        summary = ArchiveSummary(dry_run=dry_run)

        candidates: list[str] = []
        for key in usage_report.unused_flag_keys:
            reason = self._skip_reason(key, flag_map.get(key))
            if reason is None:
                candidates.append(key)
            else:
                self._skip(summary, key, reason)

        logger.info(
            "archive_candidates_selected",
            unused=len(usage_report.unused_flag_keys),
            candidates=len(candidates),
            skipped=len(summary.skipped_reasons),
            dry_run=dry_run,
        )

        batches = build_batches(candidates, self._options.max_concurrent_operations)
        for index, batch in enumerate(batches):
            summary.attempted += len(batch)
            if dry_run:
                logger.info("archive_batch_dry_run", flag_keys=batch)
                continue

            archived = self._archive_batch(batch, summary)
            summary.archived += archived
            self._audit.emit(
                ARCHIVE_BATCH_COMPLETED,
                f"Archived {archived} of {len(batch)} flags",
                flag_keys=list(batch),
                archived=archived,
            )
            if index < len(batches) - 1 and self._options.archive_batch_delay_ms > 0:
                self._sleep(self._options.archive_batch_delay_ms / 1000)

        summary.skipped = len(summary.skipped_reasons)
        logger.info(
            "archive_unused_flags_completed",
            attempted=summary.attempted,
            archived=summary.archived,
            skipped=summary.skipped,
            dry_run=dry_run,
        )
        return summary

    def _skip_reason(self, key: str, flag: Optional[Flag]) -> Optional[str]:
        """Return the first reason key must not be archived, or None."""
        if flag is None:
            return NOT_FOUND
        if flag.archived:
            return ALREADY_ARCHIVED

        live = self._flag_source.validate_consistency(key)
        if not live.is_ok:
            return f"{CONSISTENCY_CHECK_FAILED}: {live.error.message}"
        if live.data.any_enabled:
            return ENABLED_SOMEWHERE
        if live.data.any_targeting_rules:
            return TARGETING_RULES

        if self._exclusion_policy is not None and self._exclusion_policy.is_excluded(key):
            return MANUAL_EXCLUSION

        if self._approval_policy is not None:
            decision = self._approval_policy.check_approval(
                key, self._options.actor, _approval_context(flag)
            )
            if decision.requires_approval and not decision.can_proceed:
                return APPROVAL_REQUIRED
        return None

    def _archive_batch(self, batch: list[str], summary: ArchiveSummary) -> int:
        """Bulk-archive batch, falling back to one call per key if the bulk call fails."""
        bulk = self._flag_source.archive(batch)
        if bulk.is_ok:
            for key in batch:
                if key not in bulk.data:
                    self._skip(summary, key, f"{ARCHIVE_FAILED}: not confirmed by remote service")
            return sum(1 for key in batch if key in bulk.data)

        logger.warning(
            "bulk_archive_failed",
            flag_keys=batch,
            error=bulk.error.message,
        )
        archived = 0
        for key in batch:
            single = self._flag_source.archive([key])
            if single.is_ok and key in single.data:
                archived += 1
            elif single.is_ok:
                self._skip(summary, key, f"{ARCHIVE_FAILED}: not confirmed by remote service")
            else:
                self._skip(summary, key, f"{ARCHIVE_FAILED}: {single.error.message}")
        return archived

    def _skip(self, summary: ArchiveSummary, key: str, reason: str) -> None:
        summary.skipped_reasons[key] = reason
        logger.info("archive_skipped", flag_key=key, reason=reason)
        self._audit.emit(
            ARCHIVE_SKIPPED, f"Skipped archiving flag {key}", flag_key=key, reason=reason
        )


def _approval_context(flag: Flag) -> dict[str, Any]:
    context: dict[str, Any] = {"reason": "Flag is not used in codebase"}
    if flag.updated_time is not None:
        context["flag_age_days"] = int(days_since(flag.updated_time))
    return context
