"""Flag classification and difference analysis."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional

import structlog

from flagsync.models import Flag, FlagUsage, UsageReport
from flagsync.util.time import days_since, now_utc

from .actions import OperationType, RiskLevel

logger = structlog.get_logger(__name__)

REASON_ARCHIVE = "Flag is not used in codebase and should be archived"
REASON_ENABLE = "Flag is used in code but archived remotely"
REASON_IN_USE = "Flag is properly used and configured"
REASON_CONSISTENT = "Flag is archived and unused"


@dataclass(slots=True, frozen=True)
class Classification:
    type: OperationType
    risk_level: RiskLevel
    reason: str


def classify(archived: bool, used_in_code: bool, is_unused: bool) -> Classification:
    """
    Map the three usage/state booleans to the required transition.

    Precedence (first match wins):
        1. unused and not archived -> ARCHIVE / MEDIUM
        2. used in code and archived -> ENABLE / HIGH
        3. used in code and not archived -> NO_ACTION / LOW
        4. otherwise (archived and unused) -> NO_ACTION / LOW
    """
    if is_unused and not archived:
        return Classification(OperationType.ARCHIVE, RiskLevel.MEDIUM, REASON_ARCHIVE)
    if used_in_code and archived:
        return Classification(OperationType.ENABLE, RiskLevel.HIGH, REASON_ENABLE)
    if used_in_code:
        return Classification(OperationType.NO_ACTION, RiskLevel.LOW, REASON_IN_USE)
    return Classification(OperationType.NO_ACTION, RiskLevel.LOW, REASON_CONSISTENT)


def archive_risk(
    updated_time: Optional[datetime],
    used_in_code: bool,
    now: Optional[datetime] = None,
) -> RiskLevel:
    """
    Recency-aware risk for an archive candidate.

    used in code -> CRITICAL; modified < 7 days ago -> HIGH;
    modified < 30 days ago -> MEDIUM; older -> LOW. Unknown time -> MEDIUM.
    """
    if used_in_code:
        return RiskLevel.CRITICAL
    if updated_time is None:
        return RiskLevel.MEDIUM

    age = days_since(updated_time, now)
    if age < 7:
        return RiskLevel.HIGH
    if age < 30:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


class DifferenceType(str, Enum):
    ORPHANED_IN_OPTIMIZELY = "orphaned_in_optimizely"
    ARCHIVED_BUT_USED = "archived_but_used"
    MISSING_IN_OPTIMIZELY = "missing_in_optimizely"


_RECOMMENDED_ACTIONS: dict[DifferenceType, str] = {
    DifferenceType.ORPHANED_IN_OPTIMIZELY: "archive_flag",
    DifferenceType.ARCHIVED_BUT_USED: "unarchive_flag",
    DifferenceType.MISSING_IN_OPTIMIZELY: "create_flag",
}


@dataclass(slots=True)
class FlagDifference:
    """A single mismatch between remote state and code usage."""

    flag_key: str
    type: DifferenceType
    severity: RiskLevel
    description: str
    risk_level: RiskLevel
    operation_type: OperationType
    flag: Optional[Flag] = None
    usages: list[FlagUsage] = field(default_factory=list)

    @property
    def recommended_action(self) -> str:
        return _RECOMMENDED_ACTIONS[self.type]


@dataclass(slots=True)
class FlagAnalysis:
    timestamp: datetime
    total_remote_flags: int
    total_codebase_flags: int
    differences: list[FlagDifference] = field(default_factory=list)
    consistent_flags: int = 0

    def count(self, diff_type: DifferenceType) -> int:
        return sum(1 for d in self.differences if d.type is diff_type)

    @property
    def orphaned_flags(self) -> int:
        return self.count(DifferenceType.ORPHANED_IN_OPTIMIZELY)

    @property
    def archived_but_used(self) -> int:
        return self.count(DifferenceType.ARCHIVED_BUT_USED)

    @property
    def missing_flags(self) -> int:
        return self.count(DifferenceType.MISSING_IN_OPTIMIZELY)

    def actionable(self) -> list[FlagDifference]:
        """Differences that translate into a remote operation."""
        return [d for d in self.differences if d.operation_type is not OperationType.NO_ACTION]


def analyze_differences(
    flags: Iterable[Flag],
    usage_report: UsageReport,
    *,
    recency_risk: bool = False,
    now: Optional[datetime] = None,
) -> FlagAnalysis:
    """
    Classify every remote flag and surface flags missing remotely.

    Args:
        flags: remote flag snapshot.
        usage_report: usage evidence for this run.
        recency_risk: score archive candidates with `archive_risk` instead of
            the flat classifier risk.
        now: reference time for recency scoring (tests).
    """
    flag_list = list(flags)
    current = now or now_utc()
    analysis = FlagAnalysis(
        timestamp=current,
        total_remote_flags=len(flag_list),
        total_codebase_flags=usage_report.total_flags,
    )

    for flag in flag_list:
        used = usage_report.is_used(flag.key)
        result = classify(flag.archived, used, usage_report.is_unused(flag.key))

        if result.type is OperationType.ARCHIVE:
            risk = (
                archive_risk(flag.updated_time, used, current)
                if recency_risk
                else result.risk_level
            )
            analysis.differences.append(
                FlagDifference(
                    flag_key=flag.key,
                    type=DifferenceType.ORPHANED_IN_OPTIMIZELY,
                    severity=RiskLevel.MEDIUM,
                    description=result.reason,
                    risk_level=risk,
                    operation_type=result.type,
                    flag=flag,
                )
            )
        elif result.type is OperationType.ENABLE:
            analysis.differences.append(
                FlagDifference(
                    flag_key=flag.key,
                    type=DifferenceType.ARCHIVED_BUT_USED,
                    severity=RiskLevel.HIGH,
                    description=result.reason,
                    risk_level=result.risk_level,
                    operation_type=result.type,
                    flag=flag,
                    usages=usage_report.usages_for(flag.key),
                )
            )
        else:
            analysis.consistent_flags += 1

    remote_keys = {flag.key for flag in flag_list}
    for key in usage_report.used_flag_keys:
        if key in remote_keys:
            continue
        analysis.differences.append(
            FlagDifference(
                flag_key=key,
                type=DifferenceType.MISSING_IN_OPTIMIZELY,
                severity=RiskLevel.HIGH,
                description=f"Flag '{key}' is used in code but does not exist remotely",
                risk_level=RiskLevel.HIGH,
                operation_type=OperationType.NO_ACTION,
                usages=usage_report.usages_for(key),
            )
        )

    logger.info(
        "flag_analysis_completed",
        total_differences=len(analysis.differences),
        orphaned_flags=analysis.orphaned_flags,
        archived_but_used=analysis.archived_but_used,
        missing_flags=analysis.missing_flags,
        consistent_flags=analysis.consistent_flags,
    )
    return analysis
