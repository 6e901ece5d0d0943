"""Consistency issues and validation report models."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Optional

from flagsync.plan.actions import RiskLevel


class IssueType(str, Enum):
    MISSING_FLAG = "missing_flag"
    ORPHANED_FLAG = "orphaned_flag"
    STATUS_MISMATCH = "status_mismatch"
    DATA_CORRUPTION = "data_corruption"
    CONFIGURATION_DRIFT = "configuration_drift"


_CRITICAL_SEVERITIES = (RiskLevel.HIGH, RiskLevel.CRITICAL)


@dataclass(slots=True)
class ConsistencyIssue:
    type: IssueType
    severity: RiskLevel
    message: str
    resolution: Optional[str] = None

    @property
    def is_critical(self) -> bool:
        """High and critical severities both block (count as critical issues)."""
        return self.severity in _CRITICAL_SEVERITIES


def has_blocking(issues: Iterable[ConsistencyIssue]) -> bool:
    return any(issue.is_critical for issue in issues)


@dataclass(slots=True)
class CheckResult:
    """Outcome of one named validation check."""

    check_id: str
    description: str
    issues: list[ConsistencyIssue] = field(default_factory=list)
    duration_ms: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return not has_blocking(self.issues)


@dataclass(slots=True)
class ValidationSummary:
    total_checks: int = 0
    passed_checks: int = 0
    failed_checks: int = 0
    total_issues: int = 0
    critical_issues: int = 0
    warnings: int = 0


@dataclass(slots=True)
class ValidationReport:
    timestamp: datetime
    passed: bool
    validations: list[CheckResult]
    summary: ValidationSummary
    recommendations: list[str] = field(default_factory=list)
    rollback_recommended: bool = False

    def outcomes(self) -> dict[str, bool]:
        """check_id -> passed, for resolving operation checks."""
        return {v.check_id: v.passed for v in self.validations}

    def issues(self) -> list[ConsistencyIssue]:
        return [issue for v in self.validations for issue in v.issues]

    def find(self, check_id: str) -> Optional[CheckResult]:
        for v in self.validations:
            if v.check_id == check_id:
                return v
        return None


@dataclass(slots=True)
class CrossReferenceResult:
    flag_key: str
    references_valid: bool
    remote_exists: bool
    codebase_references: int
    issues: list[ConsistencyIssue] = field(default_factory=list)


@dataclass(slots=True)
class DataIntegrityResult:
    flag_key: str
    integrity_maintained: bool
    timestamp: datetime
    issues: list[ConsistencyIssue] = field(default_factory=list)


@dataclass(slots=True)
class FlagConsistencyResult:
    flag_key: str
    is_consistent: bool
    exists_remotely: bool
    used_in_code: bool
    status_aligned: bool
    issues: list[ConsistencyIssue] = field(default_factory=list)


@dataclass(slots=True)
class ConsistencyReport:
    """Standalone report over a set of flag keys."""

    timestamp: datetime
    total_flags: int
    consistent_flags: int
    inconsistent_flags: int
    critical_issues: int
    warnings: int
    flag_results: list[FlagConsistencyResult] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
