"""Public validation exports for flagsync."""

from __future__ import annotations

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
)
from .validator import ConsistencyValidator, ValidatorOptions

__all__ = [
    "ConsistencyValidator",
    "ValidatorOptions",
    "IssueType",
    "ConsistencyIssue",
    "CheckResult",
    "ValidationSummary",
    "ValidationReport",
    "CrossReferenceResult",
    "DataIntegrityResult",
    "FlagConsistencyResult",
    "ConsistencyReport",
]
