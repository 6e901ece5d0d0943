"""Operation types and risk levels for flagsync plans."""

from __future__ import annotations

from enum import Enum
from typing import Iterable


class OperationType(str, Enum):
    """Supported flag transitions."""

    ARCHIVE = "archive"
    ENABLE = "enable"
    DISABLE = "disable"
    UPDATE = "update"
    NO_ACTION = "no_action"


class RiskLevel(str, Enum):
    """Risk tiers, totally ordered low < medium < high < critical."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


_RISK_ORDER: dict[RiskLevel, int] = {
    RiskLevel.LOW: 0,
    RiskLevel.MEDIUM: 1,
    RiskLevel.HIGH: 2,
    RiskLevel.CRITICAL: 3,
}

MUTATING_TYPES: set[OperationType] = {
    OperationType.ARCHIVE,
    OperationType.ENABLE,
    OperationType.DISABLE,
}


def risk_rank(level: RiskLevel) -> int:
    return _RISK_ORDER[RiskLevel(level)]


def max_risk(levels: Iterable[RiskLevel]) -> RiskLevel:
    """Ordinal maximum of risk levels; LOW for an empty iterable."""
    result = RiskLevel.LOW
    for level in levels:
        if risk_rank(level) > risk_rank(result):
            result = RiskLevel(level)
    return result


def risk_within(level: RiskLevel, tolerance: RiskLevel) -> bool:
    """Return True if level <= tolerance on the ordinal scale."""
    return risk_rank(level) <= risk_rank(tolerance)
