"""Public policy exports for flagsync."""

from __future__ import annotations

from .approval import ApprovalRequest, ApprovalResponse, ApprovalWorkflow, ResponseOutcome
from .overrides import (
    DEFAULT_OVERRIDE_PATHS,
    ApprovalRule,
    ExclusionRule,
    OverrideConfig,
    OverridePolicy,
    OverrideValidation,
    PatternExclusionRule,
    load_override_config,
    wildcard_match,
)

__all__ = [
    "DEFAULT_OVERRIDE_PATHS",
    "ExclusionRule",
    "PatternExclusionRule",
    "ApprovalRule",
    "OverrideConfig",
    "OverrideValidation",
    "OverridePolicy",
    "load_override_config",
    "wildcard_match",
    "ApprovalWorkflow",
    "ApprovalRequest",
    "ApprovalResponse",
    "ResponseOutcome",
]
