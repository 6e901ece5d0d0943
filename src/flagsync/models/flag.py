"""Data model for remote feature flags."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(slots=True)
class EnvironmentState:
    """Per-environment state of a flag as reported by the flag service."""

    key: str
    enabled: bool = False
    has_targeting_rules: bool = False
    status: Optional[str] = None
    name: Optional[str] = None
    priority: Optional[int] = None


@dataclass(slots=True)
class Flag:
    """
    Read-only snapshot of a remote flag, held for the duration of one run.

    Notes:
        - `key` is the unique, stable identifier used everywhere in flagsync.
        - `environments` may be empty when the list endpoint omits them.
    """

    key: str
    name: str = ""
    archived: bool = False
    environments: dict[str, EnvironmentState] = field(default_factory=dict)
    updated_time: Optional[datetime] = None
    description: Optional[str] = None
    url: Optional[str] = None

    def enabled_environments(self) -> list[str]:
        return [k for k, env in self.environments.items() if env.enabled]

    def targeted_environments(self) -> list[str]:
        return [k for k, env in self.environments.items() if env.has_targeting_rules]

    @property
    def is_enabled_anywhere(self) -> bool:
        return any(env.enabled for env in self.environments.values())

    @property
    def has_targeting_rules(self) -> bool:
        return any(env.has_targeting_rules for env in self.environments.values())


@dataclass(slots=True)
class FlagConsistencyValidation:
    """Live, cross-environment view of one flag (deep validation payload)."""

    flag_key: str
    is_consistent: bool
    environments: dict[str, EnvironmentState]
    inconsistencies: list[dict[str, object]] = field(default_factory=list)
    summary: dict[str, int] = field(default_factory=dict)

    @property
    def any_enabled(self) -> bool:
        return any(env.enabled for env in self.environments.values())

    @property
    def any_targeting_rules(self) -> bool:
        return any(env.has_targeting_rules for env in self.environments.values())
