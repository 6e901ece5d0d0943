"""Collaborator protocols consumed by the flagsync core."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Mapping, Optional, Protocol, Sequence, runtime_checkable

from flagsync.models import Flag, FlagConsistencyValidation, FlagUsage, Result

if TYPE_CHECKING:
    from flagsync.audit.events import AuditEvent


@runtime_checkable
class FlagSource(Protocol):
    """
    Remote flag service.

    Every method returns a Result and never raises for remote failures.
    `archive` / `unarchive` return a map of flag key -> updated Flag for the
    keys the service accepted.
    """

    def list_flags(self) -> Result[list[Flag]]: ...

    def get_flag(self, flag_key: str) -> Result[Flag]: ...

    def archive(self, flag_keys: Sequence[str]) -> Result[dict[str, Flag]]: ...

    def unarchive(self, flag_keys: Sequence[str]) -> Result[dict[str, Flag]]: ...

    def enable(self, flag_key: str) -> Result[Flag]: ...

    def disable(self, flag_key: str) -> Result[Flag]: ...

    def validate_consistency(self, flag_key: str) -> Result[FlagConsistencyValidation]: ...


@runtime_checkable
class UsageSource(Protocol):
    """Codebase scanner; the result contains every requested key."""

    def scan(self, flag_keys: Sequence[str], root: str) -> dict[str, list[FlagUsage]]: ...


@runtime_checkable
class ExclusionPolicy(Protocol):
    def is_excluded(self, flag_key: str) -> bool: ...


@dataclass(slots=True, frozen=True)
class ApprovalDecision:
    requires_approval: bool
    can_proceed: bool
    request_id: Optional[str] = None
    reason: Optional[str] = None


@runtime_checkable
class ApprovalPolicy(Protocol):
    def check_approval(
        self,
        flag_key: str,
        actor: str,
        context: Optional[Mapping[str, Any]] = None,
    ) -> ApprovalDecision: ...


@runtime_checkable
class AuditSink(Protocol):
    """Fire-and-forget event sink. The core guards against a raising sink."""

    def log(self, event: "AuditEvent") -> None: ...
