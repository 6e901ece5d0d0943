"""Audit events, sinks, and the guarded AuditTrail used by the core."""

from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional, Union

import structlog

from flagsync.interfaces import AuditSink
from flagsync.util.time import now_utc, to_rfc3339

logger = structlog.get_logger(__name__)

PLAN_BUILT = "plan_built"
PLAN_EXECUTION_STARTED = "plan_execution_started"
PLAN_EXECUTION_COMPLETED = "plan_execution_completed"
OPERATION_COMPLETED = "operation_completed"
ROLLBACK_ATTEMPTED = "rollback_attempted"
EXECUTION_ABORTED = "execution_aborted"
ARCHIVE_SKIPPED = "archive_skipped"
ARCHIVE_BATCH_COMPLETED = "archive_batch_completed"


@dataclass(slots=True)
class AuditEvent:
    """One structured audit record (timestamp, type, message, details)."""

    type: str
    message: str
    timestamp: datetime = field(default_factory=now_utc)
    actor: Optional[str] = None
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": to_rfc3339(self.timestamp),
            "type": self.type,
            "message": self.message,
            "actor": self.actor,
            "details": self.details,
        }


class MemoryAuditSink:
    """Keeps events in memory (tests, dry runs, PR summaries)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._events: list[AuditEvent] = []

    def log(self, event: AuditEvent) -> None:
        with self._lock:
            self._events.append(event)

    @property
    def events(self) -> list[AuditEvent]:
        with self._lock:
            return list(self._events)

    def of_type(self, event_type: str) -> list[AuditEvent]:
        return [e for e in self.events if e.type == event_type]


class JsonLinesAuditSink:
    """Appends one JSON object per event to a file."""

    def __init__(self, path: Union[str, Path]) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def log(self, event: AuditEvent) -> None:
        line = json.dumps(event.to_dict(), default=str, sort_keys=True)
        with self._lock:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")


class AuditTrail:
    """
    Emits events to an AuditSink.

    A raising sink never breaks the run: the failure is logged and dropped.
    """

    def __init__(
        self,
        sink: Optional[AuditSink] = None,
        *,
        actor: Optional[str] = None,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self._sink = sink
        self._actor = actor
        self._clock = clock

    @property
    def sink(self) -> Optional[AuditSink]:
        return self._sink

    def emit(self, event_type: str, message: str, **details: Any) -> None:
        if self._sink is None:
            return
        event = AuditEvent(
            type=event_type,
            message=message,
            timestamp=self._clock(),
            actor=self._actor,
            details=details,
        )
        try:
            self._sink.log(event)
        except Exception as exc:  # noqa: BLE001
            logger.warning("audit_sink_failed", event_type=event_type, error=str(exc))
