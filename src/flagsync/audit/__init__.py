"""Public audit exports for flagsync."""

from __future__ import annotations

from .events import (
    ARCHIVE_BATCH_COMPLETED,
    ARCHIVE_SKIPPED,
    EXECUTION_ABORTED,
    OPERATION_COMPLETED,
    PLAN_BUILT,
    PLAN_EXECUTION_COMPLETED,
    PLAN_EXECUTION_STARTED,
    ROLLBACK_ATTEMPTED,
    AuditEvent,
    AuditTrail,
    JsonLinesAuditSink,
    MemoryAuditSink,
)

__all__ = [
    "AuditEvent",
    "AuditTrail",
    "MemoryAuditSink",
    "JsonLinesAuditSink",
    "PLAN_BUILT",
    "PLAN_EXECUTION_STARTED",
    "PLAN_EXECUTION_COMPLETED",
    "OPERATION_COMPLETED",
    "ROLLBACK_ATTEMPTED",
    "EXECUTION_ABORTED",
    "ARCHIVE_SKIPPED",
    "ARCHIVE_BATCH_COMPLETED",
]
