"""Per-operation validation checks (attached at build time, resolved at execution)."""

from __future__ import annotations

from typing import Optional

from flagsync.models import Flag

from .actions import OperationType
from .operation import SyncOperation, ValidationCheck

CODE_USAGE_CHECK = "code_usage_check"
FLAG_DEPENDENCIES_CHECK = "flag_dependencies_check"
ARCHIVE_SAFETY_CHECK = "archive_safety_check"

# Operation check -> validator check whose outcome resolves it.
CHECK_SOURCES: dict[str, str] = {
    CODE_USAGE_CHECK: "cross_reference_validation",
    FLAG_DEPENDENCIES_CHECK: "dependency_validation",
    ARCHIVE_SAFETY_CHECK: "flag_state_validation",
}


def default_validation_checks(op_type: OperationType) -> list[ValidationCheck]:
    """Build the default check list for an operation type."""
    checks = [
        ValidationCheck(CODE_USAGE_CHECK, "Verify code usage analysis is accurate"),
        ValidationCheck(FLAG_DEPENDENCIES_CHECK, "Check for targeting rules or dependencies"),
    ]
    if op_type is OperationType.ARCHIVE:
        checks.append(ValidationCheck(ARCHIVE_SAFETY_CHECK, "Ensure flag can be safely archived"))
    return checks


def mark_checks(operation: SyncOperation, outcomes: Optional[dict[str, bool]]) -> None:
    """
    Resolve pending checks of an operation in-place.

    Args:
        operation: the operation whose checks are updated.
        outcomes: validator check id -> passed. None means validation did not
            run, in which case pending checks are marked skipped.
    """
    for check in operation.validation_checks:
        if check.status != "pending":
            continue
        if outcomes is None:
            check.mark("skipped", "Pre-operation validation unavailable")
            continue

        source = CHECK_SOURCES.get(check.check_id)
        if source is None or source not in outcomes:
            check.mark("skipped")
        elif outcomes[source]:
            check.mark("passed")
        else:
            check.mark("failed", f"{source} reported blocking issues")


def snapshot_drift(snapshot: Optional[Flag], current: Optional[Flag]) -> Optional[str]:
    """
    Compare the plan-time snapshot with the live flag.

    Returns a description of the drift, or None if the flag is unchanged
    (or either side is unknown).
    """
    if snapshot is None or current is None:
        return None
    if snapshot.archived != current.archived:
        return (
            f"archived changed since plan was built "
            f"({snapshot.archived} -> {current.archived})"
        )
    if (
        snapshot.updated_time is not None
        and current.updated_time is not None
        and snapshot.updated_time != current.updated_time
    ):
        return "flag was modified since plan was built"
    return None
