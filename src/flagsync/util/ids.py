from __future__ import annotations

import uuid


def new_uuid() -> str:
    """Generate a UUID4 string."""
    return str(uuid.uuid4())


def new_plan_id() -> str:
    """Generate a new SyncPlan ID."""
    return new_uuid()


def new_op_id() -> str:
    """Generate a new SyncOperation ID."""
    return new_uuid()


def new_approval_id(flag_key: str) -> str:
    """Generate an approval request ID scoped to a flag key."""
    return f"approval-{flag_key}-{uuid.uuid4().hex[:12]}"
