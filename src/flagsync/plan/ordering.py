"""Execution ordering rules for SyncPlan operations."""

from __future__ import annotations

from typing import Sequence, TypeVar

from .actions import risk_rank
from .operation import SyncOperation

T = TypeVar("T")


def order_by_risk(operations: Sequence[SyncOperation]) -> list[SyncOperation]:
    """
    Order operations for execution.

    Rules:
        - Lower risk first (low -> critical).
        - Stable: operations with equal risk keep their input order.
    """
    return sorted(operations, key=lambda op: risk_rank(op.risk_level))


def build_batches(items: Sequence[T], batch_size: int) -> list[list[T]]:
    """Split items into consecutive batches of at most batch_size, preserving order."""
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")
    return [list(items[i : i + batch_size]) for i in range(0, len(items), batch_size)]
