"""Public auth exports for flagsync."""

from __future__ import annotations

from .credentials import ApiCredentials

__all__ = ["ApiCredentials"]
