"""Public controller exports for flagsync."""

from __future__ import annotations

from .optimizely_controller import OptimizelyController, build_consistency_validation

__all__ = ["OptimizelyController", "build_consistency_validation"]
