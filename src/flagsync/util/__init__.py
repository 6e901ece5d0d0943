from .ids import new_approval_id, new_op_id, new_plan_id, new_uuid
from .logs import configure_logging
from .time import days_since, elapsed_ms, normalize_dt, now_utc, parse_rfc3339, to_rfc3339

__all__ = [
    "new_uuid",
    "new_plan_id",
    "new_op_id",
    "new_approval_id",
    "configure_logging",
    "now_utc",
    "parse_rfc3339",
    "to_rfc3339",
    "normalize_dt",
    "days_since",
    "elapsed_ms",
]
