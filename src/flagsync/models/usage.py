"""Usage evidence produced by the codebase scanner."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Mapping, Optional

from flagsync.util.time import now_utc


@dataclass(slots=True, frozen=True)
class FlagUsage:
    """One textual reference to a flag key in source code."""

    file: str
    line: int
    context: str = ""


@dataclass(slots=True)
class UsageReport:
    """
    Usage evidence for one run.

    Every flag key known to the run (remote or found in code) is a key of
    `flag_usages`; an empty list means "unused", absence means "unknown".
    """

    flag_usages: dict[str, list[FlagUsage]]
    timestamp: datetime = field(default_factory=now_utc)

    def has_key(self, flag_key: str) -> bool:
        return flag_key in self.flag_usages

    def usages_for(self, flag_key: str) -> list[FlagUsage]:
        return list(self.flag_usages.get(flag_key, []))

    def is_used(self, flag_key: str) -> bool:
        return bool(self.flag_usages.get(flag_key))

    def is_unused(self, flag_key: str) -> bool:
        return flag_key in self.flag_usages and not self.flag_usages[flag_key]

    @property
    def used_flag_keys(self) -> list[str]:
        return [k for k, usages in self.flag_usages.items() if usages]

    @property
    def unused_flag_keys(self) -> list[str]:
        return [k for k, usages in self.flag_usages.items() if not usages]

    @property
    def total_flags(self) -> int:
        return len(self.flag_usages)

    def missing_keys(self, flag_keys: Iterable[str]) -> list[str]:
        """Return the keys in flag_keys that have no entry at all."""
        return [k for k in flag_keys if k not in self.flag_usages]

    def summary(self, top: int = 10) -> dict[str, object]:
        """Usage statistics: usage rate, flags by file, most used flags."""
        flags_by_file: dict[str, list[str]] = {}
        for key, usages in self.flag_usages.items():
            for usage in usages:
                keys = flags_by_file.setdefault(usage.file, [])
                if key not in keys:
                    keys.append(key)

        counts = sorted(
            ((key, len(usages)) for key, usages in self.flag_usages.items()),
            key=lambda item: (-item[1], item[0]),
        )
        total = self.total_flags
        used = len(self.used_flag_keys)
        return {
            "total_flags": total,
            "used_flags": used,
            "unused_flags": total - used,
            "usage_rate": (used / total * 100.0) if total else 0.0,
            "flags_by_file": flags_by_file,
            "most_used_flags": [
                {"flag": key, "count": count} for key, count in counts[:top] if count > 0
            ],
        }


def build_usage_report(
    flag_keys: Iterable[str],
    usages: Mapping[str, Iterable[FlagUsage]],
    *,
    timestamp: Optional[datetime] = None,
) -> UsageReport:
    """
    Build a UsageReport that contains every requested key.

    Keys present in `usages` but not in `flag_keys` (flags found only in code)
    are kept as well.
    """
    flag_usages: dict[str, list[FlagUsage]] = {key: [] for key in flag_keys}
    for key, found in usages.items():
        flag_usages.setdefault(key, []).extend(found)

    return UsageReport(
        flag_usages=flag_usages,
        timestamp=timestamp or now_utc(),
    )
