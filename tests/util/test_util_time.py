import unittest
from datetime import datetime, timedelta, timezone

from flagsync.util.time import (
    days_since,
    elapsed_ms,
    normalize_dt,
    now_utc,
    parse_rfc3339,
    to_rfc3339,
)


class TestUtilTime(unittest.TestCase):
    def test_now_utc_is_tz_aware(self) -> None:
        dt = now_utc()
        self.assertIsNotNone(dt.tzinfo)
        self.assertEqual(dt.tzinfo, timezone.utc)

    def test_normalize_dt_rejects_naive(self) -> None:
        naive = datetime(2025, 1, 1, 12, 0, 0)
        with self.assertRaises(ValueError):
            normalize_dt(naive)

    def test_parse_rfc3339_z(self) -> None:
        dt = parse_rfc3339("2025-01-01T12:34:56Z")
        self.assertEqual(dt.tzinfo, timezone.utc)
        self.assertEqual(dt, datetime(2025, 1, 1, 12, 34, 56, tzinfo=timezone.utc))

    def test_parse_rfc3339_offset_converts_to_utc(self) -> None:
        dt = parse_rfc3339("2025-01-01T12:34:56+09:00")
        self.assertEqual(dt.tzinfo, timezone.utc)
        # 12:34:56 JST == 03:34:56 UTC
        self.assertEqual(dt, datetime(2025, 1, 1, 3, 34, 56, tzinfo=timezone.utc))

    def test_parse_rfc3339_rejects_garbage(self) -> None:
        with self.assertRaises(ValueError):
            parse_rfc3339("")
        with self.assertRaises(ValueError):
            parse_rfc3339("yesterday")

    def test_to_rfc3339_outputs_z(self) -> None:
        dt = datetime(2025, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
        self.assertEqual(to_rfc3339(dt), "2025-01-01T00:00:00.000Z")

    def test_days_since(self) -> None:
        start = datetime(2025, 1, 1, tzinfo=timezone.utc)
        self.assertEqual(days_since(start, start + timedelta(days=3, hours=12)), 3.5)

    def test_elapsed_ms(self) -> None:
        start = datetime(2025, 1, 1, tzinfo=timezone.utc)
        self.assertEqual(elapsed_ms(start, start + timedelta(seconds=1.25)), 1250)
