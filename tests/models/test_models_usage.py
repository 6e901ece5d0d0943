import unittest
from datetime import datetime, timezone

from flagsync.models import FlagUsage, UsageReport, build_usage_report

DT = datetime(2025, 1, 1, 0, 0, 0, tzinfo=timezone.utc)


class TestUsageReport(unittest.TestCase):
    def setUp(self) -> None:
        self.report = UsageReport(
            flag_usages={
                "a": [],
                "b": [FlagUsage("src/app.py", 3), FlagUsage("src/app.py", 9)],
                "c": [FlagUsage("src/app.py", 4), FlagUsage("src/lib.py", 1)],
            },
            timestamp=DT,
        )

    def test_used_unused_and_unknown(self) -> None:
        self.assertTrue(self.report.is_unused("a"))
        self.assertFalse(self.report.is_used("a"))
        self.assertTrue(self.report.is_used("b"))
        # absent keys are unknown: neither used nor unused
        self.assertFalse(self.report.is_used("zzz"))
        self.assertFalse(self.report.is_unused("zzz"))
        self.assertEqual(self.report.used_flag_keys, ["b", "c"])
        self.assertEqual(self.report.unused_flag_keys, ["a"])
        self.assertEqual(self.report.missing_keys(["a", "zzz"]), ["zzz"])

    def test_usages_for_returns_copy(self) -> None:
        usages = self.report.usages_for("b")
        usages.clear()
        self.assertEqual(len(self.report.usages_for("b")), 2)
        self.assertEqual(self.report.usages_for("zzz"), [])

    def test_summary(self) -> None:
        summary = self.report.summary()
        self.assertEqual(summary["total_flags"], 3)
        self.assertEqual(summary["used_flags"], 2)
        self.assertEqual(summary["unused_flags"], 1)
        self.assertAlmostEqual(summary["usage_rate"], 200 / 3)
        self.assertEqual(summary["flags_by_file"], {"src/app.py": ["b", "c"], "src/lib.py": ["c"]})
        self.assertEqual(
            summary["most_used_flags"],
            [{"flag": "b", "count": 2}, {"flag": "c", "count": 2}],
        )

    def test_build_usage_report_contains_every_requested_key(self) -> None:
        report = build_usage_report(
            ["a", "b"],
            {"b": [FlagUsage("x.py", 1)], "code_only": [FlagUsage("y.py", 2)]},
            timestamp=DT,
        )
        self.assertEqual(list(report.flag_usages), ["a", "b", "code_only"])
        self.assertTrue(report.is_unused("a"))
        self.assertTrue(report.is_used("code_only"))
        self.assertEqual(report.timestamp, DT)


if __name__ == "__main__":
    unittest.main()
