import unittest
from datetime import datetime, timezone

from flagsync.plan import RiskLevel
from flagsync.validation import (
    CheckResult,
    ConsistencyIssue,
    IssueType,
    ValidationReport,
    ValidationSummary,
)


def _issue(severity: RiskLevel) -> ConsistencyIssue:
    return ConsistencyIssue(IssueType.CONFIGURATION_DRIFT, severity, "x")


class TestIssues(unittest.TestCase):
    def test_high_and_critical_are_blocking(self) -> None:
        self.assertFalse(_issue(RiskLevel.LOW).is_critical)
        self.assertFalse(_issue(RiskLevel.MEDIUM).is_critical)
        self.assertTrue(_issue(RiskLevel.HIGH).is_critical)
        self.assertTrue(_issue(RiskLevel.CRITICAL).is_critical)

    def test_check_result_passed(self) -> None:
        self.assertTrue(CheckResult("c", "d").passed)
        self.assertTrue(CheckResult("c", "d", issues=[_issue(RiskLevel.MEDIUM)]).passed)
        self.assertFalse(CheckResult("c", "d", issues=[_issue(RiskLevel.HIGH)]).passed)

    def test_report_helpers(self) -> None:
        ok = CheckResult("ok", "d", issues=[_issue(RiskLevel.LOW)])
        bad = CheckResult("bad", "d", issues=[_issue(RiskLevel.CRITICAL)])
        report = ValidationReport(
            timestamp=datetime(2025, 1, 1, tzinfo=timezone.utc),
            passed=False,
            validations=[ok, bad],
            summary=ValidationSummary(total_checks=2, passed_checks=1, failed_checks=1),
        )
        self.assertEqual(report.outcomes(), {"ok": True, "bad": False})
        self.assertEqual(len(report.issues()), 2)
        self.assertIs(report.find("bad"), bad)
        self.assertIsNone(report.find("missing"))


if __name__ == "__main__":
    unittest.main()
