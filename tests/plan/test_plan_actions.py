import unittest

from flagsync.plan import OperationType, RiskLevel, max_risk, risk_rank, risk_within


class TestActions(unittest.TestCase):
    def test_operation_type_values(self) -> None:
        self.assertEqual(OperationType("archive"), OperationType.ARCHIVE)
        self.assertEqual(OperationType.NO_ACTION.value, "no_action")

    def test_risk_is_ordinal(self) -> None:
        ranks = [risk_rank(level) for level in RiskLevel]
        self.assertEqual(ranks, sorted(ranks))
        self.assertEqual(risk_rank("high"), 2)

    def test_max_risk(self) -> None:
        self.assertIs(max_risk([]), RiskLevel.LOW)
        self.assertIs(max_risk([RiskLevel.MEDIUM, RiskLevel.LOW]), RiskLevel.MEDIUM)
        self.assertIs(
            max_risk([RiskLevel.HIGH, RiskLevel.CRITICAL, RiskLevel.LOW]), RiskLevel.CRITICAL
        )

    def test_risk_within(self) -> None:
        self.assertTrue(risk_within(RiskLevel.MEDIUM, RiskLevel.MEDIUM))
        self.assertTrue(risk_within(RiskLevel.LOW, RiskLevel.HIGH))
        self.assertFalse(risk_within(RiskLevel.HIGH, RiskLevel.MEDIUM))


if __name__ == "__main__":
    unittest.main()
