import unittest

from flagsync.plan import OperationType, RiskLevel, SyncOperation, ValidationCheck


class TestSyncOperation(unittest.TestCase):
    def test_coerces_enums(self) -> None:
        op = SyncOperation(
            op_id="o1",
            type="archive",
            flag_key="a",
            risk_level="medium",
            reason="unused",
        )
        self.assertIs(op.type, OperationType.ARCHIVE)
        self.assertIs(op.risk_level, RiskLevel.MEDIUM)
        self.assertFalse(op.rollback_info.supported)
        self.assertEqual(op.validation_checks, [])

    def test_requires_flag_key(self) -> None:
        with self.assertRaises(ValueError):
            SyncOperation(
                op_id="o1",
                type=OperationType.ARCHIVE,
                flag_key="  ",
                risk_level=RiskLevel.LOW,
                reason="x",
            )

    def test_check_lookup(self) -> None:
        check = ValidationCheck("code_usage_check", "usage")
        op = SyncOperation(
            op_id="o1",
            type=OperationType.ENABLE,
            flag_key="b",
            risk_level=RiskLevel.HIGH,
            reason="used",
            validation_checks=[check],
        )
        self.assertIs(op.check("code_usage_check"), check)
        self.assertIsNone(op.check("unknown"))


class TestValidationCheck(unittest.TestCase):
    def test_mark(self) -> None:
        check = ValidationCheck("c1", "desc")
        self.assertEqual(check.status, "pending")
        check.mark("failed", "broken")
        self.assertEqual((check.status, check.message), ("failed", "broken"))

    def test_mark_rejects_unknown_status(self) -> None:
        with self.assertRaises(ValueError):
            ValidationCheck("c1", "desc").mark("exploded")  # type: ignore[arg-type]


if __name__ == "__main__":
    unittest.main()
