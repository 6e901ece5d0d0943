import unittest
from datetime import datetime, timedelta, timezone

from flagsync.errors import InvalidArgumentError
from flagsync.models import Flag, FlagUsage, UsageReport
from flagsync.plan import (
    OperationType,
    PlanBuilder,
    PlanOptions,
    PlanStatus,
    RiskLevel,
    RollbackInfo,
    SyncOperation,
)

NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)


def _report(used: dict[str, int]) -> UsageReport:
    return UsageReport(
        flag_usages={k: [FlagUsage("app.py", i + 1) for i in range(n)] for k, n in used.items()},
        timestamp=NOW,
    )


def _operation(
    key: str,
    risk: RiskLevel,
    op_type: OperationType = OperationType.ARCHIVE,
    *,
    rollback: bool = True,
) -> SyncOperation:
    return SyncOperation(
        op_id=f"op-{key}",
        type=op_type,
        flag_key=key,
        risk_level=risk,
        reason="test",
        rollback_info=RollbackInfo(rollback),
    )


class TestPlanBuilder(unittest.TestCase):
    def setUp(self) -> None:
        self.builder = PlanBuilder(clock=lambda: NOW)

    def test_unused_unarchived_flag_is_archived(self) -> None:
        plan = self.builder.build_plan([Flag(key="a")], _report({"a": 0})).unwrap()

        self.assertEqual(len(plan.operations), 1)
        op = plan.operations[0]
        self.assertEqual(op.flag_key, "a")
        self.assertIs(op.type, OperationType.ARCHIVE)
        self.assertIs(op.risk_level, RiskLevel.MEDIUM)
        self.assertIs(plan.overall_risk, RiskLevel.MEDIUM)
        self.assertIs(plan.status, PlanStatus.PENDING)
        self.assertEqual(plan.created_at, NOW)
        self.assertTrue(op.rollback_info.supported)
        self.assertFalse(op.rollback_info.previous_state.archived)
        self.assertEqual(
            op.rollback_info.instructions, "Unarchive flag a to restore previous state"
        )
        self.assertEqual(len(op.validation_checks), 3)
        self.assertEqual(op.context.current_flag.key, "a")

    def test_archived_but_used_flag_is_enabled(self) -> None:
        plan = self.builder.build_plan(
            [Flag(key="b", archived=True)], _report({"b": 1})
        ).unwrap()

        self.assertEqual(
            [(op.flag_key, op.type) for op in plan.operations], [("b", OperationType.ENABLE)]
        )
        self.assertIs(plan.operations[0].risk_level, RiskLevel.HIGH)
        self.assertEqual(len(plan.operations[0].context.usages), 1)
        self.assertIs(plan.overall_risk, RiskLevel.HIGH)
        self.assertEqual(plan.validation.risk_assessment.high_risk_operations, 1)

    def test_one_operation_per_actionable_flag_in_risk_order(self) -> None:
        flags = [
            Flag(key="b", archived=True),
            Flag(key="a"),
            Flag(key="active"),
            Flag(key="old", archived=True),
        ]
        plan = self.builder.build_plan(
            flags, _report({"a": 0, "b": 2, "active": 1, "old": 0})
        ).unwrap()

        self.assertEqual([op.flag_key for op in plan.operations], ["a", "b"])
        self.assertEqual(plan.summary.total_operations, 2)
        self.assertEqual(plan.summary.operations_by_type[OperationType.ARCHIVE], 1)
        self.assertEqual(plan.summary.operations_by_type[OperationType.ENABLE], 1)
        self.assertEqual(plan.summary.operations_by_risk[RiskLevel.HIGH], 1)
        self.assertAlmostEqual(plan.summary.estimated_duration_ms, 3900.0)
        self.assertEqual(plan.analysis.consistent_flags, 2)
        self.assertEqual(len({op.op_id for op in plan.operations}), 2)

    def test_input_order_kept_when_risk_ordering_disabled(self) -> None:
        builder = PlanBuilder(PlanOptions(order_by_risk=False), clock=lambda: NOW)
        flags = [Flag(key="b", archived=True), Flag(key="a")]
        plan = builder.build_plan(flags, _report({"a": 0, "b": 1})).unwrap()
        self.assertEqual([op.flag_key for op in plan.operations], ["b", "a"])

    def test_empty_inputs_give_empty_low_risk_plan(self) -> None:
        plan = self.builder.build_plan([], _report({})).unwrap()

        self.assertEqual(plan.operations, [])
        self.assertIs(plan.overall_risk, RiskLevel.LOW)
        self.assertTrue(plan.is_valid)
        self.assertEqual(len(plan.validation.info), 1)

    def test_input_errors_are_returned(self) -> None:
        cases = [
            (None, _report({})),
            ([Flag(key="a")], None),
            ([Flag(key="a"), Flag(key="a")], _report({"a": 0})),
            ([Flag(key="a"), Flag(key="b")], _report({"a": 0})),
        ]
        for flags, report in cases:
            with self.subTest(flags=flags):
                result = self.builder.build_plan(flags, report)
                self.assertIsInstance(result.error, InvalidArgumentError)

    def test_missing_usage_entries_are_listed(self) -> None:
        result = self.builder.build_plan([Flag(key="a"), Flag(key="b")], _report({"a": 0}))
        self.assertEqual(result.error.details["missing_keys"], ["b"])

    def test_max_operations_makes_plan_invalid(self) -> None:
        builder = PlanBuilder(PlanOptions(max_operations=1), clock=lambda: NOW)
        plan = builder.build_plan(
            [Flag(key="a"), Flag(key="b")], _report({"a": 0, "b": 0})
        ).unwrap()

        self.assertFalse(plan.is_valid)
        self.assertEqual(plan.validation.errors, ["Plan exceeds maximum of 1 operations (2)"])

    def test_recency_risk_option(self) -> None:
        builder = PlanBuilder(PlanOptions(recency_risk=True), clock=lambda: NOW)
        flags = [
            Flag(key="fresh", updated_time=NOW - timedelta(days=1)),
            Flag(key="stale", updated_time=NOW - timedelta(days=365)),
        ]
        plan = builder.build_plan(flags, _report({"fresh": 0, "stale": 0})).unwrap()

        risks = {op.flag_key: op.risk_level for op in plan.operations}
        self.assertEqual(risks, {"fresh": RiskLevel.HIGH, "stale": RiskLevel.LOW})
        self.assertEqual([op.flag_key for op in plan.operations], ["stale", "fresh"])

    def test_many_high_risk_and_archive_operations_warn(self) -> None:
        restored = [Flag(key=f"used_{i}", archived=True) for i in range(6)]
        stale = [Flag(key=f"stale_{i}") for i in range(51)]
        usage = {f.key: 1 for f in restored}
        usage.update({f.key: 0 for f in stale})

        plan = self.builder.build_plan(restored + stale, _report(usage)).unwrap()

        self.assertTrue(plan.is_valid)
        self.assertEqual(plan.validation.errors, [])
        self.assertEqual(
            plan.validation.warnings,
            [
                "Plan contains 6 high-risk operations",
                "Large number of archive operations (51). Consider smaller batches.",
            ],
        )

    def test_thresholds_are_exclusive(self) -> None:
        restored = [Flag(key=f"used_{i}", archived=True) for i in range(5)]
        stale = [Flag(key=f"stale_{i}") for i in range(50)]
        usage = {f.key: 1 for f in restored}
        usage.update({f.key: 0 for f in stale})

        plan = self.builder.build_plan(restored + stale, _report(usage)).unwrap()

        self.assertEqual(plan.validation.warnings, [])

    def test_critical_operation_needs_confirmation(self) -> None:
        ops = [_operation("risky", RiskLevel.CRITICAL)]

        validation = self.builder._validate(ops)

        self.assertFalse(validation.is_valid)
        self.assertEqual(validation.errors, ["Plan contains 1 critical risk operations"])
        self.assertIs(validation.risk_assessment.overall_risk, RiskLevel.CRITICAL)

    def test_critical_operation_with_confirmation_is_a_warning(self) -> None:
        builder = PlanBuilder(PlanOptions(require_confirmation=True), clock=lambda: NOW)

        validation = builder._validate([_operation("risky", RiskLevel.CRITICAL)])

        self.assertTrue(validation.is_valid)
        self.assertEqual(validation.errors, [])
        self.assertEqual(
            validation.warnings,
            ["Plan contains 1 critical risk operations (confirmation required before execution)"],
        )

    def test_operations_without_rollback_warn(self) -> None:
        op = _operation("tweak", RiskLevel.LOW, OperationType.UPDATE, rollback=False)

        validation = self.builder._validate([op])

        self.assertTrue(validation.is_valid)
        self.assertEqual(validation.warnings, ["1 operations do not support rollback"])

    def test_plan_options_validation(self) -> None:
        with self.assertRaises(ValueError):
            PlanOptions(max_operations=0)


if __name__ == "__main__":
    unittest.main()
