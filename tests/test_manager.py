import json
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from fake_source import DT, FakeFlagSource, make_flag, make_report

from flagsync.audit import PLAN_BUILT, PLAN_EXECUTION_COMPLETED, AuditTrail, MemoryAuditSink
from flagsync.config import Settings, SyncOptions
from flagsync.controller import OptimizelyController
from flagsync.errors import AuthError, InvalidArgumentError, InvalidStateError
from flagsync.manager import FlagSyncManager
from flagsync.models import FlagUsage, Result, SyncExecutionResult
from flagsync.plan import OperationType, PlanStatus, RiskLevel, SyncPlan
from flagsync.policy import ApprovalWorkflow, OverridePolicy


class FakeUsageSource:
    def __init__(self, found: dict[str, list[FlagUsage]]) -> None:
        self.found = found
        self.calls: list[tuple] = []

    def scan(self, flag_keys, root):
        self.calls.append((list(flag_keys), root))
        return {k: v for k, v in self.found.items()}


class ClosableSource(FakeFlagSource):
    closed = False

    def close(self) -> None:
        self.closed = True


class RejectingSource(FakeFlagSource):
    def list_flags(self):
        return Result.fail(AuthError("token rejected", details={"status_code": 401}))


class TestFlagSyncManager(unittest.TestCase):
    def setUp(self) -> None:
        self.flags = [make_flag("a"), make_flag("b", archived=True), make_flag("c")]
        self.report = make_report({"a": 0, "b": 2, "c": 1})
        self.source = FakeFlagSource(self.flags)
        self.sink = MemoryAuditSink()

    def _manager(self, source=None, **options) -> FlagSyncManager:
        options.setdefault("risk_tolerance", RiskLevel.HIGH)
        return FlagSyncManager(
            source or self.source,
            options=SyncOptions(**options),
            audit=AuditTrail(self.sink, actor="tester"),
        )

    def test_sync_without_execute_returns_reviewable_plan(self) -> None:
        res = self._manager().sync(self.report)

        self.assertTrue(res.is_ok)
        plan = res.data
        self.assertIsInstance(plan, SyncPlan)
        self.assertIs(plan.status, PlanStatus.PENDING)
        self.assertEqual(
            [(op.flag_key, op.type) for op in plan.operations],
            [("a", OperationType.ARCHIVE), ("b", OperationType.ENABLE)],
        )
        self.assertEqual(self.source.mutation_calls, [])
        events = self.sink.of_type(PLAN_BUILT)
        self.assertEqual(len(events), 1)
        self.assertEqual(events[0].actor, "tester")
        self.assertEqual(events[0].details["total_operations"], 2)

    def test_sync_with_execute_applies_plan(self) -> None:
        res = self._manager().sync(self.report, execute=True)

        self.assertTrue(res.is_ok)
        self.assertIsInstance(res.data, SyncExecutionResult)
        self.assertEqual(res.data.status, "success")
        self.assertTrue(self.source.flags["a"].archived)
        self.assertFalse(self.source.flags["b"].archived)
        self.assertEqual(len(self.sink.of_type(PLAN_EXECUTION_COMPLETED)), 1)

    def test_sync_propagates_fetch_failure(self) -> None:
        res = self._manager(RejectingSource(self.flags)).sync(self.report, execute=True)

        self.assertIsInstance(res.error, AuthError)
        self.assertEqual(self.sink.events, [])

    def test_execute_rejects_plan_above_risk_tolerance(self) -> None:
        manager = self._manager(risk_tolerance=RiskLevel.MEDIUM)
        plan = manager.build_plan(self.flags, self.report).unwrap()

        res = manager.execute(plan)

        self.assertEqual(res.error.code, "RISK_TOLERANCE_EXCEEDED")
        self.assertEqual(self.source.mutation_calls, [])

    def test_build_plan_rejects_incomplete_usage_report(self) -> None:
        res = self._manager().build_plan(self.flags, make_report({"a": 0}))
        self.assertIsInstance(res.error, InvalidArgumentError)
        self.assertEqual(self.sink.of_type(PLAN_BUILT), [])

    def test_analyze_differences(self) -> None:
        report = make_report({"a": 0, "b": 2, "c": 1, "ghost": 1})
        analysis = self._manager().analyze_differences(self.flags, report).unwrap()

        self.assertEqual(analysis.total_remote_flags, 3)
        self.assertEqual(analysis.total_codebase_flags, 4)
        self.assertEqual(analysis.orphaned_flags, 1)
        self.assertEqual(analysis.archived_but_used, 1)
        self.assertEqual(analysis.missing_flags, 1)
        self.assertEqual(analysis.consistent_flags, 1)

    def test_validate_consistency_covers_remote_and_code_keys(self) -> None:
        report = make_report({"a": 0, "b": 2, "c": 1, "ghost": 1})
        consistency = self._manager().validate_consistency(self.flags, report).unwrap()

        self.assertEqual(consistency.total_flags, 4)
        by_key = {r.flag_key: r for r in consistency.flag_results}
        self.assertTrue(by_key["c"].is_consistent)
        self.assertFalse(by_key["b"].is_consistent)
        self.assertFalse(by_key["b"].status_aligned)
        self.assertFalse(by_key["ghost"].exists_remotely)
        self.assertFalse(by_key["ghost"].is_consistent)
        self.assertEqual(consistency.critical_issues, 2)

    def test_scan_usage_requires_a_usage_source(self) -> None:
        res = self._manager().scan_usage(["a"])
        self.assertIsInstance(res.error, InvalidStateError)

    def test_scan_usage_builds_report_with_every_key(self) -> None:
        usage = FakeUsageSource({"c": [FlagUsage("app.py", 3)], "extra": [FlagUsage("x.py", 1)]})
        manager = FlagSyncManager(
            self.source,
            usage_source=usage,
            clock=lambda: DT,
        )

        report = manager.scan_usage(["a", "c"], root="/repo").unwrap()

        self.assertEqual(usage.calls, [(["a", "c"], "/repo")])
        self.assertEqual(report.unused_flag_keys, ["a"])
        self.assertEqual(report.used_flag_keys, ["c", "extra"])
        self.assertEqual(report.timestamp, DT)

    def test_archive_unused_flags_through_manager(self) -> None:
        res = self._manager(dry_run=True).archive_unused_flags(self.flags, self.report)

        summary = res.unwrap()
        self.assertTrue(summary.dry_run)
        self.assertEqual(summary.attempted, 1)
        self.assertEqual(self.source.mutation_calls, [])

    def test_context_manager_closes_source(self) -> None:
        source = ClosableSource(self.flags)
        with FlagSyncManager(source) as manager:
            self.assertIs(manager.flag_source, source)
        self.assertTrue(source.closed)


class TestFlagSyncManagerFromSettings(unittest.TestCase):
    def setUp(self) -> None:
        patcher = mock.patch("flagsync.manager.configure_logging")
        self.configure_logging = patcher.start()
        self.addCleanup(patcher.stop)

    def test_from_settings_wires_controller_and_policies(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            (Path(tmp) / "overrides.json").write_text(
                json.dumps(
                    {
                        "version": "1.0",
                        "organizationId": "acme",
                        "overrideConfig": {
                            "exclusionLists": {
                                "permanentExclusions": [
                                    {
                                        "flagKey": "keep_*",
                                        "reason": "kill switch",
                                        "addedBy": "ops",
                                        "isPattern": True,
                                    }
                                ]
                            }
                        },
                    }
                ),
                encoding="utf-8",
            )
            settings = Settings(
                _env_file=None,
                optimizely_api_token="tok_1234567890",
                optimizely_project_id="42",
                dry_run=True,
                concurrency_limit=2,
                risk_tolerance="HIGH",
                github_actor="octocat",
            )

            with FlagSyncManager.from_settings(settings, root=tmp) as manager:
                self.assertIsInstance(manager.flag_source, OptimizelyController)
                self.assertTrue(manager.options.dry_run)
                self.assertEqual(manager.options.max_concurrent_operations, 2)
                self.assertIs(manager.options.risk_tolerance, RiskLevel.HIGH)
                self.assertEqual(manager.options.actor, "octocat")

                gate = manager._gate
                self.assertIsInstance(gate._exclusion_policy, OverridePolicy)
                self.assertTrue(gate._exclusion_policy.is_excluded("keep_checkout"))
                self.assertIsInstance(gate._approval_policy, ApprovalWorkflow)

    def test_from_settings_applies_log_level(self) -> None:
        settings = Settings(
            _env_file=None,
            optimizely_api_token="tok_1234567890",
            optimizely_project_id="42",
            log_level="debug",
        )
        with tempfile.TemporaryDirectory() as tmp:
            FlagSyncManager.from_settings(settings, root=tmp).close()

        self.configure_logging.assert_called_once_with("DEBUG")

    def test_from_settings_requires_credentials(self) -> None:
        settings = Settings(_env_file=None, optimizely_api_token=None, optimizely_project_id="1")
        with self.assertRaises(ValueError):
            FlagSyncManager.from_settings(settings)


if __name__ == "__main__":
    unittest.main()
