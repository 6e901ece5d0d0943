import unittest
from datetime import datetime, timedelta, timezone

from flagsync.errors import ApiError
from flagsync.policy import ApprovalRule, ApprovalWorkflow

NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)


class Clock:
    def __init__(self) -> None:
        self.now = NOW

    def __call__(self) -> datetime:
        return self.now


class TestApprovalWorkflow(unittest.TestCase):
    def setUp(self) -> None:
        self.rules = {
            "payments_any": ApprovalRule(
                "payments_any", approvers=["@Alice", "bob"], reason="owners sign off"
            ),
            "payments_all": ApprovalRule(
                "payments_all", approvers=["alice", "bob"], requires_all_approvers=True
            ),
        }
        self.clock = Clock()
        self.workflow = ApprovalWorkflow(self.rules.get, clock=self.clock)

    def test_flag_without_rule_proceeds(self) -> None:
        decision = self.workflow.check_approval("checkout", "ci")
        self.assertFalse(decision.requires_approval)
        self.assertTrue(decision.can_proceed)
        self.assertEqual(self.workflow.pending(), [])

    def test_first_check_opens_request_then_reports_pending(self) -> None:
        first = self.workflow.check_approval("payments_any", "ci", {"flag_age_days": 40})
        self.assertTrue(first.requires_approval)
        self.assertFalse(first.can_proceed)
        self.assertEqual(first.reason, "owners sign off")
        self.assertTrue(first.request_id.startswith("approval-payments_any-"))

        second = self.workflow.check_approval("payments_any", "ci")
        self.assertEqual(second.request_id, first.request_id)
        self.assertEqual(second.reason, "approval pending")

        request = self.workflow.status("payments_any")
        self.assertEqual(request.requested_by, "ci")
        self.assertEqual(request.context, {"flag_age_days": 40})

    def test_any_approver_is_enough_by_default(self) -> None:
        self.workflow.check_approval("payments_any", "ci")

        outcome = self.workflow.record_response("payments_any", "alice", "approved", "ok")

        self.assertTrue(outcome.success)
        self.assertEqual(outcome.final_decision, "approved")
        self.assertEqual(outcome.message, "Approval request approved for flag payments_any")
        decision = self.workflow.check_approval("payments_any", "ci")
        self.assertTrue(decision.can_proceed)

    def test_all_approvers_required(self) -> None:
        self.workflow.check_approval("payments_all", "ci")

        first = self.workflow.record_response("payments_all", "@alice", "approved")
        self.assertTrue(first.success)
        self.assertIsNone(first.final_decision)
        self.assertEqual(self.workflow.status("payments_all").remaining_approvers(), ["bob"])

        second = self.workflow.record_response("payments_all", "Bob", "approved")
        self.assertEqual(second.final_decision, "approved")

    def test_rejection_is_final(self) -> None:
        self.workflow.check_approval("payments_all", "ci")

        outcome = self.workflow.record_response("payments_all", "bob", "rejected")

        self.assertEqual(outcome.final_decision, "rejected")
        self.assertEqual(self.workflow.status("payments_all").status, "rejected")

    def test_invalid_responses(self) -> None:
        self.assertEqual(
            self.workflow.record_response("payments_any", "alice", "approved").message,
            "No pending approval request found for this flag",
        )
        self.workflow.check_approval("payments_all", "ci")
        self.assertEqual(
            self.workflow.record_response("payments_all", "mallory", "approved").message,
            "Approver is not authorized for this flag",
        )
        self.assertEqual(
            self.workflow.record_response("payments_all", "alice", "maybe").message,
            "Unknown decision: maybe",
        )
        self.workflow.record_response("payments_all", "alice", "approved")
        outcome = self.workflow.record_response("payments_all", "@ALICE", "approved")
        self.assertFalse(outcome.success)
        self.assertEqual(outcome.message, "Approver has already provided a response")

    def test_expire_requests(self) -> None:
        self.workflow.check_approval("payments_any", "ci")
        self.clock.now = NOW + timedelta(hours=80)
        self.workflow.check_approval("payments_all", "ci")

        self.assertEqual(self.workflow.expire_requests(), 1)
        self.assertIsNone(self.workflow.status("payments_any"))
        self.assertEqual([r.flag_key for r in self.workflow.pending()], ["payments_all"])

    def test_lookup_failure_blocks(self) -> None:
        def lookup(flag_key):
            raise ApiError("config store down")

        decision = ApprovalWorkflow(lookup).check_approval("payments_any", "ci")

        self.assertTrue(decision.requires_approval)
        self.assertFalse(decision.can_proceed)
        self.assertIn("config store down", decision.reason)


if __name__ == "__main__":
    unittest.main()
