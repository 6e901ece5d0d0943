"""In-memory approval workflow for flags that need sign-off before archiving."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Literal, Mapping, Optional

import structlog

from flagsync.errors import FlagSyncError
from flagsync.interfaces import ApprovalDecision
from flagsync.util.ids import new_approval_id
from flagsync.util.time import now_utc

from .overrides import ApprovalRule

logger = structlog.get_logger(__name__)

RequestStatus = Literal["pending", "approved", "rejected", "expired"]
Decision = Literal["approved", "rejected"]

DEFAULT_MAX_AGE_HOURS = 72


@dataclass(slots=True)
class ApprovalResponse:
    approver: str
    decision: Decision
    timestamp: datetime
    comment: Optional[str] = None


@dataclass(slots=True)
class ApprovalRequest:
    request_id: str
    flag_key: str
    rule: ApprovalRule
    requested_by: str
    requested_at: datetime
    status: RequestStatus = "pending"
    responses: list[ApprovalResponse] = field(default_factory=list)
    context: dict[str, Any] = field(default_factory=dict)

    def remaining_approvers(self) -> list[str]:
        responded = {_normalize(r.approver) for r in self.responses}
        return [a for a in self.rule.approvers if _normalize(a) not in responded]


@dataclass(slots=True, frozen=True)
class ResponseOutcome:
    success: bool
    message: str
    final_decision: Optional[Decision] = None


class ApprovalWorkflow:
    """
    ApprovalPolicy keeping one request per flag key.

    rule_lookup resolves the approval rule of a flag key (None means the flag
    needs no approval), typically OverridePolicy.requires_approval.
    """

    def __init__(
        self,
        rule_lookup: Callable[[str], Optional[ApprovalRule]],
        *,
        clock: Callable[[], datetime] = now_utc,
    ) -> None:
        self._rule_lookup = rule_lookup
        self._clock = clock
        self._lock = threading.Lock()
        self._requests: dict[str, ApprovalRequest] = {}

    def check_approval(
        self,
        flag_key: str,
        actor: str,
        context: Optional[Mapping[str, Any]] = None,
    ) -> ApprovalDecision:
        """
        Decide whether flag_key may be archived now.

        An approved request lets the caller proceed, a pending one blocks, and
        otherwise a new pending request is opened.
        """
        try:
            rule = self._rule_lookup(flag_key)
        except FlagSyncError as exc:
            logger.error("approval_rule_lookup_failed", flag_key=flag_key, error=str(exc))
            return ApprovalDecision(
                requires_approval=True,
                can_proceed=False,
                reason=f"approval rule lookup failed: {exc}",
            )

        if rule is None:
            return ApprovalDecision(requires_approval=False, can_proceed=True)

        with self._lock:
            existing = self._requests.get(flag_key)
            if existing is not None and existing.status == "approved":
                return ApprovalDecision(True, True, existing.request_id, "approved")
            if existing is not None and existing.status == "pending":
                return ApprovalDecision(True, False, existing.request_id, "approval pending")

            request = ApprovalRequest(
                request_id=new_approval_id(flag_key),
                flag_key=flag_key,
                rule=rule,
                requested_by=actor,
                requested_at=self._clock(),
                context=dict(context or {}),
            )
            self._requests[flag_key] = request

        logger.info(
            "approval_request_created",
            flag_key=flag_key,
            request_id=request.request_id,
            approvers=rule.approvers,
            requires_all_approvers=rule.requires_all_approvers,
        )
        return ApprovalDecision(True, False, request.request_id, rule.reason or "approval required")

    def record_response(
        self,
        flag_key: str,
        approver: str,
        decision: Decision,
        comment: Optional[str] = None,
    ) -> ResponseOutcome:
        """Record one approver's decision on the pending request for flag_key."""
        if decision not in ("approved", "rejected"):
            return ResponseOutcome(False, f"Unknown decision: {decision}")

        with self._lock:
            request = self._requests.get(flag_key)
            if request is None or request.status != "pending":
                return ResponseOutcome(False, "No pending approval request found for this flag")

            if not any(_normalize(a) == _normalize(approver) for a in request.rule.approvers):
                return ResponseOutcome(False, "Approver is not authorized for this flag")

            if any(_normalize(r.approver) == _normalize(approver) for r in request.responses):
                return ResponseOutcome(False, "Approver has already provided a response")

            request.responses.append(
                ApprovalResponse(approver, decision, self._clock(), comment)
            )
            final = _final_decision(request)
            if final is not None:
                request.status = final
            remaining = request.remaining_approvers()

        if final is not None:
            logger.info("approval_request_finalized", flag_key=flag_key, decision=final)
            return ResponseOutcome(True, f"Approval request {final} for flag {flag_key}", final)

        logger.info(
            "approval_response_recorded",
            flag_key=flag_key,
            approver=approver,
            decision=decision,
            remaining_approvers=remaining,
        )
        return ResponseOutcome(
            True, "Approval response recorded. Waiting for additional approvers."
        )

    def expire_requests(self, max_age_hours: float = DEFAULT_MAX_AGE_HOURS) -> int:
        """Drop pending requests older than max_age_hours. Returns how many expired."""
        cutoff = self._clock() - timedelta(hours=max_age_hours)
        with self._lock:
            expired = [
                key
                for key, req in self._requests.items()
                if req.status == "pending" and req.requested_at < cutoff
            ]
            for key in expired:
                self._requests.pop(key).status = "expired"

        for key in expired:
            logger.info("approval_request_expired", flag_key=key)
        return len(expired)

    def pending(self) -> list[ApprovalRequest]:
        with self._lock:
            return [r for r in self._requests.values() if r.status == "pending"]

    def status(self, flag_key: str) -> Optional[ApprovalRequest]:
        with self._lock:
            return self._requests.get(flag_key)


def _normalize(name: str) -> str:
    return name[1:].lower() if name.startswith("@") else name.lower()


def _final_decision(request: ApprovalRequest) -> Optional[Decision]:
    approvals = sum(1 for r in request.responses if r.decision == "approved")
    rejections = len(request.responses) - approvals

    if rejections:
        return "rejected"
    if request.rule.requires_all_approvers:
        return "approved" if approvals == len(request.rule.approvers) else None
    return "approved" if approvals else None
