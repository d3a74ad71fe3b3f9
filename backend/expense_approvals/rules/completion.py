"""Completion predicate for an approved vote.

Pure evaluation over the expense's ledger; no database access. Conditions
are independent checks in fixed priority order and the first satisfied one
wins:

  a. no governing rule              -> approved
  b. specific approver has approved -> approved (overrides pending votes)
  c. approved/total >= percentage   -> approved
  d. require-all and all approved   -> approved
  e. otherwise                      -> still pending

Rejection never reaches this module; a single REJECT finalises the expense
before any predicate runs.
"""
import uuid
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence

from expense_approvals.models.approval import ApprovalStatus
from expense_approvals.models.expense import ExpenseStatus
from expense_approvals.rules.snapshot import RuleSnapshot

MSG_REJECTED = "Expense rejected"
MSG_FULLY_APPROVED = "Expense fully approved"
MSG_SPECIFIC_APPROVER = "Expense auto-approved by specific approver"
MSG_AWAITING = "Approved. Awaiting additional approvals."


def percentage_message(percentage: Decimal) -> str:
    # Half-up, so 62.5 reads as 63
    shown = percentage.quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return f"Expense approved ({shown}% approval reached)"


@dataclass(frozen=True)
class Vote:
    """One ledger row as the predicate sees it."""

    approver_id: uuid.UUID
    step_number: int
    status: str


@dataclass(frozen=True)
class ApprovalOutcome:
    status: ExpenseStatus
    message: str
    reason: str  # rejected, no_rule, specific_approver, percentage, all_approved, pending

    @property
    def is_final(self) -> bool:
        return self.status != ExpenseStatus.PENDING


def approval_percentage(votes: Sequence[Vote]) -> Decimal:
    if not votes:
        return Decimal(0)
    approved = sum(1 for v in votes if v.status == ApprovalStatus.APPROVED)
    return Decimal(approved) * 100 / Decimal(len(votes))


def evaluate(rule: RuleSnapshot | None, votes: Sequence[Vote]) -> ApprovalOutcome:
    """Evaluate the completion conditions after an APPROVE.

    ``votes`` must contain every request tied to the expense; for sequential
    rules the caller pads it with PENDING votes for steps not created yet.
    """
    if rule is None:
        return ApprovalOutcome(ExpenseStatus.APPROVED, MSG_FULLY_APPROVED, "no_rule")

    if rule.specific_approver_id is not None:
        if any(
            v.approver_id == rule.specific_approver_id and v.status == ApprovalStatus.APPROVED
            for v in votes
        ):
            return ApprovalOutcome(
                ExpenseStatus.APPROVED, MSG_SPECIFIC_APPROVER, "specific_approver"
            )

    if rule.min_approval_percentage is not None and votes:
        # Compared unrounded; rounding is for the message only
        percentage = approval_percentage(votes)
        if percentage >= rule.min_approval_percentage:
            return ApprovalOutcome(
                ExpenseStatus.APPROVED, percentage_message(percentage), "percentage"
            )

    if rule.require_all_approvers and votes:
        if all(v.status == ApprovalStatus.APPROVED for v in votes):
            return ApprovalOutcome(ExpenseStatus.APPROVED, MSG_FULLY_APPROVED, "all_approved")

    return ApprovalOutcome(ExpenseStatus.PENDING, MSG_AWAITING, "pending")


def rejected_outcome() -> ApprovalOutcome:
    return ApprovalOutcome(ExpenseStatus.REJECTED, MSG_REJECTED, "rejected")


def next_pending_step(votes: Sequence[Vote]) -> int | None:
    """Step number of the lowest PENDING vote, for the advisory pointer."""
    pending = [v.step_number for v in votes if v.status == ApprovalStatus.PENDING]
    return min(pending) if pending else None
