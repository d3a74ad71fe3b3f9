"""Unit tests for the completion predicate (no database)."""
import uuid
from decimal import Decimal

from expense_approvals.models.expense import ExpenseStatus
from expense_approvals.rules import completion
from expense_approvals.rules.completion import Vote, evaluate, next_pending_step
from expense_approvals.rules.snapshot import ApproverEntry, RuleSnapshot

A, B, C, D, E = (uuid.uuid4() for _ in range(5))


def _rule(approvers=(A, B, C, D), **kw) -> RuleSnapshot:
    return RuleSnapshot(
        id=uuid.uuid4(),
        company_id=uuid.uuid4(),
        name="policy",
        approvers=tuple(ApproverEntry(a, i) for i, a in enumerate(approvers, start=1)),
        **kw,
    )


def _votes(*statuses, approvers=(A, B, C, D, E)) -> list[Vote]:
    return [Vote(a, i, s) for i, (a, s) in enumerate(zip(approvers, statuses))]


def test_no_rule_is_fully_approved():
    outcome = evaluate(None, _votes("APPROVED"))
    assert outcome.status == ExpenseStatus.APPROVED
    assert outcome.message == "Expense fully approved"
    assert outcome.reason == "no_rule"


def test_specific_approver_overrides_pending_votes():
    rule = _rule(specific_approver_id=C, require_all_approvers=True)
    outcome = evaluate(rule, _votes("PENDING", "PENDING", "APPROVED", "PENDING"))
    assert outcome.status == ExpenseStatus.APPROVED
    assert outcome.message == "Expense auto-approved by specific approver"


def test_specific_approver_not_yet_approved_falls_through():
    rule = _rule(specific_approver_id=C)
    outcome = evaluate(rule, _votes("APPROVED", "PENDING", "PENDING", "PENDING"))
    assert outcome.status == ExpenseStatus.PENDING
    assert outcome.message == "Approved. Awaiting additional approvals."


def test_percentage_reached_exactly():
    rule = _rule(min_approval_percentage=Decimal("50"))
    outcome = evaluate(rule, _votes("APPROVED", "APPROVED", "PENDING", "PENDING"))
    assert outcome.status == ExpenseStatus.APPROVED
    assert outcome.message == "Expense approved (50% approval reached)"


def test_percentage_below_threshold_stays_pending():
    rule = _rule(min_approval_percentage=Decimal("50"))
    outcome = evaluate(rule, _votes("APPROVED", "PENDING", "PENDING", "PENDING"))
    assert outcome.status == ExpenseStatus.PENDING


def test_sixty_percent_of_five_needs_three():
    rule = _rule(approvers=(A, B, C, D, E), min_approval_percentage=Decimal("60"))
    two = _votes("APPROVED", "APPROVED", "PENDING", "PENDING", "PENDING")
    three = _votes("APPROVED", "APPROVED", "APPROVED", "PENDING", "PENDING")
    assert evaluate(rule, two).status == ExpenseStatus.PENDING
    assert evaluate(rule, three).message == "Expense approved (60% approval reached)"


def test_percentage_compared_unrounded():
    # 2/3 = 66.67%; a 66.7 threshold must not be met by the rounded "67%"
    rule = _rule(approvers=(A, B, C), min_approval_percentage=Decimal("66.7"))
    outcome = evaluate(rule, _votes("APPROVED", "APPROVED", "PENDING"))
    assert outcome.status == ExpenseStatus.PENDING


def test_zero_percentage_is_a_real_threshold():
    rule = _rule(min_approval_percentage=Decimal("0"))
    outcome = evaluate(rule, _votes("APPROVED", "PENDING", "PENDING", "PENDING"))
    assert outcome.reason == "percentage"


def test_require_all_needs_every_vote():
    rule = _rule(approvers=(A, B), require_all_approvers=True)
    assert evaluate(rule, _votes("APPROVED", "PENDING")).status == ExpenseStatus.PENDING
    outcome = evaluate(rule, _votes("APPROVED", "APPROVED"))
    assert outcome.status == ExpenseStatus.APPROVED
    assert outcome.message == "Expense fully approved"


def test_rule_without_completion_condition_never_finishes():
    rule = _rule(approvers=(A, B))
    assert evaluate(rule, _votes("APPROVED", "APPROVED")).status == ExpenseStatus.PENDING


def test_priority_specific_before_percentage():
    rule = _rule(specific_approver_id=A, min_approval_percentage=Decimal("10"))
    outcome = evaluate(rule, _votes("APPROVED", "PENDING", "PENDING", "PENDING"))
    assert outcome.reason == "specific_approver"


def test_rejected_outcome():
    outcome = completion.rejected_outcome()
    assert outcome.status == ExpenseStatus.REJECTED
    assert outcome.message == "Expense rejected"
    assert outcome.is_final


def test_next_pending_step():
    assert next_pending_step(_votes("APPROVED", "PENDING", "PENDING")) == 1
    assert next_pending_step(_votes("APPROVED", "APPROVED")) is None


def test_percentage_message_rounds_half_up():
    assert completion.percentage_message(Decimal("62.5")) == "Expense approved (63% approval reached)"
    assert completion.percentage_message(Decimal("12.5")) == "Expense approved (13% approval reached)"
    assert completion.percentage_message(Decimal(200) / Decimal(3)) == "Expense approved (67% approval reached)"
