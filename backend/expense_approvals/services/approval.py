"""Approval flow lifecycle service.

Two entry points drive an expense through approval:

  initiate_approval_flow  called once right after an expense is persisted
  process_approval        called once per approver decision

Both take a sync SQLAlchemy Session and own its transaction: they commit on
success and roll back on any failure, so a flow is either fully created or
not at all. Both hold the per-expense lock and the expense row lock across
read → recompute → write.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from expense_approvals.core.errors import (
    AlreadyInitiatedError,
    AlreadyProcessedError,
    ConcurrentModificationError,
    ExpenseAlreadyFinalizedError,
    InvalidActionError,
    InvalidRuleConfigurationError,
    NotFoundError,
)
from expense_approvals.models.approval import ApprovalAction, ApprovalRequest, ApprovalStatus
from expense_approvals.models.expense import Expense, ExpenseStatus
from expense_approvals.models.user import User
from expense_approvals.rules import completion
from expense_approvals.rules.completion import ApprovalOutcome, Vote
from expense_approvals.rules.matcher import find_matching_rule
from expense_approvals.rules.snapshot import RuleSnapshot
from expense_approvals.services import audit as audit_svc
from expense_approvals.services.locks import ExpenseLockRegistry, expense_locks
from expense_approvals.services.rule_store import RuleStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlannedStep:
    approver_id: uuid.UUID
    step_number: int


# ─── Ledger reads ───

def get_expense(db: Session, expense_id: uuid.UUID) -> Expense:
    expense = db.get(Expense, expense_id)
    if expense is None:
        raise NotFoundError(f"Expense {expense_id} not found.")
    return expense


def get_request(db: Session, request_id: uuid.UUID) -> ApprovalRequest:
    request = db.get(ApprovalRequest, request_id)
    if request is None:
        raise NotFoundError(f"Approval request {request_id} not found.")
    return request


def get_requests_for_expense(db: Session, expense_id: uuid.UUID) -> list[ApprovalRequest]:
    """Full ledger of an expense, in step order."""
    stmt = (
        select(ApprovalRequest)
        .where(ApprovalRequest.expense_id == expense_id)
        .order_by(ApprovalRequest.step_number)
    )
    return list(db.execute(stmt).scalars().all())


def get_pending_requests_for_approver(db: Session, approver_id: uuid.UUID) -> list[ApprovalRequest]:
    """PENDING requests assigned to the approver, newest first.

    Requests left pending on an already finalised expense are moot and are
    not listed; acting on them would raise ExpenseAlreadyFinalizedError.
    """
    stmt = (
        select(ApprovalRequest)
        .join(Expense, Expense.id == ApprovalRequest.expense_id)
        .where(
            ApprovalRequest.approver_id == approver_id,
            ApprovalRequest.status == ApprovalStatus.PENDING.value,
            Expense.status == ExpenseStatus.PENDING.value,
        )
        .order_by(ApprovalRequest.created_at.desc())
    )
    return list(db.execute(stmt).scalars().all())


# ─── Planning ───

def resolve_approving_manager(db: Session, employee_id: uuid.UUID) -> User | None:
    """The employee's manager when that manager is flagged as an approver."""
    employee = db.get(User, employee_id)
    if employee is None:
        logger.warning("resolve_approving_manager: employee %s not found.", employee_id)
        return None
    if employee.manager_id is None:
        return None
    manager = db.get(User, employee.manager_id)
    if manager is None or not manager.is_active or not manager.is_manager_approver:
        return None
    return manager


def plan_approvers(rule: RuleSnapshot, manager_id: uuid.UUID | None) -> list[PlannedStep]:
    """Ordered approval steps for a rule, numbered from 0.

    Manager-first puts the approving manager at step 0. An approver listed
    twice (e.g. the manager is also a rule approver) gets a single step.
    """
    ordered: list[uuid.UUID] = []
    if rule.is_manager_first and manager_id is not None:
        ordered.append(manager_id)
    for approver_id in rule.approver_ids:
        if approver_id not in ordered:
            ordered.append(approver_id)
    return [PlannedStep(approver_id, step) for step, approver_id in enumerate(ordered)]


# ─── Initiate flow ───

def initiate_approval_flow(
    db: Session,
    expense_id: uuid.UUID,
    employee_id: uuid.UUID,
    rule_store: RuleStore | None = None,
    locks: ExpenseLockRegistry = expense_locks,
) -> None:
    """Create the approval requests for a freshly submitted expense.

    With no matching rule the expense is approved on the spot; absence of
    policy means no gate.

    Raises:
        NotFoundError: expense missing.
        AlreadyInitiatedError: requests already exist for the expense.
        ExpenseAlreadyFinalizedError: expense is no longer PENDING.
        InvalidRuleConfigurationError: matching rule yields no approvers.
    """
    store = rule_store or RuleStore(db)

    with locks.hold(expense_id):
        try:
            expense = _lock_expense(db, expense_id)

            existing = db.execute(
                select(func.count())
                .select_from(ApprovalRequest)
                .where(ApprovalRequest.expense_id == expense_id)
            ).scalar_one()
            if existing:
                raise AlreadyInitiatedError(
                    f"Approval flow already initiated for expense {expense_id}."
                )
            if expense.is_final:
                raise ExpenseAlreadyFinalizedError(
                    f"Expense {expense_id} is already {expense.status}."
                )

            rule = find_matching_rule(
                db, expense.company_id, expense.category, expense.converted_amount,
                rule_store=store,
            )

            if rule is None:
                expense.status = ExpenseStatus.APPROVED.value
                audit_svc.log(
                    db=db,
                    action="expense_auto_approved",
                    entity_type="expense",
                    entity_id=expense.id,
                    before={"status": ExpenseStatus.PENDING.value},
                    after={"status": expense.status},
                    notes="No approval rule matches the expense category and amount.",
                )
                db.commit()
                logger.warning(
                    "initiate_approval_flow: no rule for expense=%s category=%s amount=%s; auto-approved",
                    expense_id, expense.category, expense.converted_amount,
                )
                return

            manager = resolve_approving_manager(db, employee_id)
            plan = plan_approvers(rule, manager.id if manager else None)
            if not plan:
                raise InvalidRuleConfigurationError(
                    f"Approval rule '{rule.name}' ({rule.id}) has no approvers for expense "
                    f"{expense_id}; it can never be satisfied."
                )

            to_create = plan[:1] if rule.is_sequential else plan
            for step in to_create:
                db.add(ApprovalRequest(
                    expense_id=expense.id,
                    approver_id=step.approver_id,
                    step_number=step.step_number,
                    status=ApprovalStatus.PENDING.value,
                ))

            expense.current_approval_step = 0
            expense.approval_rule_id = rule.id
            expense.total_approval_steps = len(plan)

            audit_svc.log(
                db=db,
                action="approval_flow_initiated",
                entity_type="expense",
                entity_id=expense.id,
                after={
                    "rule_id": rule.id,
                    "rule_name": rule.name,
                    "sequential": rule.is_sequential,
                    "steps": [
                        {"approver_id": s.approver_id, "step_number": s.step_number}
                        for s in plan
                    ],
                },
            )
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise AlreadyInitiatedError(
                f"Approval flow already initiated for expense {expense_id}."
            ) from exc
        except StaleDataError as exc:
            db.rollback()
            raise ConcurrentModificationError(
                f"Expense {expense_id} changed while starting its approval flow."
            ) from exc
        except Exception:
            db.rollback()
            raise

    logger.info(
        "initiate_approval_flow: expense=%s rule=%s created=%d planned=%d manager_first=%s",
        expense_id, rule.id, len(to_create), len(plan), manager is not None,
    )


# ─── Process decision ───

def process_approval(
    db: Session,
    approval_request_id: uuid.UUID,
    action: ApprovalAction | str,
    comments: str | None = None,
    actor_id: uuid.UUID | None = None,
    rule_store: RuleStore | None = None,
    locks: ExpenseLockRegistry = expense_locks,
) -> ApprovalOutcome:
    """Apply an approver's decision and recompute the expense status.

    The caller has already checked that the acting user is the request's
    approver.

    Raises:
        InvalidActionError: action is not APPROVE/REJECT.
        NotFoundError: request or its expense missing.
        AlreadyProcessedError: request already decided.
        ExpenseAlreadyFinalizedError: expense already APPROVED/REJECTED.
        ConcurrentModificationError: a concurrent writer won the race.
    """
    action = _normalise_action(action)
    store = rule_store or RuleStore(db)

    request = get_request(db, approval_request_id)
    if request.status != ApprovalStatus.PENDING:
        raise AlreadyProcessedError(
            f"Approval request {approval_request_id} already processed (status={request.status})."
        )
    expense_id = request.expense_id

    with locks.hold(expense_id):
        try:
            expense = _lock_expense(db, expense_id)
            request = _lock_request(db, approval_request_id)

            if request.status != ApprovalStatus.PENDING:
                raise AlreadyProcessedError(
                    f"Approval request {approval_request_id} already processed "
                    f"(status={request.status})."
                )
            if expense.is_final:
                logger.warning(
                    "process_approval: late %s on request=%s; expense=%s already %s",
                    action.value, approval_request_id, expense_id, expense.status,
                )
                raise ExpenseAlreadyFinalizedError(
                    f"Expense {expense_id} is already {expense.status}; "
                    "no further decisions are accepted."
                )

            before = {
                "expense_status": expense.status,
                "request_status": request.status,
                "current_approval_step": expense.current_approval_step,
            }

            request.status = (
                ApprovalStatus.APPROVED.value if action is ApprovalAction.APPROVE
                else ApprovalStatus.REJECTED.value
            )
            request.decided_at = datetime.now(timezone.utc)
            request.comments = comments
            db.flush()

            if action is ApprovalAction.REJECT:
                outcome = completion.rejected_outcome()
                expense.status = ExpenseStatus.REJECTED.value
            else:
                outcome = _evaluate_approval(db, expense, store)

            audit_svc.log(
                db=db,
                action=_audit_action(outcome),
                entity_type="expense",
                entity_id=expense.id,
                actor_id=actor_id,
                before=before,
                after={
                    "expense_status": expense.status,
                    "request_id": request.id,
                    "request_status": request.status,
                    "current_approval_step": expense.current_approval_step,
                    "reason": outcome.reason,
                },
                notes=comments,
            )
            db.commit()
        except StaleDataError as exc:
            db.rollback()
            raise ConcurrentModificationError(
                f"Expense {expense_id} changed while processing request {approval_request_id}."
            ) from exc
        except Exception:
            db.rollback()
            raise

    logger.info(
        "Approval decision: request=%s action=%s expense=%s status=%s reason=%s",
        approval_request_id, action.value, expense_id, outcome.status.value, outcome.reason,
    )
    return outcome


# ─── Internal helpers ───

def _evaluate_approval(db: Session, expense: Expense, store: RuleStore) -> ApprovalOutcome:
    # Loaded once; the whole evaluation sees this one version of the rule
    if expense.approval_rule_id is not None:
        rule = store.get_snapshot(expense.approval_rule_id)
    else:
        rule = find_matching_rule(
            db, expense.company_id, expense.category, expense.converted_amount,
            rule_store=store,
        )

    ledger = get_requests_for_expense(db, expense.id)
    votes = [Vote(r.approver_id, r.step_number, r.status) for r in ledger]

    upcoming: list[PlannedStep] = []
    if rule is not None and rule.is_sequential:
        upcoming = _remaining_sequential_steps(rule, ledger)
        votes += [Vote(s.approver_id, s.step_number, ApprovalStatus.PENDING.value) for s in upcoming]

    outcome = completion.evaluate(rule, votes)

    if outcome.is_final:
        expense.status = ExpenseStatus.APPROVED.value
        return outcome

    if upcoming and not any(r.status == ApprovalStatus.PENDING for r in ledger):
        nxt = upcoming[0]
        db.add(ApprovalRequest(
            expense_id=expense.id,
            approver_id=nxt.approver_id,
            step_number=nxt.step_number,
            status=ApprovalStatus.PENDING.value,
        ))
        logger.info(
            "Sequential flow: expense=%s advanced to step=%s approver=%s",
            expense.id, nxt.step_number, nxt.approver_id,
        )

    next_step = completion.next_pending_step(votes)
    if next_step is not None:
        expense.current_approval_step = next_step
    return outcome


def _remaining_sequential_steps(
    rule: RuleSnapshot, ledger: list[ApprovalRequest],
) -> list[PlannedStep]:
    """Rule approvers that have no request yet, numbered after the last one."""
    seen = {r.approver_id for r in ledger}
    last_step = max((r.step_number for r in ledger), default=-1)
    remaining = [a for a in rule.approver_ids if a not in seen]
    return [
        PlannedStep(approver_id, last_step + offset)
        for offset, approver_id in enumerate(remaining, start=1)
    ]


def _lock_expense(db: Session, expense_id: uuid.UUID) -> Expense:
    expense = db.execute(
        select(Expense)
        .where(Expense.id == expense_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalars().first()
    if expense is None:
        raise NotFoundError(f"Expense {expense_id} not found.")
    return expense


def _lock_request(db: Session, request_id: uuid.UUID) -> ApprovalRequest:
    request = db.execute(
        select(ApprovalRequest)
        .where(ApprovalRequest.id == request_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalars().first()
    if request is None:
        raise NotFoundError(f"Approval request {request_id} not found.")
    return request


def _normalise_action(action: ApprovalAction | str) -> ApprovalAction:
    if isinstance(action, ApprovalAction):
        return action
    try:
        return ApprovalAction(str(action).upper())
    except ValueError:
        raise InvalidActionError(
            f"Invalid action '{action}'. Must be 'APPROVE' or 'REJECT'."
        ) from None


def _audit_action(outcome: ApprovalOutcome) -> str:
    if outcome.status == ExpenseStatus.REJECTED:
        return "expense_rejected"
    if outcome.status == ExpenseStatus.APPROVED:
        return "expense_approved"
    return "approval_recorded"
