"""Expense-side approval endpoints.

  POST /expenses/{expense_id}/approval-flow start the flow after submission
  GET  /expenses/{expense_id}/approvals     the expense's approval ledger
"""
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from expense_approvals.core.deps import get_current_user, get_rule_store
from expense_approvals.db.session import get_session
from expense_approvals.api.v1.approvals import to_out
from expense_approvals.schemas.approval import ApprovalFlowResponse, ExpenseApprovalsResponse
from expense_approvals.services import approval as approval_svc
from expense_approvals.services.rule_store import RuleStore

router = APIRouter()


@router.post(
    "/{expense_id}/approval-flow",
    response_model=ApprovalFlowResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start the approval flow for a submitted expense",
)
def start_approval_flow(
    expense_id: uuid.UUID,
    db: Annotated[Session, Depends(get_session)],
    rule_store: Annotated[RuleStore, Depends(get_rule_store)],
    current_user=Depends(get_current_user),
):
    expense = approval_svc.get_expense(db, expense_id)
    if expense.employee_id != current_user.id and current_user.role != "ADMIN":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the submitting employee or an admin can start this flow.",
        )

    approval_svc.initiate_approval_flow(
        db, expense_id, expense.employee_id, rule_store=rule_store,
    )

    expense = approval_svc.get_expense(db, expense_id)
    return ApprovalFlowResponse(
        expense_id=expense.id,
        status=expense.status,
        current_approval_step=expense.current_approval_step,
        requests_created=len(approval_svc.get_requests_for_expense(db, expense_id)),
    )


@router.get(
    "/{expense_id}/approvals",
    response_model=ExpenseApprovalsResponse,
    summary="Approval ledger of an expense",
)
def list_expense_approvals(
    expense_id: uuid.UUID,
    db: Annotated[Session, Depends(get_session)],
    current_user=Depends(get_current_user),
):
    expense = approval_svc.get_expense(db, expense_id)
    ledger = approval_svc.get_requests_for_expense(db, expense_id)

    is_party = (
        current_user.role == "ADMIN"
        or expense.employee_id == current_user.id
        or any(r.approver_id == current_user.id for r in ledger)
    )
    if not is_party or expense.company_id != current_user.company_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You cannot view approvals for this expense.",
        )

    return ExpenseApprovalsResponse(
        expense_id=expense.id,
        status=expense.status,
        current_approval_step=expense.current_approval_step,
        approval_rule_id=expense.approval_rule_id,
        items=[to_out(r, expense) for r in ledger],
    )
