"""Approval workflow API endpoints.

  GET  /approvals                 pending requests for the current user
  GET  /approvals/{request_id}    request detail with expense summary
  POST /approvals/{request_id}/action  {"action": "APPROVE"|"REJECT", "comments"}
"""
import logging
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from expense_approvals.core.config import settings
from expense_approvals.core.deps import get_rule_store, require_role
from expense_approvals.core.limiter import limiter
from expense_approvals.db.session import get_session
from expense_approvals.models.approval import ApprovalRequest
from expense_approvals.models.expense import Expense
from expense_approvals.schemas.approval import (
    ApprovalActionRequest,
    ApprovalActionResponse,
    ApprovalListResponse,
    ApprovalRequestOut,
)
from expense_approvals.services import approval as approval_svc
from expense_approvals.services.rule_store import RuleStore

logger = logging.getLogger(__name__)

router = APIRouter()


def to_out(request: ApprovalRequest, expense: Expense | None) -> ApprovalRequestOut:
    out = ApprovalRequestOut.model_validate(request)
    if expense is not None:
        out.category = expense.category
        out.converted_amount = expense.converted_amount
        out.expense_status = expense.status
    return out


# ─── Pending inbox ───

@router.get(
    "",
    response_model=ApprovalListResponse,
    summary="List pending approval requests for the current user",
)
def list_my_approvals(
    db: Annotated[Session, Depends(get_session)],
    current_user=Depends(require_role("MANAGER", "ADMIN")),
):
    requests = approval_svc.get_pending_requests_for_approver(db, current_user.id)
    items = [to_out(r, db.get(Expense, r.expense_id)) for r in requests]
    return ApprovalListResponse(items=items, total=len(items))


# ─── Detail ───

@router.get(
    "/{request_id}",
    response_model=ApprovalRequestOut,
    summary="Get an approval request with its expense summary",
)
def get_approval_request(
    request_id: uuid.UUID,
    db: Annotated[Session, Depends(get_session)],
    current_user=Depends(require_role("MANAGER", "ADMIN")),
):
    request = approval_svc.get_request(db, request_id)
    if request.approver_id != current_user.id and current_user.role != "ADMIN":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not the assigned approver for this request.",
        )
    return to_out(request, db.get(Expense, request.expense_id))


# ─── Decide ───

@router.post(
    "/{request_id}/action",
    response_model=ApprovalActionResponse,
    summary="Approve or reject an expense (assigned approver only)",
)
@limiter.limit(settings.APPROVAL_ACTION_RATE_LIMIT)
def act_on_approval(
    request: Request,
    request_id: uuid.UUID,
    body: ApprovalActionRequest,
    db: Annotated[Session, Depends(get_session)],
    rule_store: Annotated[RuleStore, Depends(get_rule_store)],
    current_user=Depends(require_role("MANAGER", "ADMIN")),
):
    approval_request = approval_svc.get_request(db, request_id)
    # Authorization stays here; the engine trusts its caller
    if approval_request.approver_id != current_user.id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not authorized to approve this request.",
        )

    outcome = approval_svc.process_approval(
        db,
        request_id,
        body.action,
        comments=body.comments,
        actor_id=current_user.id,
        rule_store=rule_store,
    )

    approval_request = approval_svc.get_request(db, request_id)
    return ApprovalActionResponse(
        status=outcome.status.value,
        message=outcome.message,
        approval_request=to_out(approval_request, db.get(Expense, approval_request.expense_id)),
    )
