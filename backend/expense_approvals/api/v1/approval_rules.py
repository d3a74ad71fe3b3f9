"""Approval rule administration (ADMIN, scoped to the admin's company)."""
import uuid
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from expense_approvals.core.deps import get_rule_store, require_role
from expense_approvals.models.user import User
from expense_approvals.schemas.approval_rule import (
    ApprovalRuleIn,
    ApprovalRuleOut,
    ApprovalRuleUpdate,
)
from expense_approvals.services.rule_store import RuleStore

router = APIRouter()

# Fields where an explicit null means "clear it"
_NULLABLE_FIELDS = {
    "category", "min_amount", "max_amount", "min_approval_percentage", "specific_approver_id",
}


@router.get(
    "",
    response_model=list[ApprovalRuleOut],
    summary="List the company's approval rules (ADMIN)",
)
def list_rules(
    store: Annotated[RuleStore, Depends(get_rule_store)],
    current_user: Annotated[User, Depends(require_role("ADMIN"))],
    include_inactive: bool = Query(False),
):
    rules = store.list_rules(current_user.company_id, include_inactive=include_inactive)
    return [ApprovalRuleOut.model_validate(r) for r in rules]


@router.post(
    "",
    response_model=ApprovalRuleOut,
    status_code=status.HTTP_201_CREATED,
    summary="Create an approval rule (ADMIN)",
)
def create_rule(
    body: ApprovalRuleIn,
    store: Annotated[RuleStore, Depends(get_rule_store)],
    current_user: Annotated[User, Depends(require_role("ADMIN"))],
):
    rule = store.create_rule(current_user.company_id, body.model_dump(), actor_id=current_user.id)
    return ApprovalRuleOut.model_validate(rule)


@router.put(
    "/{rule_id}",
    response_model=ApprovalRuleOut,
    summary="Update an approval rule (ADMIN)",
)
def update_rule(
    rule_id: uuid.UUID,
    body: ApprovalRuleUpdate,
    store: Annotated[RuleStore, Depends(get_rule_store)],
    current_user: Annotated[User, Depends(require_role("ADMIN"))],
):
    data = {
        k: v for k, v in body.model_dump(exclude_unset=True).items()
        if v is not None or k in _NULLABLE_FIELDS
    }
    rule = store.update_rule(rule_id, data, company_id=current_user.company_id, actor_id=current_user.id)
    return ApprovalRuleOut.model_validate(rule)


@router.put(
    "/{rule_id}/activate",
    response_model=ApprovalRuleOut,
    summary="Toggle a rule between active and inactive (ADMIN)",
)
def toggle_rule(
    rule_id: uuid.UUID,
    store: Annotated[RuleStore, Depends(get_rule_store)],
    current_user: Annotated[User, Depends(require_role("ADMIN"))],
):
    rule = store.toggle_rule(rule_id, company_id=current_user.company_id, actor_id=current_user.id)
    return ApprovalRuleOut.model_validate(rule)


@router.delete(
    "/{rule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Soft-delete an approval rule (ADMIN)",
)
def delete_rule(
    rule_id: uuid.UUID,
    store: Annotated[RuleStore, Depends(get_rule_store)],
    current_user: Annotated[User, Depends(require_role("ADMIN"))],
):
    store.delete_rule(rule_id, company_id=current_user.company_id, actor_id=current_user.id)
