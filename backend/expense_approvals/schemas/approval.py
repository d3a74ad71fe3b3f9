"""Pydantic schemas for approval workflow API endpoints."""
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, field_validator


# ─── Approval request output ───

class ApprovalRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    expense_id: uuid.UUID
    approver_id: uuid.UUID
    step_number: int
    status: str
    comments: str | None
    decided_at: datetime | None
    created_at: datetime

    # Expense summary fields (filled in by the endpoint)
    category: str | None = None
    converted_amount: Decimal | None = None
    expense_status: str | None = None


# ─── Decision ───

class ApprovalActionRequest(BaseModel):
    action: Literal["APPROVE", "REJECT"]
    comments: str | None = None

    @field_validator("action", mode="before")
    @classmethod
    def _upper(cls, v):
        return v.upper() if isinstance(v, str) else v


class ApprovalActionResponse(BaseModel):
    status: str
    message: str
    approval_request: ApprovalRequestOut


# ─── Lists ───

class ApprovalListResponse(BaseModel):
    items: list[ApprovalRequestOut]
    total: int


class ExpenseApprovalsResponse(BaseModel):
    expense_id: uuid.UUID
    status: str
    current_approval_step: int
    approval_rule_id: uuid.UUID | None
    items: list[ApprovalRequestOut]


class ApprovalFlowResponse(BaseModel):
    expense_id: uuid.UUID
    status: str
    current_approval_step: int
    requests_created: int
