"""Pydantic schemas for approval rule administration."""
import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class RuleApproverIn(BaseModel):
    approver_id: uuid.UUID
    step_number: int | None = Field(default=None, ge=1)
    is_required: bool = True


class RuleApproverOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    approver_id: uuid.UUID
    step_number: int
    is_required: bool


class ApprovalRuleIn(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    category: str | None = None  # None = all categories
    min_amount: Decimal | None = Field(default=None, ge=0)
    max_amount: Decimal | None = Field(default=None, ge=0)
    approvers: list[RuleApproverIn] = Field(default_factory=list)
    require_all_approvers: bool = False
    min_approval_percentage: Decimal | None = Field(default=None, ge=0, le=100)
    specific_approver_id: uuid.UUID | None = None
    is_manager_first: bool = False
    is_sequential: bool = False
    is_active: bool = True

    @model_validator(mode="after")
    def _check_range(self):
        if (
            self.min_amount is not None
            and self.max_amount is not None
            and self.min_amount > self.max_amount
        ):
            raise ValueError("min_amount must not exceed max_amount")
        return self


class ApprovalRuleUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    category: str | None = None
    min_amount: Decimal | None = Field(default=None, ge=0)
    max_amount: Decimal | None = Field(default=None, ge=0)
    approvers: list[RuleApproverIn] | None = None
    require_all_approvers: bool | None = None
    min_approval_percentage: Decimal | None = Field(default=None, ge=0, le=100)
    specific_approver_id: uuid.UUID | None = None
    is_manager_first: bool | None = None
    is_sequential: bool | None = None
    is_active: bool | None = None


class ApprovalRuleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    company_id: uuid.UUID
    name: str
    category: str | None
    min_amount: Decimal | None
    max_amount: Decimal | None
    approvers: list[RuleApproverOut]
    require_all_approvers: bool
    min_approval_percentage: Decimal | None
    specific_approver_id: uuid.UUID | None
    is_manager_first: bool
    is_sequential: bool
    is_active: bool
    created_at: datetime
    updated_at: datetime
