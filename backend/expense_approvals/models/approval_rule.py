"""Approval rule definitions, one row per company policy."""
import uuid
from decimal import Decimal

from sqlalchemy import Boolean, ForeignKey, Integer, Numeric, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from expense_approvals.db.base import Base, TimestampMixin, UUIDMixin


class ApprovalRule(Base, UUIDMixin, TimestampMixin):
    """Who must approve expenses of a category/amount band, and when they are done.

    All completion conditions are optional and evaluated in a fixed priority
    order (specific approver, percentage, require-all); there is no rule
    "type" column.
    """

    __tablename__ = "approval_rules"

    company_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("companies.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)  # NULL = all categories
    min_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    max_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    require_all_approvers: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    min_approval_percentage: Mapped[Decimal | None] = mapped_column(Numeric(5, 2), nullable=True)
    specific_approver_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True
    )
    is_manager_first: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # Sequential rules create the next request only after the previous one is approved
    is_sequential: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    approvers: Mapped[list["ApprovalRuleApprover"]] = relationship(
        "ApprovalRuleApprover",
        back_populates="rule",
        cascade="all, delete-orphan",
        order_by="ApprovalRuleApprover.step_number",
    )


class ApprovalRuleApprover(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "approval_rule_approvers"

    rule_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("approval_rules.id", ondelete="CASCADE"), nullable=False, index=True
    )
    approver_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False
    )
    step_number: Mapped[int] = mapped_column(Integer, nullable=False)
    is_required: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    rule: Mapped["ApprovalRule"] = relationship("ApprovalRule", back_populates="approvers")
