"""Immutable views of approval rules.

A decision loads its governing rule exactly once and evaluates against the
snapshot, so an admin editing the rule mid-decision cannot mix two versions
into one outcome.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal


@dataclass(frozen=True)
class ApproverEntry:
    approver_id: uuid.UUID
    step_number: int
    is_required: bool = True


@dataclass(frozen=True)
class RuleSnapshot:
    id: uuid.UUID
    company_id: uuid.UUID
    name: str
    category: str | None = None
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None
    approvers: tuple[ApproverEntry, ...] = field(default_factory=tuple)
    require_all_approvers: bool = False
    min_approval_percentage: Decimal | None = None
    specific_approver_id: uuid.UUID | None = None
    is_manager_first: bool = False
    is_sequential: bool = False
    is_active: bool = True
    created_at: datetime | None = None

    @classmethod
    def from_orm(cls, rule) -> "RuleSnapshot":
        approvers = tuple(
            ApproverEntry(
                approver_id=a.approver_id,
                step_number=a.step_number,
                is_required=a.is_required,
            )
            for a in sorted(rule.approvers, key=lambda a: a.step_number)
        )
        return cls(
            id=rule.id,
            company_id=rule.company_id,
            name=rule.name,
            category=rule.category,
            min_amount=_decimal_or_none(rule.min_amount),
            max_amount=_decimal_or_none(rule.max_amount),
            approvers=approvers,
            require_all_approvers=bool(rule.require_all_approvers),
            min_approval_percentage=_decimal_or_none(rule.min_approval_percentage),
            specific_approver_id=rule.specific_approver_id,
            is_manager_first=bool(rule.is_manager_first),
            is_sequential=bool(rule.is_sequential),
            is_active=bool(rule.is_active),
            created_at=rule.created_at,
        )

    @property
    def approver_ids(self) -> list[uuid.UUID]:
        return [a.approver_id for a in self.approvers]

    def covers(self, amount: Decimal) -> bool:
        """Inclusive amount-range gate. A missing bound is unbounded."""
        if self.min_amount is not None and amount < self.min_amount:
            return False
        if self.max_amount is not None and amount > self.max_amount:
            return False
        return True


def _decimal_or_none(value) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value))
