"""Rule Store: persisted approval-rule definitions per company/category.

Rule reads for matching go through an optional ``RuleCache``. The cache is
an object handed to the store (the app builds one at startup), never
module-level state, and it only ever holds immutable RuleSnapshot tuples.
Writes invalidate every cached entry of the company.
"""
import logging
import threading
import time
import uuid
from decimal import Decimal
from typing import Any

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, selectinload

from expense_approvals.core.errors import InvalidRuleConfigurationError, NotFoundError
from expense_approvals.models.approval_rule import ApprovalRule, ApprovalRuleApprover
from expense_approvals.models.user import User
from expense_approvals.rules.snapshot import RuleSnapshot
from expense_approvals.services import audit as audit_svc

logger = logging.getLogger(__name__)

_RULE_FIELDS = (
    "name",
    "category",
    "min_amount",
    "max_amount",
    "require_all_approvers",
    "min_approval_percentage",
    "specific_approver_id",
    "is_manager_first",
    "is_sequential",
    "is_active",
)


# ─── Cache ───

class RuleCache:
    """TTL cache of rule snapshots keyed by (company_id, category)."""

    def __init__(self, ttl_seconds: float = 300, clock=time.monotonic):
        self._ttl = ttl_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[tuple[uuid.UUID, str], tuple[float, tuple[RuleSnapshot, ...]]] = {}

    def get(self, company_id: uuid.UUID, category: str) -> tuple[RuleSnapshot, ...] | None:
        with self._lock:
            entry = self._entries.get((company_id, category))
            if entry is None:
                return None
            stored_at, rules = entry
            if self._clock() - stored_at >= self._ttl:
                del self._entries[(company_id, category)]
                return None
            return rules

    def put(self, company_id: uuid.UUID, category: str, rules: tuple[RuleSnapshot, ...]) -> None:
        if self._ttl <= 0:
            return
        with self._lock:
            self._entries[(company_id, category)] = (self._clock(), rules)

    def invalidate(self, company_id: uuid.UUID | None = None) -> None:
        with self._lock:
            if company_id is None:
                self._entries.clear()
                return
            for key in [k for k in self._entries if k[0] == company_id]:
                del self._entries[key]


# ─── Validation ───

def validate_rule_config(data: dict[str, Any]) -> None:
    """Raise InvalidRuleConfigurationError when a rule can't be evaluated sanely."""
    pct = data.get("min_approval_percentage")
    if pct is not None and not (Decimal(0) <= Decimal(str(pct)) <= Decimal(100)):
        raise InvalidRuleConfigurationError(
            f"min_approval_percentage must be between 0 and 100 (got {pct})."
        )

    lo, hi = data.get("min_amount"), data.get("max_amount")
    if lo is not None and Decimal(str(lo)) < 0:
        raise InvalidRuleConfigurationError("min_amount cannot be negative.")
    if lo is not None and hi is not None and Decimal(str(lo)) > Decimal(str(hi)):
        raise InvalidRuleConfigurationError(
            f"min_amount ({lo}) is greater than max_amount ({hi})."
        )

    approvers = data.get("approvers") or []
    ids = [a["approver_id"] for a in approvers]
    if len(ids) != len(set(ids)):
        raise InvalidRuleConfigurationError("An approver may appear only once per rule.")

    if not approvers and not data.get("is_manager_first"):
        raise InvalidRuleConfigurationError(
            "Rule has no approvers and is not manager-first; it could never be satisfied."
        )


# ─── Store ───

class RuleStore:
    def __init__(self, db: Session, cache: RuleCache | None = None):
        self.db = db
        self.cache = cache

    def list_rules(self, company_id: uuid.UUID, include_inactive: bool = False) -> list[ApprovalRule]:
        stmt = (
            select(ApprovalRule)
            .options(selectinload(ApprovalRule.approvers))
            .where(ApprovalRule.company_id == company_id)
            .order_by(ApprovalRule.created_at, ApprovalRule.name)
        )
        if not include_inactive:
            stmt = stmt.where(ApprovalRule.is_active.is_(True))
        return list(self.db.execute(stmt).scalars().all())

    def get_rule(self, rule_id: uuid.UUID, company_id: uuid.UUID | None = None) -> ApprovalRule:
        stmt = (
            select(ApprovalRule)
            .options(selectinload(ApprovalRule.approvers))
            .where(ApprovalRule.id == rule_id)
        )
        if company_id is not None:
            stmt = stmt.where(ApprovalRule.company_id == company_id)
        rule = self.db.execute(stmt).scalars().first()
        if rule is None:
            raise NotFoundError(f"Approval rule {rule_id} not found.")
        return rule

    def get_snapshot(self, rule_id: uuid.UUID | None) -> RuleSnapshot | None:
        """Uncached read used inside a decision; None when the rule is gone."""
        if rule_id is None:
            return None
        try:
            return RuleSnapshot.from_orm(self.get_rule(rule_id))
        except NotFoundError:
            logger.warning("Governing rule %s no longer exists.", rule_id)
            return None

    def rules_for(self, company_id: uuid.UUID, category: str) -> tuple[RuleSnapshot, ...]:
        """Active rules for the category plus wildcard rules, as snapshots."""
        if self.cache is not None:
            cached = self.cache.get(company_id, category)
            if cached is not None:
                return cached

        stmt = (
            select(ApprovalRule)
            .options(selectinload(ApprovalRule.approvers))
            .where(
                ApprovalRule.company_id == company_id,
                ApprovalRule.is_active.is_(True),
                or_(ApprovalRule.category == category, ApprovalRule.category.is_(None)),
            )
            .order_by(ApprovalRule.created_at)
        )
        rules = tuple(RuleSnapshot.from_orm(r) for r in self.db.execute(stmt).scalars().all())

        if self.cache is not None:
            self.cache.put(company_id, category, rules)
        return rules

    def create_rule(
        self,
        company_id: uuid.UUID,
        data: dict[str, Any],
        actor_id: uuid.UUID | None = None,
    ) -> ApprovalRule:
        validate_rule_config(data)
        self._check_approver_users(company_id, data)

        rule = ApprovalRule(company_id=company_id)
        for field in _RULE_FIELDS:
            if field in data:
                setattr(rule, field, data[field])
        rule.approvers = self._build_approvers(data.get("approvers") or [])
        self.db.add(rule)
        self.db.flush()

        audit_svc.log(
            db=self.db,
            action="approval_rule_created",
            entity_type="approval_rule",
            entity_id=rule.id,
            actor_id=actor_id,
            after=_rule_state(rule),
        )
        self.db.commit()
        self._invalidate(company_id)
        logger.info("Approval rule created: id=%s company=%s name=%s", rule.id, company_id, rule.name)
        return rule

    def update_rule(
        self,
        rule_id: uuid.UUID,
        data: dict[str, Any],
        company_id: uuid.UUID | None = None,
        actor_id: uuid.UUID | None = None,
    ) -> ApprovalRule:
        rule = self.get_rule(rule_id, company_id)
        before = _rule_state(rule)

        merged = before | data
        validate_rule_config(merged)
        self._check_approver_users(rule.company_id, data)

        for field in _RULE_FIELDS:
            if field in data:
                setattr(rule, field, data[field])
        if "approvers" in data:
            rule.approvers = self._build_approvers(data["approvers"] or [])
        self.db.flush()

        audit_svc.log(
            db=self.db,
            action="approval_rule_updated",
            entity_type="approval_rule",
            entity_id=rule.id,
            actor_id=actor_id,
            before=before,
            after=_rule_state(rule),
        )
        self.db.commit()
        self._invalidate(rule.company_id)
        return rule

    def toggle_rule(
        self,
        rule_id: uuid.UUID,
        company_id: uuid.UUID | None = None,
        actor_id: uuid.UUID | None = None,
    ) -> ApprovalRule:
        rule = self.get_rule(rule_id, company_id)
        rule.is_active = not rule.is_active
        audit_svc.log(
            db=self.db,
            action="approval_rule_activated" if rule.is_active else "approval_rule_deactivated",
            entity_type="approval_rule",
            entity_id=rule.id,
            actor_id=actor_id,
        )
        self.db.commit()
        self._invalidate(rule.company_id)
        return rule

    def delete_rule(
        self,
        rule_id: uuid.UUID,
        company_id: uuid.UUID | None = None,
        actor_id: uuid.UUID | None = None,
    ) -> None:
        """Soft delete. In-flight expenses keep evaluating against the row."""
        rule = self.get_rule(rule_id, company_id)
        rule.is_active = False
        audit_svc.log(
            db=self.db,
            action="approval_rule_deleted",
            entity_type="approval_rule",
            entity_id=rule.id,
            actor_id=actor_id,
        )
        self.db.commit()
        self._invalidate(rule.company_id)

    # ─── Internal ───

    @staticmethod
    def _build_approvers(entries: list[dict[str, Any]]) -> list[ApprovalRuleApprover]:
        # Entries without an explicit step keep their list position
        ordered = sorted(
            enumerate(entries),
            key=lambda pair: (_step_or_position(pair[1], pair[0]), pair[0]),
        )
        return [
            ApprovalRuleApprover(
                approver_id=entry["approver_id"],
                step_number=position,
                is_required=entry.get("is_required", True),
            )
            for position, (_, entry) in enumerate(ordered, start=1)
        ]

    def _check_approver_users(self, company_id: uuid.UUID, data: dict[str, Any]) -> None:
        """Approvers and the specific approver must be active users of the company."""
        ids = {a["approver_id"] for a in data.get("approvers") or []}
        if data.get("specific_approver_id") is not None:
            ids.add(data["specific_approver_id"])
        if not ids:
            return
        found = set(
            self.db.execute(
                select(User.id).where(
                    User.id.in_(ids),
                    User.company_id == company_id,
                    User.is_active.is_(True),
                )
            ).scalars().all()
        )
        missing = ids - found
        if missing:
            raise InvalidRuleConfigurationError(
                "Approvers must be active users of the same company: "
                + ", ".join(sorted(str(m) for m in missing))
            )

    def _invalidate(self, company_id: uuid.UUID) -> None:
        if self.cache is not None:
            self.cache.invalidate(company_id)


def _step_or_position(entry: dict[str, Any], index: int) -> int:
    step = entry.get("step_number")
    return index + 1 if step is None else step


def _rule_state(rule: ApprovalRule) -> dict[str, Any]:
    state = {field: getattr(rule, field) for field in _RULE_FIELDS}
    state["approvers"] = [
        {
            "approver_id": a.approver_id,
            "step_number": a.step_number,
            "is_required": a.is_required,
        }
        for a in rule.approvers
    ]
    return state
