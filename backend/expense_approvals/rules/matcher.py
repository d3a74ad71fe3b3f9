"""Rule matcher: picks the one rule (or none) that governs an expense.

Candidates are the company's active rules for the expense category plus its
"all categories" rules whose inclusive amount range contains the converted
amount. When several overlap, the most specific one wins:

  1. exact category before the wildcard
  2. fewer unbounded sides (a one-sided range beats an open one)
  3. narrower amount window
  4. older rule (created_at), then id, so the choice is stable

No match is a valid answer: the flow initiator auto-approves.
"""
import logging
import uuid
from datetime import datetime
from decimal import Decimal
from typing import Iterable

from sqlalchemy.orm import Session

from expense_approvals.rules.snapshot import RuleSnapshot

logger = logging.getLogger(__name__)

_INFINITE_WIDTH = Decimal("Infinity")


def _specificity_key(rule: RuleSnapshot, category: str) -> tuple:
    unbounded_sides = (rule.min_amount is None) + (rule.max_amount is None)
    if unbounded_sides:
        width = _INFINITE_WIDTH
    else:
        width = rule.max_amount - rule.min_amount
    created = rule.created_at.timestamp() if isinstance(rule.created_at, datetime) else float("inf")
    return (
        0 if rule.category == category else 1,
        unbounded_sides,
        width,
        created,
        str(rule.id),
    )


def select_rule(
    rules: Iterable[RuleSnapshot],
    category: str,
    amount: Decimal,
) -> RuleSnapshot | None:
    """Return the governing rule among ``rules`` or None."""
    amount = Decimal(str(amount))
    candidates = [
        r for r in rules
        if r.is_active
        and (r.category is None or r.category == category)
        and r.covers(amount)
    ]
    if not candidates:
        return None
    if len(candidates) > 1:
        logger.debug(
            "select_rule: %d rules overlap category=%s amount=%s; using most specific",
            len(candidates), category, amount,
        )
    return min(candidates, key=lambda r: _specificity_key(r, category))


def find_matching_rule(
    db: Session,
    company_id: uuid.UUID,
    category: str,
    amount: Decimal,
    rule_store=None,
) -> RuleSnapshot | None:
    """Load the company's rules for ``category`` and select the governing one.

    ``rule_store`` defaults to an uncached RuleStore bound to ``db``; the API
    layer passes one wired to the shared RuleCache.
    """
    if rule_store is None:
        from expense_approvals.services.rule_store import RuleStore
        rule_store = RuleStore(db)

    rule = select_rule(rule_store.rules_for(company_id, category), category, amount)
    if rule is None:
        logger.info(
            "find_matching_rule: no rule for company=%s category=%s amount=%s",
            company_id, category, amount,
        )
    return rule
