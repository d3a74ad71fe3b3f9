"""Audit log helper, append-only writes to audit_logs table."""
import json
import logging
import uuid
from typing import Any

from sqlalchemy.orm import Session

from expense_approvals.models.audit import AuditLog

logger = logging.getLogger(__name__)


def log(
    db: Session,
    action: str,
    entity_type: str,
    entity_id: uuid.UUID | str | None = None,
    actor_id: uuid.UUID | str | None = None,
    before: Any | None = None,
    after: Any | None = None,
    notes: str | None = None,
) -> AuditLog:
    """Write a single audit log entry inside the caller's transaction.

    Args:
        action: Short verb, e.g. 'approval_flow_initiated', 'expense_rejected'.
        entity_type: 'expense', 'approval_request' or 'approval_rule'.
        entity_id: PK of the affected record.
        actor_id: User who acted (None for engine-driven transitions).
        before / after: JSON-serialisable state snapshots.
    """
    entry = AuditLog(
        actor_id=uuid.UUID(str(actor_id)) if actor_id else None,
        action=action,
        entity_type=entity_type,
        entity_id=uuid.UUID(str(entity_id)) if entity_id else None,
        before_state=json.dumps(before, default=str) if before is not None else None,
        after_state=json.dumps(after, default=str) if after is not None else None,
        notes=notes,
    )
    db.add(entry)
    db.flush()  # caller owns the commit
    logger.debug("Audit: %s %s/%s", action, entity_type, entity_id)
    return entry
