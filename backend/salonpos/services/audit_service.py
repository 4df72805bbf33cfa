# Overview: Append-only audit log writes.

"""
Audit log invariants

- Append-only: entries are never updated or deleted.
- Entries are written inside the same DB transaction as the action they
  record (flush here, the caller commits).
"""

from __future__ import annotations

from ..extensions import db
from ..models import AuditLog


ACTION_SALE = "sale"
ACTION_REFUND = "refund"
ACTION_CASH_CLOSURE = "cash_closure"
ACTION_TRANSACTION_NOTES = "transaction_notes"
ACTION_TRANSACTION_PHOTO = "transaction_photo"
ACTION_CLIENT_DETACHED = "client_detached"
ACTION_HISTORY_BACKFILL = "history_backfill"


def append_audit_log(
    *,
    actor: str | None,
    action: str,
    entity_type: str,
    entity_id: int | None,
    metadata: dict | None = None,
) -> AuditLog:
    entry = AuditLog(
        actor=actor,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        metadata_json=metadata or {},
    )
    db.session.add(entry)
    db.session.flush()  # ensures entry.id is assigned without committing
    return entry
