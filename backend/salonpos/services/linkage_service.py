"""
Transaction-client linkage and the per-client history projection.

WHY: A family visit is paid by one person (the primary client) and may
include dependents. The link rows are the source of truth; client_history
is a read-optimized copy derived from them and the transaction itself.

INVARIANTS:
- At most one primary link per transaction (service check + partial unique
  index).
- One link per (transaction, client).
- History entries for a transaction can always be regenerated from the
  ledger: project_history() is a pure function of the transaction and its
  links, and backfill_history() rewrites whatever is missing.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy import select
from sqlalchemy.orm import joinedload

from ..extensions import db
from ..models import Client, ClientHistory, Transaction, TransactionClient
from ..models.transactions import TRANSACTION_TYPE_REFUND
from ..validation import ValidationError, format_cents
from .audit_service import ACTION_HISTORY_BACKFILL, append_audit_log


HISTORY_PURCHASE = "purchase"
HISTORY_REFUND = "refund"

PRIMARY_LABEL = "Parent payeur"
INCLUDED_LABEL = "Enfant inclus"

METHOD_LABELS = {
    "cash": "Cash",
    "card": "Carte",
    "twint": "Twint",
    "mixed": "Mixte",
}


# =============================================================================
# LINK ROWS
# =============================================================================

def link_clients(
    transaction: Transaction,
    primary_id: int | None,
    included_ids: list[int] | None = None,
    *,
    touch_visit: bool = True,
) -> list[TransactionClient]:
    """
    Attach clients to a freshly inserted transaction (flush only).

    Duplicated ids collapse into one link; an included id equal to the
    primary is ignored. Linking only included clients is refused because the
    payer is always picked first at the till.
    """
    included_ids = list(included_ids or [])
    if primary_id is None:
        if included_ids:
            raise ValidationError("Included clients require a primary (paying) client")
        return []

    ordered: list[int] = [primary_id]
    for client_id in included_ids:
        if client_id not in ordered:
            ordered.append(client_id)

    clients = db.session.query(Client).filter(Client.id.in_(ordered)).all()
    found = {c.id: c for c in clients}
    missing = [cid for cid in ordered if cid not in found]
    if missing:
        raise ValidationError(f"Unknown client id(s): {', '.join(str(m) for m in missing)}")

    links = []
    for client_id in ordered:
        link = TransactionClient(
            transaction_id=transaction.id,
            client_id=client_id,
            is_primary=(client_id == primary_id),
        )
        db.session.add(link)
        links.append(link)
        if touch_visit:
            found[client_id].last_visit_at = transaction.created_at

    db.session.flush()
    return links


def copy_links(source: Transaction, target: Transaction) -> list[TransactionClient]:
    """Give `target` the same clients and primary flags as `source` (used by refunds)."""
    links = []
    for link in get_links(source.id):
        copy = TransactionClient(
            transaction_id=target.id,
            client_id=link.client_id,
            is_primary=link.is_primary,
        )
        db.session.add(copy)
        links.append(copy)
    db.session.flush()
    return links


def get_links(transaction_id: int) -> list[TransactionClient]:
    """Links for a transaction, primary first."""
    return (
        db.session.query(TransactionClient)
        .options(joinedload(TransactionClient.client))
        .filter(TransactionClient.transaction_id == transaction_id)
        .order_by(TransactionClient.is_primary.desc(), TransactionClient.id.asc())
        .all()
    )


# =============================================================================
# HISTORY PROJECTION
# =============================================================================

def project_history(transaction: Transaction, links: list[TransactionClient] | None = None) -> list[dict]:
    """
    History entries the ledger implies for one transaction.

    Pure read: nothing is written. Each linked client gets one entry whose
    action follows the transaction type (purchase or refund).
    """
    if links is None:
        links = get_links(transaction.id)
    if not links:
        return []

    currency = current_app.config.get("CURRENCY", "CHF")
    method_label = METHOD_LABELS.get(transaction.payment_method, transaction.payment_method)
    is_refund = transaction.transaction_type == TRANSACTION_TYPE_REFUND
    action = HISTORY_REFUND if is_refund else HISTORY_PURCHASE
    amount = format_cents(abs(transaction.total_amount_cents))

    all_clients = [
        {
            "id": link.client_id,
            "name": link.client.full_name if link.client else None,
            "is_primary": link.is_primary,
        }
        for link in links
    ]

    entries = []
    for link in links:
        label = PRIMARY_LABEL if link.is_primary else INCLUDED_LABEL
        if is_refund:
            description = f"{label} - Remboursement de {amount} {currency} ({transaction.transaction_number})"
        else:
            description = f"{label} - Achat de {amount} {currency} via {method_label}"

        metadata = {
            "transaction_id": transaction.id,
            "transaction_number": transaction.transaction_number,
            "items": list(transaction.items or []),
            "payment_method": transaction.payment_method,
            "is_primary": link.is_primary,
            "all_clients": all_clients,
        }
        if is_refund:
            metadata["original_transaction_id"] = transaction.parent_transaction_id
            metadata["reason"] = transaction.refund_reason

        entries.append({
            "client_id": link.client_id,
            "action_type": action,
            "description": description,
            "transaction_id": transaction.id,
            "amount_cents": transaction.total_amount_cents,
            "payment_method": transaction.payment_method,
            "is_primary": link.is_primary,
            "metadata": metadata,
            "created_by": transaction.created_by,
            "created_at": transaction.created_at,
        })
    return entries


def write_history(transaction: Transaction, links: list[TransactionClient] | None = None) -> list[ClientHistory]:
    """Persist the projected entries that are not stored yet (flush only)."""
    existing = {
        (row.client_id, row.action_type)
        for row in db.session.query(ClientHistory.client_id, ClientHistory.action_type)
        .filter(ClientHistory.transaction_id == transaction.id)
        .all()
    }

    written = []
    for entry in project_history(transaction, links):
        if (entry["client_id"], entry["action_type"]) in existing:
            continue
        row = ClientHistory(
            client_id=entry["client_id"],
            action_type=entry["action_type"],
            description=entry["description"],
            transaction_id=entry["transaction_id"],
            amount_cents=entry["amount_cents"],
            payment_method=entry["payment_method"],
            is_primary=entry["is_primary"],
            metadata_json=entry["metadata"],
            created_by=entry["created_by"],
            created_at=entry["created_at"],
        )
        db.session.add(row)
        written.append(row)

    if written:
        db.session.flush()
    return written


def _linked_transactions(since: datetime | None):
    query = (
        db.session.query(Transaction)
        .filter(Transaction.id.in_(select(TransactionClient.transaction_id)))
        .order_by(Transaction.id.asc())
    )
    if since is not None:
        query = query.filter(Transaction.created_at >= since)
    return query


def backfill_history(*, since: datetime | None = None, actor: str | None = None) -> dict:
    """
    Regenerate missing history entries from the ledger and commit.

    Repairs the window left open when a sale committed but its history
    savepoint failed.
    """
    scanned = 0
    written_total = 0
    repaired = []

    for transaction in _linked_transactions(since):
        scanned += 1
        written = write_history(transaction)
        if written:
            written_total += len(written)
            repaired.append(transaction.transaction_number)

    if written_total:
        append_audit_log(
            actor=actor,
            action=ACTION_HISTORY_BACKFILL,
            entity_type="client_history",
            entity_id=None,
            metadata={"entries_written": written_total, "transactions": repaired},
        )
        current_app.logger.warning(
            "History backfill wrote %s entries for %s transactions",
            written_total, len(repaired),
        )
    db.session.commit()

    return {
        "transactions_scanned": scanned,
        "entries_written": written_total,
        "transactions_repaired": repaired,
    }


def verify_history(*, since: datetime | None = None) -> dict:
    """Compare stored history with the projection. Read-only."""
    missing = []
    mismatched = []

    for transaction in _linked_transactions(since):
        stored = {
            (row.client_id, row.action_type): row
            for row in db.session.query(ClientHistory)
            .filter(ClientHistory.transaction_id == transaction.id)
            .all()
        }
        for entry in project_history(transaction):
            row = stored.get((entry["client_id"], entry["action_type"]))
            if row is None:
                missing.append({
                    "transaction_number": transaction.transaction_number,
                    "client_id": entry["client_id"],
                    "action_type": entry["action_type"],
                })
            elif row.amount_cents != entry["amount_cents"] or bool(row.is_primary) != entry["is_primary"]:
                mismatched.append({
                    "transaction_number": transaction.transaction_number,
                    "client_id": entry["client_id"],
                    "stored_amount_cents": row.amount_cents,
                    "expected_amount_cents": entry["amount_cents"],
                })

    orphan_query = (
        db.session.query(ClientHistory)
        .outerjoin(
            TransactionClient,
            db.and_(
                TransactionClient.transaction_id == ClientHistory.transaction_id,
                TransactionClient.client_id == ClientHistory.client_id,
            ),
        )
        .filter(ClientHistory.transaction_id.isnot(None))
        .filter(TransactionClient.id.is_(None))
    )
    if since is not None:
        orphan_query = orphan_query.filter(ClientHistory.created_at >= since)
    orphans = [
        {"history_id": row.id, "client_id": row.client_id, "transaction_id": row.transaction_id}
        for row in orphan_query.all()
    ]

    return {
        "ok": not (missing or mismatched or orphans),
        "missing": missing,
        "mismatched": mismatched,
        "orphans": orphans,
    }


def client_history(client_id: int, *, limit: int = 100) -> list[ClientHistory]:
    return (
        db.session.query(ClientHistory)
        .filter(ClientHistory.client_id == client_id)
        .order_by(ClientHistory.created_at.desc(), ClientHistory.id.desc())
        .limit(limit)
        .all()
    )
