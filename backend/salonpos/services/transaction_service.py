"""
Transaction ledger: record sales and read them back.

WHY: Every franc that passes the till is one immutable row. Corrections are
refund rows (see refund_service), never edits, so that cash closures and
statistics computed yesterday still add up today.

WRITE PATH (create_sale):
    transaction + client links + sale audit entry  -> one commit
    client history                                 -> savepoint inside it

A failure before the commit rolls everything back and raises
LedgerWriteError. A failure inside the history savepoint is logged and the
sale still commits; `flask ledger backfill-history` repairs it.
"""

from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..models import Client, Transaction, TransactionClient
from ..models.transactions import (
    PAYMENT_METHODS,
    PAYMENT_STATUS_PAID,
    TRANSACTION_TYPE_SALE,
    TRANSACTION_TYPES,
)
from salonpos.time_utils import local_day_bounds, local_range_bounds, utcnow
from ..validation import NotFoundError, ValidationError, optional_text
from .audit_service import (
    ACTION_SALE,
    ACTION_TRANSACTION_NOTES,
    ACTION_TRANSACTION_PHOTO,
    append_audit_log,
)
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .draft import DraftTransaction
from .linkage_service import get_links, link_clients, write_history


TRANSACTION_DOCUMENT_TYPE = "TRANSACTION"
TRANSACTION_PREFIX = "T"


class TransactionError(Exception):
    """Raised for ledger operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class LedgerWriteError(TransactionError):
    """The store refused the write; nothing was committed."""


# =============================================================================
# AMOUNTS
# =============================================================================

def compute_vat_breakdown(gross_cents: int, rate_bps: int) -> dict:
    """
    Split a VAT-inclusive amount.

    net = round(gross * 10000 / (10000 + rate)), half away from zero;
    vat = gross - net, so net + vat == gross exactly.
    """
    if rate_bps < 0:
        raise ValidationError("VAT rate cannot be negative")
    divisor = 10000 + rate_bps
    magnitude = (abs(gross_cents) * 10000 * 2 + divisor) // (2 * divisor)
    net = magnitude if gross_cents >= 0 else -magnitude
    return {
        "total_gross_cents": gross_cents,
        "total_net_cents": net,
        "total_vat_cents": gross_cents - net,
    }


# =============================================================================
# WRITE PATH
# =============================================================================

def create_sale(draft: DraftTransaction, operator: str | None = None) -> Transaction:
    """
    Record a paid sale from a draft.

    Raises ValidationError on a bad draft (before any write) and
    LedgerWriteError when the store rejects the transaction or its links.
    """
    draft.validate()

    total = draft.total_cents
    breakdown = {"total_gross_cents": None, "total_net_cents": None, "total_vat_cents": None}
    if draft.include_vat:
        breakdown = compute_vat_breakdown(total, current_app.config.get("VAT_RATE_BPS", 0))

    notes = optional_text(draft.notes, "notes", max_length=5000)

    def _op():
        try:
            transaction = Transaction(
                transaction_number=next_document_number(
                    document_type=TRANSACTION_DOCUMENT_TYPE,
                    prefix=TRANSACTION_PREFIX,
                ),
                transaction_type=TRANSACTION_TYPE_SALE,
                total_amount_cents=total,
                payment_method=draft.payment_method,
                payment_status=PAYMENT_STATUS_PAID,
                items=[item.to_dict() for item in draft.items],
                client_id=draft.primary_client_id,
                notes=notes,
                created_by=operator,
                created_at=utcnow(),
                **breakdown,
            )
            db.session.add(transaction)
            db.session.flush()

            links = link_clients(transaction, draft.primary_client_id, draft.included_client_ids)
        except ValidationError:
            db.session.rollback()
            raise
        except IntegrityError as exc:
            db.session.rollback()
            current_app.logger.exception("Ledger insert rejected")
            raise LedgerWriteError("Transaction could not be recorded", details={"reason": str(exc.orig)}) from exc

        record_history(transaction, links)

        append_audit_log(
            actor=operator,
            action=ACTION_SALE,
            entity_type="pos_transactions",
            entity_id=transaction.id,
            metadata={
                "transaction_number": transaction.transaction_number,
                "amount_cents": total,
                "payment_method": transaction.payment_method,
                "client_ids": [link.client_id for link in links],
            },
        )

        db.session.commit()
        return transaction

    try:
        transaction = run_with_retry(_op)
    except (ValidationError, LedgerWriteError):
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Ledger write failed")
        raise LedgerWriteError("Transaction could not be recorded") from exc

    current_app.logger.info(
        "Sale %s recorded: %s cents via %s (%s client(s))",
        transaction.transaction_number,
        transaction.total_amount_cents,
        transaction.payment_method,
        len(draft.clients),
    )
    return transaction


def record_history(transaction: Transaction, links: list[TransactionClient]) -> None:
    """Write client history in a savepoint; a failure there is logged and leaves the ledger write intact."""
    if not links:
        return
    try:
        with db.session.begin_nested():
            write_history(transaction, links)
    except SQLAlchemyError:
        current_app.logger.exception(
            "Client history not written for %s; run `flask ledger backfill-history`",
            transaction.transaction_number,
        )


def update_notes(transaction_id: int, notes: str | None, operator: str | None = None) -> Transaction:
    """Replace the free-text notes of a transaction (audited)."""
    cleaned = optional_text(notes, "notes", max_length=5000)

    def _op():
        transaction = lock_for_update(db.session.query(Transaction).filter_by(id=transaction_id)).first()
        if not transaction:
            raise NotFoundError("Transaction not found")

        previous = transaction.notes
        transaction.notes = cleaned
        append_audit_log(
            actor=operator,
            action=ACTION_TRANSACTION_NOTES,
            entity_type="pos_transactions",
            entity_id=transaction.id,
            metadata={"previous": previous, "notes": cleaned},
        )
        db.session.commit()
        return transaction

    return run_with_retry(_op)


def attach_photo(transaction_id: int, photo_url: str | None, operator: str | None = None) -> Transaction:
    """Point a transaction at an already-uploaded photo (or clear it with None)."""
    cleaned = optional_text(photo_url, "photo_url", max_length=1024)
    if cleaned and not cleaned.lower().startswith(("http://", "https://")):
        raise ValidationError("photo_url must be an http(s) URL")

    def _op():
        transaction = lock_for_update(db.session.query(Transaction).filter_by(id=transaction_id)).first()
        if not transaction:
            raise NotFoundError("Transaction not found")

        previous = transaction.photo_url
        transaction.photo_url = cleaned
        append_audit_log(
            actor=operator,
            action=ACTION_TRANSACTION_PHOTO,
            entity_type="pos_transactions",
            entity_id=transaction.id,
            metadata={"previous": previous, "photo_url": cleaned},
        )
        db.session.commit()
        return transaction

    return run_with_retry(_op)


# =============================================================================
# READS
# =============================================================================

def get_transaction(transaction_id: int) -> Transaction | None:
    return db.session.query(Transaction).filter_by(id=transaction_id).first()


def get_transaction_detail(transaction_id: int) -> dict:
    """Transaction with its linked clients and any refunds."""
    transaction = get_transaction(transaction_id)
    if not transaction:
        raise NotFoundError("Transaction not found")

    data = transaction.to_dict()
    data["clients"] = [link.to_dict() for link in get_links(transaction.id)]
    data["refunds"] = [refund.to_dict() for refund in transaction.refunds]
    data["refundable"] = is_refundable(transaction)
    return data


def is_refundable(transaction: Transaction) -> bool:
    return (
        transaction.transaction_type == TRANSACTION_TYPE_SALE
        and transaction.payment_status == PAYMENT_STATUS_PAID
        and not transaction.refunds
    )


def list_transactions(
    *,
    transaction_type: str | None = None,
    payment_method: str | None = None,
    on_date: date | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    client_id: int | None = None,
    search: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Transaction]:
    """
    Newest first. Dates are local calendar days in BUSINESS_TIMEZONE;
    `search` matches the transaction number or a linked client's name/number.
    """
    if transaction_type and transaction_type not in TRANSACTION_TYPES:
        raise ValidationError(f"type must be one of {list(TRANSACTION_TYPES)}")
    if payment_method and payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of {list(PAYMENT_METHODS)}")
    if start_date and end_date and start_date > end_date:
        raise ValidationError("start_date must be on or before end_date")

    tz_name = current_app.config["BUSINESS_TIMEZONE"]
    query = db.session.query(Transaction)

    if transaction_type:
        query = query.filter(Transaction.transaction_type == transaction_type)
    if payment_method:
        query = query.filter(Transaction.payment_method == payment_method)

    if on_date:
        start, end = local_day_bounds(on_date, tz_name)
        query = query.filter(Transaction.created_at >= start, Transaction.created_at < end)
    elif start_date or end_date:
        start, end = local_range_bounds(start_date or end_date, end_date or start_date, tz_name)
        if start_date:
            query = query.filter(Transaction.created_at >= start)
        if end_date:
            query = query.filter(Transaction.created_at < end)

    if client_id is not None:
        linked = select(TransactionClient.transaction_id).where(TransactionClient.client_id == client_id)
        query = query.filter(or_(Transaction.client_id == client_id, Transaction.id.in_(linked)))

    if search and search.strip():
        pattern = f"%{search.strip()}%"
        matching_clients = select(Client.id).where(
            or_(
                Client.first_name.ilike(pattern),
                Client.last_name.ilike(pattern),
                Client.client_number.ilike(pattern),
            )
        )
        linked = select(TransactionClient.transaction_id).where(
            TransactionClient.client_id.in_(matching_clients)
        )
        query = query.filter(
            or_(
                Transaction.transaction_number.ilike(pattern),
                Transaction.id.in_(linked),
            )
        )

    limit = max(1, min(int(limit), 500))
    return (
        query.order_by(Transaction.created_at.desc(), Transaction.id.desc())
        .offset(max(0, int(offset)))
        .limit(limit)
        .all()
    )
