"""
Refund processor: reverse a paid sale with a mirrored negative transaction.

WHY: The original sale is a ledger fact and stays untouched. The refund is a
new row with every amount negated, so any sum over the ledger (cash-in for
a closure, revenue for a period) nets out automatically.

RULES:
- Only paid sales can be refunded, in full, once.
- A reason is mandatory.
- Refund row, copied client links and the audit entry are written in one
  commit. Refund history goes through the same savepoint as sale history.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Transaction
from ..models.transactions import (
    PAYMENT_STATUS_PAID,
    TRANSACTION_TYPE_REFUND,
    TRANSACTION_TYPE_SALE,
)
from salonpos.time_utils import utcnow
from ..validation import NotFoundError
from .audit_service import ACTION_REFUND, append_audit_log
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_document_number
from .linkage_service import copy_links
from .transaction_service import (
    TRANSACTION_DOCUMENT_TYPE,
    TRANSACTION_PREFIX,
    LedgerWriteError,
    record_history,
)


class RefundError(Exception):
    """Raised when a refund request is refused."""


class RefundConflictError(RefundError):
    """The sale has already been refunded."""


def _negate(cents: int | None) -> int | None:
    return -cents if cents is not None else None


def refund_transaction(transaction_id: int, reason: str | None, operator: str | None = None) -> Transaction:
    """
    Refund a paid sale in full.

    Raises RefundError (bad reason, wrong type or status), NotFoundError
    (unknown id) or RefundConflictError (already refunded). No row is written
    when any of them is raised.
    """
    if reason is None or not isinstance(reason, str) or not reason.strip():
        raise RefundError("A refund reason is required")
    reason = reason.strip()
    if len(reason) > 500:
        raise RefundError("Refund reason must be at most 500 characters")

    def _op():
        original = lock_for_update(db.session.query(Transaction).filter_by(id=transaction_id)).first()
        if not original:
            raise NotFoundError("Transaction not found")

        if original.transaction_type != TRANSACTION_TYPE_SALE:
            raise RefundError("Only sales can be refunded")
        if original.payment_status != PAYMENT_STATUS_PAID:
            raise RefundError(f"Cannot refund a transaction with status {original.payment_status}")

        already = (
            db.session.query(Transaction.id)
            .filter(Transaction.parent_transaction_id == original.id)
            .filter(Transaction.transaction_type == TRANSACTION_TYPE_REFUND)
            .first()
        )
        if already:
            raise RefundConflictError(f"Transaction {original.transaction_number} has already been refunded")

        refund = Transaction(
            transaction_number=next_document_number(
                document_type=TRANSACTION_DOCUMENT_TYPE,
                prefix=TRANSACTION_PREFIX,
            ),
            transaction_type=TRANSACTION_TYPE_REFUND,
            total_amount_cents=-original.total_amount_cents,
            total_net_cents=_negate(original.total_net_cents),
            total_vat_cents=_negate(original.total_vat_cents),
            total_gross_cents=_negate(original.total_gross_cents),
            payment_method=original.payment_method,
            payment_status=PAYMENT_STATUS_PAID,
            items=list(original.items or []),
            client_id=original.client_id,
            parent_transaction_id=original.id,
            refund_reason=reason,
            notes=f"Remboursement de {original.transaction_number}",
            created_by=operator,
            created_at=utcnow(),
        )
        db.session.add(refund)
        db.session.flush()

        links = copy_links(original, refund)
        record_history(refund, links)

        append_audit_log(
            actor=operator,
            action=ACTION_REFUND,
            entity_type="pos_transactions",
            entity_id=refund.id,
            metadata={
                "original_transaction": original.transaction_number,
                "original_transaction_id": original.id,
                "amount_cents": refund.total_amount_cents,
                "reason": reason,
            },
        )

        db.session.commit()
        return refund

    try:
        refund = run_with_retry(_op)
    except (RefundError, NotFoundError):
        db.session.rollback()
        raise
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Refund write failed for transaction %s", transaction_id)
        raise LedgerWriteError("Refund could not be recorded") from exc

    current_app.logger.info(
        "Refund %s recorded for transaction %s: %s cents (%s)",
        refund.transaction_number,
        transaction_id,
        refund.total_amount_cents,
        reason,
    )
    return refund
