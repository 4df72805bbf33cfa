from __future__ import annotations

from sqlalchemy import event, inspect

from ..extensions import db
from salonpos.time_utils import to_utc_z, utcnow


TRANSACTION_TYPE_SALE = "sale"
TRANSACTION_TYPE_REFUND = "refund"
TRANSACTION_TYPES = (TRANSACTION_TYPE_SALE, TRANSACTION_TYPE_REFUND)

PAYMENT_CASH = "cash"
PAYMENT_CARD = "card"
PAYMENT_TWINT = "twint"
PAYMENT_MIXED = "mixed"
PAYMENT_METHODS = (PAYMENT_CASH, PAYMENT_CARD, PAYMENT_TWINT, PAYMENT_MIXED)

PAYMENT_STATUS_PAID = "paid"
PAYMENT_STATUS_PENDING = "pending"
PAYMENT_STATUS_CANCELLED = "cancelled"

ITEM_TYPE_PRODUCT = "product"
ITEM_TYPE_SERVICE = "service"
ITEM_TYPES = (ITEM_TYPE_PRODUCT, ITEM_TYPE_SERVICE)

# Columns that may be written after insert. Everything else is a monetary
# or structural fact and only changes through a new refund row.
MUTABLE_COLUMNS = frozenset({"notes", "photo_url", "version_id"})


class LedgerImmutableError(Exception):
    """Raised when a flush would modify a ledger fact in place."""


class Transaction(db.Model):
    """
    One sale or refund event in the point-of-sale ledger.

    APPEND-ONLY: monetary fields, type, method, items and parent reference
    are fixed at insert. Only `notes` and `photo_url` can change afterwards;
    a wrong amount is corrected by a refund row pointing at the original.
    """
    __tablename__ = "pos_transactions"
    __table_args__ = (
        db.UniqueConstraint("transaction_number", name="uq_pos_transactions_number"),
        db.Index("ix_pos_transactions_method_status_created", "payment_method", "payment_status", "created_at"),
        db.Index("ix_pos_transactions_type_created", "transaction_type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable sequential number (e.g., "T-000042")
    transaction_number = db.Column(db.String(32), nullable=False)
    transaction_type = db.Column(db.String(16), nullable=False, default=TRANSACTION_TYPE_SALE, index=True)

    # Amounts in cents, signed (negative for refunds)
    total_amount_cents = db.Column(db.Integer, nullable=False)
    total_net_cents = db.Column(db.Integer, nullable=True)
    total_vat_cents = db.Column(db.Integer, nullable=True)
    total_gross_cents = db.Column(db.Integer, nullable=True)

    payment_method = db.Column(db.String(16), nullable=False, index=True)
    payment_status = db.Column(db.String(16), nullable=False, default=PAYMENT_STATUS_PAID, index=True)

    # Cart as submitted: [{name, price_cents, quantity, type, ...}]
    items = db.Column(db.JSON, nullable=False, default=list)

    # Payer (primary linked client), denormalized for fast filtering
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=True, index=True)

    # Refund bookkeeping
    parent_transaction_id = db.Column(db.Integer, db.ForeignKey("pos_transactions.id"), nullable=True, index=True)
    refund_reason = db.Column(db.String(500), nullable=True)

    # The two mutable, non-monetary fields
    notes = db.Column(db.Text, nullable=True)
    photo_url = db.Column(db.String(1024), nullable=True)

    created_by = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    client = db.relationship("Client", foreign_keys=[client_id])
    parent_transaction = db.relationship(
        "Transaction",
        remote_side=[id],
        backref=db.backref("refunds", lazy=True),
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_refund(self) -> bool:
        return self.transaction_type == TRANSACTION_TYPE_REFUND

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_number": self.transaction_number,
            "transaction_type": self.transaction_type,
            "total_amount_cents": self.total_amount_cents,
            "total_net_cents": self.total_net_cents,
            "total_vat_cents": self.total_vat_cents,
            "total_gross_cents": self.total_gross_cents,
            "payment_method": self.payment_method,
            "payment_status": self.payment_status,
            "items": list(self.items or []),
            "client_id": self.client_id,
            "parent_transaction_id": self.parent_transaction_id,
            "refund_reason": self.refund_reason,
            "notes": self.notes,
            "photo_url": self.photo_url,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


@event.listens_for(Transaction, "before_update")
def _guard_ledger_facts(mapper, connection, target):
    state = inspect(target)
    changed = [
        attr.key
        for attr in state.attrs
        if attr.key in mapper.columns.keys()
        and attr.key not in MUTABLE_COLUMNS
        and attr.history.has_changes()
    ]
    if changed:
        raise LedgerImmutableError(
            f"Transaction {target.transaction_number} is immutable; attempted to change: {', '.join(sorted(changed))}"
        )


class TransactionClient(db.Model):
    """
    Client attached to a transaction.

    Exactly one row per transaction may be the payer (is_primary). Other rows
    are people included in the visit (children in a family booking); they
    get history entries but are not billed.
    """
    __tablename__ = "pos_transaction_clients"
    __table_args__ = (
        db.UniqueConstraint("transaction_id", "client_id", name="uq_tx_clients_tx_client"),
        db.Index(
            "uq_tx_clients_one_primary",
            "transaction_id",
            unique=True,
            sqlite_where=db.text("is_primary = 1"),
            postgresql_where=db.text("is_primary"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("pos_transactions.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)
    is_primary = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    transaction = db.relationship("Transaction", backref=db.backref("client_links", lazy=True))
    client = db.relationship("Client", backref=db.backref("transaction_links", lazy=True))

    def to_dict(self) -> dict:
        client = self.client
        return {
            "transaction_id": self.transaction_id,
            "client_id": self.client_id,
            "client_number": client.client_number if client else None,
            "first_name": client.first_name if client else None,
            "last_name": client.last_name if client else None,
            "is_primary": self.is_primary,
        }
