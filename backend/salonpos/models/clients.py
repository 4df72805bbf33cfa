from __future__ import annotations

from ..extensions import db
from salonpos.time_utils import to_utc_z, utcnow


class Client(db.Model):
    """
    Salon client, possibly a dependent of another client.

    FAMILY: a child has `parent_id` set and `is_independent` False until
    they pass the configured age threshold or are detached by hand.
    """
    __tablename__ = "clients"
    __table_args__ = (
        db.UniqueConstraint("client_number", name="uq_clients_number"),
        db.Index("ix_clients_name", "last_name", "first_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    client_number = db.Column(db.String(32), nullable=False)

    first_name = db.Column(db.String(128), nullable=False)
    last_name = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)
    date_of_birth = db.Column(db.Date, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    parent_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=True, index=True)
    is_independent = db.Column(db.Boolean, nullable=False, default=True)
    became_independent_at = db.Column(db.DateTime(timezone=True), nullable=True)

    last_visit_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    parent = db.relationship("Client", remote_side=[id], backref=db.backref("children", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "client_number": self.client_number,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "date_of_birth": self.date_of_birth.isoformat() if self.date_of_birth else None,
            "notes": self.notes,
            "parent_id": self.parent_id,
            "is_independent": self.is_independent,
            "became_independent_at": to_utc_z(self.became_independent_at) if self.became_independent_at else None,
            "last_visit_at": to_utc_z(self.last_visit_at) if self.last_visit_at else None,
            "created_at": to_utc_z(self.created_at),
        }


class ClientHistory(db.Model):
    """
    Per-client activity entry.

    DERIVED: purchase/refund entries are a projection of the ledger
    (pos_transactions + pos_transaction_clients) kept for fast per-client
    lookups. The ledger wins on any disagreement; see linkage_service.
    """
    __tablename__ = "client_history"
    __table_args__ = (
        db.Index("ix_client_history_client_created", "client_id", "created_at"),
        db.UniqueConstraint("client_id", "transaction_id", "action_type", name="uq_client_history_client_tx_action"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)
    action_type = db.Column(db.String(32), nullable=False, index=True)  # purchase, refund
    description = db.Column(db.String(500), nullable=False)

    transaction_id = db.Column(db.Integer, db.ForeignKey("pos_transactions.id"), nullable=True, index=True)
    amount_cents = db.Column(db.Integer, nullable=True)
    payment_method = db.Column(db.String(16), nullable=True)
    is_primary = db.Column(db.Boolean, nullable=True)
    metadata_json = db.Column("metadata", db.JSON, nullable=True)

    created_by = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    client = db.relationship("Client", backref=db.backref("history", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "client_id": self.client_id,
            "action_type": self.action_type,
            "description": self.description,
            "transaction_id": self.transaction_id,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "is_primary": self.is_primary,
            "metadata": self.metadata_json,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
