from __future__ import annotations

from ..extensions import db
from salonpos.time_utils import to_utc_z, utcnow


class AuditLog(db.Model):
    """
    Append-only audit trail for operator actions on the ledger.

    - No deletes/updates of existing entries.
    - metadata is small structured context (amounts, reasons), not a copy
      of the entity.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_entity", "entity_type", "entity_id"),
        db.Index("ix_audit_logs_action_created", "action", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    actor = db.Column(db.String(128), nullable=True, index=True)
    action = db.Column(db.String(64), nullable=False)  # refund, cash_closure, sale, ...

    entity_type = db.Column(db.String(64), nullable=False)  # pos_transactions, cash_closures, clients
    entity_id = db.Column(db.Integer, nullable=True)

    metadata_json = db.Column("metadata", db.JSON, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "actor": self.actor,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "metadata": self.metadata_json,
            "created_at": to_utc_z(self.created_at),
        }
