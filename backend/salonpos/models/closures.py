from __future__ import annotations

from ..extensions import db
from salonpos.time_utils import to_utc_z, utcnow


DELTA_SURPLUS = "surplus"
DELTA_SHORTAGE = "shortage"
DELTA_EXACT = "exact"


def delta_status(delta_cents: int) -> str:
    """Bucket a counted-minus-expected difference: positive = surplus in drawer."""
    if delta_cents > 0:
        return DELTA_SURPLUS
    if delta_cents < 0:
        return DELTA_SHORTAGE
    return DELTA_EXACT


class CashClosure(db.Model):
    """
    End-of-day cash drawer reconciliation.

    LIFECYCLE: a date is either not closed or closed (one row per date).
    The row is written once and never modified or reopened.

    expected = opening + cash_in_calculated - cash_out_manual
    delta    = counted - expected
    """
    __tablename__ = "cash_closures"
    __table_args__ = (
        db.UniqueConstraint("closure_date", name="uq_cash_closures_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    closure_date = db.Column(db.Date, nullable=False)

    # All amounts in cents
    opening_cash_cents = db.Column(db.Integer, nullable=False)
    cash_in_calculated_cents = db.Column(db.Integer, nullable=False)
    cash_out_manual_cents = db.Column(db.Integer, nullable=False, default=0)
    expected_cash_cents = db.Column(db.Integer, nullable=False)
    counted_cash_cents = db.Column(db.Integer, nullable=False)
    delta_cents = db.Column(db.Integer, nullable=False)

    cash_transactions_count = db.Column(db.Integer, nullable=False, default=0)

    note = db.Column(db.Text, nullable=True)
    closed_by = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    @property
    def delta_status(self) -> str:
        return delta_status(self.delta_cents)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "closure_date": self.closure_date.isoformat(),
            "opening_cash_cents": self.opening_cash_cents,
            "cash_in_calculated_cents": self.cash_in_calculated_cents,
            "cash_out_manual_cents": self.cash_out_manual_cents,
            "expected_cash_cents": self.expected_cash_cents,
            "counted_cash_cents": self.counted_cash_cents,
            "delta_cents": self.delta_cents,
            "delta_status": self.delta_status,
            "cash_transactions_count": self.cash_transactions_count,
            "note": self.note,
            "closed_by": self.closed_by,
            "created_at": to_utc_z(self.created_at),
        }
