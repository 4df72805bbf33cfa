"""
Cash closure calculator: end-of-day drawer reconciliation.

WHY: At closing time the operator counts the drawer. The system knows how
much cash should be there (opening float + cash sales - cash refunds -
cash taken out), and the difference is recorded for follow-up.

    expected = opening + cash_in - cash_out
    delta    = counted - expected     (> 0 surplus, < 0 shortage)

IMMUTABLE: one closure per local calendar day, never modified once written.
"""

from __future__ import annotations

from datetime import date

from flask import current_app, render_template
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import AuditLog, CashClosure, Transaction
from ..models.closures import delta_status
from ..models.transactions import PAYMENT_CASH, PAYMENT_STATUS_PAID
from salonpos.time_utils import local_day_bounds, utcnow
from ..validation import ConflictError, NotFoundError, format_cents, optional_text
from .audit_service import ACTION_CASH_CLOSURE, append_audit_log


class ClosureError(Exception):
    """Raised for invalid closure input."""


class ClosureExistsError(ConflictError):
    """A closure is already recorded for the date."""


def _business_tz() -> str:
    return current_app.config["BUSINESS_TIMEZONE"]


def calculate_cash_in(closure_date: date) -> tuple[int, int]:
    """
    Net cash taken during one local day: (sum_cents, transaction_count).

    Counts paid cash transactions, refunds included (their negative amounts
    reduce the sum). The window is the local day, midnight to midnight.
    """
    start, end = local_day_bounds(closure_date, _business_tz())
    total, count = (
        db.session.query(
            func.coalesce(func.sum(Transaction.total_amount_cents), 0),
            func.count(Transaction.id),
        )
        .filter(Transaction.payment_method == PAYMENT_CASH)
        .filter(Transaction.payment_status == PAYMENT_STATUS_PAID)
        .filter(Transaction.created_at >= start)
        .filter(Transaction.created_at < end)
        .one()
    )
    return int(total or 0), int(count or 0)


def _check_amount(value: int | None, field: str) -> int:
    if value is None:
        raise ClosureError(f"{field} is required")
    if isinstance(value, bool) or not isinstance(value, int):
        raise ClosureError(f"{field} must be an integer number of cents")
    if value < 0:
        raise ClosureError(f"{field} cannot be negative")
    return value


def preview_closure(
    closure_date: date,
    *,
    opening_cash_cents: int | None = None,
    cash_out_manual_cents: int | None = 0,
    counted_cash_cents: int | None = None,
) -> dict:
    """Figures the operator sees before submitting. Nothing is written."""
    if opening_cash_cents is None:
        opening_cash_cents = current_app.config["DEFAULT_OPENING_CASH_CENTS"]
    opening = _check_amount(opening_cash_cents, "opening_cash")
    cash_out = _check_amount(cash_out_manual_cents or 0, "cash_out_manual")

    cash_in, count = calculate_cash_in(closure_date)
    expected = opening + cash_in - cash_out

    preview = {
        "closure_date": closure_date.isoformat(),
        "opening_cash_cents": opening,
        "cash_in_calculated_cents": cash_in,
        "cash_out_manual_cents": cash_out,
        "expected_cash_cents": expected,
        "cash_transactions_count": count,
        "counted_cash_cents": None,
        "delta_cents": None,
        "delta_status": None,
        "already_closed": get_closure_by_date(closure_date) is not None,
    }
    if counted_cash_cents is not None:
        counted = _check_amount(counted_cash_cents, "counted_cash")
        preview["counted_cash_cents"] = counted
        preview["delta_cents"] = counted - expected
        preview["delta_status"] = delta_status(counted - expected)
    return preview


def submit_closure(
    closure_date: date,
    *,
    counted_cash_cents: int | None,
    opening_cash_cents: int | None = None,
    cash_out_manual_cents: int | None = 0,
    note: str | None = None,
    operator: str | None = None,
) -> CashClosure:
    """
    Record the closure for a date.

    Raises ClosureError on missing or negative amounts and
    ClosureExistsError when the date is already closed (including when a
    concurrent submit wins the unique constraint).
    """
    if counted_cash_cents is None:
        raise ClosureError("counted_cash is required")
    note = optional_text(note, "note", max_length=2000)

    if get_closure_by_date(closure_date) is not None:
        raise ClosureExistsError(f"A closure already exists for {closure_date.isoformat()}")

    figures = preview_closure(
        closure_date,
        opening_cash_cents=opening_cash_cents,
        cash_out_manual_cents=cash_out_manual_cents,
        counted_cash_cents=counted_cash_cents,
    )

    closure = CashClosure(
        closure_date=closure_date,
        opening_cash_cents=figures["opening_cash_cents"],
        cash_in_calculated_cents=figures["cash_in_calculated_cents"],
        cash_out_manual_cents=figures["cash_out_manual_cents"],
        expected_cash_cents=figures["expected_cash_cents"],
        counted_cash_cents=figures["counted_cash_cents"],
        delta_cents=figures["delta_cents"],
        cash_transactions_count=figures["cash_transactions_count"],
        note=note,
        closed_by=operator,
        created_at=utcnow(),
    )

    try:
        db.session.add(closure)
        db.session.flush()
        append_audit_log(
            actor=operator,
            action=ACTION_CASH_CLOSURE,
            entity_type="cash_closures",
            entity_id=closure.id,
            metadata={
                "date": closure_date.isoformat(),
                "delta_cents": closure.delta_cents,
                "expected_cents": closure.expected_cash_cents,
                "counted_cents": closure.counted_cash_cents,
            },
        )
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ClosureExistsError(f"A closure already exists for {closure_date.isoformat()}") from exc

    current_app.logger.info(
        "Cash closure %s recorded by %s: expected %s, counted %s, %s %s",
        closure_date.isoformat(),
        operator,
        format_cents(closure.expected_cash_cents),
        format_cents(closure.counted_cash_cents),
        closure.delta_status,
        format_cents(closure.delta_cents),
    )
    return closure


def list_closures(*, limit: int = 30) -> list[CashClosure]:
    """Most recent closures first."""
    limit = max(1, min(int(limit), 366))
    return (
        db.session.query(CashClosure)
        .order_by(CashClosure.closure_date.desc())
        .limit(limit)
        .all()
    )


def get_closure(closure_id: int) -> CashClosure:
    closure = db.session.query(CashClosure).filter_by(id=closure_id).first()
    if not closure:
        raise NotFoundError("Cash closure not found")
    return closure


def get_closure_by_date(closure_date: date) -> CashClosure | None:
    return db.session.query(CashClosure).filter_by(closure_date=closure_date).first()


def closure_audit_trail(closure: CashClosure) -> list[AuditLog]:
    return (
        db.session.query(AuditLog)
        .filter(AuditLog.entity_type == "cash_closures", AuditLog.entity_id == closure.id)
        .order_by(AuditLog.id.asc())
        .all()
    )


def render_closure_report(closure: CashClosure) -> str:
    """Printable HTML report of one closure."""
    return render_template(
        "closure_report.html",
        salon_name=current_app.config.get("SALON_NAME"),
        currency=current_app.config.get("CURRENCY", "CHF"),
        closure=closure,
        amount=format_cents,
        generated_at=utcnow(),
    )
