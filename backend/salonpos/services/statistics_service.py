# Overview: Read-only rollups over the ledger and cash closures.

from __future__ import annotations

import calendar
from collections import defaultdict
from datetime import date, timedelta

from flask import current_app
from sqlalchemy import case, func, select

from ..extensions import db
from ..models import CashClosure, Client, Transaction, TransactionClient
from ..models.closures import DELTA_EXACT, DELTA_SHORTAGE, DELTA_SURPLUS, delta_status
from ..models.transactions import (
    ITEM_TYPE_SERVICE,
    PAYMENT_METHODS,
    PAYMENT_STATUS_PAID,
    TRANSACTION_TYPE_REFUND,
    TRANSACTION_TYPE_SALE,
)
from salonpos.time_utils import local_range_bounds, local_today, to_local_date, to_utc_z, utcnow


class StatisticsError(Exception):
    """Raised for invalid statistics parameters."""
    pass


PERIOD_1_DAY = "1_day"
PERIOD_7_DAYS = "7_days"
PERIOD_30_DAYS = "30_days"
PERIOD_WEEK = "week"
PERIOD_MONTH = "month"
PERIOD_YEAR = "year"
PERIOD_CUSTOM = "custom"
PERIODS = (
    PERIOD_1_DAY,
    PERIOD_7_DAYS,
    PERIOD_30_DAYS,
    PERIOD_WEEK,
    PERIOD_MONTH,
    PERIOD_YEAR,
    PERIOD_CUSTOM,
)

ACTIVITY_ACTIVE = "active"
ACTIVITY_INACTIVE_30 = "inactive_30_days"
ACTIVITY_INACTIVE_60_PLUS = "inactive_60_plus_days"
ACTIVITY_NEVER = "never_visited"


def _tz() -> str:
    return current_app.config["BUSINESS_TIMEZONE"]


def resolve_period(
    selector: str,
    *,
    today: date | None = None,
    year: int | None = None,
    week: int | None = None,
    month: int | None = None,
    start: date | None = None,
    end: date | None = None,
) -> tuple[date, date]:
    """
    Turn a period selector into an inclusive (start, end) pair of local dates.

    Rolling periods end today; `week` is an ISO week of `year`.
    """
    today = today or local_today(_tz())

    if selector == PERIOD_1_DAY:
        return today, today
    if selector == PERIOD_7_DAYS:
        return today - timedelta(days=6), today
    if selector == PERIOD_30_DAYS:
        return today - timedelta(days=29), today

    if selector in (PERIOD_WEEK, PERIOD_MONTH, PERIOD_YEAR):
        if year is None:
            year = today.year
        if not date.min.year <= year <= date.max.year:
            raise StatisticsError(f"year must be between {date.min.year} and {date.max.year}")
        if selector == PERIOD_YEAR:
            return date(year, 1, 1), date(year, 12, 31)
        if selector == PERIOD_MONTH:
            if month is None:
                month = today.month
            if not 1 <= month <= 12:
                raise StatisticsError("month must be between 1 and 12")
            return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])
        if week is None:
            week = today.isocalendar()[1]
        try:
            monday = date.fromisocalendar(year, week, 1)
            return monday, monday + timedelta(days=6)
        except (ValueError, OverflowError):
            raise StatisticsError(f"Invalid ISO week {week} for {year}")

    if selector == PERIOD_CUSTOM:
        if not start or not end:
            raise StatisticsError("custom period requires start and end dates")
        if start > end:
            raise StatisticsError("start must be on or before end")
        return start, end

    raise StatisticsError(f"period must be one of {list(PERIODS)}")


def _paid_in_range(start: date, end: date):
    start_dt, end_dt = local_range_bounds(start, end, _tz())
    return (
        db.session.query(Transaction)
        .filter(Transaction.payment_status == PAYMENT_STATUS_PAID)
        .filter(Transaction.created_at >= start_dt)
        .filter(Transaction.created_at < end_dt)
    )


def period_stats(start: date, end: date) -> dict:
    """
    Revenue, counts and payment split for an inclusive local date range.

    Refunds are included (negative amounts). A period with no rows returns
    zeros for every figure.
    """
    base = _paid_in_range(start, end)

    by_method = {method: {"revenue_cents": 0, "count": 0} for method in PAYMENT_METHODS}
    rows = (
        base.with_entities(
            Transaction.payment_method,
            func.coalesce(func.sum(Transaction.total_amount_cents), 0),
            func.count(Transaction.id),
        )
        .group_by(Transaction.payment_method)
        .all()
    )
    for method, revenue, count in rows:
        by_method[method] = {"revenue_cents": int(revenue or 0), "count": int(count or 0)}

    total_revenue = sum(v["revenue_cents"] for v in by_method.values())
    transaction_count = sum(v["count"] for v in by_method.values())

    refund_count, refund_total = (
        base.with_entities(
            func.count(Transaction.id),
            func.coalesce(func.sum(Transaction.total_amount_cents), 0),
        )
        .filter(Transaction.transaction_type == TRANSACTION_TYPE_REFUND)
        .one()
    )
    sale_count = transaction_count - int(refund_count or 0)

    tx_ids = base.with_entities(Transaction.id).subquery()
    linked = {
        client_id
        for (client_id,) in db.session.query(TransactionClient.client_id)
        .filter(TransactionClient.transaction_id.in_(select(tx_ids.c.id)))
        .distinct()
    }
    payers = {
        client_id
        for (client_id,) in base.with_entities(Transaction.client_id)
        .filter(Transaction.client_id.isnot(None))
        .distinct()
    }

    return {
        "start": start.isoformat(),
        "end": end.isoformat(),
        "total_revenue_cents": total_revenue,
        "transaction_count": transaction_count,
        "sale_count": sale_count,
        "by_payment_method": by_method,
        "unique_clients": len(linked | payers),
        "average_transaction_cents": round(total_revenue / sale_count) if sale_count else 0,
        "refund_count": int(refund_count or 0),
        "refund_total_cents": int(refund_total or 0),
    }


def top_clients(start: date | None = None, end: date | None = None, *, limit: int = 10) -> list[dict]:
    """Payers ranked by net amount spent (refunds deducted)."""
    query = db.session.query(
        Transaction.client_id,
        func.coalesce(func.sum(Transaction.total_amount_cents), 0).label("total_spent"),
        func.sum(case((Transaction.transaction_type == TRANSACTION_TYPE_SALE, 1), else_=0)).label("visits"),
        func.max(Transaction.created_at).label("last_visit"),
    ).filter(
        Transaction.payment_status == PAYMENT_STATUS_PAID,
        Transaction.client_id.isnot(None),
    )
    if start and end:
        start_dt, end_dt = local_range_bounds(start, end, _tz())
        query = query.filter(Transaction.created_at >= start_dt, Transaction.created_at < end_dt)

    rows = (
        query.group_by(Transaction.client_id)
        .order_by(func.sum(Transaction.total_amount_cents).desc())
        .limit(limit)
        .all()
    )
    clients = {
        c.id: c
        for c in db.session.query(Client).filter(Client.id.in_([r.client_id for r in rows])).all()
    }

    result = []
    for row in rows:
        client = clients.get(row.client_id)
        visits = int(row.visits or 0)
        total = int(row.total_spent or 0)
        result.append({
            "client_id": row.client_id,
            "client_number": client.client_number if client else None,
            "name": client.full_name if client else None,
            "total_spent_cents": total,
            "visits": visits,
            "average_cents": round(total / visits) if visits else 0,
            "last_visit_at": to_utc_z(row.last_visit),
        })
    return result


def top_services(start: date | None = None, end: date | None = None, *, limit: int = 10) -> list[dict]:
    """Service lines ranked by revenue. Items live in JSON, so this folds in Python."""
    if start and end:
        query = _paid_in_range(start, end)
    else:
        query = db.session.query(Transaction).filter(Transaction.payment_status == PAYMENT_STATUS_PAID)
    query = query.filter(Transaction.transaction_type == TRANSACTION_TYPE_SALE)

    refunded_ids = {
        parent_id
        for (parent_id,) in db.session.query(Transaction.parent_transaction_id)
        .filter(Transaction.transaction_type == TRANSACTION_TYPE_REFUND)
    }

    totals: dict[str, dict] = defaultdict(lambda: {"times_sold": 0, "revenue_cents": 0})
    for transaction in query.all():
        if transaction.id in refunded_ids:
            continue
        for item in transaction.items or []:
            if item.get("type") != ITEM_TYPE_SERVICE:
                continue
            quantity = int(item.get("quantity") or 0)
            entry = totals[item.get("name")]
            entry["times_sold"] += quantity
            entry["revenue_cents"] += int(item.get("price_cents") or 0) * quantity

    ranked = sorted(totals.items(), key=lambda kv: (-kv[1]["revenue_cents"], kv[0] or ""))
    return [
        {
            "name": name,
            "times_sold": data["times_sold"],
            "revenue_cents": data["revenue_cents"],
            "average_price_cents": round(data["revenue_cents"] / data["times_sold"]) if data["times_sold"] else 0,
        }
        for name, data in ranked[:limit]
    ]


def revenue_series(start: date, end: date, *, granularity: str = "day") -> dict:
    """Revenue per local day, ISO week, month or year between start and end."""
    if granularity not in ("day", "week", "month", "year"):
        raise StatisticsError("granularity must be day, week, month, or year")

    tz_name = _tz()
    buckets: dict[str, dict] = {}
    for transaction in _paid_in_range(start, end).order_by(Transaction.created_at.asc()).all():
        local = to_local_date(transaction.created_at, tz_name)
        key = _bucket_key(local, granularity)
        bucket = buckets.setdefault(key, {"period": key, "revenue_cents": 0, "count": 0})
        bucket["revenue_cents"] += transaction.total_amount_cents
        bucket["count"] += 1

    return {
        "start": start.isoformat(),
        "end": end.isoformat(),
        "granularity": granularity,
        "rows": [buckets[key] for key in sorted(buckets)],
    }


def _bucket_key(day: date, granularity: str) -> str:
    if granularity == "day":
        return day.isoformat()
    if granularity == "week":
        iso_year, iso_week, _ = day.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    if granularity == "month":
        return f"{day.year}-{day.month:02d}"
    return str(day.year)


def client_activity(*, today: date | None = None) -> dict:
    """Bucket every client by days since their last visit."""
    tz_name = _tz()
    today = today or local_today(tz_name)

    counts = {
        ACTIVITY_ACTIVE: 0,
        ACTIVITY_INACTIVE_30: 0,
        ACTIVITY_INACTIVE_60_PLUS: 0,
        ACTIVITY_NEVER: 0,
    }
    for (last_visit,) in db.session.query(Client.last_visit_at).all():
        if last_visit is None:
            counts[ACTIVITY_NEVER] += 1
            continue
        days = (today - to_local_date(last_visit, tz_name)).days
        if days <= 30:
            counts[ACTIVITY_ACTIVE] += 1
        elif days <= 60:
            counts[ACTIVITY_INACTIVE_30] += 1
        else:
            counts[ACTIVITY_INACTIVE_60_PLUS] += 1

    counts["total_clients"] = sum(counts.values())
    counts["as_of"] = today.isoformat()
    return counts


def closure_summary(start: date, end: date) -> dict:
    closures = (
        db.session.query(CashClosure)
        .filter(CashClosure.closure_date >= start, CashClosure.closure_date <= end)
        .all()
    )
    statuses = {DELTA_SURPLUS: 0, DELTA_SHORTAGE: 0, DELTA_EXACT: 0}
    for closure in closures:
        statuses[delta_status(closure.delta_cents)] += 1

    return {
        "start": start.isoformat(),
        "end": end.isoformat(),
        "closure_count": len(closures),
        "total_delta_cents": sum(c.delta_cents for c in closures),
        "total_cash_in_cents": sum(c.cash_in_calculated_cents for c in closures),
        "by_delta_status": statuses,
        "generated_at": to_utc_z(utcnow()),
    }
