# Overview: Flask API routes for ledger statistics; parses input and returns JSON responses.

# backend/salonpos/routes/statistics.py
"""
Statistics API Routes

WHY: The back office reads revenue, payment split, top clients and
services, client activity and closure deltas for a chosen period.

All figures are computed from the ledger on each request; nothing here
writes.
"""

from datetime import date

from flask import Blueprint, jsonify, request

from ..services import statistics_service
from ..time_utils import parse_iso_date


statistics_bp = Blueprint("statistics", __name__, url_prefix="/api/statistics")


def _period_from_args() -> tuple[date, date]:
    """
    Query params: period (1_day, 7_days, 30_days, week, month, year, custom),
    year, week, month, start, end.
    """
    try:
        start = parse_iso_date(request.args.get("start"))
        end = parse_iso_date(request.args.get("end"))
    except ValueError:
        raise statistics_service.StatisticsError("start and end must be YYYY-MM-DD")

    return statistics_service.resolve_period(
        request.args.get("period", statistics_service.PERIOD_30_DAYS),
        year=request.args.get("year", type=int),
        week=request.args.get("week", type=int),
        month=request.args.get("month", type=int),
        start=start,
        end=end,
    )


@statistics_bp.get("/period")
def period_stats():
    try:
        start, end = _period_from_args()
        report = statistics_service.period_stats(start, end)
        report["period"] = request.args.get("period", statistics_service.PERIOD_30_DAYS)
        return jsonify(report), 200
    except statistics_service.StatisticsError as exc:
        return jsonify({"error": str(exc)}), 400


@statistics_bp.get("/top-clients")
def top_clients():
    limit = request.args.get("limit", 10, type=int)
    try:
        start, end = _period_from_args() if request.args.get("period") else (None, None)
        return jsonify({"clients": statistics_service.top_clients(start, end, limit=limit)}), 200
    except statistics_service.StatisticsError as exc:
        return jsonify({"error": str(exc)}), 400


@statistics_bp.get("/top-services")
def top_services():
    limit = request.args.get("limit", 10, type=int)
    try:
        start, end = _period_from_args() if request.args.get("period") else (None, None)
        return jsonify({"services": statistics_service.top_services(start, end, limit=limit)}), 200
    except statistics_service.StatisticsError as exc:
        return jsonify({"error": str(exc)}), 400


@statistics_bp.get("/revenue-series")
def revenue_series():
    try:
        start, end = _period_from_args()
        report = statistics_service.revenue_series(
            start,
            end,
            granularity=request.args.get("granularity", "day"),
        )
        return jsonify(report), 200
    except statistics_service.StatisticsError as exc:
        return jsonify({"error": str(exc)}), 400


@statistics_bp.get("/client-activity")
def client_activity():
    return jsonify(statistics_service.client_activity()), 200


@statistics_bp.get("/closures")
def closure_summary():
    try:
        start, end = _period_from_args()
        return jsonify(statistics_service.closure_summary(start, end)), 200
    except statistics_service.StatisticsError as exc:
        return jsonify({"error": str(exc)}), 400
