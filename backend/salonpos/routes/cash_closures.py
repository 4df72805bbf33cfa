# Overview: Flask API routes for cash closures; parses input and returns JSON responses.

# backend/salonpos/routes/cash_closures.py
"""
Cash Closure API Routes

WHY: End-of-day drawer count. The operator previews the expected cash,
counts the drawer and submits once per day.

DESIGN:
- GET cash-in exposes the day's computed cash receipts
- POST preview computes without writing
- POST records the closure (409 when the date is already closed)
- GET <id>/report renders the printable HTML summary

Amounts may be sent as `<field>_cents` integers or as decimal `<field>`
strings ("200.00").
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_operator
from ..services import cash_closure_service
from ..services.cash_closure_service import ClosureError, ClosureExistsError
from salonpos.time_utils import local_today, parse_iso_date
from ..validation import NotFoundError, ValidationError, amount_from_payload


cash_closures_bp = Blueprint("cash_closures", __name__, url_prefix="/api/cash-closures")


def _closure_date(value, required: bool = False):
    if value is None or value == "":
        if required:
            raise ValidationError("closure_date is required")
        return local_today(current_app.config["BUSINESS_TIMEZONE"])
    if not isinstance(value, str):
        raise ValidationError("closure_date must be YYYY-MM-DD")
    try:
        return parse_iso_date(value)
    except (TypeError, ValueError):
        raise ValidationError("closure_date must be YYYY-MM-DD")


def _closure_amounts(data: dict) -> dict:
    return {
        "opening_cash_cents": amount_from_payload(data, "opening_cash"),
        "cash_out_manual_cents": amount_from_payload(data, "cash_out_manual", default=0),
        "counted_cash_cents": amount_from_payload(data, "counted_cash"),
    }


@cash_closures_bp.get("")
def list_closures_route():
    """Recent closures, newest first. Query param: limit (default 30)."""
    try:
        limit = int(request.args.get("limit", 30))
    except ValueError:
        return jsonify({"error": "limit must be an integer"}), 400

    closures = cash_closure_service.list_closures(limit=limit)
    return jsonify({"closures": [c.to_dict() for c in closures]}), 200


@cash_closures_bp.get("/cash-in")
def cash_in_route():
    """Cash receipts for a local day. Query param: date (default today)."""
    try:
        day = _closure_date(request.args.get("date"))
        total, count = cash_closure_service.calculate_cash_in(day)
        return jsonify({
            "date": day.isoformat(),
            "cash_in_cents": total,
            "cash_transactions_count": count,
        }), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@cash_closures_bp.post("/preview")
def preview_closure_route():
    """
    Compute a closure without recording it.

    Request body:
    {
        "closure_date": "2024-03-15",   (optional, default today)
        "opening_cash": "200.00",       (optional, default from config)
        "cash_out_manual": "50.00",     (optional)
        "counted_cash": "495.50"        (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        day = _closure_date(data.get("closure_date"))
        preview = cash_closure_service.preview_closure(day, **_closure_amounts(data))
        return jsonify({"preview": preview}), 200

    except (ValidationError, ClosureError) as e:
        return jsonify({"error": str(e)}), 400


@cash_closures_bp.post("")
@require_operator
def submit_closure_route():
    """
    Record the closure for a date.

    Request body: same as preview; counted_cash is required, plus "note".

    Returns:
        201: Closure recorded
        400: Missing or invalid amounts
        409: A closure already exists for the date
    """
    try:
        data = request.get_json(silent=True) or {}
        day = _closure_date(data.get("closure_date"))
        closure = cash_closure_service.submit_closure(
            day,
            note=data.get("note"),
            operator=g.operator,
            **_closure_amounts(data),
        )
        return jsonify({"closure": closure.to_dict()}), 201

    except ClosureExistsError as e:
        return jsonify({"error": str(e)}), 409
    except (ValidationError, ClosureError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to record cash closure")
        return jsonify({"error": "Internal server error"}), 500


@cash_closures_bp.get("/<int:closure_id>")
def get_closure_route(closure_id: int):
    try:
        closure = cash_closure_service.get_closure(closure_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    data = closure.to_dict()
    data["audit"] = [entry.to_dict() for entry in cash_closure_service.closure_audit_trail(closure)]
    return jsonify({"closure": data}), 200


@cash_closures_bp.get("/<int:closure_id>/report")
def closure_report_route(closure_id: int):
    """Printable HTML report."""
    try:
        closure = cash_closure_service.get_closure(closure_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    html = cash_closure_service.render_closure_report(closure)
    return html, 200, {"Content-Type": "text/html; charset=utf-8"}
