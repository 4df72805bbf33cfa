# Overview: Flask API routes for the transaction ledger; parses input and returns JSON responses.

# backend/salonpos/routes/transactions.py
"""
Transaction Ledger API Routes

WHY: The till posts a finished cart here; the back office lists, inspects
and refunds transactions.

DESIGN:
- POST builds a DraftTransaction from the body and records it as a paid sale
- PATCH only touches notes and photo_url; monetary fields are refused
- Refunds are a separate POST creating a new negative transaction

SECURITY:
- Writes require the X-Operator header (recorded as created_by / audit actor)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_operator
from ..services import refund_service, transaction_service
from ..services.draft import DraftTransaction
from ..services.refund_service import RefundConflictError, RefundError
from ..services.transaction_service import LedgerWriteError
from salonpos.time_utils import parse_iso_date
from ..validation import NotFoundError, ValidationError


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")

MUTABLE_FIELDS = {"notes", "photo_url"}


def _date_arg(name: str):
    try:
        return parse_iso_date(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be YYYY-MM-DD")


def _int_arg(name: str, default: int | None = None) -> int | None:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")


# =============================================================================
# SALES
# =============================================================================

@transactions_bp.post("")
@require_operator
def create_transaction_route():
    """
    Record a paid sale.

    Request body:
    {
        "items": [{"name": "Coupe femme", "price": "45.00", "quantity": 1, "type": "service"}],
        "payment_method": "cash",
        "primary_client_id": 12,          (optional)
        "included_client_ids": [13],      (optional, requires primary)
        "include_vat": false,             (optional)
        "notes": "..."                    (optional)
    }

    Returns:
        201: Transaction recorded
        400: Invalid draft
        500: Ledger write failed (nothing recorded)
    """
    try:
        draft = DraftTransaction.from_dict(request.get_json(silent=True))
        transaction = transaction_service.create_sale(draft, operator=g.operator)
        return jsonify({"transaction": transaction_service.get_transaction_detail(transaction.id)}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except LedgerWriteError as e:
        return jsonify({"error": str(e), "details": e.details}), 500
    except Exception:
        current_app.logger.exception("Failed to record transaction")
        return jsonify({"error": "Internal server error"}), 500


@transactions_bp.get("")
def list_transactions_route():
    """
    List transactions, newest first.

    Query params: type, payment_method, date, start_date, end_date,
    client_id, search, limit (default 100), offset.
    """
    try:
        transactions = transaction_service.list_transactions(
            transaction_type=request.args.get("type") or None,
            payment_method=request.args.get("payment_method") or None,
            on_date=_date_arg("date"),
            start_date=_date_arg("start_date"),
            end_date=_date_arg("end_date"),
            client_id=_int_arg("client_id"),
            search=request.args.get("search"),
            limit=_int_arg("limit", 100),
            offset=_int_arg("offset", 0),
        )
        return jsonify({
            "transactions": [
                dict(t.to_dict(), refundable=transaction_service.is_refundable(t))
                for t in transactions
            ],
            "count": len(transactions),
        }), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@transactions_bp.get("/<int:transaction_id>")
def get_transaction_route(transaction_id: int):
    """Transaction with linked clients and refunds."""
    try:
        return jsonify({"transaction": transaction_service.get_transaction_detail(transaction_id)}), 200
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404


@transactions_bp.patch("/<int:transaction_id>")
@require_operator
def update_transaction_route(transaction_id: int):
    """
    Update the non-monetary fields of a transaction.

    Request body: {"notes": "...", "photo_url": "https://..."} (either or both)

    Returns:
        200: Updated
        400: Body names a field other than notes / photo_url
        404: Unknown transaction
    """
    try:
        data = request.get_json(silent=True)
        if not isinstance(data, dict) or not data:
            return jsonify({"error": "notes or photo_url required"}), 400

        forbidden = sorted(set(data) - MUTABLE_FIELDS)
        if forbidden:
            return jsonify({
                "error": "Only notes and photo_url can be changed; use a refund to correct amounts",
                "fields": forbidden,
            }), 400

        if "notes" in data:
            transaction_service.update_notes(transaction_id, data["notes"], operator=g.operator)
        if "photo_url" in data:
            transaction_service.attach_photo(transaction_id, data["photo_url"], operator=g.operator)

        return jsonify({"transaction": transaction_service.get_transaction_detail(transaction_id)}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to update transaction %s", transaction_id)
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# REFUNDS
# =============================================================================

@transactions_bp.post("/<int:transaction_id>/refund")
@require_operator
def refund_transaction_route(transaction_id: int):
    """
    Refund a paid sale in full.

    Request body: {"reason": "Client insatisfait"}

    Returns:
        201: Refund transaction created
        400: Missing reason, or the transaction is not a paid sale
        404: Unknown transaction
        409: Already refunded
    """
    try:
        data = request.get_json(silent=True) or {}
        refund = refund_service.refund_transaction(transaction_id, data.get("reason"), operator=g.operator)
        return jsonify({"refund": transaction_service.get_transaction_detail(refund.id)}), 201

    except RefundConflictError as e:
        return jsonify({"error": str(e)}), 409
    except RefundError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except LedgerWriteError as e:
        return jsonify({"error": str(e)}), 500
    except Exception:
        current_app.logger.exception("Failed to refund transaction %s", transaction_id)
        return jsonify({"error": "Internal server error"}), 500
