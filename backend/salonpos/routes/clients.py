# Overview: Flask API routes for clients and families; parses input and returns JSON responses.

# backend/salonpos/routes/clients.py
"""
Client API Routes

WHY: The till needs to pick a payer and see their dependents; the back
office manages family links and reads per-client history.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_operator
from ..services import client_service, linkage_service
from ..services.client_service import ClientError
from ..validation import NotFoundError, ValidationError


clients_bp = Blueprint("clients", __name__, url_prefix="/api/clients")


@clients_bp.post("")
@require_operator
def create_client_route():
    """
    Request body:
    {
        "first_name": "Marie",
        "last_name": "Dupont",
        "email": "...", "phone": "...",   (optional)
        "date_of_birth": "1985-04-02"     (optional)
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        client = client_service.create_client(
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            email=data.get("email"),
            phone=data.get("phone"),
            date_of_birth=data.get("date_of_birth"),
            notes=data.get("notes"),
        )
        return jsonify({"client": client.to_dict()}), 201

    except (ValidationError, ClientError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create client")
        return jsonify({"error": "Internal server error"}), 500


@clients_bp.get("/<int:client_id>")
def get_client_route(client_id: int):
    try:
        client = client_service.get_client(client_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    data = client.to_dict()
    data["children"] = [child.to_dict() for child in client_service.list_children(client_id)]
    return jsonify({"client": data}), 200


@clients_bp.get("/<int:client_id>/history")
def client_history_route(client_id: int):
    try:
        client_service.get_client(client_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404

    limit = request.args.get("limit", 100, type=int)
    entries = linkage_service.client_history(client_id, limit=limit)
    return jsonify({"history": [entry.to_dict() for entry in entries]}), 200


@clients_bp.get("/<int:client_id>/children")
def list_children_route(client_id: int):
    try:
        children = client_service.list_children(client_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"children": [child.to_dict() for child in children]}), 200


@clients_bp.get("/<int:client_id>/family")
def family_route(client_id: int):
    """Dependents offered for inclusion when this client pays."""
    try:
        client_service.get_client(client_id)
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"dependents": [c.to_dict() for c in client_service.family_of(client_id)]}), 200


@clients_bp.post("/<int:client_id>/children")
@require_operator
def add_child_route(client_id: int):
    """
    Request body: {"first_name": "Léo", "date_of_birth": "2016-09-01", "last_name": (optional)}

    Returns:
        201: Child created as a dependent
        400: Invalid input or child too old to be a dependent
        404: Unknown parent
    """
    try:
        data = request.get_json(silent=True) or {}
        child = client_service.add_child(
            client_id,
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            date_of_birth=data.get("date_of_birth"),
            notes=data.get("notes"),
        )
        return jsonify({"client": child.to_dict()}), 201

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except (ValidationError, ClientError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to add child to client %s", client_id)
        return jsonify({"error": "Internal server error"}), 500


@clients_bp.post("/<int:client_id>/detach")
@require_operator
def detach_child_route(client_id: int):
    """Make a dependent independent."""
    try:
        client = client_service.detach_child(client_id, operator=g.operator)
        return jsonify({"client": client.to_dict()}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ClientError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to detach client %s", client_id)
        return jsonify({"error": "Internal server error"}), 500
