# Overview: Flask API routes for client returns and credit notes; parses input and returns JSON responses.

"""
Return Processing API Routes

- Create a pending return with its items
- Approve: restocks sellable units, logs damaged ones, issues a credit note
- Reject: only while pending
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import with_actor, current_actor, json_body
from ..errors import DomainError
from ..services import return_service, repository


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.post("")
@with_actor
def create_return_route():
    """
    Request body:
    {
        "client_id": "uuid",  (optional)
        "customer_name": "Jane Doe",
        "order_id": "uuid",  (optional)
        "reason": "Wrong size",
        "items": [{"product_id": "uuid", "quantity": 2, "unit_price": 10,
                   "condition_status": "sellable"}]
    }
    """
    try:
        return jsonify(return_service.create_return(json_body(), user_id=current_actor())), 201
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("")
def list_returns_route():
    try:
        filters = {}
        for key in ("status", "client_id", "order_id"):
            value = request.args.get(key)
            if value:
                filters[key] = value
        page = request.args.get("page", 1, type=int)
        per_page = request.args.get("per_page", type=int)
        result = repository.client_returns.page(
            filters, page=page, per_page=per_page, order_by="created_at", descending=True
        )
        return jsonify(result), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list returns")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("/<return_id>")
def get_return_route(return_id: str):
    try:
        return jsonify(return_service.get_return(return_id)), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.post("/<return_id>/approve")
@with_actor
def approve_return_route(return_id: str):
    try:
        return jsonify(return_service.approve_return(return_id, user_id=current_actor())), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to approve return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.post("/<return_id>/reject")
@with_actor
def reject_return_route(return_id: str):
    """Request body: {"reason": "Outside return window"}"""
    try:
        data = json_body()
        result = return_service.reject_return(return_id, data.get("reason"), user_id=current_actor())
        return jsonify(result), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reject return")
        return jsonify({"error": "Internal server error"}), 500


@returns_bp.get("/credit-notes")
def list_credit_notes_route():
    try:
        filters = {}
        client_id = request.args.get("client_id")
        if client_id:
            filters["client_id"] = client_id
        return jsonify({"items": return_service.list_credit_notes(filters)}), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list credit notes")
        return jsonify({"error": "Internal server error"}), 500
