# Overview: Flask API routes for supplier receptions; parses input and returns JSON responses.

from flask import Blueprint, jsonify, current_app

from ..decorators import with_actor, current_actor, json_body
from ..errors import DomainError
from ..services import reception_service


receptions_bp = Blueprint("receptions", __name__, url_prefix="/api/receptions")


@receptions_bp.post("")
@with_actor
def create_reception_route():
    """
    Request body:
    {
        "supplier_id": "uuid",
        "purchase_order_id": "uuid",  (optional)
        "remito_number": "0001-00001234",  (optional)
        "items": [{"product_id": "uuid", "quantity_expected": 10, "quantity_received": 10,
                   "unit_cost": 4.5, "location_assigned": "A1"}]
    }
    """
    try:
        return jsonify(reception_service.create_reception(json_body(), user_id=current_actor())), 201
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create reception")
        return jsonify({"error": "Internal server error"}), 500


@receptions_bp.get("/<reception_id>")
def get_reception_route(reception_id: str):
    try:
        return jsonify(reception_service.get_reception(reception_id)), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get reception")
        return jsonify({"error": "Internal server error"}), 500


@receptions_bp.post("/<reception_id>/approve")
@with_actor
def approve_reception_route(reception_id: str):
    try:
        return jsonify(reception_service.approve_reception(reception_id, user_id=current_actor())), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to approve reception")
        return jsonify({"error": "Internal server error"}), 500
