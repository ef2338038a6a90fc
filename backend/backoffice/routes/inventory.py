# Overview: Flask API routes for stock levels and the movement ledger; read-only JSON.

from flask import Blueprint, request, jsonify, current_app

from ..errors import DomainError
from ..services import inventory_service


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/<product_id>")
def get_stock_route(product_id: str):
    try:
        return jsonify({
            "product_id": product_id,
            "total_on_hand": inventory_service.get_total_on_hand(product_id),
            "locations": inventory_service.get_stock_levels(product_id),
        }), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get stock levels")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/movements")
def list_movements_route():
    try:
        movements = inventory_service.list_movements(
            product_id=request.args.get("product_id"),
            type=request.args.get("type"),
            reference_id=request.args.get("reference_id"),
            limit=request.args.get("limit", 200, type=int),
        )
        return jsonify({"items": movements, "count": len(movements)}), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list movements")
        return jsonify({"error": "Internal server error"}), 500
