# Overview: Flask API routes for sales orders; parses input and returns JSON responses.

"""
Order API Routes

DESIGN:
- Thin layer: parse JSON, call order_service / invoice_service, serialize
- Domain errors map to {"error": code, "message", "details"} + their status
- Caller identity comes from the X-User-Id header (see decorators.with_actor)
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import with_actor, current_actor, json_body
from ..errors import DomainError
from ..services import order_service, invoice_service


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@with_actor
def create_order_route():
    """
    Request body:
    {
        "client_id": "uuid",  (optional)
        "customer_name": "Jane Doe",
        "payment_method": "cash",
        "shipping_address": "...",  (optional)
        "items": [{"product_id": "uuid", "quantity": 2}]
    }

    Any "total_amount" sent by the client is ignored.
    """
    try:
        data = json_body()
        result = order_service.create_order(
            client_id=data.get("client_id"),
            customer_name=data.get("customer_name"),
            items=data.get("items"),
            payment_method=data.get("payment_method"),
            shipping_address=data.get("shipping_address"),
            user_id=current_actor(),
        )
        return jsonify(result), 201
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
def list_orders_route():
    try:
        filters = {}
        for key in ("status", "client_id", "payment_status"):
            value = request.args.get(key)
            if value:
                filters[key] = value
        page = request.args.get("page", 1, type=int)
        per_page = request.args.get("per_page", type=int)
        return jsonify(order_service.list_orders(filters, page=page, per_page=per_page)), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<order_id>")
def get_order_route(order_id: str):
    try:
        return jsonify(order_service.get_order_summary(order_id)), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.route("/<order_id>/status", methods=["PATCH", "POST"])
@with_actor
def update_order_status_route(order_id: str):
    """Request body: {"status": "picking"}"""
    try:
        data = json_body()
        order = order_service.transition_order_status(order_id, data.get("status"), user_id=current_actor())
        return jsonify(order), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update order status")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<order_id>/dispatch")
@with_actor
def dispatch_order_route(order_id: str):
    try:
        order = order_service.dispatch_order(order_id, json_body(), user_id=current_actor())
        return jsonify(order), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to dispatch order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<order_id>/deliver")
@with_actor
def deliver_order_route(order_id: str):
    try:
        order = order_service.deliver_order(order_id, json_body(), user_id=current_actor())
        return jsonify(order), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to deliver order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.route("/items/<item_id>/pick", methods=["PATCH", "POST"])
@with_actor
def pick_order_item_route(item_id: str):
    """Request body: {"picked_quantity": 3}"""
    try:
        data = json_body()
        item = order_service.pick_order_item(item_id, data.get("picked_quantity"), user_id=current_actor())
        return jsonify(item), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to pick order item")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<order_id>/invoice")
@with_actor
def invoice_order_route(order_id: str):
    """
    Request body (all optional):
    {
        "invoice_type": "B",
        "point_of_sale": 1,
        "payments": [{"method": "cash", "amount": 60}, {"method": "card", "amount": 40}],
        "notes": "..."
    }
    """
    try:
        invoice = invoice_service.create_invoice_from_order(order_id, json_body(), user_id=current_actor())
        return jsonify(invoice), 201
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to invoice order")
        return jsonify({"error": "Internal server error"}), 500
