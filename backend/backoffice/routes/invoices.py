# Overview: Flask API routes for invoices; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app

from ..decorators import with_actor, current_actor, json_body
from ..errors import DomainError
from ..services import invoice_service, repository


invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


@invoices_bp.post("")
@with_actor
def create_manual_invoice_route():
    """
    Manual invoice from caller-supplied lines.

    Request body:
    {
        "client_id": "uuid",  (optional)
        "customer_name": "Consumidor Final",
        "items": [{"description": "Service", "quantity": 1, "unit_price": 100,
                   "discount_percentage": 10, "vat_rate": 21}],
        "payments": [{"method": "cash", "amount": 108.9}],
        "order_id": "uuid"  (optional)
    }
    """
    try:
        invoice = invoice_service.create_manual_invoice(json_body(), user_id=current_actor())
        return jsonify(invoice), 201
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create manual invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("")
def list_invoices_route():
    try:
        filters = {}
        for key in ("status", "client_id", "order_id", "invoice_type", "payment_status"):
            value = request.args.get(key)
            if value:
                filters[key] = value
        page = request.args.get("page", 1, type=int)
        per_page = request.args.get("per_page", type=int)
        result = repository.invoices.page(
            filters, page=page, per_page=per_page, order_by="issue_date", descending=True
        )
        return jsonify(result), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list invoices")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.get("/<invoice_id>")
def get_invoice_route(invoice_id: str):
    try:
        return jsonify(invoice_service.get_invoice(invoice_id)), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get invoice")
        return jsonify({"error": "Internal server error"}), 500


@invoices_bp.post("/<invoice_id>/authorize")
@with_actor
def authorize_invoice_route(invoice_id: str):
    try:
        return jsonify(invoice_service.authorize_invoice(invoice_id, user_id=current_actor())), 200
    except DomainError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to authorize invoice")
        return jsonify({"error": "Internal server error"}), 500
