# Overview: Flask API routes for sales operations; parses input and returns JSON responses.

# backend/app/routes/sales.py
"""Sales API routes scoped to the caller's tenant"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import LedgerError
from ..services import sales_service
from ..decorators import require_tenant_context


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("/")
@require_tenant_context
def create_sale_route():
    """
    Create and commit a sale.

    Request body:
    {
        "items": [{"product_id": 1, "quantity": 2, "unit_price_cents": 1500}],
        "payment_method": "CASH" | "CARD" | "TRANSFER" | "CREDIT",
        "customer_id": 7,   (required for CREDIT)
        "notes": "..."      (optional)
    }

    unit_price_cents may be omitted to use the catalogue price.

    Returns:
        201: {"sale_id", "folio"}
        400: Invalid input
        404: Product or customer not found
        409: Insufficient stock, credit limit exceeded or concurrent update
    """
    try:
        data = request.get_json(silent=True) or {}

        result = sales_service.process_sale(
            g.tenant.org_id,
            g.tenant.user_id,
            data.get("items"),
            data.get("payment_method"),
            customer_id=data.get("customer_id"),
            notes=data.get("notes"),
        )
        return jsonify(result), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
@require_tenant_context
def get_sale_route(sale_id: int):
    """Get a sale with its items."""
    try:
        return jsonify({"sale": sales_service.get_sale(g.tenant.org_id, sale_id)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load sale")
        return jsonify({"error": "Internal server error"}), 500
