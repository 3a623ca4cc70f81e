# Overview: Flask API routes for payments operations; parses input and returns JSON responses.

# backend/app/routes/payments.py
"""
Customer Payment API Routes

DESIGN:
- Record money received from a customer, either against one sale
  (sale_id given) or as a general account payment allocated oldest
  sale first
- List the tenant's payment ledger with optional filters

SECURITY:
- Tenant context required on every route; every lookup is org-scoped
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import LedgerError
from ..services import payment_service
from ..decorators import require_tenant_context


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


# =============================================================================
# PAYMENT CREATION
# =============================================================================

@payments_bp.post("/")
@require_tenant_context
def record_payment_route():
    """
    Record a customer payment.

    Request body:
    {
        "customer_id": 7,
        "amount_cents": 12000,
        "payment_method": "CASH" | "CARD" | "TRANSFER",
        "sale_id": 123,                (optional: targeted payment)
        "reference": "TRX-881",        (optional)
        "notes": "...",                (optional)
        "payment_date": "2026-01-14T10:00:00Z"  (optional)
    }

    Returns:
        201: {"payments": [...]} one row per allocation
        400: Invalid input or amount above the sale's remaining balance
        404: Customer or sale not found
        409: Concurrent update
    """
    try:
        data = request.get_json(silent=True) or {}

        payments = payment_service.record_payment(
            g.tenant.org_id,
            g.tenant.user_id,
            data.get("customer_id"),
            data.get("amount_cents"),
            data.get("payment_method"),
            sale_id=data.get("sale_id"),
            reference=data.get("reference"),
            notes=data.get("notes"),
            payment_date=data.get("payment_date"),
        )

        return jsonify({
            "payments": [p.to_dict() for p in payments],
            "total_cents": sum(p.amount_cents for p in payments),
        }), 201

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PAYMENT QUERIES
# =============================================================================

@payments_bp.get("/")
@require_tenant_context
def list_payments_route():
    """
    List payments, newest first.

    Query params:
    - customer_id, sale_id
    - start, end: ISO-8601, inclusive
    - limit: default 50
    """
    try:
        payments = payment_service.list_payments(
            g.tenant.org_id,
            customer_id=request.args.get("customer_id"),
            sale_id=request.args.get("sale_id"),
            start=request.args.get("start"),
            end=request.args.get("end"),
            limit=request.args.get("limit"),
        )
        return jsonify({"payments": [p.to_dict() for p in payments]}), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list payments")
        return jsonify({"error": "Internal server error"}), 500
