# Overview: Flask API routes for customer credit; parses input and returns JSON responses.

from flask import Blueprint, jsonify, g, current_app

from ..errors import LedgerError
from ..services import customer_service
from ..decorators import require_tenant_context


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("/<int:customer_id>/ledger")
@require_tenant_context
def customer_ledger_route(customer_id: int):
    """Credit limit, debt, available credit and outstanding sales."""
    try:
        return jsonify(customer_service.get_customer_ledger(g.tenant.org_id, customer_id)), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load customer ledger")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>/statement")
@require_tenant_context
def customer_statement_route(customer_id: int):
    """Account statement: summary, aging buckets and movements."""
    try:
        return jsonify(customer_service.get_account_statement(g.tenant.org_id, customer_id)), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build account statement")
        return jsonify({"error": "Internal server error"}), 500
