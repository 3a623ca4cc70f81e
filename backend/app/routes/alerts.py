# Overview: Flask API routes for ledger alerts; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import LedgerError
from ..services import alert_service
from ..decorators import require_tenant_context


alerts_bp = Blueprint("alerts", __name__, url_prefix="/api/alerts")


@alerts_bp.get("/")
@require_tenant_context
def list_alerts_route():
    """
    Derived alerts for the tenant.

    Query params:
    - type: OVERDUE | DUE_SOON | CREDIT_LIMIT | LOW_STOCK
    - priority: HIGH | MEDIUM | LOW
    """
    try:
        alerts = alert_service.derive_alerts(
            g.tenant.org_id,
            alert_type=request.args.get("type"),
            priority=request.args.get("priority"),
        )
        return jsonify({
            "summary": alert_service.summarize_alerts(alerts),
            "alerts": alerts,
        }), 200

    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to derive alerts")
        return jsonify({"error": "Internal server error"}), 500


@alerts_bp.get("/summary")
@require_tenant_context
def alerts_summary_route():
    try:
        alerts = alert_service.derive_alerts(g.tenant.org_id)
        return jsonify(alert_service.summarize_alerts(alerts)), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to summarize alerts")
        return jsonify({"error": "Internal server error"}), 500
