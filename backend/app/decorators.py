# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .errors import LedgerError
from .services.tenant_service import TenantContext, get_active_org


def _header_int(name: str):
    raw = request.headers.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def require_tenant_context(f):
    """
    Establish tenant context from the upstream session resolver.

    The gateway in front of this service authenticates the caller and
    forwards the result as trusted headers:
    - X-Org-ID: organization (tenant) id - REQUIRED
    - X-User-ID: acting user id (attribution only)
    - X-User-Role: role name (carried, never interpreted here)

    Sets g.tenant (TenantContext) and g.org_id.

    Returns 401 if X-Org-ID is missing or not an integer, 404 if the
    organization does not exist or is inactive.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        org_id = _header_int("X-Org-ID")
        if not org_id:
            return jsonify({"error": "Tenant context required", "code": "TENANT_REQUIRED"}), 401

        try:
            get_active_org(org_id)
        except LedgerError as e:
            return jsonify(e.to_dict()), e.status_code

        g.tenant = TenantContext(
            org_id=org_id,
            user_id=_header_int("X-User-ID"),
            role=request.headers.get("X-User-Role") or None,
        )
        g.org_id = org_id

        return f(*args, **kwargs)

    return decorated_function
