"""
Multi-Tenant Service: Tenant Context and Scoping Helpers

Every ledger call runs on behalf of one tenant (organization). The
caller supplies an already-authenticated TenantContext; this module
never authenticates and never derives permissions from the role.

SECURITY INVARIANTS:
1. Every entity lookup filters by org_id in the same query as the id
2. A row owned by another org is reported exactly like a missing row
3. Conditional updates repeat the org_id predicate

USAGE:
    from app.services.tenant_service import TenantContext, get_scoped

    product = get_scoped(Product, ctx.org_id, product_id, entity="Product")
"""

from __future__ import annotations

from dataclasses import dataclass

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Organization
from .concurrency import lock_for_update


@dataclass(frozen=True)
class TenantContext:
    """
    Caller identity supplied by the upstream session resolver.

    role is carried for attribution only.
    """
    org_id: int
    user_id: int | None = None
    role: str | None = None


def get_active_org(org_id: int) -> Organization:
    """Return the organization if it exists and is active."""
    if not org_id:
        raise ValidationError("org_id is required", details={"field": "org_id"})
    org = db.session.query(Organization).filter_by(id=org_id, is_active=True).first()
    if not org:
        raise NotFoundError("Organization", org_id)
    return org


def scoped_query(model, org_id: int):
    """Base query for a tenant-owned model."""
    return db.session.query(model).filter(model.org_id == org_id)


def get_scoped(model, org_id: int, entity_id: int, *, entity: str | None = None, lock: bool = False):
    """
    Load one tenant-owned row or raise NotFoundError.

    lock=True applies SELECT ... FOR UPDATE where the database supports it.
    """
    query = scoped_query(model, org_id).filter(model.id == entity_id)
    if lock:
        query = lock_for_update(query)
    row = query.first()
    if row is None:
        raise NotFoundError(entity or model.__name__, entity_id)
    return row
