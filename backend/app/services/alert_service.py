# Overview: Read-only derivation of receivables and stock alerts from the ledger.

"""
Alert Deriver

Four independent families computed from one read snapshot and merged:
- OVERDUE       outstanding CREDIT sale past its due date (HIGH)
- DUE_SOON      outstanding CREDIT sale due within DUE_SOON_DAYS (MEDIUM)
- CREDIT_LIMIT  customer debt at or over the limit (HIGH) or within
                CREDIT_WARNING_PERCENT of it (MEDIUM)
- LOW_STOCK     active product at or below min_stock (HIGH at 0,
                MEDIUM up to 3, LOW otherwise), lowest stock first

Nothing here writes. Alerts are plain dicts; filters by type/priority
are applied after derivation.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app

from ..errors import ValidationError
from ..models import Customer, Product, Sale, OUTSTANDING_STATUSES, PAYMENT_METHOD_CREDIT
from app.time_utils import to_utc_z, utcnow, whole_days_between
from .concurrency import snapshot_session
from .inventory_service import get_low_stock_products


logger = logging.getLogger(__name__)


ALERT_OVERDUE = "OVERDUE"
ALERT_DUE_SOON = "DUE_SOON"
ALERT_CREDIT_LIMIT = "CREDIT_LIMIT"
ALERT_LOW_STOCK = "LOW_STOCK"

ALERT_TYPES = [ALERT_OVERDUE, ALERT_DUE_SOON, ALERT_CREDIT_LIMIT, ALERT_LOW_STOCK]

PRIORITY_HIGH = "HIGH"
PRIORITY_MEDIUM = "MEDIUM"
PRIORITY_LOW = "LOW"

PRIORITIES = [PRIORITY_HIGH, PRIORITY_MEDIUM, PRIORITY_LOW]

_PRIORITY_RANK = {p: i for i, p in enumerate(PRIORITIES)}
_TYPE_RANK = {t: i for i, t in enumerate(ALERT_TYPES)}

DEFAULT_DUE_SOON_DAYS = 7
DEFAULT_LOW_STOCK_LIMIT = 20
DEFAULT_CREDIT_WARNING_PERCENT = 90
LOW_STOCK_MEDIUM_THRESHOLD = 3

_HUNDRED = Decimal(100)
_NO_LIMIT_USAGE = Decimal("Infinity")


def _format_cents(cents: int) -> str:
    return f"${Decimal(cents) / _HUNDRED:,.2f}"


def _plural_days(days: int) -> str:
    return f"{days} day" if days == 1 else f"{days} days"


def _alert(
    *,
    alert_id: str,
    alert_type: str,
    priority: str,
    title: str,
    message: str,
    entity_type: str,
    entity_id: int,
    entity_name: str,
    metadata: dict,
    sort_value,
) -> dict:
    return {
        "id": alert_id,
        "type": alert_type,
        "priority": priority,
        "title": title,
        "message": message,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "entity_name": entity_name,
        "metadata": metadata,
        "_sort": (_PRIORITY_RANK[priority], _TYPE_RANK[alert_type], sort_value, entity_id),
    }


# =============================================================================
# FAMILIES
# =============================================================================

def _outstanding_credit_sales(session, org_id: int):
    return (
        session.query(Sale, Customer.name)
        .outerjoin(Customer, Customer.id == Sale.customer_id)
        .filter(
            Sale.org_id == org_id,
            Sale.payment_method == PAYMENT_METHOD_CREDIT,
            Sale.payment_status.in_(OUTSTANDING_STATUSES),
            Sale.due_date.isnot(None),
        )
    )


def _sale_metadata(sale: Sale, customer_name: str | None) -> dict:
    return {
        "customer_id": sale.customer_id,
        "customer_name": customer_name,
        "folio": sale.folio,
        "remaining_balance_cents": sale.remaining_balance_cents,
        "due_date": to_utc_z(sale.due_date),
    }


def overdue_alerts(session, org_id: int, now: datetime) -> list[dict]:
    rows = (
        _outstanding_credit_sales(session, org_id)
        .filter(Sale.due_date < now)
        .order_by(Sale.due_date.asc(), Sale.id.asc())
        .all()
    )
    alerts = []
    for sale, customer_name in rows:
        days_overdue = whole_days_between(sale.due_date, now)
        metadata = _sale_metadata(sale, customer_name)
        metadata["days_overdue"] = days_overdue
        alerts.append(_alert(
            alert_id=f"overdue-{sale.id}",
            alert_type=ALERT_OVERDUE,
            priority=PRIORITY_HIGH,
            title=f"Payment overdue by {_plural_days(days_overdue)}",
            message=(
                f"{customer_name or 'Customer'} - Sale {sale.folio} - "
                f"{_format_cents(sale.remaining_balance_cents)} outstanding"
            ),
            entity_type="SALE",
            entity_id=sale.id,
            entity_name=sale.folio,
            metadata=metadata,
            sort_value=sale.due_date,
        ))
    return alerts


def due_soon_alerts(session, org_id: int, now: datetime, *, window_days: int) -> list[dict]:
    horizon = now + timedelta(days=window_days)
    rows = (
        _outstanding_credit_sales(session, org_id)
        .filter(Sale.due_date >= now, Sale.due_date <= horizon)
        .order_by(Sale.due_date.asc(), Sale.id.asc())
        .all()
    )
    alerts = []
    for sale, customer_name in rows:
        days_until_due = whole_days_between(now, sale.due_date)
        metadata = _sale_metadata(sale, customer_name)
        metadata["days_until_due"] = days_until_due
        alerts.append(_alert(
            alert_id=f"due-soon-{sale.id}",
            alert_type=ALERT_DUE_SOON,
            priority=PRIORITY_MEDIUM,
            title="Due today" if days_until_due == 0 else f"Due in {_plural_days(days_until_due)}",
            message=(
                f"{customer_name or 'Customer'} - Sale {sale.folio} - "
                f"{_format_cents(sale.remaining_balance_cents)} outstanding"
            ),
            entity_type="SALE",
            entity_id=sale.id,
            entity_name=sale.folio,
            metadata=metadata,
            sort_value=sale.due_date,
        ))
    return alerts


def credit_usage_percent(debt_cents: int, limit_cents: int) -> Decimal:
    """Debt as a percentage of the limit; a zero limit with debt is unbounded."""
    if limit_cents <= 0:
        return _NO_LIMIT_USAGE
    return Decimal(debt_cents) * _HUNDRED / Decimal(limit_cents)


def credit_limit_alerts(session, org_id: int, *, warning_percent: int) -> list[dict]:
    customers = (
        session.query(Customer)
        .filter(
            Customer.org_id == org_id,
            Customer.is_active.is_(True),
            Customer.current_debt_cents > 0,
        )
        .order_by(Customer.id.asc())
        .all()
    )
    alerts = []
    for customer in customers:
        debt = customer.current_debt_cents
        limit = customer.credit_limit_cents
        usage = credit_usage_percent(debt, limit)
        usage_display = (
            None if usage == _NO_LIMIT_USAGE
            else str(usage.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))
        )
        metadata = {
            "debt_cents": debt,
            "limit_cents": limit,
            "usage_percent": usage_display,
        }

        if usage >= _HUNDRED:
            exceeded = debt - limit
            metadata["exceeded_cents"] = exceeded
            alerts.append(_alert(
                alert_id=f"credit-limit-{customer.id}",
                alert_type=ALERT_CREDIT_LIMIT,
                priority=PRIORITY_HIGH,
                title="Credit limit exceeded" if exceeded > 0 else "Credit limit reached",
                message=(
                    f"{customer.name} - Owes {_format_cents(debt)} of a "
                    f"{_format_cents(limit)} limit ({_format_cents(exceeded)} over)"
                ),
                entity_type="CUSTOMER",
                entity_id=customer.id,
                entity_name=customer.name,
                metadata=metadata,
                sort_value=-exceeded,
            ))
        elif usage >= warning_percent:
            alerts.append(_alert(
                alert_id=f"credit-warning-{customer.id}",
                alert_type=ALERT_CREDIT_LIMIT,
                priority=PRIORITY_MEDIUM,
                title=f"Credit at {usage.quantize(Decimal('1'), rounding=ROUND_HALF_UP)}%",
                message=f"{customer.name} - Owes {_format_cents(debt)} of a {_format_cents(limit)} limit",
                entity_type="CUSTOMER",
                entity_id=customer.id,
                entity_name=customer.name,
                metadata=metadata,
                sort_value=-usage,
            ))
    return alerts


def low_stock_priority(stock: int) -> str:
    if stock == 0:
        return PRIORITY_HIGH
    if stock <= LOW_STOCK_MEDIUM_THRESHOLD:
        return PRIORITY_MEDIUM
    return PRIORITY_LOW


def low_stock_alerts(session, org_id: int, *, limit: int) -> list[dict]:
    alerts = []
    for product in get_low_stock_products(session, org_id, limit=limit):
        alerts.append(_alert(
            alert_id=f"low-stock-{product.id}",
            alert_type=ALERT_LOW_STOCK,
            priority=low_stock_priority(product.stock),
            title="Out of stock" if product.stock == 0 else "Low stock",
            message=f"{product.name} - {product.stock} units (minimum: {product.min_stock})",
            entity_type="PRODUCT",
            entity_id=product.id,
            entity_name=product.name,
            metadata={
                "sku": product.sku,
                "stock": product.stock,
                "min_stock": product.min_stock,
            },
            sort_value=product.stock,
        ))
    return alerts


# =============================================================================
# ENTRY POINTS
# =============================================================================

def _normalize_filter(value, field: str, choices) -> str | None:
    if value is None or value == "":
        return None
    normalized = str(value).strip().upper()
    if normalized not in choices:
        raise ValidationError(
            f"{field} must be one of {choices}",
            details={"field": field, "value": value},
        )
    return normalized


def derive_alerts(
    org_id: int,
    *,
    alert_type: str | None = None,
    priority: str | None = None,
    now: datetime | None = None,
) -> list[dict]:
    """
    Derive every alert for the org, merged and sorted.

    Order: priority (HIGH, MEDIUM, LOW), then family, then the family's
    most urgent first (earliest due date, largest overage then highest
    credit usage, lowest stock).
    """
    alert_type = _normalize_filter(alert_type, "type", ALERT_TYPES)
    priority = _normalize_filter(priority, "priority", PRIORITIES)
    now = now or utcnow()

    config = current_app.config
    due_soon_days = int(config.get("DUE_SOON_DAYS", DEFAULT_DUE_SOON_DAYS))
    low_stock_limit = int(config.get("LOW_STOCK_ALERT_LIMIT", DEFAULT_LOW_STOCK_LIMIT))
    warning_percent = int(config.get("CREDIT_WARNING_PERCENT", DEFAULT_CREDIT_WARNING_PERCENT))

    with snapshot_session() as session:
        alerts = []
        alerts.extend(overdue_alerts(session, org_id, now))
        alerts.extend(due_soon_alerts(session, org_id, now, window_days=due_soon_days))
        alerts.extend(credit_limit_alerts(session, org_id, warning_percent=warning_percent))
        alerts.extend(low_stock_alerts(session, org_id, limit=low_stock_limit))

    if alert_type:
        alerts = [a for a in alerts if a["type"] == alert_type]
    if priority:
        alerts = [a for a in alerts if a["priority"] == priority]

    alerts.sort(key=lambda a: a["_sort"])
    for alert in alerts:
        del alert["_sort"]

    logger.debug("Derived %s alerts for org=%s", len(alerts), org_id)
    return alerts


def summarize_alerts(alerts: list[dict]) -> dict:
    by_type = {t: 0 for t in ALERT_TYPES}
    by_priority = {p: 0 for p in PRIORITIES}
    for alert in alerts:
        by_type[alert["type"]] += 1
        by_priority[alert["priority"]] += 1
    return {
        "total": len(alerts),
        "by_type": by_type,
        "by_priority": by_priority,
    }
