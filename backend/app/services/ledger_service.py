# Overview: Service-layer operations for ledger; encapsulates business logic and database work.

from __future__ import annotations

import logging

from sqlalchemy import func

from ..models import (
    CustomerPayment,
    Product,
    Sale,
    PAYMENT_METHOD_CREDIT,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PARTIAL,
    PAYMENT_STATUS_PENDING,
)
from .concurrency import snapshot_session
"""
Receivables Ledger Invariants (authoritative)

- amount_paid_cents + remaining_balance_cents == total_cents, exactly.
- remaining_balance_cents >= 0; payment_status is PAID iff remaining is
  zero, PENDING iff nothing is paid, PARTIAL otherwise.
- Product.stock >= 0.
- For a CREDIT sale, the CustomerPayment rows pointing at it add up to
  its amount_paid_cents.

audit_ledger only reads. Customer debt drift is corrected separately by
customer_service.reconcile_customer_debt.
"""


logger = logging.getLogger(__name__)


def expected_payment_status(amount_paid_cents: int, remaining_cents: int) -> str:
    if remaining_cents == 0:
        return PAYMENT_STATUS_PAID
    if amount_paid_cents == 0:
        return PAYMENT_STATUS_PENDING
    return PAYMENT_STATUS_PARTIAL


def _violation(check: str, entity: str, entity_id: int, org_id: int, **details) -> dict:
    return {
        "check": check,
        "entity": entity,
        "entity_id": entity_id,
        "org_id": org_id,
        "details": details,
    }


def audit_ledger(org_id: int | None = None) -> list[dict]:
    """
    Scan sales, payments and products for invariant violations.

    Returns one dict per violation (empty list when the ledger is sound).
    """
    violations: list[dict] = []

    with snapshot_session() as session:
        sales_query = session.query(Sale)
        products_query = session.query(Product).filter(Product.stock < 0)
        paid_query = (
            session.query(CustomerPayment.sale_id, func.sum(CustomerPayment.amount_cents))
            .filter(CustomerPayment.sale_id.isnot(None))
            .group_by(CustomerPayment.sale_id)
        )
        if org_id is not None:
            sales_query = sales_query.filter(Sale.org_id == org_id)
            products_query = products_query.filter(Product.org_id == org_id)
            paid_query = paid_query.filter(CustomerPayment.org_id == org_id)

        paid_by_sale = {sale_id: int(total or 0) for sale_id, total in paid_query.all()}

        for sale in sales_query.order_by(Sale.id).yield_per(500):
            paid = sale.amount_paid_cents
            remaining = sale.remaining_balance_cents

            if paid + remaining != sale.total_cents:
                violations.append(_violation(
                    "balance_equation", "Sale", sale.id, sale.org_id,
                    amount_paid_cents=paid,
                    remaining_balance_cents=remaining,
                    total_cents=sale.total_cents,
                ))
            if remaining < 0:
                violations.append(_violation(
                    "remaining_non_negative", "Sale", sale.id, sale.org_id,
                    remaining_balance_cents=remaining,
                ))
            else:
                expected = expected_payment_status(paid, remaining)
                if sale.payment_status != expected:
                    violations.append(_violation(
                        "payment_status", "Sale", sale.id, sale.org_id,
                        payment_status=sale.payment_status,
                        expected=expected,
                    ))

            if sale.payment_method == PAYMENT_METHOD_CREDIT:
                recorded = paid_by_sale.get(sale.id, 0)
                if recorded != paid:
                    violations.append(_violation(
                        "payments_match_paid", "Sale", sale.id, sale.org_id,
                        payments_total_cents=recorded,
                        amount_paid_cents=paid,
                    ))

        for product in products_query.order_by(Product.id).all():
            violations.append(_violation(
                "stock_non_negative", "Product", product.id, product.org_id,
                stock=product.stock,
            ))

    if violations:
        logger.warning("Ledger audit found %s violation(s) org=%s", len(violations), org_id)
    return violations
