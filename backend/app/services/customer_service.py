# Overview: Service-layer operations for customer credit; encapsulates business logic and database work.

"""
Customer Debt Aggregator

Customer.current_debt_cents is maintained incrementally, co-located with
the customer row:
- increase_debt: guarded by the credit limit inside the same UPDATE
- decrease_debt: floored at zero inside the same UPDATE
Both are single conditional statements; neither reads the balance first.

reconcile_customer_debt is the correction path: it recomputes the
aggregate from outstanding CREDIT sales and fixes drift. It is
idempotent and safe to run on a schedule.
"""

from __future__ import annotations

import logging

from sqlalchemy import case, func, update

from ..errors import CreditLimitExceededError, NotFoundError, ValidationError
from ..extensions import db
from ..models import (
    Customer,
    CustomerPayment,
    Sale,
    OUTSTANDING_STATUSES,
    PAYMENT_METHOD_CREDIT,
)
from app.time_utils import to_utc_z, utcnow, whole_days_between
from .concurrency import run_in_transaction, snapshot_session
from .tenant_service import get_scoped


logger = logging.getLogger(__name__)


AGING_BUCKETS = (
    ("current", 30),
    ("days_30", 60),
    ("days_60", 90),
    ("days_90_plus", None),
)


# =============================================================================
# DEBT AGGREGATE
# =============================================================================

def increase_debt(org_id: int, customer_id: int, amount_cents: int) -> None:
    """
    Add amount_cents to the customer's debt if it stays within the limit.

    The limit check and the increment are one UPDATE, so two concurrent
    sales cannot both pass and jointly exceed the limit.

    Raises:
        NotFoundError: customer missing or owned by another org
        CreditLimitExceededError: current_debt + amount > credit_limit
    """
    if amount_cents <= 0:
        raise ValidationError("amount_cents must be > 0", details={"amount_cents": amount_cents})

    stmt = (
        update(Customer)
        .where(
            Customer.id == customer_id,
            Customer.org_id == org_id,
            Customer.current_debt_cents + amount_cents <= Customer.credit_limit_cents,
        )
        .values(current_debt_cents=Customer.current_debt_cents + amount_cents)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount == 1:
        return

    row = (
        db.session.query(Customer.credit_limit_cents, Customer.current_debt_cents)
        .filter(Customer.id == customer_id, Customer.org_id == org_id)
        .first()
    )
    if row is None:
        raise NotFoundError("Customer", customer_id)

    limit_cents, current_debt_cents = row
    logger.info(
        "Credit limit rejected org=%s customer=%s limit=%s debt=%s attempted=%s",
        org_id, customer_id, limit_cents, current_debt_cents, amount_cents,
    )
    raise CreditLimitExceededError(
        limit_cents=limit_cents,
        current_debt_cents=current_debt_cents,
        attempted_cents=amount_cents,
    )


def decrease_debt(org_id: int, customer_id: int, amount_cents: int) -> None:
    """
    Subtract amount_cents from the customer's debt, never below zero.

    The floor applies whatever amount is passed, so a payment whose sale
    was already reversed upstream cannot drive the aggregate negative.
    """
    if amount_cents <= 0:
        raise ValidationError("amount_cents must be > 0", details={"amount_cents": amount_cents})

    stmt = (
        update(Customer)
        .where(Customer.id == customer_id, Customer.org_id == org_id)
        .values(
            current_debt_cents=case(
                (Customer.current_debt_cents > amount_cents, Customer.current_debt_cents - amount_cents),
                else_=0,
            )
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    if result.rowcount != 1:
        raise NotFoundError("Customer", customer_id)


def get_available_credit(org_id: int, customer_id: int) -> int:
    """credit_limit - current_debt, in cents (negative when over the limit)."""
    row = (
        db.session.query(Customer.credit_limit_cents, Customer.current_debt_cents)
        .filter(Customer.id == customer_id, Customer.org_id == org_id)
        .first()
    )
    if row is None:
        raise NotFoundError("Customer", customer_id)
    return row[0] - row[1]


# =============================================================================
# LEDGER QUERIES
# =============================================================================

def _outstanding_sales_query(session, org_id: int, customer_id: int):
    return (
        session.query(Sale)
        .filter(
            Sale.org_id == org_id,
            Sale.customer_id == customer_id,
            Sale.payment_method == PAYMENT_METHOD_CREDIT,
            Sale.payment_status.in_(OUTSTANDING_STATUSES),
        )
        .order_by(Sale.created_at.asc(), Sale.id.asc())
    )


def get_customer_ledger(org_id: int, customer_id: int) -> dict:
    """
    Credit position of one customer.

    Returns credit limit, current debt, available credit, outstanding
    CREDIT sales (oldest first) and the total of unallocated payments.
    """
    with snapshot_session() as session:
        customer = (
            session.query(Customer)
            .filter(Customer.id == customer_id, Customer.org_id == org_id)
            .first()
        )
        if customer is None:
            raise NotFoundError("Customer", customer_id)

        outstanding = _outstanding_sales_query(session, org_id, customer_id).all()
        advance_cents = (
            session.query(func.coalesce(func.sum(CustomerPayment.amount_cents), 0))
            .filter(
                CustomerPayment.org_id == org_id,
                CustomerPayment.customer_id == customer_id,
                CustomerPayment.sale_id.is_(None),
            )
            .scalar()
        )

        return {
            "customer_id": customer.id,
            "name": customer.name,
            "credit_limit_cents": customer.credit_limit_cents,
            "current_debt_cents": customer.current_debt_cents,
            "available_credit_cents": customer.available_credit_cents,
            "outstanding_balance_cents": sum(s.remaining_balance_cents for s in outstanding),
            "advance_payments_cents": int(advance_cents or 0),
            "outstanding_sales": [s.to_dict() for s in outstanding],
        }


def _aging_bucket(days_old: int) -> str:
    for name, upper in AGING_BUCKETS:
        if upper is None or days_old <= upper:
            return name
    return AGING_BUCKETS[-1][0]


def get_account_statement(org_id: int, customer_id: int, *, now=None) -> dict:
    """
    Account statement for a customer.

    - summary: credit sales total, amount paid (including advance
      payments), pending debt and counts
    - aging: outstanding balances bucketed by sale age in days
      (0-30, 31-60, 61-90, 90+)
    - movements: sales (debit) and payments (credit) in date order with
      a running balance
    """
    now = now or utcnow()

    with snapshot_session() as session:
        customer = (
            session.query(Customer)
            .filter(Customer.id == customer_id, Customer.org_id == org_id)
            .first()
        )
        if customer is None:
            raise NotFoundError("Customer", customer_id)

        sales = (
            session.query(Sale)
            .filter(
                Sale.org_id == org_id,
                Sale.customer_id == customer_id,
                Sale.payment_method == PAYMENT_METHOD_CREDIT,
            )
            .order_by(Sale.created_at.asc(), Sale.id.asc())
            .all()
        )
        payments = (
            session.query(CustomerPayment)
            .filter(
                CustomerPayment.org_id == org_id,
                CustomerPayment.customer_id == customer_id,
            )
            .order_by(CustomerPayment.payment_date.asc(), CustomerPayment.id.asc())
            .all()
        )

        folios = {s.id: s.folio for s in sales}
        aging = {name: 0 for name, _ in AGING_BUCKETS}
        movements = []

        for sale in sales:
            if sale.remaining_balance_cents > 0:
                days_old = max(whole_days_between(sale.created_at, now), 0)
                aging[_aging_bucket(days_old)] += sale.remaining_balance_cents
            movements.append({
                "type": "SALE",
                "date": sale.created_at,
                "reference": sale.folio,
                "sale_id": sale.id,
                "payment_id": None,
                "debit_cents": sale.total_cents,
                "credit_cents": 0,
            })

        for payment in payments:
            movements.append({
                "type": "PAYMENT",
                "date": payment.payment_date,
                "reference": payment.reference or folios.get(payment.sale_id),
                "sale_id": payment.sale_id,
                "payment_id": payment.id,
                "payment_method": payment.payment_method,
                "debit_cents": 0,
                "credit_cents": payment.amount_cents,
            })

        # Sales before payments on the same timestamp
        movements.sort(key=lambda m: (m["date"], 0 if m["type"] == "SALE" else 1))

        running = 0
        for movement in movements:
            running += movement["debit_cents"] - movement["credit_cents"]
            movement["balance_cents"] = running
            movement["date"] = to_utc_z(movement["date"])

        total_sales = sum(s.total_cents for s in sales)
        total_paid = sum(p.amount_cents for p in payments)

        return {
            "customer": customer.to_dict(),
            "summary": {
                "total_sales_cents": total_sales,
                "total_paid_cents": total_paid,
                "total_pending_cents": customer.current_debt_cents,
                "number_of_sales": len(sales),
                "number_of_payments": len(payments),
            },
            "aging": aging,
            "movements": movements,
            "generated_at": to_utc_z(now),
        }


# =============================================================================
# RECONCILIATION
# =============================================================================

def compute_expected_debts(org_id: int | None = None) -> dict[int, int]:
    """customer_id -> sum of remaining balance over outstanding CREDIT sales."""
    query = (
        db.session.query(Sale.customer_id, func.sum(Sale.remaining_balance_cents))
        .filter(
            Sale.customer_id.isnot(None),
            Sale.payment_method == PAYMENT_METHOD_CREDIT,
            Sale.payment_status.in_(OUTSTANDING_STATUSES),
        )
        .group_by(Sale.customer_id)
    )
    if org_id is not None:
        query = query.filter(Sale.org_id == org_id)
    return {customer_id: int(total or 0) for customer_id, total in query.all()}


def reconcile_customer_debt(
    org_id: int | None = None,
    customer_id: int | None = None,
    *,
    dry_run: bool = False,
) -> list[dict]:
    """
    Recompute current_debt_cents from source rows and correct drift.

    Each correction is a conditional UPDATE that only applies if the
    stored value is still the one that was read; a customer touched by a
    concurrent sale or payment is skipped and picked up by the next run.

    Returns:
        One dict per drifted customer: customer_id, org_id,
        previous_cents, expected_cents, applied.
    """
    def _op():
        expected = compute_expected_debts(org_id)

        query = db.session.query(Customer)
        if org_id is not None:
            query = query.filter(Customer.org_id == org_id)
        if customer_id is not None:
            if org_id is None:
                raise ValidationError("org_id is required when customer_id is given")
            get_scoped(Customer, org_id, customer_id, entity="Customer")
            query = query.filter(Customer.id == customer_id)

        corrections = []
        for customer in query.order_by(Customer.id).all():
            target = expected.get(customer.id, 0)
            if customer.current_debt_cents == target:
                continue

            applied = False
            if not dry_run:
                result = db.session.execute(
                    update(Customer)
                    .where(
                        Customer.id == customer.id,
                        Customer.current_debt_cents == customer.current_debt_cents,
                    )
                    .values(current_debt_cents=target)
                    .execution_options(synchronize_session=False)
                )
                applied = result.rowcount == 1

            corrections.append({
                "customer_id": customer.id,
                "org_id": customer.org_id,
                "previous_cents": customer.current_debt_cents,
                "expected_cents": target,
                "applied": applied,
            })
            logger.warning(
                "Debt drift org=%s customer=%s stored=%s expected=%s applied=%s",
                customer.org_id, customer.id, customer.current_debt_cents, target, applied,
            )
        return corrections

    return run_in_transaction(_op, name="debt reconciliation")
