# Overview: Service-layer operations for payment; encapsulates business logic and database work.

"""
Payment Allocation Engine

Money received from a customer is applied either to one sale (Targeted)
or across the customer's outstanding CREDIT sales oldest first (General).

DESIGN PRINCIPLES:
- The target is resolved once at the entry point into Targeted / General
- Each sale balance changes through one conditional UPDATE that re-checks
  remaining_balance_cents >= applied, so two concurrent allocations can
  never both consume the same balance
- CustomerPayment rows are append-only; money left over after every
  outstanding sale is paid becomes one advance row (sale_id NULL)
- Customer debt is decreased once per call by the full amount received
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Union

from sqlalchemy import case, update

from ..errors import ExcessPaymentError, NotFoundError
from ..extensions import db
from ..models import (
    Customer,
    CustomerPayment,
    Sale,
    OUTSTANDING_STATUSES,
    PAYMENT_METHOD_CREDIT,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PARTIAL,
    VALID_RECEIPT_METHODS,
)
from ..validation import (
    MAX_AMOUNT_CENTS,
    MAX_NOTES_LENGTH,
    MAX_REFERENCE_LENGTH,
    optional_datetime,
    optional_int,
    optional_text,
    require_choice,
    require_positive_int,
)
from app.time_utils import utcnow
from .concurrency import lock_for_update, require_one_row, run_in_transaction
from .customer_service import decrease_debt
from .tenant_service import get_scoped, scoped_query


logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 500


# =============================================================================
# PAYMENT TARGET
# =============================================================================

@dataclass(frozen=True)
class Targeted:
    """Apply the whole amount to one sale."""
    sale_id: int


@dataclass(frozen=True)
class General:
    """Spread the amount over outstanding sales, oldest first."""


PaymentTarget = Union[Targeted, General]


def resolve_target(sale_id) -> PaymentTarget:
    sale_id = optional_int(sale_id, "sale_id")
    if sale_id is None:
        return General()
    return Targeted(sale_id=require_positive_int(sale_id, "sale_id"))


# =============================================================================
# SALE BALANCE UPDATE
# =============================================================================

def _apply_to_sale(org_id: int, sale_id: int, amount_cents: int) -> None:
    """
    Move amount_cents from remaining to paid on one sale.

    Matches only while the sale is still outstanding with at least
    amount_cents remaining; zero rows means another writer got there first.
    """
    stmt = (
        update(Sale)
        .where(
            Sale.id == sale_id,
            Sale.org_id == org_id,
            Sale.payment_status.in_(OUTSTANDING_STATUSES),
            Sale.remaining_balance_cents >= amount_cents,
        )
        # MySQL evaluates SET left to right; status must read the old balance
        .ordered_values(
            (
                Sale.payment_status,
                case(
                    (Sale.remaining_balance_cents == amount_cents, PAYMENT_STATUS_PAID),
                    else_=PAYMENT_STATUS_PARTIAL,
                ),
            ),
            (Sale.amount_paid_cents, Sale.amount_paid_cents + amount_cents),
            (Sale.remaining_balance_cents, Sale.remaining_balance_cents - amount_cents),
        )
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    require_one_row(
        result,
        name="sale balance update",
        details={"sale_id": sale_id, "amount_cents": amount_cents},
    )


def _add_payment_row(
    *,
    org_id: int,
    customer_id: int,
    sale_id: int | None,
    amount_cents: int,
    payment_method: str,
    payment_date: datetime,
    reference: str | None,
    notes: str | None,
    user_id: int | None,
) -> CustomerPayment:
    payment = CustomerPayment(
        org_id=org_id,
        customer_id=customer_id,
        sale_id=sale_id,
        amount_cents=amount_cents,
        payment_method=payment_method,
        payment_date=payment_date,
        reference=reference,
        notes=notes,
        created_by_user_id=user_id,
    )
    db.session.add(payment)
    return payment


# =============================================================================
# ALLOCATION
# =============================================================================

def _allocate_targeted(target: Targeted, org_id: int, customer_id: int, amount_cents: int, add_row) -> list:
    sale = get_scoped(Sale, org_id, target.sale_id, entity="Sale", lock=True)
    if sale.customer_id != customer_id:
        raise NotFoundError("Sale", target.sale_id)

    if amount_cents > sale.remaining_balance_cents:
        raise ExcessPaymentError(
            remaining_balance_cents=sale.remaining_balance_cents,
            amount_cents=amount_cents,
        )

    _apply_to_sale(org_id, sale.id, amount_cents)
    return [add_row(sale.id, amount_cents)]


def _allocate_general(org_id: int, customer_id: int, amount_cents: int, add_row) -> list:
    outstanding = lock_for_update(
        scoped_query(Sale, org_id)
        .filter(
            Sale.customer_id == customer_id,
            Sale.payment_method == PAYMENT_METHOD_CREDIT,
            Sale.payment_status.in_(OUTSTANDING_STATUSES),
            Sale.remaining_balance_cents > 0,
        )
        .order_by(Sale.created_at.asc(), Sale.id.asc())
    ).all()

    rows = []
    remaining = amount_cents
    for sale in outstanding:
        if remaining == 0:
            break
        applied = min(remaining, sale.remaining_balance_cents)
        _apply_to_sale(org_id, sale.id, applied)
        rows.append(add_row(sale.id, applied))
        remaining -= applied

    if remaining > 0:
        rows.append(add_row(None, remaining))
    return rows


def record_payment(
    org_id: int,
    user_id: int | None,
    customer_id: int,
    amount_cents,
    payment_method: str,
    sale_id: int | None = None,
    reference: str | None = None,
    notes: str | None = None,
    payment_date=None,
) -> list[CustomerPayment]:
    """
    Record money received from a customer.

    sale_id given: the whole amount goes to that sale, which must belong
    to the customer and have at least that much remaining.
    sale_id omitted: FIFO over outstanding CREDIT sales; any excess is
    kept as an advance payment.

    Returns:
        CustomerPayment rows created by this call, in allocation order.

    Raises:
        ValidationError, NotFoundError, ExcessPaymentError (targeted only),
        ConcurrencyConflictError
    """
    customer_id = require_positive_int(customer_id, "customer_id")
    amount_cents = require_positive_int(amount_cents, "amount_cents", maximum=MAX_AMOUNT_CENTS)
    method = require_choice(payment_method, "payment_method", VALID_RECEIPT_METHODS)
    reference = optional_text(reference, "reference", MAX_REFERENCE_LENGTH)
    notes = optional_text(notes, "notes", MAX_NOTES_LENGTH)
    paid_at = optional_datetime(payment_date, "payment_date") or utcnow()
    target = resolve_target(sale_id)

    def _op() -> list[CustomerPayment]:
        get_scoped(Customer, org_id, customer_id, entity="Customer", lock=True)

        def add_row(row_sale_id, row_amount):
            return _add_payment_row(
                org_id=org_id,
                customer_id=customer_id,
                sale_id=row_sale_id,
                amount_cents=row_amount,
                payment_method=method,
                payment_date=paid_at,
                reference=reference,
                notes=notes,
                user_id=user_id,
            )

        if isinstance(target, Targeted):
            rows = _allocate_targeted(target, org_id, customer_id, amount_cents, add_row)
        else:
            rows = _allocate_general(org_id, customer_id, amount_cents, add_row)

        decrease_debt(org_id, customer_id, amount_cents)
        db.session.flush()
        return rows

    rows = run_in_transaction(_op, name="payment")
    logger.info(
        "Payment committed org=%s customer=%s amount=%s mode=%s allocations=%s",
        org_id,
        customer_id,
        amount_cents,
        type(target).__name__,
        [(row.sale_id, row.amount_cents) for row in rows],
    )
    return rows


# =============================================================================
# QUERIES
# =============================================================================

def list_payments(
    org_id: int,
    *,
    customer_id=None,
    sale_id=None,
    start=None,
    end=None,
    limit=DEFAULT_LIST_LIMIT,
) -> list[CustomerPayment]:
    """Payment ledger for the org, newest first. start/end are inclusive."""
    customer_id = optional_int(customer_id, "customer_id")
    sale_id = optional_int(sale_id, "sale_id")
    start = optional_datetime(start, "start")
    end = optional_datetime(end, "end")
    limit = optional_int(limit, "limit") or DEFAULT_LIST_LIMIT
    limit = max(1, min(limit, MAX_LIST_LIMIT))

    query = scoped_query(CustomerPayment, org_id)
    if customer_id is not None:
        query = query.filter(CustomerPayment.customer_id == customer_id)
    if sale_id is not None:
        query = query.filter(CustomerPayment.sale_id == sale_id)
    if start is not None:
        query = query.filter(CustomerPayment.payment_date >= start)
    if end is not None:
        query = query.filter(CustomerPayment.payment_date <= end)

    return (
        query.order_by(CustomerPayment.payment_date.desc(), CustomerPayment.id.desc())
        .limit(limit)
        .all()
    )
