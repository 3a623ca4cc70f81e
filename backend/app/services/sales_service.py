"""
Sale Transaction Processor

Creates a sale in one all-or-nothing transaction:
1. verify every product belongs to the org
2. decrement stock per item (conditional UPDATE)
3. CREDIT only: raise customer debt against the credit limit
4. initialise the receivable balance (PENDING with due date for CREDIT,
   PAID for everything else)
5. persist Sale + SaleItems under a fresh folio

Any failure rolls back every earlier step of the same call, including
stock already taken for earlier items.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP

from flask import current_app

from ..errors import ValidationError
from ..extensions import db
from ..models import (
    Customer,
    Sale,
    SaleItem,
    PAYMENT_METHOD_CREDIT,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PENDING,
    VALID_PAYMENT_METHODS,
)
from ..validation import (
    MAX_AMOUNT_CENTS,
    MAX_NOTES_LENGTH,
    optional_int,
    optional_text,
    require_choice,
    require_non_negative_int,
    require_positive_int,
)
from app.time_utils import utcnow
from .concurrency import run_in_transaction
from .customer_service import increase_debt
from .document_service import next_folio
from .inventory_service import decrement_stock, load_products
from .tenant_service import get_active_org, get_scoped


logger = logging.getLogger(__name__)

DEFAULT_CREDIT_TERM_DAYS = 30
MAX_ITEMS_PER_SALE = 500
MAX_QUANTITY = 1_000_000


def _validate_items(items) -> list[dict]:
    if not isinstance(items, (list, tuple)) or not items:
        raise ValidationError("items must be a non-empty list", details={"field": "items"})
    if len(items) > MAX_ITEMS_PER_SALE:
        raise ValidationError(
            f"a sale cannot have more than {MAX_ITEMS_PER_SALE} items",
            details={"field": "items", "count": len(items)},
        )

    cleaned = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError("each item must be an object", details={"field": f"items[{index}]"})
        unit_price = item.get("unit_price_cents")
        cleaned.append({
            "product_id": require_positive_int(item.get("product_id"), f"items[{index}].product_id"),
            "quantity": require_positive_int(
                item.get("quantity"), f"items[{index}].quantity", maximum=MAX_QUANTITY
            ),
            "unit_price_cents": (
                None if unit_price is None
                else require_non_negative_int(
                    unit_price, f"items[{index}].unit_price_cents", maximum=MAX_AMOUNT_CENTS
                )
            ),
        })
    return cleaned


def calculate_tax_cents(subtotal_cents: int, tax_rate_bps: int) -> int:
    """Tax on a subtotal at a basis-point rate, rounded half-up to the cent."""
    if not tax_rate_bps:
        return 0
    tax = Decimal(subtotal_cents) * Decimal(tax_rate_bps) / Decimal(10_000)
    return int(tax.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _require_positive_total(total_cents: int) -> None:
    if total_cents <= 0:
        raise ValidationError("sale total must be > 0", details={"total_cents": total_cents})


def _credit_term_days() -> int:
    return int(current_app.config.get("CREDIT_TERM_DAYS", DEFAULT_CREDIT_TERM_DAYS))


def process_sale(
    org_id: int,
    user_id: int | None,
    items,
    payment_method: str,
    customer_id: int | None = None,
    notes: str | None = None,
    *,
    now: datetime | None = None,
) -> dict:
    """
    Create and commit a sale.

    items: [{"product_id", "quantity", "unit_price_cents"?}]; a missing
    unit price falls back to the product's catalogue price.

    Returns:
        {"sale_id": int, "folio": str}

    Raises:
        ValidationError: malformed input or a total that is not positive
        NotFoundError: product or customer missing in this org
        InsufficientStockError / CreditLimitExceededError: sale rolled back
    """
    lines = _validate_items(items)
    method = require_choice(payment_method, "payment_method", VALID_PAYMENT_METHODS)
    customer_id = optional_int(customer_id, "customer_id")
    notes = optional_text(notes, "notes", MAX_NOTES_LENGTH)
    if method == PAYMENT_METHOD_CREDIT and customer_id is None:
        raise ValidationError(
            "customer_id is required for CREDIT sales",
            details={"field": "customer_id"},
        )
    # Tax never turns a zero subtotal positive, so a fully priced order can
    # be checked here. Catalogue-priced lines are only known after the
    # product read and are checked inside the transaction.
    if all(line["unit_price_cents"] is not None for line in lines):
        _require_positive_total(sum(line["unit_price_cents"] * line["quantity"] for line in lines))
    now = now or utcnow()
    term_days = _credit_term_days()

    def _op() -> dict:
        org = get_active_org(org_id)
        products = load_products(org_id, [line["product_id"] for line in lines])
        if customer_id is not None:
            get_scoped(Customer, org_id, customer_id, entity="Customer")

        subtotal_cents = 0
        for line in lines:
            if line["unit_price_cents"] is None:
                line["unit_price_cents"] = products[line["product_id"]].unit_price_cents
            line["line_total_cents"] = line["unit_price_cents"] * line["quantity"]
            subtotal_cents += line["line_total_cents"]

        tax_cents = calculate_tax_cents(subtotal_cents, org.tax_rate_bps)
        total_cents = subtotal_cents + tax_cents
        _require_positive_total(total_cents)

        for line in lines:
            decrement_stock(org_id, line["product_id"], line["quantity"])

        if method == PAYMENT_METHOD_CREDIT:
            increase_debt(org_id, customer_id, total_cents)
            amount_paid_cents = 0
            remaining_cents = total_cents
            payment_status = PAYMENT_STATUS_PENDING
            due_date = now + timedelta(days=term_days)
        else:
            amount_paid_cents = total_cents
            remaining_cents = 0
            payment_status = PAYMENT_STATUS_PAID
            due_date = None

        sale = Sale(
            org_id=org_id,
            customer_id=customer_id,
            folio=next_folio(org_id, now),
            payment_method=method,
            subtotal_cents=subtotal_cents,
            tax_cents=tax_cents,
            total_cents=total_cents,
            amount_paid_cents=amount_paid_cents,
            remaining_balance_cents=remaining_cents,
            payment_status=payment_status,
            due_date=due_date,
            notes=notes,
            created_by_user_id=user_id,
            created_at=now,
        )
        db.session.add(sale)
        db.session.flush()

        for line in lines:
            db.session.add(SaleItem(
                sale_id=sale.id,
                product_id=line["product_id"],
                quantity=line["quantity"],
                unit_price_cents=line["unit_price_cents"],
                line_total_cents=line["line_total_cents"],
            ))
        db.session.flush()

        return {"sale_id": sale.id, "folio": sale.folio}

    result = run_in_transaction(_op, name="sale")
    logger.info(
        "Sale committed org=%s sale=%s folio=%s method=%s customer=%s",
        org_id, result["sale_id"], result["folio"], method, customer_id,
    )
    return result


def get_sale(org_id: int, sale_id: int) -> dict:
    """Sale with its items, scoped to the org."""
    sale = get_scoped(Sale, org_id, sale_id, entity="Sale")
    payload = sale.to_dict()
    payload["items"] = [item.to_dict() for item in sale.items]
    return payload
