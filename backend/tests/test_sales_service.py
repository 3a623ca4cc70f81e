# Overview: Pytest coverage for sale processing.

"""
Sale Transaction Tests

Covers:
- Cash and credit sale balance initialisation
- Catalogue price fallback and tax rounding
- Full rollback on insufficient stock and exceeded credit
- Folio format and per-tenant sequencing
- Input validation before any write
"""

from datetime import datetime, timedelta

import pytest

from app.errors import (
    CreditLimitExceededError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from app.models import Customer, Product, Sale, SaleItem
from app.services import sales_service
from app.services.sales_service import calculate_tax_cents


BASE_TIME = datetime(2026, 1, 14, 9, 30, 0)


class TestCashAndCreditSales:

    def test_cash_sale_is_paid_at_checkout(self, db_session, org_a, product_a):
        result = sales_service.process_sale(
            org_a.id, 1,
            [{"product_id": product_a.id, "quantity": 2, "unit_price_cents": 1500}],
            "CASH",
            now=BASE_TIME,
        )

        sale = db_session.get(Sale, result["sale_id"])
        assert sale.folio == result["folio"]
        assert sale.subtotal_cents == 3000
        assert sale.total_cents == 3000
        assert sale.amount_paid_cents == 3000
        assert sale.remaining_balance_cents == 0
        assert sale.payment_status == "PAID"
        assert sale.due_date is None
        assert db_session.get(Product, product_a.id).stock == 8

    def test_credit_sale_opens_receivable(self, db_session, org_a, product_a, customer_a):
        result = sales_service.process_sale(
            org_a.id, 1,
            [{"product_id": product_a.id, "quantity": 3}],
            "credit",
            customer_id=customer_a.id,
            now=BASE_TIME,
        )

        sale = db_session.get(Sale, result["sale_id"])
        assert sale.payment_method == "CREDIT"
        assert sale.total_cents == 3000
        assert sale.amount_paid_cents == 0
        assert sale.remaining_balance_cents == 3000
        assert sale.payment_status == "PENDING"
        assert sale.due_date == BASE_TIME + timedelta(days=30)
        assert db_session.get(Customer, customer_a.id).current_debt_cents == 3000

    def test_items_persisted_with_catalogue_price(self, db_session, org_a, make_product):
        apple = make_product(org_a, unit_price_cents=250)
        pear = make_product(org_a, unit_price_cents=400)

        result = sales_service.process_sale(
            org_a.id, 1,
            [
                {"product_id": apple.id, "quantity": 4},
                {"product_id": pear.id, "quantity": 1, "unit_price_cents": 350},
            ],
            "CARD",
            notes="counter 2",
        )

        items = db_session.query(SaleItem).filter_by(sale_id=result["sale_id"]).order_by(SaleItem.id).all()
        assert [(i.product_id, i.quantity, i.unit_price_cents, i.line_total_cents) for i in items] == [
            (apple.id, 4, 250, 1000),
            (pear.id, 1, 350, 350),
        ]
        assert db_session.get(Sale, result["sale_id"]).subtotal_cents == 1350

    def test_tax_uses_org_rate(self, db_session, org_a, make_product):
        org_a.tax_rate_bps = 1600
        db_session.commit()
        product = make_product(org_a, unit_price_cents=1999)

        result = sales_service.process_sale(
            org_a.id, 1, [{"product_id": product.id, "quantity": 1}], "CASH"
        )

        sale = db_session.get(Sale, result["sale_id"])
        assert sale.subtotal_cents == 1999
        assert sale.tax_cents == 320          # 319.84 rounds up
        assert sale.total_cents == 2319
        assert sale.amount_paid_cents + sale.remaining_balance_cents == sale.total_cents

    def test_get_sale_includes_items(self, db_session, org_a, product_a):
        result = sales_service.process_sale(
            org_a.id, 1, [{"product_id": product_a.id, "quantity": 1}], "TRANSFER"
        )

        payload = sales_service.get_sale(org_a.id, result["sale_id"])

        assert payload["folio"] == result["folio"]
        assert len(payload["items"]) == 1
        assert payload["items"][0]["product_id"] == product_a.id


@pytest.mark.parametrize("subtotal,bps,expected", [
    (1000, 0, 0),
    (1000, 1600, 160),
    (1, 5000, 1),        # 0.5 rounds half up
    (3, 1650, 0),        # 0.495
    (1999, 825, 165),    # 164.9175
])
def test_calculate_tax_cents(subtotal, bps, expected):
    assert calculate_tax_cents(subtotal, bps) == expected


class TestAtomicity:

    def test_insufficient_stock_rolls_back_earlier_items(self, db_session, org_a, make_product):
        plenty = make_product(org_a, stock=10)
        scarce = make_product(org_a, stock=3)

        with pytest.raises(InsufficientStockError) as exc:
            sales_service.process_sale(
                org_a.id, 1,
                [
                    {"product_id": plenty.id, "quantity": 2},
                    {"product_id": scarce.id, "quantity": 5},
                ],
                "CASH",
            )

        assert exc.value.details == {"product_id": scarce.id, "available": 3, "requested": 5}
        assert db_session.get(Product, plenty.id).stock == 10
        assert db_session.get(Product, scarce.id).stock == 3
        assert db_session.query(Sale).count() == 0

    def test_credit_limit_rolls_back_stock(self, db_session, org_a, make_product, make_customer):
        product = make_product(org_a, stock=5, unit_price_cents=100)
        customer = make_customer(org_a, credit_limit_cents=1000, current_debt_cents=950)

        with pytest.raises(CreditLimitExceededError) as exc:
            sales_service.process_sale(
                org_a.id, 1,
                [{"product_id": product.id, "quantity": 1}],
                "CREDIT",
                customer_id=customer.id,
            )

        assert exc.value.limit_cents == 1000
        assert exc.value.current_debt_cents == 950
        assert exc.value.attempted_cents == 100
        assert db_session.get(Customer, customer.id).current_debt_cents == 950
        assert db_session.get(Product, product.id).stock == 5
        assert db_session.query(Sale).count() == 0

    def test_failed_sale_does_not_consume_folio(self, db_session, org_a, make_product):
        product = make_product(org_a, stock=1)

        first = sales_service.process_sale(
            org_a.id, 1, [{"product_id": product.id, "quantity": 1}], "CASH", now=BASE_TIME
        )
        with pytest.raises(InsufficientStockError):
            sales_service.process_sale(
                org_a.id, 1, [{"product_id": product.id, "quantity": 1}], "CASH", now=BASE_TIME
            )
        product.stock = 1
        db_session.commit()
        second = sales_service.process_sale(
            org_a.id, 1, [{"product_id": product.id, "quantity": 1}], "CASH", now=BASE_TIME
        )

        assert first["folio"] == "V-20260114-000001"
        assert second["folio"] == "V-20260114-000002"


class TestFolios:

    def test_sequence_is_per_tenant(self, db_session, org_a, org_b, make_product):
        pa = make_product(org_a)
        pb = make_product(org_b)

        a1 = sales_service.process_sale(org_a.id, 1, [{"product_id": pa.id, "quantity": 1}], "CASH", now=BASE_TIME)
        a2 = sales_service.process_sale(org_a.id, 1, [{"product_id": pa.id, "quantity": 1}], "CASH", now=BASE_TIME)
        b1 = sales_service.process_sale(org_b.id, 1, [{"product_id": pb.id, "quantity": 1}], "CASH", now=BASE_TIME)

        assert a1["folio"] == "V-20260114-000001"
        assert a2["folio"] == "V-20260114-000002"
        assert b1["folio"] == "V-20260114-000001"


class TestValidation:

    @pytest.mark.parametrize("items", [None, [], "abc", [{"product_id": 1, "quantity": 0}],
                                       [{"product_id": 1, "quantity": 1.5}],
                                       [{"product_id": 1, "quantity": 1, "unit_price_cents": -1}]])
    def test_malformed_items(self, db_session, org_a, items):
        with pytest.raises(ValidationError):
            sales_service.process_sale(org_a.id, 1, items, "CASH")

    def test_unknown_payment_method(self, db_session, org_a, product_a):
        with pytest.raises(ValidationError):
            sales_service.process_sale(
                org_a.id, 1, [{"product_id": product_a.id, "quantity": 1}], "BARTER"
            )

    def test_credit_requires_customer(self, db_session, org_a, product_a):
        with pytest.raises(ValidationError):
            sales_service.process_sale(
                org_a.id, 1, [{"product_id": product_a.id, "quantity": 1}], "CREDIT"
            )
        assert db_session.get(Product, product_a.id).stock == 10

    def test_zero_total_rejected(self, db_session, org_a, make_product):
        free = make_product(org_a, unit_price_cents=0)

        with pytest.raises(ValidationError):
            sales_service.process_sale(org_a.id, 1, [{"product_id": free.id, "quantity": 1}], "CASH")
        assert db_session.get(Product, free.id).stock == 10

    def test_zero_priced_items_rejected_before_transaction(self, db_session, org_a, product_a, monkeypatch):
        def _no_transaction(*args, **kwargs):
            raise AssertionError("transaction opened for invalid input")

        monkeypatch.setattr(sales_service, "run_in_transaction", _no_transaction)

        with pytest.raises(ValidationError) as exc:
            sales_service.process_sale(
                org_a.id, 1,
                [{"product_id": product_a.id, "quantity": 3, "unit_price_cents": 0}],
                "CASH",
            )
        assert exc.value.details == {"total_cents": 0}

    def test_foreign_product_not_found(self, db_session, org_a, org_b, make_product):
        foreign = make_product(org_b)

        with pytest.raises(NotFoundError):
            sales_service.process_sale(org_a.id, 1, [{"product_id": foreign.id, "quantity": 1}], "CASH")
        assert db_session.get(Product, foreign.id).stock == 10

    def test_foreign_customer_not_found(self, db_session, org_a, org_b, product_a, make_customer):
        foreign = make_customer(org_b)

        with pytest.raises(NotFoundError):
            sales_service.process_sale(
                org_a.id, 1, [{"product_id": product_a.id, "quantity": 1}], "CREDIT",
                customer_id=foreign.id,
            )
        assert db_session.get(Customer, foreign.id).current_debt_cents == 0
