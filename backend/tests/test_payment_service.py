# Overview: Pytest coverage for payment allocation.

"""
Payment Allocation Tests

Covers:
- Targeted payments: balance/status transitions and excess rejection
- General payments: FIFO across outstanding credit sales
- Overflow into a single advance payment row
- Debt decreased once by the full amount
- Payment ledger listing
"""

from datetime import datetime, timedelta

import pytest

from app.errors import ExcessPaymentError, NotFoundError, ValidationError
from app.models import Customer, CustomerPayment, Sale
from app.services import payment_service, sales_service
from app.services.payment_service import General, Targeted, resolve_target


BASE_TIME = datetime(2026, 2, 1, 10, 0, 0)


@pytest.fixture
def credit_sale(org_a, customer_a, make_product):
    """Factory: credit sale for customer_a with the given total in cents."""
    product = make_product(org_a, stock=1000, unit_price_cents=1)
    state = {"offset": 0}

    def _make(total_cents: int, customer=None):
        state["offset"] += 1
        result = sales_service.process_sale(
            org_a.id, 1,
            [{"product_id": product.id, "quantity": total_cents}],
            "CREDIT",
            customer_id=(customer or customer_a).id,
            now=BASE_TIME + timedelta(minutes=state["offset"]),
        )
        return result["sale_id"]

    return _make


def _sale(db_session, sale_id):
    return db_session.get(Sale, sale_id)


class TestTargetResolution:

    def test_missing_sale_id_is_general(self):
        assert resolve_target(None) == General()
        assert resolve_target("") == General()

    def test_sale_id_is_targeted(self):
        assert resolve_target("12") == Targeted(sale_id=12)

    def test_invalid_sale_id(self):
        with pytest.raises(ValidationError):
            resolve_target(-3)


class TestTargetedPayment:

    def test_partial_then_full(self, db_session, org_a, customer_a, credit_sale):
        sale_id = credit_sale(100)

        rows = payment_service.record_payment(org_a.id, 1, customer_a.id, 40, "CASH", sale_id=sale_id)
        assert [(r.sale_id, r.amount_cents) for r in rows] == [(sale_id, 40)]
        sale = _sale(db_session, sale_id)
        assert (sale.amount_paid_cents, sale.remaining_balance_cents, sale.payment_status) == (40, 60, "PARTIAL")

        payment_service.record_payment(org_a.id, 1, customer_a.id, 60, "CARD", sale_id=sale_id)
        sale = _sale(db_session, sale_id)
        assert (sale.amount_paid_cents, sale.remaining_balance_cents, sale.payment_status) == (100, 0, "PAID")
        assert db_session.get(Customer, customer_a.id).current_debt_cents == 0

    def test_excess_rejected_and_nothing_written(self, db_session, org_a, customer_a, credit_sale):
        sale_id = credit_sale(100)

        with pytest.raises(ExcessPaymentError) as exc:
            payment_service.record_payment(org_a.id, 1, customer_a.id, 101, "CASH", sale_id=sale_id)

        assert exc.value.details == {"remaining_balance_cents": 100, "amount_cents": 101}
        assert db_session.query(CustomerPayment).count() == 0
        assert _sale(db_session, sale_id).remaining_balance_cents == 100
        assert db_session.get(Customer, customer_a.id).current_debt_cents == 100

    def test_paid_sale_rejects_further_payment(self, db_session, org_a, customer_a, credit_sale):
        sale_id = credit_sale(50)
        payment_service.record_payment(org_a.id, 1, customer_a.id, 50, "CASH", sale_id=sale_id)

        with pytest.raises(ExcessPaymentError):
            payment_service.record_payment(org_a.id, 1, customer_a.id, 1, "CASH", sale_id=sale_id)

    def test_sale_of_another_customer_is_not_found(self, db_session, org_a, customer_a, make_customer, credit_sale):
        other = make_customer(org_a)
        sale_id = credit_sale(100, customer=other)

        with pytest.raises(NotFoundError):
            payment_service.record_payment(org_a.id, 1, customer_a.id, 10, "CASH", sale_id=sale_id)
        assert _sale(db_session, sale_id).remaining_balance_cents == 100

    def test_customer_of_another_tenant_is_not_found(self, db_session, org_a, org_b, make_customer):
        foreign = make_customer(org_b)

        with pytest.raises(NotFoundError):
            payment_service.record_payment(org_a.id, 1, foreign.id, 10, "CASH")
        assert db_session.query(CustomerPayment).count() == 0


class TestGeneralPayment:

    def test_fifo_splits_across_oldest_sales(self, db_session, org_a, customer_a, credit_sale):
        s1 = credit_sale(50)
        s2 = credit_sale(100)

        rows = payment_service.record_payment(org_a.id, 1, customer_a.id, 120, "CASH")

        assert [(r.sale_id, r.amount_cents) for r in rows] == [(s1, 50), (s2, 70)]
        assert _sale(db_session, s1).payment_status == "PAID"
        second = _sale(db_session, s2)
        assert second.payment_status == "PARTIAL"
        assert second.remaining_balance_cents == 30
        assert db_session.get(Customer, customer_a.id).current_debt_cents == 30

    def test_overflow_becomes_single_advance_row(self, db_session, org_a, customer_a, credit_sale):
        s1 = credit_sale(50)
        s2 = credit_sale(70)

        rows = payment_service.record_payment(org_a.id, 1, customer_a.id, 500, "TRANSFER", reference="TRX-1")

        assert [(r.sale_id, r.amount_cents) for r in rows] == [(s1, 50), (s2, 70), (None, 380)]
        assert all(r.reference == "TRX-1" for r in rows)
        assert db_session.get(Customer, customer_a.id).current_debt_cents == 0

    def test_no_outstanding_sales_is_advance(self, db_session, org_a, customer_a):
        rows = payment_service.record_payment(org_a.id, 1, customer_a.id, 900, "CASH")

        assert [(r.sale_id, r.amount_cents) for r in rows] == [(None, 900)]
        assert db_session.get(Customer, customer_a.id).current_debt_cents == 0

    def test_skips_paid_and_cash_sales(self, db_session, org_a, customer_a, product_a, credit_sale):
        sales_service.process_sale(
            org_a.id, 1, [{"product_id": product_a.id, "quantity": 1}], "CASH",
            customer_id=customer_a.id, now=BASE_TIME,
        )
        paid = credit_sale(30)
        payment_service.record_payment(org_a.id, 1, customer_a.id, 30, "CASH", sale_id=paid)
        open_sale = credit_sale(80)

        rows = payment_service.record_payment(org_a.id, 1, customer_a.id, 20, "CASH")

        assert [(r.sale_id, r.amount_cents) for r in rows] == [(open_sale, 20)]

    def test_payments_sum_to_amount_paid(self, db_session, org_a, customer_a, credit_sale):
        sale_ids = [credit_sale(amount) for amount in (35, 65, 40)]
        for amount in (10, 50, 45, 20):
            payment_service.record_payment(org_a.id, 1, customer_a.id, amount, "CASH")

        for sale_id in sale_ids:
            sale = _sale(db_session, sale_id)
            recorded = sum(
                p.amount_cents for p in db_session.query(CustomerPayment).filter_by(sale_id=sale_id)
            )
            assert recorded == sale.amount_paid_cents
            assert sale.amount_paid_cents + sale.remaining_balance_cents == sale.total_cents

        # 125 of 140 received, all allocated
        assert db_session.get(Customer, customer_a.id).current_debt_cents == 15

    def test_debt_floor_when_aggregate_lags(self, db_session, org_a, customer_a, credit_sale):
        sale_id = credit_sale(100)
        db_session.query(Customer).filter_by(id=customer_a.id).update({"current_debt_cents": 20})
        db_session.commit()

        payment_service.record_payment(org_a.id, 1, customer_a.id, 100, "CASH")

        assert _sale(db_session, sale_id).payment_status == "PAID"
        assert db_session.get(Customer, customer_a.id).current_debt_cents == 0


class TestValidation:

    @pytest.mark.parametrize("amount", [0, -10, "12.50", None, 1.5])
    def test_bad_amount(self, db_session, org_a, customer_a, amount):
        with pytest.raises(ValidationError):
            payment_service.record_payment(org_a.id, 1, customer_a.id, amount, "CASH")

    def test_credit_is_not_a_receipt_method(self, db_session, org_a, customer_a):
        with pytest.raises(ValidationError):
            payment_service.record_payment(org_a.id, 1, customer_a.id, 100, "CREDIT")

    def test_bad_payment_date(self, db_session, org_a, customer_a):
        with pytest.raises(ValidationError):
            payment_service.record_payment(
                org_a.id, 1, customer_a.id, 100, "CASH", payment_date="yesterday"
            )


class TestListPayments:

    def test_filters_and_order(self, db_session, org_a, org_b, customer_a, make_customer, credit_sale):
        sale_id = credit_sale(100)
        payment_service.record_payment(
            org_a.id, 1, customer_a.id, 10, "CASH", sale_id=sale_id, payment_date=BASE_TIME
        )
        payment_service.record_payment(
            org_a.id, 1, customer_a.id, 20, "CASH", payment_date=BASE_TIME + timedelta(days=2)
        )
        foreign = make_customer(org_b)
        payment_service.record_payment(org_b.id, 1, foreign.id, 99, "CASH")

        all_a = payment_service.list_payments(org_a.id)
        assert [p.amount_cents for p in all_a] == [20, 10]

        by_sale = payment_service.list_payments(org_a.id, sale_id=sale_id)
        # the general payment also landed on the only open sale
        assert [p.amount_cents for p in by_sale] == [20, 10]

        windowed = payment_service.list_payments(
            org_a.id,
            start="2026-02-02T00:00:00Z",
            end=(BASE_TIME + timedelta(days=3)).isoformat(),
        )
        assert [p.amount_cents for p in windowed] == [20]

        limited = payment_service.list_payments(org_a.id, limit="1")
        assert len(limited) == 1
