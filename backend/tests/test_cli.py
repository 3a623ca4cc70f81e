# Overview: Pytest coverage for the Flask CLI command groups.

import pytest

from app.models import Customer, Organization, Sale
from app.services import sales_service


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


class TestOrgCommands:

    def test_create_and_list(self, runner, db_session):
        result = runner.invoke(args=['orgs', 'create', '--name', 'Beta Shop', '--code', 'BETA',
                                     '--tax-rate-bps', '1600'])
        assert result.exit_code == 0
        assert "PASS Created organization: Beta Shop" in result.output

        org = db_session.query(Organization).filter_by(code='BETA').one()
        assert org.tax_rate_bps == 1600

        result = runner.invoke(args=['orgs', 'list'])
        assert result.exit_code == 0
        assert "Beta Shop" in result.output

    def test_duplicate_code_refused(self, runner, db_session, org_a):
        result = runner.invoke(args=['orgs', 'create', '--name', 'Copy', '--code', org_a.code])

        assert "FAIL" in result.output
        assert db_session.query(Organization).filter_by(code=org_a.code).count() == 1

    def test_tax_rate_out_of_range(self, runner, db_session):
        result = runner.invoke(args=['orgs', 'create', '--name', 'X', '--code', 'X',
                                     '--tax-rate-bps', '20000'])
        assert result.exit_code != 0


def test_init_db_is_idempotent(runner, db_session):
    result = runner.invoke(args=['system', 'init-db'])
    assert result.exit_code == 0
    assert "PASS" in result.output


class TestReconcileDebt:

    @pytest.fixture
    def drifted(self, db_session, org_a, customer_a, product_a):
        sales_service.process_sale(
            org_a.id, 1, [{"product_id": product_a.id, "quantity": 2}], "CREDIT",
            customer_id=customer_a.id,
        )
        db_session.query(Customer).filter_by(id=customer_a.id).update({"current_debt_cents": 5})
        db_session.commit()
        return customer_a

    def test_nothing_to_fix(self, runner, db_session, org_a, customer_a):
        result = runner.invoke(args=['ledger', 'reconcile-debt'])
        assert result.exit_code == 0
        assert "PASS" in result.output

    def test_dry_run_reports_only(self, runner, db_session, drifted):
        result = runner.invoke(args=['ledger', 'reconcile-debt', '--dry-run'])

        assert result.exit_code == 0
        assert "DRIFT" in result.output
        assert "stored=5 expected=2000" in result.output
        db_session.expire_all()
        assert db_session.get(Customer, drifted.id).current_debt_cents == 5

    def test_fixes_drift(self, runner, db_session, org_a, drifted):
        result = runner.invoke(args=['ledger', 'reconcile-debt', '--org-id', str(org_a.id),
                                     '--customer-id', str(drifted.id)])

        assert result.exit_code == 0
        assert "FIXED" in result.output
        db_session.expire_all()
        assert db_session.get(Customer, drifted.id).current_debt_cents == 2000

    def test_customer_requires_org(self, runner, db_session, drifted):
        result = runner.invoke(args=['ledger', 'reconcile-debt', '--customer-id', str(drifted.id)])

        assert result.exit_code != 0
        assert "org_id is required" in result.output


class TestAudit:

    def test_pass(self, runner, db_session, org_a, product_a):
        sales_service.process_sale(org_a.id, 1, [{"product_id": product_a.id, "quantity": 1}], "CASH")

        result = runner.invoke(args=['ledger', 'audit'])

        assert result.exit_code == 0
        assert "PASS 1 sale(s) checked" in result.output

    def test_violation_exits_nonzero(self, runner, db_session, org_a, customer_a, product_a):
        sale_id = sales_service.process_sale(
            org_a.id, 1, [{"product_id": product_a.id, "quantity": 1}], "CREDIT",
            customer_id=customer_a.id,
        )["sale_id"]
        db_session.query(Sale).filter_by(id=sale_id).update({"payment_status": "PAID"})
        db_session.commit()

        result = runner.invoke(args=['ledger', 'audit', '--org-id', str(org_a.id)])

        assert result.exit_code == 1
        assert "FAIL payment_status" in result.output
        assert "1 violation(s) found." in result.output
