# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/app/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Organization management (MULTI-TENANT):
# - python -m flask orgs list
#   List all organizations.
# - python -m flask orgs create --name "Acme Corp" --code "ACME" --tax-rate-bps 1600
#   Create a new organization (tenant).
#
# Receivables ledger maintenance:
# - python -m flask ledger reconcile-debt [--org-id 1] [--customer-id 7] [--dry-run]
#   Recompute customer debt from outstanding credit sales and fix drift.
# - python -m flask ledger audit [--org-id 1]
#   Check sale balances, payment totals and stock; exits 1 on violations.

import click
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .models import Organization, Customer, Product, Sale
from .services import customer_service
from .services import ledger_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables."""
    db.create_all()
    click.echo("PASS Database schema ready.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask orgs create' to add a tenant.")


# =============================================================================
# ORGANIZATIONS
# =============================================================================

@click.group('orgs')
def orgs_group():
    """Organization (tenant) management commands."""


@orgs_group.command('list')
@with_appcontext
def list_orgs():
    """List all organizations."""
    orgs = db.session.query(Organization).order_by(Organization.id).all()

    if not orgs:
        click.echo("No organizations found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<12} {'Tax bps':<8} {'Active':<8} {'Customers':<10} {'Products'}")
    click.echo("="*80)

    for org in orgs:
        customer_count = db.session.query(Customer).filter_by(org_id=org.id).count()
        product_count = db.session.query(Product).filter_by(org_id=org.id).count()
        active_str = "Yes" if org.is_active else "No"

        click.echo(
            f"{org.id:<5} {org.name:<30} {org.code or '-':<12} {org.tax_rate_bps:<8} "
            f"{active_str:<8} {customer_count:<10} {product_count}"
        )

    click.echo("="*80 + "\n")


@orgs_group.command('create')
@click.option('--name', required=True, help='Organization name')
@click.option('--code', required=True, help='Short code (unique)')
@click.option('--tax-rate-bps', type=click.IntRange(0, 10_000), default=0, show_default=True,
              help='Sales tax in basis points (1600 = 16%)')
@with_appcontext
def create_org_cli(name, code, tax_rate_bps):
    """Create a new organization (tenant)."""
    existing = db.session.query(Organization).filter_by(code=code).first()
    if existing:
        click.echo(f"FAIL Organization with code '{code}' already exists")
        return

    org = Organization(name=name, code=code, tax_rate_bps=tax_rate_bps, is_active=True)
    db.session.add(org)
    db.session.commit()

    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")


# =============================================================================
# LEDGER MAINTENANCE
# =============================================================================

@click.group('ledger')
def ledger_group():
    """Receivables ledger maintenance commands."""


@ledger_group.command('reconcile-debt')
@click.option('--org-id', type=int, help='Limit to one organization')
@click.option('--customer-id', type=int, help='Limit to one customer (requires --org-id)')
@click.option('--dry-run', is_flag=True, help='Report drift without correcting it')
@with_appcontext
def reconcile_debt_cli(org_id, customer_id, dry_run):
    """Recompute customer debt from outstanding credit sales."""
    try:
        corrections = customer_service.reconcile_customer_debt(
            org_id=org_id,
            customer_id=customer_id,
            dry_run=dry_run,
        )
    except LedgerError as e:
        raise click.ClickException(e.message) from e

    if not corrections:
        click.echo("PASS Customer debt matches outstanding credit sales.")
        return

    for row in corrections:
        status = "FIXED" if row["applied"] else ("DRIFT" if dry_run else "SKIPPED")
        click.echo(
            f"{status:<8} org={row['org_id']} customer={row['customer_id']} "
            f"stored={row['previous_cents']} expected={row['expected_cents']}"
        )

    applied = sum(1 for row in corrections if row["applied"])
    click.echo(f"{len(corrections)} drifted customer(s), {applied} corrected.")


@ledger_group.command('audit')
@click.option('--org-id', type=int, help='Limit to one organization')
@click.pass_context
@with_appcontext
def audit_cli(ctx, org_id):
    """Check ledger invariants (read-only)."""
    violations = ledger_service.audit_ledger(org_id=org_id)
    sale_count = db.session.query(Sale).count() if org_id is None else (
        db.session.query(Sale).filter_by(org_id=org_id).count()
    )

    if not violations:
        click.echo(f"PASS {sale_count} sale(s) checked, no violations.")
        return

    for v in violations:
        click.echo(f"FAIL {v['check']:<22} {v['entity']} {v['entity_id']} org={v['org_id']} {v['details']}")
    click.echo(f"{len(violations)} violation(s) found.")
    ctx.exit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(orgs_group)  # Multi-tenant organization management
    app.cli.add_command(ledger_group)
