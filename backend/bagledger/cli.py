# Overview: Flask CLI command group for bootstrap and ledger inspection.

# backend/bagledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask bags <command> [options]
#
# - python -m flask bags init-db
#   Create all ledger tables (development; use "flask db upgrade" elsewhere).
# - python -m flask bags seed-demo [--org "Demo Waste Co"]
#   Create a demo organization with drivers and clients.
# - python -m flask bags audit --org-id 1
#   Reconcile cached balances with the movement log and check conservation.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Client, Driver, Organization
from .services.movement_service import audit_organization
from .services.stock_service import ensure_stock


@click.group('bags')
def bags_group():
    """Bag ledger bootstrap and inspection commands."""


@bags_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables."""
    db.create_all()
    click.echo("PASS Database tables created.")


@bags_group.command('seed-demo')
@click.option('--org', 'org_name', default='Demo Waste Co', help='Organization name')
@click.option('--org-code', default='DEMO', help='Organization code')
@with_appcontext
def seed_demo(org_name, org_code):
    """
    Create a demo organization with two drivers and two clients.

    Idempotent: an existing organization with the same code is reused.
    """
    org = db.session.query(Organization).filter_by(code=org_code).first()
    if org:
        click.echo(f"PASS Using existing organization: {org.name} (ID: {org.id})")
        return

    org = Organization(name=org_name, code=org_code, is_active=True)
    db.session.add(org)
    db.session.flush()
    ensure_stock(org.id)

    drivers = [
        Driver(org_id=org.id, name="Amina Otieno", email="amina@demo.local", phone="+254700000001"),
        Driver(org_id=org.id, name="Brian Mwangi", email="brian@demo.local", phone="+254700000002"),
    ]
    clients = [
        Client(org_id=org.id, name="Greenview Apartments", email="office@greenview.local", account_number="ACC-0001"),
        Client(org_id=org.id, name="Riverside Cafe", email="hello@riverside.local", account_number="ACC-0002"),
    ]
    db.session.add_all(drivers + clients)
    db.session.commit()

    click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")
    for driver in drivers:
        click.echo(f"   driver {driver.id}: {driver.name}")
    for client in clients:
        click.echo(f"   client {client.id}: {client.name}")


@bags_group.command('audit')
@click.option('--org-id', type=int, required=True, help='Organization ID')
@with_appcontext
def audit(org_id):
    """Reconcile cached balances with the movement log."""
    org = db.session.get(Organization, org_id)
    if not org:
        click.echo(f"FAIL Organization ID {org_id} not found")
        raise SystemExit(1)

    report = audit_organization(org_id)

    click.echo("\n" + "=" * 60)
    click.echo(f"Bag ledger audit: {org.name} (ID: {org.id})")
    click.echo("=" * 60)
    click.echo(f"{'Stock (cached)':<30} {report['cached_stock']}")
    click.echo(f"{'Stock (movements)':<30} {report['movement_stock']}")
    click.echo(f"{'With drivers':<30} {report['driver_custody']}")
    click.echo(f"{'In transit':<30} {report['in_transit']}")
    click.echo(f"{'Used by drivers':<30} {report['used_bags']}")
    click.echo(f"{'Issued to clients':<30} {report['issued_bags']}")
    click.echo(f"{'Net added (add - remove)':<30} {report['net_added']}")
    for mismatch in report["driver_mismatches"]:
        click.echo(
            f"WARN driver {mismatch['driver_id']}: cached {mismatch['cached_available_bags']}"
            f" != movements {mismatch['movement_available_bags']}"
        )
    for issue_id in report["unlinked_issues"]:
        click.echo(f"WARN verified issue {issue_id} has no ISSUE movement")
    click.echo("=" * 60)

    if report["consistent"]:
        click.echo("PASS Ledger is consistent.")
    else:
        click.echo("FAIL Ledger is inconsistent.")
        raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(bags_group)
