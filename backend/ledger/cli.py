# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/ledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (bash: export FLASK_APP=wsgi.py).
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` for migrated deployments).
# - python -m flask system create-tenant --name "Acme" --code ACME [--location "Main Store"]
#   Create a tenant with one location and its default movement types.
#
# Ledger inspection:
# - python -m flask ledger verify-chain --tenant-id 1 --kind customer [--account-id 5]
#   Replay movement chains and report accounts whose stored balance disagrees.
#
# Register inspection/maintenance:
# - python -m flask registers open [--tenant-id 1]
#   List OPEN register sessions.
# - python -m flask registers close-stale --hours 24 --yes
#   Close sessions open longer than the window, declaring the expected balance.
#
# Movement types:
# - python -m flask movement-types seed [--tenant-id 1]
#   Seed default movement types (idempotent; all tenants when omitted).

import click
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .models import CashRegisterSession, Location, SESSION_OPEN, Tenant
from .services import ledger_service, movement_type_service, register_service
from .services.account_kinds import KINDS
from .time_utils import hours_ago


@click.group("system")
def system_group():
    """System bootstrap commands."""


@system_group.command("init-db")
@with_appcontext
def init_db():
    """Create all tables."""
    db.create_all()
    click.echo("PASS Database tables created")


@system_group.command("create-tenant")
@click.option("--name", required=True, help="Tenant name")
@click.option("--code", required=True, help="Unique tenant code")
@click.option("--location", "location_name", default="Main Store", help="First location name")
@with_appcontext
def create_tenant(name, code, location_name):
    """Create a tenant, its first location and default movement types."""
    if db.session.query(Tenant).filter_by(code=code).first():
        click.echo(f"FAIL Tenant code '{code}' already exists")
        raise SystemExit(1)

    tenant = Tenant(name=name, code=code, is_active=True)
    db.session.add(tenant)
    db.session.flush()
    location = Location(tenant_id=tenant.id, name=location_name)
    db.session.add(location)
    db.session.commit()
    created = movement_type_service.seed_default_movement_types(tenant.id)

    click.echo(f"PASS Created tenant {tenant.name} (ID: {tenant.id}, Code: {tenant.code})")
    click.echo(f"PASS Created location {location.name} (ID: {location.id})")
    click.echo(f"PASS Seeded {len(created)} movement types")


@click.group("ledger")
def ledger_group():
    """Ledger inspection commands."""


@ledger_group.command("verify-chain")
@click.option("--tenant-id", type=int, required=True)
@click.option("--kind", type=click.Choice(sorted(KINDS)), required=True)
@click.option("--account-id", type=int, default=None, help="Single account; all accounts of the kind when omitted")
@with_appcontext
def verify_chain(tenant_id, kind, account_id):
    """Replay movements and compare with stored balances."""
    account_model = KINDS[kind].account_model
    if account_id is not None:
        account_ids = [account_id]
    else:
        account_ids = [
            row.id for row in db.session.query(account_model.id).filter_by(tenant_id=tenant_id).order_by(account_model.id)
        ]

    broken = 0
    for current_id in account_ids:
        try:
            report = ledger_service.verify_chain(kind, tenant_id, current_id)
        except LedgerError as e:
            click.echo(f"FAIL {kind} {current_id}: {e.message}")
            broken += 1
            continue
        if report.ok:
            click.echo(f"PASS {kind} {current_id}: {report.movement_count} movements, balance {report.stored_balance}")
        else:
            broken += 1
            click.echo(
                f"FAIL {kind} {current_id}: stored {report.stored_balance}, replayed {report.replayed_balance}"
            )
            for item in report.breaks:
                click.echo(f"     movement {item['movement_id']} (seq {item['sequence']}): {item['problem']}")

    click.echo(f"Checked {len(account_ids)} accounts, {broken} broken")
    if broken:
        raise SystemExit(1)


@click.group("registers")
def registers_group():
    """Cash register inspection and maintenance."""


@registers_group.command("open")
@click.option("--tenant-id", type=int, default=None)
@with_appcontext
def list_open_sessions(tenant_id):
    """List OPEN register sessions."""
    query = db.session.query(CashRegisterSession).filter_by(status=SESSION_OPEN)
    if tenant_id is not None:
        query = query.filter_by(tenant_id=tenant_id)
    sessions = query.order_by(CashRegisterSession.opened_at).all()
    if not sessions:
        click.echo("No open sessions")
        return
    for s in sessions:
        click.echo(
            f"{s.id:>6}  tenant={s.tenant_id}  location={s.location_id}  operator={s.operator_id}  "
            f"opened={s.opened_at:%Y-%m-%d %H:%M}  balance={s.balance}"
        )


@registers_group.command("close-stale")
@click.option("--hours", type=int, default=24, show_default=True, help="Close sessions open longer than this")
@click.option("--yes", is_flag=True, help="Actually close; otherwise only list")
@with_appcontext
def close_stale_sessions(hours, yes):
    """
    Close forgotten sessions.

    The declared balance is set to the expected balance (zero discrepancy)
    and the session is annotated, so a real count can be reconciled later.
    """
    cutoff = hours_ago(hours)
    sessions = register_service.list_stale_sessions(cutoff)
    if not sessions:
        click.echo("No stale sessions")
        return

    for s in sessions:
        expected = register_service.compute_expected_balance(s)
        if not yes:
            click.echo(f"WOULD CLOSE session {s.id} (tenant {s.tenant_id}), expected {expected}")
            continue
        try:
            register_service.close_session(
                s.tenant_id,
                s.id,
                expected,
                actor_id=s.operator_id,
                notes=f"Closed automatically after {hours}h without a cash count",
            )
            click.echo(f"PASS Closed session {s.id} (tenant {s.tenant_id}), expected {expected}")
        except LedgerError as e:
            click.echo(f"FAIL session {s.id}: {e.message}")


@click.group("movement-types")
def movement_types_group():
    """Register movement type management."""


@movement_types_group.command("seed")
@click.option("--tenant-id", type=int, default=None, help="Single tenant; all tenants when omitted")
@with_appcontext
def seed_movement_types(tenant_id):
    """Seed default movement types (idempotent)."""
    query = db.session.query(Tenant)
    if tenant_id is not None:
        query = query.filter_by(id=tenant_id)
    tenants = query.order_by(Tenant.id).all()
    if not tenants:
        click.echo("No tenants found")
        return
    for tenant in tenants:
        created = movement_type_service.seed_default_movement_types(tenant.id)
        click.echo(f"PASS Tenant {tenant.name} ({tenant.id}): {len(created)} movement types created")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(registers_group)
    app.cli.add_command(movement_types_group)
