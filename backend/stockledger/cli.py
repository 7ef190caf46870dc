# Overview: Flask CLI command groups for bootstrap and maintenance.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# - Set FLASK_APP to stockledger (PowerShell: $env:FLASK_APP="stockledger").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--store "Main Store"] [--code MAIN]
#   Idempotent bootstrap: creates tables, a default store and its default accounts.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Stores:
# - python -m flask stores list
# - python -m flask stores create --name "Second Shop" --code SHOP2
#
# Accounts:
# - python -m flask accounts ensure-defaults --store-id 1
#   Create "Cash in Hand" and "Bank" for a store if missing.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Store
from .validation import ValidationError
from .services import account_service, store_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--store', 'store_name', default='Main Store', help='Default store name')
@click.option('--code', 'store_code', default='MAIN', help='Default store code')
@with_appcontext
def init_system(store_name, store_code):
    """Create the schema, a default store and its default accounts."""
    click.echo("START Initializing stockledger...")
    db.create_all()

    store = db.session.query(Store).order_by(Store.id.asc()).first()
    if not store:
        store = store_service.create_store(store_name, store_code)
        click.echo(f"PASS Created store: {store.name} (ID: {store.id}, Code: {store.code})")
    else:
        click.echo(f"PASS Using existing store: {store.name} (ID: {store.id})")

    accounts = account_service.ensure_defaults(store_id=store.id)
    for account in accounts:
        click.echo(f"PASS Account ready: {account['account_name']} (ID: {account['id']})")

    click.echo("DONE System initialized.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('stores')
def stores_group():
    """Store management commands."""


@stores_group.command('list')
@with_appcontext
def list_stores():
    stores = store_service.list_stores()
    if not stores:
        click.echo("No stores found.")
        return
    for store in stores:
        status = "active" if store.is_active else "inactive"
        click.echo(f"{store.id}\t{store.code or '-'}\t{store.name}\t{status}")


@stores_group.command('create')
@click.option('--name', prompt=True, help='Store name')
@click.option('--code', default=None, help='Unique store code')
@with_appcontext
def create_store(name, code):
    try:
        store = store_service.create_store(name, code)
    except ValidationError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created store: {store.name} (ID: {store.id})")


@click.group('accounts')
def accounts_group():
    """Account bootstrap commands."""


@accounts_group.command('ensure-defaults')
@click.option('--store-id', type=int, required=True, help='Store ID')
@with_appcontext
def ensure_default_accounts(store_id):
    try:
        accounts = account_service.ensure_defaults(store_id=store_id)
    except (ValidationError, LookupError) as e:
        raise click.ClickException(str(e))
    for account in accounts:
        click.echo(f"PASS {account['account_name']}: balance {account['current_balance_cents']} cents")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stores_group)
    app.cli.add_command(accounts_group)
