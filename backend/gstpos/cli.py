# Overview: Flask CLI command groups for bootstrap, store settings and maintenance.

# backend/gstpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--store-name "Main Store"] [--store-code MAIN]
#   Create tables and a default store (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Store billing settings:
# - python -m flask settings show --store-id 1
# - python -m flask settings set --store-id 1 billing.rounding_unit_cents 1
#
# Maintenance:
# - python -m flask maintenance purge-held-bills [--store-id 1]
#   Delete held bills past their expiry.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Store
from .services import held_bill_service
from .services.settings_service import (
    KEY_PREFIX,
    SettingsError,
    get_store_settings,
    set_store_setting,
)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--store-name', default='Main Store', help='Default store name')
@click.option('--store-code', default='MAIN', help='Default store code')
@with_appcontext
def init_system(store_name, store_code):
    """Create the schema (if missing) and a default store."""
    click.echo("START Initializing billing database...")
    db.create_all()

    store = db.session.query(Store).filter_by(code=store_code).first()
    if not store:
        store = Store(name=store_name, code=store_code)
        db.session.add(store)
        db.session.commit()
        click.echo(f"PASS Created store: {store.name} (ID: {store.id}, Code: {store.code})")
    else:
        click.echo(f"PASS Using existing store: {store.name} (ID: {store.id})")


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


@click.group('settings')
def settings_group():
    """Per-store billing settings."""


@settings_group.command('show')
@click.option('--store-id', type=int, required=True)
@with_appcontext
def show_settings(store_id):
    if not db.session.get(Store, store_id):
        raise click.ClickException(f"Store {store_id} not found")

    settings = get_store_settings(store_id)
    for name, value in vars(settings).items():
        click.echo(f"{KEY_PREFIX}{name:<32} {value}")


@settings_group.command('set')
@click.option('--store-id', type=int, required=True)
@click.argument('key')
@click.argument('value')
@with_appcontext
def set_setting(store_id, key, value):
    """Set one billing setting, e.g. billing.bill_prefix POS."""
    try:
        settings = set_store_setting(store_id, key, value)
    except SettingsError as e:
        raise click.ClickException(str(e))

    name = key[len(KEY_PREFIX):] if key.startswith(KEY_PREFIX) else key
    click.echo(f"PASS {KEY_PREFIX}{name} = {getattr(settings, name)}")


@click.group('maintenance')
def maintenance_group():
    """Maintenance commands."""


@maintenance_group.command('purge-held-bills')
@click.option('--store-id', type=int, default=None, help='Limit to one store')
@with_appcontext
def purge_held_bills_cli(store_id):
    """Delete held bills past their expiry."""
    removed = held_bill_service.purge_expired_held_bills(store_id=store_id)
    click.echo(f"Deleted {removed} expired held bills.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(settings_group)
    app.cli.add_command(maintenance_group)
