# Overview: Flask CLI command groups for bootstrap and ledger verification.

# backend/storecore/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py.
# - Use: python -m flask <group> <command> [options]
#
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` for migrated deployments).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask users create --username owner --name "Store Owner" --role OWNER --password "Password123"
#   Create a user (prompts if options are omitted).
# - python -m flask ledger verify [--product-id 7]
#   Replay the stock ledger and report inconsistencies; exits 1 on any.

import click
from flask.cli import with_appcontext

from .errors import CoreError, jsonable
from .extensions import db
from .models.auth import VALID_ROLES
from .services import stock_ledger
from .services.auth_service import create_user


@click.group("system")
def system_group():
    """Schema bootstrap and repair commands."""


@system_group.command("init-db")
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("OK  Tables created")


@system_group.command("reset-db")
@click.option("--yes", is_flag=True, help="Skip confirmation")
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including the append-only ledger!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()
    click.echo("OK  Database reset")


@click.group("users")
def users_group():
    """User bootstrap commands."""


@users_group.command("create")
@click.option("--username", prompt=True)
@click.option("--name", prompt=True)
@click.option("--role", type=click.Choice(VALID_ROLES, case_sensitive=False), prompt=True)
@click.option("--password", prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def create_user_command(username, name, role, password):
    try:
        user = create_user(username=username, name=name, password=password, role=role)
    except CoreError as exc:
        raise click.ClickException(exc.message)
    click.echo(f"OK  Created user {user.username} (id={user.id}, role={user.role})")


@click.group("ledger")
def ledger_group():
    """Stock ledger inspection."""


@ledger_group.command("verify")
@click.option("--product-id", type=int, default=None, help="Only verify this product")
@with_appcontext
def verify_ledger_command(product_id):
    """Check every product's stock against its ledger history."""
    try:
        problems = stock_ledger.verify_ledger(product_id)
    except CoreError as exc:
        raise click.ClickException(exc.message)

    if not problems:
        click.echo("OK  Ledger consistent")
        return

    for report in problems:
        click.echo(f"FAIL  product {report['product_id']} ({report['sku']})")
        for violation in jsonable(report["violations"]):
            click.echo(f"      {violation}")
    raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(ledger_group)
