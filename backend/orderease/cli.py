# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/orderease/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv and export JWT_SECRET.
# - Use: flask --app wsgi <group> <command> [options]
#
# System bootstrap:
# - flask --app wsgi system init [--username admin] [--password "Password123!"]
#   Create tables (if missing) and the first operator.
# - flask --app wsgi system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Operators:
# - flask --app wsgi operators list
# - flask --app wsgi operators create --username ops --password "Password123!"
#
# Shops:
# - flask --app wsgi shops list
# - flask --app wsgi shops create --name "Corner Cafe" --owner cafe --password "Password123!" --days 365
#
# Maintenance:
# - flask --app wsgi maintenance purge-revoked-tokens
# - flask --app wsgi maintenance rotate-temp-tokens
# - flask --app wsgi maintenance cleanup --months 3

from datetime import timedelta

import click
from flask.cli import with_appcontext

from .errors import OrderEaseError
from .extensions import db
from .models import Operator, Shop
from .passwords import PasswordValidationError, hash_password, validate_strict_password
from .services import flow_service, maintenance_service, shop_service
from .time_utils import to_utc_z, utcnow


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--username', default='admin', help='First operator username')
@click.option('--password', default='Password123!', help='First operator password')
@with_appcontext
def init_system(username, password):
    """Create tables and the first operator if none exists."""
    click.echo("START Initializing OrderEase...")
    db.create_all()
    click.echo("PASS Tables ready")

    if db.session.query(Operator).count():
        click.echo("WARN  Operators already exist, skipping operator creation")
        return

    try:
        validate_strict_password(password)
    except PasswordValidationError as e:
        raise click.ClickException(f"Password validation failed: {e}")

    operator = Operator(username=username, password_hash=hash_password(password))
    db.session.add(operator)
    db.session.commit()
    click.echo(f"PASS Created operator: {operator.username} (ID: {operator.id})")
    click.echo("\nSECURITY Change the default password immediately in production!")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        raise click.ClickException("Refusing to reset without --yes")
    db.drop_all()
    db.create_all()
    flow_service.flow_cache.clear()
    click.echo("PASS Database reset")


@click.group('operators')
def operators_group():
    """Operator account commands."""


@operators_group.command('list')
@with_appcontext
def list_operators():
    for operator in db.session.query(Operator).order_by(Operator.username):
        click.echo(f"{operator.id}\t{operator.username}\t{to_utc_z(operator.created_at)}")


@operators_group.command('create')
@click.option('--username', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def create_operator(username, password):
    if db.session.query(Operator).filter_by(username=username).first():
        raise click.ClickException(f"Operator '{username}' already exists")
    try:
        validate_strict_password(password)
    except PasswordValidationError as e:
        raise click.ClickException(str(e))
    operator = Operator(username=username, password_hash=hash_password(password))
    db.session.add(operator)
    db.session.commit()
    click.echo(f"PASS Created operator {operator.username} (ID: {operator.id})")


@click.group('shops')
def shops_group():
    """Shop inspection and bootstrap."""


@shops_group.command('list')
@with_appcontext
def list_shops():
    for shop in db.session.query(Shop).order_by(Shop.name):
        state = "EXPIRED" if shop.is_expired() else f"{shop.remaining_days()}d left"
        click.echo(f"{shop.id}\t{shop.name}\towner={shop.owner_username}\t{state}")


@shops_group.command('create')
@click.option('--name', prompt=True)
@click.option('--owner', 'owner_username', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--days', default=365, show_default=True, help='Service period in days')
@with_appcontext
def create_shop(name, owner_username, password, days):
    try:
        shop = shop_service.create_shop({
            "name": name,
            "owner_username": owner_username,
            "owner_password": password,
            "valid_until": to_utc_z(utcnow() + timedelta(days=days)),
        })
    except OrderEaseError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created shop {shop.name} (ID: {shop.id}), valid until {to_utc_z(shop.valid_until)}")


@click.group('maintenance')
def maintenance_group():
    """Maintenance and cleanup commands."""


@maintenance_group.command('purge-revoked-tokens')
@with_appcontext
def purge_revoked_tokens():
    deleted = maintenance_service.purge_revoked_tokens()
    click.echo(f"PASS Purged {deleted} revoked tokens")


@maintenance_group.command('rotate-temp-tokens')
@with_appcontext
def rotate_temp_tokens():
    rotated = maintenance_service.rotate_temp_tokens()
    click.echo(f"PASS Rotated {rotated} temp tokens")


@maintenance_group.command('cleanup')
@click.option('--months', default=3, show_default=True, help='Retention window in months')
@with_appcontext
def cleanup(months):
    """Delete old completed orders and unreferenced offline products."""
    result = maintenance_service.cleanup_history(months=months)
    click.echo(f"PASS Removed {result['orders']} orders and {result['products']} products")


def register_commands(app):
    app.cli.add_command(system_group)
    app.cli.add_command(operators_group)
    app.cli.add_command(shops_group)
    app.cli.add_command(maintenance_group)
