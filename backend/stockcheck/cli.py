# Overview: Flask CLI command groups for bootstrap, master data seeding, and inspection.

# backend/stockcheck/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (use `flask db upgrade` for migrations).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Directory master data:
# - python -m flask stores create --code T01 --name "Tienda Centro"
# - python -m flask users create --username ana --full-name "Ana Ruiz" --profile LIDER --store T01
# - python -m flask users list [--store T01]
#
# Local product catalog (CATALOG_BACKEND=sql):
# - python -m flask catalog add-product --code ABC123 --description "Tornillo" --division 01 --category 0101 ...
# - python -m flask catalog set-stock --store T01 --code ABC123 --quantity 10
#
# Grants:
# - python -m flask grants list [--store T01] [--user-id 3]

from decimal import Decimal

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import CatalogProduct, Store, StoreStock, User
from .models.enums import UserProfile
from .profiles import parse_profile, profile_to_db
from .services import assignment_service
from .services.catalog_service import get_catalog
from .validation import normalize_code


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables."""
    db.create_all()
    click.echo("PASS Tables created")


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
    click.echo("BUILD  Recreating tables...")
    db.create_all()
    click.echo("PASS Database reset complete")


@click.group('stores')
def stores_group():
    """Store master data."""


@stores_group.command('create')
@click.option('--code', required=True, help='Store code (unique)')
@click.option('--name', required=True, help='Store name')
@with_appcontext
def create_store(code, name):
    code = normalize_code(code)
    if db.session.query(Store).filter_by(code=code).first():
        raise click.ClickException(f"Store {code} already exists")
    store = Store(code=code, name=name, is_active=True)
    db.session.add(store)
    db.session.commit()
    click.echo(f"PASS Created store {store.code} (ID: {store.id})")


@click.group('users')
def users_group():
    """User inspection and bootstrap."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username (unique)')
@click.option('--full-name', default='', help='Display name')
@click.option('--email', default=None, help='Email address')
@click.option(
    '--profile',
    type=click.Choice([p.value for p in UserProfile], case_sensitive=False),
    default=UserProfile.INVENTARIO.value,
    show_default=True,
)
@click.option('--store', 'store_code', default=None, help='Home store code')
@with_appcontext
def create_user_cli(username, full_name, email, profile, store_code):
    """Create a user known to the workflow."""
    if db.session.query(User).filter_by(username=username).first():
        raise click.ClickException(f"User {username} already exists")
    user = User(
        username=username,
        full_name=full_name,
        email=email,
        profile=profile_to_db(parse_profile(profile)),
        store_code=normalize_code(store_code) or None,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    click.echo(f"PASS Created user {user.username} (ID: {user.id}, profile: {user.profile})")


@users_group.command('list')
@click.option('--store', 'store_code', default=None, help='Filter by home store')
@with_appcontext
def list_users(store_code):
    """List users with profile and active status."""
    query = db.session.query(User)
    if store_code:
        query = query.filter_by(store_code=normalize_code(store_code))
    users = query.order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Username':<20} {'Profile':<16} {'Store':<8} {'Active'}")
    click.echo("=" * 80)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {user.profile:<16} {user.store_code or '-':<8} {active_str}")
    click.echo("=" * 80 + "\n")


@click.group('catalog')
def catalog_group():
    """Local product catalog seeding."""


@catalog_group.command('add-product')
@click.option('--code', required=True, help='Product code')
@click.option('--description', required=True)
@click.option('--barcode', default=None)
@click.option('--division', 'division_code', required=True, help='Division code')
@click.option('--division-name', default=None)
@click.option('--category', 'category_code', default=None, help='Category code')
@click.option('--category-name', default=None)
@click.option('--group', 'group_code', default=None, help='Group code')
@click.option('--group-name', default=None)
@click.option('--subgroup', 'subgroup_code', default=None, help='Subgroup code')
@click.option('--subgroup-name', default=None)
@click.option('--unit-cost', type=str, default='0')
@click.option('--unit-price', type=str, default='0')
@with_appcontext
def add_product(code, description, barcode, division_code, division_name, category_code, category_name,
                group_code, group_name, subgroup_code, subgroup_name, unit_cost, unit_price):
    code = normalize_code(code)
    product = db.session.query(CatalogProduct).filter_by(product_code=code).first()
    if product is None:
        product = CatalogProduct(product_code=code)
        db.session.add(product)
    product.description = description
    product.barcode = barcode
    product.division_code = normalize_code(division_code) or None
    product.division = division_name
    product.category_code = normalize_code(category_code) or None
    product.category = category_name
    product.group_code = normalize_code(group_code) or None
    product.group_name = group_name
    product.subgroup_code = normalize_code(subgroup_code) or None
    product.subgroup = subgroup_name
    product.unit_cost = Decimal(unit_cost)
    product.unit_price = Decimal(unit_price)
    product.is_active = True
    db.session.commit()
    get_catalog().invalidate_product(code)
    click.echo(f"PASS Saved product {code}")


@catalog_group.command('set-stock')
@click.option('--store', 'store_code', required=True)
@click.option('--code', required=True, help='Product code')
@click.option('--quantity', type=str, required=True)
@with_appcontext
def set_stock(store_code, code, quantity):
    store_code = normalize_code(store_code)
    code = normalize_code(code)
    row = db.session.query(StoreStock).filter_by(store_code=store_code, product_code=code).first()
    if row is None:
        row = StoreStock(store_code=store_code, product_code=code)
        db.session.add(row)
    row.quantity = Decimal(quantity)
    db.session.commit()
    get_catalog().invalidate_stock(store_code, code)
    click.echo(f"PASS Stock of {code} in {store_code} set to {quantity}")


@click.group('grants')
def grants_group():
    """Assignment grant inspection."""


@grants_group.command('list')
@click.option('--store', 'store_code', default=None)
@click.option('--user-id', type=int, default=None)
@click.option('--all', 'include_inactive', is_flag=True, help='Include deactivated grants')
@with_appcontext
def list_grants_cli(store_code, user_id, include_inactive):
    result = assignment_service.list_grants(
        user_id=user_id,
        store_code=store_code,
        is_active=None if include_inactive else True,
    )
    if not result.ok:
        raise click.ClickException(result.error.message)
    if not result.value:
        click.echo("No grants found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'User':<6} {'Store':<8} {'Scope':<45} {'Active'}")
    click.echo("=" * 80)
    for grant in result.value:
        active_str = "Yes" if grant.is_active else "No"
        click.echo(f"{grant.id:<5} {grant.user_id:<6} {grant.store_code:<8} {grant.scope_label():<45} {active_str}")
    click.echo("=" * 80 + "\n")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(stores_group)
    app.cli.add_command(users_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(grants_group)
