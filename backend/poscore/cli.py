# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/poscore/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--demo-products]
#   Idempotent bootstrap: creates tables, default currencies, business settings and users.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Currencies:
# - python -m flask currencies list
#   List currencies with their rate against the baseline.
# - python -m flask currencies set-rate EUR 0.95
#   Change one currency's rate.
# - python -m flask currencies fetch
#   Refresh rates from RATES_SOURCE_URL (no-op when unset).
#
# Cash drawer sessions:
# - python -m flask sessions list --status open --limit 20
#   List recent cash drawer sessions.

from decimal import Decimal

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Product, User, Currency
from .services import currency_service, cash_drawer_service
from .services.rate_source import RateSourceError
from .validation import ValidationError, money_str


DEFAULT_USERS = [
    ("admin", "Administrator"),
    ("cashier", "Cashier"),
]

DEMO_PRODUCTS = [
    {"name": "Coffee Beans 1kg", "category": "Grocery", "price": {"USD": "18.00"},
     "purchase_price": {"USD": "11.00"}, "stock": "50", "sell_by": "unit"},
    {"name": "Bananas", "category": "Produce", "price": {"USD": "1.20"},
     "purchase_price": {"USD": "0.55"}, "stock": "40.000", "sell_by": "weight"},
    {"name": "Sparkling Water", "category": "Drinks", "price": {"USD": "1.50", "EUR": "1.40"},
     "purchase_price": {"USD": "0.60"}, "stock": "200", "sell_by": "unit"},
]


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--demo-products', is_flag=True, help='Also create a few demo products')
@with_appcontext
def init_system(demo_products):
    """
    Initialize the POS core: schema, currencies, business settings and users.

    Safe to run repeatedly; existing rows are left untouched.
    """
    click.echo("START Initializing POS core...")

    db.create_all()
    click.echo("PASS Schema ready")

    created = currency_service.seed_currencies()
    click.echo(f"PASS Currencies: {created} created, {db.session.query(Currency).count()} total")

    settings = currency_service.get_business_settings()
    db.session.commit()
    click.echo(f"PASS Business settings: base currency {settings.currency}, tax rate {money_str(settings.tax_rate)}")

    for username, name in DEFAULT_USERS:
        existing = db.session.query(User).filter_by(username=username).first()
        if existing:
            click.echo(f"WARN  User '{username}' already exists (ID: {existing.id}), skipping...")
            continue
        user = User(username=username, name=name, is_active=True)
        db.session.add(user)
        db.session.commit()
        click.echo(f"PASS Created user: {username} (ID: {user.id})")

    if demo_products:
        for entry in DEMO_PRODUCTS:
            if db.session.query(Product).filter_by(name=entry["name"]).first():
                continue
            db.session.add(Product(
                name=entry["name"],
                category=entry["category"],
                price=entry["price"],
                purchase_price=entry["purchase_price"],
                stock=Decimal(entry["stock"]),
                sell_by=entry["sell_by"],
            ))
        db.session.commit()
        click.echo(f"PASS Demo products: {db.session.query(Product).count()} in catalog")

    click.echo("DONE POS core initialized")


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

    click.echo("DONE Database reset. Run `flask system init` to seed reference data.")


@click.group('currencies')
def currencies_group():
    """Currency and exchange-rate commands."""


@currencies_group.command('list')
@with_appcontext
def list_currencies_cli():
    """List currencies."""
    currencies = currency_service.list_currencies()
    if not currencies:
        click.echo("No currencies found. Run `flask system init`.")
        return

    click.echo(f"{'Code':<6} {'Symbol':<8} {'Rate':<14} {'Decimals':<8} {'Name'}")
    for currency in currencies:
        click.echo(
            f"{currency.code:<6} {currency.symbol:<8} {money_str(currency.rate):<14} "
            f"{currency.decimals:<8} {currency.name}"
        )


@currencies_group.command('set-rate')
@click.argument('code')
@click.argument('rate')
@with_appcontext
def set_rate_cli(code, rate):
    """Set the rate of one existing currency."""
    currency = db.session.get(Currency, code)
    if currency is None:
        raise click.ClickException(f"Currency {code} not found")

    try:
        currency_service.replace_rates([{
            "code": currency.code,
            "name": currency.name,
            "symbol": currency.symbol,
            "rate": rate,
            "decimals": currency.decimals,
        }])
    except ValidationError as e:
        raise click.ClickException(str(e))

    click.echo(f"PASS {code} rate set to {rate}")


@currencies_group.command('fetch')
@with_appcontext
def fetch_rates_cli():
    """Refresh rates from the configured rate source."""
    rate_source = current_app.extensions["rate_source"]
    if not rate_source.enabled:
        click.echo("WARN  RATES_SOURCE_URL is not set; only the refresh time is stamped")

    try:
        currencies, refreshed = currency_service.refresh_rates_from_source(rate_source)
    except RateSourceError as e:
        raise click.ClickException(str(e))

    status = "refreshed" if refreshed else "unchanged"
    click.echo(f"PASS {len(currencies)} currencies {status}")


@click.group('sessions')
def sessions_group():
    """Cash drawer session inspection."""


@sessions_group.command('list')
@click.option('--status', type=click.Choice(['open', 'closed']), help='Filter by status')
@click.option('--limit', type=int, default=20, help='Max sessions to show')
@with_appcontext
def list_sessions_cli(status, limit):
    """
    List cash drawer sessions.

    Example:
        flask sessions list
        flask sessions list --status open
    """
    sessions = cash_drawer_service.list_sessions(status=status, limit=limit)

    if not sessions:
        click.echo("No sessions found.")
        return

    click.echo(f"{'ID':<5} {'User':<15} {'Status':<8} {'Opening':<12} {'Expected':<12} {'Difference':<12}")
    for session in sessions:
        user = db.session.get(User, session.user_id)
        username = user.username if user else "Unknown"
        click.echo(
            f"{session.id:<5} {username:<15} {session.status:<8} "
            f"{money_str(session.opening_amount) or '-':<12} "
            f"{money_str(session.expected_amount) or '-':<12} "
            f"{money_str(session.difference) or '-':<12}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(currencies_group)
    app.cli.add_command(sessions_group)
