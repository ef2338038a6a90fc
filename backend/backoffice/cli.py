# Overview: Flask CLI command groups for bootstrap and inspection.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use `flask db upgrade` for migration-managed databases).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Idempotent demo catalog: a client, three products, stock in two locations.
#
# Inventory inspection:
# - python -m flask inventory stock --product-id <uuid>
#   Per-location stock and total on hand.
# - python -m flask inventory movements --product-id <uuid> --limit 20
#   Most recent ledger movements for a product.

import click
from decimal import Decimal
from flask.cli import with_appcontext

from .extensions import db
from .models import Client, CompanySetting, Product
from .services import inventory_service
from .services.concurrency import atomic
from .services.identifier_service import new_id


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create every table that does not exist yet."""
    click.echo("BUILD  Creating tables...")
    db.create_all()
    click.echo("PASS Database ready.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system seed-demo' to load demo data.")


DEMO_PRODUCTS = [
    # sku, name, sale_price, cost_price, {location: quantity}
    ("DEMO-001", "Demo T-Shirt", Decimal("25.00"), Decimal("10.00"), {"A1": 20, "General": 5}),
    ("DEMO-002", "Demo Mug", Decimal("12.50"), Decimal("4.00"), {"General": 40}),
    ("DEMO-003", "Demo Cap", Decimal("18.00"), Decimal("7.25"), {"B2": 8}),
]


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Load a small demo catalog. Safe to run more than once."""
    click.echo("START Seeding demo data...")

    with atomic():
        if db.session.query(CompanySetting).first() is None:
            db.session.add(CompanySetting(company_name="Demo Store", tax_rate=Decimal("0.21")))
            click.echo("PASS Created company settings (tax rate 21%)")

        if db.session.query(Client).filter_by(tax_id="20-00000000-0").first() is None:
            db.session.add(Client(
                id=new_id(),
                name="Demo Client",
                tax_id="20-00000000-0",
                tax_condition="Responsable Inscripto",
                current_account_balance=Decimal("0"),
            ))
            click.echo("PASS Created demo client")

        for sku, name, sale_price, cost_price, stock in DEMO_PRODUCTS:
            product = db.session.query(Product).filter_by(sku=sku).first()
            if product is not None:
                click.echo(f"SKIP {sku} already exists")
                continue
            product = Product(id=new_id(), sku=sku, name=name, sale_price=sale_price, cost_price=cost_price)
            db.session.add(product)
            db.session.flush()
            for location, quantity in stock.items():
                inventory_service.restock(
                    product.id,
                    quantity,
                    location,
                    "manual",
                    None,
                    unit_cost=cost_price,
                    reason="Demo seed",
                )
            click.echo(f"PASS Created {sku} with {sum(stock.values())} units")

    click.echo("PASS Demo data ready.")


@click.group('inventory')
def inventory_group():
    """Inventory inspection commands."""


@inventory_group.command('stock')
@click.option('--product-id', required=True, help='Product id (uuid)')
@with_appcontext
def stock_cli(product_id):
    """Show per-location stock for a product."""
    product = db.session.get(Product, product_id)
    if product is None:
        raise click.ClickException(f"Product {product_id} not found")

    click.echo(f"{product.sku}  {product.name}")
    levels = inventory_service.get_stock_levels(product_id)
    if not levels:
        click.echo("  (no stock records)")
    for row in levels:
        click.echo(f"  {row['location']:<16} {row['quantity']:>6}")
    click.echo(f"  {'TOTAL':<16} {inventory_service.get_total_on_hand(product_id):>6}")


@inventory_group.command('movements')
@click.option('--product-id', required=True, help='Product id (uuid)')
@click.option('--limit', default=20, show_default=True, type=int)
@with_appcontext
def movements_cli(product_id, limit):
    """Show ledger movements for a product."""
    rows = inventory_service.list_movements(product_id=product_id, limit=limit)
    if not rows:
        click.echo("No movements found.")
        return
    for row in rows:
        origin = row["from_location"] or "-"
        target = row["to_location"] or "-"
        click.echo(
            f"{row['created_at']}  {row['type']:<10} {row['quantity']:>5}  {origin} -> {target}"
            f"  {row['reference_type']}:{row['reference_id'] or ''}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(inventory_group)
