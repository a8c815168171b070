# Overview: Flask CLI command groups for bootstrap, seeding, and maintenance.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init
#   Create all tables (use `flask db upgrade` for migration-managed databases).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Catalog:
# - python -m flask catalog seed
#   Insert the demo catalog. Skips products whose SKU already exists.
#
# Users:
# - python -m flask users create-admin --email admin@example.com --name "Admin" --password "Password123"
#   Requires ADMIN_SECRET in the environment and --admin-secret matching it. Refused when APP_ENV=production.
# - python -m flask users list
#
# Payments:
# - python -m flask payments expire-stale [--minutes 10]
#   Fail non-terminal payments older than the expiry window.
#
# Inventory:
# - python -m flask inventory low-stock
#   List active products below their stock alert level.

import hmac

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import StorefrontError
from .extensions import db
from .models import Product, User
from .services import inventory_service, payment_service, products_service
from .services.auth_service import register_user


DEMO_PRODUCTS = [
    {
        "sku": "DEMO-IPHONE-15-PRO",
        "name": "iPhone 15 Pro",
        "description": "Latest iPhone with A17 Pro chip and titanium design",
        "category": "electronics",
        "brand": "Apple",
        "original_price": "134900",
        "sale_price": "129900",
        "stock": 50,
        "rating_average": 4.8,
        "rating_count": 1250,
        "tags": ["smartphone", "apple", "premium"],
    },
    {
        "sku": "DEMO-GALAXY-S24-ULTRA",
        "name": "Samsung Galaxy S24 Ultra",
        "description": "Flagship Android phone with built-in S Pen",
        "category": "electronics",
        "brand": "Samsung",
        "original_price": "124999",
        "sale_price": "119999",
        "stock": 35,
        "rating_average": 4.7,
        "rating_count": 890,
        "tags": ["smartphone", "android"],
    },
    {
        "sku": "DEMO-MACBOOK-AIR-M3",
        "name": "MacBook Air M3",
        "description": "Thin and light laptop with the M3 chip",
        "category": "electronics",
        "brand": "Apple",
        "original_price": "114900",
        "sale_price": "109900",
        "stock": 25,
        "rating_average": 4.9,
        "rating_count": 650,
        "tags": ["laptop", "apple"],
    },
    {
        "sku": "DEMO-NIKE-AIR-MAX-270",
        "name": "Nike Air Max 270",
        "description": "Lifestyle sneaker with a large Air unit",
        "category": "fashion",
        "brand": "Nike",
        "original_price": "12995",
        "sale_price": "9999",
        "stock": 100,
        "rating_average": 4.5,
        "rating_count": 450,
        "tags": ["shoes", "sneakers"],
    },
    {
        "sku": "DEMO-LEVIS-501",
        "name": "Levi's 501 Original Jeans",
        "description": "The original straight fit jeans",
        "category": "fashion",
        "brand": "Levi's",
        "original_price": "4999",
        "sale_price": "3999",
        "stock": 75,
        "rating_average": 4.6,
        "rating_count": 320,
        "tags": ["jeans", "denim"],
    },
    {
        "sku": "DEMO-INSTANT-POT-DUO",
        "name": "Instant Pot Duo 7-in-1",
        "description": "Electric pressure cooker, slow cooker and more",
        "category": "home-kitchen",
        "brand": "Instant Pot",
        "original_price": "8999",
        "sale_price": "6999",
        "stock": 40,
        "rating_average": 4.7,
        "rating_count": 890,
        "tags": ["kitchen", "appliance"],
    },
    {
        "sku": "DEMO-ATOMIC-HABITS",
        "name": "Atomic Habits",
        "description": "An easy and proven way to build good habits",
        "category": "books",
        "brand": "Avery",
        "original_price": "699",
        "sale_price": "499",
        "stock": 200,
        "rating_average": 4.8,
        "rating_count": 1500,
        "tags": ["self-help", "bestseller"],
    },
    {
        "sku": "DEMO-YOGA-MAT",
        "name": "Premium Yoga Mat",
        "description": "Non-slip 6mm mat for yoga and floor workouts",
        "category": "sports",
        "brand": "YogaStudio",
        "original_price": "2999",
        "sale_price": "1999",
        "stock": 80,
        "rating_average": 4.4,
        "rating_count": 230,
        "tags": ["yoga", "fitness"],
    },
]


# =============================================================================
# SYSTEM
# =============================================================================

@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create all tables that do not exist yet."""
    click.echo("START Initializing storefront database...")
    db.create_all()
    click.echo(f"PASS Tables ready on {current_app.config['SQLALCHEMY_DATABASE_URI']}")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if current_app.config["APP_ENV"] == "production":
        raise click.ClickException("reset-db is disabled when APP_ENV=production")
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask catalog seed' for demo data.")


# =============================================================================
# CATALOG
# =============================================================================

@click.group('catalog')
def catalog_group():
    """Catalog seeding commands."""


@catalog_group.command('seed')
@with_appcontext
def seed_catalog():
    """Insert the demo catalog; existing SKUs are left untouched."""
    created = 0
    for payload in DEMO_PRODUCTS:
        if db.session.query(Product.id).filter_by(sku=payload["sku"]).first():
            click.echo(f"SKIP {payload['sku']} already exists")
            continue
        try:
            product = products_service.create_product(dict(payload))
        except StorefrontError as e:
            click.echo(f"FAIL {payload['sku']}: {e.message} {e.fields or ''}")
            continue
        created += 1
        click.echo(f"PASS Created {product.name} (ID: {product.id}, stock {product.stock})")
    click.echo(f"\nPASS Seeded {created} products.")


# =============================================================================
# USERS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create-admin')
@click.option('--email', prompt=True, help='Email address')
@click.option('--name', prompt=True, help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--admin-secret', prompt=True, hide_input=True, help='Must match ADMIN_SECRET')
@with_appcontext
def create_admin(email, name, password, admin_secret):
    """
    Create an admin account.

    Requires ADMIN_SECRET to be configured and --admin-secret to match it.
    Password must be at least 8 characters with a letter and a digit.
    """
    expected = current_app.config.get("ADMIN_SECRET")
    if not expected:
        raise click.ClickException("ADMIN_SECRET is not configured")
    if current_app.config["APP_ENV"] == "production":
        raise click.ClickException("create-admin is disabled when APP_ENV=production")
    if not hmac.compare_digest(admin_secret.encode(), expected.encode()):
        raise click.ClickException("Admin secret does not match")

    try:
        user = register_user(
            email=email,
            password=password,
            name=name,
            is_admin=True,
            bcrypt_rounds=current_app.config["BCRYPT_ROUNDS"],
        )
    except StorefrontError as e:
        raise click.ClickException(f"{e.message} {e.fields or ''}".strip())

    click.echo(f"PASS Created admin: {user.email} (ID: {user.id})")
    click.echo("SECURITY Password securely hashed with bcrypt")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with admin and active flags."""
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found")
        return
    click.echo(f"{'ID':<6} {'Email':<40} {'Admin':<6} {'Active':<6}")
    click.echo("-" * 60)
    for user in users:
        click.echo(f"{user.id:<6} {user.email:<40} {str(user.is_admin):<6} {str(user.is_active):<6}")


# =============================================================================
# PAYMENTS
# =============================================================================

@click.group('payments')
def payments_group():
    """Payment maintenance commands."""


@payments_group.command('expire-stale')
@click.option('--minutes', type=int, default=None, help='Expiry window (defaults to PAYMENT_EXPIRY_MINUTES)')
@with_appcontext
def expire_stale(minutes):
    """Fail initiated/processing/pending payments older than the expiry window."""
    window = minutes if minutes is not None else current_app.config["PAYMENT_EXPIRY_MINUTES"]
    count = payment_service.expire_stale_payments(window)
    click.echo(f"PASS Expired {count} payments older than {window} minutes")


# =============================================================================
# INVENTORY
# =============================================================================

@click.group('inventory')
def inventory_group():
    """Inventory inspection commands."""


@inventory_group.command('low-stock')
@with_appcontext
def low_stock():
    """List active products below their stock alert level."""
    products = inventory_service.list_low_stock_products()
    if not products:
        click.echo("PASS No low-stock products")
        return
    click.echo(f"{'ID':<6} {'SKU':<28} {'Name':<36} {'Stock':>6} {'Alert':>6}")
    click.echo("-" * 86)
    for product in products:
        click.echo(
            f"{product.id:<6} {(product.sku or '-'):<28} {product.name[:36]:<36} "
            f"{product.stock:>6} {product.low_stock_threshold:>6}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(users_group)
    app.cli.add_command(payments_group)
    app.cli.add_command(inventory_group)
