# Overview: Flask CLI command groups for scan queue, catalogue, and receipt maintenance.

# backend/scanpos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Scan queue:
# - python -m flask scans list
#   Show every queued scan with its processed flag.
# - python -m flask scans clear --yes
#   Drop all queued scans (processed or not).
#
# Catalogue / stock intake:
# - python -m flask products list
# - python -m flask products add --id P001 --name "Milk 1L" --price 450 --wholesale-price 380 --quantity 24
#   Create a product, or overwrite the given fields of an existing one.
#
# Receipts:
# - python -m flask receipts check-config
#   Report which receipt settings are present for the configured backend.
# - python -m flask receipts send-test --email you@example.com
#   Send a sample receipt through the configured backend.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db, get_scan_queue, get_receipts
from .services.product_service import list_products, upsert_product
from .services.receipt_service import check_configuration
from .time_utils import millis_to_datetime, to_utc_z, utcnow
from .validation import ConflictError, ValidationError, UpstreamError, is_valid_email


@click.group('scans')
def scans_group():
    """Scan queue inspection and reset."""


@scans_group.command('list')
@with_appcontext
def list_scans():
    """List queued scans, oldest first."""
    queue = get_scan_queue()
    records = queue.snapshot()
    click.echo(f"Backend: {queue.backend_name}  ({len(records)} scan(s))")
    for r in records:
        state = "processed" if r.processed else "pending"
        click.echo(
            f"  {r.id}  code={r.extracted_code}  device={r.device_id}  "
            f"at={to_utc_z(millis_to_datetime(r.created_at))}  [{state}]"
        )


@scans_group.command('clear')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def clear_scans(yes):
    """Remove every scan from the queue."""
    if not yes:
        click.confirm("WARN This will DELETE all queued scans. Are you sure?", abort=True)
    try:
        get_scan_queue().clear()
    except UpstreamError as e:
        click.echo(f"FAIL Could not clear scan queue: {e}")
        raise SystemExit(1)
    click.echo("PASS Scan queue cleared")


@click.group('products')
def products_group():
    """Product catalogue commands."""


@products_group.command('list')
@with_appcontext
def list_products_cmd():
    products = list_products()
    if not products:
        click.echo("No products found.")
        return
    for p in products:
        click.echo(
            f"  {p['id']:<16} {p['name']:<32} price={p['price']:.2f} "
            f"qty={p['quantity']}  code={p['product_code'] or '-'}"
        )


@products_group.command('add')
@click.option('--id', 'product_id', required=True, help='Product identifier (printed on the QR label)')
@click.option('--name', default=None, help='Display name')
@click.option('--price', default=None, help='Unit price')
@click.option('--wholesale-price', default=None, help='Unit cost')
@click.option('--code', 'product_code', default=None, help='Alternate product code')
@click.option('--category', default=None)
@click.option('--quantity', default=None, type=int, help='Stock on hand')
@with_appcontext
def add_product(product_id, name, price, wholesale_price, product_code, category, quantity):
    """Create a product or update the given fields of an existing one."""
    data = {"id": product_id}
    for key, value in (
        ("name", name),
        ("price", price),
        ("wholesale_price", wholesale_price),
        ("product_code", product_code),
        ("category", category),
        ("quantity", quantity),
    ):
        if value is not None:
            data[key] = value

    try:
        product = upsert_product(data)
    except (ValidationError, ConflictError) as e:
        db.session.rollback()
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    click.echo(f"PASS Saved product {product.id}: {product.name} (qty {product.quantity})")


@click.group('receipts')
def receipts_group():
    """Receipt delivery diagnostics."""


@receipts_group.command('check-config')
@with_appcontext
def check_config():
    backend = current_app.config.get("RECEIPT_BACKEND")
    click.echo(f"Receipt backend: {backend}")
    all_ok = True
    for label, ok in check_configuration(current_app.config).items():
        click.echo(f"  {'PASS' if ok else 'FAIL'} {label}")
        all_ok = all_ok and ok
    if not all_ok:
        raise SystemExit(1)


@receipts_group.command('send-test')
@click.option('--email', required=True, help='Recipient address')
@with_appcontext
def send_test(email):
    """Send a sample receipt through the configured backend."""
    if not is_valid_email(email):
        click.echo(f"FAIL Not a valid email address: {email}")
        raise SystemExit(1)

    sample = {
        "sale_id": "sale_test",
        "customer_email": email,
        "customer_name": "Test Customer",
        "created_at": to_utc_z(utcnow()),
        "subtotal": 100.0,
        "tax_amount": 0.0,
        "total_amount": 100.0,
        "items": [
            {"product_id": "TEST001", "product_code": "TEST001", "name": "Test Product",
             "quantity": 1, "price": 100.0, "total": 100.0},
        ],
    }
    try:
        get_receipts().send_receipt(sample)
    except UpstreamError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    click.echo(f"PASS Test receipt sent to {email}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(scans_group)
    app.cli.add_command(products_group)
    app.cli.add_command(receipts_group)
