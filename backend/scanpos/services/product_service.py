# Overview: Service-layer operations for the product catalogue and stock levels.

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import func

from ..extensions import db
from ..models import Product
from ..time_utils import utcnow
from ..validation import ConflictError, NotFoundError, ValidationError, coerce_int, coerce_price, require_text
from .concurrency import lock_for_update, run_with_retry


logger = logging.getLogger(__name__)


def normalize_code(code: str) -> str:
    return (code or "").strip().upper()


def find_product_by_code(code: str, *, require_stock: bool = True) -> Product:
    """
    Resolve a scanned or typed code to a product.

    Lookup order: product id, then product_code (case-insensitive), then
    a case-insensitive name match. Raises NotFoundError when nothing
    matches and ValidationError when the product is out of stock.
    """
    clean = normalize_code(code)
    if not clean:
        raise ValidationError("Product code is required", field="code")

    product = db.session.get(Product, clean) or db.session.get(Product, code.strip())

    if product is None:
        product = (
            db.session.query(Product)
            .filter(func.upper(Product.product_code) == clean)
            .order_by(Product.id)
            .first()
        )

    if product is None:
        pattern = f"%{clean.lower()}%"
        product = (
            db.session.query(Product)
            .filter(func.lower(Product.name).like(pattern))
            .order_by(Product.id)
            .first()
        )

    if product is None:
        raise NotFoundError(f"Product not found: {clean}")

    if require_stock and (product.quantity or 0) <= 0:
        raise ValidationError(f"{product.name} is out of stock", field="code")

    return product


def list_products() -> list[dict]:
    return [p.to_dict() for p in db.session.query(Product).order_by(Product.name).all()]


def upsert_product(data: dict) -> Product:
    """Create a product or overwrite the fields provided for an existing one."""
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")

    product_id = normalize_code(require_text(data.get("id") or data.get("product_code"), "id", max_length=64))
    product = db.session.get(Product, product_id)

    if product is None:
        product = Product(
            id=product_id,
            name=require_text(data.get("name"), "name", max_length=255),
            price=coerce_price(data.get("price"), "price"),
            wholesale_price=coerce_price(data.get("wholesale_price"), "wholesale_price", default=Decimal("0")),
            quantity=0,
        )
        db.session.add(product)
    else:
        if "name" in data:
            product.name = require_text(data["name"], "name", max_length=255)
        if "price" in data:
            product.price = coerce_price(data["price"], "price")
        if "wholesale_price" in data:
            product.wholesale_price = coerce_price(data["wholesale_price"], "wholesale_price", default=Decimal("0"))

    if "product_code" in data or product.product_code is None:
        code = normalize_code(data.get("product_code") or product_id)
        taken = (
            db.session.query(Product.id)
            .filter(func.upper(Product.product_code) == code, Product.id != product_id)
            .first()
        )
        if taken is not None:
            raise ConflictError(f"Product code {code} is already used by {taken.id}")
        product.product_code = code
    if "category" in data:
        product.category = (data.get("category") or "").strip() or None
    if "quantity" in data:
        quantity = coerce_int(data["quantity"], "quantity")
        if quantity < 0:
            raise ValidationError("quantity must be >= 0", field="quantity")
        product.quantity = quantity

    db.session.commit()
    return product


def adjust_quantity(product_id: str, delta: int) -> int:
    """
    Apply a stock delta to one product, floored at zero. Each call is its own
    transaction so a failure here never touches other products.
    Returns the new quantity.
    """
    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            db.session.rollback()
            raise NotFoundError(f"Product not found for quantity update: {product_id}")

        before = product.quantity or 0
        product.quantity = max(0, before + delta)
        product.updated_at = utcnow()
        db.session.commit()

        logger.info("Stock %s: %d -> %d", product_id, before, product.quantity)
        return product.quantity

    return run_with_retry(_op)
