# backend/scanpos/models.py
from __future__ import annotations
from decimal import Decimal

from .extensions import db
from scanpos.time_utils import to_utc_z, utcnow


def _money(value) -> float:
    return float(value if value is not None else Decimal("0"))


class Product(db.Model):
    """
    Catalogue entry. `id` is the product identifier the cart keys on; the
    QR label usually carries the same value, but `product_code` is kept
    separately because older labels print a different code.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_code", "product_code"),
        db.Index("ix_products_name", "name"),
    )

    id = db.Column(db.String(64), primary_key=True)
    product_code = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(120), nullable=True)

    price = db.Column(db.Numeric(12, 2), nullable=False)
    wholesale_price = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0"))
    quantity = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id!r} name={self.name!r} quantity={self.quantity}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_code": self.product_code,
            "name": self.name,
            "category": self.category,
            "price": _money(self.price),
            "wholesale_price": _money(self.wholesale_price),
            "quantity": self.quantity,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Sale(db.Model):
    """
    Finalized checkout. Written once at checkout and never updated; the
    lines are a snapshot of the cart at that moment.
    """
    __tablename__ = "sales"

    id = db.Column(db.String(64), primary_key=True)
    customer_email = db.Column(db.String(255), nullable=False, index=True)
    customer_name = db.Column(db.String(255), nullable=False, default="")

    subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0"))
    discount_amount = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0"))
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)
    profit = db.Column(db.Numeric(12, 2), nullable=False)
    item_count = db.Column(db.Integer, nullable=False)

    payment_method = db.Column(db.String(16), nullable=False, default="cash")
    status = db.Column(db.String(16), nullable=False, default="completed", index=True)

    operator_id = db.Column(db.String(128), nullable=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    lines = db.relationship(
        "SaleLine",
        backref="sale",
        lazy=True,
        order_by="SaleLine.position",
    )

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "sale_id": self.id,
            "customer_email": self.customer_email,
            "customer_name": self.customer_name,
            "subtotal": _money(self.subtotal),
            "tax_amount": _money(self.tax_amount),
            "discount_amount": _money(self.discount_amount),
            "total_amount": _money(self.total_amount),
            "profit": _money(self.profit),
            "item_count": self.item_count,
            "payment_method": self.payment_method,
            "status": self.status,
            "operator_id": self.operator_id,
            "sale_date": to_utc_z(self.created_at),
            "created_at": to_utc_z(self.created_at),
        }
        if include_lines:
            data["items"] = [line.to_dict() for line in self.lines]
        return data


class SaleLine(db.Model):
    """Cart line snapshot on a sale."""
    __tablename__ = "sale_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.String(64), db.ForeignKey("sales.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    # No FK: the sale must survive catalogue edits and deletions
    product_id = db.Column(db.String(64), nullable=False)
    product_code = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(120), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    wholesale_price = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0"))
    line_total = db.Column(db.Numeric(12, 2), nullable=False)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_code": self.product_code,
            "name": self.name,
            "category": self.category,
            "quantity": self.quantity,
            "price": _money(self.unit_price),
            "wholesale_price": _money(self.wholesale_price),
            "total": _money(self.line_total),
        }


class MobileSale(db.Model):
    """Denormalized sale copy picked up by the companion mobile app."""
    __tablename__ = "mobile_sales"

    sale_id = db.Column(db.String(64), primary_key=True)
    payload = db.Column(db.JSON, nullable=False)
    synced_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        data = dict(self.payload or {})
        data["synced_at"] = to_utc_z(self.synced_at)
        return data


class ScanRecordRow(db.Model):
    """Backing rows for the database scan queue store."""
    __tablename__ = "scan_records"
    __table_args__ = {"sqlite_autoincrement": True}

    seq = db.Column(db.Integer, primary_key=True)
    id = db.Column(db.String(64), nullable=False, unique=True)
    payload = db.Column(db.Text, nullable=False)
    extracted_code = db.Column(db.String(255), nullable=False)
    device_id = db.Column(db.String(128), nullable=False, default="UNKNOWN")
    created_at = db.Column(db.BigInteger, nullable=False)
    processed = db.Column(db.Boolean, nullable=False, default=False, index=True)
    processed_at = db.Column(db.BigInteger, nullable=True)
    device_timestamp = db.Column(db.BigInteger, nullable=True)
