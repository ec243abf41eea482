# Overview: In-memory cart aggregation for one operator session.

"""
Cart aggregation.

A Cart belongs to exactly one operator session, so it has no internal
locking. Lines are immutable CartLine values; every mutation builds a new
line and then notifies observers with a fresh list and the recomputed
totals, so nothing outside the cart can reach its internal state.

Tax is always zero. Totals are derived from the lines on every call.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Callable, Optional

from ..time_utils import to_utc_z, utcnow
from ..validation import ValidationError, coerce_int, coerce_positive_int, coerce_price


logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")


def round_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class CartLine:
    product_id: str
    name: str
    unit_price: Decimal
    quantity: int
    wholesale_price: Decimal = ZERO
    product_code: str = ""
    category: str = ""
    added_at: datetime = field(default_factory=utcnow)

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity

    @property
    def line_profit(self) -> Decimal:
        return (self.unit_price - self.wholesale_price) * self.quantity

    def with_quantity(self, quantity: int) -> "CartLine":
        return replace(self, quantity=quantity)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "name": self.name,
            "price": float(self.unit_price),
            "wholesale_price": float(self.wholesale_price),
            "quantity": self.quantity,
            "total": float(round_money(self.line_total)),
            "product_code": self.product_code,
            "category": self.category,
            "added_at": to_utc_z(self.added_at),
        }


@dataclass(frozen=True)
class CartTotals:
    subtotal: Decimal
    tax: Decimal
    total: Decimal
    item_count: int

    def to_dict(self) -> dict:
        return {
            "subtotal": float(self.subtotal),
            "tax": float(self.tax),
            "total": float(self.total),
            "item_count": self.item_count,
        }


CartObserver = Callable[[list[CartLine], CartTotals], None]


def _field(product: Any, *names: str, default=None):
    """Read a product attribute from a mapping or an object, first name wins."""
    for name in names:
        if isinstance(product, dict):
            if product.get(name) is not None:
                return product[name]
        elif getattr(product, name, None) is not None:
            return getattr(product, name)
    return default


def line_from_product(product: Any, quantity: int) -> CartLine:
    product_id = _field(product, "id", "product_id", "productId")
    if product_id is None or not str(product_id).strip():
        raise ValidationError("product id is required", field="product_id")
    return CartLine(
        product_id=str(product_id).strip(),
        name=str(_field(product, "name", default="")),
        unit_price=coerce_price(_field(product, "price", "unit_price"), "price"),
        wholesale_price=coerce_price(
            _field(product, "wholesale_price", "wholesalePrice"), "wholesale_price", default=ZERO,
        ),
        quantity=quantity,
        product_code=str(_field(product, "product_code", "productCode", default="")),
        category=str(_field(product, "category", default="")),
    )


class Cart:
    def __init__(self, owner: Optional[str] = None):
        self.owner = owner
        self._lines: list[CartLine] = []
        self._observers: list[CartObserver] = []

    def on_update(self, callback: CartObserver) -> None:
        self._observers.append(callback)

    def _notify(self) -> None:
        items = self.get_items()
        totals = self.get_totals()
        for callback in self._observers:
            callback(items, totals)

    def _index_of(self, product_id: str) -> int:
        for i, line in enumerate(self._lines):
            if line.product_id == product_id:
                return i
        return -1

    def add_item(self, product: Any, quantity: int = 1) -> list[CartLine]:
        """Add `quantity` units; an existing line for the product is merged."""
        quantity = coerce_positive_int(quantity, "quantity")
        new_line = line_from_product(product, quantity)

        idx = self._index_of(new_line.product_id)
        if idx > -1:
            current = self._lines[idx]
            self._lines[idx] = current.with_quantity(current.quantity + quantity)
        else:
            self._lines.append(new_line)

        self._notify()
        return self.get_items()

    def remove_item(self, product_id: str) -> list[CartLine]:
        self._lines = [line for line in self._lines if line.product_id != product_id]
        self._notify()
        return self.get_items()

    def update_quantity(self, product_id: str, new_quantity: int) -> list[CartLine]:
        new_quantity = coerce_int(new_quantity, "quantity")
        if new_quantity <= 0:
            return self.remove_item(product_id)

        idx = self._index_of(product_id)
        if idx > -1:
            self._lines[idx] = self._lines[idx].with_quantity(new_quantity)
            self._notify()
        return self.get_items()

    def get_totals(self) -> CartTotals:
        subtotal = round_money(sum((line.line_total for line in self._lines), ZERO))
        return CartTotals(
            subtotal=subtotal,
            tax=ZERO,
            total=subtotal,
            item_count=sum(line.quantity for line in self._lines),
        )

    def calculate_profit(self) -> Decimal:
        # Unknown wholesale prices count as zero cost
        return round_money(sum((line.line_profit for line in self._lines), ZERO))

    def clear_cart(self) -> None:
        self._lines = []
        self._notify()

    def cancel_last_item(self) -> Optional[CartLine]:
        if not self._lines:
            return None
        removed = self._lines.pop()
        self._notify()
        return removed

    def get_items(self) -> list[CartLine]:
        return list(self._lines)

    def get_item(self, product_id: str) -> Optional[CartLine]:
        idx = self._index_of(product_id)
        return self._lines[idx] if idx > -1 else None

    def is_empty(self) -> bool:
        return not self._lines

    def get_summary(self) -> dict:
        return {
            "items": [line.to_dict() for line in self._lines],
            "totals": self.get_totals().to_dict(),
            "profit": float(self.calculate_profit()),
            "timestamp": to_utc_z(utcnow()),
        }


class CartRegistry:
    """
    Carts keyed by operator session. Lives on the Flask app
    (app.extensions["scanpos.carts"]) instead of a module-level global.
    """

    def __init__(self):
        self._carts: dict[str, Cart] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> Cart:
        with self._lock:
            cart = self._carts.get(session_id)
            if cart is None:
                cart = Cart(owner=session_id)
                cart.on_update(_log_cart_update(session_id))
                self._carts[session_id] = cart
            return cart

    def discard(self, session_id: str) -> None:
        with self._lock:
            self._carts.pop(session_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._carts)


def _log_cart_update(session_id: str) -> CartObserver:
    def _observer(items: list[CartLine], totals: CartTotals) -> None:
        logger.debug(
            "Cart %s updated: %d line(s), %d unit(s), total %s",
            session_id, len(items), totals.item_count, totals.total,
        )
    return _observer
