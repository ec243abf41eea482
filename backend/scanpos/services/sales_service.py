"""
Sale finalization and sales reporting.

Checkout is not one transaction:

1. the sale record (with its line snapshot) is committed first and is the
   durable fact of the transaction;
2. inventory is decremented line by line, each in its own transaction,
   floored at zero;
3. a denormalized copy goes to the mobile sync table;
4. the receipt is emailed.

Failures in 2-4 are logged and returned as warnings. They never undo the
sale or each other.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Iterable, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import MobileSale, Sale, SaleLine
from ..time_utils import to_utc_z, utcnow
from ..validation import NotFoundError, UpstreamError, ValidationError, coerce_positive_int, require_email
from .cart_service import CartLine, ZERO, line_from_product, round_money
from .product_service import adjust_quantity
from .receipt_service import ReceiptService


logger = logging.getLogger(__name__)

PAYMENT_METHOD_CASH = "cash"
STATUS_COMPLETED = "completed"

TIMEFRAMES = ("today", "week", "month", "year")


@dataclass
class SaleResult:
    sale_id: str
    sale: dict
    receipt_sent: bool = False
    warnings: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "sale_id": self.sale_id,
            "sale": self.sale,
            "receipt_sent": self.receipt_sent,
            "warnings": list(self.warnings),
        }


def new_sale_id() -> str:
    return f"sale_{uuid.uuid4().hex}"


def _as_lines(items: Iterable[Any]) -> list[CartLine]:
    lines = []
    for item in items or []:
        if isinstance(item, CartLine):
            lines.append(item)
        else:
            quantity = coerce_positive_int(
                item.get("quantity") if isinstance(item, dict) else getattr(item, "quantity", None),
                "quantity",
            )
            lines.append(line_from_product(item, quantity))
    return lines


def _warning(step: str, message: str, **extra) -> dict:
    data = {"step": step, "message": message}
    data.update(extra)
    return data


def process_sale(
    items: Iterable[Any],
    customer_email: Optional[str],
    customer_name: Optional[str] = None,
    *,
    operator_id: Optional[str] = None,
    receipts: Optional[ReceiptService] = None,
) -> SaleResult:
    """
    Finalize a checkout from a cart snapshot. Returns once the sale is
    recorded; raises ValidationError before anything is written, or
    UpstreamError if the sale record itself cannot be persisted.
    """
    lines = _as_lines(items)
    if not lines:
        raise ValidationError("Cart is empty", field="items")
    email = require_email(customer_email)
    name = (customer_name or "").strip()

    sale_id = new_sale_id()
    subtotal = round_money(sum((line.line_total for line in lines), ZERO))
    profit = round_money(sum((line.line_profit for line in lines), ZERO))

    sale = Sale(
        id=sale_id,
        customer_email=email,
        customer_name=name,
        subtotal=subtotal,
        tax_amount=Decimal("0"),
        discount_amount=Decimal("0"),
        total_amount=subtotal,
        profit=profit,
        item_count=sum(line.quantity for line in lines),
        payment_method=PAYMENT_METHOD_CASH,
        status=STATUS_COMPLETED,
        operator_id=operator_id,
        created_at=utcnow(),
    )
    for position, line in enumerate(lines, start=1):
        sale.lines.append(SaleLine(
            position=position,
            product_id=line.product_id,
            product_code=line.product_code or None,
            name=line.name,
            category=line.category or None,
            quantity=line.quantity,
            unit_price=line.unit_price,
            wholesale_price=line.wholesale_price,
            line_total=round_money(line.line_total),
        ))

    try:
        db.session.add(sale)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.exception("Failed to persist sale %s", sale_id)
        raise UpstreamError(f"Could not persist sale {sale_id}: {exc}",
                            public_message="Sale could not be recorded") from exc

    snapshot = sale.to_dict()
    result = SaleResult(sale_id=sale_id, sale=snapshot)
    logger.info("Sale %s recorded: %s items, total %s", sale_id, sale.item_count, subtotal)

    for line in lines:
        try:
            adjust_quantity(line.product_id, -line.quantity)
        except (NotFoundError, SQLAlchemyError) as exc:
            db.session.rollback()
            logger.warning("Sale %s: could not update stock for %s: %s", sale_id, line.product_id, exc)
            result.warnings.append(_warning(
                "inventory", f"Could not update quantity for {line.name or line.product_id}",
                product_id=line.product_id,
            ))

    try:
        sync_sale_to_mobile(snapshot)
    except Exception:
        db.session.rollback()
        logger.exception("Sale %s: mobile sync failed", sale_id)
        result.warnings.append(_warning("mobile_sync", "Sale was not synced to the mobile app"))

    if receipts is None:
        result.warnings.append(_warning("receipt", "Receipt delivery is not configured"))
    else:
        try:
            receipts.send_receipt(snapshot)
            result.receipt_sent = True
        except UpstreamError as exc:
            logger.warning("Sale %s: receipt delivery failed: %s", sale_id, exc)
            result.warnings.append(_warning("receipt", exc.public_message))
        except Exception:
            logger.exception("Sale %s: receipt delivery failed", sale_id)
            result.receipt_sent = False
            result.warnings.append(_warning("receipt", "Receipt delivery failed"))

    return result


def sync_sale_to_mobile(sale: dict) -> MobileSale:
    """Write (or overwrite) the mobile app copy of a sale."""
    now = utcnow()
    payload = dict(sale)
    payload["synced_at"] = to_utc_z(now)

    mirror = db.session.get(MobileSale, sale["sale_id"])
    if mirror is None:
        mirror = MobileSale(sale_id=sale["sale_id"], payload=payload, synced_at=now)
        db.session.add(mirror)
    else:
        mirror.payload = payload
        mirror.synced_at = now
    db.session.commit()
    return mirror


def get_sale(sale_id: str) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError(f"Sale not found: {sale_id}")
    return sale


def period_bounds(timeframe: str, now: Optional[datetime] = None) -> tuple[Optional[datetime], Optional[datetime]]:
    """
    [start, end) for a reporting timeframe. Weeks start on Sunday.
    "all" is unbounded.
    """
    now = now or utcnow()
    day = now.replace(hour=0, minute=0, second=0, microsecond=0)

    if timeframe == "all":
        return None, None
    if timeframe == "today":
        return day, day + timedelta(days=1)
    if timeframe == "week":
        start = day - timedelta(days=(day.weekday() + 1) % 7)
        return start, start + timedelta(days=7)
    if timeframe == "month":
        start = day.replace(day=1)
        if start.month == 12:
            return start, start.replace(year=start.year + 1, month=1)
        return start, start.replace(month=start.month + 1)
    if timeframe == "year":
        start = day.replace(month=1, day=1)
        return start, start.replace(year=start.year + 1)
    raise ValidationError(f"Unknown timeframe: {timeframe}", field="timeframe")


def _period_query(query, timeframe: str, now: Optional[datetime]):
    start, end = period_bounds(timeframe, now)
    if start is not None:
        query = query.filter(Sale.created_at >= start, Sale.created_at < end)
    return query


def get_sales_analytics(timeframe: str = "today", now: Optional[datetime] = None) -> dict:
    if timeframe not in TIMEFRAMES:
        raise ValidationError(f"Unknown timeframe: {timeframe}", field="timeframe")

    query = db.session.query(
        func.coalesce(func.sum(Sale.total_amount), 0),
        func.coalesce(func.sum(Sale.profit), 0),
        func.count(Sale.id),
    )
    total_sales, total_profit, count = _period_query(query, timeframe, now).one()

    return {
        "timeframe": timeframe,
        "total_sales": round(float(total_sales or 0), 2),
        "total_profit": round(float(total_profit or 0), 2),
        "transaction_count": int(count or 0),
    }


def get_sales_for_period(timeframe: str = "today", now: Optional[datetime] = None) -> list[dict]:
    """Sales in the timeframe, newest first."""
    query = _period_query(db.session.query(Sale), timeframe, now)
    return [s.to_dict() for s in query.order_by(Sale.created_at.desc()).all()]
