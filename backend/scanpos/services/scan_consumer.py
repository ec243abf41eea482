# Overview: Feeds polled scans into an operator's cart, one scan at a time.

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..validation import NotFoundError, ValidationError
from .cart_service import Cart
from .product_service import find_product_by_code
from .scan_queue import ScanQueue
from .scan_store import ScanRecord


logger = logging.getLogger(__name__)


@dataclass
class DrainResult:
    added: list[dict] = field(default_factory=list)
    failed: list[dict] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.added) + len(self.failed)

    def to_dict(self) -> dict:
        return {"added": self.added, "failed": self.failed, "count": self.count}


def apply_scan(scan: ScanRecord, cart: Cart) -> dict:
    """Look up the scanned product and add one unit to the cart."""
    code = scan.extracted_code or scan.payload
    if not code:
        raise ValidationError("No product code in scan", field="payload")
    product = find_product_by_code(code)
    cart.add_item(product, 1)
    return {"scan_id": scan.id, "product_id": product.id, "name": product.name}


def drain_scans(queue: ScanQueue, cart: Cart) -> DrainResult:
    """
    Poll the queue once and apply each scan in arrival order. A scan is
    fully applied (or has failed) before the next one starts; a failed
    lookup is recorded and the drain moves on.
    """
    result = DrainResult()
    for scan in queue.poll():
        try:
            result.added.append(apply_scan(scan, cart))
        except (NotFoundError, ValidationError) as exc:
            logger.info("Scan %s (%s) not added: %s", scan.id, scan.extracted_code, exc)
            result.failed.append({
                "scan_id": scan.id,
                "code": scan.extracted_code,
                "error": str(exc),
            })
    return result
