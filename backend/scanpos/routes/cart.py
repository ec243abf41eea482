# Overview: Flask API routes for the operator cart and checkout; parses input and returns JSON responses.

# backend/scanpos/routes/cart.py
"""
Cart routes.

Every route is keyed by the operator session (X-Session-Id). The cart itself
lives in memory on the app; checkout hands a snapshot of its lines to the
sale finalizer and clears the cart once the sale is recorded.
"""
from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_session
from ..extensions import get_scan_queue, get_receipts
from ..services.product_service import find_product_by_code
from ..services.sales_service import process_sale
from ..services.scan_consumer import drain_scans
from ..validation import (
    ValidationError,
    NotFoundError,
    UpstreamError,
    coerce_int,
    coerce_positive_int,
    error_payload,
)


cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


def _summary(**extra):
    body = {"success": True, "cart": g.cart.get_summary()}
    body.update(extra)
    return body


@cart_bp.get("")
@require_session
def get_cart():
    return jsonify(_summary()), 200


@cart_bp.post("/items")
@require_session
def add_item():
    """
    Add a product by id or code.

    Body: {product_id | code, quantity?}
    """
    data = request.get_json(silent=True) or {}
    code = data.get("product_id") or data.get("code")
    try:
        if not code:
            raise ValidationError("product_id or code is required", field="product_id")
        quantity = coerce_positive_int(data.get("quantity", 1), "quantity")
        product = find_product_by_code(str(code))
        g.cart.add_item(product, quantity)
    except NotFoundError as e:
        return jsonify(error_payload(e)), 404
    except ValidationError as e:
        return jsonify(error_payload(e)), 400

    return jsonify(_summary()), 200


@cart_bp.patch("/items/<product_id>")
@require_session
def update_item(product_id: str):
    """Set a line's quantity. Zero or less removes the line."""
    data = request.get_json(silent=True) or {}
    if g.cart.get_item(product_id) is None:
        return jsonify({"success": False, "error": f"Item not in cart: {product_id}"}), 404
    try:
        quantity = coerce_int(data.get("quantity"), "quantity")
    except ValidationError as e:
        return jsonify(error_payload(e)), 400

    g.cart.update_quantity(product_id, quantity)
    return jsonify(_summary()), 200


@cart_bp.delete("/items/<product_id>")
@require_session
def remove_item(product_id: str):
    if g.cart.get_item(product_id) is None:
        return jsonify({"success": False, "error": f"Item not in cart: {product_id}"}), 404
    g.cart.remove_item(product_id)
    return jsonify(_summary()), 200


@cart_bp.post("/cancel-last")
@require_session
def cancel_last():
    removed = g.cart.cancel_last_item()
    return jsonify(_summary(removed=removed.to_dict() if removed else None)), 200


@cart_bp.delete("")
@require_session
def clear_cart():
    g.cart.clear_cart()
    return jsonify(_summary()), 200


@cart_bp.post("/scans/drain")
@require_session
def drain():
    """Poll the scan queue once and add every scanned product to this cart."""
    try:
        result = drain_scans(get_scan_queue(), g.cart)
    except UpstreamError as e:
        current_app.logger.error("Scan drain failed: %s", e)
        return jsonify(error_payload(e)), 500
    except Exception:
        current_app.logger.exception("Failed to drain scans")
        return jsonify({"success": False, "error": "Internal server error"}), 500

    return jsonify(_summary(scans=result.to_dict())), 200


@cart_bp.post("/checkout")
@require_session
def checkout():
    """
    Finalize the sale for the current cart.

    Body: {customer_email, customer_name?}
    Returns 201 with the sale and any warnings from inventory, mobile sync
    or receipt delivery. The cart is cleared only when the sale is recorded.
    """
    data = request.get_json(silent=True) or {}
    try:
        result = process_sale(
            g.cart.get_items(),
            data.get("customer_email"),
            data.get("customer_name"),
            operator_id=g.session_id,
            receipts=get_receipts(),
        )
    except ValidationError as e:
        return jsonify(error_payload(e)), 400
    except UpstreamError as e:
        current_app.logger.error("Checkout failed: %s", e)
        return jsonify(error_payload(e)), 500
    except Exception:
        current_app.logger.exception("Checkout failed")
        return jsonify({"success": False, "error": "Internal server error"}), 500

    g.cart.clear_cart()
    body = {"success": True}
    body.update(result.to_dict())
    return jsonify(body), 201
