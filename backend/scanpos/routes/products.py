# Overview: Flask API routes for the product catalogue; parses input and returns JSON responses.

# backend/scanpos/routes/products.py
from flask import Blueprint, request, jsonify, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..services.product_service import (
    list_products as list_products_service,
    upsert_product,
    find_product_by_code,
)
from ..validation import ValidationError, NotFoundError, ConflictError, error_payload


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
def list_products():
    return jsonify({"success": True, "products": list_products_service()}), 200


@products_bp.post("")
def save_product():
    """
    Create or update a product.

    Body: {id | product_code, name, price, wholesale_price?, category?, quantity?}
    """
    data = request.get_json(silent=True)
    try:
        product = upsert_product(data)
    except ValidationError as e:
        db.session.rollback()
        return jsonify(error_payload(e)), 400
    except ConflictError as e:
        db.session.rollback()
        return jsonify(error_payload(e)), 409
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Failed to save product")
        return jsonify({"success": False, "error": "Internal server error"}), 500

    return jsonify({"success": True, "product": product.to_dict()}), 200


@products_bp.get("/lookup/<path:code>")
def lookup_product(code: str):
    """
    Resolve a scanned or typed code. ?in_stock=0 also returns products
    that are out of stock.
    """
    require_stock = request.args.get("in_stock", "1") not in ("0", "false", "no")
    try:
        product = find_product_by_code(code, require_stock=require_stock)
    except NotFoundError as e:
        return jsonify(error_payload(e)), 404
    except ValidationError as e:
        return jsonify(error_payload(e)), 400

    return jsonify({"success": True, "product": product.to_dict()}), 200
