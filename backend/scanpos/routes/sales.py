# Overview: Flask API routes for recorded sales and sales analytics; parses input and returns JSON responses.

# backend/scanpos/routes/sales.py
from flask import Blueprint, request, jsonify

from ..services.sales_service import get_sale, get_sales_analytics, get_sales_for_period
from ..validation import ValidationError, NotFoundError, error_payload


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.get("")
def list_sales():
    """
    List recorded sales, newest first.

    Query params:
    - timeframe: all | today | week | month | year (default all)
    """
    timeframe = (request.args.get("timeframe") or "all").strip().lower()
    try:
        sales = get_sales_for_period(timeframe)
    except ValidationError as e:
        return jsonify(error_payload(e)), 400

    return jsonify({
        "success": True,
        "timeframe": timeframe,
        "sales": sales,
        "count": len(sales),
    }), 200


@sales_bp.get("/analytics")
def sales_analytics():
    """Totals for today | week | month | year (weeks start on Sunday)."""
    timeframe = (request.args.get("timeframe") or "today").strip().lower()
    try:
        analytics = get_sales_analytics(timeframe)
    except ValidationError as e:
        return jsonify(error_payload(e)), 400

    return jsonify({"success": True, "analytics": analytics}), 200


@sales_bp.get("/<sale_id>")
def sale_detail(sale_id: str):
    try:
        sale = get_sale(sale_id)
    except NotFoundError as e:
        return jsonify(error_payload(e)), 404

    return jsonify({"success": True, "sale": sale.to_dict()}), 200
