# backend/scanpos/routes/system.py
"""
System health endpoints.

/api/test is the scanner devices' reachability check; /health checks the
database and the scan queue backend.
"""

import time
from flask import Blueprint, current_app, jsonify
from ..extensions import db, get_scan_queue
from ..models import Product, Sale
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)

API_ENDPOINTS = {
    "scan": "/api/scan",
    "products": "/api/products",
    "cart": "/api/cart",
    "sales": "/api/sales",
    "health": "/health",
}


def check_database_health() -> dict:
    """
    Check database connectivity with a couple of cheap counts.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        sale_count = db.session.query(Sale).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "products": product_count,
                "sales": sale_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_scan_queue_health() -> dict:
    start_time = time.time()
    queue = get_scan_queue()
    try:
        records = queue.snapshot()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "backend": queue.backend_name,
            "latency_ms": round(elapsed_ms, 2),
            "size": len(records),
            "pending": sum(1 for r in records if not r.processed),
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Scan queue health check failed")
        return {
            "status": "unhealthy",
            "backend": queue.backend_name,
            "latency_ms": round(elapsed_ms, 2),
            "error": "Scan queue unavailable",
        }


@system_bp.get("/api/test")
def api_test():
    """Connectivity check used by scanner devices."""
    queue = check_scan_queue_health()
    return jsonify({
        "status": "online",
        "message": "ScanPOS API is running",
        "timestamp": to_utc_z(utcnow()),
        "endpoints": API_ENDPOINTS,
        "scan_queue": {
            "backend": queue["backend"],
            "size": queue.get("size"),
            "pending": queue.get("pending"),
        },
    }), 200


@system_bp.get("/health")
def health():
    checks = {
        "database": check_database_health(),
        "scan_queue": check_scan_queue_health(),
    }
    healthy = all(c["status"] == "healthy" for c in checks.values())
    return jsonify({
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": checks,
    }), (200 if healthy else 503)
