# backend/scanpos/__init__.py
import logging

from flask import Flask, request

from .config import Config
from .extensions import db, migrate, SCAN_QUEUE_KEY, CART_REGISTRY_KEY, RECEIPTS_KEY


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    logging.basicConfig(format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    logging.getLogger("scanpos").setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Services owned by this app instance. Missing credentials for a
    # selected backend raise ConfigurationError here, at startup.
    from .services.scan_queue import build_scan_queue
    from .services.cart_service import CartRegistry
    from .services.receipt_service import build_receipt_service

    app.extensions[SCAN_QUEUE_KEY] = build_scan_queue(app.config)
    app.extensions[CART_REGISTRY_KEY] = CartRegistry()
    app.extensions[RECEIPTS_KEY] = build_receipt_service(app.config)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.scan import scan_bp
    from .routes.products import products_bp
    from .routes.cart import cart_bp
    from .routes.sales import sales_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(scan_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(cart_bp)
    app.register_blueprint(sales_bp)

    allowed_origins = set(app.config.get("CORS_ALLOWED_ORIGINS") or [])

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if "*" in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = "*"
        elif origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
        else:
            return response
        response.headers["Access-Control-Allow-Headers"] = "Content-Type, X-Session-Id, X-Requested-With"
        response.headers["Access-Control-Allow-Methods"] = "GET,POST,PATCH,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
