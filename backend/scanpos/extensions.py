# Overview: Flask extension instances and per-app service state.

from flask import current_app
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate

db = SQLAlchemy()
migrate = Migrate()

SCAN_QUEUE_KEY = "scanpos.scan_queue"
CART_REGISTRY_KEY = "scanpos.carts"
RECEIPTS_KEY = "scanpos.receipts"


def get_scan_queue():
    return current_app.extensions[SCAN_QUEUE_KEY]


def get_cart_registry():
    return current_app.extensions[CART_REGISTRY_KEY]


def get_receipts():
    return current_app.extensions[RECEIPTS_KEY]
