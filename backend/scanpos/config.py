# backend/scanpos/config.py
from __future__ import annotations
import os


def _split_csv(raw: str | None, *, default: list[str]) -> list[str]:
    parts = [p.strip() for p in (raw or "").split(",")]
    return [p for p in parts if p] or default


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the process by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///scanpos.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Scan queue: memory | file | database | remote
    SCAN_QUEUE_BACKEND = os.environ.get("SCAN_QUEUE_BACKEND", "file").strip().lower()
    SCAN_QUEUE_FILE = os.environ.get("SCAN_QUEUE_FILE", "queue/scanner_queue.json")
    SCAN_QUEUE_MAX_SIZE = int(os.environ.get("SCAN_QUEUE_MAX_SIZE", "100"))
    SCAN_RETENTION_SECONDS = int(os.environ.get("SCAN_RETENTION_SECONDS", "3600"))

    # Hosted realtime database (REST)
    REALTIME_DB_URL = os.environ.get("REALTIME_DB_URL", "")
    REALTIME_DB_AUTH = os.environ.get("REALTIME_DB_AUTH", "")
    REALTIME_DB_QUEUE_PATH = os.environ.get("REALTIME_DB_QUEUE_PATH", "scanner_queue")

    # Receipts: emailjs | outbox
    RECEIPT_BACKEND = os.environ.get("RECEIPT_BACKEND", "outbox").strip().lower()
    EMAILJS_SERVICE_ID = os.environ.get("EMAILJS_SERVICE_ID", "")
    EMAILJS_TEMPLATE_ID = os.environ.get("EMAILJS_TEMPLATE_ID", "")
    EMAILJS_PUBLIC_KEY = os.environ.get("EMAILJS_PUBLIC_KEY", "")
    EMAILJS_API_URL = os.environ.get(
        "EMAILJS_API_URL",
        "https://api.emailjs.com/api/v1.0/email/send",
    )

    # Receipt letterhead
    STORE_NAME = os.environ.get("STORE_NAME", "Corner Store")
    STORE_ADDRESS = os.environ.get("STORE_ADDRESS", "")
    STORE_PHONE = os.environ.get("STORE_PHONE", "")
    STORE_EMAIL = os.environ.get("STORE_EMAIL", "")
    CURRENCY = os.environ.get("CURRENCY", "LKR")

    CORS_ALLOWED_ORIGINS = _split_csv(os.environ.get("CORS_ALLOWED_ORIGINS"), default=["*"])

    # Outbound HTTP timeout (seconds) for the realtime DB and email provider
    HTTP_TIMEOUT = float(os.environ.get("HTTP_TIMEOUT", "10"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
