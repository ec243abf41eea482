# Overview: Receipt rendering and delivery through the transactional email provider.

from __future__ import annotations

import html
import logging
from datetime import datetime
from typing import Any, Mapping

import httpx

from ..time_utils import parse_iso_datetime, utcnow
from ..validation import ConfigurationError, UpstreamError


logger = logging.getLogger(__name__)

THANK_YOU_MESSAGE = (
    "Thank you for shopping with us! We appreciate your business "
    "and look forward to serving you again."
)

EMAILJS_SETTINGS = ("EMAILJS_SERVICE_ID", "EMAILJS_TEMPLATE_ID", "EMAILJS_PUBLIC_KEY")


def _money(currency: str, value: Any) -> str:
    return f"{currency} {float(value or 0):.2f}"


def format_items_html(items: list[dict], currency: str) -> str:
    if not items:
        return '<tr><td colspan="4">No items</td></tr>'

    rows = []
    for item in items:
        name = html.escape(str(item.get("name") or ""))
        code = item.get("product_code")
        code_html = f'<br><small style="color: #666;">{html.escape(str(code))}</small>' if code else ""
        price = float(item.get("price") or 0)
        quantity = int(item.get("quantity") or 0)
        rows.append(
            "<tr>"
            f'<td style="padding: 10px; border-bottom: 1px solid #eee;">{name}{code_html}</td>'
            f'<td style="padding: 10px; border-bottom: 1px solid #eee; text-align: center;">{quantity}</td>'
            f'<td style="padding: 10px; border-bottom: 1px solid #eee; text-align: right;">{_money(currency, price)}</td>'
            f'<td style="padding: 10px; border-bottom: 1px solid #eee; text-align: right; font-weight: bold;">'
            f"{_money(currency, price * quantity)}</td>"
            "</tr>"
        )
    return "".join(rows)


def format_items_text(items: list[dict], currency: str) -> str:
    if not items:
        return "No items in this order"

    text = "\n"
    for item in items:
        code = item.get("product_code")
        code_text = f" ({code})" if code else ""
        price = float(item.get("price") or 0)
        quantity = int(item.get("quantity") or 0)
        text += f"{item.get('name') or ''}{code_text}\n"
        text += f"  Qty: {quantity} x {_money(currency, price)} = {_money(currency, price * quantity)}\n\n"
    return text


def format_date(value: Any) -> str:
    """'October 19, 2026, 09:05 PM' style."""
    if isinstance(value, str):
        value = parse_iso_datetime(value)
    if not isinstance(value, datetime):
        value = utcnow()
    return value.strftime("%B %d, %Y, %I:%M %p")


def build_template_params(sale: Mapping[str, Any], settings: Mapping[str, Any]) -> dict:
    """Template parameters for the receipt email of a sale (Sale.to_dict() shape)."""
    currency = settings.get("CURRENCY", "")
    items = sale.get("items") or []
    email = sale.get("customer_email")
    return {
        "to_email": email,
        "customer_email": email,
        "customer_name": sale.get("customer_name") or "Valued Customer",
        "sale_id": sale.get("sale_id"),
        "sale_date": format_date(sale.get("created_at")),
        "items_html": format_items_html(items, currency),
        "items_text": format_items_text(items, currency),
        "subtotal": _money(currency, sale.get("subtotal")),
        "tax": _money(currency, sale.get("tax_amount")),
        "total": _money(currency, sale.get("total_amount")),
        "store_name": settings.get("STORE_NAME", ""),
        "store_address": settings.get("STORE_ADDRESS", ""),
        "store_phone": settings.get("STORE_PHONE", ""),
        "store_email": settings.get("STORE_EMAIL", ""),
        "thank_you_message": THANK_YOU_MESSAGE,
    }


class ReceiptSender:
    name = "abstract"

    def send(self, to_email: str, params: dict) -> None:
        raise NotImplementedError


class EmailJSReceiptSender(ReceiptSender):
    """Delivers through the EmailJS REST API."""

    name = "emailjs"

    def __init__(
        self,
        service_id: str,
        template_id: str,
        public_key: str,
        *,
        api_url: str = "https://api.emailjs.com/api/v1.0/email/send",
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.service_id = service_id
        self.template_id = template_id
        self.public_key = public_key
        self.api_url = api_url
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def send(self, to_email: str, params: dict) -> None:
        body = {
            "service_id": self.service_id,
            "template_id": self.template_id,
            "user_id": self.public_key,
            "template_params": params,
        }
        try:
            response = self._client.post(self.api_url, json=body)
        except httpx.HTTPError as exc:
            raise UpstreamError(f"Email provider unreachable: {exc}",
                                public_message="Receipt delivery failed") from exc

        if response.status_code != 200:
            # EmailJS answers errors as plain text
            raise UpstreamError(
                f"Email provider rejected receipt for {to_email}: "
                f"HTTP {response.status_code} {response.text[:200]}",
                public_message="Receipt delivery failed",
            )


class OutboxReceiptSender(ReceiptSender):
    """Keeps messages in memory instead of sending them."""

    name = "outbox"

    def __init__(self):
        self.messages: list[dict] = []

    def send(self, to_email: str, params: dict) -> None:
        self.messages.append({"to": to_email, "params": params})


class ReceiptService:
    def __init__(self, sender: ReceiptSender, settings: Mapping[str, Any]):
        self.sender = sender
        self.settings = settings

    def send_receipt(self, sale: Mapping[str, Any]) -> None:
        """Render and send the receipt for a sale. Raises UpstreamError on failure."""
        to_email = sale.get("customer_email")
        params = build_template_params(sale, self.settings)
        self.sender.send(to_email, params)
        logger.info("Receipt for sale %s sent to %s via %s", sale.get("sale_id"), to_email, self.sender.name)


def check_configuration(config: Mapping[str, Any]) -> dict[str, bool]:
    backend = (config.get("RECEIPT_BACKEND") or "").lower()
    checks = {"Receipt backend known": backend in {"emailjs", "outbox"}}
    if backend == "emailjs":
        for key in EMAILJS_SETTINGS:
            checks[f"{key} set"] = bool(config.get(key))
    return checks


def build_receipt_service(config: Mapping[str, Any], transport: httpx.BaseTransport | None = None) -> ReceiptService:
    backend = (config.get("RECEIPT_BACKEND") or "outbox").lower()
    if backend == "outbox":
        sender: ReceiptSender = OutboxReceiptSender()
    elif backend == "emailjs":
        missing = [key for key in EMAILJS_SETTINGS if not config.get(key)]
        if missing:
            raise ConfigurationError(f"Missing email provider settings: {', '.join(missing)}")
        sender = EmailJSReceiptSender(
            config["EMAILJS_SERVICE_ID"],
            config["EMAILJS_TEMPLATE_ID"],
            config["EMAILJS_PUBLIC_KEY"],
            api_url=config.get("EMAILJS_API_URL") or "https://api.emailjs.com/api/v1.0/email/send",
            timeout=float(config.get("HTTP_TIMEOUT") or 10),
            transport=transport,
        )
    else:
        raise ConfigurationError(f"Unknown RECEIPT_BACKEND: {backend}")
    return ReceiptService(sender, config)
