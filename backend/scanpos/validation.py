from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any


EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

# Maximum unit price accepted for a product: 9,999,999.99
MAX_PRICE = Decimal("9999999.99")


class ValidationError(ValueError):
    """400-level input problem."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class NotFoundError(LookupError):
    """404-level missing product or session entity."""


class ConflictError(ValueError):
    """409-level conflict (e.g., a product code already taken)."""


class UpstreamError(RuntimeError):
    """
    500-level failure of an external collaborator (database, realtime DB,
    email provider). `public_message` is what callers get to see; the
    detail only goes to the log.
    """

    def __init__(self, message: str, public_message: str = "Upstream service error"):
        super().__init__(message)
        self.public_message = public_message


class ConfigurationError(RuntimeError):
    """Required settings are absent or inconsistent at startup."""


def error_payload(exc: Exception) -> dict:
    """JSON body for an error response."""
    if isinstance(exc, UpstreamError):
        return {"success": False, "error": exc.public_message}
    body = {"success": False, "error": str(exc)}
    field = getattr(exc, "field", None)
    if field:
        body["field"] = field
    return body


def is_valid_email(value: Any) -> bool:
    return isinstance(value, str) and bool(EMAIL_RE.match(value.strip()))


def require_email(value: Any, field: str = "customer_email") -> str:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError("Customer email is required", field=field)
    if not is_valid_email(value):
        raise ValidationError("Customer email is not a valid email address", field=field)
    return value.strip()


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion: rejects bools, floats, decimals in strings and
    scientific notation.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer", field=field)
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)", field=field)
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)", field=field)
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", field=field)
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal", field=field)
    raise ValidationError(f"{field} must be an integer", field=field)


def coerce_positive_int(value: Any, field: str) -> int:
    number = coerce_int(value, field)
    if number < 1:
        raise ValidationError(f"{field} must be >= 1", field=field)
    return number


def coerce_price(value: Any, field: str, *, default: Decimal | None = None) -> Decimal:
    """Money values arrive as numbers or numeric strings; bools are rejected."""
    if value is None or value == "":
        if default is not None:
            return default
        raise ValidationError(f"{field} is required", field=field)
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", field=field)
    try:
        price = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number", field=field)
    if not price.is_finite():
        raise ValidationError(f"{field} must be a number", field=field)
    if price < 0:
        raise ValidationError(f"{field} must be >= 0", field=field)
    if price > MAX_PRICE:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE}", field=field)
    return price


def require_text(value: Any, field: str, *, max_length: int | None = None) -> str:
    if value is None:
        raise ValidationError(f"{field} is required", field=field)
    text = str(value).strip()
    if not text:
        raise ValidationError(f"{field} cannot be blank", field=field)
    if max_length and len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}", field=field)
    return text
