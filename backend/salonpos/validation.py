from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any


# Maximum amount: 9,999,999.99 CHF (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_AMOUNT_CENTS = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., second closure for a date)."""


class NotFoundError(LookupError):
    """404-level missing entity."""


def parse_cents(value: Any, field: str) -> int:
    """
    Strict integer cents.

    Rejects booleans, floats, decimals and scientific notation so that a
    client sending 45.5 to a *_cents field gets an error instead of a
    silently truncated price.
    """
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer number of cents")
    if isinstance(value, int):
        cents = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped or "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be an integer number of cents")
        try:
            cents = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer number of cents")
    else:
        raise ValidationError(f"{field} must be an integer number of cents")

    if abs(cents) > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} exceeds the maximum amount")
    return cents


def parse_amount(value: Any, field: str) -> int:
    """
    Decimal currency amount ("45.00", 45, 24.9) -> integer cents.

    At most two fraction digits are accepted.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a decimal amount")
    try:
        # str() first so 24.9 is read as "24.9", not its binary expansion
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a decimal amount")
    if not amount.is_finite():
        raise ValidationError(f"{field} must be a decimal amount")
    if amount.as_tuple().exponent < -2:
        raise ValidationError(f"{field} must have at most two decimal places")

    cents = int(amount * 100)
    if abs(cents) > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} exceeds the maximum amount")
    return cents


def amount_from_payload(
    data: dict,
    key: str,
    *,
    required: bool = False,
    default: int | None = None,
) -> int | None:
    """
    Read a monetary field that may be sent as `<key>_cents` or as `<key>`.

    `<key>_cents` wins when both are present.
    """
    cents_key = f"{key}_cents"
    if data.get(cents_key) is not None:
        return parse_cents(data[cents_key], cents_key)
    if data.get(key) is not None and data.get(key) != "":
        return parse_amount(data[key], key)
    if required:
        raise ValidationError(f"{key} is required")
    return default


def require_text(value: Any, field: str, *, max_length: int | None = None) -> str:
    """Non-empty, stripped string."""
    if value is None or not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    text = value.strip()
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return text


def optional_text(value: Any, field: str, *, max_length: int | None = None) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    text = value.strip()
    if not text:
        return None
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return text


def format_cents(cents: int | None) -> str:
    """Two-decimal rendering of an amount in cents: 6990 -> "69.90", -500 -> "-5.00"."""
    if cents is None:
        return "0.00"
    sign = "-" if cents < 0 else ""
    whole, frac = divmod(abs(cents), 100)
    return f"{sign}{whole}.{frac:02d}"
