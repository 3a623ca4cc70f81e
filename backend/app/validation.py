from __future__ import annotations
from datetime import datetime
from app.time_utils import parse_iso_datetime

from typing import Any

from .errors import ValidationError


# Maximum single amount: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_AMOUNT_CENTS = 999_999_999

MAX_REFERENCE_LENGTH = 128
MAX_NOTES_LENGTH = 500


def coerce_int(value: Any, field: str) -> int:
    """
    Strict integer coercion for client input.

    Rejects bools, floats, decimals-as-strings and scientific notation so
    that money in cents never silently loses precision.
    """
    if value is None:
        raise ValidationError(f"{field} is required", details={"field": field})

    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer", details={"field": field})
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(
                f"{field} must be a plain integer (scientific notation not allowed)",
                details={"field": field},
            )
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)", details={"field": field})
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", details={"field": field})
    # Reject floats explicitly
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal", details={"field": field})
    raise ValidationError(f"{field} must be an integer", details={"field": field})


def require_positive_int(value: Any, field: str, *, maximum: int | None = None) -> int:
    number = coerce_int(value, field)
    if number <= 0:
        raise ValidationError(f"{field} must be > 0", details={"field": field, "value": number})
    if maximum is not None and number > maximum:
        raise ValidationError(f"{field} cannot exceed {maximum}", details={"field": field, "value": number})
    return number


def require_non_negative_int(value: Any, field: str, *, maximum: int | None = None) -> int:
    number = coerce_int(value, field)
    if number < 0:
        raise ValidationError(f"{field} must be >= 0", details={"field": field, "value": number})
    if maximum is not None and number > maximum:
        raise ValidationError(f"{field} cannot exceed {maximum}", details={"field": field, "value": number})
    return number


def optional_int(value: Any, field: str) -> int | None:
    if value is None or value == "":
        return None
    return coerce_int(value, field)


def require_choice(value: Any, field: str, choices) -> str:
    if not isinstance(value, str) or value.strip().upper() not in choices:
        raise ValidationError(
            f"{field} must be one of {sorted(choices)}",
            details={"field": field, "value": value},
        )
    return value.strip().upper()


def optional_text(value: Any, field: str, max_length: int) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}", details={"field": field})
    return text


def optional_datetime(value: Any, field: str) -> datetime | None:
    """Accept a datetime or ISO-8601 string; normalize to UTC-naive."""
    if value is None or isinstance(value, datetime):
        if isinstance(value, datetime) and value.tzinfo is not None:
            return parse_iso_datetime(value.isoformat())
        return value
    if isinstance(value, str):
        try:
            return parse_iso_datetime(value)
        except ValueError:
            raise ValidationError(f"{field} must be an ISO-8601 datetime", details={"field": field})
    raise ValidationError(f"{field} must be a datetime", details={"field": field})
