from __future__ import annotations

from typing import Any, Iterable


# Maximum money amount: $9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical figures
MAX_AMOUNT_CENTS = 999_999_999


class ValidationError(ValueError):
    """400-level input problem."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., box already holds an active pack)."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class NotFoundError(LookupError):
    """404-level missing reference (store, pack, box, anomaly)."""


def coerce_int(value: Any, field: str, *, minimum: int | None = None, maximum: int | None = None) -> int:
    """
    Strict integer coercion for request payloads.

    Rejects bools, floats, scientific notation and decimal strings; a
    ticket number of "12.5" is a data-entry error, not 12.
    """
    if value is None:
        raise ValidationError(f"{field} is required")

    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            result = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    elif isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and result < minimum:
        raise ValidationError(f"{field} must be >= {minimum}", {"field": field, "value": result})
    if maximum is not None and result > maximum:
        raise ValidationError(f"{field} must be <= {maximum}", {"field": field, "value": result})
    return result


def coerce_cents(value: Any, field: str, *, allow_negative: bool = False) -> int:
    minimum = -MAX_AMOUNT_CENTS if allow_negative else 0
    return coerce_int(value, field, minimum=minimum, maximum=MAX_AMOUNT_CENTS)


def require_text(value: Any, field: str, *, max_length: int | None = None) -> str:
    if value is None:
        raise ValidationError(f"{field} is required")
    text = str(value).strip()
    if not text:
        raise ValidationError(f"{field} is required")
    if max_length is not None and len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return text


def optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def require_choice(value: Any, field: str, choices: Iterable[str]) -> str:
    allowed = set(choices)
    if value not in allowed:
        raise ValidationError(
            f"Invalid {field} '{value}'. Must be one of: {', '.join(sorted(allowed))}"
        )
    return value
