from __future__ import annotations

from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, TypeVar


# Upper bound for any single money amount: 9,999,999.99 (999,999,999 cents)
MAX_AMOUNT_CENTS = 999_999_999

E = TypeVar("E", bound=Enum)


class ValidationError(ValueError):
    """400-level input problem. Raised before any write happens."""


class PreconditionError(ValueError):
    """
    400-level business rule rejection (register not open, insufficient stock...).

    Carries optional structured details that routes return verbatim.
    """
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class NotFoundError(LookupError):
    """404-level missing entity."""


class ConsistencyError(RuntimeError):
    """
    Internal invariant violated (ledger imbalance, running balance mismatch).

    Never retried; the enclosing transaction is rolled back and the failure logged.
    """


class ConcurrencyConflict(RuntimeError):
    """Lost update detected after retries were exhausted; safe to resubmit."""


def _coerce_int(value: Any, field: str) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer")
        if "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)")
        if "." in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal")
    raise ValidationError(f"{field} must be an integer")


def require_int(payload: dict, field: str, *, minimum: int | None = None) -> int:
    if field not in payload or payload[field] is None:
        raise ValidationError(f"{field} is required")
    value = _coerce_int(payload[field], field)
    if minimum is not None and value < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    return value


def optional_int(payload: dict, field: str, *, minimum: int | None = None) -> int | None:
    if payload.get(field) is None:
        return None
    return require_int(payload, field, minimum=minimum)


def require_cents(payload: dict, field: str, *, positive: bool = False, default: int | None = None) -> int:
    """Money amounts travel as integer cents. Negative values are always rejected."""
    if payload.get(field) is None:
        if default is not None:
            return default
        raise ValidationError(f"{field} is required")
    value = _coerce_int(payload[field], field)
    if value < 0:
        raise ValidationError(f"{field} must be >= 0")
    if positive and value == 0:
        raise ValidationError(f"{field} must be > 0")
    if value > MAX_AMOUNT_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_AMOUNT_CENTS}")
    return value


def parse_percentage(value: Any, field: str, *, maximum: Decimal | None = Decimal("100")) -> Decimal:
    """Accept ints, floats or numeric strings; None means 0."""
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        pct = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{field} must be a number")
    if not pct.is_finite():
        raise ValidationError(f"{field} must be a number")
    if pct < 0:
        raise ValidationError(f"{field} cannot be negative")
    if maximum is not None and pct > maximum:
        raise ValidationError(f"{field} cannot exceed {maximum}")
    return pct


def parse_enum(enum_cls: type[E], value: Any, field: str, *, default: E | None = None) -> E:
    if value is None or value == "":
        if default is not None:
            return default
        raise ValidationError(f"{field} is required")
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"{field} must be one of: {allowed}")


def optional_text(payload: dict, field: str, *, max_length: int = 255) -> str | None:
    raw = payload.get(field)
    if raw is None:
        return None
    text = str(raw).strip()
    if not text:
        return None
    if len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}")
    return text
