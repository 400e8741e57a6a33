from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError, ConflictError  # noqa: F401


# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

# 100% in basis points
MAX_PERCENT_BPS = 10_000

# Largest quantity a single bill line, order line or stock movement may carry
MAX_QUANTITY = 1_000_000

# Ceiling for bill totals and rule thresholds (a full line at the price cap)
MAX_AMOUNT_CENTS = MAX_PRICE_CENTS * MAX_QUANTITY

# Signed 64-bit range; larger values cannot be bound as SQL parameters
_DB_INT_MIN = -(2 ** 63)
_DB_INT_MAX = 2 ** 63 - 1

PAYMENT_MODES = ("CASH", "ONLINE", "CARD")


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _in_db_range(number: int, field: str) -> int:
    if not _DB_INT_MIN <= number <= _DB_INT_MAX:
        raise ValidationError(f"{field} is out of range", details={"field": field})
    return number


def coerce_int(value: Any, field: str) -> int:
    """Strict integer parsing: rejects bools, floats, decimals and scientific notation."""
    if isinstance(value, int) and not isinstance(value, bool):
        return _in_db_range(value, field)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field} must be an integer", details={"field": field})
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer (scientific notation not allowed)",
                                  details={"field": field})
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{field} must be an integer (no decimals)", details={"field": field})
        try:
            number = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer", details={"field": field})
        return _in_db_range(number, field)
    if isinstance(value, float):
        raise ValidationError(f"{field} must be an integer, not a decimal", details={"field": field})
    raise ValidationError(f"{field} must be an integer", details={"field": field})


def _enforce_maximum(number: int, field: str, maximum: int | None) -> int:
    if maximum is not None and number > maximum:
        raise ValidationError(f"{field} cannot exceed {maximum}", details={"field": field, "maximum": maximum})
    return number


def require_positive_int(value: Any, field: str, *, maximum: int | None = None) -> int:
    if value is None:
        raise ValidationError(f"{field} is required", details={"field": field})
    number = coerce_int(value, field)
    if number <= 0:
        raise ValidationError(f"{field} must be > 0", details={"field": field})
    return _enforce_maximum(number, field, maximum)


def require_non_negative_int(
    value: Any,
    field: str,
    *,
    default: int | None = None,
    maximum: int | None = None,
) -> int:
    if value is None:
        if default is not None:
            return default
        raise ValidationError(f"{field} is required", details={"field": field})
    number = coerce_int(value, field)
    if number < 0:
        raise ValidationError(f"{field} must be >= 0", details={"field": field})
    return _enforce_maximum(number, field, maximum)


def require_quantity(value: Any, field: str = "quantity") -> int:
    """Positive unit count, capped at MAX_QUANTITY."""
    return require_positive_int(value, field, maximum=MAX_QUANTITY)


def require_amount_cents(value: Any, field: str, *, default: int | None = None) -> int:
    """Non-negative money amount, capped at MAX_AMOUNT_CENTS."""
    return require_non_negative_int(value, field, default=default, maximum=MAX_AMOUNT_CENTS)


def require_percent_bps(value: Any, field: str) -> int:
    bps = require_non_negative_int(value, field)
    if bps > MAX_PERCENT_BPS:
        raise ValidationError(f"{field} cannot exceed {MAX_PERCENT_BPS} (100%)", details={"field": field})
    return bps


def require_text(value: Any, field: str, *, max_length: int | None = None) -> str:
    if value is None or str(value).strip() == "":
        raise ValidationError(f"{field} is required", details={"field": field})
    text = str(value).strip()
    if max_length and len(text) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}", details={"field": field})
    return text


def normalize_payment_mode(value: Any) -> str:
    mode = str(value or "").strip().upper()
    if mode not in PAYMENT_MODES:
        raise ValidationError(
            f"payment_mode must be one of {', '.join(PAYMENT_MODES)}",
            details={"field": "payment_mode"},
        )
    return mode


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(value, col.key)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", details={"fields": missing})

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}", details={"field": k})
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}", details={"field": k})

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null", details={"field": k})
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank", details={"field": k})

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}", details={"field": k})

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    if "unit_price_cents" in patch and patch["unit_price_cents"] is not None:
        price = patch["unit_price_cents"]
        if price < 0:
            raise ValidationError("unit_price_cents must be >= 0", details={"field": "unit_price_cents"})
        if price > MAX_PRICE_CENTS:
            raise ValidationError(
                f"unit_price_cents cannot exceed {MAX_PRICE_CENTS} ({MAX_PRICE_CENTS / 100:,.2f})",
                details={"field": "unit_price_cents"},
            )

    if "low_stock_threshold" in patch and patch["low_stock_threshold"] is not None:
        if patch["low_stock_threshold"] < 0:
            raise ValidationError("low_stock_threshold must be >= 0", details={"field": "low_stock_threshold"})
