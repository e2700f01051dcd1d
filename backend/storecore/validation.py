# Overview: Request payload validation and strict scalar parsing.

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import Boolean, Date, DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError
from .time_utils import parse_iso_datetime

# Maximum price: 9,999,999.99 (999,999,999 cents)
MAX_PRICE_CENTS = 999_999_999

# Quantities are stored with three decimal places (grams of a KG product)
QUANTITY_PLACES = 3
MAX_QUANTITY = Decimal("99999999999.999")


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


def parse_int(value: Any, field: str) -> int:
    """Strict integer: rejects bools, floats, decimals and scientific notation."""
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


def parse_cents(value: Any, field: str, *, allow_zero: bool = True) -> int:
    cents = parse_int(value, field)
    if cents < 0 or (cents == 0 and not allow_zero):
        raise ValidationError(f"{field} must be {'>= 0' if allow_zero else '> 0'}", field=field)
    if cents > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} cannot exceed {MAX_PRICE_CENTS}", field=field)
    return cents


def parse_quantity(value: Any, field: str = "quantity", *, allow_zero: bool = False) -> Decimal:
    """
    Exact decimal quantity with at most three decimal places.

    Floats go through str() so 0.1 stays 0.1 rather than its binary expansion.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required", field=field)
    if isinstance(value, Decimal):
        qty = value
    elif isinstance(value, (int, float, str)):
        try:
            qty = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValidationError(f"{field} must be a number", field=field)
    else:
        raise ValidationError(f"{field} must be a number", field=field)

    if not qty.is_finite():
        raise ValidationError(f"{field} must be a finite number", field=field)
    if qty < 0 or (qty == 0 and not allow_zero):
        raise ValidationError(f"{field} must be {'>= 0' if allow_zero else '> 0'}", field=field)
    if qty > MAX_QUANTITY:
        raise ValidationError(f"{field} is too large", field=field)
    step = Decimal(1).scaleb(-QUANTITY_PLACES)
    if qty != qty.quantize(step):
        raise ValidationError(f"{field} allows at most {QUANTITY_PLACES} decimal places", field=field)
    return qty.quantize(step)


def parse_date(value: Any, field: str) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            raise ValidationError(f"{field} must be an ISO-8601 date", field=field)
    raise ValidationError(f"{field} must be an ISO-8601 date", field=field)


def require_choice(value: Any, choices, field: str) -> str:
    if not isinstance(value, str) or value.strip().upper() not in choices:
        raise ValidationError(
            f"{field} must be one of: {', '.join(choices)}",
            field=field,
            details={"allowed": list(choices)},
        )
    return value.strip().upper()


def optional_text(value: Any, field: str, max_length: int = 255) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string", field=field)
    stripped = value.strip()
    if len(stripped) > max_length:
        raise ValidationError(f"{field} exceeds max length {max_length}", field=field)
    return stripped or None


def parse_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ValidationError(f"{field} must be a boolean", field=field)


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return parse_int(value, col.key)

    if isinstance(coltype, Numeric):
        return parse_quantity(value, col.key, allow_zero=True)

    if isinstance(coltype, Boolean):
        return parse_bool(value, col.key)

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime", field=col.key)
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime", field=col.key)
            return dt
        raise ValidationError(f"{col.key} must be a datetime", field=col.key)

    if isinstance(coltype, Date):
        return parse_date(value, col.key)

    if isinstance(coltype, (String, Text)):
        if not isinstance(value, (str, int)) or isinstance(value, bool):
            raise ValidationError(f"{col.key} must be a string", field=col.key)
        return str(value).strip()

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
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", details={"missing": missing})

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields or k not in cols:
            raise ValidationError(f"Field not allowed: {k}", field=k)

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null", field=k)
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank", field=k)

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}", field=k)

        # Empty optional strings are stored as NULL (unique barcode must not collide on "")
        if isinstance(val, str) and val == "" and col.nullable:
            val = None

        patch[k] = val

    return patch


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    from .models.catalog import VALID_UNITS

    for key in ("purchase_price_cents", "selling_price_cents"):
        if patch.get(key) is not None:
            patch[key] = parse_cents(patch[key], key)

    if patch.get("min_stock_alert") is not None:
        patch["min_stock_alert"] = parse_quantity(patch["min_stock_alert"], "min_stock_alert", allow_zero=True)

    if patch.get("tax_rate_bps") is not None:
        bps = patch["tax_rate_bps"] = parse_int(patch["tax_rate_bps"], "tax_rate_bps")
        if bps < 0 or bps > 10_000:
            raise ValidationError("tax_rate_bps must be between 0 and 10000", field="tax_rate_bps")

    if "unit" in patch:
        patch["unit"] = require_choice(patch["unit"], VALID_UNITS, "unit")
