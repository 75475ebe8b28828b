from __future__ import annotations
import math
from datetime import datetime
from aromalab.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Float, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


# Upper bounds that catch typos (an extra zero or two) rather than real limits
MAX_STOCK_KG = 1_000_000.0
MAX_PRICE_PER_KG = 1_000_000.0
MAX_COEFFICIENT = 10_000.0


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., completing a cancelled order)."""


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


def coerce_number(key: str, value: Any) -> float:
    """Accept ints, floats and numeric strings ("12,5" included); reject NaN/inf and bools."""
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        stripped = value.strip().replace(",", ".")
        if not stripped:
            raise ValidationError(f"{key} must be a number")
        try:
            number = float(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be a number")
    else:
        raise ValidationError(f"{key} must be a number")

    if math.isnan(number) or math.isinf(number):
        raise ValidationError(f"{key} must be a finite number")
    return number


def coerce_int(key: str, value: Any) -> int:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.lstrip("-").isdigit():
            return int(stripped)
    raise ValidationError(f"{key} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, Float):
        return coerce_number(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        # fallback: truthiness
        return bool(value)

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # Strings / Text
    if isinstance(coltype, (String, Text)):
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
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_material(patch: dict) -> None:
    """Stock and price are non-negative (and not absurdly large)."""
    if "stock" in patch and patch["stock"] is not None:
        if patch["stock"] < 0:
            raise ValidationError("stock must be >= 0")
        if patch["stock"] > MAX_STOCK_KG:
            raise ValidationError(f"stock cannot exceed {MAX_STOCK_KG:,.0f} kg")

    if "price" in patch and patch["price"] is not None:
        if patch["price"] < 0:
            raise ValidationError("price must be >= 0")
        if patch["price"] > MAX_PRICE_PER_KG:
            raise ValidationError(f"price cannot exceed {MAX_PRICE_PER_KG:,.0f} per kg")


def enforce_rules_stock_top_up(payload: dict) -> float:
    if not isinstance(payload, dict) or "quantity" not in payload:
        raise ValidationError("quantity is required")
    quantity = coerce_number("quantity", payload["quantity"])
    if quantity <= 0:
        raise ValidationError("quantity must be > 0")
    if quantity > MAX_STOCK_KG:
        raise ValidationError(f"quantity cannot exceed {MAX_STOCK_KG:,.0f} kg")
    return quantity


def clean_formula_ingredients(raw: Any) -> list[dict]:
    """
    Normalize a submitted ingredient list.

    Lines without a material or with a quantity <= 0 are dropped (the form
    always carries an empty trailing line). At least one line must remain.
    """
    if raw is None or not isinstance(raw, list):
        raise ValidationError("ingredients must be a list")

    cleaned = []
    for index, line in enumerate(raw):
        if not isinstance(line, dict):
            raise ValidationError(f"ingredients[{index}] must be an object")

        material_id = line.get("material_id")
        quantity = line.get("quantity")
        if material_id in (None, "") or quantity in (None, ""):
            continue

        material_id = coerce_int(f"ingredients[{index}].material_id", material_id)
        quantity = coerce_number(f"ingredients[{index}].quantity", quantity)
        if quantity <= 0:
            continue

        cleaned.append({"material_id": material_id, "quantity": quantity})

    if not cleaned:
        raise ValidationError("A formula needs at least one ingredient")
    return cleaned


def enforce_rules_order(patch: dict) -> None:
    if "coefficient" in patch:
        coefficient = patch["coefficient"]
        if coefficient is None or coefficient <= 0:
            raise ValidationError("coefficient must be a positive number")
        if coefficient > MAX_COEFFICIENT:
            raise ValidationError(f"coefficient cannot exceed {MAX_COEFFICIENT:,.0f}")
