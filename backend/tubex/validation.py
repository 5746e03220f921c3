from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from .errors import ValidationError
from tubex.time_utils import parse_iso_date


QUANTITY_PLACES = Decimal("0.01")

# Largest value a Numeric(12, 2) column can hold
MAX_QUANTITY = Decimal("9999999999.99")


def to_quantity(value: Any, field_name: str = "quantity") -> Decimal:
    """
    Normalize a quantity to a two-place Decimal.

    Floats are routed through str() so 0.1 becomes Decimal("0.1"), not its
    binary expansion. Booleans, NaN and infinities are rejected.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number")
    try:
        if isinstance(value, Decimal):
            dec = value
        elif isinstance(value, (int, float)):
            dec = Decimal(str(value))
        elif isinstance(value, str):
            stripped = value.strip()
            if not stripped or "e" in stripped.lower():
                raise ValidationError(f"{field_name} must be a plain decimal number")
            dec = Decimal(stripped)
        else:
            raise ValidationError(f"{field_name} must be a number")
    except InvalidOperation:
        raise ValidationError(f"{field_name} must be a number")

    if not dec.is_finite():
        raise ValidationError(f"{field_name} must be a finite number")

    dec = dec.quantize(QUANTITY_PLACES, rounding=ROUND_HALF_UP)
    if abs(dec) > MAX_QUANTITY:
        raise ValidationError(f"{field_name} exceeds {MAX_QUANTITY}")
    return dec


def _coerce_int(field_name: str, value: Any) -> int:
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{field_name} must be an integer")
        if "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field_name} must be a plain integer")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field_name} must be an integer")
    raise ValidationError(f"{field_name} must be an integer")


def _coerce_value(field_name: str, kind: str, value: Any):
    if kind == "int":
        return _coerce_int(field_name, value)

    if kind == "decimal":
        return to_quantity(value, field_name)

    if kind == "date":
        try:
            parsed = parse_iso_date(value)
        except ValueError:
            raise ValidationError(f"{field_name} must be an ISO-8601 date")
        if parsed is None:
            raise ValidationError(f"{field_name} must be an ISO-8601 date")
        return parsed

    if kind == "bool":
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{field_name} must be a boolean")

    if kind == "str":
        text = str(value).strip()
        if not text:
            raise ValidationError(f"{field_name} cannot be blank")
        return text

    if kind == "str_list":
        if not isinstance(value, list):
            raise ValidationError(f"{field_name} must be a list")
        return [_coerce_value(field_name, "str", item) for item in value]

    raise ValueError(f"unknown field kind: {kind}")


@dataclass(frozen=True)
class PayloadPolicy:
    """
    Allowlist of request body fields.

    - fields: field name -> kind (int, decimal, date, bool, str, str_list)
    - required: fields that must be present and non-null
    - max_lengths: optional max length for str fields
    """
    fields: dict[str, str]
    required: frozenset[str] = frozenset()
    max_lengths: dict[str, int] = field(default_factory=dict)


def validate_payload(payload: Any, policy: PayloadPolicy) -> dict:
    """
    Validate and normalize a JSON body against a PayloadPolicy.

    Unknown fields are rejected. Nulls are kept only for optional fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    missing = sorted(f for f in policy.required if payload.get(f) is None)
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cleaned: dict = {}
    for key, raw in payload.items():
        kind = policy.fields.get(key)
        if kind is None:
            raise ValidationError(f"Field not allowed: {key}")
        if raw is None:
            cleaned[key] = None
            continue

        value = _coerce_value(key, kind, raw)
        limit = policy.max_lengths.get(key)
        if limit and isinstance(value, str) and len(value) > limit:
            raise ValidationError(f"{key} exceeds max length {limit}")
        cleaned[key] = value

    return cleaned
