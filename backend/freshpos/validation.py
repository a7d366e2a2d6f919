from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable

from .errors import ValidationError, Violation
from .time_utils import parse_iso_date
from .units import UnitError, kg_to_grams, money_to_cents, percent_to_bps


# Maximum price per kg: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

# 1,000 tonnes; anything above is a typo
MAX_GRAMS = 1_000_000_000

# Largest amount a customer can tender: 9,999,999,999.99
MAX_AMOUNT_CENTS = 999_999_999_999


@dataclass(frozen=True)
class FieldRule:
    """
    How one payload field is read.

    parse: raw JSON value -> stored value; raises ValueError/UnitError.
    """
    parse: Callable[[Any], Any]
    nullable: bool = False


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - fields: what clients are allowed to set (security boundary) and how
    - required_on_create: fields required for POST
    - immutable_fields: known fields that may only be set on create
    """
    fields: dict[str, FieldRule]
    required_on_create: set[str] = field(default_factory=set)
    immutable_fields: set[str] = field(default_factory=set)


def text(max_length: int) -> Callable[[Any], str]:
    def _parse(value: Any) -> str:
        if not isinstance(value, (str, int, float)) or isinstance(value, bool):
            raise ValueError("must be a string")
        s = str(value).strip()
        if not s:
            raise ValueError("cannot be blank")
        if len(s) > max_length:
            raise ValueError(f"exceeds max length {max_length}")
        return s
    return _parse


def optional_text(max_length: int) -> Callable[[Any], str | None]:
    """Like text(), but a blank string means "no value"."""
    strict = text(max_length)

    def _parse(value: Any) -> str | None:
        if isinstance(value, str) and not value.strip():
            return None
        return strict(value)
    return _parse


def integer_id(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError("must be an integer id")
    if isinstance(value, int):
        result = value
    elif isinstance(value, str) and value.strip().isdigit():
        result = int(value.strip())
    else:
        raise ValueError("must be an integer id")
    if result <= 0:
        raise ValueError("must be a positive id")
    return result


def iso_date(value: Any) -> date:
    if not isinstance(value, str):
        raise ValueError("must be an ISO-8601 date (YYYY-MM-DD)")
    try:
        d = parse_iso_date(value)
    except ValueError:
        raise ValueError("must be an ISO-8601 date (YYYY-MM-DD)")
    if d is None:
        raise ValueError("cannot be blank")
    return d


def kilograms(value: Any) -> int:
    return kg_to_grams(value)


def money(value: Any) -> int:
    return money_to_cents(value)


def percent(value: Any) -> int:
    return percent_to_bps(value)


def validate_payload(
    *,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
    message: str = "Validation failed",
) -> dict:
    """
    Validates + normalizes incoming JSON against the policy.

    Unlike a fail-fast check, every problem is collected so the caller can show
    a complete correction list. Returns a cleaned patch dict (stored units)
    with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys; immutable fields rejected)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError.single("body", "json_object", "Invalid JSON payload")

    violations: list[Violation] = []

    if not partial:
        for name in sorted(policy.required_on_create):
            if payload.get(name) is None:
                violations.append(Violation(name, "required", f"{name} is required"))

    patch: dict = {}
    for name, raw in payload.items():
        if partial and name in policy.immutable_fields:
            violations.append(Violation(name, "immutable", f"{name} cannot be changed after creation", raw))
            continue
        rule = policy.fields.get(name)
        if rule is None:
            violations.append(Violation(name, "unknown_field", f"Field not allowed: {name}", raw))
            continue
        if raw is None:
            if rule.nullable:
                patch[name] = None
            elif partial:
                violations.append(Violation(name, "not_null", f"{name} cannot be null"))
            continue
        try:
            patch[name] = rule.parse(raw)
        except (UnitError, ValueError) as exc:
            violations.append(Violation(name, "invalid", f"{name} {exc}", raw))

    if violations:
        raise ValidationError(message, violations)
    return patch


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by the field parsers alone.
    Keep these small and centralized.
    """
    violations: list[Violation] = []

    if "price_cents" in patch:
        price = patch["price_cents"]
        if price <= 0:
            violations.append(Violation("price", "positive", "price must be greater than 0"))
        elif price > MAX_PRICE_CENTS:
            violations.append(Violation("price", "max", f"price cannot exceed {MAX_PRICE_CENTS / 100:,.2f}"))

    if "weight_grams" in patch:
        if patch["weight_grams"] < 0:
            violations.append(Violation("weight", "non_negative", "weight must be >= 0"))
        elif patch["weight_grams"] > MAX_GRAMS:
            violations.append(Violation("weight", "max", "weight is unrealistically large"))

    if patch.get("stock_alert_grams") is not None and patch["stock_alert_grams"] <= 0:
        violations.append(Violation("stock_alert", "positive", "stock_alert must be greater than 0"))

    if violations:
        raise ValidationError("Invalid product", violations)


PRODUCT_POLICY = ModelValidationPolicy(
    fields={
        "type": FieldRule(text(255)),
        "category_id": FieldRule(integer_id, nullable=True),
        "category_name": FieldRule(optional_text(100), nullable=True),
        "supplier": FieldRule(optional_text(255), nullable=True),
        "price": FieldRule(money),
        "weight": FieldRule(kilograms),
        "stock_alert": FieldRule(kilograms, nullable=True),
        "expiry_date": FieldRule(iso_date),
    },
    required_on_create={"type", "price", "expiry_date"},
    immutable_fields={"weight"},
)

# API field name -> Product column
PRODUCT_COLUMNS = {
    "type": "type",
    "category_id": "category_id",
    "supplier": "supplier",
    "price": "price_cents",
    "weight": "weight_grams",
    "stock_alert": "stock_alert_grams",
    "expiry_date": "expiry_date",
}

CATEGORY_POLICY = ModelValidationPolicy(
    fields={"category_name": FieldRule(text(100))},
    required_on_create={"category_name"},
)

ADJUSTMENT_POLICY = ModelValidationPolicy(
    fields={
        "product_id": FieldRule(integer_id),
        "reason": FieldRule(text(16)),
        "quantity_change": FieldRule(kilograms),
        "notes": FieldRule(optional_text(255), nullable=True),
    },
    required_on_create={"product_id", "reason", "quantity_change"},
)


def to_product_columns(patch: dict) -> dict:
    return {PRODUCT_COLUMNS[k]: v for k, v in patch.items() if k in PRODUCT_COLUMNS}
