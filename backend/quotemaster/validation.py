from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import Boolean, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeMeta

from .identity import Role
from .services.document_renderer import TEMPLATE_VARIANTS


# Maximum unit price: 9,999,999,999.99 fits Numeric(12, 2)
MAX_UNIT_PRICE = Decimal("9999999999.99")
MAX_QUANTITY = 1_000_000

QUOTE_STATUSES = ("draft", "finalized")
TEMPLATE_VARIANT_KEYS = tuple(TEMPLATE_VARIANTS)


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., editing a finalized quote)."""


class NotFoundError(LookupError):
    """404-level: the record does not exist."""


class ForbiddenError(PermissionError):
    """403-level: the record exists but belongs to someone else."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - lenient_numeric_fields: numeric fields where unparseable input counts as 0
      instead of being rejected (quote item price and quantities)
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = field(default_factory=frozenset)
    lenient_numeric_fields: frozenset[str] = field(default_factory=frozenset)


QUOTE_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "title", "client_name", "client_email", "discount", "currency",
        "template_variant", "note", "status",
    }),
    required_on_create=frozenset({"title"}),
)

QUOTE_ITEM_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({
        "description", "unit_price", "needed_quantity", "owned_quantity", "position",
    }),
    lenient_numeric_fields=frozenset({"unit_price", "needed_quantity", "owned_quantity"}),
)

COMPANY_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"name", "logo_url"}),
    required_on_create=frozenset({"name"}),
)

# free_downloads_used is deliberately absent: only the entitlement gate writes it.
USER_ADMIN_POLICY = ModelValidationPolicy(
    writable_fields=frozenset({"first_name", "last_name", "role", "has_active_subscription"}),
)

# Derived or server-assigned fields clients sometimes echo back; dropped silently.
IGNORED_ECHO_FIELDS = frozenset({
    "id", "code", "created_at", "updated_at", "created_by_user_id", "company_id",
    "quote_draft_id", "buy_quantity", "total", "subtotal", "items",
})


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _parse_decimal(key: str, value: Any) -> Decimal:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str) and value.strip():
        try:
            result = Decimal(value.strip())
        except InvalidOperation:
            raise ValidationError(f"{key} must be a number")
    else:
        raise ValidationError(f"{key} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{key} must be a finite number")
    return result


def _coerce_lenient(col, value: Any):
    """Unparseable numbers become 0; parseable ones keep their sign for range checks."""
    try:
        number = _parse_decimal(col.key, value)
    except ValidationError:
        number = Decimal("0")
    if isinstance(col.type, Integer):
        if number != number.to_integral_value():
            raise ValidationError(f"{col.key} must be a whole number")
        return int(number)
    return number


def _coerce_value(col, value: Any, *, lenient: bool = False):
    coltype = col.type

    if value is None:
        return None

    if lenient and isinstance(coltype, (Integer, Numeric)):
        return _coerce_lenient(col, value)

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped or not stripped.lstrip("-").isdigit():
                raise ValidationError(f"{col.key} must be an integer")
            return int(stripped)
        raise ValidationError(f"{col.key} must be an integer")

    # Numeric (money, percentages)
    if isinstance(coltype, Numeric):
        return _parse_decimal(col.key, value)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in ("true", "false"):
            return value.strip().lower() == "true"
        raise ValidationError(f"{col.key} must be a boolean")

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

    payload = {k: v for k, v in payload.items() if k not in IGNORED_ECHO_FIELDS}

    if not partial:
        missing = sorted(f for f in policy.required_on_create if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

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

        val = _coerce_value(col, raw, lenient=k in policy.lenient_numeric_fields)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "" and k in policy.required_on_create:
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def enforce_rules_quote(patch: dict) -> None:
    """Business rules that are not captured by SQLAlchemy metadata alone."""
    if "discount" in patch and patch["discount"] is not None:
        discount = patch["discount"]
        if discount < 0 or discount > 100:
            raise ValidationError("discount must be between 0 and 100")

    if "template_variant" in patch and patch["template_variant"] not in TEMPLATE_VARIANT_KEYS:
        raise ValidationError(
            f"Invalid template_variant. Must be one of: {', '.join(TEMPLATE_VARIANT_KEYS)}"
        )

    if "status" in patch and patch["status"] not in QUOTE_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(QUOTE_STATUSES)}")

    if "currency" in patch and patch["currency"] is not None:
        currency = patch["currency"].upper()
        if len(currency) != 3 or not currency.isalpha():
            raise ValidationError("currency must be a 3-letter ISO code")
        patch["currency"] = currency

    email = patch.get("client_email")
    if email and "@" not in email:
        raise ValidationError("client_email must be a valid email address")


def enforce_rules_quote_item(patch: dict, *, needed: int | None = None, owned: int | None = None) -> None:
    """
    needed/owned are the stored values, used when the patch only carries one
    of the two quantities.
    """
    price = patch.get("unit_price")
    if price is not None:
        if price < 0:
            raise ValidationError("unit_price must be >= 0")
        if price > MAX_UNIT_PRICE:
            raise ValidationError(f"unit_price cannot exceed {MAX_UNIT_PRICE}")

    for key in ("needed_quantity", "owned_quantity"):
        qty = patch.get(key)
        if qty is None:
            continue
        if qty < 0:
            raise ValidationError(f"{key} must be >= 0")
        if qty > MAX_QUANTITY:
            raise ValidationError(f"{key} cannot exceed {MAX_QUANTITY}")

    effective_needed = patch.get("needed_quantity", needed)
    effective_owned = patch.get("owned_quantity", owned)
    if effective_needed is not None and effective_owned is not None and effective_owned > effective_needed:
        raise ValidationError("owned_quantity cannot exceed needed_quantity")


def enforce_rules_user_admin(patch: dict) -> None:
    if "role" in patch:
        try:
            patch["role"] = Role.parse(patch["role"]).value
        except ValueError as exc:
            raise ValidationError(str(exc))
