# Overview: Service-layer operations for quotes and their line items.

"""
Quote Service

Quote and line item CRUD around the pricing engine, plus document
generation through the entitlement gate.

OWNERSHIP:
A quote is visible to its creator and to admins (Identity.can_access).
Missing quotes raise NotFoundError, other people's quotes ForbiddenError.

DERIVED FIELDS:
buy_quantity and total on each item are recomputed whenever price or a
quantity changes; the quote's subtotal/total snapshot is refreshed whenever
items or the discount change. Clients never write derived fields.

FINALIZED QUOTES:
Items of a finalized quote are read-only (ConflictError). Header fields stay
editable so a quote can be reopened by setting status back to draft.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable

from flask import current_app

from ..extensions import db
from ..identity import Identity
from ..models import Company, QuoteDraft, QuoteItem
from ..validation import (
    QUOTE_ITEM_POLICY,
    QUOTE_POLICY,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    enforce_rules_quote,
    enforce_rules_quote_item,
    validate_payload,
)
from .document_renderer import render_quote_document
from .document_service import next_quote_code
from .entitlement_service import AccessDecision, record_generation
from .pricing import PRICING_FIELDS, LineItem, QuoteTotals, compute_totals, recalculate_item, round_money


DEFAULT_SUGGESTION_LIMIT = 10


class QuoteError(Exception):
    """Raised when a quote operation cannot proceed."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


@dataclass(frozen=True)
class GeneratedDocument:
    quote: QuoteDraft
    html: str
    decision: AccessDecision


def _load_quote(identity: Identity, quote_id: int) -> QuoteDraft:
    quote = db.session.get(QuoteDraft, quote_id)
    if not quote:
        raise NotFoundError("Quote not found")
    if not identity.can_access(quote.created_by_user_id):
        raise ForbiddenError("You do not have access to this quote")
    return quote


def _load_item(quote: QuoteDraft, item_id: int) -> QuoteItem:
    item = db.session.get(QuoteItem, item_id)
    if not item or item.quote_draft_id != quote.id:
        raise NotFoundError("Quote item not found")
    return item


def _ensure_items_editable(quote: QuoteDraft) -> None:
    if quote.status == "finalized":
        raise ConflictError("Items of a finalized quote cannot be changed")


def _apply_item_derivations(item: QuoteItem) -> None:
    buy_quantity, line_total = recalculate_item(item)
    item.buy_quantity = buy_quantity
    item.total = round_money(line_total)


def _refresh_snapshot(quote: QuoteDraft) -> QuoteTotals:
    totals = compute_totals(quote.items, quote.discount).rounded()
    quote.subtotal = totals.subtotal
    quote.total = totals.total
    return totals


# ---------------------------------------------------------------------------
# Quotes
# ---------------------------------------------------------------------------

def create_quote(identity: Identity, data: dict) -> QuoteDraft:
    """
    Create a draft quote for the caller's company.

    Raises QuoteError when the caller has no company profile yet and
    ValidationError for bad payloads.
    """
    company = db.session.query(Company).filter_by(created_by_user_id=identity.user_id).first()
    if not company:
        raise QuoteError(
            "Create a company profile before creating quotes",
            details={"code": "COMPANY_REQUIRED"},
        )

    patch = validate_payload(model=QuoteDraft, payload=data, policy=QUOTE_POLICY, partial=False)
    enforce_rules_quote(patch)
    # New quotes always start as drafts
    patch.pop("status", None)
    patch.setdefault("currency", current_app.config.get("DEFAULT_CURRENCY", "BRL"))

    code = next_quote_code()

    quote = QuoteDraft(
        code=code,
        company_id=company.id,
        created_by_user_id=identity.user_id,
        status="draft",
        subtotal=0,
        total=0,
        **patch,
    )
    db.session.add(quote)
    db.session.commit()
    return quote


def list_quotes(
    identity: Identity,
    *,
    status: str | None = None,
    created_from: datetime | None = None,
    created_to: datetime | None = None,
) -> list[QuoteDraft]:
    """Admins see every quote, users their own. Newest first."""
    query = db.session.query(QuoteDraft)
    if not identity.is_admin:
        query = query.filter(QuoteDraft.created_by_user_id == identity.user_id)
    if status:
        query = query.filter(QuoteDraft.status == status)
    if created_from:
        query = query.filter(QuoteDraft.created_at >= created_from)
    if created_to:
        query = query.filter(QuoteDraft.created_at <= created_to)
    return query.order_by(QuoteDraft.created_at.desc(), QuoteDraft.id.desc()).all()


def get_quote(identity: Identity, quote_id: int) -> QuoteDraft:
    return _load_quote(identity, quote_id)


def update_quote(identity: Identity, quote_id: int, data: dict) -> QuoteDraft:
    """Partial update of header fields. Refreshes the totals snapshot on discount changes."""
    quote = _load_quote(identity, quote_id)

    patch = validate_payload(model=QuoteDraft, payload=data, policy=QUOTE_POLICY, partial=True)
    enforce_rules_quote(patch)

    for key, value in patch.items():
        setattr(quote, key, value)

    if "discount" in patch:
        _refresh_snapshot(quote)

    db.session.commit()
    return quote


def delete_quote(identity: Identity, quote_id: int) -> None:
    quote = _load_quote(identity, quote_id)
    db.session.delete(quote)
    db.session.commit()


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------

def list_items(identity: Identity, quote_id: int) -> list[QuoteItem]:
    return list(_load_quote(identity, quote_id).items)


def add_item(identity: Identity, quote_id: int, data: dict) -> QuoteItem:
    quote = _load_quote(identity, quote_id)
    _ensure_items_editable(quote)

    patch = validate_payload(model=QuoteItem, payload=data, policy=QUOTE_ITEM_POLICY, partial=False)
    patch.setdefault("description", "")
    patch.setdefault("unit_price", 0)
    patch.setdefault("needed_quantity", 1)
    patch.setdefault("owned_quantity", 0)
    for key in ("unit_price", "needed_quantity", "owned_quantity"):
        if patch[key] is None:
            patch[key] = 0
    enforce_rules_quote_item(patch)

    if patch.get("position") is None:
        patch["position"] = max((i.position for i in quote.items), default=-1) + 1

    item = QuoteItem(**patch)
    _apply_item_derivations(item)
    quote.items.append(item)
    _refresh_snapshot(quote)

    db.session.commit()
    return item


def update_item(identity: Identity, quote_id: int, item_id: int, data: dict) -> QuoteItem:
    quote = _load_quote(identity, quote_id)
    item = _load_item(quote, item_id)
    _ensure_items_editable(quote)

    patch = validate_payload(model=QuoteItem, payload=data, policy=QUOTE_ITEM_POLICY, partial=True)
    for key in PRICING_FIELDS:
        if key in patch and patch[key] is None:
            patch[key] = 0
    enforce_rules_quote_item(patch, needed=item.needed_quantity, owned=item.owned_quantity)

    for key, value in patch.items():
        setattr(item, key, value)

    if PRICING_FIELDS & patch.keys():
        _apply_item_derivations(item)
        _refresh_snapshot(quote)

    db.session.commit()
    return item


def delete_item(identity: Identity, quote_id: int, item_id: int) -> None:
    quote = _load_quote(identity, quote_id)
    item = _load_item(quote, item_id)
    _ensure_items_editable(quote)

    quote.items.remove(item)
    _refresh_snapshot(quote)
    db.session.commit()


# ---------------------------------------------------------------------------
# Pricing
# ---------------------------------------------------------------------------

def quote_totals(quote: QuoteDraft) -> QuoteTotals:
    """Totals recomputed from the persisted items (not the stored snapshot)."""
    return compute_totals(quote.items, quote.discount)


def preview_totals(items: Iterable[Any], discount: Any = 0) -> tuple[list[LineItem], QuoteTotals]:
    """Stateless pricing for the editor; nothing is persisted."""
    line_items = [LineItem.from_any(item) for item in items or ()]
    return line_items, compute_totals(line_items, discount)


def suggest_descriptions(identity: Identity, query: str, limit: int = DEFAULT_SUGGESTION_LIMIT) -> list[str]:
    """Distinct item descriptions the caller has used before, matching query."""
    term = (query or "").strip()
    if not term:
        return []

    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    q = (
        db.session.query(QuoteItem.description)
        .join(QuoteDraft, QuoteItem.quote_draft_id == QuoteDraft.id)
        .filter(QuoteItem.description.ilike(f"%{escaped}%", escape="\\"))
    )
    if not identity.is_admin:
        q = q.filter(QuoteDraft.created_by_user_id == identity.user_id)

    rows = q.distinct().order_by(QuoteItem.description).limit(limit).all()
    return [row[0] for row in rows]


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------

def generate_document(
    identity: Identity,
    quote_id: int,
    idempotency_key: str,
    *,
    locale: str | None = None,
) -> GeneratedDocument:
    """
    Charge one generation against the caller's entitlement and render.

    Raises SubscriptionRequired / AccountDisabled from the gate and
    IdempotencyKeyReused when the key was spent on another quote. A retried
    key returns the document stored with its receipt without charging.
    """
    quote = _load_quote(identity, quote_id)

    html = render_quote_document(
        quote,
        quote_totals(quote),
        quote.company,
        locale=locale or current_app.config.get("CURRENCY_LOCALE"),
    )
    decision = record_generation(identity, idempotency_key, quote_id=quote.id, document_html=html)
    if decision.replayed and decision.document_html is not None:
        html = decision.document_html
    return GeneratedDocument(quote=quote, html=html, decision=decision)
