# Overview: Flask API routes for quotes, their items, pricing and document generation.

"""
Quote Routes

SECURITY: All routes require authentication. Quotes are visible to their
creator and to admins; other users get 403, missing quotes 404.

DOCUMENT GENERATION:
POST /api/quotes/<id>/document requires an Idempotency-Key header. Each
distinct key is one generation attempt; retries with the same key are
never charged twice against the free allowance.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth
from ..services import quote_service
from ..services.entitlement_service import AccountDisabled, SubscriptionRequired
from ..services.quote_service import QuoteError
from ..validation import ConflictError, ForbiddenError, NotFoundError, ValidationError
from quotemaster.time_utils import parse_iso_datetime


quotes_bp = Blueprint("quotes", __name__, url_prefix="/api/quotes")

MAX_SUGGESTIONS = 25


def _json_error(exc: Exception):
    if isinstance(exc, ValidationError):
        return jsonify({"error": str(exc)}), 400
    if isinstance(exc, QuoteError):
        return jsonify({"error": str(exc), "details": exc.details}), 400
    if isinstance(exc, NotFoundError):
        return jsonify({"error": str(exc)}), 404
    if isinstance(exc, ForbiddenError):
        return jsonify({"error": str(exc)}), 403
    if isinstance(exc, ConflictError):
        return jsonify({"error": str(exc)}), 409
    if isinstance(exc, SubscriptionRequired):
        return jsonify({
            "error": str(exc),
            "code": exc.code,
            "free_downloads_used": exc.free_downloads_used,
        }), 402
    if isinstance(exc, AccountDisabled):
        return jsonify({"error": str(exc), "code": exc.code}), 403
    return jsonify({"error": "Internal server error"}), 500


_HANDLED = (
    ValidationError,
    QuoteError,
    NotFoundError,
    ForbiddenError,
    ConflictError,
    SubscriptionRequired,
    AccountDisabled,
)


@quotes_bp.get("")
@require_auth
def list_quotes_route():
    """
    List quotes, newest first.

    Query parameters:
    - status: draft | finalized
    - created_from / created_to: ISO-8601 dates or datetimes
    """
    try:
        created_from = parse_iso_datetime(request.args.get("created_from"))
        created_to = parse_iso_datetime(request.args.get("created_to"))
    except ValueError:
        return jsonify({"error": "created_from/created_to must be ISO-8601 dates"}), 400

    quotes = quote_service.list_quotes(
        g.identity,
        status=request.args.get("status") or None,
        created_from=created_from,
        created_to=created_to,
    )
    return jsonify({"items": [q.to_dict() for q in quotes], "count": len(quotes)})


@quotes_bp.post("")
@require_auth
def create_quote_route():
    """
    Create a draft quote.

    Request body:
    {
        "title": "Festa de aniversário",   // required
        "client_name": "...",              // optional
        "client_email": "...",             // optional
        "discount": "10",                  // optional, 0-100
        "template_variant": "variant_a",   // optional
        "note": "..."                      // optional
    }
    """
    data = request.get_json(silent=True)
    try:
        quote = quote_service.create_quote(g.identity, data)
        return jsonify({"quote": quote.to_dict(include_items=True)}), 201
    except _HANDLED as e:
        return _json_error(e)
    except Exception:
        current_app.logger.exception("Failed to create quote")
        return jsonify({"error": "Internal server error"}), 500


@quotes_bp.post("/preview-totals")
@require_auth
def preview_totals_route():
    """
    Price unsaved items for the editor. Nothing is stored.

    Request body: {"items": [{unit_price, needed_quantity, owned_quantity}], "discount": 10}
    """
    data = request.get_json(silent=True) or {}
    items = data.get("items") or []
    if not isinstance(items, list) or not all(isinstance(i, dict) for i in items):
        return jsonify({"error": "items must be a list of objects"}), 400

    line_items, totals = quote_service.preview_totals(items, data.get("discount", 0))
    return jsonify({
        "items": [line.to_dict() for line in line_items],
        "totals": totals.to_dict(),
    })


@quotes_bp.get("/item-suggestions")
@require_auth
def item_suggestions_route():
    """Distinct item descriptions the caller used before, matching ?q=."""
    limit = request.args.get("limit", quote_service.DEFAULT_SUGGESTION_LIMIT, type=int)
    limit = max(1, min(limit, MAX_SUGGESTIONS))
    suggestions = quote_service.suggest_descriptions(g.identity, request.args.get("q", ""), limit)
    return jsonify({"items": suggestions, "count": len(suggestions)})


@quotes_bp.get("/<int:quote_id>")
@require_auth
def get_quote_route(quote_id: int):
    try:
        quote = quote_service.get_quote(g.identity, quote_id)
        return jsonify({"quote": quote.to_dict(include_items=True)})
    except _HANDLED as e:
        return _json_error(e)


@quotes_bp.put("/<int:quote_id>")
@require_auth
def update_quote_route(quote_id: int):
    """Partial update of header fields (title, client, discount, variant, note, status)."""
    data = request.get_json(silent=True)
    try:
        quote = quote_service.update_quote(g.identity, quote_id, data)
        return jsonify({"quote": quote.to_dict(include_items=True)})
    except _HANDLED as e:
        return _json_error(e)
    except Exception:
        current_app.logger.exception("Failed to update quote")
        return jsonify({"error": "Internal server error"}), 500


@quotes_bp.delete("/<int:quote_id>")
@require_auth
def delete_quote_route(quote_id: int):
    try:
        quote_service.delete_quote(g.identity, quote_id)
        return jsonify({"message": "Quote deleted"})
    except _HANDLED as e:
        return _json_error(e)
    except Exception:
        current_app.logger.exception("Failed to delete quote")
        return jsonify({"error": "Internal server error"}), 500


@quotes_bp.get("/<int:quote_id>/items")
@require_auth
def list_items_route(quote_id: int):
    try:
        items = quote_service.list_items(g.identity, quote_id)
        return jsonify({"items": [i.to_dict() for i in items], "count": len(items)})
    except _HANDLED as e:
        return _json_error(e)


@quotes_bp.post("/<int:quote_id>/items")
@require_auth
def add_item_route(quote_id: int):
    """
    Add a line item.

    Request body: {description, unit_price, needed_quantity, owned_quantity, position?}
    buy_quantity and total are computed server-side.
    """
    data = request.get_json(silent=True)
    try:
        item = quote_service.add_item(g.identity, quote_id, data)
        return jsonify({"item": item.to_dict(), "quote": item.quote.to_dict()}), 201
    except _HANDLED as e:
        return _json_error(e)
    except Exception:
        current_app.logger.exception("Failed to add quote item")
        return jsonify({"error": "Internal server error"}), 500


@quotes_bp.put("/<int:quote_id>/items/<int:item_id>")
@require_auth
def update_item_route(quote_id: int, item_id: int):
    data = request.get_json(silent=True)
    try:
        item = quote_service.update_item(g.identity, quote_id, item_id, data)
        return jsonify({"item": item.to_dict(), "quote": item.quote.to_dict()})
    except _HANDLED as e:
        return _json_error(e)
    except Exception:
        current_app.logger.exception("Failed to update quote item")
        return jsonify({"error": "Internal server error"}), 500


@quotes_bp.delete("/<int:quote_id>/items/<int:item_id>")
@require_auth
def delete_item_route(quote_id: int, item_id: int):
    try:
        quote_service.delete_item(g.identity, quote_id, item_id)
        quote = quote_service.get_quote(g.identity, quote_id)
        return jsonify({"message": "Item deleted", "quote": quote.to_dict()})
    except _HANDLED as e:
        return _json_error(e)
    except Exception:
        current_app.logger.exception("Failed to delete quote item")
        return jsonify({"error": "Internal server error"}), 500


@quotes_bp.get("/<int:quote_id>/totals")
@require_auth
def quote_totals_route(quote_id: int):
    try:
        quote = quote_service.get_quote(g.identity, quote_id)
        return jsonify({"quote_id": quote.id, "totals": quote_service.quote_totals(quote).to_dict()})
    except _HANDLED as e:
        return _json_error(e)


@quotes_bp.post("/<int:quote_id>/document")
@require_auth
def generate_document_route(quote_id: int):
    """
    Render the quote as printable HTML, charging the caller's entitlement.

    Headers:
    - Idempotency-Key: required, one per generation attempt

    Query parameters:
    - locale: number/date formatting (default CURRENCY_LOCALE)

    Returns 402 with code SUBSCRIPTION_REQUIRED when the free allowance is spent.
    """
    key = request.headers.get("Idempotency-Key", "").strip()
    if not key:
        return jsonify({"error": "Idempotency-Key header is required"}), 400

    try:
        document = quote_service.generate_document(
            g.identity,
            quote_id,
            key,
            locale=request.args.get("locale") or None,
        )
        return jsonify({
            "quote_id": document.quote.id,
            "code": document.quote.code,
            "filename": f"{document.quote.code}.html",
            "html": document.html,
            "access": document.decision.to_dict(),
        })
    except _HANDLED as e:
        return _json_error(e)
    except ValueError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to generate quote document")
        return jsonify({"error": "Internal server error"}), 500
