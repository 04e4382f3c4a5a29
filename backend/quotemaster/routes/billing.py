# Overview: Flask API routes for Stripe billing and the Stripe webhook.

"""
Billing Routes

The webhook is unauthenticated; Stripe's signature (Stripe-Signature
header) is verified against STRIPE_WEBHOOK_SECRET instead.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth
from ..services import billing_service
from ..services.billing_service import BillingError


billing_bp = Blueprint("billing", __name__, url_prefix="/api/billing")
webhook_bp = Blueprint("webhooks", __name__, url_prefix="/webhook")


def _json_error(exc: BillingError):
    body = {"error": str(exc)}
    if exc.details:
        body["details"] = exc.details
    return jsonify(body), exc.status_code


@billing_bp.post("/subscription")
@require_auth
def subscription_route():
    """Start (or resume) the caller's subscription; returns the payment client secret."""
    try:
        return jsonify(billing_service.get_or_create_subscription(g.identity))
    except BillingError as e:
        return _json_error(e)
    except Exception:
        current_app.logger.exception("Failed to create subscription")
        return jsonify({"error": "Internal server error"}), 500


@billing_bp.post("/portal")
@require_auth
def portal_route():
    """
    Billing portal URL.

    Request body (optional): {"return_url": "..."}; defaults to <host>/subscription.
    """
    data = request.get_json(silent=True) or {}
    return_url = data.get("return_url") or f"{request.host_url.rstrip('/')}/subscription"
    try:
        url = billing_service.create_customer_portal(g.identity, return_url)
        return jsonify({"url": url})
    except BillingError as e:
        return _json_error(e)
    except Exception:
        current_app.logger.exception("Failed to create billing portal session")
        return jsonify({"error": "Internal server error"}), 500


@webhook_bp.post("/stripe")
def stripe_webhook_route():
    payload = request.get_data()
    signature = request.headers.get("Stripe-Signature")
    try:
        return jsonify(billing_service.handle_webhook(payload, signature))
    except BillingError as e:
        current_app.logger.warning("Rejected Stripe webhook: %s", e)
        return _json_error(e)
    except Exception:
        current_app.logger.exception("Failed to process Stripe webhook")
        return jsonify({"error": "Internal server error"}), 500
