# Overview: Stripe billing; subscription checkout, customer portal and webhook status sync.

"""
Billing Service

Stripe is the source of truth for subscriptions. This module starts a
subscription, opens the customer portal, and turns signed webhook events
into the cached users.has_active_subscription flag the entitlement gate
reads.

WEBHOOK EVENTS:
- customer.subscription.created / updated: active iff status is active or trialing
- customer.subscription.deleted: inactive
- invoice.payment_succeeded: active
- invoice.payment_failed: inactive
Anything else is acknowledged and ignored.

Users are matched by subscription id first, then by customer id.
"""

from __future__ import annotations

from typing import Any

import stripe
from flask import current_app

from ..extensions import db
from ..identity import Identity
from ..models import User
from .entitlement_service import set_subscription_status


ACTIVE_SUBSCRIPTION_STATUSES = frozenset({"active", "trialing"})

SUBSCRIPTION_EVENTS = frozenset({
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
})
INVOICE_EVENTS = frozenset({
    "invoice.payment_succeeded",
    "invoice.payment_failed",
})


class BillingError(Exception):
    """Raised when a billing operation fails. status_code is the HTTP status to surface."""
    def __init__(self, message: str, details: dict | None = None, status_code: int = 400):
        super().__init__(message)
        self.details = details or {}
        self.status_code = status_code


def _configure() -> None:
    key = (current_app.config.get("STRIPE_SECRET_KEY") or "").strip()
    if not key:
        raise BillingError("Billing is not configured", status_code=503)
    stripe.api_key = key


def _get(obj: Any, key: str) -> Any:
    if obj is None or isinstance(obj, str):
        return None
    return obj.get(key)


def _load_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise BillingError("User not found", status_code=404)
    return user


def _client_secret(subscription: Any) -> str | None:
    invoice = _get(subscription, "latest_invoice")
    payment_intent = _get(invoice, "payment_intent")
    secret = _get(payment_intent, "client_secret")
    if secret:
        return secret
    # Newer API versions expose the invoice confirmation secret instead
    return _get(_get(invoice, "confirmation_secret"), "client_secret")


def get_or_create_subscription(identity: Identity) -> dict:
    """
    Returns {"subscription_id", "status", "client_secret"}.

    An existing subscription is reused; otherwise a customer and an
    incomplete subscription on STRIPE_PRICE_ID are created and their ids
    stored on the user.
    """
    _configure()
    user = _load_user(identity.user_id)

    try:
        if user.stripe_subscription_id:
            subscription = stripe.Subscription.retrieve(
                user.stripe_subscription_id,
                expand=["latest_invoice.payment_intent"],
            )
            return {
                "subscription_id": subscription["id"],
                "status": subscription["status"],
                "client_secret": _client_secret(subscription),
            }

        price_id = (current_app.config.get("STRIPE_PRICE_ID") or "").strip()
        if not price_id:
            raise BillingError("Billing is not configured", status_code=503)

        if user.stripe_customer_id:
            customer_id = user.stripe_customer_id
        else:
            customer = stripe.Customer.create(
                email=user.email,
                name=user.display_name,
                metadata={"user_id": str(user.id)},
            )
            customer_id = customer["id"]

        subscription = stripe.Subscription.create(
            customer=customer_id,
            items=[{"price": price_id}],
            payment_behavior="default_incomplete",
            expand=["latest_invoice.payment_intent"],
            metadata={"user_id": str(user.id)},
        )
    except stripe.StripeError as e:
        current_app.logger.exception("Stripe subscription request failed for user %s", user.id)
        raise BillingError("Payment provider error", details={"provider_message": str(e)}, status_code=502)

    user.stripe_customer_id = customer_id
    user.stripe_subscription_id = subscription["id"]
    db.session.commit()

    return {
        "subscription_id": subscription["id"],
        "status": subscription["status"],
        "client_secret": _client_secret(subscription),
    }


def create_customer_portal(identity: Identity, return_url: str) -> str:
    """URL of a Stripe billing portal session for the caller."""
    _configure()
    user = _load_user(identity.user_id)
    if not user.stripe_customer_id:
        raise BillingError("No billing account found for this user")

    try:
        session = stripe.billing_portal.Session.create(
            customer=user.stripe_customer_id,
            return_url=return_url,
        )
    except stripe.StripeError as e:
        current_app.logger.exception("Stripe portal request failed for user %s", user.id)
        raise BillingError("Payment provider error", details={"provider_message": str(e)}, status_code=502)

    return session["url"]


def _find_user(subscription_id: str | None, customer_id: str | None) -> User | None:
    if subscription_id:
        user = db.session.query(User).filter_by(stripe_subscription_id=subscription_id).first()
        if user:
            return user
    if customer_id:
        return db.session.query(User).filter_by(stripe_customer_id=customer_id).first()
    return None


def _invoice_subscription_id(invoice: Any) -> str | None:
    subscription = _get(invoice, "subscription")
    if isinstance(subscription, str):
        return subscription
    if subscription is not None:
        return _get(subscription, "id")
    details = _get(_get(invoice, "parent"), "subscription_details")
    return _get(details, "subscription")


def subscription_status_for_event(event_type: str, obj: Any) -> bool | None:
    """Active flag implied by an event, or None when the event is not relevant."""
    if event_type in ("customer.subscription.created", "customer.subscription.updated"):
        return _get(obj, "status") in ACTIVE_SUBSCRIPTION_STATUSES
    if event_type == "customer.subscription.deleted":
        return False
    if event_type == "invoice.payment_succeeded":
        return True
    if event_type == "invoice.payment_failed":
        return False
    return None


def handle_webhook(payload: bytes, signature: str | None) -> dict:
    """
    Verify and apply a Stripe webhook.

    Returns {"received": True, "handled": bool, ...}. Raises BillingError
    on a bad payload or signature.
    """
    secret = (current_app.config.get("STRIPE_WEBHOOK_SECRET") or "").strip()
    if not secret:
        raise BillingError("Webhook secret is not configured", status_code=503)

    try:
        event = stripe.Webhook.construct_event(payload, signature or "", secret)
    except ValueError:
        raise BillingError("Invalid webhook payload")
    except stripe.SignatureVerificationError:
        raise BillingError("Invalid webhook signature")

    event_type = event["type"]
    obj = event["data"]["object"]

    active = subscription_status_for_event(event_type, obj)
    if active is None:
        return {"received": True, "handled": False, "type": event_type}

    if event_type in SUBSCRIPTION_EVENTS:
        subscription_id = _get(obj, "id")
    else:
        subscription_id = _invoice_subscription_id(obj)
    customer_id = _get(obj, "customer")

    user = _find_user(subscription_id, customer_id)
    if not user:
        current_app.logger.warning(
            "Stripe event %s for unknown subscription=%s customer=%s",
            event_type,
            subscription_id,
            customer_id,
        )
        return {"received": True, "handled": False, "type": event_type}

    if subscription_id and event_type in SUBSCRIPTION_EVENTS and event_type != "customer.subscription.deleted":
        user.stripe_subscription_id = subscription_id

    set_subscription_status(user.id, active)

    current_app.logger.info(
        "Subscription for user %s set %s by %s",
        user.id,
        "active" if active else "inactive",
        event_type,
    )
    return {"received": True, "handled": True, "type": event_type, "user_id": user.id, "active": active}
