# Overview: Service-layer operations for document-generation entitlement.

"""
Entitlement Gate

Decides whether a user may generate a quote document and whether doing so
spends the free trial allowance.

STATES:
- ADMIN: always permitted, counter never touched
- SUBSCRIBED: active subscription, always permitted, counter never touched
- TRIAL_AVAILABLE: free_downloads_used below the allowance, not subscribed
- TRIAL_EXHAUSTED: allowance spent, not subscribed -> SubscriptionRequired
- DISABLED: banned or deleted account -> AccountDisabled

TWO OPERATIONS:
- check_access(): read-only, drives UI affordances
- record_generation(): side-effecting, spends one unit of the allowance when
  the user is on the trial

IDEMPOTENCY:
record_generation() takes a client-supplied idempotency key. The outcome of
each counted generation is stored in generation_receipts, unique per
(user, key), together with the quote it was for and the document that was
rendered. A retry with the same key replays the stored outcome and document
and never increments the counter again. Reusing a key for a different quote
is refused with IdempotencyKeyReused (409).

SUBSCRIPTION STATUS:
has_active_subscription is the last value written by the billing webhook
(set_subscription_status). The gate never calls the billing provider.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..identity import Identity, Role
from ..models import User, GenerationReceipt
from ..validation import ConflictError
from .concurrency import run_with_retry


DEFAULT_FREE_DOWNLOAD_ALLOWANCE = 1
MAX_IDEMPOTENCY_KEY_LENGTH = 128


class EntitlementState(str, Enum):
    ADMIN = "ADMIN"
    SUBSCRIBED = "SUBSCRIBED"
    TRIAL_AVAILABLE = "TRIAL_AVAILABLE"
    TRIAL_EXHAUSTED = "TRIAL_EXHAUSTED"
    DISABLED = "DISABLED"


class EntitlementError(Exception):
    """Base class for entitlement refusals."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


class SubscriptionRequired(EntitlementError):
    """Trial allowance spent and no active subscription. Recoverable by subscribing."""
    code = "SUBSCRIPTION_REQUIRED"

    def __init__(self, free_downloads_used: int):
        super().__init__(
            "Subscription required to generate more documents",
            details={"free_downloads_used": free_downloads_used},
        )
        self.free_downloads_used = free_downloads_used


class AccountDisabled(EntitlementError):
    """Banned or deleted accounts cannot generate documents."""
    code = "ACCOUNT_DISABLED"


class UnknownUserError(EntitlementError):
    code = "USER_NOT_FOUND"


class IdempotencyKeyReused(ConflictError):
    """The idempotency key already paid for a document of another quote."""
    code = "IDEMPOTENCY_KEY_REUSED"


@dataclass(frozen=True)
class AccessDecision:
    can_generate: bool
    state: EntitlementState
    free_downloads_used: int
    has_active_subscription: bool
    # True when this generation is (or would be) paid for by the free allowance
    is_free_trial: bool
    replayed: bool = False
    # Document stored with the receipt; set on replays only
    document_html: str | None = field(default=None, repr=False, compare=False)

    def to_dict(self) -> dict:
        return {
            "can_generate": self.can_generate,
            "state": self.state.value,
            "free_downloads_used": self.free_downloads_used,
            "has_active_subscription": self.has_active_subscription,
            "is_free_trial": self.is_free_trial,
            "replayed": self.replayed,
        }


def free_download_allowance() -> int:
    return int(current_app.config.get("FREE_DOWNLOAD_ALLOWANCE", DEFAULT_FREE_DOWNLOAD_ALLOWANCE))


def resolve_state(user: User, allowance: int | None = None) -> EntitlementState:
    """Map a user row onto an entitlement state. Every Role is handled."""
    allowance = free_download_allowance() if allowance is None else allowance
    role = user.role_enum

    if role is Role.ADMIN:
        return EntitlementState.ADMIN
    if role in (Role.BANNED, Role.DELETED):
        return EntitlementState.DISABLED
    if role is Role.USER:
        if user.has_active_subscription:
            return EntitlementState.SUBSCRIBED
        if (user.free_downloads_used or 0) < allowance:
            return EntitlementState.TRIAL_AVAILABLE
        return EntitlementState.TRIAL_EXHAUSTED
    raise AssertionError(f"Unhandled role: {role!r}")


def _decision(user: User, state: EntitlementState, *, replayed: bool = False) -> AccessDecision:
    return AccessDecision(
        can_generate=state in (
            EntitlementState.ADMIN,
            EntitlementState.SUBSCRIBED,
            EntitlementState.TRIAL_AVAILABLE,
        ),
        state=state,
        free_downloads_used=user.free_downloads_used or 0,
        has_active_subscription=bool(user.has_active_subscription),
        is_free_trial=state is EntitlementState.TRIAL_AVAILABLE,
        replayed=replayed,
    )


def _load_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise UnknownUserError("User not found")
    return user


def check_access(identity: Identity) -> AccessDecision:
    """Read-only: can this user generate a document right now?"""
    user = _load_user(identity.user_id)
    return _decision(user, resolve_state(user))


def _validate_key(idempotency_key: str | None) -> str:
    key = (idempotency_key or "").strip()
    if not key:
        raise ValueError("An idempotency key is required for each generation attempt")
    if len(key) > MAX_IDEMPOTENCY_KEY_LENGTH:
        raise ValueError(f"Idempotency key exceeds max length {MAX_IDEMPOTENCY_KEY_LENGTH}")
    return key


def _replay(user: User, receipt: GenerationReceipt, quote_id: int | None) -> AccessDecision:
    if receipt.quote_draft_id != quote_id:
        raise IdempotencyKeyReused("Idempotency key was already used for another quote")
    state = EntitlementState(receipt.state)
    return AccessDecision(
        can_generate=True,
        state=state,
        free_downloads_used=receipt.free_downloads_used,
        has_active_subscription=bool(user.has_active_subscription),
        is_free_trial=receipt.consumed_trial,
        replayed=True,
        document_html=receipt.document_html,
    )


def _consume_trial(user_id: int, allowance: int) -> bool:
    """
    Single conditional increment. Returns False when another request spent
    the allowance (or a subscription/role change landed) first.
    """
    stmt = (
        update(User)
        .where(
            User.id == user_id,
            User.role == Role.USER.value,
            User.has_active_subscription == False,  # noqa: E712
            User.free_downloads_used < allowance,
        )
        .values(free_downloads_used=User.free_downloads_used + 1)
        .execution_options(synchronize_session=False)
    )
    return bool(db.session.execute(stmt).rowcount)


def record_generation(
    identity: Identity,
    idempotency_key: str,
    *,
    quote_id: int | None = None,
    document_html: str | None = None,
) -> AccessDecision:
    """
    Record one successful document generation.

    document_html is kept on the receipt so a retry returns the same document
    even if the quote was edited in between.

    Raises SubscriptionRequired when the trial is spent, AccountDisabled for
    banned/deleted accounts, IdempotencyKeyReused when the key belongs to
    another quote, ValueError for a missing key.
    """
    key = _validate_key(idempotency_key)
    allowance = free_download_allowance()

    def _op() -> AccessDecision:
        user = _load_user(identity.user_id)

        receipt = (
            db.session.query(GenerationReceipt)
            .filter_by(user_id=user.id, idempotency_key=key)
            .first()
        )
        if receipt:
            return _replay(user, receipt, quote_id)

        state = resolve_state(user, allowance)

        if state is EntitlementState.DISABLED:
            raise AccountDisabled("Account is disabled", details={"role": user.role})
        if state is EntitlementState.TRIAL_EXHAUSTED:
            raise SubscriptionRequired(user.free_downloads_used or 0)

        consumed = False
        if state is EntitlementState.TRIAL_AVAILABLE:
            if not _consume_trial(user.id, allowance):
                db.session.rollback()
                db.session.refresh(user)
                raced_state = resolve_state(user, allowance)
                if raced_state is EntitlementState.TRIAL_EXHAUSTED:
                    raise SubscriptionRequired(user.free_downloads_used or 0)
                if raced_state is EntitlementState.DISABLED:
                    raise AccountDisabled("Account is disabled", details={"role": user.role})
                state = raced_state
            else:
                consumed = True
                db.session.refresh(user)

        receipt = GenerationReceipt(
            user_id=user.id,
            idempotency_key=key,
            state=state.value,
            consumed_trial=consumed,
            free_downloads_used=user.free_downloads_used or 0,
            quote_draft_id=quote_id,
            document_html=document_html,
        )
        db.session.add(receipt)
        db.session.commit()

        if consumed:
            current_app.logger.info(
                "Free trial generation recorded for user %s (%s used)",
                user.id,
                user.free_downloads_used,
            )

        # state is the one the generation was charged under, not the state after it
        return _decision(user, state)

    try:
        return run_with_retry(_op)
    except IntegrityError:
        # Same key committed concurrently; the winner's receipt is the outcome.
        db.session.rollback()
        user = _load_user(identity.user_id)
        receipt = (
            db.session.query(GenerationReceipt)
            .filter_by(user_id=user.id, idempotency_key=key)
            .first()
        )
        if not receipt:
            raise
        return _replay(user, receipt, quote_id)


def set_subscription_status(user_id: int, active: bool, *, commit: bool = True) -> User:
    """Cache the billing provider's latest subscription status on the user."""
    user = _load_user(user_id)
    user.has_active_subscription = bool(active)
    if commit:
        db.session.commit()
    return user
