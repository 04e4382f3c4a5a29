from __future__ import annotations

from ..extensions import db
from quotemaster.time_utils import to_utc_z


class DocumentSequence(db.Model):
    """
    Next number per (document_type, period).

    Incremented in place so concurrent quote creation never hands out the
    same code twice.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", "period", name="uq_document_sequences_type_period"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(32), nullable=False)
    period = db.Column(db.String(8), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)


class GenerationReceipt(db.Model):
    """
    Outcome of one counted document generation, keyed by the client's
    idempotency key. A retried request with the same key replays this row
    instead of touching the trial counter again.
    """
    __tablename__ = "generation_receipts"
    __table_args__ = (
        db.UniqueConstraint("user_id", "idempotency_key", name="uq_generation_receipts_user_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    idempotency_key = db.Column(db.String(128), nullable=False)

    # Entitlement state at the time of the generation (ADMIN, SUBSCRIBED, TRIAL_AVAILABLE)
    state = db.Column(db.String(32), nullable=False)
    consumed_trial = db.Column(db.Boolean, nullable=False, default=False)
    free_downloads_used = db.Column(db.Integer, nullable=False)

    quote_draft_id = db.Column(
        db.Integer,
        db.ForeignKey("quote_drafts.id", ondelete="SET NULL"),
        nullable=True,
    )
    # Rendered document, returned verbatim when the key is retried
    document_html = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "idempotency_key": self.idempotency_key,
            "state": self.state,
            "consumed_trial": self.consumed_trial,
            "free_downloads_used": self.free_downloads_used,
            "quote_draft_id": self.quote_draft_id,
            "created_at": to_utc_z(self.created_at),
        }
