from __future__ import annotations

from ..extensions import db
from quotemaster.time_utils import to_utc_z


def _money(value) -> str | None:
    return None if value is None else f"{value:.2f}"


class QuoteDraft(db.Model):
    """
    Quote document.

    subtotal/total are a snapshot refreshed whenever items or the discount
    change; rendering always recomputes from the items.
    """
    __tablename__ = "quote_drafts"
    __table_args__ = (
        db.Index("ix_quote_drafts_owner_created", "created_by_user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable code (e.g., "QT-202610-007")
    code = db.Column(db.String(32), nullable=False, unique=True)

    title = db.Column(db.String(255), nullable=False)
    client_name = db.Column(db.String(255), nullable=True)
    client_email = db.Column(db.String(255), nullable=True)

    discount = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="BRL")
    template_variant = db.Column(db.String(16), nullable=False, default="variant_a")
    note = db.Column(db.Text, nullable=True)

    # draft, finalized
    status = db.Column(db.String(16), nullable=False, default="draft", index=True)

    subtotal = db.Column(db.Numeric(14, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    company = db.relationship("Company", backref=db.backref("quotes", lazy=True))
    created_by = db.relationship("User", backref=db.backref("quotes", lazy=True))
    items = db.relationship(
        "QuoteItem",
        backref="quote",
        lazy=True,
        order_by="QuoteItem.position",
        cascade="all, delete-orphan",
    )

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "code": self.code,
            "title": self.title,
            "client_name": self.client_name,
            "client_email": self.client_email,
            "discount": _money(self.discount),
            "currency": self.currency,
            "template_variant": self.template_variant,
            "note": self.note,
            "status": self.status,
            "subtotal": _money(self.subtotal),
            "total": _money(self.total),
            "company_id": self.company_id,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class QuoteItem(db.Model):
    """Line item on a quote. buy_quantity and total are derived server-side."""
    __tablename__ = "quote_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    quote_draft_id = db.Column(
        db.Integer,
        db.ForeignKey("quote_drafts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Display order within the quote
    position = db.Column(db.Integer, nullable=False, default=0)

    description = db.Column(db.Text, nullable=False, default="")
    unit_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    needed_quantity = db.Column(db.Integer, nullable=False, default=1)
    owned_quantity = db.Column(db.Integer, nullable=False, default=0)
    buy_quantity = db.Column(db.Integer, nullable=False, default=1)
    total = db.Column(db.Numeric(14, 2), nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "quote_draft_id": self.quote_draft_id,
            "position": self.position,
            "description": self.description,
            "unit_price": _money(self.unit_price),
            "needed_quantity": self.needed_quantity,
            "owned_quantity": self.owned_quantity,
            "buy_quantity": self.buy_quantity,
            "total": _money(self.total),
            "created_at": to_utc_z(self.created_at),
        }
