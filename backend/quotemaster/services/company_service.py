# Overview: Service-layer operations for company profiles.

"""
Company Service

Each user owns at most one company profile. Its name and logo appear on
every quote document the user renders.
"""

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..identity import Identity
from ..models import Company
from ..validation import COMPANY_POLICY, ConflictError, ForbiddenError, NotFoundError, validate_payload


def get_company_for_user(user_id: int) -> Company | None:
    return db.session.query(Company).filter_by(created_by_user_id=user_id).first()


def create_company(identity: Identity, data: dict) -> Company:
    """Raises ConflictError if the caller already has a company."""
    if get_company_for_user(identity.user_id):
        raise ConflictError("You already have a company profile")

    patch = validate_payload(model=Company, payload=data, policy=COMPANY_POLICY, partial=False)

    company = Company(created_by_user_id=identity.user_id, **patch)
    db.session.add(company)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("You already have a company profile")
    return company


def update_company(identity: Identity, company_id: int, data: dict) -> Company:
    company = db.session.get(Company, company_id)
    if not company:
        raise NotFoundError("Company not found")
    if not identity.can_access(company.created_by_user_id):
        raise ForbiddenError("You do not have access to this company")

    patch = validate_payload(model=Company, payload=data, policy=COMPANY_POLICY, partial=True)
    for key, value in patch.items():
        setattr(company, key, value)

    db.session.commit()
    return company


def list_companies() -> list[Company]:
    """All companies, newest first. Admin listing."""
    return db.session.query(Company).order_by(Company.created_at.desc(), Company.id.desc()).all()
