# Overview: Flask API routes for company profiles.

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth
from ..services import company_service
from ..validation import ConflictError, ForbiddenError, NotFoundError, ValidationError


companies_bp = Blueprint("companies", __name__, url_prefix="/api/companies")


def _json_error(exc: Exception):
    if isinstance(exc, ValidationError):
        return jsonify({"error": str(exc)}), 400
    if isinstance(exc, ForbiddenError):
        return jsonify({"error": str(exc)}), 403
    if isinstance(exc, NotFoundError):
        return jsonify({"error": str(exc)}), 404
    if isinstance(exc, ConflictError):
        return jsonify({"error": str(exc)}), 409
    return jsonify({"error": "Internal server error"}), 500


@companies_bp.get("/me")
@require_auth
def my_company_route():
    """The caller's company profile, or 404 when none exists yet."""
    company = company_service.get_company_for_user(g.identity.user_id)
    if not company:
        return jsonify({"error": "Company not found"}), 404
    return jsonify({"company": company.to_dict()})


@companies_bp.get("")
@require_auth
def list_companies_route():
    """Admins see every company; users see their own (zero or one)."""
    if g.identity.is_admin:
        companies = company_service.list_companies()
    else:
        company = company_service.get_company_for_user(g.identity.user_id)
        companies = [company] if company else []
    return jsonify({"items": [c.to_dict() for c in companies], "count": len(companies)})


@companies_bp.post("")
@require_auth
def create_company_route():
    """
    Create the caller's company profile (one per user).

    Request body: {"name": "...", "logo_url": "..."}
    """
    data = request.get_json(silent=True)
    try:
        company = company_service.create_company(g.identity, data)
        return jsonify({"company": company.to_dict()}), 201
    except (ValidationError, ConflictError) as e:
        return _json_error(e)
    except Exception:
        current_app.logger.exception("Failed to create company")
        return jsonify({"error": "Internal server error"}), 500


@companies_bp.put("/<int:company_id>")
@require_auth
def update_company_route(company_id: int):
    data = request.get_json(silent=True)
    try:
        company = company_service.update_company(g.identity, company_id, data)
        return jsonify({"company": company.to_dict()})
    except (ValidationError, ForbiddenError, NotFoundError) as e:
        return _json_error(e)
    except Exception:
        current_app.logger.exception("Failed to update company")
        return jsonify({"error": "Internal server error"}), 500
