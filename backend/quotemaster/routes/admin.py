# Overview: Flask API routes for admin operations; user and company oversight.

"""
Admin Routes

SECURITY: All routes require authentication and the admin role.
free_downloads_used is read-only here; only document generation moves it.
"""

from flask import Blueprint, request, jsonify, current_app

from ..decorators import require_auth, require_admin
from ..services import auth_service, company_service
from ..validation import NotFoundError, ValidationError


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.get("/users")
@require_auth
@require_admin
def list_users_route():
    users = auth_service.list_users()
    return jsonify({"items": [u.to_dict() for u in users], "count": len(users)})


@admin_bp.put("/users/<int:user_id>")
@require_auth
@require_admin
def update_user_route(user_id: int):
    """
    Update a user's names, role or cached subscription flag.

    Request body: {"role": "banned", "has_active_subscription": true, ...}
    Banning or deleting a user revokes their sessions.
    """
    data = request.get_json(silent=True)
    try:
        user = auth_service.update_user_admin(user_id, data)
        return jsonify({"user": user.to_dict()})
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to update user")
        return jsonify({"error": "Internal server error"}), 500


@admin_bp.get("/companies")
@require_auth
@require_admin
def list_companies_route():
    companies = company_service.list_companies()
    return jsonify({"items": [c.to_dict() for c in companies], "count": len(companies)})
