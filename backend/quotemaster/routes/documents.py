# Overview: Flask API routes for document access checks.

from flask import Blueprint, jsonify, g

from ..decorators import require_auth
from ..services.entitlement_service import check_access, free_download_allowance


documents_bp = Blueprint("documents", __name__, url_prefix="/api/documents")


@documents_bp.get("/access")
@require_auth
def document_access_route():
    """
    Read-only: may the caller generate a document right now?

    Drives UI affordances only; POST /api/quotes/<id>/document re-checks
    and charges atomically.
    """
    decision = check_access(g.identity)
    data = decision.to_dict()
    data["free_download_allowance"] = free_download_allowance()
    return jsonify(data)
