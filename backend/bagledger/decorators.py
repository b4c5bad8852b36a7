# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import Organization


def require_tenant(f):
    """
    Establish tenant context from the upstream gateway headers.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.org_id: The organization ID (tenant context) - REQUIRED
    - g.actor: Who is acting (user id or email), recorded in the audit log

    Authentication happens before requests reach the ledger; these headers
    are trusted. Returns 401 if:
    - No X-Organization-Id header, or it is not an integer
    - Organization unknown or deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw_org_id = request.headers.get("X-Organization-Id", "").strip()
        if not raw_org_id:
            return jsonify({"error": "Organization context required"}), 401

        try:
            org_id = int(raw_org_id)
        except ValueError:
            return jsonify({"error": "Invalid organization context"}), 401

        org = db.session.get(Organization, org_id)
        if org is None or not org.is_active:
            return jsonify({"error": "Unknown or inactive organization"}), 401

        g.org_id = org.id
        g.actor = (request.headers.get("X-Actor") or "").strip() or None

        return f(*args, **kwargs)

    return decorated_function
