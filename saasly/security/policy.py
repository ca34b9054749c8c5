from functools import wraps
from flask import abort, g, jsonify, request
from flask_login import current_user
from saasly.extensions import db
from saasly.models import OrganizationMembership
from saasly.services.organizations import retrieve_organization_by_slug


def require_membership(*roles):
    """
    Resolve the `slug` view argument to an organization the current user
    belongs to. Exposes `g.organization` and `g.membership` to the view.
    With `roles`, the membership role must be one of them.
    """
    def deco(fn):
        @wraps(fn)
        def _wrap(*args, **kwargs):
            if not current_user.is_authenticated:
                return _abort_smart(401)
            organization = retrieve_organization_by_slug(db.session, kwargs.get("slug"))
            if organization is None:
                return _abort_smart(404)
            m = (
                db.session.query(OrganizationMembership)
                .filter_by(organization_id=organization.id, user_id=current_user.id)
                .one_or_none()
            )
            if not m:
                return _abort_smart(404)  # anti-enumeration
            if roles and m.role not in roles:
                return _abort_smart(403)
            g.organization = organization
            g.membership = m
            return fn(*args, **kwargs)
        return _wrap
    return deco


def _abort_smart(code: int):
    # If the client asked for JSON, return a JSON-shaped error
    accept = (request.headers.get("Accept") or "").lower()
    if "application/json" in accept or request.path.endswith(".json"):
        return jsonify({"error": {401: "unauthorized", 403: "forbidden", 404: "not_found"}[code], "code": code}), code
    abort(code)
