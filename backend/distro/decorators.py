# Overview: Request identity and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import User
from .services.tenant_service import resolve_distributor_id

# Set by the upstream authentication middleware; trusted as-is.
IDENTITY_HEADER = "X-User-Id"


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user') and hasattr(g, 'role')


def require_auth(f):
    """
    Establish the acting identity and tenant context.

    Authentication happens upstream; this only resolves the forwarded user.
    Sets the following Flask g attributes:
    - g.current_user: the acting User
    - g.role: distributor, employee or admin
    - g.distributor_id: tenant the user acts for (None for admins)

    Returns 401 if the header is missing, malformed, or names no user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(IDENTITY_HEADER, "").strip()
        if not raw.isdigit():
            return jsonify({"error": "unauthorized", "message": "Authentication required"}), 401

        user = db.session.get(User, int(raw))
        if not user:
            return jsonify({"error": "unauthorized", "message": "Unknown user"}), 401

        g.current_user = user
        g.role = user.role
        g.distributor_id = resolve_distributor_id(user)

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Require one of the given roles.

    Distributor and employee roles additionally need a resolved
    distributor; an employee with no employer link is refused.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "unauthorized", "message": "Authentication required"}), 401

            if g.role not in roles:
                return jsonify({
                    "error": "forbidden",
                    "message": f"Requires role: {', '.join(roles)}",
                }), 403

            if g.role != "admin" and g.distributor_id is None:
                return jsonify({
                    "error": "forbidden",
                    "message": "No distributor context for this user",
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
