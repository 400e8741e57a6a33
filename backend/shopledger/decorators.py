# Overview: Request authentication and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid bearer session.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User (employee)
    - g.session_context: The full SessionContext object
    - g.token: The plaintext token (used by logout)

    Returns 401 if the header is missing, the token is unknown, expired,
    idle-timed-out or revoked, or the employee was deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.session_context = context
        g.token = token
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Restrict a route to the given roles. Must be applied after @require_auth.
    """
    allowed = {r.lower() for r in roles}

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return jsonify({"error": "Authentication required"}), 401
            if (user.role_name or "").lower() not in allowed:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": sorted(allowed),
                }), 403
            return f(*args, **kwargs)

        return decorated_function

    return decorator


# Role groups used across blueprints
ANY_EMPLOYEE = ("admin", "manager", "inventory", "biller")
STOCK_ROLES = ("admin", "manager", "inventory")
BILLING_ROLES = ("admin", "manager", "biller")
MANAGER_ROLES = ("admin", "manager")
ADMIN_ROLES = ("admin",)
