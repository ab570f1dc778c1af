"Decorators for route authorization"

from functools import wraps
from flask import jsonify, session


def admin_required(decorated_route):
    """Decorator to ensure that an admin is logged in."""

    @wraps(decorated_route)
    def decorated_function(*args, **kwargs):
        if not session.get("admin_logged_in"):
            return jsonify({"success": False, "error": "Unauthorized"}), 401

        return decorated_route(*args, **kwargs)

    return decorated_function
