from flask import Blueprint, request, jsonify, g
from functools import wraps
from db import get_db

auth_bp = Blueprint("auth", __name__)

TOKEN_PREFIX = "mock-jwt-"

ROLES = {
    "student": "student",
    "student2": "student",
    "student3": "student",
    "admin": "admin"
}

VALID_ROLES = set(ROLES.values())


@auth_bp.route("/auth/login", methods=["POST"])
def login():
    """
    Authenticates a user based on pre-defined demo usernames.

    Validates the username against a static registry and issues
    a synthetic authorization token.

    Returns:
        A tuple containing the JSON response and HTTP status code.
        Success returns user metadata and a synthetic token.
    """
    data = request.get_json(silent=True) or {}
    username = data.get("username", "")

    if not username:
        return jsonify({"error": "Username is required"}), 400

    if username in ROLES:
        role = ROLES[username]
        # Token layout is mock-jwt-<role>-<username>; the username doubles as the user id.
        return jsonify({
            "userId": username,
            "role": role,
            "token": f"{TOKEN_PREFIX}{role}-{username}"
        }), 200

    return jsonify({"error": "User not found"}), 401


def _parse_token():
    """
    Returns:
        A (role, user_id) tuple, or None when the Authorization header is
        missing or does not carry a well-formed synthetic token.
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None

    token = auth_header.split(" ", 1)[1]
    if not token.startswith(TOKEN_PREFIX):
        return None

    role, sep, user_id = token[len(TOKEN_PREFIX):].partition("-")
    if not sep or role not in VALID_ROLES or not user_id:
        return None
    return role, user_id


def require_user(f):
    """
    Decorator that resolves the calling user from the bearer token.

    Passes 'user_id' and an open 'db' session to the wrapped function. The
    session is rolled back if the handler raises and always closed afterwards.

    Args:
        f: The route handler function to be protected.
    """
    @wraps(f)
    def decorated(*args, **kwargs):
        identity = _parse_token()
        if identity is None:
            return jsonify({"error": "Missing or invalid Authorization header"}), 401
        g.role, g.user_id = identity

        db = next(get_db())
        try:
            return f(*args, user_id=g.user_id, db=db, **kwargs)
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
    return decorated


def require_role(role_required):
    """
    Access control decorator for standardizing role-based authorization.

    Args:
        role_required: The role string ('student' or 'admin') required for access.

    Returns:
        A specialized decorator function for route protection. The caller's id
        is exposed as flask.g.user_id.
    """
    def decorator(f):
        @wraps(f)
        def decorated(*args, **kwargs):
            identity = _parse_token()
            if identity is None:
                return jsonify({"error": "Missing or invalid Authorization header"}), 401

            role, user_id = identity
            if role != role_required:
                return jsonify({"error": "Insufficient permissions"}), 403

            g.role, g.user_id = role, user_id
            return f(*args, **kwargs)
        return decorated
    return decorator
