from functools import wraps
from flask import g, jsonify


def is_admin() -> bool:
    user = getattr(g, "user", None)
    return bool(user and user.role == "ADMIN")


def can_manage_family(family_id: int) -> bool:
    """Members manage their own family's books; admins manage everything."""
    user = getattr(g, "user", None)
    if not user:
        return False
    return user.role == "ADMIN" or user.family_id == family_id


def require_admin(fn):
    """
    Usage: @require_admin
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        user = getattr(g, "user", None)
        if user is None:
            return jsonify(error="Unauthorized"), 401
        if user.role != "ADMIN":
            return jsonify(error="Forbidden"), 403
        return fn(*args, **kwargs)
    return wrapper
