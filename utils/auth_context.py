from functools import wraps
from flask import g, jsonify
from security.session import get_token_from_request, resolve_session


def load_current_user():
    g.session_token = get_token_from_request()
    g.user = resolve_session(g.session_token)


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if getattr(g, "user", None) is None:
            return jsonify(error="Unauthorized"), 401
        return fn(*args, **kwargs)
    return wrapper
