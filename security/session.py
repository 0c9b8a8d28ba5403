import hashlib
import logging
import secrets
from datetime import datetime, timedelta
from flask import request, current_app

from models import db
from security.session_store import SqlAlchemySessionStore

logger = logging.getLogger(__name__)

EXTENSION_KEY = "booklending_auth"


def hash_token(token: str) -> str:
    # SHA-256 is fine for hashing random session tokens
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class SessionAuthenticator:
    """
    Issues and resolves opaque login tokens. Only the token hash is ever
    handed to the store; the raw token leaves through create_session once.
    """

    def __init__(self, store, lifetime_seconds: float, clock=datetime.utcnow):
        self.store = store
        self.lifetime = timedelta(seconds=lifetime_seconds)
        self.clock = clock

    def create_session(self, user_id: int) -> tuple[str, datetime]:
        raw_token = secrets.token_hex(32)
        expires_at = self.clock() + self.lifetime
        self.store.add(user_id, hash_token(raw_token), expires_at)
        logger.info("Session created for user %s", user_id)
        return raw_token, expires_at

    def resolve_session(self, raw_token):
        """Returns the owning user, or None for any unusable token."""
        if not raw_token:
            return None
        user = self.store.find_user(hash_token(raw_token), self.clock())
        if user is None or not user.is_active:
            return None
        return user

    def revoke_session(self, raw_token) -> int:
        if not raw_token:
            return 0
        return self.store.delete_by_hash(hash_token(raw_token))

    def revoke_all_sessions(self, user_id: int, commit: bool = True) -> int:
        count = self.store.delete_for_user(user_id, commit=commit)
        logger.info("Revoked %d session(s) for user %s", count, user_id)
        return count

    def purge_expired(self) -> int:
        return self.store.delete_expired(self.clock())


def _build_session_authenticator(app) -> SessionAuthenticator:
    return SessionAuthenticator(
        SqlAlchemySessionStore(db),
        lifetime_seconds=app.config.get("SESSION_LIFETIME_SECONDS", 5 * 24 * 60 * 60),
    )


# AUTH_STRATEGY -> factory
STRATEGIES = {
    "session": _build_session_authenticator,
}


def init_auth(app) -> None:
    name = app.config.get("AUTH_STRATEGY", "session")
    factory = STRATEGIES.get(name)
    if factory is None:
        raise RuntimeError(
            f"Unsupported AUTH_STRATEGY {name!r}; expected one of {sorted(STRATEGIES)}"
        )
    app.extensions[EXTENSION_KEY] = factory(app)


def get_authenticator() -> SessionAuthenticator:
    return current_app.extensions[EXTENSION_KEY]


def create_session(user_id: int) -> tuple[str, datetime]:
    """
    Creates a server-side session and returns the RAW token (to set as cookie)
    with its expiry. Only the hash is stored in DB.
    """
    return get_authenticator().create_session(user_id)


def resolve_session(raw_token):
    return get_authenticator().resolve_session(raw_token)


def revoke_session(raw_token) -> int:
    return get_authenticator().revoke_session(raw_token)


def revoke_all_sessions(user_id: int, commit: bool = True) -> int:
    return get_authenticator().revoke_all_sessions(user_id, commit=commit)


def get_token_from_request():
    cookie_name = current_app.config.get("SESSION_COOKIE_NAME", "session")
    return request.cookies.get(cookie_name) or None


def set_session_cookie(resp, raw_token: str, expires_at: datetime):
    max_age = int((expires_at - get_authenticator().clock()).total_seconds())
    resp.set_cookie(
        current_app.config.get("SESSION_COOKIE_NAME", "session"),
        raw_token,
        httponly=True,
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        max_age=max(max_age, 0),
        path="/",
    )
    return resp


def clear_session_cookie(resp):
    resp.set_cookie(
        current_app.config.get("SESSION_COOKIE_NAME", "session"),
        "",
        httponly=True,
        secure=current_app.config.get("SESSION_COOKIE_SECURE", False),
        samesite=current_app.config.get("SESSION_COOKIE_SAMESITE", "Lax"),
        max_age=0,
        path="/",
    )
    return resp
