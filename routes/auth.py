import logging
import secrets
from datetime import datetime, timedelta

from flask import Blueprint, request, jsonify, current_app, g
from sqlalchemy.exc import IntegrityError

from models import db
from models.family import Family
from models.user import User
from models.password_reset_token import PasswordResetToken
from security.password import hash_password, verify_password
from security.password_policy import validate_password
from security.session import (
    create_session,
    hash_token,
    revoke_all_sessions,
    revoke_session,
    set_session_cookie,
    clear_session_cookie,
)
from utils.auth_context import login_required
from utils.emailer import send_email
from utils.parsing import as_int, as_text

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

GENERIC_RESET_MESSAGE = "If this email is registered, you will receive a password reset link."


def _normalize_email(value) -> str:
    return value.strip().lower() if isinstance(value, str) else ""


def _is_valid_email(email: str) -> bool:
    return isinstance(email, str) and "@" in email and len(email) <= 255


def _user_payload(user: User) -> dict:
    out = user.to_public()
    out["family"] = user.family.to_contact() if user.family else None
    return out


def _resolve_family(data: dict):
    """
    Returns (family, error_response). Registration either joins an existing
    family by id or name, or creates one when an address is supplied.
    """
    family_id = as_int(data.get("family_id"))
    family_name = as_text(data.get("family_name"))
    address = as_text(data.get("address"))

    if family_id:
        family = db.session.get(Family, family_id)
        if not family:
            return None, (jsonify(error="Family not found"), 404)
        return family, None

    if family_name and address:
        family = Family(
            name=family_name,
            address=address,
            phone=data.get("phone"),
            email=data.get("family_email"),
        )
        db.session.add(family)
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            return None, (jsonify(error="Family name already exists. Join the existing family instead."), 400)
        return family, None

    if family_name:
        family = Family.query.filter_by(name=family_name).first()
        if not family:
            return None, (jsonify(error="Family not found. Create a new family with an address."), 404)
        return family, None

    return None, (jsonify(error="Family information is required"), 400)


@auth_bp.post("/register")
def register():
    data = request.get_json(silent=True) or {}
    email = _normalize_email(data.get("email"))
    password = data.get("password") or ""
    name = as_text(data.get("name"))

    if not email or not password or not name:
        return jsonify(error="Email, password, and name are required"), 400
    if not _is_valid_email(email):
        return jsonify(error="Invalid email"), 400

    valid, errors = validate_password(password)
    if not valid:
        return jsonify(error="Password does not meet policy", details=errors), 400

    if User.query.filter_by(email=email).first():
        return jsonify(error="User with this email already exists"), 400

    family, failure = _resolve_family(data)
    if failure:
        return failure

    user = User(
        email=email,
        name=name,
        password_hash=hash_password(password),
        family_id=family.id,
        role="MEMBER",
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify(error="User with this email already exists"), 400

    logger.info("Registered user %s in family %s", user.id, family.id)

    raw_token, expires_at = create_session(user.id)
    resp = jsonify(user=_user_payload(user))
    set_session_cookie(resp, raw_token, expires_at)
    return resp, 201


@auth_bp.post("/login")
def login():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify(error="Invalid request payload."), 400

    email = _normalize_email(data.get("email"))
    password = data.get("password") or ""
    if not email or not password:
        return jsonify(error="Email and password are required."), 400

    user = User.query.filter_by(email=email).first()
    if not user or not user.is_active or not verify_password(password, user.password_hash):
        logger.info("Failed login for %s", email)
        return jsonify(error="Invalid credentials."), 401

    raw_token, expires_at = create_session(user.id)
    resp = jsonify(status="ok")
    set_session_cookie(resp, raw_token, expires_at)
    return resp, 200


@auth_bp.post("/logout")
def logout():
    if g.session_token:
        revoke_session(g.session_token)

    resp = jsonify(status="ok")
    clear_session_cookie(resp)
    return resp, 200


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(_user_payload(g.user)), 200


@auth_bp.get("/verify")
def verify():
    if g.user is None:
        return jsonify(authenticated=False), 401
    return jsonify(authenticated=True, uid=g.user.id), 200


@auth_bp.post("/forgot-password")
def forgot_password():
    data = request.get_json(silent=True) or {}
    email = _normalize_email(data.get("email"))
    if not email:
        return jsonify(error="Email is required"), 400

    user = User.query.filter_by(email=email).first()
    if not user:
        return jsonify(message=GENERIC_RESET_MESSAGE), 200

    raw_token = secrets.token_hex(32)
    lifetime = current_app.config.get("RESET_TOKEN_LIFETIME_SECONDS", 60 * 60)

    PasswordResetToken.query.filter_by(user_id=user.id, used_at=None).delete(synchronize_session=False)
    db.session.add(PasswordResetToken(
        user_id=user.id,
        token_hash=hash_token(raw_token),
        expires_at=datetime.utcnow() + timedelta(seconds=lifetime),
    ))
    db.session.commit()

    base_url = current_app.config.get("APP_BASE_URL", "").rstrip("/")
    link = f"{base_url}/reset-password?token={raw_token}"

    ok, error = send_email(
        user.email,
        "Reset your password",
        f"Hi {user.name},\n\nUse this link to choose a new password:\n{link}\n\n"
        "If you did not ask for this, you can ignore this email.",
    )
    if not ok:
        logger.info("Reset mail for user %s not sent: %s", user.id, error)

    if current_app.config.get("EXPOSE_RESET_LINK", False):
        return jsonify(message=GENERIC_RESET_MESSAGE, reset_link=link), 200
    return jsonify(message=GENERIC_RESET_MESSAGE), 200


@auth_bp.post("/reset-password")
def reset_password():
    data = request.get_json(silent=True) or {}
    token = data.get("token") or ""
    new_password = data.get("new_password") or ""

    if not token or not new_password:
        return jsonify(error="Reset token and new password are required"), 400

    valid, errors = validate_password(new_password)
    if not valid:
        return jsonify(error="Password does not meet policy", details=errors), 400

    now = datetime.utcnow()
    record = None
    if isinstance(token, str):
        record = (
            PasswordResetToken.query
            .filter(
                PasswordResetToken.token_hash == hash_token(token),
                PasswordResetToken.used_at.is_(None),
                PasswordResetToken.expires_at > now,
            )
            .first()
        )
    if not record:
        return jsonify(error="The reset link is invalid or has expired."), 400

    user = db.session.get(User, record.user_id)
    user.password_hash = hash_password(new_password)
    record.used_at = now
    # every outstanding login dies with the old password, in the same commit
    revoke_all_sessions(user.id, commit=False)
    db.session.commit()
    return jsonify(message="Password reset successfully."), 200
