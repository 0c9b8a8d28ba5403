import re

from sqlalchemy.exc import OperationalError

from models import db
from models.session import Session
from models.user import User
from tests.conftest import PASSWORD, session_token


def _cookie_header(resp, name="session"):
    for header in resp.headers.getlist("Set-Cookie"):
        if header.startswith(f"{name}="):
            return header
    return None


def test_register_creates_family_user_and_session(client):
    resp = client.post("/auth/register", json={
        "email": "Ana@Example.com ",
        "password": PASSWORD,
        "name": "Ana",
        "family_name": "Reyes",
        "address": "12 Oak St",
    })
    assert resp.status_code == 201
    body = resp.get_json()["user"]
    assert body["email"] == "ana@example.com"
    assert body["role"] == "MEMBER"
    assert body["family"]["name"] == "Reyes"

    me = client.get("/auth/me")
    assert me.status_code == 200
    assert me.get_json()["id"] == body["id"]


def test_session_cookie_attributes(client):
    resp = client.post("/auth/register", json={
        "email": "c@example.com", "password": PASSWORD, "name": "C",
        "family_name": "Cookie", "address": "1 Crumb Rd",
    })
    header = _cookie_header(resp)
    assert "HttpOnly" in header
    assert "SameSite=Lax" in header
    assert "Path=/" in header
    assert "Secure" not in header
    max_age = int(re.search(r"Max-Age=(\d+)", header).group(1))
    assert 5 * 24 * 3600 - 10 <= max_age <= 5 * 24 * 3600


def test_register_joins_existing_family_by_name(register_member):
    first = register_member("first@example.com", "Nguyen")
    second = register_member("second@example.com", "Nguyen", address=None)
    assert first.user["family_id"] == second.user["family_id"]


def test_register_validation(client, register_member):
    register_member("taken@example.com", "Taken")

    missing = client.post("/auth/register", json={"email": "x@example.com"})
    assert missing.status_code == 400

    short = client.post("/auth/register", json={
        "email": "x@example.com", "password": "123", "name": "X",
        "family_name": "X", "address": "X",
    })
    assert short.status_code == 400
    assert short.get_json()["details"]

    duplicate = client.post("/auth/register", json={
        "email": "taken@example.com", "password": PASSWORD, "name": "T",
        "family_name": "Other", "address": "Elsewhere",
    })
    assert duplicate.status_code == 400

    dup_family = client.post("/auth/register", json={
        "email": "new@example.com", "password": PASSWORD, "name": "N",
        "family_name": "Taken", "address": "Elsewhere",
    })
    assert dup_family.status_code == 400

    unknown_family = client.post("/auth/register", json={
        "email": "new@example.com", "password": PASSWORD, "name": "N",
        "family_name": "Nobody",
    })
    assert unknown_family.status_code == 404

    no_family = client.post("/auth/register", json={
        "email": "new@example.com", "password": PASSWORD, "name": "N",
    })
    assert no_family.status_code == 400
    assert User.query.filter_by(email="new@example.com").first() is None


def test_login_and_bad_credentials(app, register_member):
    register_member("login@example.com", "Login")
    client = app.test_client()

    bad = client.post("/auth/login", json={"email": "login@example.com", "password": "wrong-pass"})
    assert bad.status_code == 401
    assert bad.get_json() == {"error": "Invalid credentials."}

    unknown = client.post("/auth/login", json={"email": "nobody@example.com", "password": PASSWORD})
    assert unknown.status_code == 401
    assert unknown.get_json() == bad.get_json()

    assert client.post("/auth/login", data="not json").status_code == 400

    ok = client.post("/auth/login", json={"email": "LOGIN@example.com", "password": PASSWORD})
    assert ok.status_code == 200
    assert client.get("/auth/verify").get_json()["authenticated"] is True


def test_inactive_user_cannot_log_in(app, register_member):
    member = register_member("inactive@example.com", "Sleepy")
    user = db.session.get(User, member.user["id"])
    user.is_active = False
    db.session.commit()

    resp = app.test_client().post("/auth/login", json={"email": "inactive@example.com", "password": PASSWORD})
    assert resp.status_code == 401
    # existing cookie no longer resolves either
    assert member.get("/auth/me").status_code == 401


def test_logout_revokes_and_clears_cookie(app, register_member):
    member = register_member("out@example.com", "Out")
    token = member.token
    assert Session.query.count() == 1

    resp = member.post("/auth/logout")
    assert resp.status_code == 200
    assert "Max-Age=0" in _cookie_header(resp)
    assert Session.query.count() == 0

    replay = app.test_client().get("/auth/me", headers={"Cookie": f"session={token}"})
    assert replay.status_code == 401

    # logging out again is harmless
    assert app.test_client().post("/auth/logout").status_code == 200


def test_unauthenticated_responses_are_uniform(client):
    assert client.get("/auth/me").status_code == 401
    garbage = client.get("/auth/me", headers={"Cookie": "session=garbage"})
    assert garbage.status_code == 401
    assert garbage.get_json() == {"error": "Unauthorized"}

    verify = client.get("/auth/verify")
    assert verify.status_code == 401
    assert verify.get_json() == {"authenticated": False}


def test_password_reset_revokes_every_session(app, register_member):
    member = register_member("reset@example.com", "Reset")
    other = app.test_client()
    login = other.post("/auth/login", json={"email": "reset@example.com", "password": PASSWORD})
    assert session_token(login)
    assert Session.query.count() == 2

    anon = app.test_client()
    resp = anon.post("/auth/forgot-password", json={"email": "reset@example.com"})
    assert resp.status_code == 200
    token = resp.get_json()["reset_link"].split("token=")[1]

    reset = anon.post("/auth/reset-password", json={"token": token, "new_password": "brand-new-pw"})
    assert reset.status_code == 200

    assert member.get("/auth/me").status_code == 401
    assert other.get("/auth/me").status_code == 401
    assert Session.query.count() == 0

    # token is single use
    again = anon.post("/auth/reset-password", json={"token": token, "new_password": "another-pw"})
    assert again.status_code == 400

    relog = anon.post("/auth/login", json={"email": "reset@example.com", "password": "brand-new-pw"})
    assert relog.status_code == 200


def test_forgot_password_does_not_reveal_accounts(client, register_member):
    register_member("known@example.com", "Known")
    known = client.post("/auth/forgot-password", json={"email": "known@example.com"})
    unknown = client.post("/auth/forgot-password", json={"email": "unknown@example.com"})
    assert known.status_code == unknown.status_code == 200
    assert known.get_json()["message"] == unknown.get_json()["message"]
    assert "reset_link" not in unknown.get_json()

    assert client.post("/auth/forgot-password", json={}).status_code == 400


def test_reset_link_hidden_when_not_exposed(app, client, register_member):
    register_member("hidden@example.com", "Hidden")
    app.config["EXPOSE_RESET_LINK"] = False
    resp = client.post("/auth/forgot-password", json={"email": "hidden@example.com"})
    assert "reset_link" not in resp.get_json()


def test_reset_with_bad_token(client):
    resp = client.post("/auth/reset-password", json={"token": "nope", "new_password": "whatever1"})
    assert resp.status_code == 400
    assert client.post("/auth/reset-password", json={}).status_code == 400


def test_non_string_fields_are_rejected(client, register_member):
    register_member("typed@example.com", "Typed")

    numeric_name = client.post("/auth/register", json={
        "email": "n@example.com", "password": PASSWORD, "name": 5,
        "family_name": "Numbers", "address": "5 Five St",
    })
    assert numeric_name.status_code == 400

    numeric_password = client.post("/auth/login", json={"email": "typed@example.com", "password": 12345678})
    assert numeric_password.status_code == 401

    numeric_token = client.post("/auth/reset-password", json={"token": 12345, "new_password": "whatever1"})
    assert numeric_token.status_code == 400
    assert numeric_token.get_json()["error"] == "The reset link is invalid or has expired."


def _reset_token(app, email):
    resp = app.test_client().post("/auth/forgot-password", json={"email": email})
    return resp.get_json()["reset_link"].split("token=")[1]


def test_reset_commits_password_and_revocation_together(app, register_member, monkeypatch):
    register_member("once@example.com", "Once")
    token = _reset_token(app, "once@example.com")

    commits = []
    real_commit = db.session.commit

    def counting_commit():
        commits.append(1)
        return real_commit()

    monkeypatch.setattr(db.session, "commit", counting_commit)
    resp = app.test_client().post("/auth/reset-password", json={"token": token, "new_password": "brand-new-pw"})
    assert resp.status_code == 200
    assert len(commits) == 1
    assert Session.query.count() == 0


def test_failed_reset_keeps_old_password_and_sessions(app, register_member, monkeypatch):
    member = register_member("keep@example.com", "Keep")
    token = _reset_token(app, "keep@example.com")

    def failing_commit():
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db.session, "commit", failing_commit)
    resp = app.test_client().post("/auth/reset-password", json={"token": token, "new_password": "brand-new-pw"})
    assert resp.status_code == 500
    monkeypatch.undo()

    assert member.get("/auth/me").status_code == 200
    assert Session.query.count() == 1
    relog = app.test_client().post("/auth/login", json={"email": "keep@example.com", "password": PASSWORD})
    assert relog.status_code == 200


def test_health_and_security_headers(client):
    resp = client.get("/health")
    assert resp.get_json() == {"status": "ok"}
    assert resp.headers["X-Content-Type-Options"] == "nosniff"
    assert client.get("/does-not-exist").status_code == 404
