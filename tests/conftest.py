import re

import pytest

from app import create_app
from config import Config
from models import db
from models.user import User

PASSWORD = "secret123"


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    BCRYPT_ROUNDS = 4
    EXPOSE_RESET_LINK = True
    SMTP_HOST = None
    SESSION_COOKIE_SECURE = False
    LOG_LEVEL = "WARNING"


@pytest.fixture()
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(app):
    return app.test_client()


def session_token(resp, name="session"):
    """Pull the raw session token out of a Set-Cookie header."""
    for header in resp.headers.getlist("Set-Cookie"):
        match = re.match(rf"{name}=([^;]*)", header)
        if match:
            return match.group(1)
    return None


@pytest.fixture()
def register_member(app):
    """
    Registers a user and returns a test client holding their session cookie.
    Passing address=None joins an existing family by name.
    """
    def _register(email, family_name, address="1 Library Lane", name=None):
        client = app.test_client()
        payload = {
            "email": email,
            "password": PASSWORD,
            "name": name or email.split("@")[0],
            "family_name": family_name,
        }
        if address:
            payload["address"] = address
        resp = client.post("/auth/register", json=payload)
        assert resp.status_code == 201, resp.get_json()
        client.user = resp.get_json()["user"]
        client.token = session_token(resp)
        return client
    return _register


@pytest.fixture()
def admin_client(register_member):
    client = register_member("admin@example.com", "Admin Family")
    user = db.session.get(User, client.user["id"])
    user.role = "ADMIN"
    db.session.commit()
    return client
