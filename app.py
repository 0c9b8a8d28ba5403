import logging
from datetime import datetime

import click
from flask import Flask, jsonify
from flask_migrate import Migrate
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from config import Config
from models import db
from models.user import User
from models.password_reset_token import PasswordResetToken
from routes import health_bp, auth_bp, families_bp, users_bp, books_bp, borrowings_bp, admin_bp
from security.session import init_auth, get_authenticator
from utils.auth_context import load_current_user

logger = logging.getLogger(__name__)


def create_app(config_object=Config):
    app = Flask(__name__)
    app.config.from_object(config_object)

    logging.basicConfig(
        level=app.config.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(families_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(books_bp)
    app.register_blueprint(borrowings_bp)
    app.register_blueprint(admin_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Authenticator selected by AUTH_STRATEGY
    init_auth(app)

    @app.before_request
    def _load_user():
        load_current_user()

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp

    register_error_handlers(app)
    register_cli(app)

    return app


def register_error_handlers(app):
    @app.errorhandler(HTTPException)
    def _http_error(exc):
        return jsonify(error=exc.description), exc.code

    @app.errorhandler(SQLAlchemyError)
    def _storage_error(exc):
        db.session.rollback()
        logger.exception("Storage error: %s", exc)
        return jsonify(error="Internal server error"), 500

#-------------------------

def register_cli(app):
    @app.cli.command("make-admin")
    @click.argument("email")
    def make_admin(email):
        """Promote a user to ADMIN by email (bootstrap)."""
        user = User.query.filter_by(email=email.strip().lower()).first()
        if not user:
            click.echo("User not found")
            return

        if user.role != "ADMIN":
            user.role = "ADMIN"
            db.session.commit()

        click.echo(f"{user.email} promoted to ADMIN")

    @app.cli.command("purge-sessions")
    def purge_sessions():
        """Delete expired sessions and spent password-reset tokens."""
        removed = get_authenticator().purge_expired()
        tokens = PasswordResetToken.query.filter(
            (PasswordResetToken.expires_at <= datetime.utcnow())
            | PasswordResetToken.used_at.isnot(None)
        ).delete(synchronize_session=False)
        db.session.commit()
        click.echo(f"Removed {removed} expired session(s) and {tokens} reset token(s)")

#-------------------------


if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)
