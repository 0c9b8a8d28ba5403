import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


class Config:
    # Secrets
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-only-change-me")

    # development | production
    APP_ENV = os.getenv("APP_ENV", "development").lower()

    # SQLite database file stored next to the app as booklending.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "booklending.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Which authenticator backs login/resolve (only "session" is built in)
    AUTH_STRATEGY = os.getenv("AUTH_STRATEGY", "session").lower()

    # Cookie carrying the raw session token
    SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")

    # 5 days session lifetime
    SESSION_LIFETIME_SECONDS = float(os.getenv("SESSION_EXPIRES_DAYS", "5")) * 24 * 60 * 60

    # Cookie security defaults
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = APP_ENV == "production" or _env_bool("SESSION_COOKIE_SECURE")

    # Password reset
    RESET_TOKEN_LIFETIME_SECONDS = float(os.getenv("RESET_TOKEN_EXPIRES_HOURS", "1")) * 60 * 60
    APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:3000")
    # Return the reset link in the API response (no mail server in dev)
    EXPOSE_RESET_LINK = _env_bool("EXPOSE_RESET_LINK", "true" if APP_ENV != "production" else "false")

    # Password policy
    PASSWORD_MIN_LEN = int(os.getenv("PASSWORD_MIN_LEN", "6"))
    PASSWORD_MAX_LEN = 128
    BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

    # Listing defaults
    DEFAULT_PAGE_SIZE = 12
    MAX_PAGE_SIZE = 100

    # Email (SMTP)
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
    SMTP_USERNAME = os.getenv("SMTP_USERNAME")
    SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
    SMTP_FROM_EMAIL = os.getenv("SMTP_FROM_EMAIL")
    SMTP_USE_TLS = _env_bool("SMTP_USE_TLS", "true")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    # Basic app settings
    DEBUG = False
