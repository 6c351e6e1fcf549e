"""
Configuration for the PIX subscription storefront.
Production (Railway/Render): uses DATABASE_URL only; fails if missing.
Local: DATABASE_URL, DB_* (PostgreSQL) or a SQLite file in instance/.
"""
import os
from pathlib import Path
from urllib.parse import quote_plus


def _is_production():
    """True when running on Railway, Render, or explicit production."""
    return (
        os.environ.get("RENDER") == "true"
        or os.environ.get("RAILWAY_ENVIRONMENT") is not None
        or os.environ.get("FLASK_ENV") == "production"
    )


def _env_flag(name, default="false"):
    return os.environ.get(name, default).lower() in ("true", "on", "1")


def _normalize_database_url(url):
    """Convert postgres:// to postgresql+psycopg2:// for SQLAlchemy/psycopg2."""
    if not url:
        return url
    url = url.strip()
    if url.startswith("postgres://"):
        return "postgresql+psycopg2://" + url[11:]
    if url.startswith("postgresql://") and "psycopg2" not in url:
        return "postgresql+psycopg2://" + url[13:]
    return url


def _get_database_uri(instance_dir):
    """Database URI: production = DATABASE_URL only; local = DATABASE_URL, DB_* or SQLite."""
    if _is_production():
        url = os.environ.get("DATABASE_URL")
        if not url or not url.strip():
            raise RuntimeError(
                "DATABASE_URL is required in production (Railway/Render). "
                "Set it in your service environment variables."
            )
        return _normalize_database_url(url.strip())

    url = os.environ.get("DATABASE_URL")
    if url and url.strip():
        return _normalize_database_url(url.strip())

    host = os.environ.get("DB_HOST")
    if not host:
        return f"sqlite:///{instance_dir / 'storefront.db'}"

    port = os.environ.get("DB_PORT", "5432")
    name = os.environ.get("DB_NAME", "storefront")
    user = os.environ.get("DB_USER", "storefront")
    password = os.environ.get("DB_PASSWORD", "")
    if password:
        password = quote_plus(password)
    return f"postgresql+psycopg2://{user}:{password}@{host}:{port}/{name}"


class Config:
    """Base configuration."""
    SECRET_KEY = os.environ.get("SECRET_KEY") or "dev-secret-key-change-in-production"

    BASE_DIR = Path(__file__).parent
    INSTANCE_DIR = BASE_DIR / "instance"
    try:
        INSTANCE_DIR.mkdir(exist_ok=True)
    except OSError:
        pass
    SQLALCHEMY_DATABASE_URI = _get_database_uri(INSTANCE_DIR)
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    MAIL_SERVER = os.environ.get("MAIL_SERVER")
    MAIL_PORT = int(os.environ.get("MAIL_PORT") or 587)
    MAIL_USE_TLS = _env_flag("MAIL_USE_TLS", "true")
    MAIL_USERNAME = os.environ.get("MAIL_USERNAME")
    MAIL_PASSWORD = os.environ.get("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.environ.get("MAIL_DEFAULT_SENDER") or os.environ.get("MAIL_USERNAME") or "noreply@storefront.local"

    # Active payment provider: "bullspay" or "sourcepay"
    PAYMENT_GATEWAY = os.environ.get("PAYMENT_GATEWAY", "bullspay").strip().lower()
    GATEWAY_TIMEOUT_SECONDS = float(os.environ.get("GATEWAY_TIMEOUT_SECONDS") or 15)

    # Missing credentials do not stop the app; gateway calls are rejected instead.
    BULLSPAY_PUBLIC_KEY = os.environ.get("BULLSPAY_PUBLIC_KEY", "")
    BULLSPAY_PRIVATE_KEY = os.environ.get("BULLSPAY_PRIVATE_KEY", "")
    BULLSPAY_BASE_URL = os.environ.get("BULLSPAY_BASE_URL", "https://api-gateway.bullspay.com.br/api")
    BULLSPAY_WEBHOOK_URL = os.environ.get("BULLSPAY_WEBHOOK_URL", "http://localhost:8080/api/webhook/bullspay")

    SOURCEPAY_PUBLIC_KEY = os.environ.get("SOURCEPAY_PUBLIC_KEY", "")
    SOURCEPAY_SECRET_KEY = os.environ.get("SOURCEPAY_SECRET_KEY", "")
    SOURCEPAY_BASE_URL = os.environ.get("SOURCEPAY_BASE_URL", "https://api.sourcepay.com.br")
    SOURCEPAY_WEBHOOK_URL = os.environ.get("SOURCEPAY_WEBHOOK_URL", "http://localhost:8080/api/webhook/sourcepay")
    SOURCEPAY_PIX_EXPIRES_MINUTES = int(os.environ.get("SOURCEPAY_PIX_EXPIRES_MINUTES") or 30)
    SOURCEPAY_ENRICH_DELAY_SECONDS = float(os.environ.get("SOURCEPAY_ENRICH_DELAY_SECONDS") or 2)

    # Countdown shown to the buyer; the server never expires pending payments on its own.
    PAYMENT_WINDOW_MINUTES = int(os.environ.get("PAYMENT_WINDOW_MINUTES") or 15)

    WEBHOOK_REPLAY_ON_STARTUP = _env_flag("WEBHOOK_REPLAY_ON_STARTUP", "true")
    WEBHOOK_REPLAY_DELAY_SECONDS = float(os.environ.get("WEBHOOK_REPLAY_DELAY_SECONDS") or 5)

    # Plans offered on the storefront (price in centavos)
    PLANS = [
        {"code": "basic", "title": "Acesso Básico - Mensal", "price": 1990, "duration": "month"},
        {"code": "premium", "title": "Acesso VIP - Mensal", "price": 2990, "duration": "month"},
        {"code": "annual", "title": "Plano Anual VIP", "price": 29900, "duration": "year"},
    ]


class TestConfig(Config):
    """Configuration used by the test suite."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    WEBHOOK_REPLAY_ON_STARTUP = False
    SOURCEPAY_ENRICH_DELAY_SECONDS = 0
    MAIL_SUPPRESS_SEND = True
    MAIL_SERVER = None
    BULLSPAY_PUBLIC_KEY = "bp_client_test"
    BULLSPAY_PRIVATE_KEY = "bp_secret_test"
