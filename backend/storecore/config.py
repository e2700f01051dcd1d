# backend/storecore/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/storecore.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",  # optional alternative location
        "sqlite:///storecore.sqlite3",  # default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Store policy, resolved once per request into StoreSettings
    STORE_TAX_RATE_BPS = _env_int("STORE_TAX_RATE_BPS", 0)
    LOYALTY_SPEND_PER_POINT_CENTS = _env_int("LOYALTY_SPEND_PER_POINT_CENTS", 10_000)

    # "fake" for deterministic in-process devices, "gateway" for the HTTP device gateway
    DEVICE_BACKEND = os.environ.get("DEVICE_BACKEND", "fake")
    DEVICE_GATEWAY_URL = os.environ.get("DEVICE_GATEWAY_URL", "http://127.0.0.1:9100")
    DEVICE_GATEWAY_TIMEOUT = _env_float("DEVICE_GATEWAY_TIMEOUT", 5.0)

    # Low-stock notifications; logged only when no webhook is configured
    ALERT_WEBHOOK_URL = os.environ.get("ALERT_WEBHOOK_URL")
    ALERT_WEBHOOK_TIMEOUT = _env_float("ALERT_WEBHOOK_TIMEOUT", 3.0)

    SESSION_TTL_HOURS = _env_int("SESSION_TTL_HOURS", 12)
    BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)

    WRITE_RETRY_ATTEMPTS = _env_int("WRITE_RETRY_ATTEMPTS", 3)

    # Comma-separated browser origins allowed to call the API (POS front end)
    CORS_ALLOWED_ORIGINS = [
        o.strip()
        for o in os.environ.get("CORS_ALLOWED_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",")
        if o.strip()
    ]


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = "test"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    DEVICE_BACKEND = "fake"
    ALERT_WEBHOOK_URL = None
    BCRYPT_ROUNDS = 4
