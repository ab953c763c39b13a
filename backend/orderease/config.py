# backend/orderease/config.py
from __future__ import annotations

import logging
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # HMAC key for bearer tokens; validated in validate_config
    JWT_SECRET = os.environ.get("JWT_SECRET", "")
    JWT_EXPIRATION = os.environ.get("JWT_EXPIRATION", "7200")

    SERVER_HOST = os.environ.get("SERVER_HOST", "0.0.0.0")
    SERVER_PORT = os.environ.get("SERVER_PORT", "8080")
    SERVER_BASE_PATH = os.environ.get("SERVER_BASE_PATH", "/api")

    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///orderease.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    DATABASE_LOG_LEVEL = os.environ.get("DATABASE_LOG_LEVEL", "2")
    DATABASE_ISOLATION_LEVEL = os.environ.get("DATABASE_ISOLATION_LEVEL")

    SNOWFLAKE_NODE_ID = os.environ.get("SNOWFLAKE_NODE_ID", "1")
    BCRYPT_ROUNDS = os.environ.get("BCRYPT_ROUNDS", "12")

    TEMP_TOKEN_TTL = os.environ.get("TEMP_TOKEN_TTL", "3600")
    TEMP_TOKEN_ROTATE_INTERVAL = os.environ.get("TEMP_TOKEN_ROTATE_INTERVAL", "3600")
    REVOKED_TOKEN_PURGE_INTERVAL = os.environ.get("REVOKED_TOKEN_PURGE_INTERVAL", "3600")
    SCHEDULER_ENABLED = _env_bool("SCHEDULER_ENABLED", True)

    UPLOAD_DIR = os.environ.get("UPLOAD_DIR", "uploads")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")


# database.log_level 1..5 -> sqlalchemy.engine logger level
DATABASE_LOG_LEVELS = {
    1: logging.CRITICAL,
    2: logging.ERROR,
    3: logging.WARNING,
    4: logging.INFO,
    5: logging.DEBUG,
}

_INT_KEYS = {
    "JWT_EXPIRATION": (1, None),
    "SERVER_PORT": (1, 65535),
    "DATABASE_LOG_LEVEL": (1, 5),
    "SNOWFLAKE_NODE_ID": (0, 1023),
    "BCRYPT_ROUNDS": (4, 31),
    "TEMP_TOKEN_TTL": (1, None),
    "TEMP_TOKEN_ROTATE_INTERVAL": (1, None),
    "REVOKED_TOKEN_PURGE_INTERVAL": (1, None),
}


class ConfigError(RuntimeError):
    """Raised at startup when configuration is missing or malformed."""


def validate_config(config) -> None:
    """
    Normalize and check the loaded configuration in place.

    Integer settings arrive from the environment as strings; they are
    converted here so the rest of the app reads plain ints.
    """
    secret = config.get("JWT_SECRET") or ""
    if len(secret) < 16:
        raise ConfigError("JWT_SECRET must be set and at least 16 characters long")

    for key, (low, high) in _INT_KEYS.items():
        raw = config.get(key)
        try:
            value = int(raw)
        except (TypeError, ValueError):
            raise ConfigError(f"{key} must be an integer, got {raw!r}")
        if value < low or (high is not None and value > high):
            raise ConfigError(f"{key} out of range: {value}")
        config[key] = value

    base_path = (config.get("SERVER_BASE_PATH") or "").rstrip("/")
    if base_path and not base_path.startswith("/"):
        base_path = "/" + base_path
    config["SERVER_BASE_PATH"] = base_path

    isolation = config.get("DATABASE_ISOLATION_LEVEL")
    if isolation:
        options = dict(config.get("SQLALCHEMY_ENGINE_OPTIONS") or {})
        options.setdefault("isolation_level", isolation)
        config["SQLALCHEMY_ENGINE_OPTIONS"] = options
