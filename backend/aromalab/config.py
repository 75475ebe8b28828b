# backend/aromalab/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/aromalab.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///aromalab.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Stock policy: completing an order may not drive a material below zero
    # unless this is switched on.
    ALLOW_NEGATIVE_STOCK = _env_bool("ALLOW_NEGATIVE_STOCK", False)

    # Formulas are expressed for a 100 kg batch
    FORMULA_TARGET_WEIGHT_KG = 100.0
    FORMULA_WEIGHT_TOLERANCE_KG = 0.01

    # Stock badges on the materials list (kg)
    LOW_STOCK_THRESHOLD_KG = 0.02
    MEDIUM_STOCK_THRESHOLD_KG = 0.1
    GOOD_STOCK_THRESHOLD_KG = 0.5

    # Audit trail keeps only the most recent entries
    ACTIVITY_LOG_LIMIT = int(os.environ.get("ACTIVITY_LOG_LIMIT", "100"))

    # Bootstrap account created by `flask system init`
    DEFAULT_ADMIN_EMAIL = os.environ.get("DEFAULT_ADMIN_EMAIL", "admin@aromalab.com")
    DEFAULT_ADMIN_NAME = "Administrateur"
    DEFAULT_ADMIN_PASSWORD = os.environ.get("DEFAULT_ADMIN_PASSWORD", "admin123")

    SESSION_ABSOLUTE_TIMEOUT_HOURS = 24
    SESSION_IDLE_TIMEOUT_HOURS = 8

    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))
