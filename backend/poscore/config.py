# backend/poscore/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/poscore.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///poscore.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Base currency used when business settings have not been initialized
    DEFAULT_BASE_CURRENCY = os.environ.get("DEFAULT_BASE_CURRENCY", "USD")

    # Exchange-rate source; rate refresh is disabled when unset
    RATES_SOURCE_URL = os.environ.get("RATES_SOURCE_URL")
    RATES_SOURCE_TIMEOUT = float(os.environ.get("RATES_SOURCE_TIMEOUT", "10"))
