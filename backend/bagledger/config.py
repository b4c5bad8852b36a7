# backend/bagledger/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/bagledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///bagledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # One-time codes sent to clients on bag issuance
    BAG_OTP_TTL_MINUTES = int(os.environ.get("BAG_OTP_TTL_MINUTES", "15"))
    BAG_OTP_LENGTH = int(os.environ.get("BAG_OTP_LENGTH", "6"))

    # Bounded wait for row locks taken by ledger mutations
    BAG_LOCK_TIMEOUT_MS = int(os.environ.get("BAG_LOCK_TIMEOUT_MS", "5000"))

    BAG_DEFAULT_PAGE_SIZE = 20
    BAG_MAX_PAGE_SIZE = 100

    CORS_ALLOWED_ORIGINS = [
        origin.strip()
        for origin in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        ).split(",")
        if origin.strip()
    ]
