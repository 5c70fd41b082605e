# backend/app/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/pos_engine.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///pos_engine.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Stock reservations held by draft/held sales expire after this many hours
    RESERVATION_TTL_HOURS = int(os.environ.get("RESERVATION_TTL_HOURS", "4"))

    # Voids must carry a reason of at least this many characters
    VOID_REASON_MIN_LENGTH = int(os.environ.get("VOID_REASON_MIN_LENGTH", "5"))

    # Default low-stock threshold for newly created inventory rows
    LOW_STOCK_DEFAULT = int(os.environ.get("LOW_STOCK_DEFAULT", "10"))
