# backend/tablestore/config.py
from __future__ import annotations
import os


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/tablestore.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///tablestore.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Imports are bounded per call; larger files must be split by the caller.
    IMPORT_MAX_ROWS = _int_env("IMPORT_MAX_ROWS", 10000)
    IMPORT_ERROR_LIMIT = _int_env("IMPORT_ERROR_LIMIT", 10)

    VALIDATION_PAGE_LIMIT = _int_env("VALIDATION_PAGE_LIMIT", 500)
    INVALID_ROWS_SCAN_LIMIT = _int_env("INVALID_ROWS_SCAN_LIMIT", 10000)

    CACHE_DEFAULT_TTL = _int_env("CACHE_DEFAULT_TTL", 300)

    # "module.path:callable" entries; each callable receives the ColumnTypeRegistry.
    COLUMN_TYPE_PLUGINS = [
        p.strip()
        for p in os.environ.get(
            "COLUMN_TYPE_PLUGINS",
            "tablestore.column_types.phone:register",
        ).split(",")
        if p.strip()
    ]

    # Browser origins allowed to call the API (dev servers by default)
    CORS_ORIGINS = [
        o.strip()
        for o in os.environ.get(
            "CORS_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173,http://localhost:4173,http://127.0.0.1:4173",
        ).split(",")
        if o.strip()
    ]
