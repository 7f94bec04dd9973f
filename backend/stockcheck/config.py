# backend/stockcheck/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/stockcheck.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///stockcheck.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Product catalog collaborator: "sql" reads the local catalog tables,
    # "http" calls the remote catalog service.
    CATALOG_BACKEND = os.environ.get("CATALOG_BACKEND", "sql")
    CATALOG_BASE_URL = os.environ.get("CATALOG_BASE_URL", "http://catalog:8000")
    CATALOG_TIMEOUT_SECONDS = float(os.environ.get("CATALOG_TIMEOUT_SECONDS", "5"))
    CATALOG_CACHE_TTL_SECONDS = int(os.environ.get("CATALOG_CACHE_TTL_SECONDS", "300"))
    CATALOG_CACHE_MAX_ENTRIES = int(os.environ.get("CATALOG_CACHE_MAX_ENTRIES", "5000"))

    DEFAULT_PAGE_SIZE = int(os.environ.get("DEFAULT_PAGE_SIZE", "20"))
    MAX_PAGE_SIZE = int(os.environ.get("MAX_PAGE_SIZE", "200"))
