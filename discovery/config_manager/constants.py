"""Shared constants for the configuration manager package."""
from __future__ import annotations

import os
from pathlib import Path

MODULE_DIR = Path(__file__).resolve().parent
PACKAGE_DIR = MODULE_DIR.parent.resolve()
PROJECT_DIR = PACKAGE_DIR.parent.resolve()
CONF_DIR = PROJECT_DIR / "conf"
DEFAULT_CONFIG_PATH = CONF_DIR / "config.json"
DEFAULT_LOCAL_CONFIG_PATH = CONF_DIR / "config.local.json"

SENSITIVE_CONFIG_KEYS = {
    "google_books_api_key",
    "generator_api_key",
    "redis_url",
    "database_url",
}

DEFAULT_GOOGLE_BOOKS_URL = "https://www.googleapis.com/books/v1"
DEFAULT_OPENLIBRARY_URL = "https://openlibrary.org"
DEFAULT_OPENLIBRARY_COVERS_URL = "https://covers.openlibrary.org/b"
DEFAULT_GENERATOR_URL = os.environ.get(
    "OLLAMA_URL", "http://localhost:11434/api/chat"
)
DEFAULT_GENERATOR_MODEL = "llama3.1:8b"
DEFAULT_DATABASE_URL = "sqlite:///storage/discovery.db"

DEFAULT_PRIMARY_CATALOG = "google"
DEFAULT_FALLBACK_CATALOG = "openlibrary"
DEFAULT_CATALOG_TIMEOUT_SECONDS = 5.0
DEFAULT_GENERATOR_TIMEOUT_SECONDS = 15.0
DEFAULT_FANOUT_LIMIT = 5
DEFAULT_SWEEP_THRESHOLD = 1000
DEFAULT_DAILY_PICK_WINDOW = 300
DEFAULT_TRENDING_MIN_BOOKS = 5

# name -> (max requests, window seconds)
DEFAULT_RATE_LIMITS = {
    "search": (30, 60.0),
    "ai": (5, 60.0),
    "home_recommendations": (10, 60.0),
    "book_recommendations": (20, 60.0),
}
DEFAULT_OUTBOUND_RATE_LIMITS = {
    "google": (100, 60.0),
    "openlibrary": (100, 60.0),
}

VAULT_FILE_ENV = "DISCOVERY_VAULT_FILE"

__all__ = [
    "CONF_DIR",
    "DEFAULT_CATALOG_TIMEOUT_SECONDS",
    "DEFAULT_CONFIG_PATH",
    "DEFAULT_DAILY_PICK_WINDOW",
    "DEFAULT_DATABASE_URL",
    "DEFAULT_FALLBACK_CATALOG",
    "DEFAULT_FANOUT_LIMIT",
    "DEFAULT_GENERATOR_MODEL",
    "DEFAULT_GENERATOR_TIMEOUT_SECONDS",
    "DEFAULT_GENERATOR_URL",
    "DEFAULT_GOOGLE_BOOKS_URL",
    "DEFAULT_LOCAL_CONFIG_PATH",
    "DEFAULT_OPENLIBRARY_COVERS_URL",
    "DEFAULT_OPENLIBRARY_URL",
    "DEFAULT_OUTBOUND_RATE_LIMITS",
    "DEFAULT_PRIMARY_CATALOG",
    "DEFAULT_RATE_LIMITS",
    "DEFAULT_SWEEP_THRESHOLD",
    "DEFAULT_TRENDING_MIN_BOOKS",
    "MODULE_DIR",
    "PACKAGE_DIR",
    "PROJECT_DIR",
    "SENSITIVE_CONFIG_KEYS",
    "VAULT_FILE_ENV",
]
