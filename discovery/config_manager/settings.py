"""Pydantic models and helper utilities for configuration values."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    ValidationError,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from discovery import logging_manager

from .constants import (
    DEFAULT_CATALOG_TIMEOUT_SECONDS,
    DEFAULT_DAILY_PICK_WINDOW,
    DEFAULT_FALLBACK_CATALOG,
    DEFAULT_FANOUT_LIMIT,
    DEFAULT_GENERATOR_MODEL,
    DEFAULT_GENERATOR_TIMEOUT_SECONDS,
    DEFAULT_GENERATOR_URL,
    DEFAULT_GOOGLE_BOOKS_URL,
    DEFAULT_OPENLIBRARY_COVERS_URL,
    DEFAULT_OPENLIBRARY_URL,
    DEFAULT_OUTBOUND_RATE_LIMITS,
    DEFAULT_PRIMARY_CATALOG,
    DEFAULT_RATE_LIMITS,
    DEFAULT_SWEEP_THRESHOLD,
    DEFAULT_TRENDING_MIN_BOOKS,
    SENSITIVE_CONFIG_KEYS,
)

logger = logging_manager.get_logger()


class RateLimitSettings(BaseModel):
    """Request budget for one fixed window."""

    max_requests: int = Field(ge=1)
    window_seconds: float = Field(default=60.0, gt=0)


def _limits(defaults: Dict[str, tuple[int, float]]) -> Dict[str, RateLimitSettings]:
    return {
        name: RateLimitSettings(max_requests=count, window_seconds=window)
        for name, (count, window) in defaults.items()
    }


class CacheTTLSettings(BaseModel):
    """Time-to-live overrides per cache class, in seconds."""

    search_results: int = 300
    recommendations: int = 86400
    related_books: int = 86400
    book_metadata: int = 604800
    generator: int = 86400


class DiscoverySettings(BaseModel):
    """Typed representation of the application configuration."""

    model_config = ConfigDict(extra="allow")

    google_books_api_key: Optional[SecretStr] = None
    google_books_url: str = DEFAULT_GOOGLE_BOOKS_URL
    openlibrary_url: str = DEFAULT_OPENLIBRARY_URL
    openlibrary_covers_url: str = DEFAULT_OPENLIBRARY_COVERS_URL
    primary_catalog: str = DEFAULT_PRIMARY_CATALOG
    fallback_catalog: Optional[str] = DEFAULT_FALLBACK_CATALOG
    catalog_timeout_seconds: float = DEFAULT_CATALOG_TIMEOUT_SECONDS
    fanout_limit: int = DEFAULT_FANOUT_LIMIT

    rate_limits: Dict[str, RateLimitSettings] = Field(
        default_factory=lambda: _limits(DEFAULT_RATE_LIMITS)
    )
    outbound_rate_limits: Dict[str, RateLimitSettings] = Field(
        default_factory=lambda: _limits(DEFAULT_OUTBOUND_RATE_LIMITS)
    )
    rate_limit_sweep_threshold: int = DEFAULT_SWEEP_THRESHOLD

    redis_url: Optional[SecretStr] = None
    cache_namespace: str = "discovery"
    cache_ttl: CacheTTLSettings = Field(default_factory=CacheTTLSettings)

    database_url: Optional[SecretStr] = None

    generator_enabled: bool = True
    generator_url: str = DEFAULT_GENERATOR_URL
    generator_model: str = DEFAULT_GENERATOR_MODEL
    generator_api_key: Optional[SecretStr] = None
    generator_timeout_seconds: float = DEFAULT_GENERATOR_TIMEOUT_SECONDS

    daily_pick_window_size: int = DEFAULT_DAILY_PICK_WINDOW
    trending_min_books: int = DEFAULT_TRENDING_MIN_BOOKS

    log_level: str = "INFO"

    @field_validator("primary_catalog", "fallback_catalog", mode="before")
    @classmethod
    def _normalize_catalog(cls, value: Any) -> Any:
        if isinstance(value, str):
            stripped = value.strip().lower()
            return stripped or None
        return value

    @field_validator("rate_limits", "outbound_rate_limits", mode="before")
    @classmethod
    def _merge_default_limits(cls, value: Any, info) -> Any:
        defaults = (
            DEFAULT_RATE_LIMITS if info.field_name == "rate_limits" else DEFAULT_OUTBOUND_RATE_LIMITS
        )
        if not isinstance(value, dict):
            return value
        merged: Dict[str, Any] = {
            name: {"max_requests": count, "window_seconds": window}
            for name, (count, window) in defaults.items()
        }
        for name, entry in value.items():
            if isinstance(entry, RateLimitSettings):
                entry = entry.model_dump()
            if isinstance(entry, dict):
                merged[name] = {**merged.get(name, {}), **entry}
            else:
                merged[name] = entry
        return merged


class EnvironmentOverrides(BaseSettings):
    """Configuration overrides sourced from environment variables."""

    model_config = SettingsConfigDict(env_prefix="", extra="ignore")

    google_books_api_key: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("GOOGLE_BOOKS_API_KEY", "DISCOVERY_GOOGLE_BOOKS_API_KEY"),
    )
    google_books_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("DISCOVERY_GOOGLE_BOOKS_URL")
    )
    openlibrary_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("DISCOVERY_OPENLIBRARY_URL")
    )
    primary_catalog: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("DISCOVERY_PRIMARY_CATALOG")
    )
    fallback_catalog: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("DISCOVERY_FALLBACK_CATALOG")
    )
    catalog_timeout_seconds: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices("DISCOVERY_CATALOG_TIMEOUT", "DISCOVERY_CATALOG_TIMEOUT_SECONDS"),
    )
    fanout_limit: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("DISCOVERY_FANOUT_LIMIT")
    )
    rate_limit_sweep_threshold: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("DISCOVERY_RATE_LIMIT_SWEEP_THRESHOLD")
    )
    redis_url: Optional[SecretStr] = Field(
        default=None, validation_alias=AliasChoices("REDIS_URL", "DISCOVERY_REDIS_URL")
    )
    cache_namespace: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("DISCOVERY_CACHE_NAMESPACE")
    )
    database_url: Optional[SecretStr] = Field(
        default=None, validation_alias=AliasChoices("DATABASE_URL", "DISCOVERY_DATABASE_URL")
    )
    generator_enabled: Optional[bool] = Field(
        default=None, validation_alias=AliasChoices("DISCOVERY_GENERATOR_ENABLED")
    )
    generator_url: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("OLLAMA_URL", "DISCOVERY_GENERATOR_URL")
    )
    generator_model: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("OLLAMA_MODEL", "DISCOVERY_GENERATOR_MODEL")
    )
    generator_api_key: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("OLLAMA_API_KEY", "DISCOVERY_GENERATOR_API_KEY"),
    )
    generator_timeout_seconds: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices("DISCOVERY_GENERATOR_TIMEOUT", "DISCOVERY_GENERATOR_TIMEOUT_SECONDS"),
    )
    daily_pick_window_size: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("DISCOVERY_DAILY_PICK_WINDOW")
    )
    trending_min_books: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("DISCOVERY_TRENDING_MIN_BOOKS")
    )
    log_level: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("DISCOVERY_LOG_LEVEL", "LOG_LEVEL")
    )


def load_environment_overrides() -> Dict[str, Any]:
    """Return configuration overrides sourced from environment variables."""

    try:
        overrides = EnvironmentOverrides()
    except ValidationError as exc:
        logger.warning(
            "Invalid environment configuration detected; using defaults.",
            extra={"event": "config.env.validation_error", "error": str(exc)},
        )
        return {}
    return overrides.model_dump(exclude_none=True)


def load_vault_secrets(path: Path) -> Dict[str, SecretStr]:
    """Attempt to read secret values from a vault-style JSON document."""

    try:
        with open(path, "r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except FileNotFoundError:
        logger.debug(
            "Vault secret file not found at %s; skipping.",
            path,
            extra={"event": "config.vault.missing"},
        )
        return {}
    except json.JSONDecodeError as exc:
        logger.warning(
            "Failed to parse vault secret file at %s: %s",
            path,
            exc,
            extra={"event": "config.vault.invalid"},
        )
        return {}

    secrets: Dict[str, SecretStr] = {}
    for key in sorted(SENSITIVE_CONFIG_KEYS):
        value = payload.get(key)
        if value:
            secrets[key] = SecretStr(str(value))
    return secrets


def apply_settings_updates(
    settings: DiscoverySettings, updates: Dict[str, Any]
) -> DiscoverySettings:
    """Return a copy of ``settings`` updated with ``updates`` if any values exist."""

    if not updates:
        return settings
    payload = settings.model_dump(mode="python")
    payload.update(updates)
    return DiscoverySettings.model_validate(payload)


def secret_value(value: Optional[SecretStr]) -> Optional[str]:
    """Unwrap ``value`` returning ``None`` for blank secrets."""

    if value is None:
        return None
    raw = value.get_secret_value().strip()
    return raw or None


__all__ = [
    "CacheTTLSettings",
    "DiscoverySettings",
    "EnvironmentOverrides",
    "RateLimitSettings",
    "apply_settings_updates",
    "load_environment_overrides",
    "load_vault_secrets",
    "secret_value",
]
