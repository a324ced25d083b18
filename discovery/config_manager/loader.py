"""Configuration loading utilities."""
from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError

from discovery import logging_manager

from .constants import (
    DEFAULT_CONFIG_PATH,
    DEFAULT_LOCAL_CONFIG_PATH,
    SENSITIVE_CONFIG_KEYS,
    VAULT_FILE_ENV,
)
from .settings import (
    DiscoverySettings,
    apply_settings_updates,
    load_environment_overrides,
    load_vault_secrets,
)

logger = logging_manager.get_logger().getChild("config")

CONFIG_FILE_ENV = "DISCOVERY_CONFIG_FILE"

_ACTIVE_SETTINGS: Optional[DiscoverySettings] = None


def _read_config_json(path: Optional[Path], label: str = "configuration") -> Dict[str, Any]:
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as handle:
            data = json.load(handle)
    except FileNotFoundError:
        logger.debug("No %s found at %s.", label, path, extra={"event": "config.file.missing"})
        return {}
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning(
            "Error loading %s from %s: %s. Proceeding without it.",
            label,
            path,
            exc,
            extra={"event": "config.file.invalid"},
        )
        return {}
    if not isinstance(data, dict):
        logger.warning(
            "Ignoring %s at %s: expected a JSON object.",
            label,
            path,
            extra={"event": "config.file.invalid"},
        )
        return {}
    logger.debug("Loaded %s from %s", label, path, extra={"event": "config.file.loaded"})
    return data


def _deep_merge_dict(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    result = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_merge_dict(result[key], value)
        else:
            result[key] = value
    return result


def _resolve_override_path(config_file: Optional[str]) -> Path:
    candidate = config_file or os.environ.get(CONFIG_FILE_ENV)
    if not candidate:
        return DEFAULT_LOCAL_CONFIG_PATH
    path = Path(candidate).expanduser()
    if not path.is_absolute():
        path = (Path.cwd() / path).resolve()
    return path


def load_configuration(config_file: Optional[str] = None) -> DiscoverySettings:
    """Load the layered configuration and activate it.

    Layers, lowest precedence first: ``conf/config.json``, the local override
    file (``conf/config.local.json`` or ``config_file``), vault secrets, then
    environment variables.
    """

    global _ACTIVE_SETTINGS

    payload = _read_config_json(DEFAULT_CONFIG_PATH, label="default configuration")
    override_path = _resolve_override_path(config_file)
    payload = _deep_merge_dict(
        payload, _read_config_json(override_path, label="local configuration")
    )

    try:
        settings = DiscoverySettings.model_validate(payload)
    except ValidationError as exc:
        raise RuntimeError("Invalid configuration detected") from exc

    vault_path = os.environ.get(VAULT_FILE_ENV)
    if vault_path:
        vault_updates = load_vault_secrets(Path(vault_path).expanduser())
        if vault_updates:
            logger.info(
                "Loaded secret overrides from vault file at %s",
                vault_path,
                extra={"event": "config.vault.loaded"},
            )
        settings = apply_settings_updates(settings, dict(vault_updates))
    settings = apply_settings_updates(settings, load_environment_overrides())

    _ACTIVE_SETTINGS = settings
    return settings


def export_configuration(settings: Optional[DiscoverySettings] = None) -> Dict[str, Any]:
    """Return a JSON-friendly view of ``settings`` without secret values."""

    active = settings or get_settings()
    return active.model_dump(mode="json", exclude=set(SENSITIVE_CONFIG_KEYS))


def get_settings() -> DiscoverySettings:
    """Return the currently loaded :class:`DiscoverySettings` instance."""

    if _ACTIVE_SETTINGS is None:
        return load_configuration()
    return _ACTIVE_SETTINGS


def set_settings(settings: DiscoverySettings) -> None:
    """Activate ``settings`` directly, bypassing the file layers."""

    global _ACTIVE_SETTINGS
    _ACTIVE_SETTINGS = settings


def reset_settings() -> None:
    """Forget the active settings so the next lookup reloads them."""

    global _ACTIVE_SETTINGS
    _ACTIVE_SETTINGS = None


__all__ = [
    "CONFIG_FILE_ENV",
    "export_configuration",
    "get_settings",
    "load_configuration",
    "reset_settings",
    "set_settings",
]
