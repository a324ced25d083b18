"""High-level configuration management for the discovery service."""
from __future__ import annotations

from .constants import (
    CONF_DIR,
    DEFAULT_CONFIG_PATH,
    DEFAULT_LOCAL_CONFIG_PATH,
    SENSITIVE_CONFIG_KEYS,
    VAULT_FILE_ENV,
)
from .loader import (
    CONFIG_FILE_ENV,
    export_configuration,
    get_settings,
    load_configuration,
    reset_settings,
    set_settings,
)
from .settings import (
    CacheTTLSettings,
    DiscoverySettings,
    EnvironmentOverrides,
    RateLimitSettings,
    secret_value,
)

__all__ = [
    "CONF_DIR",
    "CONFIG_FILE_ENV",
    "CacheTTLSettings",
    "DEFAULT_CONFIG_PATH",
    "DEFAULT_LOCAL_CONFIG_PATH",
    "DiscoverySettings",
    "EnvironmentOverrides",
    "RateLimitSettings",
    "SENSITIVE_CONFIG_KEYS",
    "VAULT_FILE_ENV",
    "export_configuration",
    "get_settings",
    "load_configuration",
    "reset_settings",
    "secret_value",
    "set_settings",
]
