from __future__ import annotations

from typing import Iterator

import pytest

from discovery import config_manager as cfg
from discovery.database.engine import dispose_engine
from discovery.webapi.dependencies import get_services


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[cfg.DiscoverySettings]:
    """Activate default settings that never touch real backends."""

    for name in ("REDIS_URL", "DISCOVERY_REDIS_URL", "DATABASE_URL", "DISCOVERY_CONFIG_FILE"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("DISCOVERY_DATABASE_URL", "sqlite:///:memory:")
    settings = cfg.DiscoverySettings(
        database_url="sqlite:///:memory:",
        generator_enabled=False,
    )
    cfg.set_settings(settings)
    yield settings
    cfg.reset_settings()
    get_services.cache_clear()
    dispose_engine()
