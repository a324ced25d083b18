"""Catalog registry and primary/fallback chain configuration."""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

import httpx

from discovery import logging_manager as log_mgr

from .clients.base import BaseCatalogClient
from .clients.google_books import GoogleBooksClient
from .clients.openlibrary import OpenLibraryClient
from .types import BookSource

logger = log_mgr.get_logger().getChild("services.catalog.registry")


class CatalogRegistry:
    """Holds the catalog adapters and the order they are consulted in.

    The chain is ``[primary, fallback]``; adapters that are unavailable
    (for example a provider needing a missing key) are skipped.
    """

    def __init__(
        self,
        clients: Iterable[BaseCatalogClient],
        *,
        primary: BookSource | str = BookSource.GOOGLE,
        fallback: Optional[BookSource | str] = BookSource.OPENLIBRARY,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._clients: Dict[BookSource, BaseCatalogClient] = {client.name: client for client in clients}
        self._primary = BookSource(primary)
        self._fallback = BookSource(fallback) if fallback else None
        if self._fallback == self._primary:
            self._fallback = None
        self._http_client = http_client

    def get_client(self, source: BookSource | str) -> Optional[BaseCatalogClient]:
        try:
            key = BookSource(source)
        except ValueError:
            return None
        client = self._clients.get(key)
        if client is None or not client.is_available:
            return None
        return client

    @property
    def primary(self) -> Optional[BaseCatalogClient]:
        return self.get_client(self._primary)

    @property
    def fallback(self) -> Optional[BaseCatalogClient]:
        if self._fallback is None:
            return None
        return self.get_client(self._fallback)

    def chain(self) -> List[BaseCatalogClient]:
        """Return the available adapters in consultation order."""
        return [client for client in (self.primary, self.fallback) if client is not None]

    def sources(self) -> List[str]:
        return [client.source for client in self.chain()]

    async def aclose(self) -> None:
        """Close every adapter and the shared HTTP client."""
        for client in self._clients.values():
            await client.aclose()
        if self._http_client is not None:
            await self._http_client.aclose()


def create_registry_from_settings(
    settings,
    *,
    http_client: Optional[httpx.AsyncClient] = None,
) -> CatalogRegistry:
    """Build a registry with one shared ``httpx.AsyncClient`` from settings.

    Args:
        settings: A :class:`~discovery.config_manager.DiscoverySettings`.
        http_client: Optional client to share; created when omitted.

    Returns:
        Configured CatalogRegistry.
    """
    from discovery.config_manager import secret_value

    shared = http_client or httpx.AsyncClient(
        timeout=settings.catalog_timeout_seconds,
        headers={"User-Agent": "discovery/1.0"},
        follow_redirects=True,
    )
    timeout = settings.catalog_timeout_seconds
    clients: List[BaseCatalogClient] = [
        GoogleBooksClient(
            client=shared,
            api_key=secret_value(settings.google_books_api_key),
            timeout_seconds=timeout,
            base_url=settings.google_books_url,
        ),
        OpenLibraryClient(
            client=shared,
            timeout_seconds=timeout,
            base_url=settings.openlibrary_url,
            covers_url=settings.openlibrary_covers_url,
        ),
    ]
    registry = CatalogRegistry(
        clients,
        primary=settings.primary_catalog,
        fallback=settings.fallback_catalog,
        http_client=shared if http_client is None else None,
    )
    logger.info(
        "Catalog chain configured: %s",
        " -> ".join(registry.sources()) or "(empty)",
        extra={"event": "catalog.chain"},
    )
    return registry


__all__ = ["CatalogRegistry", "create_registry_from_settings"]
