"""Base class for catalog API clients."""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any, List, Mapping, Optional

import httpx

from discovery import logging_manager as log_mgr
from discovery.errors import ProviderUnavailable

from ..types import BookSource, NormalizedBook

logger = log_mgr.get_logger().getChild("services.catalog.clients")

_QUOTA_MARKERS = ("quota", "ratelimitexceeded", "dailylimitexceeded", "userratelimitexceeded")


def _is_quota_response(response: httpx.Response) -> bool:
    if response.status_code == 429:
        return True
    if response.status_code != 403:
        return False
    body = response.text.lower()
    return any(marker in body for marker in _QUOTA_MARKERS)


class BaseCatalogClient(ABC):
    """Abstract base class for catalog adapters.

    Every adapter translates one provider's schema into
    :class:`NormalizedBook` records. Transport failures, non-2xx replies,
    malformed JSON and quota responses surface as
    :class:`ProviderUnavailable`; no other exception type escapes.
    """

    name: BookSource
    requires_api_key: bool = False

    def __init__(
        self,
        *,
        client: Optional[httpx.AsyncClient] = None,
        api_key: Optional[str] = None,
        timeout_seconds: float = 5.0,
        base_url: str = "",
    ) -> None:
        """Initialize the client.

        Args:
            client: Optional shared ``httpx.AsyncClient`` for connection pooling.
            api_key: API key for services that require or accept one.
            timeout_seconds: Per-request timeout.
            base_url: Root URL of the provider API.
        """
        self._client = client or httpx.AsyncClient()
        self._owns_client = client is None
        self._api_key = api_key
        self._timeout = timeout_seconds
        self._base_url = base_url.rstrip("/")

    @property
    def source(self) -> str:
        return self.name.value

    @property
    def is_available(self) -> bool:
        """Return True unless the provider needs a key that is missing."""
        return not (self.requires_api_key and not self._api_key)

    @abstractmethod
    async def search(self, query: str, max_results: int) -> List[NormalizedBook]:
        """Return up to ``max_results`` normalized books matching ``query``."""

    @abstractmethod
    async def get_by_id(self, book_id: str) -> Optional[NormalizedBook]:
        """Return the book identified by ``book_id`` or ``None`` when unknown."""

    async def aclose(self) -> None:
        """Release the HTTP client when this adapter created it."""
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "BaseCatalogClient":
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()

    async def _get_json(
        self,
        url: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        allow_not_found: bool = False,
    ) -> Optional[Any]:
        """GET ``url`` and decode the JSON body.

        Returns ``None`` only for a 404 when ``allow_not_found`` is set.
        """
        try:
            response = await self._client.get(
                url,
                params=dict(params or {}),
                headers={"Accept": "application/json"},
                timeout=self._timeout,
            )
        except httpx.TimeoutException as exc:
            raise ProviderUnavailable(self.source, f"{self.source} timed out", cause=exc) from exc
        except httpx.HTTPError as exc:
            raise ProviderUnavailable(
                self.source, f"{self.source} request failed: {exc}", cause=exc
            ) from exc

        if response.status_code == 404 and allow_not_found:
            return None
        if _is_quota_response(response):
            logger.warning(
                "%s quota exhausted (HTTP %s)",
                self.source,
                response.status_code,
                extra={"event": "catalog.quota", "source": self.source, "status": response.status_code},
            )
            raise ProviderUnavailable(self.source, f"{self.source} quota exceeded")
        if not response.is_success:
            raise ProviderUnavailable(
                self.source, f"{self.source} returned HTTP {response.status_code}"
            )
        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ProviderUnavailable(
                self.source, f"{self.source} returned malformed JSON", cause=exc
            ) from exc


__all__ = ["BaseCatalogClient"]
