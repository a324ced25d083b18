"""Catalog search: normalized types, provider adapters and the registry."""

from .clients import BaseCatalogClient, GoogleBooksClient, OpenLibraryClient
from .registry import CatalogRegistry, create_registry_from_settings
from .types import (
    BookSource,
    CuratedItem,
    NormalizedBook,
    ResultOrigin,
    SearchMode,
    SearchRequest,
    SearchResult,
)

__all__ = [
    "BaseCatalogClient",
    "BookSource",
    "CatalogRegistry",
    "CuratedItem",
    "GoogleBooksClient",
    "NormalizedBook",
    "OpenLibraryClient",
    "ResultOrigin",
    "SearchMode",
    "SearchRequest",
    "SearchResult",
    "create_registry_from_settings",
]
