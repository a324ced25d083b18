"""Catalog adapters, one per upstream provider."""

from .base import BaseCatalogClient
from .google_books import GoogleBooksClient
from .openlibrary import OpenLibraryClient

__all__ = ["BaseCatalogClient", "GoogleBooksClient", "OpenLibraryClient"]
