"""Discovery services: rate limiting, caching, catalogs, orchestration."""
