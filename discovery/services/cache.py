"""Advisory cache for search results, recommendations and book metadata."""

from __future__ import annotations

import asyncio
import hashlib
import json
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional, Protocol, Tuple

from redis.asyncio import Redis
from redis.exceptions import RedisError

from discovery import logging_manager as log_mgr
from discovery.errors import CacheUnavailable
from discovery.metrics import CACHE_EVENTS

logger = log_mgr.get_logger().getChild("services.cache")


class CacheTTL:
    """Server-side time-to-live per cache class, in seconds."""

    SEARCH_RESULTS = 300
    RECOMMENDATIONS = 86400
    RELATED_BOOKS = 86400
    BOOK_METADATA = 604800
    GENERATOR = 86400


class ClientMaxAge:
    """``Cache-Control`` max-age advertised to clients, in seconds."""

    SEARCH_RESULTS = 300
    RECOMMENDATIONS = 1800
    BOOK_METADATA = 3600


def cache_control(max_age: Optional[int]) -> str:
    """Render a ``Cache-Control`` header value; ``None`` means no-cache."""
    if not max_age:
        return "no-cache"
    return f"public, max-age={int(max_age)}"


def normalize_query(query: str) -> str:
    """Trim, collapse whitespace and lowercase ``query``."""
    return " ".join((query or "").split()).lower()


def _digest(value: str, length: int = 16) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:length]


class CacheKeys:
    """Deterministic key builders derived from semantic request fields."""

    @staticmethod
    def search(mode: str, query: str, max_results: int, start_index: int = 0) -> str:
        return f"search:{mode}:{_digest(normalize_query(query))}:{max_results}:{start_index}"

    @staticmethod
    def home_recommendations(user_id: str, max_recommendations: int, include_favorites: bool) -> str:
        return f"recs:home:{user_id}:{max_recommendations}:{int(bool(include_favorites))}"

    @staticmethod
    def related_books(book_id: str, **options: Any) -> str:
        rendered = json.dumps(options, sort_keys=True, default=str)
        return f"recs:book:{book_id}:{_digest(rendered)}"

    @staticmethod
    def book(source: str, book_id: str) -> str:
        return f"book:{source}:{book_id}"

    @staticmethod
    def generator(payload: Mapping[str, Any]) -> str:
        rendered = json.dumps(dict(payload), sort_keys=True, default=str)
        return f"generator:{_digest(rendered)}"


@dataclass(slots=True)
class CacheEntry:
    """A cached value together with the moment it was stored."""

    value: Any
    cached_at: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps({"value": self.value, "cachedAt": self.cached_at}, ensure_ascii=False)

    @classmethod
    def from_json(cls, raw: str) -> "CacheEntry":
        data = json.loads(raw)
        if not isinstance(data, dict) or "value" not in data:
            raise ValueError("Malformed cache entry")
        return cls(value=data["value"], cached_at=data.get("cachedAt"))


class CacheStore(Protocol):
    """Backing storage for :class:`CacheGateway`.

    Implementations raise :class:`CacheUnavailable` on backend failure.
    """

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        ...

    async def delete(self, key: str) -> bool:
        ...

    async def close(self) -> None:
        ...


class InMemoryCacheStore:
    """Process-local TTL dictionary."""

    def __init__(self, *, clock: Optional[Callable[[], float]] = None, max_entries: int = 10000) -> None:
        self._clock = clock or time.monotonic
        self._max_entries = max(1, max_entries)
        self._entries: Dict[str, Tuple[str, float]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        now = self._clock()
        if len(self._entries) >= self._max_entries and key not in self._entries:
            self._evict(now)
        self._entries[key] = (value, now + max(1, int(ttl_seconds)))

    async def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    async def close(self) -> None:
        self._entries.clear()

    def _evict(self, now: float) -> None:
        expired = [key for key, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        if len(self._entries) >= self._max_entries:
            oldest = min(self._entries, key=lambda item: self._entries[item][1])
            del self._entries[oldest]


class RedisCacheStore:
    """Cache store backed by ``redis.asyncio``."""

    def __init__(self, url: Optional[str] = None, *, client: Optional[Redis] = None) -> None:
        if client is None:
            if not url:
                raise ValueError("RedisCacheStore requires a url or a client")
            client = Redis.from_url(url, decode_responses=True, encoding="utf-8")
        self._client = client

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._client.get(key)
        except RedisError as exc:
            raise CacheUnavailable(f"Redis GET failed: {exc}") from exc

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self._client.setex(key, max(1, int(ttl_seconds)), value)
        except RedisError as exc:
            raise CacheUnavailable(f"Redis SETEX failed: {exc}") from exc

    async def delete(self, key: str) -> bool:
        try:
            return bool(await self._client.delete(key))
        except RedisError as exc:
            raise CacheUnavailable(f"Redis DEL failed: {exc}") from exc

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError as exc:
            raise CacheUnavailable(f"Redis PING failed: {exc}") from exc

    async def close(self) -> None:
        await self._client.aclose()


_STORE_FAILURES = (CacheUnavailable, OSError, asyncio.TimeoutError)


class CacheGateway:
    """Namespaced JSON cache that never raises.

    Store failures are logged and counted, then treated as a miss (reads)
    or a no-op (writes).
    """

    def __init__(self, store: Optional[CacheStore] = None, *, namespace: str = "discovery") -> None:
        self._store: CacheStore = store if store is not None else InMemoryCacheStore()
        self._namespace = namespace.strip(":")

    @property
    def store(self) -> CacheStore:
        return self._store

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}" if self._namespace else key

    async def get_entry(self, key: str) -> Optional[CacheEntry]:
        try:
            raw = await self._store.get(self._key(key))
        except _STORE_FAILURES as exc:
            self._failure("get", key, exc)
            return None
        if raw is None:
            CACHE_EVENTS.labels(outcome="miss").inc()
            return None
        try:
            entry = CacheEntry.from_json(raw)
        except ValueError as exc:
            logger.debug("Discarding unreadable cache entry %s: %s", key, exc)
            CACHE_EVENTS.labels(outcome="corrupt").inc()
            return None
        CACHE_EVENTS.labels(outcome="hit").inc()
        logger.debug("Cache hit for key %s", key, extra={"event": "cache.hit"})
        return entry

    async def get(self, key: str) -> Optional[Any]:
        """Return the cached value for ``key`` or ``None`` on miss or failure."""
        entry = await self.get_entry(key)
        return None if entry is None else entry.value

    async def set(self, key: str, value: Any, ttl_seconds: int) -> bool:
        """Store ``value`` under ``key``; return ``False`` when the write failed."""
        entry = CacheEntry(value=value, cached_at=datetime.now(timezone.utc).isoformat())
        try:
            payload = entry.to_json()
        except (TypeError, ValueError) as exc:
            logger.warning("Refusing to cache unserializable value for %s: %s", key, exc)
            return False
        try:
            await self._store.set(self._key(key), payload, ttl_seconds)
        except _STORE_FAILURES as exc:
            self._failure("set", key, exc)
            return False
        CACHE_EVENTS.labels(outcome="write").inc()
        return True

    async def delete(self, key: str) -> bool:
        try:
            return await self._store.delete(self._key(key))
        except _STORE_FAILURES as exc:
            self._failure("delete", key, exc)
            return False

    async def close(self) -> None:
        try:
            await self._store.close()
        except _STORE_FAILURES as exc:
            self._failure("close", "*", exc)

    def _failure(self, operation: str, key: str, exc: BaseException) -> None:
        CACHE_EVENTS.labels(outcome="error").inc()
        logger.warning(
            "Cache %s failed for %s: %s",
            operation,
            key,
            exc,
            extra={"event": "cache.error", "status": operation},
        )


def build_cache_store(redis_url: Optional[str]) -> CacheStore:
    """Return a Redis store when ``redis_url`` is set, else an in-memory one."""
    if redis_url:
        logger.info("Using Redis cache store", extra={"event": "cache.backend", "source": "redis"})
        return RedisCacheStore(redis_url)
    return InMemoryCacheStore()


__all__ = [
    "CacheEntry",
    "CacheGateway",
    "CacheKeys",
    "CacheStore",
    "CacheTTL",
    "ClientMaxAge",
    "InMemoryCacheStore",
    "RedisCacheStore",
    "build_cache_store",
    "cache_control",
    "normalize_query",
]
