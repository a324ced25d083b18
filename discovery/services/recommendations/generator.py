"""Text-generation port used to turn prompts and user context into book titles."""

from __future__ import annotations

import json
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Protocol

import httpx

from discovery import logging_manager as log_mgr
from discovery.errors import ProviderUnavailable
from discovery.metrics import GENERATOR_FAILURES

from ..cache import CacheGateway, CacheKeys, CacheTTL

logger = log_mgr.get_logger().getChild("services.recommendations.generator")

GENERATOR_SOURCE = "generator"

MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 1.0
DEFAULT_CONFIDENCE = 0.5
EXTRACTED_CONFIDENCE = 0.4
MAX_EXTRACTED = 5

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
_NUMBERED_LINE = re.compile(r"^\d+\.\s*(.+?)(?:\s+by\s+(.+?))?$", re.IGNORECASE)
_BULLET_LINE = re.compile(r"^-\s*(.+?)(?:\s+by\s+(.+?))?$", re.IGNORECASE)

SYSTEM_PROMPT = (
    "You are a knowledgeable book recommendation assistant. "
    "Always respond with valid JSON following the exact format requested."
)


@dataclass(slots=True)
class TitleSuggestion:
    """One candidate title proposed by the generator."""

    title: str
    author: Optional[str] = None
    reason: str = ""
    confidence: float = DEFAULT_CONFIDENCE

    def search_terms(self) -> str:
        """Return the catalog query used to resolve this suggestion."""
        if self.author:
            return f"{self.title} {self.author}"
        return self.title

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TitleSuggestion":
        return cls(
            title=str(data.get("title", "")),
            author=data.get("author"),
            reason=str(data.get("reason", "")),
            confidence=_clamp_confidence(data.get("confidence")),
        )


@dataclass(slots=True)
class GeneratorRequest:
    """Context handed to the generator.

    ``kind`` is ``search`` for prompt-driven queries, ``home`` for the
    personalised feed and ``similar`` for the book page.
    """

    kind: str = "search"
    query: Optional[str] = None
    preferences: List[str] = field(default_factory=list)
    favorite_genres: List[str] = field(default_factory=list)
    recent_activity: List[str] = field(default_factory=list)
    exclude_titles: List[str] = field(default_factory=list)
    max_recommendations: int = 5

    def cache_payload(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "query": (self.query or "").strip().lower(),
            "preferences": sorted(self.preferences),
            "genres": sorted(self.favorite_genres),
            "activity": list(self.recent_activity),
            "exclude": sorted(self.exclude_titles),
            "max": self.max_recommendations,
        }


class RecommendationGenerator(Protocol):
    """Anything able to propose titles for a :class:`GeneratorRequest`.

    Implementations raise :class:`ProviderUnavailable` on failure.
    """

    async def suggest(self, request: GeneratorRequest) -> List[TitleSuggestion]:
        ...


def _clamp_confidence(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return DEFAULT_CONFIDENCE
    if number != number or number == 0:
        return DEFAULT_CONFIDENCE
    return min(max(number, MIN_CONFIDENCE), MAX_CONFIDENCE)


def _strip_fences(text: str) -> str:
    return _FENCE_PATTERN.sub("", text).replace("```", "").strip()


def _extract_from_lines(text: str) -> List[TitleSuggestion]:
    suggestions: List[TitleSuggestion] = []
    for line in text.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        match = _NUMBERED_LINE.match(stripped) or _BULLET_LINE.match(stripped)
        if not match:
            continue
        title = match.group(1).strip().strip('"').strip()
        if not title:
            continue
        author = match.group(2).strip() if match.group(2) else None
        suggestions.append(
            TitleSuggestion(
                title=title,
                author=author,
                reason="Extracted from AI response",
                confidence=EXTRACTED_CONFIDENCE,
            )
        )
        if len(suggestions) >= MAX_EXTRACTED:
            break
    return suggestions


def parse_generator_response(text: str) -> List[TitleSuggestion]:
    """Parse the generator output into suggestions.

    Accepts ``{"recommendations": [...]}`` JSON, optionally wrapped in
    markdown fences. Anything else falls back to picking ``1. Title by
    Author`` or ``- Title`` lines.
    """
    if not text or not text.strip():
        return []
    cleaned = _strip_fences(text)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        logger.debug("Generator returned non-JSON output; extracting titles from text")
        return _extract_from_lines(cleaned)

    entries = parsed.get("recommendations") if isinstance(parsed, dict) else None
    if not isinstance(entries, list):
        return _extract_from_lines(cleaned)

    suggestions: List[TitleSuggestion] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        title = str(entry.get("title") or "").strip()
        reason = str(entry.get("reason") or "").strip()
        if not title or not reason:
            continue
        author = str(entry.get("author")).strip() if entry.get("author") else None
        suggestions.append(
            TitleSuggestion(
                title=title,
                author=author or None,
                reason=reason,
                confidence=_clamp_confidence(entry.get("confidence")),
            )
        )
    return suggestions


def build_prompt(request: GeneratorRequest) -> str:
    """Render the user prompt for ``request``."""
    count = request.max_recommendations
    if request.kind == "home":
        lines = [f"Generate {count} personalized book recommendations for a user's home feed."]
        if request.recent_activity:
            lines.append("Recent user activity:")
            lines.extend(f"- {entry}" for entry in request.recent_activity[-5:])
    elif request.kind == "similar":
        lines = [
            f"Generate {count} books similar to {request.query or 'the specified book'}.",
            "Find books that share similar themes, genres, writing style, or target audience.",
        ]
    else:
        lines = [
            f'Generate {count} book recommendations based on this query: "{request.query or "general interest"}"'
        ]
    if request.preferences:
        lines.append(f"User preferences: {', '.join(request.preferences)}")
    if request.favorite_genres:
        lines.append(f"User's favorite genres: {', '.join(request.favorite_genres)}")
    if request.exclude_titles:
        lines.append(f"Exclude these books: {', '.join(request.exclude_titles)}")
    lines.append(
        "Focus on well-known books likely to be found in Google Books or Open Library.\n"
        'Return JSON: {"recommendations": [{"title": "...", "author": "...", '
        '"reason": "...", "confidence": 0.8}]}. Confidence is between 0.1 and 1.0.'
    )
    return "\n".join(lines)


class OllamaRecommendationGenerator:
    """Generator backed by an Ollama-compatible ``/api/chat`` endpoint."""

    def __init__(
        self,
        *,
        api_url: str,
        model: str,
        api_key: Optional[str] = None,
        timeout_seconds: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
        cache: Optional[CacheGateway] = None,
        cache_ttl: int = CacheTTL.GENERATOR,
    ) -> None:
        self._api_url = api_url
        self._model = model
        self._api_key = api_key
        self._timeout = timeout_seconds
        self._client = client or httpx.AsyncClient()
        self._owns_client = client is None
        self._cache = cache
        self._cache_ttl = cache_ttl

    @property
    def model(self) -> str:
        return self._model

    async def suggest(self, request: GeneratorRequest) -> List[TitleSuggestion]:
        cache_key = CacheKeys.generator({"model": self._model, **request.cache_payload()})
        if self._cache is not None:
            cached = await self._cache.get(cache_key)
            if isinstance(cached, list):
                return [TitleSuggestion.from_dict(entry) for entry in cached if isinstance(entry, dict)]

        text = await self._chat(build_prompt(request))
        suggestions = parse_generator_response(text)[: max(1, request.max_recommendations)]
        if suggestions and self._cache is not None:
            await self._cache.set(
                cache_key, [suggestion.to_dict() for suggestion in suggestions], self._cache_ttl
            )
        return suggestions

    async def _chat(self, prompt: str) -> str:
        payload = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "stream": False,
            "format": "json",
        }
        headers: Dict[str, str] = {}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        try:
            response = await self._client.post(
                self._api_url, json=payload, headers=headers or None, timeout=self._timeout
            )
        except httpx.HTTPError as exc:
            GENERATOR_FAILURES.inc()
            raise ProviderUnavailable(
                GENERATOR_SOURCE, f"generator request failed: {exc}", cause=exc
            ) from exc
        if response.status_code != 200:
            GENERATOR_FAILURES.inc()
            raise ProviderUnavailable(
                GENERATOR_SOURCE,
                f"generator returned HTTP {response.status_code}: {response.text[:300]}",
            )
        try:
            data = response.json()
        except json.JSONDecodeError as exc:
            GENERATOR_FAILURES.inc()
            raise ProviderUnavailable(
                GENERATOR_SOURCE, "generator returned malformed JSON", cause=exc
            ) from exc

        message = data.get("message") if isinstance(data, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not content and isinstance(data, dict) and isinstance(data.get("response"), str):
            content = data["response"]
        return content if isinstance(content, str) else ""

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


__all__ = [
    "GENERATOR_SOURCE",
    "GeneratorRequest",
    "OllamaRecommendationGenerator",
    "RecommendationGenerator",
    "TitleSuggestion",
    "build_prompt",
    "parse_generator_response",
]
