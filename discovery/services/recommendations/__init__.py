"""Recommendation services: generator port, user activity and section builders."""

from .activity import (
    ActivityEntry,
    FavoriteRecord,
    InMemoryActivityStore,
    UserActivityStore,
    UserPreferences,
)
from .aggregator import RecommendationAggregator
from .generator import (
    GeneratorRequest,
    OllamaRecommendationGenerator,
    RecommendationGenerator,
    TitleSuggestion,
)
from .related import BookContext, RelatedBooksService, RelatedOptions
from .sections import RecommendationResponse, RecommendationSection, SectionType, SeenBooks

__all__ = [
    "ActivityEntry",
    "BookContext",
    "FavoriteRecord",
    "GeneratorRequest",
    "InMemoryActivityStore",
    "OllamaRecommendationGenerator",
    "RecommendationAggregator",
    "RecommendationGenerator",
    "RecommendationResponse",
    "RecommendationSection",
    "RelatedBooksService",
    "RelatedOptions",
    "SectionType",
    "SeenBooks",
    "TitleSuggestion",
    "UserActivityStore",
    "UserPreferences",
]
