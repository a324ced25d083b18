"""Prometheus metric definitions shared by the discovery services.

The HTTP exporter lives in :mod:`discovery.webapi.metrics`; services import
the collectors from here so they do not depend on the web layer.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, Info

APP_INFO = Info(
    "discovery",
    "Book discovery service information",
)

UP_GAUGE = Gauge(
    "discovery_up",
    "Whether the discovery backend is up (1=up, 0=down)",
)

# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------
SEARCH_REQUESTS = Counter(
    "discovery_search_requests_total",
    "Search requests by mode and result origin",
    ["mode", "origin"],
)

SEARCH_DURATION = Histogram(
    "discovery_search_duration_seconds",
    "Search orchestration time in seconds",
    ["mode"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 20],
)

CATALOG_FAILURES = Counter(
    "discovery_catalog_failures_total",
    "Upstream catalog failures by source",
    ["source"],
)

GENERATOR_FAILURES = Counter(
    "discovery_generator_failures_total",
    "Recommendation generator failures",
)

# ---------------------------------------------------------------------------
# Cache and rate limiting
# ---------------------------------------------------------------------------
CACHE_EVENTS = Counter(
    "discovery_cache_events_total",
    "Cache lookups and writes by outcome",
    ["outcome"],
)

RATE_LIMIT_DENIALS = Counter(
    "discovery_rate_limit_denials_total",
    "Requests denied by a rate-limit policy",
    ["policy"],
)

# ---------------------------------------------------------------------------
# Recommendations and daily pick
# ---------------------------------------------------------------------------
RECOMMENDATION_SECTIONS = Counter(
    "discovery_recommendation_sections_total",
    "Recommendation sections produced by type",
    ["section"],
)

DAILY_PICK_RUNS = Counter(
    "discovery_daily_pick_runs_total",
    "Daily pick scheduler runs by action",
    ["action"],
)

__all__ = [
    "APP_INFO",
    "CACHE_EVENTS",
    "CATALOG_FAILURES",
    "DAILY_PICK_RUNS",
    "GENERATOR_FAILURES",
    "RATE_LIMIT_DENIALS",
    "RECOMMENDATION_SECTIONS",
    "SEARCH_DURATION",
    "SEARCH_REQUESTS",
    "UP_GAUGE",
]
