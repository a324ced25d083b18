"""Prometheus metrics exporter for the discovery API.

Collectors are defined in :mod:`discovery.metrics` so the services can
record them without importing the web layer; this module wires automatic
HTTP instrumentation via prometheus-fastapi-instrumentator and exposes
``/metrics``.

Usage:
    from .metrics import setup_metrics
    setup_metrics(app)  # call once in create_app()
"""

from __future__ import annotations

from fastapi import FastAPI, Response
from prometheus_client import CONTENT_TYPE_LATEST, REGISTRY, generate_latest
from prometheus_fastapi_instrumentator import Instrumentator

from .. import logging_manager as log_mgr
from ..metrics import APP_INFO, UP_GAUGE

logger = log_mgr.get_logger().getChild("webapi.metrics")

_setup_done = False


def setup_metrics(app: FastAPI) -> None:
    """Wire Prometheus metrics into the FastAPI application.

    Idempotent: tests create several apps in one process and the global
    registry only accepts each collector once.
    """
    global _setup_done

    APP_INFO.info({
        "version": getattr(app, "version", "unknown"),
        "title": getattr(app, "title", "discovery"),
    })
    UP_GAUGE.set(1)

    if not _setup_done:
        try:
            instrumentator = Instrumentator(
                should_group_status_codes=False,
                should_ignore_untemplated=True,
                should_respect_env_var=False,
                should_instrument_requests_inprogress=True,
                excluded_handlers=["/metrics", "/_health"],
                inprogress_name="discovery_http_requests_inprogress",
                inprogress_labels=True,
            )
            instrumentator.instrument(app)
            instrumentator.expose(app, endpoint="/metrics", include_in_schema=False)
        except ValueError:
            # Collectors already registered in the global Prometheus registry.
            logger.debug("HTTP instrumentation already registered")
        _setup_done = True

    if not any(getattr(route, "path", None) == "/metrics" for route in app.routes):
        @app.get("/metrics", include_in_schema=False)
        async def _metrics_fallback() -> Response:
            return Response(
                content=generate_latest(REGISTRY),
                media_type=CONTENT_TYPE_LATEST,
            )


__all__ = ["setup_metrics"]
