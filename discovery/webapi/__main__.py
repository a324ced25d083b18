"""Run the discovery API under uvicorn: ``python -m discovery.webapi``."""

from __future__ import annotations

import argparse
from typing import Sequence

import uvicorn

from .. import logging_manager as log_mgr

APP_FACTORY = "discovery.webapi.application:create_app"


def build_parser() -> argparse.ArgumentParser:
    """Construct the CLI argument parser for the web API runner."""

    parser = argparse.ArgumentParser(
        description="Run the book discovery API with uvicorn",
    )
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="Hostname or IP address for the uvicorn server (default: %(default)s)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="TCP port for the uvicorn server (default: %(default)s)",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload; useful during local development.",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of worker processes. Rate limit windows are per process.",
    )
    parser.add_argument(
        "--log-level",
        default="info",
        choices=["critical", "error", "warning", "info", "debug", "trace"],
        help="Log level passed to uvicorn (default: %(default)s)",
    )
    parser.add_argument(
        "--forwarded-allow-ips",
        default="127.0.0.1",
        help="Proxies trusted to set X-Forwarded-For (default: %(default)s)",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> None:
    """Parse CLI arguments and launch the uvicorn server."""

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.reload and args.workers and args.workers > 1:
        parser.error("--reload cannot be combined with more than one worker")

    uvicorn.run(
        APP_FACTORY,
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=args.workers,
        log_level=args.log_level,
        factory=True,
        proxy_headers=True,
        forwarded_allow_ips=args.forwarded_allow_ips,
    )


if __name__ == "__main__":  # pragma: no cover - CLI integration
    try:
        main()
    except KeyboardInterrupt:  # pragma: no cover - user initiated shutdown
        log_mgr.get_logger().info("Server interrupted by user")
