"""Command line triggers for scheduled discovery jobs.

``python -m discovery.cli pick-daily`` is meant to run once a day (cron,
systemd timer, or a scheduler container) shortly after midnight UTC. It is
idempotent, so running it more than once per day is harmless.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, List, Optional, Sequence

from . import config_manager as cfg
from . import logging_manager as log_mgr
from .database.engine import init_schema
from .services.catalog.normalization import string_list
from .services.catalog.types import CuratedItem
from .services.daily_pick import DailyPickScheduler, DailyPickStore, SqlDailyPickStore

logger = log_mgr.get_logger().getChild("cli")


def build_parser() -> argparse.ArgumentParser:
    """Construct the CLI argument parser."""

    parser = argparse.ArgumentParser(
        prog="discovery",
        description="Scheduled jobs for the book discovery service",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to a configuration JSON file (defaults to conf/config.json).",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging output.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    pick = subparsers.add_parser("pick-daily", help="Pick the book of the day.")
    pick.add_argument(
        "--date",
        default=None,
        help="UTC date to pick for, as YYYY-MM-DD (default: today).",
    )

    seed = subparsers.add_parser("seed-curated", help="Load curated books into the pool.")
    seed.add_argument("file", help="JSON file holding a list of curated book objects.")

    subparsers.add_parser("daily-pick-stats", help="Print rotation window statistics.")
    return parser


def load_curated_items(path: Path) -> List[CuratedItem]:
    """Read curated pool entries from a JSON list.

    Entries need ``itemRef`` (or ``id``) and ``title``; other keys use the
    camelCase thumbnail names.
    """
    payload = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(payload, list):
        raise ValueError(f"{path} must contain a JSON list")
    items: List[CuratedItem] = []
    for entry in payload:
        if not isinstance(entry, dict):
            continue
        item_ref = str(entry.get("itemRef") or entry.get("id") or "").strip()
        title = str(entry.get("title") or "").strip()
        if not item_ref or not title:
            logger.warning("Skipping curated entry without itemRef/title: %r", entry)
            continue
        items.append(
            CuratedItem(
                item_ref=item_ref,
                title=title,
                authors=string_list(entry.get("authors")),
                large_thumbnail=entry.get("largeThumbnail"),
                medium_thumbnail=entry.get("mediumThumbnail"),
                thumbnail=entry.get("thumbnail"),
                small_thumbnail=entry.get("smallThumbnail"),
                reason=entry.get("reason"),
            )
        )
    return items


def _emit(payload: Any) -> None:
    sys.stdout.write(json.dumps(payload, ensure_ascii=False) + "\n")
    sys.stdout.flush()


def run_cli(argv: Optional[Sequence[str]] = None, *, store: Optional[DailyPickStore] = None) -> int:
    """Execute the CLI and return the process exit code."""

    parser = build_parser()
    args = parser.parse_args(argv)

    settings = cfg.load_configuration(args.config) if args.config else cfg.get_settings()
    log_mgr.configure_logging_level(
        debug_enabled=args.debug,
        log_level=None if args.debug else log_mgr.parse_log_level(settings.log_level),
    )

    if store is None:
        init_schema()
        store = SqlDailyPickStore()

    if args.command == "seed-curated":
        count = store.add_curated(load_curated_items(Path(args.file)))
        _emit({"success": True, "curatedBooks": count})
        return 0

    scheduler = DailyPickScheduler(store, window_size=settings.daily_pick_window_size)
    if args.command == "daily-pick-stats":
        stats = asyncio.run(scheduler.stats())
        _emit(stats.to_dict())
        return 0

    with log_mgr.log_context(job=args.command):
        outcome = asyncio.run(scheduler.run(args.date))
    _emit(outcome.to_dict())
    return 0 if outcome.success else 1


def main() -> None:  # pragma: no cover - CLI integration
    sys.exit(run_cli())


if __name__ == "__main__":  # pragma: no cover - manual execution
    main()
