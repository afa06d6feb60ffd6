"""CLI entrypoint for registry-harvester."""

from __future__ import annotations

import argparse
import signal
from collections.abc import Sequence
from typing import Any

from .cancellation import CancellationToken
from .config import (
    DEFAULT_DATA_DIR,
    DEFAULT_HOMEPAGE_TIMEOUT,
    DEFAULT_PAGE_DELAY,
    DEFAULT_REGION_DELAY,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_TARGET_DELAY,
    CollectConfig,
    ExtractConfig,
    relays_from_env,
)
from .email_crawler import run_extraction
from .errors import ConfigError, StoreError
from .logging_utils import configure_logging, get_logger
from .pipeline import run_collection
from .regions import regions_for
from .sources import build_sources
from .storage import open_stores

PRIVATE_ESTABLISHMENT = "사립"


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--data-dir", default=DEFAULT_DATA_DIR, help="Directory holding the CSV/JSON stores.")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")


def _add_transport(parser: argparse.ArgumentParser, *, timeout: float) -> None:
    parser.add_argument(
        "--relay",
        action="append",
        default=None,
        help="Relay URL template containing {url}; repeatable, tried in order after the direct fetch.",
    )
    parser.add_argument("--no-direct", action="store_true", help="Skip the direct fetch, use relays only.")
    parser.add_argument("--timeout", type=float, default=timeout, help="Per-request timeout in seconds.")
    parser.add_argument("--no-progress", action="store_true", help="Disable tqdm progress bars.")


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""
    parser = argparse.ArgumentParser(
        description="Registry Harvester - collect public registry records, then extract contact emails."
    )
    commands = parser.add_subparsers(dest="command", required=True)

    sources = commands.add_parser("sources", help="List known data sources and their regions.")
    sources.add_argument("--verbose", action="store_true", help="Enable debug logging.")

    collect = commands.add_parser("collect", help="Collect organizations from one source.")
    collect.add_argument("source", help="Source id (see the 'sources' command).")
    collect.add_argument("--max-items", type=int, default=0, help="Stop after N new records (0 = unlimited).")
    collect.add_argument("--region", action="append", default=[], help="Only collect this region; repeatable.")
    establishment = collect.add_mutually_exclusive_group()
    establishment.add_argument(
        "--establishment", action="append", default=[], help="Keep records whose type starts with this value."
    )
    establishment.add_argument(
        "--private-only", action="store_true", help=f"Shortcut for --establishment {PRIVATE_ESTABLISHMENT}."
    )
    collect.add_argument("--no-dedupe", action="store_true", help="Do not skip already collected names.")
    collect.add_argument("--defer-save", action="store_true", help="Save once at the end instead of per region.")
    collect.add_argument("--restart", action="store_true", help="Discard stored page checkpoints first.")
    collect.add_argument("--region-delay", type=float, default=DEFAULT_REGION_DELAY, help="Seconds between regions.")
    collect.add_argument("--page-delay", type=float, default=DEFAULT_PAGE_DELAY, help="Seconds between pages.")
    _add_common(collect)
    _add_transport(collect, timeout=DEFAULT_REQUEST_TIMEOUT)

    extract = commands.add_parser("extract-emails", help="Crawl pending homepages for contact emails.")
    extract.add_argument("--category", action="append", default=[], help="Only this category; repeatable.")
    extract.add_argument("--max-targets", type=int, default=0, help="Crawl at most N targets (0 = all).")
    extract.add_argument("--target-delay", type=float, default=DEFAULT_TARGET_DELAY, help="Seconds between targets.")
    extract.add_argument("--verify-mx", action="store_true", help="Keep only addresses whose domain resolves.")
    extract.add_argument("--retry-failed", action="store_true", help="Retry targets previously marked failed.")
    _add_common(extract)
    _add_transport(extract, timeout=DEFAULT_HOMEPAGE_TIMEOUT)

    stats = commands.add_parser("stats", help="Show organization store statistics.")
    _add_common(stats)

    reset = commands.add_parser("reset-failed", help="Mark failed extraction targets as pending again.")
    _add_common(reset)
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse and pre-validate CLI input."""
    parser = build_parser()
    args = parser.parse_args(argv)
    return args


def _relays(args: argparse.Namespace) -> tuple[str, ...]:
    if args.relay:
        return tuple(args.relay)
    return relays_from_env()


def namespace_to_config(args: argparse.Namespace) -> CollectConfig | ExtractConfig:
    """Convert CLI args to a validated run config."""
    if args.command == "collect":
        establishment_types = (PRIVATE_ESTABLISHMENT,) if args.private_only else tuple(args.establishment)
        return CollectConfig(
            source_id=args.source,
            data_dir=args.data_dir,
            max_items=args.max_items,
            regions=tuple(args.region),
            establishment_types=establishment_types,
            skip_duplicates=not args.no_dedupe,
            save_per_region=not args.defer_save,
            restart=args.restart,
            region_delay=args.region_delay,
            page_delay=args.page_delay,
            relays=_relays(args),
            use_direct=not args.no_direct,
            request_timeout=args.timeout,
            show_progress=not args.no_progress,
        )
    if args.command == "extract-emails":
        return ExtractConfig(
            data_dir=args.data_dir,
            categories=tuple(args.category),
            max_targets=args.max_targets,
            target_delay=args.target_delay,
            verify_mx=args.verify_mx,
            retry_failed=args.retry_failed,
            relays=_relays(args),
            use_direct=not args.no_direct,
            request_timeout=args.timeout,
            show_progress=not args.no_progress,
        )
    raise ConfigError(f"Command '{args.command}' takes no run configuration.")


def _print_sources() -> None:
    for source in build_sources().values():
        credentials = f" [needs {source.auth_env}]" if source.auth_env and not source.api_key else ""
        print(f"{source.id:<14}{source.display_name} -> {source.destination_category}{credentials}")
        print(f"{'':<14}{source.description}")
        print(f"{'':<14}regions: {', '.join(regions_for(source))}")


def _print_stats(data_dir: str) -> None:
    stats = open_stores(data_dir).organizations.stats()
    print(f"organizations: {stats.total}")
    print(f"with homepage: {stats.with_homepage}")
    print(f"emails extracted (Y): {stats.extracted}")
    print(f"pending (N): {stats.pending}")
    print(f"failed (F): {stats.failed}")
    for item in stats.by_category:
        print(f"  {item.category}: {item.pending} pending of {item.total}")


def _run_with_interrupt(func: Any, config: Any, logger: Any) -> Any:
    """Run ``func(config, token)`` with Ctrl-C mapped to cooperative cancellation."""
    token = CancellationToken()

    def handle_sigint(signum: int, frame: Any) -> None:
        logger.warning("Interrupt received, finishing the current step...")
        token.cancel()

    previous = signal.signal(signal.SIGINT, handle_sigint)
    try:
        return func(config, token, logger=logger)
    finally:
        signal.signal(signal.SIGINT, previous)


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entrypoint."""
    args = parse_args(argv)
    configure_logging(args.verbose)
    logger = get_logger()

    if args.command == "sources":
        _print_sources()
        return 0
    try:
        if args.command == "stats":
            _print_stats(args.data_dir)
            return 0
        if args.command == "reset-failed":
            count = open_stores(args.data_dir).organizations.reset_failed()
            logger.info("Reset %d failed targets to pending", count)
            return 0
        config = namespace_to_config(args)
        if isinstance(config, CollectConfig):
            result = _run_with_interrupt(run_collection, config, logger)
            logger.info(
                "Collection %s: %d saved, %d duplicates skipped, %d failed and %d incomplete regions",
                result.status,
                result.saved,
                result.skipped_duplicates,
                len(result.failed_regions),
                len(result.incomplete_regions),
            )
        else:
            result = _run_with_interrupt(run_extraction, config, logger)
            logger.info(
                "Email extraction %s: %d of %d succeeded, %d failed",
                result.status,
                result.success,
                result.total,
                result.failed,
            )
    except (ConfigError, StoreError) as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
