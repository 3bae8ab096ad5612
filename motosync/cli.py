"""Command-line interface for the catalog sync."""

import argparse
import logging
import sys
from typing import List, Optional

__all__ = ["main", "parse_args", "print_stats"]

from motosync.config import CONDITION_NEW, CONDITION_USED, ConfigError, load_settings
from motosync.content_store import ContentStoreAuthError, ContentStoreError, SanityClient
from motosync.discovery import DiscoveryError
from motosync.logging_config import get_logger, setup_logging
from motosync.maintenance import (
    OPERATIONS,
    MaintenanceError,
    execute_plan,
    plan_brand,
    plan_imageless,
    plan_merge_brand,
    plan_model_match,
    plan_stale_year,
)
from motosync.models import SyncStats
from motosync.pipeline import run_sync
from motosync.sources import SOURCES, get_source

logger = get_logger("cli")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="motosync",
        description="Sync dealer and manufacturer listings into the motorcycle catalog",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Preview a KTM sync without writing anything
  motosync sync ktm --dry-run

  # Sync the used listings
  motosync sync moto-it

  # Show which KTM records have no images, then delete them
  motosync cleanup imageless --brand KTM
  motosync cleanup imageless --brand KTM --yes

  # Fold a duplicate brand into the canonical one
  motosync cleanup merge-brand --brand Husqvarna --into HUSQVARNA --yes
        """,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log debug output to the console",
    )
    parser.add_argument(
        "--no-log-file",
        action="store_true",
        help="Don't write the JSONL event log",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    sync = subparsers.add_parser("sync", help="Sync one source")
    sync.add_argument("source", choices=sorted(SOURCES), help="Source to sync")
    sync.add_argument(
        "--dry-run",
        action="store_true",
        help="Discover, extract and decide, but upload and write nothing",
    )

    cleanup = subparsers.add_parser("cleanup", help="Catalog maintenance operations")
    cleanup.add_argument("operation", choices=OPERATIONS, help="Maintenance operation")
    cleanup.add_argument("--brand", required=True, help="Brand name (the duplicate for merge-brand)")
    cleanup.add_argument(
        "--condition",
        choices=[CONDITION_NEW, CONDITION_USED],
        default=CONDITION_NEW,
        help=f"Record condition (default: {CONDITION_NEW})",
    )
    cleanup.add_argument("--min-year", type=int, help="stale-year: delete records older than this")
    cleanup.add_argument("--match", help="model-match: model substring to delete")
    cleanup.add_argument("--into", help="merge-brand: canonical brand name")
    cleanup.add_argument("--dry-run", action="store_true", help="Print the plan only")
    cleanup.add_argument("--yes", action="store_true", help="Carry the plan out")

    subparsers.add_parser("sources", help="List the registered sources")

    args = parser.parse_args(argv)

    if args.command == "cleanup":
        if args.operation == "stale-year" and args.min_year is None:
            parser.error("stale-year requires --min-year")
        if args.operation == "model-match" and not args.match:
            parser.error("model-match requires --match")
        if args.operation == "merge-brand" and not args.into:
            parser.error("merge-brand requires --into")

    return args


def print_stats(stats: SyncStats) -> None:
    """Print the end-of-run summary."""
    title = f"Sync summary: {stats.source}" + (" (dry run)" if stats.dry_run else "")
    print(f"\n{'='*50}")
    print(title)
    print(f"{'='*50}")
    print(f"  Discovered: {stats.discovered}")
    print(f"  Created:    {stats.created}")
    print(f"  Updated:    {stats.updated}")
    print(f"  Unchanged:  {stats.skipped}")
    print(f"  Rejected:   {stats.rejected}")
    print(f"  Failed:     {stats.failed}")
    print()


def list_sources() -> None:
    print("Available sources:")
    for key, adapter in sorted(SOURCES.items()):
        brand = adapter.brand_name or "per listing"
        print(f"  {key}: {brand}, {adapter.condition}, {adapter.request_delay}s between items")


def run_cleanup(args: argparse.Namespace, store: SanityClient) -> None:
    if args.operation == "imageless":
        plan = plan_imageless(store, args.brand, args.condition)
    elif args.operation == "stale-year":
        plan = plan_stale_year(store, args.brand, args.condition, args.min_year)
    elif args.operation == "model-match":
        plan = plan_model_match(store, args.brand, args.condition, args.match)
    elif args.operation == "brand":
        plan = plan_brand(store, args.brand, args.condition)
    else:
        plan = plan_merge_brand(store, args.brand, args.into)

    writes = execute_plan(plan, store, dry_run=args.dry_run, confirmed=args.yes)
    if writes:
        print(f"{writes} writes applied")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI.

    Returns:
        0 on completion (per-item failures included), 1 on a fatal error
    """
    args = parse_args(argv)
    setup_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        log_to_file=not args.no_log_file,
    )

    if args.command == "sources":
        list_sources()
        return 0

    dry_run = args.dry_run
    # Maintenance writes only with --yes; without it a token is not needed
    read_only = dry_run or (args.command == "cleanup" and not args.yes)

    try:
        store = SanityClient(load_settings(require_token=not read_only))
        if args.command == "sync":
            stats = run_sync(get_source(args.source), store, dry_run=dry_run)
            print_stats(stats)
        else:
            run_cleanup(args, store)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 1
    except ContentStoreAuthError as e:
        logger.error(f"Content store rejected the credentials: {e}")
        return 1
    except DiscoveryError as e:
        logger.error(f"Discovery failed: {e}")
        return 1
    except MaintenanceError as e:
        logger.error(str(e))
        return 1
    except ContentStoreError as e:
        logger.error(f"Content store error: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
