"""
Script to sync bills from Congress.gov into MongoDB.

Usage:
    python scripts/sync_bills.py historical                      # Current Congress, all types
    python scripts/sync_bills.py historical --previous 2         # Current + 2 earlier Congresses
    python scripts/sync_bills.py historical --type hr --max 100  # Quick partial backfill
    python scripts/sync_bills.py daily                           # Bills updated since last run
    python scripts/sync_bills.py daily --since 2025-06-01
    python scripts/sync_bills.py repair --limit 500              # Fill in missing sub-resources
"""
import argparse
import asyncio
import logging
import sys
from datetime import datetime

from billwatch.config import settings, CURRENT_CONGRESS, FEDERAL_BILL_TYPES
from billwatch.database import BillStore, SnapshotStore, open_database
from billwatch.errors import OrchestratorError
from billwatch.ingestion import CongressGovClient
from billwatch.ingestion.pipelines import (
    backfill_congresses,
    run_daily_sync,
    run_historical_sync,
    run_repair,
)


def print_stats(label: str, stats: dict):
    print(f"📊 {label}: {stats['status']}")
    print(f"   • Processed: {stats['processed']}")
    print(f"   • Succeeded: {stats['succeeded']}")
    print(f"   • Failed:    {stats['failed']}")
    print(f"   • Skipped:   {stats['skipped']}")


async def sync(args) -> int:
    """Run the selected mode. Returns the number of failed bills."""
    bill_types = args.bill_types or None

    async with open_database() as (client, db):
        store = BillStore(db, client=client)
        snapshots = SnapshotStore(db)

        async with CongressGovClient() as api:
            if args.mode == "historical":
                congresses = backfill_congresses(args.congress, args.previous)
                print(f"📜 Backfilling Congress {', '.join(map(str, congresses))}")
                results = await run_historical_sync(
                    api,
                    store,
                    snapshots,
                    congresses,
                    bill_types=bill_types,
                    page_size=args.page_size,
                    max_bills=args.max,
                )
                for congress, stats in results.items():
                    print_stats(f"Congress {congress}", stats)
                failed = sum(s["failed"] for s in results.values())

            elif args.mode == "daily":
                stats = await run_daily_sync(
                    api,
                    store,
                    snapshots,
                    congress=args.congress,
                    bill_types=bill_types,
                    since=args.since,
                    skip_unchanged=not args.no_skip,
                    page_size=args.page_size,
                )
                print_stats("Daily sync", stats)
                failed = stats["failed"]

            else:
                stats = await run_repair(
                    api,
                    store,
                    snapshots,
                    congress=args.congress or CURRENT_CONGRESS,
                    bill_types=bill_types,
                    limit=args.limit,
                )
                print_stats("Repair", stats)
                failed = stats["failed"]

            logging.getLogger(__name__).info(f"API requests made: {api.request_count}")

    return failed


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Sync bills from Congress.gov")
    parser.add_argument(
        "mode",
        choices=["historical", "daily", "repair"],
        help="historical backfill, incremental daily sync, or repair of incomplete bills"
    )
    parser.add_argument(
        "--congress",
        type=int,
        default=None,
        help=f"Congress number (default: {CURRENT_CONGRESS}; daily uses the newest stored)"
    )
    parser.add_argument(
        "--type",
        dest="bill_types",
        action="append",
        choices=FEDERAL_BILL_TYPES,
        help="Bill type to sync (can specify multiple times). Default: all"
    )
    parser.add_argument(
        "--previous",
        type=int,
        default=0,
        help="historical: also backfill this many earlier Congresses"
    )
    parser.add_argument(
        "--max",
        type=int,
        default=None,
        help="historical: stop after this many bills per Congress"
    )
    parser.add_argument(
        "--since",
        type=datetime.fromisoformat,
        default=None,
        help="daily: sync bills updated since this UTC time (default: last completed run)"
    )
    parser.add_argument(
        "--no-skip",
        action="store_true",
        help="daily: re-sync bills even if their update date has not changed"
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="repair: maximum bills to repair"
    )
    parser.add_argument(
        "--page-size",
        type=int,
        default=None,
        help=f"Bills per list request (default: {settings.SYNC_PAGE_SIZE}, max 250)"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose logging"
    )
    args = parser.parse_args(argv)
    if args.mode == "historical" and args.congress is None:
        args.congress = CURRENT_CONGRESS
    return args


async def main():
    """CLI entry point"""
    args = parse_args()

    log_level = logging.DEBUG if args.verbose else getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(level=log_level, format=settings.LOG_FORMAT)
    # httpx logs full request URLs, api_key included
    logging.getLogger("httpx").setLevel(logging.WARNING)

    try:
        failed = await sync(args)
        sys.exit(1 if failed else 0)

    except KeyboardInterrupt:
        print("\n\n⚠️  Sync interrupted by user")
        sys.exit(1)
    except OrchestratorError as e:
        print(f"\n\n❌ Sync failed: {e}")
        sys.exit(2)


if __name__ == "__main__":
    asyncio.run(main())
