"""
Show recent sync runs and how completely bills are synced.

Usage:
    python scripts/sync_status.py
    python scripts/sync_status.py --congress 119 --runs 20
"""
import argparse
import asyncio
import logging

from billwatch.config import settings
from billwatch.database import BillStore, SnapshotStore, open_database


async def main():
    """CLI entry point"""
    parser = argparse.ArgumentParser(description="Show sync status")
    parser.add_argument("--congress", type=int, default=None, help="Limit to one Congress")
    parser.add_argument("--runs", type=int, default=10, help="How many recent runs to show")
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING, format=settings.LOG_FORMAT)

    async with open_database() as (client, db):
        store = BillStore(db, client=client)
        snapshots = SnapshotStore(db)

        last = await snapshots.latest_completed(args.congress)
        if last:
            print(f"🕒 Data last updated: {last.completed_at:%Y-%m-%d %H:%M} UTC ({last.sync_type.value})")
        else:
            print("🕒 No completed sync yet")

        print("\n📜 Recent runs")
        print("-" * 60)
        for snap in await snapshots.recent(args.runs):
            scope = f"{snap.congress} {snap.bill_type or 'all'}"
            print(
                f"{snap.started_at:%Y-%m-%d %H:%M}  {snap.sync_type.value:<10} {scope:<12} "
                f"{snap.status.value:<9} {snap.total_success}/{snap.total_processed} ok, "
                f"{snap.total_failed} failed, {snap.total_skipped} skipped"
            )
            if snap.error_details:
                print(f"    ↳ {snap.error_details[:200]}")

        report = await store.sync_completeness(args.congress)
        print("\n📊 Sync completeness")
        print("-" * 60)
        print(f"   • Total:    {report['total']}")
        print(f"   • Complete: {report['complete']}")
        print(f"   • Partial:  {report['partial']}")
        print(f"   • Legacy:   {report['legacy']}")


if __name__ == "__main__":
    asyncio.run(main())
