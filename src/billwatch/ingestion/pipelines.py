"""
Run modes built on CongressBillsIngester.

- historical: every bill type of one or more congresses from offset 0
- daily: bills updated since the last completed snapshot of the congress
- repair: re-sync missing sub-resources of incompletely synced bills

Each function takes already-constructed collaborators, so the caller
decides the lifetime of the HTTP and database clients.
"""
import logging
from datetime import datetime, timedelta
from typing import Optional, Sequence

from billwatch.config.constants import CURRENT_CONGRESS, INCREMENTAL_FALLBACK_DAYS
from billwatch.database.storage import BillStore, SnapshotStore
from billwatch.ingestion.congress_bills import CongressBillsIngester, IncompleteBillsRepairer
from billwatch.ingestion.congress_gov import CongressGovClient
from billwatch.models.sync import SyncType

logger = logging.getLogger(__name__)


def backfill_congresses(current: int = CURRENT_CONGRESS, previous: int = 0) -> list[int]:
    """[current, current - 1, ...] with `previous` earlier congresses."""
    return [current - i for i in range(previous + 1)]


async def run_historical_sync(
    api: CongressGovClient,
    store: BillStore,
    snapshots: SnapshotStore,
    congresses: Sequence[int],
    bill_types: Optional[Sequence[str]] = None,
    page_size: Optional[int] = None,
    max_bills: Optional[int] = None,
) -> dict[int, dict]:
    """
    Backfill each congress in turn, one snapshot per congress.

    Returns:
        Stats per congress

    Raises:
        OrchestratorError: from the first congress whose run fails; earlier
            congresses stay synced
    """
    results = {}
    for congress in congresses:
        ingester = CongressBillsIngester(
            api,
            store,
            snapshots,
            congress=congress,
            bill_types=bill_types,
            sync_type=SyncType.HISTORICAL,
            page_size=page_size,
            max_bills=max_bills,
        )
        results[congress] = await ingester.run()
    return results


async def incremental_start(
    snapshots: SnapshotStore,
    congress: int,
    now: Optional[datetime] = None,
) -> datetime:
    """
    Lower bound for an incremental run.

    The start of the last completed run for the congress, so bills updated
    while it was running are picked up again. Falls back to a fixed
    look-back when nothing has completed yet.
    """
    last = await snapshots.latest_completed(congress)
    if last is not None:
        return last.started_at
    now = now or datetime.utcnow()
    return now - timedelta(days=INCREMENTAL_FALLBACK_DAYS)


async def run_daily_sync(
    api: CongressGovClient,
    store: BillStore,
    snapshots: SnapshotStore,
    congress: Optional[int] = None,
    bill_types: Optional[Sequence[str]] = None,
    since: Optional[datetime] = None,
    skip_unchanged: bool = True,
    page_size: Optional[int] = None,
) -> dict:
    """
    Sync bills updated since the last completed run.

    Args:
        congress: Defaults to the newest congress in the database, else the
            current one
        since: Override the computed lower bound
        skip_unchanged: Skip fully synced bills whose update date has not moved
    """
    if congress is None:
        congress = await store.latest_congress() or CURRENT_CONGRESS
    if since is None:
        since = await incremental_start(snapshots, congress)

    logger.info(f"Daily sync for Congress {congress}: bills updated since {since.isoformat()}")
    ingester = CongressBillsIngester(
        api,
        store,
        snapshots,
        congress=congress,
        bill_types=bill_types,
        sync_type=SyncType.DAILY,
        page_size=page_size,
        from_datetime=since,
        skip_unchanged=skip_unchanged,
    )
    return await ingester.run()


async def run_repair(
    api: CongressGovClient,
    store: BillStore,
    snapshots: SnapshotStore,
    congress: int = CURRENT_CONGRESS,
    bill_types: Optional[Sequence[str]] = None,
    limit: Optional[int] = None,
) -> dict:
    """Re-sync up to `limit` incompletely synced bills of a congress."""
    repairer = IncompleteBillsRepairer(
        api,
        store,
        snapshots,
        congress=congress,
        bill_types=bill_types,
        max_bills=limit,
    )
    return await repairer.run()
