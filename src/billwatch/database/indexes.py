"""
Database Indexes Module

Creates MongoDB indexes for the bill collections and the sync audit trail.
Run after the first load or after schema changes; creating an index that
already exists is a no-op.

Usage:
    python scripts/setup_indexes.py

    # From async Python
    from billwatch.database.indexes import create_all_indexes
    await create_all_indexes(db)
"""
import logging

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import OperationFailure

from billwatch.config.constants import (
    COLLECTION_BILLS,
    COLLECTION_BILL_ACTIONS,
    COLLECTION_BILL_SUBJECTS,
    COLLECTION_BILL_SUMMARIES,
    COLLECTION_BILL_TEXT,
    COLLECTION_BILL_TITLES,
    COLLECTION_SYNC_SNAPSHOTS,
)

logger = logging.getLogger(__name__)


async def create_bills_indexes(db: AsyncIOMotorDatabase):
    """Bill headers: unique composite key plus the filters the UI uses."""
    collection = db[COLLECTION_BILLS]

    logger.info("Creating bills indexes...")

    await collection.create_index(
        [("bill_id", ASCENDING)],
        unique=True,
        name="idx_bill_id"
    )

    # "latest congress" lookup and per-congress listings
    await collection.create_index(
        [("congress", DESCENDING)],
        name="idx_congress"
    )

    await collection.create_index(
        [("congress", ASCENDING), ("bill_type", ASCENDING)],
        name="idx_congress_type"
    )

    await collection.create_index(
        [("progress_stage", ASCENDING)],
        name="idx_progress_stage"
    )

    await collection.create_index(
        [("sponsor_state", ASCENDING)],
        name="idx_sponsor_state",
        sparse=True
    )

    await collection.create_index(
        [("updated_at", DESCENDING)],
        name="idx_updated_at"
    )

    # Repair mode scans for bills below the complete bitmask
    await collection.create_index(
        [("synced_endpoints", ASCENDING)],
        name="idx_synced_endpoints"
    )


async def create_child_indexes(db: AsyncIOMotorDatabase):
    """Child collections are always read by bill_id."""
    logger.info("Creating bill child collection indexes...")

    await db[COLLECTION_BILL_ACTIONS].create_index(
        [("bill_id", ASCENDING), ("sync_generation", DESCENDING), ("action_date", ASCENDING)],
        name="idx_bill_generation_date"
    )

    await db[COLLECTION_BILL_TITLES].create_index(
        [("bill_id", ASCENDING), ("sync_generation", DESCENDING)],
        name="idx_bill_generation"
    )

    await db[COLLECTION_BILL_SUMMARIES].create_index(
        [("bill_id", ASCENDING), ("update_date", DESCENDING)],
        unique=True,
        name="idx_bill_update_date"
    )

    await db[COLLECTION_BILL_SUBJECTS].create_index(
        [("bill_id", ASCENDING)],
        unique=True,
        name="idx_bill_id"
    )

    await db[COLLECTION_BILL_SUBJECTS].create_index(
        [("policy_area_name", ASCENDING)],
        name="idx_policy_area",
        sparse=True
    )

    await db[COLLECTION_BILL_TEXT].create_index(
        [("bill_id", ASCENDING)],
        unique=True,
        name="idx_bill_id"
    )


async def create_sync_snapshot_indexes(db: AsyncIOMotorDatabase):
    """Snapshots are looked up by scope and by most recent completion."""
    collection = db[COLLECTION_SYNC_SNAPSHOTS]

    logger.info("Creating sync_snapshots indexes...")

    await collection.create_index(
        [("congress", ASCENDING), ("status", ASCENDING)],
        name="idx_congress_status"
    )

    await collection.create_index(
        [("status", ASCENDING), ("completed_at", DESCENDING)],
        name="idx_status_completed"
    )


async def create_all_indexes(db: AsyncIOMotorDatabase, drop_existing: bool = False):
    """
    Create every index the pipeline and its readers rely on.

    Args:
        db: Database to index
        drop_existing: Drop non-_id indexes first (use after renaming an index)
    """
    logger.info("=" * 60)
    logger.info("Creating MongoDB Indexes")
    logger.info("=" * 60)

    if drop_existing:
        for name in (
            COLLECTION_BILLS,
            COLLECTION_BILL_ACTIONS,
            COLLECTION_BILL_TITLES,
            COLLECTION_BILL_SUMMARIES,
            COLLECTION_BILL_SUBJECTS,
            COLLECTION_BILL_TEXT,
            COLLECTION_SYNC_SNAPSHOTS,
        ):
            try:
                await db[name].drop_indexes()
                logger.info(f"Dropped existing indexes on {name}")
            except OperationFailure as e:
                # Collection does not exist yet
                logger.debug(f"Could not drop indexes on {name}: {e}")

    await create_bills_indexes(db)
    await create_child_indexes(db)
    await create_sync_snapshot_indexes(db)

    logger.info("All indexes created successfully")


async def list_existing_indexes(db: AsyncIOMotorDatabase) -> dict[str, list[str]]:
    """Index names per collection."""
    result = {}
    for name in await db.list_collection_names():
        info = await db[name].index_information()
        result[name] = sorted(info)
    return result
