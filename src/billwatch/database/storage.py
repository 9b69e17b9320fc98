"""
Upsert/storage layer.

BillStore is the only writer of the bill collections; SnapshotStore is the
only writer of the sync audit trail. Both take an injected motor database.

Write semantics:
- Bill headers, summaries, subjects and text links are upserts: existing
  documents are patched with `$set`, unknown keys are inserted.
- Actions and titles are replaced wholesale. With transactions enabled the
  delete and insert commit together. Without them, the new rows are inserted
  under a fresh `sync_generation` and older generations are deleted
  afterwards; readers only ever look at the newest generation, so they never
  see an empty or mixed set. A failed insert removes its partial generation.
- `synced_endpoints` on the bill is only ever OR-ed into.
"""
import functools
import logging
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Iterable, Optional

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pydantic import BaseModel
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from billwatch.config.constants import (
    COLLECTION_BILLS,
    COLLECTION_BILL_ACTIONS,
    COLLECTION_BILL_SUBJECTS,
    COLLECTION_BILL_SUMMARIES,
    COLLECTION_BILL_TEXT,
    COLLECTION_BILL_TITLES,
    COLLECTION_SYNC_SNAPSHOTS,
    SYNC_ACTIONS,
    SYNC_COMPLETE,
    SYNC_DETAIL,
    SYNC_SUBJECTS,
    SYNC_SUMMARIES,
    SYNC_TEXT,
    SYNC_TITLES,
)
from billwatch.config.settings import settings
from billwatch.errors import StorageError
from billwatch.models.legislation import (
    Bill,
    BillAction,
    BillBundle,
    BillSubject,
    BillSummary,
    BillTextVersion,
    BillTitle,
)
from billwatch.models.sync import SyncSnapshot, SyncStatus

logger = logging.getLogger(__name__)

# Internal bookkeeping fields never handed back to callers
INTERNAL_FIELDS = ("_id", "sync_generation")

# Stored as datetimes (BSON has no date type) and read back as dates
DATE_FIELDS = ("introduced_date", "latest_action_date", "action_date")


# ============================================================================
# Document conversion
# ============================================================================

def _to_bson_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime.combine(value, datetime.min.time())
    if isinstance(value, list):
        return [_to_bson_value(v) for v in value]
    if isinstance(value, dict):
        return {k: _to_bson_value(v) for k, v in value.items()}
    return value


def to_document(model: BaseModel, exclude_none: bool = False, exclude: Iterable[str] = ()) -> dict:
    """
    Dump a model into a MongoDB-ready dict.

    Dates become midnight datetimes and enums become their values.
    """
    data = model.model_dump(exclude_none=exclude_none, exclude=set(exclude))
    return {key: _to_bson_value(value) for key, value in data.items()}


def from_document(doc: dict) -> dict:
    """Strip internal fields and turn stored midnight datetimes back into dates."""
    data = {k: v for k, v in doc.items() if k not in INTERNAL_FIELDS}
    for field in DATE_FIELDS:
        if isinstance(data.get(field), datetime):
            data[field] = data[field].date()
    return data


def storage_operation(collection: str):
    """Wrap PyMongoError from the decorated coroutine into StorageError."""
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except PyMongoError as e:
                raise StorageError(
                    f"{func.__name__} failed on {collection}: {e}",
                    collections=[collection],
                ) from e
        return wrapper
    return decorator


# ============================================================================
# Bills
# ============================================================================

# Sync bit for each child collection written by save_bundle
CHILD_COLLECTION_BITS = {
    COLLECTION_BILL_ACTIONS: SYNC_ACTIONS,
    COLLECTION_BILL_TITLES: SYNC_TITLES,
    COLLECTION_BILL_SUMMARIES: SYNC_SUMMARIES,
    COLLECTION_BILL_SUBJECTS: SYNC_SUBJECTS,
    COLLECTION_BILL_TEXT: SYNC_TEXT,
}


class BillStore:
    """
    Idempotent write path (and the read paths consumers need) for bills.

    Usage:
        async with open_database() as (client, db):
            store = BillStore(db, client=client)
            await store.save_bundle(bundle)
    """

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        client: Optional[AsyncIOMotorClient] = None,
        use_transactions: Optional[bool] = None,
    ):
        if use_transactions is None:
            use_transactions = settings.MONGODB_USE_TRANSACTIONS
        if use_transactions and client is None:
            raise ValueError("use_transactions requires the MongoDB client")

        self.db = db
        self.client = client
        self.use_transactions = use_transactions
        self.logger = logging.getLogger(self.__class__.__name__)

        self.bills = db[COLLECTION_BILLS]
        self.actions = db[COLLECTION_BILL_ACTIONS]
        self.titles = db[COLLECTION_BILL_TITLES]
        self.summaries = db[COLLECTION_BILL_SUMMARIES]
        self.subjects = db[COLLECTION_BILL_SUBJECTS]
        self.text = db[COLLECTION_BILL_TEXT]

    # ------------------------------------------------------------------
    # Upserts
    # ------------------------------------------------------------------

    @storage_operation(COLLECTION_BILLS)
    async def upsert_bill(self, bill: Bill) -> bool:
        """
        Insert or patch a bill header.

        Fields that are None on `bill` are left untouched on the stored
        document.

        Returns:
            True if new insert, False if update
        """
        result = await self.bills.update_one(
            {"bill_id": bill.bill_id},
            {
                "$set": to_document(bill, exclude_none=True),
                "$setOnInsert": {"created_at": datetime.utcnow()},
            },
            upsert=True
        )
        return result.upserted_id is not None

    async def _replace_children(self, collection, bill_id: str, docs: list[dict]) -> None:
        generation = ObjectId()
        for doc in docs:
            doc["bill_id"] = bill_id
            doc["sync_generation"] = generation

        if self.use_transactions:
            async with await self.client.start_session() as session:
                async with session.start_transaction():
                    await collection.delete_many({"bill_id": bill_id}, session=session)
                    if docs:
                        await collection.insert_many(docs, session=session)
            return

        if docs:
            try:
                await collection.insert_many(docs)
            except PyMongoError:
                # An ordered insert keeps the rows written before the error;
                # drop them so readers stay on the previous generation
                await collection.delete_many({"bill_id": bill_id, "sync_generation": generation})
                raise
        await collection.delete_many({"bill_id": bill_id, "sync_generation": {"$ne": generation}})

    @storage_operation(COLLECTION_BILL_ACTIONS)
    async def replace_bill_actions(self, bill_id: str, actions: list[BillAction]) -> int:
        """Replace a bill's action history. Returns the number of actions stored."""
        docs = [to_document(a) for a in actions]
        await self._replace_children(self.actions, bill_id, docs)
        return len(docs)

    @storage_operation(COLLECTION_BILL_TITLES)
    async def replace_bill_titles(self, bill_id: str, titles: list[BillTitle]) -> int:
        """Replace a bill's titles. Returns the number of titles stored."""
        docs = [to_document(t) for t in titles]
        await self._replace_children(self.titles, bill_id, docs)
        return len(docs)

    @storage_operation(COLLECTION_BILL_SUMMARIES)
    async def upsert_bill_summary(self, summary: BillSummary) -> bool:
        """Upsert one summary version keyed by (bill_id, update_date)."""
        result = await self.summaries.update_one(
            {"bill_id": summary.bill_id, "update_date": summary.update_date},
            {"$set": to_document(summary)},
            upsert=True
        )
        return result.upserted_id is not None

    @storage_operation(COLLECTION_BILL_SUBJECTS)
    async def upsert_bill_subject(self, subject: BillSubject) -> bool:
        """Replace the policy area and subject terms of a bill."""
        result = await self.subjects.update_one(
            {"bill_id": subject.bill_id},
            {"$set": to_document(subject)},
            upsert=True
        )
        return result.upserted_id is not None

    @storage_operation(COLLECTION_BILL_TEXT)
    async def upsert_bill_text(self, text_version: BillTextVersion) -> bool:
        """Replace the latest text version links of a bill."""
        result = await self.text.update_one(
            {"bill_id": text_version.bill_id},
            {"$set": to_document(text_version)},
            upsert=True
        )
        return result.upserted_id is not None

    @storage_operation(COLLECTION_BILLS)
    async def update_bill_sync_status(self, bill_id: str, endpoint_bits: int) -> int:
        """
        OR `endpoint_bits` into the bill's synced-endpoints mask.

        Bits are never cleared. The bill must already exist.

        Returns:
            The stored mask after the merge (0 if the bill does not exist)
        """
        doc = await self.bills.find_one_and_update(
            {"bill_id": bill_id},
            {
                "$bit": {"synced_endpoints": {"or": int(endpoint_bits)}},
                "$set": {"last_sync_attempt": datetime.utcnow()},
            },
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            self.logger.warning(f"Sync status update for unknown bill {bill_id}")
            return 0
        return doc.get("synced_endpoints", 0)

    async def save_bundle(self, bundle: BillBundle) -> int:
        """
        Write a bill and every child collection present in the bundle.

        The header goes first; if it fails nothing else is written. A failed
        child collection does not undo its siblings. The sync bits of the
        children that were written are merged even when another child failed.

        Returns:
            The bits merged into the bill's sync mask

        Raises:
            StorageError: naming every collection that failed
        """
        bill_id = bundle.bill.bill_id
        try:
            await self.upsert_bill(bundle.bill)
        except StorageError as e:
            e.bill_id = bill_id
            raise

        failed: list[str] = []
        errors: list[str] = []

        async def attempt(collection: str, write):
            try:
                await write()
            except StorageError as e:
                failed.append(collection)
                errors.append(str(e))
                self.logger.error(f"{bill_id}: {e}")

        if bundle.actions is not None:
            await attempt(
                COLLECTION_BILL_ACTIONS,
                lambda: self.replace_bill_actions(bill_id, bundle.actions),
            )
        if bundle.titles is not None:
            await attempt(
                COLLECTION_BILL_TITLES,
                lambda: self.replace_bill_titles(bill_id, bundle.titles),
            )
        if bundle.summaries is not None:
            async def write_summaries():
                for summary in bundle.summaries:
                    await self.upsert_bill_summary(summary)
            await attempt(COLLECTION_BILL_SUMMARIES, write_summaries)
        if bundle.subject is not None:
            await attempt(
                COLLECTION_BILL_SUBJECTS,
                lambda: self.upsert_bill_subject(bundle.subject),
            )
        if bundle.text_version is not None:
            await attempt(
                COLLECTION_BILL_TEXT,
                lambda: self.upsert_bill_text(bundle.text_version),
            )

        bits = bundle.resolved_endpoints | SYNC_DETAIL
        for collection in failed:
            bits &= ~CHILD_COLLECTION_BITS[collection]

        try:
            await self.update_bill_sync_status(bill_id, bits)
        except StorageError as e:
            failed.append(COLLECTION_BILLS)
            errors.append(str(e))

        if failed:
            raise StorageError(
                f"Failed to write {', '.join(failed)} for {bill_id}: {'; '.join(errors)}",
                bill_id=bill_id,
                collections=failed,
            )
        return bits

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @storage_operation(COLLECTION_BILLS)
    async def get_bill(self, bill_id: str) -> Optional[dict]:
        """The stored bill document (with its sync mask), or None."""
        doc = await self.bills.find_one({"bill_id": bill_id})
        return from_document(doc) if doc else None

    async def _latest_generation(self, collection, bill_id: str) -> list[dict]:
        newest = await collection.find_one(
            {"bill_id": bill_id},
            sort=[("sync_generation", DESCENDING)],
        )
        if newest is None:
            return []
        query = {"bill_id": bill_id, "sync_generation": newest.get("sync_generation")}
        return await collection.find(query).to_list(length=None)

    @storage_operation(COLLECTION_BILL_ACTIONS)
    async def get_bill_actions(self, bill_id: str) -> list[BillAction]:
        """The current action history, oldest first."""
        docs = await self._latest_generation(self.actions, bill_id)
        actions = [BillAction(**from_document(d)) for d in docs]
        actions.sort(key=lambda a: a.action_date or date.min)
        return actions

    @storage_operation(COLLECTION_BILL_TITLES)
    async def get_bill_titles(self, bill_id: str) -> list[BillTitle]:
        docs = await self._latest_generation(self.titles, bill_id)
        return [BillTitle(**from_document(d)) for d in docs]

    @storage_operation(COLLECTION_BILL_SUMMARIES)
    async def get_latest_summary(self, bill_id: str) -> Optional[BillSummary]:
        """The summary version with the newest update date."""
        doc = await self.summaries.find_one(
            {"bill_id": bill_id},
            sort=[("update_date", DESCENDING)],
        )
        return BillSummary(**from_document(doc)) if doc else None

    @storage_operation(COLLECTION_BILL_SUBJECTS)
    async def get_bill_subject(self, bill_id: str) -> Optional[BillSubject]:
        doc = await self.subjects.find_one({"bill_id": bill_id})
        return BillSubject(**from_document(doc)) if doc else None

    @storage_operation(COLLECTION_BILL_TEXT)
    async def get_bill_text(self, bill_id: str) -> Optional[BillTextVersion]:
        doc = await self.text.find_one({"bill_id": bill_id})
        return BillTextVersion(**from_document(doc)) if doc else None

    @storage_operation(COLLECTION_BILLS)
    async def latest_congress(self) -> Optional[int]:
        """Highest congress number with at least one stored bill."""
        doc = await self.bills.find_one({}, sort=[("congress", DESCENDING)])
        return doc["congress"] if doc else None

    @storage_operation(COLLECTION_BILLS)
    async def get_sync_state(self, bill_ids: list[str]) -> dict[str, dict]:
        """
        Stored Congress.gov update date and sync mask per bill.

        Bills that are not stored yet are omitted.
        """
        if not bill_ids:
            return {}
        cursor = self.bills.find(
            {"bill_id": {"$in": list(bill_ids)}},
            {"bill_id": 1, "source_update_date": 1, "synced_endpoints": 1},
        )
        return {
            doc["bill_id"]: {
                "source_update_date": doc.get("source_update_date"),
                "synced_endpoints": doc.get("synced_endpoints", 0),
            }
            for doc in await cursor.to_list(length=None)
        }

    def _incomplete_query(self, congress: Optional[int], bill_types: Optional[list[str]] = None) -> dict:
        query: dict[str, Any] = {
            "$or": [
                {"synced_endpoints": {"$exists": False}},
                {"synced_endpoints": {"$lt": SYNC_COMPLETE}},
            ]
        }
        if congress is not None:
            query["congress"] = congress
        if bill_types:
            query["bill_type"] = {"$in": list(bill_types)}
        return query

    @storage_operation(COLLECTION_BILLS)
    async def find_incomplete_bills(
        self,
        congress: Optional[int] = None,
        limit: Optional[int] = None,
        bill_types: Optional[list[str]] = None,
    ) -> list[dict]:
        """
        Bills whose sync mask is missing bits.

        Returns:
            Dicts with bill_id, congress, bill_type, bill_number and
            synced_endpoints (0 for legacy bills without a mask)
        """
        cursor = self.bills.find(
            self._incomplete_query(congress, bill_types),
            {"bill_id": 1, "congress": 1, "bill_type": 1, "bill_number": 1, "synced_endpoints": 1},
        ).sort("bill_id", 1)
        if limit:
            cursor = cursor.limit(limit)
        return [
            {
                "bill_id": doc["bill_id"],
                "congress": doc["congress"],
                "bill_type": doc["bill_type"],
                "bill_number": doc["bill_number"],
                "synced_endpoints": doc.get("synced_endpoints", 0),
            }
            for doc in await cursor.to_list(length=None)
        ]

    @storage_operation(COLLECTION_BILLS)
    async def sync_completeness(self, congress: Optional[int] = None) -> dict[str, int]:
        """
        How many bills have every sub-resource synced.

        Returns:
            {"total", "complete", "partial", "legacy"} where legacy bills have
            no mask at all
        """
        base: dict[str, Any] = {} if congress is None else {"congress": congress}
        total = await self.bills.count_documents(base)
        complete = await self.bills.count_documents({**base, "synced_endpoints": SYNC_COMPLETE})
        legacy = await self.bills.count_documents({**base, "synced_endpoints": {"$exists": False}})
        return {
            "total": total,
            "complete": complete,
            "partial": total - complete - legacy,
            "legacy": legacy,
        }


# ============================================================================
# Sync snapshots
# ============================================================================

class SnapshotStore:
    """Audit trail of orchestrator runs. Snapshots are never deleted."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.collection = db[COLLECTION_SYNC_SNAPSHOTS]

    @staticmethod
    def _from_document(doc: dict) -> SyncSnapshot:
        data = dict(doc)
        data["id"] = str(data.pop("_id"))
        return SyncSnapshot(**data)

    @storage_operation(COLLECTION_SYNC_SNAPSHOTS)
    async def create(self, snapshot: SyncSnapshot) -> SyncSnapshot:
        """Insert a snapshot and return it with its id set."""
        if snapshot.last_progress_at is None:
            snapshot = snapshot.model_copy(update={"last_progress_at": snapshot.started_at})
        result = await self.collection.insert_one(to_document(snapshot, exclude=("id",)))
        return snapshot.model_copy(update={"id": str(result.inserted_id)})

    @storage_operation(COLLECTION_SYNC_SNAPSHOTS)
    async def update(self, snapshot_id: str, **fields) -> None:
        """Patch a snapshot in place."""
        await self.collection.update_one(
            {"_id": ObjectId(snapshot_id)},
            {"$set": {k: _to_bson_value(v) for k, v in fields.items()}},
        )

    @storage_operation(COLLECTION_SYNC_SNAPSHOTS)
    async def finish(self, snapshot_id: str, **fields) -> bool:
        """
        Patch a snapshot with its final state, but only while it is running.

        Returns:
            False if the snapshot was already closed (e.g. reclassified as
            abandoned by another run); nothing is written in that case
        """
        result = await self.collection.update_one(
            {"_id": ObjectId(snapshot_id), "status": SyncStatus.RUNNING.value},
            {"$set": {k: _to_bson_value(v) for k, v in fields.items()}},
        )
        return result.matched_count > 0

    @storage_operation(COLLECTION_SYNC_SNAPSHOTS)
    async def get(self, snapshot_id: str) -> Optional[SyncSnapshot]:
        doc = await self.collection.find_one({"_id": ObjectId(snapshot_id)})
        return self._from_document(doc) if doc else None

    @storage_operation(COLLECTION_SYNC_SNAPSHOTS)
    async def find_running(self, congress: Optional[int] = None) -> list[SyncSnapshot]:
        query: dict[str, Any] = {"status": SyncStatus.RUNNING.value}
        if congress is not None:
            query["congress"] = congress
        docs = await self.collection.find(query).to_list(length=None)
        return [self._from_document(d) for d in docs]

    @storage_operation(COLLECTION_SYNC_SNAPSHOTS)
    async def fail_stale(self, stale_after: timedelta, now: Optional[datetime] = None) -> int:
        """
        Mark "running" snapshots with no progress for `stale_after` as failed.

        A process killed mid-run leaves its snapshot running forever; this is
        called at the start of every run. Staleness is measured from the
        last checkpoint heartbeat, so a long backfill that is still paging
        stays running. Snapshots written without a heartbeat fall back to
        their start time.

        Returns:
            Number of snapshots reclassified
        """
        now = now or datetime.utcnow()
        cutoff = now - stale_after
        result = await self.collection.update_many(
            {
                "status": SyncStatus.RUNNING.value,
                "$or": [
                    {"last_progress_at": {"$lt": cutoff}},
                    {"last_progress_at": {"$exists": False}, "started_at": {"$lt": cutoff}},
                ],
            },
            {"$set": {
                "status": SyncStatus.FAILED.value,
                "completed_at": now,
                "error_details": f"Abandoned: no progress for {stale_after}",
            }},
        )
        return result.modified_count

    @storage_operation(COLLECTION_SYNC_SNAPSHOTS)
    async def latest_completed(self, congress: Optional[int] = None) -> Optional[SyncSnapshot]:
        """The most recently completed snapshot ("data last updated")."""
        query: dict[str, Any] = {"status": SyncStatus.COMPLETED.value}
        if congress is not None:
            query["congress"] = congress
        doc = await self.collection.find_one(query, sort=[("completed_at", DESCENDING)])
        return self._from_document(doc) if doc else None

    @storage_operation(COLLECTION_SYNC_SNAPSHOTS)
    async def recent(self, limit: int = 10) -> list[SyncSnapshot]:
        """Newest snapshots first."""
        cursor = self.collection.find({}).sort("started_at", DESCENDING).limit(limit)
        return [self._from_document(d) for d in await cursor.to_list(length=None)]
