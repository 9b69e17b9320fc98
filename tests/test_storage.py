"""
Tests for the MongoDB storage layer.

Run against the in-memory FakeDatabase from tests/fakes.py.
"""
from datetime import date, datetime, timedelta

import pytest
from pymongo.errors import PyMongoError

from billwatch.config.constants import (
    SYNC_ACTIONS,
    SYNC_COMPLETE,
    SYNC_DETAIL,
    SYNC_SUBJECTS,
    SYNC_TITLES,
)
from billwatch.database.storage import BillStore, from_document, to_document
from billwatch.errors import StorageError
from billwatch.ingestion.transform import transform_bill
from billwatch.models.legislation import BillStage, BillSummary, BillTitle
from billwatch.models.sync import SyncSnapshot, SyncStatus, SyncType

from tests.fakes import (
    DEFAULT_ACTIONS,
    DEFAULT_SUBJECTS,
    DEFAULT_SUMMARIES,
    DEFAULT_TEXT_VERSIONS,
    DEFAULT_TITLES,
    FakeClient,
    make_detail,
)


def make_bundle(number=1, **overrides):
    kwargs = {
        "actions": DEFAULT_ACTIONS,
        "summaries": DEFAULT_SUMMARIES,
        "titles": DEFAULT_TITLES,
        "subjects": DEFAULT_SUBJECTS,
        "text_versions": DEFAULT_TEXT_VERSIONS,
    }
    kwargs.update(overrides)
    return transform_bill(make_detail(number), **kwargs)


class TestDocuments:

    def test_dates_and_enums_are_bson_friendly(self):
        bill = make_bundle().bill
        bill.progress_stage = BillStage.IN_COMMITTEE

        doc = to_document(bill)

        assert doc["introduced_date"] == datetime(2025, 1, 3)
        assert doc["progress_stage"] == 40
        assert doc["bill_type"] == "hr"

    def test_from_document_restores_dates(self):
        doc = {"_id": "x", "sync_generation": "g", "action_date": datetime(2025, 1, 3), "text": "t"}

        assert from_document(doc) == {"action_date": date(2025, 1, 3), "text": "t"}


class TestBillUpserts:

    @pytest.mark.asyncio
    async def test_upsert_is_idempotent(self, store, fake_db):
        bill = make_bundle().bill

        assert await store.upsert_bill(bill) is True
        assert await store.upsert_bill(bill) is False

        assert len(fake_db["bills"].docs) == 1

    @pytest.mark.asyncio
    async def test_upsert_keeps_created_at_and_unset_fields(self, store, fake_db):
        bill = make_bundle().bill
        bill.progress_stage = BillStage.IN_COMMITTEE
        await store.upsert_bill(bill)
        created_at = fake_db["bills"].docs[0]["created_at"]

        patch = bill.model_copy(update={"progress_stage": None, "title": "Renamed"})
        await store.upsert_bill(patch)

        stored = await store.get_bill(bill.bill_id)
        assert stored["title"] == "Renamed"
        assert stored["progress_stage"] == 40
        assert stored["created_at"] == created_at
        assert stored["introduced_date"] == date(2025, 1, 3)

    @pytest.mark.asyncio
    async def test_summary_keyed_by_update_date(self, store, fake_db):
        first = BillSummary(bill_id="1hr119", text="v1", update_date=datetime(2025, 1, 10))
        revised = BillSummary(bill_id="1hr119", text="v1 revised", update_date=datetime(2025, 1, 10))
        newer = BillSummary(bill_id="1hr119", text="v2", update_date=datetime(2025, 4, 2))

        assert await store.upsert_bill_summary(first) is True
        assert await store.upsert_bill_summary(revised) is False
        await store.upsert_bill_summary(newer)

        assert len(fake_db["bill_summaries"].docs) == 2
        assert (await store.get_latest_summary("1hr119")).text == "v2"


class TestReplaceChildren:

    @pytest.mark.asyncio
    async def test_replace_leaves_only_latest_set(self, store, fake_db):
        titles = [BillTitle(bill_id="1hr119", title=f"Title {i}") for i in range(3)]
        await store.replace_bill_titles("1hr119", titles)
        await store.replace_bill_titles("1hr119", titles[:1])

        assert len(fake_db["bill_titles"].docs) == 1
        assert [t.title for t in await store.get_bill_titles("1hr119")] == ["Title 0"]

    @pytest.mark.asyncio
    async def test_replace_with_empty_list_clears(self, store, fake_db):
        bundle = make_bundle()
        await store.replace_bill_actions("1hr119", bundle.actions)

        assert await store.replace_bill_actions("1hr119", []) == 0
        assert fake_db["bill_actions"].docs == []
        assert await store.get_bill_actions("1hr119") == []

    @pytest.mark.asyncio
    async def test_other_bills_untouched(self, store, fake_db):
        await store.replace_bill_titles("1hr119", [BillTitle(bill_id="1hr119", title="A")])
        await store.replace_bill_titles("2hr119", [BillTitle(bill_id="2hr119", title="B")])
        await store.replace_bill_titles("1hr119", [BillTitle(bill_id="1hr119", title="C")])

        assert [t.title for t in await store.get_bill_titles("2hr119")] == ["B"]

    @pytest.mark.asyncio
    async def test_failed_delete_keeps_new_generation_visible(self, store, fake_db):
        await store.replace_bill_titles("1hr119", [BillTitle(bill_id="1hr119", title="Old")])
        fake_db["bill_titles"].fail("delete_many")

        with pytest.raises(StorageError) as exc_info:
            await store.replace_bill_titles("1hr119", [BillTitle(bill_id="1hr119", title="New")])

        assert exc_info.value.collections == ["bill_titles"]
        # Both generations are stored but readers only see the newest
        assert len(fake_db["bill_titles"].docs) == 2
        assert [t.title for t in await store.get_bill_titles("1hr119")] == ["New"]

    @pytest.mark.asyncio
    async def test_insert_failing_partway_keeps_previous_set(self, store, fake_db):
        """Rows written before an insert error must not become the visible set."""
        old = [BillTitle(bill_id="1hr119", title=f"Old {i}") for i in range(3)]
        await store.replace_bill_titles("1hr119", old)
        fake_db["bill_titles"].fail("insert_many", written=1)

        with pytest.raises(StorageError) as exc_info:
            await store.replace_bill_titles(
                "1hr119", [BillTitle(bill_id="1hr119", title=f"New {i}") for i in range(3)]
            )

        assert exc_info.value.collections == ["bill_titles"]
        assert [t.title for t in await store.get_bill_titles("1hr119")] == ["Old 0", "Old 1", "Old 2"]
        assert len(fake_db["bill_titles"].docs) == 3

    @pytest.mark.asyncio
    async def test_actions_read_back_oldest_first(self, store):
        bundle = make_bundle()
        await store.replace_bill_actions("1hr119", bundle.actions)

        actions = await store.get_bill_actions("1hr119")

        assert [a.text for a in actions] == [a.text for a in bundle.actions]
        assert actions[0].action_date == date(2025, 1, 3)

    @pytest.mark.asyncio
    async def test_transactions_wrap_delete_and_insert(self, fake_db):
        client = FakeClient()
        store = BillStore(fake_db, client=client, use_transactions=True)

        await store.replace_bill_titles("1hr119", [BillTitle(bill_id="1hr119", title="A")])
        await store.replace_bill_titles("1hr119", [BillTitle(bill_id="1hr119", title="B")])

        assert client.transactions_committed == 2
        assert [d["title"] for d in fake_db["bill_titles"].docs] == ["B"]

    def test_transactions_need_client(self, fake_db):
        with pytest.raises(ValueError):
            BillStore(fake_db, use_transactions=True)


class TestSyncMask:

    @pytest.mark.asyncio
    async def test_bits_only_accumulate(self, store):
        bill = make_bundle().bill
        await store.upsert_bill(bill)

        assert await store.update_bill_sync_status(bill.bill_id, 0b001) == 0b001
        assert await store.update_bill_sync_status(bill.bill_id, 0b010) == 0b011
        assert await store.update_bill_sync_status(bill.bill_id, 0b001) == 0b011

        stored = await store.get_bill(bill.bill_id)
        assert stored["synced_endpoints"] == 0b011
        assert isinstance(stored["last_sync_attempt"], datetime)

    @pytest.mark.asyncio
    async def test_unknown_bill(self, store):
        assert await store.update_bill_sync_status("9hr119", SYNC_DETAIL) == 0

    @pytest.mark.asyncio
    async def test_header_upsert_does_not_reset_mask(self, store):
        bill = make_bundle().bill
        await store.upsert_bill(bill)
        await store.update_bill_sync_status(bill.bill_id, SYNC_COMPLETE)

        await store.upsert_bill(bill)

        assert (await store.get_bill(bill.bill_id))["synced_endpoints"] == SYNC_COMPLETE


class TestSaveBundle:

    @pytest.mark.asyncio
    async def test_writes_every_collection(self, store, fake_db):
        bits = await store.save_bundle(make_bundle())

        assert bits == SYNC_COMPLETE
        assert len(fake_db["bill_actions"].docs) == 2
        assert len(fake_db["bill_titles"].docs) == 2
        assert len(fake_db["bill_summaries"].docs) == 1
        assert len(fake_db["bill_subjects"].docs) == 1
        assert len(fake_db["bill_text"].docs) == 1
        assert (await store.get_bill("1hr119"))["synced_endpoints"] == SYNC_COMPLETE

    @pytest.mark.asyncio
    async def test_saving_twice_keeps_one_set(self, store, fake_db):
        await store.save_bundle(make_bundle())
        await store.save_bundle(make_bundle())

        assert len(fake_db["bills"].docs) == 1
        assert len(fake_db["bill_actions"].docs) == 2
        assert len(fake_db["bill_titles"].docs) == 2
        assert len(fake_db["bill_summaries"].docs) == 1

    @pytest.mark.asyncio
    async def test_partial_failure_keeps_siblings_and_drops_bit(self, store, fake_db):
        fake_db["bill_actions"].fail("insert_many")

        with pytest.raises(StorageError) as exc_info:
            await store.save_bundle(make_bundle())

        error = exc_info.value
        assert error.bill_id == "1hr119"
        assert error.collections == ["bill_actions"]
        assert fake_db["bill_actions"].docs == []
        assert len(fake_db["bill_titles"].docs) == 2
        assert len(fake_db["bill_summaries"].docs) == 1

        mask = (await store.get_bill("1hr119"))["synced_endpoints"]
        assert mask == SYNC_COMPLETE & ~SYNC_ACTIONS

    @pytest.mark.asyncio
    async def test_header_failure_writes_nothing(self, store, fake_db):
        fake_db["bills"].fail("update_one")

        with pytest.raises(StorageError) as exc_info:
            await store.save_bundle(make_bundle())

        assert exc_info.value.bill_id == "1hr119"
        assert exc_info.value.collections == ["bills"]
        assert fake_db["bill_actions"].docs == []

    @pytest.mark.asyncio
    async def test_unfetched_children_untouched(self, store, fake_db):
        await store.save_bundle(make_bundle())

        detail_only = transform_bill(make_detail(1))
        bits = await store.save_bundle(detail_only)

        assert bits == SYNC_DETAIL
        assert len(fake_db["bill_actions"].docs) == 2
        assert (await store.get_bill("1hr119"))["synced_endpoints"] == SYNC_COMPLETE

    @pytest.mark.asyncio
    async def test_mongo_errors_are_wrapped(self, store, fake_db):
        fake_db["bills"].fail("find_one", PyMongoError("connection reset"))

        with pytest.raises(StorageError, match="connection reset"):
            await store.get_bill("1hr119")


class TestQueries:

    @pytest.mark.asyncio
    async def test_find_incomplete_and_completeness(self, store, fake_db):
        await store.save_bundle(make_bundle(1))
        await store.save_bundle(make_bundle(2, summaries=None, text_versions=None))
        legacy = make_bundle(3).bill
        await store.upsert_bill(legacy)

        incomplete = await store.find_incomplete_bills(congress=119)

        assert [b["bill_id"] for b in incomplete] == ["2hr119", "3hr119"]
        assert incomplete[0]["synced_endpoints"] == SYNC_DETAIL | SYNC_ACTIONS | SYNC_TITLES | SYNC_SUBJECTS
        assert incomplete[1]["synced_endpoints"] == 0
        assert incomplete[0]["bill_type"] == "hr"
        assert await store.find_incomplete_bills(congress=119, limit=1) == incomplete[:1]
        assert await store.find_incomplete_bills(congress=118) == []

        assert await store.sync_completeness(119) == {
            "total": 3, "complete": 1, "partial": 1, "legacy": 1,
        }

    @pytest.mark.asyncio
    async def test_sync_state(self, store):
        await store.save_bundle(make_bundle(1))

        state = await store.get_sync_state(["1hr119", "99hr119"])

        assert state == {
            "1hr119": {
                "source_update_date": datetime(2025, 3, 1, 12),
                "synced_endpoints": SYNC_COMPLETE,
            }
        }
        assert await store.get_sync_state([]) == {}

    @pytest.mark.asyncio
    async def test_latest_congress(self, store):
        assert await store.latest_congress() is None

        await store.upsert_bill(make_bundle(1).bill)

        assert await store.latest_congress() == 119

    @pytest.mark.asyncio
    async def test_subject_and_text_reads(self, store):
        await store.save_bundle(make_bundle(1))

        subject = await store.get_bill_subject("1hr119")
        text = await store.get_bill_text("1hr119")

        assert subject.legislative_subjects == ["Income tax rates", "Tax reform"]
        assert text.version_type == "Introduced in House"
        assert await store.get_bill_text("9hr119") is None


class TestSnapshots:

    @pytest.mark.asyncio
    async def test_create_update_get(self, snapshots):
        snapshot = await snapshots.create(SyncSnapshot(sync_type=SyncType.DAILY, congress=119))

        assert snapshot.id is not None
        await snapshots.update(
            snapshot.id,
            status=SyncStatus.COMPLETED,
            completed_at=datetime(2025, 3, 2),
            total_processed=3,
        )

        stored = await snapshots.get(snapshot.id)
        assert stored.status == SyncStatus.COMPLETED
        assert stored.total_processed == 3
        assert stored.sync_type == SyncType.DAILY

    @pytest.mark.asyncio
    async def test_find_running(self, snapshots):
        await snapshots.create(SyncSnapshot(sync_type=SyncType.DAILY, congress=119))
        await snapshots.create(SyncSnapshot(sync_type=SyncType.DAILY, congress=118))
        await snapshots.create(SyncSnapshot(
            sync_type=SyncType.DAILY, congress=119, status=SyncStatus.COMPLETED,
        ))

        assert len(await snapshots.find_running()) == 2
        assert [s.congress for s in await snapshots.find_running(119)] == [119]

    @pytest.mark.asyncio
    async def test_fail_stale(self, snapshots):
        now = datetime(2025, 3, 2, 12)
        old = await snapshots.create(SyncSnapshot(
            sync_type=SyncType.HISTORICAL, congress=119, started_at=now - timedelta(hours=10),
        ))
        fresh = await snapshots.create(SyncSnapshot(
            sync_type=SyncType.DAILY, congress=119, started_at=now - timedelta(minutes=5),
        ))

        assert await snapshots.fail_stale(timedelta(hours=6), now=now) == 1

        reclassified = await snapshots.get(old.id)
        assert reclassified.status == SyncStatus.FAILED
        assert reclassified.completed_at == now
        assert "Abandoned" in reclassified.error_details
        assert (await snapshots.get(fresh.id)).status == SyncStatus.RUNNING

    @pytest.mark.asyncio
    async def test_fail_stale_measures_from_last_progress(self, snapshots, fake_db):
        now = datetime(2025, 3, 2, 12)
        backfill = await snapshots.create(SyncSnapshot(
            sync_type=SyncType.HISTORICAL, congress=118, started_at=now - timedelta(hours=10),
        ))
        await snapshots.update(backfill.id, last_progress_at=now - timedelta(minutes=2))
        # Written before heartbeats existed
        fake_db["sync_snapshots"].docs.append({
            "sync_type": "daily", "congress": 117, "status": "running",
            "started_at": now - timedelta(hours=10),
        })

        assert await snapshots.fail_stale(timedelta(hours=6), now=now) == 1

        assert (await snapshots.get(backfill.id)).status == SyncStatus.RUNNING
        assert fake_db["sync_snapshots"].docs[-1]["status"] == "failed"

    @pytest.mark.asyncio
    async def test_finish_only_patches_running_snapshots(self, snapshots):
        snapshot = await snapshots.create(SyncSnapshot(sync_type=SyncType.DAILY, congress=119))
        await snapshots.update(snapshot.id, status=SyncStatus.FAILED, error_details="Abandoned")

        finished = await snapshots.finish(snapshot.id, status=SyncStatus.COMPLETED, total_processed=5)

        assert finished is False
        stored = await snapshots.get(snapshot.id)
        assert stored.status == SyncStatus.FAILED
        assert stored.total_processed == 0

    @pytest.mark.asyncio
    async def test_latest_completed_and_recent(self, snapshots):
        for day in (1, 3, 2):
            snapshot = await snapshots.create(SyncSnapshot(
                sync_type=SyncType.DAILY, congress=119, started_at=datetime(2025, 3, day),
            ))
            await snapshots.update(
                snapshot.id, status=SyncStatus.COMPLETED, completed_at=datetime(2025, 3, day, 1),
            )
        await snapshots.create(SyncSnapshot(
            sync_type=SyncType.DAILY, congress=119, started_at=datetime(2025, 3, 4),
        ))

        latest = await snapshots.latest_completed(119)

        assert latest.started_at == datetime(2025, 3, 3)
        assert await snapshots.latest_completed(118) is None
        assert [s.started_at.day for s in await snapshots.recent(limit=2)] == [4, 3]
