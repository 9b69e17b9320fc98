"""
Base ingester class.

Owns the sync snapshot lifecycle (running -> completed | failed) and the
per-item ETL loop. Subclasses supply the items and how each one becomes a
stored BillBundle.
"""
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import AsyncGenerator, TypeVar, Generic, Optional
import asyncio
import logging

from billwatch.config.constants import MAX_RECORDED_FAILURES
from billwatch.config.settings import settings
from billwatch.database.storage import BillStore, SnapshotStore
from billwatch.errors import FetchError, OrchestratorError, StorageError, TransformError
from billwatch.models.legislation import BillBundle
from billwatch.models.sync import SyncSnapshot, SyncStatus, SyncType

T = TypeVar('T')

# Per-item failures: logged and counted, never abort the run
ITEM_ERRORS = (FetchError, TransformError, StorageError)


class BaseIngester(ABC, Generic[T]):
    """
    Base class for sync runs.

    A run:
      1. reclassifies abandoned "running" snapshots as failed
      2. refuses to start if another run covers the same scope
      3. creates a "running" snapshot
      4. processes every item from fetch_data() one at a time
      5. patches the snapshot to "completed" (or "failed" on a run-level error)
    """

    sync_type: SyncType = SyncType.HISTORICAL

    def __init__(
        self,
        store: BillStore,
        snapshots: SnapshotStore,
        congress: int,
        bill_type: Optional[str] = None,
        stale_after: Optional[timedelta] = None,
    ):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.store = store
        self.snapshots = snapshots
        self.congress = congress
        self.bill_type = bill_type  # None = every bill type
        self.stale_after = stale_after or timedelta(hours=settings.SYNC_STALE_AFTER_HOURS)
        self.snapshot: Optional[SyncSnapshot] = None
        self.reset_stats()

    @abstractmethod
    async def fetch_data(self, **kwargs) -> AsyncGenerator[T, None]:
        """
        Yield the work items of this run.

        This should be an async generator. Exceptions raised here are
        run-level failures.
        """
        pass

    @abstractmethod
    async def transform(self, item: T) -> BillBundle:
        """
        Turn one work item into a bundle ready to store.

        Raises:
            FetchError, TransformError: the item is counted as failed
        """
        pass

    @abstractmethod
    def item_label(self, item: T) -> str:
        """Identifier used in logs and failure details."""
        pass

    async def load(self, bundle: BillBundle) -> int:
        """Store a bundle. Returns the sync bits merged for the bill."""
        return await self.store.save_bundle(bundle)

    async def should_skip(self, item: T) -> bool:
        """Return True to count an item as skipped without processing it."""
        return False

    async def preflight(self):
        """
        Checks that run after the snapshot exists.

        Raise OrchestratorError to fail the run (e.g. missing credentials).
        """
        pass

    async def process_item(self, item: T):
        """
        Process a single item through the ETL pipeline.

        Item-level errors are logged and counted; the run carries on.
        """
        label = self.item_label(item)
        self.stats["processed"] += 1
        try:
            if await self.should_skip(item):
                self.stats["skipped"] += 1
                self.logger.debug(f"Skipping unchanged {label}")
                return

            bundle = await self.transform(item)
            await self.load(bundle)
            self.stats["succeeded"] += 1

        except ITEM_ERRORS as e:
            self._record_failure(label, e)
            self.logger.error(f"Error processing {label}: {e}")

        except Exception as e:
            self._record_failure(label, e)
            self.logger.error(f"Unexpected error processing {label}: {e}", exc_info=True)

    def _record_failure(self, label: str, error: Exception):
        self.stats["failed"] += 1
        if len(self.failures) < MAX_RECORDED_FAILURES:
            self.failures.append(f"{label}: {error}")

    # ------------------------------------------------------------------
    # Snapshot lifecycle
    # ------------------------------------------------------------------

    async def start_snapshot(self) -> SyncSnapshot:
        """Clear abandoned runs, check for overlap, and open a snapshot."""
        stale = await self.snapshots.fail_stale(self.stale_after)
        if stale:
            self.logger.warning(f"Marked {stale} abandoned sync snapshot(s) as failed")

        running = await self.snapshots.find_running(self.congress)
        overlapping = [s for s in running if s.covers(self.congress, self.bill_type)]
        if overlapping:
            raise OrchestratorError(
                f"Sync already running for congress {self.congress} "
                f"({overlapping[0].bill_type or 'all types'}), snapshot {overlapping[0].id}"
            )

        snapshot = SyncSnapshot(
            sync_type=self.sync_type,
            congress=self.congress,
            bill_type=self.bill_type,
            started_at=self.stats["started_at"],
        )
        self.snapshot = await self.snapshots.create(snapshot)
        self.logger.info(f"Opened sync snapshot {self.snapshot.id}")
        return self.snapshot

    def _count_fields(self) -> dict:
        return {
            "total_processed": self.stats["processed"],
            "total_success": self.stats["succeeded"],
            "total_failed": self.stats["failed"],
            "total_skipped": self.stats["skipped"],
        }

    async def checkpoint(self):
        """Write the running counts and a progress heartbeat (called after each page)."""
        if self.snapshot is not None:
            await self.snapshots.update(
                self.snapshot.id, last_progress_at=datetime.utcnow(), **self._count_fields()
            )

    def failure_details(self) -> Optional[str]:
        if not self.stats["failed"]:
            return None
        details = "; ".join(self.failures)
        hidden = self.stats["failed"] - len(self.failures)
        if hidden > 0:
            details += f"; ... and {hidden} more"
        return f"{self.stats['failed']} bill(s) failed: {details}"

    async def _finish_snapshot(self, status: SyncStatus, error_details: Optional[str]):
        if self.snapshot is None:
            return
        fields = {
            "status": status,
            "completed_at": self.stats["completed_at"],
            "error_details": error_details,
            **self._count_fields(),
        }
        if not await self.snapshots.finish(self.snapshot.id, **fields):
            # Reclassified as abandoned while we ran; keep its failed status
            self.logger.warning(
                f"Snapshot {self.snapshot.id} was closed by another run; recording counts only"
            )
            fields = self._count_fields()
            await self.snapshots.update(self.snapshot.id, **fields)
            fields["status"] = SyncStatus.FAILED
        self.snapshot = self.snapshot.model_copy(update=fields)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(self, **kwargs) -> dict:
        """
        Execute the full sync run.

        Args:
            **kwargs: Passed to fetch_data()

        Returns:
            Statistics dict with counts and timing

        Raises:
            OrchestratorError: the run could not start, failed as a whole, or
                its final state could not be written to the snapshot
        """
        self.logger.info(f"Starting {self.__class__.__name__} for congress {self.congress}...")
        self.reset_stats()
        self.stats["started_at"] = datetime.utcnow()

        # No snapshot exists yet if this raises
        await self.start_snapshot()

        status = SyncStatus.FAILED
        error_details = None
        finish_error = None
        try:
            await self.preflight()

            async for item in self.fetch_data(**kwargs):
                await self.process_item(item)

            status = SyncStatus.COMPLETED
            error_details = self.failure_details()

        except (KeyboardInterrupt, asyncio.CancelledError):
            self.logger.warning("Sync interrupted")
            error_details = "Interrupted"
            raise

        except OrchestratorError as e:
            self.logger.error(f"Sync failed: {e}")
            error_details = str(e)
            raise

        except Exception as e:
            self.logger.error(f"Fatal error during sync: {e}", exc_info=True)
            error_details = f"{type(e).__name__}: {e}"
            raise OrchestratorError(f"Sync run failed: {e}") from e

        finally:
            self.stats["completed_at"] = datetime.utcnow()
            self.stats["status"] = status.value
            try:
                await self._finish_snapshot(status, error_details)
            except StorageError as e:
                # Must not replace an exception already propagating
                self.logger.error(f"Could not record final state of snapshot {self.snapshot.id}: {e}")
                finish_error = e

            duration = self.stats["completed_at"] - self.stats["started_at"]
            self.logger.info(
                f"Sync {status.value}. "
                f"Processed: {self.stats['processed']}, "
                f"Succeeded: {self.stats['succeeded']}, "
                f"Failed: {self.stats['failed']}, "
                f"Skipped: {self.stats['skipped']}, "
                f"Duration: {duration}"
            )

        if finish_error is not None:
            raise OrchestratorError(
                f"Sync {status.value} but snapshot {self.snapshot.id} was not updated: {finish_error}"
            ) from finish_error
        return self.stats

    def reset_stats(self):
        """Reset statistics counters"""
        self.stats = {
            "processed": 0,
            "succeeded": 0,
            "failed": 0,
            "skipped": 0,
            "status": None,
            "started_at": None,
            "completed_at": None
        }
        self.failures: list[str] = []
