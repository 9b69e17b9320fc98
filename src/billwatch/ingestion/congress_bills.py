"""
Congress.gov bill sync.

CongressBillsIngester pages through the bill list for one congress and a
set of bill types, and for each bill: fetch detail -> fetch actions ->
fetch the sub-resources the bill advertises -> transform -> derive status
-> store. Bills are processed one at a time; the API client's limiter is
the bottleneck, not CPU.

IncompleteBillsRepairer reuses the same per-bill path for bills whose sync
mask is missing bits, fetching only what is missing.
"""
from datetime import datetime
from typing import AsyncGenerator, Optional, Sequence

from billwatch.config import CURRENT_CONGRESS, FEDERAL_BILL_TYPES, settings
from billwatch.config.constants import (
    MAX_PAGE_SIZE,
    SYNC_ACTIONS,
    SYNC_COMPLETE,
    SYNC_DETAIL,
    SYNC_ENDPOINT_NAMES,
    SYNC_SUBJECTS,
    SYNC_SUMMARIES,
    SYNC_TEXT,
    SYNC_TITLES,
)
from billwatch.database.normalization import parse_datetime
from billwatch.database.storage import BillStore, SnapshotStore
from billwatch.errors import OrchestratorError, TransformError
from billwatch.ingestion.base import BaseIngester
from billwatch.ingestion.congress_gov import CongressGovClient
from billwatch.ingestion.status import derive_status, latest_action_of
from billwatch.ingestion.transform import (
    build_bill_id,
    latest_action_from_detail,
    transform_bill,
)
from billwatch.models.legislation import BillBundle
from billwatch.models.sync import SyncType


def advertised_count(detail: dict, key: str) -> Optional[int]:
    """
    How many items of a sub-resource the detail payload advertises.

    Returns None when the payload does not say (key missing or no count).
    """
    ref = detail.get(key)
    if isinstance(ref, dict) and ref.get("count") is not None:
        try:
            return int(ref["count"])
        except (TypeError, ValueError):
            return None
    return None


def listed_update_date(entry: dict) -> Optional[datetime]:
    """The change timestamp of a bill list entry."""
    return parse_datetime(entry.get("updateDateIncludingText") or entry.get("updateDate"))


class CongressBillsIngester(BaseIngester[dict]):
    """
    Sync bills for one Congress from Congress.gov.

    Usage:
        async with CongressGovClient() as api:
            ingester = CongressBillsIngester(api, store, snapshots, congress=119)
            stats = await ingester.run()
    """

    def __init__(
        self,
        api: CongressGovClient,
        store: BillStore,
        snapshots: SnapshotStore,
        congress: int = CURRENT_CONGRESS,
        bill_types: Optional[Sequence[str]] = None,
        sync_type: SyncType = SyncType.HISTORICAL,
        page_size: Optional[int] = None,
        from_datetime: Optional[datetime] = None,
        to_datetime: Optional[datetime] = None,
        skip_unchanged: bool = False,
        max_bills: Optional[int] = None,
        **kwargs,
    ):
        bill_types = [t.lower() for t in (bill_types or FEDERAL_BILL_TYPES)]
        unknown = [t for t in bill_types if t not in FEDERAL_BILL_TYPES]
        if unknown:
            raise ValueError(f"Unknown bill type(s): {', '.join(unknown)}")

        # A single-type run only blocks runs of that type
        scope = bill_types[0] if len(bill_types) == 1 else None
        super().__init__(store, snapshots, congress=congress, bill_type=scope, **kwargs)

        self.api = api
        self.bill_types = bill_types
        self.sync_type = sync_type
        self.page_size = min(page_size or settings.SYNC_PAGE_SIZE, MAX_PAGE_SIZE)
        self.from_datetime = from_datetime
        self.to_datetime = to_datetime
        self.skip_unchanged = skip_unchanged
        self.max_bills = max_bills
        self._page_state: dict[str, dict] = {}

    def item_label(self, entry: dict) -> str:
        try:
            return build_bill_id(entry.get("number"), entry.get("type") or "?", entry.get("congress"))
        except (TypeError, ValueError):
            return f"bill {entry.get('type')} {entry.get('number')}"

    async def preflight(self):
        if not self.api.api_key:
            raise OrchestratorError("CONGRESS_GOV_API_KEY is not configured")

    # ------------------------------------------------------------------
    # Items
    # ------------------------------------------------------------------

    async def fetch_data(self) -> AsyncGenerator[dict, None]:
        """
        Page through the bill list of every configured bill type.

        Paging stops at a short or empty page. Counts are checkpointed to
        the snapshot after each page.
        """
        yielded = 0
        for bill_type in self.bill_types:
            offset = 0
            self.logger.info(f"Fetching {bill_type.upper()} bills for Congress {self.congress}...")

            while True:
                page = await self.api.list_bills(
                    self.congress,
                    bill_type,
                    offset=offset,
                    limit=self.page_size,
                    from_datetime=self.from_datetime,
                    to_datetime=self.to_datetime,
                )
                if not page.bills:
                    self.logger.info(f"No more {bill_type.upper()} bills at offset {offset}")
                    break

                self.logger.info(
                    f"Processing {bill_type.upper()} bills {offset}-{offset + len(page.bills)}"
                )
                if self.skip_unchanged:
                    ids = [self.item_label(self._with_scope(e, bill_type)) for e in page.bills]
                    self._page_state = await self.store.get_sync_state(ids)

                for entry in page.bills:
                    yield self._with_scope(entry, bill_type)
                    yielded += 1
                    if self.max_bills and yielded >= self.max_bills:
                        self.logger.info(f"Reached max_bills limit of {self.max_bills}")
                        await self.checkpoint()
                        return

                await self.checkpoint()
                if not page.has_more:
                    break
                offset += page.limit

    def _with_scope(self, entry: dict, bill_type: str) -> dict:
        # List entries normally carry these, but the request scope is authoritative
        return {**entry, "type": bill_type, "congress": entry.get("congress") or self.congress}

    async def should_skip(self, entry: dict) -> bool:
        """Skip bills already fully synced at or after the listed update date."""
        if not self.skip_unchanged:
            return False
        state = self._page_state.get(self.item_label(entry))
        if not state or state["synced_endpoints"] & SYNC_COMPLETE != SYNC_COMPLETE:
            return False
        stored = state.get("source_update_date")
        listed = listed_update_date(entry)
        return bool(stored and listed and stored >= listed)

    # ------------------------------------------------------------------
    # Per bill
    # ------------------------------------------------------------------

    async def transform(self, entry: dict) -> BillBundle:
        congress = int(entry["congress"])
        bill_type = entry["type"]
        number = str(entry.get("number") or "")
        if not number:
            raise TransformError(f"List entry without a bill number: {entry}")

        detail = await self.api.get_bill(congress, bill_type, number)
        return await self.build_bundle(congress, bill_type, number, detail, SYNC_COMPLETE)

    async def build_bundle(
        self,
        congress: int,
        bill_type: str,
        number: str,
        detail: dict,
        wanted: int,
    ) -> BillBundle:
        """
        Fetch the wanted sub-resources of a bill and build its bundle.

        A sub-resource the detail advertises with a count of zero is not
        fetched and counts as resolved. Fetch errors propagate and fail the
        bill.

        Args:
            wanted: Sync bits of the sub-resources to fetch
        """
        if not detail:
            raise TransformError(
                "Empty bill detail",
                bill_id=build_bill_id(number, bill_type, congress),
            )

        actions = None
        if wanted & SYNC_ACTIONS:
            inline = detail.get("actions")
            if isinstance(inline, dict) and isinstance(inline.get("items"), list):
                actions = inline["items"]
            elif advertised_count(detail, "actions") == 0:
                actions = []
            else:
                actions = await self.api.get_bill_actions(congress, bill_type, number)

        summaries = None
        if wanted & SYNC_SUMMARIES:
            if advertised_count(detail, "summaries"):
                summaries = await self.api.get_bill_summaries(congress, bill_type, number)
            else:
                summaries = []

        titles = None
        if wanted & SYNC_TITLES:
            if advertised_count(detail, "titles"):
                titles = await self.api.get_bill_titles(congress, bill_type, number)
            else:
                titles = []

        subjects = None
        if wanted & SYNC_SUBJECTS:
            if advertised_count(detail, "subjects"):
                subjects = await self.api.get_bill_subjects(congress, bill_type, number)
            else:
                subjects = {"policyArea": detail.get("policyArea")}

        text_versions = None
        if wanted & SYNC_TEXT:
            if advertised_count(detail, "textVersions"):
                text_versions = await self.api.get_bill_text_versions(congress, bill_type, number)
            else:
                text_versions = []

        bundle = transform_bill(
            detail,
            actions=actions,
            summaries=summaries,
            titles=titles,
            subjects=subjects,
            text_versions=text_versions,
        )
        await self.apply_status(bundle, detail)
        return bundle

    async def apply_status(self, bundle: BillBundle, detail: dict):
        """
        Derive the progress stage from the full action history.

        When actions were not fetched this run, the stored history is used.
        """
        bill = bundle.bill
        actions = bundle.actions
        if actions is None:
            actions = await self.store.get_bill_actions(bill.bill_id)

        latest = latest_action_of(actions) or latest_action_from_detail(detail, bill.bill_id)
        result = derive_status(latest, actions, origin_chamber=bill.origin_chamber)

        bill.progress_stage = result.stage
        bill.progress_description = result.description
        bill.progress_percentage = result.percentage
        self.logger.debug(f"{bill.bill_id}: {result.description} (rule: {result.rule})")


class IncompleteBillsRepairer(CongressBillsIngester):
    """
    Re-sync the missing sub-resources of bills with an incomplete sync mask.

    The detail is always re-fetched; other sub-resources only when their
    bit is missing.
    """

    def __init__(
        self,
        api: CongressGovClient,
        store: BillStore,
        snapshots: SnapshotStore,
        congress: int = CURRENT_CONGRESS,
        max_bills: Optional[int] = None,
        **kwargs,
    ):
        super().__init__(
            api,
            store,
            snapshots,
            congress=congress,
            sync_type=SyncType.REPAIR,
            max_bills=max_bills,
            **kwargs,
        )

    async def fetch_data(self) -> AsyncGenerator[dict, None]:
        bills = await self.store.find_incomplete_bills(
            self.congress, limit=self.max_bills, bill_types=self.bill_types
        )
        self.logger.info(f"Found {len(bills)} incomplete bills in Congress {self.congress}")
        for bill in bills:
            yield {
                "type": bill["bill_type"],
                "number": bill["bill_number"],
                "congress": bill["congress"],
                "missing": SYNC_COMPLETE & ~bill["synced_endpoints"],
            }
        await self.checkpoint()

    async def transform(self, entry: dict) -> BillBundle:
        congress = int(entry["congress"])
        bill_type = entry["type"]
        number = str(entry["number"])
        missing = [name for bit, name in SYNC_ENDPOINT_NAMES.items() if entry["missing"] & bit]
        self.logger.debug(f"{self.item_label(entry)}: re-syncing {', '.join(missing)}")

        detail = await self.api.get_bill(congress, bill_type, number)
        return await self.build_bundle(
            congress, bill_type, number, detail, entry["missing"] | SYNC_DETAIL
        )
