"""Data models module."""

from billwatch.models.legislation import (
    Bill,
    BillAction,
    BillBundle,
    BillStage,
    BillSubject,
    BillSummary,
    BillTextVersion,
    BillTitle,
    BillType,
    STAGE_DESCRIPTIONS,
)

from billwatch.models.sync import (
    SyncSnapshot,
    SyncStatus,
    SyncType,
)

__all__ = [
    # Legislation
    "Bill",
    "BillAction",
    "BillBundle",
    "BillStage",
    "BillSubject",
    "BillSummary",
    "BillTextVersion",
    "BillTitle",
    "BillType",
    "STAGE_DESCRIPTIONS",
    # Sync audit
    "SyncSnapshot",
    "SyncStatus",
    "SyncType",
]
