"""
Sync audit models.

A SyncSnapshot is written for every orchestrator run and never deleted.
"""
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class SyncType(str, Enum):
    """What kind of run produced a snapshot."""
    HISTORICAL = "historical"
    DAILY = "daily"
    REPAIR = "repair"


class SyncStatus(str, Enum):
    """Lifecycle of a snapshot: running -> completed | failed."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class SyncSnapshot(BaseModel):
    """
    One orchestrator run.
    
    Created with status "running" at run start, patched with final counts
    at run end.
    """
    id: Optional[str] = None  # MongoDB ObjectId as string, set once stored
    sync_type: SyncType
    congress: int
    bill_type: Optional[str] = None  # None = every bill type
    started_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None
    last_progress_at: Optional[datetime] = None  # heartbeat, bumped at each checkpoint
    status: SyncStatus = SyncStatus.RUNNING
    total_processed: int = 0
    total_success: int = 0
    total_failed: int = 0
    total_skipped: int = 0
    error_details: Optional[str] = None
    
    def covers(self, congress: int, bill_type: Optional[str]) -> bool:
        """True if this snapshot's scope overlaps (congress, bill_type)."""
        if self.congress != congress:
            return False
        return self.bill_type is None or bill_type is None or self.bill_type == bill_type
