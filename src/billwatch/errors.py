"""
Error taxonomy for the ingestion pipeline.

Per-bill errors (fetch, transform, storage) are caught by the ingester,
logged and counted. OrchestratorError aborts the whole run.
"""
from typing import Optional, Sequence


class BillSyncError(Exception):
    """Base class for all ingestion errors."""


class FetchError(BillSyncError):
    """
    Network or HTTP failure from the Congress.gov client.
    
    Raised after retries are exhausted, or immediately for non-retryable
    responses (4xx).
    """
    
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        path: Optional[str] = None
    ):
        super().__init__(message)
        self.status_code = status_code
        self.path = path
    
    def __str__(self) -> str:
        base = super().__str__()
        if self.path:
            return f"{base} (path: {self.path})"
        return base


class TransformError(BillSyncError):
    """Malformed or unexpected payload shape. Not retryable; the bill is skipped."""
    
    def __init__(self, message: str, bill_id: Optional[str] = None):
        super().__init__(message)
        self.bill_id = bill_id


class StorageError(BillSyncError):
    """A write to MongoDB failed for one or more collections of a bill."""
    
    def __init__(
        self,
        message: str,
        bill_id: Optional[str] = None,
        collections: Sequence[str] = ()
    ):
        super().__init__(message)
        self.bill_id = bill_id
        self.collections = list(collections)


class OrchestratorError(BillSyncError):
    """Run-level failure (missing credentials, overlapping run, list fetch failure)."""
