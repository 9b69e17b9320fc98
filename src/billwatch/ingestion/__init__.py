"""Ingestion module - Congress.gov client, status engine and sync runs."""

from billwatch.ingestion.congress_gov import CongressGovClient, BillPage
from billwatch.ingestion.status import derive_status, StatusResult
from billwatch.ingestion.transform import transform_bill
from billwatch.ingestion.congress_bills import CongressBillsIngester, IncompleteBillsRepairer
from billwatch.ingestion.pipelines import run_daily_sync, run_historical_sync, run_repair

__all__ = [
    "CongressGovClient",
    "BillPage",
    "derive_status",
    "StatusResult",
    "transform_bill",
    "CongressBillsIngester",
    "IncompleteBillsRepairer",
    "run_daily_sync",
    "run_historical_sync",
    "run_repair",
]
