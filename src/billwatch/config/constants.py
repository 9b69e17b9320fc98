"""
Application-wide constants.

API endpoints, bill type codes, collection names and other magic numbers live here.
"""
import math
from datetime import datetime

# API Base URLs
CONGRESS_GOV_BASE_URL = "https://api.congress.gov/v3"

# Congress numbers - calculated dynamically
# Formula: Each Congress is 2 years, starting from 1st Congress in 1789
# Congress number = ((current_year - 1789) // 2) + 1
def _calculate_current_congress() -> int:
    """Calculate the current Congress number based on today's date."""
    current_year = datetime.now().year
    return ((current_year - 1789) // 2) + 1

CURRENT_CONGRESS = _calculate_current_congress()  # Auto-calculates (119 in 2025)

# MongoDB Collection Names
COLLECTION_BILLS = "bills"
COLLECTION_BILL_ACTIONS = "bill_actions"
COLLECTION_BILL_TITLES = "bill_titles"
COLLECTION_BILL_SUMMARIES = "bill_summaries"
COLLECTION_BILL_SUBJECTS = "bill_subjects"
COLLECTION_BILL_TEXT = "bill_text"
COLLECTION_SYNC_SNAPSHOTS = "sync_snapshots"

# Rate Limiting
CONGRESS_GOV_RATE_LIMIT = 5000  # requests per hour
MAX_PAGE_SIZE = 250  # largest `limit` the list endpoints accept
SUB_RESOURCE_PAGE_SIZE = 250  # actions, titles, summaries, text versions, subjects


def request_delay_for_limit(requests_per_hour: int) -> float:
    """Seconds between requests: ceil(3600000 ms / limit), as seconds."""
    return math.ceil(3600 * 1000 / requests_per_hour) / 1000


REQUEST_DELAY_SECONDS = request_delay_for_limit(CONGRESS_GOV_RATE_LIMIT)  # 0.72s

# Bill Types
FEDERAL_BILL_TYPES = ["hr", "s", "hjres", "sjres", "hconres", "sconres", "hres", "sres"]

BILL_TYPE_LABELS = {
    "hr": "H.R.",
    "s": "S.",
    "hjres": "H.J.Res.",
    "sjres": "S.J.Res.",
    "hconres": "H.Con.Res.",
    "sconres": "S.Con.Res.",
    "hres": "H.Res.",
    "sres": "S.Res.",
}

# Per-bill sync bitmask (which sub-resources have been synced at least once)
SYNC_DETAIL = 1       # bit 0
SYNC_ACTIONS = 2      # bit 1
SYNC_SUBJECTS = 4     # bit 2
SYNC_SUMMARIES = 8    # bit 3
SYNC_TEXT = 16        # bit 4
SYNC_TITLES = 32      # bit 5
SYNC_COMPLETE = 63    # all bits set

SYNC_ENDPOINT_NAMES = {
    SYNC_DETAIL: "detail",
    SYNC_ACTIONS: "actions",
    SYNC_SUBJECTS: "subjects",
    SYNC_SUMMARIES: "summaries",
    SYNC_TEXT: "text",
    SYNC_TITLES: "titles",
}

# Data Sync Schedule
INCREMENTAL_FALLBACK_DAYS = 2  # look-back when no completed snapshot exists
MAX_RECORDED_FAILURES = 25  # failed bill ids kept in a snapshot's error details
