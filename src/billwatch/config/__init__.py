"""Config module - settings and constants."""

from billwatch.config.settings import settings, Settings
from billwatch.config.constants import (
    CONGRESS_GOV_BASE_URL,
    CURRENT_CONGRESS,
    FEDERAL_BILL_TYPES,
)

__all__ = [
    "settings",
    "Settings",
    "CONGRESS_GOV_BASE_URL",
    "CURRENT_CONGRESS",
    "FEDERAL_BILL_TYPES",
]
