"""
Data Normalization Module

Centralized functions to turn raw Congress.gov values into our standardized
database format. The transformer uses these so every stored bill follows the
same conventions.

Usage:
    from billwatch.database.normalization import normalize_state, normalize_party

    sponsor = detail["sponsors"][0]
    state = normalize_state(sponsor.get("state"))   # "UT"
    party = normalize_party(sponsor.get("party"))   # "R"
"""
import html
import logging
import re
from datetime import date, datetime, timezone
from typing import Optional

logger = logging.getLogger(__name__)


# ============================================================================
# State Normalization
# ============================================================================

STATE_NAME_TO_CODE = {
    "Alabama": "AL", "Alaska": "AK", "Arizona": "AZ", "Arkansas": "AR",
    "California": "CA", "Colorado": "CO", "Connecticut": "CT", "Delaware": "DE",
    "Florida": "FL", "Georgia": "GA", "Hawaii": "HI", "Idaho": "ID",
    "Illinois": "IL", "Indiana": "IN", "Iowa": "IA", "Kansas": "KS",
    "Kentucky": "KY", "Louisiana": "LA", "Maine": "ME", "Maryland": "MD",
    "Massachusetts": "MA", "Michigan": "MI", "Minnesota": "MN", "Mississippi": "MS",
    "Missouri": "MO", "Montana": "MT", "Nebraska": "NE", "Nevada": "NV",
    "New Hampshire": "NH", "New Jersey": "NJ", "New Mexico": "NM", "New York": "NY",
    "North Carolina": "NC", "North Dakota": "ND", "Ohio": "OH", "Oklahoma": "OK",
    "Oregon": "OR", "Pennsylvania": "PA", "Rhode Island": "RI", "South Carolina": "SC",
    "South Dakota": "SD", "Tennessee": "TN", "Texas": "TX", "Utah": "UT",
    "Vermont": "VT", "Virginia": "VA", "Washington": "WA", "West Virginia": "WV",
    "Wisconsin": "WI", "Wyoming": "WY",
    "District of Columbia": "DC", "Puerto Rico": "PR",
    # Delegates sponsor bills too
    "American Samoa": "AS", "Guam": "GU", "Northern Mariana Islands": "MP",
    "Virgin Islands": "VI",
}

# Reverse mapping for validation
STATE_CODE_TO_NAME = {v: k for k, v in STATE_NAME_TO_CODE.items()}


def normalize_state(state: Optional[str]) -> Optional[str]:
    """
    Normalize state to 2-letter code.

    Args:
        state: State name or code (e.g., "Utah", "UT", "ut")

    Returns:
        2-letter uppercase state code (e.g., "UT") or None if invalid

    Examples:
        >>> normalize_state("Utah")
        "UT"
        >>> normalize_state("ut")
        "UT"
    """
    if not state:
        return None

    state_clean = state.strip()

    # Already a 2-letter code?
    if len(state_clean) == 2:
        code = state_clean.upper()
        if code in STATE_CODE_TO_NAME:
            return code
        return None

    if state_clean in STATE_NAME_TO_CODE:
        return STATE_NAME_TO_CODE[state_clean]

    # Case-insensitive match
    for full_name, code in STATE_NAME_TO_CODE.items():
        if full_name.lower() == state_clean.lower():
            return code

    return None


# ============================================================================
# Party Normalization
# ============================================================================

PARTY_MAPPINGS = {
    "Republican": "R",
    "Democrat": "D",
    "Democratic": "D",
    "Independent": "I",
    "Independent Democrat": "ID",
    "Libertarian": "L",
    "R": "R",
    "D": "D",
    "I": "I",
    "ID": "ID",
    "L": "L",
}


def normalize_party(party: Optional[str]) -> Optional[str]:
    """
    Normalize party affiliation to its short code.

    Congress.gov already sends "R"/"D"/"I" for sponsors, but older records
    and other sources spell the name out.

    Returns:
        Party code, or None when the value is missing or unrecognized
    """
    if not party:
        return None

    party_clean = party.strip()

    if party_clean in PARTY_MAPPINGS:
        return PARTY_MAPPINGS[party_clean]

    for key, code in PARTY_MAPPINGS.items():
        if key.lower() == party_clean.lower():
            return code

    logger.warning(f"Unexpected party value '{party_clean}'")
    return None


# ============================================================================
# Chamber Normalization
# ============================================================================

CHAMBER_MAPPINGS = {
    "senate": "senate",
    "house": "house",
    "house of representatives": "house",
    "s": "senate",
    "h": "house",
}


def normalize_chamber(chamber: Optional[str]) -> Optional[str]:
    """
    Normalize chamber to lowercase standard format.

    Examples:
        >>> normalize_chamber("Senate")
        "senate"
        >>> normalize_chamber("House of Representatives")
        "house"
    """
    if not chamber:
        return None
    return CHAMBER_MAPPINGS.get(chamber.strip().lower())


# ============================================================================
# Names and text
# ============================================================================

# "[R-UT-1]", "(D-CA)" and similar suffixes in sponsor name strings
_BRACKETED = re.compile(r"\s*[\[\(][^\]\)]*[\]\)]")
_HTML_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")


def normalize_sponsor_name(name: Optional[str]) -> Optional[str]:
    """
    Remove bracketed annotations from a sponsor name.

    Examples:
        >>> normalize_sponsor_name("Rep. Moore, Blake D. [R-UT-1]")
        "Rep. Moore, Blake D."
    """
    if not name:
        return None
    cleaned = _WHITESPACE.sub(" ", _BRACKETED.sub("", name)).strip()
    return cleaned or None


def clean_html(text: Optional[str]) -> str:
    """
    Strip HTML tags and decode entities.

    Tags are removed before entities are decoded, so an escaped "&lt;b&gt;"
    survives as literal text.

    Examples:
        >>> clean_html("<p>Tax &amp; spending <b>reform</b></p>")
        "Tax & spending reform"
    """
    if not text:
        return ""
    stripped = _HTML_TAG.sub(" ", text)
    decoded = html.unescape(stripped).replace("\xa0", " ")
    return _WHITESPACE.sub(" ", decoded).strip()


# ============================================================================
# Dates
# ============================================================================

def parse_date(value: Optional[str]) -> Optional[date]:
    """Parse "YYYY-MM-DD" (or the date part of a timestamp); None if unparseable."""
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        logger.debug(f"Unparseable date '{value}'")
        return None


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an API timestamp ("2025-01-03T17:05:12Z") into a naive UTC datetime.

    MongoDB hands datetimes back naive, so stored values compare equal to
    freshly parsed ones.
    """
    if not value:
        return None
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.debug(f"Unparseable timestamp '{value}'")
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed

