"""
Record transformer.

Maps raw Congress.gov payloads (bill detail plus its sub-resources) into the
models in billwatch.models.legislation. Everything here is pure: no network,
no database.

A sub-resource argument of None means "not fetched"; the matching bundle
field stays None and the storage layer leaves stored rows alone. An empty
list means the source has nothing for that sub-resource.
"""
import re
from datetime import date
from typing import Any, Optional, Sequence

from pydantic import ValidationError

from billwatch.config.constants import (
    BILL_TYPE_LABELS,
    SYNC_ACTIONS,
    SYNC_DETAIL,
    SYNC_SUBJECTS,
    SYNC_SUMMARIES,
    SYNC_TEXT,
    SYNC_TITLES,
)
from billwatch.database.normalization import (
    clean_html,
    normalize_chamber,
    normalize_party,
    normalize_sponsor_name,
    normalize_state,
    parse_date,
    parse_datetime,
)
from billwatch.errors import TransformError
from billwatch.models.legislation import (
    Bill,
    BillAction,
    BillBundle,
    BillSubject,
    BillSummary,
    BillTextVersion,
    BillTitle,
    BillType,
)

# "H.R. 1234 - " style prefixes on titles
TITLE_NUMBER_PREFIX = re.compile(
    r"^(H\.R\.|S\.|H\.J\.Res\.|S\.J\.Res\.|H\.Con\.Res\.|S\.Con\.Res\.|H\.Res\.|S\.Res\.)\s*\d+\s*[-–]\s*"
)

CONGRESS_GOV_BILL_SLUGS = {
    "hr": "house-bill",
    "s": "senate-bill",
    "hjres": "house-joint-resolution",
    "sjres": "senate-joint-resolution",
    "hconres": "house-concurrent-resolution",
    "sconres": "senate-concurrent-resolution",
    "hres": "house-resolution",
    "sres": "senate-resolution",
}

TEXT_FORMAT_PDF = "PDF"
TEXT_FORMAT_TXT = "Formatted Text"


# ============================================================================
# Small helpers
# ============================================================================

def build_bill_id(number: Any, bill_type: str, congress: Any) -> str:
    """Composite bill key, e.g. build_bill_id(1234, "HR", 119) -> "1234hr119"."""
    return f"{str(number).strip()}{bill_type.strip().lower()}{int(congress)}"


def strip_title_number(title: Optional[str]) -> str:
    """Drop a leading "H.R. 1234 - " citation from a title."""
    if not title:
        return ""
    return TITLE_NUMBER_PREFIX.sub("", title)


def _ordinal(n: int) -> str:
    if 10 <= n % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


def congress_gov_url(congress: int, bill_type: str, number: str) -> str:
    """Public congress.gov page of a bill."""
    slug = CONGRESS_GOV_BILL_SLUGS[bill_type]
    return f"https://www.congress.gov/bill/{_ordinal(congress)}-congress/{slug}/{number}"


def _source_system(raw: dict) -> tuple[Optional[int], Optional[str]]:
    source = raw.get("sourceSystem")
    if isinstance(source, dict):
        code = source.get("code")
        return (int(code) if code is not None else None), source.get("name")
    if isinstance(source, str):
        return None, source
    return None, None


# ============================================================================
# Sub-resources
# ============================================================================

def transform_actions(bill_id: str, raw_actions: Sequence[dict]) -> list[BillAction]:
    """
    Actions ordered by date ascending.

    The API lists actions newest first, so same-day actions are kept in
    reverse source order; the last element is then always the newest action.
    """
    actions = []
    for raw in reversed(list(raw_actions)):
        code, name = _source_system(raw)
        actions.append(BillAction(
            bill_id=bill_id,
            action_date=parse_date(raw.get("actionDate")),
            text=raw.get("text") or "",
            action_type=raw.get("type"),
            action_code=raw.get("actionCode"),
            source_system_code=code,
            source_system_name=name,
        ))
    actions.sort(key=lambda a: a.action_date or date.min)
    return actions


def transform_titles(bill_id: str, raw_titles: Sequence[dict]) -> list[BillTitle]:
    return [
        BillTitle(
            bill_id=bill_id,
            title=raw.get("title") or "",
            title_type=raw.get("titleType"),
            title_type_code=raw.get("titleTypeCode"),
            update_date=parse_datetime(raw.get("updateDate")),
            bill_text_version_code=raw.get("billTextVersionCode"),
            bill_text_version_name=raw.get("billTextVersionName"),
            chamber_code=raw.get("chamberCode"),
            chamber_name=raw.get("chamberName"),
        )
        for raw in raw_titles
        if raw.get("title")
    ]


def transform_summaries(bill_id: str, raw_summaries: Sequence[dict]) -> list[BillSummary]:
    """
    Summary versions with HTML stripped.

    Versions without an update date cannot be keyed and are dropped.
    """
    summaries = []
    for raw in raw_summaries:
        update_date = parse_datetime(raw.get("updateDate"))
        if update_date is None:
            continue
        summaries.append(BillSummary(
            bill_id=bill_id,
            text=clean_html(raw.get("text")),
            update_date=update_date,
            action_date=parse_date(raw.get("actionDate")),
            action_desc=raw.get("actionDesc"),
            version_code=raw.get("versionCode"),
        ))
    return summaries


def select_latest_summary(summaries: Sequence[BillSummary]) -> Optional[BillSummary]:
    """The summary with the newest update date (first one wins a tie)."""
    latest = None
    for summary in summaries:
        if latest is None or summary.update_date > latest.update_date:
            latest = summary
    return latest


def transform_subject(bill_id: str, raw_subjects: Optional[dict]) -> BillSubject:
    raw_subjects = raw_subjects or {}
    policy_area = raw_subjects.get("policyArea") or {}
    return BillSubject(
        bill_id=bill_id,
        policy_area_name=policy_area.get("name"),
        policy_area_update_date=parse_datetime(policy_area.get("updateDate")),
        legislative_subjects=[
            s["name"] for s in raw_subjects.get("legislativeSubjects") or [] if s.get("name")
        ],
    )


def transform_text_version(bill_id: str, raw_versions: Sequence[dict]) -> Optional[BillTextVersion]:
    """
    The newest text version with its PDF and formatted-text links.

    Versions without a date (common for the enrolled text) sort oldest.
    """
    if not raw_versions:
        return None

    latest = None
    latest_date = None
    for raw in raw_versions:
        version_date = parse_datetime(raw.get("date"))
        if latest is None or (version_date and (latest_date is None or version_date > latest_date)):
            latest, latest_date = raw, version_date

    formats = {f.get("type"): f.get("url") for f in latest.get("formats") or []}
    return BillTextVersion(
        bill_id=bill_id,
        version_date=latest_date,
        version_type=latest.get("type"),
        formats_url_pdf=formats.get(TEXT_FORMAT_PDF),
        formats_url_txt=formats.get(TEXT_FORMAT_TXT),
    )


# ============================================================================
# Bill
# ============================================================================

def transform_bill(
    detail: dict,
    actions: Optional[Sequence[dict]] = None,
    summaries: Optional[Sequence[dict]] = None,
    titles: Optional[Sequence[dict]] = None,
    subjects: Optional[dict] = None,
    text_versions: Optional[Sequence[dict]] = None,
) -> BillBundle:
    """
    Build a BillBundle from a bill detail payload and its sub-resources.

    Progress fields are left empty; the orchestrator fills them from the
    status engine once the full action history is known.

    Args:
        detail: The `bill` object of the detail endpoint
        actions: Raw action list, or None if not fetched. Falls back to the
            detail's inline `actions.items` when present.
        summaries: Raw summary list, or None
        titles: Raw title list, or None
        subjects: Raw `subjects` object, or None
        text_versions: Raw text version list, or None

    Raises:
        TransformError: the detail lacks congress, type or number, or names
            an unknown bill type
    """
    if not isinstance(detail, dict):
        raise TransformError(f"Bill detail must be an object, got {type(detail).__name__}")

    raw_type = detail.get("type")
    number = detail.get("number")
    congress = detail.get("congress")
    if not raw_type or number in (None, "") or congress in (None, ""):
        raise TransformError(
            f"Bill detail missing type/number/congress "
            f"(type={raw_type!r}, number={number!r}, congress={congress!r})"
        )

    bill_type = str(raw_type).lower()
    try:
        bill_id = build_bill_id(number, bill_type, congress)
        congress = int(congress)
    except (TypeError, ValueError) as e:
        raise TransformError(f"Bad congress number {congress!r}: {e}") from e
    if bill_type not in BILL_TYPE_LABELS:
        raise TransformError(f"Unknown bill type '{raw_type}'", bill_id=bill_id)
    number = str(number).strip()

    resolved = SYNC_DETAIL

    if actions is None:
        inline = detail.get("actions")
        if isinstance(inline, dict) and isinstance(inline.get("items"), list):
            actions = inline["items"]
    action_models = None
    if actions is not None:
        action_models = transform_actions(bill_id, actions)
        resolved |= SYNC_ACTIONS

    summary_models = None
    latest_summary = None
    if summaries is not None:
        summary_models = transform_summaries(bill_id, summaries)
        latest_summary = select_latest_summary(summary_models)
        resolved |= SYNC_SUMMARIES

    title_models = None
    if titles is not None:
        title_models = transform_titles(bill_id, titles)
        resolved |= SYNC_TITLES

    subject_model = None
    if subjects is not None:
        subject_model = transform_subject(bill_id, subjects)
        resolved |= SYNC_SUBJECTS

    text_model = None
    if text_versions is not None:
        text_model = transform_text_version(bill_id, text_versions)
        resolved |= SYNC_TEXT

    sponsors = detail.get("sponsors") or []
    sponsor = sponsors[0] if sponsors else {}
    latest_action = detail.get("latestAction") or {}
    title = detail.get("title") or ""

    try:
        bill = Bill(
            bill_id=bill_id,
            congress=congress,
            bill_type=BillType(bill_type),
            bill_number=number,
            bill_type_label=BILL_TYPE_LABELS[bill_type],
            title=title,
            title_without_number=strip_title_number(title),
            summary=latest_summary.text if latest_summary else None,
            origin_chamber=normalize_chamber(detail.get("originChamber")),
            introduced_date=parse_date(detail.get("introducedDate")),
            latest_action_date=parse_date(latest_action.get("actionDate")),
            latest_action_text=latest_action.get("text"),
            sponsor_bioguide_id=sponsor.get("bioguideId"),
            sponsor_full_name=normalize_sponsor_name(sponsor.get("fullName")),
            sponsor_first_name=sponsor.get("firstName"),
            sponsor_last_name=sponsor.get("lastName"),
            sponsor_party=normalize_party(sponsor.get("party")),
            sponsor_state=normalize_state(sponsor.get("state")),
            congress_gov_url=congress_gov_url(congress, bill_type, number),
            source_update_date=parse_datetime(
                detail.get("updateDateIncludingText") or detail.get("updateDate")
            ),
        )
    except ValidationError as e:
        raise TransformError(f"Invalid bill record: {e}", bill_id=bill_id) from e

    if action_models:
        # The action list is more precise than the detail's latestAction summary
        newest = action_models[-1]
        bill.latest_action_date = newest.action_date or bill.latest_action_date
        bill.latest_action_text = newest.text or bill.latest_action_text

    return BillBundle(
        bill=bill,
        actions=action_models,
        titles=title_models,
        summaries=summary_models,
        subject=subject_model,
        text_version=text_model,
        resolved_endpoints=resolved,
    )


def latest_action_from_detail(detail: dict, bill_id: str) -> Optional[BillAction]:
    """
    The detail's `latestAction` as a BillAction.

    It carries no type or source, so it is only a fallback when the action
    list is unavailable.
    """
    raw = detail.get("latestAction") or {}
    if not raw.get("text"):
        return None
    return BillAction(
        bill_id=bill_id,
        action_date=parse_date(raw.get("actionDate")),
        text=raw["text"],
    )
