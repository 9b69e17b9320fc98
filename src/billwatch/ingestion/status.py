"""
Bill progress derivation.

Classifies a bill into a canonical BillStage from its free-text action
history. This is best-effort text classification: Congress.gov action strings
are not structured, and unusual phrasings will be misclassified.

The classifier is an ordered list of StageRule objects. The first rule whose
predicate matches wins, so precedence is the list order, not recency. Add a
pattern to one of the vocabularies below, or a rule to STAGE_RULES, without
touching the evaluation loop.

Usage:
    from billwatch.ingestion.status import derive_status

    result = derive_status(latest_action, actions, origin_chamber="house")
    result.stage        # BillStage.PASSED_ONE_CHAMBER
    result.description  # "Passed One Chamber"
"""
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Optional, Sequence

from billwatch.models.legislation import BillAction, BillStage


# ============================================================================
# Vocabulary (case-insensitive substring matches)
# ============================================================================

BECAME_LAW_PATTERNS = ("became public law", "public law no")

SIGNED_PATTERNS = ("signed by president",)
VETOED_PATTERNS = ("vetoed",)
TO_PRESIDENT_PATTERNS = ("presented to president",)

HOUSE_PASSED_PATTERNS = (
    "passed house",
    "passed the house",
    "passed/agreed to in house",
    "on passage passed",
    "and pass the bill",
    "agreed to in house",
)

SENATE_PASSED_PATTERNS = (
    "passed senate",
    "passed the senate",
    "passed/agreed to in senate",
    "agreed to in senate",
)

# Procedural text that mentions passage without being one
PASSED_EXCLUDED_PATTERNS = (
    "motion to reconsider laid on the table",
    "laid on the table",
    "failed of passage",
    "failed by",
    "not agreed to",
    "motion to recommit",
    "motion to table",
)

COMMITTEE_REPORTED_PATTERNS = ("reported",)
REFERRED_PATTERNS = ("referred to",)
INTRODUCED_PATTERNS = ("introduced",)

# Action type codes, lowercased
TYPE_BECAME_LAW = "becamelaw"
TYPE_PRESIDENT = "president"
TYPE_VETO = "veto"
TYPE_FLOOR = "floor"
TYPE_COMMITTEE = "committee"
TYPE_INTRO_REFERRAL = "introreferral"

# Display percentage for each stage
STAGE_PERCENTAGES = {
    BillStage.INTRODUCED: 0.0,
    BillStage.IN_COMMITTEE: 16.67,
    BillStage.PASSED_ONE_CHAMBER: 33.33,
    BillStage.PASSED_BOTH_CHAMBERS: 50.0,
    BillStage.TO_PRESIDENT: 66.67,
    BillStage.SIGNED_BY_PRESIDENT: 83.33,
    BillStage.BECAME_LAW: 100.0,
}

# Passed only the chamber it did not originate in
SECOND_CHAMBER_ONLY_PERCENTAGE = 41.67

# Vetoed bills are placed by how far they got before the veto
VETOED_PERCENTAGE_BOTH_CHAMBERS = 66.67
VETOED_PERCENTAGE_ONE_CHAMBER = 33.33
VETOED_PERCENTAGE_NO_PASSAGE = 16.67


# ============================================================================
# Matching helpers
# ============================================================================

def _lower(value: Optional[str]) -> str:
    return (value or "").lower()


def _contains_any(text: str, patterns: Sequence[str]) -> bool:
    return any(pattern in text for pattern in patterns)


def action_chamber(action: BillAction) -> Optional[str]:
    """
    Which chamber an action came from: "house", "senate" or None.

    Uses the source system name first ("House floor actions", "Senate").
    Library of Congress entries carry no chamber, so fall back to the
    chamber named in their text ("Passed/agreed to in Senate").
    """
    source = _lower(action.source_system_name)
    if "house" in source:
        return "house"
    if "senate" in source:
        return "senate"

    text = _lower(action.text)
    if "in house" in text or "passed house" in text:
        return "house"
    if "in senate" in text or "passed senate" in text:
        return "senate"
    return None


def is_passage(action: BillAction, chamber: str) -> bool:
    """True if `action` records passage in `chamber` and is not procedural noise."""
    if action_chamber(action) != chamber:
        return False
    text = _lower(action.text)
    patterns = HOUSE_PASSED_PATTERNS if chamber == "house" else SENATE_PASSED_PATTERNS
    return _contains_any(text, patterns) and not _contains_any(text, PASSED_EXCLUDED_PATTERNS)


@dataclass(frozen=True)
class ChamberPassage:
    """Which chambers the action history shows a passage for."""
    house: bool = False
    senate: bool = False

    @property
    def both(self) -> bool:
        return self.house and self.senate

    @property
    def any(self) -> bool:
        return self.house or self.senate


def scan_chamber_passage(actions: Sequence[BillAction]) -> ChamberPassage:
    """Scan the whole history for House and Senate passage actions."""
    return ChamberPassage(
        house=any(is_passage(action, "house") for action in actions),
        senate=any(is_passage(action, "senate") for action in actions),
    )


# ============================================================================
# Rules
# ============================================================================

@dataclass
class StatusContext:
    """Inputs shared by every rule predicate."""
    latest: Optional[BillAction]
    actions: Sequence[BillAction]
    origin_chamber: Optional[str]
    passage: ChamberPassage = field(default_factory=ChamberPassage)

    @property
    def latest_text(self) -> str:
        return _lower(self.latest.text) if self.latest else ""

    @property
    def latest_type(self) -> str:
        return _lower(self.latest.action_type) if self.latest else ""

    @property
    def latest_is_presidential(self) -> bool:
        return self.latest_type in (TYPE_PRESIDENT, TYPE_VETO)


@dataclass(frozen=True)
class StageRule:
    """One (predicate, stage) entry of the classifier."""
    name: str
    stage: BillStage
    predicate: Callable[[StatusContext], bool]


def _is_law(action: BillAction) -> bool:
    return (
        _lower(action.action_type) == TYPE_BECAME_LAW
        or _contains_any(_lower(action.text), BECAME_LAW_PATTERNS)
    )


def _became_law(ctx: StatusContext) -> bool:
    # Enactment is terminal, so it counts wherever it sits in the history
    if ctx.latest is not None and _is_law(ctx.latest):
        return True
    return any(_is_law(action) for action in ctx.actions)


def _signed(ctx: StatusContext) -> bool:
    return ctx.latest_is_presidential and _contains_any(ctx.latest_text, SIGNED_PATTERNS)


def _vetoed(ctx: StatusContext) -> bool:
    return ctx.latest_is_presidential and _contains_any(ctx.latest_text, VETOED_PATTERNS)


def _to_president(ctx: StatusContext) -> bool:
    return ctx.latest_is_presidential and _contains_any(ctx.latest_text, TO_PRESIDENT_PATTERNS)


def _passed_both(ctx: StatusContext) -> bool:
    return ctx.passage.both


def _passed_one(ctx: StatusContext) -> bool:
    if ctx.latest is None or ctx.latest_type != TYPE_FLOOR:
        return False
    chamber = action_chamber(ctx.latest)
    return chamber is not None and is_passage(ctx.latest, chamber)


def _in_committee(ctx: StatusContext) -> bool:
    if ctx.latest_type == TYPE_COMMITTEE and _contains_any(ctx.latest_text, COMMITTEE_REPORTED_PATTERNS):
        return True
    return _contains_any(ctx.latest_text, REFERRED_PATTERNS)


def _introduced(ctx: StatusContext) -> bool:
    return ctx.latest_type == TYPE_INTRO_REFERRAL or _contains_any(ctx.latest_text, INTRODUCED_PATTERNS)


STAGE_RULES: list[StageRule] = [
    StageRule("became_law", BillStage.BECAME_LAW, _became_law),
    StageRule("signed", BillStage.SIGNED_BY_PRESIDENT, _signed),
    StageRule("vetoed", BillStage.VETOED, _vetoed),
    StageRule("to_president", BillStage.TO_PRESIDENT, _to_president),
    StageRule("passed_both", BillStage.PASSED_BOTH_CHAMBERS, _passed_both),
    StageRule("passed_one", BillStage.PASSED_ONE_CHAMBER, _passed_one),
    StageRule("in_committee", BillStage.IN_COMMITTEE, _in_committee),
    StageRule("introduced", BillStage.INTRODUCED, _introduced),
]


# ============================================================================
# Public API
# ============================================================================

@dataclass(frozen=True)
class StatusResult:
    """Outcome of the classifier."""
    stage: BillStage
    description: str
    percentage: float
    rule: Optional[str] = None  # name of the matching rule, None for the fallback


def stage_percentage(
    stage: BillStage,
    actions: Sequence[BillAction] = (),
    latest: Optional[BillAction] = None,
    origin_chamber: Optional[str] = None,
    passage: Optional[ChamberPassage] = None,
) -> float:
    """
    Display percentage (0-100) for a stage.

    Vetoed bills are banded by how far they had progressed before the veto.
    A one-chamber passage in the non-origin chamber sits slightly further
    along than one in the origin chamber.
    """
    if stage == BillStage.VETOED:
        passage = passage or scan_chamber_passage(actions)
        if passage.both:
            return VETOED_PERCENTAGE_BOTH_CHAMBERS
        if passage.any:
            return VETOED_PERCENTAGE_ONE_CHAMBER
        return VETOED_PERCENTAGE_NO_PASSAGE

    if stage == BillStage.PASSED_ONE_CHAMBER and latest is not None and origin_chamber:
        chamber = action_chamber(latest)
        if chamber and chamber != origin_chamber.lower():
            return SECOND_CHAMBER_ONLY_PERCENTAGE

    return STAGE_PERCENTAGES[stage]


def latest_action_of(actions: Sequence[BillAction]) -> Optional[BillAction]:
    """Most recent action by date; on equal dates the later list entry wins."""
    if not actions:
        return None
    ordered = sorted(
        enumerate(actions),
        key=lambda pair: (pair[1].action_date or date.min, pair[0]),
    )
    return ordered[-1][1]


def derive_status(
    latest_action: Optional[BillAction] = None,
    actions: Sequence[BillAction] = (),
    origin_chamber: Optional[str] = None,
) -> StatusResult:
    """
    Classify a bill into a progress stage.

    Args:
        latest_action: The bill's most recent action. If None, the newest
            entry of `actions` is used.
        actions: Full action history, any order
        origin_chamber: "house" or "senate"

    Returns:
        StatusResult with stage, description and display percentage.
        An empty history with no latest action is "Introduced".
    """
    actions = list(actions or [])
    if latest_action is None:
        latest_action = latest_action_of(actions)
    ctx = StatusContext(
        latest=latest_action,
        actions=actions,
        origin_chamber=origin_chamber,
        passage=scan_chamber_passage(actions),
    )

    stage = BillStage.INTRODUCED
    rule_name = None
    for rule in STAGE_RULES:
        if rule.predicate(ctx):
            stage = rule.stage
            rule_name = rule.name
            break

    return StatusResult(
        stage=stage,
        description=stage.description,
        percentage=stage_percentage(
            stage,
            actions=actions,
            latest=latest_action,
            origin_chamber=origin_chamber,
            passage=ctx.passage,
        ),
        rule=rule_name,
    )
