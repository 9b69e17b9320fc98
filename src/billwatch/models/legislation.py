"""
Legislation data models.

Defines structures for bills and the child records synced alongside them
(actions, titles, summaries, subjects, text versions).
"""
from datetime import date, datetime
from enum import Enum
from typing import Optional, List

from pydantic import BaseModel, Field


class BillType(str, Enum):
    """Type of legislation."""
    HR = "hr"           # House Bill
    S = "s"             # Senate Bill
    HRES = "hres"       # House Resolution
    SRES = "sres"       # Senate Resolution
    HJRES = "hjres"     # House Joint Resolution
    SJRES = "sjres"     # Senate Joint Resolution
    HCONRES = "hconres" # House Concurrent Resolution
    SCONRES = "sconres" # Senate Concurrent Resolution


class BillStage(int, Enum):
    """
    Canonical progress stage of a bill.
    
    The integer values are what gets stored and filtered on.
    """
    INTRODUCED = 20
    IN_COMMITTEE = 40
    PASSED_ONE_CHAMBER = 60
    PASSED_BOTH_CHAMBERS = 80
    VETOED = 85
    TO_PRESIDENT = 90
    SIGNED_BY_PRESIDENT = 95
    BECAME_LAW = 100
    
    @property
    def description(self) -> str:
        return STAGE_DESCRIPTIONS[self]


STAGE_DESCRIPTIONS = {
    BillStage.INTRODUCED: "Introduced",
    BillStage.IN_COMMITTEE: "In Committee",
    BillStage.PASSED_ONE_CHAMBER: "Passed One Chamber",
    BillStage.PASSED_BOTH_CHAMBERS: "Passed Both Chambers",
    BillStage.VETOED: "Vetoed",
    BillStage.TO_PRESIDENT: "To President",
    BillStage.SIGNED_BY_PRESIDENT: "Signed by President",
    BillStage.BECAME_LAW: "Became Law",
}


class Bill(BaseModel):
    """
    A piece of federal legislation.
    
    Represents bills, resolutions, and other legislative documents.
    The per-bill sync bitmask is not part of this model: it is only ever
    merged in by the storage layer.
    """
    
    # Unique identifier (e.g., "1234hr119")
    bill_id: str = Field(..., description="Composite ID: {number}{type}{congress}")
    
    # Basic info
    congress: int
    bill_type: BillType
    bill_number: str
    bill_type_label: str
    
    # Content
    title: str
    title_without_number: str = ""
    summary: Optional[str] = None  # Latest summary, HTML stripped
    origin_chamber: Optional[str] = None  # "house" / "senate"
    
    # Status
    introduced_date: Optional[date] = None
    latest_action_date: Optional[date] = None
    latest_action_text: Optional[str] = None
    progress_stage: Optional[BillStage] = None
    progress_description: Optional[str] = None
    progress_percentage: Optional[float] = None
    
    # Sponsorship
    sponsor_bioguide_id: Optional[str] = None
    sponsor_full_name: Optional[str] = None
    sponsor_first_name: Optional[str] = None
    sponsor_last_name: Optional[str] = None
    sponsor_party: Optional[str] = None
    sponsor_state: Optional[str] = None
    
    # Links
    congress_gov_url: Optional[str] = None
    
    # Metadata
    source_update_date: Optional[datetime] = None  # Congress.gov `updateDate`
    updated_at: datetime = Field(default_factory=datetime.utcnow)
    
    def __str__(self) -> str:
        """Human-readable representation."""
        return f"{self.bill_type_label} {self.bill_number} ({self.congress}th Congress): {self.title[:60]}"


class BillAction(BaseModel):
    """One entry of a bill's action history."""
    bill_id: str
    action_date: Optional[date] = None
    text: str
    action_type: Optional[str] = None  # "Floor", "President", "IntroReferral", ...
    action_code: Optional[str] = None
    source_system_code: Optional[int] = None
    source_system_name: Optional[str] = None  # "House floor actions", "Senate", ...


class BillTitle(BaseModel):
    """A title variation (short, official, display) of a bill."""
    bill_id: str
    title: str
    title_type: Optional[str] = None
    title_type_code: Optional[int] = None
    update_date: Optional[datetime] = None
    bill_text_version_code: Optional[str] = None
    bill_text_version_name: Optional[str] = None
    chamber_code: Optional[str] = None
    chamber_name: Optional[str] = None


class BillSummary(BaseModel):
    """
    A CRS summary version. Keyed by (bill_id, update_date).
    """
    bill_id: str
    text: str
    update_date: datetime
    action_date: Optional[date] = None
    action_desc: Optional[str] = None
    version_code: Optional[str] = None


class BillSubject(BaseModel):
    """Policy area (one per bill) plus the legislative subject terms."""
    bill_id: str
    policy_area_name: Optional[str] = None
    policy_area_update_date: Optional[datetime] = None
    legislative_subjects: List[str] = Field(default_factory=list)


class BillTextVersion(BaseModel):
    """Latest published text version with its download links."""
    bill_id: str
    version_date: Optional[datetime] = None
    version_type: Optional[str] = None  # "Introduced in House", "Enrolled Bill", ...
    formats_url_pdf: Optional[str] = None
    formats_url_txt: Optional[str] = None


class BillBundle(BaseModel):
    """
    Everything the pipeline writes for one bill.
    
    `resolved_endpoints` is the sync bitmask of sub-resources that were
    fetched (or confirmed absent) while building this bundle. Child
    collections that were not fetched are None, not empty.
    """
    bill: Bill
    actions: Optional[List[BillAction]] = None
    titles: Optional[List[BillTitle]] = None
    summaries: Optional[List[BillSummary]] = None
    subject: Optional[BillSubject] = None
    text_version: Optional[BillTextVersion] = None
    resolved_endpoints: int = 0
