"""Pydantic schemas for acquired records and pipeline results.

Records here are the outbound contract: each one is handed to the
persistence collaborator via ``model_dump(mode="json")``. Field parsing
that belongs to a specific site lives in ``househunt.extraction``; these
schemas only normalize and bound values.
"""

import secrets
import time
from datetime import UTC, date, datetime
from enum import StrEnum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _utcnow() -> datetime:
    return datetime.now(UTC)


def generate_record_id() -> str:
    """Short, roughly time-ordered identifier for a new record."""
    return f"{int(time.time() * 1000):x}{secrets.token_hex(4)}"


class SchoolCategory(StrEnum):
    """School type, which selects the relevant assessment year levels."""

    PRIMARY = "primary"
    SECONDARY = "secondary"


class FetchResult(BaseModel):
    """Outcome of a plain network retrieval.

    Attributes:
        url: The URL originally requested.
        final_url: URL after following redirects.
        status: Final HTTP status (always 2xx; other statuses raise).
        headers: Response headers of the final hop.
        body: Body decoded per content-encoding and charset.
        redirects: Number of redirects followed.
    """

    url: str
    final_url: str
    status: int
    headers: dict[str, str] = Field(default_factory=dict)
    body: str
    redirects: int = 0


class FlowStep(BaseModel):
    """One executed action of a flow state machine."""

    action: Literal["navigate", "click", "type", "wait", "extract"]
    target: str
    expected_state: str
    at: datetime = Field(default_factory=_utcnow)


class FlowResult(BaseModel):
    """Result of running a flow through the retry orchestrator."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    flow: str
    success: bool
    payload: Any = None
    attempts: int = 1
    diagnostic_path: str | None = None
    steps: list[FlowStep] = Field(default_factory=list)


class PriceRange(BaseModel):
    """Price bounds in whole dollars; both None when unknown."""

    min: int | None = None
    max: int | None = None
    display_text: str = ""


class RoomCounts(BaseModel):
    bedrooms: int = Field(default=0, ge=0)
    bathrooms: int = Field(default=0, ge=0)
    car_spaces: int = Field(default=0, ge=0)


class FloorPlan(BaseModel):
    land_size: int | None = Field(default=None, ge=0)
    unit: str = "m²"


class SchoolRecord(BaseModel):
    """Catchment school for one address and school type.

    ``distance`` is frequently unavailable on the locator and stays None.
    Records built from user-supplied details have ``manual_entry`` set.
    """

    school_type: SchoolCategory
    success: bool = False
    name: str | None = None
    address: str | None = None
    distance: str | None = None
    phone: str | None = None
    years: str | None = None
    website: str | None = None
    manual_entry: bool = False
    message: str | None = None
    looked_up_at: datetime = Field(default_factory=_utcnow)

    @field_validator("name", "address", "distance", mode="before")
    @classmethod
    def collapse_whitespace(cls, value: Any) -> Any:
        if isinstance(value, str):
            cleaned = " ".join(value.split())
            return cleaned or None
        return value

    @classmethod
    def manual(cls, data: dict[str, Any], school_type: SchoolCategory) -> "SchoolRecord":
        """Build a record from user-supplied details."""
        return cls(
            school_type=school_type,
            success=True,
            name=data["name"],
            address=data.get("address"),
            phone=data.get("phone"),
            distance=data.get("distance"),
            website=data.get("website"),
            manual_entry=True,
        )


class YearLevelScores(BaseModel):
    """The five assessed domains for one year level."""

    reading: int | None = Field(default=None, gt=0, lt=1000)
    writing: int | None = Field(default=None, gt=0, lt=1000)
    spelling: int | None = Field(default=None, gt=0, lt=1000)
    grammar: int | None = Field(default=None, gt=0, lt=1000)
    numeracy: int | None = Field(default=None, gt=0, lt=1000)

    def total(self) -> int:
        """Sum of available metrics; missing metrics count as zero."""
        return sum(
            value or 0
            for value in (self.reading, self.writing, self.spelling, self.grammar, self.numeracy)
        )


YEAR_LEVELS = ("year3", "year5", "year7", "year9")
METRICS = ("reading", "writing", "spelling", "grammar", "numeracy")


class AssessmentScoreSet(BaseModel):
    """NAPLAN results keyed by year level token."""

    year: str | None = None
    source: str = "myschool.edu.au"
    year3: YearLevelScores | None = None
    year5: YearLevelScores | None = None
    year7: YearLevelScores | None = None
    year9: YearLevelScores | None = None

    def for_level(self, level: str) -> YearLevelScores | None:
        if level not in YEAR_LEVELS:
            raise KeyError(level)
        return getattr(self, level)

    @property
    def has_scores(self) -> bool:
        return any(self.for_level(level) is not None for level in YEAR_LEVELS)


class SchoolAssessment(BaseModel):
    """Assessment enrichment attached to a school record."""

    school_name: str
    category: SchoolCategory
    scores: AssessmentScoreSet
    quality: float | None = None


class PropertyRecord(BaseModel):
    """A listing extracted from a property page.

    ``auction_date`` holds an ISO date when the month could be resolved,
    otherwise the human-readable text from the page.
    """

    id: str = Field(default_factory=generate_record_id)
    address: str = ""
    url: str = ""
    rooms: RoomCounts = Field(default_factory=RoomCounts)
    price: PriceRange = Field(default_factory=PriceRange)
    auction_date: date | str | None = None
    floor_plan: FloorPlan = Field(default_factory=FloorPlan)
    property_type: str = ""
    scraped_at: datetime = Field(default_factory=_utcnow)

    @field_validator("address", mode="before")
    @classmethod
    def clean_address(cls, value: Any) -> str:
        if value is None:
            return ""
        return " ".join(str(value).split())


class SchoolEnrichment(BaseModel):
    """School data attached to a property; ``skipped`` marks an explicit opt-out."""

    skipped: bool = False
    primary: SchoolRecord | None = None
    secondary: SchoolRecord | None = None
    assessments: list[SchoolAssessment] = Field(default_factory=list)


class EnrichedProperty(BaseModel):
    """A property record together with its school enrichment.

    Only complete once schools were looked up successfully or skipped.
    """

    property: PropertyRecord
    schools: SchoolEnrichment


class RenderedPage(BaseModel):
    """Document obtained by the property page flow."""

    url: str
    html: str
    sufficient: bool
