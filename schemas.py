"""
Data Schemas for the Probate Scraper
====================================

Pydantic models for queries, search results, filing details, parsed petition
records and per-filing outcomes. Everything that leaves a pipeline stage is
frozen so later stages cannot rewrite earlier results.
"""

import re
from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from probate_config import COURTS, LIST_TYPES

PORTAL_DATE_FORMAT = "%m/%d/%Y"
PORTAL_DATE_RE = re.compile(r"^\d{2}/\d{2}/\d{4}$")


class FrozenModel(BaseModel):
    model_config = ConfigDict(frozen=True)


# ─────────────────────────────────────────────────────────────────────────────
# ENUMS
# ─────────────────────────────────────────────────────────────────────────────

class SessionState(str, Enum):
    """Gate state of a portal session"""
    GATED = "gated"
    READY = "ready"


class GateStage(str, Enum):
    """Where the session currently sits in the portal's entry sequence"""
    WELCOME = "welcome"
    CHALLENGE = "challenge"
    READY = "ready"


class OutcomeStatus(str, Enum):
    INCLUDED = "included"
    SKIPPED = "skipped"
    ERROR = "error"


# ─────────────────────────────────────────────────────────────────────────────
# QUERY INPUT
# ─────────────────────────────────────────────────────────────────────────────

class DateChunk(FrozenModel):
    """A date range contained in a single calendar month"""
    date_from: date
    date_to: date

    @model_validator(mode="after")
    def check_single_month(self):
        if self.date_from > self.date_to:
            raise ValueError("date_from must not be after date_to")
        if (self.date_from.year, self.date_from.month) != (self.date_to.year, self.date_to.month):
            raise ValueError("a date chunk must stay within one calendar month")
        return self

    @property
    def from_str(self) -> str:
        return self.date_from.strftime(PORTAL_DATE_FORMAT)

    @property
    def to_str(self) -> str:
        return self.date_to.strftime(PORTAL_DATE_FORMAT)

    def label(self) -> str:
        return f"{self.from_str}-{self.to_str}"


class ProbateQuery(BaseModel):
    """Validated search request: county, proceeding and MM/DD/YYYY range"""
    county: str = Field(description="Court dropdown value, e.g. '15'")
    proceeding: str = Field(description="Proceeding label, e.g. 'PROBATE PETITION'")
    from_date: str
    to_date: str
    min_estate_value: float = Field(default=100000, ge=0)

    @field_validator("county")
    @classmethod
    def validate_county(cls, v):
        v = (v or "").strip()
        if v not in COURTS:
            raise ValueError(f"Unsupported county {v!r}; expected one of {sorted(COURTS)}")
        return v

    @field_validator("proceeding")
    @classmethod
    def validate_proceeding(cls, v):
        v = (v or "").strip().upper()
        if v not in LIST_TYPES:
            raise ValueError(f"Unsupported proceeding {v!r}; expected one of {sorted(LIST_TYPES)}")
        return v

    @field_validator("from_date", "to_date")
    @classmethod
    def validate_date_format(cls, v):
        v = (v or "").strip()
        if not PORTAL_DATE_RE.match(v):
            raise ValueError("Dates must be in MM/DD/YYYY format")
        datetime.strptime(v, PORTAL_DATE_FORMAT)
        return v

    @model_validator(mode="after")
    def check_order(self):
        if self.start > self.end:
            raise ValueError("from_date must not be after to_date")
        return self

    @property
    def start(self) -> date:
        return datetime.strptime(self.from_date, PORTAL_DATE_FORMAT).date()

    @property
    def end(self) -> date:
        return datetime.strptime(self.to_date, PORTAL_DATE_FORMAT).date()


# ─────────────────────────────────────────────────────────────────────────────
# SEARCH + FILE HISTORY
# ─────────────────────────────────────────────────────────────────────────────

class FilingStub(FrozenModel):
    """One search result row; identity is file_number"""
    file_number: str
    file_date: str = ""
    file_name: str = ""
    proceeding: str = ""
    date_of_death: str = ""


class Party(FrozenModel):
    name: str
    role: str
    date_of_death: str = ""


class FilingMetadata(FrozenModel):
    file_date: Optional[str] = None
    estate_closed: Optional[str] = None
    judge: Optional[str] = None
    attorney: Optional[str] = None


class FilingDetail(FrozenModel):
    parties: List[Party] = Field(default_factory=list)
    metadata: FilingMetadata = Field(default_factory=FilingMetadata)
    document_reference: Optional[str] = None


# ─────────────────────────────────────────────────────────────────────────────
# PARSED PETITION
# ─────────────────────────────────────────────────────────────────────────────

class ParsedRecord(FrozenModel):
    """Fields read from a probate petition; None means not found"""
    decedent_name: Optional[str] = None
    decedent_address: Optional[str] = None
    date_of_death: Optional[str] = None
    place_of_death: Optional[str] = None
    executor_name: Optional[str] = None
    executor_address: Optional[str] = None
    estate_value_lower: Optional[float] = Field(default=None, ge=0)
    estate_value_upper: Optional[float] = Field(default=None, ge=0)
    personal_property: Optional[float] = Field(default=None, ge=0)
    improved_real_property: Optional[float] = Field(default=None, ge=0)
    unimproved_real_property: Optional[float] = Field(default=None, ge=0)
    parse_errors: List[str] = Field(default_factory=list)


class IncludedRecord(ParsedRecord):
    attorney: str = ""


# ─────────────────────────────────────────────────────────────────────────────
# OUTCOMES + REPORTS
# ─────────────────────────────────────────────────────────────────────────────

class Outcome(FrozenModel):
    """Final disposition of one filing"""
    file_number: str
    file_date: str = ""
    file_name: str = ""
    status: OutcomeStatus
    reason: Optional[str] = None
    data: Optional[IncludedRecord] = None

    @classmethod
    def included(cls, stub: FilingStub, record: ParsedRecord, attorney: Optional[str] = None) -> "Outcome":
        data = IncludedRecord(**record.model_dump(), attorney=attorney or "")
        return cls(
            file_number=stub.file_number,
            file_date=stub.file_date,
            file_name=stub.file_name,
            status=OutcomeStatus.INCLUDED,
            data=data,
        )

    @classmethod
    def skipped(cls, stub: FilingStub, reason: str) -> "Outcome":
        return cls(
            file_number=stub.file_number,
            file_date=stub.file_date,
            file_name=stub.file_name,
            status=OutcomeStatus.SKIPPED,
            reason=reason,
        )

    @classmethod
    def error(cls, stub: FilingStub, reason: str) -> "Outcome":
        return cls(
            file_number=stub.file_number,
            file_date=stub.file_date,
            file_name=stub.file_name,
            status=OutcomeStatus.ERROR,
            reason=reason,
        )


class BatchStats(BaseModel):
    included: int = 0
    skipped: int = 0
    errors: int = 0

    def count(self, outcome: Outcome):
        if outcome.status is OutcomeStatus.INCLUDED:
            self.included += 1
        elif outcome.status is OutcomeStatus.SKIPPED:
            self.skipped += 1
        else:
            self.errors += 1

    def merge(self, other: "BatchStats"):
        self.included += other.included
        self.skipped += other.skipped
        self.errors += other.errors


class SearchReport(BaseModel):
    files: List[FilingStub] = Field(default_factory=list)
    total_count: int = 0
    date_chunks: List[DateChunk] = Field(default_factory=list)


class BatchReport(BaseModel):
    results: List[Outcome] = Field(default_factory=list)
    batch_stats: BatchStats = Field(default_factory=BatchStats)
    cancelled: bool = False

    def add(self, outcome: Outcome):
        self.results.append(outcome)
        self.batch_stats.count(outcome)
