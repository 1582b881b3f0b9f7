"""Data models for the SEC filing packager."""

from datetime import date
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Company(BaseModel):
    """Represents a company with ticker, CIK, and name."""

    ticker: str
    cik: str
    name: str


class Filing(BaseModel):
    """Represents a SEC filing as listed in the submissions history."""

    model_config = ConfigDict(frozen=True)

    form_type: str
    accession_number: str
    filing_date: date
    primary_document: str

    @property
    def accession_number_raw(self) -> str:
        """Accession number without dashes, as used in archive paths."""
        return self.accession_number.replace("-", "")


class SelectedFiling(BaseModel):
    """A filing chosen for the pack, with the rule that claimed it."""

    filing: Filing
    reason: str


class CandidateAudit(BaseModel):
    """Audit entry for one filing in the retrieved history."""

    filing: Filing
    selected: bool
    reason: str


class ExhibitDoc(BaseModel):
    """One document row from a filing's index page."""

    model_config = ConfigDict(frozen=True)

    seq: str
    description: str
    doc_type: str
    filename: str
    size_text: str = ""


class ExhibitBudget(BaseModel):
    """Limits applied when downloading exhibits for a pack."""

    max_per_filing: int = Field(default=25, ge=1)
    max_total_bytes: int = Field(default=75 * 1024 * 1024, ge=0)
    deep: bool = False


class TriageDecision(BaseModel):
    """Outcome of triaging a single exhibit."""

    doc: ExhibitDoc
    tier: Literal["high", "low", "junk"]
    decision: Literal["download", "skip"]
    reason: str
    size_bytes: Optional[int] = None
    content: Optional[bytes] = Field(default=None, exclude=True, repr=False)

    @property
    def downloaded(self) -> bool:
        return self.decision == "download"


class PackRequest(BaseModel):
    """Parameters for building a filing pack."""

    ticker: str
    days_back: int = Field(default=365, ge=30, le=730)
    max_exhibits: int = Field(default=25, ge=1, le=100)
    max_mb: int = Field(default=75, ge=5, le=500)
    include_exhibits: bool = True
    deep: bool = False
    all_filings: bool = True
    as_of: Optional[date] = None

    @field_validator("ticker")
    @classmethod
    def normalize_ticker(cls, value: str) -> str:
        ticker = value.strip().upper()
        if not ticker:
            raise ValueError("Ticker cannot be empty")
        return ticker

    @property
    def budget(self) -> ExhibitBudget:
        return ExhibitBudget(
            max_per_filing=self.max_exhibits,
            max_total_bytes=self.max_mb * 1024 * 1024,
            deep=self.deep,
        )
