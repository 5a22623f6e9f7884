"""Data models used across the pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

RawRecord = dict[str, str]
ContactRecord = dict[str, str]


@dataclass(frozen=True)
class ListingMetrics:
    """Typed quantities parsed once from a listing's raw string fields."""

    dom: int | None = None
    cdom: int | None = None
    price: int | None = None
    bedrooms: int | None = None
    year_built: int | None = None
    expired_at: datetime | None = None


@dataclass(frozen=True)
class OwnerContact:
    name: str = ""
    phone: str = ""
    email: str = ""
    mailing_address: str = ""

    @property
    def has_contact(self) -> bool:
        return bool(self.phone or self.email)


@dataclass(frozen=True)
class ListingAnalysis:
    positioning_angle: str
    talking_points: tuple[str, ...] = ()
    full_analysis: str = ""
    status: str = "analyzed"

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "positioningAngle": self.positioning_angle,
            "talkingPoints": list(self.talking_points),
            "status": self.status,
        }
        if self.full_analysis:
            payload["fullAnalysis"] = self.full_analysis
        return payload


@dataclass(frozen=True)
class ListingRecord:
    address: str
    city: str = ""
    zip: str = ""
    state: str = ""
    price: str = ""
    original_list_date: str = ""
    expired_date: str = ""
    days_on_market: str = ""
    cumulative_days_on_market: str = ""
    bedrooms: str = ""
    bathrooms: str = ""
    sqft: str = ""
    year_built: str = ""
    listing_agent: str = ""
    listing_office: str = ""
    mls_number: str = ""
    property_type: str = ""
    status: str = ""
    source_file: str = ""
    metrics: ListingMetrics = field(default_factory=ListingMetrics)
    urgency_score: float | None = None
    owner: OwnerContact | None = None
    analysis: ListingAnalysis | None = None

    @property
    def listing_id(self) -> str:
        return self.mls_number or self.address

    @property
    def score(self) -> float:
        return self.urgency_score if self.urgency_score is not None else 0.0


class BatchState(str, Enum):
    SUBMITTED = "submitted"
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in (BatchState.COMPLETED, BatchState.FAILED, BatchState.TIMED_OUT)


@dataclass
class SkipTraceBatch:
    queue_id: str
    state: BatchState = BatchState.SUBMITTED
    result_url: str | None = None
    attempts: int = 0
    listing_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["state"] = self.state.value
        return payload


class MatchConfidence(str, Enum):
    # Prefix-substring overlap only; nothing stronger is claimed.
    WEAK = "weak"


@dataclass(frozen=True)
class MatchResult:
    listing_id: str
    contact_id: int
    confidence: MatchConfidence = MatchConfidence.WEAK
