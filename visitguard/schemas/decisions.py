"""
Decision Schemas

Fraud assessment, the persisted Visit record, the real-time visit summary
and the HTTP response shapes returned to the tracking snippet.
"""

from datetime import datetime, UTC
from typing import Any, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .entities import BotResult, LocationResult, ThreatResult
from .events import EventType, VisitType


def _utc_now() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)


class RiskFactor(BaseModel):
    """One named, weighted contributor to a fraud score."""
    name: str = Field(..., description="Factor name, e.g. 'isVpn'")
    weight: int = Field(..., ge=0, description="Points contributed before clamping")
    description: str = Field(..., description="Human-readable explanation")


class FraudAssessment(BaseModel):
    """Bounded fraud score with its itemized factors."""
    score: int = Field(..., ge=0, le=100)
    factors: list[RiskFactor] = Field(default_factory=list)

    @property
    def raw_total(self) -> int:
        """Sum of factor weights before the 100 cap."""
        return sum(f.weight for f in self.factors)


class SuspiciousActivity(BaseModel):
    """Append-only annotation on a Visit."""
    type: str = Field(..., description="Activity type, e.g. 'high_fraud_score'")
    description: str = Field(default="")
    severity: str = Field(
        default="medium",
        pattern="^(low|medium|high|critical)$",
    )
    timestamp: datetime = Field(default_factory=_utc_now)


class Visit(BaseModel):
    """
    A recorded visit.

    Immutable once built; the only permitted change is appending to
    suspicious_activity, which may be followed by a rescore that produces
    a copy with an updated fraud assessment.
    """

    model_config = ConfigDict(frozen=True)

    visit_id: str = Field(default_factory=lambda: uuid4().hex)
    timestamp: datetime = Field(default_factory=_utc_now)

    # Website
    tracking_code: str
    website_id: str
    owner_id: str
    website: str
    domain: str

    # Event
    event_type: EventType
    visit_type: VisitType
    page: Optional[str] = None
    title: Optional[str] = None
    referrer: Optional[str] = None
    referrer_domain: str = ""

    # Network / identity
    ip: str
    ip_version: str
    session_id: str
    is_new_session: bool
    identity_source: str
    device_fingerprint: Optional[str] = None
    computer_id: Optional[str] = None

    # Client
    user_agent: str = ""
    browser: Optional[str] = None
    browser_version: Optional[str] = None
    os: Optional[str] = None
    os_version: Optional[str] = None
    device_type: Optional[str] = None
    screen_resolution: Optional[str] = None
    language: Optional[str] = None
    timezone: Optional[str] = None
    platform: Optional[str] = None

    # Behavior
    mouse_movements: Optional[int] = None
    clicks: Optional[int] = None
    scroll_depth: Optional[float] = None
    time_on_page: Optional[float] = None
    page_load_time: Optional[float] = None

    # Attribution
    utm: dict[str, str] = Field(default_factory=dict)
    custom_params: Optional[dict[str, Any]] = None

    # Resolution and assessment
    location: LocationResult
    threat: ThreatResult
    bot: BotResult
    fraud: FraudAssessment
    suspicious_activity: list[SuspiciousActivity] = Field(default_factory=list)


class VisitSummary(BaseModel):
    """Real-time payload for live dashboards."""
    visit_id: str
    ip: str
    website: str
    website_id: str
    owner_id: str
    session_id: str
    event_type: EventType
    page: Optional[str] = None
    country: str
    city: str
    latitude: float
    longitude: float
    accuracy: str
    isp: str
    is_vpn: bool
    is_proxy: bool
    is_tor: bool
    is_hosting: bool
    is_bot: bool
    fraud_score: int
    timestamp: datetime

    @classmethod
    def from_visit(cls, visit: Visit) -> "VisitSummary":
        return cls(
            visit_id=visit.visit_id,
            ip=visit.ip,
            website=visit.website,
            website_id=visit.website_id,
            owner_id=visit.owner_id,
            session_id=visit.session_id,
            event_type=visit.event_type,
            page=visit.page,
            country=visit.location.country,
            city=visit.location.city,
            latitude=visit.location.latitude,
            longitude=visit.location.longitude,
            accuracy=visit.location.accuracy.value,
            isp=visit.location.isp,
            is_vpn=visit.threat.is_vpn,
            is_proxy=visit.threat.is_proxy,
            is_tor=visit.threat.is_tor,
            is_hosting=visit.threat.is_hosting,
            is_bot=visit.bot.is_bot,
            fraud_score=visit.fraud.score,
            timestamp=visit.timestamp,
        )


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TrackResponse(_CamelModel):
    """Response to the tracking snippet."""
    success: bool = True
    tracked: bool
    session_id: str
    message: str
    last_visit: Optional[datetime] = Field(
        default=None,
        description="Prior accepted event time when suppressed as a duplicate",
    )


class ErrorResponse(_CamelModel):
    success: bool = False
    message: str


class IPLookupResponse(_CamelModel):
    """Diagnostic lookup result for one IP."""
    success: bool = True
    ip: str
    location: LocationResult
    threat: ThreatResult
    timestamp: datetime = Field(default_factory=_utc_now)


class BulkEventResult(_CamelModel):
    index: int
    success: bool
    tracked: bool = False
    session_id: Optional[str] = None
    message: str


class BulkTrackResponse(_CamelModel):
    success: bool = True
    message: str = "Bulk tracking completed"
    total_events: int
    tracked_events: int
    results: list[BulkEventResult]
