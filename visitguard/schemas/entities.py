"""
Entity Schemas

Resolved entities the pipeline works with: location and threat results
(cached per IP), bot verdicts, visitor sessions, identity signals and the
website configuration supplied by the website directory.
"""

from datetime import datetime, timedelta, UTC
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator


def _utc_now() -> datetime:
    """Return current UTC time (timezone-aware)."""
    return datetime.now(UTC)


class AccuracyTier(str, Enum):
    """Coarse confidence label for a resolved location."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"


class LocationResult(BaseModel):
    """
    Geolocation for an IP.

    Always fully populated: when nothing resolves, the "Unknown" default
    with accuracy NONE and zero coordinates is used instead of null.
    """
    country: str = Field(default="Unknown")
    country_code: str = Field(default="XX")
    region: str = Field(default="Unknown")
    city: str = Field(default="Unknown")
    latitude: float = Field(default=0.0, ge=-90, le=90)
    longitude: float = Field(default=0.0, ge=-180, le=180)
    timezone: str = Field(default="Unknown")
    isp: str = Field(default="Unknown")
    org: str = Field(default="Unknown")
    accuracy: AccuracyTier = Field(default=AccuracyTier.NONE)
    provider: Optional[str] = Field(
        default=None,
        description="Provider that produced the result",
    )

    @classmethod
    def unknown(cls) -> "LocationResult":
        """Default returned when every provider failed or timed out."""
        return cls()

    @classmethod
    def local(cls) -> "LocationResult":
        """Fixed result for private, loopback and link-local addresses."""
        return cls(
            country="Local",
            country_code="LO",
            region="Local",
            city="Local",
            timezone="UTC",
            isp="Local Network",
            org="Local Network",
            accuracy=AccuracyTier.LOW,
            provider="local",
        )

    @property
    def is_resolved(self) -> bool:
        return bool(self.country) and self.country != "Unknown"


class ThreatResult(BaseModel):
    """Network reputation flags for an IP."""
    is_vpn: bool = Field(default=False)
    is_proxy: bool = Field(default=False)
    is_tor: bool = Field(default=False)
    is_hosting: bool = Field(default=False)
    provider: Optional[str] = Field(
        default=None,
        description="Label of the strategy that produced the flags",
    )

    @classmethod
    def clean(cls, provider: Optional[str] = None) -> "ThreatResult":
        return cls(provider=provider)

    @property
    def is_anonymized(self) -> bool:
        return self.is_vpn or self.is_proxy or self.is_tor


class BotResult(BaseModel):
    """Bot detector verdict. Confidence is for display only."""
    is_bot: bool = Field(default=False)
    bot_type: Optional[str] = Field(
        default=None,
        description="crawler, automation or behavioral",
    )
    confidence: int = Field(default=0, ge=0, le=100)
    matched: Optional[str] = Field(
        default=None,
        description="User-agent token or rule that matched",
    )


class IdentitySignals(BaseModel):
    """Per-request identity inputs; never persisted on their own."""
    website_id: str
    ip: str
    session_id: Optional[str] = None
    device_fingerprint: Optional[str] = None
    computer_id: Optional[str] = None


class Session(BaseModel):
    """
    One browsing session for one visitor on one website.

    Expires after a period of inactivity; every accepted event extends the
    expiry and increments the visit count.
    """
    session_id: str = Field(..., min_length=1, max_length=128)
    website_id: str
    ip: Optional[str] = None
    device_fingerprint: Optional[str] = None
    computer_id: Optional[str] = None
    created_at: datetime = Field(default_factory=_utc_now)
    last_activity: datetime = Field(default_factory=_utc_now)
    expires_at: datetime = Field(default_factory=_utc_now)
    visit_count: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _check_activity_order(self) -> "Session":
        if self.last_activity < self.created_at:
            raise ValueError("last_activity cannot precede created_at")
        return self

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def touch(self, now: datetime, ttl_seconds: int, count_visit: bool = True) -> None:
        """Extend expiry from now and optionally count an accepted event."""
        self.last_activity = max(now, self.created_at)
        self.expires_at = self.last_activity + timedelta(seconds=ttl_seconds)
        if count_visit:
            self.visit_count += 1


class WebsiteConfig(BaseModel):
    """Website resolved from a tracking code by the website directory."""
    tracking_code: str
    website_id: str
    owner_id: str
    domain: str
    is_active: bool = True
