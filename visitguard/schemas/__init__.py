# Data schemas for the visit pipeline
from .events import EventType, VisitType, VisitEvent, BulkTrackRequest
from .entities import (
    AccuracyTier,
    LocationResult,
    ThreatResult,
    BotResult,
    IdentitySignals,
    Session,
    WebsiteConfig,
)
from .decisions import (
    RiskFactor,
    FraudAssessment,
    SuspiciousActivity,
    Visit,
    VisitSummary,
    TrackResponse,
    ErrorResponse,
    IPLookupResponse,
    BulkEventResult,
    BulkTrackResponse,
)

__all__ = [
    # Events
    "EventType",
    "VisitType",
    "VisitEvent",
    "BulkTrackRequest",
    # Entities
    "AccuracyTier",
    "LocationResult",
    "ThreatResult",
    "BotResult",
    "IdentitySignals",
    "Session",
    "WebsiteConfig",
    # Decisions
    "RiskFactor",
    "FraudAssessment",
    "SuspiciousActivity",
    "Visit",
    "VisitSummary",
    "TrackResponse",
    "ErrorResponse",
    "IPLookupResponse",
    "BulkEventResult",
    "BulkTrackResponse",
]
