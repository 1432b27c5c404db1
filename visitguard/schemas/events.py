"""
Visit Event Schemas

Defines the VisitEvent structure posted by the embedded tracking snippet.
This is the primary input to the ingestion pipeline.

The snippet posts camelCase JSON; fields are exposed in snake_case and
unknown fields are ignored so older snippet versions keep working.
"""

from enum import Enum
from typing import Any, Optional, Union
from urllib.parse import urlparse

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class EventType(str, Enum):
    """
    Tracking snippet event types.

    - PAGE_VISIT: Page load (default)
    - HEARTBEAT: Periodic keep-alive while the page is open
    - SESSION_END: Visitor closed the last tab / session timed out client-side
    - CUSTOM_EVENT: Site-defined event
    - PAGE_UNLOAD: Page navigated away
    """
    PAGE_VISIT = "page_visit"
    HEARTBEAT = "heartbeat"
    SESSION_END = "session_end"
    CUSTOM_EVENT = "custom_event"
    PAGE_UNLOAD = "page_unload"


class VisitType(str, Enum):
    """Where the visit came from relative to the tracked website."""
    DIRECT = "direct"
    INTERNAL = "internal"
    EXTERNAL = "external"


class VisitEvent(BaseModel):
    """
    Raw event from the tracking snippet.

    trackingCode and website are required by the pipeline but optional here
    so that a missing value surfaces as a 400 with a readable message rather
    than a schema error.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    # =========================================================================
    # Website identification
    # =========================================================================
    tracking_code: Optional[str] = Field(
        default=None,
        description="Tracking code issued for the website",
        max_length=128,
    )
    website: Optional[str] = Field(
        default=None,
        description="Website hostname or URL reported by the snippet",
        max_length=512,
    )
    domain: Optional[str] = Field(default=None, max_length=512)

    # =========================================================================
    # Page context
    # =========================================================================
    page: Optional[str] = Field(default=None, description="Page path or URL")
    url: Optional[str] = Field(default=None, description="Full page URL")
    title: Optional[str] = Field(default=None, max_length=1024)
    referrer: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("referrer", "referer"),
        description="document.referrer as seen by the snippet",
    )
    event_type: EventType = Field(
        default=EventType.PAGE_VISIT,
        validation_alias=AliasChoices("type", "eventType", "event_type"),
        description="Snippet event type",
    )

    # =========================================================================
    # Identity signals
    # =========================================================================
    session_id: Optional[str] = Field(default=None, max_length=128)
    device_fingerprint: Optional[str] = Field(default=None, max_length=128)
    computer_id: Optional[str] = Field(default=None, max_length=128)

    # =========================================================================
    # Browser / device attributes
    # =========================================================================
    user_agent: Optional[str] = Field(default=None, max_length=2048)
    browser: Optional[Union[str, dict[str, Any]]] = Field(default=None)
    os: Optional[Union[str, dict[str, Any]]] = Field(default=None)
    screen_resolution: Optional[str] = Field(default=None, max_length=32)
    color_depth: Optional[int] = Field(default=None)
    pixel_ratio: Optional[float] = Field(default=None)
    viewport: Optional[str] = Field(default=None, max_length=32)
    platform: Optional[str] = Field(default=None, max_length=128)
    language: Optional[str] = Field(default=None, max_length=64)
    timezone: Optional[str] = Field(default=None, max_length=64)
    hardware_concurrency: Optional[int] = Field(default=None)
    max_touch_points: Optional[int] = Field(default=None)
    cookie_enabled: Optional[bool] = Field(default=None)
    do_not_track: Optional[Union[bool, str]] = Field(default=None)
    connection_type: Optional[str] = Field(default=None, max_length=32)

    # =========================================================================
    # Behavioral counters
    # =========================================================================
    mouse_movements: Optional[int] = Field(default=None, ge=0)
    clicks: Optional[int] = Field(default=None, ge=0)
    scroll_depth: Optional[float] = Field(default=None, ge=0)
    time_on_page: Optional[float] = Field(default=None, ge=0, description="Seconds")
    page_load_time: Optional[float] = Field(default=None, ge=0, description="Milliseconds")

    # =========================================================================
    # Campaign attribution
    # =========================================================================
    utm_source: Optional[str] = Field(default=None, max_length=256)
    utm_medium: Optional[str] = Field(default=None, max_length=256)
    utm_campaign: Optional[str] = Field(default=None, max_length=256)
    utm_term: Optional[str] = Field(default=None, max_length=256)
    utm_content: Optional[str] = Field(default=None, max_length=256)
    custom_params: Optional[dict[str, Any]] = Field(default=None)

    @property
    def page_url(self) -> Optional[str]:
        """Best available page location."""
        return self.url or self.page

    @property
    def referrer_domain(self) -> str:
        """Hostname of the referrer, empty when absent or unparsable."""
        if not self.referrer:
            return ""
        try:
            return (urlparse(self.referrer).hostname or "").lower()
        except ValueError:
            return ""

    @property
    def declared_browser(self) -> Optional[str]:
        return _declared_name(self.browser)

    @property
    def declared_os(self) -> Optional[str]:
        return _declared_name(self.os)


def _declared_name(value: Optional[Union[str, dict[str, Any]]]) -> Optional[str]:
    # Older snippets send {"name": ..., "version": ...}
    if isinstance(value, dict):
        name = value.get("name")
        return str(name) if name else None
    return value or None


class BulkTrackRequest(BaseModel):
    """Batch of events sharing one tracking code and website."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    tracking_code: Optional[str] = Field(default=None, max_length=128)
    website: Optional[str] = Field(default=None, max_length=512)
    events: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Raw snippet events; trackingCode/website are filled in",
        max_length=500,
    )
