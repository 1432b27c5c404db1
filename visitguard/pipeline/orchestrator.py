"""
Ingestion Orchestrator

Sequences one tracking event through the pipeline:

    website directory -> rate limit -> identity -> traffic classification
    -> dedup gate -> {location, threat} -> bot detection -> fraud scoring
    -> Visit -> background persistence and notification

The snippet gets its response as soon as the Visit is built; storage,
session updates and notifications run in the background.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from pydantic import ValidationError

from ..collaborators import VisitNotifier, VisitStore, WebsiteDirectory
from ..config import settings
from ..dedup import DedupGate, RateLimiter
from ..detection import BotDetector, parse_client
from ..errors import InvalidInputError, PersistenceError
from ..identity import IdentityResolution, IdentityResolver, derive_fingerprint
from ..metrics import metrics, telemetry
from ..resolvers import LocationResolver, ThreatResolver, ip_version, is_valid_ip, normalize_ip
from ..schemas import (
    BulkEventResult,
    BulkTrackRequest,
    BulkTrackResponse,
    EventType,
    IdentitySignals,
    IPLookupResponse,
    SuspiciousActivity,
    TrackResponse,
    Visit,
    VisitEvent,
    VisitSummary,
    VisitType,
    WebsiteConfig,
)
from ..scoring import FraudScorer
from ..utils import get_logger, fire_and_forget
from .traffic import classify_visit, traffic_source

logger = get_logger("pipeline")

# Identity sources that follow the visitor rather than the network
_PORTABLE_SOURCES = {"session_id", "fingerprint", "computer_id"}


@dataclass
class TrackOutcome:
    response: TrackResponse
    visit: Optional[Visit] = None


class IngestionOrchestrator:
    """
    Per-event pipeline.

    All collaborators are injected; the API wires production instances in
    its lifespan and tests wire in-memory ones.
    """

    def __init__(
        self,
        websites: WebsiteDirectory,
        identity: IdentityResolver,
        dedup: DedupGate,
        location: LocationResolver,
        threat: ThreatResolver,
        store: VisitStore,
        notifier: VisitNotifier,
        bot_detector: Optional[BotDetector] = None,
        scorer: Optional[FraudScorer] = None,
        rate_limiter: Optional[RateLimiter] = None,
        storage_retry_attempts: Optional[int] = None,
        alert_threshold: Optional[int] = None,
        high_visit_frequency_threshold: Optional[int] = None,
    ):
        self.websites = websites
        self.identity = identity
        self.dedup = dedup
        self.location = location
        self.threat = threat
        self.store = store
        self.notifier = notifier
        self.bot_detector = bot_detector or BotDetector()
        self.scorer = scorer or FraudScorer()
        self.rate_limiter = rate_limiter
        self.storage_retry_attempts = (
            storage_retry_attempts
            if storage_retry_attempts is not None
            else settings.storage_retry_attempts
        )
        self.alert_threshold = (
            alert_threshold if alert_threshold is not None else settings.security_alert_threshold
        )
        self.high_visit_frequency_threshold = (
            high_visit_frequency_threshold or settings.high_visit_frequency_threshold
        )

    # =========================================================================
    # Entry points
    # =========================================================================

    async def track(
        self,
        event: VisitEvent,
        ip: str,
        user_agent_header: Optional[str] = None,
    ) -> TrackOutcome:
        """
        Track one event.

        Raises:
            InvalidInputError: missing fields, unknown or inactive tracking code
            RateLimitExceededError: the IP exceeded its per-minute budget
        """
        website = await self._resolve_website(event.tracking_code, event.website)
        if self.rate_limiter is not None:
            await self.rate_limiter.check(ip)
        return await self._process(event, website, ip, user_agent_header)

    async def track_bulk(
        self,
        request: BulkTrackRequest,
        ip: str,
        user_agent_header: Optional[str] = None,
    ) -> BulkTrackResponse:
        """
        Track a batch of events for one website.

        The batch is validated and rate limited once; each event is then
        processed independently and reported in its own result.
        """
        website = await self._resolve_website(request.tracking_code, request.website)
        if self.rate_limiter is not None:
            await self.rate_limiter.check(ip)

        results: list[BulkEventResult] = []
        for index, raw in enumerate(request.events):
            try:
                event = VisitEvent.model_validate(
                    {**raw, "trackingCode": request.tracking_code, "website": request.website}
                )
            except ValidationError as e:
                results.append(BulkEventResult(
                    index=index,
                    success=False,
                    message=f"Invalid event: {e.error_count()} validation error(s)",
                ))
                continue

            outcome = await self._process(event, website, ip, user_agent_header)
            results.append(BulkEventResult(
                index=index,
                success=True,
                tracked=outcome.response.tracked,
                session_id=outcome.response.session_id,
                message=outcome.response.message,
            ))

        return BulkTrackResponse(
            total_events=len(request.events),
            tracked_events=sum(1 for r in results if r.tracked),
            results=results,
        )

    async def lookup_ip(self, ip: str) -> IPLookupResponse:
        """Resolve location and threat for one IP (diagnostics)."""
        if not is_valid_ip(ip):
            raise InvalidInputError("Invalid IP address", details={"ip": ip})

        ip = normalize_ip(ip)
        location, threat = await asyncio.gather(
            self.location.resolve(ip),
            self.threat.resolve(ip),
        )
        return IPLookupResponse(ip=ip, location=location, threat=threat)

    # =========================================================================
    # Pipeline
    # =========================================================================

    async def _resolve_website(
        self,
        tracking_code: Optional[str],
        website: Optional[str],
    ) -> WebsiteConfig:
        if not tracking_code or not tracking_code.strip():
            raise InvalidInputError("Tracking code is required")
        if not website or not website.strip():
            raise InvalidInputError("Website parameter is required")

        config = await self.websites.get_by_tracking_code(tracking_code.strip())
        if config is None:
            raise InvalidInputError("Invalid tracking code")
        if not config.is_active:
            raise InvalidInputError("Website is not active")
        return config

    async def _process(
        self,
        event: VisitEvent,
        website: WebsiteConfig,
        ip: str,
        user_agent_header: Optional[str],
    ) -> TrackOutcome:
        start_time = time.perf_counter()
        ip = normalize_ip(ip)
        user_agent = event.user_agent or user_agent_header or ""

        # =====================================================================
        # Step 1: Identity
        # =====================================================================
        signals = IdentitySignals(
            website_id=website.website_id,
            ip=ip,
            session_id=event.session_id,
            device_fingerprint=event.device_fingerprint or derive_fingerprint(event, user_agent),
            computer_id=event.computer_id,
        )
        identity = await self.identity.resolve(signals)
        session_id = identity.session.session_id

        # =====================================================================
        # Step 2: Internal navigation
        # =====================================================================
        visit_type = classify_visit(event.referrer, event.website or "", website.domain)
        if (
            visit_type is VisitType.INTERNAL
            and event.event_type is EventType.PAGE_VISIT
            and not identity.is_new_session
        ):
            self._touch(identity, signals, count_visit=False)
            return self._skip(session_id, "Internal navigation", start_time)

        # =====================================================================
        # Step 3: Dedup gate
        # =====================================================================
        decision = await self.dedup.admit(website.website_id, session_id, event.event_type)
        if not decision.accepted:
            return self._skip(session_id, "Recent visit exists", start_time, decision.last_visit)

        if identity.is_new_session:
            message = "New session"
        elif visit_type is VisitType.EXTERNAL and traffic_source(event.referrer):
            message = "External traffic source"
        else:
            message = "Sufficient time passed"

        self._touch(identity, signals, count_visit=True)

        # =====================================================================
        # Step 4: Resolution, detection and scoring
        # =====================================================================
        visit = await self._assess(event, website, identity, signals, user_agent, visit_type)

        # =====================================================================
        # Step 5: Persist and notify (async, don't block response)
        # =====================================================================
        fire_and_forget(self._persist(visit), "persist_visit")
        fire_and_forget(self._notify(visit), "notify_visit")

        total_time = (time.perf_counter() - start_time) * 1000
        self._record("tracked", message, total_time, visit.fraud.score)
        logger.info(
            "Tracked %s visit on %s from %s (session %s, score %d)",
            event.event_type.value, website.website_id, ip, session_id, visit.fraud.score,
        )

        return TrackOutcome(
            response=TrackResponse(tracked=True, session_id=session_id, message=message),
            visit=visit,
        )

    async def _assess(
        self,
        event: VisitEvent,
        website: WebsiteConfig,
        identity: IdentityResolution,
        signals: IdentitySignals,
        user_agent: str,
        visit_type: VisitType,
    ) -> Visit:
        ip = signals.ip
        location, threat = await asyncio.gather(
            self.location.resolve(ip),
            self.threat.resolve(ip),
        )
        bot = self.bot_detector.detect(
            user_agent,
            mouse_movements=event.mouse_movements,
            clicks=event.clicks,
            page_load_time=event.page_load_time,
        )
        client = parse_client(user_agent, event.declared_browser, event.declared_os)
        activities = self._session_anomalies(identity, ip)
        fraud = self.scorer.score(threat, bot, activities)

        utm = {
            name: value
            for name, value in (
                ("source", event.utm_source),
                ("medium", event.utm_medium),
                ("campaign", event.utm_campaign),
                ("term", event.utm_term),
                ("content", event.utm_content),
            )
            if value
        }

        visit = Visit(
            tracking_code=website.tracking_code,
            website_id=website.website_id,
            owner_id=website.owner_id,
            website=event.website or website.domain,
            domain=website.domain,
            event_type=event.event_type,
            visit_type=visit_type,
            page=event.page_url,
            title=event.title,
            referrer=event.referrer,
            referrer_domain=event.referrer_domain,
            ip=ip,
            ip_version=ip_version(ip),
            session_id=identity.session.session_id,
            is_new_session=identity.is_new_session,
            identity_source=identity.source,
            device_fingerprint=signals.device_fingerprint,
            computer_id=event.computer_id,
            user_agent=user_agent,
            browser=client.browser,
            browser_version=client.browser_version,
            os=client.os,
            os_version=client.os_version,
            device_type=client.device_type,
            screen_resolution=event.screen_resolution,
            language=event.language,
            timezone=event.timezone,
            platform=event.platform,
            mouse_movements=event.mouse_movements,
            clicks=event.clicks,
            scroll_depth=event.scroll_depth,
            time_on_page=event.time_on_page,
            page_load_time=event.page_load_time,
            utm=utm,
            custom_params=event.custom_params,
            location=location,
            threat=threat,
            bot=bot,
            fraud=fraud,
            suspicious_activity=activities,
        )
        return self.scorer.flag_high_score(visit, self.alert_threshold)

    def _session_anomalies(self, identity: IdentityResolution, ip: str) -> list[SuspiciousActivity]:
        """Suspicious activity derived from the session before scoring."""
        activities: list[SuspiciousActivity] = []
        session = identity.session

        if identity.source in _PORTABLE_SOURCES and session.ip and session.ip != ip:
            activities.append(SuspiciousActivity(
                type="ip_changed_mid_session",
                description=f"IP changed from {session.ip} to {ip} within a session",
                severity="medium",
            ))

        if session.visit_count + 1 > self.high_visit_frequency_threshold:
            activities.append(SuspiciousActivity(
                type="high_visit_frequency",
                description=f"{session.visit_count + 1} events in one session",
                severity="medium",
            ))
        return activities

    # =========================================================================
    # Background work
    # =========================================================================

    def _touch(self, identity: IdentityResolution, signals: IdentitySignals, count_visit: bool) -> None:
        fire_and_forget(
            self.identity.touch(identity.session, signals, count_visit=count_visit),
            "touch_session",
        )

    async def _persist(self, visit: Visit) -> None:
        attempts = 1 + self.storage_retry_attempts
        for attempt in range(1, attempts + 1):
            try:
                await self.store.save(visit)
                return
            except PersistenceError as e:
                if attempt < attempts:
                    metrics.persistence_failures.labels(stage="retry").inc()
                    logger.warning("Visit %s write failed, retrying: %s", visit.visit_id, e)
                    continue
                metrics.persistence_failures.labels(stage="dropped").inc()
                logger.error(
                    "Dropping visit %s after %d attempts: %s", visit.visit_id, attempts, e
                )

    async def _notify(self, visit: Visit) -> None:
        summary = VisitSummary.from_visit(visit)
        try:
            await self.notifier.publish(summary)
            metrics.notifications_total.labels(kind="visit", outcome="ok").inc()
        except Exception as e:
            metrics.notifications_total.labels(kind="visit", outcome="error").inc()
            logger.warning("Visit notification failed: %s", e)

        if visit.fraud.score > self.alert_threshold:
            try:
                await self.notifier.alert(summary)
                metrics.notifications_total.labels(kind="alert", outcome="ok").inc()
                logger.warning(
                    "Security alert: visit %s from %s scored %d",
                    visit.visit_id, visit.ip, visit.fraud.score,
                )
            except Exception as e:
                metrics.notifications_total.labels(kind="alert", outcome="error").inc()
                logger.warning("Security alert publish failed: %s", e)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _skip(
        self,
        session_id: str,
        reason: str,
        start_time: float,
        last_visit: Optional[datetime] = None,
    ) -> TrackOutcome:
        self._record("skipped", reason, (time.perf_counter() - start_time) * 1000)
        return TrackOutcome(
            response=TrackResponse(
                tracked=False,
                session_id=session_id,
                message=reason,
                last_visit=last_visit,
            )
        )

    def _record(
        self,
        outcome: str,
        reason: str,
        total_time: float,
        fraud_score: Optional[int] = None,
    ) -> None:
        metrics.track_decisions.labels(outcome=outcome, reason=reason).inc()
        metrics.e2e_latency.observe(total_time)
        telemetry.record(outcome, reason, total_time, fraud_score)
        if total_time > settings.target_e2e_latency_ms:
            metrics.slow_requests.inc()
