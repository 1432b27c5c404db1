"""
Prometheus Metrics

Defines all metrics exposed by the visit ingestion service.
Metrics are critical for:
- Latency monitoring (resolution deadlines, end-to-end)
- Traffic metrics (tracked vs suppressed, fraud score distribution)
- Operational health (provider failures, cache degradation, dropped writes)
"""

import logging

from prometheus_client import Counter, Histogram, Gauge, start_http_server

from ..config import settings

logger = logging.getLogger("visitguard.metrics")


class VisitMetrics:
    """
    Container for all Prometheus metrics.

    Organized by category:
    - Request metrics
    - Latency metrics
    - Decision metrics
    - Resolution metrics
    - System metrics
    """

    def __init__(self):
        """Initialize all metrics."""

        # =====================================================================
        # Request Metrics
        # =====================================================================
        self.requests_total = Counter(
            "visit_requests_total",
            "Total number of ingestion requests",
            labelnames=["endpoint"],
        )

        self.errors_total = Counter(
            "visit_errors_total",
            "Total number of errors",
            labelnames=["error_type"],
        )

        # =====================================================================
        # Latency Metrics
        # =====================================================================
        self.e2e_latency = Histogram(
            "visit_e2e_latency_ms",
            "End-to-end tracking latency in milliseconds",
            buckets=[5, 10, 25, 50, 100, 250, 500, 1000, 2000, 3000, 5000],
        )

        self.resolution_latency = Histogram(
            "visit_resolution_latency_ms",
            "Location/threat resolution latency in milliseconds",
            labelnames=["resolver"],
            buckets=[1, 5, 25, 100, 250, 500, 1000, 1500, 2000, 3000],
        )

        self.slow_requests = Counter(
            "visit_slow_requests_total",
            "Number of tracking requests exceeding the latency target",
        )

        # =====================================================================
        # Decision Metrics
        # =====================================================================
        self.track_decisions = Counter(
            "visit_track_decisions_total",
            "Tracking decisions by outcome and reason",
            labelnames=["outcome", "reason"],
        )

        self.fraud_score_distribution = Histogram(
            "visit_fraud_score",
            "Distribution of fraud scores",
            buckets=[0, 10, 20, 30, 40, 50, 60, 70, 80, 90, 100],
        )

        self.bot_detections = Counter(
            "visit_bot_detections_total",
            "Bot verdicts by type",
            labelnames=["bot_type"],
        )

        # =====================================================================
        # Resolution Metrics
        # =====================================================================
        self.provider_outcomes = Counter(
            "visit_provider_outcomes_total",
            "Upstream provider outcomes",
            labelnames=["resolver", "provider", "outcome"],
        )

        self.resolution_fallbacks = Counter(
            "visit_resolution_fallbacks_total",
            "Resolutions that fell back to the default result",
            labelnames=["resolver"],
        )

        # =====================================================================
        # Cache Metrics
        # =====================================================================
        self.cache_lookups = Counter(
            "visit_cache_lookups_total",
            "Cache lookups by category, tier and result",
            labelnames=["category", "tier", "result"],
        )

        self.cache_degraded = Gauge(
            "visit_cache_degraded",
            "1 while the shared cache tier is unavailable",
        )

        # =====================================================================
        # Collaborator Metrics
        # =====================================================================
        self.persistence_failures = Counter(
            "visit_persistence_failures_total",
            "Visit writes that failed",
            labelnames=["stage"],
        )

        self.notifications_total = Counter(
            "visit_notifications_total",
            "Real-time notifications published",
            labelnames=["kind", "outcome"],
        )

        self.rate_limited_total = Counter(
            "visit_rate_limited_total",
            "Requests rejected by the per-IP rate limiter",
        )

        # Component health
        self.component_health = Gauge(
            "visit_component_health",
            "Component health status (1=healthy, 0=unhealthy)",
            labelnames=["component"],
        )


# Global metrics instance
metrics = VisitMetrics()


def setup_metrics() -> None:
    """
    Setup Prometheus metrics server.

    Starts HTTP server on configured port to expose metrics.
    """
    if settings.metrics_external_enabled:
        try:
            start_http_server(settings.metrics_port)
            logger.info("Metrics server started on port %d", settings.metrics_port)
        except Exception as e:
            logger.warning("Failed to start metrics server: %s", e)
