"""
Lightweight in-memory telemetry of recent tracking decisions.
"""

from collections import deque
from datetime import datetime, UTC, timedelta
from statistics import mean
from typing import Deque, Dict, Optional


class TrackingTelemetry:
    """Ring buffer of recent track/skip decisions for dashboarding."""

    def __init__(self, maxlen: int = 2000) -> None:
        self._events: Deque[dict] = deque(maxlen=maxlen)

    def record(
        self,
        outcome: str,
        reason: str,
        latency_ms: float,
        fraud_score: Optional[int] = None,
    ) -> None:
        self._events.append(
            {
                "ts": datetime.now(UTC),
                "outcome": outcome,
                "reason": reason,
                "latency_ms": latency_ms,
                "fraud_score": fraud_score,
            }
        )

    def snapshot(self, hours: int = 24) -> dict:
        cutoff = datetime.now(UTC) - timedelta(hours=hours)
        events = [e for e in self._events if e["ts"] >= cutoff]

        latencies = [e["latency_ms"] for e in events]
        outcomes: Dict[str, int] = {}
        reasons: Dict[str, int] = {}
        for e in events:
            outcomes[e["outcome"]] = outcomes.get(e["outcome"], 0) + 1
            reasons[e["reason"]] = reasons.get(e["reason"], 0) + 1

        scores = [e["fraud_score"] for e in events if e["fraud_score"] is not None]

        p95 = None
        if latencies:
            latencies_sorted = sorted(latencies)
            index = int(round(0.95 * (len(latencies_sorted) - 1)))
            p95 = latencies_sorted[index]

        return {
            "window_hours": hours,
            "counts": outcomes,
            "reasons": reasons,
            "avg_latency_ms": mean(latencies) if latencies else None,
            "p95_latency_ms": p95,
            "avg_fraud_score": mean(scores) if scores else None,
            "suspicious_visits": sum(1 for s in scores if s > 50),
        }


telemetry = TrackingTelemetry()
