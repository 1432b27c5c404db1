# Ingestion pipeline
from .orchestrator import IngestionOrchestrator, TrackOutcome
from .traffic import classify_visit, host_of, traffic_source

__all__ = [
    "IngestionOrchestrator",
    "TrackOutcome",
    "classify_visit",
    "host_of",
    "traffic_source",
]
