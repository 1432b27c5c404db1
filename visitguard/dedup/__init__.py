# Duplicate suppression and request throttling
from .gate import DedupDecision, DedupGate, default_windows
from .rate_limit import RateLimiter

__all__ = ["DedupDecision", "DedupGate", "default_windows", "RateLimiter"]
