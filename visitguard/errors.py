"""Exceptions raised across the visit pipeline.

All pipeline exceptions inherit from VisitGuardError. Only InvalidInputError
and RateLimitExceededError ever reach the HTTP caller; the rest are absorbed
and logged by the component that catches them.
"""

from typing import Any, Dict, Optional


class VisitGuardError(Exception):
    """Base exception for pipeline errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: str = "VISITGUARD_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class InvalidInputError(VisitGuardError):
    """Missing required fields or an unresolvable tracking code."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="INVALID_INPUT", details=details)


class RateLimitExceededError(VisitGuardError):
    """Too many tracking requests from one IP in the current window."""

    def __init__(self, ip: str, limit: int):
        super().__init__(
            "Too many tracking requests from this IP",
            code="RATE_LIMITED",
            details={"ip": ip, "limit_per_minute": limit},
        )


class UpstreamTimeoutError(VisitGuardError):
    """A provider did not answer within its bound."""

    def __init__(self, provider: str, timeout: float):
        super().__init__(
            f"{provider} did not respond within {timeout:.2f}s",
            code="UPSTREAM_TIMEOUT",
            details={"provider": provider, "timeout": timeout},
        )


class CacheUnavailableError(VisitGuardError):
    """The shared cache tier could not be reached."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="CACHE_UNAVAILABLE", details=details)


class PersistenceError(VisitGuardError):
    """The storage collaborator rejected or failed a write."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="PERSISTENCE_FAILURE", details=details)
