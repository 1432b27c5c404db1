# Identity resolution and session storage
from .fingerprint import derive_fingerprint
from .resolver import IdentityResolution, IdentityResolver, synthesize_session_id
from .store import SessionStore

__all__ = [
    "derive_fingerprint",
    "IdentityResolution",
    "IdentityResolver",
    "synthesize_session_id",
    "SessionStore",
]
