"""Device fingerprint derivation for snippets that do not send one."""

import hashlib
from typing import Optional

from ..schemas import VisitEvent

FINGERPRINT_ATTRIBUTES = (
    "user_agent",
    "screen_resolution",
    "color_depth",
    "platform",
    "language",
    "timezone",
    "hardware_concurrency",
    "max_touch_points",
)

MIN_FINGERPRINT_ATTRIBUTES = 3


def derive_fingerprint(event: VisitEvent, user_agent: Optional[str] = None) -> Optional[str]:
    """
    Hash the device attributes into a 32-hex fingerprint.

    Returns None when fewer than three attributes are present.
    """
    values = {name: getattr(event, name) for name in FINGERPRINT_ATTRIBUTES}
    if not values["user_agent"] and user_agent:
        values["user_agent"] = user_agent

    present = [f"{name}={value}" for name, value in values.items() if value not in (None, "")]
    if len(present) < MIN_FINGERPRINT_ATTRIBUTES:
        return None
    return hashlib.sha256("|".join(present).encode()).hexdigest()[:32]
