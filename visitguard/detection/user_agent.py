"""
User-agent parsing.

Derives browser, OS and device class for the Visit record. Values declared
by the snippet win over parsed ones since the snippet can read
navigator.userAgentData, which is more precise than the UA string.
"""

from dataclasses import dataclass
from typing import Optional

import user_agents


@dataclass(frozen=True)
class ClientInfo:
    browser: Optional[str] = None
    browser_version: Optional[str] = None
    os: Optional[str] = None
    os_version: Optional[str] = None
    device_type: str = "unknown"


def _clean(value: Optional[str]) -> Optional[str]:
    if not value or value == "Other":
        return None
    return value


def parse_client(
    user_agent: Optional[str],
    declared_browser: Optional[str] = None,
    declared_os: Optional[str] = None,
) -> ClientInfo:
    """Parse a user-agent string into a ClientInfo."""
    if not user_agent:
        return ClientInfo(browser=declared_browser, os=declared_os)

    ua = user_agents.parse(user_agent)

    if ua.is_bot:
        device_type = "bot"
    elif ua.is_tablet:
        device_type = "tablet"
    elif ua.is_mobile:
        device_type = "mobile"
    elif ua.is_pc:
        device_type = "desktop"
    else:
        device_type = "unknown"

    return ClientInfo(
        browser=declared_browser or _clean(ua.browser.family),
        browser_version=_clean(ua.browser.version_string),
        os=declared_os or _clean(ua.os.family),
        os_version=_clean(ua.os.version_string),
        device_type=device_type,
    )
