"""
Traffic classification.

Decides whether a visit came from the tracked site itself (internal
navigation), from another site (external) or from nowhere (direct), and
whether an external referrer is a search engine or social network.
"""

from typing import Optional
from urllib.parse import urlparse

from ..schemas import VisitType

SEARCH_ENGINES = ("google", "bing", "yahoo", "duckduckgo", "baidu", "yandex")
SOCIAL_NETWORKS = (
    "facebook", "twitter", "linkedin", "instagram", "youtube",
    "tiktok", "pinterest", "reddit",
)


def host_of(value: Optional[str]) -> str:
    """Hostname of a URL or bare host, lowercased, without a leading www."""
    if not value:
        return ""
    value = value.strip()
    if "://" not in value:
        value = f"https://{value}"
    try:
        host = (urlparse(value).hostname or "").lower()
    except ValueError:
        # Malformed netloc such as an unclosed IPv6 bracket
        return ""
    return host[4:] if host.startswith("www.") else host


def classify_visit(referrer: Optional[str], website: str, domain: Optional[str] = None) -> VisitType:
    """
    Classify a visit by its referrer.

    The referrer counts as internal when its host matches the host the
    snippet reported or the domain registered for the website.
    """
    referrer_host = host_of(referrer)
    if not referrer_host:
        return VisitType.DIRECT

    site_hosts = {host_of(website), host_of(domain)} - {""}
    if referrer_host in site_hosts:
        return VisitType.INTERNAL
    return VisitType.EXTERNAL


def traffic_source(referrer: Optional[str]) -> Optional[str]:
    """'search' or 'social' for a recognised referrer, else None."""
    host = host_of(referrer)
    if not host:
        return None
    # Match whole labels so bingo-hall.com is not bing
    labels = set(host.split(".")[:-1])
    if labels.intersection(SEARCH_ENGINES):
        return "search"
    if labels.intersection(SOCIAL_NETWORKS):
        return "social"
    # t.co is twitter's link shortener
    if host == "t.co":
        return "social"
    return None
