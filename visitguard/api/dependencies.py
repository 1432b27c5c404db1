"""
API Dependencies

Client IP extraction for requests arriving through CDNs and reverse
proxies.
"""

from fastapi import Request

from ..resolvers import normalize_ip, parse_ip

# Checked in order; the first header holding a valid address wins
IP_HEADERS = (
    "cf-connecting-ip",
    "x-forwarded-for",
    "x-real-ip",
    "x-client-ip",
)

FALLBACK_IP = "127.0.0.1"


def extract_client_ip(headers, peer: str | None = None) -> str:
    """
    Pick the visitor's IP from proxy headers, then the socket peer.

    x-forwarded-for may list several hops; the left-most valid entry is
    the original client.
    """
    for header in IP_HEADERS:
        value = headers.get(header)
        if not value:
            continue
        for candidate in value.split(","):
            if parse_ip(candidate) is not None:
                return normalize_ip(candidate)

    if peer and parse_ip(peer) is not None:
        return normalize_ip(peer)
    return FALLBACK_IP


def get_client_ip(request: Request) -> str:
    """FastAPI dependency returning the caller's IP."""
    peer = request.client.host if request.client else None
    return extract_client_ip(request.headers, peer)
