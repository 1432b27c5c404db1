"""IP address helpers shared by the resolvers and the API."""

import ipaddress
from typing import Optional, Union

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]


def parse_ip(value: Optional[str]) -> Optional[IPAddress]:
    """Parse an IP string, unwrapping IPv4-mapped IPv6 (::ffff:a.b.c.d)."""
    if not value:
        return None
    try:
        address = ipaddress.ip_address(value.strip())
    except ValueError:
        return None
    if isinstance(address, ipaddress.IPv6Address) and address.ipv4_mapped:
        return address.ipv4_mapped
    return address


def is_valid_ip(value: Optional[str]) -> bool:
    return parse_ip(value) is not None


def is_local_address(value: Optional[str]) -> bool:
    """True for private, loopback, link-local, reserved and unspecified addresses."""
    address = parse_ip(value)
    if address is None:
        return False
    return (
        address.is_private
        or address.is_loopback
        or address.is_link_local
        or address.is_reserved
        or address.is_unspecified
    )


def normalize_ip(value: str) -> str:
    address = parse_ip(value)
    return str(address) if address is not None else value.strip()


def ip_version(value: str) -> str:
    address = parse_ip(value)
    if address is None:
        return "unknown"
    return f"IPv{address.version}"
