"""Address classification: publicly routable vs. everything else."""

from __future__ import annotations

import ipaddress
import re
from typing import Optional

_NON_INTERNET_V4 = [
    ("private", ipaddress.IPv4Network("10.0.0.0/8")),
    ("private", ipaddress.IPv4Network("172.16.0.0/12")),
    ("private", ipaddress.IPv4Network("192.168.0.0/16")),
    ("loopback", ipaddress.IPv4Network("127.0.0.0/8")),
    ("linklocal", ipaddress.IPv4Network("169.254.0.0/16")),
    ("cgnat", ipaddress.IPv4Network("100.64.0.0/10")),
    ("benchmark", ipaddress.IPv4Network("198.18.0.0/15")),
    ("documentation", ipaddress.IPv4Network("192.0.0.0/24")),
    ("documentation", ipaddress.IPv4Network("192.0.2.0/24")),
    ("documentation", ipaddress.IPv4Network("198.51.100.0/24")),
    ("documentation", ipaddress.IPv4Network("203.0.113.0/24")),
    ("multicast", ipaddress.IPv4Network("224.0.0.0/4")),
]

_NON_INTERNET_V6 = [
    ("linklocal", ipaddress.IPv6Network("fe80::/10")),
    ("ula", ipaddress.IPv6Network("fc00::/7")),
]

_HOST_RE = re.compile(
    r"^(?=.{1,253}$)(?!-)(?:[a-zA-Z0-9-]{1,63}\.)+[a-zA-Z]{2,63}$"
)


def _parse(ip: Optional[str]):
    if not ip:
        return None
    try:
        return ipaddress.ip_address(ip.strip().strip("[]"))
    except ValueError:
        return None


def classify(ip: Optional[str]) -> str:
    """Return a label for *ip*: a non-Internet block name, ``public`` or ``unknown``."""
    addr = _parse(ip)
    if addr is None:
        return "unknown"
    table = _NON_INTERNET_V4 if addr.version == 4 else _NON_INTERNET_V6
    for label, network in table:
        if addr in network:
            return label
    return "public"


def is_non_internet(ip: Optional[str]) -> bool:
    """True when *ip* sits in a private, CGNAT, reserved or multicast block.

    Malformed input is treated as public/unknown and returns False.
    """
    return classify(ip) not in ("public", "unknown")


def looks_like_ip(value: Optional[str]) -> bool:
    return _parse(value) is not None


def is_valid_host(value: Optional[str]) -> bool:
    """Accept an IP literal or a DNS hostname; reject anything else."""
    if not value:
        return False
    value = value.strip()
    if looks_like_ip(value):
        return True
    return bool(_HOST_RE.match(value))
