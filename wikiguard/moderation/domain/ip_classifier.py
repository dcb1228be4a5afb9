"""Private and local address detection."""

from __future__ import annotations

import ipaddress
from typing import Iterable

_PRIVATE_V4 = tuple(
    ipaddress.IPv4Network(cidr)
    for cidr in (
        "127.0.0.0/8",
        "10.0.0.0/8",
        "172.16.0.0/12",
        "192.168.0.0/16",
        "169.254.0.0/16",
    )
)

_PRIVATE_V6 = tuple(
    ipaddress.IPv6Network(cidr)
    for cidr in (
        "::1/128",
        "fc00::/7",
        "fe80::/10",
        "::ffff:127.0.0.0/104",
    )
)


def _parse(address: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    text = address.strip()
    if "%" in text:
        # drop IPv6 zone index (fe80::1%eth0)
        text = text.split("%", 1)[0]
    try:
        return ipaddress.ip_address(text)
    except ValueError:
        return None


def _within(ip: ipaddress.IPv4Address | ipaddress.IPv6Address, networks: Iterable) -> bool:
    return any(ip in network for network in networks)


def is_private_address(address: str) -> bool:
    """Return True for loopback, RFC1918, link-local and unique-local addresses.

    Anything that does not parse as an IP address is treated as public.
    """

    if not isinstance(address, str):
        return False
    ip = _parse(address)
    if ip is None:
        return False
    if isinstance(ip, ipaddress.IPv4Address):
        return _within(ip, _PRIVATE_V4)
    return _within(ip, _PRIVATE_V6)
