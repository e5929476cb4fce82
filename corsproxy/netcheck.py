# corsproxy/netcheck.py
"""Private-network classification for proxy targets.

``is_private_host`` is a purely textual check: dotted-quad literals are
matched against the non-routable IPv4 prefixes and a couple of well-known
local names are refused. Arbitrary DNS names and IPv6 literals pass it.
``resolves_to_private`` is the optional resolver-backed check layered on top.
"""
import asyncio
import ipaddress
import logging
import re
import socket

logger = logging.getLogger(__name__)

_DOTTED_QUAD = re.compile(r"^(\d{1,3}\.){3}\d{1,3}$")

_PRIVATE_IPV4_PREFIXES = (
    re.compile(r"^10\."),
    re.compile(r"^172\.(1[6-9]|2[0-9]|3[0-1])\."),
    re.compile(r"^192\.168\."),
    re.compile(r"^127\."),
    re.compile(r"^169\.254\."),
    re.compile(r"^0\."),
)

_LOCAL_HOSTNAMES = {"localhost", "0.0.0.0"}

_NUMERIC_LABEL = re.compile(r"^(0[xX][0-9a-fA-F]*|\d+)$")


class InvalidIPv4(ValueError):
    """Host ends in a numeric label but is not a valid IPv4 address."""


def canonical_ipv4(host: str) -> str:
    """Rewrite IPv4 shorthand ("127.1", "0x7f.0.0.1", "2130706433") as dotted-quad.

    Hosts whose last label is not numeric are returned unchanged.
    """
    labels = host.rstrip(".").split(".")
    if not _NUMERIC_LABEL.match(labels[-1]):
        return host
    try:
        return socket.inet_ntoa(socket.inet_aton(host.rstrip(".")))
    except OSError:
        raise InvalidIPv4(host) from None


def is_private_host(hostname: str) -> bool:
    """Return True if the hostname names a loopback/private/link-local target."""
    if _DOTTED_QUAD.match(hostname):
        return any(p.match(hostname) for p in _PRIVATE_IPV4_PREFIXES)
    return hostname.lower() in _LOCAL_HOSTNAMES


def is_private_address(addr: str) -> bool:
    """Classify a resolved address (IPv4 or IPv6, optional zone id)."""
    try:
        ip = ipaddress.ip_address(addr.split("%", 1)[0])
    except ValueError:
        return False
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped:
        ip = ip.ipv4_mapped
    return (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_unspecified
        or ip.is_reserved
    )


async def resolves_to_private(hostname: str) -> bool:
    """Resolve the hostname and report whether any answer is non-routable.

    Lookup failures return False; the transport reports them when it connects.
    """
    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(hostname, None, type=socket.SOCK_STREAM)
    except (socket.gaierror, UnicodeError) as exc:
        logger.info("DNS lookup for %s failed: %s", hostname, exc)
        return False
    addrs = {info[4][0] for info in infos}
    blocked = [a for a in addrs if is_private_address(a)]
    if blocked:
        logger.warning("Host %s resolves to non-routable %s", hostname, ", ".join(sorted(blocked)))
    return bool(blocked)
