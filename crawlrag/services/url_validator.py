"""Reject crawl targets before any network activity.

Only literal checks are made (scheme, hostname, IP literal, port); hostnames
are not resolved.
"""

import ipaddress
from urllib.parse import urlsplit

from crawlrag.constants import ALLOWED_URL_SCHEMES, BLOCKED_HOSTNAMES, RESTRICTED_PORTS
from crawlrag.errors import ValidationFailure


def _is_public_ip(host: str) -> bool | None:
    """True/False for IP literals, None when ``host`` is a DNS name."""
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        return None
    if isinstance(ip, ipaddress.IPv6Address) and ip.ipv4_mapped is not None:
        ip = ip.ipv4_mapped
    return not (
        ip.is_private
        or ip.is_loopback
        or ip.is_link_local
        or ip.is_multicast
        or ip.is_reserved
        or ip.is_unspecified
    )


def validate_crawl_url(url: str) -> str:
    """Return ``url`` stripped of surrounding whitespace if it may be crawled.

    Raises:
        ValidationFailure: malformed URL, non-http(s) scheme, internal host or
            restricted port
    """
    candidate = (url or "").strip()
    if not candidate:
        raise ValidationFailure("URL is required")

    try:
        parts = urlsplit(candidate)
        port = parts.port
    except ValueError as e:
        raise ValidationFailure(f"Invalid URL format: {candidate}") from e

    if parts.scheme.lower() not in ALLOWED_URL_SCHEMES:
        raise ValidationFailure(f"Only http and https URLs can be crawled: {candidate}")

    host = (parts.hostname or "").lower()
    if not host:
        raise ValidationFailure(f"URL has no host: {candidate}")

    if host in BLOCKED_HOSTNAMES:
        raise ValidationFailure(f"Host is not allowed: {host}")

    if _is_public_ip(host) is False:
        raise ValidationFailure(f"Private or reserved address is not allowed: {host}")

    if port is not None and port in RESTRICTED_PORTS:
        raise ValidationFailure(f"Port {port} is not allowed")

    return candidate
