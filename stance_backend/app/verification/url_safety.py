from __future__ import annotations

import ipaddress
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

BLOCKED_HOSTNAMES = frozenset(
    {
        "localhost",
        "metadata",
        "metadata.google",
        "metadata.google.internal",
        "169.254.169.254",
    }
)

# 100.64.0.0/10 is carrier-grade NAT; ipaddress does not flag it as private
_CGNAT = ipaddress.ip_network("100.64.0.0/10")


@dataclass(frozen=True)
class UrlCheck:
    valid: bool
    reason: Optional[str] = None


def _blocked_ip(host: str) -> bool:
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        return False
    if isinstance(ip, ipaddress.IPv4Address) and ip in _CGNAT:
        return True
    return ip.is_private or ip.is_loopback or ip.is_link_local or ip.is_unspecified or ip.is_reserved


def validate_url_for_fetch(url: str) -> UrlCheck:
    try:
        parts = urlsplit(url)
    except ValueError:
        return UrlCheck(False, "invalid_url")
    if parts.scheme != "https":
        return UrlCheck(False, "https_required")
    host = (parts.hostname or "").lower()
    if not host:
        return UrlCheck(False, "invalid_url")
    if host in BLOCKED_HOSTNAMES:
        return UrlCheck(False, "blocked_hostname")
    if _blocked_ip(host):
        return UrlCheck(False, "private_address")
    if host.endswith(".localhost") or host.endswith(".local") or host.endswith(".internal"):
        return UrlCheck(False, "local_hostname")
    if host.rsplit(".", 1)[-1].isdigit():
        return UrlCheck(False, "numeric_tld")
    return UrlCheck(True)


__all__ = ["UrlCheck", "validate_url_for_fetch", "BLOCKED_HOSTNAMES"]
