from __future__ import annotations

import ipaddress
import logging
import socket
from typing import List, Tuple

from .errors import UnresolvableHost
from .models import ScanTarget

logger = logging.getLogger(__name__)


def _pick_address(infos: List[Tuple]) -> str:
    # prefer IPv4 when a name has both families
    for family, _, _, _, sockaddr in infos:
        if family == socket.AF_INET:
            return sockaddr[0]
    return infos[0][4][0]


def resolve_target(host: str) -> ScanTarget:
    """
    Supports:
      - IPv4 / IPv6 literal: "172.20.0.10", "::1" (accepted as-is)
      - Hostname: "webapp" (resolved once, before any probe)
    """
    raw = (host or "").strip()
    if not raw:
        raise UnresolvableHost("Empty target")

    try:
        ip = ipaddress.ip_address(raw.strip("[]"))
        return ScanTarget(raw_host=raw, resolved_address=str(ip))
    except ValueError:
        pass

    try:
        infos = socket.getaddrinfo(raw, None, proto=socket.IPPROTO_TCP)
    except (socket.gaierror, UnicodeError) as e:
        raise UnresolvableHost(f"Could not resolve target '{raw}': {e}") from e
    if not infos:
        raise UnresolvableHost(f"Could not resolve target '{raw}'")

    address = _pick_address(infos)
    logger.debug("Resolved %s -> %s", raw, address)
    return ScanTarget(raw_host=raw, resolved_address=address)
