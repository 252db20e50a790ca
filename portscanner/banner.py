from __future__ import annotations

import re
import socket
import time
from typing import Dict, List, Optional, Pattern, Tuple

from .models import BANNER_MAX_LEN, Deadline

UNKNOWN_SERVICE = "Unknown"

_PRINTABLE = re.compile(r"[^\x09\x20-\x7e]")

# Checked in order, first match wins. SMTP must stay ahead of FTP:
# both greet with "220".
SERVICE_SIGNATURES: List[Tuple[str, Pattern[str]]] = [
    (name, re.compile(pattern))
    for name, pattern in (
        ("SSH", r"SSH-"),
        ("HTTP", r"HTTP/"),
        ("SMTP", r"220.*SMTP"),
        ("FTP", r"220"),
        ("POP3", r"\+OK"),
        ("IMAP", r"\* OK"),
        ("MySQL", r"mysql_native_password"),
        ("PostgreSQL", r"FATAL"),
        ("Redis", r"-ERR"),
        ("MongoDB", r"MongoDB"),
        ("Elasticsearch", r"\"cluster_name\""),
    )
]

PORT_SERVICES: Dict[int, str] = {
    20: "FTP-DATA",
    21: "FTP",
    22: "SSH",
    23: "Telnet",
    25: "SMTP",
    53: "DNS",
    80: "HTTP",
    110: "POP3",
    143: "IMAP",
    443: "HTTPS",
    445: "SMB",
    3306: "MySQL",
    3389: "RDP",
    5432: "PostgreSQL",
    5900: "VNC",
    6379: "Redis",
    8080: "HTTP-Proxy",
    8443: "HTTPS-Alt",
    27017: "MongoDB",
}


def _clean_text(s: str, max_len: int = BANNER_MAX_LEN) -> str:
    s = _PRINTABLE.sub("", s)
    s = s.strip()
    if len(s) > max_len:
        return s[: max_len - 3] + "..."
    return s


def _has_line(buf: bytes) -> bool:
    # only newline-terminated lines count; blank ones are skipped
    complete, sep, _ = buf.rpartition(b"\n")
    return bool(sep) and _first_line(complete) is not None


def _recv_line(sock: socket.socket, deadline: Deadline, budget: float, max_bytes: int, buf: bytes = b"") -> bytes:
    """Read until a non-blank line, max_bytes, EOF, or the budget/deadline runs out."""
    stop_at = time.monotonic() + budget
    while len(buf) < max_bytes and not _has_line(buf):
        wait = min(stop_at - time.monotonic(), deadline.remaining())
        if wait <= 0:
            break
        sock.settimeout(wait)
        try:
            chunk = sock.recv(max_bytes - len(buf))
        except OSError:
            break
        if not chunk:
            break
        buf += chunk
    return buf


def _first_line(data: bytes) -> Optional[str]:
    for line in data.decode(errors="ignore").splitlines():
        line = _clean_text(line)
        if line:
            return line
    return None


def read_banner(sock: socket.socket, deadline: Deadline, max_bytes: int = 1024) -> Optional[str]:
    """
    Called only after connect() succeeds, with the deadline the connect used.
    Returns the first line the service sends, or None.
    """
    # 1) give the service half the remaining time to talk first (SSH/FTP/SMTP)
    data = _recv_line(sock, deadline, deadline.remaining() / 2, max_bytes)

    # 2) silent services often answer an empty line (HTTP replies 400)
    if _first_line(data) is None and not deadline.expired:
        try:
            sock.sendall(b"\r\n")
        except OSError:
            return None
        data = _recv_line(sock, deadline, deadline.remaining(), max_bytes, data)

    if not data:
        return None
    return _first_line(data)


def service_from_banner(banner: Optional[str]) -> Optional[str]:
    if not banner:
        return None
    for name, pattern in SERVICE_SIGNATURES:
        if pattern.search(banner):
            return name
    return None


def service_from_port(port: int) -> Optional[str]:
    return PORT_SERVICES.get(port)


def classify(banner: Optional[str], port: int) -> str:
    """Banner evidence first, then the well-known port table, then Unknown."""
    return service_from_banner(banner) or service_from_port(port) or UNKNOWN_SERVICE
