from __future__ import annotations

import errno
import logging
import os
import random
import socket
from dataclasses import dataclass
from typing import Dict, Optional, Type

from .banner import read_banner
from .errors import CapabilityUnavailable, PermissionDenied, ProbeError
from .models import Deadline, PortStatus, ScanType

logger = logging.getLogger(__name__)

# connect() errors that mean "no answer" rather than "refused"
_NO_ANSWER_ERRNOS = {
    errno.ETIMEDOUT,
    errno.EHOSTUNREACH,
    errno.ENETUNREACH,
    getattr(errno, "EHOSTDOWN", errno.EHOSTUNREACH),
}

TCP_SYN_ACK = 0x12
TCP_RST = 0x04


@dataclass(frozen=True)
class ProbeOutcome:
    status: PortStatus
    banner: Optional[str] = None


def _family(address: str) -> int:
    return socket.AF_INET6 if ":" in address else socket.AF_INET


def has_privilege() -> bool:
    geteuid = getattr(os, "geteuid", None)
    return geteuid is not None and geteuid() == 0


class ScanStrategy:
    """
    One way of deciding whether a port is open.
    Subclasses set `scan_type` and implement probe(); registering the class
    in STRATEGIES is all a new scan type needs.
    """

    scan_type: ScanType
    requires_privilege = False

    def check_capability(self) -> None:
        """Raise CapabilityUnavailable if this host cannot run the probe."""
        return None

    def probe(self, address: str, port: int, timeout: float, grab_banner: bool = False) -> ProbeOutcome:
        raise NotImplementedError


class TcpConnectStrategy(ScanStrategy):
    scan_type = ScanType.TCP

    def probe(self, address: str, port: int, timeout: float, grab_banner: bool = False) -> ProbeOutcome:
        deadline = Deadline(timeout)
        try:
            sock = socket.socket(_family(address), socket.SOCK_STREAM)
        except OSError as e:
            raise ProbeError(f"socket() failed for port {port}: {e}") from e

        try:
            sock.settimeout(deadline.remaining())
            try:
                sock.connect((address, port))
            except ConnectionRefusedError:
                return ProbeOutcome(PortStatus.CLOSED)
            except socket.timeout:
                return ProbeOutcome(PortStatus.FILTERED)
            except OSError as e:
                if e.errno in _NO_ANSWER_ERRNOS:
                    return ProbeOutcome(PortStatus.FILTERED)
                raise ProbeError(f"connect() failed for port {port}: {e}") from e

            banner = read_banner(sock, deadline) if grab_banner else None
            return ProbeOutcome(PortStatus.OPEN, banner)
        finally:
            sock.close()


class UdpProbeStrategy(ScanStrategy):
    """
    Sends one empty datagram. Any reply, including the ICMP unreachable the
    kernel reports as ECONNREFUSED on a connected socket, counts as open;
    silence is filtered. A single unacknowledged datagram cannot tell more.
    """

    scan_type = ScanType.UDP
    requires_privilege = True

    def probe(self, address: str, port: int, timeout: float, grab_banner: bool = False) -> ProbeOutcome:
        deadline = Deadline(timeout)
        try:
            sock = socket.socket(_family(address), socket.SOCK_DGRAM)
        except OSError as e:
            raise ProbeError(f"socket() failed for port {port}: {e}") from e

        try:
            sock.settimeout(deadline.remaining())
            sock.connect((address, port))
            sock.send(b"")
            sock.recv(1024)
            return ProbeOutcome(PortStatus.OPEN)
        except ConnectionRefusedError:
            return ProbeOutcome(PortStatus.OPEN)
        except socket.timeout:
            return ProbeOutcome(PortStatus.FILTERED)
        except OSError as e:
            if e.errno in _NO_ANSWER_ERRNOS:
                return ProbeOutcome(PortStatus.FILTERED)
            raise ProbeError(f"UDP probe failed for port {port}: {e}") from e
        finally:
            sock.close()


class SemiOpenStrategy(ScanStrategy):
    """
    SYN probe through scapy: SYN/ACK is open (we answer with RST so the
    handshake never completes), RST is closed, silence or ICMP is filtered.
    """

    scan_type = ScanType.SEMI_OPEN
    requires_privilege = True

    def check_capability(self) -> None:
        try:
            # scapy.all loads the platform layer that fills in conf.L3socket
            from scapy.all import conf
        except ImportError as e:
            raise CapabilityUnavailable("Semi-open scanning requires scapy (pip install scapy)") from e

        if conf.L3socket is None:
            raise CapabilityUnavailable("scapy has no layer-3 socket on this platform")
        try:
            l3 = conf.L3socket()
        except Exception as e:
            raise CapabilityUnavailable(f"Cannot open a raw socket for semi-open scanning: {e}") from e
        l3.close()

    def probe(self, address: str, port: int, timeout: float, grab_banner: bool = False) -> ProbeOutcome:
        from scapy.layers.inet import IP, TCP
        from scapy.layers.inet6 import IPv6
        from scapy.sendrecv import send, sr1

        layer = IPv6 if _family(address) == socket.AF_INET6 else IP
        sport = random.randint(1025, 65535)
        syn = layer(dst=address) / TCP(sport=sport, dport=port, flags="S")

        try:
            resp = sr1(syn, timeout=timeout, verbose=0)
        except OSError as e:
            raise ProbeError(f"SYN probe failed for port {port}: {e}") from e

        if resp is None or not resp.haslayer(TCP):
            return ProbeOutcome(PortStatus.FILTERED)

        flags = int(resp[TCP].flags)
        if flags & TCP_SYN_ACK == TCP_SYN_ACK:
            rst = layer(dst=address) / TCP(sport=sport, dport=port, flags="R", seq=resp[TCP].ack)
            try:
                send(rst, verbose=0)
            except OSError as e:
                logger.debug("RST to %s:%s failed: %s", address, port, e)
            return ProbeOutcome(PortStatus.OPEN)
        if flags & TCP_RST:
            return ProbeOutcome(PortStatus.CLOSED)
        return ProbeOutcome(PortStatus.FILTERED)


STRATEGIES: Dict[ScanType, Type[ScanStrategy]] = {
    ScanType.TCP: TcpConnectStrategy,
    ScanType.UDP: UdpProbeStrategy,
    ScanType.SEMI_OPEN: SemiOpenStrategy,
}


def get_strategy(scan_type: ScanType) -> ScanStrategy:
    return STRATEGIES[ScanType.parse(scan_type)]()


def preflight(strategy: ScanStrategy) -> None:
    """
    Runs once before any job is created.
    Privilege is checked first so a non-root UDP/SYN request exits 4, not 3.
    """
    if strategy.requires_privilege and not has_privilege():
        raise PermissionDenied(f"{strategy.scan_type.value.upper()} scanning requires root privileges")
    strategy.check_capability()
