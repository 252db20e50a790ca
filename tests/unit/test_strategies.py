"""Tests for portscanner/strategies.py"""

import socket
import subprocess
import sys
import textwrap
import threading
import types
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from portscanner.errors import CapabilityUnavailable, PermissionDenied, ProbeError
from portscanner.models import PortStatus, ScanType
from portscanner.strategies import (
    STRATEGIES,
    SemiOpenStrategy,
    TcpConnectStrategy,
    UdpProbeStrategy,
    get_strategy,
    has_privilege,
    preflight,
)

PROJECT_ROOT = Path(__file__).parent.parent.parent


class TestRegistry:
    """Test cases for scan-type dispatch"""

    def test_every_scan_type_has_a_strategy(self):
        assert set(STRATEGIES) == set(ScanType)

    def test_get_strategy(self):
        assert isinstance(get_strategy(ScanType.TCP), TcpConnectStrategy)
        assert isinstance(get_strategy("udp"), UdpProbeStrategy)
        assert isinstance(get_strategy("syn"), SemiOpenStrategy)


class TestPreflight:
    """Test cases for privilege and capability checks"""

    def test_has_privilege_uses_euid(self):
        with patch("os.geteuid", return_value=0, create=True):
            assert has_privilege() is True
        with patch("os.geteuid", return_value=1000, create=True):
            assert has_privilege() is False

    @pytest.mark.parametrize("strategy_cls", [UdpProbeStrategy, SemiOpenStrategy])
    def test_privileged_types_rejected_without_root(self, strategy_cls):
        with patch("portscanner.strategies.has_privilege", return_value=False):
            with pytest.raises(PermissionDenied) as exc:
                preflight(strategy_cls())
        assert exc.value.exit_code == 4

    def test_tcp_needs_no_privilege(self):
        with patch("portscanner.strategies.has_privilege", return_value=False):
            preflight(TcpConnectStrategy())

    def test_semi_open_without_scapy(self):
        with patch("portscanner.strategies.has_privilege", return_value=True), \
             patch.dict(sys.modules, {"scapy": None, "scapy.all": None}):
            with pytest.raises(CapabilityUnavailable) as exc:
                preflight(SemiOpenStrategy())
        assert exc.value.exit_code == 3

    def test_semi_open_without_raw_socket(self):
        conf = Mock()
        conf.L3socket.side_effect = PermissionError(1, "Operation not permitted")
        fake_modules = {
            "scapy": types.ModuleType("scapy"),
            "scapy.all": types.SimpleNamespace(conf=conf),
        }
        with patch("portscanner.strategies.has_privilege", return_value=True), \
             patch.dict(sys.modules, fake_modules):
            with pytest.raises(CapabilityUnavailable):
                preflight(SemiOpenStrategy())

    def test_semi_open_any_socket_failure_is_unavailable(self):
        conf = Mock()
        conf.L3socket.side_effect = TypeError("'NoneType' object is not callable")
        fake_modules = {
            "scapy": types.ModuleType("scapy"),
            "scapy.all": types.SimpleNamespace(conf=conf),
        }
        with patch("portscanner.strategies.has_privilege", return_value=True), \
             patch.dict(sys.modules, fake_modules):
            with pytest.raises(CapabilityUnavailable):
                preflight(SemiOpenStrategy())

    def test_semi_open_without_l3_socket_class(self):
        fake_modules = {
            "scapy": types.ModuleType("scapy"),
            "scapy.all": types.SimpleNamespace(conf=types.SimpleNamespace(L3socket=None)),
        }
        with patch("portscanner.strategies.has_privilege", return_value=True), \
             patch.dict(sys.modules, fake_modules):
            with pytest.raises(CapabilityUnavailable):
                preflight(SemiOpenStrategy())

    def test_semi_open_capability_ok(self):
        l3 = Mock()
        conf = Mock()
        conf.L3socket.return_value = l3
        fake_modules = {
            "scapy": types.ModuleType("scapy"),
            "scapy.all": types.SimpleNamespace(conf=conf),
        }
        with patch("portscanner.strategies.has_privilege", return_value=True), \
             patch.dict(sys.modules, fake_modules):
            preflight(SemiOpenStrategy())
        l3.close.assert_called_once()

    def test_semi_open_check_with_real_scapy(self):
        """A fresh interpreter either opens the raw socket or reports it unavailable"""
        pytest.importorskip("scapy.all")
        code = textwrap.dedent("""
            from portscanner.errors import CapabilityUnavailable
            from portscanner.strategies import SemiOpenStrategy
            try:
                SemiOpenStrategy().check_capability()
            except CapabilityUnavailable:
                print("unavailable")
            else:
                print("ok")
        """)
        proc = subprocess.run(
            [sys.executable, "-c", code],
            capture_output=True,
            text=True,
            timeout=120,
            cwd=str(PROJECT_ROOT),
        )
        assert proc.returncode == 0, proc.stderr
        assert proc.stdout.strip().splitlines()[-1] in ("ok", "unavailable")


class TestTcpConnectStrategy:
    """Test cases for full-handshake probing"""

    def test_open_port(self, tcp_listener):
        port = tcp_listener()
        outcome = TcpConnectStrategy().probe("127.0.0.1", port, 1.0)
        assert outcome.status is PortStatus.OPEN
        assert outcome.banner is None

    def test_open_port_with_banner(self, tcp_listener):
        port = tcp_listener(greeting=b"SSH-2.0-OpenSSH_9.6\r\n")
        outcome = TcpConnectStrategy().probe("127.0.0.1", port, 1.0, grab_banner=True)
        assert outcome.status is PortStatus.OPEN
        assert outcome.banner == "SSH-2.0-OpenSSH_9.6"

    def test_refused_port_is_closed(self, closed_port):
        outcome = TcpConnectStrategy().probe("127.0.0.1", closed_port, 1.0)
        assert outcome.status is PortStatus.CLOSED

    def test_timeout_is_filtered(self):
        sock = Mock()
        sock.connect.side_effect = socket.timeout("timed out")
        with patch("socket.socket", return_value=sock):
            outcome = TcpConnectStrategy().probe("192.0.2.1", 80, 0.1)
        assert outcome.status is PortStatus.FILTERED
        sock.close.assert_called_once()

    def test_unreachable_is_filtered(self):
        import errno
        sock = Mock()
        sock.connect.side_effect = OSError(errno.EHOSTUNREACH, "No route to host")
        with patch("socket.socket", return_value=sock):
            outcome = TcpConnectStrategy().probe("192.0.2.1", 80, 0.1)
        assert outcome.status is PortStatus.FILTERED

    def test_unexpected_os_error_raises_probe_error(self):
        import errno
        sock = Mock()
        sock.connect.side_effect = OSError(errno.EMFILE, "Too many open files")
        with patch("socket.socket", return_value=sock):
            with pytest.raises(ProbeError):
                TcpConnectStrategy().probe("192.0.2.1", 80, 0.1)
        sock.close.assert_called_once()


class TestUdpProbeStrategy:
    """Test cases for single-datagram probing"""

    def test_reply_is_open(self):
        srv = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        srv.bind(("127.0.0.1", 0))
        port = srv.getsockname()[1]

        def _echo():
            srv.settimeout(2.0)
            try:
                _, addr = srv.recvfrom(64)
                srv.sendto(b"pong", addr)
            except OSError:
                pass

        t = threading.Thread(target=_echo, daemon=True)
        t.start()
        try:
            outcome = UdpProbeStrategy().probe("127.0.0.1", port, 1.0)
            assert outcome.status is PortStatus.OPEN
        finally:
            t.join(2.0)
            srv.close()

    def test_icmp_unreachable_counts_as_response(self):
        sock = Mock()
        sock.recv.side_effect = ConnectionRefusedError(111, "Connection refused")
        with patch("socket.socket", return_value=sock):
            outcome = UdpProbeStrategy().probe("127.0.0.1", 9, 0.5)
        assert outcome.status is PortStatus.OPEN

    def test_silence_is_filtered(self):
        srv = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        srv.bind(("127.0.0.1", 0))
        port = srv.getsockname()[1]
        try:
            outcome = UdpProbeStrategy().probe("127.0.0.1", port, 0.2)
            assert outcome.status is PortStatus.FILTERED
        finally:
            srv.close()


class TestSemiOpenStrategy:
    """Test cases for SYN probing through scapy"""

    def _probe_with_reply(self, reply):
        pytest.importorskip("scapy.all")
        with patch("scapy.sendrecv.sr1", return_value=reply) as mock_sr1, \
             patch("scapy.sendrecv.send") as mock_send:
            outcome = SemiOpenStrategy().probe("192.0.2.10", 443, 0.5)
        return outcome, mock_sr1, mock_send

    def test_syn_ack_is_open_and_reset(self):
        pytest.importorskip("scapy.all")
        from scapy.layers.inet import IP, TCP
        reply = IP(src="192.0.2.10") / TCP(sport=443, flags="SA", ack=1001)
        outcome, mock_sr1, mock_send = self._probe_with_reply(reply)
        assert outcome.status is PortStatus.OPEN
        sent = mock_send.call_args[0][0]
        assert "R" in str(sent[TCP].flags)
        assert sent[TCP].seq == 1001

    def test_rst_is_closed(self):
        pytest.importorskip("scapy.all")
        from scapy.layers.inet import IP, TCP
        reply = IP(src="192.0.2.10") / TCP(sport=443, flags="RA")
        outcome, _, mock_send = self._probe_with_reply(reply)
        assert outcome.status is PortStatus.CLOSED
        mock_send.assert_not_called()

    def test_no_answer_is_filtered(self):
        outcome, _, _ = self._probe_with_reply(None)
        assert outcome.status is PortStatus.FILTERED

    def test_icmp_is_filtered(self):
        pytest.importorskip("scapy.all")
        from scapy.layers.inet import ICMP, IP
        reply = IP(src="192.0.2.1") / ICMP(type=3, code=13)
        outcome, _, _ = self._probe_with_reply(reply)
        assert outcome.status is PortStatus.FILTERED
