"""Test configuration and fixtures for the portscanner test suite"""

import socket
import sys
import threading
import time
from pathlib import Path

import pytest

# Add project root to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from portscanner.models import PortStatus, ScanOptions, ScanTarget, ScanType
from portscanner.strategies import ProbeOutcome, ScanStrategy


class FakeStrategy(ScanStrategy):
    """Strategy that answers from a table instead of touching the network"""

    scan_type = ScanType.TCP

    def __init__(self, open_ports=(), filtered_ports=(), banners=None, delays=None, errors=None):
        self.open_ports = set(open_ports)
        self.filtered_ports = set(filtered_ports)
        self.banners = banners or {}
        self.delays = delays or {}
        self.errors = errors or {}
        self.calls = []
        self.threads = set()
        self._lock = threading.Lock()

    def probe(self, address, port, timeout, grab_banner=False):
        with self._lock:
            self.calls.append(port)
            self.threads.add(threading.current_thread().name)
        if port in self.delays:
            time.sleep(self.delays[port])
        if port in self.errors:
            raise self.errors[port]
        if port in self.open_ports:
            banner = self.banners.get(port) if grab_banner else None
            return ProbeOutcome(PortStatus.OPEN, banner)
        if port in self.filtered_ports:
            return ProbeOutcome(PortStatus.FILTERED)
        return ProbeOutcome(PortStatus.CLOSED)


@pytest.fixture
def fake_strategy():
    """Factory fixture building FakeStrategy instances"""
    return FakeStrategy


@pytest.fixture
def local_target():
    return ScanTarget(raw_host="localhost", resolved_address="127.0.0.1")


@pytest.fixture
def make_options():
    """Factory for ScanOptions pointing at loopback"""
    def _make(**kwargs):
        kwargs.setdefault("host", "127.0.0.1")
        kwargs.setdefault("timeout", 0.5)
        return ScanOptions(**kwargs)
    return _make


@pytest.fixture
def tcp_listener():
    """
    Start a loopback TCP server on an ephemeral port.
    Yields a function taking an optional greeting; returns the bound port.
    """
    servers = []
    stop = threading.Event()

    def _start(greeting=None, reply_to_newline=None):
        srv = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        srv.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        srv.bind(("127.0.0.1", 0))
        srv.listen(16)
        srv.settimeout(0.1)
        servers.append(srv)

        def _serve():
            while not stop.is_set():
                try:
                    conn, _ = srv.accept()
                except socket.timeout:
                    continue
                except OSError:
                    return
                with conn:
                    try:
                        if greeting is not None:
                            conn.sendall(greeting)
                        elif reply_to_newline is not None:
                            conn.settimeout(1.0)
                            if conn.recv(64):
                                conn.sendall(reply_to_newline)
                        time.sleep(0.05)
                    except OSError:
                        pass

        threading.Thread(target=_serve, daemon=True).start()
        return srv.getsockname()[1]

    yield _start

    stop.set()
    for srv in servers:
        srv.close()


@pytest.fixture
def closed_port():
    """A loopback port that was free a moment ago, so connects are refused"""
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(("127.0.0.1", 0))
    port = s.getsockname()[1]
    s.close()
    return port
