"""
portscanner
===========

Concurrent multi-protocol port scanning: resolve a target, expand a port
expression, probe every port once with a bounded worker pool (TCP connect,
UDP probe or semi-open SYN), optionally grab banners and classify services,
and encode a port-ordered report as text, JSON, CSV or XML.

The main entry point for library callers is ``portscanner.perform_scan``;
the command line lives in ``portscanner.cli``.
"""

from .errors import (
    CapabilityUnavailable,
    InvalidArgument,
    InvalidPortSpec,
    PermissionDenied,
    ProbeError,
    ScanError,
    UnresolvableHost,
    exit_code_for,
)
from .models import PortStatus, ScanJob, ScanOptions, ScanReport, ScanResult, ScanTarget, ScanType
from .output import render
from .ports import parse_ports, parse_spec
from .scanner import ScanEngine, perform_scan
from .targets import resolve_target

__version__ = "1.0.1"

__all__ = [
    "CapabilityUnavailable",
    "InvalidArgument",
    "InvalidPortSpec",
    "PermissionDenied",
    "PortStatus",
    "ProbeError",
    "ScanEngine",
    "ScanError",
    "ScanJob",
    "ScanOptions",
    "ScanReport",
    "ScanResult",
    "ScanTarget",
    "ScanType",
    "UnresolvableHost",
    "exit_code_for",
    "parse_ports",
    "parse_spec",
    "perform_scan",
    "render",
    "resolve_target",
]
