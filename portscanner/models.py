from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from .errors import InvalidArgument

DEFAULT_PORT_SPEC = "common"
DEFAULT_TIMEOUT = 2.0
DEFAULT_WORKERS = 50
BANNER_MAX_LEN = 256
OUTPUT_FORMATS = ("text", "json", "csv", "xml")


class ScanType(str, Enum):
    TCP = "tcp"
    UDP = "udp"
    SEMI_OPEN = "semi-open"

    @classmethod
    def parse(cls, value: "str | ScanType") -> "ScanType":
        if isinstance(value, ScanType):
            return value
        key = str(value).strip().lower()
        # accept the common syn/stealth aliases
        if key in ("syn", "stealth", "semi_open", "semiopen"):
            return cls.SEMI_OPEN
        try:
            return cls(key)
        except ValueError:
            raise InvalidArgument(f"Unsupported scan type: {value}") from None


class PortStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    FILTERED = "filtered"


class JobState(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


@dataclass(frozen=True)
class ScanTarget:
    raw_host: str
    resolved_address: str


@dataclass(frozen=True)
class ScanJob:
    port: int
    scan_type: ScanType


@dataclass(frozen=True)
class ScanResult:
    port: int
    status: PortStatus
    service: Optional[str] = None
    banner: Optional[str] = None
    latency: float = 0.0

    @property
    def is_open(self) -> bool:
        return self.status is PortStatus.OPEN


@dataclass(frozen=True)
class ScanReport:
    target: ScanTarget
    scan_type: ScanType
    total_ports: int
    open_ports: int
    results: Tuple[ScanResult, ...]
    verbose: bool = False
    started_at: float = 0.0
    duration: float = 0.0


class Deadline:
    """
    One monotonic deadline shared by every blocking step of a probe
    (connect, then banner read), so the whole job is bounded by `timeout`.
    """

    def __init__(self, timeout: float):
        self.timeout = timeout
        self._expires = time.monotonic() + timeout

    def remaining(self) -> float:
        return max(0.0, self._expires - time.monotonic())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0.0


@dataclass
class ScanOptions:
    host: str
    port_spec: str = DEFAULT_PORT_SPEC
    scan_type: ScanType = ScanType.TCP
    timeout: float = DEFAULT_TIMEOUT
    workers: int = DEFAULT_WORKERS
    grab_banner: bool = False
    detect_service: bool = False
    verbose: bool = False
    output_format: str = "text"
    progress_every: int = field(default=0, repr=False)

    def __post_init__(self) -> None:
        self.scan_type = ScanType.parse(self.scan_type)
        if self.timeout is None or self.timeout <= 0:
            raise InvalidArgument(f"Timeout must be positive, got {self.timeout}")
        if self.workers is None or self.workers < 1:
            raise InvalidArgument(f"Worker count must be >= 1, got {self.workers}")
        self.output_format = (self.output_format or "text").lower()
        if self.output_format not in OUTPUT_FORMATS:
            raise InvalidArgument(f"Unsupported output format: {self.output_format}")
