from __future__ import annotations

import threading
from typing import Dict, List

from .models import JobState, ScanReport, ScanResult, ScanTarget, ScanType


class ResultCollector:
    """
    The only structure workers share. Every write goes through add(), which
    appends under one lock and keeps the totals next to the results instead
    of in globals.
    """

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self._results: Dict[int, ScanResult] = {}
        self.states: Dict[int, JobState] = {}
        self.total = 0
        self.open_count = 0

    def track(self, port: int, state: JobState) -> None:
        with self.lock:
            self.states[port] = state

    def add(self, result: ScanResult) -> None:
        with self.lock:
            if result.port in self._results:
                raise ValueError(f"Duplicate result for port {result.port}")
            self._results[result.port] = result
            self.states[result.port] = JobState.COMPLETED
            self.total += 1
            if result.is_open:
                self.open_count += 1

    def has(self, port: int) -> bool:
        with self.lock:
            return port in self._results

    def results(self) -> List[ScanResult]:
        with self.lock:
            return list(self._results.values())

    def __len__(self) -> int:
        with self.lock:
            return len(self._results)


def build_report(
    target: ScanTarget,
    scan_type: ScanType,
    collector: ResultCollector,
    verbose: bool = False,
    started_at: float = 0.0,
    duration: float = 0.0,
) -> ScanReport:
    """
    Orders results by port regardless of completion order.
    Closed/filtered ports are kept only in verbose mode; the counters always
    describe the whole scan.
    """
    ordered = sorted(collector.results(), key=lambda r: r.port)
    if verbose:
        kept = ordered
    else:
        kept = [r for r in ordered if r.is_open]

    return ScanReport(
        target=target,
        scan_type=scan_type,
        total_ports=collector.total,
        open_ports=collector.open_count,
        results=tuple(kept),
        verbose=verbose,
        started_at=started_at,
        duration=duration,
    )
