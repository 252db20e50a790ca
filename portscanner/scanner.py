from __future__ import annotations

import logging
import queue
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional

from .banner import classify
from .errors import ProbeError
from .logger import log_event
from .models import JobState, PortStatus, ScanJob, ScanOptions, ScanReport, ScanResult, ScanTarget, ScanType
from .ports import parse_ports
from .report import ResultCollector, build_report
from .strategies import ScanStrategy, get_strategy, preflight
from .targets import resolve_target

logger = logging.getLogger(__name__)

# at or below this many jobs a pool costs more than it saves
SEQUENTIAL_THRESHOLD = 10

ResultCallback = Callable[[ScanResult], None]


def effective_workers(requested: int, job_count: int) -> int:
    return max(1, min(requested, job_count))


def build_jobs(ports: List[int], scan_type: ScanType) -> List[ScanJob]:
    seen = set()
    jobs: List[ScanJob] = []
    for p in ports:
        if p in seen:
            continue
        seen.add(p)
        jobs.append(ScanJob(port=p, scan_type=scan_type))
    return jobs


def scan_port(target: ScanTarget, job: ScanJob, strategy: ScanStrategy, options: ScanOptions) -> ScanResult:
    start = time.perf_counter()
    grab = options.grab_banner and job.scan_type is ScanType.TCP
    try:
        outcome = strategy.probe(target.resolved_address, job.port, options.timeout, grab_banner=grab)
    except ProbeError as e:
        logger.debug("Port %d: %s", job.port, e)
        return ScanResult(
            port=job.port,
            status=PortStatus.CLOSED,
            latency=round(time.perf_counter() - start, 4),
        )
    elapsed = time.perf_counter() - start

    if outcome.status is not PortStatus.OPEN:
        return ScanResult(port=job.port, status=outcome.status, latency=round(elapsed, 4))

    service = classify(outcome.banner, job.port) if options.detect_service else None
    return ScanResult(
        port=job.port,
        status=PortStatus.OPEN,
        service=service,
        banner=outcome.banner,
        latency=round(elapsed, 4),
    )


class ScanEngine:
    """
    Bounded worker pool: all jobs go into one queue up front, then
    min(workers, jobs) threads pull one job at a time until it is empty.
    Each job is attempted once and always ends with exactly one result.
    """

    def __init__(
        self,
        target: ScanTarget,
        strategy: ScanStrategy,
        options: ScanOptions,
        on_result: Optional[ResultCallback] = None,
    ):
        self.target = target
        self.strategy = strategy
        self.options = options
        self.on_result = on_result
        self.worker_count = 0
        self._total = 0
        self._start = 0.0

    def run(self, jobs: List[ScanJob]) -> ResultCollector:
        collector = ResultCollector()
        for job in jobs:
            collector.track(job.port, JobState.PENDING)

        self._total = len(jobs)
        self._start = time.perf_counter()
        self.worker_count = effective_workers(self.options.workers, len(jobs))

        pending: "queue.Queue[ScanJob]" = queue.Queue()
        for job in jobs:
            pending.put(job)

        if len(jobs) <= SEQUENTIAL_THRESHOLD or self.worker_count == 1:
            self.worker_count = 1
            while not pending.empty():
                try:
                    self._worker(pending, collector)
                except Exception as exc:
                    logger.error("Scan worker stopped: %s", exc)
        else:
            self._run_pool(pending, collector)

        # a worker that died mid-job leaves its job without a result
        for job in jobs:
            if not collector.has(job.port):
                logger.warning("Port %d produced no result; recording as closed", job.port)
                collector.add(ScanResult(port=job.port, status=PortStatus.CLOSED))
        return collector

    def _run_pool(self, pending: "queue.Queue[ScanJob]", collector: ResultCollector) -> None:
        with ThreadPoolExecutor(max_workers=self.worker_count, thread_name_prefix="scan-worker") as pool:
            futures = [pool.submit(self._worker, pending, collector) for _ in range(self.worker_count)]
            for fut in as_completed(futures):
                exc = fut.exception()
                if exc is not None:
                    logger.error("Scan worker stopped: %s", exc)

    def _worker(self, pending: "queue.Queue[ScanJob]", collector: ResultCollector) -> None:
        while True:
            try:
                job = pending.get_nowait()
            except queue.Empty:
                return
            self._run_job(job, collector)

    def _run_job(self, job: ScanJob, collector: ResultCollector) -> None:
        collector.track(job.port, JobState.IN_PROGRESS)
        try:
            result = scan_port(self.target, job, self.strategy, self.options)
        except Exception as exc:
            logger.warning("Unexpected error scanning port %d: %s", job.port, exc)
            logger.debug("Traceback for port %d", job.port, exc_info=True)
            result = ScanResult(port=job.port, status=PortStatus.CLOSED)
        collector.add(result)
        self._report_progress(collector)
        if self.on_result is not None:
            try:
                self.on_result(result)
            except Exception as exc:
                logger.warning("Result callback failed for port %d: %s", job.port, exc)

    def _report_progress(self, collector: ResultCollector) -> None:
        every = self.options.progress_every
        if every <= 0:
            return
        scanned = len(collector)
        if scanned % every == 0 or scanned == self._total:
            elapsed = time.perf_counter() - self._start
            rate = scanned / elapsed if elapsed > 0 else 0.0
            logger.info("Scanned %d/%d | open=%d | %.0f scans/s", scanned, self._total, collector.open_count, rate)


def perform_scan(
    options: ScanOptions,
    strategy: Optional[ScanStrategy] = None,
    on_result: Optional[ResultCallback] = None,
) -> ScanReport:
    """
    Resolve, parse, pre-flight, scan, aggregate.
    Anything raised before the engine starts aborts the whole scan; nothing
    raised inside a job reaches the caller.
    """
    started_at = time.time()
    start = time.perf_counter()

    target = resolve_target(options.host)
    ports = parse_ports(options.port_spec)
    if strategy is None:
        strategy = get_strategy(options.scan_type)
    preflight(strategy)

    jobs = build_jobs(ports, strategy.scan_type)
    engine = ScanEngine(target, strategy, options, on_result=on_result)
    log_event(logger, "scan_started", {
        "host": target.raw_host,
        "address": target.resolved_address,
        "scan_type": strategy.scan_type.value,
        "ports": len(jobs),
        "workers": effective_workers(options.workers, len(jobs)),
        "timeout": options.timeout,
    })

    collector = engine.run(jobs)
    report = build_report(
        target,
        strategy.scan_type,
        collector,
        verbose=options.verbose,
        started_at=started_at,
        duration=round(time.perf_counter() - start, 3),
    )
    log_event(logger, "scan_completed", {
        "host": target.raw_host,
        "total_ports": report.total_ports,
        "open_ports": report.open_ports,
        "duration": report.duration,
    })
    return report
