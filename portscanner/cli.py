from __future__ import annotations

import argparse
import sys

from .errors import EXIT_OK, ScanError, exit_code_for
from .logger import create_logger
from .models import DEFAULT_PORT_SPEC, DEFAULT_TIMEOUT, DEFAULT_WORKERS, OUTPUT_FORMATS, ScanOptions, ScanResult
from .output import format_row, render, save_report
from .scanner import perform_scan


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="portscanner",
        description="Concurrent TCP/UDP/SYN port scanner with banner grabbing and service detection",
    )
    p.add_argument("host", help="IP address or hostname")
    p.add_argument("-p", "--ports", dest="port_spec", default=DEFAULT_PORT_SPEC,
                   help="Port spec: 80, 1-1000, 80,443,8080, common, all, top-N (default: common)")
    p.add_argument("--all", dest="port_spec", action="store_const", const="all", help="Scan all ports (1-65535)")
    p.add_argument("--common", dest="port_spec", action="store_const", const="common", help="Scan common ports only")
    p.add_argument("--top", type=int, metavar="NUM", help="Scan top NUM most common ports")
    p.add_argument("-t", "--timeout", type=float, default=DEFAULT_TIMEOUT,
                   help=f"Per-port timeout seconds (default: {DEFAULT_TIMEOUT})")
    p.add_argument("-j", "--threads", type=int, default=DEFAULT_WORKERS,
                   help=f"Parallel scanning threads (default: {DEFAULT_WORKERS})")

    kind = p.add_mutually_exclusive_group()
    kind.add_argument("--tcp", dest="scan_type", action="store_const", const="tcp", help="TCP connect scan (default)")
    kind.add_argument("--udp", dest="scan_type", action="store_const", const="udp", help="UDP scan (requires root)")
    kind.add_argument("--stealth", "--syn", dest="scan_type", action="store_const", const="semi-open",
                      help="Semi-open SYN scan (requires root and scapy)")
    p.set_defaults(scan_type="tcp")

    p.add_argument("-b", "--banner", action="store_true", help="Grab service banners (TCP only)")
    p.add_argument("-s", "--service", action="store_true", help="Detect services")
    p.add_argument("-f", "--format", choices=OUTPUT_FORMATS, default="text", help="Output format (default: text)")
    p.add_argument("-o", "--output", help="Save the report to this file instead of stdout")
    p.add_argument("-v", "--verbose", action="store_true", help="Report closed/filtered ports and debug logs")
    p.add_argument("-q", "--quiet", action="store_true", help="Only warnings and errors on stderr")
    p.add_argument("--progress-every", type=int, default=0, help="Log progress every N ports (default: off)")
    return p


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logger = create_logger(verbose=args.verbose, quiet=args.quiet)

    port_spec = f"top-{args.top}" if args.top is not None else args.port_spec

    def show_live(r: ScanResult) -> None:
        if r.is_open:
            logger.info("Open: %s", format_row(r))

    try:
        options = ScanOptions(
            host=args.host,
            port_spec=port_spec,
            scan_type=args.scan_type,
            timeout=args.timeout,
            workers=args.threads,
            grab_banner=args.banner,
            detect_service=args.service,
            verbose=args.verbose,
            output_format=args.format,
            progress_every=args.progress_every,
        )
        report = perform_scan(options, on_result=show_live)
    except ScanError as e:
        logger.error("%s", e)
        return exit_code_for(e)

    if args.output:
        path = save_report(report, args.format, args.output)
        logger.info("Results saved to %s", path)
    else:
        sys.stdout.write(render(report, args.format))

    return EXIT_OK
