from __future__ import annotations

import csv
import io
import json
import time
import xml.etree.ElementTree as ET
from typing import Any, Dict, List

from .errors import InvalidArgument
from .models import ScanReport, ScanResult

SEPARATOR = "-" * 60


def _timestamp(report: ScanReport) -> str:
    ts = report.started_at or time.time()
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(ts))


def format_row(r: ScanResult) -> str:
    line = f"{r.port:<6d} {r.status.value:<10s} {r.service or '':<15s} {r.banner or ''}"
    return line.rstrip()


def to_text(report: ScanReport) -> str:
    lines: List[str] = [
        f"Host: {report.target.raw_host} ({report.target.resolved_address})",
        f"Scan Type: {report.scan_type.value.upper()}",
        f"Ports: {report.total_ports} ports",
        SEPARATOR,
        f"{'PORT':<6s} {'STATE':<10s} {'SERVICE':<15s} BANNER",
        SEPARATOR,
    ]
    lines.extend(format_row(r) for r in report.results)
    lines.append(SEPARATOR)
    lines.append(f"Scan complete: {report.open_ports} open ports found out of {report.total_ports} scanned")
    return "\n".join(lines) + "\n"


def _result_dict(r: ScanResult) -> Dict[str, Any]:
    d: Dict[str, Any] = {"port": r.port, "status": r.status.value}
    if r.service:
        d["service"] = r.service
    if r.banner:
        d["banner"] = r.banner
    d["latency"] = r.latency
    return d


def to_json(report: ScanReport) -> str:
    payload = {
        "host": report.target.raw_host,
        "address": report.target.resolved_address,
        "timestamp": _timestamp(report),
        "scan_type": report.scan_type.value,
        "total_ports": report.total_ports,
        "open_ports": report.open_ports,
        "duration": report.duration,
        "results": [_result_dict(r) for r in report.results],
    }
    return json.dumps(payload, indent=2) + "\n"


def to_csv(report: ScanReport) -> str:
    buf = io.StringIO()
    w = csv.writer(buf, lineterminator="\n")
    w.writerow(["Port", "Status", "Service", "Banner", "Latency"])
    for r in report.results:
        w.writerow([r.port, r.status.value, r.service or "", r.banner or "", r.latency])
    return buf.getvalue()


def to_xml(report: ScanReport) -> str:
    root = ET.Element("portscan")
    ET.SubElement(root, "host").text = report.target.raw_host
    ET.SubElement(root, "address").text = report.target.resolved_address
    ET.SubElement(root, "timestamp").text = _timestamp(report)
    ET.SubElement(root, "scan_type").text = report.scan_type.value

    summary = ET.SubElement(root, "summary")
    ET.SubElement(summary, "total_ports").text = str(report.total_ports)
    ET.SubElement(summary, "open_ports").text = str(report.open_ports)

    ports = ET.SubElement(root, "ports")
    for r in report.results:
        el = ET.SubElement(ports, "port", number=str(r.port), status=r.status.value)
        if r.service:
            ET.SubElement(el, "service").text = r.service
        if r.banner:
            ET.SubElement(el, "banner").text = r.banner

    ET.indent(root, space="  ")
    body = ET.tostring(root, encoding="unicode")
    return '<?xml version="1.0" encoding="UTF-8"?>\n' + body + "\n"


ENCODERS = {
    "text": to_text,
    "json": to_json,
    "csv": to_csv,
    "xml": to_xml,
}


def render(report: ScanReport, fmt: str = "text") -> str:
    try:
        encoder = ENCODERS[fmt.lower()]
    except KeyError:
        raise InvalidArgument(f"Unsupported format: {fmt}") from None
    return encoder(report)


def save_report(report: ScanReport, fmt: str, path: str) -> str:
    data = render(report, fmt)
    newline = "" if fmt.lower() == "csv" else None
    with open(path, "w", encoding="utf-8", newline=newline) as f:
        f.write(data)
    return path
