from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Tuple, Union

from .errors import InvalidPortSpec

MIN_PORT = 1
MAX_PORT = 65535

COMMON_PORTS: Tuple[int, ...] = (
    20, 21, 22, 23, 25, 53, 80, 110, 111, 135, 139, 143,
    443, 445, 993, 995, 1723, 3306, 3389, 5900, 8080, 8443, 8888,
)

# Ranked by how often the port is found open in the wild.
TOP_PORTS: Tuple[int, ...] = (
    7, 9, 13, 21, 22, 23, 25, 26, 37, 53, 79, 80, 81, 88, 106, 110, 111, 113, 119,
    135, 139, 143, 144, 179, 199, 389, 427, 443, 444, 445, 465, 513, 514, 515,
    543, 544, 548, 554, 587, 631, 646, 873, 990, 993, 995, 1025, 1026, 1027,
    1028, 1029, 1110, 1433, 1720, 1723, 1755, 1900, 2000, 2001, 2049, 2121,
    2717, 3000, 3128, 3306, 3389, 3986, 4899, 5000, 5009, 5051, 5060, 5101,
    5190, 5357, 5432, 5631, 5666, 5800, 5900, 6000, 6001, 6646, 7000, 7001,
    7002, 7003, 7004, 7005, 7006, 7007, 7008, 7009, 7100, 7103, 7106, 7200,
    7201, 7402, 7435, 7443, 7496, 7512, 7625, 7627, 7676, 7741, 7777, 7778,
    7800, 7911, 7920, 7921, 7999, 8000, 8001, 8002, 8007, 8008, 8009, 8010,
    8011, 8021, 8022, 8031, 8042, 8045, 8080, 8081, 8082, 8083, 8084, 8085,
    8086, 8087, 8088, 8089, 8090, 8093, 8099, 8100, 8180, 8181, 8192, 8193,
    8194, 8200, 8222, 8254, 8290, 8291, 8292, 8300, 8333, 8383, 8400, 8402,
    8443, 8500, 8600, 8649, 8651, 8652, 8654, 8701, 8800, 8873, 8888, 8899,
    8994, 9000, 9001, 9002, 9003, 9009, 9010, 9011, 9040, 9050, 9071, 9080,
    9081, 9090, 9091, 9099, 9100, 9101, 9102, 9103, 9110, 9111, 9200, 9207,
    9220, 9290, 9415, 9418, 9485, 9500, 9502, 9503, 9535, 9575, 9593, 9594,
    9595, 9618, 9666, 9876, 9877, 9878, 9898, 9900, 9917, 9929, 9943, 9944,
    9968, 9998, 9999, 10000, 10001, 10002, 10003, 10004, 10009, 10010,
    10012, 10024, 10025, 10082, 10180, 10215, 10243, 10566, 10616, 10617,
    10621, 10626, 10628, 10629, 10778, 11110, 11111, 11967, 12000, 12174,
    12265, 12345, 13456, 13722, 13782, 13783, 14000, 14238, 14441, 14442,
    15000, 15002, 15003, 15004, 15660, 15742, 16000, 16001, 16012, 16016,
    16018, 16080, 16113, 16992, 16993, 17877, 17988, 18040, 18101, 18988,
    19101, 19283, 19315, 19350, 19780, 19801, 19842, 20000, 20005, 20031,
    20221, 20222, 20828, 21571, 22939, 23502, 24444, 24800, 25734, 25735,
    26214, 27000, 27352, 27353, 27355, 27356, 27715, 28201, 30000, 30718,
    30951, 31038, 31337, 32768, 32769, 32770, 32771, 32772, 32773, 32774,
    32775, 32776, 32777, 32778, 32779, 32780, 32781, 32782, 32783, 32784,
    32785, 33354, 33899, 34571, 34572, 34573, 35500, 38292, 40193, 40911,
    41511, 42510, 44176, 44442, 44443, 44501, 45100, 48080, 49152, 49153,
    49154, 49155, 49156, 49157, 49158, 49159, 49160, 49161, 49163, 49165,
    49167, 49175, 49176, 49400, 49999, 50000, 50001, 50002, 50003, 50006,
    50300, 50389, 50500, 50636, 50800, 51103, 51493, 52673, 52822, 52848,
    52869, 54045, 54328, 55055, 55056, 55555, 55600, 56737, 56738, 57294,
    57797, 58080, 60020, 60443, 61532, 61900, 62078, 63331, 64623, 64680,
    65000, 65129, 65389,
)

_RANGE = re.compile(r"^(\d+)\s*-\s*(\d+)$")
_TOP = re.compile(r"^top-?(\d+)$")
_LIST = re.compile(r"^\d+(\s*,\s*\d+)*$")


def _check_port(port: int, spec: str) -> int:
    if port < MIN_PORT or port > MAX_PORT:
        raise InvalidPortSpec(f"Port {port} out of range in spec '{spec}'")
    return port


@dataclass(frozen=True)
class Single:
    port: int

    def resolve(self) -> List[int]:
        return [self.port]


@dataclass(frozen=True)
class Range:
    lo: int
    hi: int

    def resolve(self) -> List[int]:
        return list(range(self.lo, min(self.hi, MAX_PORT) + 1))


@dataclass(frozen=True)
class PortList:
    ports: Tuple[int, ...]

    def resolve(self) -> List[int]:
        # dict keeps first-seen order while dropping repeats
        return list(dict.fromkeys(self.ports))


@dataclass(frozen=True)
class NamedSet:
    name: str
    limit: int = 0

    def resolve(self) -> List[int]:
        if self.name == "all":
            return list(range(MIN_PORT, MAX_PORT + 1))
        if self.name == "common":
            return list(COMMON_PORTS)
        return list(TOP_PORTS[: self.limit])


PortSpecification = Union[Single, Range, PortList, NamedSet]


def parse_spec(spec: str) -> PortSpecification:
    """
    Parses a port expression into a PortSpecification.
    Supports:
    - "all": every port 1-65535
    - "common": the curated well-known service ports
    - "top-N": the first N ranked ports (N capped at the list length)
    - Ranges: "1-1024" (upper bound clamped to 65535)
    - Single / comma-separated: "80" or "22,80,443"
    """
    if spec is None:
        raise InvalidPortSpec("Empty port spec")
    token = spec.strip().lower()
    if not token:
        raise InvalidPortSpec("Empty port spec")

    if token in ("all", "common"):
        return NamedSet(token)

    m = _TOP.match(token)
    if m:
        n = int(m.group(1))
        if n < 1:
            raise InvalidPortSpec(f"top-N needs N >= 1: '{spec}'")
        return NamedSet("top", min(n, len(TOP_PORTS)))

    m = _RANGE.match(token)
    if m:
        lo, hi = int(m.group(1)), int(m.group(2))
        if lo > hi:
            raise InvalidPortSpec(f"Invalid port range: {spec}")
        _check_port(lo, spec)
        return Range(lo, hi)

    if _LIST.match(token):
        ports = tuple(_check_port(int(p), spec) for p in token.split(","))
        if len(ports) == 1:
            return Single(ports[0])
        return PortList(ports)

    raise InvalidPortSpec(f"Unrecognised port spec: '{spec}'")


def parse_ports(spec: str) -> List[int]:
    ports = parse_spec(spec).resolve()
    if not ports:
        raise InvalidPortSpec(f"No ports to scan for spec '{spec}'")
    return ports
