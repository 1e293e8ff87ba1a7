"""
Routing Table - Station id to destination endpoint

Keys are lower-cased station ids (first address segment, e.g. "plinko").
Entries are seeded from config at startup and can be replaced at runtime
from the admin surface while messages are being routed.
"""

import logging
import re
import threading
from dataclasses import dataclass
from typing import Dict, Optional

logger = logging.getLogger(__name__)

DEFAULT_STATION_PORT = 58008

_ENDPOINT_RE = re.compile(
    r"^(?P<host>[A-Za-z0-9](?:[A-Za-z0-9.\-]*[A-Za-z0-9])?)(?::(?P<port>\d{1,5}))?$"
)
_DOTTED_QUAD_RE = re.compile(r"^\d+(?:\.\d+){3}$")
_NUMERIC_HOST_RE = re.compile(r"^[\d.]+$")


class EndpointError(ValueError):
    """Endpoint text does not match ip-or-host[:port]."""


@dataclass(frozen=True)
class Endpoint:
    """UDP destination of a station."""
    host: str
    port: int = DEFAULT_STATION_PORT

    @property
    def address(self):
        return (self.host, self.port)

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


def parse_endpoint(text: str, default_port: int = DEFAULT_STATION_PORT) -> Endpoint:
    """
    Parse "host[:port]" into an Endpoint.

    A bare host gets default_port (58008, the station listening port).

    Raises:
        EndpointError: Malformed host, bad IPv4 octet or port out of range
    """
    match = _ENDPOINT_RE.match(text.strip()) if isinstance(text, str) else None
    if not match:
        raise EndpointError(f"Invalid endpoint {text!r}, expected ip-or-host[:port]")

    host = match.group("host")
    if _NUMERIC_HOST_RE.match(host) and not _DOTTED_QUAD_RE.match(host):
        raise EndpointError(f"Invalid IPv4 address {host!r}, expected four octets")
    if _DOTTED_QUAD_RE.match(host) and any(int(octet) > 255 for octet in host.split(".")):
        raise EndpointError(f"Invalid IPv4 address {host!r}")

    port = int(match.group("port")) if match.group("port") else default_port
    if not 0 < port < 65536:
        raise EndpointError(f"Port {port} out of range")
    return Endpoint(host, port)


def normalize_station(station_id: str) -> str:
    return station_id.strip().lower()


class RoutingTable:
    """
    Thread-safe station → endpoint mapping.

    Usage:
        table = RoutingTable()
        table.upsert("Plinko", Endpoint("10.0.0.5"))
        table.lookup("PLINKO")  # Endpoint(host='10.0.0.5', port=58008)
    """

    def __init__(self, entries: Optional[Dict[str, Endpoint]] = None):
        self._entries: Dict[str, Endpoint] = {}
        self._lock = threading.Lock()
        for station_id, endpoint in (entries or {}).items():
            self.upsert(station_id, endpoint)

    def lookup(self, station_id: str) -> Optional[Endpoint]:
        """Return the endpoint for a station, or None if unmapped."""
        key = normalize_station(station_id)
        with self._lock:
            return self._entries.get(key)

    def upsert(self, station_id: str, endpoint: Endpoint) -> None:
        """Insert or overwrite a station's endpoint. Reachability is not checked."""
        key = normalize_station(station_id)
        if not key:
            raise ValueError("Station id must not be empty")
        with self._lock:
            previous = self._entries.get(key)
            self._entries[key] = endpoint
        if previous is not None and previous != endpoint:
            logger.info(f"Route {key}: {previous} → {endpoint}")
        elif previous is None:
            logger.debug(f"Route {key} → {endpoint}")

    def snapshot(self) -> Dict[str, Endpoint]:
        """Copy of all entries in insertion order."""
        with self._lock:
            return dict(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, station_id: str) -> bool:
        return self.lookup(station_id) is not None
