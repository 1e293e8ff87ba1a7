"""
OSC Router - Score relay from course holes to their display stations

Architecture:
- Single receive port (default 57121), one handler thread per datagram
- Inbound address: /<station>/score <value>
- Outbound address: /score <value>, sent to the station's routed endpoint
- Correlated stations (Mastermind) send two halves that are paired first
- One cached UDP client per destination endpoint until stop()
- Every datagram yields exactly one RouterEvent in the EventLog

Usage:
    router = Router(RouterConfig(routes={"plinko": "10.0.0.5:58008"}))
    router.start()
    router.update_routing("plinko", "10.0.0.99")
    for event in router.get_recent_events():
        print(event.outcome.value, event.message)
    router.stop()
"""

import logging
import socket
import socketserver
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from pythonosc import dispatcher, osc_server, udp_client

from .codec import CodecError, DecodeError, OscArg, OscMessage, decode, to_wire
from .config import RouterConfig
from .correlation import CorrelationStore
from .events import (
    ClearListener,
    EventListener,
    EventLog,
    EventOutcome,
    RouterEvent,
    make_event,
)
from .routing import Endpoint, EndpointError, RoutingTable, parse_endpoint

logger = logging.getLogger(__name__)

SCORE_VERB = "score"
SCORE_ADDRESS = "/score"
TEST_SCORE = 42

POLL_INTERVAL = 0.1
STOP_TIMEOUT = 1.0

WRONG_FORMAT = "Wrong format, expected /[station]/score"
NO_ARGUMENTS = "No score arguments"


class StationClient(udp_client.UDPClient):
    """python-osc UDP client bound to one station endpoint."""

    def __init__(self, endpoint: Endpoint):
        # Resolves the host; raises OSError (gaierror) for unknown names
        super().__init__(endpoint.host, endpoint.port)
        self._endpoint = endpoint

    @property
    def endpoint(self) -> Endpoint:
        return self._endpoint

    def close(self) -> None:
        self._sock.close()

    def __repr__(self) -> str:
        return f"StationClient({self._endpoint})"


ClientFactory = Callable[[Endpoint], Any]


class _DatagramHandler(socketserver.BaseRequestHandler):
    def handle(self):
        data, _sock = self.request
        try:
            self.server.router.handle_datagram(data, self.client_address)
        except Exception:
            logger.exception(f"Unhandled error routing datagram from {self.client_address}")


class _ScoreServer(osc_server.ThreadingOSCUDPServer):
    """
    python-osc threading server with a raw-datagram handler.

    Handler threads are non-daemon so server_close() joins the ones still
    in flight before the client pool is closed.
    """
    daemon_threads = False
    block_on_close = True

    def __init__(self, server_address: Tuple[str, int], router: "Router"):
        self.router = router
        super().__init__(server_address, dispatcher.Dispatcher())
        self.RequestHandlerClass = _DatagramHandler

    def verify_request(self, request, client_address) -> bool:
        # Malformed datagrams still reach the router and become error events
        return True


def _parse_station(address: str) -> Optional[str]:
    """Station id from /<station>/score, lower-cased; None for any other shape."""
    parts = address.lstrip("/").split("/")
    if len(parts) != 2 or parts[1] != SCORE_VERB or not parts[0]:
        return None
    return parts[0].lower()


def _format_source(source: Optional[Tuple[str, int]]) -> str:
    if not source:
        return "unknown"
    return f"{source[0]}:{source[1]}"


class Router:
    """
    OSC score router with live-editable routing.

    - Receives on config.listen_port
    - Resolves /<station>/score through the routing table
    - Pairs split messages for correlated stations
    - Forwards /score to the station endpoint
    """

    def __init__(
        self,
        config: Optional[RouterConfig] = None,
        routing: Optional[RoutingTable] = None,
        events: Optional[EventLog] = None,
        correlation: Optional[CorrelationStore] = None,
        client_factory: ClientFactory = StationClient,
    ):
        self._config = config or RouterConfig()
        self._routing = routing if routing is not None else RoutingTable()
        self._events = events if events is not None else EventLog(self._config.event_log_capacity)
        self._correlation = correlation if correlation is not None else CorrelationStore()
        self._correlated = frozenset(s.lower() for s in self._config.correlated_stations)

        self._server: Optional[_ScoreServer] = None
        self._server_thread: Optional[threading.Thread] = None
        self._server_lock = threading.Lock()
        self._port = self._config.listen_port

        self._client_factory = client_factory
        self._clients: Dict[Endpoint, Any] = {}
        self._clients_lock = threading.Lock()

        for station_id, address in self._config.routes.items():
            try:
                self._routing.upsert(
                    station_id, parse_endpoint(address, self._config.default_station_port)
                )
            except EndpointError as exc:
                logger.warning(f"Skipping seed route for {station_id}: {exc}")

    @property
    def config(self) -> RouterConfig:
        return self._config

    @property
    def routing(self) -> RoutingTable:
        return self._routing

    @property
    def events(self) -> EventLog:
        return self._events

    @property
    def correlation(self) -> CorrelationStore:
        return self._correlation

    @property
    def is_running(self) -> bool:
        return self._server is not None

    @property
    def bound_port(self) -> Optional[int]:
        """Actual listening port (resolves port 0), None when stopped."""
        server = self._server
        if server is None:
            return None
        return server.server_address[1]

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self, port: Optional[int] = None) -> bool:
        """Bind and start serving. Returns True on success; no-op if running."""
        with self._server_lock:
            if self._server is not None:
                logger.info("OSC router already running")
                return True

            listen_port = self._port if port is None else port
            try:
                server = _ScoreServer((self._config.listen_host, listen_port), self)
            except OSError as exc:
                logger.error(f"OSC router failed to bind {self._config.listen_host}:{listen_port}: {exc}")
                return False

            thread = threading.Thread(
                target=server.serve_forever,
                kwargs={"poll_interval": POLL_INTERVAL},
                name="OSCRouterServer",
                daemon=True,
            )
            thread.start()
            self._server = server
            self._server_thread = thread
            self._port = server.server_address[1]

        logger.info(f"OSC router listening on {self._config.listen_host}:{server.server_address[1]}")
        return True

    def stop(self) -> None:
        """Close the listening socket and every cached station client."""
        with self._server_lock:
            server, thread = self._server, self._server_thread
            self._server = None
            self._server_thread = None
            if server is not None:
                logger.info("OSC router stopping...")
                server.shutdown()
                server.server_close()
            if thread is not None:
                thread.join(timeout=STOP_TIMEOUT)
                if thread.is_alive():
                    logger.warning("OSC router server thread did not exit; continuing shutdown")

        self._close_clients()
        if server is not None:
            logger.info("OSC router stopped")

    def restart(self, port: Optional[int] = None, delay: Optional[float] = None) -> bool:
        """Stop, wait for the port to be released, start again."""
        self.stop()
        time.sleep(self._config.restart_delay if delay is None else delay)
        return self.start(port)

    # =========================================================================
    # ADMIN SURFACE
    # =========================================================================

    def update_routing(self, station_id: str, endpoint: Union[Endpoint, str]) -> bool:
        """Replace one route. Malformed endpoint text is rejected and logged."""
        try:
            if not isinstance(endpoint, Endpoint):
                endpoint = parse_endpoint(endpoint, self._config.default_station_port)
            self._routing.upsert(station_id, endpoint)
        except ValueError as exc:
            logger.warning(f"Rejected route update for {station_id!r}: {exc}")
            return False
        logger.info(f"Routing updated: {station_id.lower()} → {endpoint}")
        return True

    def get_status(self) -> Dict[str, Any]:
        with self._clients_lock:
            client_count = len(self._clients)
        return {
            "is_running": self.is_running,
            "cached_client_count": client_count,
            "routing_entry_count": len(self._routing),
            "port": self.bound_port or self._port,
        }

    def get_routing_table(self) -> Dict[str, str]:
        return {station: str(endpoint) for station, endpoint in self._routing.snapshot().items()}

    def get_recent_events(self) -> List[RouterEvent]:
        return self._events.snapshot()

    def clear_event_log(self) -> None:
        self._events.clear()
        logger.info("OSC event log cleared")

    def subscribe(self, on_event: EventListener, on_clear: Optional[ClearListener] = None) -> None:
        self._events.subscribe(on_event, on_clear)

    def unsubscribe(self, on_event: EventListener) -> None:
        self._events.unsubscribe(on_event)

    def get_network_info(self) -> Dict[str, Any]:
        """Address stations should send to."""
        return {
            "server_ip": _local_ip(),
            "listen_host": self._config.listen_host,
            "osc_port": self.bound_port or self._port,
        }

    def send_test(self, station_id: str, value: float = TEST_SCORE) -> bool:
        """Send /score <value> straight to a station's endpoint to check it is reachable."""
        endpoint = self._routing.lookup(station_id)
        if endpoint is None:
            logger.warning(f"No mapping for station '{station_id}'")
            return False
        try:
            self._client_for(endpoint).send(
                to_wire(OscMessage(SCORE_ADDRESS, (OscArg.infer(value),)))
            )
        except (OSError, CodecError) as exc:
            logger.error(f"Test send to {station_id} ({endpoint}) failed: {exc}")
            return False
        logger.info(f"Test score {value} sent to {station_id} ({endpoint})")
        return True

    # =========================================================================
    # MESSAGE HANDLING
    # =========================================================================

    def handle_datagram(self, data: bytes, source: Optional[Tuple[str, int]] = None) -> RouterEvent:
        """
        Route one inbound datagram.

        Never raises for per-message failures; the outcome is in the
        returned event, which is also appended to the event log.
        """
        origin = _format_source(source)
        try:
            message = decode(data)
        except DecodeError as exc:
            return self._emit(origin, EventOutcome.ERROR, error=f"Decode failed: {exc}")

        logger.debug(f"OSC received: {message} from {origin}")
        context: Dict[str, Any] = {"address": message.address, "args": message.args}

        station = _parse_station(message.address)
        if station is None:
            return self._emit(origin, EventOutcome.ERROR, error=WRONG_FORMAT, **context)
        context["station"] = station

        endpoint = self._routing.lookup(station)
        if endpoint is None:
            return self._emit(
                origin, EventOutcome.ERROR, error=f"No mapping for station '{station}'", **context
            )
        context["destination"] = str(endpoint)

        if not message.args:
            return self._emit(origin, EventOutcome.ERROR, error=NO_ARGUMENTS, **context)

        if station in self._correlated:
            pair = self._correlation.deposit(station, message.args[0])
            if pair is None:
                return self._emit(
                    origin,
                    EventOutcome.WAITING,
                    message=f"Waiting for more parts from {station} (got {message.args[0]})",
                    **context,
                )
            outbound = OscMessage(SCORE_ADDRESS, pair.as_args())
        else:
            outbound = OscMessage(SCORE_ADDRESS, (message.args[0],))

        try:
            self._client_for(endpoint).send(to_wire(outbound))
        except (OSError, CodecError) as exc:
            return self._emit(
                origin, EventOutcome.ERROR, error=f"Send to {endpoint} failed: {exc}", **context
            )

        return self._emit(
            origin,
            EventOutcome.FORWARDED,
            sent=outbound,
            message=f"Forwarded {station} score to {endpoint}: {outbound}",
            **context,
        )

    def _emit(self, origin: str, outcome: EventOutcome, **fields: Any) -> RouterEvent:
        if outcome is EventOutcome.ERROR and "message" not in fields:
            fields["message"] = fields["error"]
        event = make_event(origin, outcome, **fields)
        if outcome is EventOutcome.ERROR:
            logger.warning(f"OSC dropped from {origin}: {event.error}")
        else:
            logger.info(f"OSC {outcome.value}: {event.message}")
        self._events.append(event)
        return event

    # =========================================================================
    # CLIENT POOL
    # =========================================================================

    def _client_for(self, endpoint: Endpoint):
        with self._clients_lock:
            client = self._clients.get(endpoint)
            if client is None:
                client = self._client_factory(endpoint)
                self._clients[endpoint] = client
                logger.debug(f"New station client for {endpoint}")
            return client

    def _close_clients(self) -> None:
        with self._clients_lock:
            clients = list(self._clients.values())
            self._clients.clear()
        for client in clients:
            try:
                client.close()
            except OSError as exc:
                logger.error(f"Error closing client {client}: {exc}")


def _local_ip() -> str:
    """Primary LAN address of this host (no packets are sent)."""
    probe = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        probe.connect(("10.255.255.255", 1))
        return probe.getsockname()[0]
    except OSError:
        return "127.0.0.1"
    finally:
        probe.close()
