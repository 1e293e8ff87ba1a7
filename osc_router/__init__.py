"""
OSC Router - Score relay between course holes and their display stations

Public API:
    Router - UDP listener, per-station dispatch, client pool, admin surface
    RouterConfig / load_config - Listener settings and seed routes (YAML)

    Codec:
        decode / encode - OSC wire format for flat messages (python-osc)
        to_wire - python-osc message ready for a UDP client
        OscMessage, OscArg, ArgType - Decoded message and typed arguments
        DecodeError, EncodeError - Wire format failures

    State:
        RoutingTable, Endpoint, parse_endpoint - Station → host:port
        CorrelationStore, CompletedPair - Split-message pairing (Mastermind)
        EventLog, RouterEvent, EventOutcome - Recent-history audit trail

Usage:
    from osc_router import Router, load_config

    router = Router(load_config())
    router.start()
    router.update_routing("plinko", "10.0.0.5:58008")
    print(router.get_status())
    router.stop()
"""

from .codec import (
    ArgType,
    CodecError,
    DecodeError,
    EncodeError,
    OscArg,
    OscMessage,
    decode,
    encode,
    encode_message,
    to_wire,
)
from .config import STATIONS, RouterConfig, Station, load_config
from .correlation import CompletedPair, CorrelationStore
from .events import EventLog, EventOutcome, RouterEvent
from .router import Router, StationClient
from .routing import Endpoint, EndpointError, RoutingTable, parse_endpoint

__all__ = [
    # Codec
    "ArgType",
    "CodecError",
    "DecodeError",
    "EncodeError",
    "OscArg",
    "OscMessage",
    "decode",
    "encode",
    "encode_message",
    "to_wire",
    # Config
    "STATIONS",
    "RouterConfig",
    "Station",
    "load_config",
    # State
    "CompletedPair",
    "CorrelationStore",
    "Endpoint",
    "EndpointError",
    "EventLog",
    "EventOutcome",
    "RouterEvent",
    "RoutingTable",
    "parse_endpoint",
    # Router
    "Router",
    "StationClient",
]
