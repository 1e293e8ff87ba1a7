"""
Router Configuration

Load listener settings and the seed routing table from a YAML file.

Example (~/.config/osc_router/config.yaml):

    router:
      listen_port: 57121
      default_station_port: 58008
    routes:
      plinko: 10.0.0.5:58008
      mastermind: 10.0.0.11
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, Tuple

import yaml

from .routing import DEFAULT_STATION_PORT, EndpointError, parse_endpoint

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "osc_router" / "config.yaml"
DEFAULT_LISTEN_PORT = 57121


@dataclass(frozen=True)
class Station:
    """A hole on the course that reports scores over OSC."""
    name: str
    display_name: str
    correlated: bool = False

    @property
    def station_id(self) -> str:
        return self.name.lower()


STATIONS: Tuple[Station, ...] = (
    Station("Plinko", "Plinko"),
    Station("SpinningTop", "Spinning Top"),
    Station("Haphazard", "Haphazard"),
    Station("Roundhouse", "Roundhouse"),
    Station("HillHop", "Hill Hop"),
    Station("SkiJump", "Ski Jump"),
    Station("Mastermind", "Mastermind", correlated=True),
    Station("Igloo", "Igloo"),
    Station("Octagon", "Octagon"),
    Station("LoopDeLoop", "Loop De Loop"),
    Station("UpAndOver", "Up & Over"),
    Station("Lopside", "Lopsided"),
)


@dataclass
class RouterConfig:
    """Configuration for the OSC score router."""
    listen_host: str = "0.0.0.0"
    listen_port: int = DEFAULT_LISTEN_PORT
    default_station_port: int = DEFAULT_STATION_PORT
    event_log_capacity: int = 100
    restart_delay: float = 1.0
    correlated_stations: Tuple[str, ...] = tuple(
        station.station_id for station in STATIONS if station.correlated
    )
    routes: Dict[str, str] = field(default_factory=dict)


_ROUTER_KEYS = {
    "listen_host": str,
    "listen_port": int,
    "default_station_port": int,
    "event_log_capacity": int,
    "restart_delay": float,
}


def load_config(path: Optional[Path] = None) -> RouterConfig:
    """
    Load router configuration from YAML.

    Args:
        path: File path (default: ~/.config/osc_router/config.yaml)

    Returns:
        RouterConfig; defaults when the file is missing or unreadable.
        Malformed route entries are skipped.
    """
    path = Path(path) if path else DEFAULT_CONFIG_PATH

    if not path.exists():
        logger.info(f"No config file at {path}")
        return RouterConfig()

    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error(f"Failed to load config: {e}")
        return RouterConfig()

    if not isinstance(data, dict):
        logger.error(f"Config at {path} is not a mapping, using defaults")
        return RouterConfig()

    router_section = data.get("router") or {}
    routes_section = data.get("routes") or {}
    if not isinstance(router_section, dict) or not isinstance(routes_section, dict):
        logger.error(f"Config at {path} has malformed sections, using defaults")
        return RouterConfig()

    config = RouterConfig()
    for key, value in router_section.items():
        caster = _ROUTER_KEYS.get(key)
        if key == "correlated_stations":
            # A single station may be written as a plain string
            if isinstance(value, str):
                value = [value]
            if value is not None and not isinstance(value, list):
                logger.warning(f"Invalid value for '{key}': {value!r}")
                continue
            config.correlated_stations = tuple(str(s).lower() for s in value or ())
        elif caster is None:
            logger.warning(f"Unknown router setting '{key}' ignored")
        else:
            try:
                setattr(config, key, caster(value))
            except (TypeError, ValueError):
                logger.warning(f"Invalid value for '{key}': {value!r}")

    for station_id, address in routes_section.items():
        try:
            endpoint = parse_endpoint(str(address), config.default_station_port)
        except EndpointError as e:
            logger.warning(f"Skipping route for {station_id}: {e}")
            continue
        config.routes[str(station_id).lower()] = str(endpoint)

    logger.info(f"Loaded {len(config.routes)} routes from {path}")
    return config


def unmapped_stations(routes: Dict[str, str]) -> Tuple[Station, ...]:
    """Known holes with no route configured."""
    mapped = {station_id.lower() for station_id in routes}
    return tuple(station for station in STATIONS if station.station_id not in mapped)
