"""
OSC Router - Standalone runner

Usage:
    python -m osc_router --port 57121 --route plinko=10.0.0.5:58008
    python -m osc_router --config routes.yaml --verbose
    python -m osc_router --config routes.yaml --diagnose
"""

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import List, Optional, Tuple

from rich import box
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config import STATIONS, load_config, unmapped_stations
from .events import EventOutcome, RouterEvent
from .router import Router
from .routing import EndpointError, parse_endpoint

logger = logging.getLogger(__name__)

OUTCOME_STYLES = {
    EventOutcome.FORWARDED: "green",
    EventOutcome.WAITING: "yellow",
    EventOutcome.ERROR: "bold red",
}


def parse_route(text: str) -> Tuple[str, str]:
    """argparse type for STATION=HOST[:PORT]."""
    station, sep, address = text.partition("=")
    if not sep or not station.strip():
        raise argparse.ArgumentTypeError(f"Expected STATION=HOST[:PORT], got {text!r}")
    try:
        parse_endpoint(address)
    except EndpointError as e:
        raise argparse.ArgumentTypeError(str(e))
    return station.strip().lower(), address.strip()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="osc_router",
        description="OSC score router - relays /<station>/score to station displays",
    )
    parser.add_argument(
        "--config", type=Path, default=None,
        help="YAML config file (default: ~/.config/osc_router/config.yaml)"
    )
    parser.add_argument(
        "--port", type=int, default=None,
        help="Port to receive OSC messages (default: 57121)"
    )
    parser.add_argument(
        "--route", type=parse_route, action="append", default=[], metavar="STATION=HOST[:PORT]",
        help="Add or override a route; repeatable"
    )
    parser.add_argument(
        "--diagnose", action="store_true",
        help="Send a test score to every routed station and exit"
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true",
        help="Debug logging"
    )
    return parser


def render_routing_table(router: Router) -> Table:
    table = Table(title="Routing", box=box.ROUNDED, title_style="bold cyan")
    table.add_column("Station", style="bold")
    table.add_column("Endpoint")
    names = {station.station_id: station.display_name for station in STATIONS}
    for station_id, address in router.get_routing_table().items():
        table.add_row(names.get(station_id, station_id), address)
    return table


def format_event(event: RouterEvent) -> str:
    style = OUTCOME_STYLES[event.outcome]
    when = event.iso_time[11:19]
    text = escape(event.message or event.outcome.value)
    return f"[dim]{when}[/dim] [{style}]{event.outcome.value:>22}[/{style}] {escape(event.source)}  {text}"


def run_diagnostics(router: Router, console: Console) -> int:
    """Send a test score to every route. Returns the number of failures."""
    table = Table(title="Station diagnostics", box=box.ROUNDED, title_style="bold magenta")
    table.add_column("Station", style="bold")
    table.add_column("Endpoint")
    table.add_column("OSC")

    failures = 0
    for station_id, address in router.get_routing_table().items():
        ok = router.send_test(station_id)
        failures += 0 if ok else 1
        table.add_row(station_id, address, "[green]sent[/green]" if ok else "[red]failed[/red]")

    console.print(table)
    if failures:
        console.print(f"[red]{failures} station(s) could not be sent to[/red]")
    return failures


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point for the standalone router."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    config = load_config(args.config)
    for station_id, address in args.route:
        config.routes[station_id] = address
    if args.port is not None:
        config.listen_port = args.port

    console = Console()
    router = Router(config)
    console.print(render_routing_table(router))
    for station in unmapped_stations(config.routes):
        logger.warning(f"No route configured for {station.display_name} ({station.station_id})")

    if args.diagnose:
        failures = run_diagnostics(router, console)
        router.stop()
        return 1 if failures else 0

    router.subscribe(lambda event: console.print(format_event(event)))

    stop_event = threading.Event()

    def signal_handler(sig, frame):
        stop_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    if not router.start():
        console.print(f"[bold red]Failed to bind OSC port {config.listen_port}[/bold red]")
        return 1

    console.print(f"OSC router listening on port {router.bound_port}. Press Ctrl+C to stop.")
    try:
        while not stop_event.wait(0.5):
            pass
    except KeyboardInterrupt:
        pass

    console.print("\nStopping OSC router...")
    router.stop()
    status = router.get_status()
    console.print(f"Events logged: {len(router.get_recent_events())} (routes: {status['routing_entry_count']})")
    return 0


if __name__ == "__main__":
    sys.exit(main())
