"""
Tests for the standalone runner.
"""
import argparse
import io

import pytest
from rich.console import Console

from osc_router.cli import build_parser, format_event, main, parse_route, run_diagnostics
from osc_router.codec import decode
from osc_router.config import RouterConfig
from osc_router.events import EventOutcome, make_event
from osc_router.router import Router


class TestArguments:
    """argparse wiring."""

    def test_parse_route(self):
        assert parse_route("Plinko=10.0.0.5:58008") == ("plinko", "10.0.0.5:58008")

    @pytest.mark.parametrize("text", ["plinko", "=10.0.0.5", "plinko=10.0.0.300"])
    def test_parse_route_rejects(self, text):
        with pytest.raises(argparse.ArgumentTypeError):
            parse_route(text)

    def test_parser(self):
        args = build_parser().parse_args(
            ["--port", "9100", "--route", "plinko=10.0.0.5", "--route", "igloo=10.0.0.8", "-v"]
        )
        assert args.port == 9100
        assert args.route == [("plinko", "10.0.0.5"), ("igloo", "10.0.0.8")]
        assert args.verbose


class TestOutput:
    """rich rendering."""

    def test_format_event(self):
        event = make_event("10.0.0.1:5000", EventOutcome.ERROR, error="No mapping for station 'x'",
                           message="No mapping for station 'x'")
        line = format_event(event)
        assert "error" in line
        assert "No mapping" in line
        assert "bold red" in line

    def test_run_diagnostics(self, udp_receiver):
        port = udp_receiver.getsockname()[1]
        router = Router(RouterConfig(routes={"plinko": f"127.0.0.1:{port}"}))
        console = Console(file=io.StringIO(), width=120)

        assert run_diagnostics(router, console) == 0
        data, _ = udp_receiver.recvfrom(1024)
        assert decode(data).values == [42]
        assert "plinko" in console.file.getvalue()
        router.stop()


class TestMain:
    """Entry point."""

    def test_diagnose_mode(self, tmp_path, udp_receiver):
        port = udp_receiver.getsockname()[1]
        config = tmp_path / "config.yaml"
        config.write_text(f"routes:\n  plinko: 127.0.0.1:{port}\n")

        assert main(["--config", str(config), "--diagnose"]) == 0
        data, _ = udp_receiver.recvfrom(1024)
        assert decode(data).address == "/score"
