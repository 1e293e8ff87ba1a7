"""
Shared fixtures for osc_router tests.

Network tests only use 127.0.0.1 and ephemeral ports.
"""
import socket
import time

import pytest

from osc_router.routing import Endpoint


class RecordingClient:
    """Stand-in station client that records datagrams instead of sending.

    Same send(content) surface as pythonosc.udp_client.UDPClient.
    """

    def __init__(self, endpoint: Endpoint, sent: list, fail_with=None):
        self.endpoint = endpoint
        self._sent = sent
        self._fail_with = fail_with
        self.closed = False

    def send(self, content) -> None:
        if self._fail_with is not None:
            raise self._fail_with
        self._sent.append((self.endpoint, content.dgram))

    def close(self) -> None:
        self.closed = True


class RecordingFactory:
    """Client factory for Router(client_factory=...) that keeps every client."""

    def __init__(self, fail_with=None):
        self.sent: list = []
        self.clients: list = []
        self.fail_with = fail_with

    def __call__(self, endpoint: Endpoint) -> RecordingClient:
        client = RecordingClient(endpoint, self.sent, self.fail_with)
        self.clients.append(client)
        return client


@pytest.fixture
def recording_factory():
    return RecordingFactory()


@pytest.fixture
def udp_receiver():
    """Loopback UDP socket standing in for a station display."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    sock.settimeout(2.0)
    yield sock
    sock.close()


@pytest.fixture
def udp_sender():
    """Loopback UDP socket standing in for a course hole."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    yield sock
    sock.close()


def wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False
