"""
pytest configuration and fixtures.

The session is driven through fakes that stand in for sockets, DNS and the
event loop's timer, so every test controls exactly which event happens
when.
"""

import errno
from typing import Callable, Dict, List, Optional

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from signalclient import ClientConfig, SessionObserver, SignalingSession
from signalclient.core.connection import ChannelState


def build_response(
    status: int = 200,
    pragma: Optional[int] = None,
    body: bytes = b"",
    close: bool = True,
    reason: str = "OK",
) -> bytes:
    """Raw server response in the signaling server's format."""
    lines = [f"HTTP/1.0 {status} {reason}", "Server: PeerConnectionTestServer/0.1"]
    if pragma is not None:
        lines.append(f"Pragma: {pragma}")
    lines.append("Content-Type: text/plain")
    lines.append(f"Content-Length: {len(body)}")
    if close:
        lines.append("Connection: close")
    return ("\r\n".join(lines) + "\r\n\r\n").encode() + body


# =============================================================================
# FAKES
# =============================================================================

class FakeChannel:
    """In-memory Channel. Tests fire its events by hand."""

    def __init__(self, name: str):
        self.name = name
        self.state = ChannelState.CLOSED
        self.connects: List[tuple] = []
        self.sent: List[bytes] = []
        self.accept_connect = True
        self._on_connect = None
        self._on_data = None
        self._on_close = None

    def bind(self, on_connect, on_data, on_close):
        self._on_connect = on_connect
        self._on_data = on_data
        self._on_close = on_close

    @property
    def is_closed(self) -> bool:
        return self.state is ChannelState.CLOSED

    def connect(self, address) -> bool:
        if self.state is not ChannelState.CLOSED or not self.accept_connect:
            return False
        self.connects.append(address)
        self.state = ChannelState.CONNECTING
        return True

    def send(self, data: bytes) -> int:
        if self.state is not ChannelState.CONNECTED:
            return -1
        self.sent.append(data)
        return len(data)

    def close(self) -> None:
        self.state = ChannelState.CLOSED

    # ─────────────────────────────────────────────────────────────────────
    # Event drivers
    # ─────────────────────────────────────────────────────────────────────

    def complete_connect(self) -> None:
        assert self.state is ChannelState.CONNECTING
        self.state = ChannelState.CONNECTED
        self._on_connect(self)

    def deliver(self, data: bytes) -> None:
        self._on_data(self, data)

    def drop(self, err: int = 0) -> None:
        self.state = ChannelState.CLOSED
        self._on_close(self, err)

    def refuse(self) -> None:
        assert self.state is ChannelState.CONNECTING
        self.drop(errno.ECONNREFUSED)


class FakeChannelFactory:
    def __init__(self):
        self.created: List[FakeChannel] = []

    def __call__(self, name: str) -> FakeChannel:
        channel = FakeChannel(name)
        self.created.append(channel)
        return channel

    def latest(self, name: str) -> FakeChannel:
        return [c for c in self.created if c.name == name][-1]

    def count(self, name: str) -> int:
        return len([c for c in self.created if c.name == name])


class FakeResolver:
    """Resolver whose lookups finish when the test says so."""

    def __init__(self):
        self.requests: List[tuple] = []
        self.cancelled = 0
        self._callback: Optional[Callable] = None

    @staticmethod
    def needs_resolution(host: str) -> bool:
        return not host.replace(".", "").isdigit()

    @property
    def in_flight(self) -> bool:
        return self._callback is not None

    def start(self, host, port, callback) -> bool:
        if self._callback is not None:
            return False
        self.requests.append((host, port))
        self._callback = callback
        return True

    def resolve(self, ip: str) -> None:
        callback, self._callback = self._callback, None
        callback(ip, None)

    def fail(self, error: OSError) -> None:
        callback, self._callback = self._callback, None
        callback(None, error)

    def cancel(self) -> None:
        if self._callback is not None:
            self.cancelled += 1
        self._callback = None


class FakeHandle:
    def __init__(self, delay, callback, args):
        self.delay = delay
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class FakeScheduler:
    """call_later stand-in; fire() runs due handles in order."""

    def __init__(self):
        self.handles: List[FakeHandle] = []

    def __call__(self, delay, callback, *args) -> FakeHandle:
        handle = FakeHandle(delay, callback, args)
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> List[FakeHandle]:
        return [h for h in self.handles if not h.cancelled]

    def fire(self, handle: FakeHandle) -> None:
        handle.callback(*handle.args)

    def fire_all(self) -> None:
        for handle in list(self.handles):
            if not handle.cancelled:
                handle.cancelled = True
                handle.callback(*handle.args)


class RecordingObserver(SessionObserver):
    """Records every observer call as a tuple."""

    def __init__(self):
        self.events: List[tuple] = []

    def on_signed_in(self):
        self.events.append(("signed_in",))

    def on_disconnected(self):
        self.events.append(("disconnected",))

    def on_peer_connected(self, peer_id, name):
        self.events.append(("peer_connected", peer_id, name))

    def on_peer_disconnected(self, peer_id):
        self.events.append(("peer_disconnected", peer_id))

    def on_message_from_peer(self, peer_id, payload):
        self.events.append(("message", peer_id, payload))

    def on_message_sent(self, status):
        self.events.append(("message_sent", status))

    def on_server_connection_failure(self):
        self.events.append(("connection_failure",))

    def count(self, kind: str) -> int:
        return len([e for e in self.events if e[0] == kind])


# =============================================================================
# HARNESS
# =============================================================================

class SessionHarness:
    """A session wired to fakes, with shortcuts for common sequences."""

    SIGN_IN_BODY = b"alice,7,1\nbob,8,1\n"

    def __init__(self, config: ClientConfig):
        self.channels = FakeChannelFactory()
        self.resolver = FakeResolver()
        self.scheduler = FakeScheduler()
        self.observer = RecordingObserver()
        self.session = SignalingSession(
            config,
            self.observer,
            channel_factory=self.channels,
            resolver=self.resolver,
            scheduler=self.scheduler,
        )

    @property
    def command(self) -> FakeChannel:
        return self.channels.latest("command")

    @property
    def notify(self) -> FakeChannel:
        return self.channels.latest("notify")

    def sign_in(self, self_id: int = 3, body: bytes = SIGN_IN_BODY) -> None:
        """connect(), sign-in exchange, notify socket connected."""
        assert self.session.connect()
        self.command.complete_connect()
        self.command.deliver(build_response(pragma=self_id, body=body))
        self.notify.complete_connect()

    def notification(self, pragma: int, body: bytes, close: bool = True) -> None:
        self.notify.deliver(build_response(pragma=pragma, body=body, close=close))


@pytest.fixture
def config() -> ClientConfig:
    """Config pointing at an IP literal, so no resolution is needed."""
    return ClientConfig(
        server="127.0.0.1",
        port=8888,
        client_name="carol@test",
        reconnect_delay=2.0,
    )


@pytest.fixture
def harness(config: ClientConfig) -> SessionHarness:
    return SessionHarness(config)


@pytest.fixture
def signed_in(harness: SessionHarness) -> SessionHarness:
    """Harness already signed in as peer 3 with peers 7 (alice) and 8 (bob)."""
    harness.sign_in()
    harness.observer.events.clear()
    return harness


@pytest.fixture
def http_response() -> Callable[..., bytes]:
    return build_response
