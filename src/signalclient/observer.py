"""
=============================================================================
SESSION OBSERVER
=============================================================================

The boundary between the signaling core and whatever drives the media
session (a GUI, a conductor object, a headless script). The session calls
these hooks from its event loop; implementations must return quickly and
must not block that loop.

    ┌──────────────────┐   on_signed_in / on_disconnected      ┌──────────┐
    │                  │   on_peer_connected(id, name)         │          │
    │ SignalingSession │──►on_peer_disconnected(id)       ───► │ Observer │
    │                  │   on_message_from_peer(id, payload)   │          │
    │                  │   on_message_sent(status)             │          │
    │                  │   on_server_connection_failure        │          │
    └──────────────────┘                                       └──────────┘

SessionObserver provides no-op defaults so implementations override only
what they care about. LoggingObserver reports every event through a
namespaced logger and backs the command-line client.

=============================================================================
"""

import logging
from typing import Dict


# Namespaced logger for session events, configurable on its own:
#   logging.getLogger("signalclient.events").setLevel(logging.WARNING)
event_logger = logging.getLogger("signalclient.events")


class SessionObserver:
    """Receives session events. Every hook defaults to doing nothing."""

    def on_signed_in(self) -> None:
        """Sign-in completed; the self id and initial peer list are known."""

    def on_disconnected(self) -> None:
        """The session ended, by sign-out or by failure."""

    def on_peer_connected(self, peer_id: int, name: str) -> None:
        """A peer joined (or was listed at sign-in)."""

    def on_peer_disconnected(self, peer_id: int) -> None:
        """A peer left or hung up."""

    def on_message_from_peer(self, peer_id: int, payload: bytes) -> None:
        """An opaque signaling payload (offer, answer, candidate) arrived."""

    def on_message_sent(self, status: int) -> None:
        """A relay exchange finished; status is 0 on success."""

    def on_server_connection_failure(self) -> None:
        """The server could not be reached, or connect() was misused."""


class LoggingObserver(SessionObserver):
    """
    Logs every session event and keeps a local copy of the peer list.

    Payloads are logged by size only at INFO; their content goes to DEBUG
    since it can hold network addresses.
    """

    def __init__(self, logger: logging.Logger = event_logger):
        self.logger = logger
        self.peers: Dict[int, str] = {}
        self.signed_in = False
        self.disconnected = False

    def on_signed_in(self) -> None:
        self.signed_in = True
        self.logger.info(f"Signed in, {len(self.peers)} peer(s) online")

    def on_disconnected(self) -> None:
        self.disconnected = True
        self.peers.clear()
        self.logger.info("Disconnected from server")

    def on_peer_connected(self, peer_id: int, name: str) -> None:
        self.peers[peer_id] = name
        self.logger.info(f"Peer connected: {name} (id={peer_id})")

    def on_peer_disconnected(self, peer_id: int) -> None:
        name = self.peers.pop(peer_id, "?")
        self.logger.info(f"Peer disconnected: {name} (id={peer_id})")

    def on_message_from_peer(self, peer_id: int, payload: bytes) -> None:
        self.logger.info(f"Message from peer {peer_id}: {len(payload)} bytes")
        self.logger.debug(f"Payload from {peer_id}: {payload!r}")

    def on_message_sent(self, status: int) -> None:
        if status:
            self.logger.warning(f"Message send finished with error {status}")
        else:
            self.logger.debug("Message delivered to server")

    def on_server_connection_failure(self) -> None:
        self.disconnected = True
        self.logger.error("Failed to connect to the signaling server")
