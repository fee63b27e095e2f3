"""
=============================================================================
SIGNALCLIENT - Rendezvous Client for Peer-to-Peer Session Setup
=============================================================================

Two endpoints that want a direct media session first have to find each
other and trade offers, answers and connectivity candidates. This package
does that part: it talks to a signaling server over plain HTTP/1.0 and
hands everything it learns to an observer.

=============================================================================
PROJECT OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   1. SIGN-IN                                                        │
    │      - GET /sign_in?<name>; the server assigns our peer id         │
    │      - The answer lists every peer already present                 │
    │                                                                      │
    │   2. LONG-POLL                                                      │
    │      - GET /wait?peer_id=<id>, held open by the server             │
    │      - Answers carry peer joins/leaves or payloads from peers      │
    │                                                                      │
    │   3. RELAY                                                          │
    │      - POST /message?peer_id=<id>&to=<peer>                         │
    │      - "BYE" is the hang-up token                                   │
    │                                                                      │
    │   4. SIGN-OUT                                                       │
    │      - GET /sign_out?peer_id=<id>                                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    signalclient/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m signalclient)
    ├── session.py           # SignalingSession state machine
    ├── observer.py          # SessionObserver interface, LoggingObserver
    ├── peers.py             # PeerDirectory and entry parsing
    ├── config.py            # ClientConfig dataclass
    ├── core/                # Low-level components
    │   ├── connection.py    # Channel: one socket as events
    │   ├── links.py         # Command / notify socket sub-state
    │   ├── resolver.py      # Async hostname lookup
    │   └── retry.py         # Cancelable reconnect timer
    └── http/                # Protocol components
        ├── request.py       # Request builders
        └── framer.py        # Response reassembly

=============================================================================
QUICK START
=============================================================================

    import asyncio
    from signalclient import SignalingSession, ClientConfig, SessionObserver

    class Printer(SessionObserver):
        def on_peer_connected(self, peer_id, name):
            print("peer", peer_id, name)

        def on_message_from_peer(self, peer_id, payload):
            print("from", peer_id, payload)

    async def main():
        session = SignalingSession(ClientConfig(server="127.0.0.1"), Printer())
        session.connect()
        await asyncio.sleep(60)
        session.sign_out()

    asyncio.run(main())

=============================================================================
"""

__version__ = "1.0.0"

from .config import ClientConfig
from .observer import LoggingObserver, SessionObserver
from .peers import UNSET_PEER_ID, PeerDirectory
from .session import HANG_UP_TOKEN, ConnectionState, SignalingSession

__all__ = [
    "ClientConfig",
    "ConnectionState",
    "HANG_UP_TOKEN",
    "LoggingObserver",
    "PeerDirectory",
    "SessionObserver",
    "SignalingSession",
    "UNSET_PEER_ID",
    "__version__",
]
