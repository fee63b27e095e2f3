"""
=============================================================================
SIGNALING SESSION
=============================================================================

The client side of the rendezvous protocol. A SignalingSession signs in to
the signaling server, keeps a long-poll open to hear about peers and
inbound payloads, relays outbound payloads, and signs out.

=============================================================================
TWO SOCKETS, ONE SERVER
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   command socket   short exchanges, one per TCP connection          │
    │   ──────────────   GET  /sign_in?<name>                              │
    │                    POST /message?peer_id=<self>&to=<peer>            │
    │                    GET  /sign_out?peer_id=<self>                     │
    │                                                                      │
    │   notify socket    one long-poll, re-armed after every answer       │
    │   ─────────────    GET  /wait?peer_id=<self>                         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Every answer names a peer id in its Pragma header. On sign-in it is our
own id. On a wait it is either our id (the body is a directory change,
"name,id,connected") or the id of the peer whose payload the body carries.

=============================================================================
STATE MACHINE
=============================================================================

    DISCONNECTED ──connect()──► RESOLVING ──resolved──► SIGNING_IN
         ▲   │                      │                      │  ▲
         │   └──(IP literal)────────┼─────────────────────►│  │ refused:
         │                          │ failed               │  │ retry in 2s
         │◄─────────────────────────┘                      ├──┘
         │                                          200 OK │
         │                                                 ▼
         │                 sign_out(), command idle    CONNECTED
         │         ┌───────────────────────────────────────┤
         │         ▼                                       │ sign_out(),
         │    SIGNING_OUT ◄──exchange done──  SIGNING_OUT_PENDING
         │         │                                 (command busy)
         └─────────┘ any response

Any failure (non-200, framing error, refused notify socket, unexpected
close) closes both sockets, returns to DISCONNECTED and reports
on_disconnected once. close() does the same silently.

Socket, resolver and timer events are delivered as (state, event) pairs to
a dispatch table of named transition methods; a pair missing from the
table is ignored.

=============================================================================
"""

import errno
import logging
from enum import Enum
from typing import Callable, Dict, Optional, Tuple, Union

from .config import ClientConfig, DEFAULT_PORT
from .core.connection import Channel
from .core.links import CommandLink, ExchangeKind, NotifyLink
from .core.resolver import AddressResolver
from .core.retry import RetryTimer, Scheduler
from .http.framer import HTTPFramingError, ResponseFramer, SignalingResponse
from .http.request import message_request, sign_in_request, sign_out_request
from .observer import SessionObserver
from .peers import UNSET_PEER_ID, PeerDirectory, parse_entry, parse_listing


logger = logging.getLogger(__name__)

# Relay body that means "this peer hung up".
HANG_UP_TOKEN = b"BYE"

ChannelFactory = Callable[[str], Channel]


class ConnectionState(Enum):
    """Session lifecycle states."""

    DISCONNECTED = "disconnected"
    RESOLVING = "resolving"
    SIGNING_IN = "signing_in"
    CONNECTED = "connected"
    SIGNING_OUT = "signing_out"
    SIGNING_OUT_PENDING = "signing_out_pending"  # sign-out queued behind an exchange


class SessionEvent(Enum):
    """Inputs to the state machine."""

    RESOLVED = "resolved"
    RESOLVE_FAILED = "resolve_failed"
    RETRY = "retry"
    COMMAND_CONNECTED = "command_connected"
    COMMAND_RESPONSE = "command_response"
    COMMAND_CLOSED = "command_closed"
    COMMAND_REFUSED = "command_refused"
    NOTIFY_CONNECTED = "notify_connected"
    NOTIFY_RESPONSE = "notify_response"
    NOTIFY_CLOSED = "notify_closed"
    NOTIFY_REFUSED = "notify_refused"


_S = ConnectionState
_E = SessionEvent

_TRANSITIONS: Dict[Tuple[ConnectionState, SessionEvent], str] = {
    (_S.RESOLVING, _E.RESOLVED): "_on_resolved",
    (_S.RESOLVING, _E.RESOLVE_FAILED): "_on_resolve_failed",
    (_S.SIGNING_IN, _E.RETRY): "_on_retry",

    # Command socket
    (_S.SIGNING_IN, _E.COMMAND_CONNECTED): "_on_command_connected",
    (_S.CONNECTED, _E.COMMAND_CONNECTED): "_on_command_connected",
    (_S.SIGNING_OUT, _E.COMMAND_CONNECTED): "_on_command_connected",
    (_S.SIGNING_OUT_PENDING, _E.COMMAND_CONNECTED): "_on_command_connected",

    (_S.SIGNING_IN, _E.COMMAND_RESPONSE): "_on_sign_in_response",
    (_S.CONNECTED, _E.COMMAND_RESPONSE): "_on_relay_response",
    (_S.SIGNING_OUT_PENDING, _E.COMMAND_RESPONSE): "_on_deferred_sign_out_response",
    (_S.SIGNING_OUT, _E.COMMAND_RESPONSE): "_finish_sign_out",

    (_S.SIGNING_IN, _E.COMMAND_REFUSED): "_on_sign_in_refused",
    (_S.CONNECTED, _E.COMMAND_REFUSED): "_on_command_failure",
    (_S.SIGNING_OUT_PENDING, _E.COMMAND_REFUSED): "_finish_sign_out",
    (_S.SIGNING_OUT, _E.COMMAND_REFUSED): "_finish_sign_out",

    (_S.SIGNING_IN, _E.COMMAND_CLOSED): "_on_command_failure",
    (_S.CONNECTED, _E.COMMAND_CLOSED): "_on_command_failure",
    (_S.SIGNING_OUT_PENDING, _E.COMMAND_CLOSED): "_on_deferred_exchange_lost",
    (_S.SIGNING_OUT, _E.COMMAND_CLOSED): "_finish_sign_out",

    # Notify socket
    (_S.CONNECTED, _E.NOTIFY_CONNECTED): "_on_notify_connected",
    (_S.CONNECTED, _E.NOTIFY_RESPONSE): "_on_notification",
    (_S.CONNECTED, _E.NOTIFY_CLOSED): "_on_notify_closed",
    (_S.CONNECTED, _E.NOTIFY_REFUSED): "_on_notify_refused",
}


class SignalingSession:
    """
    Client of a rendezvous/signaling server.

    Every public method returns immediately; outcomes are reported to the
    observer from the event loop that delivers socket events.

    Usage:
        session = SignalingSession(ClientConfig(server="10.0.0.5"), observer)
        session.connect()
        ...
        session.send_to_peer(7, offer_json)
        ...
        session.sign_out()
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        observer: Optional[SessionObserver] = None,
        *,
        channel_factory: Optional[ChannelFactory] = None,
        resolver: Optional[AddressResolver] = None,
        scheduler: Optional[Scheduler] = None,
    ):
        self.config = config or ClientConfig()
        self.observer = observer or SessionObserver()
        self._observer_registered = observer is not None

        self._channel_factory = channel_factory or Channel
        self._resolver = resolver or AddressResolver()
        self._retry = RetryTimer(self.config.reconnect_delay, scheduler)

        self._state = ConnectionState.DISCONNECTED
        self._host = ""
        self._server_address: Tuple[str, int] = ("", 0)
        self._client_name = ""
        self._self_id = UNSET_PEER_ID
        self._directory = PeerDirectory()
        self._command: Optional[CommandLink] = None
        self._notify: Optional[NotifyLink] = None

    # =========================================================================
    # ACCESSORS
    # =========================================================================

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def self_id(self) -> int:
        """Server-assigned id, UNSET_PEER_ID until signed in."""
        return self._self_id

    @property
    def is_connected(self) -> bool:
        return self._self_id != UNSET_PEER_ID

    @property
    def peers(self) -> Dict[int, str]:
        """Snapshot of the peer directory (id → name)."""
        return self._directory.snapshot()

    @property
    def server_address(self) -> Tuple[str, int]:
        return self._server_address

    def is_sending_message(self) -> bool:
        """True while a relay (or other command exchange) is in flight."""
        return (
            self._state is ConnectionState.CONNECTED
            and self._command is not None
            and self._command.busy
        )

    def register_observer(self, observer: SessionObserver) -> None:
        """Attach the observer. A session reports to exactly one."""
        if self._observer_registered:
            raise RuntimeError("An observer is already registered")
        self.observer = observer
        self._observer_registered = True

    # =========================================================================
    # CALLER INTERFACE
    # =========================================================================

    def connect(
        self,
        server: Optional[str] = None,
        port: Optional[int] = None,
        client_name: Optional[str] = None,
    ) -> bool:
        """
        Start signing in. Arguments left as None come from the config.

        Fails (on_server_connection_failure, returns False) when the
        session is not DISCONNECTED or when server or client_name is
        empty. A port <= 0 means the default port.
        """
        server = self.config.server if server is None else server
        port = self.config.port if port is None else port
        client_name = self.config.client_name if client_name is None else client_name

        if self._state is not ConnectionState.DISCONNECTED:
            logger.warning("The client must not be connected before you can call connect()")
            self.observer.on_server_connection_failure()
            return False

        if not server or not client_name:
            logger.warning("connect() needs a server and a client name")
            self.observer.on_server_connection_failure()
            return False

        if port <= 0:
            port = DEFAULT_PORT

        self._host = server
        self._server_address = (server, port)
        self._client_name = client_name
        logger.info(f"Connecting to {server}:{port} as {client_name!r}")

        if self._resolver.needs_resolution(server):
            self._set_state(ConnectionState.RESOLVING)
            if not self._resolver.start(server, port, self._on_resolve_result):
                self._connection_failed(f"could not start resolving {server}")
                return False
            return True

        return self._do_connect()

    def send_to_peer(self, peer_id: int, payload: Union[str, bytes]) -> bool:
        """
        Relay payload to peer_id through the server.

        Returns False, without any network action or observer event, when
        not CONNECTED, when peer_id is not a valid id, or while a previous
        relay is still in flight.
        """
        if self._state is not ConnectionState.CONNECTED:
            logger.debug(f"send_to_peer() rejected in state {self._state.name}")
            return False

        if not self.is_connected or peer_id == UNSET_PEER_ID or peer_id < 0:
            logger.debug(f"send_to_peer() rejected for peer id {peer_id}")
            return False

        assert self._command is not None
        if self._command.busy:
            logger.warning(f"send_to_peer({peer_id}) rejected, a message is already in flight")
            return False

        data = message_request(self._self_id, peer_id, payload).to_bytes()
        if not self._command.begin(ExchangeKind.RELAY, data, self._server_address):
            self._fail("could not open the command socket for a relay")
            return False
        return True

    def send_hang_up(self, peer_id: int) -> bool:
        """Tell peer_id we are hanging up."""
        return self.send_to_peer(peer_id, HANG_UP_TOKEN)

    def sign_out(self) -> bool:
        """
        Leave the server. Safe to call in any state, and more than once.

        The long-poll is dropped at once. If the command socket is idle the
        sign-out request goes out now; otherwise it follows as soon as the
        exchange in flight completes.
        """
        if self._state in (ConnectionState.DISCONNECTED, ConnectionState.SIGNING_OUT):
            return True

        self._retry.cancel()
        self._resolver.cancel()
        if self._notify is not None:
            self._notify.close()

        if self._command is not None and self._command.busy:
            self._set_state(ConnectionState.SIGNING_OUT_PENDING)
            return True

        if self._self_id == UNSET_PEER_ID:
            # Never signed in, so there is nothing to tell the server.
            logger.info("Signed out before sign-in completed")
            self.close()
            self.observer.on_disconnected()
            return True

        assert self._command is not None
        self._set_state(ConnectionState.SIGNING_OUT)
        data = sign_out_request(self._self_id).to_bytes()
        if not self._command.begin(ExchangeKind.SIGN_OUT, data, self._server_address):
            self._finish_sign_out()
            return False
        return True

    def close(self) -> None:
        """Tear everything down without reporting to the observer."""
        self._retry.cancel()
        self._resolver.cancel()
        if self._command is not None:
            self._command.close()
        if self._notify is not None:
            self._notify.close()
        self._command = None
        self._notify = None
        self._directory.clear()
        self._self_id = UNSET_PEER_ID
        if self._state is not ConnectionState.DISCONNECTED:
            self._set_state(ConnectionState.DISCONNECTED)

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def _dispatch(self, event: SessionEvent, *args) -> None:
        name = _TRANSITIONS.get((self._state, event))
        if name is None:
            logger.debug(f"Ignoring {event.name} in state {self._state.name}")
            return
        getattr(self, name)(*args)

    def _set_state(self, state: ConnectionState) -> None:
        logger.debug(f"State {self._state.name} -> {state.name}")
        self._state = state

    def _fail(self, reason: str) -> None:
        """Session failure: tear down and report on_disconnected once."""
        logger.warning(f"Session failed: {reason}")
        self.close()
        self.observer.on_disconnected()

    def _connection_failed(self, reason: str) -> None:
        """The server was never reached."""
        logger.error(f"Connection failed: {reason}")
        self.close()
        self.observer.on_server_connection_failure()

    def _check_status(self, response: SignalingResponse) -> bool:
        if response.ok:
            return True
        self._fail(f"received error {response.status} from server")
        return False

    # =========================================================================
    # CONNECT SEQUENCE
    # =========================================================================

    def _on_resolve_result(self, ip: Optional[str], error: Optional[OSError]) -> None:
        if error is not None or ip is None:
            self._dispatch(SessionEvent.RESOLVE_FAILED, error)
        else:
            self._dispatch(SessionEvent.RESOLVED, ip)

    def _on_resolved(self, ip: str) -> None:
        logger.debug(f"{self._host} resolved to {ip}")
        self._server_address = (ip, self._server_address[1])
        self._do_connect()

    def _on_resolve_failed(self, error: Optional[OSError]) -> None:
        self._connection_failed(f"could not resolve {self._host}: {error}")

    def _do_connect(self) -> bool:
        """Open fresh sockets and start the sign-in exchange."""
        self._open_links()
        assert self._command is not None
        data = sign_in_request(self._client_name).to_bytes()
        if not self._command.begin(ExchangeKind.SIGN_IN, data, self._server_address):
            self._connection_failed("could not open the command socket")
            return False
        self._set_state(ConnectionState.SIGNING_IN)
        return True

    def _open_links(self) -> None:
        if self._command is not None:
            self._command.close()
        if self._notify is not None:
            self._notify.close()

        limit = self.config.max_response_size
        command = self._channel_factory("command")
        command.bind(self._handle_command_connect, self._handle_command_data,
                     self._handle_command_close)
        notify = self._channel_factory("notify")
        notify.bind(self._handle_notify_connect, self._handle_notify_data,
                    self._handle_notify_close)

        self._command = CommandLink(command, ResponseFramer(limit))
        self._notify = NotifyLink(notify, ResponseFramer(limit))

    def _on_retry(self) -> None:
        logger.info("Retrying connection to the server")
        self._do_connect()

    def _on_sign_in_refused(self, kind: Optional[ExchangeKind]) -> None:
        if self._retry.arm(lambda: self._dispatch(SessionEvent.RETRY)):
            logger.warning(
                f"Connection refused; retrying in {self._retry.delay:g} seconds"
            )

    # =========================================================================
    # COMMAND SOCKET
    # =========================================================================

    def _handle_command_connect(self, channel: Channel) -> None:
        if self._command is None or channel is not self._command.channel:
            return
        self._dispatch(SessionEvent.COMMAND_CONNECTED)

    def _handle_command_data(self, channel: Channel, data: bytes) -> None:
        if self._command is None or channel is not self._command.channel:
            return
        try:
            result = self._command.receive(data)
        except HTTPFramingError as e:
            self._fail(f"bad response on the command socket: {e}")
            return
        if result is not None:
            kind, response = result
            self._dispatch(SessionEvent.COMMAND_RESPONSE, kind, response)

    def _handle_command_close(self, channel: Channel, err: int) -> None:
        if self._command is None or channel is not self._command.channel:
            return
        kind = self._command.abort()
        if err == errno.ECONNREFUSED:
            self._dispatch(SessionEvent.COMMAND_REFUSED, kind)
        elif kind is None:
            logger.debug("Command socket closed while idle")
        else:
            self._dispatch(SessionEvent.COMMAND_CLOSED, kind, err)

    def _on_command_connected(self) -> None:
        assert self._command is not None
        if self._command.flush() < 0:
            self._fail("could not write to the command socket")

    def _on_sign_in_response(self, kind: ExchangeKind, response: SignalingResponse) -> None:
        if not self._check_status(response):
            return
        peer_id = response.peer_id
        if peer_id is None or peer_id < 0:
            self._fail("sign-in response carries no peer id")
            return

        self._self_id = peer_id
        self._directory.self_id = peer_id
        listed = self._directory.rebuild(parse_listing(response.body))
        logger.info(f"Signed in as peer {peer_id}, {len(listed)} peer(s) listed")

        self._set_state(ConnectionState.CONNECTED)
        assert self._notify is not None
        if not self._notify.channel.connect(self._server_address):
            self._fail("could not open the notify socket")
            return

        for entry in listed:
            if self._state is not ConnectionState.CONNECTED:
                return
            self.observer.on_peer_connected(entry.peer_id, entry.name)
        if self._state is ConnectionState.CONNECTED:
            self.observer.on_signed_in()

    def _on_relay_response(self, kind: ExchangeKind, response: SignalingResponse) -> None:
        if self._check_status(response):
            self.observer.on_message_sent(0)

    def _on_deferred_sign_out_response(
        self, kind: ExchangeKind, response: SignalingResponse
    ) -> None:
        if not self._check_status(response):
            return
        if kind is ExchangeKind.SIGN_IN and response.peer_id is not None:
            # Needed to tell the server who is leaving.
            self._self_id = response.peer_id
            self._directory.self_id = response.peer_id
        elif kind is ExchangeKind.RELAY:
            self.observer.on_message_sent(0)
        if self._state is ConnectionState.SIGNING_OUT_PENDING:
            self.sign_out()

    def _on_deferred_exchange_lost(self, kind: ExchangeKind, err: int) -> None:
        logger.warning(f"{kind.value} exchange lost (err={err}) before sign-out")
        self.sign_out()

    def _on_command_failure(self, kind: Optional[ExchangeKind], err: int = errno.ECONNREFUSED) -> None:
        what = kind.value if kind is not None else "command"
        self._fail(f"{what} connection closed unexpectedly (err={err})")

    def _finish_sign_out(self, *args) -> None:
        logger.info("Signed out")
        self.close()
        self.observer.on_disconnected()

    # =========================================================================
    # NOTIFY SOCKET (LONG POLL)
    # =========================================================================

    def _handle_notify_connect(self, channel: Channel) -> None:
        if self._notify is None or channel is not self._notify.channel:
            return
        self._dispatch(SessionEvent.NOTIFY_CONNECTED)

    def _handle_notify_data(self, channel: Channel, data: bytes) -> None:
        if self._notify is None or channel is not self._notify.channel:
            return
        try:
            responses, _closed = self._notify.receive(data)
        except HTTPFramingError as e:
            self._fail(f"bad response on the notify socket: {e}")
            return

        for response in responses:
            self._dispatch(SessionEvent.NOTIFY_RESPONSE, response)
            if self._state is not ConnectionState.CONNECTED:
                return
        if responses:
            self._rearm_notify()

    def _handle_notify_close(self, channel: Channel, err: int) -> None:
        if self._notify is None or channel is not self._notify.channel:
            return
        self._notify.abort()
        if err == errno.ECONNREFUSED:
            self._dispatch(SessionEvent.NOTIFY_REFUSED)
        else:
            self._dispatch(SessionEvent.NOTIFY_CLOSED, err)

    def _on_notify_connected(self) -> None:
        assert self._notify is not None
        if not self._notify.issue_wait(self._self_id):
            self._fail("could not write the wait request")

    def _on_notification(self, response: SignalingResponse) -> None:
        if not self._check_status(response):
            return
        peer_id = response.peer_id
        if peer_id is None:
            self._fail("notification carries no peer id")
            return

        if peer_id == self._self_id:
            self._apply_directory_change(response.body)
        else:
            self._on_message_from_peer(peer_id, response.body)

    def _apply_directory_change(self, body: bytes) -> None:
        entry = parse_entry(body.decode("utf-8", errors="replace"))
        if entry is None:
            logger.warning(f"Ignoring malformed directory entry {body!r}")
            return
        if entry.connected:
            if self._directory.add(entry.peer_id, entry.name):
                self.observer.on_peer_connected(entry.peer_id, entry.name)
        else:
            self._directory.remove(entry.peer_id)
            self.observer.on_peer_disconnected(entry.peer_id)

    def _on_message_from_peer(self, peer_id: int, payload: bytes) -> None:
        if payload == HANG_UP_TOKEN:
            logger.info(f"Peer {peer_id} hung up")
            self._directory.remove(peer_id)
            self.observer.on_peer_disconnected(peer_id)
        else:
            self.observer.on_message_from_peer(peer_id, payload)

    def _on_notify_closed(self, err: int) -> None:
        logger.debug(f"Long-poll socket closed (err={err}), re-arming")
        self._rearm_notify()

    def _on_notify_refused(self) -> None:
        self._fail("notify connection refused")

    def _rearm_notify(self) -> None:
        assert self._notify is not None
        if not self._notify.rearm(self._self_id, self._server_address):
            self._fail("could not re-arm the long-poll")
