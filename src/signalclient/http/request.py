"""
=============================================================================
SIGNALING REQUESTS
=============================================================================

Builds the four HTTP/1.0 requests the client ever sends:

    ┌────────────┬──────────────────────────────────────────────────────────┐
    │ Exchange   │ Request line                                             │
    ├────────────┼──────────────────────────────────────────────────────────┤
    │ Sign-in    │ GET /sign_in?<client name> HTTP/1.0                      │
    │ Wait       │ GET /wait?peer_id=<self> HTTP/1.0                        │
    │ Relay      │ POST /message?peer_id=<self>&to=<peer> HTTP/1.0          │
    │ Sign-out   │ GET /sign_out?peer_id=<self> HTTP/1.0                    │
    └────────────┴──────────────────────────────────────────────────────────┘

HTTP/1.0 means one exchange per TCP connection unless the server keeps the
socket open; the relay is the only request with a body.

Example relay on the wire:

    POST /message?peer_id=1&to=2 HTTP/1.0\\r\\n
    Content-Length: 3\\r\\n
    Content-Type: text/plain\\r\\n
    \\r\\n
    BYE

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Dict, Union
from urllib.parse import quote


HTTP_VERSION = "HTTP/1.0"

# Characters that may appear in a client name such as "alice@laptop"
# without being percent-encoded.
_NAME_SAFE = "@:+=!$'()*~._-"


@dataclass
class SignalingRequest:
    """An outbound request, serialised with to_bytes()."""

    method: str
    target: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def request_line(self) -> str:
        return f"{self.method} {self.target} {HTTP_VERSION}"

    def to_bytes(self) -> bytes:
        """
        Serialise the request for a single socket write.

        Content-Length is added whenever there is a body, so the server
        knows exactly where the payload ends.
        """
        headers = dict(self.headers)
        if self.body and "Content-Length" not in headers:
            headers["Content-Length"] = str(len(self.body))

        lines = [self.request_line]
        lines.extend(f"{name}: {value}" for name, value in headers.items())
        head = "\r\n".join(lines) + "\r\n\r\n"
        return head.encode("latin-1") + self.body


# =============================================================================
# REQUEST FACTORIES
# =============================================================================

def sign_in_request(client_name: str) -> SignalingRequest:
    return SignalingRequest("GET", f"/sign_in?{quote(client_name, safe=_NAME_SAFE)}")


def wait_request(peer_id: int) -> SignalingRequest:
    return SignalingRequest("GET", f"/wait?peer_id={peer_id}")


def sign_out_request(peer_id: int) -> SignalingRequest:
    return SignalingRequest("GET", f"/sign_out?peer_id={peer_id}")


def message_request(
    peer_id: int,
    to: int,
    payload: Union[str, bytes],
) -> SignalingRequest:
    """
    Build a relay of an opaque payload from peer_id to another peer.

    Text payloads are sent as UTF-8. Content-Length is always present,
    even for an empty payload.
    """
    body = payload.encode("utf-8") if isinstance(payload, str) else bytes(payload)
    return SignalingRequest(
        "POST",
        f"/message?peer_id={peer_id}&to={to}",
        headers={
            "Content-Length": str(len(body)),
            "Content-Type": "text/plain",
        },
        body=body,
    )
