"""
=============================================================================
HTTP RESPONSE FRAMER
=============================================================================

Turns the raw byte stream of a signaling socket into complete HTTP
responses. The signaling server speaks a small, strict dialect of HTTP/1.0:
every response carries a Content-Length, and the peer id that a response
concerns travels in the Pragma header.

=============================================================================
TCP IS A BYTE STREAM
=============================================================================

A response may arrive in any number of pieces:

    data_received(b"HTTP/1.0 200 OK\\r\\nPragma: 3\\r\\nCont")
    data_received(b"ent-Length: 10\\r\\n\\r\\nalice,7,1\\n")

The framer appends every piece to one buffer and only reports a response
once all of it is there:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        COMPLETENESS RULE                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   HTTP/1.0 200 OK\\r\\n                                               │
    │   Pragma: 3\\r\\n                                                     │
    │   Content-Length: 10\\r\\n                                            │
    │   \\r\\n                  ← header_end points at this terminator      │
    │   alice,7,1\\n           ← body_start = header_end + 4               │
    │                                                                      │
    │   complete  ⇔  header_end + 4 + content_length <= len(buffer)      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Bytes are never dropped: until a response is complete the buffer is left
untouched, and only the bytes of a consumed response are removed from it.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple
import logging


logger = logging.getLogger(__name__)

HEADER_TERMINATOR = b"\r\n\r\n"


class HTTPFramingError(Exception):
    """
    Raised when a buffered response can never be framed.

    This protocol always sends Content-Length, so a header block without
    one (or with a garbage value) is an error rather than a response
    without a body. Exceeding the configured size bound is one too.
    """

    def __init__(self, message: str, buffered: int = 0):
        super().__init__(message)
        self.buffered = buffered  # bytes held when framing gave up


@dataclass
class SignalingResponse:
    """
    One complete response from the signaling server.

    Attributes:
        status: Numeric status code from the status line (-1 if unreadable).
        headers: Header name → value, names lowercased.
        body: Exactly Content-Length bytes.
        raw: The full response as received, headers included.
    """

    status: int
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    raw: bytes = field(default=b"", repr=False)

    @property
    def ok(self) -> bool:
        return self.status == 200

    @property
    def peer_id(self) -> Optional[int]:
        """
        The peer id carried in the Pragma header.

        The server puts the assigned id there on sign-in, and the id a
        notification is about (self, or the sending peer) on a wait.
        """
        value = self.headers.get("pragma")
        if value is None:
            return None
        try:
            return int(value.strip())
        except ValueError:
            return None

    @property
    def should_close(self) -> bool:
        """True when the server announced it closes the socket after this response."""
        return self.headers.get("connection", "").strip().lower() == "close"


def parse_status(status_line: str) -> int:
    """
    Read the status code out of "HTTP/1.0 200 OK".

    Returns -1 for anything that does not carry a numeric code after the
    first space.
    """
    parts = status_line.split(" ", 2)
    if len(parts) < 2:
        return -1
    try:
        return int(parts[1])
    except ValueError:
        return -1


def parse_headers(header_section: bytes) -> Tuple[str, Dict[str, str]]:
    """
    Split a raw header block into its status line and a header dict.

    Header names are case-insensitive, so they are stored lowercased.
    Lines without a colon are skipped.
    """
    text = header_section.decode("latin-1")
    lines = text.split("\r\n")
    headers: Dict[str, str] = {}
    for line in lines[1:]:
        if ":" not in line:
            continue
        name, value = line.split(":", 1)
        headers[name.strip().lower()] = value.strip()
    return lines[0], headers


class ResponseFramer:
    """
    Accumulates socket bytes and hands out complete responses.

    Usage:
        framer = ResponseFramer()
        framer.feed(chunk)
        response = framer.poll()   # None until a full response is buffered
    """

    def __init__(self, max_response_size: Optional[int] = None):
        self.max_response_size = max_response_size
        self._buffer = b""

    # =========================================================================
    # BUFFER
    # =========================================================================

    @property
    def buffered(self) -> int:
        """Number of bytes currently held."""
        return len(self._buffer)

    @property
    def buffer(self) -> bytes:
        return self._buffer

    def feed(self, data: bytes) -> None:
        """Append freshly received bytes."""
        self._buffer += data

    def reset(self) -> None:
        """Discard everything, partial response included."""
        self._buffer = b""

    # =========================================================================
    # FRAMING
    # =========================================================================

    @property
    def header_end(self) -> int:
        """Offset of the header terminator, or -1 while headers are incomplete."""
        return self._buffer.find(HEADER_TERMINATOR)

    def poll(self) -> Optional[SignalingResponse]:
        """
        Extract one complete response, if the buffer holds one.

        Returns:
            The response, or None when more bytes are needed.

        Raises:
            HTTPFramingError: Headers lack a usable Content-Length, or the
                buffer outgrew max_response_size.
        """
        header_end = self.header_end
        if header_end < 0:
            self._check_size()
            return None

        status_line, headers = parse_headers(self._buffer[:header_end])
        content_length = self._content_length(headers)

        body_start = header_end + len(HEADER_TERMINATOR)
        total = body_start + content_length
        if total > len(self._buffer):
            self._check_size()
            return None

        raw = self._buffer[:total]
        self._buffer = self._buffer[total:]
        return SignalingResponse(
            status=parse_status(status_line),
            headers=headers,
            body=raw[body_start:],
            raw=raw,
        )

    def _content_length(self, headers: Dict[str, str]) -> int:
        value = headers.get("content-length")
        if value is None:
            logger.error("No content length field specified by the server")
            raise HTTPFramingError("Missing Content-Length header", self.buffered)
        try:
            length = int(value)
        except ValueError:
            raise HTTPFramingError(f"Invalid Content-Length: {value!r}", self.buffered)
        if length < 0:
            raise HTTPFramingError(f"Negative Content-Length: {length}", self.buffered)
        return length

    def _check_size(self) -> None:
        if self.max_response_size is not None and len(self._buffer) > self.max_response_size:
            raise HTTPFramingError(
                f"Response too large: {len(self._buffer)} bytes", self.buffered
            )
