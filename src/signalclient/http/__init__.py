"""
=============================================================================
HTTP PROTOCOL COMPONENTS
=============================================================================

The signaling dialect of HTTP/1.0, in two halves:

    request.py   Builders for sign-in, wait, relay and sign-out requests
    framer.py    Reassembles responses from a byte stream

Nothing here touches a socket; the session feeds bytes in and writes the
bytes these builders produce.

=============================================================================
"""

from .framer import (
    HEADER_TERMINATOR,
    HTTPFramingError,
    ResponseFramer,
    SignalingResponse,
    parse_headers,
    parse_status,
)
from .request import (
    SignalingRequest,
    message_request,
    sign_in_request,
    sign_out_request,
    wait_request,
)

__all__ = [
    # Responses
    "HEADER_TERMINATOR",
    "HTTPFramingError",
    "ResponseFramer",
    "SignalingResponse",
    "parse_headers",
    "parse_status",
    # Requests
    "SignalingRequest",
    "message_request",
    "sign_in_request",
    "sign_out_request",
    "wait_request",
]
