"""
=============================================================================
CORE CLIENT COMPONENTS
=============================================================================

The low-level pieces the session is assembled from:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                          RESOLVER                                   │
    │  • Turns the server hostname into an IP without blocking            │
    │  • One lookup at a time; IP literals skip it                        │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CHANNEL                                     │
    │  • One TCP socket as connect / data / close events                  │
    │  • Reusable; late callbacks from abandoned connections are dropped │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          LINKS                                       │
    │  • CommandLink: request/response exchanges, one pending request    │
    │  • NotifyLink: the long-poll wait, re-armed after each answer      │
    └─────────────────────────────────────────────────────────────────────┘

    RetryTimer sits beside them: the cancelable deferred reconnect.

Everything runs on one asyncio event loop, so none of it needs locks.

=============================================================================
"""

from .connection import Channel, ChannelState, error_code
from .links import CommandLink, ExchangeKind, NotifyLink
from .resolver import AddressResolver, is_ip_literal
from .retry import RetryTimer, loop_scheduler

__all__ = [
    "Channel",          # One client socket as events
    "ChannelState",     # CLOSED / CONNECTING / CONNECTED
    "error_code",       # Exception → errno
    "CommandLink",      # Command socket sub-state
    "ExchangeKind",     # SIGN_IN / RELAY / SIGN_OUT
    "NotifyLink",       # Long-poll socket sub-state
    "AddressResolver",  # Async hostname lookup
    "is_ip_literal",
    "RetryTimer",       # Cancelable deferred reconnect
    "loop_scheduler",
]
