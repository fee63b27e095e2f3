"""
=============================================================================
CLIENT CONFIGURATION
=============================================================================

Centralized configuration for the signaling client.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m signalclient --server 10.0.0.5                  │
    │                                                                      │
    │   2. Config file (--config client.cfg)                              │
    │      └── server_ip: 10.0.0.5                                        │
    │                                                                      │
    │   3. Environment variables                                          │
    │      └── SIGNAL_SERVER=10.0.0.5 python -m signalclient             │
    │                                                                      │
    │   4. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import getpass
import os
import socket
from dataclasses import dataclass, field, replace
from typing import Optional


DEFAULT_PORT = 8888


def default_client_name() -> str:
    """Name shown to other peers: "<user>@<host>"."""
    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = "user"
    return f"{user}@{socket.gethostname()}"


@dataclass
class ClientConfig:
    """
    Configuration for a signaling session.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    SERVER
    - server, port

    IDENTITY
    - client_name

    CONNECTION
    - reconnect_delay, max_response_size

    LOGGING
    - log_level

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # SERVER
    # ─────────────────────────────────────────────────────────────────────

    server: str = "localhost"
    """Hostname or IP literal of the signaling server."""

    port: int = DEFAULT_PORT
    """
    Server port. connect() substitutes this default when handed a port
    of zero or less.
    """

    # ─────────────────────────────────────────────────────────────────────
    # IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    client_name: str = field(default_factory=default_client_name)
    """Display name other peers see in their directory."""

    # ─────────────────────────────────────────────────────────────────────
    # CONNECTION
    # ─────────────────────────────────────────────────────────────────────

    reconnect_delay: float = 2.0
    """Seconds to wait before retrying a refused sign-in connection."""

    max_response_size: int = 1024 * 1024
    """
    Upper bound on a buffered response. A server that never finishes its
    headers is cut off here instead of growing the buffer forever.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR)."""

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """
        Create configuration from environment variables.

        SIGNAL_SERVER           Server host (default: localhost)
        SIGNAL_PORT             Server port (default: 8888)
        SIGNAL_CLIENT_NAME      Display name (default: user@host)
        SIGNAL_RECONNECT_DELAY  Retry delay in seconds (default: 2)
        SIGNAL_LOG_LEVEL        Logging level (default: INFO)
        """
        return cls(
            server=os.getenv("SIGNAL_SERVER", "localhost"),
            port=int(os.getenv("SIGNAL_PORT", str(DEFAULT_PORT))),
            client_name=os.getenv("SIGNAL_CLIENT_NAME") or default_client_name(),
            reconnect_delay=float(os.getenv("SIGNAL_RECONNECT_DELAY", "2")),
            log_level=os.getenv("SIGNAL_LOG_LEVEL", "INFO"),
        )

    @classmethod
    def from_file(cls, path: str, base: Optional["ClientConfig"] = None) -> "ClientConfig":
        """
        Load a "key: value" config file on top of base (or the defaults).

        Blank lines and lines starting with '#' are skipped, as is
        anything after a '#' inside a value. Recognised keys:

            server_ip, server_port, client_name, reconnect_delay, log_level

        Raises:
            OSError: The file cannot be read.
            ValueError: A numeric value does not parse.
        """
        values = {}
        with open(path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith("#"):
                    continue
                if ":" not in line:
                    continue
                key, value = line.split(":", 1)
                value = value.split("#", 1)[0].strip()
                values[key.strip()] = value

        overrides = {}
        if "server_ip" in values:
            overrides["server"] = values["server_ip"]
        if "server_port" in values:
            overrides["port"] = int(values["server_port"])
        if "client_name" in values:
            overrides["client_name"] = values["client_name"]
        if "reconnect_delay" in values:
            overrides["reconnect_delay"] = float(values["reconnect_delay"])
        if "log_level" in values:
            overrides["log_level"] = values["log_level"]

        return replace(base or cls(), **overrides)

    def validate(self) -> None:
        """
        Validate configuration values.

        Called at startup so a bad port or delay fails before any socket
        is opened.
        """
        if not self.server:
            raise ValueError("server must not be empty")

        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 1-65535.")

        if not self.client_name:
            raise ValueError("client_name must not be empty")

        if self.reconnect_delay <= 0:
            raise ValueError("reconnect_delay must be > 0")

        if self.max_response_size < 1024:
            raise ValueError("max_response_size must be >= 1024")
