"""
=============================================================================
ADDRESS RESOLVER
=============================================================================

Resolves the server hostname to an IP address without blocking the event
loop. getaddrinfo() runs through loop.getaddrinfo (the loop's executor),
and the answer comes back as a callback on the loop thread:

    start("signal.example.org", 8888, callback)
        │
        ▼
    loop.getaddrinfo(...)        (runs off-loop)
        │
        ▼
    callback("203.0.113.7", None)       or     callback(None, gaierror)

One lookup at a time. An IP literal needs no lookup at all.

=============================================================================
"""

import asyncio
import ipaddress
import logging
import socket
from typing import Callable, Optional


logger = logging.getLogger(__name__)

ResolveCallback = Callable[[Optional[str], Optional[OSError]], None]


def is_ip_literal(host: str) -> bool:
    """True for "10.0.0.5" or "::1", False for hostnames."""
    try:
        ipaddress.ip_address(host)
    except ValueError:
        return False
    return True


class AddressResolver:
    """
    Asynchronous hostname lookup with at most one request in flight.

    Attributes:
        family: Address family to ask for. IPv4 by default.
    """

    def __init__(
        self,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        family: int = socket.AF_INET,
    ):
        self.family = family
        self._loop = loop
        self._task: Optional[asyncio.Task] = None

    @staticmethod
    def needs_resolution(host: str) -> bool:
        return not is_ip_literal(host)

    @property
    def in_flight(self) -> bool:
        return self._task is not None

    def start(self, host: str, port: int, callback: ResolveCallback) -> bool:
        """
        Begin resolving host.

        Returns False if a lookup is already running or no event loop is
        available; the callback is not invoked in that case.
        """
        if self._task is not None:
            logger.warning(f"Resolution of {host} rejected, another lookup is running")
            return False
        try:
            loop = self._loop or asyncio.get_running_loop()
        except RuntimeError:
            logger.error("No running event loop for address resolution")
            return False

        self._task = loop.create_task(self._resolve(loop, host, port, callback))
        return True

    async def _resolve(
        self,
        loop: asyncio.AbstractEventLoop,
        host: str,
        port: int,
        callback: ResolveCallback,
    ) -> None:
        try:
            infos = await loop.getaddrinfo(
                host, port, family=self.family, type=socket.SOCK_STREAM
            )
        except OSError as e:
            self._task = None
            logger.warning(f"Failed to resolve {host}: {e}")
            callback(None, e)
            return

        self._task = None
        if not infos:
            callback(None, socket.gaierror(f"No addresses for {host}"))
            return

        ip = infos[0][4][0]
        logger.debug(f"Resolved {host} to {ip}")
        callback(ip, None)

    def cancel(self) -> None:
        """Abandon the lookup in flight, if any. Its callback never runs."""
        task = self._task
        self._task = None
        if task is not None and not task.done():
            task.cancel()
