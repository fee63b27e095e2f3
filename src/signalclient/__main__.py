"""
=============================================================================
SIGNALING CLIENT CLI ENTRY POINT
=============================================================================

Runs a headless signaling session: sign in, log peers and inbound payloads
as they arrive, sign out on Ctrl+C.

=============================================================================
USAGE
=============================================================================

    # Server on localhost:8888, name user@host
    python -m signalclient

    # Remote server
    python -m signalclient --server signal.example.org --port 8888

    # Settings from a config file (server_ip: ..., server_port: ...)
    python -m signalclient --config client.cfg

    # See every state transition
    python -m signalclient --log-level DEBUG

=============================================================================
"""

import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional

from . import __version__
from .config import ClientConfig
from .observer import LoggingObserver
from .session import SignalingSession


logger = logging.getLogger(__name__)


class _ExitObserver(LoggingObserver):
    """LoggingObserver that also tells main() when the session ended."""

    def __init__(self, done: asyncio.Event):
        super().__init__()
        self._done = done

    def on_disconnected(self) -> None:
        super().on_disconnected()
        self._done.set()

    def on_server_connection_failure(self) -> None:
        super().on_server_connection_failure()
        self._done.set()


def setup_logging(level_name: str) -> None:
    """Configure logging based on config."""
    level = getattr(logging, level_name.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    logging.getLogger("signalclient").setLevel(level)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="signalclient",
        description="Headless client for a rendezvous/signaling server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m signalclient                          # localhost:8888
  python -m signalclient --server 10.0.0.5        # Remote server
  python -m signalclient --config client.cfg      # Settings from a file
  python -m signalclient --name bob --log-level DEBUG
        """,
    )

    # ─────────────────────────────────────────────────────────────────────
    # SERVER ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--server", "-S",
        default=None,
        help="Signaling server host or IP (default: localhost)",
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=None,
        help="Signaling server port (default: 8888)",
    )

    parser.add_argument(
        "--name", "-n",
        default=None,
        help="Name shown to other peers (default: user@host)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # CONFIGURATION ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--config", "-c",
        default=None,
        help="Config file with 'key: value' lines (server_ip, server_port, ...)",
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"signalclient {__version__}",
    )

    return parser


def load_config(args: argparse.Namespace) -> ClientConfig:
    """Defaults, then environment, then config file, then CLI flags."""
    config = ClientConfig.from_env()
    if args.config:
        config = ClientConfig.from_file(args.config, base=config)

    if args.server is not None:
        config.server = args.server
    if args.port is not None:
        config.port = args.port
    if args.name is not None:
        config.client_name = args.name
    if args.log_level is not None:
        config.log_level = args.log_level

    config.validate()
    return config


async def run(config: ClientConfig) -> int:
    """Run one session until it ends. Returns the process exit code."""
    loop = asyncio.get_running_loop()
    done = asyncio.Event()
    observer = _ExitObserver(done)
    session = SignalingSession(config, observer)

    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, session.sign_out)
        except (NotImplementedError, RuntimeError):
            # Not supported on this platform; Ctrl+C raises KeyboardInterrupt instead.
            pass

    session.connect()
    try:
        await done.wait()
    finally:
        session.close()

    return 0 if observer.signed_in else 1


def main(argv: Optional[list] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args)
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    setup_logging(config.log_level)
    logger.info(f"Signaling server {config.server}:{config.port}, name {config.client_name!r}")

    try:
        return asyncio.run(run(config))
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt")
        return 0


# =============================================================================
# ENTRY POINT
# =============================================================================

if __name__ == "__main__":
    sys.exit(main())
