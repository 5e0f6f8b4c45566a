#!/usr/bin/env python3
"""
kv-poll Server Entry Point

This is the main entry point for starting the kv-poll server.

Usage:
    python -m kvpoll.server                    # Default settings (127.0.0.1:8080)
    python -m kvpoll.server --port 9090        # Custom port
    python -m kvpoll.server --host 0.0.0.0     # Custom host
    python -m kvpoll.server --debug            # Enable debug logging

Environment Variables:
    KV_POLL_HOST        - Server bind address
    KV_POLL_PORT        - Server port
    KV_POLL_BACKLOG     - Listen backlog
    KV_POLL_DEBUG       - Enable debug mode (true/false)
    KV_POLL_LOG_LEVEL   - Log level when not in debug mode
"""

import argparse
import logging
import signal
import sys

from .cache.store import KVStore
from .config.settings import settings
from .network.tcp_server import KVServer


def parse_args(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="kv-poll: Single-Threaded Key-Value Server",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "--host",
        type=str,
        default=settings.HOST,
        help="Host address to bind to",
    )

    parser.add_argument(
        "--port",
        type=int,
        default=settings.PORT,
        help="Port number to listen on",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        default=settings.DEBUG,
        help="Enable debug logging",
    )

    return parser.parse_args(argv)


def setup_logging(debug: bool = False) -> None:
    """Configure logging based on debug flag."""
    level = logging.DEBUG if debug else getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
        ]
    )


def main(argv=None) -> int:
    """Main entry point for the server."""
    args = parse_args(argv)

    setup_logging(debug=args.debug)
    logger = logging.getLogger(__name__)

    server = KVServer(host=args.host, port=args.port, store=KVStore())

    def shutdown_handler(signum, frame):
        """Stop the dispatch loop on SIGTERM/SIGINT."""
        logger.info(f"Received {signal.Signals(signum).name}, initiating shutdown...")
        server.stop()

    signal.signal(signal.SIGTERM, shutdown_handler)
    signal.signal(signal.SIGINT, shutdown_handler)

    # Log startup info
    logger.info("Starting kv-poll server")
    logger.info(f"  Host: {args.host}")
    logger.info(f"  Port: {args.port}")
    logger.info(f"  Debug: {args.debug}")

    try:
        server.serve_forever()
    except OSError as e:
        logger.error(f"Server error: {e}")
        return 1

    logger.info("Server shutdown complete")
    return 0


if __name__ == "__main__":
    sys.exit(main())
