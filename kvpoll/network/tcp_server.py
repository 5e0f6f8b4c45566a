"""
Single-Threaded TCP Server Module

This module implements the dispatch loop of the kv-poll server: one thread
multiplexes the listening socket and every client connection.

    poll() ──► [ReadinessEvent, ...]
                   │
                   ├── Token.LISTENER ──► accept until would-block,
                   │                      register each new socket
                   │
                   └── Token(CLIENT, n) ──► recv one chunk
                                              │
                                              ├── b""        ──► close
                                              └── lines      ──► RequestHandler
                                                                  │
                                                                  └──► queue + flush reply

No call other than poll() ever blocks. A slow or misbehaving client only
affects its own connection: its errors close that connection and the loop
moves on to the next event.
"""

import logging
import socket
import threading
from typing import Optional, Tuple

from .handler import RequestHandler
from .multiplexer import (
    Interest,
    Multiplexer,
    MultiplexerError,
    NotRegisteredError,
    ReadinessEvent,
    RegistrationError,
    Token,
)
from .registry import Connection, ConnectionRegistry
from ..cache.store import KVStore
from ..config.settings import settings
from ..protocol.commands import Reply

logger = logging.getLogger(__name__)


class KVServer:
    """
    Readiness-driven TCP server for the kv-poll service.

    All client connections are served by the thread that calls
    serve_forever(). The KVStore is shared by every connection and is
    only touched from that thread, so it needs no lock.

    Features:
    - Non-blocking sockets multiplexed by a selector
    - Persistent connections (multiple commands per connection)
    - Partial and pipelined commands framed per connection
    - Per-connection error isolation

    Usage:
        server = KVServer(host='127.0.0.1', port=8080)
        server.serve_forever()  # Runs until stop() is called

    Attributes:
        host: Server bind address (e.g., '127.0.0.1')
        port: Server port number (e.g., 8080)
        store: The KVStore instance shared by all connections
        handler: The RequestHandler applying commands to the store
    """

    def __init__(
            self,
            host: str = None,
            port: int = None,
            store: KVStore = None,
    ):
        """
        Initialize the server.

        Args:
            host: Bind address (default from settings)
            port: Port number (default from settings, 0 picks a free port)
            store: KVStore instance (creates new one if not provided)
        """
        self.host = host if host is not None else settings.HOST
        self.port = port if port is not None else settings.PORT
        self.store = store if store is not None else KVStore()
        self.handler = RequestHandler(self.store)
        self.poll_timeout = settings.POLL_TIMEOUT

        self._listener: Optional[socket.socket] = None
        self._multiplexer: Optional[Multiplexer] = None
        self.registry: Optional[ConnectionRegistry] = None

        # Server state
        self._running = False
        self._shutdown_event = threading.Event()
        self._connection_count = 0
        self._total_requests = 0

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (host, port); the real port once bound to port 0."""
        if self._listener is not None:
            return self._listener.getsockname()[:2]
        return (self.host, self.port)

    def is_running(self) -> bool:
        """Check if the dispatch loop is currently running."""
        return self._running

    def bind(self) -> None:
        """
        Create the listening socket and the multiplexer.

        Any failure here is fatal and propagates to the caller.
        """
        if self._listener is not None:
            return

        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, self.port))
            sock.listen(settings.BACKLOG)
            sock.setblocking(False)
        except OSError as e:
            logger.error(f"Failed to bind to {self.host}:{self.port}: {e}")
            sock.close()
            raise

        try:
            multiplexer = Multiplexer()
            multiplexer.register(sock, Token.LISTENER, Interest.READABLE)
        except (OSError, MultiplexerError) as e:
            logger.error(f"Failed to initialize the multiplexer: {e}")
            sock.close()
            raise

        self._listener = sock
        self._multiplexer = multiplexer
        self.registry = ConnectionRegistry(multiplexer)

        logger.info(f"Serving on {self.address}")

    def serve_forever(self) -> None:
        """
        Run the dispatch loop until stop() is called.

        Binds first if bind() has not been called yet. Fatal errors
        (a failing accept()) propagate; the server is closed either way.
        """
        self.bind()
        self._running = True

        try:
            while not self._shutdown_event.is_set():
                self.run_once(self.poll_timeout)
        finally:
            self._running = False
            self.close()

    def run_once(self, timeout: Optional[float] = None) -> int:
        """
        Wait for one batch of readiness events and dispatch it.

        Args:
            timeout: Seconds to wait; None blocks until something is ready

        Returns:
            Number of events dispatched (0 on timeout)
        """
        events = self._multiplexer.poll(timeout)
        for event in events:
            self._dispatch(event)
        return len(events)

    def stop(self) -> None:
        """
        Ask the dispatch loop to exit.

        Safe to call from another thread or a signal handler; the loop
        notices within one poll timeout.
        """
        self._shutdown_event.set()

    def close(self) -> None:
        """Close every connection, the listener and the multiplexer."""
        if self._listener is None:
            return

        closed = self.registry.close_all()
        if closed:
            logger.info(f"Closed {closed} client connection(s)")

        try:
            self._multiplexer.deregister(Token.LISTENER)
        except NotRegisteredError:
            pass
        self._listener.close()
        self._multiplexer.close()

        self._listener = None
        self._multiplexer = None
        self._shutdown_event.clear()
        logger.info("Server closed")

    def _dispatch(self, event: ReadinessEvent) -> None:
        """Route one readiness event to the listener or a connection."""
        if event.token.is_listener:
            self._accept_connections()
            return

        conn = self.registry.get_mut(event.token)
        if conn is None:
            # Closed by an earlier event in the same batch
            return

        try:
            if event.readable:
                self._service_readable(conn)
            if event.writable and conn.token in self.registry:
                self._flush(conn)
        except (OSError, MultiplexerError) as exc:
            logger.warning(f"Closing {conn.token} ({conn.address}): {exc}")
            self._close_connection(conn)

    def _accept_connections(self) -> None:
        """
        Accept every pending connection.

        Stops at would-block. Any other accept() error is fatal for the
        whole server and propagates out of serve_forever().
        """
        while True:
            try:
                sock, addr = self._listener.accept()
            except BlockingIOError:
                return
            except OSError as e:
                logger.error(f"Accept error: {e}")
                raise

            try:
                sock.setblocking(False)
                sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
                token = self.registry.allocate_token()
                self.registry.insert(token, Connection(sock, addr, token))
            except (OSError, RegistrationError) as e:
                # Only this socket is lost; the listener keeps accepting
                logger.warning(f"Dropping connection from {addr}: {e}")
                sock.close()
                continue

            self._connection_count += 1
            logger.debug(f"Client connected: {addr} as {token}")

    def _service_readable(self, conn: Connection) -> None:
        """
        Read one chunk from a client and answer every complete command.

        Protocol flow:
            1. recv() up to READ_BUFFER_SIZE bytes
            2. Empty read: peer closed, close the connection
            3. Feed the bytes to the connection's LineBuffer
            4. Hand each complete line to the RequestHandler
            5. Queue the replies and try to write them right away

        Lines that arrive while MAX_OUTBOUND_BUFFER bytes of replies are
        already queued wait in the connection's backlog.
        """
        try:
            data = conn.receive()
        except (BlockingIOError, InterruptedError):
            # Spurious wake-up
            return

        if not data:
            logger.debug(f"Client disconnected: {conn.address}")
            self._close_connection(conn)
            return

        if conn.closing:
            # Input after BYE is ignored while the farewell drains
            return

        conn.backlog.extend(conn.inbound.feed(data))
        self._answer_backlog(conn)
        self._flush(conn)

    def _answer_backlog(self, conn: Connection) -> None:
        """Answer buffered lines until the reply queue reaches its limit."""
        while conn.backlog and len(conn.outbound) < settings.MAX_OUTBOUND_BUFFER:
            line = conn.backlog.popleft()
            if line is None:
                logger.warning(f"{conn.token} sent a line longer than {conn.inbound.max_line_length} bytes")
                reply = Reply.error()
            else:
                reply = self.handler.handle(line)

            conn.requests += 1
            self._total_requests += 1
            conn.queue(reply.payload)

            if reply.close:
                logger.debug(f"Client requested close: {conn.address}")
                conn.closing = True
                conn.inbound.clear()
                conn.backlog.clear()

    def _flush(self, conn: Connection) -> None:
        """
        Write queued replies and adjust interest.

        WRITABLE is only requested while output is pending; the selector is
        level-triggered and would otherwise wake on every poll. A connection
        with a full reply queue or unanswered lines is not read from until
        it catches up, so its queue stays bounded.
        """
        drained = conn.flush()
        while drained and conn.backlog:
            self._answer_backlog(conn)
            drained = conn.flush()

        if drained and conn.closing:
            self._close_connection(conn)
            return

        if conn.backlog or len(conn.outbound) >= settings.MAX_OUTBOUND_BUFFER:
            interest = Interest.WRITABLE
        elif drained:
            interest = Interest.READABLE
        else:
            interest = Interest.READABLE | Interest.WRITABLE
        if interest != conn.interest:
            self.registry.set_interest(conn.token, interest)
            conn.interest = interest

    def _close_connection(self, conn: Connection) -> None:
        """Deregister a connection, then close its socket."""
        try:
            self.registry.remove(conn.token)
        except NotRegisteredError as e:
            logger.warning(f"Registry out of step for {conn.token}: {e}")
        finally:
            conn.close()

        logger.debug(f"Closed {conn.token} after {conn.requests} request(s)")

    def get_stats(self) -> dict:
        """
        Get server statistics.

        Returns:
            Dictionary with server stats including connection counts,
            request counts, and store statistics.
        """
        return {
            "running": self._running,
            "host": self.host,
            "port": self.address[1],
            "total_connections": self._connection_count,
            "active_connections": len(self.registry) if self.registry is not None else 0,
            "total_requests": self._total_requests,
            "store_stats": self.store.get_stats(),
        }


def run_server(host: str = None, port: int = None) -> None:
    """
    Convenience function to create and run the server.

    Args:
        host: Bind address (default from settings)
        port: Port number (default from settings)

    Usage:
        run_server(port=8080)
    """
    server = KVServer(host=host, port=port)

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        logger.info("Server shutdown requested")
