"""
Connection Registry Module

This module keeps track of every live client connection and owns their
registration with the Multiplexer.

Invariant: the tokens held by the registry are exactly the client tokens
registered with the multiplexer. insert() registers before recording and
remove() deregisters before releasing, so the two tables never diverge.
"""

import itertools
import logging
import socket
from collections import deque
from typing import Deque, Dict, Optional, Tuple

from .multiplexer import Interest, Multiplexer, NotRegisteredError, Token
from ..config.settings import settings
from ..protocol.parser import LineBuffer

logger = logging.getLogger(__name__)


class Connection:
    """
    One accepted client connection.

    Owns the non-blocking socket, the input line buffer and the queue of
    reply bytes not yet written.

    Attributes:
        sock: The client socket (non-blocking)
        address: Peer address as returned by accept()
        token: Token the socket is registered under
        inbound: Partial input waiting for its newline
        backlog: Complete lines not yet answered while output is backed up
        outbound: Reply bytes waiting to be written
        closing: True once the connection must close after flushing
    """

    def __init__(self, sock: socket.socket, address: Tuple, token: Token):
        self.sock = sock
        self.address = address
        self.token = token
        self.inbound = LineBuffer()
        self.backlog: Deque[Optional[bytes]] = deque()
        self.outbound = bytearray()
        self.interest = Interest.READABLE
        self.closing = False
        self.requests = 0

    def __repr__(self) -> str:
        return f"<Connection {self.token} {self.address}>"

    def receive(self) -> bytes:
        """
        Read whatever is available, up to READ_BUFFER_SIZE bytes.

        Returns:
            The bytes read; b"" means the peer closed the connection

        Raises:
            BlockingIOError: Nothing to read after all
            OSError: Any other transport error
        """
        return self.sock.recv(settings.READ_BUFFER_SIZE)

    def queue(self, payload: bytes) -> None:
        self.outbound.extend(payload)

    def flush(self) -> bool:
        """
        Write as much queued output as the socket accepts.

        Returns:
            True if the queue is now empty

        Raises:
            OSError: Any transport error other than would-block
        """
        while self.outbound:
            try:
                sent = self.sock.send(self.outbound)
            except (BlockingIOError, InterruptedError):
                return False
            del self.outbound[:sent]
        return True

    def close(self) -> None:
        try:
            self.sock.close()
        except OSError as exc:
            logger.debug(f"Error closing {self}: {exc}")


class ConnectionRegistry:
    """
    Maps client tokens to their Connection and keeps the multiplexer in step.

    Usage:
        registry = ConnectionRegistry(mux)
        token = registry.allocate_token()
        registry.insert(token, Connection(sock, addr, token))
        conn = registry.get_mut(token)
        registry.remove(token).close()
    """

    def __init__(self, multiplexer: Multiplexer):
        self.multiplexer = multiplexer
        self._connections: Dict[Token, Connection] = {}
        # Client ids are never handed out twice
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, token: Token) -> bool:
        return token in self._connections

    def tokens(self) -> set:
        return set(self._connections)

    def allocate_token(self) -> Token:
        """Return a client token that has never been used before."""
        return Token.client(next(self._ids))

    def insert(self, token: Token, handle: Connection,
               interest: Interest = Interest.READABLE) -> None:
        """
        Register a new connection and record it.

        Raises:
            RegistrationError: If the multiplexer refuses the socket;
                nothing is recorded in that case
        """
        self.multiplexer.register(handle.sock, token, interest)
        handle.interest = interest
        self._connections[token] = handle

    def get_mut(self, token: Token) -> Optional[Connection]:
        """
        The connection for one dispatch step.

        Returns None if the token was removed earlier in the same batch of
        readiness events.
        """
        return self._connections.get(token)

    def set_interest(self, token: Token, interest: Interest) -> None:
        if token not in self._connections:
            raise NotRegisteredError(f"token {token} is not in the registry")
        self.multiplexer.modify(token, interest)

    def remove(self, token: Token) -> Connection:
        """
        Deregister a connection and hand it back for disposal.

        The caller closes the returned connection; deregistration always
        happens first.

        Raises:
            NotRegisteredError: If the token is unknown
        """
        handle = self._connections.pop(token, None)
        if handle is None:
            raise NotRegisteredError(f"token {token} is not in the registry")
        self.multiplexer.deregister(token)
        return handle

    def close_all(self) -> int:
        """Deregister and close every connection. Returns how many were closed."""
        count = 0
        for token in list(self._connections):
            handle = self._connections.pop(token)
            try:
                self.multiplexer.deregister(token)
            except NotRegisteredError:
                logger.warning(f"{token} was missing from the multiplexer")
            handle.close()
            count += 1
        return count
