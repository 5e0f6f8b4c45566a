"""
Request Handler Module

Turns one complete command line into a Reply, applying it to the shared
KVStore on the way.
"""

import logging

from ..cache.store import KVStore
from ..protocol.commands import Command, CommandType, Reply
from ..protocol.parser import ProtocolParser

logger = logging.getLogger(__name__)


class RequestHandler:
    """
    Executes protocol commands against a KVStore.

    Usage:
        handler = RequestHandler(store)
        reply = handler.handle(b"GET color")
        sock.send(reply.payload)
        if reply.close:
            ...

    Request-level failures (unknown command, missing key) are replies,
    never exceptions.
    """

    def __init__(self, store: KVStore, parser: ProtocolParser = None):
        self.store = store
        self.parser = parser if parser is not None else ProtocolParser()

    def handle(self, line: bytes) -> Reply:
        """
        Parse and execute one command line.

        Args:
            line: Command bytes without the trailing newline

        Returns:
            Reply with the payload to send and the close flag
        """
        command = self.parser.parse_request(line.decode("utf-8", errors="replace"))
        return self.execute(command)

    def execute(self, command: Command) -> Reply:
        if command.type == CommandType.SET:
            if command.value_malformed:
                logger.warning(f"SET {command.key}: value is not valid hex, storing empty value")
            self.store.set(command.key, command.value)
            return Reply.ok()

        if command.type == CommandType.GET:
            value = self.store.get(command.key)
            return Reply.value(value) if value is not None else Reply.not_found()

        if command.type == CommandType.BYE:
            return Reply.farewell()

        logger.debug(f"Unrecognized command: {command.raw!r}")
        return Reply.error()
