"""
Protocol Parser Module

This module handles framing of the byte stream into command lines and
parsing of each line into a Command.

Commands arrive as newline-terminated text. A single read may carry part
of a command, several commands, or both, so every connection owns a
LineBuffer that keeps partial input until its newline arrives.
"""

from typing import List, Optional

from .codec import decode_value
from .commands import Command, CommandType
from ..config.settings import settings


class ProtocolParser:
    """
    Parser for the kv-poll text protocol.

    Protocol Format:
        Request:  <COMMAND> [ARGS...]\\n
        Response: one zlib stream per request

    Commands (keywords are case-sensitive):
        SET <key> <hex(compressed value)>  -> OK
        GET <key>                          -> stored bytes | NOT FOUND
        BYE                                -> Goodbye! (connection closed)
        anything else                      -> ERROR
    """

    def parse_request(self, data: str) -> Command:
        """
        Parse a raw request string into a Command object.

        Args:
            data: Raw request string (may include trailing newline)

        Returns:
            Command object representing the parsed request.
            Returns Command with type=UNKNOWN for invalid/malformed requests.

        Examples:
            >>> parser = ProtocolParser()
            >>> cmd = parser.parse_request("GET color")
            >>> cmd.type == CommandType.GET
            True
            >>> parser.parse_request("get color").type == CommandType.UNKNOWN
            True
        """
        raw = data.strip()
        if raw == "BYE":
            return Command(type=CommandType.BYE, raw=raw)

        parts = raw.split()
        if len(parts) == 3 and parts[0] == "SET":
            return self._parse_set(parts, raw)
        if len(parts) == 2 and parts[0] == "GET":
            return Command(type=CommandType.GET, key=parts[1], raw=raw)

        return Command(type=CommandType.UNKNOWN, raw=raw)

    def _parse_set(self, parts: list, raw: str) -> Command:
        """
        Parse a SET command.

        Format: SET <key> <hex>

        A value that is not valid hex becomes an empty value with
        value_malformed set, rather than a rejected command.
        """
        value = decode_value(parts[2])
        if value is None:
            return Command(
                type=CommandType.SET,
                key=parts[1],
                value_malformed=True,
                raw=raw,
            )
        return Command(type=CommandType.SET, key=parts[1], value=value, raw=raw)


class LineBuffer:
    """
    Incremental newline framing for one connection.

    Usage:
        buffer = LineBuffer()
        for line in buffer.feed(sock.recv(512)):
            ...

    feed() returns every line completed by the new bytes, without the
    trailing newline (a preceding carriage return is dropped as well).
    A line longer than max_line_length is discarded up to its newline and
    reported once as None, so the caller can answer it with an error.
    """

    def __init__(self, max_line_length: int = None):
        self.max_line_length = (
            max_line_length if max_line_length is not None else settings.MAX_LINE_LENGTH
        )
        self._buffer = bytearray()
        self._discarding = False

    def __len__(self) -> int:
        return len(self._buffer)

    @property
    def pending(self) -> bytes:
        """Bytes received after the last complete line."""
        return bytes(self._buffer)

    def clear(self) -> None:
        self._buffer.clear()
        self._discarding = False

    def feed(self, data: bytes) -> List[Optional[bytes]]:
        """
        Append received bytes and return the lines they complete.

        Args:
            data: Bytes from one read

        Returns:
            Completed lines in arrival order; None marks an over-long line
        """
        self._buffer.extend(data)
        lines: List[Optional[bytes]] = []

        while True:
            newline = self._buffer.find(b"\n")
            if newline < 0:
                break

            line = bytes(self._buffer[:newline])
            del self._buffer[:newline + 1]

            if self._discarding:
                # Tail of a line already reported as too long
                self._discarding = False
                continue

            if line.endswith(b"\r"):
                line = line[:-1]
            if len(line) > self.max_line_length:
                lines.append(None)
                continue
            lines.append(line)

        if len(self._buffer) > self.max_line_length:
            self._buffer.clear()
            if not self._discarding:
                self._discarding = True
                lines.append(None)

        return lines
