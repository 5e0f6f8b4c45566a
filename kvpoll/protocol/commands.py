"""
Protocol Command and Reply Definitions

This module defines the data structures for parsed commands and the
replies the server sends back.
"""

from dataclasses import dataclass
from enum import Enum, auto

from .codec import compress

OK_TEXT = "OK\n"
NOT_FOUND_TEXT = "NOT FOUND\n"
FAREWELL_TEXT = "Goodbye!\n"
ERROR_TEXT = "ERROR\n"


class CommandType(Enum):
    """Enumeration of supported command types."""
    SET = auto()
    GET = auto()
    BYE = auto()
    UNKNOWN = auto()


@dataclass
class Command:
    """
    Represents a parsed protocol command.

    Attributes:
        type: The type of command (SET, GET, BYE, UNKNOWN)
        key: The key for the operation (empty for BYE)
        value: Hex-decoded value for SET (still compressed)
        value_malformed: True when the SET argument was not valid hex
        raw: The original command line, stripped
    """
    type: CommandType
    key: str = ""
    value: bytes = b""
    value_malformed: bool = False
    raw: str = ""


@dataclass
class Reply:
    """
    Represents the bytes sent back for one command.

    Attributes:
        payload: Bytes to write to the connection
        close: True if the connection must close after the payload is sent
    """
    payload: bytes
    close: bool = False

    @classmethod
    def ok(cls) -> "Reply":
        """Acknowledge a SET."""
        return cls(payload=compress(OK_TEXT))

    @classmethod
    def not_found(cls) -> "Reply":
        return cls(payload=compress(NOT_FOUND_TEXT))

    @classmethod
    def farewell(cls) -> "Reply":
        """Answer BYE and close the connection afterwards."""
        return cls(payload=compress(FAREWELL_TEXT), close=True)

    @classmethod
    def error(cls) -> "Reply":
        return cls(payload=compress(ERROR_TEXT))

    @classmethod
    def value(cls, stored: bytes) -> "Reply":
        """
        Return a stored value verbatim.

        Stored values are already compressed by the client. An empty value
        (left behind by a malformed SET) is sent as an empty zlib stream so
        the reply is still a complete response.
        """
        if not stored:
            return cls(payload=compress(b""))
        return cls(payload=bytes(stored))
