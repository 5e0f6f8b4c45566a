"""Protocol module for kv-poll."""

from .codec import ResponseDecoder, compress, decode_value, decompress, encode_value
from .commands import Command, CommandType, Reply
from .parser import LineBuffer, ProtocolParser

__all__ = [
    "Command",
    "CommandType",
    "LineBuffer",
    "ProtocolParser",
    "Reply",
    "ResponseDecoder",
    "compress",
    "decode_value",
    "decompress",
    "encode_value",
]
