"""Network module for kv-poll."""

from .handler import RequestHandler
from .multiplexer import (
    Interest,
    Multiplexer,
    MultiplexerError,
    NotRegisteredError,
    ReadinessEvent,
    RegistrationError,
    Token,
    TokenKind,
)
from .registry import Connection, ConnectionRegistry
from .tcp_server import KVServer, run_server

__all__ = [
    "Connection",
    "ConnectionRegistry",
    "Interest",
    "KVServer",
    "Multiplexer",
    "MultiplexerError",
    "NotRegisteredError",
    "ReadinessEvent",
    "RegistrationError",
    "RequestHandler",
    "Token",
    "TokenKind",
    "run_server",
]
