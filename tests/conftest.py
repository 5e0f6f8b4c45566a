"""
Pytest Configuration and Fixtures

This module provides shared fixtures and configuration for all tests.
"""

import asyncio
import socket
import threading
import pytest
import pytest_asyncio
from contextlib import closing
from typing import AsyncGenerator, Generator

from kvpoll.cache.store import KVStore
from kvpoll.network.handler import RequestHandler
from kvpoll.network.multiplexer import Multiplexer
from kvpoll.network.registry import ConnectionRegistry
from kvpoll.network.tcp_server import KVServer
from kvpoll.protocol.codec import ResponseDecoder, encode_value
from kvpoll.protocol.parser import LineBuffer, ProtocolParser


def find_free_port() -> int:
    """Find an available port for testing."""
    with closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as s:
        s.bind(('', 0))
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return s.getsockname()[1]


def read_response(sock: socket.socket) -> bytes:
    """Read one complete compressed response from a blocking socket."""
    decoder = ResponseDecoder()
    while True:
        chunk = sock.recv(512)
        if not chunk:
            raise ConnectionError("connection closed before the response ended")
        if decoder.feed(chunk):
            return decoder.result


# ============================================================================
# KVStore Fixtures
# ============================================================================

@pytest.fixture
def store() -> KVStore:
    """Create a fresh, empty KVStore."""
    return KVStore()


# ============================================================================
# Protocol Fixtures
# ============================================================================

@pytest.fixture
def parser() -> ProtocolParser:
    """Create a ProtocolParser instance."""
    return ProtocolParser()


@pytest.fixture
def line_buffer() -> LineBuffer:
    """Create a LineBuffer with a small line limit (16 bytes)."""
    return LineBuffer(max_line_length=16)


@pytest.fixture
def handler(store: KVStore) -> RequestHandler:
    """Create a RequestHandler over the fresh store."""
    return RequestHandler(store)


# ============================================================================
# Multiplexer Fixtures
# ============================================================================

@pytest.fixture
def multiplexer() -> Generator[Multiplexer, None, None]:
    """Create a Multiplexer and close it after the test."""
    mux = Multiplexer()
    yield mux
    mux.close()


@pytest.fixture
def registry(multiplexer: Multiplexer) -> ConnectionRegistry:
    """Create a ConnectionRegistry bound to the multiplexer fixture."""
    return ConnectionRegistry(multiplexer)


@pytest.fixture
def socket_pair() -> Generator[tuple, None, None]:
    """A connected, non-blocking pair of sockets."""
    left, right = socket.socketpair()
    left.setblocking(False)
    right.setblocking(False)
    yield left, right
    left.close()
    right.close()


# ============================================================================
# Server Fixtures
# ============================================================================

@pytest.fixture
def server_port() -> int:
    """Get a free port for server testing."""
    return find_free_port()


@pytest.fixture
def bound_server(server_port: int) -> Generator[KVServer, None, None]:
    """
    A bound server that is NOT running.

    Tests drive it one batch at a time with run_once(), which keeps
    token allocation and registry state deterministic.
    """
    srv = KVServer(host='127.0.0.1', port=server_port)
    srv.bind()
    yield srv
    srv.close()


@pytest.fixture
def server(server_port: int) -> Generator[KVServer, None, None]:
    """
    Create and start a server instance for testing.

    This fixture:
    1. Creates a KVServer on a random free port
    2. Runs its dispatch loop in a background thread
    3. Yields the server for testing
    4. Stops the loop and waits for the thread after the test
    """
    srv = KVServer(host='127.0.0.1', port=server_port)
    srv.poll_timeout = 0.05
    srv.bind()

    thread = threading.Thread(target=srv.serve_forever, daemon=True)
    thread.start()

    yield srv

    srv.stop()
    thread.join(timeout=5)


# ============================================================================
# Client Fixtures
# ============================================================================

class AsyncClient:
    """
    Helper class for testing server interactions.

    Provides a simple async context manager interface for
    sending commands and receiving decompressed responses.

    Usage:
        async with AsyncClient('127.0.0.1', 8080) as client:
            response = await client.set("key", "value")
            assert response == b"OK\\n"
    """

    def __init__(self, host: str, port: int):
        self.host = host
        self.port = port
        self.reader = None
        self.writer = None

    async def connect(self) -> None:
        """Establish connection to server."""
        self.reader, self.writer = await asyncio.open_connection(
            self.host, self.port
        )

    async def disconnect(self) -> None:
        """Close connection to server."""
        if self.writer:
            self.writer.close()
            try:
                await self.writer.wait_closed()
            except Exception:
                pass

    async def send_command(self, command: str) -> bytes:
        """
        Send a command and receive the decompressed response.

        Args:
            command: Command string (newline will be added if missing)

        Returns:
            Decompressed response bytes
        """
        if not command.endswith('\n'):
            command += '\n'

        self.writer.write(command.encode())
        await self.writer.drain()

        return await self.read_response()

    async def read_response(self) -> bytes:
        decoder = ResponseDecoder()
        while True:
            chunk = await asyncio.wait_for(self.reader.read(512), timeout=5)
            if not chunk:
                raise ConnectionError("connection closed before the response ended")
            if decoder.feed(chunk):
                return decoder.result

    async def set(self, key: str, value: str) -> bytes:
        return await self.send_command(f"SET {key} {encode_value(value)}")

    async def get(self, key: str) -> bytes:
        return await self.send_command(f"GET {key}")

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()


@pytest.fixture
def client_factory(server_port: int):
    """
    Factory fixture to create test clients.

    Usage:
        async def test_something(server, client_factory):
            async with client_factory() as client:
                response = await client.get("key")
    """
    def factory() -> AsyncClient:
        return AsyncClient('127.0.0.1', server_port)
    return factory


@pytest_asyncio.fixture
async def client_reader_writer(
    server: KVServer,
    server_port: int
) -> AsyncGenerator[tuple, None]:
    """
    Create a raw reader/writer pair connected to the server.

    Useful for low-level protocol testing.
    """
    reader, writer = await asyncio.open_connection('127.0.0.1', server_port)

    yield reader, writer

    writer.close()
    try:
        await writer.wait_closed()
    except ConnectionError:
        pass


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )

