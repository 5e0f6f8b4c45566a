#!/usr/bin/env python3
"""
Interactive Console Client for kv-poll

A simple command-line client for the kv-poll server. SET values are
compressed and hex-encoded before they are sent; every response is
decompressed before it is printed.

Usage:
    python -m kvpoll.client                  # Connect to 127.0.0.1:8080
    python -m kvpoll.client --host 1.2.3.4   # Connect to specific host
    python -m kvpoll.client --port 9090      # Connect to specific port

Commands:
    SET <key> <value>   - Store a value
    GET <key>           - Retrieve a value
    BYE                 - Close the connection and exit
"""

import argparse
import socket
import sys
from typing import Optional

from .config.settings import settings
from .protocol.codec import ResponseDecoder, encode_value

PROMPT = "Enter command (SET key value, GET key, BYE to exit): "


class KVClient:
    """
    Blocking TCP client for kv-poll.

    Usage:
        with KVClient('127.0.0.1', 8080) as client:
            client.set("color", "red")
            client.get("color")  # b'red'
    """

    def __init__(self, host: str = None, port: int = None, timeout: float = None):
        self.host = host if host is not None else settings.HOST
        self.port = port if port is not None else settings.PORT
        self.timeout = timeout if timeout is not None else settings.CLIENT_TIMEOUT
        self.socket: Optional[socket.socket] = None
        self._pending = b""

    def connect(self) -> None:
        """Connect to the server."""
        self.socket = socket.create_connection((self.host, self.port), timeout=self.timeout)

    def close(self) -> None:
        """Disconnect from the server."""
        if self.socket:
            try:
                self.socket.close()
            except OSError:
                pass
            self.socket = None
        self._pending = b""

    def send_line(self, line: str) -> bytes:
        """
        Send one raw command line and return the decompressed response.

        Raises:
            ConnectionError: If not connected, or the server closed the
                connection before a complete response arrived
            ValueError: If the response is not a valid zlib stream
            socket.timeout: If the server does not answer in time
        """
        if not self.socket:
            raise ConnectionError("not connected")

        if not line.endswith('\n'):
            line += '\n'
        self.socket.sendall(line.encode('utf-8'))
        return self._read_response()

    def _read_response(self) -> bytes:
        decoder = ResponseDecoder()
        done = decoder.feed(self._pending) if self._pending else False

        while not done:
            chunk = self.socket.recv(settings.READ_BUFFER_SIZE)
            if not chunk:
                raise ConnectionError("connection closed by server")
            done = decoder.feed(chunk)

        self._pending = decoder.unused_data
        return decoder.result

    def set(self, key: str, value) -> bytes:
        """Store a value. Returns the server acknowledgment (b"OK\\n")."""
        return self.send_line(f"SET {key} {encode_value(value)}")

    def get(self, key: str) -> bytes:
        """Fetch a value, or b"NOT FOUND\\n" if the key was never set."""
        return self.send_line(f"GET {key}")

    def bye(self) -> bytes:
        """End the session. Returns the farewell and closes the socket."""
        try:
            return self.send_line("BYE")
        finally:
            self.close()

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def build_line(command: str) -> Optional[str]:
    """
    Translate a console command into a wire line.

    SET values are compressed and hex-encoded. Returns None for SET/GET
    commands with the wrong number of arguments.
    """
    parts = command.split()
    if parts and parts[0] == "SET":
        if len(parts) != 3:
            return None
        return f"SET {parts[1]} {encode_value(parts[2])}"
    if parts and parts[0] == "GET":
        if len(parts) != 2:
            return None
        return f"GET {parts[1]}"
    return command


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        description="Interactive console client for kv-poll"
    )
    parser.add_argument(
        "--host",
        type=str,
        default=settings.HOST,
        help=f"Server host (default: {settings.HOST})"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=settings.PORT,
        help=f"Server port (default: {settings.PORT})"
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=settings.CLIENT_TIMEOUT,
        help=f"Socket timeout in seconds (default: {settings.CLIENT_TIMEOUT})"
    )

    args = parser.parse_args(argv)
    client = KVClient(args.host, args.port, args.timeout)

    try:
        client.connect()
    except OSError as e:
        print(f"Connection error: {e}")
        return 1

    print(f"Connected to the server at {args.host}:{args.port}")

    try:
        while True:
            try:
                command = input(PROMPT).strip()
            except EOFError:
                print()
                break

            if not command:
                continue

            line = build_line(command)
            if line is None:
                print("Usage: SET <key> <value> | GET <key> | BYE")
                continue

            try:
                response = client.send_line(line)
            except ConnectionError:
                print("Connection closed by server.")
                break
            except ValueError as e:
                print(f"Invalid response: {e}")
                continue
            except OSError as e:
                print(f"Connection error: {e}")
                break

            print(f"Server response: {response.decode('utf-8', errors='replace')}")

            if command == "BYE":
                print("Exiting...")
                break

    except KeyboardInterrupt:
        print("\nInterrupted.")
    finally:
        client.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
