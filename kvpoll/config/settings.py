"""
kv-poll Configuration Settings

This module contains all configuration constants for the kv-poll server
and its console client. Values marked with an environment variable can be
overridden without touching the code.
"""

import os
from dataclasses import dataclass


@dataclass
class Settings:
    """Server configuration settings."""

    # Network settings
    HOST: str = os.environ.get("KV_POLL_HOST", "127.0.0.1")
    PORT: int = int(os.environ.get("KV_POLL_PORT", "8080"))
    BACKLOG: int = int(os.environ.get("KV_POLL_BACKLOG", "128"))

    # Connection settings
    READ_BUFFER_SIZE: int = 512  # Bytes read per readiness event
    MAX_LINE_LENGTH: int = 65536  # Longest command accepted without a newline
    MAX_OUTBOUND_BUFFER: int = 1048576  # Queued reply bytes before a connection stops being read
    POLL_TIMEOUT: float = 0.5  # Seconds between checks of the running flag

    # Codec settings
    COMPRESSION_LEVEL: int = -1  # zlib default level

    # Client settings
    CLIENT_TIMEOUT: float = 5.0

    # Logging settings
    DEBUG: bool = os.environ.get("KV_POLL_DEBUG", "false").lower() == "true"
    LOG_LEVEL: str = os.environ.get("KV_POLL_LOG_LEVEL", "INFO")


# Global settings instance
settings = Settings()
