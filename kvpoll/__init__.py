"""
kv-poll: Single-Threaded Key-Value Server

A minimal networked key-value store whose server multiplexes every
client connection on one thread with a readiness-driven event loop,
communicating over raw TCP sockets with zlib-compressed responses.
"""

__version__ = "1.0.0"
