"""Configuration module for kv-poll."""
