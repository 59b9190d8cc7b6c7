"""Capability-token-gated reverse proxy."""

__version__ = "1.0.0"
