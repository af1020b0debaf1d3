"""Self-hosted pub package registry service."""

__version__ = "0.4.0"
