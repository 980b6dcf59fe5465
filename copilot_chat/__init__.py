"""Streaming Copilot chat client with incremental file context."""

__version__ = "0.1.0"
