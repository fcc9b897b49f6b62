"""Discover, read, search and delete AI coding-agent sessions inside workspaces."""

__version__ = "0.1.0"
