"""Incremental builder for a static directory of web games."""

__version__ = "0.1.0"
