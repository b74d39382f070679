"""Persistent stores used by gamedir runs."""

from .versions import VersionStore

__all__ = ["VersionStore"]
