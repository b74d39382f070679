"""Decides whether a game needs rebuilding."""

from __future__ import annotations

from pathlib import Path

from .logging import get_logger
from .models import ContentVersion, Decision
from .stores import VersionStore


class ChangeDetector:
    """Compares a freshly synced version with the last successful publish.

    Only records written by a successful publish exist in the store, so a game
    whose previous attempt failed has either no record or an older version and
    is always rebuilt.
    """

    def __init__(self, store: VersionStore, public_root: Path | None = None) -> None:
        self.store = store
        self.public_root = public_root
        self.logger = get_logger("detector")

    def decide(self, name: str, version: ContentVersion) -> Decision:
        record = self.store.get(name)
        if record is None:
            self.logger.debug("game=%s no published record; build needed", name)
            return Decision.BUILD_NEEDED
        if record.version != version:
            self.logger.debug(
                "game=%s version changed %s -> %s", name, record.version[:12], version[:12]
            )
            return Decision.BUILD_NEEDED
        if self.public_root is not None and not (self.public_root / name).exists():
            self.logger.warning(
                "game=%s recorded as published but missing from %s; rebuilding",
                name,
                self.public_root,
            )
            return Decision.BUILD_NEEDED
        return Decision.SKIP_UNCHANGED


__all__ = ["ChangeDetector"]
