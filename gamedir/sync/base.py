"""Base class for repository synchronizer backends."""

from __future__ import annotations

import shutil
import tempfile
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from ..logging import get_logger
from ..models import ContentVersion, GameSpec, WorkingCopy

logger = get_logger("sync")


class Synchronizer(ABC):
    """Produces a scratch working copy of a game's source plus its content version."""

    def __init__(self, scratch_root: Path | None = None) -> None:
        self.scratch_root = scratch_root

    @contextmanager
    def checkout(self, spec: GameSpec) -> Iterator[WorkingCopy]:
        """Yield a fresh working copy for ``spec`` and remove it on exit."""
        if self.scratch_root is not None:
            self.scratch_root.mkdir(parents=True, exist_ok=True)
        scratch = Path(
            tempfile.mkdtemp(
                prefix=f"gamedir-{spec.name}-",
                dir=str(self.scratch_root) if self.scratch_root is not None else None,
            )
        )
        try:
            destination = scratch / "src"
            version = self.fetch(spec, destination)
            logger.debug("game=%s synced to %s (version=%s)", spec.name, destination, version)
            yield WorkingCopy(name=spec.name, path=destination, version=version)
        finally:
            shutil.rmtree(scratch, ignore_errors=True)
            logger.debug("game=%s removed scratch directory %s", spec.name, scratch)

    @abstractmethod
    def fetch(self, spec: GameSpec, destination: Path) -> ContentVersion:
        """Materialise the source of ``spec`` at ``destination`` and return its version.

        Raise ``SyncUnreachable`` when the source cannot be fetched and
        ``SyncCorrupt`` when a local copy stays unusable after one full re-fetch.
        """
