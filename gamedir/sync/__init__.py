"""Repository synchronizer backends."""

from __future__ import annotations

from typing import Callable, Dict

from ..config import GamedirConfig
from .base import Synchronizer
from .git import GitSynchronizer
from .local import LocalSynchronizer

_BACKEND_FACTORIES: Dict[str, Callable[[GamedirConfig], Synchronizer]] = {
    "git": lambda config: GitSynchronizer(
        config.scratch_root,
        mirror_dir=config.sync.mirror_dir,
        timeout=config.sync.timeout,
    ),
    "local": lambda config: LocalSynchronizer(config.scratch_root),
}


def synchronizer_for(config: GamedirConfig) -> Synchronizer:
    """Return the synchronizer selected by ``sync.backend``."""
    try:
        factory = _BACKEND_FACTORIES[config.sync.backend]
    except KeyError as exc:
        raise ValueError(f"Unknown sync backend '{config.sync.backend}'") from exc
    return factory(config)


__all__ = ["GitSynchronizer", "LocalSynchronizer", "Synchronizer", "synchronizer_for"]
