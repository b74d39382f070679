from __future__ import annotations

from pathlib import Path

import pytest

from gamedir.config import GamedirConfig
from tests._fixtures.game_sources import GameSourceBuilder


@pytest.fixture
def sources(tmp_path: Path) -> GameSourceBuilder:
    """Provide a builder for local game sources rooted at the pytest tmp_path."""
    return GameSourceBuilder(tmp_path)


@pytest.fixture
def config(tmp_path: Path, sources: GameSourceBuilder) -> GamedirConfig:
    """Configuration wired to tmp_path with the local sync backend."""
    config = GamedirConfig.defaults(tmp_path)
    config.manifest = sources.manifest_path
    config.scratch_dir = tmp_path / "scratch"
    config.workers = 2
    config.sync.backend = "local"
    config.build.timeout = 30.0
    return config
