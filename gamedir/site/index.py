"""Homepage generation from the set of published games."""

from __future__ import annotations

from pathlib import Path
from typing import List, Sequence

from ..config import SiteConfig
from ..fsutil import atomic_write_bytes, atomic_write_text
from ..logging import get_logger
from ..models import GameSpec, PublishedGame, PublishedRecord
from ..stores import VersionStore
from .templates import DEFAULT_THUMBNAIL, INDEX_TEMPLATE, INFO_TEMPLATE, STYLESHEET, environment

INDEX_FILENAME = "index.html"
THUMBNAIL_FILENAME = "thumbnail.png"
DEFAULT_THUMBNAIL_URL = "/static/default-thumb.png"


def published_games(
    specs: Sequence[GameSpec], store: VersionStore, public_root: Path
) -> List[PublishedGame]:
    """Return the games that are actually live, in manifest order.

    Metadata comes from the record written by the last successful publish,
    so a game whose latest build failed keeps its previous listing and a game
    that was never published is left out.
    """
    games: List[PublishedGame] = []
    for spec in specs:
        record = store.get(spec.name)
        if record is None:
            continue
        game_dir = public_root / spec.name
        if not game_dir.exists():
            continue
        games.append(_game_from_record(record, game_dir))
    return games


def render_info_page(name: str, description: str, tags: Sequence[str]) -> str:
    """Render the per-game ``info/index.html`` page."""
    template = environment().get_template(INFO_TEMPLATE)
    game = {"name": name, "description": description, "tags": list(tags)}
    return template.render(game=game)


class IndexGenerator:
    """Renders the homepage listing for the public tree."""

    def __init__(self, public_root: Path, site: SiteConfig | None = None) -> None:
        self.public_root = public_root
        self.site = site or SiteConfig()
        self.logger = get_logger("site.index")

    def render(self, games: Sequence[PublishedGame]) -> str:
        template = environment().get_template(INDEX_TEMPLATE)
        return template.render(site=self.site, games=list(games))

    def generate(self, games: Sequence[PublishedGame]) -> Path:
        """Write ``index.html`` atomically and return its path."""
        self.ensure_static_assets()
        content = self.render(games)
        index_path = self.public_root / INDEX_FILENAME
        atomic_write_text(index_path, content)
        self.logger.info("Generated homepage with %d game(s) at %s", len(games), index_path)
        return index_path

    def ensure_static_assets(self) -> None:
        """Install the default stylesheet and thumbnail unless already present."""
        static_dir = self.public_root / "static"
        stylesheet = static_dir / "style.css"
        if not stylesheet.exists():
            atomic_write_text(stylesheet, STYLESHEET)
            self.logger.debug("Created default stylesheet at %s", stylesheet)
        thumbnail = static_dir / "default-thumb.png"
        if not thumbnail.exists():
            atomic_write_bytes(thumbnail, DEFAULT_THUMBNAIL)
            self.logger.debug("Created default thumbnail placeholder at %s", thumbnail)


def _game_from_record(record: PublishedRecord, game_dir: Path) -> PublishedGame:
    thumbnail = DEFAULT_THUMBNAIL_URL
    if (game_dir / THUMBNAIL_FILENAME).is_file():
        thumbnail = f"/{record.name}/{THUMBNAIL_FILENAME}"
    return PublishedGame(
        name=record.name,
        description=record.description,
        tags=record.tags,
        thumbnail=thumbnail,
    )


__all__ = [
    "DEFAULT_THUMBNAIL_URL",
    "INDEX_FILENAME",
    "IndexGenerator",
    "THUMBNAIL_FILENAME",
    "published_games",
    "render_info_page",
]
