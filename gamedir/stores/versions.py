"""Durable store of the last successfully published version per game."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Dict, Iterator, Optional

from ..fsutil import atomic_write_text
from ..logging import get_logger
from ..models import ContentVersion, PublishedRecord

_RECORD_VERSION = 1

logger = get_logger("stores.versions")


class VersionStore:
    """Stores one PublishedRecord per game as ``<root>/<name>.json``.

    Each game owns its own file, so concurrent pipelines for different games
    never contend on the same key.
    """

    def __init__(self, root: Path) -> None:
        self._root = root

    @property
    def root(self) -> Path:
        return self._root

    def get(self, name: str) -> Optional[PublishedRecord]:
        path = self._path_for(name)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as exc:
            # An unreadable record counts as absent so the game gets rebuilt.
            logger.warning("Ignoring unreadable version record %s: %s", path, exc)
            return None
        return _record_from_dict(data, name)

    def put(
        self,
        name: str,
        version: ContentVersion,
        *,
        release: str,
        description: str = "",
        tags: tuple[str, ...] = (),
    ) -> PublishedRecord:
        record = PublishedRecord(
            name=name,
            version=version,
            release=release,
            description=description,
            tags=tuple(tags),
            published_at=datetime.now(UTC).isoformat().replace("+00:00", "Z"),
        )
        payload = {"record_version": _RECORD_VERSION, **record.to_dict()}
        atomic_write_text(
            self._path_for(name), json.dumps(payload, indent=2, sort_keys=True) + "\n"
        )
        return record

    def all(self) -> Dict[str, PublishedRecord]:
        records: Dict[str, PublishedRecord] = {}
        for name in self._names():
            record = self.get(name)
            if record is not None:
                records[name] = record
        return records

    # ------------------------------------------------------------------
    # Internal helpers

    def _path_for(self, name: str) -> Path:
        return self._root / f"{name}.json"

    def _names(self) -> Iterator[str]:
        if not self._root.is_dir():
            return iter(())
        return (path.stem for path in sorted(self._root.glob("*.json")))


def _record_from_dict(data: object, name: str) -> Optional[PublishedRecord]:
    if not isinstance(data, dict) or data.get("record_version") != _RECORD_VERSION:
        return None
    version = data.get("version")
    release = data.get("release")
    if data.get("name") != name or not isinstance(version, str) or not version:
        return None
    if not isinstance(release, str) or not release:
        return None
    description = data.get("description")
    tags = data.get("tags")
    published_at = data.get("published_at")
    return PublishedRecord(
        name=name,
        version=version,
        release=release,
        description=description if isinstance(description, str) else "",
        tags=tuple(tag for tag in tags if isinstance(tag, str)) if isinstance(tags, list) else (),
        published_at=published_at if isinstance(published_at, str) else "",
    )


__all__ = ["VersionStore"]
