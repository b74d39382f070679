"""Helpers for building local game sources and manifests in tests."""

from __future__ import annotations

import json
import os
import textwrap
from pathlib import Path
from typing import Dict, Iterable, Mapping, Sequence

COPY_BUILD = "mkdir -p dist && cp index.html dist/index.html"


class GameSourceBuilder:
    """Writes throwaway game source directories and a manifest listing them."""

    def __init__(self, tmp_path: Path) -> None:
        self.root = tmp_path / "sources"
        self.root.mkdir()
        self.manifest_path = tmp_path / "games.json"

    def write(self, name: str, files: Mapping[str, str]) -> Path:
        """Write `path -> contents` entries into the named source directory."""
        source = self.root / name
        for relative, content in files.items():
            path = source / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(textwrap.dedent(content).lstrip("\n"), encoding="utf-8")
        return source

    def game(self, name: str, body: str = "hello") -> Path:
        """Create a minimal game whose build copies index.html into dist/."""
        return self.write(name, {"index.html": f"<html><body>{name}: {body}</body></html>\n"})

    def entry(
        self,
        name: str,
        *,
        build_command: str = COPY_BUILD,
        description: str | None = None,
        tags: Sequence[str] = ("arcade",),
        repo_url: str | None = None,
    ) -> Dict[str, object]:
        return {
            "name": name,
            "repo_url": repo_url if repo_url is not None else str(self.root / name),
            "description": description if description is not None else f"{name} description",
            "tags": list(tags),
            "build_command": build_command,
        }

    def manifest(self, entries: Iterable[Mapping[str, object]]) -> Path:
        self.manifest_path.write_text(json.dumps(list(entries), indent=2), encoding="utf-8")
        return self.manifest_path


def snapshot(root: Path) -> Dict[str, bytes]:
    """Return every file and symlink under ``root`` keyed by relative path.

    Symlinks are recorded by target, so a swapped public entry shows up as a change.
    """
    files: Dict[str, bytes] = {}
    if not root.exists():
        return files
    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        for name in sorted(dirnames + filenames):
            path = current / name
            relative = path.relative_to(root).as_posix()
            if path.is_symlink():
                files[relative] = b"link:" + os.readlink(path).encode("utf-8")
            elif path.is_file():
                files[relative] = path.read_bytes()
    return files


__all__ = ["COPY_BUILD", "GameSourceBuilder", "snapshot"]
