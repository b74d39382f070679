"""Synchronizer for game sources that live on the local filesystem."""

from __future__ import annotations

import hashlib
import os
import shutil
from pathlib import Path
from urllib.parse import unquote, urlparse

from ..errors import SyncCorrupt, SyncUnreachable
from ..fsutil import remove_path
from ..models import ContentVersion, GameSpec
from .base import Synchronizer, logger

_IGNORED_NAMES = {".git", ".hg", ".svn", "node_modules", "__pycache__", ".DS_Store"}


class LocalSynchronizer(Synchronizer):
    """Copies a local directory (plain path or ``file://`` URL) into the scratch area."""

    def fetch(self, spec: GameSpec, destination: Path) -> ContentVersion:
        source = source_path(spec.source_url)
        if not source.is_dir():
            raise SyncUnreachable(spec.name, f"source directory {source} does not exist")

        last_error: OSError | None = None
        for attempt in range(2):
            if attempt:
                logger.warning(
                    "game=%s stage=sync copy failed (%s); discarding and copying again",
                    spec.name,
                    last_error,
                )
                remove_path(destination)
            try:
                shutil.copytree(
                    source,
                    destination,
                    symlinks=True,
                    ignore=shutil.ignore_patterns(*_IGNORED_NAMES),
                )
                return content_digest(destination)
            except OSError as exc:
                last_error = exc
        raise SyncCorrupt(spec.name, f"unable to copy {source}: {last_error}")


def source_path(url: str) -> Path:
    parsed = urlparse(url)
    if parsed.scheme == "file":
        return Path(unquote(parsed.path)).expanduser()
    return Path(url).expanduser()


def content_digest(root: Path) -> ContentVersion:
    """Return a SHA-256 over every relative path and file body under ``root``."""
    digest = hashlib.sha256()
    entries = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(name for name in dirnames if name not in _IGNORED_NAMES)
        for filename in filenames:
            if filename in _IGNORED_NAMES:
                continue
            path = Path(dirpath) / filename
            entries.append((path.relative_to(root).as_posix(), path))
    entries.sort(key=lambda item: item[0])
    for relative, path in entries:
        digest.update(relative.encode("utf-8"))
        digest.update(b"\0")
        if path.is_symlink():
            digest.update(b"link:" + os.readlink(path).encode("utf-8"))
        else:
            with path.open("rb") as handle:
                for chunk in iter(lambda: handle.read(65536), b""):
                    digest.update(chunk)
        digest.update(b"\0")
    digest.update(str(len(entries)).encode("utf-8"))
    return digest.hexdigest()


__all__ = ["LocalSynchronizer", "content_digest", "source_path"]
