"""Atomic publication of build artifacts into the public tree."""

from __future__ import annotations

import os
import shutil
import uuid
from pathlib import Path
from typing import List, Optional

from .errors import PublishFailed
from .fsutil import atomic_write_text, remove_path
from .logging import get_logger
from .models import BuildArtifact, ContentVersion, GameSpec, PublishedRecord
from .site import render_info_page
from .stores import VersionStore

RELEASES_DIRNAME = ".releases"
_STAGING_PREFIX = ".staging-"


class Publisher:
    """Swaps new releases into ``<public_root>/<name>``.

    Every publish lands in its own immutable directory under
    ``<public_root>/.releases/<name>/``; the public entry is a relative symlink
    that is replaced with ``os.replace`` so readers only ever resolve the old
    or the new release. The version record is written after the swap; if that
    write fails the entry is pointed back at the previous release.
    """

    def __init__(
        self,
        public_root: Path,
        store: VersionStore,
        *,
        keep_releases: int = 2,
    ) -> None:
        self.public_root = public_root
        self.store = store
        self.keep_releases = max(1, keep_releases)
        self.logger = get_logger("publisher")

    def publish(
        self, spec: GameSpec, artifact: BuildArtifact, version: ContentVersion
    ) -> PublishedRecord:
        releases = self.releases_dir(spec.name)
        token = uuid.uuid4().hex[:8]
        release_id = f"{version[:12]}-{token}"
        staging = releases / f"{_STAGING_PREFIX}{token}"
        release_dir = releases / release_id

        try:
            releases.mkdir(parents=True, exist_ok=True)
            shutil.copytree(artifact.output_dir, staging, symlinks=True)
            atomic_write_text(
                staging / "info" / "index.html",
                render_info_page(spec.name, spec.description, spec.tags),
            )
            os.rename(staging, release_dir)
            previous = self._current_target(spec.name)
            self._swap(spec.name, release_dir)
        except OSError as exc:
            remove_path(staging)
            if not self._is_current(spec.name, release_dir):
                remove_path(release_dir)
            raise PublishFailed(spec.name, f"unable to swap in new release: {exc}") from exc

        try:
            record = self.store.put(
                spec.name,
                version,
                release=release_id,
                description=spec.description,
                tags=spec.tags,
            )
        except OSError as exc:
            self._roll_back(spec.name, previous, release_dir)
            raise PublishFailed(spec.name, f"unable to write version record: {exc}") from exc

        self.logger.info(
            "game=%s stage=publish release %s is live at %s",
            spec.name,
            release_id,
            self.public_root / spec.name,
        )
        self._prune(spec.name, keep=release_id)
        return record

    def releases_dir(self, name: str) -> Path:
        return self.public_root / RELEASES_DIRNAME / name

    # ------------------------------------------------------------------
    # Helpers

    def _current_target(self, name: str) -> Optional[str]:
        """Return what the public entry points at now, as a relative target.

        A real directory left by an earlier layout is copied into the releases
        area first so it can be restored on roll back.
        """
        public_entry = self.public_root / name
        if public_entry.is_symlink():
            return os.readlink(public_entry)
        if not public_entry.exists():
            return None
        legacy = self.releases_dir(name) / f"legacy-{uuid.uuid4().hex[:8]}"
        try:
            shutil.copytree(public_entry, legacy, symlinks=True)
        except OSError:
            remove_path(legacy)
            raise
        self.logger.warning(
            "game=%s stage=publish adopted legacy directory %s as %s", name, public_entry, legacy
        )
        return os.path.relpath(legacy, self.public_root)

    def _swap(self, name: str, release_dir: Path) -> None:
        self._point_at(name, os.path.relpath(release_dir, self.public_root))

    def _point_at(self, name: str, target: str) -> None:
        public_entry = self.public_root / name
        token = uuid.uuid4().hex[:8]
        link = self.public_root / f".{name}.swap-{token}"
        os.symlink(target, link, target_is_directory=True)
        aside: Path | None = None
        if public_entry.is_dir() and not public_entry.is_symlink():
            # os.replace cannot put a symlink over a directory; the entry is
            # missing only between these two renames.
            aside = self.public_root / f".{name}.legacy-{token}"
            os.rename(public_entry, aside)
        try:
            os.replace(link, public_entry)
        except OSError:
            link.unlink(missing_ok=True)
            if aside is not None:
                os.rename(aside, public_entry)
            raise
        if aside is not None:
            remove_path(aside)

    def _roll_back(self, name: str, previous: Optional[str], release_dir: Path) -> None:
        public_entry = self.public_root / name
        try:
            if previous is None:
                public_entry.unlink(missing_ok=True)
            else:
                self._point_at(name, previous)
            remove_path(release_dir)
        except OSError as exc:
            self.logger.error("game=%s stage=publish unable to roll back release: %s", name, exc)
            return
        self.logger.warning("game=%s stage=publish rolled back to previous release", name)

    def _is_current(self, name: str, release_dir: Path) -> bool:
        public_entry = self.public_root / name
        if not public_entry.is_symlink():
            return False
        return public_entry.resolve() == release_dir.resolve()

    def _prune(self, name: str, *, keep: str) -> None:
        releases = self.releases_dir(name)
        try:
            candidates: List[Path] = [path for path in releases.iterdir() if path.name != keep]
        except OSError as exc:
            self.logger.warning("game=%s unable to list releases for pruning: %s", name, exc)
            return
        stale = [path for path in candidates if path.name.startswith(_STAGING_PREFIX)]
        previous = sorted(
            (path for path in candidates if not path.name.startswith(_STAGING_PREFIX)),
            key=_mtime,
            reverse=True,
        )
        stale.extend(previous[self.keep_releases - 1 :])
        for path in stale:
            try:
                remove_path(path)
            except OSError as exc:
                self.logger.warning("game=%s unable to prune %s: %s", name, path, exc)
            else:
                self.logger.debug("game=%s pruned old release %s", name, path.name)


def _mtime(path: Path) -> float:
    try:
        return path.lstat().st_mtime
    except OSError:
        return 0.0


__all__ = ["Publisher", "RELEASES_DIRNAME"]
