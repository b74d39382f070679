"""Git-backed repository synchronizer."""

from __future__ import annotations

import os
import re
import subprocess
from pathlib import Path
from typing import Callable, Iterable, Optional

from ..errors import SyncCorrupt, SyncUnreachable
from ..fsutil import remove_path
from ..models import ContentVersion, GameSpec
from .base import Synchronizer, logger

_OBJECT_ID = re.compile(r"^[0-9a-f]{40}([0-9a-f]{24})?$")


class _CommandFailed(Exception):
    """A git invocation failed; carries a short summary and the captured output."""

    def __init__(self, summary: str, output: str = "") -> None:
        super().__init__(summary)
        self.summary = summary
        self.output = output


class GitSynchronizer(Synchronizer):
    """Clones game repositories, optionally through a persistent bare mirror.

    Without ``mirror_dir`` every run performs a full shallow clone. With it,
    one bare mirror per game survives between runs and is updated
    incrementally; the working copy is then cloned from the mirror.
    """

    def __init__(
        self,
        scratch_root: Path | None = None,
        *,
        mirror_dir: Path | None = None,
        timeout: float | None = 600.0,
        runner: Callable[..., str] | None = None,
    ) -> None:
        super().__init__(scratch_root)
        self.mirror_dir = mirror_dir
        self.timeout = timeout
        self._runner = runner or self._default_runner

    def fetch(self, spec: GameSpec, destination: Path) -> ContentVersion:
        try:
            return self._attempt(spec, destination)
        except _CommandFailed as exc:
            logger.warning(
                "game=%s stage=sync local copy unusable (%s); discarding and re-fetching",
                spec.name,
                exc.summary,
            )
        self._discard(spec, destination)
        try:
            return self._attempt(spec, destination)
        except _CommandFailed as exc:
            raise SyncCorrupt(
                spec.name,
                f"local copy unusable after full re-fetch: {exc.summary}",
                diagnostics=exc.output,
            ) from exc

    # ------------------------------------------------------------------
    # Internals

    def _attempt(self, spec: GameSpec, destination: Path) -> ContentVersion:
        if self.mirror_dir is None:
            self._remote(
                spec,
                ["git", "clone", "--quiet", "--depth", "1", spec.source_url, str(destination)],
                cwd=destination.parent,
            )
        else:
            mirror = self._mirror_path(spec)
            self._sync_mirror(spec, mirror)
            self._run(["git", "clone", "--quiet", str(mirror), str(destination)], cwd=destination.parent)
        return self._tree_version(destination)

    def _sync_mirror(self, spec: GameSpec, mirror: Path) -> None:
        if mirror.exists() and self._mirror_url(mirror) != spec.source_url:
            logger.info("game=%s stage=sync mirror points elsewhere; recreating %s", spec.name, mirror)
            remove_path(mirror)

        if not mirror.exists():
            mirror.parent.mkdir(parents=True, exist_ok=True)
            logger.info("game=%s stage=sync cloning mirror from %s", spec.name, spec.source_url)
            try:
                self._remote(
                    spec,
                    ["git", "clone", "--quiet", "--mirror", spec.source_url, str(mirror)],
                    cwd=mirror.parent,
                )
            except SyncUnreachable:
                remove_path(mirror)
                raise
            return

        logger.debug("game=%s stage=sync updating mirror %s", spec.name, mirror)
        try:
            self._run(["git", "remote", "update", "--prune"], cwd=mirror)
        except _CommandFailed as update_exc:
            try:
                self._run(["git", "fsck", "--connectivity-only", "--no-progress"], cwd=mirror)
            except _CommandFailed as fsck_exc:
                raise _CommandFailed("mirror failed fsck", fsck_exc.output) from fsck_exc
            raise SyncUnreachable(
                spec.name,
                f"unable to update from {spec.source_url}: {update_exc.summary}",
                diagnostics=update_exc.output,
            ) from update_exc

    def _mirror_url(self, mirror: Path) -> Optional[str]:
        try:
            output = self._run(["git", "config", "--get", "remote.origin.url"], cwd=mirror)
        except _CommandFailed:
            return None
        return output.strip() or None

    def _tree_version(self, repo: Path) -> ContentVersion:
        # The tree id depends only on content, so identical trees share a version.
        output = self._run(["git", "rev-parse", "HEAD^{tree}"], cwd=repo).strip()
        if not _OBJECT_ID.match(output):
            raise _CommandFailed(f"unexpected tree id '{output[:80]}'")
        return output

    def _discard(self, spec: GameSpec, destination: Path) -> None:
        remove_path(destination)
        if self.mirror_dir is not None:
            remove_path(self._mirror_path(spec))

    def _mirror_path(self, spec: GameSpec) -> Path:
        assert self.mirror_dir is not None
        return self.mirror_dir / f"{spec.name}.git"

    def _remote(self, spec: GameSpec, args: list[str], *, cwd: Path) -> str:
        try:
            return self._run(args, cwd=cwd)
        except _CommandFailed as exc:
            raise SyncUnreachable(
                spec.name,
                f"unable to fetch {spec.source_url}: {exc.summary}",
                diagnostics=exc.output,
            ) from exc

    def _run(self, args: list[str], *, cwd: Path) -> str:
        try:
            return self._runner(args, cwd=cwd, timeout=self.timeout)
        except subprocess.CalledProcessError as exc:
            output = _decode(exc.stderr) or _decode(exc.stdout)
            last_line = output.strip().splitlines()[-1] if output.strip() else ""
            summary = f"{' '.join(args[:2])} exited with {exc.returncode}"
            if last_line:
                summary = f"{summary}: {last_line}"
            raise _CommandFailed(summary, output) from exc
        except subprocess.TimeoutExpired as exc:
            raise _CommandFailed(f"{' '.join(args[:2])} timed out after {exc.timeout}s") from exc
        except OSError as exc:
            raise _CommandFailed(f"unable to run {args[0]}: {exc}") from exc

    @staticmethod
    def _default_runner(
        args: Iterable[str],
        *,
        cwd: Path,
        timeout: float | None = None,
    ) -> str:
        env = os.environ.copy()
        # Never block on credential prompts inside an unattended run.
        env["GIT_TERMINAL_PROMPT"] = "0"
        completed = subprocess.run(
            list(args),
            cwd=str(cwd),
            env=env,
            check=True,
            text=True,
            capture_output=True,
            timeout=timeout,
        )
        return completed.stdout


def _decode(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


__all__ = ["GitSynchronizer"]
