"""Optional post-publish thumbnail capture via an external command."""

from __future__ import annotations

import shlex
import subprocess
from pathlib import Path
from typing import Callable, Iterable

from .config import ThumbnailConfig
from .logging import get_logger
from .site.index import THUMBNAIL_FILENAME


class ThumbnailHook:
    """Runs ``<command> <game dir> <WxH>`` and reports whether a thumbnail appeared.

    Failures are logged and swallowed: a missing thumbnail never affects the
    publish result or the homepage beyond falling back to the placeholder.
    """

    def __init__(
        self,
        command: str,
        *,
        size: str = "200x150",
        timeout: float = 120.0,
        runner: Callable[..., int] | None = None,
    ) -> None:
        self.command = command
        self.size = size
        self.timeout = timeout
        self._runner = runner or self._default_runner
        self.logger = get_logger("thumbnails")

    @classmethod
    def from_config(cls, config: ThumbnailConfig) -> "ThumbnailHook | None":
        if not config.enabled or not config.command:
            return None
        return cls(config.command, size=config.size, timeout=config.timeout)

    def capture(self, game_dir: Path) -> bool:
        args = [*shlex.split(self.command), str(game_dir), self.size]
        try:
            returncode = self._runner(args, timeout=self.timeout)
        except subprocess.TimeoutExpired:
            self.logger.warning("Thumbnail command timed out after %ss for %s", self.timeout, game_dir)
            return False
        except OSError as exc:
            self.logger.warning("Unable to run thumbnail command for %s: %s", game_dir, exc)
            return False
        if returncode != 0:
            self.logger.warning(
                "Thumbnail command exited with %s for %s", returncode, game_dir
            )
        created = (game_dir / THUMBNAIL_FILENAME).is_file()
        if not created:
            self.logger.debug("No %s produced in %s", THUMBNAIL_FILENAME, game_dir)
        return created

    @staticmethod
    def _default_runner(args: Iterable[str], *, timeout: float) -> int:
        completed = subprocess.run(
            list(args),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            timeout=timeout,
            check=False,
        )
        return completed.returncode


__all__ = ["ThumbnailHook"]
