"""Error taxonomy for gamedir runs."""

from __future__ import annotations


class GamedirError(RuntimeError):
    """Base class for all gamedir failures."""


class ConfigError(GamedirError):
    """Raised when the configuration file cannot be parsed."""


class ManifestInvalid(GamedirError):
    """Raised when the game manifest cannot be accepted. Aborts the whole run."""


class RunInProgress(GamedirError):
    """Raised when another run already holds the state directory lock."""


class GameError(GamedirError):
    """A failure scoped to a single game's pipeline."""

    stage = "pipeline"

    def __init__(self, game: str, detail: str, *, diagnostics: str = "") -> None:
        super().__init__(f"{game}: {detail}")
        self.game = game
        self.detail = detail
        self.diagnostics = diagnostics

    @property
    def kind(self) -> str:
        return self.__class__.__name__


class SyncError(GameError):
    stage = "sync"


class SyncUnreachable(SyncError):
    """The source could not be fetched (network, auth, missing repository)."""


class SyncCorrupt(SyncError):
    """The local copy is unusable even after a full re-fetch."""


class BuildError(GameError):
    stage = "build"


class BuildTimedOut(BuildError):
    """The build command exceeded its time limit and was killed."""

    def __init__(self, game: str, timeout: float, *, diagnostics: str = "") -> None:
        super().__init__(game, f"build timed out after {timeout:g}s", diagnostics=diagnostics)
        self.timeout = timeout


class BuildNonZeroExit(BuildError):
    """The build command exited with a non-zero status."""

    def __init__(
        self, game: str, returncode: int | None, detail: str, *, diagnostics: str = ""
    ) -> None:
        super().__init__(game, detail, diagnostics=diagnostics)
        self.returncode = returncode


class BuildOutputMissing(BuildError):
    """The build command succeeded but produced no output directory."""


class PublishFailed(GameError):
    """The artifact could not be swapped into the public tree."""

    stage = "publish"


__all__ = [
    "BuildError",
    "BuildNonZeroExit",
    "BuildOutputMissing",
    "BuildTimedOut",
    "ConfigError",
    "GameError",
    "GamedirError",
    "ManifestInvalid",
    "PublishFailed",
    "RunInProgress",
    "SyncCorrupt",
    "SyncError",
    "SyncUnreachable",
]
