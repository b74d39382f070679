"""Core data models shared across gamedir components."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

# Opaque content identifier; equal strings mean identical repository content.
ContentVersion = str


@dataclass(frozen=True)
class GameSpec:
    """One manifest entry describing a game source and how to build it."""

    name: str
    source_url: str
    build_command: str
    description: str = ""
    tags: Tuple[str, ...] = ()


@dataclass(frozen=True)
class WorkingCopy:
    """Scratch checkout of a game's source for a single pipeline run."""

    name: str
    path: Path
    version: ContentVersion


@dataclass
class BuildArtifact:
    """Output directory produced by a successful build."""

    name: str
    output_dir: Path
    stdout: str = ""
    stderr: str = ""
    duration: float = 0.0


@dataclass(frozen=True)
class PublishedRecord:
    """Durable record of the last successful publish for a game."""

    name: str
    version: ContentVersion
    release: str
    description: str = ""
    tags: Tuple[str, ...] = ()
    published_at: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "release": self.release,
            "description": self.description,
            "tags": list(self.tags),
            "published_at": self.published_at,
        }


@dataclass(frozen=True)
class PublishedGame:
    """Metadata for a game that is live in the public tree."""

    name: str
    description: str
    tags: Tuple[str, ...]
    thumbnail: str


class Decision(str, Enum):
    BUILD_NEEDED = "build_needed"
    SKIP_UNCHANGED = "skip_unchanged"


class GameState(str, Enum):
    """Per-game pipeline states."""

    PENDING = "pending"
    SYNCING = "syncing"
    SYNC_FAILED = "sync_failed"
    DETECTING = "detecting"
    SKIPPED = "skipped"
    BUILDING = "building"
    BUILD_FAILED = "build_failed"
    PUBLISHING = "publishing"
    PUBLISH_FAILED = "publish_failed"
    PUBLISHED = "published"

    @property
    def terminal(self) -> bool:
        return self in _TERMINAL_STATES

    @property
    def failed(self) -> bool:
        return self in _FAILED_STATES


_FAILED_STATES = frozenset(
    {GameState.SYNC_FAILED, GameState.BUILD_FAILED, GameState.PUBLISH_FAILED}
)
_TERMINAL_STATES = _FAILED_STATES | {GameState.SKIPPED, GameState.PUBLISHED}


@dataclass
class GameOutcome:
    """Terminal result of one game's pipeline in one run."""

    name: str
    state: GameState
    version: Optional[ContentVersion] = None
    error_kind: Optional[str] = None
    detail: str = ""
    diagnostics: str = ""
    duration: float = 0.0

    @property
    def failed(self) -> bool:
        return self.state.failed

    def describe(self) -> str:
        if self.failed:
            return f"{self.name}: {self.state.value} ({self.error_kind}: {self.detail})"
        if self.version:
            return f"{self.name}: {self.state.value} @ {self.version[:12]}"
        return f"{self.name}: {self.state.value}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "version": self.version,
            "error_kind": self.error_kind,
            "detail": self.detail,
            "duration": round(self.duration, 3),
        }


@dataclass
class RunSummary:
    """Aggregate of all per-game outcomes for one orchestrator run."""

    started_at: datetime
    finished_at: Optional[datetime] = None
    outcomes: List[GameOutcome] = field(default_factory=list)
    index_path: Optional[Path] = None
    index_error: Optional[str] = None

    def _with_state(self, *states: GameState) -> List[GameOutcome]:
        return [outcome for outcome in self.outcomes if outcome.state in states]

    @property
    def published(self) -> List[GameOutcome]:
        return self._with_state(GameState.PUBLISHED)

    @property
    def skipped(self) -> List[GameOutcome]:
        return self._with_state(GameState.SKIPPED)

    @property
    def failed(self) -> List[GameOutcome]:
        return [outcome for outcome in self.outcomes if outcome.failed]

    @property
    def ok(self) -> bool:
        return not self.failed and self.index_error is None

    def outcome_for(self, name: str) -> Optional[GameOutcome]:
        for outcome in self.outcomes:
            if outcome.name == name:
                return outcome
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started_at": _isoformat(self.started_at),
            "finished_at": _isoformat(self.finished_at) if self.finished_at else None,
            "index_path": str(self.index_path) if self.index_path else None,
            "index_error": self.index_error,
            "counts": {
                "published": len(self.published),
                "skipped": len(self.skipped),
                "failed": len(self.failed),
            },
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }


def _isoformat(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")

