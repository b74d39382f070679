"""Pipeline orchestration for a single gamedir run."""

from __future__ import annotations

import fcntl
import json
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence

from .builder import BuildExecutor
from .config import GamedirConfig
from .detector import ChangeDetector
from .errors import GameError, RunInProgress
from .fsutil import atomic_write_text
from .logging import get_logger
from .manifest import ManifestSource, load_manifest
from .models import Decision, GameOutcome, GameSpec, GameState, RunSummary
from .publisher import Publisher
from .site import IndexGenerator, published_games
from .stores import VersionStore
from .sync import Synchronizer, synchronizer_for
from .thumbnails import ThumbnailHook

_AUTO = object()

# Which terminal state a failure maps to, keyed by the stage it happened in.
_FAILURE_STATES: Dict[GameState, GameState] = {
    GameState.PENDING: GameState.SYNC_FAILED,
    GameState.SYNCING: GameState.SYNC_FAILED,
    GameState.DETECTING: GameState.SYNC_FAILED,
    GameState.BUILDING: GameState.BUILD_FAILED,
    GameState.PUBLISHING: GameState.PUBLISH_FAILED,
}

_DIAGNOSTIC_TAIL_LINES = 20


class Orchestrator:
    """Coordinates sync, change detection, build and publish for every game."""

    def __init__(
        self,
        config: GamedirConfig,
        *,
        store: VersionStore | None = None,
        synchronizer: Synchronizer | None = None,
        detector: ChangeDetector | None = None,
        builder: BuildExecutor | None = None,
        publisher: Publisher | None = None,
        index_generator: IndexGenerator | None = None,
        thumbnail_hook: ThumbnailHook | None | object = _AUTO,
    ) -> None:
        self.config = config
        self.store = store or VersionStore(config.versions_dir)
        self.synchronizer = synchronizer or synchronizer_for(config)
        self.detector = detector or ChangeDetector(self.store, config.public_root)
        self.builder = builder or BuildExecutor(
            timeout=config.build.timeout,
            output_dirname=config.build.output_dir,
            max_output_bytes=config.build.max_output_kb * 1024,
        )
        self.publisher = publisher or Publisher(config.public_root, self.store)
        self.index_generator = index_generator or IndexGenerator(config.public_root, config.site)
        if thumbnail_hook is _AUTO:
            self.thumbnail_hook = ThumbnailHook.from_config(config.thumbnails)
        else:
            self.thumbnail_hook = thumbnail_hook  # type: ignore[assignment]
        self.logger = get_logger("orchestrator")

    def run_once(
        self,
        manifest: ManifestSource | None = None,
        *,
        workers: int | None = None,
    ) -> RunSummary:
        """Process every manifest entry once, then regenerate the homepage.

        Raises ``ManifestInvalid`` before touching any game when the manifest
        is rejected, and ``RunInProgress`` when another run holds the lock.
        Per-game failures never escape; they are reported in the summary.
        """
        with self._run_lock():
            summary = RunSummary(started_at=datetime.now(UTC))
            specs = load_manifest(manifest if manifest is not None else self.config.manifest)
            worker_count = max(1, workers or self.config.workers)
            self.logger.info(
                "Starting run for %d game(s) with %d worker(s)", len(specs), worker_count
            )
            self.config.public_root.mkdir(parents=True, exist_ok=True)

            summary.outcomes = self._run_pipelines(specs, worker_count)

            try:
                summary.index_path = self.regenerate_index(specs)
            except OSError as exc:
                summary.index_error = str(exc)
                self.logger.error("Homepage generation failed: %s", exc)

            summary.finished_at = datetime.now(UTC)
            self._persist_summary(summary)
            self.logger.info(
                "Run finished: %d published, %d skipped, %d failed",
                len(summary.published),
                len(summary.skipped),
                len(summary.failed),
            )
            return summary

    def regenerate_index(self, specs: Sequence[GameSpec] | None = None) -> Path:
        """Render the homepage from the games currently live in the public tree."""
        if specs is None:
            specs = load_manifest(self.config.manifest)
        games = published_games(specs, self.store, self.config.public_root)
        return self.index_generator.generate(games)

    def last_summary(self) -> Optional[Dict[str, Any]]:
        """Return the persisted summary of the previous run, if any."""
        try:
            data = json.loads(self.config.summary_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as exc:
            self.logger.warning("Unable to read %s: %s", self.config.summary_path, exc)
            return None
        return data if isinstance(data, dict) else None

    # ------------------------------------------------------------------
    # Per-game pipeline

    def _run_pipelines(self, specs: Sequence[GameSpec], worker_count: int) -> List[GameOutcome]:
        if not specs:
            return []
        if worker_count == 1:
            return [self._run_pipeline(spec) for spec in specs]
        with ThreadPoolExecutor(
            max_workers=min(worker_count, len(specs)),
            thread_name_prefix="gamedir-worker",
        ) as executor:
            futures = [executor.submit(self._run_pipeline, spec) for spec in specs]
            # Joining every future is the barrier before index generation.
            return [future.result() for future in futures]

    def _run_pipeline(self, spec: GameSpec) -> GameOutcome:
        started = time.monotonic()
        state = GameState.PENDING
        version: Optional[str] = None
        try:
            state = self._enter(spec, GameState.SYNCING)
            with self.synchronizer.checkout(spec) as working_copy:
                version = working_copy.version

                state = self._enter(spec, GameState.DETECTING)
                decision = self.detector.decide(spec.name, version)
                if decision is Decision.SKIP_UNCHANGED:
                    self.logger.info("game=%s unchanged at %s; skipping build", spec.name, version[:12])
                    return self._outcome(spec, GameState.SKIPPED, started, version=version)

                state = self._enter(spec, GameState.BUILDING)
                artifact = self.builder.run(working_copy, spec)

                state = self._enter(spec, GameState.PUBLISHING)
                self.publisher.publish(spec, artifact, version)
        except GameError as exc:
            return self._failure(spec, state, exc, started, version=version)
        except Exception as exc:
            self.logger.exception("game=%s stage=%s unexpected error", spec.name, state.value)
            return self._failure(spec, state, exc, started, version=version)

        self._capture_thumbnail(spec)
        return self._outcome(spec, GameState.PUBLISHED, started, version=version)

    def _enter(self, spec: GameSpec, state: GameState) -> GameState:
        self.logger.debug("game=%s -> %s", spec.name, state.value)
        return state

    def _outcome(
        self,
        spec: GameSpec,
        state: GameState,
        started: float,
        *,
        version: Optional[str],
    ) -> GameOutcome:
        outcome = GameOutcome(
            name=spec.name,
            state=state,
            version=version,
            duration=time.monotonic() - started,
        )
        if state is GameState.PUBLISHED:
            self.logger.info("game=%s published %s", spec.name, (version or "")[:12])
        return outcome

    def _failure(
        self,
        spec: GameSpec,
        state: GameState,
        exc: Exception,
        started: float,
        *,
        version: Optional[str],
    ) -> GameOutcome:
        terminal = _FAILURE_STATES.get(state, GameState.SYNC_FAILED)
        if isinstance(exc, GameError):
            detail = exc.detail
            diagnostics = exc.diagnostics
        else:
            detail = str(exc) or exc.__class__.__name__
            diagnostics = ""
        self.logger.error(
            "game=%s stage=%s failed: %s: %s",
            spec.name,
            state.value,
            exc.__class__.__name__,
            detail,
        )
        if diagnostics:
            tail = "\n".join(diagnostics.splitlines()[-_DIAGNOSTIC_TAIL_LINES:])
            self.logger.error("game=%s diagnostics (tail):\n%s", spec.name, tail)
        return GameOutcome(
            name=spec.name,
            state=terminal,
            version=version,
            error_kind=exc.__class__.__name__,
            detail=detail,
            diagnostics=diagnostics,
            duration=time.monotonic() - started,
        )

    def _capture_thumbnail(self, spec: GameSpec) -> None:
        if self.thumbnail_hook is None:
            return
        game_dir = self.config.public_root / spec.name
        try:
            self.thumbnail_hook.capture(game_dir)
        except Exception as exc:
            self.logger.warning("game=%s thumbnail capture failed: %s", spec.name, exc)

    # ------------------------------------------------------------------
    # Run bookkeeping

    @contextmanager
    def _run_lock(self) -> Iterator[None]:
        lock_path = self.config.lock_path
        lock_path.parent.mkdir(parents=True, exist_ok=True)
        with lock_path.open("a+", encoding="utf-8") as handle:
            try:
                fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError as exc:
                raise RunInProgress(f"Another run holds {lock_path}") from exc
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    def _persist_summary(self, summary: RunSummary) -> None:
        try:
            atomic_write_text(
                self.config.summary_path,
                json.dumps(summary.to_dict(), indent=2, sort_keys=True) + "\n",
            )
        except OSError as exc:
            self.logger.warning("Unable to write run summary: %s", exc)


__all__ = ["Orchestrator"]
