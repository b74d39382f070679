from __future__ import annotations

import fcntl
import json
from pathlib import Path

import pytest

from gamedir.config import GamedirConfig
from gamedir.errors import ManifestInvalid, RunInProgress
from gamedir.models import GameState
from gamedir.orchestrator import Orchestrator
from gamedir.site import IndexGenerator

from tests._fixtures.game_sources import COPY_BUILD, GameSourceBuilder, snapshot


def _index_html(config: GamedirConfig) -> str:
    return (config.public_root / "index.html").read_text(encoding="utf-8")


def _live_body(config: GamedirConfig, name: str) -> str:
    return (config.public_root / name / "index.html").read_text(encoding="utf-8")


def _two_games(sources: GameSourceBuilder) -> None:
    sources.game("g1", body="first")
    sources.game("g2", body="first")
    sources.manifest([sources.entry("g1"), sources.entry("g2")])


def test_first_run_publishes_every_game(config: GamedirConfig, sources: GameSourceBuilder) -> None:
    _two_games(sources)

    summary = Orchestrator(config).run_once()

    assert summary.ok
    assert [outcome.state for outcome in summary.outcomes] == [
        GameState.PUBLISHED,
        GameState.PUBLISHED,
    ]
    assert "g1: first" in _live_body(config, "g1")
    html = _index_html(config)
    assert html.index('href="/g1/"') < html.index('href="/g2/"')
    assert summary.index_path == config.public_root / "index.html"
    assert (config.public_root / "g1" / "info" / "index.html").is_file()


def test_unchanged_games_are_skipped_and_tree_is_stable(
    config: GamedirConfig, sources: GameSourceBuilder
) -> None:
    _two_games(sources)
    Orchestrator(config).run_once()
    before = snapshot(config.public_root)

    summary = Orchestrator(config).run_once()

    assert [outcome.state for outcome in summary.outcomes] == [
        GameState.SKIPPED,
        GameState.SKIPPED,
    ]
    assert snapshot(config.public_root) == before


def test_only_changed_game_is_rebuilt(config: GamedirConfig, sources: GameSourceBuilder) -> None:
    _two_games(sources)
    orchestrator = Orchestrator(config)
    orchestrator.run_once()
    g1_version = orchestrator.store.get("g1").version

    sources.game("g2", body="second")
    summary = orchestrator.run_once()

    assert summary.outcome_for("g1").state is GameState.SKIPPED
    assert summary.outcome_for("g2").state is GameState.PUBLISHED
    assert orchestrator.store.get("g1").version == g1_version
    assert "g2: second" in _live_body(config, "g2")
    html = _index_html(config)
    assert html.index('href="/g1/"') < html.index('href="/g2/"')


def test_failed_build_keeps_previous_release_live(
    config: GamedirConfig, sources: GameSourceBuilder
) -> None:
    _two_games(sources)
    orchestrator = Orchestrator(config)
    orchestrator.run_once()
    previous = orchestrator.store.get("g2")

    sources.game("g2", body="broken")
    sources.manifest(
        [
            sources.entry("g1"),
            sources.entry("g2", build_command="echo 'syntax error' >&2; exit 1"),
        ]
    )
    summary = orchestrator.run_once()

    outcome = summary.outcome_for("g2")
    assert outcome.state is GameState.BUILD_FAILED
    assert outcome.error_kind == "BuildNonZeroExit"
    assert "syntax error" in outcome.diagnostics
    assert not summary.ok
    assert summary.outcome_for("g1").state is GameState.SKIPPED
    assert "g2: first" in _live_body(config, "g2")
    assert orchestrator.store.get("g2") == previous
    assert 'href="/g2/"' in _index_html(config)


def test_build_timeout_is_isolated(config: GamedirConfig, sources: GameSourceBuilder) -> None:
    config.build.timeout = 0.5
    sources.game("slow")
    sources.game("fast")
    sources.manifest(
        [sources.entry("slow", build_command="sleep 30"), sources.entry("fast")]
    )

    summary = Orchestrator(config).run_once()

    assert summary.outcome_for("slow").state is GameState.BUILD_FAILED
    assert summary.outcome_for("slow").error_kind == "BuildTimedOut"
    assert summary.outcome_for("fast").state is GameState.PUBLISHED
    assert not (config.public_root / "slow").exists()
    html = _index_html(config)
    assert 'href="/fast/"' in html
    assert 'href="/slow/"' not in html


def test_unreachable_source_does_not_block_others(
    config: GamedirConfig, sources: GameSourceBuilder
) -> None:
    sources.game("good")
    sources.manifest(
        [
            sources.entry("gone", repo_url=str(sources.root / "missing")),
            sources.entry("good"),
        ]
    )

    summary = Orchestrator(config).run_once()

    gone = summary.outcome_for("gone")
    assert gone.state is GameState.SYNC_FAILED
    assert gone.error_kind == "SyncUnreachable"
    assert gone.version is None
    assert summary.outcome_for("good").state is GameState.PUBLISHED
    assert [outcome.name for outcome in summary.outcomes] == ["gone", "good"]


def test_parallel_pipelines_do_not_mix_outputs(
    config: GamedirConfig, sources: GameSourceBuilder
) -> None:
    names = [f"game{number}" for number in range(6)]
    build = f'{COPY_BUILD} && printf %s "$GAMEDIR_GAME" > dist/who.txt && sleep 0.2'
    for name in names:
        sources.game(name)
    sources.manifest([sources.entry(name, build_command=build) for name in names])

    summary = Orchestrator(config).run_once(workers=4)

    assert summary.ok
    assert [outcome.name for outcome in summary.outcomes] == names
    for name in names:
        assert (config.public_root / name / "who.txt").read_text(encoding="utf-8") == name
        assert f"{name}: hello" in _live_body(config, name)
    assert not list(config.scratch_root.iterdir())


def test_invalid_manifest_aborts_before_any_game(
    config: GamedirConfig, sources: GameSourceBuilder
) -> None:
    _two_games(sources)
    orchestrator = Orchestrator(config)
    orchestrator.run_once()
    before = snapshot(config.public_root)
    sources.game("g1", body="changed")
    sources.manifest([sources.entry("g1"), {"name": "g2", "repo_url": "x"}])

    with pytest.raises(ManifestInvalid):
        orchestrator.run_once()

    assert snapshot(config.public_root) == before


def test_failed_game_is_retried_next_run(
    tmp_path: Path, config: GamedirConfig, sources: GameSourceBuilder
) -> None:
    marker = tmp_path / "toolchain-ready"
    sources.game("g1")
    sources.manifest([sources.entry("g1", build_command=f"test -f {marker} && {COPY_BUILD}")])
    orchestrator = Orchestrator(config)

    first = orchestrator.run_once()
    marker.write_text("ok", encoding="utf-8")
    second = orchestrator.run_once()

    assert first.outcome_for("g1").state is GameState.BUILD_FAILED
    assert orchestrator.store.get("g1") is not None
    assert second.outcome_for("g1").state is GameState.PUBLISHED
    assert second.outcome_for("g1").version == first.outcome_for("g1").version


def test_deleted_public_entry_is_rebuilt(config: GamedirConfig, sources: GameSourceBuilder) -> None:
    _two_games(sources)
    orchestrator = Orchestrator(config)
    orchestrator.run_once()

    (config.public_root / "g1").unlink()
    summary = orchestrator.run_once()

    assert summary.outcome_for("g1").state is GameState.PUBLISHED
    assert summary.outcome_for("g2").state is GameState.SKIPPED


def test_concurrent_run_is_rejected(config: GamedirConfig, sources: GameSourceBuilder) -> None:
    _two_games(sources)
    config.lock_path.parent.mkdir(parents=True, exist_ok=True)

    with config.lock_path.open("a+") as handle:
        fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        with pytest.raises(RunInProgress):
            Orchestrator(config).run_once()
        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    assert Orchestrator(config).run_once().ok


def test_summary_is_persisted(config: GamedirConfig, sources: GameSourceBuilder) -> None:
    _two_games(sources)
    orchestrator = Orchestrator(config)
    assert orchestrator.last_summary() is None

    orchestrator.run_once()

    data = json.loads(config.summary_path.read_text(encoding="utf-8"))
    assert data["counts"] == {"published": 2, "skipped": 0, "failed": 0}
    assert orchestrator.last_summary() == data
    assert [outcome["state"] for outcome in data["outcomes"]] == ["published", "published"]


def test_index_failure_is_reported(config: GamedirConfig, sources: GameSourceBuilder) -> None:
    class FailingIndex(IndexGenerator):
        def generate(self, games):
            raise OSError("read-only file system")

    _two_games(sources)
    orchestrator = Orchestrator(config, index_generator=FailingIndex(config.public_root))

    summary = orchestrator.run_once()

    assert len(summary.published) == 2
    assert summary.index_path is None
    assert summary.index_error == "read-only file system"
    assert not summary.ok


def test_unexpected_error_is_contained(config: GamedirConfig, sources: GameSourceBuilder) -> None:
    class ExplodingBuilder:
        def run(self, working_copy, spec):
            raise ValueError("boom")

    _two_games(sources)

    summary = Orchestrator(config, builder=ExplodingBuilder()).run_once()

    assert [outcome.state for outcome in summary.outcomes] == [
        GameState.BUILD_FAILED,
        GameState.BUILD_FAILED,
    ]
    assert summary.outcomes[0].error_kind == "ValueError"
    assert summary.outcomes[0].detail == "boom"


def test_thumbnail_hook_runs_after_publish(
    config: GamedirConfig, sources: GameSourceBuilder
) -> None:
    class RecordingHook:
        def __init__(self) -> None:
            self.captured: list[Path] = []

        def capture(self, game_dir: Path) -> bool:
            self.captured.append(game_dir)
            (game_dir / "thumbnail.png").write_bytes(b"png")
            return True

    _two_games(sources)
    hook = RecordingHook()
    orchestrator = Orchestrator(config, thumbnail_hook=hook)

    orchestrator.run_once()
    orchestrator.run_once()

    assert sorted(hook.captured) == [config.public_root / "g1", config.public_root / "g2"]
    assert 'src="/g1/thumbnail.png"' in _index_html(config)


def test_regenerate_index_without_building(
    config: GamedirConfig, sources: GameSourceBuilder
) -> None:
    _two_games(sources)
    orchestrator = Orchestrator(config)
    orchestrator.run_once()
    (config.public_root / "index.html").unlink()

    path = orchestrator.regenerate_index()

    assert path.is_file()
    assert 'href="/g2/"' in path.read_text(encoding="utf-8")
