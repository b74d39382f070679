import time
from pathlib import Path

import pytest

from gamedir.builder import BuildExecutor, CommandResult
from gamedir.errors import BuildNonZeroExit, BuildOutputMissing, BuildTimedOut
from gamedir.models import GameSpec, WorkingCopy


def _working_copy(tmp_path: Path, name: str = "tetris") -> WorkingCopy:
    path = tmp_path / "src"
    path.mkdir()
    (path / "index.html").write_text("<canvas></canvas>", encoding="utf-8")
    return WorkingCopy(name=name, path=path, version="abc123")


def _spec(command: str, name: str = "tetris") -> GameSpec:
    return GameSpec(name=name, source_url="file:///dev/null", build_command=command)


class RecordingRunner:
    def __init__(self, result: CommandResult, *, output: Path | None = None) -> None:
        self.result = result
        self.output = output
        self.calls: list[dict[str, object]] = []

    def __call__(self, args, *, cwd, env, timeout):
        self.calls.append({"args": args, "cwd": cwd, "env": env, "timeout": timeout})
        if self.output is not None:
            self.output.mkdir(parents=True, exist_ok=True)
            (self.output / "game.wasm").write_bytes(b"\0asm")
        return self.result


def test_successful_build_returns_artifact(tmp_path: Path) -> None:
    working_copy = _working_copy(tmp_path)
    executor = BuildExecutor(timeout=30)

    artifact = executor.run(
        working_copy, _spec("mkdir -p dist && cp index.html dist/ && echo built")
    )

    assert artifact.output_dir == working_copy.path / "dist"
    assert (artifact.output_dir / "index.html").is_file()
    assert "built" in artifact.stdout
    assert artifact.duration >= 0


def test_build_exposes_environment(tmp_path: Path) -> None:
    working_copy = _working_copy(tmp_path)
    executor = BuildExecutor(timeout=30)

    artifact = executor.run(
        working_copy,
        _spec('mkdir -p "$GAMEDIR_OUTPUT_DIR" && printf %s "$GAMEDIR_GAME" > dist/name.txt'),
    )

    assert (artifact.output_dir / "name.txt").read_text(encoding="utf-8") == "tetris"


def test_non_zero_exit_carries_diagnostics(tmp_path: Path) -> None:
    working_copy = _working_copy(tmp_path)
    executor = BuildExecutor(timeout=30)

    with pytest.raises(BuildNonZeroExit) as excinfo:
        executor.run(working_copy, _spec("echo compiling; echo 'error: bad syntax' >&2; exit 3"))

    assert excinfo.value.returncode == 3
    assert excinfo.value.stage == "build"
    assert "error: bad syntax" in excinfo.value.diagnostics
    assert "compiling" in excinfo.value.diagnostics


def test_missing_output_directory_is_reported(tmp_path: Path) -> None:
    working_copy = _working_copy(tmp_path)

    with pytest.raises(BuildOutputMissing, match="dist"):
        BuildExecutor(timeout=30).run(working_copy, _spec("true"))


def test_empty_output_directory_is_reported(tmp_path: Path) -> None:
    working_copy = _working_copy(tmp_path)

    with pytest.raises(BuildOutputMissing):
        BuildExecutor(timeout=30).run(working_copy, _spec("mkdir -p dist"))


def test_timeout_kills_the_whole_process_group(tmp_path: Path) -> None:
    working_copy = _working_copy(tmp_path)
    marker = working_copy.path / "late"
    executor = BuildExecutor(timeout=0.5)

    started = time.monotonic()
    with pytest.raises(BuildTimedOut) as excinfo:
        executor.run(working_copy, _spec("(sleep 1.5 && touch late) & sleep 30"))
    elapsed = time.monotonic() - started

    assert elapsed < 10
    assert excinfo.value.timeout == 0.5
    time.sleep(2)
    assert not marker.exists()


def test_unstartable_shell_is_a_build_failure(tmp_path: Path) -> None:
    working_copy = _working_copy(tmp_path)
    executor = BuildExecutor(timeout=30, shell=str(tmp_path / "no-such-shell"))

    with pytest.raises(BuildNonZeroExit) as excinfo:
        executor.run(working_copy, _spec("true"))

    assert excinfo.value.returncode is None


def test_runner_receives_shell_invocation(tmp_path: Path) -> None:
    working_copy = _working_copy(tmp_path)
    runner = RecordingRunner(
        CommandResult(returncode=0, stdout="", stderr="", timed_out=False, duration=0.1),
        output=working_copy.path / "zig-out" / "web",
    )
    executor = BuildExecutor(timeout=12, output_dirname="zig-out/web", runner=runner)

    artifact = executor.run(working_copy, _spec("zig build -Dtarget=wasm32-freestanding"))

    call = runner.calls[0]
    assert call["args"] == ["/bin/sh", "-c", "zig build -Dtarget=wasm32-freestanding"]
    assert call["cwd"] == working_copy.path
    assert call["timeout"] == 12
    assert call["env"]["GAMEDIR_SOURCE_DIR"] == str(working_copy.path)
    assert artifact.output_dir == working_copy.path / "zig-out" / "web"


def test_timed_out_result_wins_over_return_code(tmp_path: Path) -> None:
    working_copy = _working_copy(tmp_path)
    runner = RecordingRunner(
        CommandResult(returncode=-9, stdout="step 1\n", stderr="", timed_out=True, duration=5.0)
    )

    with pytest.raises(BuildTimedOut) as excinfo:
        BuildExecutor(timeout=5, runner=runner).run(working_copy, _spec("make"))

    assert "step 1" in excinfo.value.diagnostics


def test_output_is_truncated_to_the_tail(tmp_path: Path) -> None:
    working_copy = _working_copy(tmp_path)
    runner = RecordingRunner(
        CommandResult(
            returncode=1, stdout="A" * 100 + "END", stderr="", timed_out=False, duration=0.1
        )
    )

    with pytest.raises(BuildNonZeroExit) as excinfo:
        BuildExecutor(max_output_bytes=10, runner=runner).run(working_copy, _spec("make"))

    diagnostics = excinfo.value.diagnostics
    assert "output truncated" in diagnostics
    assert diagnostics.endswith("END")
    assert "A" * 20 not in diagnostics
