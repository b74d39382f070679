"""Runs a game's build command against its working copy."""

from __future__ import annotations

import os
import signal
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional

from .errors import BuildNonZeroExit, BuildOutputMissing, BuildTimedOut
from .fsutil import dir_has_entries
from .logging import get_logger
from .models import BuildArtifact, GameSpec, WorkingCopy

DEFAULT_OUTPUT_DIR = "dist"

# Grace period for reaping a killed process group and draining its pipes.
_REAP_TIMEOUT = 5.0


@dataclass
class CommandResult:
    """Raw result of one build command invocation."""

    returncode: Optional[int]
    stdout: str
    stderr: str
    timed_out: bool
    duration: float


class BuildExecutor:
    """Executes opaque build commands with a bounded timeout.

    The command runs through ``/bin/sh -c`` with the working copy as its
    current directory and must leave a non-empty ``output_dirname``
    directory (``dist`` by default) inside it.
    """

    def __init__(
        self,
        *,
        timeout: float = 900.0,
        output_dirname: str = DEFAULT_OUTPUT_DIR,
        max_output_bytes: int = 64 * 1024,
        shell: str = "/bin/sh",
        runner: Callable[..., CommandResult] | None = None,
    ) -> None:
        self.timeout = timeout
        self.output_dirname = output_dirname
        self.max_output_bytes = max_output_bytes
        self.shell = shell
        self._runner = runner or self._default_runner
        self.logger = get_logger("builder")

    def run(self, working_copy: WorkingCopy, spec: GameSpec) -> BuildArtifact:
        output_dir = working_copy.path / self.output_dirname
        env = self._build_env(working_copy, spec, output_dir)
        self.logger.info("game=%s stage=build running: %s", spec.name, spec.build_command)

        try:
            result = self._runner(
                [self.shell, "-c", spec.build_command],
                cwd=working_copy.path,
                env=env,
                timeout=self.timeout,
            )
        except OSError as exc:
            raise BuildNonZeroExit(spec.name, None, f"unable to start build: {exc}") from exc

        diagnostics = self._diagnostics(result)
        if result.timed_out:
            raise BuildTimedOut(spec.name, self.timeout, diagnostics=diagnostics)
        if result.returncode != 0:
            raise BuildNonZeroExit(
                spec.name,
                result.returncode,
                f"build command exited with status {result.returncode}",
                diagnostics=diagnostics,
            )
        if not dir_has_entries(output_dir):
            raise BuildOutputMissing(
                spec.name,
                f"build succeeded but '{self.output_dirname}' is missing or empty",
                diagnostics=diagnostics,
            )

        self.logger.info(
            "game=%s stage=build finished in %.1fs", spec.name, result.duration
        )
        if diagnostics:
            self.logger.debug("game=%s build output:\n%s", spec.name, diagnostics)
        return BuildArtifact(
            name=spec.name,
            output_dir=output_dir,
            stdout=self._truncate(result.stdout),
            stderr=self._truncate(result.stderr),
            duration=result.duration,
        )

    # ------------------------------------------------------------------
    # Helpers

    @staticmethod
    def _build_env(working_copy: WorkingCopy, spec: GameSpec, output_dir: Path) -> Dict[str, str]:
        env = os.environ.copy()
        env["GAMEDIR_GAME"] = spec.name
        env["GAMEDIR_SOURCE_DIR"] = str(working_copy.path)
        env["GAMEDIR_OUTPUT_DIR"] = str(output_dir)
        return env

    def _diagnostics(self, result: CommandResult) -> str:
        parts = []
        stdout = self._truncate(result.stdout).strip()
        stderr = self._truncate(result.stderr).strip()
        if stdout:
            parts.append(f"--- stdout ---\n{stdout}")
        if stderr:
            parts.append(f"--- stderr ---\n{stderr}")
        return "\n".join(parts)

    def _truncate(self, text: str) -> str:
        encoded = text.encode("utf-8", errors="replace")
        if len(encoded) <= self.max_output_bytes:
            return text
        tail = encoded[-self.max_output_bytes :].decode("utf-8", errors="ignore")
        return f"... (output truncated)\n{tail}"

    @staticmethod
    def _default_runner(
        args: list[str],
        *,
        cwd: Path,
        env: Dict[str, str],
        timeout: float,
    ) -> CommandResult:
        started = time.monotonic()
        process = subprocess.Popen(
            args,
            cwd=str(cwd),
            env=env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            start_new_session=True,
        )
        try:
            stdout, stderr = process.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            _kill_process_group(process)
            try:
                stdout, stderr = process.communicate(timeout=_REAP_TIMEOUT)
            except subprocess.TimeoutExpired:
                # A descendant left the group but still holds the pipes open.
                process.kill()
                stdout, stderr = "", ""
                for stream in (process.stdout, process.stderr):
                    if stream is not None:
                        stream.close()
                process.wait()
            return CommandResult(
                returncode=process.returncode,
                stdout=stdout or "",
                stderr=stderr or "",
                timed_out=True,
                duration=time.monotonic() - started,
            )
        return CommandResult(
            returncode=process.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
            timed_out=False,
            duration=time.monotonic() - started,
        )


def _kill_process_group(process: subprocess.Popen) -> None:
    """SIGKILL the whole session started for ``process`` (the shell and its children)."""
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    except PermissionError:
        process.kill()


__all__ = ["BuildExecutor", "CommandResult", "DEFAULT_OUTPUT_DIR"]
