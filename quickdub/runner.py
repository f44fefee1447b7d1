"""
Subprocess Runner
=================

Runs external programs (ffmpeg, whisper, tts) with uniform failure
reporting.

- Commands are argument vectors and never go through a shell, so a path
  containing spaces, quotes or metacharacters is always one literal
  argument. Configurable command templates are split with shlex *before*
  placeholders are substituted, which keeps that property for templates.
- stdout/stderr are spooled to temporary files, not memory. Their sizes
  are polled while the child runs; crossing max_output_bytes kills the
  child and fails the call, never a silent truncation.
- Nonzero exit, timeout, a missing binary and oversized output all raise
  ExternalToolFailure with a bounded stderr excerpt. Interpreting a
  *successful* run is left to the caller.
"""

import logging
import os
import shlex
import subprocess
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Mapping

from quickdub.errors import ExternalToolFailure, DEFAULT_DIAGNOSTIC_LIMIT


logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Captured output of a successful command"""
    args: list
    stdout: str
    stderr: str
    returncode: int
    duration_sec: float


def render_template(template: str, values: Mapping[str, str | Path]) -> list[str]:
    """
    Turn a command template into an argument vector.

    The template is tokenized first, then each {name} placeholder is
    replaced inside its token. A substituted value therefore never creates
    new tokens, whatever characters it contains.

    >>> render_template("tts --out {out_path}", {"out_path": "/tmp/a b.wav"})
    ['tts', '--out', '/tmp/a b.wav']
    """
    try:
        tokens = shlex.split(template)
    except ValueError as e:
        raise ValueError(f"Malformed command template {template!r}: {e}") from e
    if not tokens:
        raise ValueError("Empty command template")

    rendered = []
    for token in tokens:
        for name, value in values.items():
            token = token.replace("{" + name + "}", str(value))
        rendered.append(token)
    return rendered


def format_command(args: Sequence) -> str:
    """Shell-quoted rendering of an argument vector, for logs and errors"""
    return shlex.join(str(a) for a in args)


class CommandRunner:
    """
    Executes external commands with output and time limits.

    Shared by all stages and all request threads; holds no per-call state.
    """

    poll_interval_sec = 0.05

    def __init__(
        self,
        max_output_bytes: int = 200 * 1024 * 1024,
        timeout_sec: Optional[float] = 3600.0,
        diagnostic_limit: int = DEFAULT_DIAGNOSTIC_LIMIT,
    ):
        self.max_output_bytes = max_output_bytes
        self.timeout_sec = timeout_sec
        self.diagnostic_limit = diagnostic_limit

    def run(
        self,
        args: Sequence[str | Path],
        timeout_sec: Optional[float] = None,
        max_output_bytes: Optional[int] = None,
        cwd: Optional[str | Path] = None,
    ) -> CommandResult:
        """
        Run a command to completion.

        Args:
            args: Program and arguments; every element is passed verbatim
            timeout_sec: Overrides the runner default for this call
            max_output_bytes: Overrides the runner default for this call
            cwd: Working directory for the child

        Returns:
            CommandResult with decoded stdout/stderr

        Raises:
            ExternalToolFailure: nonzero exit, timeout, output over the cap,
                or the program could not be started
        """
        argv = [str(a) for a in args]
        if not argv:
            raise ValueError("Empty command")

        timeout = self.timeout_sec if timeout_sec is None else timeout_sec
        limit = self.max_output_bytes if max_output_bytes is None else max_output_bytes
        program = Path(argv[0]).name

        logger.debug("Running: %s", format_command(argv))
        start_time = time.monotonic()

        with tempfile.TemporaryFile() as out_file, tempfile.TemporaryFile() as err_file:
            try:
                proc = subprocess.Popen(
                    argv,
                    stdin=subprocess.DEVNULL,
                    stdout=out_file,
                    stderr=err_file,
                    cwd=cwd,
                )
            except OSError as e:
                # Missing binary, not executable, bad cwd
                raise ExternalToolFailure(
                    f"{program} could not be started",
                    detail=str(e),
                    exit_status=127 if isinstance(e, FileNotFoundError) else None,
                    limit=self.diagnostic_limit,
                ) from e

            deadline = None if timeout is None else start_time + timeout

            # The spool files are checked while the child runs, so a tool that
            # floods its output is killed at the cap instead of at exit
            while True:
                try:
                    proc.wait(timeout=self.poll_interval_sec)
                    break
                except subprocess.TimeoutExpired:
                    pass

                output_size = _spooled_size(out_file) + _spooled_size(err_file)
                if output_size > limit:
                    _kill(proc)
                    raise ExternalToolFailure(
                        f"{program} produced {output_size} bytes of output (limit {limit})",
                        detail=self._read(err_file, limit),
                        limit=self.diagnostic_limit,
                    )
                if deadline is not None and time.monotonic() >= deadline:
                    _kill(proc)
                    raise ExternalToolFailure(
                        f"{program} timed out after {timeout:g}s",
                        detail=self._read(err_file, limit),
                        timed_out=True,
                        limit=self.diagnostic_limit,
                    )

            duration = time.monotonic() - start_time
            out_size = _spooled_size(out_file)
            err_size = _spooled_size(err_file)

            if out_size + err_size > limit:
                raise ExternalToolFailure(
                    f"{program} produced {out_size + err_size} bytes of output "
                    f"(limit {limit})",
                    detail=self._read(err_file, limit),
                    exit_status=proc.returncode,
                    limit=self.diagnostic_limit,
                )

            stdout = self._read(out_file, limit)
            stderr = self._read(err_file, limit)

        if proc.returncode != 0:
            logger.debug("%s exited with %d after %.1fs", program, proc.returncode, duration)
            raise ExternalToolFailure(
                f"{program} exited with status {proc.returncode}",
                detail=stderr or stdout,
                exit_status=proc.returncode,
                limit=self.diagnostic_limit,
            )

        logger.debug("%s finished in %.1fs", program, duration)
        return CommandResult(
            args=argv,
            stdout=stdout,
            stderr=stderr,
            returncode=proc.returncode,
            duration_sec=duration,
        )

    def run_template(
        self,
        template: str,
        values: Mapping[str, str | Path],
        timeout_sec: Optional[float] = None,
    ) -> CommandResult:
        """Render a command template (see render_template) and run it"""
        return self.run(render_template(template, values), timeout_sec=timeout_sec)

    @staticmethod
    def _read(handle, limit: int) -> str:
        handle.seek(0)
        return handle.read(limit).decode("utf-8", errors="replace")


def _spooled_size(handle) -> int:
    return os.fstat(handle.fileno()).st_size


def _kill(proc: subprocess.Popen) -> None:
    proc.kill()
    proc.wait()


def create_runner(config) -> CommandRunner:
    """Create the shared runner from a DubConfig"""
    return CommandRunner(
        max_output_bytes=config.runner.max_output_bytes,
        timeout_sec=config.runner.timeout_sec,
        diagnostic_limit=config.runner.diagnostic_limit,
    )
