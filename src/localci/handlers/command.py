"""Shell-command phase handler.

Runs a command declared under ``phases:`` in the project file. Output is
captured, echoed unchanged, and the command's exit status becomes the phase
result without reinterpretation.
"""

import logging
import shlex
import subprocess
import sys
import time
from pathlib import Path
from typing import Optional

from ..phase import InvocationResult, Phase
from ..project_file import PhaseCommand

logger = logging.getLogger(__name__)

EXIT_TIMEOUT = 124
EXIT_NOT_FOUND = 127


class CommandHandler:
    """Runs one phase's shell command.

    Responsibilities:
    1. Build the command and its environment from the runner config
    2. Execute it in the configured workdir
    3. Relay output and exit status verbatim
    """

    def __init__(self, phase: Phase, spec: PhaseCommand, stdout=None, stderr=None):
        self.phase = phase
        self.spec = spec
        self._stdout = stdout
        self._stderr = stderr

    def __repr__(self) -> str:
        return f"CommandHandler({self.phase.value!r}, {self.spec.command!r})"

    def __call__(self, config) -> InvocationResult:
        command = self.spec.command
        workdir = Path(config.mount_path) / self.spec.workdir
        if not workdir.is_dir():
            logger.warning(
                f"[{self.phase.value}] workdir {workdir} missing, defaulting to {config.mount_path}"
            )
            workdir = Path(config.mount_path)

        env = dict(config.env)
        env.update(self.spec.env)

        shell = self.spec.shell if self.spec.shell is not None else isinstance(command, str)
        cmd = command
        if isinstance(command, str) and not shell:
            cmd = shlex.split(command)
        elif isinstance(command, list) and shell:
            cmd = shlex.join(command)

        logger.info(f"[{self.phase.value}] Running: {command}")
        start_time = time.time()
        try:
            result = subprocess.run(
                cmd,
                cwd=str(workdir),
                capture_output=True,
                timeout=self.spec.timeout_seconds,
                env=env,
                shell=shell,
            )
        except subprocess.TimeoutExpired as e:
            duration = time.time() - start_time
            self._echo(e.stdout, e.stderr)
            message = f"Command timed out after {self.spec.timeout_seconds}s"
            logger.error(f"[{self.phase.value}] {message}")
            return InvocationResult(
                phase=self.phase,
                exit_code=EXIT_TIMEOUT,
                output=_as_text(e.stdout) + _as_text(e.stderr),
                error=message,
                duration_seconds=round(duration, 2),
            )
        except FileNotFoundError as e:
            message = f"Command not found: {e.filename or command}"
            logger.error(f"[{self.phase.value}] {message}")
            return InvocationResult(
                phase=self.phase,
                exit_code=EXIT_NOT_FOUND,
                error=message,
                duration_seconds=round(time.time() - start_time, 2),
            )

        duration = time.time() - start_time
        self._echo(result.stdout, result.stderr)

        if result.returncode == 0:
            logger.info(f"[{self.phase.value}] Command passed in {duration:.1f}s")
        else:
            logger.warning(f"[{self.phase.value}] Command failed (exit {result.returncode})")

        return InvocationResult(
            phase=self.phase,
            exit_code=result.returncode,
            output=_as_text(result.stdout) + _as_text(result.stderr),
            error=None if result.returncode == 0 else f"Exit code {result.returncode}",
            duration_seconds=round(duration, 2),
        )

    def _echo(self, stdout: Optional[bytes], stderr: Optional[bytes]) -> None:
        _write(self._stdout or sys.stdout, stdout)
        _write(self._stderr or sys.stderr, stderr)


def _write(stream, data: Optional[bytes]) -> None:
    """Write captured bytes unchanged; text-only streams get a lenient decode."""
    if not data:
        return
    buffer = getattr(stream, "buffer", None)
    if buffer is not None:
        stream.flush()
        buffer.write(data)
        buffer.flush()
    else:
        stream.write(_as_text(data))
        stream.flush()


def _as_text(value: Optional[object]) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)
