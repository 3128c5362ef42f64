"""Container re-execution.

``ContainerRuntime`` launches the target image with the working tree mounted
and the environment forwarded, running the same ``localci <phase>`` inside.
``ChildProcess`` supervises the blocking launch: termination signals received
while waiting are forwarded to the child, the child is always reaped, and an
interrupted container is force-removed so nothing is left running.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import signal
import subprocess
import sys
import threading
from typing import Callable, Mapping, Optional, Sequence

from .config import REEXEC_DEPTH_VAR, RunnerConfig
from .exceptions import GateError
from .gate import Decision
from .phase import Phase

logger = logging.getLogger(__name__)

# docker/podman: "the error is with the daemon itself"
RUNTIME_FAILURE_STATUS = 125

FORWARDED_SIGNALS = tuple(
    getattr(signal, name) for name in ("SIGINT", "SIGTERM", "SIGHUP") if hasattr(signal, name)
)


def exit_status(returncode: int) -> int:
    """Translate a Popen return code into a shell-style exit status."""
    if returncode < 0:
        return 128 + (-returncode)
    return returncode


class ChildProcess:
    """Run a child to completion, forwarding termination signals to it."""

    def __init__(
        self,
        argv: Sequence[str],
        env: Optional[Mapping[str, str]] = None,
        cwd: Optional[str] = None,
        on_interrupt: Optional[Callable[[], None]] = None,
        grace_seconds: float = 10.0,
        popen: Optional[Callable[..., subprocess.Popen]] = None,
    ):
        self.argv = list(argv)
        self.env = dict(env) if env is not None else None
        self.cwd = cwd
        self.on_interrupt = on_interrupt
        self.grace_seconds = grace_seconds
        self._popen = popen or subprocess.Popen
        self.interrupted_by: Optional[int] = None

    def run(self) -> int:
        """Block until the child exits and return its exit status.

        Raises:
            GateError: If the child cannot be started at all.
        """
        try:
            proc = self._popen(self.argv, env=self.env, cwd=self.cwd)
        except OSError as e:
            raise GateError(f"cannot start {self.argv[0]}: {e}", runtime=self.argv[0]) from e

        def forward(signum, frame):
            self.interrupted_by = signum
            if proc.poll() is None:
                logger.warning(f"Received signal {signum}; forwarding to child {proc.pid}")
                proc.send_signal(signum)

        previous = {}
        try:
            # signal.signal is only allowed from the main thread
            if threading.current_thread() is threading.main_thread():
                for sig in FORWARDED_SIGNALS:
                    previous[sig] = signal.signal(sig, forward)
            returncode = proc.wait()
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)
            if proc.poll() is None:
                self._reap(proc)
            if self.interrupted_by is not None and self.on_interrupt is not None:
                self.on_interrupt()

        return exit_status(returncode)

    def _reap(self, proc: subprocess.Popen) -> None:
        proc.terminate()
        try:
            proc.wait(timeout=self.grace_seconds)
        except subprocess.TimeoutExpired:
            logger.warning(f"Child {proc.pid} ignored SIGTERM; killing")
            proc.kill()
            proc.wait()


class ContainerRuntime:
    """docker-compatible CLI used to re-execute a phase inside the image."""

    def __init__(
        self,
        config: RunnerConfig,
        run: Optional[Callable[..., subprocess.CompletedProcess]] = None,
        child_factory: Callable[..., ChildProcess] = ChildProcess,
        which: Optional[Callable[[str], Optional[str]]] = None,
        forward_args: Sequence[str] = (),
    ):
        self.config = config
        self._run = run or subprocess.run
        self._child_factory = child_factory
        self._which = which or shutil.which
        self.forward_args = tuple(forward_args)

    @property
    def binary(self) -> str:
        return self.config.runtime

    def container_name(self, phase: Phase) -> str:
        return f"localci-{phase.value}-{os.getpid()}"

    def inner_command(self, phase: Phase) -> list[str]:
        return [*self.config.inner_command, phase.value, *self.forward_args]

    def child_env(self) -> dict[str, str]:
        env = dict(self.config.env)
        env.pop(self.config.marker_var, None)
        env[REEXEC_DEPTH_VAR] = str(self._next_depth())
        return env

    def _next_depth(self) -> int:
        try:
            return int(self.config.env.get(REEXEC_DEPTH_VAR, "0") or 0) + 1
        except ValueError:
            return 1

    def build_command(self, decision: Decision, phase: Phase) -> list[str]:
        """Full ``<runtime> run ...`` argv for ``phase``.

        Environment values are never placed on the command line: ``-e NAME``
        makes the runtime copy the value from its own environment.
        """
        cmd = [self.binary, "run", "--rm", "-i"]
        if decision.interactive:
            cmd.append("-t")
        cmd += [
            "--name",
            self.container_name(phase),
            "--volume",
            f"{decision.mount_path}:{decision.container_workdir}",
            "--workdir",
            decision.container_workdir,
        ]
        for name in sorted(self.config.passthrough_env()):
            cmd += ["--env", name]
        cmd += ["--env", f"{REEXEC_DEPTH_VAR}={self._next_depth()}"]
        cmd.append(decision.image)
        cmd += self.inner_command(phase)
        return cmd

    def format_command(self, decision: Decision, phase: Phase) -> str:
        return shlex.join(self.build_command(decision, phase))

    def ensure_available(self) -> str:
        """Locate the runtime binary.

        Raises:
            GateError: If the binary is not on PATH.
        """
        path = self._which(self.binary)
        if path is None:
            raise GateError(f"container runtime {self.binary!r} not found in PATH", runtime=self.binary)
        return path

    def ensure_image(self, image: str) -> None:
        """Make the image available according to the pull policy.

        Raises:
            GateError: If the image is missing and cannot be pulled, or the
                runtime cannot be reached.
        """
        policy = self.config.pull_policy
        if policy != "always":
            inspect = self._run(
                [self.binary, "image", "inspect", image],
                check=False,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
            if inspect.returncode == 0:
                logger.debug(f"Image {image} present locally")
                return
            if policy == "never":
                raise GateError(
                    f"image {image} not available locally and pull policy is 'never'",
                    runtime=self.binary,
                    returncode=inspect.returncode,
                )

        logger.info(f"Pulling image {image}")
        pulled = self._run(
            [self.binary, "pull", image],
            check=False,
            capture_output=True,
            text=True,
        )
        if pulled.returncode != 0:
            detail = (pulled.stderr or pulled.stdout or "").strip().splitlines()
            raise GateError(
                f"cannot pull image {image}: {detail[-1] if detail else f'exit {pulled.returncode}'}",
                runtime=self.binary,
                returncode=pulled.returncode,
            )

    def remove_container(self, name: str) -> None:
        logger.warning(f"Removing interrupted container {name}")
        self._run(
            [self.binary, "rm", "-f", name],
            check=False,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )

    def run(self, decision: Decision, phase: Phase) -> int:
        """Re-execute ``phase`` inside the container and relay its status.

        Raises:
            GateError: Runtime missing, image unavailable, or the runtime
                failed to start the container.
        """
        if self.config.print_command:
            print(self.format_command(decision, phase), file=sys.stdout)
            return 0

        self.ensure_available()
        self.ensure_image(decision.image)

        name = self.container_name(phase)
        cmd = self.build_command(decision, phase)
        logger.info(f"Re-executing '{phase.value}' in {decision.image} (container {name})")
        logger.debug(f"Container command: {shlex.join(cmd)}")

        child = self._child_factory(
            cmd,
            env=self.child_env(),
            cwd=str(decision.mount_path),
            on_interrupt=lambda: self.remove_container(name),
        )
        status = child.run()

        if status == RUNTIME_FAILURE_STATUS:
            raise GateError(
                f"{self.binary} failed to start container from {decision.image} (exit {status})",
                runtime=self.binary,
                returncode=status,
            )
        logger.debug(f"Container {name} exited with {status}")
        return status
