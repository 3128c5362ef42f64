"""Environment gate: run here, or hand off to the target container.

The marker that proves "already inside the image" must only ever be set by
the image's entrypoint. The gate never falls back to running on the host
because the container runtime is unavailable; the only host run without the
marker is an explicit ``--no-container`` request.
"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from rich.console import Console
from rich.prompt import Confirm

from .config import RunnerConfig
from .context import ExecutionContext
from .exceptions import GateError, UserAborted
from .phase import Phase

logger = logging.getLogger(__name__)

ConfirmFn = Callable[[str], bool]
InteractiveFn = Callable[[], bool]


class DecisionKind(str, Enum):
    RUN_LOCALLY = "run_locally"
    REEXEC_IN_CONTAINER = "reexec_in_container"


@dataclass(frozen=True)
class Decision:
    """Outcome of the gate, carrying what a re-exec needs."""

    kind: DecisionKind
    image: Optional[str] = None
    mount_path: Optional[Path] = None
    container_workdir: Optional[str] = None
    interactive: bool = False

    @property
    def run_locally(self) -> bool:
        return self.kind is DecisionKind.RUN_LOCALLY


RUN_LOCALLY = Decision(kind=DecisionKind.RUN_LOCALLY)


def stdio_is_interactive() -> bool:
    """True when both stdin and stdout are attached to a terminal."""
    try:
        return sys.stdin.isatty() and sys.stdout.isatty()
    except (AttributeError, ValueError):
        return False


def rich_confirm(prompt: str) -> bool:
    """Ask on the terminal; prompt text goes to stderr."""
    return Confirm.ask(prompt, default=True, console=Console(stderr=True))


class EnvironmentGate:
    """Decides between running locally and re-executing in the container."""

    def __init__(
        self,
        context: ExecutionContext,
        config: RunnerConfig,
        phase: Phase,
        confirm: ConfirmFn = rich_confirm,
        is_interactive: InteractiveFn = stdio_is_interactive,
    ):
        self.context = context
        self.config = config
        self.phase = phase
        self._confirm = confirm
        self._is_interactive = is_interactive

    def resolve(self) -> Decision:
        """Return the decision for this invocation.

        Raises:
            UserAborted: The developer declined the container prompt.
            GateError: A re-executed child still lacks the marker, so the
                image never sets it.
        """
        if self.context.inside_container:
            logger.debug("Container marker present; running locally")
            return RUN_LOCALLY

        if self.config.force_local:
            logger.warning(
                f"Running {self.phase.value} on the host without container {self.context.image} "
                "(--no-container); results may differ from the pipeline"
            )
            return RUN_LOCALLY

        if self.context.reexec_depth > 0:
            raise GateError(
                f"re-executed inside {self.context.image} but marker {self.config.marker_var} "
                f"is not set and {self.config.sentinel_path} does not exist; "
                "the image entrypoint must set the marker",
                runtime=self.config.runtime,
            )

        interactive = self._is_interactive()
        decision = Decision(
            kind=DecisionKind.REEXEC_IN_CONTAINER,
            image=self.context.image,
            mount_path=self.context.mount_path,
            container_workdir=self.context.container_workdir,
            interactive=interactive,
        )

        if not interactive:
            logger.info(f"Not inside {self.context.image}; re-executing in container")
            return decision

        if self.config.assume_yes or self.config.print_command:
            return decision

        prompt = (
            f"Not running inside {self.context.image}. "
            f"Re-run '{self.phase.value}' in a container?"
        )
        if not self._confirm(prompt):
            raise UserAborted(f"declined to run {self.phase.value} in {self.context.image}")
        return decision
