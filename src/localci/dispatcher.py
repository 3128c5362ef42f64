"""Lifecycle dispatcher: gate first, then route or re-execute.

Usage and gate errors are reported before any phase logic runs. A phase's
own failure is passed through with its original status.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence

from .config import RunnerConfig
from .container import ContainerRuntime
from .context import ExecutionContext
from .exceptions import RESERVED_EXIT_CODES, ExitCode, LocalCIError, process_exit_status
from .gate import ConfirmFn, EnvironmentGate, InteractiveFn, rich_confirm, stdio_is_interactive
from .handlers import HandlerRegistry, build_registry
from .logging_config import phase_var
from .phase import InvocationResult, Phase
from .router import PhaseRouter

logger = logging.getLogger(__name__)

EXIT_INTERRUPTED = 130


class LifecycleDispatcher:
    """One dispatcher per process; handles exactly one phase."""

    def __init__(
        self,
        config: RunnerConfig,
        confirm: ConfirmFn = rich_confirm,
        is_interactive: InteractiveFn = stdio_is_interactive,
        registry_factory: Callable[[RunnerConfig], HandlerRegistry] = build_registry,
        runtime: Optional[ContainerRuntime] = None,
        context: Optional[ExecutionContext] = None,
        forward_args: Sequence[str] = (),
    ):
        self.config = config
        self.confirm = confirm
        self.is_interactive = is_interactive
        self.registry_factory = registry_factory
        self.runtime = runtime
        self.context = context
        self.forward_args = tuple(forward_args)

    def run(self, phase_arg: Optional[str]) -> int:
        """Run the requested phase here or in the container.

        Returns:
            Process exit status
        """
        token = None
        try:
            phase = Phase.parse(phase_arg)
            token = phase_var.set(phase.value)

            context = self.context or ExecutionContext.detect(self.config)
            gate = EnvironmentGate(
                context,
                self.config,
                phase,
                confirm=self.confirm,
                is_interactive=self.is_interactive,
            )
            decision = gate.resolve()

            if decision.run_locally and self.config.print_command:
                logger.info(
                    f"{phase.value} would run here without a container; no container command to print"
                )
                return 0

            if decision.run_locally:
                router = PhaseRouter(self.registry_factory(self.config), self.config)
                return self._report(router.dispatch(phase))

            runtime = self.runtime or ContainerRuntime(self.config, forward_args=self.forward_args)
            return runtime.run(decision, phase)
        except LocalCIError as e:
            logger.error(f"{e.kind}: {e}")
            return int(e.exit_code)
        except KeyboardInterrupt:
            logger.error("interrupted")
            return EXIT_INTERRUPTED
        finally:
            if token is not None:
                phase_var.reset(token)

    def _report(self, result: InvocationResult) -> int:
        code = process_exit_status(result.exit_code)
        if code != result.exit_code:
            logger.warning(
                f"{result.phase.value} reported status {result.exit_code}, outside 0..255; "
                f"exiting with {code}"
            )
        if code == ExitCode.SUCCESS:
            logger.info(f"{result.phase.value} succeeded in {result.duration_seconds:.1f}s")
            return 0

        detail = f": {result.error}" if result.error else ""
        logger.error(f"phase failed: {result.phase.value} exited with {code}{detail}")
        if code in RESERVED_EXIT_CODES:
            logger.warning(
                f"{result.phase.value} handler returned {code}, which localci also uses for "
                f"'{ExitCode(code).name.lower().replace('_', ' ')}'; passing it through unchanged"
            )
        return int(code)
