"""Phase router: run exactly one registered handler and relay its outcome.

The router never orders or chains phases; the pipeline runner calls it once
per job stage. A handler's status and output are returned as-is so local and
pipeline runs observe the same behavior. An uncaught exception becomes exit
status 1 with the original message kept in the result and the log.
"""

from __future__ import annotations

import logging
import sys
import time
from typing import Union

from .config import RunnerConfig
from .exceptions import ExitCode, process_exit_status
from .handlers.registry import HandlerRegistry, HandlerResult
from .logging_config import phase_var
from .phase import InvocationResult, Phase

logger = logging.getLogger(__name__)


class PhaseRouter:
    """Dispatches a validated phase to its handler."""

    def __init__(self, registry: HandlerRegistry, config: RunnerConfig):
        self.registry = registry
        self.config = config

    def dispatch(self, phase: Union[Phase, str]) -> InvocationResult:
        """Invoke the handler registered for ``phase``.

        Raises:
            UsageError: If the phase is invalid or has no handler. Raised
                before any handler runs.
        """
        if not isinstance(phase, Phase):
            phase = Phase.parse(phase)
        handler = self.registry.get(phase)

        token = phase_var.set(phase.value)
        start = time.monotonic()
        try:
            logger.debug(f"[{phase.value}] Invoking {getattr(handler, '__name__', handler)!r}")
            try:
                outcome = handler(self.config)
            except SystemExit as e:
                outcome = _exit_status(e)
            except Exception as e:
                error = f"{type(e).__name__}: {e}"
                logger.exception(f"[{phase.value}] Handler raised {error}")
                return InvocationResult(
                    phase=phase,
                    exit_code=ExitCode.LOGIC_FAILURE,
                    error=error,
                    duration_seconds=round(time.monotonic() - start, 3),
                )
        finally:
            phase_var.reset(token)

        return _to_result(phase, outcome, round(time.monotonic() - start, 3))


def _exit_status(exc: SystemExit) -> int:
    code = exc.code
    if code is None:
        return 0
    if isinstance(code, int):
        return code
    # sys.exit("message") prints the message and exits 1
    print(code, file=sys.stderr)
    return 1


def _to_result(phase: Phase, outcome: HandlerResult, duration: float) -> InvocationResult:
    if isinstance(outcome, InvocationResult):
        return outcome
    if outcome is None:
        return InvocationResult(phase=phase, exit_code=0, duration_seconds=duration)
    if isinstance(outcome, int) and not isinstance(outcome, bool):
        status = process_exit_status(outcome)
        if status != outcome:
            logger.warning(
                f"[{phase.value}] handler returned {outcome}, outside 0..255; reporting exit {status}"
            )
        return InvocationResult(
            phase=phase,
            exit_code=status,
            error=None if outcome == 0 else f"Exit code {outcome}",
            duration_seconds=duration,
        )

    error = f"handler returned unsupported value {outcome!r} (expected int, None or InvocationResult)"
    logger.error(f"[{phase.value}] {error}")
    return InvocationResult(
        phase=phase, exit_code=ExitCode.LOGIC_FAILURE, error=error, duration_seconds=duration
    )
