"""Phase handler registry."""

from __future__ import annotations

from typing import Callable, Iterable, Optional, Union

from ..exceptions import UsageError
from ..phase import InvocationResult, Phase

HandlerResult = Optional[Union[InvocationResult, int]]
Handler = Callable[..., HandlerResult]

PHASE_ATTR = "__localci_phase__"


def phase_handler(phase: Union[Phase, str]) -> Callable[[Handler], Handler]:
    """Mark a function in a tasks module as the handler for ``phase``.

    Example:
        @phase_handler("script")
        def run_tests(config):
            ...
    """
    resolved = Phase.parse(phase) if isinstance(phase, str) else phase

    def decorator(func: Handler) -> Handler:
        setattr(func, PHASE_ATTR, resolved)
        return func

    return decorator


class HandlerRegistry:
    """Maps each phase to at most one handler."""

    def __init__(self, entries: Optional[Iterable[tuple[Phase, Handler]]] = None):
        self._by_phase: dict[Phase, Handler] = {}
        for phase, handler in entries or ():
            self.register(phase, handler)

    def register(self, phase: Union[Phase, str], handler: Handler) -> None:
        key = Phase.parse(phase) if isinstance(phase, str) else phase
        if key in self._by_phase:
            raise ValueError(f"Duplicate handler for phase: {key.value}")
        if not callable(handler):
            raise TypeError(f"Handler for phase {key.value} is not callable: {handler!r}")
        self._by_phase[key] = handler

    def available(self) -> tuple[Phase, ...]:
        return tuple(p for p in Phase if p in self._by_phase)

    def get(self, phase: Phase) -> Handler:
        handler = self._by_phase.get(phase)
        if handler is None:
            available = ", ".join(p.value for p in self.available()) or "<none>"
            raise UsageError(f"no handler registered for phase {phase.value} (available: {available})")
        return handler

    def __contains__(self, phase: object) -> bool:
        return phase in self._by_phase

    def __len__(self) -> int:
        return len(self._by_phase)
