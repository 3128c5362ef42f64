"""localci - run CI lifecycle phases locally exactly as the pipeline runs them."""

from .exceptions import ExitCode, GateError, LocalCIError, UsageError, UserAborted
from .handlers import phase_handler
from .phase import InvocationResult, Phase
from .version import __version__

__all__ = [
    "ExitCode",
    "GateError",
    "InvocationResult",
    "LocalCIError",
    "Phase",
    "UsageError",
    "UserAborted",
    "__version__",
    "phase_handler",
]
