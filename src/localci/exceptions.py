"""Custom exceptions and exit codes for localci.

Every failure the dispatcher detects on its own maps to exactly one exit code,
so a developer running locally sees the same classification a pipeline log
shows. Phase logic failures are not exceptions here: a handler's non-zero
status is passed through as-is.
"""

from enum import IntEnum


class ExitCode(IntEnum):
    """Process exit codes reserved by the dispatcher."""

    SUCCESS = 0
    LOGIC_FAILURE = 1  # Uncaught exception inside a phase handler
    USER_ABORTED = 2
    USAGE_ERROR = 64  # EX_USAGE
    CONTAINER_UNAVAILABLE = 69  # EX_UNAVAILABLE


RESERVED_EXIT_CODES = frozenset(
    {ExitCode.USER_ABORTED, ExitCode.USAGE_ERROR, ExitCode.CONTAINER_UNAVAILABLE}
)

MAX_EXIT_STATUS = 255


def process_exit_status(code: int) -> int:
    """Exit status the OS will report for ``code``.

    Only the low 8 bits of a process status survive, so 256 (what
    ``os.system`` returns for a command exiting 1) would be reported as
    success. Out-of-range values keep their low byte, or become 1 when that
    byte is 0.
    """
    if 0 <= code <= MAX_EXIT_STATUS:
        return code
    return (code & 0xFF) or int(ExitCode.LOGIC_FAILURE)


class LocalCIError(Exception):
    """Base exception for all localci errors."""

    exit_code: int = ExitCode.LOGIC_FAILURE
    kind: str = "error"


class UsageError(LocalCIError):
    """Raised for a bad or missing phase argument or a broken configuration."""

    exit_code = ExitCode.USAGE_ERROR
    kind = "usage error"


class GateError(LocalCIError):
    """Raised when the container runtime is unreachable or misconfigured."""

    exit_code = ExitCode.CONTAINER_UNAVAILABLE
    kind = "container runtime unavailable"

    def __init__(self, message: str, runtime: str = None, returncode: int = None):
        """
        Initialize gate error.

        Args:
            message: Error message
            runtime: Optional container runtime binary involved
            returncode: Optional exit status reported by the runtime
        """
        super().__init__(message)
        self.runtime = runtime
        self.returncode = returncode


class UserAborted(LocalCIError):
    """Raised when the developer declines the containerization prompt."""

    exit_code = ExitCode.USER_ABORTED
    kind = "aborted by user"
