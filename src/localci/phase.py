"""Lifecycle phases and the result of running one."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .exceptions import UsageError

PHASE_ALIASES = {
    "pre-script": "prescript",
    "pre_script": "prescript",
    "after-script": "afterscript",
    "after_script": "afterscript",
}


class Phase(str, Enum):
    """Lifecycle segments a pipeline job invokes separately."""

    PRESCRIPT = "prescript"
    SCRIPT = "script"
    AFTERSCRIPT = "afterscript"

    @classmethod
    def parse(cls, value: Optional[str]) -> "Phase":
        """Parse a command-line phase argument.

        Accepts the canonical names and the spellings in ``PHASE_ALIASES``,
        ignoring case and surrounding whitespace. Anything else raises
        ``UsageError``.
        """
        if not isinstance(value, str) or not value.strip():
            raise UsageError(f"missing phase argument (expected one of: {cls.choices()})")

        key = value.strip().lower()
        for phase in cls:
            if phase.value == key:
                return phase
        if key in PHASE_ALIASES:
            return cls(PHASE_ALIASES[key])
        raise UsageError(f"unknown phase {value!r} (expected one of: {cls.choices()})")

    @classmethod
    def choices(cls) -> str:
        return ", ".join(p.value for p in cls)


@dataclass(frozen=True)
class InvocationResult:
    """Outcome of running a single phase handler."""

    phase: Phase
    exit_code: int
    output: str = ""
    error: Optional[str] = None
    duration_seconds: float = field(default=0.0, compare=False)

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0
