"""Configuration for localci.

Settings are read once at startup from ``LOCALCI_*`` environment variables
(or a ``.env`` file in the working directory), merged with the project file
and command-line overrides into a single immutable ``RunnerConfig``. The gate,
router and phase handlers receive that value explicitly instead of reading
the process environment on their own.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Literal, Mapping, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from .project_file import PhaseCommand, ProjectFile

DEFAULT_IMAGE = "python:3.12-slim"
DEFAULT_MARKER_VAR = "LOCALCI_IN_CONTAINER"
DEFAULT_SENTINEL_PATH = "/.localci-container"
DEFAULT_CONTAINER_WORKDIR = "/workspace"
DEFAULT_INNER_COMMAND = ("python", "-m", "localci")
REEXEC_DEPTH_VAR = "LOCALCI_REEXEC_DEPTH"
SETTINGS_ENV_PREFIX = "LOCALCI_"

# Settings that mean the same inside the container. Path settings are passed
# as rewritten command-line options instead; the rest only matter on the host.
CONTAINER_SETTINGS_ENV = frozenset(
    {
        "LOCALCI_MARKER_VAR",
        "LOCALCI_SENTINEL_PATH",
        "LOCALCI_LOG_LEVEL",
        "LOCALCI_LOG_FORMAT",
    }
)

# Host-specific variables that would break the container's own environment.
HOST_ONLY_ENV = frozenset(
    {
        "PATH",
        "HOME",
        "HOSTNAME",
        "PWD",
        "OLDPWD",
        "SHELL",
        "SHLVL",
        "TMPDIR",
        "USER",
        "LOGNAME",
        "_",
    }
)


class Settings(BaseSettings):
    """localci settings from the environment."""

    model_config = SettingsConfigDict(
        env_prefix=SETTINGS_ENV_PREFIX, env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    marker_var: str = DEFAULT_MARKER_VAR
    sentinel_path: str = DEFAULT_SENTINEL_PATH
    image: Optional[str] = None
    container_workdir: Optional[str] = None
    runtime: Optional[str] = None
    pull_policy: Optional[Literal["missing", "always", "never"]] = None
    handlers: Optional[str] = None
    config: Optional[str] = None
    assume_yes: bool = False
    force_local: bool = False
    log_level: str = "INFO"
    log_format: Literal["text", "json"] = "text"
    log_dir: Optional[str] = None


@dataclass(frozen=True)
class RunnerConfig:
    """Everything one invocation needs, assembled once at startup."""

    image: str
    mount_path: Path
    marker_var: str = DEFAULT_MARKER_VAR
    sentinel_path: str = DEFAULT_SENTINEL_PATH
    container_workdir: str = DEFAULT_CONTAINER_WORKDIR
    runtime: str = "docker"
    pull_policy: str = "missing"
    inner_command: tuple[str, ...] = DEFAULT_INNER_COMMAND
    env: Mapping[str, str] = field(default_factory=dict)
    exclude_env: frozenset[str] = HOST_ONLY_ENV
    assume_yes: bool = False
    force_local: bool = False
    print_command: bool = False
    handlers: Optional[str] = None
    phase_commands: Mapping[Any, PhaseCommand] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Freeze the environment snapshot so handlers cannot mutate it.
        object.__setattr__(self, "env", MappingProxyType(dict(self.env)))
        object.__setattr__(self, "phase_commands", MappingProxyType(dict(self.phase_commands)))

    def passthrough_env(self) -> dict[str, str]:
        """Variables forwarded into the container, by name.

        Host-only variables, the marker, the re-exec counter and host-side
        ``LOCALCI_*`` settings are left out.
        """
        excluded = self.exclude_env | {self.marker_var, REEXEC_DEPTH_VAR}
        return {
            k: v
            for k, v in self.env.items()
            if k not in excluded
            and (not k.startswith(SETTINGS_ENV_PREFIX) or k in CONTAINER_SETTINGS_ENV)
        }


def build_runner_config(
    settings: Settings,
    project: ProjectFile,
    environ: Optional[Mapping[str, str]] = None,
    cwd: Optional[Path] = None,
    **overrides: Any,
) -> RunnerConfig:
    """Merge settings, project file and CLI overrides.

    Precedence: CLI override > environment setting > project file > default.
    ``None`` overrides are ignored.
    """
    environ = dict(os.environ if environ is None else environ)
    cwd = (cwd or Path.cwd()).resolve()
    container = project.container

    def pick(name: str, *candidates: Any, default: Any = None) -> Any:
        if overrides.get(name) is not None:
            return overrides[name]
        for candidate in candidates:
            if candidate is not None:
                return candidate
        return default

    exclude_env = HOST_ONLY_ENV | frozenset(container.exclude_env)

    return RunnerConfig(
        image=pick("image", settings.image, project.image, default=DEFAULT_IMAGE),
        mount_path=cwd,
        marker_var=settings.marker_var,
        sentinel_path=settings.sentinel_path,
        container_workdir=pick(
            "container_workdir",
            settings.container_workdir,
            container.workdir,
            default=DEFAULT_CONTAINER_WORKDIR,
        ),
        runtime=pick("runtime", settings.runtime, container.runtime, default="docker"),
        pull_policy=pick("pull_policy", settings.pull_policy, container.pull, default="missing"),
        inner_command=tuple(pick("inner_command", container.command, default=DEFAULT_INNER_COMMAND)),
        env=environ,
        exclude_env=exclude_env,
        assume_yes=bool(overrides.get("assume_yes") or settings.assume_yes),
        force_local=bool(overrides.get("force_local") or settings.force_local),
        print_command=bool(overrides.get("print_command")),
        handlers=pick("handlers", settings.handlers, project.handlers),
        phase_commands=dict(project.phases),
    )
