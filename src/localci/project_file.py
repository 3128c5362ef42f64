"""Project file loader for localci.

Loads the optional ``localci.yaml`` describing the target image, container
options and shell-command phases. A missing file means "use defaults"; a
file that exists but cannot be parsed is a usage error, reported before any
phase logic runs.
"""

import logging
import shlex
from pathlib import Path
from typing import Dict, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .exceptions import UsageError
from .phase import Phase

logger = logging.getLogger(__name__)

DEFAULT_PROJECT_FILE = "localci.yaml"


class ContainerSection(BaseModel):
    """``container:`` block of the project file."""

    model_config = ConfigDict(extra="forbid")

    runtime: Optional[str] = None
    workdir: Optional[str] = None
    command: Optional[List[str]] = None
    pull: Optional[Literal["missing", "always", "never"]] = None
    exclude_env: List[str] = Field(default_factory=list)

    @field_validator("command", mode="before")
    @classmethod
    def _split_command(cls, value):
        if isinstance(value, str):
            return shlex.split(value)
        return value


class PhaseCommand(BaseModel):
    """Shell command implementing one phase."""

    model_config = ConfigDict(extra="forbid")

    command: Union[str, List[str]]
    workdir: str = "."
    env: Dict[str, str] = Field(default_factory=dict)
    shell: Optional[bool] = None
    timeout_seconds: Optional[float] = None


class ProjectFile(BaseModel):
    """Top-level schema of ``localci.yaml``."""

    model_config = ConfigDict(extra="forbid")

    image: Optional[str] = None
    handlers: Optional[str] = None
    container: ContainerSection = Field(default_factory=ContainerSection)
    phases: Dict[Phase, PhaseCommand] = Field(default_factory=dict)

    @field_validator("phases", mode="before")
    @classmethod
    def _normalize_phase_keys(cls, value):
        if not isinstance(value, dict):
            return value
        normalized = {}
        for key, spec in value.items():
            phase = Phase.parse(str(key))
            if isinstance(spec, (str, list)):
                spec = {"command": spec}
            normalized[phase] = spec
        return normalized


def load_project_file(path: Optional[Path] = None, workspace: Optional[Path] = None) -> ProjectFile:
    """Load the project file.

    Args:
        path: Explicit project file path (``--config`` / ``LOCALCI_CONFIG``).
            An explicit path that does not exist is a usage error.
        workspace: Directory searched for ``localci.yaml`` when no explicit
            path is given (defaults to current working directory)

    Returns:
        ProjectFile with loaded or default values
    """
    explicit = path is not None
    if path is None:
        path = (workspace or Path.cwd()) / DEFAULT_PROJECT_FILE

    if not path.exists():
        if explicit:
            raise UsageError(f"project file not found: {path}")
        logger.debug(f"No project file at {path}, using defaults")
        return ProjectFile()

    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise UsageError(f"cannot read project file {path}: {e}") from e

    if data is None:
        return ProjectFile()
    if not isinstance(data, dict):
        raise UsageError(f"project file {path} must contain a mapping at top level")

    try:
        project = ProjectFile.model_validate(data)
    except ValidationError as e:
        raise UsageError(f"invalid project file {path}: {e}") from e

    logger.debug(f"Loaded project file {path}")
    return project
