"""Execution context: facts the environment gate decides on."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from .config import REEXEC_DEPTH_VAR, RunnerConfig

logger = logging.getLogger(__name__)

_FALSE_VALUES = {"", "0", "false", "no", "off"}


@dataclass(frozen=True)
class ExecutionContext:
    """Immutable snapshot taken at process start; never persisted."""

    inside_container: bool
    image: str
    mount_path: Path
    container_workdir: str
    reexec_depth: int = 0

    @classmethod
    def detect(
        cls,
        config: RunnerConfig,
        path_exists: Optional[Callable[[str], bool]] = None,
    ) -> "ExecutionContext":
        """Inspect the environment snapshot and the sentinel file.

        Args:
            config: Runner configuration holding the environment snapshot
            path_exists: Sentinel probe, ``os.path.exists`` semantics

        Returns:
            ExecutionContext for this invocation
        """
        if path_exists is None:
            path_exists = lambda p: Path(p).exists()  # noqa: E731

        marker_value = config.env.get(config.marker_var)
        by_env = marker_value is not None and marker_value.strip().lower() not in _FALSE_VALUES
        by_file = bool(config.sentinel_path) and path_exists(config.sentinel_path)

        try:
            depth = int(config.env.get(REEXEC_DEPTH_VAR, "0") or 0)
        except ValueError:
            logger.warning(f"Ignoring malformed {REEXEC_DEPTH_VAR}={config.env[REEXEC_DEPTH_VAR]!r}")
            depth = 0

        context = cls(
            inside_container=by_env or by_file,
            image=config.image,
            mount_path=config.mount_path,
            container_workdir=config.container_workdir,
            reexec_depth=depth,
        )
        logger.debug(
            f"Execution context: inside_container={context.inside_container} "
            f"(env={by_env}, sentinel={by_file}), depth={depth}"
        )
        return context
