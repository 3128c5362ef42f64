"""Build the handler registry for one invocation.

Handlers come from two places:

- a Python tasks module (``ci_tasks.py`` in the working directory by
  default), using ``@phase_handler`` or functions named after the phases;
- shell commands declared under ``phases:`` in the project file.

Defining the same phase in both is ambiguous and rejected.
"""

import importlib
import importlib.util
import logging
import sys
from pathlib import Path
from types import ModuleType
from typing import Optional

from ..config import RunnerConfig
from ..exceptions import UsageError
from ..phase import Phase
from .command import CommandHandler
from .registry import PHASE_ATTR, HandlerRegistry

logger = logging.getLogger(__name__)

DEFAULT_TASKS_FILE = "ci_tasks.py"


def load_module(reference: str, workspace: Path) -> ModuleType:
    """Import a tasks module from a ``.py`` path or a dotted module name.

    Relative paths and dotted names are resolved against ``workspace``.
    """
    candidate = Path(reference)
    if reference.endswith(".py") or candidate.suffix == ".py":
        path = candidate if candidate.is_absolute() else workspace / candidate
        if not path.is_file():
            raise UsageError(f"handler module not found: {path}")
        module_name = f"localci_tasks_{path.stem}"
        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise UsageError(f"cannot load handler module: {path}")
        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            sys.modules.pop(module_name, None)
            raise UsageError(f"error importing handler module {path}: {type(e).__name__}: {e}") from e
        return module

    workspace_str = str(workspace)
    added = workspace_str not in sys.path
    if added:
        sys.path.insert(0, workspace_str)
    try:
        return importlib.import_module(reference)
    except ImportError as e:
        raise UsageError(f"cannot import handler module {reference!r}: {e}") from e
    finally:
        if added and workspace_str in sys.path:
            sys.path.remove(workspace_str)


def collect_handlers(module: ModuleType, registry: HandlerRegistry) -> None:
    """Register decorated functions, then conventionally named ones."""
    decorated = set()
    for name in sorted(vars(module)):
        obj = getattr(module, name)
        phase = getattr(obj, PHASE_ATTR, None)
        if isinstance(phase, Phase) and callable(obj):
            registry.register(phase, obj)
            decorated.add(phase)

    for phase in Phase:
        if phase in decorated:
            continue
        obj = getattr(module, phase.value, None)
        if callable(obj) and getattr(obj, PHASE_ATTR, None) is None:
            registry.register(phase, obj)


def build_registry(config: RunnerConfig, reference: Optional[str] = None) -> HandlerRegistry:
    """Assemble handlers for the configured workspace.

    Args:
        config: Runner configuration
        reference: Tasks module override; defaults to ``config.handlers``

    Returns:
        HandlerRegistry with every phase the project defines
    """
    registry = HandlerRegistry()
    workspace = Path(config.mount_path)
    reference = reference or config.handlers

    if reference is None and (workspace / DEFAULT_TASKS_FILE).is_file():
        reference = DEFAULT_TASKS_FILE

    if reference is not None:
        module = load_module(reference, workspace)
        try:
            collect_handlers(module, registry)
        except ValueError as e:
            raise UsageError(f"handler module {reference}: {e}") from e
        logger.debug(
            f"Loaded handlers from {reference}: {[p.value for p in registry.available()]}"
        )

    for phase, spec in config.phase_commands.items():
        phase = Phase.parse(phase) if isinstance(phase, str) else phase
        if phase in registry:
            raise UsageError(
                f"phase {phase.value} is defined both in the project file and in {reference}"
            )
        registry.register(phase, CommandHandler(phase, spec))

    return registry
