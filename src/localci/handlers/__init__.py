"""Phase handlers: Python callables and project-file shell commands."""

from .command import CommandHandler
from .loader import build_registry, collect_handlers, load_module
from .registry import Handler, HandlerRegistry, phase_handler

__all__ = [
    "CommandHandler",
    "Handler",
    "HandlerRegistry",
    "build_registry",
    "collect_handlers",
    "load_module",
    "phase_handler",
]
