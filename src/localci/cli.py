"""localci CLI - run one CI lifecycle phase, locally or in the CI image.

Usage:
    localci prescript
    localci script [--yes] [--image IMAGE]
    localci afterscript --no-container
    localci script --print-command

Exit codes:
    0   success
    2   aborted by user (declined the container prompt)
    64  usage error (bad or missing phase, broken configuration)
    69  container runtime unavailable
    *   any other status is the phase handler's own, passed through
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from pydantic import ValidationError

from .config import Settings, build_runner_config
from .dispatcher import LifecycleDispatcher
from .exceptions import ExitCode, UsageError
from .gate import ConfirmFn, InteractiveFn, rich_confirm, stdio_is_interactive
from .logging_config import configure_logging
from .phase import Phase
from .project_file import load_project_file
from .version import __version__

logger = logging.getLogger(__name__)


class ArgumentParser(argparse.ArgumentParser):
    """Reports bad arguments as ``UsageError`` (exit 64) instead of exit 2."""

    def error(self, message: str):
        raise UsageError(message)


def build_parser() -> ArgumentParser:
    parser = ArgumentParser(
        prog="localci",
        description="Run a CI lifecycle phase exactly as the pipeline does, "
        "re-executing inside the CI image when needed.",
    )
    parser.add_argument("--version", action="version", version=f"localci {__version__}")
    parser.add_argument(
        "phase",
        nargs="?",
        metavar="PHASE",
        help=f"Lifecycle phase to run ({Phase.choices()})",
    )
    parser.add_argument("--config", help="Project file (default: ./localci.yaml)")
    parser.add_argument(
        "--handlers", help="Tasks module: .py path or dotted module name (default: ./ci_tasks.py)"
    )
    parser.add_argument("--image", help="Container image to re-execute in")
    parser.add_argument("--runtime", help="Container runtime binary (default: docker)")
    parser.add_argument(
        "-y", "--yes", action="store_true", help="Re-execute in the container without asking"
    )
    parser.add_argument(
        "--no-container",
        action="store_true",
        help="Run on the host even though the container marker is absent",
    )
    parser.add_argument(
        "--print-command",
        action="store_true",
        help="Print the container command instead of running it",
    )
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING, ERROR or CRITICAL")
    parser.add_argument("--log-dir", help="Also write a DEBUG log file to this directory")
    return parser


def _container_relative(value: str, mount: Path) -> Optional[str]:
    """Path ``value`` as seen from the mounted workdir, or None if outside it."""
    path = Path(value)
    if not path.is_absolute():
        return value
    try:
        return str(path.resolve().relative_to(mount))
    except ValueError:
        return None


def forwarded_args(
    args: argparse.Namespace, mount: Path, settings: Optional[Settings] = None
) -> list[str]:
    """CLI options the containerized run needs to behave the same.

    Path settings count whether they came from a flag or a ``LOCALCI_*``
    variable; host paths are rewritten relative to the mounted workdir.
    """
    forwarded: list[str] = []
    for option, name in (("--config", "config"), ("--handlers", "handlers"), ("--log-dir", "log_dir")):
        value = getattr(args, name, None) or (getattr(settings, name) if settings is not None else None)
        if not value:
            continue
        is_path = name != "handlers" or value.endswith(".py")
        relative = _container_relative(value, mount) if is_path else value
        if relative is None:
            logger.warning(f"{option} {value} is outside {mount}; not forwarded to the container")
            continue
        forwarded += [option, relative]
    if args.log_level:
        forwarded += ["--log-level", args.log_level]
    return forwarded


def main(
    argv: Optional[Sequence[str]] = None,
    confirm: ConfirmFn = rich_confirm,
    is_interactive: InteractiveFn = stdio_is_interactive,
) -> int:
    try:
        args = build_parser().parse_args(list(argv) if argv is not None else None)
        settings = Settings()
    except (UsageError, ValidationError) as e:
        configure_logging()
        logger.error(f"{UsageError.kind}: {e}")
        return int(ExitCode.USAGE_ERROR)

    log_dir = args.log_dir or settings.log_dir
    configure_logging(
        log_level=args.log_level or settings.log_level,
        log_format=settings.log_format,
        log_dir=Path(log_dir) if log_dir else None,
    )

    try:
        config_path = args.config or settings.config
        project = load_project_file(Path(config_path) if config_path else None)
        config = build_runner_config(
            settings,
            project,
            image=args.image,
            runtime=args.runtime,
            handlers=args.handlers,
            assume_yes=args.yes,
            force_local=args.no_container,
            print_command=args.print_command,
        )
    except UsageError as e:
        logger.error(f"{e.kind}: {e}")
        return int(e.exit_code)

    dispatcher = LifecycleDispatcher(
        config,
        confirm=confirm,
        is_interactive=is_interactive,
        forward_args=forwarded_args(args, config.mount_path, settings),
    )
    return dispatcher.run(args.phase)


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
