"""Pytest configuration and fixtures for localci tests"""

import logging
import os
import sys
from pathlib import Path

import pytest

# Ensure src directory is in Python path before any imports
project_root = Path(__file__).resolve().parent.parent
src_path = project_root / "src"

for path in (project_root, src_path):
    path_str = str(path)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)

from localci.config import RunnerConfig  # noqa: E402

TEST_IMAGE = "registry.example.com/ci/python:3.12"


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Strip LOCALCI_* variables and run every test from an empty directory."""
    for key in list(os.environ):
        if key.startswith("LOCALCI_"):
            monkeypatch.delenv(key, raising=False)
    workdir = tmp_path / "workspace"
    workdir.mkdir()
    monkeypatch.chdir(workdir)
    return workdir


@pytest.fixture(autouse=True)
def reset_localci_logger():
    """configure_logging() binds handlers to the current stderr; drop them."""
    yield
    logger = logging.getLogger("localci")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def make_config(isolated_env):
    """Factory for RunnerConfig rooted at the test workspace."""

    def _make(**kwargs):
        kwargs.setdefault("image", TEST_IMAGE)
        kwargs.setdefault("mount_path", isolated_env)
        kwargs.setdefault("env", {"CI_JOB_ID": "42", "PATH": "/usr/bin", "HOME": "/home/dev"})
        kwargs.setdefault("sentinel_path", str(isolated_env / "no-such-sentinel"))
        return RunnerConfig(**kwargs)

    return _make
