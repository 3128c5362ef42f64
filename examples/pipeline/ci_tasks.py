"""Example tasks module for a small Python service.

Each phase is an independent function: ``localci script`` runs only
``run_tests`` and can be exercised without running ``prescript`` first.
The deploy step is illustrative and only prints what it would do.
"""

import subprocess
import sys

from localci import phase_handler


@phase_handler("prescript")
def install_dependencies(config):
    """Install the project into the container's interpreter."""
    return subprocess.call([sys.executable, "-m", "pip", "install", "-q", "-e", ".[test]"])


@phase_handler("script")
def run_tests(config):
    """Run the test suite; pytest's exit status is the phase result."""
    return subprocess.call([sys.executable, "-m", "pytest", "-q"])


@phase_handler("afterscript")
def deploy(config):
    branch = config.env.get("CI_COMMIT_BRANCH", "")
    if branch != "main":
        print(f"Skipping deploy for branch {branch or '<local>'}")
        return 0
    print(f"Would deploy {config.env.get('CI_COMMIT_SHORT_SHA', 'HEAD')} to production")
    return 0
