"""Contract tests for CommandHandler.

Validates that project-file shell commands run in the right place with the
right environment, and that output and exit status are relayed unchanged.
"""

import io
import subprocess
import sys
from unittest.mock import Mock, patch

import pytest

from localci.handlers.command import EXIT_NOT_FOUND, EXIT_TIMEOUT, CommandHandler
from localci.phase import Phase
from localci.project_file import PhaseCommand


def completed(returncode=0, stdout="", stderr=""):
    result = Mock()
    result.returncode = returncode
    result.stdout = stdout.encode()
    result.stderr = stderr.encode()
    return result


class TestCommandHandler:
    """Test suite for CommandHandler contract."""

    @pytest.fixture
    def streams(self):
        return io.StringIO(), io.StringIO()

    def make(self, streams, **spec):
        spec.setdefault("command", "make test")
        out, err = streams
        return CommandHandler(Phase.SCRIPT, PhaseCommand(**spec), stdout=out, stderr=err)

    def test_successful_command(self, make_config, streams):
        handler = self.make(streams)

        with patch("subprocess.run", return_value=completed(0, stdout="12 passed\n")):
            result = handler(make_config())

        assert result.exit_code == 0
        assert result.phase is Phase.SCRIPT
        assert result.output == "12 passed\n"
        assert result.error is None
        assert streams[0].getvalue() == "12 passed\n"

    def test_failed_command_status_verbatim(self, make_config, streams):
        handler = self.make(streams)

        with patch("subprocess.run", return_value=completed(3, stderr="1 failed\n")):
            result = handler(make_config())

        assert result.exit_code == 3
        assert result.error == "Exit code 3"
        assert streams[1].getvalue() == "1 failed\n"

    def test_string_command_uses_shell(self, make_config, streams):
        handler = self.make(streams, command="make test && make lint")

        with patch("subprocess.run", return_value=completed()) as run:
            handler(make_config())

        assert run.call_args.args[0] == "make test && make lint"
        assert run.call_args.kwargs["shell"] is True

    def test_list_command_without_shell(self, make_config, streams):
        handler = self.make(streams, command=["pytest", "-q"])

        with patch("subprocess.run", return_value=completed()) as run:
            handler(make_config())

        assert run.call_args.args[0] == ["pytest", "-q"]
        assert run.call_args.kwargs["shell"] is False

    def test_string_command_split_when_shell_disabled(self, make_config, streams):
        handler = self.make(streams, command="pytest -q tests/unit", shell=False)

        with patch("subprocess.run", return_value=completed()) as run:
            handler(make_config())

        assert run.call_args.args[0] == ["pytest", "-q", "tests/unit"]

    def test_environment_and_workdir(self, make_config, streams, isolated_env):
        (isolated_env / "service").mkdir()
        handler = self.make(streams, workdir="service", env={"STAGE": "test"})

        with patch("subprocess.run", return_value=completed()) as run:
            handler(make_config())

        kwargs = run.call_args.kwargs
        assert kwargs["cwd"] == str(isolated_env / "service")
        assert kwargs["env"]["CI_JOB_ID"] == "42"
        assert kwargs["env"]["STAGE"] == "test"

    def test_missing_workdir_defaults_to_mount(self, make_config, streams, isolated_env):
        handler = self.make(streams, workdir="does-not-exist")

        with patch("subprocess.run", return_value=completed()) as run:
            handler(make_config())

        assert run.call_args.kwargs["cwd"] == str(isolated_env)

    def test_command_timeout(self, make_config, streams):
        handler = self.make(streams, timeout_seconds=5)

        with patch("subprocess.run", side_effect=subprocess.TimeoutExpired("make", 5, output=b"partial")):
            result = handler(make_config())

        assert result.exit_code == EXIT_TIMEOUT
        assert "timed out" in result.error
        assert result.output == "partial"

    def test_command_not_found(self, make_config, streams):
        handler = self.make(streams, command=["no-such-tool"])

        with patch("subprocess.run", side_effect=FileNotFoundError(2, "No such file", "no-such-tool")):
            result = handler(make_config())

        assert result.exit_code == EXIT_NOT_FOUND
        assert "no-such-tool" in result.error

    def test_real_command(self, make_config, streams):
        handler = self.make(streams, command=[sys.executable, "-c", "import sys; print('hi'); sys.exit(4)"])

        result = handler(make_config(env={}))

        assert result.exit_code == 4
        assert result.output.strip() == "hi"

    def test_output_captured_as_bytes(self, make_config, streams):
        handler = self.make(streams)

        with patch("subprocess.run", return_value=completed()) as run:
            handler(make_config())

        assert "text" not in run.call_args.kwargs
        assert run.call_args.kwargs["capture_output"] is True

    def test_non_utf8_output_does_not_fail_the_phase(self, make_config, streams):
        handler = self.make(streams, command="printf '\\377\\376ok\\n'; exit 0")

        result = handler(make_config(env={"PATH": "/usr/bin:/bin"}))

        assert result.exit_code == 0
        assert result.error is None
        assert result.output.endswith("ok\n")
        assert streams[0].getvalue().endswith("ok\n")

    def test_raw_bytes_echoed_unchanged_to_binary_stream(self, make_config):
        raw = io.BytesIO()
        out = io.TextIOWrapper(raw, encoding="utf-8")
        handler = CommandHandler(Phase.SCRIPT, PhaseCommand(command="make test"), stdout=out, stderr=io.StringIO())

        with patch("subprocess.run", return_value=completed()) as run:
            run.return_value.stdout = b"\xff\xfeok\n"
            result = handler(make_config())

        assert result.exit_code == 0
        assert raw.getvalue() == b"\xff\xfeok\n"
