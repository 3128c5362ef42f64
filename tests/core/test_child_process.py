"""Tests for ChildProcess supervision and signal forwarding."""

import signal
import sys

import pytest

from localci.container import ChildProcess, exit_status
from localci.exceptions import GateError


class FakeProc:
    """Popen stand-in whose wait() can deliver a signal to the parent."""

    pid = 4242

    def __init__(self, deliver=None, returncode=0, wait_error=None):
        self.deliver = deliver
        self.returncode = None
        self._final = returncode
        self._wait_error = wait_error
        self.sent = []
        self.terminated = False
        self.killed = False

    def poll(self):
        return self.returncode

    def send_signal(self, signum):
        self.sent.append(signum)

    def terminate(self):
        self.terminated = True
        self.returncode = -signal.SIGTERM

    def kill(self):
        self.killed = True
        self.returncode = -signal.SIGKILL

    def wait(self, timeout=None):
        if self._wait_error is not None:
            error, self._wait_error = self._wait_error, None
            raise error
        if self.deliver is not None:
            handler = signal.getsignal(self.deliver)
            handler(self.deliver, None)
        self.returncode = self._final
        return self._final


def fake_popen(proc):
    def popen(argv, env=None, cwd=None):
        popen.calls.append((argv, env, cwd))
        return proc

    popen.calls = []
    return popen


class TestExitStatus:
    def test_positive_passthrough(self):
        assert exit_status(0) == 0
        assert exit_status(3) == 3

    def test_signal_death(self):
        assert exit_status(-signal.SIGTERM) == 128 + signal.SIGTERM
        assert exit_status(-signal.SIGKILL) == 137


class TestChildProcess:
    def test_returns_child_status(self):
        proc = FakeProc(returncode=7)
        popen = fake_popen(proc)

        status = ChildProcess(["docker", "run"], env={"A": "1"}, cwd="/src", popen=popen).run()

        assert status == 7
        assert popen.calls == [(["docker", "run"], {"A": "1"}, "/src")]
        assert not proc.terminated

    def test_forwards_termination_signal_and_cleans_up(self):
        proc = FakeProc(deliver=signal.SIGTERM, returncode=-signal.SIGTERM)
        cleaned = []
        before = signal.getsignal(signal.SIGTERM)

        child = ChildProcess(["docker", "run"], on_interrupt=lambda: cleaned.append(True), popen=fake_popen(proc))
        status = child.run()

        assert proc.sent == [signal.SIGTERM]
        assert status == 128 + signal.SIGTERM
        assert child.interrupted_by == signal.SIGTERM
        assert cleaned == [True]
        assert signal.getsignal(signal.SIGTERM) is before

    def test_forwards_interrupt(self):
        proc = FakeProc(deliver=signal.SIGINT, returncode=130)

        status = ChildProcess(["docker", "run"], popen=fake_popen(proc)).run()

        assert proc.sent == [signal.SIGINT]
        assert status == 130

    def test_no_cleanup_without_interrupt(self):
        cleaned = []
        ChildProcess(["true"], on_interrupt=lambda: cleaned.append(True), popen=fake_popen(FakeProc())).run()
        assert cleaned == []

    def test_child_reaped_when_waiting_fails(self):
        proc = FakeProc(wait_error=RuntimeError("wait failed"))

        with pytest.raises(RuntimeError, match="wait failed"):
            ChildProcess(["docker", "run"], popen=fake_popen(proc)).run()

        assert proc.terminated
        assert proc.poll() is not None

    def test_start_failure_is_gate_error(self):
        def popen(argv, env=None, cwd=None):
            raise FileNotFoundError(2, "No such file or directory", argv[0])

        with pytest.raises(GateError, match="cannot start docker"):
            ChildProcess(["docker", "run"], popen=popen).run()

    def test_real_process_exit_status(self):
        status = ChildProcess([sys.executable, "-c", "import sys; sys.exit(3)"]).run()
        assert status == 3
