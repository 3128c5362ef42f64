"""Tests for phase parsing and invocation results."""

import pytest

from localci.exceptions import ExitCode, UsageError
from localci.phase import InvocationResult, Phase


class TestPhaseParse:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("prescript", Phase.PRESCRIPT),
            ("script", Phase.SCRIPT),
            ("afterscript", Phase.AFTERSCRIPT),
            ("pre-script", Phase.PRESCRIPT),
            ("after_script", Phase.AFTERSCRIPT),
            ("pre_script", Phase.PRESCRIPT),
            ("After-Script", Phase.AFTERSCRIPT),
            ("  SCRIPT ", Phase.SCRIPT),
        ],
    )
    def test_accepts_known_phases(self, raw, expected):
        assert Phase.parse(raw) is expected

    @pytest.mark.parametrize(
        "raw", ["", "   ", None, "cleanup", "bogus", "scripts", "scr-ipt", "a_f_t_e_r_s_c_r_i_p_t", "pre--script"]
    )
    def test_rejects_unknown_phases(self, raw):
        with pytest.raises(UsageError) as exc_info:
            Phase.parse(raw)
        assert exc_info.value.exit_code == ExitCode.USAGE_ERROR
        assert "prescript, script, afterscript" in str(exc_info.value)


class TestInvocationResult:
    def test_succeeded_only_for_zero(self):
        assert InvocationResult(Phase.SCRIPT, 0).succeeded
        assert not InvocationResult(Phase.SCRIPT, 3).succeeded

    def test_duration_ignored_in_equality(self):
        a = InvocationResult(Phase.SCRIPT, 0, output="ok", duration_seconds=0.1)
        b = InvocationResult(Phase.SCRIPT, 0, output="ok", duration_seconds=9.9)
        assert a == b
