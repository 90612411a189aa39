"""Tests for external process calls."""

import subprocess
import sys

import pytest

from msvc_analyze import runner
from msvc_analyze.errors import ConfigurationError
from msvc_analyze.models import AnalysisInvocation


class TestRunProcess:
    def test_captures_output_and_exit_code(self):
        """Exit code and stdout are captured."""
        result = runner.run_process([sys.executable, "-c", "import sys; print('hello'); sys.exit(3)"])
        assert result.exit_code == 3
        assert not result.ok
        assert result.stdout.strip() == "hello"

    def test_missing_executable_is_a_result(self, tmp_path):
        """A spawn failure is returned, not raised."""
        result = runner.run_process([str(tmp_path / "does-not-exist.exe")])
        assert result.exit_code == runner.SPAWN_FAILED
        assert result.stderr

    def test_find_executable(self, monkeypatch):
        """A tool missing from PATH is a configuration error."""
        monkeypatch.setattr(runner.shutil, "which", lambda name: None)
        with pytest.raises(ConfigurationError, match="cmake"):
            runner.find_executable("cmake")


class TestRunAnalysis:
    def test_environment_layered_over_process(self, monkeypatch, tmp_path):
        """The invocation environment overrides the process environment."""
        captured = {}

        def fake_run(args, cwd=None, env=None, capture_output=False, text=False):
            captured.update(args=args, cwd=cwd, env=env)
            return subprocess.CompletedProcess(args, 0, stdout="a.cpp\n", stderr="")

        monkeypatch.setattr(runner.subprocess, "run", fake_run)
        monkeypatch.setenv("SYSTEMROOT", "C:\\Windows")
        monkeypatch.setenv("INCLUDE", "outer")
        invocation = AnalysisInvocation(
            source="/src/a.cpp",
            compiler="/vs/cl.exe",
            args=["/analyze:only", "/src/a.cpp"],
            env={"INCLUDE": "inner", "CAEmitSarifLog": "1"},
            sarif_log=str(tmp_path / "a.sarif"),
        )

        result = runner.run_analysis(invocation, cwd=str(tmp_path))

        assert result.ok
        assert captured["args"] == ["/vs/cl.exe", "/analyze:only", "/src/a.cpp"]
        assert captured["cwd"] == str(tmp_path)
        assert captured["env"]["INCLUDE"] == "inner"
        assert captured["env"]["CAEmitSarifLog"] == "1"
        assert captured["env"]["SYSTEMROOT"] == "C:\\Windows"
