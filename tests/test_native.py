"""Tests for NativeProcessRunner. Uses real child processes."""

from __future__ import annotations

import io
import signal

import pytest
from conftest import ECHO, SH, SLEEP

from runexec.errors import ConfigurationError, FormatError, LaunchError, NotStartedError
from runexec.native import NativeProcessRunner
from runexec.types import CommandSpec


def _runner(path: str, *args: str, env: dict[str, str] | None = None) -> NativeProcessRunner:
    return NativeProcessRunner(CommandSpec.create(path, list(args), env or {}))


class TestLifecycle:
    def test_echo_round_trip(self):
        r = _runner(ECHO, "hi")
        out = r.stdout_pipe()
        r.start()
        data = out.read()
        assert r.wait() == 0
        assert data == b"hi\n"
        assert r.running() is False

    def test_pid_positive_after_start(self):
        r = _runner(ECHO, "hi")
        r.start()
        try:
            assert r.pid() > 0
            assert r.has_process() is True
        finally:
            r.wait()

    def test_not_running_before_start(self):
        r = _runner(ECHO, "hi")
        assert r.running() is False
        assert r.has_process() is False

    def test_wait_without_start_returns_immediately(self):
        assert _runner(ECHO).wait() is None

    def test_nonzero_exit_code(self):
        r = _runner(SH, "-c", "exit 7")
        r.start()
        assert r.wait() == 7
        assert r.running() is False

    def test_start_twice_rejected(self):
        r = _runner(ECHO)
        r.start()
        try:
            with pytest.raises(ConfigurationError):
                r.start()
        finally:
            r.wait()


class TestNotStarted:
    def test_kill_before_start(self):
        with pytest.raises(NotStartedError, match="not started"):
            _runner(SLEEP, "1").kill()

    def test_pid_before_start(self):
        with pytest.raises(NotStartedError):
            _runner(SLEEP, "1").pid()


class TestKill:
    @pytest.mark.timeout(10)
    def test_kill_terminates(self):
        r = _runner(SLEEP, "30")
        r.start()
        assert r.running() is True
        r.kill()
        assert r.wait() == -signal.SIGKILL
        assert r.running() is False

    @pytest.mark.timeout(10)
    def test_kill_is_idempotent(self):
        r = _runner(SLEEP, "30")
        r.start()
        r.kill()
        r.kill()
        r.wait()
        r.kill()
        assert r.running() is False


class TestLaunchErrors:
    def test_missing_executable(self, tmp_path):
        r = _runner(str(tmp_path / "nope"))
        with pytest.raises(LaunchError, match="failed to start"):
            r.start()
        assert r.running() is False
        assert r.has_process() is False

    def test_not_executable(self, tmp_path):
        script = tmp_path / "script"
        script.write_text("#!/bin/sh\necho hi\n")
        script.chmod(0o644)
        with pytest.raises(LaunchError):
            _runner(str(script)).start()

    def test_malformed_env_rejected_before_spawn(self):
        r = NativeProcessRunner(CommandSpec(path=ECHO, env=("=oops",)))
        with pytest.raises(FormatError):
            r.start()
        assert r.has_process() is False

    @pytest.mark.timeout(10)
    def test_pipes_reach_eof_after_failed_start(self, tmp_path):
        r = _runner(str(tmp_path / "nope"))
        out, err = r.stdout_pipe(), r.stderr_pipe()
        with pytest.raises(LaunchError):
            r.start()
        assert out.read() == b""
        assert err.read() == b""

    @pytest.mark.timeout(10)
    def test_pipe_reaches_eof_after_env_rejected(self):
        r = NativeProcessRunner(CommandSpec(path=ECHO, env=("=oops",)))
        out = r.stdout_pipe()
        with pytest.raises(FormatError):
            r.start()
        assert out.read() == b""

    def test_pumped_sink_released_after_failed_start(self, tmp_path):
        r = _runner(str(tmp_path / "nope"))
        sink = io.BytesIO()
        r.attach_stdout(sink)
        with pytest.raises(LaunchError):
            r.start()
        assert r.wait() is None
        # The internal pump pipe is closed rather than leaked
        assert r._stdout._pump_reader is None


class TestStreams:
    def test_stderr_pipe(self):
        r = _runner(SH, "-c", "echo err 1>&2")
        err = r.stderr_pipe()
        r.start()
        assert err.read() == b"err\n"
        assert r.wait() == 0

    def test_env_passed_to_child(self):
        r = _runner(SH, "-c", 'printf %s "$OPTS"', env={"OPTS": "a=b"})
        out = r.stdout_pipe()
        r.start()
        assert out.read() == b"a=b"
        r.wait()

    def test_empty_env_inherits_host(self, monkeypatch):
        monkeypatch.setenv("RUNEXEC_TEST_MARKER", "inherited")
        r = _runner(SH, "-c", 'printf %s "$RUNEXEC_TEST_MARKER"')
        out = r.stdout_pipe()
        r.start()
        assert out.read() == b"inherited"
        r.wait()

    def test_pipe_returns_same_reader(self):
        r = _runner(ECHO)
        assert r.stdout_pipe() is r.stdout_pipe()

    def test_pipe_after_start_rejected(self):
        r = _runner(ECHO, "hi")
        r.start()
        try:
            with pytest.raises(ConfigurationError, match="after process started"):
                r.stdout_pipe()
        finally:
            r.wait()

    def test_bytes_sink_is_pumped(self):
        sink = io.BytesIO()
        r = _runner(ECHO, "hi")
        r.attach_stdout(sink)
        r.start()
        r.wait()
        assert sink.getvalue() == b"hi\n"

    def test_text_sink_is_decoded(self):
        sink = io.StringIO()
        r = _runner(SH, "-c", "printf 'caf\\303\\251' 1>&2")
        r.attach_stderr(sink)
        r.start()
        r.wait()
        assert sink.getvalue() == "café"

    def test_file_sink_receives_output_directly(self, tmp_path):
        target = tmp_path / "out.log"
        with target.open("wb") as f:
            r = _runner(ECHO, "hi")
            r.attach_stdout(f)
            r.start()
            r.wait()
        assert target.read_bytes() == b"hi\n"

    def test_sink_and_pipe_are_exclusive(self):
        r = _runner(ECHO)
        r.stdout_pipe()
        with pytest.raises(ConfigurationError):
            r.attach_stdout(io.BytesIO())

    def test_unrequested_output_is_discarded(self):
        r = _runner(ECHO, "hi")
        r.start()
        assert r.wait() == 0
