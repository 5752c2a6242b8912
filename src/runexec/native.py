"""Native application processes — thin adapter over ``subprocess.Popen``."""

from __future__ import annotations

import subprocess
from typing import Any, BinaryIO

from runexec._streams import StreamBinding
from runexec.errors import ConfigurationError, LaunchError, NotStartedError
from runexec.logger import logger
from runexec.types import CommandSpec


class NativeProcessRunner:
    """Runs a :class:`CommandSpec` as an OS process."""

    def __init__(self, spec: CommandSpec) -> None:
        self.spec = spec
        self._proc: subprocess.Popen[bytes] | None = None
        self._stdout = StreamBinding("stdout")
        self._stderr = StreamBinding("stderr")

    def __repr__(self) -> str:
        return f"NativeProcessRunner(path={self.spec.path!r}, pid={self._proc and self._proc.pid})"

    def stdout_pipe(self) -> BinaryIO:
        return self._stdout.pipe()

    def stderr_pipe(self) -> BinaryIO:
        return self._stderr.pipe()

    def attach_stdout(self, sink: Any) -> None:
        self._stdout.attach(sink)

    def attach_stderr(self, sink: Any) -> None:
        self._stderr.attach(sink)

    def start(self) -> None:
        if self._proc is not None:
            raise ConfigurationError(f"process already started: {self.spec.path}")

        try:
            self._proc = self._spawn()
        except Exception:
            self._stdout.abandon()
            self._stderr.abandon()
            raise

        for stream in (self._stdout, self._stderr):
            stream.launched()
            stream.release_write_end()
        logger.debug("Native process started", path=self.spec.path, pid=self._proc.pid)

    def _spawn(self) -> subprocess.Popen[bytes]:
        env = self.spec.environ() if self.spec.env else None
        stdout = self._stdout.child_fd()
        stderr = self._stderr.child_fd()
        try:
            return subprocess.Popen(
                list(self.spec.argv),
                env=env,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL if stdout is None else stdout,
                stderr=subprocess.DEVNULL if stderr is None else stderr,
            )
        except OSError as exc:
            raise LaunchError(f"failed to start {self.spec.path}: {exc}") from exc

    def wait(self) -> int | None:
        if self._proc is None:
            return None
        code = self._proc.wait()
        self._stdout.join()
        self._stderr.join()
        return code

    def pid(self) -> int:
        if self._proc is None:
            raise NotStartedError(f"process not started: {self.spec.path}")
        return self._proc.pid

    def has_process(self) -> bool:
        return self._proc is not None

    def running(self) -> bool:
        return self._proc is not None and self._proc.poll() is None

    def kill(self) -> None:
        if self._proc is None:
            raise NotStartedError(f"process not started: {self.spec.path}")
        # Popen.kill is a no-op once the exit status has been collected
        self._proc.kill()
