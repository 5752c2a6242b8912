"""Run orchestration — pair a sidecar with an application process.

The sidecar is always a native process. The application backend is chosen
once, from the command path, when the run is assembled:

  ``*.wasm``  → :class:`~runexec.sandbox.SandboxModuleRunner`
  otherwise  → :class:`~runexec.native.NativeProcessRunner`

Callers receive a :class:`RunOutput` carrying both processes, the app id and
the three sidecar ports, and drive both through the runnable contract.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from runexec.commands import build_app_command, build_sidecar_command, select_runner
from runexec.config import RunConfig
from runexec.errors import ConfigurationError, NotStartedError
from runexec.logger import logger
from runexec.native import NativeProcessRunner
from runexec.types import RunnableProcess


class ProcessHandle:
    """A command plus the writers its stdout/stderr should go to.

    Attaching a writer and applying it to the command are separate steps;
    applying fails when no command is bound.
    """

    def __init__(self, command: RunnableProcess | None = None) -> None:
        self.command = command
        self.command_error: Exception | None = None
        self.output_writer: Any = None
        self.error_writer: Any = None

    def with_output_writer(self, writer: Any) -> None:
        self.output_writer = writer

    def with_error_writer(self, writer: Any) -> None:
        self.error_writer = writer

    def set_stdout(self) -> None:
        """Apply the output writer. Call after :meth:`with_output_writer`."""
        if self.command is None:
            raise ConfigurationError("command is nil")
        self.command.attach_stdout(self.output_writer)

    def set_stderr(self) -> None:
        """Apply the error writer. Call after :meth:`with_error_writer`."""
        if self.command is None:
            raise ConfigurationError("command is nil")
        self.command.attach_stderr(self.error_writer)

    def _require_command(self) -> RunnableProcess:
        if self.command is None:
            raise ConfigurationError("command is nil")
        return self.command

    def start(self) -> None:
        command = self._require_command()
        try:
            command.start()
        except Exception as exc:
            self.command_error = exc
            raise

    def wait(self) -> int | None:
        command = self._require_command()
        try:
            return command.wait()
        except Exception as exc:
            self.command_error = exc
            raise

    def kill(self) -> None:
        self._require_command().kill()


@dataclass
class RunExec:
    sidecar: ProcessHandle
    app: ProcessHandle
    app_id: str
    http_port: int
    grpc_port: int
    metrics_port: int

    @classmethod
    def new(cls, config: RunConfig, sidecar: ProcessHandle, app: ProcessHandle) -> RunExec:
        return cls(
            sidecar=sidecar,
            app=app,
            app_id=config.app_id,
            http_port=config.http_port,
            grpc_port=config.grpc_port,
            metrics_port=config.metrics_port,
        )


@dataclass
class RunOutput:
    """Everything a caller needs to drive and report on one run."""

    sidecar: ProcessHandle
    app: RunnableProcess | None
    app_id: str
    http_port: int
    grpc_port: int
    metrics_port: int
    sidecar_error: Exception | None = None
    app_error: Exception | None = None

    def start(self) -> None:
        """Start the sidecar, then the application.

        Failures are recorded in ``sidecar_error``/``app_error`` and re-raised.
        The application is not started when the sidecar fails.
        """
        try:
            self.sidecar.start()
        except Exception as exc:
            self.sidecar_error = exc
            logger.error("Sidecar failed to start", app_id=self.app_id, err=str(exc))
            raise
        logger.info(
            "Sidecar started",
            app_id=self.app_id,
            pid=self.sidecar.command.pid() if self.sidecar.command else None,
            http_port=self.http_port,
            grpc_port=self.grpc_port,
            metrics_port=self.metrics_port,
        )

        if self.app is None:
            return
        try:
            self.app.start()
        except Exception as exc:
            self.app_error = exc
            logger.error("Application failed to start", app_id=self.app_id, err=str(exc))
            raise
        logger.info("Application started", app_id=self.app_id, pid=self.app.pid())

    def stop(self) -> None:
        """Kill the application and the sidecar, skipping whatever never started."""
        targets = [("app", self.app), ("sidecar", self.sidecar.command)]
        for role, proc in targets:
            if proc is None:
                continue
            try:
                proc.kill()
            except NotStartedError:
                continue
            logger.info("Stopped process", app_id=self.app_id, role=role)


def get_sidecar_process(config: RunConfig) -> ProcessHandle:
    return ProcessHandle(NativeProcessRunner(build_sidecar_command(config)))


def get_app_process(config: RunConfig) -> ProcessHandle:
    spec = build_app_command(config)
    return ProcessHandle(select_runner(spec) if spec is not None else None)


def new_output(config: RunConfig) -> RunOutput:
    """Assemble the sidecar and application processes for ``config``.

    Nothing is started. Errors constructing either process (an unreadable
    module, for instance) are raised to the caller.
    """
    sidecar = get_sidecar_process(config)
    app = get_app_process(config).command
    logger.debug(
        "Run assembled",
        app_id=config.app_id,
        app=repr(app),
        sidecar=sidecar.command and sidecar.command.spec.path,
    )
    return RunOutput(
        sidecar=sidecar,
        app=app,
        app_id=config.app_id,
        http_port=config.http_port,
        grpc_port=config.grpc_port,
        metrics_port=config.metrics_port,
    )
