"""Resolve a :class:`RunConfig` into sidecar and application commands."""

from __future__ import annotations

import os
import shutil

from runexec.config import RunConfig, Settings, get_settings
from runexec.logger import logger
from runexec.native import NativeProcessRunner
from runexec.sandbox import SandboxModuleRunner
from runexec.types import WASM_SUFFIX, CommandSpec, RunnableProcess


def build_sidecar_command(config: RunConfig, settings: Settings | None = None) -> CommandSpec:
    """Command line for the sidecar serving ``config.app_id``."""
    s = settings or get_settings()
    args = [
        "--app-id", config.app_id,
        "--dapr-http-port", str(config.http_port),
        "--dapr-grpc-port", str(config.grpc_port),
        "--metrics-port", str(config.metrics_port),
        "--app-protocol", config.app_protocol,
        "--log-level", config.log_level,
    ]  # fmt: skip
    if config.app_port is not None:
        args += ["--app-port", str(config.app_port)]
    for path in config.resources_paths:
        args += ["--resources-path", path]
    if config.config_file:
        args += ["--config", config.config_file]
    return CommandSpec.create(s.sidecar_path, args)


def _app_env(config: RunConfig) -> list[str]:
    env = [f"{k}={v}" for k, v in os.environ.items()]
    env.append(f"APP_ID={config.app_id}")
    if config.app_port is not None:
        env.append(f"APP_PORT={config.app_port}")
    env += [
        f"DAPR_HTTP_PORT={config.http_port}",
        f"DAPR_GRPC_PORT={config.grpc_port}",
        f"DAPR_METRICS_PORT={config.metrics_port}",
    ]
    env += [f"{k}={v}" for k, v in config.env.items()]
    return env


def build_app_command(config: RunConfig) -> CommandSpec | None:
    """Command for the application, or ``None`` when the run has no app."""
    if not config.has_app:
        return None
    program, *args = config.command
    # Modules are never looked up on PATH; executables fall back to the raw name
    path = program if program.endswith(WASM_SUFFIX) else shutil.which(program) or program
    return CommandSpec.create(path, args, _app_env(config))


def select_runner(spec: CommandSpec, *, strict_env: bool | None = None) -> RunnableProcess:
    """Bind the backend for ``spec``: ``.wasm`` modules are sandboxed, the rest native."""
    if spec.is_wasm:
        strict = get_settings().strict_env if strict_env is None else strict_env
        logger.debug("Selected sandbox runner", path=spec.path, strict_env=strict)
        return SandboxModuleRunner(spec, strict_env=strict)
    logger.debug("Selected native runner", path=spec.path)
    return NativeProcessRunner(spec)
