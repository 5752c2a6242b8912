"""Supervise a sidecar and a native or WebAssembly application process.

Submodules:
  types         — CommandSpec, env assignment parsing, RunnableProcess contract
  native        — NativeProcessRunner (subprocess)
  sandbox       — SandboxModuleRunner (wasmtime)
  commands      — RunConfig → sidecar/app commands, backend selection
  orchestrator  — ProcessHandle, RunExec, RunOutput, new_output()
  registry      — app id → run, for stop requests
  lifecycle     — output draining, wait with deadline
"""

from runexec.config import RunConfig, Settings, get_settings
from runexec.errors import (
    CapabilityRegistrationError,
    ConfigurationError,
    FormatError,
    LaunchError,
    NotStartedError,
    RunExecError,
    RuntimeAbortError,
)
from runexec.lifecycle import ExitInfo, log_process_output, wait_or_kill
from runexec.native import NativeProcessRunner
from runexec.orchestrator import (
    ProcessHandle,
    RunExec,
    RunOutput,
    get_app_process,
    get_sidecar_process,
    new_output,
)
from runexec.registry import get_run, register_run, stop_all_runs, stop_run
from runexec.sandbox import SandboxModuleRunner
from runexec.types import NO_PID, CommandSpec, RunnableProcess, parse_env_assignment

__all__ = [
    "NO_PID",
    "CapabilityRegistrationError",
    "CommandSpec",
    "ConfigurationError",
    "ExitInfo",
    "FormatError",
    "LaunchError",
    "NativeProcessRunner",
    "NotStartedError",
    "ProcessHandle",
    "RunConfig",
    "RunExec",
    "RunExecError",
    "RunOutput",
    "RunnableProcess",
    "RuntimeAbortError",
    "SandboxModuleRunner",
    "Settings",
    "get_app_process",
    "get_run",
    "get_settings",
    "get_sidecar_process",
    "log_process_output",
    "new_output",
    "parse_env_assignment",
    "register_run",
    "stop_all_runs",
    "stop_run",
    "wait_or_kill",
]
