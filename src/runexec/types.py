"""Data models and the runnable-process contract."""

from __future__ import annotations

from dataclasses import dataclass
from typing import BinaryIO, Protocol, runtime_checkable

from runexec.errors import FormatError

# Pid reported by runnables that are not backed by an OS process.
NO_PID = -1

WASM_SUFFIX = ".wasm"


def parse_env_assignment(entry: str, *, strict: bool = False) -> tuple[str, str]:
    """Split a ``NAME=VALUE`` assignment into ``(name, value)``.

    By default only the first ``=`` separates name from value, so values may
    themselves contain ``=``. With ``strict=True`` every ``=`` is a separator
    and more than one of them is rejected. A bare ``NAME`` maps to an empty
    value under both policies.
    """
    if strict:
        parts = entry.split("=")
        if len(parts) > 2:
            raise FormatError(f"unexpected environment variable: {entry}")
    else:
        parts = entry.split("=", 1)
    name = parts[0]
    if not name:
        raise FormatError(f"environment variable has no name: {entry!r}")
    return name, parts[1] if len(parts) == 2 else ""


@dataclass(frozen=True)
class CommandSpec:
    """Resolved invocation: program path (or module reference), args, environment.

    ``env`` holds ``NAME=VALUE`` assignments in the order they are passed to
    the process. An empty ``env`` means "inherit the host environment" for
    native processes and "no variables" for sandboxed modules.
    """

    path: str
    args: tuple[str, ...] = ()
    env: tuple[str, ...] = ()

    @classmethod
    def create(
        cls,
        path: str,
        args: list[str] | tuple[str, ...] = (),
        env: dict[str, str] | list[str] | tuple[str, ...] = (),
    ) -> CommandSpec:
        if isinstance(env, dict):
            env = tuple(f"{k}={v}" for k, v in env.items())
        return cls(path=path, args=tuple(args), env=tuple(env))

    @property
    def argv(self) -> tuple[str, ...]:
        return (self.path, *self.args)

    @property
    def is_wasm(self) -> bool:
        return self.path.endswith(WASM_SUFFIX)

    def environ(self, *, strict: bool = False) -> dict[str, str]:
        return dict(parse_env_assignment(e, strict=strict) for e in self.env)


@runtime_checkable
class RunnableProcess(Protocol):
    """Uniform lifecycle contract implemented by the native and sandboxed runners."""

    spec: CommandSpec

    def start(self) -> None: ...
    def wait(self) -> int | None: ...
    def pid(self) -> int: ...
    def has_process(self) -> bool: ...
    def running(self) -> bool: ...
    def kill(self) -> None: ...
    def stdout_pipe(self) -> BinaryIO: ...
    def stderr_pipe(self) -> BinaryIO: ...
    def attach_stdout(self, sink: object) -> None: ...
    def attach_stderr(self, sink: object) -> None: ...

