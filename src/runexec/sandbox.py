"""Sandboxed application processes — WebAssembly modules run in-process.

A module is compiled with wasmtime when the runner starts, so load errors are
raised from ``start()`` while traps only surface from ``wait()``. Modules that
import ``wasi_snapshot_preview1`` get the WASI host functions registered
before instantiation; modules without such imports run with none.

Execution happens on a daemon thread. The thread publishes its outcome into a
single-slot queue that ``wait()`` consumes once. ``kill()`` bumps the engine
epoch: every store is created with an epoch deadline of one tick, so the
module traps at its next interruption check. Output the caller requested
but is not reading is discarded from then on, so a module blocked on a full
pipe gets to that check.
"""

from __future__ import annotations

import enum
import queue
import threading
from pathlib import Path
from typing import Any, BinaryIO

import wasmtime

from runexec._streams import StreamBinding
from runexec.errors import (
    CapabilityRegistrationError,
    ConfigurationError,
    LaunchError,
    NotStartedError,
    RuntimeAbortError,
)
from runexec.logger import logger
from runexec.types import NO_PID, CommandSpec, parse_env_assignment

WASI_MODULE_NAME = "wasi_snapshot_preview1"


def requires_wasi(module: wasmtime.Module) -> bool:
    """True when any import of ``module`` comes from the WASI namespace."""
    return any(imp.module == WASI_MODULE_NAME for imp in module.imports)


def _fd_path(fd: int | None) -> str | None:
    return None if fd is None else f"/dev/fd/{fd}"


class _State(enum.Enum):
    CONSTRUCTED = "constructed"
    STARTED = "started"
    TERMINATED = "terminated"


class SandboxModuleRunner:
    """Runs a WebAssembly module behind the runnable-process contract."""

    def __init__(self, spec: CommandSpec, *, strict_env: bool = False) -> None:
        self.spec = spec
        self.strict_env = strict_env
        try:
            self._wasm = Path(spec.path).read_bytes()
        except OSError as exc:
            raise LaunchError(f"wasm: error reading module {spec.path}: {exc}") from exc

        self._stdout = StreamBinding("stdout", keep_spare=True)
        self._stderr = StreamBinding("stderr", keep_spare=True)
        self._engine: wasmtime.Engine | None = None
        self._state = _State.CONSTRUCTED
        self._done: queue.Queue[int | RuntimeAbortError] = queue.Queue(maxsize=1)
        self._finished = threading.Event()
        self._wait_lock = threading.Lock()
        self._outcome: int | RuntimeAbortError | None = None

    def __repr__(self) -> str:
        return f"SandboxModuleRunner(path={self.spec.path!r}, state={self._state.value})"

    def stdout_pipe(self) -> BinaryIO:
        return self._stdout.pipe()

    def stderr_pipe(self) -> BinaryIO:
        return self._stderr.pipe()

    def attach_stdout(self, sink: Any) -> None:
        self._stdout.attach(sink)

    def attach_stderr(self, sink: Any) -> None:
        self._stderr.attach(sink)

    def pid(self) -> int:
        return NO_PID

    def has_process(self) -> bool:
        return False

    def running(self) -> bool:
        return self._state is not _State.CONSTRUCTED and not self._finished.is_set()

    def start(self) -> None:
        if self._state is not _State.CONSTRUCTED:
            raise ConfigurationError(f"module already started: {self.spec.path}")

        try:
            engine, store, linker, module, wasi_needed = self._prepare()
        except Exception:
            self._stdout.abandon()
            self._stderr.abandon()
            raise

        self._engine = engine
        self._stdout.launched()
        self._stderr.launched()
        self._state = _State.STARTED
        threading.Thread(
            target=self._run,
            args=(store, linker, module),
            name=f"runexec-wasm-{Path(self.spec.path).stem}",
            daemon=True,
        ).start()
        logger.debug("Wasm module started", module=self.spec.path, wasi=wasi_needed)

    def _prepare(
        self,
    ) -> tuple[wasmtime.Engine, wasmtime.Store, wasmtime.Linker, wasmtime.Module, bool]:
        env = [parse_env_assignment(e, strict=self.strict_env) for e in self.spec.env]

        config = wasmtime.Config()
        config.epoch_interruption = True
        engine = wasmtime.Engine(config)

        try:
            module = wasmtime.Module(engine, self._wasm)
        except wasmtime.WasmtimeError as exc:
            raise LaunchError(f"wasm: error compiling binary: {exc}") from exc

        linker = wasmtime.Linker(engine)
        wasi_needed = requires_wasi(module)
        if wasi_needed:
            try:
                linker.define_wasi()
            except wasmtime.WasmtimeError as exc:
                raise CapabilityRegistrationError(
                    f"wasm: error instantiating host functions: {exc}"
                ) from exc

        wasi = wasmtime.WasiConfig()
        wasi.argv = list(self.spec.argv)
        wasi.env = env
        stdout_path = _fd_path(self._stdout.child_fd(allow_direct=False))
        stderr_path = _fd_path(self._stderr.child_fd(allow_direct=False))
        if stdout_path:
            wasi.stdout_file = stdout_path
        if stderr_path:
            wasi.stderr_file = stderr_path

        store = wasmtime.Store(engine)
        store.set_wasi(wasi)
        store.set_epoch_deadline(1)
        return engine, store, linker, module, wasi_needed

    def _run(self, store: wasmtime.Store, linker: wasmtime.Linker, module: wasmtime.Module) -> None:
        outcome: int | RuntimeAbortError
        try:
            instance = linker.instantiate(store, module)
            try:
                entry = instance.exports(store)["_start"]
            except KeyError:
                entry = None
            if entry is not None:
                entry(store)
            outcome = 0
        except wasmtime.ExitTrap as exc:
            outcome = exc.code
        except (wasmtime.Trap, wasmtime.WasmtimeError) as exc:
            logger.warning("Wasm module aborted", module=self.spec.path, err=str(exc))
            outcome = RuntimeAbortError(f"wasm: {self.spec.path}: {exc}")
            outcome.__cause__ = exc
        except Exception as exc:
            # wait() must never block on a thread that died without an outcome
            logger.exception("Wasm module runner crashed", module=self.spec.path)
            outcome = RuntimeAbortError(f"wasm: {self.spec.path}: {exc}")
            outcome.__cause__ = exc
        finally:
            # Dropping the store closes the WASI stdio handles it opened
            store.close()
            for stream in (self._stdout, self._stderr):
                stream.release_write_end()
                stream.close_spare()

        self._done.put(outcome)
        self._finished.set()

    def wait(self) -> int | None:
        if self._state is _State.CONSTRUCTED:
            return None
        with self._wait_lock:
            if self._state is _State.STARTED:
                self._outcome = self._done.get()
                self._stdout.join()
                self._stderr.join()
                self._state = _State.TERMINATED
        if isinstance(self._outcome, RuntimeAbortError):
            raise self._outcome
        return self._outcome

    def kill(self) -> None:
        if self._engine is None:
            raise NotStartedError(f"module not started: {self.spec.path}")
        self._engine.increment_epoch()
        if not self._finished.is_set():
            # A module blocked writing to an unread pipe only sees the epoch
            # once the write returns
            self._stdout.discard()
            self._stderr.discard()
