"""Shared test fixtures for runexec."""

from __future__ import annotations

import shutil
from pathlib import Path

import pytest
import wasmtime

# ---------------------------------------------------------------------------
# Shared helpers (plain functions, not fixtures — importable by test files)
# ---------------------------------------------------------------------------

SH = shutil.which("sh") or "/bin/sh"
ECHO = shutil.which("echo") or "/bin/echo"
SLEEP = shutil.which("sleep") or "/bin/sleep"

# Module with no imports at all — WASI must not be registered for it.
NOOP_WAT = """
(module
  (func (export "_start")))
"""

# Writes "hello" to stdout through WASI fd_write.
HELLO_WAT = """
(module
  (import "wasi_snapshot_preview1" "fd_write"
    (func $fd_write (param i32 i32 i32 i32) (result i32)))
  (memory (export "memory") 1)
  (data (i32.const 16) "hello")
  (func (export "_start")
    (i32.store (i32.const 0) (i32.const 16))
    (i32.store (i32.const 4) (i32.const 5))
    (drop (call $fd_write (i32.const 1) (i32.const 0) (i32.const 1) (i32.const 8)))))
"""

# Writes "oops" to stderr.
STDERR_WAT = """
(module
  (import "wasi_snapshot_preview1" "fd_write"
    (func $fd_write (param i32 i32 i32 i32) (result i32)))
  (memory (export "memory") 1)
  (data (i32.const 16) "oops")
  (func (export "_start")
    (i32.store (i32.const 0) (i32.const 16))
    (i32.store (i32.const 4) (i32.const 4))
    (drop (call $fd_write (i32.const 2) (i32.const 0) (i32.const 1) (i32.const 8)))))
"""

BULK_CHUNK = b"abcdefgh"
BULK_REPEAT = 50_000

# Writes BULK_CHUNK BULK_REPEAT times: far more than a pipe buffer holds.
BULK_WAT = """
(module
  (import "wasi_snapshot_preview1" "fd_write"
    (func $fd_write (param i32 i32 i32 i32) (result i32)))
  (memory (export "memory") 1)
  (data (i32.const 16) "abcdefgh")
  (func (export "_start") (local $i i32)
    (i32.store (i32.const 0) (i32.const 16))
    (i32.store (i32.const 4) (i32.const 8))
    (loop $again
      (drop (call $fd_write (i32.const 1) (i32.const 0) (i32.const 1) (i32.const 8)))
      (local.set $i (i32.add (local.get $i) (i32.const 1)))
      (br_if $again (i32.lt_u (local.get $i) (i32.const 50000))))))
"""

# Calls proc_exit(3).
EXIT_WAT = """
(module
  (import "wasi_snapshot_preview1" "proc_exit" (func $proc_exit (param i32)))
  (memory (export "memory") 1)
  (func (export "_start")
    (call $proc_exit (i32.const 3))))
"""

TRAP_WAT = """
(module
  (func (export "_start")
    unreachable))
"""

# Never returns on its own.
SPIN_WAT = """
(module
  (func (export "_start")
    (loop $forever
      (br $forever))))
"""


def write_wasm(directory: Path, name: str, wat: str) -> Path:
    """Compile ``wat`` and write the binary module to ``directory/name.wasm``."""
    path = directory / f"{name}.wasm"
    path.write_bytes(wasmtime.wat2wasm(wat))
    return path


def make_run_config(**overrides):
    """Create a RunConfig with sensible defaults for testing."""
    from runexec.config import RunConfig

    defaults = {
        "app_id": "orders",
        "command": [ECHO, "hi"],
        "app_port": 8080,
    }
    defaults.update(overrides)
    return RunConfig(**defaults)


# ---------------------------------------------------------------------------
# Autouse fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _default_settings(monkeypatch):
    """Ensure each test starts with a Settings singleton built from defaults.

    Points the sidecar at ``sleep`` so orchestration tests never need a real
    sidecar binary installed.
    """
    from runexec.config import Settings

    for var in ("RUNEXEC_SIDECAR_PATH", "RUNEXEC_STRICT_ENV"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setattr("runexec.config._settings", Settings(sidecar_path=SLEEP))


@pytest.fixture(autouse=True)
def _clean_registry():
    """Drop runs registered by a test so ids never leak between tests."""
    import runexec.registry as registry

    yield
    for output in list(registry._runs.values()):
        output.stop()
    registry._runs.clear()
