"""Lifecycle helpers built on the runnable contract.

Provides:
  - log_process_output() — drain stdout/stderr pipes into the log (or a handler)
  - wait_or_kill() — wait with a deadline, kill on expiry, classify the exit
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import BinaryIO

from runexec.errors import RuntimeAbortError
from runexec.logger import get_process_logger, logger
from runexec.types import RunnableProcess

LineHandler = Callable[[str], None]


def _read_pipe(
    pipe: BinaryIO,
    name: str,
    is_stdout: bool,
    line_handler: LineHandler | None,
) -> None:
    proc_logger = get_process_logger(name)
    try:
        for raw in iter(pipe.readline, b""):
            line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            if not line:
                continue
            if is_stdout and line_handler:
                try:
                    line_handler(line)
                except Exception:
                    proc_logger.exception("Error in line handler")
            elif is_stdout:
                proc_logger.info(line)
            else:
                proc_logger.error(line)
    except (OSError, ValueError) as exc:
        proc_logger.debug("Pipe reader exited", err=str(exc))
    finally:
        pipe.close()


def log_process_output(
    process: RunnableProcess,
    name: str,
    line_handler: LineHandler | None = None,
) -> list[threading.Thread]:
    """Drain a process's stdout/stderr on daemon threads.

    Must be called before ``process.start()``: the pipes are requested here.
    Keeping both pipes drained is what prevents the process from stalling on
    a full pipe. Stdout lines go to ``line_handler`` when given, otherwise to
    the ``proc.<name>`` logger at info; stderr lines are logged at error.
    """
    threads = [
        threading.Thread(
            target=_read_pipe,
            args=(process.stdout_pipe(), name, True, line_handler),
            name=f"runexec-{name}-stdout",
            daemon=True,
        ),
        threading.Thread(
            target=_read_pipe,
            args=(process.stderr_pipe(), name, False, None),
            name=f"runexec-{name}-stderr",
            daemon=True,
        ),
    ]
    for t in threads:
        t.start()
    return threads


@dataclass
class ExitInfo:
    """Post-exit state of a supervised process."""

    exit_code: int | None
    timed_out: bool
    duration_ms: float
    error: RuntimeAbortError | None = None

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.error is None and self.exit_code in (0, None)


def wait_or_kill(process: RunnableProcess, timeout: float) -> ExitInfo:
    """Wait for ``process``; kill it if it outlives ``timeout`` seconds.

    Aborts reported by the sandboxed backend are returned in
    ``ExitInfo.error`` instead of raised.
    """
    start_time = time.monotonic()
    timed_out = False
    error: RuntimeAbortError | None = None
    exit_code: int | None = None

    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="runexec-wait") as pool:
        future = pool.submit(process.wait)
        try:
            exit_code = future.result(timeout=timeout)
        except TimeoutError:
            timed_out = True
            logger.warning("Process timed out, killing", process=repr(process), timeout=timeout)
            process.kill()
        except RuntimeAbortError as exc:
            error = exc

        if timed_out:
            try:
                exit_code = future.result()
            except RuntimeAbortError as exc:
                error = exc

    return ExitInfo(
        exit_code=exit_code,
        timed_out=timed_out,
        duration_ms=(time.monotonic() - start_time) * 1000,
        error=error,
    )
