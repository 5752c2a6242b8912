"""Standard-stream plumbing shared by the native and sandboxed runners.

A stream is either exposed to the caller as the read end of an OS pipe, fed
into an attached writer (the sink), or discarded. Sinks that are real files
can be handed to a child process directly; anything else is fed by a pump
thread that drains an internal pipe.
"""

from __future__ import annotations

import codecs
import io
import os
import threading
from typing import Any, BinaryIO

from runexec.errors import ConfigurationError
from runexec.logger import logger

CHUNK_SIZE = 8192


def _sink_fileno(sink: Any) -> int | None:
    try:
        return sink.fileno()
    except (AttributeError, OSError, ValueError):
        # io.UnsupportedOperation is both an OSError and a ValueError
        return None


def _pump(reader: BinaryIO, sink: Any, name: str) -> None:
    """Copy everything from ``reader`` into ``sink`` until EOF."""
    decoder = (
        codecs.getincrementaldecoder("utf-8")(errors="replace")
        if isinstance(sink, io.TextIOBase)
        else None
    )
    try:
        while chunk := reader.read1(CHUNK_SIZE):
            sink.write(decoder.decode(chunk) if decoder else chunk)
            if hasattr(sink, "flush"):
                sink.flush()
        if decoder:
            tail = decoder.decode(b"", final=True)
            if tail:
                sink.write(tail)
    except (OSError, ValueError) as exc:
        logger.debug("Output pump exited", stream=name, err=str(exc))
    finally:
        reader.close()


def _discard(fd: int, name: str) -> None:
    """Read ``fd`` until EOF, dropping the bytes, then close it."""
    try:
        while os.read(fd, CHUNK_SIZE):
            pass
    except OSError as exc:
        logger.debug("Discard drain exited", stream=name, err=str(exc))
    finally:
        os.close(fd)


class StreamBinding:
    """One output stream (stdout or stderr) of a runnable process.

    With ``keep_spare`` the binding holds a duplicate of the caller's read
    end so that :meth:`discard` can drain a pipe nobody is reading.
    """

    def __init__(self, name: str, *, keep_spare: bool = False) -> None:
        self.name = name
        self._keep_spare = keep_spare
        self._spare_fd: int | None = None
        self._discarding = False
        self._lock = threading.Lock()
        self._reader: BinaryIO | None = None
        self._pump_reader: BinaryIO | None = None
        self._write_fd: int | None = None
        self._sink: Any = None
        self._pump_thread: threading.Thread | None = None
        self._launched = False

    def pipe(self) -> BinaryIO:
        """Return the read end of the pipe connected to this stream."""
        if self._launched:
            raise ConfigurationError(f"{self.name} pipe requested after process started")
        if self._sink is not None:
            raise ConfigurationError(f"{self.name} already has a writer attached")
        if self._reader is None:
            r, w = os.pipe()
            self._reader = os.fdopen(r, "rb")
            self._write_fd = w
            if self._keep_spare:
                self._spare_fd = os.dup(r)
        return self._reader

    def attach(self, sink: Any) -> None:
        if self._launched:
            raise ConfigurationError(f"{self.name} writer attached after process started")
        if self._reader is not None:
            raise ConfigurationError(f"{self.name} is already connected to a pipe")
        self._sink = sink

    def child_fd(self, *, allow_direct: bool = True) -> int | None:
        """File descriptor the process should write this stream to.

        ``None`` means the stream is discarded. With ``allow_direct`` a sink
        that owns a real file descriptor is returned as-is instead of being
        pumped.
        """
        if self._sink is not None and self._write_fd is None:
            fd = _sink_fileno(self._sink) if allow_direct else None
            if fd is not None:
                return fd
            r, w = os.pipe()
            self._pump_reader = os.fdopen(r, "rb")
            self._write_fd = w
        return self._write_fd

    def launched(self) -> None:
        """Freeze the binding and start feeding the sink, if any."""
        self._launched = True
        if self._pump_reader is not None and self._pump_thread is None:
            self._pump_thread = threading.Thread(
                target=_pump,
                args=(self._pump_reader, self._sink, self.name),
                name=f"runexec-pump-{self.name}",
                daemon=True,
            )
            self._pump_thread.start()

    def release_write_end(self) -> None:
        """Close this side's copy of the write end so readers can observe EOF."""
        if self._write_fd is not None:
            os.close(self._write_fd)
            self._write_fd = None

    def join(self, timeout: float | None = None) -> None:
        """Wait until the sink has received every byte written to the stream."""
        if self._pump_thread is not None:
            self._pump_thread.join(timeout)

    def abandon(self) -> None:
        """Undo the plumbing of a launch that failed.

        The caller's reader sees EOF and an internal pump pipe is closed.
        """
        self.release_write_end()
        if self._pump_reader is not None and self._pump_thread is None:
            self._pump_reader.close()
            self._pump_reader = None
        self.close_spare()

    def discard(self) -> None:
        """Drop everything still written to the caller's pipe.

        Unblocks a writer stuck on a full pipe that the caller is not reading.
        """
        with self._lock:
            if self._spare_fd is None or self._discarding:
                return
            self._discarding = True
            fd = self._spare_fd
        threading.Thread(
            target=_discard,
            args=(fd, self.name),
            name=f"runexec-discard-{self.name}",
            daemon=True,
        ).start()

    def close_spare(self) -> None:
        with self._lock:
            fd, self._spare_fd = self._spare_fd, None
            # A running discard drain owns the descriptor and closes it on EOF
            if fd is not None and not self._discarding:
                os.close(fd)
