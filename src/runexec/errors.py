"""Error taxonomy for process supervision.

Start-time failures are raised synchronously from ``start()``. Failures that
happen after a sandboxed module began executing surface only from ``wait()``.
"""

from __future__ import annotations


class RunExecError(Exception):
    """Base class for every error raised by runexec."""


class LaunchError(RunExecError):
    """The executable or module could not be loaded, compiled or spawned."""


class CapabilityRegistrationError(LaunchError):
    """A system-interface import required by the module could not be satisfied."""


class FormatError(RunExecError, ValueError):
    """Malformed ``NAME=VALUE`` environment assignment."""


class ConfigurationError(RunExecError):
    """Operation invoked on a handle or process in the wrong configuration state."""


class NotStartedError(ConfigurationError):
    """Operation requires a started process."""


class RuntimeAbortError(RunExecError):
    """A sandboxed module trapped, failed to instantiate, or was killed."""
