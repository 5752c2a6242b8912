"""Run registry — route stop requests to the run started under an app id.

Runs live in a module-level registry keyed by app id, so a later stop command
that only knows the identity reaches the exact runnable that was started.
"""

from __future__ import annotations

import threading

from runexec.errors import ConfigurationError
from runexec.logger import logger
from runexec.orchestrator import RunOutput

_runs: dict[str, RunOutput] = {}
_lock = threading.Lock()


def register_run(output: RunOutput) -> None:
    with _lock:
        existing = _runs.get(output.app_id)
        if existing is not None and existing is not output:
            raise ConfigurationError(f"app id already registered: {output.app_id}")
        _runs[output.app_id] = output
    logger.debug("Run registered", app_id=output.app_id)


def get_run(app_id: str) -> RunOutput | None:
    with _lock:
        return _runs.get(app_id)


def unregister_run(app_id: str) -> RunOutput | None:
    with _lock:
        return _runs.pop(app_id, None)


def list_app_ids() -> list[str]:
    with _lock:
        return sorted(_runs)


def stop_run(app_id: str) -> bool:
    """Kill the app and sidecar registered under ``app_id``.

    Returns False when no run is registered under that id.
    """
    output = unregister_run(app_id)
    if output is None:
        logger.warning("No run registered for app id", app_id=app_id)
        return False
    output.stop()
    return True


def stop_all_runs() -> None:
    """Stop every registered run — called during shutdown."""
    app_ids = list_app_ids()
    if not app_ids:
        return
    logger.info("Stopping all runs", count=len(app_ids))
    for app_id in app_ids:
        stop_run(app_id)
