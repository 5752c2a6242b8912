"""Configuration — per-run :class:`RunConfig` and process-wide :class:`Settings`.

``RunConfig`` is the already-resolved description of one run (identity,
command, ports). Loading it from CLI flags or YAML happens elsewhere; this
module only validates it.

``Settings`` holds host-level knobs read from ``RUNEXEC_*`` environment
variables (e.g. ``RUNEXEC_SIDECAR_PATH``, ``RUNEXEC_STRICT_ENV``).

Usage::

    from runexec.config import RunConfig, get_settings

    cfg = RunConfig(app_id="orders", command=["python3", "app.py"], app_port=8080)
    print(get_settings().sidecar_path)
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class _StrictModel(BaseModel):
    """Base for config models — reject unknown keys so typos fail loudly."""

    model_config = {"extra": "forbid"}


def _check_port(v: int | None) -> int | None:
    if v is not None and not 1 <= v <= 65535:
        raise ValueError(f"port {v} out of range 1-65535")
    return v


class RunConfig(_StrictModel):
    app_id: str
    command: list[str] = []
    env: dict[str, str] = {}
    app_port: int | None = None
    app_protocol: Literal["http", "grpc", "https", "grpcs", "h2c"] = "http"
    http_port: int = 3500
    grpc_port: int = 50001
    metrics_port: int = 9090
    log_level: Literal["debug", "info", "warn", "error", "fatal"] = "info"
    resources_paths: list[str] = []
    config_file: str | None = None

    @field_validator("app_id")
    @classmethod
    def _validate_app_id(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("app_id cannot be empty")
        return v

    @field_validator("app_port", "http_port", "grpc_port", "metrics_port")
    @classmethod
    def _validate_port(cls, v: int | None) -> int | None:
        return _check_port(v)

    @model_validator(mode="after")
    def _ports_distinct(self) -> RunConfig:
        ports = [self.http_port, self.grpc_port, self.metrics_port]
        if self.app_port is not None:
            ports.append(self.app_port)
        if len(set(ports)) != len(ports):
            raise ValueError(f"ports must be distinct, got {ports}")
        return self

    @property
    def has_app(self) -> bool:
        return bool(self.command)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="RUNEXEC_", extra="ignore")

    sidecar_path: str = str(Path.home() / ".dapr" / "bin" / "daprd")
    strict_env: bool = False  # split NAME=VALUE on every '=' and reject extras


_settings: Settings | None = None


def get_settings() -> Settings:
    """Lazy singleton."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next access re-reads the environment."""
    global _settings  # noqa: PLW0603
    _settings = None
