"""Configuration — Pydantic models for dockterm settings."""

from __future__ import annotations

import json
import os
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

# F12 sends this on xterm-compatible terminals
F12_SEQUENCE = "\x1b[24~"


class SessionConfig(BaseModel):
    """Container session behaviour.

    All durations are in seconds. The geometry setup sends six commands to
    the shell, waiting ``setup_step_delay`` between them (1.5x after the
    scroll-region command, which redraws the screen).
    """

    image: str = Field(default="ubuntu:latest", description="Image to run")
    shell: list[str] = Field(default_factory=lambda: ["/bin/bash"])
    ready_timeout: float = Field(
        default=5.0, description="Fallback before readiness is assumed"
    )
    nudge_delay: float = Field(
        default=1.0, description="Pause after attach before nudging the shell"
    )
    settle_delay: float = Field(
        default=0.5, description="Pause after readiness before geometry setup"
    )
    setup_step_delay: float = Field(default=0.2)
    status_clear_delay: float = Field(default=2.0)
    reserved_rows: int = Field(
        default=2, ge=1, description="Bottom rows kept free for the status line"
    )
    buffer_max_chars: int = Field(default=10_000, gt=0)
    buffer_keep_chars: int = Field(default=5_000, gt=0)
    command_key: str = Field(
        default=F12_SEQUENCE, description="Key sequence that enters command mode"
    )

    @model_validator(mode="after")
    def _check_buffer_bounds(self) -> SessionConfig:
        if self.buffer_keep_chars >= self.buffer_max_chars:
            raise ValueError("buffer_keep_chars must be smaller than buffer_max_chars")
        return self


class RuntimeConfig(BaseModel):
    """Docker Engine connection settings."""

    base_url: str | None = Field(
        default=None, description="Engine URL; None reads DOCKER_HOST and friends"
    )
    timeout: int = Field(default=60, description="Per-request API timeout")
    ping_attempts: int = Field(default=3, ge=1)


class DocktermConfig(BaseModel):
    """Top-level dockterm configuration."""

    session: SessionConfig = Field(default_factory=SessionConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    log_file: str = Field(
        default="~/.dockterm/dockterm.log",
        description="Log destination (the terminal is raw while attached)",
    )

    @classmethod
    def load(cls, config_path: str | None = None) -> DocktermConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            DOCKTERM_IMAGE          - Image to spawn
            DOCKTERM_READY_TIMEOUT  - Readiness fallback in seconds
            DOCKTERM_DOCKER_HOST    - Docker Engine URL
            DOCKTERM_LOG_FILE       - Log file path
        """
        load_dotenv(override=True)

        config_data: dict[str, Any] = {}

        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        session = config_data.get("session", {})
        runtime = config_data.get("runtime", {})

        env_image = os.environ.get("DOCKTERM_IMAGE")
        if env_image:
            session["image"] = env_image

        env_ready_timeout = os.environ.get("DOCKTERM_READY_TIMEOUT")
        if env_ready_timeout:
            session["ready_timeout"] = float(env_ready_timeout)

        env_docker_host = os.environ.get("DOCKTERM_DOCKER_HOST")
        if env_docker_host:
            runtime["base_url"] = env_docker_host

        env_log_file = os.environ.get("DOCKTERM_LOG_FILE")
        if env_log_file:
            config_data["log_file"] = env_log_file

        if session:
            config_data["session"] = session
        if runtime:
            config_data["runtime"] = runtime

        return cls.model_validate(config_data)
