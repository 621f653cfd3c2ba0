"""panerelay configuration: Pydantic model, load, save, and env overrides."""

from __future__ import annotations

import os
import shlex
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from panerelay.core.constants import (
    CAPTURE_DELAY_SECONDS,
    CONFIG_FILENAME,
    DEFAULT_COMMAND,
    LIVENESS_INTERVAL_SECONDS,
    MAX_COMPLETED_AGENTS,
    MAX_COMPLETED_TOOLS,
    SCROLLBACK_LINES,
    SESSION_NAME_PREFIX,
    _default_data_dir,
)
from panerelay.core.exceptions import ConfigError, ConfigNotFoundError

CURRENT_CONFIG_VERSION = 1


def panerelay_dir() -> Path:
    """
    Return the panerelay data directory, creating it if needed.

    macOS : ~/Library/Application Support/panerelay
    Linux : ~/.config/panerelay  (or $XDG_CONFIG_HOME/panerelay)
    Other : ~/.panerelay
    """
    d = _default_data_dir()
    d.mkdir(mode=0o700, parents=True, exist_ok=True)
    return d


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------


class SessionConfig(BaseModel):
    """How the external assistant process is launched and sampled."""

    command: list[str] = Field(default_factory=lambda: list(DEFAULT_COMMAND), min_length=1)
    name_prefix: str = SESSION_NAME_PREFIX
    capture_delay_s: float = CAPTURE_DELAY_SECONDS
    liveness_interval_s: float = LIVENESS_INTERVAL_SECONDS
    scrollback_lines: int = SCROLLBACK_LINES

    @field_validator("command", mode="before")
    @classmethod
    def parse_command(cls, v: Any) -> Any:
        """Accept both an argv list and a shell-style string."""
        if isinstance(v, str):
            return shlex.split(v)
        return v

    @field_validator("capture_delay_s")
    @classmethod
    def validate_capture_delay(cls, v: float) -> float:
        if not (0.0 <= v <= 60.0):
            raise ValueError("capture_delay_s must be between 0.0 and 60.0")
        return v

    @field_validator("liveness_interval_s")
    @classmethod
    def validate_liveness_interval(cls, v: float) -> float:
        if not (0.0 < v <= 300.0):
            raise ValueError("liveness_interval_s must be positive and at most 300.0")
        return v

    @field_validator("scrollback_lines")
    @classmethod
    def validate_scrollback(cls, v: int) -> int:
        if not (0 <= v <= 100_000):
            raise ValueError("scrollback_lines must be between 0 and 100000")
        return v


class CaptureConfig(BaseModel):
    fail_soft_diff: bool = False


class TrackerConfig(BaseModel):
    max_completed_tools: int = Field(default=MAX_COMPLETED_TOOLS, ge=1)
    max_completed_agents: int = Field(default=MAX_COMPLETED_AGENTS, ge=1)


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "text"  # "text" | "json"

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR"}
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {sorted(allowed)}")
        return v.upper()

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v not in ("text", "json"):
            raise ValueError("Log format must be 'text' or 'json'")
        return v


# ---------------------------------------------------------------------------
# Root config
# ---------------------------------------------------------------------------


class PaneRelayConfig(BaseModel):
    """Root panerelay configuration model."""

    model_config = {"extra": "forbid"}

    config_version: int = CURRENT_CONFIG_VERSION
    session: SessionConfig = Field(default_factory=SessionConfig)
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    tracker: TrackerConfig = Field(default_factory=TrackerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    # Computed (not stored in config file)
    _config_path: Path | None = None

    @property
    def config_path(self) -> Path | None:
        return self._config_path


# ---------------------------------------------------------------------------
# Load / save
# ---------------------------------------------------------------------------


def config_file_path() -> Path:
    if env_path := os.environ.get("PANERELAY_CONFIG"):
        return Path(env_path)
    return panerelay_dir() / CONFIG_FILENAME


def load_config(path: Path | str | None = None, *, missing_ok: bool = False) -> PaneRelayConfig:
    """
    Load PaneRelayConfig from a TOML file, overlaid with environment variables.

    Priority (highest to lowest):
      1. Environment variables (PANERELAY_*)
      2. Config file (platform data dir / config.toml, or $PANERELAY_CONFIG)
      3. Model defaults

    With *missing_ok*, an absent file is not an error: defaults plus env
    overrides are returned.
    """
    import tomllib

    cfg_path = Path(path) if path is not None else config_file_path()

    data: dict[str, Any] = {}
    if cfg_path.exists():
        try:
            with open(cfg_path, "rb") as f:
                data = tomllib.load(f)
        except Exception as exc:
            raise ConfigError(f"Cannot read config file {cfg_path}: {exc}") from exc
    elif not missing_ok:
        raise ConfigNotFoundError(f"Config file not found: {cfg_path}")

    _apply_env_overrides(data)

    try:
        config = PaneRelayConfig.model_validate(data)
    except Exception as exc:
        raise ConfigError(f"Invalid config at {cfg_path}: {exc}") from exc

    config._config_path = cfg_path if cfg_path.exists() else None
    return config


def _apply_env_overrides(data: dict[str, Any]) -> None:
    """Overlay PANERELAY_* environment variables onto parsed TOML."""

    def _env(name: str) -> str:
        return os.environ.get(name, "")

    if level := _env("PANERELAY_LOG_LEVEL"):
        data.setdefault("logging", {})["level"] = level
    if fmt := _env("PANERELAY_LOG_FORMAT"):
        data.setdefault("logging", {})["format"] = fmt
    if command := _env("PANERELAY_COMMAND"):
        data.setdefault("session", {})["command"] = command
    if delay := _env("PANERELAY_CAPTURE_DELAY_S"):
        data.setdefault("session", {})["capture_delay_s"] = _as_float(
            "PANERELAY_CAPTURE_DELAY_S", delay
        )
    if interval := _env("PANERELAY_LIVENESS_INTERVAL_S"):
        data.setdefault("session", {})["liveness_interval_s"] = _as_float(
            "PANERELAY_LIVENESS_INTERVAL_S", interval
        )


def _as_float(name: str, raw: str) -> float:
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None


def save_config(config_data: dict[str, Any], path: Path | None = None) -> Path:
    """Write config dict to TOML file with secure permissions (0600)."""
    import tomli_w

    cfg_path = path or config_file_path()
    cfg_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    config_data.setdefault("config_version", CURRENT_CONFIG_VERSION)

    # Write atomically
    tmp_path = cfg_path.with_suffix(".tmp")
    try:
        with open(tmp_path, "wb") as f:
            tomli_w.dump(config_data, f)
        tmp_path.rename(cfg_path)
    except Exception as exc:
        tmp_path.unlink(missing_ok=True)
        raise ConfigError(f"Cannot write config to {cfg_path}: {exc}") from exc

    cfg_path.chmod(0o600)
    return cfg_path
