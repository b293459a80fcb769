# tourdispatch/config.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from typing import Mapping, Optional

from .errors import ConfigError
from .util.timeparse import DAY_MINUTES, parse_window

DEFAULT_WINDOW_START_MIN = 6 * 60
DEFAULT_WINDOW_END_MIN = 24 * 60
DEFAULT_SNAP_MIN = 15
DEFAULT_DURATION_MIN = 120
DEFAULT_MAX_HISTORY = 50
DEFAULT_TIMEOUT_S = 30.0

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class TimelineConfig:
    """Day window and pointer geometry used by the time utilities.

    Minutes are counted from local midnight. window_end_min may be 1440 (24:00).
    guide_column_px is subtracted from pointer offsets before mapping to time;
    lanes that already exclude the guide column use 0.
    """

    window_start_min: int = DEFAULT_WINDOW_START_MIN
    window_end_min: int = DEFAULT_WINDOW_END_MIN
    snap_min: int = DEFAULT_SNAP_MIN
    guide_column_px: float = 0.0
    default_duration_min: int = DEFAULT_DURATION_MIN

    def __post_init__(self) -> None:
        if not (0 <= self.window_start_min < DAY_MINUTES):
            raise ConfigError(f"window_start_min out of range: {self.window_start_min}")
        if not (0 < self.window_end_min <= DAY_MINUTES):
            raise ConfigError(f"window_end_min out of range: {self.window_end_min}")
        if self.window_end_min <= self.window_start_min:
            raise ConfigError("window end must be after window start")
        if int(self.snap_min) < 1:
            raise ConfigError(f"snap_min must be >= 1, got {self.snap_min}")
        if self.guide_column_px < 0:
            raise ConfigError("guide_column_px must be >= 0")
        if int(self.default_duration_min) < 1:
            raise ConfigError("default_duration_min must be >= 1")

    @property
    def window_minutes(self) -> int:
        return self.window_end_min - self.window_start_min


@dataclass(frozen=True)
class DispatchConfig:
    timeline: TimelineConfig = field(default_factory=TimelineConfig)
    base_url: Optional[str] = None
    api_token: Optional[str] = None
    timeout_s: float = DEFAULT_TIMEOUT_S
    max_history: int = DEFAULT_MAX_HISTORY
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if int(self.max_history) < 1:
            raise ConfigError(f"max_history must be >= 1, got {self.max_history}")
        if self.timeout_s <= 0:
            raise ConfigError(f"timeout_s must be > 0, got {self.timeout_s}")
        if str(self.log_level).upper() not in _LOG_LEVELS:
            raise ConfigError(f"unknown log level: {self.log_level!r}")

    @property
    def log_level_value(self) -> int:
        return getattr(logging, str(self.log_level).upper())

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "DispatchConfig":
        """Build a config from TOURDISPATCH_* environment variables.

        Recognized:
          - TOURDISPATCH_BASE_URL, TOURDISPATCH_TOKEN
          - TOURDISPATCH_TIMEOUT (seconds, float)
          - TOURDISPATCH_WINDOW ("06:00-24:00")
          - TOURDISPATCH_SNAP (minutes)
          - TOURDISPATCH_MAX_HISTORY
          - TOURDISPATCH_LOG_LEVEL
        """
        env = os.environ if environ is None else environ
        timeline = TimelineConfig()

        window = (env.get("TOURDISPATCH_WINDOW") or "").strip()
        if window:
            try:
                ws, we = parse_window(window)
            except ValueError as e:
                raise ConfigError(f"Invalid TOURDISPATCH_WINDOW: {e}") from e
            timeline = replace(timeline, window_start_min=ws, window_end_min=we)

        snap = (env.get("TOURDISPATCH_SNAP") or "").strip()
        if snap:
            timeline = replace(timeline, snap_min=_env_int("TOURDISPATCH_SNAP", snap))

        kwargs = {"timeline": timeline}
        base_url = (env.get("TOURDISPATCH_BASE_URL") or "").strip()
        if base_url:
            kwargs["base_url"] = base_url
        token = (env.get("TOURDISPATCH_TOKEN") or "").strip()
        if token:
            kwargs["api_token"] = token
        timeout = (env.get("TOURDISPATCH_TIMEOUT") or "").strip()
        if timeout:
            try:
                kwargs["timeout_s"] = float(timeout)
            except ValueError as e:
                raise ConfigError(f"Invalid TOURDISPATCH_TIMEOUT: {timeout!r}") from e
        max_history = (env.get("TOURDISPATCH_MAX_HISTORY") or "").strip()
        if max_history:
            kwargs["max_history"] = _env_int("TOURDISPATCH_MAX_HISTORY", max_history)
        level = (env.get("TOURDISPATCH_LOG_LEVEL") or "").strip()
        if level:
            kwargs["log_level"] = level.upper()

        return cls(**kwargs)


def _env_int(name: str, raw: str) -> int:
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"Invalid {name}: {raw!r}") from e
