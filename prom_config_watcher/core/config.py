from __future__ import annotations

import math
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator


class ConfigError(RuntimeError):
    """Raised when watcher config cannot be parsed."""


DEFAULT_WATCH_PATH = "/config"
DEFAULT_TARGET_PATH = "/processed-config"
DEFAULT_PROMETHEUS_URL = "http://localhost:9090/-/reload"
DEFAULT_PROCESS_DELAY = "5s"

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_NUMBER = r"(\d+(?:\.\d*)?|\.\d+)"
_BARE_NUMBER = re.compile(_NUMBER)
_DURATION_PART = re.compile(_NUMBER + r"(ns|us|µs|ms|s|m|h)")


def parse_duration(value: str | int | float) -> float:
    """Parse a Go-style duration (``5s``, ``200ms``, ``1m30s``) into seconds.

    Bare numbers are taken as seconds.
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        text = value.strip()
        if not text:
            raise ValueError("empty duration")
        sign = 1.0
        if text[0] in "+-":
            sign = -1.0 if text[0] == "-" else 1.0
            text = text[1:]
            if not text:
                raise ValueError(f"invalid duration: {value!r}")
        if _BARE_NUMBER.fullmatch(text):
            seconds = sign * float(text)
        else:
            pos = 0
            total = 0.0
            while pos < len(text):
                match = _DURATION_PART.match(text, pos)
                if match is None:
                    raise ValueError(f"invalid duration: {value!r}")
                total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
                pos = match.end()
            seconds = sign * total
    if not math.isfinite(seconds):
        raise ValueError(f"invalid duration: {value!r}")
    if seconds < 0:
        raise ValueError(f"duration must not be negative: {value!r}")
    return seconds


class WatcherConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    watch_path: str = DEFAULT_WATCH_PATH
    expand_vars: bool = True
    copy_files: bool = True
    target_path: str = DEFAULT_TARGET_PATH
    prometheus_url: str = DEFAULT_PROMETHEUS_URL
    process_delay_time: float = parse_duration(DEFAULT_PROCESS_DELAY)
    debug: bool = False

    @field_validator("process_delay_time", mode="before")
    @classmethod
    def _parse_delay(cls, value: Any) -> float:
        if isinstance(value, (str, int, float)):
            return parse_duration(value)
        raise ValueError(f"invalid duration: {value!r}")


def load_config(*, path: Path | None = None, overrides: dict[str, Any] | None = None) -> WatcherConfig:
    """Build a config from an optional YAML file plus explicit overrides.

    Overrides whose value is ``None`` are ignored so unset CLI flags fall back
    to the file, then to the model defaults.
    """
    payload: dict[str, Any] = {}
    if path is not None:
        payload.update(_read_yaml(path))
    for key, value in (overrides or {}).items():
        if value is not None:
            payload[key] = value

    try:
        return WatcherConfig.model_validate(payload)
    except ValidationError as exc:
        raise ConfigError(f"invalid config: {exc}") from exc


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"cannot read config file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"invalid config yaml at {path}: {exc}") from exc

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigError("config root must be a mapping")
    # Accept the flag spelling (watch-path) as well as the field name.
    return {str(key).replace("-", "_"): value for key, value in raw.items()}
