"""YAML configuration loader with dataclass mapping."""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path

import yaml


@dataclass
class ApiConfig:
    base_url: str = "http://localhost:5000/api"
    timeout: float = 10.0
    download_base_url: str = "http://localhost:5000"
    export_dir: str = ""        # empty: report export files without downloading


@dataclass
class TimeConfig:
    increment_unit: str = "seconds"   # minutes | seconds | milliseconds
    increment_amount: int = 1
    auto_advance: bool = True


@dataclass
class ViewConfig:
    default_lat: float = 32.0853
    default_lon: float = 34.7818
    default_zoom: int = 10
    jump_zoom: int = 12
    coarse_zoom: int = 8
    medium_zoom: int = 10
    fine_zoom: int = 12
    coarse_spread: float = 0.1    # degrees
    medium_spread: float = 0.01   # degrees
    auto_zoom: bool = False
    jump_to_point: bool = True
    highlight_clear_delay: float = 3.0


@dataclass
class SessionConfig:
    default_object_type: str = "drone"
    default_altitude: float = 100.0
    result_display_delay: float = 2.0
    created_by: str = "user"


@dataclass
class WebConfig:
    host: str = "0.0.0.0"
    port: int = 8080


@dataclass
class LoggingConfig:
    log_dir: str = "data/logs"


@dataclass
class AppConfig:
    api: ApiConfig = field(default_factory=ApiConfig)
    time: TimeConfig = field(default_factory=TimeConfig)
    view: ViewConfig = field(default_factory=ViewConfig)
    session: SessionConfig = field(default_factory=SessionConfig)
    web: WebConfig = field(default_factory=WebConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _apply_dict(dc: object, data: dict) -> None:
    """Apply dictionary values onto a dataclass instance, ignoring unknown keys."""
    for key, value in data.items():
        if hasattr(dc, key):
            setattr(dc, key, value)


def load_config(path: str | Path | None = None) -> AppConfig:
    """Load configuration from a YAML file, falling back to defaults."""
    config = AppConfig()

    if path is None:
        path = os.environ.get("CONFIG_PATH", "config/default.yaml")

    path = Path(path)
    if path.exists():
        with open(path, "r") as f:
            raw = yaml.safe_load(f) or {}

        section_map = {
            "api": config.api,
            "time": config.time,
            "view": config.view,
            "session": config.session,
            "web": config.web,
            "logging": config.logging,
        }

        for section_name, dc_instance in section_map.items():
            if section_name in raw and isinstance(raw[section_name], dict):
                _apply_dict(dc_instance, raw[section_name])

    # Environment variable overrides
    env_url = os.environ.get("COURSE_API_URL")
    if env_url:
        config.api.base_url = env_url

    env_host = os.environ.get("WEB_HOST")
    if env_host:
        config.web.host = env_host

    env_port = os.environ.get("WEB_PORT")
    if env_port:
        config.web.port = int(env_port)

    return config


def save_config_values(data: dict, path: str | Path | None = None) -> None:
    """Update key/value pairs in the YAML config file, preserving all comments."""
    if path is None:
        path = os.environ.get("CONFIG_PATH", "config/default.yaml")
    path = Path(path)
    if not path.exists():
        return
    text = path.read_text()
    for key, value in data.items():
        escaped = re.escape(key)
        if isinstance(value, bool):
            val_str = "true" if value else "false"
            text = re.sub(rf'(\b{escaped}:\s*)(true|false)', rf'\g<1>{val_str}', text)
        elif isinstance(value, str):
            text = re.sub(rf'(\b{escaped}:\s*)"[^"]*"', rf'\g<1>"{value}"', text)
        else:
            text = re.sub(rf'(\b{escaped}:\s*)[\d.]+', rf'\g<1>{value}', text)
    path.write_text(text)
