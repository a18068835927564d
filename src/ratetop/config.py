"""Persistent settings schema and load/save helpers."""

import json
import logging
import os
import platform
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

CONFIG_VERSION = 1

_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class SamplerConfig:
    cpu_debounce_ms: int = 200
    network_debounce_ms: int = 500


@dataclass
class MonitorConfig:
    poll_rate: float = 2.0
    interfaces: str = "*"


@dataclass
class LoggingConfig:
    level: str = "INFO"
    keep_files: int = 7


@dataclass
class AppConfig:
    config_version: int = CONFIG_VERSION
    sampler: SamplerConfig = field(default_factory=SamplerConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def config_root() -> Path:
    system = platform.system()
    if system == "Windows":
        base = Path(os.environ.get("APPDATA", Path.home() / "AppData" / "Roaming"))
        return base / "ratetop"
    if system == "Darwin":
        return Path.home() / "Library" / "Application Support" / "ratetop"
    return Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")) / "ratetop"


def config_path() -> Path:
    return config_root() / "config.json"


def _merge(dataclass_type, raw: Any):
    defaults = dataclass_type()
    if not isinstance(raw, dict):
        return defaults
    for k, v in raw.items():
        if hasattr(defaults, k):
            setattr(defaults, k, v)
    return defaults


def _clamp_ms(value: Any, default: int) -> int:
    try:
        return max(0, min(60_000, int(value)))
    except (TypeError, ValueError):
        return default


def _normalize(cfg: AppConfig) -> None:
    cfg.sampler.cpu_debounce_ms = _clamp_ms(cfg.sampler.cpu_debounce_ms, SamplerConfig.cpu_debounce_ms)
    cfg.sampler.network_debounce_ms = _clamp_ms(cfg.sampler.network_debounce_ms, SamplerConfig.network_debounce_ms)

    try:
        cfg.monitor.poll_rate = max(0.1, float(cfg.monitor.poll_rate))
    except (TypeError, ValueError):
        cfg.monitor.poll_rate = MonitorConfig.poll_rate
    if not isinstance(cfg.monitor.interfaces, str) or not cfg.monitor.interfaces.strip():
        cfg.monitor.interfaces = MonitorConfig.interfaces

    level = str(cfg.logging.level).upper()
    cfg.logging.level = level if level in _LEVELS else "INFO"
    try:
        cfg.logging.keep_files = max(1, int(cfg.logging.keep_files))
    except (TypeError, ValueError):
        cfg.logging.keep_files = LoggingConfig.keep_files


def load_config(path: Path | None = None) -> AppConfig:
    """Load settings, falling back to defaults for a missing or unreadable file."""
    path = path or config_path()
    if not path.exists():
        return AppConfig()

    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logging.getLogger(__name__).warning("ignoring unreadable config %s: %s", path, e)
        return AppConfig()
    if not isinstance(raw, dict):
        return AppConfig()

    cfg = AppConfig(
        config_version=CONFIG_VERSION,
        sampler=_merge(SamplerConfig, raw.get("sampler", {})),
        monitor=_merge(MonitorConfig, raw.get("monitor", {})),
        logging=_merge(LoggingConfig, raw.get("logging", {})),
    )
    _normalize(cfg)
    return cfg


def save_config(cfg: AppConfig, path: Path | None = None) -> Path:
    cfg.config_version = CONFIG_VERSION
    path = path or config_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(asdict(cfg), indent=2, sort_keys=True), encoding="utf-8")
    return path
