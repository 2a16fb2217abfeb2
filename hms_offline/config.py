from __future__ import annotations

import json
import os
import warnings
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = Path("~/.config/hms-offline/config.json").expanduser()

CONFIG_ENV_OVERRIDES = {
    "remote_url": "HMS_OFFLINE_REMOTE_URL",
    "db_path": "HMS_OFFLINE_DB",
    "sync_interval_s": "HMS_OFFLINE_SYNC_INTERVAL_S",
    "sync_max_interval_s": "HMS_OFFLINE_SYNC_MAX_INTERVAL_S",
    "request_timeout_s": "HMS_OFFLINE_REQUEST_TIMEOUT_S",
    "max_retries": "HMS_OFFLINE_MAX_RETRIES",
    "log_level": "HMS_OFFLINE_LOG_LEVEL",
}

_FLOAT_KEYS = {"sync_interval_s", "sync_max_interval_s", "request_timeout_s"}
_INT_KEYS = {"max_retries"}


def get_config_path(path: Path | None = None) -> Path:
    candidate = path or Path(os.getenv("HMS_OFFLINE_CONFIG", DEFAULT_CONFIG_PATH))
    return candidate.expanduser()


def read_config_file(path: Path | None = None) -> dict[str, Any]:
    config_path = get_config_path(path)
    if not config_path.exists():
        return {}
    raw = config_path.read_text()
    if not raw.strip():
        return {}
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError("invalid config json") from exc
    if not isinstance(data, dict):
        raise ValueError("config must be an object")
    return data


def write_config_file(data: dict[str, Any], path: Path | None = None) -> Path:
    config_path = get_config_path(path)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json.dumps(data, ensure_ascii=False, indent=2) + "\n")
    return config_path


def get_env_overrides() -> dict[str, str]:
    overrides: dict[str, str] = {}
    for key, env_var in CONFIG_ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value is not None:
            overrides[key] = value
    return overrides


@dataclass
class HmsOfflineConfig:
    remote_url: str = "http://127.0.0.1:3000"
    data_path: str = "/api/data"
    health_path: str = "/api/health"
    db_path: str = "~/.hms-offline/offline.sqlite"
    # The clinic UI polled every 15 seconds.
    sync_interval_s: float = 15.0
    # Upper bound for backoff while offline; equal to the interval disables it.
    sync_max_interval_s: float = 15.0
    request_timeout_s: float = 10.0
    max_retries: int = 5
    log_level: str = "WARNING"
    daemon_log: str = "~/.hms-offline/sync-daemon.log"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _parse_int(value: object, default: int, *, key: str) -> int:
    if value is None:
        return default
    try:
        parsed = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid int for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default
    if parsed <= 0:
        warnings.warn(f"Non-positive value for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default
    return parsed


def _parse_float(value: object, default: float, *, key: str) -> float:
    if value is None:
        return default
    try:
        parsed = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        warnings.warn(f"Invalid float for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default
    if parsed <= 0:
        warnings.warn(f"Non-positive value for {key}: {value!r}", RuntimeWarning, stacklevel=2)
        return default
    return parsed


def load_config(path: Path | None = None) -> HmsOfflineConfig:
    cfg = HmsOfflineConfig()
    config_path = get_config_path(path)
    if config_path.exists():
        try:
            data = json.loads(config_path.read_text())
        except json.JSONDecodeError:
            data = {}
        if isinstance(data, dict):
            cfg = _apply_dict(cfg, data)
    cfg = _apply_env(cfg)
    return cfg


def _apply_dict(cfg: HmsOfflineConfig, data: dict[str, Any]) -> HmsOfflineConfig:
    for key, value in data.items():
        if not hasattr(cfg, key):
            continue
        if key in _FLOAT_KEYS:
            setattr(cfg, key, _parse_float(value, getattr(cfg, key), key=key))
            continue
        if key in _INT_KEYS:
            setattr(cfg, key, _parse_int(value, getattr(cfg, key), key=key))
            continue
        if value is None:
            continue
        setattr(cfg, key, str(value))
    return cfg


def _apply_env(cfg: HmsOfflineConfig) -> HmsOfflineConfig:
    cfg.remote_url = os.getenv("HMS_OFFLINE_REMOTE_URL", cfg.remote_url)
    cfg.db_path = os.getenv("HMS_OFFLINE_DB", cfg.db_path)
    cfg.sync_interval_s = _parse_float(
        os.getenv("HMS_OFFLINE_SYNC_INTERVAL_S"), cfg.sync_interval_s, key="sync_interval_s"
    )
    cfg.sync_max_interval_s = _parse_float(
        os.getenv("HMS_OFFLINE_SYNC_MAX_INTERVAL_S"),
        cfg.sync_max_interval_s,
        key="sync_max_interval_s",
    )
    cfg.request_timeout_s = _parse_float(
        os.getenv("HMS_OFFLINE_REQUEST_TIMEOUT_S"),
        cfg.request_timeout_s,
        key="request_timeout_s",
    )
    cfg.max_retries = _parse_int(
        os.getenv("HMS_OFFLINE_MAX_RETRIES"), cfg.max_retries, key="max_retries"
    )
    cfg.log_level = os.getenv("HMS_OFFLINE_LOG_LEVEL", cfg.log_level)
    return cfg
