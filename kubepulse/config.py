"""Configuration loading from environment variables."""

from __future__ import annotations

import os

from kubepulse.models.config import (
    APIConfig,
    BroadcastConfig,
    KubeConfig,
    KubePulseConfig,
    LogConfig,
    WatchConfig,
)


def _env(key: str, default: str = "") -> str:
    return os.environ.get(f"KUBEPULSE_{key}", default)


def _env_bool(key: str, default: bool = False) -> bool:
    val = _env(key, str(default).lower())
    return val.lower() in ("true", "1", "yes")


def _env_int(key: str, default: int, min_val: int | None = None, max_val: int | None = None) -> int:
    val = int(_env(key, str(default)))
    if min_val is not None:
        val = max(val, min_val)
    if max_val is not None:
        val = min(val, max_val)
    return val


def _env_list(key: str, default: str) -> list[str]:
    return [item.strip() for item in _env(key, default).split(",") if item.strip()]


def _validate_log_level(value: str) -> str:
    valid = {"debug", "info", "warning", "error"}
    if value.lower() not in valid:
        raise ValueError(f"Invalid log level: {value}. Must be one of {valid}")
    return value.lower()


def _validate_log_format(value: str) -> str:
    if value.lower() not in ("json", "console"):
        raise ValueError(f"Invalid log format: {value}. Must be 'json' or 'console'")
    return value.lower()


def _validate_namespace(value: str) -> str:
    # DNS-1123 label, or empty for all namespaces
    if value and (len(value) > 63 or not all(c.isalnum() or c == "-" for c in value) or value != value.lower()):
        raise ValueError(f"Invalid namespace: {value!r}")
    return value


def load_config() -> KubePulseConfig:
    """Load configuration from KUBEPULSE_* environment variables."""
    return KubePulseConfig(
        kube=KubeConfig(
            local_mode=_env_bool("LOCAL_MODE", False),
            kubeconfig_path=_env("KUBECONFIG_PATH", ""),
        ),
        watch=WatchConfig(
            namespace=_validate_namespace(_env("WATCH_NAMESPACE", "")),
            sync_timeout_seconds=_env_int("SYNC_TIMEOUT", 30, min_val=1, max_val=300),
            watch_timeout_seconds=_env_int("WATCH_TIMEOUT", 300, min_val=30, max_val=3600),
        ),
        broadcast=BroadcastConfig(
            subscriber_queue_size=_env_int("SUBSCRIBER_QUEUE_SIZE", 256, min_val=1, max_val=65536),
        ),
        api=APIConfig(
            host=_env("API_HOST", "0.0.0.0"),
            port=_env_int("API_PORT", 8080, min_val=1024, max_val=65535),
            cors_origins=_env_list("API_CORS_ORIGINS", "*"),
            legacy_update_action=_env_bool("API_LEGACY_UPDATE_ACTION", False),
        ),
        log=LogConfig(
            level=_validate_log_level(_env("LOG_LEVEL", "info")),
            format=_validate_log_format(_env("LOG_FORMAT", "json")),
        ),
    )
