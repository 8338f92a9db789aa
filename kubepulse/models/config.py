"""Configuration data structures."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class KubeConfig:
    """Kubernetes connection configuration."""

    local_mode: bool = False
    kubeconfig_path: str = ""


@dataclass
class WatchConfig:
    """Pod watch configuration."""

    namespace: str = ""
    sync_timeout_seconds: int = 30
    watch_timeout_seconds: int = 300


@dataclass
class BroadcastConfig:
    """Subscriber fan-out configuration."""

    subscriber_queue_size: int = 256


@dataclass
class APIConfig:
    """REST / WebSocket API configuration."""

    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    legacy_update_action: bool = False


@dataclass
class LogConfig:
    """Logging configuration."""

    level: str = "info"
    format: str = "json"


@dataclass
class KubePulseConfig:
    """Top-level KubePulse configuration."""

    kube: KubeConfig = field(default_factory=KubeConfig)
    watch: WatchConfig = field(default_factory=WatchConfig)
    broadcast: BroadcastConfig = field(default_factory=BroadcastConfig)
    api: APIConfig = field(default_factory=APIConfig)
    log: LogConfig = field(default_factory=LogConfig)
