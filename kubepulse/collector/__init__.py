"""Collector package for KubePulse.

Drives the list-then-watch lifecycle for pods and feeds the resource cache.

Submodules
----------
control_plane -- ControlPlane ABC and its kubernetes-asyncio implementation.
watcher       -- ResourceWatcher: Initializing -> Syncing -> Synced -> Watching -> Stopped.
"""

from kubepulse.collector.control_plane import (
    ControlPlane,
    KubernetesControlPlane,
    NotificationKind,
    UnexpectedObject,
    WatchNotification,
)
from kubepulse.collector.watcher import ResourceWatcher, WatcherState

__all__ = [
    "ControlPlane",
    "KubernetesControlPlane",
    "NotificationKind",
    "ResourceWatcher",
    "UnexpectedObject",
    "WatchNotification",
    "WatcherState",
]
