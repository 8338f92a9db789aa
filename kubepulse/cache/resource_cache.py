"""In-memory pod cache for one watch session.

The cache is the single owner of WorkloadRecords.  It is mutated only by
the session's ResourceWatcher; readers get immutable records or copies of
the store, never the store itself.
"""

from __future__ import annotations

from enum import StrEnum

from kubepulse.models.events import EventAction, PodEvent
from kubepulse.models.pods import WorkloadRecord
from kubepulse.observability.logging import get_logger
from kubepulse.status.resolver import StatusResolution, resolve_pod, resolve_status

_log = get_logger("cache.resource_cache")


class CacheReadiness(StrEnum):
    """Cache completeness state."""

    WARMING = "warming"
    READY = "ready"
    STOPPED = "stopped"


class ResourceCache:
    """Pod records keyed by namespace, then name.

    ``is_synced()`` flips to True once the initial list has been applied and
    confirmed, and stays True until the owning watcher stops.
    """

    def __init__(self, namespace_filter: str = "") -> None:
        self.namespace_filter = namespace_filter
        self._store: dict[str, dict[str, WorkloadRecord]] = {}
        self._synced = False
        self._stopped = False

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def apply_add(self, record: WorkloadRecord) -> PodEvent:
        """Insert or replace *record*; return the matching ADD event."""
        self._put(record)
        return self._event(EventAction.ADD, record)

    def apply_update(self, old: WorkloadRecord | None, new: WorkloadRecord) -> PodEvent:
        """Replace the record for *new*'s identity; return an UPDATE event.

        *old* is the record the caller believed was cached.  It is only
        used for diagnostics: the cache always upserts *new*.
        """
        if old is not None and old.identity != new.identity:
            raise ValueError(f"update changes pod identity: {old.key} -> {new.key}")
        self._put(new)
        return self._event(EventAction.UPDATE, new)

    def apply_delete(self, record: WorkloadRecord) -> PodEvent:
        """Remove *record*'s identity; return a DELETE event.

        The status is resolved against the final state the control plane
        reported for the deleted pod.
        """
        ns_map = self._store.get(record.namespace)
        removed = ns_map.pop(record.name, None) if ns_map is not None else None
        if ns_map is not None and not ns_map:
            del self._store[record.namespace]
        if removed is None:
            _log.debug("delete_for_untracked_pod", pod=record.key)
        return self._event(EventAction.DELETE, record)

    def clear(self) -> None:
        """Drop every record."""
        self._store.clear()

    # ------------------------------------------------------------------
    # Lifecycle flags
    # ------------------------------------------------------------------

    def mark_synced(self) -> None:
        if not self._synced:
            _log.info("cache_synced", namespace_filter=self.namespace_filter, pods=len(self))
        self._synced = True

    def mark_stopped(self) -> None:
        self._stopped = True

    def is_synced(self) -> bool:
        return self._synced and not self._stopped

    def readiness(self) -> CacheReadiness:
        if self._stopped:
            return CacheReadiness.STOPPED
        if self._synced:
            return CacheReadiness.READY
        return CacheReadiness.WARMING

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, namespace: str, name: str) -> WorkloadRecord | None:
        return self._store.get(namespace, {}).get(name)

    def list(self, namespace: str = "") -> list[WorkloadRecord]:
        """Return records in *namespace* (all namespaces when empty), sorted by identity."""
        if namespace:
            records = list(self._store.get(namespace, {}).values())
        else:
            records = [r for ns_map in self._store.values() for r in ns_map.values()]
        return sorted(records, key=lambda r: r.identity)

    def snapshot(self) -> list[WorkloadRecord]:
        """Point-in-time copy of every cached record."""
        return self.list()

    def snapshot_with_status(self, namespace: str = "") -> list[tuple[WorkloadRecord, StatusResolution]]:
        """Records paired with their freshly resolved status."""
        return [(record, resolve_pod(record)) for record in self.list(namespace)]

    def __len__(self) -> int:
        return sum(len(ns_map) for ns_map in self._store.values())

    def __contains__(self, identity: object) -> bool:
        if not isinstance(identity, tuple) or len(identity) != 2:
            return False
        namespace, name = identity
        return name in self._store.get(namespace, {})

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _put(self, record: WorkloadRecord) -> None:
        self._store.setdefault(record.namespace, {})[record.name] = record

    @staticmethod
    def _event(action: EventAction, record: WorkloadRecord) -> PodEvent:
        return PodEvent(
            action=action,
            namespace=record.namespace,
            name=record.name,
            status=resolve_status(record),
        )
