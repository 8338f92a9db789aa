"""Cache layer for KubePulse.

Holds the in-memory, eventually-consistent view of pods for one watch
session.  Every mutation returns the PodEvent that describes it, with the
status label resolved against the post-mutation record.

Submodules:
    resource_cache -- Pod cache keyed by (namespace, name) with a sync flag.
"""

from kubepulse.cache.resource_cache import CacheReadiness, ResourceCache

__all__ = ["CacheReadiness", "ResourceCache"]
