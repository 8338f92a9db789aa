"""Pod status derivation.

Submodules:
    resolver -- Reduces a WorkloadRecord to the single status label shown in
                the STATUS column of ``kubectl get pods``.
"""

from kubepulse.status.resolver import StatusResolution, resolve_pod, resolve_status

__all__ = ["StatusResolution", "resolve_pod", "resolve_status"]
