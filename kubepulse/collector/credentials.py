"""Cluster credential loading for kubernetes-asyncio."""

from __future__ import annotations

import kubernetes_asyncio.config as k8s_config  # type: ignore[import-untyped]

from kubepulse.models.config import KubeConfig
from kubepulse.observability.logging import get_logger

_log = get_logger("collector.credentials")


async def load_credentials(kube: KubeConfig) -> str:
    """Configure the default kubernetes-asyncio client.

    Local mode reads a kubeconfig (``kube.kubeconfig_path`` or the default
    ``~/.kube/config``).  Otherwise the in-cluster service account is used,
    falling back to kubeconfig when not running inside a pod.

    Returns the credential source: ``"kubeconfig"`` or ``"in-cluster"``.
    """
    kubeconfig = kube.kubeconfig_path or None
    if kube.local_mode:
        await k8s_config.load_kube_config(config_file=kubeconfig)
        _log.info("k8s client configured from kubeconfig", path=kubeconfig or "default")
        return "kubeconfig"
    try:
        k8s_config.load_incluster_config()
    except k8s_config.ConfigException:
        await k8s_config.load_kube_config(config_file=kubeconfig)
        _log.warning("not running in a cluster; k8s client configured from kubeconfig")
        return "kubeconfig"
    _log.info("k8s client configured from in-cluster service account")
    return "in-cluster"
