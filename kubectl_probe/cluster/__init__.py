"""Kubernetes API access."""

from kubectl_probe.cluster.client import ApiError, KubernetesClient
from kubectl_probe.cluster.config import ClusterConfig
from kubectl_probe.cluster.kubeconfig import KubeconfigError, load_cluster_config

__all__ = [
    "ApiError",
    "ClusterConfig",
    "KubeconfigError",
    "KubernetesClient",
    "load_cluster_config",
]
