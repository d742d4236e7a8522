"""Fixtures for tests against a mocked Kubernetes API."""

from collections.abc import AsyncGenerator

import pytest
from aioresponses import aioresponses as aioresponses_cls
from pydantic import SecretStr

from kubectl_probe.cluster import ClusterConfig, KubernetesClient

API_BASE_URL = "http://k8s.test"


@pytest.fixture
def cluster_config() -> ClusterConfig:
    """Create test configuration."""
    return ClusterConfig(
        server=API_BASE_URL,
        token=SecretStr("test-token"),
        insecure_skip_tls_verify=True,
    )


@pytest.fixture
async def client(
    cluster_config: ClusterConfig, aioresponses: aioresponses_cls
) -> AsyncGenerator[KubernetesClient, None]:
    """Create client with managed session."""
    async with KubernetesClient.from_config(cluster_config) as impl:
        yield impl
