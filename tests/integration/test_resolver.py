"""Integration tests for target resolution."""

import pytest
from aioresponses import aioresponses as aioresponses_cls

from kubectl_probe.cluster import KubernetesClient
from kubectl_probe.cluster.models import LabelSelector
from kubectl_probe.errors import ResolutionError
from kubectl_probe.models.suite import (
    ByDeployment,
    InvalidSelector,
    PodByLabels,
    PodByName,
)
from kubectl_probe.resolver import ResolvedTarget, TargetResolver
from kubectl_probe.testing.kubernetes.payloads import deployment, pod, pod_list, status

API_BASE_URL = "http://k8s.test"
PODS_URL = f"{API_BASE_URL}/api/v1/namespaces/prod/pods"


@pytest.fixture
def resolver(client: KubernetesClient) -> TargetResolver:
    """Create resolver over the mocked API."""
    return TargetResolver(client=client)


class TestResolveByName:
    """Tests for name selectors."""

    async def test_resolves_existing_pod(
        self, resolver: TargetResolver, aioresponses: aioresponses_cls
    ) -> None:
        """Returns the named pod."""
        aioresponses.get(
            f"{PODS_URL}/web-0", payload=pod(name="web-0", namespace="prod")
        )

        target = await resolver.resolve(PodByName(namespace="prod", name="web-0"))

        assert target == ResolvedTarget(namespace="prod", pod="web-0")
        assert str(target) == "prod/web-0"

    async def test_raises_when_pod_missing(
        self, resolver: TargetResolver, aioresponses: aioresponses_cls
    ) -> None:
        """A 404 becomes a resolution error."""
        aioresponses.get(f"{PODS_URL}/web-0", status=404, payload=status())

        with pytest.raises(ResolutionError, match="Pod prod/web-0 not found"):
            await resolver.resolve(PodByName(namespace="prod", name="web-0"))


class TestResolveByLabels:
    """Tests for label selectors."""

    async def test_picks_first_running_pod_by_name(
        self, resolver: TargetResolver, aioresponses: aioresponses_cls
    ) -> None:
        """Pending and terminating pods are skipped; ties break by name."""
        aioresponses.get(
            f"{PODS_URL}?labelSelector=app=web",
            payload=pod_list(
                pod(name="web-c", namespace="prod"),
                pod(name="web-0", namespace="prod", phase="Pending"),
                pod(name="web-a", namespace="prod", deleting=True),
                pod(name="web-b", namespace="prod"),
            ),
        )

        target = await resolver.resolve(
            PodByLabels(
                namespace="prod",
                label_selector=LabelSelector(match_labels={"app": "web"}),
            )
        )

        assert target.pod == "web-b"

    async def test_raises_when_nothing_matches(
        self, resolver: TargetResolver, aioresponses: aioresponses_cls
    ) -> None:
        """An empty match is a resolution error."""
        aioresponses.get(f"{PODS_URL}?labelSelector=app=web", payload=pod_list())

        with pytest.raises(ResolutionError, match="No pod in prod matches 'app=web'"):
            await resolver.resolve(
                PodByLabels(
                    namespace="prod",
                    label_selector=LabelSelector(match_labels={"app": "web"}),
                )
            )

    async def test_raises_when_no_pod_running(
        self, resolver: TargetResolver, aioresponses: aioresponses_cls
    ) -> None:
        """Matches that are not running are reported as such."""
        aioresponses.get(
            f"{PODS_URL}?labelSelector=app=web",
            payload=pod_list(pod(namespace="prod", phase="Pending")),
        )

        with pytest.raises(ResolutionError, match="No running pod in prod"):
            await resolver.resolve(
                PodByLabels(
                    namespace="prod",
                    label_selector=LabelSelector(match_labels={"app": "web"}),
                )
            )

    async def test_rejects_empty_selector(self, resolver: TargetResolver) -> None:
        """An empty selector would match every pod."""
        with pytest.raises(ResolutionError, match="label selector is empty"):
            await resolver.resolve(PodByLabels(label_selector=LabelSelector()))


class TestResolveByDeployment:
    """Tests for deployment selectors."""

    async def test_resolves_through_deployment_selector(
        self, resolver: TargetResolver, aioresponses: aioresponses_cls
    ) -> None:
        """Uses the deployment's own label selector."""
        aioresponses.get(
            f"{API_BASE_URL}/apis/apps/v1/namespaces/prod/deployments/web",
            payload=deployment(name="web", namespace="prod"),
        )
        aioresponses.get(
            f"{PODS_URL}?labelSelector=app=web",
            payload=pod_list(pod(name="web-7d9f-x2", namespace="prod")),
        )

        target = await resolver.resolve(ByDeployment(namespace="prod", deployment="web"))

        assert target == ResolvedTarget(namespace="prod", pod="web-7d9f-x2")

    async def test_raises_when_deployment_missing(
        self, resolver: TargetResolver, aioresponses: aioresponses_cls
    ) -> None:
        """A 404 becomes a resolution error."""
        aioresponses.get(
            f"{API_BASE_URL}/apis/apps/v1/namespaces/prod/deployments/web",
            status=404,
            payload=status(message='deployments.apps "web" not found', name="web"),
        )

        with pytest.raises(ResolutionError, match="Deployment prod/web not found"):
            await resolver.resolve(ByDeployment(namespace="prod", deployment="web"))


async def test_invalid_selector_fails_without_api_calls(
    resolver: TargetResolver, aioresponses: aioresponses_cls
) -> None:
    """Invalid selectors are rejected before touching the cluster."""
    with pytest.raises(ResolutionError, match="Invalid selector: no target"):
        await resolver.resolve(InvalidSelector(reason="no target"))

    assert not aioresponses.requests
