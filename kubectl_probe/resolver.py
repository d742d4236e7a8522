"""Resolve target selectors to a single running pod."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass

from kubectl_probe.cluster.client import ApiError, KubernetesClient
from kubectl_probe.cluster.models import LabelSelector, Pod
from kubectl_probe.errors import ResolutionError
from kubectl_probe.models.suite import (
    ByDeployment,
    InvalidSelector,
    PodByLabels,
    PodByName,
    TargetSelector,
)

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class ResolvedTarget:
    """The pod a probe will be injected into."""

    namespace: str
    pod: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.pod}"


def select_pod(pods: Sequence[Pod]) -> Pod | None:
    """Pick the pod to probe from a selector's matches.

    Pods that are not running or are being deleted are skipped. The remaining
    pods are ordered by name so repeated runs pick the same pod.
    """
    candidates = sorted(
        (pod for pod in pods if pod.is_running), key=lambda pod: pod.metadata.name
    )
    return candidates[0] if candidates else None


@dataclass(frozen=True, kw_only=True)
class TargetResolver:
    """Turns a target selector into a concrete pod. Never modifies the cluster."""

    client: KubernetesClient

    async def resolve(self, selector: TargetSelector) -> ResolvedTarget:
        """Resolve a selector.

        Raises:
            ResolutionError: If the selector is invalid or matches no running pod

        """
        match selector:
            case PodByName(namespace=namespace, name=name):
                return await self._resolve_name(namespace, name)
            case PodByLabels(namespace=namespace, label_selector=label_selector):
                return await self._resolve_labels(namespace, label_selector)
            case ByDeployment(namespace=namespace, deployment=deployment):
                return await self._resolve_deployment(namespace, deployment)
            case InvalidSelector(reason=reason):
                raise ResolutionError(f"Invalid selector: {reason}")

    async def _resolve_name(self, namespace: str, name: str) -> ResolvedTarget:
        try:
            pod = await self.client.get_pod(namespace, name)
        except ApiError as e:
            if e.is_not_found:
                raise ResolutionError(f"Pod {namespace}/{name} not found") from e
            raise

        return ResolvedTarget(namespace=namespace, pod=pod.metadata.name)

    async def _resolve_labels(
        self, namespace: str, label_selector: LabelSelector
    ) -> ResolvedTarget:
        selector = label_selector.format()
        if not selector:
            raise ResolutionError("Invalid selector: label selector is empty")

        pods = await self.client.list_pods(namespace, label_selector=selector)
        log.debug(
            "Selector '%s' in %s matched %d pod(s)", selector, namespace, len(pods.items)
        )

        if not pods.items:
            raise ResolutionError(f"No pod in {namespace} matches '{selector}'")

        pod = select_pod(pods.items)
        if pod is None:
            raise ResolutionError(
                f"No running pod in {namespace} matches '{selector}' "
                f"({len(pods.items)} pod(s) matched but none are running)"
            )

        return ResolvedTarget(namespace=namespace, pod=pod.metadata.name)

    async def _resolve_deployment(self, namespace: str, name: str) -> ResolvedTarget:
        try:
            deployment = await self.client.get_deployment(namespace, name)
        except ApiError as e:
            if e.is_not_found:
                raise ResolutionError(f"Deployment {namespace}/{name} not found") from e
            raise

        log.debug(
            "Deployment %s/%s selects '%s'",
            namespace,
            name,
            deployment.spec.selector.format(),
        )
        return await self._resolve_labels(namespace, deployment.spec.selector)
