"""Add the probe to a running pod as an ephemeral container."""

import copy
import logging
import secrets
from collections.abc import Callable, Collection, Mapping
from dataclasses import dataclass, field
from typing import Any

from kubectl_probe.cluster.client import ApiError, KubernetesClient
from kubectl_probe.errors import FeatureUnavailable, InjectionError
from kubectl_probe.models.suite import Destination
from kubectl_probe.patch import create_two_way_merge_patch
from kubectl_probe.resolver import ResolvedTarget

log = logging.getLogger(__name__)

CONTAINER_PREFIX = "probe"
# Same alphabet Kubernetes uses for generated names: no vowels, no look-alikes.
SUFFIX_ALPHABET = "bcdfghjklmnpqrstvwxz2456789"
SUFFIX_LENGTH = 5
MAX_NAME_ATTEMPTS = 10


def random_suffix() -> str:
    """Generate a random container name suffix."""
    return "".join(secrets.choice(SUFFIX_ALPHABET) for _ in range(SUFFIX_LENGTH))


@dataclass(frozen=True, kw_only=True)
class InjectedProbeHandle:
    """Identifies a probe container running inside a pod."""

    namespace: str
    pod: str
    container: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.pod}/{self.container}"


def build_probe_container(
    name: str, destination: Destination, image: str
) -> dict[str, Any]:
    """Build the ephemeral container definition that runs the probe agent."""
    return {
        "name": name,
        "image": destination.image or image,
        "args": ["probe"],
        "env": [dict(var) for var in destination.to_env()],
        "stdin": False,
        "tty": False,
    }


def _container_names(manifest: Mapping[str, Any]) -> set[str]:
    spec = manifest.get("spec") or {}
    return {
        container["name"]
        for key in ("initContainers", "containers", "ephemeralContainers")
        for container in spec.get(key) or []
    }


def _is_feature_unavailable(error: ApiError) -> bool:
    # A missing /ephemeralcontainers subresource is reported as a 404 with
    # empty details, unlike a missing pod whose details name the pod.
    if error.is_not_found and not error.details_name:
        return True
    # Servers that do not know the subresource's kind reject it as unregistered.
    return "not registered" in error.api_message


@dataclass(frozen=True, kw_only=True)
class ProbeInjector:
    """Adds one uniquely named probe container to a pod.

    ``suffix_factory`` produces container name suffixes; tests replace it to get
    predictable names. Names already present in the pod, or handed out earlier
    by this injector, are never reused.
    """

    client: KubernetesClient
    image: str
    suffix_factory: Callable[[], str] = random_suffix
    _issued: set[str] = field(default_factory=set, init=False, repr=False)

    def container_name(self, taken: Collection[str] = ()) -> str:
        """Pick a container name unused in the pod and in this run."""
        for _ in range(MAX_NAME_ATTEMPTS):
            name = f"{CONTAINER_PREFIX}-{self.suffix_factory()}"
            if name not in taken and name not in self._issued:
                self._issued.add(name)
                return name
        raise InjectionError(
            f"Could not pick an unused probe container name in "
            f"{MAX_NAME_ATTEMPTS} attempts"
        )

    async def inject(
        self, target: ResolvedTarget, destination: Destination
    ) -> InjectedProbeHandle:
        """Add a probe container to the target pod.

        Raises:
            FeatureUnavailable: If the cluster has ephemeral containers disabled
            InjectionError: If the pod could not be read or patched

        """
        try:
            current = await self.client.get_pod_manifest(target.namespace, target.pod)
        except ApiError as e:
            raise InjectionError(str(e)) from e

        name = self.container_name(_container_names(current))
        container = build_probe_container(name, destination, self.image)

        desired = copy.deepcopy(current)
        spec = desired.setdefault("spec", {})
        existing = spec.get("ephemeralContainers") or []
        spec["ephemeralContainers"] = [*existing, container]

        patch = create_two_way_merge_patch(current, desired)
        log.debug("Generated strategic merge patch for %s: %s", target, patch)

        try:
            await self.client.patch_ephemeral_containers(
                target.namespace, target.pod, patch
            )
        except ApiError as e:
            if _is_feature_unavailable(e):
                raise FeatureUnavailable(
                    "ephemeral containers are disabled for this cluster "
                    f"(error from server: {e})"
                ) from e
            raise InjectionError(str(e)) from e

        handle = InjectedProbeHandle(
            namespace=target.namespace, pod=target.pod, container=name
        )
        log.info("Started probe container %s dialing %s", handle, destination.endpoint)
        return handle
