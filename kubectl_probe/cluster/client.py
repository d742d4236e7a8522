"""Minimal asynchronous client for the Kubernetes REST API."""

import json
import logging
from collections.abc import AsyncGenerator, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

import aiohttp
from pydantic import ValidationError

from kubectl_probe.cluster.config import ClusterConfig
from kubectl_probe.cluster.models import Deployment, Pod, PodList, Status

log = logging.getLogger(__name__)

STRATEGIC_MERGE_PATCH = "application/strategic-merge-patch+json"

REQUEST_TIMEOUT = aiohttp.ClientTimeout(total=60)
# Watches and followed logs stay open; callers bound them with their own timeouts.
STREAM_TIMEOUT = aiohttp.ClientTimeout(total=None, sock_connect=30)


class ApiError(RuntimeError):
    """Raised when the API server rejects a request.

    Carries the fields of the Status object the server returned, if any.
    """

    def __init__(self, action: str, status_code: int, status: Status) -> None:
        self.status_code = status_code
        self.reason = status.reason
        self.details_name = status.details.name
        self.api_message = status.message
        super().__init__(f"{action}: {status_code} {status.message or status.reason}")

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


async def _raise_for_status(response: aiohttp.ClientResponse, action: str) -> None:
    if response.status < 400:
        return

    text = await response.text()
    try:
        status = Status.model_validate_json(text)
    except ValidationError:
        status = Status(message=text.strip(), code=response.status)
    raise ApiError(action, response.status, status)


@dataclass(frozen=True, kw_only=True)
class KubernetesClient:
    """Kubernetes API client sharing one HTTP session across all requests."""

    config: ClusterConfig
    session: aiohttp.ClientSession = field(repr=False)

    @classmethod
    @asynccontextmanager
    async def from_config(
        cls, config: ClusterConfig
    ) -> AsyncGenerator["KubernetesClient", None]:
        """Create client with managed session lifecycle."""
        headers = {"Accept": "application/json"}
        if config.token is not None:
            headers["Authorization"] = f"Bearer {config.token.get_secret_value()}"

        async with aiohttp.ClientSession(
            base_url=config.base_url,
            headers=headers,
            connector=aiohttp.TCPConnector(ssl=config.ssl_context()),
            timeout=REQUEST_TIMEOUT,
        ) as session:
            yield cls(config=config, session=session)

    async def get_pod_manifest(self, namespace: str, name: str) -> dict[str, Any]:
        """Get the full serialized pod, as returned by the server."""
        url = f"/api/v1/namespaces/{namespace}/pods/{name}"
        async with self.session.get(url) as response:
            await _raise_for_status(response, f"Failed to get pod {namespace}/{name}")
            data: dict[str, Any] = await response.json()
        return data

    async def get_pod(self, namespace: str, name: str) -> Pod:
        """Get a pod by name."""
        return Pod.model_validate(await self.get_pod_manifest(namespace, name))

    async def list_pods(
        self,
        namespace: str,
        *,
        label_selector: str | None = None,
        field_selector: str | None = None,
    ) -> PodList:
        """List pods in a namespace, optionally filtered by selectors."""
        url = f"/api/v1/namespaces/{namespace}/pods"
        params: dict[str, str] = {}
        if label_selector:
            params["labelSelector"] = label_selector
        if field_selector:
            params["fieldSelector"] = field_selector

        async with self.session.get(url, params=params) as response:
            await _raise_for_status(response, f"Failed to list pods in {namespace}")
            data = await response.json()

        return PodList.model_validate(data)

    async def get_deployment(self, namespace: str, name: str) -> Deployment:
        """Get a deployment by name."""
        url = f"/apis/apps/v1/namespaces/{namespace}/deployments/{name}"
        async with self.session.get(url) as response:
            await _raise_for_status(
                response, f"Failed to get deployment {namespace}/{name}"
            )
            data = await response.json()

        return Deployment.model_validate(data)

    async def patch_ephemeral_containers(
        self, namespace: str, name: str, patch: Mapping[str, Any]
    ) -> Pod:
        """Apply a strategic merge patch through the ephemeralcontainers subresource."""
        url = f"/api/v1/namespaces/{namespace}/pods/{name}/ephemeralcontainers"
        async with self.session.patch(
            url,
            data=json.dumps(patch),
            headers={"Content-Type": STRATEGIC_MERGE_PATCH},
        ) as response:
            await _raise_for_status(
                response, f"Failed to add ephemeral container to {namespace}/{name}"
            )
            data = await response.json()

        return Pod.model_validate(data)

    async def watch_pods(
        self,
        namespace: str,
        *,
        field_selector: str,
        resource_version: str | None,
        timeout_seconds: int,
    ) -> AsyncGenerator[bytes, None]:
        """Open a pod watch and yield raw chunks of newline-delimited events."""
        url = f"/api/v1/namespaces/{namespace}/pods"
        params = {
            "watch": "true",
            "fieldSelector": field_selector,
            "timeoutSeconds": str(timeout_seconds),
        }
        if resource_version:
            params["resourceVersion"] = resource_version

        async with self.session.get(
            url, params=params, timeout=STREAM_TIMEOUT
        ) as response:
            await _raise_for_status(response, f"Failed to watch pods in {namespace}")
            async for chunk in response.content.iter_any():
                yield chunk

    async def stream_logs(
        self,
        namespace: str,
        name: str,
        container: str,
        *,
        since_seconds: int = 60,
        follow: bool = True,
    ) -> AsyncGenerator[bytes, None]:
        """Stream a container's log output as raw chunks."""
        url = f"/api/v1/namespaces/{namespace}/pods/{name}/log"
        params = {
            "container": container,
            "sinceSeconds": str(since_seconds),
            "follow": "true" if follow else "false",
        }

        log.debug("Streaming logs of %s/%s container %s", namespace, name, container)
        async with self.session.get(
            url, params=params, timeout=STREAM_TIMEOUT
        ) as response:
            await _raise_for_status(
                response, f"Failed to get logs of {namespace}/{name}/{container}"
            )
            async for chunk in response.content.iter_any():
                yield chunk
