"""Wait for an injected probe container to start.

The decision logic is a pure state machine over watch events; the
``ReadinessWatcher`` only feeds it events read from the API server.
"""

import asyncio
import enum
import logging
from collections.abc import AsyncIterable, AsyncIterator, Sequence
from contextlib import aclosing
from dataclasses import dataclass

from pydantic import ValidationError

from kubectl_probe.cluster.client import KubernetesClient
from kubectl_probe.cluster.models import Pod, WatchEvent
from kubectl_probe.errors import WatchDeleted, WatchError, WatchTimedOut
from kubectl_probe.injector import InjectedProbeHandle
from kubectl_probe.streams import iter_line_batches

log = logging.getLogger(__name__)

DEFAULT_WATCH_TIMEOUT = 60.0
# Pause before reopening a watch the server closed without sending any event.
WATCH_RETRY_DELAY = 1.0


class ReadinessState(enum.Enum):
    """States of a probe container as seen by the watcher."""

    PENDING = "pending"
    RUNNING = "running"
    TERMINATED = "terminated"
    DELETED = "deleted"
    TIMED_OUT = "timed_out"

    @property
    def is_final(self) -> bool:
        return self is not ReadinessState.PENDING


def observe_pod(pod: Pod, container: str) -> ReadinessState:
    """Map the probe container's status in a pod to a readiness state."""
    status = pod.container_status(container)
    if status is None:
        return ReadinessState.PENDING

    if status.state.running is not None:
        return ReadinessState.RUNNING
    if status.state.terminated is not None:
        return ReadinessState.TERMINATED

    if status.state.waiting is not None and status.state.waiting.message:
        log.info("Container %s: %s", container, status.state.waiting.message)
    return ReadinessState.PENDING


def transition(
    state: ReadinessState, event: WatchEvent, container: str
) -> ReadinessState:
    """Apply a single watch event to the current state.

    Final states absorb every later event.

    Raises:
        WatchError: If the event is an ERROR notification

    """
    if state.is_final:
        return state

    match event.type:
        case "DELETED":
            return ReadinessState.DELETED
        case "ERROR":
            status = event.error_status()
            raise WatchError(f"Watch failed: {status.code} {status.message}")
        case "BOOKMARK":
            return state
        case _:
            return observe_pod(event.pod(), container)


def advance(
    state: ReadinessState, batch: Sequence[WatchEvent], container: str
) -> ReadinessState:
    """Apply a batch of events that arrived together.

    A deletion anywhere in the batch wins over a running or terminated
    status reported in the same batch.
    """
    if state.is_final:
        return state
    if any(event.type == "DELETED" for event in batch):
        return ReadinessState.DELETED

    for event in batch:
        state = transition(state, event, container)
        if state.is_final:
            break
    return state


async def decode_events(
    chunks: AsyncIterable[bytes],
) -> AsyncIterator[Sequence[WatchEvent]]:
    """Decode a raw watch stream into batches of events."""
    async for lines in iter_line_batches(chunks):
        try:
            yield [WatchEvent.model_validate_json(line) for line in lines]
        except ValidationError as e:
            raise WatchError(f"Malformed watch event: {e}") from e


def _resource_version(event: WatchEvent) -> str | None:
    metadata = event.object.get("metadata") or {}
    return metadata.get("resourceVersion")


@dataclass(frozen=True, kw_only=True)
class ReadinessWatcher:
    """Blocks until a probe container is running or terminated."""

    client: KubernetesClient
    timeout: float = DEFAULT_WATCH_TIMEOUT
    retry_delay: float = WATCH_RETRY_DELAY

    async def wait(self, handle: InjectedProbeHandle) -> ReadinessState:
        """Wait for the probe container to start.

        Returns:
            RUNNING or TERMINATED, whichever is observed first

        Raises:
            WatchDeleted: If the pod is deleted first
            WatchTimedOut: If neither happens within the timeout
            WatchError: If the API server reports a watch error

        """
        try:
            async with asyncio.timeout(self.timeout) as deadline:
                state = await self._watch(handle)
        except TimeoutError:
            # aiohttp transport timeouts also raise TimeoutError
            if not deadline.expired():
                raise
            state = ReadinessState.TIMED_OUT

        log.debug("Probe container %s is %s", handle, state.value)
        if state is ReadinessState.DELETED:
            raise WatchDeleted(
                f"Pod {handle.namespace}/{handle.pod} was deleted before the probe "
                "started"
            )
        if state is ReadinessState.TIMED_OUT:
            raise WatchTimedOut(
                f"Probe container {handle.container} did not start within "
                f"{self.timeout:g}s"
            )
        return state

    async def _watch(self, handle: InjectedProbeHandle) -> ReadinessState:
        field_selector = f"metadata.name={handle.pod}"

        # The listed pod is the first observation; the watch resumes after it.
        pods = await self.client.list_pods(
            handle.namespace, field_selector=field_selector
        )
        if not pods.items:
            return ReadinessState.DELETED

        state = ReadinessState.PENDING
        for pod in pods.items:
            state = observe_pod(pod, handle.container)
        resource_version = pods.metadata.resource_version

        while not state.is_final:
            stream = self.client.watch_pods(
                handle.namespace,
                field_selector=field_selector,
                resource_version=resource_version,
                timeout_seconds=max(1, round(self.timeout)),
            )
            received = False
            async with aclosing(stream), aclosing(decode_events(stream)) as batches:
                async for batch in batches:
                    received = True
                    for event in batch:
                        log.debug("Watch received %s event", event.type)
                        resource_version = _resource_version(event) or resource_version
                    state = advance(state, batch, handle.container)
                    if state.is_final:
                        break

            if not state.is_final:
                log.debug("Watch closed by server, resuming at %s", resource_version)
                if not received:
                    await asyncio.sleep(self.retry_delay)

        return state
