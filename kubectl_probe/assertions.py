"""Decide reachability from the status records a probe container prints.

Decoding and the pass/fail predicate are plain functions over byte chunks and
records, so they can be exercised with canned output. ``ReachabilityAsserter``
attaches them to the live log stream.
"""

import asyncio
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator, Mapping
from contextlib import aclosing
from dataclasses import dataclass

from pydantic import ValidationError

from kubectl_probe.cluster.client import KubernetesClient
from kubectl_probe.errors import (
    AssertionMismatch,
    AssertionTimeout,
    StreamDecodeError,
    StreamEnded,
)
from kubectl_probe.injector import InjectedProbeHandle
from kubectl_probe.models.status import StatusRecord
from kubectl_probe.models.suite import Expectation
from kubectl_probe.streams import iter_line_batches

log = logging.getLogger(__name__)

DEFAULT_ASSERT_TIMEOUT = 60.0
DEFAULT_LOG_WINDOW = 60

UNREACHABLE_MESSAGE = "could not reach destination"
REACHABLE_MESSAGE = "destination was reachable"


def decode_record(line: bytes) -> StatusRecord | None:
    """Decode one output line.

    Returns None for JSON objects that carry no counters, such as the agent's
    own log lines.

    Raises:
        StreamDecodeError: If the line is not a JSON object or has bad counters

    """
    try:
        data = json.loads(line)
    except ValueError as e:
        raise StreamDecodeError(f"Malformed probe output {line[:200]!r}: {e}") from e

    if not isinstance(data, Mapping):
        raise StreamDecodeError(f"Probe output is not a JSON object: {line[:200]!r}")
    if "success" not in data or "fail" not in data:
        return None

    try:
        return StatusRecord.model_validate(data)
    except ValidationError as e:
        raise StreamDecodeError(f"Invalid status record {line[:200]!r}: {e}") from e


async def decode_records(chunks: AsyncIterable[bytes]) -> AsyncIterator[StatusRecord]:
    """Decode a chunked output stream into status records, lazily."""
    async for lines in iter_line_batches(chunks):
        for line in lines:
            if (record := decode_record(line)) is not None:
                yield record


def observe(
    previous: StatusRecord, current: StatusRecord, expect: Expectation
) -> bool | None:
    """Compare two consecutive records under an expectation.

    The counter that contradicts the expectation is checked first, so a record
    where both counters grew is a failure for either expectation.

    Returns:
        True or False once a counter grew, None while neither did

    """
    succeeded = current.success > previous.success
    failed = current.fail > previous.fail
    if expect == "Pass":
        contradicted, confirmed = failed, succeeded
    else:
        contradicted, confirmed = succeeded, failed

    if contradicted:
        return False
    if confirmed:
        return True
    return None


async def first_verdict(
    records: AsyncIterable[StatusRecord], expect: Expectation
) -> bool | None:
    """Return the verdict of the first counter increase in a record stream.

    Only the first increase is decisive; later records are never read. Returns
    None if the stream ends without any increase.
    """
    previous = StatusRecord(success=0, fail=0)
    async for current in records:
        if (verdict := observe(previous, current, expect)) is not None:
            return verdict
        previous = current
    return None


async def assert_records(
    records: AsyncIterable[StatusRecord], expect: Expectation
) -> None:
    """Apply the edge-triggered predicate for ``expect`` to a record stream.

    Raises:
        AssertionMismatch: If the first counter increase contradicts ``expect``
        StreamEnded: If the stream ends before any counter increase

    """
    verdict = await first_verdict(records, expect)
    if verdict is None:
        raise StreamEnded("probe output ended before any dial completed")
    if not verdict:
        raise AssertionMismatch(
            UNREACHABLE_MESSAGE if expect == "Pass" else REACHABLE_MESSAGE
        )


@dataclass(frozen=True, kw_only=True)
class ReachabilityAsserter:
    """Follows a probe container's output and judges reachability."""

    client: KubernetesClient
    timeout: float = DEFAULT_ASSERT_TIMEOUT
    log_window: int = DEFAULT_LOG_WINDOW

    async def assert_reachable(self, handle: InjectedProbeHandle) -> None:
        """Pass once the probe connects; fail as soon as a dial fails."""
        await self.check(handle, "Pass")

    async def assert_unreachable(self, handle: InjectedProbeHandle) -> None:
        """Pass once a dial fails; fail as soon as the probe connects."""
        await self.check(handle, "Fail")

    async def check(self, handle: InjectedProbeHandle, expect: Expectation) -> None:
        """Follow the probe output until the first decisive record.

        Raises:
            AssertionMismatch: If the probe saw the opposite of ``expect``
            AssertionTimeout: If nothing decisive happens within the timeout
            StreamDecodeError: If the output contains a malformed record
            StreamEnded: If the output ends first

        """
        chunks = self.client.stream_logs(
            handle.namespace,
            handle.pod,
            handle.container,
            since_seconds=self.log_window,
            follow=True,
        )
        try:
            async with (
                asyncio.timeout(self.timeout) as deadline,
                aclosing(chunks),
                aclosing(decode_records(chunks)) as records,
            ):
                await assert_records(records, expect)
        except TimeoutError as e:
            # Transport timeouts from aiohttp are TimeoutErrors too.
            if not deadline.expired():
                raise
            raise AssertionTimeout(
                f"No decisive probe result from {handle.container} within "
                f"{self.timeout:g}s"
            ) from e

        log.debug("Probe container %s met expectation %s", handle, expect)
