"""Agents that run inside probe containers.

``ProbeAgent`` dials a destination on an interval and ``SinkAgent`` listens for
such dials. Both print one JSON status record per interval on stdout; the
orchestrator reads these back from the container log.
"""

import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import timedelta
from typing import TextIO, TypeAlias

from pydantic import Field, field_validator

from kubectl_probe.durations import Duration, format_duration
from kubectl_probe.models.base import Model
from kubectl_probe.models.status import StatusRecord
from kubectl_probe.models.suite import Transport

log = logging.getLogger(__name__)

DIAL_TIMEOUT = 10.0

Dialer: TypeAlias = Callable[[str, str, int, bytes], Awaitable[None]]


def split_address(address: str) -> tuple[str, int]:
    """Split "host:port" or "[v6-host]:port" into host and port."""
    host, separator, port = address.rpartition(":")
    if not separator or not host or not port.isdigit():
        raise ValueError(f"Address must be host:port, got {address!r}")
    if not 0 < int(port) < 65536:
        raise ValueError(f"Port out of range in {address!r}")
    return host.removeprefix("[").removesuffix("]"), int(port)


class AgentConfig(Model):
    """Settings shared by the probe and sink agents."""

    protocol: Transport = "tcp"
    address: str
    message: str = "hello world"
    interval: Duration = Field(default=timedelta(seconds=5))

    @field_validator("address")
    @classmethod
    def _check_address(cls, value: str) -> str:
        split_address(value)
        return value

    @property
    def host(self) -> str:
        return split_address(self.address)[0]

    @property
    def port(self) -> int:
        return split_address(self.address)[1]


async def dial(
    protocol: str, host: str, port: int, message: bytes, timeout: float = DIAL_TIMEOUT
) -> None:
    """Connect to a destination and send the message once.

    Raises:
        OSError: If connecting or sending fails, including timeouts

    """
    if protocol == "udp":
        loop = asyncio.get_running_loop()
        async with asyncio.timeout(timeout):
            transport, _ = await loop.create_datagram_endpoint(
                asyncio.DatagramProtocol, remote_addr=(host, port)
            )
        try:
            transport.sendto(message)
        finally:
            transport.close()
        return

    async with asyncio.timeout(timeout):
        _, writer = await asyncio.open_connection(host, port)
    try:
        writer.write(message)
        await writer.drain()
    finally:
        writer.close()
        await writer.wait_closed()


def emit(record: StatusRecord, output: TextIO | None = None) -> None:
    """Print a status record as one JSON line."""
    print(record.to_line(), file=output or sys.stdout, flush=True)


@dataclass(kw_only=True)
class ProbeAgent:
    """Dials the destination every interval and reports cumulative counters."""

    config: AgentConfig
    dialer: Dialer = dial
    output: TextIO | None = field(default=None, repr=False)
    success: int = 0
    fail: int = 0

    async def probe_once(self) -> StatusRecord:
        """Run one dial and return the updated counters."""
        error: str | None = None
        try:
            await self.dialer(
                self.config.protocol,
                self.config.host,
                self.config.port,
                self.config.message.encode(),
            )
        # Hosts that cannot be IDNA-encoded raise UnicodeError, a ValueError.
        except (OSError, ValueError) as e:
            self.fail += 1
            error = str(e) or type(e).__name__
            log.debug("Dial to %s failed: %s", self.config.address, error)
        else:
            self.success += 1

        return StatusRecord(
            success=self.success, fail=self.fail, msg="probe", error=error
        )

    async def run(self) -> None:
        """Probe until cancelled."""
        log.info(
            "Probing %s over %s every %s",
            self.config.address,
            self.config.protocol,
            format_duration(self.config.interval),
        )
        while True:
            emit(await self.probe_once(), self.output)
            await asyncio.sleep(self.config.interval.total_seconds())


class _SinkProtocol(asyncio.DatagramProtocol):
    def __init__(self, sink: "SinkAgent") -> None:
        self.sink = sink

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        self.sink.success += 1

    def error_received(self, exc: Exception) -> None:
        log.debug("Receive error: %s", exc)
        self.sink.fail += 1


@dataclass(kw_only=True)
class SinkAgent:
    """Listens on an address and counts the messages it receives."""

    config: AgentConfig
    output: TextIO | None = field(default=None, repr=False)
    success: int = 0
    fail: int = 0

    async def _handle_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        try:
            data = await reader.read()
        except OSError as e:
            log.debug("Receive error: %s", e)
            self.fail += 1
        else:
            if data:
                self.success += 1
        finally:
            writer.close()

    def record(self) -> StatusRecord:
        return StatusRecord(success=self.success, fail=self.fail, msg="sink")

    async def run(self) -> None:
        """Listen and report until cancelled."""
        host, port = self.config.host, self.config.port
        log.info("Listening on %s over %s", self.config.address, self.config.protocol)

        if self.config.protocol == "udp":
            loop = asyncio.get_running_loop()
            transport, _ = await loop.create_datagram_endpoint(
                lambda: _SinkProtocol(self), local_addr=(host, port)
            )
            try:
                await self._report()
            finally:
                transport.close()
            return

        server = await asyncio.start_server(self._handle_connection, host, port)
        async with server:
            await self._report()

    async def _report(self) -> None:
        while True:
            await asyncio.sleep(self.config.interval.total_seconds())
            emit(self.record(), self.output)
