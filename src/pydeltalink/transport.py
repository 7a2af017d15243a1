"""UDP link carrying encoded delta batches."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pydeltalink._constants import CONNECTION_CHECK_TIMEOUT_S
from pydeltalink.batching import DeltaBuffer, build_hello_delta
from pydeltalink.config import LinkConfig
from pydeltalink.exceptions import DeltaLinkError, TransportError
from pydeltalink.pipeline import DeltaPipeline

_logger = logging.getLogger(__name__)

RecordHandler = Callable[[Any], None]

_SECONDS_PER_MINUTE = 60


class UdpSender:
    """Encodes delta batches and sends each as one datagram."""

    def __init__(self, config: LinkConfig, pipeline: DeltaPipeline | None = None) -> None:
        self._config = config
        self._pipeline = pipeline or DeltaPipeline.from_config(config)
        self._transport: asyncio.DatagramTransport | None = None

    async def start(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            transport, _ = await loop.create_datagram_endpoint(
                asyncio.DatagramProtocol,
                remote_addr=(self._config.udp_address, self._config.udp_port),
            )
        except OSError as exc:
            raise TransportError(
                f"Could not open UDP socket to {self._config.udp_address}:{self._config.udp_port}: {exc}",
                address=self._config.udp_address,
                port=self._config.udp_port,
            ) from exc
        self._transport = transport

    async def send(self, records: Any) -> int:
        """Encode and send *records*, returning the datagram size in bytes."""
        if self._transport is None:
            raise TransportError(
                "UDP socket not initialized, cannot send message",
                address=self._config.udp_address,
                port=self._config.udp_port,
            )
        wire = await self._pipeline.aencode(records, self._config.secret_key)
        self._transport.sendto(wire)
        _logger.debug("Sent %d bytes to %s:%d", len(wire), self._config.udp_address, self._config.udp_port)
        return len(wire)

    def close(self) -> None:
        if self._transport is not None:
            self._transport.close()
            self._transport = None


class _ReceiverProtocol(asyncio.DatagramProtocol):
    def __init__(self, receiver: UdpReceiver) -> None:
        self._receiver = receiver

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        self._receiver._schedule(data, addr)

    def error_received(self, exc: Exception) -> None:
        _logger.error("UDP receive error: %s", exc)


class UdpReceiver:
    """Binds the link port, decodes each datagram and hands records to *on_record*.

    Each datagram is decoded in its own task so the event loop keeps
    reading while the decompress/decrypt stages run in worker threads.
    Records of one datagram reach *on_record* in order; separate
    datagrams may finish in any order, as UDP gives no ordering anyway.

    A datagram that fails to decode is logged and dropped; the receiver
    keeps listening.
    """

    def __init__(
        self,
        config: LinkConfig,
        on_record: RecordHandler,
        *,
        bind_address: str = "0.0.0.0",
        port: int | None = None,
        pipeline: DeltaPipeline | None = None,
    ) -> None:
        self._config = config
        self._on_record = on_record
        self._bind_address = bind_address
        self._port = config.udp_port if port is None else port
        self._pipeline = pipeline or DeltaPipeline.from_config(config)
        self._transport: asyncio.DatagramTransport | None = None
        self._pending: set[asyncio.Task[int]] = set()

    @property
    def port(self) -> int:
        """Bound port (resolved after :meth:`start` when 0 was requested)."""
        if self._transport is not None:
            return int(self._transport.get_extra_info("sockname")[1])
        return self._port

    async def start(self) -> None:
        loop = asyncio.get_running_loop()
        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: _ReceiverProtocol(self),
                local_addr=(self._bind_address, self._port),
            )
        except OSError as exc:
            raise TransportError(
                f"Could not bind UDP port {self._port}: {exc}",
                address=self._bind_address,
                port=self._port,
            ) from exc
        self._transport = transport
        _logger.debug("Listening on %s:%d", self._bind_address, self.port)

    def _schedule(self, data: bytes, addr: tuple[str, int]) -> None:
        task = asyncio.get_running_loop().create_task(self.handle_datagram(data, addr))
        self._pending.add(task)
        task.add_done_callback(self._datagram_done)

    def _datagram_done(self, task: asyncio.Task[int]) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            _logger.error("Record handler failed: %s", exc, exc_info=exc)

    async def handle_datagram(self, data: bytes, addr: tuple[str, int] | None = None) -> int:
        """Decode one datagram and dispatch its records; returns how many were dispatched."""
        try:
            decoded = await self._pipeline.adecode(data, self._config.secret_key)
        except DeltaLinkError as exc:
            _logger.error("Dropping datagram from %s: %s", addr, exc)
            return 0

        records = decoded if isinstance(decoded, list) else [decoded]
        for record in records:
            self._on_record(record)
        return len(records)

    def close(self) -> None:
        if self._transport is not None:
            self._transport.close()
            self._transport = None
        for task in self._pending:
            task.cancel()


class DeltaLinkClient:
    """Sending side of the link.

    Deltas handed to :meth:`push` are buffered and sent as one batch every
    ``delta_timer`` milliseconds.  When ``mmsi`` is configured a hello
    message goes out every ``hello_interval`` seconds so the receiver
    keeps seeing the vessel while it is idle.  When ``test_address`` is
    configured its TCP port is checked every ``ping_interval`` minutes and
    deltas are only accepted while the check succeeds.

    Use as an async context manager::

        async with DeltaLinkClient(config) as link:
            link.push(delta)
    """

    def __init__(
        self,
        config: LinkConfig,
        *,
        sender: UdpSender | None = None,
        pipeline: DeltaPipeline | None = None,
    ) -> None:
        self._config = config
        self._sender = sender or UdpSender(config, pipeline)
        self._buffer = DeltaBuffer(config.max_buffer_size)
        self._ready = not config.test_address
        self._tasks: list[asyncio.Task[None]] = []

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> DeltaLinkClient:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def start(self) -> None:
        await self._sender.start()
        loop = asyncio.get_running_loop()
        self._tasks.append(
            loop.create_task(self._every(self._config.delta_timer / 1000, self.flush, "Delta flush"))
        )
        if self._config.mmsi:
            self._tasks.append(
                loop.create_task(self._every(self._config.hello_interval, self.send_hello, "Hello message"))
            )
        if self._config.test_address:
            await self.check_connection()
            self._tasks.append(
                loop.create_task(
                    self._every(
                        self._config.ping_interval * _SECONDS_PER_MINUTE,
                        self.check_connection,
                        "Connection check",
                    )
                )
            )

    async def close(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._sender.close()

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    @property
    def ready(self) -> bool:
        """Whether the last connection check succeeded (always true without a test address)."""
        return self._ready

    @property
    def pending(self) -> int:
        """Deltas waiting for the next flush."""
        return len(self._buffer)

    def push(self, delta: dict[str, Any]) -> bool:
        """Queue *delta* for the next batch; ``False`` when it was not accepted."""
        if not self._ready:
            return False
        return self._buffer.push(delta)

    async def flush(self) -> int:
        """Send everything buffered as one datagram; returns the number of deltas sent."""
        deltas = self._buffer.drain()
        if not deltas:
            return 0
        await self._sender.send(deltas)
        _logger.debug("Sending %d deltas", len(deltas))
        return len(deltas)

    async def send_hello(self) -> None:
        if not self._config.mmsi:
            return
        _logger.debug("Sending hello message")
        await self._sender.send([build_hello_delta(self._config.mmsi)])

    async def check_connection(self) -> bool:
        """Open and close a TCP connection to the test address, updating :attr:`ready`."""
        address = self._config.test_address
        if not address:
            self._ready = True
            return True
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(address, self._config.test_port),
                timeout=CONNECTION_CHECK_TIMEOUT_S,
            )
        except (OSError, TimeoutError) as exc:
            if self._ready:
                _logger.warning("Connection monitor: %s:%d down (%s)", address, self._config.test_port, exc)
            self._ready = False
            return False
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            _logger.debug("Closing connection check socket failed", exc_info=True)
        if not self._ready:
            _logger.info("Connection monitor: %s:%d up", address, self._config.test_port)
        self._ready = True
        return True

    @staticmethod
    async def _every(interval: float, action: Callable[[], Awaitable[Any]], what: str) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await action()
            except (DeltaLinkError, OSError) as exc:
                _logger.error("%s failed: %s", what, exc)
