"""Packet transport (UDP/TCP send) and the UDP listener event source."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from contextlib import suppress
from typing import Any, Protocol, runtime_checkable

from .config import TransportConfig
from .logger import get_logger, log_exception

logger = get_logger("transport")


@runtime_checkable
class PacketTransport(Protocol):
    """Sends raw payloads. Implementations raise on failure."""

    async def send_udp(self, host: str, port: int, data: bytes) -> None: ...

    async def send_tcp(self, host: str, port: int, data: bytes) -> None: ...


class AsyncioPacketTransport:
    """Packet transport built on asyncio datagram endpoints and streams."""

    def __init__(self, config: TransportConfig | None = None) -> None:
        self.config = config or TransportConfig()

    async def send_udp(self, host: str, port: int, data: bytes) -> None:
        loop = asyncio.get_running_loop()
        transport, _ = await loop.create_datagram_endpoint(
            asyncio.DatagramProtocol, remote_addr=(host, port)
        )
        try:
            transport.sendto(data)
            logger.debug("UDP %d bytes -> %s:%s", len(data), host, port)
        finally:
            transport.close()

    async def send_tcp(self, host: str, port: int, data: bytes) -> None:
        timeout = self.config.connect_timeout
        _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout)
        try:
            writer.write(data)
            await asyncio.wait_for(writer.drain(), timeout)
            logger.debug("TCP %d bytes -> %s:%s", len(data), host, port)
        finally:
            writer.close()
            with suppress(OSError):
                await writer.wait_closed()


class _DatagramListenerProtocol(asyncio.DatagramProtocol):
    def __init__(self, listener: UdpPacketListener) -> None:
        self._listener = listener

    def datagram_received(self, data: bytes, addr: tuple[Any, ...]) -> None:
        self._listener._on_datagram(data, addr[0], addr[1])

    def error_received(self, exc: Exception) -> None:
        logger.warning("UDP listener error: %s", exc)


class UdpPacketListener:
    """Binds a UDP socket and reports every datagram as ``(host, port, content)``.

    Content is decoded as UTF-8 with replacement characters; datagrams longer
    than ``max_packet_size`` are truncated first.
    """

    def __init__(
        self,
        on_packet: Callable[[str, int, str], Any],
        host: str = "0.0.0.0",
        port: int = 5000,
        max_packet_size: int = 65507,
    ) -> None:
        self._on_packet = on_packet
        self.host = host
        self.port = port
        self.max_packet_size = max_packet_size
        self._transport: asyncio.DatagramTransport | None = None
        self.packets_received = 0

    @classmethod
    def from_config(
        cls, on_packet: Callable[[str, int, str], Any], config: TransportConfig
    ) -> UdpPacketListener:
        return cls(
            on_packet,
            host=config.listen_host,
            port=config.listen_port,
            max_packet_size=config.max_packet_size,
        )

    @property
    def is_running(self) -> bool:
        return self._transport is not None

    @property
    def address(self) -> tuple[str, int] | None:
        """Bound ``(host, port)``, useful when listening on port 0."""
        if self._transport is None:
            return None
        sockname = self._transport.get_extra_info("sockname")
        return sockname[0], sockname[1]

    async def start(self) -> None:
        if self._transport is not None:
            return
        loop = asyncio.get_running_loop()
        transport, _ = await loop.create_datagram_endpoint(
            lambda: _DatagramListenerProtocol(self), local_addr=(self.host, self.port)
        )
        self._transport = transport
        logger.info("UDP listener bound to %s:%s", *self.address)

    async def stop(self) -> None:
        if self._transport is None:
            return
        self._transport.close()
        self._transport = None
        logger.info("UDP listener stopped")

    def _on_datagram(self, data: bytes, host: str, port: int) -> None:
        self.packets_received += 1
        content = data[: self.max_packet_size].decode("utf-8", errors="replace")
        try:
            self._on_packet(host, port, content)
        except Exception as exc:
            log_exception(logger, exc, f"Packet handler failed for {host}:{port}")


__all__ = ["PacketTransport", "AsyncioPacketTransport", "UdpPacketListener"]
