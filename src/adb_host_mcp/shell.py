"""Remote shell execution.

Over the raw ``shell:`` service, output is one undifferentiated byte stream
and no exit status is sent; sessions then report ``exit_status=None`` and
``success`` assumes the command worked. Shell protocol v2 frames stdout,
stderr and a final exit packet whose trailing byte is the status.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator

from .config import AdbContext
from .errors import AdbConnectionError, OperationCancelled, ShellError
from .models.shell import ShellProtocol, ShellSession
from .protocol.commands import build_shell
from .protocol.shell import (
    PACKET_HEADER_SIZE,
    ShellPacket,
    ShellPacketId,
    build_packet,
    parse_packet_header,
)
from .transport.connection import AdbConnection, open_device_connection

logger = logging.getLogger(__name__)


class ShellStream:
    """An open shell on one device.

    Iterate it for output chunks in arrival order; ``write`` sends input
    for interactive sessions. The stream ends when the device closes it.

    Usage::

        async with await executor.open(serial, "logcat -d") as stream:
            async for chunk in stream:
                sys.stdout.buffer.write(chunk)
        print(stream.session.exit_status)
    """

    def __init__(self, conn: AdbConnection, session: ShellSession) -> None:
        self._conn = conn
        self.session = session
        self._finished = False

    async def __aenter__(self) -> ShellStream:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._chunks()

    @property
    def finished(self) -> bool:
        return self._finished

    async def _chunks(self) -> AsyncIterator[bytes]:
        try:
            if self.session.protocol is ShellProtocol.V2:
                async for packet in self._packets():
                    if packet.packet_id in (ShellPacketId.STDOUT, ShellPacketId.STDERR):
                        if packet.payload:
                            yield packet.payload
                    elif packet.packet_id == ShellPacketId.EXIT:
                        self.session.exit_status = packet.exit_status
                        break
            else:
                while True:
                    data = await self._conn.read_some()
                    if not data:
                        break
                    yield data
        except OperationCancelled:
            raise
        except AdbConnectionError as e:
            raise ShellError("stream_broken", f"Shell stream broken: {e.message}") from e
        self._finished = True
        logger.debug(
            "Shell %r finished, exit status %s", self.session.command, self.session.exit_status
        )

    async def _packets(self) -> AsyncIterator[ShellPacket]:
        while True:
            header = await self._conn.read_some(PACKET_HEADER_SIZE)
            if not header:
                return
            if len(header) < PACKET_HEADER_SIZE:
                header += await self._conn.read_exactly(PACKET_HEADER_SIZE - len(header))
            packet_id, length = parse_packet_header(header)
            payload = await self._conn.read_exactly(length)
            yield ShellPacket(packet_id, payload)

    async def write(self, data: bytes) -> None:
        """Send input to the remote shell."""
        try:
            if self.session.protocol is ShellProtocol.V2:
                await self._conn.write(build_packet(ShellPacketId.STDIN, data))
            else:
                await self._conn.write(data)
        except OperationCancelled:
            raise
        except AdbConnectionError as e:
            raise ShellError("stream_broken", f"Shell stream broken: {e.message}") from e

    async def close_input(self) -> None:
        """Signal end of input (v2 only; raw shells have no way to say so)."""
        if self.session.protocol is not ShellProtocol.V2:
            raise ShellError("unsupported", "Closing stdin requires shell protocol v2")
        await self._conn.write(build_packet(ShellPacketId.CLOSE_STDIN))

    def abort(self) -> None:
        self._conn.abort()

    async def close(self) -> None:
        await self._conn.close()


class ShellExecutor:
    """Opens shell streams on devices."""

    def __init__(self, context: AdbContext) -> None:
        self._context = context

    async def open(
        self,
        serial: str | None,
        command: str = "",
        protocol: ShellProtocol = ShellProtocol.RAW,
    ) -> ShellStream:
        """Start a shell; an empty command opens an interactive session."""
        conn = await open_device_connection(self._context, serial)
        try:
            await conn.send_request(build_shell(command, v2=protocol is ShellProtocol.V2))
        except BaseException:
            await conn.close()
            raise
        logger.debug("Opened %s shell on %s: %r", protocol.value, serial, command)
        return ShellStream(conn, ShellSession(command=command, protocol=protocol))

    async def run(
        self,
        serial: str | None,
        command: str,
        protocol: ShellProtocol = ShellProtocol.RAW,
    ) -> tuple[ShellSession, bytes]:
        """Run a command to completion and return its session and output."""
        chunks = []
        async with await self.open(serial, command, protocol) as stream:
            async for chunk in stream:
                chunks.append(chunk)
        return stream.session, b"".join(chunks)
