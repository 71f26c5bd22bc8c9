"""TCP connection to the ADB background server.

One ``AdbConnection`` owns one socket and carries one request/response
exchange at a time; concurrency comes from opening more connections.

Usage::

    async with await open_connection(context) as conn:
        await conn.send_request(build_version())
        version = await conn.read_exactly(4)
"""

from __future__ import annotations

import asyncio
import contextlib
import errno
import logging
from typing import AsyncIterator

from ..config import AdbContext
from ..errors import AdbConnectionError, DeviceError, OperationCancelled, ProtocolError
from ..protocol.commands import build_sync, build_transport
from ..protocol.framing import (
    HEADER_SIZE,
    STATUS_FAIL,
    STATUS_OKAY,
    Message,
    decode_header,
    decode_hex_length,
    encode_message,
    verify_payload,
)

logger = logging.getLogger(__name__)

READ_CHUNK_SIZE = 64 * 1024


class AdbConnection:
    """Manages one stream-socket session with the server.

    Reads and writes always complete fully or raise: ``read_exactly`` and
    ``write`` hide the partial reads/writes of the underlying stream.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        host: str = "",
        port: int = 0,
        io_timeout: float | None = None,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self.host = host
        self.port = port
        self._io_timeout = io_timeout
        self._lock = asyncio.Lock()
        self._closed = False
        self._aborted = False
        self.serial: str | None = None

    @classmethod
    async def open(
        cls,
        host: str,
        port: int,
        connect_timeout: float = 2.0,
        io_timeout: float | None = None,
    ) -> AdbConnection:
        """Connect to the server.

        Raises:
            AdbConnectionError: ``refused`` if nothing is listening,
                ``timeout`` if the connect did not finish in time.
        """
        logger.debug("Connecting to %s:%d", host, port)
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout=connect_timeout
            )
        except asyncio.TimeoutError as e:
            raise AdbConnectionError(
                "timeout", f"Timed out connecting to {host}:{port}"
            ) from e
        except ConnectionRefusedError as e:
            raise AdbConnectionError(
                "refused", f"Connection refused by {host}:{port}"
            ) from e
        except OSError as e:
            kind = "refused" if e.errno == errno.ECONNREFUSED else "broken"
            raise AdbConnectionError(kind, f"Could not connect to {host}:{port}: {e}") from e
        return cls(reader, writer, host=host, port=port, io_timeout=io_timeout)

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"AdbConnection({self.host}:{self.port}, {state})"

    async def __aenter__(self) -> AdbConnection:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def aborted(self) -> bool:
        return self._aborted

    # ─── LIFECYCLE ────────────────────────────────────────────────────

    async def close(self) -> None:
        """Close the socket. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except (ConnectionError, OSError) as e:
            logger.debug("Error while closing %s:%d: %s", self.host, self.port, e)

    def abort(self) -> None:
        """Drop the connection immediately.

        Any read or write pending on this connection fails with
        ``OperationCancelled``. Callable from synchronous code such as a
        signal handler.
        """
        if self._closed and self._aborted:
            return
        logger.debug("Aborting connection to %s:%d", self.host, self.port)
        self._aborted = True
        transport = self._writer.transport
        if transport is not None:
            transport.abort()

    def _check_usable(self) -> None:
        if self._aborted:
            raise OperationCancelled()
        if self._closed:
            raise AdbConnectionError("broken", "Connection is closed")

    def _broken(self, message: str, cause: BaseException) -> AdbConnectionError:
        if self._aborted:
            return OperationCancelled()
        return AdbConnectionError("broken", f"{message}: {cause}")

    # ─── RAW I/O ──────────────────────────────────────────────────────

    async def _with_timeout(self, coro):
        if self._io_timeout is None:
            return await coro
        return await asyncio.wait_for(coro, timeout=self._io_timeout)

    async def read_exactly(self, size: int) -> bytes:
        """Read exactly ``size`` bytes, looping over partial reads."""
        self._check_usable()
        if size == 0:
            return b""
        try:
            return await self._with_timeout(self._reader.readexactly(size))
        except asyncio.IncompleteReadError as e:
            if self._aborted:
                raise OperationCancelled() from e
            raise AdbConnectionError(
                "broken",
                f"Connection closed after {len(e.partial)} of {size} bytes",
            ) from e
        except asyncio.TimeoutError as e:
            raise AdbConnectionError(
                "timeout", f"No data from {self.host}:{self.port} within {self._io_timeout}s"
            ) from e
        except OSError as e:
            raise self._broken("Read failed", e) from e

    async def read_some(self, max_size: int = READ_CHUNK_SIZE) -> bytes:
        """Read whatever is available, up to ``max_size``; ``b""`` means EOF."""
        self._check_usable()
        try:
            data = await self._reader.read(max_size)
        except OSError as e:
            raise self._broken("Read failed", e) from e
        if not data and self._aborted:
            raise OperationCancelled()
        return data

    async def read_until_close(self) -> bytes:
        chunks = []
        while True:
            data = await self.read_some()
            if not data:
                return b"".join(chunks)
            chunks.append(data)

    async def write(self, data: bytes) -> None:
        """Write all of ``data`` and wait until it is flushed."""
        self._check_usable()
        try:
            self._writer.write(data)
            await self._with_timeout(self._writer.drain())
        except asyncio.TimeoutError as e:
            raise AdbConnectionError("timeout", "Write did not drain in time") from e
        except OSError as e:
            raise self._broken("Write failed", e) from e

    # ─── FRAMES ───────────────────────────────────────────────────────

    async def read_frame(self) -> Message:
        """Read one complete 24-byte-header message and verify it."""
        header = await self.read_exactly(HEADER_SIZE)
        command, arg0, arg1, length, checksum = decode_header(header)
        payload = await self.read_exactly(length)
        verify_payload(payload, checksum)
        msg = Message(command=header[:4], arg0=arg0, arg1=arg1, payload=payload)
        logger.debug("Received %r", msg)
        return msg

    async def write_frame(self, msg: Message) -> None:
        logger.debug("Sending %r", msg)
        await self.write(encode_message(msg))

    # ─── HOST REQUESTS ────────────────────────────────────────────────

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[AdbConnection]:
        """Hold the connection for one multi-step exchange."""
        async with self._lock:
            yield self

    async def read_status(self) -> None:
        """Read an ``OKAY``/``FAIL`` status.

        Raises:
            ProtocolError: ``request_failed`` carrying the server's message on
                ``FAIL``, ``unexpected_command`` for anything else.
        """
        status = await self.read_exactly(4)
        if status == STATUS_OKAY:
            return
        if status == STATUS_FAIL:
            message = await self.read_length_prefixed()
            raise ProtocolError("request_failed", message.decode("utf-8", errors="replace"))
        raise ProtocolError("unexpected_command", f"Expected OKAY or FAIL, got {status!r}")

    async def read_length_prefixed(self) -> bytes:
        """Read a 4-hex-digit length followed by that many bytes."""
        length = decode_hex_length(await self.read_exactly(4))
        return await self.read_exactly(length)

    async def send_request(self, request: bytes) -> None:
        """Write one encoded host request and wait for its status."""
        async with self._lock:
            logger.debug("Request: %r", request)
            await self.write(request)
            await self.read_status()

    async def select_device(self, serial: str | None) -> None:
        """Bind this connection to a device for transfer or shell requests.

        Raises:
            DeviceError: ``device_not_found``, ``unauthorized`` or ``offline``
                when the server refuses the transport.
        """
        try:
            await self.send_request(build_transport(serial))
        except ProtocolError as e:
            if e.kind != "request_failed":
                raise
            text = e.message.lower()
            if "unauthorized" in text:
                kind = "unauthorized"
            elif "offline" in text:
                kind = "offline"
            elif "more than one" in text:
                kind = "ambiguous_selection"
            else:
                kind = "device_not_found"
            raise DeviceError(kind, e.message) from e
        self.serial = serial

    async def enter_sync(self) -> None:
        await self.send_request(build_sync())


async def open_connection(context: AdbContext) -> AdbConnection:
    """Open a fresh connection using the context's address and timeouts."""
    return await AdbConnection.open(
        context.host,
        context.port,
        connect_timeout=context.connect_timeout,
        io_timeout=context.io_timeout,
    )


async def open_device_connection(context: AdbContext, serial: str | None) -> AdbConnection:
    """Open a connection already bound to ``serial``; closed again on failure."""
    conn = await open_connection(context)
    try:
        await conn.select_device(serial)
    except BaseException:
        await conn.close()
        raise
    return conn
