"""Tests for the TCP connection to the background server."""

import asyncio

import pytest

from adb_host_mcp.errors import AdbConnectionError, DeviceError, OperationCancelled, ProtocolError
from adb_host_mcp.protocol.commands import build_version
from adb_host_mcp.protocol.framing import Message, encode_message
from adb_host_mcp.transport.connection import AdbConnection, open_connection, open_device_connection

from fakes import FakeDevice, unused_port


async def _serve(handler):
    server = await asyncio.start_server(handler, "127.0.0.1", 0)
    return server, server.sockets[0].getsockname()[1]


@pytest.mark.asyncio
async def test_refused_on_unused_port():
    """Nothing listening is a refused connection."""
    with pytest.raises(AdbConnectionError) as exc_info:
        await AdbConnection.open("127.0.0.1", unused_port(), connect_timeout=1.0)
    assert exc_info.value.kind == "refused"


@pytest.mark.asyncio
async def test_version_request(adb_server):
    """A host request gets its length-prefixed reply."""
    async with await open_connection(adb_server.context()) as conn:
        await conn.send_request(build_version())
        assert await conn.read_length_prefixed() == b"0029"
    assert conn.closed
    assert adb_server.requests == ["host:version"]


@pytest.mark.asyncio
async def test_read_exactly_reassembles_partial_reads():
    """Bytes split across writes are read as one block."""
    async def handler(reader, writer):
        for piece in (b"AB", b"C", b"DEFG"):
            writer.write(piece)
            await writer.drain()
            await asyncio.sleep(0.01)
        writer.close()

    server, port = await _serve(handler)
    try:
        async with await AdbConnection.open("127.0.0.1", port) as conn:
            assert await conn.read_exactly(7) == b"ABCDEFG"
    finally:
        server.close()
        await server.wait_closed()


@pytest.mark.asyncio
async def test_early_close_is_broken():
    """The peer closing mid-read breaks the stream."""
    async def handler(reader, writer):
        writer.write(b"OK")
        await writer.drain()
        writer.close()

    server, port = await _serve(handler)
    try:
        async with await AdbConnection.open("127.0.0.1", port) as conn:
            with pytest.raises(AdbConnectionError) as exc_info:
                await conn.read_exactly(4)
            assert exc_info.value.kind == "broken"
    finally:
        server.close()
        await server.wait_closed()


@pytest.mark.asyncio
async def test_read_timeout():
    """A read that gets no data times out."""
    async def handler(reader, writer):
        await reader.read()
        writer.close()

    server, port = await _serve(handler)
    try:
        async with await AdbConnection.open("127.0.0.1", port, io_timeout=0.05) as conn:
            with pytest.raises(AdbConnectionError) as exc_info:
                await conn.read_exactly(4)
            assert exc_info.value.kind == "timeout"
    finally:
        server.close()
        await server.wait_closed()


@pytest.mark.asyncio
async def test_frame_roundtrip_over_socket():
    """Frames written and read over a socket match."""
    msg = Message(b"WRTE", 1, 2, b"payload")

    async def handler(reader, writer):
        writer.write(await reader.readexactly(len(encode_message(msg))))
        await writer.drain()
        writer.close()

    server, port = await _serve(handler)
    try:
        async with await AdbConnection.open("127.0.0.1", port) as conn:
            await conn.write_frame(msg)
            assert await conn.read_frame() == msg
    finally:
        server.close()
        await server.wait_closed()


@pytest.mark.asyncio
async def test_fail_status_carries_message():
    """FAIL replies raise with the server's message."""
    async def handler(reader, writer):
        await reader.readexactly(4 + 12)
        writer.write(b"FAIL0007no good")
        await writer.drain()
        writer.close()

    server, port = await _serve(handler)
    try:
        async with await AdbConnection.open("127.0.0.1", port) as conn:
            with pytest.raises(ProtocolError) as exc_info:
                await conn.send_request(build_version())
            assert exc_info.value.kind == "request_failed"
            assert exc_info.value.message == "no good"
    finally:
        server.close()
        await server.wait_closed()


@pytest.mark.asyncio
async def test_abort_cancels_pending_read():
    """abort() ends a blocked read with OperationCancelled."""
    async def handler(reader, writer):
        await reader.read()
        writer.close()

    server, port = await _serve(handler)
    try:
        conn = await AdbConnection.open("127.0.0.1", port)
        pending = asyncio.create_task(conn.read_exactly(4))
        await asyncio.sleep(0.05)
        conn.abort()
        with pytest.raises(OperationCancelled):
            await asyncio.wait_for(pending, timeout=2)
        with pytest.raises(OperationCancelled):
            await conn.write(b"more")
        await conn.close()
        await conn.close()
    finally:
        server.close()
        await server.wait_closed()


@pytest.mark.asyncio
async def test_select_unknown_device(adb_server):
    """Binding to a missing serial fails with device_not_found."""
    with pytest.raises(DeviceError) as exc_info:
        await open_device_connection(adb_server.context(), "nope")
    assert exc_info.value.kind == "device_not_found"


@pytest.mark.asyncio
async def test_select_unauthorized_device(adb_server):
    """Binding to an unauthorized device says so."""
    adb_server.devices.append(FakeDevice("R58M", state="unauthorized"))
    with pytest.raises(DeviceError) as exc_info:
        await open_device_connection(adb_server.context(), "R58M")
    assert exc_info.value.kind == "unauthorized"


@pytest.mark.asyncio
async def test_select_device_binds_serial(adb_server):
    """A bound connection remembers its serial."""
    conn = await open_device_connection(adb_server.context(), "emulator-5554")
    try:
        assert conn.serial == "emulator-5554"
    finally:
        await conn.close()
    assert adb_server.requests == ["host:transport:emulator-5554"]
