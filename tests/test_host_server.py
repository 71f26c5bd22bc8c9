"""Tests for background server status, start and stop."""

import pytest

from adb_host_mcp.config import AdbContext, Backoff
from adb_host_mcp.errors import ServerError
from adb_host_mcp.host_server import ServerController, ServerState, spawn_detached

from fakes import FakeAdbServer, unused_port


def _context(port, **overrides):
    values = dict(
        port=port,
        connect_timeout=1.0,
        io_timeout=2.0,
        start_backoff=Backoff(attempts=5, initial=0.01, factor=2.0, maximum=0.1),
    )
    values.update(overrides)
    return AdbContext(**values)


@pytest.mark.asyncio
async def test_status_stopped_on_unused_port():
    """No server listening reads as stopped."""
    status = await ServerController(_context(unused_port())).status()
    assert status.state is ServerState.STOPPED
    assert status.version is None


@pytest.mark.asyncio
async def test_status_running(adb_server):
    """A running server reports its version."""
    status = await ServerController(adb_server.context()).status()
    assert status.running
    assert status.version == 41
    assert status.to_dict() == {"state": "running", "version": 41}


@pytest.mark.asyncio
async def test_start_when_running_does_not_spawn(adb_server):
    """Starting a running server spawns nothing."""
    spawned = []

    async def spawn(context):
        spawned.append(context)

    status = await ServerController(adb_server.context(), spawn=spawn).start()
    assert status.running
    assert spawned == []


@pytest.mark.asyncio
async def test_start_spawns_and_waits_until_running():
    """Start spawns and polls until the server answers."""
    port = unused_port()
    fake = FakeAdbServer(port=port)

    async def spawn(context):
        assert context.port == port
        await fake.start()

    try:
        status = await ServerController(_context(port), spawn=spawn).start()
        assert status.running
    finally:
        await fake.close()


@pytest.mark.asyncio
async def test_start_timeout():
    """A server that never comes up times out."""
    async def spawn(context):
        pass

    with pytest.raises(ServerError) as exc_info:
        await ServerController(_context(unused_port()), spawn=spawn).start()
    assert exc_info.value.kind == "start_timeout"


@pytest.mark.asyncio
async def test_start_with_missing_executable():
    """A missing adb binary fails the start."""
    context = _context(unused_port(), adb_path="/nonexistent/adb")
    with pytest.raises(ServerError) as exc_info:
        await ServerController(context).start()
    assert exc_info.value.kind == "start_failed"


@pytest.mark.asyncio
async def test_spawn_detached_reports_missing_executable():
    """Spawning a missing binary is a server error."""
    with pytest.raises(ServerError):
        await spawn_detached(_context(unused_port(), adb_path="/nonexistent/adb"))


@pytest.mark.asyncio
async def test_stop_when_already_stopped():
    """Stopping a stopped server succeeds."""
    status = await ServerController(_context(unused_port())).stop()
    assert status.state is ServerState.STOPPED


@pytest.mark.asyncio
async def test_stop_running_server(adb_server):
    """Stop sends host:kill and waits for the server to go."""
    status = await ServerController(adb_server.context()).stop()
    assert status.state is ServerState.STOPPED
    assert "host:kill" in adb_server.requests


@pytest.mark.asyncio
async def test_restart():
    """Restart stops the old server and starts a new one."""
    port = unused_port()
    servers = []

    async def spawn(context):
        server = FakeAdbServer(port=port)
        servers.append(server)
        await server.start()

    controller = ServerController(_context(port), spawn=spawn)
    try:
        await controller.start()
        status = await controller.restart()
        assert status.running
        assert len(servers) == 2
    finally:
        for server in servers:
            await server.close()
