"""Lifecycle control of the ADB background server.

The server is shared with every other adb client on the machine; this
module only asks it questions, starts it, or asks it to exit.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import subprocess
from dataclasses import dataclass
from typing import Awaitable, Callable

from .config import AdbContext
from .errors import AdbConnectionError, ProtocolError, ServerError
from .protocol.commands import build_kill, build_version
from .protocol.parser import parse_version
from .transport.connection import open_connection

logger = logging.getLogger(__name__)

STOP_POLL_ATTEMPTS = 10
STOP_POLL_DELAY = 0.1

Spawner = Callable[[AdbContext], Awaitable[None]]


class ServerState(enum.Enum):
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class ServerStatus:
    state: ServerState
    version: int | None = None

    @property
    def running(self) -> bool:
        return self.state is ServerState.RUNNING

    def to_dict(self) -> dict:
        return {"state": self.state.value, "version": self.version}


async def spawn_detached(context: AdbContext) -> None:
    """Launch the server in its own session with stdio discarded."""
    command = context.server_command()
    logger.info("Starting ADB server: %s", " ".join(command))
    try:
        await asyncio.create_subprocess_exec(
            *command,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
    except OSError as e:
        raise ServerError("start_failed", f"Could not execute {command[0]}: {e}") from e


class ServerController:
    """Queries, starts, stops and restarts the background server.

    Args:
        context: Server address, adb executable and start-up backoff.
        spawn: Coroutine that launches the server process. Tests substitute
            one that starts a fake server instead.
    """

    def __init__(self, context: AdbContext, spawn: Spawner | None = None) -> None:
        self._context = context
        self._spawn = spawn or spawn_detached

    async def version(self) -> int:
        """Return the server's protocol version (e.g. 41).

        Raises:
            AdbConnectionError: The server is not reachable.
        """
        async with await open_connection(self._context) as conn:
            await conn.send_request(build_version())
            return parse_version(await conn.read_length_prefixed())

    async def status(self) -> ServerStatus:
        """RUNNING if a version query succeeds, STOPPED if the connection is refused.

        Any other failure propagates; no other state is inferred.
        """
        try:
            version = await self.version()
        except AdbConnectionError as e:
            if e.kind != "refused":
                raise
            return ServerStatus(ServerState.STOPPED)
        return ServerStatus(ServerState.RUNNING, version)

    async def start(self) -> ServerStatus:
        """Start the server unless it is already running.

        Raises:
            ServerError: ``start_timeout`` if the server does not answer
                within the context's backoff budget.
        """
        current = await self.status()
        if current.running:
            logger.debug("ADB server already running (version %s)", current.version)
            return current

        await self._spawn(self._context)
        backoff = self._context.start_backoff
        for attempt, delay in enumerate(backoff.delays(), start=1):
            await asyncio.sleep(delay)
            current = await self.status()
            if current.running:
                logger.info("ADB server started after %d poll(s)", attempt)
                return current
        raise ServerError(
            "start_timeout",
            f"ADB server did not start on port {self._context.port} "
            f"within {backoff.budget:.2f}s",
        )

    async def stop(self) -> ServerStatus:
        """Ask the server to exit; a server that is not running is fine.

        Raises:
            ServerError: ``stop_failed`` if it is still answering afterwards.
        """
        try:
            async with await open_connection(self._context) as conn:
                await conn.send_request(build_kill())
                await conn.read_until_close()
        except AdbConnectionError as e:
            if e.kind == "refused":
                logger.debug("ADB server already stopped")
                return ServerStatus(ServerState.STOPPED)
            if e.kind != "broken":
                raise
        except ProtocolError as e:
            raise ServerError("stop_failed", f"Kill request rejected: {e.message}") from e

        for _ in range(STOP_POLL_ATTEMPTS):
            current = await self.status()
            if not current.running:
                logger.info("ADB server stopped")
                return current
            await asyncio.sleep(STOP_POLL_DELAY)
        raise ServerError(
            "stop_failed", f"ADB server on port {self._context.port} is still running"
        )

    async def restart(self) -> ServerStatus:
        await self.stop()
        return await self.start()
