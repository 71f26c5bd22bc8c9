"""Explicit runtime context passed into every operation.

Nothing here is global: each entry point receives an ``AdbContext`` so tests
can point the client at a fake server and shrink every delay to zero.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Mapping, Protocol

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 5037
DEFAULT_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class EnumerationRetry:
    """How often to re-query an empty device list, and how long to wait.

    A server that has just started may report zero devices for a moment.
    """

    attempts: int = 1
    delay: float = 0.5


@dataclass(frozen=True)
class Backoff:
    """Bounded exponential backoff for server-start polling."""

    attempts: int = 8
    initial: float = 0.05
    factor: float = 2.0
    maximum: float = 1.0

    def delays(self) -> list[float]:
        """The sleep before each poll attempt."""
        result = []
        delay = self.initial
        for _ in range(self.attempts):
            result.append(min(delay, self.maximum))
            delay *= self.factor
        return result

    @property
    def budget(self) -> float:
        return sum(self.delays())


class AliasResolver(Protocol):
    """Maps a user-chosen device name to a serial."""

    def lookup_alias(self, name: str) -> str | None:
        ...


class StaticAliases:
    """In-memory alias table; persistence belongs to the caller."""

    def __init__(self, aliases: Mapping[str, str] | None = None) -> None:
        self._aliases = dict(aliases or {})

    def lookup_alias(self, name: str) -> str | None:
        return self._aliases.get(name)

    def name_for(self, serial: str) -> str | None:
        """The name given to ``serial``, if any."""
        for name, target in self._aliases.items():
            if target == serial:
                return name
        return None

    def rename(self, serial: str, name: str) -> None:
        """Give ``serial`` a new name, replacing any name it had before.

        A name already pointing at another device moves to this one.

        Raises:
            ValueError: ``name`` is blank.
        """
        name = name.strip()
        if not name:
            raise ValueError("Device name must not be empty")
        for old in [n for n, target in self._aliases.items() if target == serial]:
            del self._aliases[old]
        self._aliases[name] = serial
        logger.info("Device %s is now named %r", serial, name)

    def __repr__(self) -> str:
        return f"StaticAliases({self._aliases!r})"


@dataclass
class AdbContext:
    """Connection settings and tunables for one client.

    Attributes:
        host: Address of the background server.
        port: Server TCP port.
        connect_timeout: Seconds to wait for a TCP connect.
        io_timeout: Seconds to wait for a single read; ``None`` waits forever.
        adb_path: Executable used to spawn the server.
        max_workers: Concurrent per-file connections in recursive transfers.
        chunk_size: Push chunk size, at most 64 KiB.
        keep_partial_pulls: Keep ``<dest>.part`` when a pull is cancelled.
        enumeration_retry: Retry policy for an empty device list.
        start_backoff: Polling policy while waiting for the server to start.
    """

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    connect_timeout: float = 2.0
    io_timeout: float | None = 10.0
    adb_path: str = "adb"
    max_workers: int = 4
    chunk_size: int = DEFAULT_CHUNK_SIZE
    keep_partial_pulls: bool = True
    enumeration_retry: EnumerationRetry = field(default_factory=EnumerationRetry)
    start_backoff: Backoff = field(default_factory=Backoff)

    def __post_init__(self) -> None:
        if not 0 < self.chunk_size <= DEFAULT_CHUNK_SIZE:
            raise ValueError(
                f"chunk_size must be 1-{DEFAULT_CHUNK_SIZE}, got {self.chunk_size}"
            )
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {self.max_workers}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides) -> AdbContext:
        """Build a context from the variables adb itself honours.

        ``ANDROID_ADB_SERVER_ADDRESS``, ``ANDROID_ADB_SERVER_PORT`` and
        ``ADB_PATH``. Keyword overrides win over the environment.
        """
        env = os.environ if environ is None else environ
        values: dict = {}
        if env.get("ANDROID_ADB_SERVER_ADDRESS"):
            values["host"] = env["ANDROID_ADB_SERVER_ADDRESS"]
        if env.get("ANDROID_ADB_SERVER_PORT"):
            try:
                values["port"] = int(env["ANDROID_ADB_SERVER_PORT"])
            except ValueError:
                logger.warning(
                    "Ignoring invalid ANDROID_ADB_SERVER_PORT=%r",
                    env["ANDROID_ADB_SERVER_PORT"],
                )
        if env.get("ADB_PATH"):
            values["adb_path"] = env["ADB_PATH"]
        values.update(overrides)
        return cls(**values)

    def server_command(self) -> list[str]:
        """Command line that runs the server in the foreground on our port."""
        return [self.adb_path, "-L", f"tcp:{self.port}", "nodaemon", "server"]
