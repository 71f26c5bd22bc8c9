"""Progress sinks for file transfers.

The transfer engine reports ``start(total)``, ``update(current)`` and
``finish()`` per file. Rendering is up to whoever implements the sink.
"""

from __future__ import annotations

import logging
from typing import Callable, Protocol

logger = logging.getLogger(__name__)


class ProgressSink(Protocol):
    def start(self, total: int) -> None:
        ...

    def update(self, current: int) -> None:
        ...

    def finish(self) -> None:
        ...


class NoOpProgress:
    """Discards every event."""

    def start(self, total: int) -> None:
        pass

    def update(self, current: int) -> None:
        pass

    def finish(self) -> None:
        pass


class CallbackProgress:
    """Forwards ``(current, total)`` to a callable after every event."""

    def __init__(self, callback: Callable[[int, int], None]) -> None:
        self._callback = callback
        self.total = 0
        self.current = 0
        self.finished = False

    def start(self, total: int) -> None:
        self.total = total
        self.current = 0
        self.finished = False
        self._callback(0, total)

    def update(self, current: int) -> None:
        self.current = current
        self._callback(current, self.total)

    def finish(self) -> None:
        self.finished = True
        self._callback(self.current, self.total)


class LoggingProgress:
    """Logs start/finish at INFO and intermediate updates at DEBUG."""

    def __init__(self, label: str = "transfer") -> None:
        self.label = label
        self.total = 0
        self.current = 0

    def start(self, total: int) -> None:
        self.total = total
        self.current = 0
        logger.info("%s: starting, %d bytes", self.label, total)

    def update(self, current: int) -> None:
        self.current = current
        logger.debug("%s: %d/%d bytes", self.label, current, self.total)

    def finish(self) -> None:
        logger.info("%s: finished, %d bytes", self.label, self.current)
