"""Shell session model."""

from __future__ import annotations

import enum
from dataclasses import dataclass

from ..errors import ShellError


class ShellProtocol(enum.Enum):
    """RAW streams undifferentiated bytes; V2 frames stdout/stderr/exit."""

    RAW = "raw"
    V2 = "v2"


@dataclass
class ShellSession:
    """One remote shell invocation.

    ``exit_status`` is only known when the device speaks shell protocol v2,
    whose final packet carries a trailing status byte. Over the raw protocol
    the status cannot be recovered and ``success`` assumes the command
    succeeded.
    """

    command: str
    protocol: ShellProtocol = ShellProtocol.RAW
    exit_status: int | None = None

    @property
    def interactive(self) -> bool:
        return not self.command

    @property
    def exit_status_known(self) -> bool:
        return self.exit_status is not None

    @property
    def success(self) -> bool:
        if self.exit_status is None:
            return True
        return self.exit_status == 0

    def require_exit_status(self) -> int:
        if self.exit_status is None:
            raise ShellError(
                "exit_status_unavailable",
                "Exit status is not reported by the raw shell protocol",
            )
        return self.exit_status

    def to_dict(self) -> dict:
        return {
            "command": self.command,
            "protocol": self.protocol.value,
            "exit_status": self.exit_status,
            "exit_status_known": self.exit_status_known,
            "success": self.success,
        }
