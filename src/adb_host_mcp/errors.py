"""Exception hierarchy for the ADB host client.

Every error carries a short machine-readable ``kind`` (e.g. ``"refused"``,
``"checksum_mismatch"``, ``"ambiguous_selection"``) so an outer layer can
pick an exit status or message without parsing text.
"""

from __future__ import annotations


class AdbError(Exception):
    """Base class for all client errors.

    Attributes:
        kind: Machine-readable error category.
        message: Human-readable detail.
    """

    def __init__(self, kind: str, message: str = "") -> None:
        self.kind = kind
        self.message = message or kind.replace("_", " ")
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.message, "kind": self.kind}


class AdbConnectionError(AdbError, ConnectionError):
    """Refused, timed out, or broken transport connection."""


class OperationCancelled(AdbConnectionError):
    """A pending read/write was aborted because the connection was closed."""

    def __init__(self, message: str = "operation cancelled") -> None:
        super().__init__("cancelled", message)


class ProtocolError(AdbError):
    """Bad magic, checksum mismatch, truncated frame, or unexpected reply."""


class DeviceError(AdbError):
    """Device selection failure.

    Attributes:
        candidates: Serials that matched when the selection was ambiguous.
    """

    def __init__(
        self,
        kind: str,
        message: str = "",
        candidates: list[str] | None = None,
    ) -> None:
        super().__init__(kind, message)
        self.candidates = list(candidates or [])

    def to_dict(self) -> dict:
        result = super().to_dict()
        if self.candidates:
            result["candidates"] = self.candidates
        return result


class TransferError(AdbError):
    """File transfer failure for a single path."""

    def __init__(self, kind: str, message: str = "", path: str = "") -> None:
        super().__init__(kind, message)
        self.path = path


class ShellError(AdbError):
    """Shell stream broken, exit status not available, or a bad property name."""


class ServerError(AdbError):
    """Background server failed to start or stop."""
