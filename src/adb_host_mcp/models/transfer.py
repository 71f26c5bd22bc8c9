"""Transfer request, remote file metadata, and per-path outcomes."""

from __future__ import annotations

import enum
import stat as stat_mod
from dataclasses import dataclass

S_IFMT = 0o170000


class Direction(enum.Enum):
    PUSH = "push"
    PULL = "pull"


class TransferStatus(enum.Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class FileStat:
    """Mode bits, size and modification time of one file.

    A mode of zero means the path does not exist on the device.
    """

    mode: int
    size: int
    mtime: int

    @property
    def exists(self) -> bool:
        return self.mode != 0

    @property
    def is_dir(self) -> bool:
        return stat_mod.S_ISDIR(self.mode)

    @property
    def is_file(self) -> bool:
        return stat_mod.S_ISREG(self.mode)

    @property
    def is_symlink(self) -> bool:
        return stat_mod.S_ISLNK(self.mode)

    @property
    def file_type(self) -> str:
        kinds = {
            stat_mod.S_IFSOCK: "socket",
            stat_mod.S_IFLNK: "symlink",
            stat_mod.S_IFREG: "file",
            stat_mod.S_IFBLK: "block",
            stat_mod.S_IFDIR: "directory",
            stat_mod.S_IFCHR: "char",
            stat_mod.S_IFIFO: "fifo",
        }
        return kinds.get(self.mode & S_IFMT, "unknown")

    @property
    def permissions(self) -> str:
        return f"{self.mode & 0o777:03o}"

    def is_at_least(self, other: FileStat) -> bool:
        """True if this copy is as large and as new as ``other``.

        This is the skip-if-unchanged heuristic: size and mtime only, never
        content.
        """
        return self.exists and self.size >= other.size and self.mtime >= other.mtime

    def to_dict(self) -> dict:
        return {
            "mode": f"{self.mode:o}",
            "type": self.file_type,
            "permissions": self.permissions,
            "size": self.size,
            "mtime": self.mtime,
        }


@dataclass
class TransferRequest:
    source: str
    destination: str
    direction: Direction
    recursive: bool = False
    skip_unchanged: bool = False


@dataclass
class TransferOutcome:
    """Result for a single path of a transfer."""

    source: str
    destination: str
    status: TransferStatus
    reason: str | None = None
    bytes: int = 0

    @property
    def ok(self) -> bool:
        return self.status is not TransferStatus.FAILED

    def to_dict(self) -> dict:
        result = {
            "source": self.source,
            "destination": self.destination,
            "status": self.status.value,
            "bytes": self.bytes,
        }
        if self.reason:
            result["reason"] = self.reason
        return result
