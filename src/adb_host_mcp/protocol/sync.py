"""Sync sub-protocol frames carried inside a ``sync:`` stream.

Frame layout::

    +---------+----------+------------------+
    |   Id    |   Arg    |     Payload      |
    | 4 bytes | u32 (LE) |  optional bytes  |
    +---------+----------+------------------+

For requests, ``DATA`` and ``FAIL`` the argument is the payload length.
A ``DONE`` that ends a push carries the file mtime instead. ``STAT``
replies are fixed 16-byte records (id, mode, size, mtime), and ``DENT``
directory entries add a name length and the name.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

from ..errors import ProtocolError
from ..models.transfer import FileStat

ID_STAT = b"STAT"
ID_LIST = b"LIST"
ID_SEND = b"SEND"
ID_RECV = b"RECV"
ID_DATA = b"DATA"
ID_DONE = b"DONE"
ID_FAIL = b"FAIL"
ID_OKAY = b"OKAY"
ID_DENT = b"DENT"
ID_QUIT = b"QUIT"

SYNC_IDS = frozenset(
    [ID_STAT, ID_LIST, ID_SEND, ID_RECV, ID_DATA, ID_DONE, ID_FAIL, ID_OKAY, ID_DENT, ID_QUIT]
)

SYNC_HEADER_SIZE = 8
SYNC_DATA_MAX = 64 * 1024
STAT_REPLY_SIZE = 16
DENT_HEADER_SIZE = 20
MAX_PATH_LENGTH = 1024


@dataclass(frozen=True)
class SyncFrame:
    """One nested sync message."""

    command: bytes
    arg: int = 0
    payload: bytes = b""

    def __repr__(self) -> str:
        return (
            f"SyncFrame(command={self.command.decode('ascii', 'replace')}, "
            f"arg={self.arg}, payload={len(self.payload)} bytes)"
        )


def build_sync_frame(command: bytes, payload: bytes = b"") -> bytes:
    """Build a length-prefixed sync frame."""
    if command not in SYNC_IDS:
        raise ValueError(f"Unknown sync command {command!r}")
    return command + struct.pack("<I", len(payload)) + payload


def build_path_request(command: bytes, path: str) -> bytes:
    """Build a STAT/LIST/RECV request for a remote path."""
    encoded = path.encode("utf-8")
    if len(encoded) > MAX_PATH_LENGTH:
        raise ValueError(f"Remote path too long ({len(encoded)} bytes): {path}")
    return build_sync_frame(command, encoded)


def build_send(remote_path: str, mode: int) -> bytes:
    """Build a SEND request; the payload is ``"<path>,<mode>"``."""
    target = f"{remote_path},{mode & 0o7777 | 0o100000:d}"
    encoded = target.encode("utf-8")
    if len(encoded) > MAX_PATH_LENGTH:
        raise ValueError(f"Remote path too long ({len(encoded)} bytes): {remote_path}")
    return build_sync_frame(ID_SEND, encoded)


def build_data(chunk: bytes) -> bytes:
    if len(chunk) > SYNC_DATA_MAX:
        raise ValueError(
            f"Data chunk must be at most {SYNC_DATA_MAX} bytes, got {len(chunk)}"
        )
    return build_sync_frame(ID_DATA, chunk)


def build_done(mtime: int) -> bytes:
    """Build the DONE frame that ends a push; the argument is the mtime."""
    return ID_DONE + struct.pack("<I", int(mtime) & 0xFFFFFFFF)


def build_quit() -> bytes:
    return build_sync_frame(ID_QUIT)


def parse_sync_header(header: bytes) -> tuple[bytes, int]:
    """Split an 8-byte sync header into ``(id, arg)``."""
    if len(header) < SYNC_HEADER_SIZE:
        raise ProtocolError(
            "truncated", f"Sync header needs {SYNC_HEADER_SIZE} bytes, got {len(header)}"
        )
    command = header[:4]
    if command not in SYNC_IDS:
        raise ProtocolError("unexpected_command", f"Unknown sync id {command!r}")
    (arg,) = struct.unpack("<I", header[4:8])
    return command, arg


def parse_sync_frame(data: bytes) -> SyncFrame:
    """Parse a complete length-prefixed sync frame (DATA, FAIL, OKAY...)."""
    command, arg = parse_sync_header(data)
    payload = b""
    if command in (ID_DATA, ID_FAIL, ID_STAT, ID_LIST, ID_SEND, ID_RECV):
        payload = data[SYNC_HEADER_SIZE : SYNC_HEADER_SIZE + arg]
        if len(payload) < arg:
            raise ProtocolError(
                "truncated", f"Sync payload declares {arg} bytes, got {len(payload)}"
            )
    return SyncFrame(command=command, arg=arg, payload=payload)


def parse_stat_reply(data: bytes) -> FileStat:
    """Parse a 16-byte STAT reply into a FileStat."""
    if len(data) < STAT_REPLY_SIZE:
        raise ProtocolError(
            "truncated", f"STAT reply needs {STAT_REPLY_SIZE} bytes, got {len(data)}"
        )
    if data[:4] != ID_STAT:
        raise ProtocolError("unexpected_command", f"Expected STAT, got {data[:4]!r}")
    mode, size, mtime = struct.unpack("<3I", data[4:STAT_REPLY_SIZE])
    return FileStat(mode=mode, size=size, mtime=mtime)


def parse_dent_header(data: bytes) -> tuple[bytes, FileStat, int]:
    """Parse the fixed part of a LIST reply record.

    Returns:
        ``(id, stat, name_length)``. The id is ``DENT`` for an entry or
        ``DONE`` at the end of the listing (name_length is 0 then).
    """
    if len(data) < DENT_HEADER_SIZE:
        raise ProtocolError(
            "truncated", f"DENT record needs {DENT_HEADER_SIZE} bytes, got {len(data)}"
        )
    command = data[:4]
    if command not in (ID_DENT, ID_DONE):
        raise ProtocolError("unexpected_command", f"Expected DENT or DONE, got {command!r}")
    mode, size, mtime, name_length = struct.unpack("<4I", data[4:DENT_HEADER_SIZE])
    return command, FileStat(mode=mode, size=size, mtime=mtime), name_length


def decode_fail_reason(payload: bytes) -> str:
    return payload.decode("utf-8", errors="replace")
