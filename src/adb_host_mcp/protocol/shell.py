"""Shell protocol v2 packets.

Packet layout::

    +------+----------+-----------------+
    |  Id  |  Length  |     Payload     |
    |1 byte| u32 (LE) |  Length bytes   |
    +------+----------+-----------------+

The raw ``shell:`` service has no framing at all; stdout and stderr arrive
interleaved and no exit status is sent.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum

from ..errors import ProtocolError

PACKET_HEADER_SIZE = 5


class ShellPacketId(IntEnum):
    STDIN = 0
    STDOUT = 1
    STDERR = 2
    EXIT = 3
    CLOSE_STDIN = 4
    WINDOW_SIZE_CHANGE = 5


@dataclass(frozen=True)
class ShellPacket:
    packet_id: ShellPacketId
    payload: bytes = b""

    @property
    def exit_status(self) -> int | None:
        """The trailing status byte of an EXIT packet."""
        if self.packet_id != ShellPacketId.EXIT or not self.payload:
            return None
        return self.payload[-1]


def build_packet(packet_id: ShellPacketId, payload: bytes = b"") -> bytes:
    return struct.pack("<BI", packet_id, len(payload)) + payload


def parse_packet_header(header: bytes) -> tuple[ShellPacketId, int]:
    if len(header) < PACKET_HEADER_SIZE:
        raise ProtocolError(
            "truncated",
            f"Shell packet header needs {PACKET_HEADER_SIZE} bytes, got {len(header)}",
        )
    raw_id, length = struct.unpack("<BI", header[:PACKET_HEADER_SIZE])
    try:
        packet_id = ShellPacketId(raw_id)
    except ValueError as e:
        raise ProtocolError("unexpected_command", f"Unknown shell packet id {raw_id}") from e
    return packet_id, length
