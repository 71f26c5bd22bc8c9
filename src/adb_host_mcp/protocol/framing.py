"""Message frame builder and parser for the ADB wire protocol.

Message layout::

    +---------+--------+--------+---------+----------+--------+-----------------+
    | Command |  Arg0  |  Arg1  | Length  | Checksum | Magic  |     Payload     |
    | 4 bytes | 4 bytes| 4 bytes| 4 bytes | 4 bytes  | 4 bytes| Length bytes    |
    +---------+--------+--------+---------+----------+--------+-----------------+

- Command: four ASCII characters read as a little-endian u32 (``CNXN``,
  ``OPEN``, ``WRTE``, ...)
- Length: number of payload bytes that follow the header
- Checksum: 32-bit byte sum of the payload
- Magic: ``command ^ 0xFFFFFFFF``

Requests to the host server itself use the simpler "smart socket" format:
a 4-digit hex length followed by the service string, answered by a 4-byte
``OKAY``/``FAIL`` status.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

from ..errors import ProtocolError
from ..utils.checksum import data_checksum

HEADER_FORMAT = "<6I"
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)  # 24
MAX_PAYLOAD = 1024 * 1024
MAX_REQUEST_LENGTH = 0xFFFF

STATUS_OKAY = b"OKAY"
STATUS_FAIL = b"FAIL"


def command_value(tag: bytes) -> int:
    """Return the numeric value of a 4-byte ASCII command tag."""
    if len(tag) != 4:
        raise ValueError(f"Command tag must be 4 bytes, got {tag!r}")
    return struct.unpack("<I", tag)[0]


def command_tag(value: int) -> bytes:
    return struct.pack("<I", value)


@dataclass(frozen=True)
class Message:
    """A parsed protocol frame."""

    command: bytes
    arg0: int = 0
    arg1: int = 0
    payload: bytes = b""

    def __repr__(self) -> str:
        return (
            f"Message(command={self.command.decode('ascii', 'replace')}, "
            f"arg0=0x{self.arg0:08X}, arg1=0x{self.arg1:08X}, "
            f"payload={len(self.payload)} bytes)"
        )


def encode_message(msg: Message) -> bytes:
    """Build the wire bytes for a message.

    Args:
        msg: The frame to encode.

    Returns:
        The 24-byte header followed by the payload.
    """
    if len(msg.payload) > MAX_PAYLOAD:
        raise ValueError(
            f"Payload must be at most {MAX_PAYLOAD} bytes, got {len(msg.payload)}"
        )
    command = command_value(msg.command)
    header = struct.pack(
        HEADER_FORMAT,
        command,
        msg.arg0 & 0xFFFFFFFF,
        msg.arg1 & 0xFFFFFFFF,
        len(msg.payload),
        data_checksum(msg.payload),
        command ^ 0xFFFFFFFF,
    )
    return header + msg.payload


def decode_header(header: bytes) -> tuple[int, int, int, int, int]:
    """Validate a 24-byte header.

    Returns:
        ``(command, arg0, arg1, length, checksum)``

    Raises:
        ProtocolError: ``truncated`` if fewer than 24 bytes were supplied,
            ``bad_magic`` if the magic is not the complement of the command,
            ``oversized`` if the declared length is above ``MAX_PAYLOAD``.
    """
    if len(header) < HEADER_SIZE:
        raise ProtocolError(
            "truncated", f"Header needs {HEADER_SIZE} bytes, got {len(header)}"
        )
    command, arg0, arg1, length, checksum, magic = struct.unpack(
        HEADER_FORMAT, header[:HEADER_SIZE]
    )
    if magic != command ^ 0xFFFFFFFF:
        raise ProtocolError(
            "bad_magic", f"Magic 0x{magic:08X} does not match command 0x{command:08X}"
        )
    if length > MAX_PAYLOAD:
        raise ProtocolError(
            "oversized", f"Declared payload of {length} bytes exceeds {MAX_PAYLOAD}"
        )
    return command, arg0, arg1, length, checksum


def verify_payload(payload: bytes, checksum: int) -> None:
    actual = data_checksum(payload)
    if actual != checksum:
        raise ProtocolError(
            "checksum_mismatch",
            f"Payload checksum 0x{actual:08X} != header 0x{checksum:08X}",
        )


def decode_message(data: bytes) -> Message:
    """Parse a complete frame.

    Args:
        data: Header plus payload. Trailing bytes beyond the declared
            payload are ignored.

    Raises:
        ProtocolError: ``truncated``, ``bad_magic``, ``oversized`` or
            ``checksum_mismatch``.
    """
    command, arg0, arg1, length, checksum = decode_header(data)
    payload = data[HEADER_SIZE : HEADER_SIZE + length]
    if len(payload) < length:
        raise ProtocolError(
            "truncated", f"Payload declares {length} bytes, got {len(payload)}"
        )
    verify_payload(payload, checksum)
    return Message(command=command_tag(command), arg0=arg0, arg1=arg1, payload=payload)


def encode_request(service: str) -> bytes:
    """Build a host request: 4 hex digits of length, then the service string.

    >>> encode_request("host:version")
    b'000chost:version'
    """
    body = service.encode("utf-8")
    if len(body) > MAX_REQUEST_LENGTH:
        raise ValueError(f"Request too long: {len(body)} bytes")
    return f"{len(body):04x}".encode("ascii") + body


def decode_hex_length(data: bytes) -> int:
    """Parse a 4-digit hex length prefix."""
    try:
        return int(data.decode("ascii"), 16)
    except (UnicodeDecodeError, ValueError) as e:
        raise ProtocolError("unexpected_command", f"Invalid length prefix {data!r}") from e
