"""Tests for message framing and host request encoding."""

import struct

import pytest

from adb_host_mcp.errors import ProtocolError
from adb_host_mcp.protocol.framing import (
    HEADER_SIZE,
    MAX_PAYLOAD,
    Message,
    command_value,
    decode_header,
    decode_hex_length,
    decode_message,
    encode_message,
    encode_request,
)
from adb_host_mcp.utils.checksum import data_checksum


def test_header_is_24_bytes():
    """The header is 24 bytes and the payload follows it."""
    data = encode_message(Message(b"CNXN", 0x01000000, 4096, b"host::\x00"))
    assert HEADER_SIZE == 24
    assert len(data) == 24 + 7


def test_magic_is_command_complement():
    """Magic is the bitwise complement of the command."""
    data = encode_message(Message(b"OKAY", 1, 2))
    command, magic = struct.unpack("<I", data[:4])[0], struct.unpack("<I", data[20:24])[0]
    assert command == command_value(b"OKAY")
    assert magic == command ^ 0xFFFFFFFF


def test_roundtrip():
    """A decoded frame equals the one encoded."""
    msg = Message(b"WRTE", 3, 7, b"hello device")
    assert decode_message(encode_message(msg)) == msg


def test_empty_payload_roundtrip():
    """Frames without a payload decode cleanly."""
    msg = Message(b"CLSE", 1, 1)
    decoded = decode_message(encode_message(msg))
    assert decoded.payload == b""
    assert decoded.command == b"CLSE"


def test_header_carries_length_and_checksum():
    """Length and checksum fields describe the payload."""
    payload = b"\x01\x02\xff"
    data = encode_message(Message(b"WRTE", 0, 0, payload))
    _, _, _, length, checksum, _ = struct.unpack("<6I", data[:24])
    assert length == 3
    assert checksum == data_checksum(payload) == 0x102


def test_single_bit_flip_in_payload_is_rejected():
    """A corrupted payload fails the checksum."""
    data = bytearray(encode_message(Message(b"WRTE", 0, 0, b"payload bytes")))
    data[HEADER_SIZE + 4] ^= 0x08
    with pytest.raises(ProtocolError) as exc_info:
        decode_message(bytes(data))
    assert exc_info.value.kind == "checksum_mismatch"


def test_bad_magic_is_rejected():
    """A header whose magic does not match is refused."""
    data = bytearray(encode_message(Message(b"OPEN", 1, 0, b"shell:\x00")))
    data[20] ^= 0x01
    with pytest.raises(ProtocolError) as exc_info:
        decode_message(bytes(data))
    assert exc_info.value.kind == "bad_magic"


def test_truncated_header():
    """Fewer than 24 bytes is a truncated frame."""
    with pytest.raises(ProtocolError) as exc_info:
        decode_message(b"CNXN\x00\x00")
    assert exc_info.value.kind == "truncated"


def test_truncated_payload():
    """A payload shorter than declared is truncated."""
    data = encode_message(Message(b"WRTE", 0, 0, b"0123456789"))
    with pytest.raises(ProtocolError) as exc_info:
        decode_message(data[:-3])
    assert exc_info.value.kind == "truncated"


def test_oversized_payload_refused():
    """Encoding refuses payloads over the maximum."""
    with pytest.raises(ValueError):
        encode_message(Message(b"WRTE", 0, 0, bytes(1024 * 1024 + 1)))


def test_oversized_declared_length_is_rejected():
    """A header declaring more than the maximum payload is refused."""
    command = command_value(b"WRTE")
    header = struct.pack("<6I", command, 0, 0, MAX_PAYLOAD + 1, 0, command ^ 0xFFFFFFFF)
    with pytest.raises(ProtocolError) as exc_info:
        decode_header(header)
    assert exc_info.value.kind == "oversized"


def test_encode_request_version():
    """Host requests are prefixed with their hex length."""
    assert encode_request("host:version") == b"000chost:version"


def test_encode_request_length_is_lowercase_hex():
    """The length prefix uses lowercase hex digits."""
    request = encode_request("host:transport:" + "x" * 30)
    assert request[:4] == b"002d"


def test_decode_hex_length():
    """A 4-digit hex length decodes to an int."""
    assert decode_hex_length(b"0029") == 41


def test_decode_hex_length_rejects_garbage():
    """Non-hex length digits are a protocol error."""
    with pytest.raises(ProtocolError):
        decode_hex_length(b"zz!!")
