"""Payload checksum used in the 24-byte message header.

ADB's ``data_check`` is the unsigned sum of every payload byte, truncated
to 32 bits. A single flipped bit always changes the sum, so corruption of
one bit is never silently accepted.
"""

from __future__ import annotations


def data_checksum(data: bytes) -> int:
    """Return the 32-bit byte sum of ``data``."""
    return sum(data) & 0xFFFFFFFF
