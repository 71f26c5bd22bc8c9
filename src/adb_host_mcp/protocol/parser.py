"""Response parsing for host service replies."""

from __future__ import annotations

import logging

from ..models.device import Device, DeviceState
from .framing import decode_hex_length

logger = logging.getLogger(__name__)

_DEVICE_PROPERTIES = ("usb", "product", "model", "device", "transport_id")


def parse_device_line(line: str) -> Device | None:
    """Parse one ``host:devices-l`` record.

    A record is ``<serial> <state> [key:value ...]``. States such as
    ``no permissions (...)`` contain spaces; anything that is not a known
    state word becomes ``UNKNOWN`` and the remaining ``key:value`` tokens
    are still honoured.

    Returns:
        A ``Device``, or ``None`` for blank or unparseable lines.
    """
    parts = line.split()
    if len(parts) < 2:
        if line.strip():
            logger.debug("Skipping malformed device line: %r", line)
        return None

    serial, state_word, rest = parts[0], parts[1], parts[2:]
    device = Device(serial=serial, state=DeviceState.from_wire(state_word))

    for token in rest:
        key, sep, value = token.partition(":")
        if not sep or key not in _DEVICE_PROPERTIES:
            continue
        if key == "transport_id":
            try:
                device.transport_id = int(value)
            except ValueError:
                logger.debug("Ignoring bad transport_id %r for %s", value, serial)
        else:
            setattr(device, key, value)
    return device


def parse_device_list(text: str) -> list[Device]:
    """Parse the newline-delimited device list into Device entities."""
    devices = []
    for line in text.splitlines():
        device = parse_device_line(line)
        if device is not None:
            devices.append(device)
    return devices


def parse_version(data: bytes) -> int:
    """Parse the 4-hex-digit ``host:version`` reply (e.g. ``b"0029"`` -> 41)."""
    return decode_hex_length(data)
