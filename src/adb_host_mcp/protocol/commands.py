"""Host service request strings.

Each helper returns the smart-socket request as bytes, ready to write to a
fresh server connection (see :func:`~.framing.encode_request`).
"""

from __future__ import annotations

from enum import Enum

from .framing import encode_request


class Service(str, Enum):
    """Service names understood by the background server."""

    DEVICES = "host:devices-l"
    VERSION = "host:version"
    KILL = "host:kill"
    TRANSPORT = "host:transport:{serial}"
    TRANSPORT_ANY = "host:transport-any"
    SYNC = "sync:"
    SHELL = "shell:{command}"
    SHELL_V2 = "shell,v2,raw:{command}"


def format_service(service: Service, **kwargs: str) -> str:
    return service.value.format(**kwargs)


def build_service(service: Service, **kwargs: str) -> bytes:
    """Build a request for a service with its arguments filled in."""
    return encode_request(format_service(service, **kwargs))


def build_devices() -> bytes:
    return build_service(Service.DEVICES)


def build_version() -> bytes:
    return build_service(Service.VERSION)


def build_kill() -> bytes:
    return build_service(Service.KILL)


def build_transport(serial: str | None) -> bytes:
    """Bind the connection to one device, or to the only device if None."""
    if serial is None:
        return build_service(Service.TRANSPORT_ANY)
    if not serial:
        raise ValueError("Device serial must not be empty")
    return build_service(Service.TRANSPORT, serial=serial)


def build_sync() -> bytes:
    return build_service(Service.SYNC)


def build_shell(command: str = "", v2: bool = False) -> bytes:
    """Build a shell request. An empty command opens an interactive shell."""
    return build_service(Service.SHELL_V2 if v2 else Service.SHELL, command=command)
