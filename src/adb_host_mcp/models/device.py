"""Device model built from ``host:devices-l`` records."""

from __future__ import annotations

import enum
import hashlib
from dataclasses import dataclass, field

BRAND_PROPERTY = "ro.product.product.brand"
MODEL_PROPERTY = "ro.product.model"
AVD_NAME_PROPERTY = "ro.boot.qemu.avd_name"
ROOT_PROPERTY = "service.adb.root"

# Read from every ready device when listing details.
DETAIL_PROPERTIES = (BRAND_PROPERTY, MODEL_PROPERTY, AVD_NAME_PROPERTY, ROOT_PROPERTY)

SHORT_ID_LENGTH = 12


class DeviceState(enum.Enum):
    """Connection state reported by the server."""

    READY = "device"
    OFFLINE = "offline"
    UNAUTHORIZED = "unauthorized"
    UNKNOWN = "unknown"

    @classmethod
    def from_wire(cls, word: str) -> DeviceState:
        for state in cls:
            if state.value == word.lower():
                return state
        return cls.UNKNOWN


class AddressKind(enum.Enum):
    LOCAL = "local"
    NETWORK = "network"


@dataclass
class Device:
    """A device currently known to the background server."""

    serial: str
    state: DeviceState = DeviceState.UNKNOWN
    transport_id: int | None = None
    model: str = ""
    product: str = ""
    device: str = ""
    usb: str = ""

    @property
    def address_kind(self) -> AddressKind:
        # Network serials look like "192.168.1.5:5555"; emulators are local.
        host, sep, port = self.serial.rpartition(":")
        if sep and host and port.isdigit():
            return AddressKind.NETWORK
        return AddressKind.LOCAL

    @property
    def is_ready(self) -> bool:
        return self.state is DeviceState.READY

    def display_name(self) -> str:
        if self.model:
            return f"{self.model} ({self.serial})"
        return self.serial

    def to_dict(self) -> dict:
        return {
            "serial": self.serial,
            "state": self.state.value,
            "transport_id": self.transport_id,
            "model": self.model,
            "product": self.product,
            "device": self.device,
            "usb": self.usb,
            "address_kind": self.address_kind.value,
        }


def device_id_for(serial: str, avd_name: str = "") -> str:
    """Stable identifier: SHA-256 of the AVD name, or of the serial.

    Emulators get a new serial per port, so the AVD name is preferred when
    the device reports one.
    """
    return hashlib.sha256((avd_name or serial).encode("utf-8")).hexdigest()


@dataclass
class DeviceDetails:
    """A ``Device`` enriched with properties read from the device itself.

    Attributes:
        device: The record from the device list.
        brand: ``ro.product.product.brand``.
        model: ``ro.product.model``, falling back to the device-list model.
        avd_name: ``ro.boot.qemu.avd_name``; empty on physical devices.
        root: True when adbd runs as root (``service.adb.root=1``).
        device_id: See ``device_id_for``.
        name: User-given name, or the short id when there is none.
        properties: Every property read, by name.
    """

    device: Device
    brand: str = ""
    model: str = ""
    avd_name: str = ""
    root: bool = False
    device_id: str = ""
    name: str = ""
    properties: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_properties(
        cls, device: Device, properties: dict[str, str], name: str | None = None
    ) -> DeviceDetails:
        avd_name = properties.get(AVD_NAME_PROPERTY, "")
        device_id = device_id_for(device.serial, avd_name)
        return cls(
            device=device,
            brand=properties.get(BRAND_PROPERTY, ""),
            model=properties.get(MODEL_PROPERTY, "") or device.model,
            avd_name=avd_name,
            root=properties.get(ROOT_PROPERTY, "") == "1",
            device_id=device_id,
            name=name or device_id[:SHORT_ID_LENGTH],
            properties=dict(properties),
        )

    @property
    def device_id_short(self) -> str:
        return self.device_id[:SHORT_ID_LENGTH]

    def to_dict(self) -> dict:
        return {
            **self.device.to_dict(),
            "brand": self.brand,
            "model": self.model,
            "avd_name": self.avd_name,
            "root": self.root,
            "device_id": self.device_id,
            "device_id_short": self.device_id_short,
            "name": self.name,
            "properties": dict(self.properties),
        }
