"""Resolve a user-supplied identifier to exactly one device."""

from __future__ import annotations

import logging

from ..config import AliasResolver, StaticAliases
from ..errors import DeviceError
from ..models.device import Device, DeviceState
from .registry import DeviceRegistry

logger = logging.getLogger(__name__)


def resolve_device(
    devices: list[Device],
    identifier: str | None,
    aliases: AliasResolver | None = None,
) -> Device:
    """Pick one device from an enumeration result.

    Resolution order: exact serial, exact alias, then a unique
    case-insensitive substring of the serial. With no identifier, a lone
    device is chosen automatically.

    Raises:
        DeviceError: ``no_devices_found`` for an empty list,
            ``device_not_found`` when nothing matches, and
            ``ambiguous_selection`` (with ``candidates``) when more than one
            device could be meant.
    """
    if not devices:
        raise DeviceError("no_devices_found", "No devices found")

    if not identifier:
        if len(devices) == 1:
            return devices[0]
        serials = [d.serial for d in devices]
        raise DeviceError(
            "ambiguous_selection",
            f"Multiple devices connected, specify one of: {', '.join(serials)}",
            candidates=serials,
        )

    for device in devices:
        if device.serial == identifier:
            return device

    if aliases is not None:
        target = aliases.lookup_alias(identifier)
        if target is not None:
            for device in devices:
                if device.serial == target:
                    logger.debug("Alias %r resolved to %s", identifier, target)
                    return device
            logger.debug("Alias %r points at %s, which is not connected", identifier, target)

    needle = identifier.lower()
    matches = [d for d in devices if needle in d.serial.lower()]
    if len(matches) == 1:
        return matches[0]
    if not matches:
        raise DeviceError("device_not_found", f"No device found matching {identifier!r}")
    serials = [d.serial for d in matches]
    raise DeviceError(
        "ambiguous_selection",
        f"{identifier!r} matches multiple devices: {', '.join(serials)}",
        candidates=serials,
    )


class DeviceSelector:
    """Enumerates devices and resolves an identifier against them."""

    def __init__(
        self,
        registry: DeviceRegistry,
        aliases: AliasResolver | None = None,
    ) -> None:
        self._registry = registry
        self._aliases = aliases if aliases is not None else StaticAliases()

    async def select(self, identifier: str | None = None, require_ready: bool = True) -> Device:
        """Return the single device meant by ``identifier``.

        Args:
            identifier: Serial, alias, serial substring, or None/"" to
                auto-select the only device.
            require_ready: Reject devices that are offline or unauthorized.
        """
        devices = await self._registry.list_devices()
        device = resolve_device(devices, identifier, self._aliases)
        if require_ready and not device.is_ready:
            if device.state is DeviceState.UNAUTHORIZED:
                raise DeviceError(
                    "unauthorized",
                    f"Device {device.serial} is unauthorized; accept the debugging prompt",
                )
            raise DeviceError(
                "offline", f"Device {device.serial} is not ready ({device.state.value})"
            )
        return device
