"""Device enumeration through ``host:devices-l``."""

from __future__ import annotations

import asyncio
import logging

from ..config import AdbContext, StaticAliases
from ..errors import AdbError
from ..models.device import DETAIL_PROPERTIES, Device, DeviceDetails
from ..properties import PropertyReader
from ..protocol.commands import build_devices
from ..protocol.parser import parse_device_list
from ..transport.connection import open_connection
from ..utils.tasks import gather_all

logger = logging.getLogger(__name__)


class DeviceRegistry:
    """Queries the background server for the currently connected devices.

    Results are never cached: every call opens a fresh connection and builds
    new ``Device`` objects.
    """

    def __init__(self, context: AdbContext) -> None:
        self._context = context

    async def query(self) -> list[Device]:
        """Issue one device-list query, with no retry."""
        async with await open_connection(self._context) as conn:
            await conn.send_request(build_devices())
            payload = await conn.read_length_prefixed()
        devices = parse_device_list(payload.decode("utf-8", errors="replace"))
        logger.debug("Server reported %d device(s)", len(devices))
        return devices

    async def list_devices(self, retry_empty: bool = True) -> list[Device]:
        """Return all devices, including offline and unauthorized ones.

        An empty list is re-queried according to the context's
        ``enumeration_retry`` policy, since a freshly started server may not
        have seen its devices yet.
        """
        devices = await self.query()
        if devices or not retry_empty:
            return devices

        policy = self._context.enumeration_retry
        for attempt in range(policy.attempts):
            logger.debug(
                "Empty device list, retrying in %.2fs (%d/%d)",
                policy.delay,
                attempt + 1,
                policy.attempts,
            )
            await asyncio.sleep(policy.delay)
            devices = await self.query()
            if devices:
                break
        return devices

    async def list_device_details(
        self, aliases: StaticAliases | None = None
    ) -> list[DeviceDetails]:
        """List devices with brand, model, AVD name and root state filled in.

        Properties are read from ready devices only. A device that cannot be
        read keeps its device-list data and gets empty properties.

        Args:
            aliases: Names given with ``StaticAliases.rename``, shown as each
                device's name.
        """
        devices = await self.list_devices()
        reader = PropertyReader(self._context)

        async def enrich(device: Device) -> DeviceDetails:
            properties: dict[str, str] = {}
            if device.is_ready:
                try:
                    properties = await reader.getprop(device.serial, DETAIL_PROPERTIES)
                except AdbError as e:
                    logger.warning("Could not read properties of %s: %s", device.serial, e)
            name = aliases.name_for(device.serial) if aliases else None
            return DeviceDetails.from_properties(device, properties, name)

        return await gather_all(enrich(device) for device in devices)
