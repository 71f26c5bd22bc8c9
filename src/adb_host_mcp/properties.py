"""Android system properties, read with ``getprop`` over the device shell.

Named properties are read one ``getprop NAME`` each, in parallel on the
context's worker pool. With no names, a single ``getprop`` lists them all in
its ``[name]: [value]`` format.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Iterable

from .config import AdbContext
from .errors import ShellError
from .models.shell import ShellProtocol
from .shell import ShellExecutor
from .utils.tasks import gather_all

logger = logging.getLogger(__name__)

# Values may span lines; each entry ends with "]" at the end of a line.
PROPERTY_ENTRY = re.compile(r"^\[([^\]\n]+)\]: \[(.*?)\]$", re.MULTILINE | re.DOTALL)
PROPERTY_NAME = re.compile(r"^[A-Za-z0-9_.:@-]+$")


def parse_getprop_output(text: str) -> dict[str, str]:
    """Parse the listing printed by a bare ``getprop``.

    Lines that are not part of a ``[name]: [value]`` entry are ignored.
    """
    text = text.replace("\r\n", "\n")
    return {name: value for name, value in PROPERTY_ENTRY.findall(text)}


def check_property_name(name: str) -> str:
    """Refuse anything that is not a plain property name.

    Names are passed on a shell command line, so only the characters
    Android uses in property names are allowed.

    Raises:
        ShellError: ``invalid_property``.
    """
    if not PROPERTY_NAME.match(name):
        raise ShellError("invalid_property", f"Not a property name: {name!r}")
    return name


class PropertyReader:
    """Reads system properties from one device at a time."""

    def __init__(self, context: AdbContext) -> None:
        self._context = context
        self._shell = ShellExecutor(context)

    async def getprop(
        self, serial: str | None, names: Iterable[str] | None = None
    ) -> dict[str, str]:
        """Read properties from a device.

        Args:
            serial: Target device, or None for the only one connected.
            names: Properties to read. None or empty reads all of them.

        Returns:
            Values by name, in the order asked. A property the device does
            not have reads as an empty string.

        Raises:
            ShellError: A name is not a valid property name, or the stream
                broke.
            DeviceError: Device selection failed.
            AdbConnectionError: Transport failure.
        """
        names = [check_property_name(name) for name in dict.fromkeys(names or ())]
        if not names:
            _, output = await self._shell.run(serial, "getprop", ShellProtocol.RAW)
            properties = parse_getprop_output(output.decode("utf-8", errors="replace"))
            logger.debug("Read %d properties from %s", len(properties), serial)
            return properties

        semaphore = asyncio.Semaphore(self._context.max_workers)

        async def read_one(name: str) -> tuple[str, str]:
            async with semaphore:
                _, output = await self._shell.run(serial, f"getprop {name}", ShellProtocol.RAW)
            return name, output.decode("utf-8", errors="replace").rstrip("\r\n")

        return dict(await gather_all(read_one(name) for name in names))
