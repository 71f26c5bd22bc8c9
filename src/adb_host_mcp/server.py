"""MCP server entry point for the ADB host client.

Exposes device enumeration, file transfer, shell execution and server
control as Model Context Protocol tools, using the official Python MCP SDK
with stdio transport.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

from mcp.server.fastmcp import FastMCP

from .config import AdbContext, StaticAliases
from .device.registry import DeviceRegistry
from .device.selector import DeviceSelector
from .errors import AdbError
from .host_server import ServerController
from .models.shell import ShellProtocol
from .models.transfer import Direction, TransferRequest, TransferStatus
from .progress import LoggingProgress
from .properties import PropertyReader
from .shell import ShellExecutor
from .transfer import FileTransferEngine

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "adb-host",
    instructions="MCP server for Android devices reached through the ADB host server",
)

ALIASES_ENV = "ADB_DEVICE_ALIASES"

_context: AdbContext | None = None
_aliases: StaticAliases | None = None


def aliases_from_env(value: str | None) -> StaticAliases:
    """Parse ``"name=serial,name2=serial2"`` into an alias table."""
    table = {}
    for item in (value or "").split(","):
        name, sep, serial = item.partition("=")
        if sep and name.strip() and serial.strip():
            table[name.strip()] = serial.strip()
    return StaticAliases(table)


def _get_context() -> AdbContext:
    """The client context, built from the environment on first use."""
    global _context
    if _context is None:
        _context = AdbContext.from_env()
    return _context


def _get_aliases() -> StaticAliases:
    global _aliases
    if _aliases is None:
        _aliases = aliases_from_env(os.environ.get(ALIASES_ENV))
    return _aliases


async def _resolve_serial(device: str | None) -> str:
    selector = DeviceSelector(DeviceRegistry(_get_context()), _get_aliases())
    return (await selector.select(device)).serial


def _summarize(outcomes) -> dict[str, Any]:
    counts = {status.value: 0 for status in TransferStatus}
    for outcome in outcomes:
        counts[outcome.status.value] += 1
    return {"outcomes": [o.to_dict() for o in outcomes], **counts}


# ─── DEVICE TOOLS ─────────────────────────────────────────────────────

@mcp.tool()
async def list_devices() -> dict[str, Any]:
    """List every device the ADB server knows about, including offline ones."""
    try:
        devices = await DeviceRegistry(_get_context()).list_devices()
    except AdbError as e:
        return e.to_dict()
    return {"devices": [d.to_dict() for d in devices]}


@mcp.tool()
async def select_device(device: str | None = None) -> dict[str, Any]:
    """Resolve a serial, alias, or serial fragment to one ready device.

    Args:
        device: Serial, alias or unique part of a serial. Omit to pick the
                only connected device.
    """
    selector = DeviceSelector(DeviceRegistry(_get_context()), _get_aliases())
    try:
        selected = await selector.select(device)
    except AdbError as e:
        return e.to_dict()
    return selected.to_dict()


@mcp.tool()
async def device_details() -> dict[str, Any]:
    """List devices with brand, model, AVD name, root state and a stable id.

    Properties are read from each ready device; offline and unauthorized
    devices are listed with what the server knows about them.
    """
    try:
        details = await DeviceRegistry(_get_context()).list_device_details(_get_aliases())
    except AdbError as e:
        return e.to_dict()
    return {"devices": [d.to_dict() for d in details]}


@mcp.tool()
async def rename_device(device: str, name: str) -> dict[str, Any]:
    """Give a device a name that can be used wherever a device is asked for.

    Names last for the life of this server process.

    Args:
        device: Serial, current name or unique part of a serial.
        name: The new name.
    """
    if not name.strip():
        return {"error": "Device name must not be empty", "kind": "invalid"}
    try:
        serial = await _resolve_serial(device)
    except AdbError as e:
        return e.to_dict()
    _get_aliases().rename(serial, name)
    return {"serial": serial, "name": name.strip()}


@mcp.tool()
async def getprop(names: list[str] | None = None, device: str | None = None) -> dict[str, Any]:
    """Read Android system properties (getprop).

    Args:
        names: Property names such as "ro.product.model". Omit to read all.
        device: Target device.
    """
    try:
        serial = await _resolve_serial(device)
        properties = await PropertyReader(_get_context()).getprop(serial, names)
    except AdbError as e:
        return e.to_dict()
    return {"device": serial, "properties": properties}


# ─── FILE TOOLS ───────────────────────────────────────────────────────

@mcp.tool()
async def stat(path: str, device: str | None = None) -> dict[str, Any]:
    """Read mode, size and modification time of a remote path.

    Args:
        path: Absolute path on the device.
        device: Target device (see select_device).
    """
    try:
        serial = await _resolve_serial(device)
        result = await FileTransferEngine(_get_context()).stat(serial, path)
    except AdbError as e:
        return e.to_dict()
    if not result.exists:
        return {"error": f"Remote path not found: {path}", "kind": "remote_missing"}
    return {"path": path, **result.to_dict()}


@mcp.tool()
async def list_dir(path: str, device: str | None = None) -> dict[str, Any]:
    """List a remote directory.

    Args:
        path: Directory on the device.
        device: Target device.
    """
    try:
        serial = await _resolve_serial(device)
        entries = await FileTransferEngine(_get_context()).list_dir(serial, path)
    except AdbError as e:
        return e.to_dict()
    return {
        "path": path,
        "entries": [{"name": name, **entry.to_dict()} for name, entry in entries],
    }


async def _transfer(
    direction: Direction,
    source: str,
    destination: str,
    device: str | None,
    recursive: bool,
    skip_unchanged: bool,
) -> dict[str, Any]:
    try:
        serial = await _resolve_serial(device)
    except AdbError as e:
        return e.to_dict()
    engine = FileTransferEngine(_get_context(), progress_factory=LoggingProgress)
    request = TransferRequest(
        source=source,
        destination=destination,
        direction=direction,
        recursive=recursive,
        skip_unchanged=skip_unchanged,
    )
    outcomes = await engine.transfer(serial, request)
    return {"device": serial, **_summarize(outcomes)}


@mcp.tool()
async def push(
    local_path: str,
    remote_path: str,
    device: str | None = None,
    recursive: bool = False,
    skip_unchanged: bool = False,
) -> dict[str, Any]:
    """Copy a local file or directory to the device.

    Args:
        local_path: File or directory on this machine.
        remote_path: Destination on the device; a trailing '/' means "into".
        device: Target device.
        recursive: Copy directories recursively.
        skip_unchanged: Skip files whose remote copy is as large and as new.
    """
    return await _transfer(
        Direction.PUSH, local_path, remote_path, device, recursive, skip_unchanged
    )


@mcp.tool()
async def pull(
    remote_path: str,
    local_path: str,
    device: str | None = None,
    recursive: bool = False,
    skip_unchanged: bool = False,
) -> dict[str, Any]:
    """Copy a remote file or directory to this machine.

    Args:
        remote_path: File or directory on the device.
        local_path: Local destination file or directory.
        device: Target device.
        recursive: Copy directories recursively.
        skip_unchanged: Skip files whose local copy is as large and as new.
    """
    return await _transfer(
        Direction.PULL, remote_path, local_path, device, recursive, skip_unchanged
    )


# ─── SHELL TOOLS ──────────────────────────────────────────────────────

@mcp.tool()
async def shell(command: str, device: str | None = None, v2: bool = False) -> dict[str, Any]:
    """Run a shell command on the device and return its output.

    Args:
        command: Command line to run (must not be empty).
        device: Target device.
        v2: Use shell protocol v2, which reports the exit status.
    """
    if not command.strip():
        return {"error": "Interactive shells are not available over MCP", "kind": "invalid"}
    protocol = ShellProtocol.V2 if v2 else ShellProtocol.RAW
    try:
        serial = await _resolve_serial(device)
        session, output = await ShellExecutor(_get_context()).run(serial, command, protocol)
    except AdbError as e:
        return e.to_dict()
    return {"output": output.decode("utf-8", errors="replace"), **session.to_dict()}


# ─── SERVER TOOLS ─────────────────────────────────────────────────────

@mcp.tool()
async def server_status() -> dict[str, Any]:
    """Report whether the ADB server is running, and its version."""
    try:
        status = await ServerController(_get_context()).status()
    except AdbError as e:
        return e.to_dict()
    return status.to_dict()


@mcp.tool()
async def start_server() -> dict[str, Any]:
    """Start the ADB server if it is not running."""
    try:
        status = await ServerController(_get_context()).start()
    except AdbError as e:
        return e.to_dict()
    return status.to_dict()


@mcp.tool()
async def stop_server() -> dict[str, Any]:
    """Stop the ADB server. Succeeds if it was already stopped."""
    try:
        status = await ServerController(_get_context()).stop()
    except AdbError as e:
        return e.to_dict()
    return status.to_dict()


@mcp.tool()
async def restart_server() -> dict[str, Any]:
    """Stop and start the ADB server."""
    try:
        status = await ServerController(_get_context()).restart()
    except AdbError as e:
        return e.to_dict()
    return status.to_dict()


# ─── MCP RESOURCES ───────────────────────────────────────────────────

@mcp.resource("adb://devices")
async def resource_devices() -> str:
    """Currently connected devices."""
    return json.dumps(await list_devices())


@mcp.resource("adb://server/status")
async def resource_server_status() -> str:
    """ADB server state and version."""
    return json.dumps(await server_status())


# ─── MCP PROMPTS ─────────────────────────────────────────────────────

@mcp.prompt()
def inspect_device(device: str) -> str:
    """Guide the AI through a first look at a connected device.

    Args:
        device: Serial or alias of the device.
    """
    return f"""Inspect the Android device {device}.
Steps:
- Use select_device to confirm it is connected and authorized
- Use getprop for "ro.product.model" and "ro.build.version.release"
- Run shell with "df -h /data" to check free space
- Use list_dir on /sdcard to see user files

Summarize the model, Android version, free space and anything unusual."""


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    logging.basicConfig(level=logging.INFO)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
