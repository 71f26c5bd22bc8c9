"""Tests for device, transfer and shell models."""

import hashlib

import pytest

from adb_host_mcp.errors import ShellError
from adb_host_mcp.models import (
    Device,
    DeviceDetails,
    DeviceState,
    FileStat,
    ShellProtocol,
    ShellSession,
    TransferOutcome,
    TransferStatus,
)


def test_device_to_dict():
    """Devices serialize with state and address kind."""
    device = Device("emulator-5554", DeviceState.READY, transport_id=2, model="Pixel_7")
    result = device.to_dict()
    assert result["serial"] == "emulator-5554"
    assert result["state"] == "device"
    assert result["address_kind"] == "local"
    assert device.display_name() == "Pixel_7 (emulator-5554)"


def test_device_ready():
    """Only the device state counts as ready."""
    assert Device("a", DeviceState.READY).is_ready
    assert not Device("a", DeviceState.UNAUTHORIZED).is_ready


def test_state_from_wire():
    """Wire words map to states."""
    assert DeviceState.from_wire("device") is DeviceState.READY
    assert DeviceState.from_wire("bootloader") is DeviceState.UNKNOWN


def test_file_stat_types():
    """File type and permissions come from the mode."""
    assert FileStat(0o40755, 0, 0).is_dir
    assert FileStat(0o100644, 3, 0).is_file
    assert FileStat(0o120777, 0, 0).is_symlink
    assert FileStat(0o100644, 3, 0).permissions == "644"
    assert not FileStat(0, 0, 0).exists


def test_is_at_least():
    """Skip check needs both size and mtime to be at least as large."""
    local = FileStat(0o100644, 100, 1000)
    assert FileStat(0o100644, 100, 1000).is_at_least(local)
    assert FileStat(0o100644, 200, 2000).is_at_least(local)
    assert not FileStat(0o100644, 99, 2000).is_at_least(local)
    assert not FileStat(0o100644, 100, 999).is_at_least(local)
    assert not FileStat(0, 0, 0).is_at_least(FileStat(0, 0, 0))


def test_outcome_ok():
    """Skipped counts as ok; failures keep their reason."""
    assert TransferOutcome("a", "b", TransferStatus.SKIPPED).ok
    failed = TransferOutcome("a", "b", TransferStatus.FAILED, reason="boom")
    assert not failed.ok
    assert failed.to_dict()["reason"] == "boom"


def test_raw_session_assumes_success():
    """Raw sessions have no known exit status."""
    session = ShellSession("ls", ShellProtocol.RAW)
    assert not session.exit_status_known
    assert session.success
    with pytest.raises(ShellError) as exc_info:
        session.require_exit_status()
    assert exc_info.value.kind == "exit_status_unavailable"


def test_v2_session_status():
    """V2 sessions report their exit status."""
    session = ShellSession("false", ShellProtocol.V2, exit_status=1)
    assert not session.success
    assert session.require_exit_status() == 1


def test_interactive():
    """An empty command is interactive."""
    assert ShellSession("").interactive
    assert not ShellSession("id").interactive


def test_device_details_from_properties():
    """Known properties fill the detail fields; the id hashes the serial."""
    device = Device("R58M12", DeviceState.READY, model="SM_G991B")
    details = DeviceDetails.from_properties(
        device,
        {
            "ro.product.product.brand": "samsung",
            "ro.product.model": "SM-G991B",
            "ro.boot.qemu.avd_name": "",
            "service.adb.root": "1",
        },
    )
    assert details.brand == "samsung"
    assert details.model == "SM-G991B"
    assert details.root
    assert details.device_id == hashlib.sha256(b"R58M12").hexdigest()
    assert details.name == details.device_id_short == details.device_id[:12]
    assert details.to_dict()["serial"] == "R58M12"


def test_device_details_prefers_avd_name_for_id():
    """Emulators are identified by AVD name, which survives a port change."""
    first = DeviceDetails.from_properties(
        Device("emulator-5554"), {"ro.boot.qemu.avd_name": "Pixel_7_API_34"}
    )
    second = DeviceDetails.from_properties(
        Device("emulator-5556"), {"ro.boot.qemu.avd_name": "Pixel_7_API_34"}
    )
    assert first.device_id == second.device_id
    assert first.avd_name == "Pixel_7_API_34"


def test_device_details_without_properties():
    """A device that could not be read keeps its list model and is not root."""
    details = DeviceDetails.from_properties(Device("R58M", model="Pixel_7"), {}, name="phone")
    assert details.model == "Pixel_7"
    assert details.brand == ""
    assert not details.root
    assert details.name == "phone"
