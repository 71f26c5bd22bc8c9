"""Data models for devices, transfers, and shell sessions."""

from .device import AddressKind, Device, DeviceDetails, DeviceState
from .shell import ShellProtocol, ShellSession
from .transfer import (
    Direction,
    FileStat,
    TransferOutcome,
    TransferRequest,
    TransferStatus,
)
