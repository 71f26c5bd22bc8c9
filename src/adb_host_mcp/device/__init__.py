"""Device enumeration and selection."""

from .registry import DeviceRegistry
from .selector import DeviceSelector
