"""TCP transport to the ADB background server."""

from .connection import AdbConnection, open_connection, open_device_connection
