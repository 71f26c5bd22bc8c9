"""Client for the Android Debug Bridge host server, exposed over MCP."""

__version__ = "0.1.0"
