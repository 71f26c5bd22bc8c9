"""Small helpers: payload checksum and task gathering."""
