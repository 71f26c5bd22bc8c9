"""Protocol layer: message framing, sync sub-frames, service requests, and parsing."""

from .framing import Message, decode_message, encode_message, encode_request
from .commands import Service, build_service
from .sync import SyncFrame
