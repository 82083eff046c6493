"""Serial protocol layer - datagram framing and boot monitor commands."""

from .framing import (
    Framer,
    ChannelError,
    FramerError,
    FrameTimeout,
    READ_GRANULARITY_MS,
)
from .base import DeviceProtocol
from .xcp_master import XcpMaster, XcpError, SlaveInfo

__all__ = [
    # Framing
    "Framer",
    "ChannelError",
    "FramerError",
    "FrameTimeout",
    "READ_GRANULARITY_MS",
    # Device protocol
    "DeviceProtocol",
    "XcpMaster",
    "XcpError",
    "SlaveInfo",
]
