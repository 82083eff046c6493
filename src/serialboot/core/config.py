"""
Run configuration.

Built once from the command line; immutable for the rest of the run.
"""

from dataclasses import dataclass, field
from typing import Tuple

SUPPORTED_BAUDRATES = (9600, 19200, 38400, 57600, 115200)
DEFAULT_BAUDRATE = 9600

# Maximum number of (target, image) pairs per run
MAX_TARGETS = 5

# Accepted command line size, program name included
MIN_ARGC = 4
MAX_ARGC = 14

LEAD_DEVICE_ID = 0
MAX_TARGET_ID = 0xFFFFFFFF

# Retry policy
CONNECT_RETRY_LIMIT = 50
RETRY_INTERVAL_S = 0.02
LINK_NOTICE_AFTER = 60


@dataclass(frozen=True)
class Target:
    """A device ID paired with the image to flash onto it."""
    target_id: int
    image_path: str

    def label(self) -> str:
        return f"device 0x{self.target_id:08X}"


@dataclass(frozen=True)
class RunConfig:
    """
    Everything the orchestrator needs for one run.

    Attributes:
        device: Serial device path
        baudrate: Serial speed (one of SUPPORTED_BAUDRATES)
        rts: Idle level of the RTS control line (0 or 1)
        targets: Ordered (target, image) pairs, at most MAX_TARGETS
    """
    device: str
    baudrate: int = DEFAULT_BAUDRATE
    rts: int = 0
    targets: Tuple[Target, ...] = field(default_factory=tuple)
