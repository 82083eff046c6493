"""
SerialBoot - firmware updates for boot-monitor devices on a shared serial link

Flashes S-record images onto one or more devices in a single run and
reports the outcome per device.
"""

__version__ = "0.1.0"

from serialboot.protocol import Framer, XcpMaster
from serialboot.core import FlashOrchestrator, RunConfig, Target

__all__ = [
    "Framer",
    "XcpMaster",
    "FlashOrchestrator",
    "RunConfig",
    "Target",
    "__version__",
]
