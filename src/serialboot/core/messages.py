"""
Standardized warning and message system for SerialBoot.

Provides structured warning items with stable codes so the orchestrator's
notices and the final report render consistently.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict

from .results import FlashError, TargetOutcome


class MessageLevel(Enum):
    """Severity level for messages."""
    WARN = "warn"
    ERROR = "error"


class WarningCode(Enum):
    """Stable warning codes for known conditions."""
    # Link warnings
    W_PORT_UNAVAILABLE = "W_PORT_UNAVAILABLE"
    W_LEAD_NOT_RESPONDING = "W_LEAD_NOT_RESPONDING"

    # Per-target failures
    W_FILE_INVALID = "W_FILE_INVALID"
    W_DEVICE_UNREACHABLE = "W_DEVICE_UNREACHABLE"
    W_SESSION_FAILED = "W_SESSION_FAILED"

    # Generic
    W_UNKNOWN = "W_UNKNOWN"


WARNING_REMEDIATIONS: Dict[WarningCode, str] = {
    WarningCode.W_PORT_UNAVAILABLE:
        "Power the main device and check that the serial device exists and is accessible.",
    WarningCode.W_LEAD_NOT_RESPONDING:
        "Reset the main device so its boot monitor answers.",
    WarningCode.W_FILE_INVALID:
        "Check that the path is correct and the file is a valid S-record image.",
    WarningCode.W_DEVICE_UNREACHABLE:
        "Check the target ID and that the device is attached to the main device.",
    WarningCode.W_SESSION_FAILED:
        "Connection worked but programming failed. Check the log above and retry.",
    WarningCode.W_UNKNOWN:
        "Check logs for more details.",
}

_ERROR_CODES = {
    FlashError.FILE: WarningCode.W_FILE_INVALID,
    FlashError.DEVICE: WarningCode.W_DEVICE_UNREACHABLE,
    FlashError.UNKNOWN: WarningCode.W_SESSION_FAILED,
}


@dataclass
class WarningItem:
    """
    Structured warning message with stable code.

    Attributes:
        level: Severity (WARN or ERROR)
        code: Stable warning code
        title: Short, user-facing title
        detail: Longer explanation of the issue
        remediation: Suggested action to resolve the issue
    """
    level: MessageLevel
    code: WarningCode
    title: str
    detail: str = ""
    remediation: str = ""

    def __post_init__(self):
        """Set default remediation if not provided."""
        if not self.remediation and self.code in WARNING_REMEDIATIONS:
            self.remediation = WARNING_REMEDIATIONS[self.code]

    @classmethod
    def warn(cls, code: WarningCode, title: str, detail: str = "") -> "WarningItem":
        return cls(MessageLevel.WARN, code, title, detail)

    @classmethod
    def error(cls, code: WarningCode, title: str, detail: str = "") -> "WarningItem":
        return cls(MessageLevel.ERROR, code, title, detail)

    def to_cli_string(self, verbose: bool = False) -> str:
        """Format for log/console output."""
        if verbose:
            lines = [f"[{self.code.value}] {self.title}"]
            if self.detail:
                lines.append(f"   {self.detail}")
            if self.remediation:
                lines.append(f"   → {self.remediation}")
            return "\n".join(lines)
        return self.title


def outcome_to_warning(outcome: TargetOutcome) -> WarningItem:
    """Convert a failed target outcome into an ERROR-level item."""
    code = _ERROR_CODES.get(outcome.error, WarningCode.W_UNKNOWN)
    return WarningItem.error(
        code,
        f"ERROR in Flash {outcome.index}: {outcome.reason()}",
        outcome.describe(),
    )


# Notices printed once while waiting for the lead device
COMMON_WARNINGS = {
    "port_unavailable": WarningItem.warn(
        WarningCode.W_PORT_UNAVAILABLE,
        "TIMEOUT in building connection. Please start serial port of the main device ...",
    ),
    "lead_not_responding": WarningItem.warn(
        WarningCode.W_LEAD_NOT_RESPONDING,
        "TIMEOUT in reset. Please reset the main device ...",
    ),
}
