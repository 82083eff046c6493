"""
Result objects for a flashing run.

The orchestrator records one outcome per target as the run proceeds; the CLI
reads the finished report once to render the final summary.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List

from .config import Target


class FlashError(Enum):
    """Per-target failure taxonomy."""
    NONE = "none"
    FILE = "file"
    DEVICE = "device"
    UNKNOWN = "unknown"


@dataclass
class TargetOutcome:
    """
    Outcome of one target's turn.

    Attributes:
        index: 1-based position in the run
        target: The (device ID, image) pair
        error: FlashError.NONE on success
        bytes_len: Data bytes programmed
    """
    index: int
    target: Target
    error: FlashError = FlashError.NONE
    bytes_len: int = 0

    @property
    def ok(self) -> bool:
        return self.error is FlashError.NONE

    def reason(self) -> str:
        """Human-readable failure reason."""
        if self.error is FlashError.FILE:
            return f"The file {self.target.image_path} couldn't be read!"
        if self.error is FlashError.DEVICE:
            return f"No connection to device 0x{self.target.target_id:08X}!"
        if self.error is FlashError.UNKNOWN:
            return "Couldn't specify the error. Please check output above!"
        return ""

    def describe(self) -> str:
        return f"Flash {self.index}: {self.target.image_path} on {self.target.label()}"


@dataclass
class RunReport:
    """
    Per-target outcomes of a run.

    Targets never share an outcome: a failure of one is recorded here and
    the run moves on to the next.
    """
    outcomes: List[TargetOutcome] = field(default_factory=list)

    def record(self, index: int, target: Target, error: FlashError, bytes_len: int = 0) -> TargetOutcome:
        outcome = TargetOutcome(index=index, target=target, error=error, bytes_len=bytes_len)
        self.outcomes.append(outcome)
        return outcome

    @property
    def failure_count(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.ok)

    @property
    def ok(self) -> bool:
        return self.failure_count == 0

    def successes(self) -> List[TargetOutcome]:
        return [outcome for outcome in self.outcomes if outcome.ok]

    def failures(self) -> List[TargetOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.ok]

    def to_summary(self) -> str:
        """
        Generate the final human-readable summary.

        All-clear when nothing failed, successes then failures for a partial
        run, a blanket failure line when every target failed.
        """
        failed = self.failures()
        if not failed:
            return (
                "Every firmware successfully updated.\n"
                "SerialBoot finished without any errors."
            )

        lines = []
        succeeded = self.successes()
        if succeeded:
            lines.append(f"{len(failed)} ERRORs detected!")
            lines.append(
                f"Only in the following {len(succeeded)} cases SerialBoot updated the firmware:"
            )
            for outcome in succeeded:
                lines.append(f" * {outcome.describe()}")
            lines.append(
                f"In the following {len(failed)} cases SerialBoot could not update the firmware:"
            )
        else:
            lines.append("ERRORs detected!")
            lines.append("Every firmware update by SerialBoot failed:")

        for outcome in failed:
            lines.append(f" * ERROR in Flash {outcome.index}: {outcome.reason()}")
        lines.append("Please check the errors before trying to update again.")
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "failure_count": self.failure_count,
            "outcomes": [
                {
                    "index": outcome.index,
                    "target_id": outcome.target.target_id,
                    "image_path": outcome.target.image_path,
                    "error": outcome.error.value,
                    "bytes_len": outcome.bytes_len,
                }
                for outcome in self.outcomes
            ],
        }
