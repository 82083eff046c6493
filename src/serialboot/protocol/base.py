"""Device protocol interface."""

from __future__ import annotations

from typing import Protocol


class DeviceProtocol(Protocol):
    """One request/response exchange per call; no internal retries."""

    def connect(self, target_id: int) -> bool:
        """Connect to the boot monitor of ``target_id`` (0 = lead device)."""

    def disconnect(self) -> bool:
        """Leave the session; the device soft-resets into its boot monitor."""

    def program_reset(self) -> bool:
        """Reset all devices into their user programs."""

    def start_programming_session(self) -> bool:
        ...

    def clear_memory(self, address: int, length: int) -> bool:
        ...

    def program_data(self, address: int, data: bytes) -> bool:
        ...

    def stop_programming_session(self) -> bool:
        ...
