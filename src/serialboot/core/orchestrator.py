"""
Batch flashing workflow.

Drives one run through its states:

    LinkUp -> LeadFlashMode -> PerTarget* -> RestartAll -> Report

Per-target failures are recorded in the RunReport and never leave the
PerTarget loop. Failures that leave nothing to program (lead device gone,
final reset impossible) raise RunAborted.
"""

import logging
import time
from typing import Callable, Optional, Tuple

from serialboot.protocol.base import DeviceProtocol
from serialboot.protocol.framing import Framer, FramerError
from serialboot.srecord import ImageError, ImageSummary, SrecordFile, SrecordImageSource

from .config import (
    CONNECT_RETRY_LIMIT,
    LEAD_DEVICE_ID,
    LINK_NOTICE_AFTER,
    RETRY_INTERVAL_S,
    RunConfig,
    Target,
)
from .messages import COMMON_WARNINGS
from .results import FlashError, RunReport

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int, int], None]


class RunAborted(Exception):
    """
    Fatal failure that ends the whole run.

    Attributes:
        report: Outcomes recorded before the abort, if any. Not printed.
    """

    def __init__(self, message: str, report: Optional[RunReport] = None):
        super().__init__(message)
        self.report = report


def connect_with_retry(
    device: DeviceProtocol,
    target_id: int,
    attempts: int = CONNECT_RETRY_LIMIT,
    interval: float = RETRY_INTERVAL_S,
    sleep: Callable[[float], None] = time.sleep,
) -> bool:
    """
    Bounded connect: up to ``attempts`` tries, ``interval`` seconds apart.

    Returns:
        True once the device answers, False when the budget is spent
    """
    for attempt in range(attempts):
        if device.connect(target_id):
            if attempt > 0:
                logger.info(f"Connected to device 0x{target_id:08X} after {attempt + 1} attempts")
            return True
        if attempt == 0:
            logger.info(f"Try to connect to device 0x{target_id:08X}...")
        if attempt < attempts - 1:
            sleep(interval)
    logger.error("TIMEOUT: No connection possible.")
    return False


class FlashOrchestrator:
    """
    Runs a batch of (target, image) pairs over one shared serial link.

    Example:
        framer = Framer(config.device, config.baudrate, config.rts)
        orchestrator = FlashOrchestrator(config, framer, XcpMaster(framer))
        report = orchestrator.run()
    """

    def __init__(
        self,
        config: RunConfig,
        framer: Framer,
        device: DeviceProtocol,
        images: Optional[SrecordImageSource] = None,
        progress_cb: Optional[ProgressCallback] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        """
        Args:
            config: Run configuration
            framer: Channel owner; opened and closed by the orchestrator
            device: Boot monitor command set bound to ``framer``
            images: Image source (S-record by default)
            progress_cb: Optional callback(flash_index, bytes_sent, total_bytes)
            sleep: Sleep function used between retries
        """
        self.config = config
        self.framer = framer
        self.device = device
        self.images = images or SrecordImageSource()
        self.progress_cb = progress_cb
        self._sleep = sleep or time.sleep

    def run(self) -> RunReport:
        """
        Execute the whole run.

        Returns:
            RunReport with one outcome per target

        Raises:
            RunAborted: If the lead device cannot be put into flashing mode
                or the final restart fails
        """
        self.link_up()
        self.enter_flash_mode()

        report = RunReport()
        for index, target in enumerate(self.config.targets, 1):
            error, bytes_len = self.flash_target(index, target)
            report.record(index, target, error, bytes_len)

        self.restart_all(report)
        return report

    def _connect(self, target_id: int) -> bool:
        return connect_with_retry(self.device, target_id, sleep=self._sleep)

    def link_up(self, notice_after: int = LINK_NOTICE_AFTER) -> int:
        """
        Open the channel and wait for the lead device. Never gives up.

        The tool may be started before the device is powered, so this keeps
        polling every RETRY_INTERVAL_S; after ``notice_after`` attempts a
        single notice tells the user what is missing.

        Returns:
            Number of failed attempts before the lead device answered
        """
        attempt = 0
        while True:
            try:
                self.framer.open()
            except FramerError as e:
                logger.debug(f"Link attempt {attempt + 1}: {e}")
                if attempt == notice_after:
                    logger.warning(COMMON_WARNINGS["port_unavailable"].to_cli_string())
            else:
                if self.device.connect(LEAD_DEVICE_ID):
                    break
                if attempt == 0:
                    logger.info("Try to connect to device...")
                if attempt == notice_after:
                    logger.warning(COMMON_WARNINGS["lead_not_responding"].to_cli_string())
            self._sleep(RETRY_INTERVAL_S)
            attempt += 1

        if attempt > 0:
            logger.info("Main device connected")
        return attempt

    def enter_flash_mode(self) -> None:
        """
        Park the lead device in its boot monitor.

        Raises:
            RunAborted: If the lead device does not answer or disconnect fails
        """
        logger.info("Set main device on flashing mode")
        if not self._connect(LEAD_DEVICE_ID):
            raise RunAborted(
                f"Please connect main device to serial port {self.config.device}: no connection possible"
            )
        if not self.device.disconnect():
            raise RunAborted("Main device did not accept the disconnect")
        logger.info("Main device is now in flashing mode!")

    def _prepare_session(self, target: Target) -> Tuple[SrecordFile, ImageSummary]:
        """
        Validate, open and parse the target's image.

        Raises:
            ImageError: If any of the three steps fails (file is closed)
        """
        path = target.image_path
        logger.info(f'Checking formatting of S-record file "{path}"...')
        if not self.images.is_valid(path):
            raise ImageError(f'"{path}" is not a valid S-record file')

        logger.info(f'Opening S-record file "{path}"...')
        image = self.images.open(path)

        logger.info(f'Parsing S-record file "{path}"...')
        try:
            summary = image.parse()
        except (ImageError, OSError, ValueError):
            image.close()
            raise

        logger.info(f"-> Lowest memory address:  0x{summary.address_low:08x}")
        logger.info(f"-> Highest memory address: 0x{summary.address_high:08x}")
        logger.info(f"-> Total data bytes: {summary.total_bytes}")
        return image, summary

    def _program(self, index: int, image: SrecordFile, summary: ImageSummary) -> bool:
        """Start, erase, program and stop. Returns False at the first failed step."""
        logger.info("Initializing programming session...")
        if not self.device.start_programming_session():
            logger.error("Could not start the programming session")
            return False

        logger.info(
            f"Erasing {summary.total_bytes} bytes starting at 0x{summary.address_low:08x}..."
        )
        if not self.device.clear_memory(summary.address_low, summary.span):
            logger.error("Erasing memory failed")
            return False

        logger.info("Programming data. Please wait...")
        sent = 0
        try:
            for line in image.iter_data_lines():
                if not self.device.program_data(line.address, line.data):
                    logger.error(f"Programming failed at 0x{line.address:08x}")
                    return False
                sent += line.length
                if self.progress_cb:
                    self.progress_cb(index, sent, summary.total_bytes)
        except ImageError as e:
            logger.error(f"Image became unreadable while programming: {e}")
            return False

        logger.info("Finishing programming session...")
        if not self.device.stop_programming_session():
            logger.error("Could not finish the programming session")
            return False
        return True

    def _recover_link(self) -> None:
        """Fresh channel and lead device after a failed device-specific connect."""
        logger.info(f"Reopening serial port {self.config.device}")
        self.framer.close()
        self.link_up()

    def flash_target(self, index: int, target: Target) -> Tuple[FlashError, int]:
        """
        Run one target's turn.

        Returns:
            (error, bytes programmed); error is FlashError.NONE on success
        """
        logger.info(f"Flash {index}: Flashing {target.image_path} on {target.label()}")
        logger.info(f"Using {self.config.device} @ {self.config.baudrate} bits/s")

        try:
            image, summary = self._prepare_session(target)
        except (ImageError, OSError, ValueError) as e:
            logger.error(str(e))
            return FlashError.FILE, 0

        try:
            if not self._connect(target.target_id):
                error = FlashError.DEVICE
            elif not self._program(index, image, summary):
                self.device.disconnect()
                error = FlashError.UNKNOWN
            elif not self.device.disconnect():
                logger.error(f"Disconnect from {target.label()} failed")
                error = FlashError.UNKNOWN
            else:
                error = FlashError.NONE
        finally:
            image.close()
            logger.info(f'Closed S-record file "{target.image_path}"')

        if error is FlashError.DEVICE:
            # Image is closed before the unbounded LinkUp wait
            self._recover_link()
        if error is not FlashError.NONE:
            return error, 0

        logger.info("Firmware successfully updated!")
        return FlashError.NONE, summary.total_bytes

    def restart_all(self, report: Optional[RunReport] = None) -> None:
        """
        Reset every device into its user program and release the channel.

        Raises:
            RunAborted: If the lead device is unreachable or rejects the reset
        """
        logger.info(f"Resetting all using {self.config.device} @ {self.config.baudrate} bits/s")
        if not self._connect(LEAD_DEVICE_ID):
            raise RunAborted("Could not connect to the main device to restart", report)

        logger.info("Resetting...")
        if not self.device.program_reset():
            self.device.disconnect()
            raise RunAborted("Resetting the devices failed", report)

        self.framer.close()
        logger.info(f"Closed serial port {self.config.device}")
        logger.info("User programs have been started!")
