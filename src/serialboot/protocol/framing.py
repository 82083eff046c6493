"""
Serial Framing Layer

Turns a byte-oriented serial channel into a length-prefixed datagram exchange
with the boot monitor.

Frame format (both directions):
    [ length (1 byte) | payload (length bytes) ]

This module provides:
- Serial port configuration (8N1, no flow control, 100 ms read granularity)
- Reset request via the DTR/RTS control lines
- Deadline-bounded reception of a single datagram
- Reopen decision driven by the last error class
"""

import errno
import logging
import time
from enum import Enum
from typing import Callable, Optional

import serial

logger = logging.getLogger(__name__)

# Smallest read timeout the port is configured for. Added to every receive
# deadline so a read that is already blocking cannot cause a spurious timeout.
READ_GRANULARITY_MS = 100

MAX_DATAGRAM_LEN = 255

_WOULD_BLOCK_ERRNOS = {errno.EAGAIN, errno.EWOULDBLOCK}


class ChannelError(Enum):
    """Class of the last error seen on the channel."""
    NONE = "none"
    WOULD_BLOCK = "would_block"
    OTHER = "other"


class FramerError(Exception):
    """Base exception for framing layer errors"""
    pass


class FrameTimeout(FramerError):
    """Datagram did not arrive completely before the deadline"""
    pass


def classify_error(exc: BaseException) -> ChannelError:
    """
    Map a serial/OS exception to a channel error class.

    Write timeouts and EAGAIN are transient; anything else (unplugged
    adapter, lost permission, ...) means the handle is no longer trusted.
    """
    if isinstance(exc, serial.SerialTimeoutException):
        return ChannelError.WOULD_BLOCK
    code = getattr(exc, "errno", None)
    if code in _WOULD_BLOCK_ERRNOS:
        return ChannelError.WOULD_BLOCK
    return ChannelError.OTHER


def encode_frame(payload: bytes) -> bytes:
    """Prefix payload with its one-byte length."""
    if len(payload) > MAX_DATAGRAM_LEN:
        raise ValueError(
            f"Datagram too large: {len(payload)} bytes (max {MAX_DATAGRAM_LEN})"
        )
    return bytes([len(payload)]) + bytes(payload)


class Framer:
    """
    Length-prefixed datagram exchange over a serial port.

    The framer exclusively owns the port handle. At most one exchange is in
    flight at a time; every call blocks until completion, deadline or I/O error.

    Example:
        framer = Framer("/dev/ttyUSB0", baudrate=57600)
        framer.open()
        response = framer.exchange(b"\\xFF\\x00", timeout_ms=50)
        framer.close()
    """

    def __init__(
        self,
        port: str,
        baudrate: int = 9600,
        rts: int = 0,
        serial_factory: Callable[[], serial.Serial] = serial.Serial,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize framer.

        Args:
            port: Serial device (e.g., "/dev/ttyUSB0")
            baudrate: Serial baud rate
            rts: Idle level of the RTS line after opening (0 or 1)
            serial_factory: Creates an unopened port object
            clock: Monotonic clock in seconds, used for receive deadlines
        """
        self.port = port
        self.baudrate = baudrate
        self.rts = rts
        self._serial_factory = serial_factory
        self._clock = clock
        self.ser: Optional[serial.Serial] = None
        self.last_error = ChannelError.NONE
        self._last_response: Optional[bytes] = None

    @property
    def is_open(self) -> bool:
        return self.ser is not None and self.ser.is_open

    @property
    def last_response(self) -> Optional[bytes]:
        """Most recently received datagram, or None."""
        return self._last_response

    def open(self) -> None:
        """
        Open and configure the serial port.

        An already open port is reused unless the last error demands a
        fresh handle.

        Raises:
            FramerError: If the port cannot be opened or configured
        """
        if self.is_open:
            if self.last_error in (ChannelError.NONE, ChannelError.WOULD_BLOCK):
                logger.debug(f"Reusing open port {self.port}")
                return
            logger.debug(f"Reopening {self.port} after {self.last_error.value} error")
            self.close()

        self.last_error = ChannelError.NONE
        ser = self._serial_factory()
        ser.port = self.port
        ser.baudrate = self.baudrate
        ser.bytesize = serial.EIGHTBITS
        ser.parity = serial.PARITY_NONE
        ser.stopbits = serial.STOPBITS_ONE
        ser.timeout = READ_GRANULARITY_MS / 1000
        ser.xonxoff = False
        ser.rtscts = False
        ser.dsrdtr = False
        try:
            ser.open()
            # Request a reset of the device on the other end
            ser.dtr = True
            ser.rts = bool(self.rts)
            ser.reset_input_buffer()
        except (serial.SerialException, OSError) as e:
            self.last_error = classify_error(e)
            if ser.is_open:
                ser.close()
            raise FramerError(f"Cannot open port {self.port}: {e}") from e

        self.ser = ser
        logger.debug(f"Opened {self.port} at {self.baudrate} bps (RTS={self.rts})")

    def close(self) -> None:
        """Close serial port. Safe to call more than once."""
        if self.ser is not None:
            if self.ser.is_open:
                self.ser.close()
                logger.debug(f"Closed {self.port}")
            self.ser = None

    def send(self, payload: bytes) -> None:
        """
        Send one datagram.

        Raises:
            ValueError: If payload exceeds 255 bytes
            FramerError: On short write or I/O error (error class recorded)
        """
        if not self.is_open:
            raise FramerError("Serial port not open")

        frame = encode_frame(payload)
        try:
            written = self.ser.write(frame)
        except (serial.SerialException, OSError) as e:
            self.last_error = classify_error(e)
            raise FramerError(f"Write error: {e}") from e

        if written is not None and written != len(frame):
            self.last_error = ChannelError.WOULD_BLOCK
            raise FramerError(f"Incomplete write: sent {written}/{len(frame)} bytes")
        logger.debug(f">>> {frame.hex().upper()}")

    def _read_exact(self, length: int, deadline: float) -> bytes:
        buf = bytearray()
        while len(buf) < length:
            try:
                chunk = self.ser.read(length - len(buf))
            except (serial.SerialException, OSError) as e:
                self.last_error = classify_error(e)
                raise FramerError(f"Read error: {e}") from e
            if chunk:
                buf.extend(chunk)
            if len(buf) < length and self._clock() >= deadline:
                raise FrameTimeout(
                    f"Timeout: got {len(buf)}/{length} bytes before deadline"
                )
        return bytes(buf)

    def receive(self, timeout_ms: int) -> bytes:
        """
        Receive one datagram.

        The length byte and the payload share a single deadline of
        ``timeout_ms + READ_GRANULARITY_MS`` from the call, so a slow length
        byte leaves less time for the payload.

        Returns:
            The payload bytes (without the length prefix)

        Raises:
            FrameTimeout: If the datagram is incomplete at the deadline
            FramerError: On I/O error
        """
        if not self.is_open:
            raise FramerError("Serial port not open")

        deadline = self._clock() + (timeout_ms + READ_GRANULARITY_MS) / 1000
        length = self._read_exact(1, deadline)[0]
        payload = self._read_exact(length, deadline)

        logger.debug(f"<<< {length:02X}{payload.hex().upper()}")
        self._last_response = payload
        return payload

    def exchange(self, payload: bytes, timeout_ms: int) -> bytes:
        """Send a request datagram and wait for its response."""
        self.send(payload)
        return self.receive(timeout_ms)
