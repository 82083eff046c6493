"""
XCP Master

Implements the boot monitor command set on top of the framing layer.

Every command is a single datagram; every response starts with a packet
identifier (0xFF positive, 0xFE error).

Command sequence for one firmware update:
1. CONNECT (with target ID)       -> comm mode, max CTO
2. PROGRAM_START                  -> max CTO for programming
3. SET_MTA + PROGRAM_CLEAR        -> erase address range
4. SET_MTA + PROGRAM_MAX/PROGRAM  -> program data, repeated per data line
5. PROGRAM (length 0)             -> end programming session
6. DISCONNECT or PROGRAM_RESET
"""

import logging
import struct
from dataclasses import dataclass
from typing import Optional

from .framing import Framer, FramerError, FrameTimeout

logger = logging.getLogger(__name__)

# Commands
CMD_CONNECT = 0xFF
CMD_DISCONNECT = 0xFE
CMD_SET_MTA = 0xF6
CMD_PROGRAM_START = 0xD2
CMD_PROGRAM_CLEAR = 0xD1
CMD_PROGRAM = 0xD0
CMD_PROGRAM_RESET = 0xCF
CMD_PROGRAM_MAX = 0xC9

# Packet identifiers
PID_RES = 0xFF
PID_ERR = 0xFE

CONNECT_MODE_NORMAL = 0x00
COMM_MODE_MOTOROLA = 0x01

# Response timeouts (ms)
TIMEOUT_T1 = 1000   # generic command
TIMEOUT_T3 = 2000   # program start
TIMEOUT_T4 = 10000  # memory erase
TIMEOUT_T5 = 1000   # program / program reset
TIMEOUT_T6 = 50     # connect

DEFAULT_MAX_CTO = 8


class XcpError(Exception):
    """Malformed or negative response from the boot monitor."""


@dataclass
class SlaveInfo:
    """Parameters announced by the connected boot monitor."""
    resource: int = 0
    comm_mode: int = 0
    max_cto: int = DEFAULT_MAX_CTO
    max_dto: int = 0
    max_cto_pgm: int = DEFAULT_MAX_CTO

    @property
    def motorola(self) -> bool:
        return bool(self.comm_mode & COMM_MODE_MOTOROLA)


class XcpMaster:
    """
    Boot monitor command set over a Framer.

    Each public operation returns True on a positive response and False on
    timeout, I/O error or negative response. Retrying is the caller's job.
    """

    def __init__(self, framer: Framer):
        self.framer = framer
        self.slave = SlaveInfo()

    def _pack_long(self, value: int) -> bytes:
        fmt = ">I" if self.slave.motorola else "<I"
        return struct.pack(fmt, value & 0xFFFFFFFF)

    def _command(self, packet: bytes, timeout_ms: int) -> bytes:
        """
        Run one exchange and check the response PID.

        Raises:
            FramerError: On timeout or I/O error
            XcpError: On empty or negative response
        """
        response = self.framer.exchange(packet, timeout_ms)
        if not response:
            raise XcpError(f"Empty response to command 0x{packet[0]:02X}")
        if response[0] != PID_RES:
            raise XcpError(
                f"Command 0x{packet[0]:02X} rejected (response {response.hex()})"
            )
        return response

    def _run(self, name: str, packet: bytes, timeout_ms: int) -> Optional[bytes]:
        try:
            return self._command(packet, timeout_ms)
        except (FramerError, XcpError) as e:
            logger.debug(f"{name} failed: {e}")
            return None

    def connect(self, target_id: int) -> bool:
        """
        Connect to a boot monitor.

        Packet: [0xFF | mode | target ID (4 bytes, big-endian)]
        Response: [0xFF | resource | comm mode | max CTO | max DTO (2) | ...]
        """
        packet = bytes([CMD_CONNECT, CONNECT_MODE_NORMAL]) + struct.pack(">I", target_id)
        response = self._run("CONNECT", packet, TIMEOUT_T6)
        if response is None:
            return False
        if len(response) < 8:
            logger.debug(f"CONNECT: short response {response.hex()}")
            return False

        comm_mode = response[2]
        dto_fmt = ">H" if comm_mode & COMM_MODE_MOTOROLA else "<H"
        self.slave = SlaveInfo(
            resource=response[1],
            comm_mode=comm_mode,
            max_cto=response[3],
            max_dto=struct.unpack(dto_fmt, response[4:6])[0],
            max_cto_pgm=response[3],
        )
        logger.debug(
            f"Connected to device 0x{target_id:08X} "
            f"(max CTO={self.slave.max_cto}, motorola={self.slave.motorola})"
        )
        return True

    def disconnect(self) -> bool:
        return self._run("DISCONNECT", bytes([CMD_DISCONNECT]), TIMEOUT_T1) is not None

    def program_reset(self) -> bool:
        """
        Start the user programs.

        The device may reset before answering, so a missing response counts
        as success. Only an explicit negative response is a failure.
        """
        try:
            self._command(bytes([CMD_PROGRAM_RESET]), TIMEOUT_T5)
        except FrameTimeout:
            logger.debug("PROGRAM_RESET: no response, device is resetting")
        except (FramerError, XcpError) as e:
            logger.debug(f"PROGRAM_RESET failed: {e}")
            return False
        return True

    def start_programming_session(self) -> bool:
        """
        Response: [0xFF | reserved | comm mode | max CTO PGM | max BS | min ST | queue]
        """
        response = self._run("PROGRAM_START", bytes([CMD_PROGRAM_START]), TIMEOUT_T3)
        if response is None:
            return False
        if len(response) >= 4 and response[3] > 2:
            self.slave.max_cto_pgm = response[3]
        return True

    def _set_mta(self, address: int) -> bool:
        packet = bytes([CMD_SET_MTA, 0x00, 0x00, 0x00]) + self._pack_long(address)
        return self._run("SET_MTA", packet, TIMEOUT_T1) is not None

    def clear_memory(self, address: int, length: int) -> bool:
        if not self._set_mta(address):
            return False
        packet = bytes([CMD_PROGRAM_CLEAR, 0x00, 0x00, 0x00]) + self._pack_long(length)
        return self._run("PROGRAM_CLEAR", packet, TIMEOUT_T4) is not None

    def program_data(self, address: int, data: bytes) -> bool:
        """
        Program a block of data starting at ``address``.

        Full chunks go out as PROGRAM_MAX (CTO - 1 data bytes), the tail as
        PROGRAM with an explicit length byte.
        """
        if not self._set_mta(address):
            return False

        max_prog = max(self.slave.max_cto_pgm - 1, 1)
        offset = 0
        while offset < len(data):
            remaining = len(data) - offset
            if remaining >= max_prog:
                chunk = data[offset:offset + max_prog]
                packet = bytes([CMD_PROGRAM_MAX]) + chunk
                name = "PROGRAM_MAX"
            else:
                chunk = data[offset:]
                packet = bytes([CMD_PROGRAM, len(chunk)]) + chunk
                name = "PROGRAM"
            if self._run(name, packet, TIMEOUT_T5) is None:
                logger.debug(f"Programming stopped at 0x{address + offset:08X}")
                return False
            offset += len(chunk)
        return True

    def stop_programming_session(self) -> bool:
        """A zero-length PROGRAM command ends the session."""
        return self._run("PROGRAM", bytes([CMD_PROGRAM, 0x00]), TIMEOUT_T5) is not None
