"""
Centralized command line parsing.

Option syntax is order-sensitive (a ``-T<id>`` binds to the file that follows
it), so the token list is walked here instead of by the CLI framework.

    serialboot -d<device> -b<baudrate> [-RTS<0|1>] (<file> | -T<id> <file>)+
"""

import logging
from typing import List, Optional, Sequence

from .config import (
    DEFAULT_BAUDRATE,
    LEAD_DEVICE_ID,
    MAX_ARGC,
    MAX_TARGET_ID,
    MAX_TARGETS,
    MIN_ARGC,
    SUPPORTED_BAUDRATES,
    RunConfig,
    Target,
)

logger = logging.getLogger(__name__)

_ID_BASES = {"x": 16, "o": 8, "b": 2, "d": 10}


class CommandLineError(ValueError):
    """Raised when the command line cannot be turned into a RunConfig."""


def parse_target_id(value: str) -> int:
    """
    Parse a target ID.

    Accepts:
        - Decimal: "26"
        - Prefixed: "0x1A", "0o32", "0b11010", "0d26" (prefix letter any case)

    Returns:
        Target ID (never 0; the lead device is implied by omitting -T)

    Raises:
        CommandLineError: If value cannot be parsed or is 0
    """
    text = value.strip()
    base = 10
    digits = text
    if len(text) >= 2 and text[0] == "0" and not text[1].isdigit():
        prefix = text[1].lower()
        if prefix not in _ID_BASES:
            raise CommandLineError(f"Could not interpret target ID '{value}'")
        base = _ID_BASES[prefix]
        digits = text[2:]

    try:
        target_id = int(digits, base)
    except ValueError:
        raise CommandLineError(f"Could not interpret target ID '{value}'")

    if target_id < 0:
        raise CommandLineError(f"Could not interpret target ID '{value}'")
    if target_id == LEAD_DEVICE_ID:
        raise CommandLineError(f"Target ID invalid (0x{target_id:08X})")
    if target_id > MAX_TARGET_ID:
        raise CommandLineError(f"Target ID '{value}' does not fit in 32 bits")
    return target_id


def parse_baudrate(value: str) -> int:
    """
    Parse a baud rate, falling back to 9600 for unsupported values.
    """
    try:
        baudrate = int(value.strip())
    except ValueError:
        baudrate = None
    if baudrate not in SUPPORTED_BAUDRATES:
        logger.warning(
            f"Unsupported baud rate '{value}', using {DEFAULT_BAUDRATE} bits/s"
        )
        return DEFAULT_BAUDRATE
    return baudrate


def parse_rts(value: str) -> int:
    """
    Parse the RTS idle level. An empty value means 0.

    Raises:
        CommandLineError: For anything other than "", "0" or "1"
    """
    if value == "":
        return 0
    if value in ("0", "1"):
        return int(value)
    raise CommandLineError(f"Not allowed value for RTS register '{value}'. RTS=[0,1]")


def parse_command_line(args: Sequence[str]) -> RunConfig:
    """
    Build a RunConfig from command line tokens.

    Args:
        args: Tokens after the program name

    Raises:
        CommandLineError: On any syntax or value error
    """
    argc = len(args) + 1
    if argc < MIN_ARGC or argc > MAX_ARGC:
        raise CommandLineError(
            f"Expected between {MIN_ARGC - 1} and {MAX_ARGC - 1} arguments, got {len(args)}"
        )

    device: Optional[str] = None
    baudrate: Optional[int] = None
    rts: Optional[int] = None
    pending_id: Optional[int] = None
    targets: List[Target] = []

    for arg in args:
        if arg.startswith("-RTS"):
            if rts is not None:
                raise CommandLineError("-RTS given more than once")
            if pending_id is not None:
                raise CommandLineError(f"-T0x{pending_id:X} must be followed by a file")
            rts = parse_rts(arg[4:])
        elif arg.startswith("-d"):
            if device is not None:
                raise CommandLineError("-d given more than once")
            if pending_id is not None or targets:
                raise CommandLineError("-d must come before any target")
            device = arg[2:]
            if not device:
                raise CommandLineError("-d requires a device name")
        elif arg.startswith("-b"):
            if baudrate is not None:
                raise CommandLineError("-b given more than once")
            if pending_id is not None or targets:
                raise CommandLineError("-b must come before any target")
            baudrate = parse_baudrate(arg[2:])
        elif arg.startswith("-T"):
            if device is None or baudrate is None:
                raise CommandLineError("-T is only allowed after -d and -b")
            if pending_id is not None:
                raise CommandLineError(f"-T0x{pending_id:X} must be followed by a file")
            if len(targets) >= MAX_TARGETS:
                raise CommandLineError(f"Too many programs to flash (max {MAX_TARGETS})")
            pending_id = parse_target_id(arg[2:])
        elif arg.startswith("-"):
            raise CommandLineError(f"Unrecognized option '{arg}'")
        else:
            if len(targets) >= MAX_TARGETS:
                raise CommandLineError(f"Too many programs to flash (max {MAX_TARGETS})")
            target_id = LEAD_DEVICE_ID if pending_id is None else pending_id
            targets.append(Target(target_id=target_id, image_path=arg))
            pending_id = None

    if pending_id is not None:
        raise CommandLineError(f"-T0x{pending_id:X} must be followed by a file")
    if device is None or baudrate is None or not targets:
        raise CommandLineError("-d, -b or S-record file missing")

    return RunConfig(
        device=device,
        baudrate=baudrate,
        rts=rts if rts is not None else 0,
        targets=tuple(targets),
    )
