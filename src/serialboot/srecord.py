"""
Motorola S-record image source.

Validates, opens and lazily parses firmware images in S-record text format.

Record layout:
    S | type | count (1) | address (2/3/4) | data (...) | checksum (1)

count covers address, data and checksum bytes. The checksum is the ones'
complement of the low byte of the sum of count, address and data bytes.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Iterator, Optional

logger = logging.getLogger(__name__)

# Address width in bytes per record type
ADDRESS_BYTES = {
    "0": 2,
    "1": 2,
    "2": 3,
    "3": 4,
    "5": 2,
    "6": 3,
    "7": 4,
    "8": 3,
    "9": 2,
}
DATA_RECORDS = ("1", "2", "3")


class ImageError(Exception):
    """Raised when an image file cannot be read or parsed."""


@dataclass(frozen=True)
class Srecord:
    """One decoded S-record line."""
    kind: str
    address: int
    data: bytes

    @property
    def is_data(self) -> bool:
        return self.kind in DATA_RECORDS


@dataclass(frozen=True)
class DataLine:
    address: int
    data: bytes

    @property
    def length(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class ImageSummary:
    """
    Memory footprint of an image.

    Attributes:
        address_low: Lowest programmed address
        address_high: One past the highest programmed address
        total_bytes: Number of data bytes across all records
    """
    address_low: int
    address_high: int
    total_bytes: int

    @property
    def span(self) -> int:
        return self.address_high - self.address_low


def checksum(body: bytes) -> int:
    """Checksum over count, address and data bytes."""
    return ~sum(body) & 0xFF


def parse_record(line: str) -> Srecord:
    """
    Decode a single S-record line.

    Raises:
        ImageError: If the line is malformed or the checksum does not match
    """
    line = line.strip()
    if len(line) < 4 or line[0] not in "Ss" or line[1] not in ADDRESS_BYTES:
        raise ImageError(f"Malformed or unsupported S-record header: {line[:12]!r}")

    kind = line[1]
    try:
        raw = bytes.fromhex(line[2:])
    except ValueError:
        raise ImageError(f"Non-hex characters in S-record: {line[:12]!r}")

    count = raw[0]
    if count != len(raw) - 1:
        raise ImageError(
            f"S{kind} record count {count} does not match {len(raw) - 1} bytes"
        )

    addr_len = ADDRESS_BYTES[kind]
    if count < addr_len + 1:
        raise ImageError(f"S{kind} record too short for a {addr_len}-byte address")

    if checksum(raw[:-1]) != raw[-1]:
        raise ImageError(
            f"S{kind} record checksum mismatch "
            f"(expected 0x{checksum(raw[:-1]):02X}, got 0x{raw[-1]:02X})"
        )

    address = int.from_bytes(raw[1:1 + addr_len], "big")
    data = raw[1 + addr_len:-1]
    return Srecord(kind, address, data)


def format_record(kind: str, address: int, data: bytes = b"") -> str:
    """Encode a record as an S-record text line (without newline)."""
    addr_len = ADDRESS_BYTES[kind]
    body = bytes([addr_len + len(data) + 1]) + address.to_bytes(addr_len, "big") + data
    return f"S{kind}{body.hex().upper()}{checksum(body):02X}"


class SrecordFile:
    """
    Open S-record image.

    ``parse()`` scans the whole file for its summary and rewinds;
    ``iter_data_lines()`` is a forward-only pass over the data records.
    """

    def __init__(self, path: str, handle: IO[str]):
        self.path = path
        self._handle: Optional[IO[str]] = handle

    def _records(self) -> Iterator[Srecord]:
        if self._handle is None:
            raise ImageError(f"{self.path} is closed")
        for lineno, line in enumerate(self._handle, 1):
            if not line.strip():
                continue
            try:
                yield parse_record(line)
            except ImageError as e:
                raise ImageError(f"{self.path}:{lineno}: {e}") from None

    def parse(self) -> ImageSummary:
        """
        Compute the address range and byte total of the image.

        Raises:
            ImageError: If a record is invalid or there is no data
        """
        low: Optional[int] = None
        high = 0
        total = 0
        for record in self._records():
            if not record.is_data or not record.data:
                continue
            end = record.address + len(record.data)
            low = record.address if low is None else min(low, record.address)
            high = max(high, end)
            total += len(record.data)
        self._handle.seek(0)

        if low is None:
            raise ImageError(f"{self.path} contains no data records")
        return ImageSummary(address_low=low, address_high=high, total_bytes=total)

    def iter_data_lines(self) -> Iterator[DataLine]:
        """Yield data records in file order. Not restartable."""
        for record in self._records():
            if record.is_data and record.data:
                yield DataLine(record.address, record.data)

    def close(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None


class SrecordImageSource:
    """Factory for S-record images."""

    def is_valid(self, path: str) -> bool:
        """
        Check that a file is a readable, well-formed S-record image.

        Every non-blank line must decode with a valid checksum, and at least
        one data record must be present.
        """
        file_path = Path(path)
        if not file_path.is_file():
            logger.debug(f"{path}: not a file")
            return False
        has_data = False
        try:
            with file_path.open("r", encoding="ascii") as handle:
                for line in handle:
                    if not line.strip():
                        continue
                    if parse_record(line).is_data:
                        has_data = True
        except (OSError, UnicodeDecodeError, ImageError) as e:
            logger.debug(f"{path}: {e}")
            return False
        return has_data

    def open(self, path: str) -> SrecordFile:
        """
        Raises:
            ImageError: If the file cannot be opened
        """
        try:
            handle = open(path, "r", encoding="ascii")
        except OSError as e:
            raise ImageError(f"Cannot open {path}: {e}") from e
        return SrecordFile(path, handle)


def write_srecord_file(path: str, data: bytes, base_address: int, line_size: int = 16) -> None:
    """
    Write ``data`` as an S3 image starting at ``base_address``.

    Used to produce test and sample images.
    """
    lines = [format_record("0", 0, Path(path).name.encode("ascii", "replace")[:20])]
    for offset in range(0, len(data), line_size):
        lines.append(
            format_record("3", base_address + offset, data[offset:offset + line_size])
        )
    lines.append(format_record("7", base_address))
    Path(path).write_text("\n".join(lines) + "\n", encoding="ascii")

