"""Tests for command line parsing."""

import logging

import pytest

from serialboot.core.config import DEFAULT_BAUDRATE, Target
from serialboot.core.parsing import (
    CommandLineError,
    parse_baudrate,
    parse_command_line,
    parse_rts,
    parse_target_id,
)


class TestParseTargetId:
    """Test target ID parsing from various input formats."""

    def test_all_bases_give_same_id(self):
        """Hex, octal, binary and decimal spellings of 26 agree."""
        for text in ("0x1A", "0o32", "0b11010", "0d26", "26"):
            assert parse_target_id(text) == 26

    def test_prefix_is_case_insensitive(self):
        assert parse_target_id("0X1a") == 26
        assert parse_target_id("0B11") == 3
        assert parse_target_id("0O17") == 15
        assert parse_target_id("0D9") == 9

    def test_max_id(self):
        assert parse_target_id("0xFFFFFFFF") == 0xFFFFFFFF

    def test_zero_rejected(self):
        """The lead device is addressed by omitting -T."""
        with pytest.raises(CommandLineError, match="Target ID invalid"):
            parse_target_id("0")
        with pytest.raises(CommandLineError, match="Target ID invalid"):
            parse_target_id("0x0")

    def test_garbage_rejected(self):
        for text in ("", "abc", "0x", "0z12", "0b102", "-5", "12abc"):
            with pytest.raises(CommandLineError):
                parse_target_id(text)

    def test_too_large_rejected(self):
        with pytest.raises(CommandLineError, match="32 bits"):
            parse_target_id("0x100000000")

    def test_error_is_valueerror(self):
        """CommandLineError stays catchable as ValueError."""
        with pytest.raises(ValueError):
            parse_target_id("nope")


class TestParseBaudrate:
    def test_supported_rates(self):
        for rate in (9600, 19200, 38400, 57600, 115200):
            assert parse_baudrate(str(rate)) == rate

    def test_unsupported_falls_back(self, caplog):
        with caplog.at_level(logging.WARNING):
            assert parse_baudrate("12345") == DEFAULT_BAUDRATE
        assert "12345" in caplog.text

    def test_non_numeric_falls_back(self):
        assert parse_baudrate("fast") == DEFAULT_BAUDRATE
        assert parse_baudrate("") == DEFAULT_BAUDRATE


class TestParseRts:
    def test_values(self):
        assert parse_rts("") == 0
        assert parse_rts("0") == 0
        assert parse_rts("1") == 1

    def test_invalid(self):
        with pytest.raises(CommandLineError, match="RTS"):
            parse_rts("2")


class TestParseCommandLine:
    """Test the full token walk."""

    def test_minimal_lead_target(self):
        config = parse_command_line(["-d/dev/ttyUSB0", "-b57600", "firmware.srec"])
        assert config.device == "/dev/ttyUSB0"
        assert config.baudrate == 57600
        assert config.rts == 0
        assert config.targets == (Target(0, "firmware.srec"),)

    def test_mixed_targets_keep_order(self):
        config = parse_command_line(
            ["-d/dev/ttyUSB0", "-b57600", "firm1.srec", "-T0x3", "firm2.srec"]
        )
        assert config.targets == (Target(0, "firm1.srec"), Target(3, "firm2.srec"))

    def test_rts_anywhere(self):
        config = parse_command_line(["-RTS1", "-d/dev/ttyS1", "-b9600", "-T7", "a.srec"])
        assert config.rts == 1
        assert config.targets == (Target(7, "a.srec"),)

        config = parse_command_line(["-d/dev/ttyS1", "-b9600", "a.srec", "-RTS"])
        assert config.rts == 0

    def test_baud_fallback(self):
        config = parse_command_line(["-d/dev/ttyS1", "-b1234", "a.srec"])
        assert config.baudrate == DEFAULT_BAUDRATE

    def test_five_targets_allowed(self):
        args = ["-d/dev/ttyS1", "-b9600"]
        for i in range(1, 6):
            args += [f"-T{i}", f"f{i}.srec"]
        config = parse_command_line(args)
        assert [t.target_id for t in config.targets] == [1, 2, 3, 4, 5]

    def test_too_few_tokens(self):
        with pytest.raises(CommandLineError):
            parse_command_line(["-d/dev/ttyS1", "-b9600"])

    def test_too_many_tokens(self):
        args = ["-d/dev/ttyS1", "-b9600", "-RTS1"]
        for i in range(1, 6):
            args += [f"-T{i}", f"f{i}.srec"]
        args.append("extra.srec")
        with pytest.raises(CommandLineError):
            parse_command_line(args)

    def test_sixth_target_rejected(self):
        args = ["-d/dev/ttyS1", "-b9600"] + [f"f{i}.srec" for i in range(6)]
        with pytest.raises(CommandLineError, match="Too many"):
            parse_command_line(args)

    def test_target_before_device_and_baud(self):
        with pytest.raises(CommandLineError, match="-T is only allowed"):
            parse_command_line(["-T3", "a.srec", "-d/dev/ttyS1", "-b9600"])

    def test_zero_target_id(self):
        with pytest.raises(CommandLineError, match="Target ID invalid"):
            parse_command_line(["-d/dev/ttyS1", "-b9600", "-T0", "a.srec"])

    def test_trailing_target_without_file(self):
        with pytest.raises(CommandLineError, match="must be followed by a file"):
            parse_command_line(["-d/dev/ttyS1", "-b9600", "a.srec", "-T3"])

    def test_two_ids_in_a_row(self):
        with pytest.raises(CommandLineError):
            parse_command_line(["-d/dev/ttyS1", "-b9600", "-T3", "-T4", "a.srec"])

    def test_missing_device(self):
        with pytest.raises(CommandLineError, match="missing"):
            parse_command_line(["-b9600", "a.srec", "b.srec"])

    def test_missing_file(self):
        with pytest.raises(CommandLineError, match="missing"):
            parse_command_line(["-d/dev/ttyS1", "-b9600", "-RTS1"])

    def test_unknown_option(self):
        with pytest.raises(CommandLineError, match="Unrecognized"):
            parse_command_line(["-d/dev/ttyS1", "-b9600", "-x", "a.srec"])

    def test_duplicate_device(self):
        with pytest.raises(CommandLineError, match="more than once"):
            parse_command_line(["-d/dev/ttyS1", "-d/dev/ttyS2", "-b9600", "a.srec"])

    def test_empty_device(self):
        with pytest.raises(CommandLineError):
            parse_command_line(["-d", "-b9600", "a.srec"])

    def test_bad_rts(self):
        with pytest.raises(CommandLineError, match="RTS"):
            parse_command_line(["-d/dev/ttyS1", "-b9600", "-RTS5", "a.srec"])
