"""End-to-end tests for the serialboot command."""

import importlib
import logging
from unittest.mock import MagicMock

import pytest
from typer.testing import CliRunner

from serialboot import cli
from serialboot.srecord import write_srecord_file

from test_orchestrator import FakeDevice, FakeLink

runner = CliRunner()


@pytest.fixture
def stack(monkeypatch):
    """Replace the serial stack with fakes and record how it was built."""
    link = FakeLink()
    device = FakeDevice()
    framer_factory = MagicMock(return_value=link)
    monkeypatch.setattr(cli, "Framer", framer_factory)
    monkeypatch.setattr(cli, "XcpMaster", lambda framer: device)
    monkeypatch.setattr("serialboot.core.orchestrator.time.sleep", lambda seconds: None)
    return framer_factory, link, device


@pytest.fixture
def image(tmp_path):
    path = tmp_path / "app.srec"
    write_srecord_file(str(path), bytes(range(48)), 0x08000000)
    return str(path)


def test_successful_run(stack, image):
    framer_factory, link, device = stack
    result = runner.invoke(cli.app, ["-d/dev/ttyUSB0", "-b57600", "-RTS1", image])

    assert result.exit_code == 0, result.output
    framer_factory.assert_called_once_with("/dev/ttyUSB0", baudrate=57600, rts=1)
    assert "without any errors" in result.output
    assert ("program_reset",) in device.calls
    assert link.close_calls >= 1


def test_partial_failure_still_exits_zero(stack, image):
    _, _, device = stack
    device.unreachable.add(0x1A)

    result = runner.invoke(cli.app, ["-d/dev/ttyUSB0", "-b57600", image, "-T0x1A", image])

    assert result.exit_code == 0, result.output
    assert "ERROR in Flash 2" in result.output


def test_too_few_arguments(stack):
    framer_factory, _, _ = stack
    result = runner.invoke(cli.app, ["-d/dev/ttyUSB0"])

    assert result.exit_code == 1
    assert "Usage: serialboot" in result.output
    framer_factory.assert_not_called()


def test_invalid_target_id(stack, image):
    framer_factory, _, _ = stack
    result = runner.invoke(cli.app, ["-d/dev/ttyUSB0", "-b57600", "-T0", image])

    assert result.exit_code == 1
    assert "Target ID invalid" in result.output
    framer_factory.assert_not_called()


def test_restart_failure_exits_nonzero(stack, image):
    _, link, device = stack
    device.reset_ok = False

    result = runner.invoke(cli.app, ["-d/dev/ttyUSB0", "-b57600", image])

    assert result.exit_code == 1
    assert "Run aborted" in result.output
    assert link.close_calls == 1


def test_cancel_while_waiting_for_device(stack, image):
    _, link, _ = stack
    link.open = MagicMock(side_effect=KeyboardInterrupt)

    result = runner.invoke(cli.app, ["-d/dev/ttyUSB0", "-b57600", image])

    assert result.exit_code == 1
    assert "cancelled" in result.output
    assert link.close_calls == 1


def test_every_target_failed_report(stack, tmp_path, monkeypatch):
    _, _, device = stack
    monkeypatch.chdir(tmp_path)

    result = runner.invoke(cli.app, ["-d/dev/ttyUSB0", "-b57600", "gone.srec"])

    assert result.exit_code == 0, result.output
    assert "Every firmware update by SerialBoot failed" in result.output
    assert "The file gone.srec couldn't be read!" in result.output
    assert "valid S-record image" in result.output
    assert ("program_reset",) in device.calls


def test_resolve_log_level():
    assert cli.resolve_log_level("debug") == logging.DEBUG
    assert cli.resolve_log_level(" Warning ") == logging.WARNING
    assert cli.resolve_log_level("") == logging.INFO
    assert cli.resolve_log_level("verbose") is None


def test_unknown_log_level_falls_back(monkeypatch, image):
    monkeypatch.setenv("SERIALBOOT_LOG_LEVEL", "verbose")
    reloaded = importlib.reload(cli)

    link = FakeLink()
    monkeypatch.setattr(reloaded, "Framer", MagicMock(return_value=link))
    monkeypatch.setattr(reloaded, "XcpMaster", lambda framer: FakeDevice())

    result = runner.invoke(reloaded.app, ["-d/dev/ttyUSB0", "-b57600", image])

    assert reloaded._log_level is None
    assert result.exit_code == 0, result.output
    assert "without any errors" in result.output
