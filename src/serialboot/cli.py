"""
SerialBoot CLI

Flashes S-record images onto boot-monitor devices sharing one serial link.

    serialboot -d<device> -b<baudrate> [-RTS<0|1>] (<file> | -T<id> <file>)+
"""

import logging
import os
import sys
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table

from serialboot import __version__
from serialboot.protocol import Framer, XcpMaster
from serialboot.srecord import SrecordImageSource
from serialboot.core.config import RunConfig
from serialboot.core.parsing import CommandLineError, parse_command_line
from serialboot.core.results import RunReport
from serialboot.core.orchestrator import FlashOrchestrator, RunAborted
from serialboot.core.messages import outcome_to_warning

# Setup Rich console
console = Console()


def resolve_log_level(name: Optional[str]) -> Optional[int]:
    """Map a level name such as "debug" to its number; None if unknown."""
    if not name:
        return logging.INFO
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else None


# Setup logging
_requested_level = os.environ.get("SERIALBOOT_LOG_LEVEL", "INFO")
_log_level = resolve_log_level(_requested_level)
logging.basicConfig(
    level=_log_level if _log_level is not None else logging.INFO,
    format="%(message)s",
    handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
)
logger = logging.getLogger("serialboot")
if _log_level is None:
    logger.warning(f"Unknown SERIALBOOT_LOG_LEVEL '{_requested_level}', using INFO")

app = typer.Typer(
    help="SerialBoot - firmware updates over a shared serial link",
    add_completion=False,
)

USAGE_EXAMPLES = """\
Usage: serialboot -d<device> -b<baudrate> [-RTS<0|1>] (<s-record file> | -T<id> <s-record file>)+

Example 1:  serialboot -d/dev/ttyUSB0 -b57600 -T3 firmware.srec
Example 2:  serialboot -d/dev/ttyUSB0 -b57600 firm1.srec -T0x3 firm2.srec
Example 3:  serialboot -d/dev/ttyUSB0 -b57600 firmware.srec

  -> All examples open /dev/ttyUSB0 at 57600 bits/s. The devices are put into
     flashing mode first and restarted after the last image.
  -> Example 1 flashes 'firmware.srec' onto device 0x03.
  -> Example 2 flashes 'firm1.srec' onto the main device (0x00) and
     'firm2.srec' onto device 0x03.
  -> Example 3 flashes 'firmware.srec' onto the main device.
  -> Target IDs may be decimal or prefixed with 0x, 0o, 0b or 0d.
  -> At most 5 images per run. -d and -b are always required."""


def print_header(text: str) -> None:
    """Print fancy header."""
    console.print(Panel(text, expand=False, style="bold blue"))


def print_success(text: str) -> None:
    """Print success message."""
    console.print(f"✓ {text}", style="green")


def print_warning(text: str) -> None:
    """Print warning message."""
    console.print(f"⚠️  {text}", style="yellow")


def print_error(text: str) -> None:
    """Print error message."""
    console.print(f"❌ {text}", style="red")


def print_plan(config: RunConfig) -> None:
    """Show what is about to be flashed, in order."""
    console.print(
        f"Open device at [cyan]{config.device}[/cyan] @ {config.baudrate} bits/s "
        f"and RTS={config.rts}"
    )
    table = Table(title="Programming will start immediately in following order")
    table.add_column("#", style="dim")
    table.add_column("Device", style="cyan")
    table.add_column("S-record file", style="green")
    for index, target in enumerate(config.targets, 1):
        table.add_row(str(index), f"0x{target.target_id:08X}", target.image_path)
    console.print(table)


def print_report(report: RunReport) -> None:
    """
    Render the final summary from RunReport.to_summary().

    Success bullets are green, error bullets red, followed by one remediation
    hint per kind of failure.
    """
    console.print()
    for line in report.to_summary().splitlines():
        if line.startswith(" * ERROR"):
            print_error(line[3:])
        elif line.startswith(" * "):
            print_success(line[3:])
        elif report.ok:
            print_success(line)
        else:
            console.print(line, style="bold")

    hinted = set()
    for outcome in report.failures():
        warning = outcome_to_warning(outcome)
        if warning.code in hinted:
            continue
        hinted.add(warning.code)
        console.print(f"   → {warning.remediation}", style="cyan")


def run_flash(config: RunConfig) -> RunReport:
    """
    Build the stack for ``config`` and run it with a progress bar.

    Raises:
        RunAborted: On a fatal failure
    """
    framer = Framer(config.device, baudrate=config.baudrate, rts=config.rts)
    try:
        with Progress(
            TextColumn("[{task.description}]"),
            BarColumn(),
            TextColumn("[{task.percentage:.0f}%]"),
            console=console,
        ) as progress:
            tasks = {}

            def on_progress(index: int, sent: int, total: int) -> None:
                if index not in tasks:
                    tasks[index] = progress.add_task(f"Flash {index}", total=total)
                progress.update(tasks[index], completed=sent)

            orchestrator = FlashOrchestrator(
                config,
                framer,
                XcpMaster(framer),
                images=SrecordImageSource(),
                progress_cb=on_progress,
            )
            report = orchestrator.run()
        logger.debug(f"Run report: {report.to_dict()}")
        return report
    finally:
        framer.close()


@app.command(
    context_settings={"allow_extra_args": True, "ignore_unknown_options": True},
)
def flash(
    args: Optional[List[str]] = typer.Argument(
        None,
        metavar="-d<device> -b<baudrate> [-RTS<0|1>] (<file> | -T<id> <file>)+",
        help="Serial device, baud rate, optional RTS level and up to 5 images",
    ),
) -> None:
    """
    Flash S-record images onto the main device and addressed devices.

    Start the tool before powering the main device; it waits until the
    device answers.
    """
    print_header(f"SerialBoot {__version__} - firmware updates via the serial port")

    try:
        config = parse_command_line(args or [])
    except CommandLineError as e:
        print_error(str(e))
        console.print(USAGE_EXAMPLES)
        raise typer.Exit(code=1)

    print_plan(config)

    try:
        report = run_flash(config)
    except RunAborted as e:
        print_error(f"Run aborted: {e}")
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        print_warning("Operation cancelled by user")
        raise typer.Exit(code=1)

    print_report(report)


def main() -> None:
    """Main entry point."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(1)
    except Exception as e:
        console.print(f"\n[red bold]Fatal error:[/red bold] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
