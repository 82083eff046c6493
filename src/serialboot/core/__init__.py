"""
Core module for SerialBoot.

This module provides the single source of truth for:
- Run configuration (config.py)
- Command line parsing (parsing.py)
- Per-target results and the final report (results.py)
- Standardized warnings/messages (messages.py)
- The batch flashing workflow (orchestrator.py)

The CLI calls into this module rather than implementing its own logic.
"""

from .config import RunConfig, Target, MAX_TARGETS, SUPPORTED_BAUDRATES
from .parsing import (
    CommandLineError,
    parse_command_line,
    parse_target_id,
    parse_baudrate,
    parse_rts,
)
from .results import FlashError, TargetOutcome, RunReport
from .messages import (
    MessageLevel,
    WarningCode,
    WarningItem,
    outcome_to_warning,
    COMMON_WARNINGS,
)
from .orchestrator import FlashOrchestrator, RunAborted, connect_with_retry

__all__ = [
    # Config
    "RunConfig",
    "Target",
    "MAX_TARGETS",
    "SUPPORTED_BAUDRATES",
    # Parsing
    "CommandLineError",
    "parse_command_line",
    "parse_target_id",
    "parse_baudrate",
    "parse_rts",
    # Results
    "FlashError",
    "TargetOutcome",
    "RunReport",
    # Messages
    "MessageLevel",
    "WarningCode",
    "WarningItem",
    "outcome_to_warning",
    "COMMON_WARNINGS",
    # Workflow
    "FlashOrchestrator",
    "RunAborted",
    "connect_with_retry",
]
