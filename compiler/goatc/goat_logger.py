"""
Logging utilities for the Goat analyzer.

Messages go to stderr and are filtered by the CompilationContext log level.
With `log_rich_format` every line carries a timestamp and a level tag.
"""

#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

import sys
import time
from typing import Optional, Sequence

from goat_context import CompilationContext, LogLevel

_LEVEL_TAGS = {
    LogLevel.ERROR: "ERROR",
    LogLevel.WARNING: "WARNING",
    LogLevel.INFO: "INFO",
    LogLevel.DEBUG: "DEBUG",
}


def _rich_prefix(log_level: LogLevel) -> str:
    tag = _LEVEL_TAGS.get(log_level)
    if tag is None:
        return ""
    timestamp = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime())
    return f"{timestamp} [{tag}] "


def log(context: Optional[CompilationContext], log_level: LogLevel, message: str) -> None:
    """
    Write `message` to stderr if the context admits `log_level`.

    A missing context is a caller bug; the message is still printed so it
    is not lost.
    """
    if context is None:
        print(f"[no logging context] {message}", file=sys.stderr)
        return
    if context.log_level < log_level:
        return
    prefix = _rich_prefix(log_level) if context.log_rich_format else ""
    print(f"{prefix}{message}", file=sys.stderr)


def log_error(context: CompilationContext, message: str) -> None:
    log(context, LogLevel.ERROR, message)


def log_warning(context: CompilationContext, message: str) -> None:
    log(context, LogLevel.WARNING, message)


def log_info(context: CompilationContext, message: str) -> None:
    log(context, LogLevel.INFO, message)


def log_debug(context: CompilationContext, message: str) -> None:
    log(context, LogLevel.DEBUG, message)


def log_stage(context: CompilationContext, stage: str, package: Optional[str] = None) -> None:
    """
    Log the start of a pipeline stage.

    Args:
        context: The compilation context containing logging flags.
        stage:   Human-readable stage name (e.g. "Collecting symbols").
        package: Optional package path the stage is working on.
    """
    if package:
        log_info(context, f"{stage} in package '{package}'")
    else:
        log_info(context, f"{stage}...")


def log_stage_result(context: CompilationContext, stage: str, diagnostics: Sequence[object]) -> None:
    """Log how many diagnostics a stage contributed (debug level)."""
    count = len(diagnostics)
    noun = "diagnostic" if count == 1 else "diagnostics"
    log_debug(context, f"{stage} produced {count} {noun}")
