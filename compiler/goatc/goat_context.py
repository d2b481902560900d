"""
Compilation context for cross-cutting analyzer options.

This module defines the CompilationContext dataclass which holds options
that affect multiple stages of the pipeline (parallelism, promise policy,
logging).
"""

#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

from dataclasses import dataclass
from enum import Enum, IntEnum


class LogLevel(IntEnum):
    """Hierarchical logging levels for the Goat analyzer."""
    SILENT = 0      # No logging
    ERROR = 3       # Error messages only
    WARNING = 6     # Warning messages (default)
    INFO = 10       # General progress messages (-v)
    DEBUG = 30      # Detailed diagnostic information (-vvv)


class UnobservedErrorPolicy(Enum):
    """
    What happens to the error of a launched task nobody awaits.

    The proposal leaves this open, so it is configurable:
      DROP    the error is discarded
      LOG     the runtime logs the error
      REPORT  the runtime sends it to the process-wide error channel
      REJECT  bare launches of error-returning callees are compile errors;
              unobserved handles panic at runtime
    """
    DROP = "drop"
    LOG = "log"
    REPORT = "report"
    REJECT = "reject"

    @property
    def runtime_constant(self) -> str:
        """Name of the `goat` runtime constant passed to goat.promise()."""
        return {
            UnobservedErrorPolicy.DROP: "DropUnobserved",
            UnobservedErrorPolicy.LOG: "LogUnobserved",
            UnobservedErrorPolicy.REPORT: "ReportUnobserved",
            UnobservedErrorPolicy.REJECT: "PanicUnobserved",
        }[self]


@dataclass
class CompilationContext:
    """
    Holds cross-cutting options that affect multiple pipeline stages.

    Attributes:
        jobs:                       Worker threads for per-file work (symbol
                                    collection). 1 means run inline.
        unobserved_error_policy:    Policy for errors of launched tasks whose
                                    promise is never awaited.
        log_rich_format:            If True, emit logs in rich format: may include log level, timestamps, etc.
        log_level:                  Current logging level.
    """
    jobs: int = 1
    unobserved_error_policy: UnobservedErrorPolicy = UnobservedErrorPolicy.LOG
    log_rich_format: bool = False
    log_level: LogLevel = LogLevel.WARNING

    @staticmethod
    def default() -> 'CompilationContext':
        """Create a CompilationContext with default settings."""
        return CompilationContext(log_level=LogLevel.WARNING)
