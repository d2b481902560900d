#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

import os
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from goat_ast import Node


class DiagnosticKind(Enum):
    """
    Diagnostic taxonomy. Every kind is fatal: there is no warning tier.

    The value is the stable code embedded in messages as "[CODE]".
    """
    MISSING_VISIBILITY_MODIFIER = "VIS-0010"
    DUPLICATE_DECLARATION = "VIS-0020"
    SYMBOL_NOT_VISIBLE = "VIS-0030"
    AMBIGUOUS_REFERENCE = "VIS-0040"
    RESERVED_IDENTIFIER_USED = "BLT-0010"
    INVALID_BUILTIN_USAGE = "BLT-0020"
    INVALID_ENUM_VALUE = "ENM-0010"
    NON_EXHAUSTIVE_ENUM_SWITCH = "ENM-0020"
    DUPLICATE_ENUM_CASE = "ENM-0030"
    PROPAGATION_OUTSIDE_ERROR_FUNCTION = "PRP-0010"
    INVALID_PROPAGATION_OPERAND = "PRP-0020"
    UNSUPPORTED_PROPAGATION_SITE = "PRP-0030"
    PROMISE_RESULT_DISCARDED_UNSAFELY = "PRM-0010"

    @property
    def code(self) -> str:
        return self.value

    @property
    def title(self) -> str:
        """CamelCase name used in diagnostic records (e.g. 'SymbolNotVisible')."""
        return "".join(part.capitalize() for part in self.name.split("_"))


DIAGNOSTIC_CODE_FAMILIES: Dict[str, List[str]] = {}
for _kind in DiagnosticKind:
    DIAGNOSTIC_CODE_FAMILIES.setdefault(_kind.code.split("-")[0], []).append(_kind.code)


@dataclass
class Diagnostic:
    kind: DiagnosticKind
    message: str
    package: Optional[str] = None  # package path
    filename: Optional[str] = None  # file path

    # Primary location (start of the span)
    line: Optional[int] = None
    column: Optional[int] = None

    # Optional end of span (exclusive)
    end_line: Optional[int] = None
    end_column: Optional[int] = None

    severity: str = "error"

    def format(self) -> str:
        """One-line header: 'path:line:col(pkg): error: [CODE] message'."""
        loc = ""
        if self.filename is not None:
            loc += f"{os.path.abspath(str(self.filename))}"
        if self.line is not None:
            loc += f":{self.line}"
            if self.column is not None:
                loc += f":{self.column}"
            if self.package is not None:
                loc += f"({self.package})"
        if loc:
            loc += ": "
        return f"{loc}{self.severity}: {self.message}"

    def to_record(self) -> Dict[str, object]:
        """The {file, line, column, kind, message} record handed to reporters."""
        return {
            "file": self.filename,
            "line": self.line,
            "column": self.column,
            "kind": self.kind.title,
            "message": self.message,
        }

    def sort_key(self) -> Tuple:
        return (
            self.filename or "",
            self.line if self.line is not None else 0,
            self.column if self.column is not None else 0,
            self.kind.code,
            self.message,
        )


def diag_from_node(
        kind: DiagnosticKind,
        message: str,
        *,
        package: Optional[str],
        filename: Optional[str],
        node: Optional[Node],
) -> Diagnostic:
    """Build a diagnostic located at `node`, prefixing the message with its code."""
    line = column = end_line = end_column = None
    if node is not None and node.span is not None:
        s = node.span
        line = s.start_line
        column = s.start_column
        end_line = s.end_line
        end_column = s.end_column
    return Diagnostic(
        kind=kind,
        message=f"[{kind.code}] {message}",
        package=package,
        filename=filename,
        line=line,
        column=column,
        end_line=end_line,
        end_column=end_column,
    )


class DiagnosticReport:
    """
    Ordered, deduplicated diagnostics of one pipeline run.

    Compilation succeeds iff the report is empty.
    """

    def __init__(self, diagnostics: Iterable[Diagnostic] = ()):
        self._diagnostics: Tuple[Diagnostic, ...] = tuple(diagnostics)

    def __iter__(self) -> Iterator[Diagnostic]:
        return iter(self._diagnostics)

    def __len__(self) -> int:
        return len(self._diagnostics)

    def __getitem__(self, index: int) -> Diagnostic:
        return self._diagnostics[index]

    @property
    def ok(self) -> bool:
        return not self._diagnostics

    def kinds(self) -> List[DiagnosticKind]:
        return [d.kind for d in self._diagnostics]

    def records(self) -> List[Dict[str, object]]:
        return [d.to_record() for d in self._diagnostics]


def aggregate(*batches: Iterable[Diagnostic]) -> DiagnosticReport:
    """
    Merge per-stage diagnostic batches into one report.

    Ordering is by source location (file, line, column) and then by kind and
    message, so the result does not depend on stage order or on how many
    worker threads produced the batches. Identical diagnostics reported by
    more than one stage collapse into one.
    """
    seen = set()
    merged: List[Diagnostic] = []
    for batch in batches:
        for diag in batch:
            key = diag.sort_key()
            if key in seen:
                continue
            seen.add(key)
            merged.append(diag)
    merged.sort(key=Diagnostic.sort_key)
    return DiagnosticReport(merged)
