#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from goat_ast import Node, Span

# Internal error codes. These are analyzer bugs or broken parser contracts,
# never user-facing diagnostics.
ICE_CODES = {
    "ICE-0010": "launch operand is not a call expression",
    "ICE-0020": "symbol table mutated after publication",
    "ICE-0030": "unhandled syntax node kind",
    "ICE-0040": "unknown node tag in tree interchange data",
    "ICE-0050": "hoisted statements at a site that cannot hold them",
    "ICE-9999": "unclassified internal error",
}


@dataclass(frozen=True)
class ICELocation:
    filename: Optional[str]
    span: Optional[Span]


class InternalCompilerError(RuntimeError):
    """
    Violated pipeline invariant. User mistakes are Diagnostics, not ICEs.
    """

    def __init__(self, message: str, loc: ICELocation | None = None):
        super().__init__(message)
        self.message = message
        self.loc = loc

    @property
    def code(self) -> str:
        if self.message.startswith("[ICE-"):
            return self.message[1:self.message.index("]")]
        return "ICE-9999"

    def format(self) -> str:
        message = self.message
        if not message.startswith("[ICE-"):
            message = f"[ICE-9999] {message}"
        where = ""
        if self.loc is not None and self.loc.filename:
            where = self.loc.filename
            if self.loc.span is not None:
                where += f":{self.loc.span.start_line}:{self.loc.span.start_column}"
            where += ": "
        return f"{where}internal compiler error: {message}"


def ice(
        code: str,
        detail: str,
        *,
        filename: Optional[str] = None,
        node: Optional[Node] = None,
) -> InternalCompilerError:
    """Build an InternalCompilerError for a registered ICE code."""
    assert code in ICE_CODES, code
    span = node.span if node is not None else None
    return InternalCompilerError(f"[{code}] {ICE_CODES[code]}: {detail}", ICELocation(filename, span))
