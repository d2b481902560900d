#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, List, Optional, Tuple

from goat_ast import Node, Param
from goat_types import Type


class LocalKind(Enum):
    PARAM = auto()
    RESULT = auto()
    RECEIVER = auto()
    LOCAL = auto()


@dataclass
class LocalSymbol:
    """
    A single local binding: parameter, named result, receiver or local.
    """
    name: str
    kind: LocalKind
    type: Optional[Type]
    decl: Optional[Node]


@dataclass
class Scope:
    """
    A lexical scope for locals inside a function.

    Scopes form a chain via the 'parent' link; a function literal's root
    scope has the enclosing scope as parent (closures capture).
    """
    parent: Optional[Scope]
    symbols: Dict[str, LocalSymbol] = field(default_factory=dict)

    def lookup(self, name: str) -> Optional[LocalSymbol]:
        scope: Optional[Scope] = self
        while scope is not None:
            sym = scope.symbols.get(name)
            if sym is not None:
                return sym
            scope = scope.parent
        return None

    def declare(self, name: str, kind: LocalKind, type_: Optional[Type], decl: Optional[Node]) -> LocalSymbol:
        # Redeclaration in the same scope (x, err := ...; y, err := ...) keeps
        # the first binding's identity but refreshes an unknown type.
        existing = self.symbols.get(name)
        if existing is not None:
            if existing.type is None and type_ is not None:
                existing.type = type_
            return existing
        sym = LocalSymbol(name=name, kind=kind, type=type_, decl=decl)
        self.symbols[name] = sym
        return sym


@dataclass
class FunctionContext:
    """
    The function (declaration or literal) whose body is being walked.

    results : declared result parameters with their resolved types, in order
    """
    name: str
    results: List[Tuple[Param, Optional[Type]]]
    node: Node

    @property
    def result_types(self) -> List[Optional[Type]]:
        return [t for _, t in self.results]
