#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from types import MappingProxyType
from typing import Dict, FrozenSet, Iterator, List, Mapping, Optional, Tuple

from goat_ast import EnumMember, Node, Span


class SymbolKind(Enum):
    TYPE = auto()
    FUNCTION = auto()
    VARIABLE = auto()
    CONSTANT = auto()


class Scope(Enum):
    """Containment lattice: FILE ⊂ PACKAGE ⊂ GLOBAL."""
    FILE = 1
    PACKAGE = 2
    GLOBAL = 3


class Visibility(Enum):
    FILE_PRIVATE = "private"
    PACKAGE_PRIVATE = "package"
    PUBLIC = "public"

    @staticmethod
    def from_modifier(modifier: Optional[str]) -> Optional["Visibility"]:
        """Map a source modifier keyword to a Visibility; None if absent or unknown."""
        for vis in Visibility:
            if vis.value == modifier:
                return vis
        return None

    @property
    def scope(self) -> Scope:
        return {
            Visibility.FILE_PRIVATE: Scope.FILE,
            Visibility.PACKAGE_PRIVATE: Scope.PACKAGE,
            Visibility.PUBLIC: Scope.GLOBAL,
        }[self]


class CasingClass(Enum):
    """Presentation-only: recorded for the emitter, never used for visibility."""
    UPPER = auto()
    LOWER = auto()
    OTHER = auto()

    @staticmethod
    def of(name: str) -> "CasingClass":
        first = name[:1]
        if first.isupper():
            return CasingClass.UPPER
        if first.islower():
            return CasingClass.LOWER
        return CasingClass.OTHER


@dataclass(frozen=True)
class Site:
    """Where a declaration or a reference lives."""
    package: str
    filename: Optional[str]


def is_visible(reference: Site, declaration: Site, visibility: Visibility) -> bool:
    """
    Can a reference at `reference` see a declaration at `declaration`?

    Importing is a precondition for cross-package access and is checked by
    the caller; this function only applies the scope lattice.
    """
    if visibility is Visibility.PUBLIC:
        return True
    if reference.package != declaration.package:
        return False
    if visibility is Visibility.PACKAGE_PRIVATE:
        return True
    return reference.filename == declaration.filename


@dataclass(frozen=True)
class Symbol:
    """
    A top-level declaration (or method) of some package.
    """
    name: str
    kind: SymbolKind
    visibility: Visibility
    package: str
    filename: Optional[str]
    node: Optional[Node] = field(default=None, compare=False, hash=False, repr=False)
    receiver: Optional[str] = None  # receiver type name, for methods
    synthesized_for: Optional[str] = None  # enum name, for names reserved by enum lowering

    @property
    def scope(self) -> Scope:
        return self.visibility.scope

    @property
    def site(self) -> Site:
        return Site(self.package, self.filename)

    @property
    def casing(self) -> CasingClass:
        return CasingClass.of(self.name)

    @property
    def span(self) -> Optional[Span]:
        return self.node.span if self.node is not None else None

    @property
    def qualified_name(self) -> str:
        if self.receiver is not None:
            return f"{self.package}.{self.receiver}.{self.name}"
        return f"{self.package}.{self.name}"


def scopes_overlap(a: Symbol, b: Symbol) -> bool:
    """
    Do two same-named declarations of one package land in a shared namespace?

    Only two file-private symbols from different files stay apart; any
    symbol with package or public visibility is visible in every file of
    the package, including the file of a file-private one.
    """
    if a.package != b.package:
        return False
    if a.visibility is Visibility.FILE_PRIVATE and b.visibility is Visibility.FILE_PRIVATE:
        return a.filename == b.filename
    return True


@dataclass(frozen=True)
class EnumDefinition:
    """
    An enum as declared, before checking. Member order is declaration order.
    """
    name: str
    package: str
    filename: Optional[str]
    visibility: Visibility
    members: Tuple[EnumMember, ...]
    node: Optional[Node] = field(default=None, compare=False, hash=False, repr=False)

    @property
    def member_names(self) -> Tuple[str, ...]:
        return tuple(m.name for m in self.members)


@dataclass(frozen=True)
class PackageSymbols:
    """
    Published, read-only symbols of one package.

    by_name  : name -> every declaration with that name (several file-private
               declarations may share a name across files)
    methods  : (receiver type, method name) -> method symbol
    enums    : enum name -> definition
    rejected : names whose declarations were rejected (missing modifier);
               references to them are not re-reported
    """
    path: str
    by_name: Mapping[str, Tuple[Symbol, ...]]
    methods: Mapping[Tuple[str, str], Symbol]
    enums: Mapping[str, EnumDefinition]
    rejected: FrozenSet[str] = frozenset()

    def candidates(self, name: str) -> Tuple[Symbol, ...]:
        return self.by_name.get(name, ())

    def public(self, name: str) -> Optional[Symbol]:
        for sym in self.candidates(name):
            if sym.visibility is Visibility.PUBLIC:
                return sym
        return None

    def methods_of(self, type_name: str) -> List[Symbol]:
        return [sym for (recv, _), sym in sorted(self.methods.items()) if recv == type_name]


class SymbolTable:
    """
    Immutable symbol table for a compilation unit.

    Built by the SymbolCollector and published once; later stages only read.
    """

    def __init__(self, packages: Dict[str, PackageSymbols]):
        self._packages: Mapping[str, PackageSymbols] = MappingProxyType(dict(packages))

    @property
    def packages(self) -> Mapping[str, PackageSymbols]:
        return self._packages

    def package(self, path: str) -> Optional[PackageSymbols]:
        return self._packages.get(path)

    def candidates(self, package: str, name: str) -> Tuple[Symbol, ...]:
        pkg = self._packages.get(package)
        return pkg.candidates(name) if pkg is not None else ()

    def method(self, package: str, type_name: str, name: str) -> Optional[Symbol]:
        pkg = self._packages.get(package)
        if pkg is None:
            return None
        return pkg.methods.get((type_name, name))

    def enum(self, package: str, name: str) -> Optional[EnumDefinition]:
        pkg = self._packages.get(package)
        if pkg is None:
            return None
        return pkg.enums.get(name)

    def iter_symbols(self) -> Iterator[Symbol]:
        """All symbols, deterministic order: package, name, file."""
        for path in sorted(self._packages):
            pkg = self._packages[path]
            for name in sorted(pkg.by_name):
                yield from sorted(pkg.by_name[name], key=lambda s: s.filename or "")
            for key in sorted(pkg.methods):
                yield pkg.methods[key]

    def __len__(self) -> int:
        return sum(1 for _ in self.iter_symbols())
