#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, List, Optional, Tuple

from goat_ast import SourceFile
from goat_symbols import Site, Symbol, SymbolTable, Visibility, is_visible

# Identifiers that are never symbols.
PREDECLARED_VALUES = ("true", "false", "nil", "iota")

# Runtime namespace that lowered code calls into (goat.make, goat.promise, ...).
RUNTIME_NAMESPACE = "goat"


class ResolveErrorKind(Enum):
    UNKNOWN_PACKAGE = auto()  # qualifier is not an import of this file
    NOT_VISIBLE = auto()  # declared, but not visible from the reference site
    UNKNOWN_SYMBOL = auto()  # declared nowhere
    AMBIGUOUS = auto()  # several candidates at the same scope
    REJECTED = auto()  # declaration was already rejected by the collector


@dataclass(frozen=True)
class SymbolResolution:
    symbol: Optional[Symbol]
    error: Optional[ResolveErrorKind]
    package: str
    name: str
    candidates: Tuple[Symbol, ...] = ()


@dataclass
class FileImports:
    """
    Import view of one source file.

    aliases : local package name -> package path
    dotted  : package paths opened into the unqualified namespace, in
              import order
    """
    aliases: Dict[str, str] = field(default_factory=dict)
    dotted: List[str] = field(default_factory=list)

    @staticmethod
    def of(source: SourceFile) -> "FileImports":
        view = FileImports()
        for imp in source.imports:
            if imp.dot:
                view.dotted.append(imp.path)
            elif imp.local_name != "_":
                view.aliases[imp.local_name] = imp.path
        return view


def resolve_unqualified(table: SymbolTable, site: Site, imports: FileImports, name: str) -> SymbolResolution:
    """
    Resolve a bare identifier at package level.

    Narrowest scope first: file-private symbols of the reference's own
    file, then package-visible symbols, then public symbols of dot-imported
    packages. A file-private symbol of another file never hides anything.
    """
    pkg = table.package(site.package)
    own: Tuple[Symbol, ...] = pkg.candidates(name) if pkg is not None else ()

    for sym in own:
        if sym.visibility is Visibility.FILE_PRIVATE and sym.filename == site.filename:
            return SymbolResolution(sym, None, site.package, name)

    for sym in own:
        if sym.visibility is not Visibility.FILE_PRIVATE:
            return SymbolResolution(sym, None, site.package, name)

    opened: List[Symbol] = []
    hidden: List[Symbol] = []
    for path in imports.dotted:
        dot_pkg = table.package(path)
        if dot_pkg is None:
            continue
        sym = dot_pkg.public(name)
        if sym is not None:
            if sym not in opened:
                opened.append(sym)
        else:
            hidden.extend(dot_pkg.candidates(name))

    if len(opened) == 1:
        return SymbolResolution(opened[0], None, opened[0].package, name)
    if len(opened) > 1:
        return SymbolResolution(None, ResolveErrorKind.AMBIGUOUS, site.package, name, tuple(opened))

    if pkg is not None and name in pkg.rejected:
        return SymbolResolution(None, ResolveErrorKind.REJECTED, site.package, name)
    invisible = tuple(s for s in own if not is_visible(site, s.site, s.visibility)) + tuple(hidden)
    if invisible:
        return SymbolResolution(None, ResolveErrorKind.NOT_VISIBLE, site.package, name, invisible)
    return SymbolResolution(None, ResolveErrorKind.UNKNOWN_SYMBOL, site.package, name)


def resolve_qualified(
        table: SymbolTable,
        site: Site,
        imports: FileImports,
        qualifier: str,
        name: str,
) -> SymbolResolution:
    """Resolve `qualifier.name` where `qualifier` names an imported package."""
    path = imports.aliases.get(qualifier)
    if path is None:
        return SymbolResolution(None, ResolveErrorKind.UNKNOWN_PACKAGE, qualifier, name)
    pkg = table.package(path)
    if pkg is None:
        return SymbolResolution(None, ResolveErrorKind.UNKNOWN_PACKAGE, path, name)

    sym = pkg.public(name)
    if sym is not None:
        return SymbolResolution(sym, None, path, name)
    if name in pkg.rejected:
        return SymbolResolution(None, ResolveErrorKind.REJECTED, path, name)
    if pkg.candidates(name):
        return SymbolResolution(None, ResolveErrorKind.NOT_VISIBLE, path, name, pkg.candidates(name))
    return SymbolResolution(None, ResolveErrorKind.UNKNOWN_SYMBOL, path, name)
