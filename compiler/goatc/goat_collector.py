#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, List, Optional, Set, Tuple

from goat_ast import (
    ConstDecl, EnumDecl, FuncDecl, NamedTypeRef, PointerTypeRef, SourceFile, StructDecl, TopLevelDecl, TypeDecl,
    TypeRef, VarDecl,
)
from goat_compilation import CompilationUnit
from goat_context import CompilationContext
from goat_diagnostics import Diagnostic, DiagnosticKind, diag_from_node
from goat_expr_types import ENUM_ALL_VALUES, ENUM_FROM_STRING, enum_helper_func, enum_member_const
from goat_internal_error import ice
from goat_logger import log_debug
from goat_symbols import (
    EnumDefinition, PackageSymbols, Symbol, SymbolKind, SymbolTable, Visibility, scopes_overlap,
)


@dataclass
class FileSymbols:
    """Symbols of one file, before the package-level merge."""
    package: str
    filename: Optional[str]
    symbols: List[Symbol] = field(default_factory=list)
    methods: List[Symbol] = field(default_factory=list)
    rejected: List[str] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)


def receiver_type_name(tref: TypeRef) -> str:
    """`T` for receivers written `T` or `*T`."""
    if isinstance(tref, PointerTypeRef):
        tref = tref.elem
    if isinstance(tref, NamedTypeRef):
        return tref.name
    return type(tref).__name__


def decl_kind(decl: TopLevelDecl) -> SymbolKind:
    if isinstance(decl, FuncDecl):
        return SymbolKind.FUNCTION
    if isinstance(decl, (StructDecl, TypeDecl, EnumDecl)):
        return SymbolKind.TYPE
    if isinstance(decl, VarDecl):
        return SymbolKind.VARIABLE
    if isinstance(decl, ConstDecl):
        return SymbolKind.CONSTANT
    raise ice("ICE-0030", f"declaration {type(decl).__name__}", node=decl)


class SymbolCollector:
    """
    Stage 1: build the immutable symbol table of a compilation unit.

    - Records every top-level declaration and method with its visibility.
    - Declarations without a modifier are reported and left out.
    - Same-named declarations whose scopes overlap are reported; the first
      one (in file order, then declaration order) is kept.
    - Reserves the names enum lowering will introduce.

    Files are scanned independently (on a thread pool when jobs > 1) and
    merged afterwards in sorted file order, so the result and the
    diagnostics do not depend on scheduling.
    """

    def __init__(self, cu: CompilationUnit, context: CompilationContext):
        self.cu = cu
        self.context = context
        self.diagnostics: List[Diagnostic] = []
        self._table: Optional[SymbolTable] = None

    def collect(self) -> SymbolTable:
        if self._table is not None:
            raise ice("ICE-0020", "symbol collection ran twice for one compilation unit")

        files = self.cu.all_files()
        if self.context.jobs > 1 and len(files) > 1:
            with ThreadPoolExecutor(max_workers=self.context.jobs) as pool:
                scanned = list(pool.map(self.collect_file, files))
        else:
            scanned = [self.collect_file(f) for f in files]

        by_package: Dict[str, List[FileSymbols]] = {}
        for fs in scanned:
            by_package.setdefault(fs.package, []).append(fs)

        packages = {path: self._merge(path, by_package.get(path, [])) for path in sorted(self.cu.packages)}
        self._table = SymbolTable(packages)
        return self._table

    # --- per file ---

    def collect_file(self, source: SourceFile) -> FileSymbols:
        out = FileSymbols(source.package, source.filename)
        for decl in source.decls:
            kind = decl_kind(decl)
            visibility = Visibility.from_modifier(decl.visibility)
            if visibility is None:
                what = "method" if isinstance(decl, FuncDecl) and decl.receiver is not None else "declaration"
                out.diagnostics.append(
                    diag_from_node(
                        DiagnosticKind.MISSING_VISIBILITY_MODIFIER,
                        f"{what} '{decl.name}' has no visibility modifier (expected private, package or public)",
                        package=source.package,
                        filename=source.filename,
                        node=decl,
                    )
                )
                if what == "declaration":
                    out.rejected.append(decl.name)
                continue

            if isinstance(decl, FuncDecl) and decl.receiver is not None:
                out.methods.append(
                    Symbol(decl.name, kind, visibility, source.package, source.filename, decl,
                           receiver=receiver_type_name(decl.receiver.type))
                )
                continue

            out.symbols.append(Symbol(decl.name, kind, visibility, source.package, source.filename, decl))
            if isinstance(decl, EnumDecl):
                out.symbols.extend(self._enum_reserved_names(decl, visibility, source))

        log_debug(
            self.context,
            f"Collected {len(out.symbols)} symbols and {len(out.methods)} methods from '{source.filename}'",
        )
        return out

    @staticmethod
    def _enum_reserved_names(decl: EnumDecl, visibility: Visibility, source: SourceFile) -> List[Symbol]:
        reserved: List[Symbol] = []
        seen: Set[str] = set()
        for member in decl.members:
            if member.name in seen:
                continue  # duplicate members are the enum checker's to report
            seen.add(member.name)
            reserved.append(
                Symbol(enum_member_const(decl.name, member.name), SymbolKind.CONSTANT, visibility,
                       source.package, source.filename, member, synthesized_for=decl.name)
            )
        for helper in (ENUM_ALL_VALUES, ENUM_FROM_STRING):
            reserved.append(
                Symbol(enum_helper_func(decl.name, helper), SymbolKind.FUNCTION, visibility,
                       source.package, source.filename, decl, synthesized_for=decl.name)
            )
        return reserved

    # --- per package ---

    def _merge(self, path: str, files: List[FileSymbols]) -> PackageSymbols:
        by_name: Dict[str, List[Symbol]] = {}
        methods: Dict[Tuple[str, str], Symbol] = {}
        enums: Dict[str, EnumDefinition] = {}
        rejected: Set[str] = set()
        dropped_enums: Set[Tuple[Optional[str], str]] = set()

        for fs in files:
            self.diagnostics.extend(fs.diagnostics)
            rejected.update(fs.rejected)

            for sym in fs.symbols:
                if sym.synthesized_for is not None and (sym.filename, sym.synthesized_for) in dropped_enums:
                    continue
                previous = next((s for s in by_name.get(sym.name, ()) if scopes_overlap(s, sym)), None)
                if previous is not None:
                    self._report_duplicate(sym, previous)
                    if isinstance(sym.node, EnumDecl):
                        dropped_enums.add((sym.filename, sym.name))
                    continue
                by_name.setdefault(sym.name, []).append(sym)
                if isinstance(sym.node, EnumDecl):
                    enums[sym.name] = EnumDefinition(
                        sym.name, path, sym.filename, sym.visibility, tuple(sym.node.members), sym.node
                    )

            for method in fs.methods:
                key = (method.receiver, method.name)
                if key in methods:
                    self._report_duplicate(method, methods[key])
                    continue
                methods[key] = method

        return PackageSymbols(
            path=path,
            by_name=MappingProxyType({name: tuple(syms) for name, syms in by_name.items()}),
            methods=MappingProxyType(methods),
            enums=MappingProxyType(enums),
            rejected=frozenset(rejected),
        )

    def _report_duplicate(self, sym: Symbol, previous: Symbol) -> None:
        where = previous.filename or "<unknown>"
        if previous.span is not None:
            where += f":{previous.span.start_line}"

        if sym.receiver is not None:
            message = f"duplicate method '{sym.name}' on type '{sym.receiver}' (previous declaration at {where})"
        elif sym.synthesized_for is not None:
            message = (
                f"enum '{sym.synthesized_for}' needs the name '{sym.name}' for its lowering, "
                f"but it is already declared at {where}"
            )
        elif previous.synthesized_for is not None:
            message = f"'{sym.name}' is reserved by the lowering of enum '{previous.synthesized_for}' ({where})"
        else:
            message = (
                f"duplicate declaration of '{sym.name}' in package '{sym.package}' "
                f"(previous {previous.visibility.value} declaration at {where})"
            )
        self.diagnostics.append(
            diag_from_node(
                DiagnosticKind.DUPLICATE_DECLARATION,
                message,
                package=sym.package,
                filename=sym.filename,
                node=sym.node,
            )
        )
