#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Set, Tuple

from goat_ast import Expr, Ident, Node, SelectorExpr, TypeRef
from goat_builtin_table import ELIMINATED_BUILTINS
from goat_diagnostics import DiagnosticKind
from goat_resolve import (
    PREDECLARED_VALUES, RUNTIME_NAMESPACE, ResolveErrorKind, SymbolResolution, resolve_qualified, resolve_unqualified,
)
from goat_rewrite import Rewritten, TreeRewriter, named_type_refs
from goat_symbols import EnumDefinition, Site, Symbol, SymbolTable, Visibility, is_visible
from goat_types import GOAT_PRIMITIVE_TYPES


class VisibilityResolver(TreeRewriter):
    """
    Stage 2: check that every reference can see its declaration.

    Never rewrites the tree. Produces:
      - resolutions: id(reference node) -> Symbol, for identifiers,
        package-qualified selectors and named type references;
      - diagnostics for invisible, unknown and ambiguous references.

    Packages outside the compilation unit are opaque: qualified references
    into them are not checked, and a file dot-importing one does not get
    "undeclared name" reports.
    """

    def __init__(self, table, typer, context):
        super().__init__(table, typer, context)
        self.resolutions: Dict[int, Symbol] = {}

    # --- expressions ---

    def rewrite_expr(self, expr: Expr) -> Rewritten:
        if isinstance(expr, Ident):
            self._resolve_ident(expr)
            return [], expr
        if isinstance(expr, SelectorExpr) and self._resolve_qualified_selector(expr):
            return [], expr
        return super().rewrite_expr(expr)

    def rewrite_case_label(self, label: Expr, tag: Optional[Expr]) -> Expr:
        # `case Idle:` inside a switch over an enum value; the enum checker
        # decides what the bare member refers to.
        if isinstance(label, Ident) and not self._is_local(label.name) and self._names_enum_member(label.name):
            res = resolve_unqualified(self.table, self.site, self.imports, label.name)
            if res.symbol is None:
                return label
        return super().rewrite_case_label(label, tag)

    def visit_type_ref(self, tref: Optional[TypeRef]) -> None:
        for ref in named_type_refs(tref):
            if ref.package is None:
                if ref.name in GOAT_PRIMITIVE_TYPES:
                    continue
                res = resolve_unqualified(self.table, self.site, self.imports, ref.name)
                self._record(ref, res, ref.name)
                continue
            if ref.package == RUNTIME_NAMESPACE or self._is_external(ref.package):
                continue
            res = resolve_qualified(self.table, self.site, self.imports, ref.package, ref.name)
            self._record(ref, res, f"{ref.package}.{ref.name}", qualifier=ref.package)

    # --- helpers ---

    def _is_local(self, name: str) -> bool:
        return self.scope is not None and self.scope.lookup(name) is not None

    def _is_external(self, alias: str) -> bool:
        path = self.imports.aliases.get(alias)
        return path is not None and self.table.package(path) is None

    def _has_external_dot_imports(self) -> bool:
        return any(self.table.package(path) is None for path in self.imports.dotted)

    def _resolve_ident(self, expr: Ident) -> None:
        name = expr.name
        if self._is_local(name) or name == "_":
            return
        if name in PREDECLARED_VALUES or name in ELIMINATED_BUILTINS or name in GOAT_PRIMITIVE_TYPES:
            return
        if name == RUNTIME_NAMESPACE or name in self.imports.aliases:
            return
        res = resolve_unqualified(self.table, self.site, self.imports, name)
        self._record(expr, res, name)

    def _resolve_qualified_selector(self, expr: SelectorExpr) -> bool:
        """Handle `alias.Name`; False when the base is not a package qualifier."""
        obj = expr.obj
        if not isinstance(obj, Ident) or self._is_local(obj.name):
            return False
        if obj.name == RUNTIME_NAMESPACE:
            return True
        if obj.name not in self.imports.aliases:
            return False
        if not self._is_external(obj.name):
            res = resolve_qualified(self.table, self.site, self.imports, obj.name, expr.field)
            self._record(expr, res, f"{obj.name}.{expr.field}", qualifier=obj.name)
        return True

    def _visible_enums(self) -> Iterator[EnumDefinition]:
        own = self.table.package(self.package)
        if own is not None:
            for definition in own.enums.values():
                if is_visible(self.site, definition_site(definition), definition.visibility):
                    yield definition
        for path in list(self.imports.dotted) + list(self.imports.aliases.values()):
            pkg = self.table.package(path)
            if pkg is None:
                continue
            for definition in pkg.enums.values():
                if definition.visibility is Visibility.PUBLIC:
                    yield definition

    def _names_enum_member(self, name: str) -> bool:
        return any(name in d.member_names for d in self._visible_enums())

    def _record(self, node: Node, res: SymbolResolution, display: str, qualifier: Optional[str] = None) -> None:
        if res.symbol is not None:
            self.resolutions[id(node)] = res.symbol
            return

        error = res.error
        if error is ResolveErrorKind.REJECTED:
            return  # already reported as a missing modifier
        if error is ResolveErrorKind.AMBIGUOUS:
            origins = ", ".join(sorted(f"'{c.package}'" for c in res.candidates))
            self.report(
                DiagnosticKind.AMBIGUOUS_REFERENCE,
                f"'{display}' is ambiguous: it is exported by dot-imported packages {origins}",
                node,
            )
            return
        if error is ResolveErrorKind.UNKNOWN_PACKAGE:
            message = f"'{qualifier}' is not an imported package"
        elif error is ResolveErrorKind.NOT_VISIBLE:
            message = self._not_visible_message(display, res.candidates[0])
        else:
            if qualifier is None and self._has_external_dot_imports():
                return
            message = f"'{display}' is not declared"
            if qualifier is not None:
                message += f" in package '{res.package}'"
        self.report(DiagnosticKind.SYMBOL_NOT_VISIBLE, message, node)

    def _not_visible_message(self, display: str, candidate: Symbol) -> str:
        if candidate.package != self.package:
            return (
                f"'{display}' is {candidate.visibility.value} in package '{candidate.package}' "
                f"and cannot be used from package '{self.package}'"
            )
        return f"'{display}' is private to file '{candidate.filename}'"


def definition_site(definition: EnumDefinition) -> Site:
    return Site(definition.package, definition.filename)


# ======================================
# Namespace plan
# ======================================

_IDENT_UNSAFE = re.compile(r"[^0-9A-Za-z_]")


@dataclass(frozen=True)
class NamespacePlan:
    """
    Emitted (base-language) name for every symbol.

    The base language only knows exported/unexported by casing, so:
      public          -> capitalised
      package private -> unexported ('_' prefix when it starts uppercase)
      file private    -> '_<file stem>_<name>'
    Residual clashes inside a package (or receiver) get a numeric suffix.
    """
    names: Mapping[Symbol, str]

    def emitted(self, sym: Symbol) -> str:
        return self.names.get(sym, sym.name)

    def items(self) -> List[Tuple[Symbol, str]]:
        return list(self.names.items())


def file_stem(filename: Optional[str]) -> str:
    if not filename:
        return "file"
    stem = os.path.splitext(os.path.basename(filename))[0]
    return _IDENT_UNSAFE.sub("_", stem) or "file"


def preferred_name(sym: Symbol) -> str:
    name = sym.name
    if sym.visibility is Visibility.PUBLIC:
        return name[:1].upper() + name[1:]
    if sym.visibility is Visibility.FILE_PRIVATE and sym.receiver is None:
        return f"_{file_stem(sym.filename)}_{name}"
    if name[:1].isupper():
        return "_" + name
    return name


def build_namespace_plan(table: SymbolTable) -> NamespacePlan:
    names: Dict[Symbol, str] = {}
    used: Dict[Tuple[str, Optional[str]], Set[str]] = {}
    for sym in table.iter_symbols():
        taken = used.setdefault((sym.package, sym.receiver), set())
        base = preferred_name(sym)
        emitted = base
        suffix = 2
        while emitted in taken:
            emitted = f"{base}{suffix}"
            suffix += 1
        taken.add(emitted)
        names[sym] = emitted
    return NamespacePlan(MappingProxyType(names))
