#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Set, Tuple

from goat_ast import (
    AssignStmt, BinaryOp, Block, CallExpr, CaseClause, CompositeLit, ConstDecl, EnumDecl, EnumMember, Expr,
    ExprStmt, FuncDecl, Ident, IntLiteral, KeyValueExpr, NamedTypeRef, NilLiteral, Node, Param, ParenExpr,
    ReturnStmt, SelectorExpr, SliceTypeRef, Stmt, StringLiteral, SwitchStmt, TopLevelDecl, TypeDecl, UnaryOp,
    VarDecl, VarStmt,
)
from goat_compilation import CompilationUnit
from goat_diagnostics import DiagnosticKind, diag_from_node
from goat_expr_types import ENUM_ALL_VALUES, ENUM_FROM_STRING, enum_helper_func, enum_member_const
from goat_resolve import RUNTIME_NAMESPACE, resolve_qualified, resolve_unqualified
from goat_rewrite import Rewritten, TreeRewriter
from goat_symbols import EnumDefinition
from goat_types import EnumType, FuncType, Type, TypeValue, format_type

_COMPARISONS = ("==", "!=", "<", "<=", ">", ">=")
_LOGICAL_OPS = _COMPARISONS + ("&&", "||")
_ARITHMETIC_UNARY_OPS = ("-", "+", "^")


class EnumState(Enum):
    DECLARED = auto()
    VALIDATED = auto()
    REJECTED = auto()
    USABLE = auto()


class UnknownEnumNameError(LookupError):
    """Raised by EnumInfo.from_string for a name outside the declared set."""

    def __init__(self, enum_name: str, name: str):
        super().__init__(f"unknown {enum_name} name: {name!r}")
        self.enum_name = enum_name
        self.name = name


@dataclass(frozen=True)
class EnumValue:
    """A member of a usable enum; only EnumInfo creates these."""
    type: EnumType
    ordinal: int
    name: str


class EnumInfo:
    """
    Checked view of one enum definition.

    Lifecycle: DECLARED -> VALIDATED -> USABLE | REJECTED. Only a usable
    enum has an ordinal map; the map is read-only.
    """

    def __init__(self, definition: EnumDefinition):
        self.definition = definition
        self.state = EnumState.DECLARED
        self._ordinals: Mapping[str, int] = MappingProxyType({})
        self._values: Tuple[EnumValue, ...] = ()

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def package(self) -> str:
        return self.definition.package

    @property
    def type(self) -> EnumType:
        return EnumType(self.package, self.name)

    @property
    def usable(self) -> bool:
        return self.state is EnumState.USABLE

    def validate(self) -> List[Tuple[DiagnosticKind, str, Node]]:
        """Run the declaration checks once; returns the problems found."""
        if self.state is not EnumState.DECLARED:
            return []
        problems: List[Tuple[DiagnosticKind, str, Node]] = []
        members = self.definition.members
        if not members:
            problems.append(
                (DiagnosticKind.INVALID_ENUM_VALUE, f"enum '{self.name}' has no members", self.definition.node)
            )

        seen: Set[str] = set()
        ordinals: Dict[str, int] = {}
        by_ordinal: Dict[int, str] = {}
        next_ordinal = 0
        for member in members:
            if member.name in seen:
                problems.append((
                    DiagnosticKind.DUPLICATE_DECLARATION,
                    f"duplicate member '{member.name}' in enum '{self.name}'",
                    member,
                ))
                continue
            seen.add(member.name)

            if member.ordinal is None:
                ordinal = next_ordinal
            elif isinstance(member.ordinal, IntLiteral):
                ordinal = member.ordinal.value
            else:
                problems.append((
                    DiagnosticKind.INVALID_ENUM_VALUE,
                    f"ordinal of '{self.name}.{member.name}' must be an integer literal",
                    member,
                ))
                continue
            next_ordinal = ordinal + 1

            if not 0 <= ordinal < len(members):
                problems.append((
                    DiagnosticKind.INVALID_ENUM_VALUE,
                    f"ordinal {ordinal} of '{self.name}.{member.name}' is outside 0..{len(members) - 1}",
                    member,
                ))
            elif ordinal in by_ordinal:
                problems.append((
                    DiagnosticKind.INVALID_ENUM_VALUE,
                    f"'{self.name}.{member.name}' reuses ordinal {ordinal} of '{by_ordinal[ordinal]}'",
                    member,
                ))
            else:
                by_ordinal[ordinal] = member.name
            ordinals[member.name] = ordinal

        self.state = EnumState.VALIDATED
        if problems:
            self.state = EnumState.REJECTED
            return problems

        self._ordinals = MappingProxyType(ordinals)
        self._values = tuple(EnumValue(self.type, ordinals[m.name], m.name) for m in members)
        self.state = EnumState.USABLE
        return problems

    # --- queries (usable enums only) ---

    def member_names(self) -> Tuple[str, ...]:
        return tuple(v.name for v in self._values)

    def ordinal_of(self, name: str) -> Optional[int]:
        return self._ordinals.get(name)

    def all_values(self) -> Tuple[EnumValue, ...]:
        """Every member, in declaration order."""
        return self._values

    def from_string(self, name: str) -> EnumValue:
        ordinal = self._ordinals.get(name)
        if ordinal is None:
            raise UnknownEnumNameError(self.name, name)
        return next(v for v in self._values if v.ordinal == ordinal)

    def zero(self) -> EnumValue:
        """The member the base language's zero value (ordinal 0) denotes."""
        return next(v for v in self._values if v.ordinal == 0)


def build_enum_infos(definitions: List[EnumDefinition]) -> Dict[Tuple[str, str], EnumInfo]:
    return {(d.package, d.name): EnumInfo(d) for d in definitions}


def _strip_parens(expr: Expr) -> Expr:
    while isinstance(expr, ParenExpr):
        expr = expr.inner
    return expr


def _runtime_call(name: str, args: List[Expr], node: Node) -> CallExpr:
    return CallExpr(SelectorExpr(Ident(RUNTIME_NAMESPACE, span=node.span), name, span=node.span), args, span=node.span)


class EnumChecker(TreeRewriter):
    """
    Stage 4: validate enum declarations, check enum-typed use sites and
    switch exhaustiveness, then lower enums to base-language constants.

        public enum Status { Idle Ready }

    becomes

        public type Status int
        public const Status_Idle Status = 0
        public const Status_Ready Status = 1
        public func Status_allValues() []Status { ... }
        public func Status_fromString(name string) (Status, error) { ... }

    and `Status.Idle` becomes `Status_Idle`. Rejected enums and flagged
    use sites are left as written.
    """

    def __init__(self, table, typer, context):
        super().__init__(table, typer, context)
        definitions = [d for path in sorted(table.packages) for _, d in sorted(table.packages[path].enums.items())]
        self.infos: Dict[Tuple[str, str], EnumInfo] = build_enum_infos(definitions)
        self._switches: List[Optional[EnumInfo]] = []

    def run(self, cu: CompilationUnit) -> CompilationUnit:
        for info in self.infos.values():
            for kind, message, node in info.validate():
                self.diagnostics.append(
                    diag_from_node(kind, message, package=info.package, filename=info.definition.filename, node=node)
                )
        return super().run(cu)

    # --- lookups ---

    def info_for(self, t: Optional[Type]) -> Optional[EnumInfo]:
        if isinstance(t, EnumType):
            return self.infos.get((t.package, t.name))
        return None

    def usable_info(self, t: Optional[Type]) -> Optional[EnumInfo]:
        info = self.info_for(t)
        return info if info is not None and info.usable else None

    def _enum_of_type_expr(self, expr: Expr) -> Optional[EnumInfo]:
        t = self.type_of(expr)
        if isinstance(t, TypeValue):
            return self.info_for(t.target)
        return None

    def _package_alias(self, package: str) -> Optional[str]:
        for alias, path in sorted(self.imports.aliases.items()):
            if path == package:
                return alias
        return None

    def _qualified(self, package: str, name: str, node: Node) -> Expr:
        if package == self.package:
            return Ident(name, span=node.span)
        alias = self._package_alias(package)
        if alias is None:  # reachable through a dot import
            return Ident(name, span=node.span)
        return SelectorExpr(Ident(alias, span=node.span), name, span=node.span)

    def _lowered_ref(self, type_expr: Expr, name: str, node: Node) -> Expr:
        """`E` / `pkg.E` with the member part replaced by a lowered name."""
        if isinstance(type_expr, SelectorExpr):
            return SelectorExpr(type_expr.obj, name, span=node.span)
        return Ident(name, span=node.span)

    # --- use-site checks ---

    def check_value(self, expected: Optional[Type], expr: Optional[Expr], what: str) -> None:
        """Report `expr` if it cannot stand where a value of enum `expected` is required."""
        info = self.usable_info(expected)
        if info is None or expr is None:
            return
        bare = _strip_parens(expr)
        if isinstance(bare, SelectorExpr) and self._enum_of_type_expr(bare.obj) is info:
            return  # member names are checked where they are rewritten
        if isinstance(bare, CompositeLit) and not bare.elts and self.usable_info(self.resolve_type(bare.type)) is info:
            return
        if isinstance(bare, IntLiteral):
            self.report(
                DiagnosticKind.INVALID_ENUM_VALUE,
                f"integer literal {bare.value} cannot be used as a '{info.name}' value in {what}",
                expr,
            )
            return
        if isinstance(bare, BinaryOp) and bare.op not in _LOGICAL_OPS:
            if self._enum_operand(bare.left, bare.right) is not None:
                return  # reported at the operator
            self.report(
                DiagnosticKind.INVALID_ENUM_VALUE,
                f"arithmetic result cannot be used as a '{info.name}' value in {what}",
                expr,
            )
            return
        actual = self.type_of(bare)
        if actual is None or actual == info.type:
            return
        self.report(
            DiagnosticKind.INVALID_ENUM_VALUE,
            f"value of type {format_type(actual)} cannot be used as a '{info.name}' value in {what}",
            expr,
        )

    def check_stmt(self, stmt: Stmt) -> None:
        if isinstance(stmt, VarStmt) and stmt.type is not None:
            self.check_value(self.resolve_type(stmt.type), stmt.value, f"the declaration of '{stmt.name}'")
        elif isinstance(stmt, AssignStmt):
            if stmt.op != "=":
                for target in stmt.targets:
                    info = self.usable_info(self.type_of(target))
                    if info is not None:
                        self.report(
                            DiagnosticKind.INVALID_ENUM_VALUE,
                            f"'{stmt.op}' cannot be applied to a '{info.name}' value",
                            stmt,
                        )
            elif len(stmt.targets) == len(stmt.values):
                for target, value in zip(stmt.targets, stmt.values):
                    self.check_value(self.type_of(target), value, "an assignment")
        elif isinstance(stmt, ReturnStmt) and self.func is not None:
            expected = self.func.result_types
            if len(stmt.values) == len(expected):
                for t, value in zip(expected, stmt.values):
                    self.check_value(t, value, "a return statement")

    def rewrite_decl(self, decl: TopLevelDecl) -> List[TopLevelDecl]:
        if isinstance(decl, EnumDecl):
            return self.lower_enum(decl)
        if isinstance(decl, (VarDecl, ConstDecl)) and decl.type is not None:
            self.check_value(self.resolve_type(decl.type), decl.value, f"the declaration of '{decl.name}'")
        return super().rewrite_decl(decl)

    def rewrite_expr(self, expr: Expr) -> Rewritten:
        if isinstance(expr, SelectorExpr):
            lowered = self._rewrite_member_ref(expr)
            if lowered is not None:
                return [], lowered
        elif isinstance(expr, BinaryOp) and expr.op in _COMPARISONS:
            left_t = self.type_of(expr.left)
            if self.usable_info(left_t) is not None:
                self.check_value(left_t, expr.right, "a comparison")
            else:
                right_t = self.type_of(expr.right)
                if self.usable_info(right_t) is not None:
                    self.check_value(right_t, expr.left, "a comparison")
        elif isinstance(expr, BinaryOp) and expr.op not in _LOGICAL_OPS:
            self._check_arithmetic(expr, expr.left, expr.right)
        elif isinstance(expr, UnaryOp) and expr.op in _ARITHMETIC_UNARY_OPS:
            self._check_arithmetic(expr, expr.operand)
        elif isinstance(expr, CallExpr):
            self._check_call(expr)
        elif isinstance(expr, CompositeLit):
            info = self.info_for(self.resolve_type(expr.type))
            if info is not None:
                return self._rewrite_enum_literal(expr, info)
            self._check_struct_fields(expr)
        return super().rewrite_expr(expr)

    def _enum_operand(self, *operands: Expr) -> Optional[EnumInfo]:
        for operand in operands:
            info = self.usable_info(self.type_of(operand))
            if info is not None:
                return info
        return None

    def _check_arithmetic(self, expr: Expr, *operands: Expr) -> None:
        info = self._enum_operand(*operands)
        if info is not None:
            self.report(
                DiagnosticKind.INVALID_ENUM_VALUE, f"'{expr.op}' cannot be applied to a '{info.name}' value", expr,
            )

    def _rewrite_member_ref(self, expr: SelectorExpr) -> Optional[Expr]:
        info = self._enum_of_type_expr(expr.obj)
        if info is None or not info.usable:
            return None
        if expr.field in info.member_names():
            return self._lowered_ref(expr.obj, enum_member_const(info.name, expr.field), expr)
        if expr.field in (ENUM_ALL_VALUES, ENUM_FROM_STRING):
            return self._lowered_ref(expr.obj, enum_helper_func(info.name, expr.field), expr)
        self.report(DiagnosticKind.INVALID_ENUM_VALUE, f"enum '{info.name}' has no member '{expr.field}'", expr)
        return expr

    def _rewrite_enum_literal(self, expr: CompositeLit, info: EnumInfo) -> Rewritten:
        if not info.usable:
            return [], expr
        if expr.elts:
            self.report(
                DiagnosticKind.INVALID_ENUM_VALUE,
                f"'{info.name}{{...}}' cannot have elements; use a member such as '{info.name}.{info.zero().name}'",
                expr,
            )
            return [], expr
        const = enum_member_const(info.name, info.zero().name)
        tref = expr.type
        if isinstance(tref, NamedTypeRef) and tref.package is not None:
            return [], SelectorExpr(Ident(tref.package, span=expr.span), const, span=expr.span)
        return [], Ident(const, span=expr.span)

    def _check_call(self, expr: CallExpr) -> None:
        callee_t = self.type_of(expr.callee)
        if isinstance(callee_t, TypeValue):
            info = self.usable_info(callee_t.target)
            if info is not None and len(expr.args) == 1:
                self.check_value(info.type, expr.args[0], f"a conversion to '{info.name}'")
            return
        if not isinstance(callee_t, FuncType) or expr.spread:
            return
        for param_t, arg in zip(callee_t.params, expr.args):
            self.check_value(param_t, arg, "a call argument")

    def _check_struct_fields(self, expr: CompositeLit) -> None:
        struct_t = self.resolve_type(expr.type)
        for elt in expr.elts:
            if isinstance(elt, KeyValueExpr) and isinstance(elt.key, Ident):
                field_t = self.typer.struct_field_type(struct_t, elt.key.name)
                self.check_value(field_t, elt.value, f"field '{elt.key.name}'")

    # --- switches ---

    def begin_switch(self, stmt: SwitchStmt) -> None:
        info = self.info_for(self.type_of(stmt.tag)) if stmt.tag is not None else None
        self._switches.append(info if info is not None and info.usable else None)

    def rewrite_case_label(self, label: Expr, tag: Optional[Expr]) -> Expr:
        info = self._switches[-1] if self._switches else None
        if info is not None and isinstance(label, Ident) and self._bare_member(label, info):
            return self._qualified(info.package, enum_member_const(info.name, label.name), label)
        return super().rewrite_case_label(label, tag)

    def _bare_member(self, label: Ident, info: EnumInfo) -> bool:
        if self.scope is not None and self.scope.lookup(label.name) is not None:
            return False
        if label.name not in info.member_names():
            return False
        return resolve_unqualified(self.table, self.site, self.imports, label.name).symbol is None

    def _label_member(self, label: Expr, info: EnumInfo) -> Optional[str]:
        """Member named by a case label, or None if it is not a member reference."""
        bare = _strip_parens(label)
        if isinstance(bare, Ident) and self._bare_member(bare, info):
            return bare.name
        if isinstance(bare, SelectorExpr) and self._enum_of_type_expr(bare.obj) is info:
            return bare.field if bare.field in info.member_names() else None

        # Already lowered: Status_Idle or pkg.Status_Idle
        sym = None
        if isinstance(bare, Ident) and (self.scope is None or self.scope.lookup(bare.name) is None):
            sym = resolve_unqualified(self.table, self.site, self.imports, bare.name).symbol
        elif isinstance(bare, SelectorExpr) and isinstance(bare.obj, Ident) and bare.obj.name in self.imports.aliases:
            sym = resolve_qualified(self.table, self.site, self.imports, bare.obj.name, bare.field).symbol
        if (
                sym is not None
                and sym.synthesized_for == info.name
                and sym.package == info.package
                and isinstance(sym.node, EnumMember)
        ):
            return sym.node.name
        return None

    def end_switch(self, stmt: SwitchStmt, cases: List[CaseClause]) -> List[CaseClause]:
        info = self._switches.pop()
        if info is None:
            return cases

        covered: Dict[str, Expr] = {}
        defaults = 0
        flagged = False
        for clause in stmt.cases:
            if clause.is_default:
                defaults += 1
                if defaults > 1:
                    flagged = True
                    self.report(
                        DiagnosticKind.DUPLICATE_ENUM_CASE,
                        f"switch over enum '{info.name}' has more than one default arm",
                        clause,
                    )
                continue
            for label in clause.exprs:
                member = self._label_member(label, info)
                if member is None:
                    self.check_value(info.type, label, "a case label")
                    flagged = True
                    continue
                if member in covered:
                    flagged = True
                    self.report(
                        DiagnosticKind.DUPLICATE_ENUM_CASE,
                        f"'{info.name}.{member}' is already covered by an earlier case",
                        label,
                    )
                    continue
                covered[member] = label

        if defaults:
            return cases
        missing = [name for name in info.member_names() if name not in covered]
        if missing:
            self.report(
                DiagnosticKind.NON_EXHAUSTIVE_ENUM_SWITCH,
                f"switch over enum '{info.name}' does not cover {', '.join(missing)} and has no default arm",
                stmt,
            )
            return cases
        if flagged:
            return cases
        unreachable = ExprStmt(
            CallExpr(
                Ident("panic", span=stmt.span),
                [_runtime_call("unreachableEnum", [StringLiteral(info.name, span=stmt.span)], stmt)],
                span=stmt.span,
            ),
            span=stmt.span,
        )
        return cases + [CaseClause([], [unreachable], span=stmt.span)]

    # --- declaration lowering ---

    def lower_enum(self, decl: EnumDecl) -> List[TopLevelDecl]:
        info = self.infos.get((self.package, decl.name))
        if info is None or not info.usable or info.definition.node is not decl:
            return [decl]

        span = decl.span
        vis = decl.visibility
        enum_ref = NamedTypeRef(decl.name, span=span)
        out: List[TopLevelDecl] = [TypeDecl(decl.name, NamedTypeRef("int", span=span), visibility=vis, span=span)]

        consts: List[Tuple[str, str]] = []
        for value in info.all_values():
            member = next(m for m in decl.members if m.name == value.name)
            const = enum_member_const(decl.name, value.name)
            consts.append((value.name, const))
            out.append(
                ConstDecl(
                    const, enum_ref, IntLiteral(value.ordinal, span=member.span), visibility=vis, span=member.span,
                )
            )

        all_values = CompositeLit(
            SliceTypeRef(enum_ref, span=span),
            [Ident(const, span=span) for _, const in consts],
            span=span,
        )
        out.append(
            FuncDecl(
                enum_helper_func(decl.name, ENUM_ALL_VALUES),
                params=[],
                results=[Param(None, SliceTypeRef(enum_ref, span=span), span=span)],
                body=Block([ReturnStmt([all_values], span=span)], span=span),
                visibility=vis,
                span=span,
            )
        )

        arg = Ident("name", span=span)
        cases = [
            CaseClause(
                [StringLiteral(name, span=span)],
                [ReturnStmt([Ident(const, span=span), NilLiteral(span=span)], span=span)],
                span=span,
            )
            for name, const in consts
        ]
        miss = ReturnStmt(
            [
                Ident(enum_member_const(decl.name, info.zero().name), span=span),
                _runtime_call("unknownEnumName", [StringLiteral(decl.name, span=span), arg], decl),
            ],
            span=span,
        )
        out.append(
            FuncDecl(
                enum_helper_func(decl.name, ENUM_FROM_STRING),
                params=[Param("name", NamedTypeRef("string", span=span), span=span)],
                results=[Param(None, enum_ref, span=span), Param(None, NamedTypeRef("error", span=span), span=span)],
                body=Block([SwitchStmt(None, arg, cases, span=span), miss], span=span),
                visibility=vis,
                span=span,
            )
        )
        return out


def enum_report(infos: Mapping[Tuple[str, str], EnumInfo]) -> List[str]:
    """One line per enum: state and members in declaration order."""
    lines = []
    for (package, name), info in sorted(infos.items()):
        members = ", ".join(f"{v.name}={v.ordinal}" for v in info.all_values())
        lines.append(f"{package}.{name}: {info.state.name.lower()} [{members}]")
    return lines

