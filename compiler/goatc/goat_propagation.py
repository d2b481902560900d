#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

"""
Error-propagation desugaring.

    v := f(x)¿

becomes

    v, __err1 := f(x)
    if __err1 != nil {
        return <zero values of the other results>, __err1
    }

Nested uses are hoisted into temporaries in evaluation order:

    total := parse(a)¿ + parse(b)¿

becomes

    __val1, __err2 := parse(a)
    if __err2 != nil { return 0, __err2 }
    __val3, __err4 := parse(b)
    if __err4 != nil { return 0, __err4 }
    total := __val1 + __val3

Each operand is evaluated exactly once and each operator occurrence yields
exactly one check.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from goat_ast import (
    AssignStmt, BinaryOp, Block, BoolLiteral, CallExpr, CompositeLit, DefineStmt, Expr, ExprStmt, Ident, IfStmt,
    IntLiteral, NamedTypeRef, NilLiteral, Node, PropagateExpr, ReturnStmt, SelectorExpr, Stmt, StringLiteral,
    TypeExpr, TypeRef, UnaryOp,
)
from goat_diagnostics import DiagnosticKind
from goat_enums import EnumInfo
from goat_expr_types import enum_member_const
from goat_rewrite import HoistSite, Rewritten, TreeRewriter
from goat_types import (
    ArrayType, BuiltinType, EnumType, NamedType, StructType, Type, format_type, is_nilable, is_numeric,
)


class PropagationDesugarer(TreeRewriter):
    """Stage 5: expand `expr¿` into explicit check-and-return code."""

    spill_kind = "tmp"
    and_kind = "and"
    or_kind = "or"

    def __init__(self, table, typer, context, enum_infos: Optional[Dict[Tuple[str, str], EnumInfo]] = None):
        super().__init__(table, typer, context)
        self.enum_infos = enum_infos or {}

    # --- checks ---

    def _in_error_function(self, node: PropagateExpr) -> bool:
        func = self.func
        if func is None:
            self.report(
                DiagnosticKind.PROPAGATION_OUTSIDE_ERROR_FUNCTION,
                "'¿' can only be used inside a function body",
                node,
            )
            return False
        last = func.result_types[-1] if func.results else None
        if func.results and (last is None or self.typer.is_error_capable(last)):
            return True  # an unresolved result type is given the benefit of the doubt
        detail = f"its last result has type {format_type(last)}" if func.results else "it has no results"
        self.report(
            DiagnosticKind.PROPAGATION_OUTSIDE_ERROR_FUNCTION,
            f"'¿' used in {func.name}, but {detail}; the last result must be an error",
            node,
        )
        return False

    def _valid_operand(self, node: PropagateExpr, value_count: Optional[int]) -> bool:
        shape = self.typer.call_shape(node.expr, self.env())
        if shape is None:
            return True
        if not shape:
            self.report(DiagnosticKind.INVALID_PROPAGATION_OPERAND, "operand of '¿' produces no value", node)
            return False
        last = shape[-1]
        if last is not None and not self.typer.is_error_capable(last):
            self.report(
                DiagnosticKind.INVALID_PROPAGATION_OPERAND,
                f"last result of the '¿' operand has type {format_type(last)}, which is not an error",
                node,
            )
            return False
        if value_count is not None and len(shape) - 1 != value_count:
            self.report(
                DiagnosticKind.INVALID_PROPAGATION_OPERAND,
                f"'¿' operand yields {len(shape) - 1} value(s) where {value_count} are expected",
                node,
            )
            return False
        return True

    def _operand_shape(self, node: PropagateExpr) -> Optional[Tuple[Optional[Type], ...]]:
        return self.typer.call_shape(node.expr, self.env())

    # --- statements ---

    def rewrite_stmt(self, stmt: Stmt) -> List[Stmt]:
        if self.blocked_site is None:
            if isinstance(stmt, DefineStmt) and len(stmt.values) == 1 and isinstance(stmt.values[0], PropagateExpr):
                return self._lower_define(stmt)
            if (
                    isinstance(stmt, AssignStmt)
                    and stmt.op == "="
                    and len(stmt.targets) > 1
                    and len(stmt.values) == 1
                    and isinstance(stmt.values[0], PropagateExpr)
            ):
                return self._lower_multi_assign(stmt)
            if isinstance(stmt, ExprStmt) and isinstance(stmt.expr, PropagateExpr):
                return self._lower_discard(stmt)
        return super().rewrite_stmt(stmt)

    def _lower_define(self, stmt: DefineStmt) -> List[Stmt]:
        prop = stmt.values[0]
        types = self.define_types(stmt.names, stmt.values)
        shape = self._operand_shape(prop)
        if not (self._in_error_function(prop) and self._valid_operand(prop, len(stmt.names))):
            for name, t in zip(stmt.names, types):
                self.declare_local(name, t, stmt)
            return [stmt]

        prefix, inner = self.rewrite_expr(prop.expr)
        err = self.fresh("err")
        self.declare_temp(err, shape[-1] if shape else None, prop)
        for name, t in zip(stmt.names, types):
            self.declare_local(name, t, stmt)
        return prefix + [
            DefineStmt(stmt.names + [err], [inner], span=stmt.span),
            self._check(err, prop),
        ]

    def _lower_multi_assign(self, stmt: AssignStmt) -> List[Stmt]:
        prop = stmt.values[0]
        if not (self._in_error_function(prop) and self._valid_operand(prop, len(stmt.targets))):
            return [stmt]
        shape = self._operand_shape(prop)

        prefix: List[Stmt] = []
        targets: List[Expr] = []
        for target in stmt.targets:
            p, t = self.rewrite_expr(target)
            prefix.extend(p)
            targets.append(t)
        p, inner = self.rewrite_expr(prop.expr)
        prefix.extend(p)

        temps = [self.fresh("val") for _ in stmt.targets]
        err = self.fresh("err")
        for i, name in enumerate(temps):
            self.declare_temp(name, shape[i] if shape else None, prop)
        self.declare_temp(err, shape[-1] if shape else None, prop)
        return prefix + [
            DefineStmt(temps + [err], [inner], span=stmt.span),
            self._check(err, prop),
            AssignStmt(targets, [Ident(name, span=stmt.span) for name in temps], span=stmt.span),
        ]

    def _lower_discard(self, stmt: ExprStmt) -> List[Stmt]:
        prop = stmt.expr
        if not (self._in_error_function(prop) and self._valid_operand(prop, None)):
            return [stmt]
        shape = self._operand_shape(prop)
        discarded = len(shape) - 1 if shape else 0

        prefix, inner = self.rewrite_expr(prop.expr)
        err = self.fresh("err")
        self.declare_temp(err, shape[-1] if shape else None, prop)
        return prefix + [
            DefineStmt(["_"] * discarded + [err], [inner], span=stmt.span),
            self._check(err, prop),
        ]

    # --- expressions ---

    def rewrite_expr(self, expr: Expr) -> Rewritten:
        if not isinstance(expr, PropagateExpr):
            return super().rewrite_expr(expr)
        if not self._in_error_function(expr):
            return [], expr
        if self.blocked_site is not None:
            self.report(
                DiagnosticKind.UNSUPPORTED_PROPAGATION_SITE,
                f"'¿' cannot be used in a {self.blocked_site.value}",
                expr,
            )
            return [], expr
        if not self._valid_operand(expr, 1):
            return [], expr

        shape = self._operand_shape(expr)
        prefix, inner = self.rewrite_expr(expr.expr)
        val = self.fresh("val")
        err = self.fresh("err")
        self.declare_temp(val, shape[0] if shape else None, expr)
        self.declare_temp(err, shape[-1] if shape else None, expr)
        prefix = prefix + [
            DefineStmt([val, err], [inner], span=expr.span),
            self._check(err, expr),
        ]
        return prefix, Ident(val, span=expr.span)

    def on_unhoistable(self, node: Node, site: HoistSite) -> None:
        self.report(DiagnosticKind.UNSUPPORTED_PROPAGATION_SITE, f"'¿' cannot be used in a {site.value}", node)

    # --- lowering helpers ---

    def _check(self, err: str, node: Node) -> IfStmt:
        span = node.span
        zeros = [self.zero_value(p.type, t, node) for p, t in self.func.results[:-1]]
        ret = ReturnStmt(zeros + [Ident(err, span=span)], span=span)
        return IfStmt(
            init=None,
            cond=BinaryOp("!=", Ident(err, span=span), NilLiteral(span=span), span=span),
            then_block=Block([ret], span=span),
            span=span,
        )

    def zero_value(self, tref: TypeRef, t: Optional[Type], node: Node) -> Expr:
        span = node.span
        if isinstance(t, EnumType):
            info = self.enum_infos.get((t.package, t.name))
            if info is not None and info.usable:
                const = enum_member_const(info.name, info.zero().name)
                if isinstance(tref, NamedTypeRef) and tref.package is not None:
                    return SelectorExpr(Ident(tref.package, span=span), const, span=span)
                return Ident(const, span=span)
            return self._new_zero(tref, span)

        underlying = self.typer.underlying(t) if isinstance(t, NamedType) else t
        if is_nilable(underlying):
            return NilLiteral(span=span)
        if is_numeric(underlying):
            return IntLiteral(0, span=span)
        if isinstance(underlying, BuiltinType) and underlying.name == "string":
            return StringLiteral("", span=span)
        if isinstance(underlying, BuiltinType) and underlying.name == "bool":
            return BoolLiteral(False, span=span)
        if isinstance(underlying, (StructType, ArrayType)):
            return CompositeLit(tref, [], span=span)
        return self._new_zero(tref, span)

    @staticmethod
    def _new_zero(tref: TypeRef, span) -> Expr:
        # *new(T) is the zero value of any T
        return UnaryOp("*", CallExpr(Ident("new", span=span), [TypeExpr(tref, span=span)], span=span), span=span)
