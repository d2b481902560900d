#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

"""
Promise lowering.

A launch used as a value,

    p := go fetch(url)

becomes an explicit handle plus a background task:

    __promise1 := goat.promise(goat.LogUnobserved)
    go func() { __promise1.settle(fetch(__arg2)) }()
    p := __promise1

where every operand that could change before the task runs (locals,
receivers, non-literal arguments) is first copied into a temporary so it is
evaluated in the launching context, as a plain `go` statement would. The task
refers only to the fresh handle, never to `p`. A launch used as a bare statement stays a plain `go` statement.
"""

from __future__ import annotations

from dataclasses import replace
from typing import List, Tuple

from goat_ast import (
    Block, BoolLiteral, CallExpr, DefineStmt, Expr, ExprStmt, FloatLiteral, FuncLit, GoExpr, GoStmt, Ident,
    IntLiteral, NamedTypeRef, NilLiteral, Node, Param, PointerTypeRef, ReturnStmt, SelectorExpr, Stmt,
    StringLiteral, TypeExpr, UnaryOp,
)
from goat_context import UnobservedErrorPolicy
from goat_diagnostics import DiagnosticKind
from goat_internal_error import ice
from goat_resolve import PREDECLARED_VALUES, RUNTIME_NAMESPACE, resolve_unqualified
from goat_rewrite import Rewritten, TreeRewriter
from goat_symbols import SymbolKind
from goat_types import PointerType

PROMISE_TYPE_NAME = "Promise"

_LITERALS = (IntLiteral, FloatLiteral, StringLiteral, BoolLiteral, NilLiteral, TypeExpr, FuncLit)


def _runtime_ref(name: str, node: Node) -> SelectorExpr:
    return SelectorExpr(Ident(RUNTIME_NAMESPACE, span=node.span), name, span=node.span)


class PromiseLowering(TreeRewriter):
    """Stage 6: lower launch-as-value expressions to explicit promises."""

    spill_kind = "arg"
    and_kind = "pand"
    or_kind = "por"

    @property
    def policy(self) -> UnobservedErrorPolicy:
        return self.context.unobserved_error_policy

    # --- statements ---

    def rewrite_stmt(self, stmt: Stmt) -> List[Stmt]:
        if isinstance(stmt, GoStmt):
            self._require_call(stmt.call, stmt)
            self._check_discarded(stmt.call, stmt)
            return super().rewrite_stmt(stmt)
        if isinstance(stmt, ExprStmt) and isinstance(stmt.expr, GoExpr):
            # launch whose handle is dropped: a plain go statement
            self._require_call(stmt.expr.call, stmt.expr)
            self._check_discarded(stmt.expr.call, stmt)
            return super().rewrite_stmt(GoStmt(stmt.expr.call, span=stmt.span))
        return super().rewrite_stmt(stmt)

    def _require_call(self, call: Expr, node: Node) -> None:
        if not isinstance(call, CallExpr):
            raise ice("ICE-0010", f"got {type(call).__name__}", filename=self.filename, node=node)

    def _check_discarded(self, call: Expr, node: Node) -> None:
        if self.policy is not UnobservedErrorPolicy.REJECT:
            return
        shape = self.typer.call_shape(call, self.env())
        if shape and shape[-1] is not None and self.typer.is_error_capable(shape[-1]):
            self.report(
                DiagnosticKind.PROMISE_RESULT_DISCARDED_UNSAFELY,
                "launched call returns an error that nobody observes; "
                f"bind its promise (the unobserved-error policy is '{self.policy.value}')",
                node,
            )

    # --- expressions ---

    def rewrite_expr(self, expr: Expr) -> Rewritten:
        if not isinstance(expr, GoExpr):
            return super().rewrite_expr(expr)
        self._require_call(expr.call, expr)

        if self.blocked_site is not None or self.scope is None:
            return [], self._launch_in_place(expr)

        handle = self.fresh("promise")
        handle_t = self.type_of(expr)
        stmts = self._launch(handle, expr, expr)
        self.declare_temp(handle, handle_t, expr)
        return stmts, Ident(handle, span=expr.span)

    # --- lowering ---

    def _launch(self, handle: str, go: GoExpr, node: Node) -> List[Stmt]:
        span = node.span
        call = go.call
        shape = self.typer.call_shape(call, self.env())

        prefix, task_call = self._capture_operands(call)
        settle = SelectorExpr(Ident(handle, span=span), "settle", span=span)
        if shape == ():
            body: List[Stmt] = [ExprStmt(task_call, span=span), ExprStmt(CallExpr(settle, [], span=span), span=span)]
        else:
            body = [ExprStmt(CallExpr(settle, [task_call], span=span), span=span)]

        construct = DefineStmt(
            [handle],
            [CallExpr(_runtime_ref("promise", node), [_runtime_ref(self.policy.runtime_constant, node)], span=span)],
            span=span,
        )
        task = GoStmt(CallExpr(FuncLit([], [], Block(body, span=span), span=span), [], span=span), span=span)
        return prefix + [construct, task]

    def _launch_in_place(self, go: GoExpr) -> Expr:
        """func() *goat.Promise { ...; return __promiseN }() for sites without a statement list."""
        span = go.span
        saved_blocked = self.blocked_site
        with self.nested_scope():
            self.blocked_site = None
            try:
                handle = self.fresh("promise")
                stmts = self._launch(handle, go, go)
            finally:
                self.blocked_site = saved_blocked
        result = Param(None, PointerTypeRef(NamedTypeRef(PROMISE_TYPE_NAME, RUNTIME_NAMESPACE, span=span), span=span))
        body = Block(stmts + [ReturnStmt([Ident(handle, span=span)], span=span)], span=span)
        return CallExpr(FuncLit([], [result], body, span=span), [], span=span)

    def _capture_operands(self, call: CallExpr) -> Tuple[List[Stmt], CallExpr]:
        """Evaluate callee receiver and arguments now; return the call the task will make."""
        prefix: List[Stmt] = []
        p, callee = self.rewrite_expr(call.callee)
        prefix.extend(p)

        if isinstance(callee, SelectorExpr):
            if not self._is_package_qualified(callee):
                obj = callee.obj
                if not self._is_stable(obj):
                    obj = self._spill_receiver(callee, prefix)
                callee = replace(callee, obj=obj)
        elif not self._is_stable(callee):
            callee = self.spill(callee, prefix)

        args: List[Expr] = []
        for arg in call.args:
            p, new = self.rewrite_expr(arg)
            prefix.extend(p)
            if not self._is_stable(new):
                new = self.spill(new, prefix)
            args.append(new)
        return prefix, replace(call, callee=callee, args=args)

    def _spill_receiver(self, callee: SelectorExpr, prefix: List[Stmt]) -> Expr:
        recv_t = self.type_of(callee.obj)
        method = self.typer.method_symbol(recv_t, callee.field)
        wants_pointer = (
                method is not None
                and method.node.receiver is not None
                and isinstance(method.node.receiver.type, PointerTypeRef)
                and not isinstance(recv_t, PointerType)
        )
        if wants_pointer:
            # the method must see the caller's value, not a copy
            return self.spill(UnaryOp("&", callee.obj, span=callee.obj.span), prefix)
        return self.spill(callee.obj, prefix)

    def _is_package_qualified(self, sel: SelectorExpr) -> bool:
        obj = sel.obj
        if not isinstance(obj, Ident) or self._local(obj.name):
            return False
        return obj.name == RUNTIME_NAMESPACE or obj.name in self.imports.aliases

    def _local(self, name: str) -> bool:
        return self.scope is not None and self.scope.lookup(name) is not None

    def _is_stable(self, expr: Expr) -> bool:
        """Does `expr` denote the same value whenever the task evaluates it?"""
        if isinstance(expr, _LITERALS):
            return True
        if isinstance(expr, Ident):
            if self._local(expr.name):
                return False
            if expr.name in PREDECLARED_VALUES:
                return True
            sym = resolve_unqualified(self.table, self.site, self.imports, expr.name).symbol
            return sym is not None and sym.kind is not SymbolKind.VARIABLE
        if isinstance(expr, SelectorExpr) and self._is_package_qualified(expr):
            return True
        return False

