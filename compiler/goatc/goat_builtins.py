#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

from __future__ import annotations

from dataclasses import replace
from typing import List, Optional

from goat_ast import CallExpr, Expr, FuncDecl, Ident, Node, SelectorExpr, TopLevelDecl
from goat_builtin_table import BUILTIN_REWRITES, KEYWORD_BUILTINS, BuiltinRewrite, RewriteClass
from goat_diagnostics import DiagnosticKind
from goat_resolve import RUNTIME_NAMESPACE
from goat_rewrite import Rewritten, TreeRewriter, rebuild
from goat_types import NamedType, capabilities, format_type

RESERVED_NAMES = frozenset(BUILTIN_REWRITES) | {RUNTIME_NAMESPACE}


def _describe_capabilities(rule: BuiltinRewrite) -> str:
    return " or ".join(sorted(c.name.lower() for c in rule.capabilities))


def _describe_arity(rule: BuiltinRewrite) -> str:
    if rule.max_args is None:
        return f"at least {rule.min_args}"
    if rule.max_args == rule.min_args:
        return str(rule.min_args)
    return f"{rule.min_args} to {rule.max_args}"


class BuiltinRewriter(TreeRewriter):
    """
    Stage 3: remove the shadowable built-in functions.

        len(s)          -> s.len()
        append(s, x)    -> s.append(x)
        copy(dst, src)  -> src.copy(dst)
        make(T, n)      -> goat.make(T, n)
        panic(v)        -> panic(v)       (reserved keyword, left as is)

    Reports arity and receiver-capability errors, uses of a built-in name as
    a value, and declarations that try to reuse a reserved name. A flagged
    call site is left as written.
    """

    def _is_builtin(self, name: str) -> bool:
        return name in BUILTIN_REWRITES and not (self.scope is not None and self.scope.lookup(name) is not None)

    # --- declarations ---

    def rewrite_decl(self, decl: TopLevelDecl) -> List[TopLevelDecl]:
        name = getattr(decl, "name", None)
        if isinstance(decl, FuncDecl) and decl.receiver is not None:
            if name in KEYWORD_BUILTINS:
                self.report(
                    DiagnosticKind.RESERVED_IDENTIFIER_USED,
                    f"method name '{name}' is a reserved keyword",
                    decl,
                )
        elif name in RESERVED_NAMES:
            self.report(
                DiagnosticKind.RESERVED_IDENTIFIER_USED,
                f"'{name}' is a reserved identifier and cannot be declared",
                decl,
            )
        return super().rewrite_decl(decl)

    def visit_local(self, name: str, node: Node) -> None:
        if name in RESERVED_NAMES:
            self.report(
                DiagnosticKind.RESERVED_IDENTIFIER_USED,
                f"'{name}' is a reserved identifier and cannot be used as a local name",
                node,
            )

    # --- expressions ---

    def rewrite_expr(self, expr: Expr) -> Rewritten:
        if isinstance(expr, CallExpr) and isinstance(expr.callee, Ident) and self._is_builtin(expr.callee.name):
            return self._rewrite_builtin_call(expr)
        if isinstance(expr, Ident) and self._is_builtin(expr.name):
            self.report(
                DiagnosticKind.INVALID_BUILTIN_USAGE,
                f"built-in '{expr.name}' can only be called, not used as a value",
                expr,
            )
            return [], expr
        return super().rewrite_expr(expr)

    def _rewrite_builtin_call(self, expr: CallExpr) -> Rewritten:
        name = expr.callee.name
        rule = BUILTIN_REWRITES[name]
        prefix, args = self.rewrite_operands(expr.args)
        call = rebuild(expr, args=args)

        count = len(expr.args)
        if count < rule.min_args or (rule.max_args is not None and count > rule.max_args):
            self.report(
                DiagnosticKind.INVALID_BUILTIN_USAGE,
                f"'{name}' expects {_describe_arity(rule)} argument(s), got {count}",
                expr,
            )
            return prefix, call

        if rule.rewrite_class is RewriteClass.KEYWORD:
            return prefix, call

        if rule.rewrite_class is RewriteClass.RUNTIME:
            namespace = Ident(RUNTIME_NAMESPACE, span=expr.callee.span)
            return prefix, replace(call, callee=SelectorExpr(namespace, name, span=expr.callee.span))

        idx = rule.receiver_index
        problem = self._capability_problem(rule, expr.args[idx])
        if problem is not None:
            self.report(DiagnosticKind.INVALID_BUILTIN_USAGE, problem, expr)
            return prefix, call

        receiver = args[idx]
        rest = args[:idx] + args[idx + 1:]
        return prefix, CallExpr(
            SelectorExpr(receiver, name, span=expr.callee.span),
            rest,
            spread=expr.spread,
            span=expr.span,
        )

    def _capability_problem(self, rule: BuiltinRewrite, receiver: Expr) -> Optional[str]:
        t = self.type_of(receiver)
        if t is None:
            return None  # unknown receiver type: rewrite unchecked
        underlying = self.typer.underlying(t) if isinstance(t, NamedType) else t
        if underlying is None:
            return None
        if capabilities(underlying) & rule.capabilities:
            return None
        return (
            f"'{rule.name}' needs a {_describe_capabilities(rule)} receiver, "
            f"but the argument has type {format_type(t)}"
        )
