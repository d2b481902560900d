#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

"""
Shared tree walker for the analysis and lowering stages.

Every stage after symbol collection walks all function bodies with the same
bookkeeping: local scopes (for typing), the enclosing function (for result
shapes) and per-file import views. Stages subclass TreeRewriter and override
the node kinds they care about.

Rewriting follows the (prefix statements, expression) scheme: an expression
rewrite may need statements executed before the expression itself, e.g.
`x := f(g()¿)` becomes

    __val1, __err2 := g()
    if __err2 != nil { return ... }
    x := f(__val1)

The walker inserts those statements in front of the enclosing statement,
spilling earlier sibling operands that contain calls so evaluation order is
kept. Nodes are never mutated; when nothing changes, the original node object
is returned so unchanged subtrees are shared.
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import fields, replace
from enum import Enum
from typing import Iterator, List, Optional, Sequence, Tuple

from goat_ast import (
    Node, TypeRef, NamedTypeRef, SliceTypeRef, ArrayTypeRef, MapTypeRef, PointerTypeRef, ChanTypeRef, FuncTypeRef,
    SourceFile, TopLevelDecl, FuncDecl, StructDecl, TypeDecl, EnumDecl, VarDecl, ConstDecl, Param,
    Stmt, Block, VarStmt, DefineStmt, AssignStmt, ExprStmt, IfStmt, ForStmt, RangeStmt, CaseClause, SwitchStmt,
    ReturnStmt, GoStmt, DeferStmt, BreakStmt, ContinueStmt,
    Expr, IntLiteral, FloatLiteral, StringLiteral, BoolLiteral, NilLiteral, Ident, SelectorExpr, CallExpr,
    IndexExpr, UnaryOp, BinaryOp, ParenExpr, KeyValueExpr, CompositeLit, FuncLit, TypeExpr, PropagateExpr, GoExpr,
)
from goat_compilation import CompilationUnit, Package
from goat_context import CompilationContext
from goat_diagnostics import Diagnostic, DiagnosticKind, diag_from_node
from goat_expr_types import ExpressionTyper, TypingEnv
from goat_internal_error import ice
from goat_locals import FunctionContext, LocalKind, Scope
from goat_resolve import FileImports
from goat_symbols import Site, SymbolTable
from goat_types import (
    Type, ArrayType, BuiltinType, ChanType, MapType, NamedType, PointerType, SliceType, get_builtin_type,
)

Rewritten = Tuple[List[Stmt], Expr]


class HoistSite(Enum):
    """Positions that cannot receive hoisted statements."""
    PACKAGE_INIT = "package-level initializer"
    FOR_POST = "for-loop post statement"
    CASE_LABEL = "switch case label"


def same_items(new: Sequence[object], old: Sequence[object]) -> bool:
    return len(new) == len(old) and all(a is b for a, b in zip(new, old))


def rebuild(node: Node, **changes: object) -> Node:
    """replace() that returns `node` itself when every change is identical."""
    for name, value in changes.items():
        old = getattr(node, name)
        if isinstance(value, list) and isinstance(old, list):
            if not same_items(value, old):
                break
        elif value is not old:
            break
    else:
        return node
    return replace(node, **changes)


def child_exprs(node: Node) -> Iterator[Expr]:
    """Direct sub-expressions of an expression node (type refs excluded)."""
    for f in fields(node):
        if f.name == "span":
            continue
        value = getattr(node, f.name)
        if isinstance(value, Expr):
            yield value
        elif isinstance(value, list):
            for item in value:
                if isinstance(item, Expr):
                    yield item


def contains_call(expr: Optional[Expr]) -> bool:
    """Does evaluating `expr` run code (a call, launch, propagation or receive)?"""
    if expr is None or isinstance(expr, FuncLit):
        return False
    if isinstance(expr, (CallExpr, GoExpr, PropagateExpr)):
        return True
    if isinstance(expr, UnaryOp) and expr.op == "<-":
        return True
    return any(contains_call(c) for c in child_exprs(expr))


def named_type_refs(tref: Optional[TypeRef]) -> Iterator[NamedTypeRef]:
    if tref is None:
        return
    if isinstance(tref, NamedTypeRef):
        yield tref
    elif isinstance(tref, (SliceTypeRef, ArrayTypeRef, PointerTypeRef, ChanTypeRef)):
        yield from named_type_refs(tref.elem)
    elif isinstance(tref, MapTypeRef):
        yield from named_type_refs(tref.key)
        yield from named_type_refs(tref.value)
    elif isinstance(tref, FuncTypeRef):
        for part in tref.params + tref.results:
            yield from named_type_refs(part)


class TreeRewriter:
    """
    Base stage: walks every declaration and function body of a compilation
    unit, tracking scopes, and rebuilds the tree bottom-up.
    """

    # Temporary name kinds; each stage picks its own so temporaries of
    # different stages never collide inside one function.
    spill_kind = "tmp"
    and_kind = "and"
    or_kind = "or"

    def __init__(self, table: SymbolTable, typer: ExpressionTyper, context: CompilationContext):
        self.table = table
        self.typer = typer
        self.context = context
        self.diagnostics: List[Diagnostic] = []

        self.package = ""
        self.filename: Optional[str] = None
        self.site = Site("", None)
        self.imports = FileImports()
        self.scope: Optional[Scope] = None
        self.func: Optional[FunctionContext] = None
        self.blocked_site: Optional[HoistSite] = None
        self._temp_counter = 0

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def run(self, cu: CompilationUnit) -> CompilationUnit:
        packages = {}
        for path in sorted(cu.packages):
            pkg = cu.packages[path]
            packages[path] = Package(path=path, files=[self.rewrite_file(f) for f in pkg.sorted_files()])
        return CompilationUnit(packages=packages, entry=cu.entry)

    def rewrite_file(self, source: SourceFile) -> SourceFile:
        self.package = source.package
        self.filename = source.filename
        self.site = Site(source.package, source.filename)
        self.imports = FileImports.of(source)

        decls: List[TopLevelDecl] = []
        for decl in source.decls:
            self._temp_counter = 0
            decls.extend(self.rewrite_decl(decl))
        return rebuild(source, decls=decls)

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def check_stmt(self, stmt: Stmt) -> None:
        """Called for every statement before it is rewritten."""

    def visit_type_ref(self, tref: Optional[TypeRef]) -> None:
        """Called for every type reference in declarations and bodies."""

    def visit_local(self, name: str, node: Node) -> None:
        """Called for every user-named local binding (params, results, locals)."""

    def on_unhoistable(self, node: Node, site: HoistSite) -> None:
        raise ice("ICE-0050", f"{type(node).__name__} in {site.value}", filename=self.filename, node=node)

    def rewrite_case_label(self, label: Expr, tag: Optional[Expr]) -> Expr:
        return self.rewrite_in_place(label, HoistSite.CASE_LABEL, label)

    def begin_switch(self, stmt: SwitchStmt) -> None:
        """Called inside the switch scope (after init and tag) before its cases."""

    def end_switch(self, stmt: SwitchStmt, cases: List[CaseClause]) -> List[CaseClause]:
        """Called with the rewritten cases; may return an amended list."""
        return cases

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    def env(self) -> TypingEnv:
        return TypingEnv(self.scope, self.site, self.imports)

    def type_of(self, expr: Optional[Expr]) -> Optional[Type]:
        return self.typer.infer(expr, self.env())

    def resolve_type(self, tref: Optional[TypeRef]) -> Optional[Type]:
        return self.typer.resolve_type_ref(tref, self.site, self.imports)

    def report(self, kind: DiagnosticKind, message: str, node: Optional[Node]) -> None:
        self.diagnostics.append(
            diag_from_node(kind, message, package=self.package, filename=self.filename, node=node)
        )

    def fresh(self, kind: str) -> str:
        while True:
            self._temp_counter += 1
            name = f"__{kind}{self._temp_counter}"
            if self.scope is None or self.scope.lookup(name) is None:
                return name

    def declare_temp(self, name: str, type_: Optional[Type], node: Node) -> None:
        if self.scope is not None:
            self.scope.declare(name, LocalKind.LOCAL, type_, node)

    def declare_local(self, name: str, type_: Optional[Type], node: Node) -> None:
        if name == "_" or self.scope is None:
            return
        self.scope.declare(name, LocalKind.LOCAL, type_, node)
        self.visit_local(name, node)

    def spill(self, expr: Expr, prefix: List[Stmt]) -> Ident:
        """Evaluate `expr` into a fresh temporary now; return the temporary."""
        name = self.fresh(self.spill_kind)
        self.declare_temp(name, self.type_of(expr), expr)
        prefix.append(DefineStmt([name], [expr], span=expr.span))
        return Ident(name, span=expr.span)

    @contextmanager
    def nested_scope(self) -> Iterator[Scope]:
        saved = self.scope
        self.scope = Scope(parent=saved)
        try:
            yield self.scope
        finally:
            self.scope = saved

    def rewrite_in_place(self, expr: Expr, site: HoistSite, node: Node) -> Expr:
        """Rewrite an expression at a position where no statement can be inserted."""
        saved = self.blocked_site
        self.blocked_site = site
        try:
            prefix, new = self.rewrite_expr(expr)
        finally:
            self.blocked_site = saved
        if prefix:
            self.on_unhoistable(node, site)
            return expr
        return new

    # ------------------------------------------------------------------
    # Declarations
    # ------------------------------------------------------------------

    def rewrite_decl(self, decl: TopLevelDecl) -> List[TopLevelDecl]:
        if isinstance(decl, FuncDecl):
            return [self.rewrite_func_decl(decl)]
        if isinstance(decl, (VarDecl, ConstDecl)):
            self.visit_type_ref(decl.type)
            if decl.value is None:
                return [decl]
            value = self.rewrite_in_place(decl.value, HoistSite.PACKAGE_INIT, decl)
            return [rebuild(decl, value=value)]
        if isinstance(decl, StructDecl):
            for fd in decl.fields:
                self.visit_type_ref(fd.type)
            return [decl]
        if isinstance(decl, TypeDecl):
            self.visit_type_ref(decl.type)
            return [decl]
        if isinstance(decl, EnumDecl):
            return [decl]
        raise ice("ICE-0030", f"declaration {type(decl).__name__}", filename=self.filename, node=decl)

    def rewrite_func_decl(self, decl: FuncDecl) -> FuncDecl:
        if decl.receiver is not None:
            self.visit_type_ref(decl.receiver.type)
        for p in decl.params + decl.results:
            self.visit_type_ref(p.type)

        self.scope = Scope(parent=None)
        try:
            if decl.receiver is not None:
                self._declare_param(decl.receiver, LocalKind.RECEIVER)
            for p in decl.params:
                self._declare_param(p, LocalKind.PARAM)
            results = self._declare_results(decl.results)
            if decl.body is None:
                return decl
            self.func = FunctionContext(decl.name, results, decl)
            body = self._rewrite_body(decl.body)
        finally:
            self.scope = None
            self.func = None
        return rebuild(decl, body=body)

    def rewrite_func_lit(self, lit: FuncLit) -> FuncLit:
        for p in lit.params + lit.results:
            self.visit_type_ref(p.type)

        saved = (self.scope, self.func, self.blocked_site)
        self.scope = Scope(parent=self.scope)
        self.blocked_site = None
        try:
            for p in lit.params:
                self._declare_param(p, LocalKind.PARAM)
            results = self._declare_results(lit.results)
            self.func = FunctionContext("func literal", results, lit)
            body = self._rewrite_body(lit.body)
        finally:
            self.scope, self.func, self.blocked_site = saved
        return rebuild(lit, body=body)

    def _declare_param(self, p: Param, kind: LocalKind) -> None:
        if not p.name or p.name == "_":
            return
        self.scope.declare(p.name, kind, self.typer.param_type(p, self.site, self.imports), p)
        self.visit_local(p.name, p)

    def _declare_results(self, results: List[Param]) -> List[Tuple[Param, Optional[Type]]]:
        typed = []
        for p in results:
            t = self.resolve_type(p.type)
            typed.append((p, t))
            if p.name and p.name != "_":
                self.scope.declare(p.name, LocalKind.RESULT, t, p)
                self.visit_local(p.name, p)
        return typed

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def _rewrite_body(self, block: Block) -> Block:
        return rebuild(block, stmts=self.rewrite_stmts(block.stmts))

    def rewrite_block(self, block: Block) -> Block:
        with self.nested_scope():
            return self._rewrite_body(block)

    def rewrite_stmts(self, stmts: List[Stmt]) -> List[Stmt]:
        out: List[Stmt] = []
        for stmt in stmts:
            out.extend(self.rewrite_stmt(stmt))
        return out

    def rewrite_stmt(self, stmt: Stmt) -> List[Stmt]:
        """Return the statements replacing `stmt` (usually just one)."""
        self.check_stmt(stmt)

        if isinstance(stmt, Block):
            return [self.rewrite_block(stmt)]
        if isinstance(stmt, VarStmt):
            return self._rewrite_var(stmt)
        if isinstance(stmt, DefineStmt):
            types = self.define_types(stmt.names, stmt.values)
            prefix, values = self.rewrite_operands(stmt.values)
            for name, t in zip(stmt.names, types):
                self.declare_local(name, t, stmt)
            return prefix + [rebuild(stmt, values=values)]
        if isinstance(stmt, AssignStmt):
            target_prefix, targets = self._rewrite_each(stmt.targets)
            prefix, values = self.rewrite_operands(stmt.values)
            return target_prefix + prefix + [rebuild(stmt, targets=targets, values=values)]
        if isinstance(stmt, ExprStmt):
            prefix, expr = self.rewrite_expr(stmt.expr)
            return prefix + [rebuild(stmt, expr=expr)]
        if isinstance(stmt, IfStmt):
            return self._rewrite_if(stmt)
        if isinstance(stmt, ForStmt):
            return self._rewrite_for(stmt)
        if isinstance(stmt, RangeStmt):
            return self._rewrite_range(stmt)
        if isinstance(stmt, SwitchStmt):
            return self._rewrite_switch(stmt)
        if isinstance(stmt, ReturnStmt):
            prefix, values = self.rewrite_operands(stmt.values)
            return prefix + [rebuild(stmt, values=values)]
        if isinstance(stmt, (GoStmt, DeferStmt)):
            prefix, call = self.rewrite_expr(stmt.call)
            return prefix + [rebuild(stmt, call=call)]
        if isinstance(stmt, (BreakStmt, ContinueStmt)):
            return [stmt]
        raise ice("ICE-0030", f"statement {type(stmt).__name__}", filename=self.filename, node=stmt)

    def _rewrite_var(self, stmt: VarStmt) -> List[Stmt]:
        self.visit_type_ref(stmt.type)
        declared = self.resolve_type(stmt.type) if stmt.type is not None else self.type_of(stmt.value)
        prefix: List[Stmt] = []
        value = stmt.value
        if value is not None:
            prefix, value = self.rewrite_expr(value)
        self.declare_local(stmt.name, declared, stmt)
        return prefix + [rebuild(stmt, value=value)]

    def define_types(self, names: List[str], values: List[Expr]) -> List[Optional[Type]]:
        if len(values) == len(names):
            return [self.type_of(v) for v in values]
        if len(values) == 1:
            shape = self.typer.call_shape(values[0], self.env())
            if shape is not None and len(shape) == len(names):
                return list(shape)
        return [None] * len(names)

    def _rewrite_if(self, stmt: IfStmt) -> List[Stmt]:
        with self.nested_scope():
            init_stmts = self.rewrite_stmt(stmt.init) if stmt.init is not None else []
            cond_prefix, cond = self.rewrite_expr(stmt.cond)
            then_block = self.rewrite_block(stmt.then_block)
            else_stmt = self._rewrite_else(stmt.else_stmt)

        if len(init_stmts) <= 1 and not cond_prefix:
            init = init_stmts[0] if init_stmts else None
            return [rebuild(stmt, init=init, cond=cond, then_block=then_block, else_stmt=else_stmt)]
        lowered = replace(stmt, init=None, cond=cond, then_block=then_block, else_stmt=else_stmt)
        if stmt.init is None:
            return cond_prefix + [lowered]
        return [Block(init_stmts + cond_prefix + [lowered], span=stmt.span)]

    def _rewrite_else(self, else_stmt: Optional[Stmt]) -> Optional[Stmt]:
        if else_stmt is None:
            return None
        if isinstance(else_stmt, Block):
            return self.rewrite_block(else_stmt)
        stmts = self.rewrite_stmt(else_stmt)
        if len(stmts) == 1:
            return stmts[0]
        return Block(stmts, span=else_stmt.span)

    def _rewrite_for(self, stmt: ForStmt) -> List[Stmt]:
        with self.nested_scope():
            init_stmts = self.rewrite_stmt(stmt.init) if stmt.init is not None else []
            cond_prefix: List[Stmt] = []
            cond = stmt.cond
            if cond is not None:
                cond_prefix, cond = self.rewrite_expr(cond)
            post = self._rewrite_post(stmt.post)
            body = self.rewrite_block(stmt.body)

        if cond_prefix:
            # The condition runs at the top of every iteration, after post.
            exit_check = IfStmt(
                init=None,
                cond=UnaryOp("!", ParenExpr(cond, span=cond.span), span=cond.span),
                then_block=Block([BreakStmt(span=cond.span)], span=cond.span),
                span=cond.span,
            )
            body = Block(cond_prefix + [exit_check] + body.stmts, span=body.span)
            cond = None

        if len(init_stmts) <= 1:
            init = init_stmts[0] if init_stmts else None
            return [rebuild(stmt, init=init, cond=cond, post=post, body=body)]
        lowered = replace(stmt, init=None, cond=cond, post=post, body=body)
        return [Block(init_stmts + [lowered], span=stmt.span)]

    def _rewrite_post(self, post: Optional[Stmt]) -> Optional[Stmt]:
        if post is None:
            return None
        saved = self.blocked_site
        self.blocked_site = HoistSite.FOR_POST
        try:
            stmts = self.rewrite_stmt(post)
        finally:
            self.blocked_site = saved
        if len(stmts) != 1:
            self.on_unhoistable(post, HoistSite.FOR_POST)
            return post
        return stmts[0]

    def _rewrite_range(self, stmt: RangeStmt) -> List[Stmt]:
        key_t, value_t = self.range_types(stmt.expr)
        prefix, expr = self.rewrite_expr(stmt.expr)
        with self.nested_scope():
            if stmt.define:
                if stmt.key:
                    self.declare_local(stmt.key, key_t, stmt)
                if stmt.value:
                    self.declare_local(stmt.value, value_t, stmt)
            body = self.rewrite_block(stmt.body)
        return prefix + [rebuild(stmt, expr=expr, body=body)]

    def range_types(self, expr: Expr) -> Tuple[Optional[Type], Optional[Type]]:
        t = self.type_of(expr)
        if isinstance(t, NamedType):
            t = self.typer.underlying(t)
        if isinstance(t, PointerType) and isinstance(t.elem, ArrayType):
            t = t.elem
        int_t = get_builtin_type("int")
        if isinstance(t, (SliceType, ArrayType)):
            return int_t, t.elem
        if isinstance(t, MapType):
            return t.key, t.value
        if isinstance(t, ChanType):
            return t.elem, None
        if isinstance(t, BuiltinType) and t.name == "string":
            return int_t, get_builtin_type("rune")
        return None, None

    def _rewrite_switch(self, stmt: SwitchStmt) -> List[Stmt]:
        with self.nested_scope():
            init_stmts = self.rewrite_stmt(stmt.init) if stmt.init is not None else []
            tag_prefix: List[Stmt] = []
            tag = stmt.tag
            if tag is not None:
                tag_prefix, tag = self.rewrite_expr(tag)
            self.begin_switch(stmt)
            cases = [self.rewrite_case(clause, stmt.tag) for clause in stmt.cases]
            cases = self.end_switch(stmt, cases)

        if len(init_stmts) <= 1 and not tag_prefix:
            init = init_stmts[0] if init_stmts else None
            return [rebuild(stmt, init=init, tag=tag, cases=cases)]
        lowered = replace(stmt, init=None, tag=tag, cases=cases)
        if stmt.init is None:
            return tag_prefix + [lowered]
        return [Block(init_stmts + tag_prefix + [lowered], span=stmt.span)]

    def rewrite_case(self, clause: CaseClause, tag: Optional[Expr]) -> CaseClause:
        exprs = [self.rewrite_case_label(e, tag) for e in clause.exprs]
        with self.nested_scope():
            body = self.rewrite_stmts(clause.body)
        return rebuild(clause, exprs=exprs, body=body)

    # ------------------------------------------------------------------
    # Expressions
    # ------------------------------------------------------------------

    def _rewrite_each(self, exprs: List[Expr]) -> Tuple[List[Stmt], List[Expr]]:
        prefix: List[Stmt] = []
        out: List[Expr] = []
        for expr in exprs:
            p, new = self.rewrite_expr(expr)
            prefix.extend(p)
            out.append(new)
        return prefix, out

    def rewrite_operands(self, exprs: List[Expr]) -> Tuple[List[Stmt], List[Expr]]:
        """
        Rewrite sibling operands left to right.

        When an operand needs hoisted statements, every earlier operand that
        runs code is first spilled into a temporary so it is still evaluated
        before the hoisted statements.
        """
        prefix: List[Stmt] = []
        out: List[Expr] = []
        for expr in exprs:
            p, new = self.rewrite_expr(expr)
            if p:
                for i, prev in enumerate(out):
                    if contains_call(prev) and self._single_valued(prev):
                        out[i] = self.spill(prev, prefix)
                prefix.extend(p)
            out.append(new)
        return prefix, out

    def _single_valued(self, expr: Expr) -> bool:
        shape = self.typer.call_shape(expr, self.env())
        return shape is None or len(shape) == 1

    def rewrite_expr(self, expr: Expr) -> Rewritten:
        """Return (prefix statements, rewritten expression)."""
        if isinstance(expr, (IntLiteral, FloatLiteral, StringLiteral, BoolLiteral, NilLiteral, Ident)):
            return [], expr
        if isinstance(expr, SelectorExpr):
            prefix, obj = self.rewrite_expr(expr.obj)
            return prefix, rebuild(expr, obj=obj)
        if isinstance(expr, CallExpr):
            prefix, operands = self.rewrite_operands([expr.callee] + expr.args)
            return prefix, rebuild(expr, callee=operands[0], args=operands[1:])
        if isinstance(expr, IndexExpr):
            prefix, (obj, index) = self.rewrite_operands([expr.obj, expr.index])
            return prefix, rebuild(expr, obj=obj, index=index)
        if isinstance(expr, UnaryOp):
            prefix, operand = self.rewrite_expr(expr.operand)
            return prefix, rebuild(expr, operand=operand)
        if isinstance(expr, BinaryOp):
            if expr.op in ("&&", "||"):
                return self._rewrite_logical(expr)
            prefix, (left, right) = self.rewrite_operands([expr.left, expr.right])
            return prefix, rebuild(expr, left=left, right=right)
        if isinstance(expr, ParenExpr):
            prefix, inner = self.rewrite_expr(expr.inner)
            return prefix, rebuild(expr, inner=inner)
        if isinstance(expr, KeyValueExpr):
            prefix, (key, value) = self.rewrite_operands([expr.key, expr.value])
            return prefix, rebuild(expr, key=key, value=value)
        if isinstance(expr, CompositeLit):
            return self._rewrite_composite(expr)
        if isinstance(expr, FuncLit):
            return [], self.rewrite_func_lit(expr)
        if isinstance(expr, TypeExpr):
            self.visit_type_ref(expr.type_ref)
            return [], expr
        if isinstance(expr, PropagateExpr):
            prefix, inner = self.rewrite_expr(expr.expr)
            return prefix, rebuild(expr, expr=inner)
        if isinstance(expr, GoExpr):
            prefix, call = self.rewrite_expr(expr.call)
            return prefix, rebuild(expr, call=call)
        raise ice("ICE-0030", f"expression {type(expr).__name__}", filename=self.filename, node=expr)

    def _rewrite_logical(self, expr: BinaryOp) -> Rewritten:
        left_prefix, left = self.rewrite_expr(expr.left)
        right_prefix, right = self.rewrite_expr(expr.right)
        if not right_prefix:
            return left_prefix, rebuild(expr, left=left, right=right)

        # The right operand's statements may only run when it is evaluated:
        #   __andN := left; if __andN { <right prefix>; __andN = right }
        name = self.fresh(self.and_kind if expr.op == "&&" else self.or_kind)
        self.declare_temp(name, get_builtin_type("bool"), expr)
        flag = Ident(name, span=expr.span)
        test: Expr = flag if expr.op == "&&" else UnaryOp("!", flag, span=expr.span)
        stmts = left_prefix + [
            DefineStmt([name], [left], span=expr.span),
            IfStmt(
                init=None,
                cond=test,
                then_block=Block(right_prefix + [AssignStmt([flag], [right], span=expr.span)], span=expr.span),
                span=expr.span,
            ),
        ]
        return stmts, flag

    def _rewrite_composite(self, expr: CompositeLit) -> Rewritten:
        self.visit_type_ref(expr.type)
        keyed = self.has_value_keys(expr)

        flat: List[Expr] = []
        for elt in expr.elts:
            if isinstance(elt, KeyValueExpr):
                if keyed:
                    flat.append(elt.key)
                flat.append(elt.value)
            else:
                flat.append(elt)
        prefix, rewritten = self.rewrite_operands(flat)

        it = iter(rewritten)
        elts: List[Expr] = []
        for elt in expr.elts:
            if isinstance(elt, KeyValueExpr):
                key = next(it) if keyed else elt.key
                elts.append(rebuild(elt, key=key, value=next(it)))
            else:
                elts.append(next(it))
        return prefix, rebuild(expr, elts=elts)

    def has_value_keys(self, lit: CompositeLit) -> bool:
        """Are element keys expressions (maps, slices, arrays) rather than field names?"""
        t = self.resolve_type(lit.type)
        if isinstance(t, NamedType):
            t = self.typer.underlying(t)
        return isinstance(t, (MapType, SliceType, ArrayType))
