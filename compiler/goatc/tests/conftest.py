#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2026 gwz

from __future__ import annotations

import sys
from pathlib import Path
from typing import List, Optional, Sequence, Union

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from goat_ast import (
    Block, CallExpr, EnumDecl, EnumMember, Expr, ExprStmt, FuncDecl, Ident, Import, IntLiteral, NamedTypeRef, Param,
    SelectorExpr, SourceFile, Span, Stmt, TopLevelDecl, TypeRef,
)
from goat_compilation import CompilationUnit
from goat_context import CompilationContext, LogLevel
from goat_driver import GoatDriver

# --- tree builders ---
#
# Tests build trees directly; there is no parser in this repository.


def span(line: int, col: int = 1, end_col: Optional[int] = None) -> Span:
    return Span(line, col, line, end_col if end_col is not None else col + 1)


def ident(name: str, line: Optional[int] = None) -> Ident:
    return Ident(name, span=span(line) if line is not None else None)


def t(name: str, package: Optional[str] = None) -> NamedTypeRef:
    return NamedTypeRef(name, package)


def call(callee: Union[str, Expr], *args: Expr, line: Optional[int] = None, spread: bool = False) -> CallExpr:
    if isinstance(callee, str):
        callee = Ident(callee)
    return CallExpr(callee, list(args), spread=spread, span=span(line) if line is not None else None)


def sel(obj: Union[str, Expr], field: str, line: Optional[int] = None) -> SelectorExpr:
    if isinstance(obj, str):
        obj = Ident(obj)
    return SelectorExpr(obj, field, span=span(line) if line is not None else None)


def lit(value: int) -> IntLiteral:
    return IntLiteral(value)


def param(name: Optional[str], type_: Union[str, TypeRef], variadic: bool = False) -> Param:
    if isinstance(type_, str):
        type_ = NamedTypeRef(type_)
    return Param(name, type_, variadic)


def result(type_: Union[str, TypeRef]) -> Param:
    return param(None, type_)


def block(stmts: Sequence[Union[Stmt, Expr]]) -> Block:
    """Block of statements; bare expressions become expression statements."""
    return Block([ExprStmt(s) if isinstance(s, Expr) else s for s in stmts])


def func(
        name: str,
        body: Optional[Sequence[Union[Stmt, Expr]]] = (),
        params: Sequence[Param] = (),
        results: Sequence[Union[str, TypeRef, Param]] = (),
        vis: Optional[str] = "package",
        receiver: Optional[Param] = None,
        line: Optional[int] = None,
) -> FuncDecl:
    res = [r if isinstance(r, Param) else result(r) for r in results]
    return FuncDecl(
        name,
        list(params),
        res,
        block(body) if body is not None else None,
        visibility=vis,
        receiver=receiver,
        span=span(line) if line is not None else None,
    )


def enum(name: str, *members: str, vis: Optional[str] = "package", line: Optional[int] = None) -> EnumDecl:
    return EnumDecl(
        name,
        [EnumMember(m, span=span(line + i + 1) if line is not None else None) for i, m in enumerate(members)],
        visibility=vis,
        span=span(line) if line is not None else None,
    )


def source(
        filename: str,
        decls: Sequence[TopLevelDecl],
        package: str = "app",
        imports: Sequence[Import] = (),
) -> SourceFile:
    return SourceFile(package, list(imports), list(decls), filename=filename)


def unit(*files: SourceFile) -> CompilationUnit:
    return CompilationUnit.from_files(list(files))


def quiet_context(**kwargs) -> CompilationContext:
    kwargs.setdefault("log_level", LogLevel.SILENT)
    return CompilationContext(**kwargs)


def analyze(*files: SourceFile, **context_kwargs):
    """Run the whole pipeline over the given files."""
    return GoatDriver(quiet_context(**context_kwargs)).analyze(unit(*files))


def analyze_body(
        stmts: Sequence[Stmt],
        results: Sequence[Union[str, TypeRef, Param]] = (),
        params: Sequence[Param] = (),
        extra: Sequence[TopLevelDecl] = (),
        imports: Sequence[Import] = (),
        **context_kwargs,
):
    """Analyze a single function `f` (plus extra declarations) in one file."""
    f = func("f", stmts, params=params, results=results)
    return analyze(source("main.goat", list(extra) + [f], imports=imports), **context_kwargs)


def lowered_func(result, name: str = "f", filename: str = "main.goat") -> FuncDecl:
    for f in result.lowered.all_files():
        if f.filename != filename:
            continue
        for decl in f.decls:
            if isinstance(decl, FuncDecl) and decl.name == name and decl.receiver is None:
                return decl
    raise AssertionError(f"no function {name} in {filename}")


def lowered_body(result, name: str = "f") -> List[Stmt]:
    return lowered_func(result, name).body.stmts


@pytest.fixture
def context() -> CompilationContext:
    return quiet_context()


def has_error_code(diagnostics, code: str) -> bool:
    """Check if any diagnostic contains the given error code.

    Args:
        diagnostics: Iterable of Diagnostic objects
        code: Error code string like "VIS-0030" or "[VIS-0030]"

    Returns:
        True if any diagnostic message contains the error code
    """
    if not code.startswith("["):
        code = f"[{code}]"
    return any(code in d.message for d in diagnostics)


def codes(diagnostics) -> List[str]:
    return [d.kind.code for d in diagnostics]
