#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

from goat_ast import (
    TypeRef, NamedTypeRef, SliceTypeRef, ArrayTypeRef, MapTypeRef, PointerTypeRef, ChanTypeRef, FuncTypeRef,
    FuncDecl, StructDecl, TypeDecl, EnumDecl, VarDecl, ConstDecl, Param,
    Expr, IntLiteral, FloatLiteral, StringLiteral, BoolLiteral, NilLiteral, Ident, SelectorExpr, CallExpr, IndexExpr,
    UnaryOp, BinaryOp, ParenExpr, CompositeLit, FuncLit, TypeExpr, PropagateExpr, GoExpr,
)
from goat_builtin_table import BUILTIN_REWRITES, ELIMINATED_BUILTINS, RewriteClass
from goat_locals import Scope
from goat_resolve import (
    FileImports, PREDECLARED_VALUES, RUNTIME_NAMESPACE, resolve_qualified, resolve_unqualified,
)
from goat_symbols import Site, Symbol, SymbolKind, SymbolTable
from goat_types import (
    GOAT_PRIMITIVE_TYPES,
    Type,
    BuiltinType,
    NamedType,
    StructType,
    EnumType,
    SliceType,
    ArrayType,
    MapType,
    PointerType,
    ChanType,
    FuncType,
    TupleType,
    PromiseType,
    TypeValue,
    get_builtin_type,
    get_nil_type,
    is_error_type,
    result_shape,
)

_COMPARISON_OPS = ("==", "!=", "<", "<=", ">", ">=", "&&", "||")

ENUM_ALL_VALUES = "allValues"
ENUM_FROM_STRING = "fromString"


def enum_member_const(enum_name: str, member: str) -> str:
    """Name of the constant a lowered enum member becomes."""
    return f"{enum_name}_{member}"


def enum_helper_func(enum_name: str, helper: str) -> str:
    """Name of a lowered enum helper function (allValues / fromString)."""
    return f"{enum_name}_{helper}"


@dataclass
class TypingEnv:
    """Where an expression is being typed: locals, site and the file's imports."""
    scope: Optional[Scope]
    site: Site
    imports: FileImports

    def local(self, name: str):
        return self.scope.lookup(name) if self.scope is not None else None


class ExpressionTyper:
    """
    Best-effort expression typing over the published symbol table.

    Returns None whenever a type cannot be determined; callers treat an
    unknown type as "do not check", never as an error. Declaration types are
    memoized per symbol.
    """

    def __init__(self, table: SymbolTable, imports_by_file: Dict[Optional[str], FileImports]):
        self.table = table
        self.imports_by_file = imports_by_file
        self._symbol_types: Dict[Symbol, Optional[Type]] = {}
        self._in_progress: Set[Symbol] = set()

    # ------------------------------------------------------------------
    # Type references
    # ------------------------------------------------------------------

    def resolve_type_ref(self, tref: Optional[TypeRef], site: Site, imports: FileImports) -> Optional[Type]:
        if tref is None:
            return None
        if isinstance(tref, NamedTypeRef):
            if tref.package is None and tref.name in GOAT_PRIMITIVE_TYPES:
                return get_builtin_type(tref.name)
            if tref.package is not None:
                res = resolve_qualified(self.table, site, imports, tref.package, tref.name)
            else:
                res = resolve_unqualified(self.table, site, imports, tref.name)
            if res.symbol is None or res.symbol.kind is not SymbolKind.TYPE:
                return None
            return self.type_of_type_symbol(res.symbol)
        if isinstance(tref, SliceTypeRef):
            elem = self.resolve_type_ref(tref.elem, site, imports)
            return SliceType(elem) if elem is not None else None
        if isinstance(tref, ArrayTypeRef):
            elem = self.resolve_type_ref(tref.elem, site, imports)
            return ArrayType(tref.length, elem) if elem is not None else None
        if isinstance(tref, MapTypeRef):
            key = self.resolve_type_ref(tref.key, site, imports)
            value = self.resolve_type_ref(tref.value, site, imports)
            if key is None or value is None:
                return None
            return MapType(key, value)
        if isinstance(tref, PointerTypeRef):
            elem = self.resolve_type_ref(tref.elem, site, imports)
            return PointerType(elem) if elem is not None else None
        if isinstance(tref, ChanTypeRef):
            elem = self.resolve_type_ref(tref.elem, site, imports)
            return ChanType(elem) if elem is not None else None
        if isinstance(tref, FuncTypeRef):
            return FuncType(
                tuple(self.resolve_type_ref(p, site, imports) for p in tref.params),
                tuple(self.resolve_type_ref(r, site, imports) for r in tref.results),
            )
        return None

    def type_of_type_symbol(self, sym: Symbol) -> Optional[Type]:
        node = sym.node
        if isinstance(node, StructDecl):
            return StructType(sym.package, sym.name)
        if isinstance(node, EnumDecl):
            return EnumType(sym.package, sym.name)
        if isinstance(node, TypeDecl):
            return NamedType(sym.package, sym.name)
        return None

    def underlying(self, t: Optional[Type]) -> Optional[Type]:
        """Unwrap `type X Y` chains down to a non-named type."""
        seen: Set[Type] = set()
        while isinstance(t, NamedType) and t not in seen:
            seen.add(t)
            sym = self._type_symbol(t.package, t.name)
            if sym is None or not isinstance(sym.node, TypeDecl):
                return None
            t = self.resolve_type_ref(sym.node.type, sym.site, self._imports_of(sym))
        if isinstance(t, NamedType):
            return None  # cyclic declaration
        return t

    def _type_symbol(self, package: str, name: str) -> Optional[Symbol]:
        for sym in self.table.candidates(package, name):
            if sym.kind is SymbolKind.TYPE and sym.synthesized_for is None:
                return sym
        return None

    def _imports_of(self, sym: Symbol) -> FileImports:
        return self.imports_by_file.get(sym.filename, FileImports())

    # ------------------------------------------------------------------
    # Declarations
    # ------------------------------------------------------------------

    def symbol_type(self, sym: Symbol) -> Optional[Type]:
        if sym in self._symbol_types:
            return self._symbol_types[sym]
        if sym in self._in_progress:
            return None  # initializer cycle; stay unknown
        self._in_progress.add(sym)
        try:
            result = self._compute_symbol_type(sym)
        finally:
            self._in_progress.discard(sym)
        self._symbol_types[sym] = result
        return result

    def _compute_symbol_type(self, sym: Symbol) -> Optional[Type]:
        if sym.synthesized_for is not None:
            return self._synthesized_type(sym)
        node = sym.node
        site, imports = sym.site, self._imports_of(sym)
        if sym.kind is SymbolKind.TYPE:
            target = self.type_of_type_symbol(sym)
            return TypeValue(target) if target is not None else None
        if isinstance(node, FuncDecl):
            return self.func_type(node.params, node.results, site, imports)
        if isinstance(node, (VarDecl, ConstDecl)):
            if node.type is not None:
                return self.resolve_type_ref(node.type, site, imports)
            if node.value is not None:
                return self.infer(node.value, TypingEnv(None, site, imports))
        return None

    def _synthesized_type(self, sym: Symbol) -> Optional[Type]:
        enum_t = EnumType(sym.package, sym.synthesized_for)
        if sym.name == enum_helper_func(sym.synthesized_for, ENUM_ALL_VALUES):
            return FuncType((), (SliceType(enum_t),))
        if sym.name == enum_helper_func(sym.synthesized_for, ENUM_FROM_STRING):
            return FuncType((get_builtin_type("string"),), (enum_t, get_builtin_type("error")))
        return enum_t

    def func_type(self, params: List[Param], results: List[Param], site: Site, imports: FileImports) -> FuncType:
        return FuncType(
            tuple(self.param_type(p, site, imports) for p in params),
            tuple(self.resolve_type_ref(r.type, site, imports) for r in results),
        )

    def param_type(self, p: Param, site: Site, imports: FileImports) -> Optional[Type]:
        t = self.resolve_type_ref(p.type, site, imports)
        if p.variadic and t is not None:
            return SliceType(t)
        return t

    def method_type(self, recv: Optional[Type], name: str) -> Optional[FuncType]:
        sym = self.method_symbol(recv, name)
        if sym is None or not isinstance(sym.node, FuncDecl):
            return None
        return self.func_type(sym.node.params, sym.node.results, sym.site, self._imports_of(sym))

    def method_symbol(self, recv: Optional[Type], name: str) -> Optional[Symbol]:
        if isinstance(recv, PointerType):
            recv = recv.elem
        if isinstance(recv, (NamedType, StructType, EnumType)):
            return self.table.method(recv.package, recv.name, name)
        return None

    def struct_field_type(self, t: Optional[Type], field_name: str) -> Optional[Type]:
        if isinstance(t, PointerType):
            t = t.elem
        if not isinstance(t, StructType):
            return None
        sym = self._type_symbol(t.package, t.name)
        if sym is None or not isinstance(sym.node, StructDecl):
            return None
        for fd in sym.node.fields:
            if fd.name == field_name:
                return self.resolve_type_ref(fd.type, sym.site, self._imports_of(sym))
        return None

    def is_error_capable(self, t: Optional[Type]) -> bool:
        """`error`, a named type over `error`, or any type with an Error() method."""
        if t is None:
            return False
        if is_error_type(t):
            return True
        if isinstance(t, NamedType) and is_error_type(self.underlying(t)):
            return True
        return self.method_symbol(t, "Error") is not None

    # ------------------------------------------------------------------
    # Expressions
    # ------------------------------------------------------------------

    def infer(self, expr: Optional[Expr], env: TypingEnv) -> Optional[Type]:
        if expr is None:
            return None
        if isinstance(expr, IntLiteral):
            return get_builtin_type("int")
        if isinstance(expr, FloatLiteral):
            return get_builtin_type("float64")
        if isinstance(expr, StringLiteral):
            return get_builtin_type("string")
        if isinstance(expr, BoolLiteral):
            return get_builtin_type("bool")
        if isinstance(expr, NilLiteral):
            return get_nil_type()
        if isinstance(expr, Ident):
            return self._infer_ident(expr, env)
        if isinstance(expr, SelectorExpr):
            return self._infer_selector(expr, env)
        if isinstance(expr, CallExpr):
            return self._infer_call(expr, env)
        if isinstance(expr, IndexExpr):
            return self._infer_index(expr, env)
        if isinstance(expr, UnaryOp):
            return self._infer_unary(expr, env)
        if isinstance(expr, BinaryOp):
            if expr.op in _COMPARISON_OPS:
                return get_builtin_type("bool")
            left = self.infer(expr.left, env)
            return left if left is not None else self.infer(expr.right, env)
        if isinstance(expr, ParenExpr):
            return self.infer(expr.inner, env)
        if isinstance(expr, CompositeLit):
            return self.resolve_type_ref(expr.type, env.site, env.imports)
        if isinstance(expr, FuncLit):
            return self.func_type(expr.params, expr.results, env.site, env.imports)
        if isinstance(expr, TypeExpr):
            t = self.resolve_type_ref(expr.type_ref, env.site, env.imports)
            return TypeValue(t) if t is not None else None
        if isinstance(expr, PropagateExpr):
            shape = result_shape(self.infer(expr.expr, env))
            if shape is None:
                return None
            return _shape_to_type(shape[:-1])
        if isinstance(expr, GoExpr):
            shape = result_shape(self.infer(expr.call, env))
            return PromiseType(shape if shape is not None else ())
        return None

    def call_shape(self, call: Expr, env: TypingEnv) -> Optional[Tuple[Optional[Type], ...]]:
        """Result types of a call expression, or None when the callee is unknown."""
        if not isinstance(call, CallExpr):
            return result_shape(self.infer(call, env))
        callee_t = self.infer(call.callee, env)
        if isinstance(callee_t, FuncType):
            return callee_t.results
        if isinstance(callee_t, TypeValue):
            return (callee_t.target,)
        return result_shape(self._infer_call(call, env))

    def _infer_ident(self, expr: Ident, env: TypingEnv) -> Optional[Type]:
        local = env.local(expr.name)
        if local is not None:
            return local.type
        if expr.name in ("true", "false"):
            return get_builtin_type("bool")
        if expr.name == "nil":
            return get_nil_type()
        if expr.name in PREDECLARED_VALUES or expr.name in ELIMINATED_BUILTINS or expr.name == RUNTIME_NAMESPACE:
            return None
        if expr.name in GOAT_PRIMITIVE_TYPES:
            return TypeValue(get_builtin_type(expr.name))
        res = resolve_unqualified(self.table, env.site, env.imports, expr.name)
        if res.symbol is None:
            return None
        return self.symbol_type(res.symbol)

    def _qualifier_package(self, expr: Expr, env: TypingEnv) -> Optional[str]:
        """Import alias used as a selector base (not shadowed by a local)."""
        if isinstance(expr, Ident) and env.local(expr.name) is None and expr.name in env.imports.aliases:
            return expr.name
        return None

    def _infer_selector(self, expr: SelectorExpr, env: TypingEnv) -> Optional[Type]:
        qualifier = self._qualifier_package(expr.obj, env)
        if qualifier is not None:
            res = resolve_qualified(self.table, env.site, env.imports, qualifier, expr.field)
            return self.symbol_type(res.symbol) if res.symbol is not None else None
        if isinstance(expr.obj, Ident) and expr.obj.name == RUNTIME_NAMESPACE and env.local(RUNTIME_NAMESPACE) is None:
            return None

        base = self.infer(expr.obj, env)
        if isinstance(base, TypeValue):
            target = base.target
            if isinstance(target, EnumType):
                definition = self.table.enum(target.package, target.name)
                if definition is not None and expr.field in definition.member_names:
                    return target
                if expr.field == ENUM_ALL_VALUES:
                    return FuncType((), (SliceType(target),))
                if expr.field == ENUM_FROM_STRING:
                    return FuncType((get_builtin_type("string"),), (target, get_builtin_type("error")))
            return None
        if base is None:
            return None

        field_t = self.struct_field_type(base, expr.field)
        if field_t is not None:
            return field_t
        method_t = self.method_type(base, expr.field)
        if method_t is not None:
            return method_t
        return self._builtin_method_type(base, expr.field)

    def _builtin_method_type(self, recv: Type, name: str) -> Optional[Type]:
        """Signatures of the method forms that the builtin rewrite produces."""
        rewrite = BUILTIN_REWRITES.get(name)
        if rewrite is None or rewrite.rewrite_class is not RewriteClass.METHOD:
            return None
        int_t = get_builtin_type("int")
        if name in ("len", "cap", "copy"):
            return FuncType((), (int_t,))
        if name == "append":
            return FuncType((), (recv,))
        return FuncType((), ())

    def _infer_call(self, expr: CallExpr, env: TypingEnv) -> Optional[Type]:
        callee = expr.callee
        if isinstance(callee, Ident) and env.local(callee.name) is None and callee.name in ELIMINATED_BUILTINS:
            return self._builtin_call_type(callee.name, expr.args, env)
        if (
                isinstance(callee, SelectorExpr)
                and isinstance(callee.obj, Ident)
                and callee.obj.name == RUNTIME_NAMESPACE
                and env.local(RUNTIME_NAMESPACE) is None
        ):
            if callee.field in ELIMINATED_BUILTINS:
                return self._builtin_call_type(callee.field, expr.args, env)
            return None

        callee_t = self.infer(callee, env)
        if isinstance(callee_t, TypeValue):
            return callee_t.target
        if isinstance(callee_t, FuncType):
            return _shape_to_type(callee_t.results)
        return None

    def _builtin_call_type(self, name: str, args: List[Expr], env: TypingEnv) -> Optional[Type]:
        if name in ("len", "cap", "copy"):
            return get_builtin_type("int")
        if name == "append":
            return self.infer(args[0], env) if args else None
        if name in ("make", "new"):
            target = self.infer(args[0], env) if args else None
            if not isinstance(target, TypeValue):
                return None
            return target.target if name == "make" else PointerType(target.target)
        if name == "complex":
            return get_builtin_type("complex128")
        if name in ("real", "imag"):
            return get_builtin_type("float64")
        if name == "recover":
            return get_builtin_type("any")
        if name == "error":
            return get_builtin_type("error")
        return TupleType(())

    def _infer_index(self, expr: IndexExpr, env: TypingEnv) -> Optional[Type]:
        base = self.infer(expr.obj, env)
        if isinstance(base, NamedType):
            base = self.underlying(base)
        if isinstance(base, PointerType) and isinstance(base.elem, ArrayType):
            base = base.elem
        if isinstance(base, (SliceType, ArrayType)):
            return base.elem
        if isinstance(base, MapType):
            return base.value
        if isinstance(base, BuiltinType) and base.name == "string":
            return get_builtin_type("byte")
        return None

    def _infer_unary(self, expr: UnaryOp, env: TypingEnv) -> Optional[Type]:
        inner = self.infer(expr.operand, env)
        if expr.op == "!":
            return get_builtin_type("bool")
        if inner is None:
            return None
        if expr.op == "&":
            return PointerType(inner)
        if expr.op == "*":
            return inner.elem if isinstance(inner, PointerType) else None
        if expr.op == "<-":
            return inner.elem if isinstance(inner, ChanType) else None
        return inner


def _shape_to_type(shape: Tuple[Optional[Type], ...]) -> Optional[Type]:
    if len(shape) == 1:
        return shape[0]
    return TupleType(tuple(shape))
