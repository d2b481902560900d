#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

from dataclasses import dataclass, field
from typing import Optional, List


# ==========================
# Syntax tree definitions
# ==========================
#
# The tree is produced by the external Goat parser. Nodes are plain
# dataclasses; the pipeline never mutates them in place. Rewriting stages
# build new nodes with dataclasses.replace() and share unchanged subtrees.


@dataclass
class Span:
    start_line: int
    start_column: int
    end_line: int
    end_column: int


@dataclass
class Node:
    span: Optional[Span] = field(default=None, repr=False, compare=False, kw_only=True)


# --- types ---

class TypeRef(Node):
    pass


@dataclass
class NamedTypeRef(TypeRef):
    name: str  # e.g. "int", "Status", "Buffer"
    package: Optional[str] = None  # import alias for qualified names (io.Reader)


@dataclass
class SliceTypeRef(TypeRef):
    elem: TypeRef


@dataclass
class ArrayTypeRef(TypeRef):
    length: int
    elem: TypeRef


@dataclass
class MapTypeRef(TypeRef):
    key: TypeRef
    value: TypeRef


@dataclass
class PointerTypeRef(TypeRef):
    elem: TypeRef


@dataclass
class ChanTypeRef(TypeRef):
    elem: TypeRef


@dataclass
class FuncTypeRef(TypeRef):
    params: List[TypeRef]
    results: List[TypeRef]


# --- declarations ---

@dataclass
class Import(Node):
    path: str
    alias: Optional[str] = None
    dot: bool = False  # import . "path": opens public names unqualified

    @property
    def local_name(self) -> str:
        if self.alias is not None:
            return self.alias
        return self.path.rsplit("/", 1)[-1]


class TopLevelDecl(Node):
    pass


@dataclass
class Param(Node):
    name: Optional[str]  # results may be unnamed
    type: TypeRef
    variadic: bool = False


@dataclass
class FuncDecl(TopLevelDecl):
    name: str
    params: List[Param]
    results: List[Param]
    body: Optional["Block"]
    visibility: Optional[str] = None  # "private" | "package" | "public"
    receiver: Optional[Param] = None


@dataclass
class FieldDecl(Node):
    name: str
    type: TypeRef


@dataclass
class StructDecl(TopLevelDecl):
    name: str
    fields: List[FieldDecl]
    visibility: Optional[str] = None


@dataclass
class TypeDecl(TopLevelDecl):
    name: str
    type: TypeRef
    visibility: Optional[str] = None


@dataclass
class EnumMember(Node):
    name: str
    ordinal: Optional["Expr"] = None  # explicit ordinal, if written


@dataclass
class EnumDecl(TopLevelDecl):
    name: str
    members: List[EnumMember]
    visibility: Optional[str] = None


@dataclass
class VarDecl(TopLevelDecl):
    name: str
    type: Optional[TypeRef]
    value: Optional["Expr"]
    visibility: Optional[str] = None


@dataclass
class ConstDecl(TopLevelDecl):
    name: str
    type: Optional[TypeRef]
    value: "Expr"
    visibility: Optional[str] = None


@dataclass
class SourceFile(Node):
    package: str  # package path, e.g. "app/net"
    imports: List[Import]
    decls: List[TopLevelDecl]
    filename: Optional[str] = field(default=None, repr=False, compare=False, kw_only=True)


# --- statements ---

@dataclass
class Stmt(Node):
    pass


@dataclass
class Block(Stmt):
    stmts: List[Stmt]


@dataclass
class VarStmt(Stmt):
    name: str
    type: Optional[TypeRef]
    value: Optional["Expr"]


@dataclass
class DefineStmt(Stmt):
    """names := values"""
    names: List[str]
    values: List["Expr"]


@dataclass
class AssignStmt(Stmt):
    targets: List["Expr"]  # must be l-values; not checked here
    values: List["Expr"]
    op: str = "="


@dataclass
class ExprStmt(Stmt):
    expr: "Expr"


@dataclass
class IfStmt(Stmt):
    init: Optional[Stmt]
    cond: "Expr"
    then_block: Block
    else_stmt: Optional[Stmt] = None  # Block or IfStmt


@dataclass
class ForStmt(Stmt):
    init: Optional[Stmt]
    cond: Optional["Expr"]
    post: Optional[Stmt]
    body: Block


@dataclass
class RangeStmt(Stmt):
    key: Optional[str]
    value: Optional[str]
    expr: "Expr"
    body: Block
    define: bool = True


@dataclass
class CaseClause(Node):
    exprs: List["Expr"]  # empty list: default arm
    body: List[Stmt]

    @property
    def is_default(self) -> bool:
        return not self.exprs


@dataclass
class SwitchStmt(Stmt):
    init: Optional[Stmt]
    tag: Optional["Expr"]
    cases: List[CaseClause]


@dataclass
class ReturnStmt(Stmt):
    values: List["Expr"]


@dataclass
class GoStmt(Stmt):
    """Bare launch statement: result discarded (fire-and-forget)."""
    call: "Expr"


@dataclass
class DeferStmt(Stmt):
    call: "Expr"


@dataclass
class BreakStmt(Stmt):
    pass


@dataclass
class ContinueStmt(Stmt):
    pass


# --- expressions ---

class Expr(Node):
    pass


@dataclass
class IntLiteral(Expr):
    value: int


@dataclass
class FloatLiteral(Expr):
    value: float


@dataclass
class StringLiteral(Expr):
    value: str


@dataclass
class BoolLiteral(Expr):
    value: bool


@dataclass
class NilLiteral(Expr):
    pass


@dataclass
class Ident(Expr):
    name: str


@dataclass
class SelectorExpr(Expr):
    obj: Expr
    field: str


@dataclass
class CallExpr(Expr):
    callee: Expr
    args: List[Expr]
    spread: bool = False  # f(xs...)


@dataclass
class IndexExpr(Expr):
    obj: Expr
    index: Expr


@dataclass
class UnaryOp(Expr):
    op: str  # "-", "!", "&", "*", "<-"
    operand: Expr


@dataclass
class BinaryOp(Expr):
    op: str
    left: Expr
    right: Expr


@dataclass
class ParenExpr(Expr):
    inner: Expr


@dataclass
class KeyValueExpr(Expr):
    key: Expr
    value: Expr


@dataclass
class CompositeLit(Expr):
    type: TypeRef
    elts: List[Expr]


@dataclass
class FuncLit(Expr):
    params: List[Param]
    results: List[Param]
    body: Block


@dataclass
class TypeExpr(Expr):
    """A type used in expression position (make([]int, 3), new(T))."""
    type_ref: TypeRef


@dataclass
class PropagateExpr(Expr):
    """expr¿: return early with the operand's error when it is non-nil."""
    expr: Expr


@dataclass
class GoExpr(Expr):
    """A launch used as a value: evaluates to a promise handle."""
    call: Expr
