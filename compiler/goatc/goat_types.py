#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, FrozenSet, Optional, Tuple

# ========================================
# The semantic types the analyzer reasons about.
# ========================================
#
# Not the full base-language type system: it models
# just enough to check built-in receiver capabilities, enum-typed values and
# function result shapes.

NUMERIC_TYPES = (
    "int", "int8", "int16", "int32", "int64",
    "uint", "uint8", "uint16", "uint32", "uint64", "uintptr",
    "float32", "float64", "complex64", "complex128",
    "byte", "rune",
)

GOAT_PRIMITIVE_TYPES = NUMERIC_TYPES + ("bool", "string", "error", "any")


class Type:
    """
    Base class for all semantic types.
    Used only as a common marker; concrete types are dataclasses below.
    """
    pass


@dataclass(frozen=True)
class BuiltinType(Type):
    name: str  # "int", "string", "error", ...


@dataclass(frozen=True)
class NamedType(Type):
    """A `type X <underlying>` declaration."""
    package: str
    name: str


@dataclass(frozen=True)
class StructType(Type):
    package: str
    name: str


@dataclass(frozen=True)
class EnumType(Type):
    package: str
    name: str


@dataclass(frozen=True)
class SliceType(Type):
    elem: Type


@dataclass(frozen=True)
class ArrayType(Type):
    length: int
    elem: Type


@dataclass(frozen=True)
class MapType(Type):
    key: Type
    value: Type


@dataclass(frozen=True)
class PointerType(Type):
    elem: Type


@dataclass(frozen=True)
class ChanType(Type):
    elem: Type


@dataclass(frozen=True)
class FuncType(Type):
    params: Tuple[Optional[Type], ...]
    results: Tuple[Optional[Type], ...]


@dataclass(frozen=True)
class TupleType(Type):
    """Result of a multi-value call."""
    items: Tuple[Optional[Type], ...]


@dataclass(frozen=True)
class PromiseType(Type):
    """Handle to the eventual results of a launched call."""
    results: Tuple[Optional[Type], ...]


@dataclass(frozen=True)
class TypeValue(Type):
    """An expression that denotes a type (conversion callee, `Status` in `Status.Idle`)."""
    target: Type


@dataclass(frozen=True)
class NilType(Type):
    pass


class Capability(Enum):
    SEQUENCE = auto()
    TEXTUAL = auto()
    MAPPING = auto()
    CHANNEL = auto()


# --- helpers for builtins ---

_BUILTIN_CACHE: Dict[str, BuiltinType] = {}
_NIL_TYPE = NilType()


def get_builtin_type(name: str) -> BuiltinType:
    """
    Get (or create) a canonical BuiltinType for a given name.
    """
    if name not in _BUILTIN_CACHE:
        _BUILTIN_CACHE[name] = BuiltinType(name)
    return _BUILTIN_CACHE[name]


def get_nil_type() -> NilType:
    return _NIL_TYPE


def is_numeric(t: Optional[Type]) -> bool:
    return isinstance(t, BuiltinType) and t.name in NUMERIC_TYPES


def is_error_type(t: Optional[Type]) -> bool:
    return isinstance(t, BuiltinType) and t.name == "error"


def is_nilable(t: Optional[Type]) -> bool:
    """Types whose zero value is nil."""
    if isinstance(t, BuiltinType):
        return t.name in ("error", "any")
    return isinstance(t, (SliceType, MapType, PointerType, ChanType, FuncType, PromiseType))


def capabilities(t: Optional[Type]) -> FrozenSet[Capability]:
    """
    Capabilities of a type's *underlying* form (callers unwrap NamedType).
    """
    if isinstance(t, SliceType):
        return frozenset({Capability.SEQUENCE})
    if isinstance(t, ArrayType):
        return frozenset({Capability.SEQUENCE})
    if isinstance(t, PointerType) and isinstance(t.elem, ArrayType):
        return frozenset({Capability.SEQUENCE})
    if isinstance(t, BuiltinType) and t.name == "string":
        return frozenset({Capability.TEXTUAL})
    if isinstance(t, MapType):
        return frozenset({Capability.MAPPING})
    if isinstance(t, ChanType):
        return frozenset({Capability.CHANNEL})
    return frozenset()


def result_shape(t: Optional[Type]) -> Optional[Tuple[Optional[Type], ...]]:
    """Result types of a call whose type is `t`; None if unknown."""
    if t is None:
        return None
    if isinstance(t, TupleType):
        return t.items
    return (t,)


# --- type stringification for debugging ---

def format_type(t: Optional[Type]) -> str:
    if t is None:
        return "<unknown>"
    elif isinstance(t, BuiltinType):
        return t.name
    elif isinstance(t, (NamedType, StructType, EnumType)):
        return f"{t.package}.{t.name}"
    elif isinstance(t, SliceType):
        return f"[]{format_type(t.elem)}"
    elif isinstance(t, ArrayType):
        return f"[{t.length}]{format_type(t.elem)}"
    elif isinstance(t, MapType):
        return f"map[{format_type(t.key)}]{format_type(t.value)}"
    elif isinstance(t, PointerType):
        return f"*{format_type(t.elem)}"
    elif isinstance(t, ChanType):
        return f"chan {format_type(t.elem)}"
    elif isinstance(t, FuncType):
        params_str = ", ".join(format_type(p) for p in t.params)
        return f"func({params_str}) {_format_results(t.results)}".rstrip()
    elif isinstance(t, TupleType):
        return f"({', '.join(format_type(i) for i in t.items)})"
    elif isinstance(t, PromiseType):
        return f"promise{_format_results(t.results) or '()'}"
    elif isinstance(t, TypeValue):
        return f"type {format_type(t.target)}"
    elif isinstance(t, NilType):
        return "nil"
    else:
        # Fallback (should not happen)
        return repr(t)


def _format_results(results: Tuple[Optional[Type], ...]) -> str:
    if not results:
        return ""
    if len(results) == 1:
        return format_type(results[0])
    return f"({', '.join(format_type(r) for r in results)})"
