#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, FrozenSet, Optional, Tuple

from goat_types import Capability


class RewriteClass(Enum):
    METHOD = auto()  # f(recv, args...) -> recv.f(args...)
    RUNTIME = auto()  # f(args...) -> goat.f(args...)
    KEYWORD = auto()  # reserved; the call stays, the name is unusable as a value


@dataclass(frozen=True)
class BuiltinRewrite:
    """
    One row of the built-in elimination table.

    min_args / max_args count source arguments (receiver included);
    max_args None means variadic. receiver_index is the argument that
    becomes the method receiver.
    """
    name: str
    rewrite_class: RewriteClass
    min_args: int
    max_args: Optional[int]
    capabilities: FrozenSet[Capability] = frozenset()
    receiver_index: int = 0


def _method(name: str, lo: int, hi: Optional[int], *caps: Capability, receiver_index: int = 0) -> BuiltinRewrite:
    return BuiltinRewrite(name, RewriteClass.METHOD, lo, hi, frozenset(caps), receiver_index)


def _runtime(name: str, lo: int, hi: Optional[int]) -> BuiltinRewrite:
    return BuiltinRewrite(name, RewriteClass.RUNTIME, lo, hi)


def _keyword(name: str, lo: int, hi: Optional[int]) -> BuiltinRewrite:
    return BuiltinRewrite(name, RewriteClass.KEYWORD, lo, hi)


_SEQ = Capability.SEQUENCE
_TXT = Capability.TEXTUAL
_MAP = Capability.MAPPING
_CHN = Capability.CHANNEL

BUILTIN_REWRITES: Dict[str, BuiltinRewrite] = {
    r.name: r for r in (
        _method("append", 1, None, _SEQ, _TXT),
        # copy(dst, src) -> src.copy(dst)
        _method("copy", 2, 2, _SEQ, _TXT, receiver_index=1),
        _method("delete", 2, 2, _MAP),
        _method("len", 1, 1, _SEQ, _TXT, _MAP, _CHN),
        _method("cap", 1, 1, _SEQ, _CHN),
        _method("close", 1, 1, _CHN),
        _runtime("make", 1, 3),
        _runtime("complex", 2, 2),
        _runtime("real", 1, 1),
        _runtime("imag", 1, 1),
        _runtime("print", 0, None),
        _runtime("println", 0, None),
        _keyword("panic", 1, 1),
        _keyword("recover", 0, 0),
        _keyword("new", 1, 1),
        _keyword("error", 1, 1),
    )
}

# Every name the language removes from the shadowable universe scope.
ELIMINATED_BUILTINS: Tuple[str, ...] = tuple(BUILTIN_REWRITES)

KEYWORD_BUILTINS: Tuple[str, ...] = tuple(
    name for name, r in BUILTIN_REWRITES.items() if r.rewrite_class is RewriteClass.KEYWORD
)


def lookup_builtin(name: str) -> Optional[BuiltinRewrite]:
    return BUILTIN_REWRITES.get(name)
