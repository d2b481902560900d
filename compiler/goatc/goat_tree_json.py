#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

"""
JSON interchange for syntax trees.

The parser hands trees over as

    {"packages": [{"path": "app/net", "files": [<SourceFile>, ...]}]}

where every node is an object carrying its class name under "node", its
fields by name, and an optional "span": [start_line, start_col, end_line,
end_col]. Lowered trees are written back in the same format.
"""

import dataclasses
import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import goat_ast
from goat_ast import Node, SourceFile, Span
from goat_compilation import CompilationUnit, Package
from goat_internal_error import ice

NODE_TAG = "node"


class TreeFormatError(ValueError):
    """Interchange data that is not a well-formed tree."""


def build_node_registry() -> Dict[str, type]:
    """Class name -> node class, for every concrete node of goat_ast."""
    out: Dict[str, type] = {}
    for value in vars(goat_ast).values():
        if isinstance(value, type) and issubclass(value, Node) and dataclasses.is_dataclass(value):
            out[value.__name__] = value
    return out


_NODES = build_node_registry()


# --- encoding ---

def encode_span(span: Optional[Span]) -> Optional[List[int]]:
    if span is None:
        return None
    return [span.start_line, span.start_column, span.end_line, span.end_column]


def encode_node(obj: Any) -> Any:
    if isinstance(obj, Node):
        out: Dict[str, Any] = {NODE_TAG: type(obj).__name__}
        for f in dataclasses.fields(obj):
            if f.name == "span":
                continue
            out[f.name] = encode_node(getattr(obj, f.name))
        span = encode_span(obj.span)
        if span is not None:
            out["span"] = span
        return out
    if isinstance(obj, list):
        return [encode_node(x) for x in obj]
    return obj


def encode_compilation_unit(cu: CompilationUnit) -> Dict[str, Any]:
    packages = []
    for path in sorted(cu.packages):
        files = cu.packages[path].sorted_files()
        packages.append({"path": path, "files": [encode_node(f) for f in files]})
    out: Dict[str, Any] = {"packages": packages}
    if cu.entry is not None:
        out["entry"] = cu.entry
    return out


def dumps(cu: CompilationUnit) -> str:
    return json.dumps(encode_compilation_unit(cu), indent=2, ensure_ascii=False)


# --- decoding ---

def decode_span(obj: Any) -> Optional[Span]:
    if obj is None:
        return None
    if not isinstance(obj, list) or len(obj) != 4 or not all(isinstance(x, int) for x in obj):
        raise TreeFormatError(f"malformed span {obj!r}; expected [start_line, start_col, end_line, end_col]")
    return Span(*obj)


def decode_node(obj: Any) -> Any:
    if isinstance(obj, list):
        return [decode_node(x) for x in obj]
    if not isinstance(obj, dict):
        return obj
    if NODE_TAG not in obj:
        raise TreeFormatError(f"object without a '{NODE_TAG}' tag: keys {sorted(obj)}")

    tag = obj[NODE_TAG]
    cls = _NODES.get(tag)
    if cls is None:
        raise ice("ICE-0040", f"'{tag}'")

    kwargs: Dict[str, Any] = {}
    for f in dataclasses.fields(cls):
        if f.name == "span":
            kwargs["span"] = decode_span(obj.get("span"))
        elif f.name in obj:
            kwargs[f.name] = decode_node(obj[f.name])
        elif f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING:
            raise TreeFormatError(f"{tag} node is missing field '{f.name}'")
    return cls(**kwargs)


def decode_compilation_unit(obj: Any) -> CompilationUnit:
    if not isinstance(obj, dict) or not isinstance(obj.get("packages"), list):
        raise TreeFormatError("expected an object with a 'packages' list")

    packages: Dict[str, Package] = {}
    for entry in obj["packages"]:
        path = entry.get("path") if isinstance(entry, dict) else None
        if not isinstance(path, str):
            raise TreeFormatError(f"package entry without a 'path': {entry!r}")
        pkg = packages.setdefault(path, Package(path=path))
        for raw in entry.get("files", []):
            source = decode_node(raw)
            if not isinstance(source, SourceFile):
                raise TreeFormatError(f"package '{path}' lists a {type(source).__name__} where a SourceFile belongs")
            if source.package != path:
                raise TreeFormatError(
                    f"file '{source.filename}' declares package '{source.package}' but is listed under '{path}'"
                )
            pkg.files.append(source)
    return CompilationUnit(packages=packages, entry=obj.get("entry"))


def loads(text: str) -> CompilationUnit:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise TreeFormatError(f"invalid JSON: {e}") from e
    return decode_compilation_unit(data)


def load_compilation_unit(path: str | Path) -> CompilationUnit:
    """Read a tree file. Raises FileNotFoundError or TreeFormatError."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"tree file not found: {path}")
    return loads(path.read_text(encoding="utf-8"))
