#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

from dataclasses import fields
from typing import Any, List, Optional

from goat_ast import Node, SourceFile, Span
from goat_compilation import CompilationUnit


def _format_span(span: Optional[Span]) -> str:
    if span is None:
        return ""
    return f" @{span.start_line}:{span.start_column}-{span.end_line}:{span.end_column}"


def _is_child(value: Any) -> bool:
    if isinstance(value, Node):
        return True
    return isinstance(value, list) and any(isinstance(v, Node) for v in value)


def format_node(node: Any, indent: int = 0) -> List[str]:
    """
    Reflection-based tree printer.

    Scalars and lists of names print inline in the header; child nodes and
    lists of nodes print below it, one level deeper. Unset optional fields
    are omitted.
    """
    ind = "  " * indent

    if isinstance(node, list):
        lines: List[str] = []
        for elem in node:
            lines.extend(format_node(elem, indent))
        return lines

    if not isinstance(node, Node):
        return [ind + repr(node)]

    inline = []
    children = []
    for f in fields(node):
        if f.name == "span":
            continue
        value = getattr(node, f.name)
        if _is_child(value):
            children.append((f.name, value))
        elif value is not None and value != []:
            inline.append(f"{f.name}={value!r}")

    header = type(node).__name__
    if inline:
        header += f"({', '.join(inline)})"
    lines = [ind + header + _format_span(node.span)]

    for name, value in children:
        lines.append(f"{ind}  {name}:")
        lines.extend(format_node(value, indent + 2))
    return lines


def format_file(source: SourceFile) -> str:
    header = f"// {source.filename}" if source.filename else f"// package {source.package}"
    return "\n".join([header] + format_node(source))


def format_compilation_unit(cu: CompilationUnit) -> str:
    return "\n\n".join(format_file(f) for f in cu.iter_files())
