#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

import argparse
import json
from pathlib import Path
from typing import Dict, List, Optional

from goat_analysis import AnalysisResult
from goat_ast_printer import format_compilation_unit
from goat_context import CompilationContext, LogLevel, UnobservedErrorPolicy
from goat_diagnostics import Diagnostic
from goat_driver import GoatDriver
from goat_enums import enum_report
from goat_internal_error import InternalCompilerError
from goat_logger import log_error, log_info
from goat_tree_json import TreeFormatError, dumps


def _load_file_lines(path: str, cache: Dict[str, List[str]]) -> List[str]:
    if path not in cache:
        text = Path(path).read_text(encoding="utf-8")
        cache[path] = text.splitlines()
    return cache[path]


def print_diagnostics(result: AnalysisResult, context: CompilationContext) -> None:
    file_cache: Dict[str, List[str]] = {}

    for diag in result.diagnostics:
        print_diagnostic_with_snippet(diag, file_cache, context)


def print_diagnostic_with_snippet(
        diag: Diagnostic,
        file_cache: Dict[str, List[str]],
        context: Optional[CompilationContext] = None,
) -> None:
    log_error(context, diag.format())

    if not diag.filename or diag.line is None:
        return

    try:
        lines = _load_file_lines(diag.filename, file_cache)
    except (OSError, UnicodeDecodeError):
        # source text is optional: the tree may come from elsewhere
        return

    line_idx = diag.line - 1
    if not (0 <= line_idx < len(lines)):
        return

    src_line = lines[line_idx]
    width = max(5, len(str(diag.line)))
    log_error(context, f"{diag.line:>{width}} | {src_line}")

    if diag.column is None:
        return

    start_col = max(1, diag.column)
    if diag.end_line is None or diag.end_column is None:
        end_col = start_col
    elif diag.end_line == diag.line:
        end_col = max(start_col, diag.end_column)
    else:
        end_col = len(src_line) + 1

    caret_prefix = " " * width + " | " + " " * (start_col - 1)
    log_error(context, caret_prefix + "^" * max(1, end_col - start_col))


def build_compilation_context(args: argparse.Namespace) -> CompilationContext:
    """Build a CompilationContext from command-line arguments."""
    verbosity = getattr(args, "verbosity", 0)
    if verbosity >= 3:
        log_level = LogLevel.DEBUG
    elif verbosity >= 1:
        log_level = LogLevel.INFO
    else:
        log_level = LogLevel.ERROR

    return CompilationContext(
        jobs=max(1, getattr(args, "jobs", 1)),
        unobserved_error_policy=UnobservedErrorPolicy(getattr(args, "unobserved_errors", "log")),
        log_rich_format=getattr(args, "log", False),
        log_level=log_level,
    )


def _run_analysis(args: argparse.Namespace):
    """Run the pipeline, returning (result, context, exit_code); result is None on load failure."""
    context = build_compilation_context(args)
    driver = GoatDriver(context=context)
    try:
        result = driver.analyze_file(args.tree)
    except FileNotFoundError as e:
        log_error(context, f"error: [DRV-0010] {e}")
        return None, context, 1
    except TreeFormatError as e:
        log_error(context, f"{args.tree}: error: [DRV-0020] {e}")
        return None, context, 1
    except InternalCompilerError as e:
        log_error(context, e.format())
        return None, context, 1

    print_diagnostics(result, context=context)
    exit_code = 1 if result.has_errors() else 0
    return result, context, exit_code


def cmd_check(args: argparse.Namespace) -> int:
    """Run the pipeline and report diagnostics."""
    result, context, rc = _run_analysis(args)
    if result is None:
        return rc
    if args.json:
        print(json.dumps(result.report.records(), indent=2, ensure_ascii=False))
    if rc == 0:
        log_info(context, "No diagnostics")
    return rc


def cmd_lower(args: argparse.Namespace) -> int:
    """Write the lowered tree as JSON (stdout by default)."""
    result, context, rc = _run_analysis(args)
    if result is None or rc != 0:
        return rc or 1

    text = dumps(result.lowered)
    if args.output:
        Path(args.output).write_text(text + "\n", encoding="utf-8")
        log_info(context, f"Wrote lowered tree to {args.output}")
    else:
        print(text)
    return 0


def cmd_ast(args: argparse.Namespace) -> int:
    """
    Pretty-print the lowered tree.

    With --input, prints the tree as decoded, before any stage runs.
    """
    result, _, rc = _run_analysis(args)
    if result is None:
        return rc
    tree = result.cu if args.input else result.lowered
    print(format_compilation_unit(tree))
    return rc


def cmd_sym(args: argparse.Namespace) -> int:
    """Dump the symbol table with the emitted name of each symbol."""
    result, _, rc = _run_analysis(args)
    if result is None or result.symbol_table is None:
        return rc or 1

    plan = result.namespace_plan
    table = result.symbol_table
    for path in sorted(table.packages):
        print(f"=== package {path} ===")
        syms = [s for s in table.iter_symbols() if s.package == path]
        if not syms:
            print("    <none>")
            continue
        for sym in syms:
            name = f"{sym.receiver}.{sym.name}" if sym.receiver else sym.name
            origin = f" [enum {sym.synthesized_for}]" if sym.synthesized_for else ""
            emitted = plan.emitted(sym) if plan is not None else sym.name
            print(
                f"    {sym.kind.name:<10} {sym.visibility.value:<8} {name} -> {emitted}"
                f" ({sym.filename}){origin}"
            )

    if result.enum_infos:
        print("=== enums ===")
        for line in enum_report(result.enum_infos):
            print(f"    {line}")
    return rc


def _add_tree_arg(p: argparse.ArgumentParser) -> None:
    p.add_argument("tree", help="Syntax tree in JSON interchange format")


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(prog="goatc", description="Goat semantic analysis and desugaring")
    subparsers = parser.add_subparsers(dest="command", required=True, help="Command to run")

    parser.add_argument("-v", "--verbose",
                        action="count",
                        default=0,
                        dest="verbosity",
                        help="Increase verbosity: -v=INFO, -vvv=DEBUG")
    parser.add_argument("-l", "--log",
                        action="store_true",
                        default=False,
                        help="Enable rich log formatting (timestamps, levels)")
    parser.add_argument("-j", "--jobs",
                        type=int,
                        default=1,
                        help="Worker threads for per-file stages (default: 1)")
    parser.add_argument("--unobserved-errors",
                        choices=[p.value for p in UnobservedErrorPolicy],
                        default=UnobservedErrorPolicy.LOG.value,
                        help="Policy for errors of launched tasks nobody awaits (default: log)")

    p_check = subparsers.add_parser("check", help="Analyze a tree and report diagnostics", aliases=["analyze"])
    p_check.add_argument("--json", action="store_true", help="Also print diagnostic records as JSON on stdout")
    _add_tree_arg(p_check)
    p_check.set_defaults(func=cmd_check)

    p_lower = subparsers.add_parser("lower", help="Write the lowered tree as JSON")
    p_lower.add_argument("--output", "-o", help="Output file (default: stdout)")
    _add_tree_arg(p_lower)
    p_lower.set_defaults(func=cmd_lower)

    p_ast = subparsers.add_parser("ast", help="Pretty-print the lowered tree")
    p_ast.add_argument("--input", "-i", action="store_true", help="Print the input tree instead")
    _add_tree_arg(p_ast)
    p_ast.set_defaults(func=cmd_ast)

    p_sym = subparsers.add_parser("sym", help="Dump symbols and emitted names", aliases=["symbols"])
    _add_tree_arg(p_sym)
    p_sym.set_defaults(func=cmd_sym)

    args = parser.parse_args(argv)

    rc = args.func(args)
    raise SystemExit(rc)


if __name__ == "__main__":
    main()
