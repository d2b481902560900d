#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

from pathlib import Path
from typing import Dict, List, Optional

from goat_analysis import AnalysisResult
from goat_builtins import BuiltinRewriter
from goat_collector import SymbolCollector
from goat_compilation import CompilationUnit
from goat_context import CompilationContext
from goat_diagnostics import Diagnostic, aggregate
from goat_enums import EnumChecker
from goat_expr_types import ExpressionTyper
from goat_logger import log_debug, log_info, log_stage, log_stage_result
from goat_promises import PromiseLowering
from goat_propagation import PropagationDesugarer
from goat_resolve import FileImports
from goat_tree_json import load_compilation_unit
from goat_visibility import VisibilityResolver, build_namespace_plan


class GoatDriver:
    """
    Pipeline driver:
      - collect symbols
      - resolve visibility and plan emitted names
      - rewrite built-ins
      - check and lower enums
      - desugar error propagation
      - lower launch expressions to promises
      - aggregate diagnostics

    Entry points:
      - analyze(cu): run every stage over an in-memory compilation unit.
      - analyze_file(path): decode a JSON tree and analyze it.

    Every stage runs even when an earlier one reported errors, so that
    independent mistakes surface in a single run.
    """

    def __init__(self, context: Optional[CompilationContext] = None):
        self.context = context or CompilationContext.default()

    # --- Public API ---

    def analyze_file(self, path: str | Path) -> AnalysisResult:
        path = Path(path)
        log_debug(self.context, f"Loading syntax tree from {path}")
        cu = load_compilation_unit(path)
        return self.analyze(cu)

    def analyze(self, cu: CompilationUnit) -> AnalysisResult:
        log_info(self.context, f"Starting analysis of {len(cu.packages)} package(s)")
        result = AnalysisResult(cu=cu, context=self.context)
        stages = result.stage_diagnostics

        # 1. Symbols
        log_stage(self.context, "Collecting symbols")
        collector = SymbolCollector(cu, self.context)
        table = collector.collect()
        result.symbol_table = table
        self._record(stages, "symbols", collector.diagnostics)
        log_debug(
            self.context,
            f"Symbol table holds {sum(1 for _ in table.iter_symbols())} symbol(s) "
            f"in {len(table.packages)} package(s)",
        )

        imports_by_file: Dict[Optional[str], FileImports] = {f.filename: FileImports.of(f) for f in cu.iter_files()}
        typer = ExpressionTyper(table, imports_by_file)

        # 2. Visibility (annotates; never rewrites)
        log_stage(self.context, "Resolving visibility")
        visibility = VisibilityResolver(table, typer, self.context)
        visibility.run(cu)
        result.resolutions = visibility.resolutions
        result.namespace_plan = build_namespace_plan(table)
        self._record(stages, "visibility", visibility.diagnostics)

        # 3. Built-ins
        log_stage(self.context, "Rewriting built-in calls")
        builtins = BuiltinRewriter(table, typer, self.context)
        lowered = builtins.run(cu)
        self._record(stages, "builtins", builtins.diagnostics)

        # 4. Enums
        log_stage(self.context, "Checking enums")
        enums = EnumChecker(table, typer, self.context)
        lowered = enums.run(lowered)
        result.enum_infos = enums.infos
        self._record(stages, "enums", enums.diagnostics)

        # 5. Error propagation
        log_stage(self.context, "Desugaring error propagation")
        propagation = PropagationDesugarer(table, typer, self.context, enum_infos=enums.infos)
        lowered = propagation.run(lowered)
        self._record(stages, "propagation", propagation.diagnostics)

        # 6. Promises
        log_stage(self.context, "Lowering launch expressions")
        promises = PromiseLowering(table, typer, self.context)
        lowered = promises.run(lowered)
        self._record(stages, "promises", promises.diagnostics)
        result.lowered = lowered

        # 7. Aggregate
        log_stage(self.context, "Aggregating diagnostics")
        result.report = aggregate(*stages.values())

        log_info(self.context, f"Analysis complete: {len(result.report)} diagnostic(s)")
        return result

    # --- Internal helpers ---

    def _record(self, stages: Dict[str, List[Diagnostic]], stage: str, diagnostics: List[Diagnostic]) -> None:
        stages[stage] = diagnostics
        log_stage_result(self.context, stage, diagnostics)
