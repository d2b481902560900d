#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2025-2026 gwz

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from goat_compilation import CompilationUnit
from goat_context import CompilationContext
from goat_diagnostics import Diagnostic, DiagnosticReport
from goat_enums import EnumInfo
from goat_symbols import Symbol, SymbolTable
from goat_visibility import NamespacePlan


@dataclass
class AnalysisResult:
    """
    Full pipeline result for one compilation unit.

    Contains:
      - input compilation unit
      - compilation context (cross-cutting options)
      - published symbol table and enum infos
      - reference resolutions and the emitted-name plan
      - lowered compilation unit
      - diagnostics per stage, and the aggregated report
    """
    cu: Optional[CompilationUnit] = None
    context: CompilationContext = field(default_factory=CompilationContext.default)

    symbol_table: Optional[SymbolTable] = None

    # Keys are (package_path, enum_name)
    enum_infos: Dict[Tuple[str, str], EnumInfo] = field(default_factory=dict)

    # Resolved declarations keyed by id(reference node) of the input tree
    resolutions: Dict[int, Symbol] = field(default_factory=dict)

    namespace_plan: Optional[NamespacePlan] = None

    lowered: Optional[CompilationUnit] = None

    # Stage name -> diagnostics, in pipeline order
    stage_diagnostics: Dict[str, List[Diagnostic]] = field(default_factory=dict)

    report: DiagnosticReport = field(default_factory=DiagnosticReport)

    @property
    def diagnostics(self) -> List[Diagnostic]:
        return list(self.report)

    def has_errors(self) -> bool:
        return not self.report.ok
