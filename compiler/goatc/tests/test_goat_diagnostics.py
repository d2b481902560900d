#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2026 gwz

import os

import pytest

from conftest import analyze, call, enum, func, ident, lit, param, sel, source, span, t
from goat_ast import (
    AssignStmt, BinaryOp, Block, CaseClause, DefineStmt, ForStmt, GoStmt, Ident, Import, PropagateExpr, SliceTypeRef,
    SwitchStmt, VarDecl,
)
from goat_context import CompilationContext, LogLevel, UnobservedErrorPolicy
from goat_diagnostics import DIAGNOSTIC_CODE_FAMILIES, Diagnostic, DiagnosticKind, aggregate, diag_from_node
from goat_internal_error import ICE_CODES, InternalCompilerError, ice
from goat_logger import log, log_error, log_info, log_stage, log_warning

STATUS = enum("Status", "Idle", "Ready")
G = func("g", results=["int", "error"], body=None)


def _status_switch(*labels):
    cases = [CaseClause([sel("Status", label)], []) for label in labels]
    switch = SwitchStmt(None, ident("s"), cases)
    return source("main.goat", [STATUS, func("f", [switch], params=[param("s", "Status")])])


# One tree per diagnostic kind, each expected to report that kind alone.
TRIGGERS = {
    "VIS-0010": lambda: [source("main.goat", [func("f", vis=None)])],
    "VIS-0020": lambda: [source("main.goat", [func("f"), func("f")])],
    "VIS-0030": lambda: [source("main.goat", [func("f", [call("missing")])])],
    "VIS-0040": lambda: [
        source("p.goat", [func("Helper", vis="public")], package="p"),
        source("q.goat", [func("Helper", vis="public")], package="q"),
        source("main.goat", [func("f", [call("Helper")])], imports=[Import("p", dot=True), Import("q", dot=True)]),
    ],
    "BLT-0010": lambda: [source("main.goat", [VarDecl("len", None, lit(1), visibility="package")])],
    "BLT-0020": lambda: [
        source("main.goat", [func("f", [call("close", ident("xs"))], params=[param("xs", SliceTypeRef(t("int")))])]),
    ],
    "ENM-0010": lambda: [source("main.goat", [STATUS, func("f", [DefineStmt(["s"], [sel("Status", "Bogus")])])])],
    "ENM-0020": lambda: [_status_switch("Idle")],
    "ENM-0030": lambda: [_status_switch("Idle", "Idle", "Ready")],
    "PRP-0010": lambda: [source("main.goat", [G, func("f", [DefineStmt(["x"], [PropagateExpr(call("g"))])])])],
    "PRP-0020": lambda: [
        source("main.goat", [
            func("count", results=["int"], body=None),
            func("f", [DefineStmt(["x"], [PropagateExpr(call("count"))])], results=["error"]),
        ]),
    ],
    "PRP-0030": lambda: [
        source("main.goat", [
            G,
            func(
                "f",
                [ForStmt(
                    DefineStmt(["i"], [lit(0)]),
                    BinaryOp("<", ident("i"), lit(3)),
                    AssignStmt([ident("i")], [PropagateExpr(call("g"))]),
                    Block([]),
                )],
                results=["error"],
            ),
        ]),
    ],
    "PRM-0010": lambda: [
        source("main.goat", [
            func("fetch", results=["string", "error"], body=None),
            func("f", [GoStmt(call("fetch"))]),
        ]),
    ],
}


def test_every_kind_has_a_trigger():
    assert set(TRIGGERS) == {kind.code for kind in DiagnosticKind}


@pytest.mark.parametrize("code", sorted(TRIGGERS))
def test_trigger_reports_its_kind(code):
    result = analyze(*TRIGGERS[code](), unobserved_error_policy=UnobservedErrorPolicy.REJECT)

    assert [k.code for k in result.report.kinds()] == [code]
    assert result.diagnostics[0].message.startswith(f"[{code}] ")
    assert result.has_errors()


# --- kinds ---

def test_kind_titles_and_codes():
    assert DiagnosticKind.SYMBOL_NOT_VISIBLE.title == "SymbolNotVisible"
    assert DiagnosticKind.PROMISE_RESULT_DISCARDED_UNSAFELY.title == "PromiseResultDiscardedUnsafely"
    assert DiagnosticKind.INVALID_ENUM_VALUE.code == "ENM-0010"


def test_code_families():
    assert set(DIAGNOSTIC_CODE_FAMILIES) == {"VIS", "BLT", "ENM", "PRP", "PRM"}
    assert DIAGNOSTIC_CODE_FAMILIES["PRP"] == ["PRP-0010", "PRP-0020", "PRP-0030"]


# --- diagnostics ---

def _diag(filename, line, column=None, kind=DiagnosticKind.SYMBOL_NOT_VISIBLE, message="m"):
    return Diagnostic(kind, message, filename=filename, line=line, column=column)


def test_diag_from_node_prefixes_code_and_takes_span():
    d = diag_from_node(
        DiagnosticKind.DUPLICATE_DECLARATION, "'f' is declared twice",
        package="app", filename="main.goat", node=Ident("f", span=span(3, 6, 7)),
    )

    assert d.message == "[VIS-0020] 'f' is declared twice"
    assert (d.line, d.column, d.end_line, d.end_column) == (3, 6, 3, 7)


def test_diag_from_node_without_span():
    d = diag_from_node(DiagnosticKind.DUPLICATE_DECLARATION, "x", package=None, filename=None, node=Ident("f"))

    assert d.line is None and d.column is None


def test_format_header():
    d = Diagnostic(DiagnosticKind.SYMBOL_NOT_VISIBLE, "[VIS-0030] m", package="app", filename="main.goat", line=4,
                   column=2)

    assert d.format() == f"{os.path.abspath('main.goat')}:4:2(app): error: [VIS-0030] m"


def test_format_without_location():
    d = Diagnostic(DiagnosticKind.SYMBOL_NOT_VISIBLE, "[VIS-0030] m")

    assert d.format() == "error: [VIS-0030] m"


def test_record_shape():
    d = _diag("a.goat", 2, 5, DiagnosticKind.DUPLICATE_ENUM_CASE, "[ENM-0030] dup")

    assert d.to_record() == {
        "file": "a.goat",
        "line": 2,
        "column": 5,
        "kind": "DuplicateEnumCase",
        "message": "[ENM-0030] dup",
    }


# --- aggregation ---

def test_aggregate_orders_by_location():
    late = _diag("b.goat", 1)
    early = _diag("a.goat", 9)
    middle = _diag("a.goat", 9, 4)

    report = aggregate([late], [middle, early])

    assert list(report) == [early, middle, late]


def test_aggregate_orders_same_location_by_code():
    prp = _diag("a.goat", 1, 1, DiagnosticKind.PROPAGATION_OUTSIDE_ERROR_FUNCTION)
    vis = _diag("a.goat", 1, 1, DiagnosticKind.MISSING_VISIBILITY_MODIFIER)

    assert aggregate([prp, vis]).kinds() == [
        DiagnosticKind.PROPAGATION_OUTSIDE_ERROR_FUNCTION,
        DiagnosticKind.MISSING_VISIBILITY_MODIFIER,
    ]


def test_aggregate_drops_duplicates_across_stages():
    first = _diag("a.goat", 3)
    again = _diag("a.goat", 3)

    report = aggregate([first], [again])

    assert len(report) == 1
    assert report[0] is first


def test_empty_report_is_ok():
    report = aggregate([], [])

    assert report.ok
    assert report.records() == []


# --- internal errors ---

def test_ice_carries_code_and_location():
    err = ice("ICE-0030", "'Lambda'", filename="main.goat", node=Ident("x", span=span(2, 3)))

    assert err.code == "ICE-0030"
    assert err.format() == "main.goat:2:3: internal compiler error: [ICE-0030] unhandled syntax node kind: 'Lambda'"


def test_unclassified_internal_error():
    err = InternalCompilerError("boom")

    assert err.code == "ICE-9999"
    assert err.format() == "internal compiler error: [ICE-9999] boom"


def test_ice_codes_are_registered():
    assert all(code.startswith("ICE-") for code in ICE_CODES)
    with pytest.raises(AssertionError):
        ice("ICE-1234", "not registered")


# --- logging ---

def test_errors_go_to_stderr(capsys):
    log_error(CompilationContext(log_level=LogLevel.ERROR), "bad thing")

    captured = capsys.readouterr()
    assert captured.err == "bad thing\n"
    assert captured.out == ""


def test_level_filters_messages(capsys):
    ctx = CompilationContext(log_level=LogLevel.ERROR)

    log_info(ctx, "progress")
    log_warning(ctx, "careful")
    log_error(CompilationContext(log_level=LogLevel.SILENT), "hidden")

    assert capsys.readouterr().err == ""


def test_rich_format_tags_the_level(capsys):
    log_info(CompilationContext(log_level=LogLevel.INFO, log_rich_format=True), "hello")

    assert "[INFO] hello" in capsys.readouterr().err


def test_stage_logging(capsys):
    ctx = CompilationContext(log_level=LogLevel.INFO)

    log_stage(ctx, "Checking enums")
    log_stage(ctx, "Checking enums", package="app")

    assert capsys.readouterr().err.splitlines() == ["Checking enums...", "Checking enums in package 'app'"]


def test_missing_context_still_prints(capsys):
    log(None, LogLevel.DEBUG, "orphan")

    assert capsys.readouterr().err == "[no logging context] orphan\n"


# --- policy ---

@pytest.mark.parametrize("policy, constant", [
    (UnobservedErrorPolicy.DROP, "DropUnobserved"),
    (UnobservedErrorPolicy.LOG, "LogUnobserved"),
    (UnobservedErrorPolicy.REPORT, "ReportUnobserved"),
    (UnobservedErrorPolicy.REJECT, "PanicUnobserved"),
])
def test_policy_runtime_constants(policy, constant):
    assert policy.runtime_constant == constant


def test_default_context():
    ctx = CompilationContext.default()

    assert ctx.jobs == 1
    assert ctx.unobserved_error_policy is UnobservedErrorPolicy.LOG
    assert ctx.log_level is LogLevel.WARNING
