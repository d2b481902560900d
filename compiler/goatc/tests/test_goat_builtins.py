#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2026 gwz

from conftest import analyze, analyze_body, call, func, has_error_code, ident, lit, lowered_body, param, sel, source, t
from goat_ast import (
    CallExpr, DefineStmt, ExprStmt, Ident, Import, MapTypeRef, SelectorExpr, SliceTypeRef, StringLiteral, TypeDecl,
    TypeExpr, VarDecl,
)
from goat_builtin_table import BUILTIN_REWRITES, ELIMINATED_BUILTINS, KEYWORD_BUILTINS, RewriteClass, lookup_builtin
from goat_diagnostics import DiagnosticKind

INTS = SliceTypeRef(t("int"))


def _method_call(recv, name, *args, spread=False):
    return ExprStmt(CallExpr(SelectorExpr(Ident(recv), name), list(args), spread=spread))


# --- table ---

def test_table_covers_the_eliminated_names():
    assert set(ELIMINATED_BUILTINS) == set(BUILTIN_REWRITES)
    assert set(KEYWORD_BUILTINS) == {"panic", "recover", "new", "error"}
    assert lookup_builtin("copy").receiver_index == 1
    assert lookup_builtin("make").rewrite_class is RewriteClass.RUNTIME
    assert lookup_builtin("length") is None


# --- reserved names ---

def test_package_level_declaration_of_builtin_name_is_reserved():
    result = analyze(source("main.goat", [VarDecl("len", None, lit(5), visibility="package")]))

    assert result.report.kinds() == [DiagnosticKind.RESERVED_IDENTIFIER_USED]
    assert "'len' is a reserved identifier" in result.diagnostics[0].message


def test_similar_name_is_not_reserved():
    result = analyze(source("main.goat", [VarDecl("length", None, lit(5), visibility="package")]))

    assert result.report.ok


def test_runtime_namespace_is_reserved():
    result = analyze(source("main.goat", [VarDecl("goat", None, lit(1), visibility="package")]))

    assert has_error_code(result.diagnostics, "BLT-0010")


def test_parameter_named_after_builtin_is_reserved():
    result = analyze(source("main.goat", [func("f", params=[param("len", "int")])]))

    assert result.report.kinds() == [DiagnosticKind.RESERVED_IDENTIFIER_USED]
    assert "cannot be used as a local name" in result.diagnostics[0].message


def test_local_named_after_builtin_is_reserved():
    result = analyze_body([DefineStmt(["cap"], [lit(1)])])

    assert has_error_code(result.diagnostics, "BLT-0010")


def test_method_named_after_keyword_builtin_is_reserved():
    result = analyze(
        source("main.goat", [
            TypeDecl("Stack", INTS, visibility="package"),
            func("panic", receiver=param("s", "Stack")),
        ]),
    )

    assert result.report.kinds() == [DiagnosticKind.RESERVED_IDENTIFIER_USED]
    assert "method name 'panic' is a reserved keyword" in result.diagnostics[0].message


def test_method_named_after_method_builtin_is_allowed():
    result = analyze(
        source("main.goat", [
            TypeDecl("Stack", INTS, visibility="package"),
            func("len", receiver=param("s", "Stack"), results=["int"], body=None),
        ]),
    )

    assert result.report.ok


# --- call rewriting ---

def test_len_becomes_method_call():
    result = analyze_body([call("len", ident("s"))], params=[param("s", INTS)])

    assert result.report.ok
    assert lowered_body(result) == [_method_call("s", "len")]


def test_len_of_string_and_map():
    result = analyze_body(
        [call("len", ident("name")), call("len", ident("m"))],
        params=[param("name", "string"), param("m", MapTypeRef(t("string"), t("int")))],
    )

    assert result.report.ok
    assert lowered_body(result) == [_method_call("name", "len"), _method_call("m", "len")]


def test_len_through_named_type_uses_underlying_type():
    result = analyze_body(
        [call("len", ident("names"))],
        params=[param("names", "Names")],
        extra=[TypeDecl("Names", SliceTypeRef(t("string")), visibility="package")],
    )

    assert result.report.ok
    assert lowered_body(result) == [_method_call("names", "len")]


def test_append_keeps_remaining_arguments():
    result = analyze_body([call("append", ident("xs"), lit(1), lit(2))], params=[param("xs", INTS)])

    assert lowered_body(result) == [_method_call("xs", "append", lit(1), lit(2))]


def test_append_spread_is_kept():
    result = analyze_body(
        [call("append", ident("xs"), ident("ys"), spread=True)],
        params=[param("xs", INTS), param("ys", INTS)],
    )

    assert lowered_body(result) == [_method_call("xs", "append", Ident("ys"), spread=True)]


def test_copy_receiver_is_the_source():
    result = analyze_body([call("copy", ident("dst"), ident("src"))], params=[param("dst", INTS), param("src", INTS)])

    assert lowered_body(result) == [_method_call("src", "copy", Ident("dst"))]


def test_delete_on_map():
    result = analyze_body(
        [call("delete", ident("m"), StringLiteral("k"))],
        params=[param("m", MapTypeRef(t("string"), t("int")))],
    )

    assert lowered_body(result) == [_method_call("m", "delete", StringLiteral("k"))]


def test_make_goes_to_runtime():
    result = analyze_body([DefineStmt(["xs"], [call("make", TypeExpr(INTS), lit(3))])])

    assert result.report.ok
    (define,) = lowered_body(result)
    assert define.values == [CallExpr(SelectorExpr(Ident("goat"), "make"), [TypeExpr(INTS), lit(3)])]


def test_keyword_builtin_call_is_left_alone():
    stmt = call("panic", StringLiteral("boom"))
    result = analyze_body([stmt])

    assert result.report.ok
    assert lowered_body(result) == [ExprStmt(stmt)]


def test_nested_builtin_calls_are_rewritten_inside_out():
    result = analyze_body(
        [DefineStmt(["n"], [call("len", call("append", ident("xs"), lit(1)))])],
        params=[param("xs", INTS)],
    )

    (define,) = lowered_body(result)
    inner = CallExpr(SelectorExpr(Ident("xs"), "append"), [lit(1)])
    assert define.values == [CallExpr(SelectorExpr(inner, "len"), [])]


def test_builtin_inside_package_qualified_call_argument():
    result = analyze_body(
        [call(sel("fmt", "Println"), call("len", ident("xs")))],
        params=[param("xs", INTS)],
        imports=[Import("fmt")],
    )

    (stmt,) = lowered_body(result)
    assert stmt.expr.args == [CallExpr(SelectorExpr(Ident("xs"), "len"), [])]


# --- errors ---

def test_receiver_without_capability():
    stmt = call("len", lit(5))
    result = analyze_body([stmt])

    assert result.report.kinds() == [DiagnosticKind.INVALID_BUILTIN_USAGE]
    assert "'len' needs a" in result.diagnostics[0].message
    assert "type int" in result.diagnostics[0].message
    assert lowered_body(result) == [ExprStmt(stmt)]


def test_close_needs_a_channel():
    result = analyze_body([call("close", ident("xs"))], params=[param("xs", INTS)])

    assert result.report.kinds() == [DiagnosticKind.INVALID_BUILTIN_USAGE]
    assert "'close' needs a channel receiver" in result.diagnostics[0].message


def test_wrong_argument_count():
    result = analyze_body([call("len", ident("a"), ident("b"))], params=[param("a", INTS), param("b", INTS)])

    assert result.report.kinds() == [DiagnosticKind.INVALID_BUILTIN_USAGE]
    assert "'len' expects 1 argument(s), got 2" in result.diagnostics[0].message


def test_variadic_arity_message():
    result = analyze_body([call("append")])

    assert "'append' expects at least 1 argument(s), got 0" in result.diagnostics[0].message


def test_builtin_used_as_value():
    result = analyze_body([DefineStmt(["g"], [ident("len")])])

    assert result.report.kinds() == [DiagnosticKind.INVALID_BUILTIN_USAGE]
    assert "can only be called, not used as a value" in result.diagnostics[0].message


def test_unknown_receiver_type_is_rewritten_unchecked():
    result = analyze_body([call("len", call(sel("io", "Reader")))], imports=[Import("io")])

    (stmt,) = lowered_body(result)
    assert stmt.expr.callee.field == "len"
    assert result.report.ok
