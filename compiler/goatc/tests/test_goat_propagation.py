#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2026 gwz

from conftest import analyze, analyze_body, call, enum, func, ident, lit, lowered_body, param, source, t
from goat_ast import (
    AssignStmt, BinaryOp, Block, BoolLiteral, CallExpr, CompositeLit, DefineStmt, ExprStmt, FieldDecl, ForStmt, FuncLit,
    Ident, IfStmt, IntLiteral, NilLiteral, Param, PointerTypeRef, PropagateExpr, ReturnStmt, StringLiteral, StructDecl,
    UnaryOp, VarDecl,
)
from goat_diagnostics import DiagnosticKind

# g() (int, error), parse(s string) (int, error), check() (bool, error), save() error,
# count() int, pair() (int, string, error), cond() bool
G = func("g", results=["int", "error"], body=None)
PARSE = func("parse", params=[param("s", "string")], results=["int", "error"], body=None)
CHECK = func("check", results=["bool", "error"], body=None)
SAVE = func("save", results=["error"], body=None)
COUNT = func("count", results=["int"], body=None)
PAIR = func("pair", results=["int", "string", "error"], body=None)
COND = func("cond", results=["bool"], body=None)
HELPERS = [G, PARSE, CHECK, SAVE, COUNT, PAIR, COND]


def q(expr):
    return PropagateExpr(expr)


def _check(err, *zeros):
    return IfStmt(
        None,
        BinaryOp("!=", Ident(err), NilLiteral()),
        Block([ReturnStmt(list(zeros) + [Ident(err)])]),
    )


def _body(stmts, results=("int", "error"), **kw):
    return analyze_body(stmts, results=results, extra=HELPERS, **kw)


# --- statement forms ---

def test_define_gets_an_error_temporary():
    result = _body([DefineStmt(["x"], [q(call("g"))])], results=("string", "error"))

    assert result.report.ok
    assert lowered_body(result) == [
        DefineStmt(["x", "__err1"], [CallExpr(Ident("g"), [])]),
        _check("__err1", StringLiteral("")),
    ]


def test_discard_of_error_only_call():
    result = _body([ExprStmt(q(call("save")))], results=("error",))

    assert result.report.ok
    assert lowered_body(result) == [
        DefineStmt(["__err1"], [CallExpr(Ident("save"), [])]),
        _check("__err1"),
    ]


def test_discard_keeps_value_slots():
    result = _body([ExprStmt(q(call("g")))])

    assert lowered_body(result)[0] == DefineStmt(["_", "__err1"], [CallExpr(Ident("g"), [])])


def test_define_of_several_values():
    result = _body([DefineStmt(["n", "s"], [q(call("pair"))])])

    assert result.report.ok
    assert lowered_body(result)[0] == DefineStmt(["n", "s", "__err1"], [CallExpr(Ident("pair"), [])])


def test_multi_assignment_goes_through_temporaries():
    result = _body([
        DefineStmt(["n"], [lit(0)]),
        DefineStmt(["s"], [StringLiteral("")]),
        AssignStmt([ident("n"), ident("s")], [q(call("pair"))]),
    ])

    assert result.report.ok
    assert lowered_body(result)[2:] == [
        DefineStmt(["__val1", "__val2", "__err3"], [CallExpr(Ident("pair"), [])]),
        _check("__err3", IntLiteral(0)),
        AssignStmt([Ident("n"), Ident("s")], [Ident("__val1"), Ident("__val2")]),
    ]


# --- nested uses ---

def test_nested_uses_are_hoisted_in_order():
    total = BinaryOp("+", q(call("parse", StringLiteral("a"))), q(call("parse", StringLiteral("b"))))
    result = _body([DefineStmt(["total"], [total])])

    assert result.report.ok
    assert lowered_body(result) == [
        DefineStmt(["__val1", "__err2"], [CallExpr(Ident("parse"), [StringLiteral("a")])]),
        _check("__err2", IntLiteral(0)),
        DefineStmt(["__val3", "__err4"], [CallExpr(Ident("parse"), [StringLiteral("b")])]),
        _check("__err4", IntLiteral(0)),
        DefineStmt(["total"], [BinaryOp("+", Ident("__val1"), Ident("__val3"))]),
    ]


def test_earlier_operand_with_a_call_is_spilled():
    result = _body([DefineStmt(["x"], [BinaryOp("+", call("count"), q(call("g")))])])

    assert result.report.ok
    assert lowered_body(result) == [
        DefineStmt(["__tmp3"], [CallExpr(Ident("count"), [])]),
        DefineStmt(["__val1", "__err2"], [CallExpr(Ident("g"), [])]),
        _check("__err2", IntLiteral(0)),
        DefineStmt(["x"], [BinaryOp("+", Ident("__tmp3"), Ident("__val1"))]),
    ]


def test_earlier_pure_operand_is_not_spilled():
    result = _body([DefineStmt(["x"], [BinaryOp("+", lit(1), q(call("g")))])])

    assert lowered_body(result)[-1] == DefineStmt(["x"], [BinaryOp("+", IntLiteral(1), Ident("__val1"))])


def test_right_operand_of_and_is_guarded():
    result = _body([DefineStmt(["ok"], [BinaryOp("&&", call("cond"), q(call("check")))])],
                   results=("bool", "error"))
    stmts = lowered_body(result)

    assert stmts[0] == DefineStmt(["__and3"], [CallExpr(Ident("cond"), [])])
    guard = stmts[1]
    assert guard.cond == Ident("__and3")
    assert guard.then_block.stmts == [
        DefineStmt(["__val1", "__err2"], [CallExpr(Ident("check"), [])]),
        _check("__err2", BoolLiteral(False)),
        AssignStmt([Ident("__and3")], [Ident("__val1")]),
    ]
    assert stmts[2] == DefineStmt(["ok"], [Ident("__and3")])


def test_right_operand_of_or_runs_when_left_is_false():
    result = _body([DefineStmt(["ok"], [BinaryOp("||", call("cond"), q(call("check")))])],
                   results=("bool", "error"))

    guard = lowered_body(result)[1]
    assert guard.cond == UnaryOp("!", Ident("__or3"))


def test_condition_of_if_is_hoisted():
    stmt = IfStmt(None, q(call("check")), Block([ExprStmt(call("count"))]))
    result = _body([stmt], results=("error",))

    stmts = lowered_body(result)
    assert stmts[0] == DefineStmt(["__val1", "__err2"], [CallExpr(Ident("check"), [])])
    assert stmts[1] == _check("__err2")
    assert stmts[2].cond == Ident("__val1")


def test_return_operand():
    result = _body([ReturnStmt([q(call("g")), NilLiteral()])])

    assert lowered_body(result)[-1] == ReturnStmt([Ident("__val1"), NilLiteral()])


def test_temporaries_avoid_user_names():
    result = _body([DefineStmt(["__err1"], [lit(0)]), DefineStmt(["x"], [q(call("g"))])])

    assert lowered_body(result)[1] == DefineStmt(["x", "__err2"], [CallExpr(Ident("g"), [])])


# --- zero values ---

def test_zero_values_of_result_types():
    result = analyze_body(
        [ExprStmt(q(call("save")))],
        results=("Point", PointerTypeRef(t("Point")), "bool", "float64", "Status", "error"),
        extra=[
            SAVE,
            StructDecl("Point", [FieldDecl("x", t("int"))], visibility="package"),
            enum("Status", "Idle", "Ready"),
        ],
    )

    assert result.report.ok
    ret = lowered_body(result)[1].then_block.stmts[0]
    assert ret.values == [
        CompositeLit(t("Point"), []),
        NilLiteral(),
        BoolLiteral(False),
        IntLiteral(0),
        Ident("Status_Idle"),
        Ident("__err1"),
    ]


def test_unknown_result_type_uses_new():
    result = analyze_body([ExprStmt(q(call("save")))], results=("Mystery", "error"), extra=[SAVE])

    ret = lowered_body(result)[1].then_block.stmts[0]
    assert isinstance(ret.values[0], UnaryOp)
    assert ret.values[0].operand.callee == Ident("new")


# --- errors ---

def test_function_without_error_result():
    stmt = DefineStmt(["x"], [q(call("g"))])
    result = _body([stmt], results=("string",))

    assert result.report.kinds() == [DiagnosticKind.PROPAGATION_OUTSIDE_ERROR_FUNCTION]
    assert "the last result must be an error" in result.diagnostics[0].message
    assert lowered_body(result) == [stmt]


def test_function_without_results():
    result = _body([ExprStmt(q(call("save")))], results=())

    assert result.report.kinds() == [DiagnosticKind.PROPAGATION_OUTSIDE_ERROR_FUNCTION]
    assert "it has no results" in result.diagnostics[0].message


def test_package_level_initializer():
    result = analyze(source("main.goat", HELPERS + [VarDecl("x", None, q(call("g")), visibility="package")]))

    assert result.report.kinds() == [DiagnosticKind.PROPAGATION_OUTSIDE_ERROR_FUNCTION]


def test_operand_without_error():
    result = _body([DefineStmt(["x"], [q(call("count"))])])

    assert result.report.kinds() == [DiagnosticKind.INVALID_PROPAGATION_OPERAND]
    assert "type int, which is not an error" in result.diagnostics[0].message


def test_operand_value_count_mismatch():
    result = _body([DefineStmt(["x"], [q(call("pair"))])])

    assert result.report.kinds() == [DiagnosticKind.INVALID_PROPAGATION_OPERAND]
    assert "yields 2 value(s) where 1 are expected" in result.diagnostics[0].message


def test_for_post_statement():
    loop = ForStmt(
        DefineStmt(["i"], [lit(0)]),
        BinaryOp("<", ident("i"), lit(3)),
        AssignStmt([ident("i")], [q(call("g"))]),
        Block([]),
    )
    result = _body([loop])

    assert result.report.kinds() == [DiagnosticKind.UNSUPPORTED_PROPAGATION_SITE]
    assert "for-loop post statement" in result.diagnostics[0].message


def test_propagation_in_function_literal_uses_its_results():
    lit_fn = FuncLit([], [Param(None, t("error"))], Block([ExprStmt(q(call("save")))]))
    result = _body([DefineStmt(["run"], [lit_fn])], results=())

    assert result.report.ok
    (define,) = lowered_body(result)
    assert define.values[0].body.stmts[0] == DefineStmt(["__err1"], [CallExpr(Ident("save"), [])])
