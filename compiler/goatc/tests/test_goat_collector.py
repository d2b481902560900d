#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2026 gwz

import pytest

from conftest import analyze, call, enum, func, has_error_code, lit, param, quiet_context, source, unit
from goat_ast import ConstDecl, PointerTypeRef, StructDecl, FieldDecl, VarDecl, NamedTypeRef
from goat_collector import SymbolCollector, receiver_type_name
from goat_diagnostics import DiagnosticKind
from goat_internal_error import InternalCompilerError
from goat_symbols import CasingClass, SymbolKind, Visibility


def _collect(*files, **ctx):
    collector = SymbolCollector(unit(*files), quiet_context(**ctx))
    return collector, collector.collect()


def test_same_package_helper_in_two_files_is_duplicate():
    result = analyze(
        source("a.goat", [func("helper")]),
        source("b.goat", [func("helper")]),
    )

    assert result.report.kinds() == [DiagnosticKind.DUPLICATE_DECLARATION]
    assert "duplicate declaration of 'helper'" in result.diagnostics[0].message
    assert result.diagnostics[0].filename == "b.goat"


def test_private_and_package_declarations_of_one_name_collide():
    result = analyze(
        source("a.goat", [func("helper", vis="private")]),
        source("b.goat", [func("helper", vis="package")]),
    )

    assert result.report.kinds() == [DiagnosticKind.DUPLICATE_DECLARATION]


def test_private_declarations_in_different_files_do_not_collide():
    result = analyze(
        source("a.goat", [func("helper", vis="private")]),
        source("b.goat", [func("helper", vis="private")]),
    )

    assert result.report.ok
    assert len(result.symbol_table.candidates("app", "helper")) == 2


def test_same_name_in_different_packages_is_fine():
    result = analyze(
        source("a.goat", [func("helper")], package="app"),
        source("b.goat", [func("helper")], package="lib"),
    )

    assert result.report.ok


def test_first_declaration_is_kept():
    first = func("helper", vis="public")
    _, table = _collect(
        source("a.goat", [first]),
        source("b.goat", [func("helper", vis="package")]),
    )

    (kept,) = table.candidates("app", "helper")
    assert kept.node is first
    assert kept.visibility is Visibility.PUBLIC


def test_missing_modifier_is_reported_once():
    result = analyze(
        source("main.goat", [
            func("helper", vis=None),
            func("main", [call("helper")]),
        ]),
    )

    assert result.report.kinds() == [DiagnosticKind.MISSING_VISIBILITY_MODIFIER]
    assert has_error_code(result.diagnostics, "VIS-0010")
    assert result.symbol_table.candidates("app", "helper") == ()


def test_symbol_kinds_and_visibility():
    _, table = _collect(
        source("main.goat", [
            func("run", vis="public"),
            StructDecl("Point", [FieldDecl("x", NamedTypeRef("int"))], visibility="package"),
            VarDecl("count", None, lit(0), visibility="private"),
            ConstDecl("limit", None, lit(10), visibility="package"),
        ]),
    )

    kinds = {s.name: (s.kind, s.visibility) for s in table.iter_symbols()}
    assert kinds == {
        "run": (SymbolKind.FUNCTION, Visibility.PUBLIC),
        "Point": (SymbolKind.TYPE, Visibility.PACKAGE_PRIVATE),
        "count": (SymbolKind.VARIABLE, Visibility.FILE_PRIVATE),
        "limit": (SymbolKind.CONSTANT, Visibility.PACKAGE_PRIVATE),
    }


def test_methods_are_keyed_by_receiver_type():
    recv = param("b", PointerTypeRef(NamedTypeRef("Buf")))
    _, table = _collect(
        source("main.goat", [
            StructDecl("Buf", [], visibility="package"),
            func("Reset", receiver=recv),
            func("Reset"),
        ]),
    )

    method = table.method("app", "Buf", "Reset")
    assert method is not None
    assert method.receiver == "Buf"
    assert [m.name for m in table.package("app").methods_of("Buf")] == ["Reset"]
    # a method and a plain function with one name live apart
    assert len(table.candidates("app", "Reset")) == 1


def test_duplicate_method_on_one_receiver():
    recv = param("b", NamedTypeRef("Buf"))
    result = analyze(
        source("a.goat", [StructDecl("Buf", [], visibility="package"), func("Len", receiver=recv, results=["int"],
                                                                             body=[])]),
        source("b.goat", [func("Len", receiver=recv, results=["int"], body=[])]),
    )

    assert DiagnosticKind.DUPLICATE_DECLARATION in result.report.kinds()
    assert any("duplicate method 'Len' on type 'Buf'" in d.message for d in result.diagnostics)


def test_enum_lowering_names_are_reserved():
    result = analyze(
        source("main.goat", [
            enum("Status", "Idle", "Ready"),
            ConstDecl("Status_Idle", None, lit(1), visibility="package"),
        ]),
    )

    assert result.report.kinds() == [DiagnosticKind.DUPLICATE_DECLARATION]
    assert "reserved by the lowering of enum 'Status'" in result.diagnostics[0].message


def test_enum_registers_definition_and_synthesized_names():
    _, table = _collect(source("main.goat", [enum("Status", "Idle", "Ready", vis="public")]))

    definition = table.enum("app", "Status")
    assert definition.member_names == ("Idle", "Ready")
    synthesized = sorted(s.name for s in table.iter_symbols() if s.synthesized_for == "Status")
    assert synthesized == ["Status_Idle", "Status_Ready", "Status_allValues", "Status_fromString"]
    assert all(s.visibility is Visibility.PUBLIC for s in table.iter_symbols())


def test_collecting_twice_is_an_internal_error():
    collector, _ = _collect(source("main.goat", [func("main")]))

    with pytest.raises(InternalCompilerError) as exc:
        collector.collect()
    assert exc.value.code == "ICE-0020"


def test_published_table_is_read_only():
    _, table = _collect(source("main.goat", [func("main")]))

    with pytest.raises(TypeError):
        table.package("app").by_name["other"] = ()


def test_parallel_collection_matches_sequential():
    files = [
        source(f"f{i}.goat", [func("shared"), func(f"own{i}", vis="private"), func(f"bare{i}", vis=None)])
        for i in range(8)
    ]

    seq_collector, seq_table = _collect(*files, jobs=1)
    par_collector, par_table = _collect(*files, jobs=4)

    assert [d.format() for d in seq_collector.diagnostics] == [d.format() for d in par_collector.diagnostics]
    assert list(seq_table.iter_symbols()) == list(par_table.iter_symbols())


def test_receiver_type_name_strips_pointer():
    assert receiver_type_name(PointerTypeRef(NamedTypeRef("Buf"))) == "Buf"
    assert receiver_type_name(NamedTypeRef("Buf")) == "Buf"


def test_casing_class_is_recorded_for_every_symbol():
    _, table = _collect(source("main.goat", [func("Run", vis="private"), func("run", vis="public"), func("_x")]))

    casings = {sym.name: sym.casing for sym in table.iter_symbols()}
    assert casings == {"Run": CasingClass.UPPER, "run": CasingClass.LOWER, "_x": CasingClass.OTHER}


def test_qualified_names_include_the_receiver():
    buf = StructDecl("Buf", [], visibility="package")
    reset = func("Reset", receiver=param("b", PointerTypeRef(NamedTypeRef("Buf"))))
    _, table = _collect(source("main.goat", [buf, reset]))

    assert sorted(sym.qualified_name for sym in table.iter_symbols()) == ["app.Buf", "app.Buf.Reset"]
