#  SPDX-License-Identifier: MIT OR Apache-2.0
#  Copyright (c) 2026 gwz

import json

import pytest

from conftest import analyze, call, enum, func, ident, param, source, span, unit
from goat_ast import DefineStmt, FuncDecl, GoExpr, Ident, Import, PropagateExpr, Span
from goat_internal_error import InternalCompilerError
from goat_tree_json import (
    NODE_TAG, TreeFormatError, build_node_registry, decode_node, dumps, encode_node, load_compilation_unit, loads,
)


def _tree():
    return unit(
        source(
            "main.goat",
            [
                enum("Status", "Idle", "Ready"),
                func("g", results=["int", "error"], body=None),
                func(
                    "f",
                    [
                        DefineStmt(["x"], [PropagateExpr(call("g", line=4), span=span(4, 10))], span=span(4)),
                        DefineStmt(["p"], [GoExpr(call("g"))]),
                    ],
                    params=[param("s", "string")],
                    results=["error"],
                    line=3,
                ),
            ],
            imports=[Import("fmt"), Import("strings", dot=True)],
        ),
    )


def test_node_encoding_shape():
    data = encode_node(Ident("x", span=Span(1, 2, 1, 3)))

    assert data == {NODE_TAG: "Ident", "name": "x", "span": [1, 2, 1, 3]}


def test_span_is_omitted_when_unknown():
    assert "span" not in encode_node(Ident("x"))


def test_decoded_tree_equals_original():
    cu = _tree()

    decoded = loads(dumps(cu))
    assert decoded == cu
    (f,) = decoded.all_files()
    assert f.filename == "main.goat"
    assert f.decls[2].span == Span(3, 1, 3, 2)


def test_lowered_tree_survives_the_trip():
    result = analyze(*_tree().all_files())

    decoded = loads(dumps(result.lowered))
    assert decoded == result.lowered


def test_registry_knows_every_concrete_node():
    registry = build_node_registry()

    assert registry["FuncDecl"] is FuncDecl
    assert "PropagateExpr" in registry and "GoExpr" in registry
    assert "Span" not in registry


def test_unknown_tag_is_an_internal_error():
    with pytest.raises(InternalCompilerError) as exc:
        decode_node({NODE_TAG: "Lambda", "body": []})
    assert exc.value.code == "ICE-0040"


def test_missing_tag():
    with pytest.raises(TreeFormatError, match="without a 'node' tag"):
        decode_node({"name": "x"})


def test_missing_required_field():
    with pytest.raises(TreeFormatError, match="Ident node is missing field 'name'"):
        decode_node({NODE_TAG: "Ident"})


def test_optional_fields_take_their_defaults():
    node = decode_node({NODE_TAG: "Import", "path": "fmt"})

    assert node == Import("fmt")


def test_malformed_span():
    with pytest.raises(TreeFormatError, match="malformed span"):
        decode_node({NODE_TAG: "Ident", "name": "x", "span": [1, 2]})


def test_invalid_json():
    with pytest.raises(TreeFormatError, match="invalid JSON"):
        loads("{packages")


def test_missing_packages_list():
    with pytest.raises(TreeFormatError):
        loads(json.dumps({"files": []}))


def test_file_listed_under_wrong_package():
    data = json.loads(dumps(_tree()))
    data["packages"][0]["path"] = "other"

    with pytest.raises(TreeFormatError, match="declares package 'app'"):
        loads(json.dumps(data))


def test_load_from_disk(tmp_path):
    path = tmp_path / "tree.json"
    path.write_text(dumps(_tree()), encoding="utf-8")

    assert load_compilation_unit(path) == _tree()


def test_load_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_compilation_unit(tmp_path / "absent.json")


def test_entry_is_kept():
    cu = _tree()
    cu.entry = "app"

    assert loads(dumps(cu)).entry == "app"
    assert "entry" not in json.loads(dumps(_tree()))


def test_identifiers_are_preserved_verbatim():
    cu = unit(source("main.goat", [func("f", [DefineStmt(["größe"], [ident("s")])], params=[param("s", "int")])]))

    text = dumps(cu)
    assert "größe" in text
    assert loads(text) == cu
