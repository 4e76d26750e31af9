"""Tests for unit negotiation: states, lookups, imports and error collection."""

import logging

import pytest

from have import CompileFailed, Context, InternalError, MemoryResolver, Package, Unit, compile_source
from have.ast import STATE_FAILED, STATE_GENERATED, STATE_NEGOTIATED, TypeDecl
from have.backend.go import CodeChunk
from have.frontend.parse import parse
from have.types import EMPTY_IFACE, STRING, FuncType, SliceType, StructType


def _negotiate(source: str, context: Context | None = None) -> Unit:
    unit = Unit(parse(source), context)
    unit.negotiate()
    return unit


def _fmt() -> Package:
    return Package(
        "fmt",
        "fmt",
        values={
            "Println": FuncType([SliceType(EMPTY_IFACE)], [], variadic=True),
            "Sprint": FuncType([SliceType(EMPTY_IFACE)], [STRING], variadic=True),
        },
    )


def test_every_statement_ends_negotiated():
    unit = _negotiate("var a = b\nvar b = 1\nprint(a)\n")
    assert unit.errors == []
    assert [top.state for top in unit.stmts] == [STATE_NEGOTIATED] * 3


def test_forward_reference_gets_its_type():
    unit = _negotiate("var a = b\nvar b = \"s\"\n")
    a = unit.peek("a")
    assert str(a.typ) == "string"


def test_generate_marks_statements_generated():
    unit = _negotiate("var a = 1\n")
    chunk = CodeChunk()
    unit.generate(chunk)
    assert chunk.read_all() == "var a = (int)(1)\n"
    assert unit.stmts[0].state == STATE_GENERATED


def test_generate_refuses_a_unit_with_errors():
    unit = _negotiate("var a = missing\n")
    with pytest.raises(InternalError):
        unit.generate(CodeChunk())


def test_failed_statement_does_not_stop_the_rest():
    unit = _negotiate("var a = missing\nvar b = 2\n")
    assert len(unit.errors) == 1
    assert unit.stmts[0].state == STATE_FAILED
    assert unit.stmts[1].state == STATE_NEGOTIATED


def test_error_position():
    unit = _negotiate("var ok = 1\nfunc f() int:\n return \"s\"\n")
    (err,) = unit.errors
    assert (err.line, err.col) == (3, 9)
    assert err.msg == 'cannot use "s" (type string) as type int in return statement'


def test_alias_cycle_reports_both_declarations():
    unit = _negotiate("type A B\ntype B A\n")
    assert [e.msg for e in unit.errors] == [
        "invalid recursive type B",
        "invalid use of B, whose declaration has errors",
    ]


def test_initialization_cycle():
    unit = _negotiate("var a = a\n")
    assert [e.msg for e in unit.errors] == ["initialization cycle: a refers to itself"]


def test_recursive_struct_through_pointer_is_allowed():
    unit = _negotiate("struct Node:\n next *Node\n v int\n")
    assert unit.errors == []
    decl = unit.peek("Node")
    assert isinstance(decl, TypeDecl)
    assert isinstance(decl.aliased_type, StructType)


def test_import_from_resolver():
    ctx = Context(MemoryResolver({"fmt": _fmt()}))
    output = compile_source('import "fmt"\nfmt.Println("x", 1)\n', ctx)
    assert output == 'import "fmt"\nfmt.Println("x", 1)\n'


def test_import_alias():
    ctx = Context(MemoryResolver({"fmt": _fmt()}))
    output = compile_source('import f "fmt"\nvar s = f.Sprint(1)\n', ctx)
    assert output == 'import f "fmt"\nvar s = (string)(f.Sprint(1))\n'


def test_undefined_package_member():
    ctx = Context(MemoryResolver({"fmt": _fmt()}))
    with pytest.raises(CompileFailed) as exc:
        compile_source('import "fmt"\nfmt.Nope()\n', ctx)
    assert exc.value.errors[0].msg == "undefined: fmt.Nope"


def test_duplicate_import():
    ctx = Context(MemoryResolver({"fmt": _fmt()}))
    unit = _negotiate('import "fmt"\nimport "fmt"\n', ctx)
    assert [e.msg for e in unit.errors] == ["fmt redeclared in this block"]


def test_resolver_is_called_once_per_path():
    calls = []

    def resolver(path):
        calls.append(path)
        return _fmt()

    ctx = Context(resolver)
    compile_source('import "fmt"\nfmt.Println(1)\nfmt.Println(2)\n', ctx)
    assert calls == ["fmt"]


def test_expression_types_are_recorded():
    unit = _negotiate("var n = 1 + 2\n")
    init = unit.stmts[0].stmt.vars[0].inits[0]
    assert str(init.typ) == "int"


def test_compile_failed_lists_every_error():
    with pytest.raises(CompileFailed) as exc:
        compile_source("var a = x\nvar b = y\n")
    assert [e.msg for e in exc.value.errors] == ["undefined: x", "undefined: y"]
    assert str(exc.value) == "undefined: x at line 1 col 9\nundefined: y at line 2 col 9"


def test_negotiation_is_logged(caplog):
    with caplog.at_level(logging.DEBUG, logger="have"):
        compile_source("func id[T](x T) T:\n return x\nvar a = id[int](1)\nvar b = id[int](2)\n")
    messages = [r.getMessage() for r in caplog.records]
    assert "negotiating a" in messages
    assert "instantiating id[int] as id__int" in messages
    assert "instantiation cache hit: id__int (complete)" in messages
    assert "generating instantiation id__int" in messages
