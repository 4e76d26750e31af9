"""Tests for the tokenizer and parser."""

import pytest

from have.ast import (
    COMPOUND_MAPLIKE,
    BinaryOp,
    CompoundLit,
    ExprStmt,
    ForRangeStmt,
    GenericFunc,
    GenericStruct,
    IfStmt,
    ImportStmt,
    StructStmt,
    VarStmt,
    WhenStmt,
)
from have.frontend.parse import ParseError, parse
from have.frontend.tokens import TokenizeError, tokenize


def _types(source: str) -> list[str]:
    return [t.type for t in tokenize(source)]


def test_indentation_tokens():
    assert _types("a:\n b\n") == ["IDENT", "OP", "NEWLINE", "INDENT", "IDENT", "NEWLINE", "DEDENT", "EOF"]


def test_comments_and_blank_lines_carry_no_layout():
    assert _types("a\n\n# note\n   # indented note\nb\n") == ["IDENT", "NEWLINE", "IDENT", "NEWLINE", "EOF"]


def test_newlines_inside_brackets_are_ignored():
    assert _types("f(1,\n  2)\nx\n") == [
        "IDENT", "OP", "INT", "OP", "INT", "OP", "NEWLINE", "IDENT", "NEWLINE", "EOF"
    ]


def test_first_line_offsets_positions():
    tokens = tokenize("x\n", first_line=10)
    assert (tokens[0].line, tokens[0].col) == (10, 1)


def test_unmatched_closer():
    with pytest.raises(TokenizeError) as exc:
        tokenize("a)\n")
    assert (exc.value.line, exc.value.col) == (1, 2)


def test_binary_precedence():
    (top,) = parse("1 + 2 * 3\n")
    assert isinstance(top.stmt, ExprStmt)
    expr = top.stmt.expr
    assert isinstance(expr, BinaryOp) and expr.op == "+"
    assert isinstance(expr.right, BinaryOp) and expr.right.op == "*"


def test_if_elif_else_branches():
    (top,) = parse("if a:\n 1\nelif b:\n 2\nelse:\n 3\n")
    assert isinstance(top.stmt, IfStmt)
    conditions = [br.condition is None for br in top.stmt.branches]
    assert conditions == [False, False, True]


def test_function_is_a_var_statement():
    (top,) = parse("func f(a, b int) (int, string):\n return a, \"x\"\n")
    assert isinstance(top.stmt, VarStmt)
    assert top.stmt.is_func
    assert top.decls == ["f"]


def test_generic_function_keeps_its_source():
    source = "var x = 1\nfunc id[T](x T) T:\n return x\n"
    _, top = parse(source)
    assert isinstance(top.stmt, GenericFunc)
    assert top.stmt.params == ["T"]
    assert top.stmt.line_offset == 2
    assert top.stmt.code.startswith("func id[T]")


def test_generic_struct():
    (top,) = parse("struct Pair[K, V]:\n k K\n v V\n")
    assert isinstance(top.stmt, GenericStruct)
    assert top.stmt.params == ["K", "V"]


def test_struct_methods_have_self_receiver():
    (top,) = parse("struct P:\n a int\n func Get() int:\n  return self.a\n")
    assert isinstance(top.stmt, StructStmt)
    method = top.stmt.decl.methods["Get"]
    assert method.receiver is not None and method.receiver.name == "self"
    assert top.stmt.struct.keys == ["a"]


def test_keyed_composite_literal():
    (top,) = parse('var m = map[string]int{"a": 1, "b": 2}\n')
    lit = top.stmt.vars[0].inits[0]
    assert isinstance(lit, CompoundLit)
    assert lit.kind == COMPOUND_MAPLIKE
    assert len(list(lit.key_vals())) == 2


def test_range_forms():
    scoped, outside = parse("for var k, v in m:\n pass\nfor k, v in m:\n pass\n")
    assert isinstance(scoped.stmt, ForRangeStmt) and scoped.stmt.scoped_vars is not None
    assert isinstance(outside.stmt, ForRangeStmt) and outside.stmt.outside_vars is not None


def test_when_predicates():
    (top,) = parse("when int, string:\n is int, is string:\n  pass\n default:\n  pass\n")
    assert isinstance(top.stmt, WhenStmt)
    assert len(top.stmt.args) == 2
    assert [len(br.predicates) for br in top.stmt.branches] == [2, 1]


def test_import_name_is_last_path_element():
    (top,) = parse('import "encoding/json"\n')
    assert isinstance(top.stmt, ImportStmt)
    assert top.stmt.name == "json"
    assert not top.stmt.alias


def test_parse_error_position():
    with pytest.raises(ParseError) as exc:
        parse("var = 1\n")
    assert exc.value.line == 1


def test_mixed_composite_elements_rejected():
    with pytest.raises(ParseError) as exc:
        parse("var x = []int{1, a: 2}\n")
    assert "mixture of keyed and positional elements" in exc.value.msg
