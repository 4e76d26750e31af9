"""Tests for the declaration and dependency tracker."""

import pytest

from have.ast import Pos
from have.errors import InternalError
from have.frontend.parse import parse
from have.middleend.deps import decls, deps
from have.types import INT, SliceType


def _top(source: str):
    stmts = parse(source)
    assert len(stmts) == 1
    return stmts[0]


def test_var_decls_and_deps():
    top = _top("var a, b = x, y + x\n")
    assert top.decls == ["a", "b"]
    assert top.deps == ["x", "y"]


def test_blank_is_not_declared():
    top = _top("var _, b = f()\n")
    assert top.decls == ["b"]
    assert top.deps == ["f"]


def test_builtins_and_literals_are_not_deps():
    top = _top("var n = len(xs) + int(1.5)\n")
    assert top.deps == ["xs"]


def test_function_args_and_locals_are_bound():
    top = _top("func f(a int) int:\n var b = a + g\n return b\n")
    assert top.decls == ["f"]
    assert top.deps == ["g"]


def test_recursive_function_does_not_depend_on_itself():
    top = _top("func f(n int) int:\n return f(n - 1)\n")
    assert top.deps == []


def test_type_references_are_deps():
    top = _top("var p *Point\n")
    assert top.deps == ["Point"]


def test_struct_methods_bind_self():
    top = _top("struct P:\n a Q\n func Get() int:\n  return self.a.n + helper()\n")
    assert top.decls == ["P"]
    assert top.deps == ["Q", "helper"]


def test_struct_literal_field_keys_are_not_deps():
    top = _top("var p = P{a: v}\n")
    assert top.deps == ["P", "v"]


def test_map_literal_keys_are_deps():
    top = _top("var m = map[string]int{k: 1}\n")
    assert top.deps == ["k"]


def test_scoped_if_variable_is_bound_in_every_branch():
    top = _top("if t = 1; t == 2:\n print(t)\nelif t == 3:\n print(u)\n")
    assert top.decls == []
    assert top.deps == ["u"]


def test_for_range_scoped_variables():
    top = _top("for var i, x in xs:\n print(i, x, y)\n")
    assert top.deps == ["xs", "y"]


def test_for_range_outside_variables_are_deps():
    top = _top("for i in xs:\n print(i)\n")
    assert top.deps == ["xs", "i"]


def test_type_switch_binding():
    top = _top("switch v = x.(type):\n case int:\n  print(v)\n")
    assert top.deps == ["x"]


def test_generic_params_are_bound():
    top = _top("func id[T](x T) T:\n return x\n")
    assert top.decls == ["id"]
    assert top.deps == []


def test_deps_keep_first_use_order():
    top = _top("var a = c + b + c\n")
    assert top.deps == ["c", "b"]


def test_import_declares_nothing():
    top = _top('import "fmt"\n')
    assert top.decls == []
    assert top.deps == []


def test_free_identifiers_and_types():
    top = _top("var a, b T = x, y\n")
    assert top.decls == ["a", "b"]
    assert set(top.deps) == {"x", "y", "T"}


def test_unknown_node_kind_is_an_internal_error():
    with pytest.raises(InternalError):
        decls(Pos(1, 1))
    with pytest.raises(InternalError):
        deps(SliceType(INT))
