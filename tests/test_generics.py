"""Tests for the generics engine and its instantiation cache."""

import pytest

from have import CompileFailed, Context, InstantiationError, NegotiationError, Unit, compile_source
from have.ast import Pos
from have.context import INST_COMPLETE, INST_FAILED
from have.frontend.parse import parse
from have.middleend.generics import instance_name, instantiate
from have.types import INT, STRING, MapType, SimpleType, SliceType


def _unit(source: str) -> Unit:
    unit = Unit(parse(source), Context())
    unit.register()
    return unit


def _instantiate(unit: Unit, args):
    generic = unit.stmts[0].stmt
    return instantiate(generic, args, Pos(1, 1), unit.context, unit.negotiate_instance, unit)


def test_instance_name():
    assert instance_name("max", [INT]) == "max__int"
    assert instance_name("Pair", [STRING, SliceType(INT)]) == "Pair__string_Sl_int"
    assert instance_name("Index", [MapType(STRING, INT)]) == "Index__Map_string_int"


def test_instantiate_function():
    unit = _unit("func id[T](x T) T:\n return x\n")
    inst = _instantiate(unit, [INT])
    assert inst.go_name == "id__int"
    assert inst.state == INST_COMPLETE
    assert str(inst.obj.typ) == "func(int) int"


def test_identical_arguments_hit_the_cache():
    unit = _unit("func id[T](x T) T:\n return x\n")
    first = _instantiate(unit, [INT])
    second = _instantiate(unit, [SimpleType("int")])
    assert first is second
    assert len(unit.context.instantiations) == 1


def test_byte_and_uint8_share_an_instance():
    unit = _unit("func id[T](x T) T:\n return x\n")
    first = _instantiate(unit, [SimpleType("byte")])
    second = _instantiate(unit, [SimpleType("uint8")])
    assert first is second


def test_different_arguments_make_different_instances():
    unit = _unit("func id[T](x T) T:\n return x\n")
    a = _instantiate(unit, [INT])
    b = _instantiate(unit, [STRING])
    assert a is not b
    assert [i.go_name for i in unit.context.completed_instantiations(unit)] == ["id__int", "id__string"]


def test_wrong_arity():
    unit = _unit("func id[T](x T) T:\n return x\n")
    with pytest.raises(NegotiationError) as exc:
        _instantiate(unit, [INT, STRING])
    assert exc.value.msg == "wrong number of type arguments for id: expected 1, got 2"
    assert unit.context.instantiations == {}


def test_failure_is_cached_and_not_retried():
    unit = _unit("func inc[T](x T) T:\n return x + 1\n")
    with pytest.raises(InstantiationError) as first:
        _instantiate(unit, [STRING])
    assert first.value.msg == "cannot instantiate inc[string]"
    assert "mismatched types string and int" in str(first.value)
    (inst,) = unit.context.instantiations.values()
    assert inst.state == INST_FAILED
    with pytest.raises(InstantiationError) as second:
        _instantiate(unit, [STRING])
    assert second.value.msg == "instantiation of inc[string] failed"
    assert second.value.errors is inst.errors
    assert unit.context.completed_instantiations(unit) == []


def test_failed_instance_does_not_poison_other_arguments():
    unit = _unit("func inc[T](x T) T:\n return x + 1\n")
    with pytest.raises(InstantiationError):
        _instantiate(unit, [STRING])
    assert _instantiate(unit, [INT]).state == INST_COMPLETE


def test_recursive_instantiation_terminates():
    source = (
        "func count[T](n int) int:\n"
        " if n == 0:\n"
        "  return 0\n"
        " return count[T](n - 1) + 1\n"
        "var c = count[string](3)\n"
    )
    output = compile_source(source)
    assert output.count("func count__string(") == 1


def test_instantiation_inside_instantiation():
    source = (
        "func id[T](x T) T:\n"
        " return x\n"
        "func twice[T](x T) T:\n"
        " return id[T](id[T](x))\n"
        "var a = twice[int](1)\n"
    )
    output = compile_source(source)
    assert output.index("func twice__int(") < output.index("func id__int(")
    assert "return id__int(id__int(x))" in output


def test_generic_struct_instance_fields():
    source = "struct Pair[K, V]:\n k K\n v V\nvar p = Pair[string, int]{k: \"a\", v: 1}\n"
    output = compile_source(source)
    assert "type Pair__string_int struct {\n\tk string\n\tv int\n}\n" in output


def test_struct_instance_used_as_type():
    source = "struct Box[T]:\n v T\nvar b Box[int]\nvar n = b.v\n"
    output = compile_source(source)
    assert "var b = (Box__int)(Box__int{})" in output
    assert "var n = (int)(b.v)" in output


def test_context_is_shared_between_units():
    ctx = Context()
    source = "func id[T](x T) T:\n return x\nvar a = id[int](1)\n"
    first = Unit(parse(source), ctx)
    assert first.negotiate() == []
    second = Unit(parse(source), ctx)
    assert second.negotiate() == []
    # Same text, different template object: each unit gets its own instance.
    assert len(ctx.completed_instantiations(first)) == 1
    assert len(ctx.completed_instantiations(second)) == 1


def test_failed_instantiation_fails_compile():
    with pytest.raises(CompileFailed) as exc:
        compile_source("func inc[T](x T) T:\n return x + 1\nvar a = inc[string](\"a\")\n")
    assert len(exc.value.errors) == 1
    assert isinstance(exc.value.errors[0], InstantiationError)


def test_instance_name_avoids_declared_names():
    source = (
        "func id[T](x T) T:\n"
        " return x\n"
        "func id__int():\n"
        " pass\n"
        "var a = id[int](1)\n"
    )
    output = compile_source(source)
    assert "var a = (int)(id__int_2(1))" in output
    assert "func id__int_2(x int) int {" in output


def test_claim_name_suffixes_repeats():
    ctx = Context()
    assert ctx.claim_name("id__Sl_int") == "id__Sl_int"
    assert ctx.claim_name("id__Sl_int") == "id__Sl_int_2"
    assert ctx.claim_name("id__Sl_int") == "id__Sl_int_3"


def test_local_type_cannot_be_a_type_argument():
    source = (
        "func id[T](x T) T:\n"
        " return x\n"
        "func f():\n"
        " type A int\n"
        " id[A](1)\n"
        "func g():\n"
        " type A string\n"
        " id[A](\"s\")\n"
    )
    with pytest.raises(CompileFailed) as exc:
        compile_source(source)
    messages = [e.msg for e in exc.value.errors]
    assert messages == [
        "cannot use local type A as type argument to id",
        "cannot use local type A as type argument to id",
    ]
