"""Tests for type identity, assignability and encodings."""

import pytest

from have.ast import CodeBlock, FuncDecl, Pos, TypeDecl
from have.errors import InternalError
from have.types import (
    BOOL,
    CHAN_BI,
    CHAN_RECV,
    EMPTY_IFACE,
    ERROR_IFACE,
    FLOAT64,
    INT,
    STRING,
    ArrayType,
    ChanType,
    CustomType,
    FuncType,
    GenericParamType,
    IfaceType,
    MapType,
    PointerType,
    SimpleType,
    SliceType,
    StructType,
    TupleType,
    UnknownType,
    assignable,
    contains_generics,
    convertible,
    identical,
    is_nillable,
    is_numeric,
    mangle,
    type_key,
    underlying,
)


def _named(name: str, aliased) -> CustomType:
    decl = TypeDecl(Pos(1, 1), name, aliased)
    return decl.declared_type()


def test_simple_identity_canonicalizes_aliases():
    assert identical(SimpleType("byte"), SimpleType("uint8"))
    assert identical(SimpleType("rune"), SimpleType("int32"))
    assert not identical(INT, SimpleType("int64"))


def test_composite_identity_is_structural():
    assert identical(SliceType(INT), SliceType(SimpleType("int")))
    assert identical(MapType(STRING, SliceType(INT)), MapType(STRING, SliceType(INT)))
    assert not identical(ArrayType(2, INT), ArrayType(3, INT))
    assert not identical(ChanType(INT, CHAN_BI), ChanType(INT, CHAN_RECV))


def test_func_identity_includes_variadic():
    a = FuncType([SliceType(INT)], [INT], variadic=True)
    b = FuncType([SliceType(INT)], [INT])
    assert not identical(a, b)
    assert identical(a, FuncType([SliceType(INT)], [INT], variadic=True))


def test_named_types_are_distinct():
    celsius = _named("Celsius", FLOAT64)
    kelvin = _named("Kelvin", FLOAT64)
    assert not identical(celsius, kelvin)
    assert identical(celsius, celsius.decl.declared_type())
    assert underlying(celsius) is FLOAT64


def test_assignable_between_named_and_unnamed():
    ints = _named("Ints", SliceType(INT))
    assert assignable(SliceType(INT), ints)
    assert assignable(ints, SliceType(INT))
    assert not assignable(_named("A", INT), _named("B", INT))


def test_everything_is_assignable_to_empty_interface():
    assert assignable(INT, EMPTY_IFACE)
    assert assignable(PointerType(STRING), EMPTY_IFACE)


def test_error_interface_requires_error_method():
    assert not assignable(STRING, SimpleType("error"))
    decl = TypeDecl(Pos(1, 1), "E", StructType("E"))
    assert not assignable(PointerType(decl.declared_type()), ERROR_IFACE)


def test_bidirectional_channel_assignable_to_directional():
    assert assignable(ChanType(INT), ChanType(INT, CHAN_RECV))
    assert not assignable(ChanType(INT, CHAN_RECV), ChanType(INT))


def test_interface_implementation_through_pointer_methods():
    sizer = IfaceType("Sizer", ["Size"], {"Size": FuncType([], [INT])})
    decl = TypeDecl(Pos(1, 1), "Box", StructType("Box", ["n"], {"n": INT}))
    method = FuncDecl(Pos(2, 2), "Size", [], [], CodeBlock([]))
    method.typ = FuncType([], [INT])
    decl.methods["Size"] = method
    box = decl.declared_type()
    assert assignable(PointerType(box), sizer)
    assert not assignable(box, sizer)


def test_conversions():
    assert convertible(INT, FLOAT64)
    assert convertible(INT, STRING)
    assert convertible(STRING, SliceType(SimpleType("byte")))
    assert not convertible(STRING, INT)
    assert not convertible(BOOL, INT)


def test_classification():
    assert is_numeric(SimpleType("complex64"))
    assert not is_numeric(STRING)
    assert is_nillable(SliceType(INT))
    assert is_nillable(SimpleType("error"))
    assert not is_nillable(INT)


def test_zero_values():
    assert INT.zero_value() == "0"
    assert STRING.zero_value() == '""'
    assert BOOL.zero_value() == "false"
    assert SliceType(INT).zero_value() == "nil"
    assert ArrayType(2, INT).zero_value() == "[2]int{0, 0}"
    point = _named("Point", StructType("Point", ["x"], {"x": INT}))
    assert point.zero_value() == "Point{}"


def test_string_forms():
    assert str(MapType(STRING, SliceType(INT))) == "map[string][]int"
    assert str(FuncType([INT, SliceType(STRING)], [INT, BOOL], variadic=True)) == "func(int, ...string) (int, bool)"
    assert str(ChanType(INT, CHAN_RECV)) == "<-chan int"


def test_type_key_matches_identity():
    assert type_key(SimpleType("byte")) == type_key(SimpleType("uint8"))
    assert type_key(SliceType(INT)) != type_key(SliceType(STRING))
    param = GenericParamType("T", INT)
    assert type_key(param) == type_key(INT)


def test_mangle():
    assert mangle(INT) == "int"
    assert mangle(SliceType(INT)) == "Sl_int"
    assert mangle(MapType(STRING, PointerType(INT))) == "Map_string_Ptr_int"
    assert mangle(ArrayType(4, INT)) == "Arr4_int"


def test_contains_generics():
    assert contains_generics(SliceType(GenericParamType("T")))
    assert not contains_generics(MapType(STRING, INT))


def test_tuple_has_no_zero_value():
    with pytest.raises(InternalError):
        TupleType([INT, STRING]).zero_value()


def test_map_subtypes_visits_self_first():
    t = MapType(STRING, SliceType(INT))
    seen = []

    def visit(sub):
        seen.append(str(sub))
        return True

    t.map_subtypes(visit)
    assert seen == ["map[string][]int", "string", "[]int", "int"]


def test_map_subtypes_stops_where_visit_says_so():
    t = FuncType([SliceType(INT)], [MapType(STRING, BOOL)])
    seen = []

    def visit(sub):
        seen.append(str(sub))
        return not isinstance(sub, SliceType)

    t.map_subtypes(visit)
    assert seen == ["func([]int) map[string]bool", "[]int", "map[string]bool", "string", "bool"]


def test_named_type_is_a_leaf_of_map_subtypes():
    point = _named("Point", StructType("Point", ["x"], {"x": INT}))
    seen = []

    def visit(sub):
        seen.append(sub)
        return True

    point.map_subtypes(visit)
    assert seen == [point]


def test_unknown_is_never_known():
    assert not UnknownType().known()
    assert not SliceType(UnknownType()).known()


def test_known_once_names_resolve():
    ref = CustomType("A")
    slice_of = SliceType(ref)
    assert not slice_of.known()
    ref.decl = TypeDecl(Pos(1, 1), "A", INT)
    assert slice_of.known()
    assert slice_of.known()


def test_type_key_tells_same_named_declarations_apart():
    first = _named("A", INT)
    second = _named("A", INT)
    assert type_key(first) != type_key(second)
    assert type_key(first) == type_key(first.decl.declared_type())
