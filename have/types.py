"""Have type system - value representations of every first-class type.

Every type exposes the same small algebra:

    known()            fully resolved, no inference placeholders beneath
    str(t)             canonical Go text
    kind               discriminant (one of the KIND_* constants)
    zero_value()       Go literal for the type's default value
    map_subtypes(fn)   visit self, then children while fn returns True

Named types (CustomType) point at their TypeDecl; the alias chain is walked
by root_type(). GenericParamType and GenericInstanceType only live inside
uninstantiated generic bodies and are replaced during negotiation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from .errors import InternalError

if TYPE_CHECKING:
    from .ast import FuncDecl, GenericStruct, ImportStmt, TypeDecl


# ============================================================
# KINDS
# ============================================================

KIND_SIMPLE: str = "simple"
KIND_ARRAY: str = "array"
KIND_SLICE: str = "slice"
KIND_MAP: str = "map"
KIND_POINTER: str = "pointer"
KIND_CUSTOM: str = "custom"
KIND_STRUCT: str = "struct"
KIND_INTERFACE: str = "interface"
KIND_TUPLE: str = "tuple"
KIND_FUNC: str = "func"
KIND_CHAN: str = "chan"
KIND_GENERIC_PARAM: str = "generic_param"
KIND_GENERIC_INST: str = "generic_inst"
KIND_UNKNOWN: str = "unknown"

CHAN_BI: str = "bi"
CHAN_RECV: str = "recv"
CHAN_SEND: str = "send"

BUILTIN_TYPE_NAMES: list[str] = [
    "bool",
    "byte",
    "complex128",
    "complex64",
    "error",
    "float32",
    "float64",
    "int",
    "int16",
    "int32",
    "int64",
    "int8",
    "rune",
    "string",
    "uint",
    "uint16",
    "uint32",
    "uint64",
    "uint8",
    "uintptr",
]

# Go spells the same type two ways for these.
_CANONICAL_SIMPLE: dict[str, str] = {"byte": "uint8", "rune": "int32"}

_INT_NAMES: set[str] = {
    "int",
    "int8",
    "int16",
    "int32",
    "int64",
    "uint",
    "uint8",
    "uint16",
    "uint32",
    "uint64",
    "uintptr",
    "byte",
    "rune",
}
_FLOAT_NAMES: set[str] = {"float32", "float64"}
_COMPLEX_NAMES: set[str] = {"complex64", "complex128"}

Visitor = Callable[["Type"], bool]


# ============================================================
# TYPES
# ============================================================


@dataclass(eq=False)
class Type:
    """Base for all types. Abstract."""

    kind = KIND_UNKNOWN

    def known(self) -> bool:
        raise NotImplementedError

    def zero_value(self) -> str:
        raise NotImplementedError

    def children(self) -> list[Type]:
        return []

    def map_subtypes(self, visit: Visitor) -> None:
        if visit(self):
            for child in self.children():
                child.map_subtypes(visit)


@dataclass(eq=False)
class SimpleType(Type):
    """Builtin scalar: numbers, bool, string, error."""

    name: str
    kind = KIND_SIMPLE

    def known(self) -> bool:
        return True

    def __str__(self) -> str:
        return self.name

    def zero_value(self) -> str:
        if self.name == "string":
            return '""'
        if self.name == "bool":
            return "false"
        if self.name == "error":
            return "nil"
        return "0"


@dataclass(eq=False)
class ArrayType(Type):
    """[N]T."""

    size: int
    of: Type
    kind = KIND_ARRAY

    def known(self) -> bool:
        return self.of.known()

    def __str__(self) -> str:
        return "[" + str(self.size) + "]" + str(self.of)

    def zero_value(self) -> str:
        elems: list[str] = []
        for _ in range(self.size):
            elems.append(self.of.zero_value())
        return str(self) + "{" + ", ".join(elems) + "}"

    def children(self) -> list[Type]:
        return [self.of]


@dataclass(eq=False)
class SliceType(Type):
    """[]T."""

    of: Type
    kind = KIND_SLICE

    def known(self) -> bool:
        return self.of.known()

    def __str__(self) -> str:
        return "[]" + str(self.of)

    def zero_value(self) -> str:
        return "nil"

    def children(self) -> list[Type]:
        return [self.of]


@dataclass(eq=False)
class MapType(Type):
    """map[K]V."""

    by: Type
    of: Type
    kind = KIND_MAP

    def known(self) -> bool:
        return self.by.known() and self.of.known()

    def __str__(self) -> str:
        return "map[" + str(self.by) + "]" + str(self.of)

    def zero_value(self) -> str:
        return "nil"

    def children(self) -> list[Type]:
        return [self.by, self.of]


@dataclass(eq=False)
class FuncType(Type):
    """func(args) results. A variadic function's last arg is the slice type."""

    args: list[Type]
    results: list[Type]
    variadic: bool = False
    kind = KIND_FUNC

    def known(self) -> bool:
        for t in self.args:
            if not t.known():
                return False
        for t in self.results:
            if not t.known():
                return False
        return True

    def __str__(self) -> str:
        return "func" + self.header()

    def header(self) -> str:
        """Signature without the `func` keyword: (args) results."""
        args: list[str] = []
        for i, a in enumerate(self.args):
            if self.variadic and i == len(self.args) - 1 and isinstance(a, SliceType):
                args.append("..." + str(a.of))
            else:
                args.append(str(a))
        out = "(" + ", ".join(args) + ")"
        if len(self.results) == 1:
            out += " " + str(self.results[0])
        elif len(self.results) > 1:
            results: list[str] = []
            for r in self.results:
                results.append(str(r))
            out += " (" + ", ".join(results) + ")"
        return out

    def zero_value(self) -> str:
        return "nil"

    def children(self) -> list[Type]:
        return list(self.args) + list(self.results)


@dataclass(eq=False)
class ChanType(Type):
    """chan T, <-chan T, chan<- T."""

    of: Type
    dir: str = CHAN_BI
    kind = KIND_CHAN

    def known(self) -> bool:
        return self.of.known()

    def __str__(self) -> str:
        if self.dir == CHAN_RECV:
            return "<-chan " + str(self.of)
        if self.dir == CHAN_SEND:
            return "chan<- " + str(self.of)
        return "chan " + str(self.of)

    def zero_value(self) -> str:
        return "nil"

    def children(self) -> list[Type]:
        return [self.of]


@dataclass(eq=False)
class PointerType(Type):
    """*T."""

    to: Type
    kind = KIND_POINTER

    def known(self) -> bool:
        return self.to.known()

    def __str__(self) -> str:
        return "*" + str(self.to)

    def zero_value(self) -> str:
        return "nil"

    def children(self) -> list[Type]:
        return [self.to]


@dataclass(eq=False)
class TupleType(Type):
    """Multiple values in flight, e.g. the result of a multi-result call.

    Never the type of a storable variable, so it has no zero value.
    """

    members: list[Type]
    kind = KIND_TUPLE

    def known(self) -> bool:
        for t in self.members:
            if not t.known():
                return False
        return True

    def __str__(self) -> str:
        parts: list[str] = []
        for t in self.members:
            parts.append(str(t))
        return "(" + ", ".join(parts) + ")"

    def zero_value(self) -> str:
        raise InternalError("tuple types have no zero value")

    def children(self) -> list[Type]:
        return list(self.members)


@dataclass(eq=False)
class StructType(Type):
    """struct { ... }. Keys keep declaration order."""

    name: str
    keys: list[str] = field(default_factory=list)
    members: dict[str, Type] = field(default_factory=dict)
    methods: dict[str, FuncDecl] = field(default_factory=dict, repr=False)
    kind = KIND_STRUCT

    def known(self) -> bool:
        for k in self.keys:
            if not self.members[k].known():
                return False
        return True

    def __str__(self) -> str:
        parts: list[str] = []
        for k in self.keys:
            parts.append(k + " " + str(self.members[k]))
        return "struct {" + "; ".join(parts) + "}"

    def zero_value(self) -> str:
        if self.name != "":
            return self.name + "{}"
        return str(self) + "{}"

    def children(self) -> list[Type]:
        result: list[Type] = []
        for k in self.keys:
            result.append(self.members[k])
        return result


@dataclass(eq=False)
class IfaceType(Type):
    """interface { ... }. Keys keep declaration order."""

    name: str
    keys: list[str] = field(default_factory=list)
    methods: dict[str, FuncType] = field(default_factory=dict)
    kind = KIND_INTERFACE

    def known(self) -> bool:
        return True

    def __str__(self) -> str:
        parts: list[str] = []
        for k in self.keys:
            parts.append(k + self.methods[k].header())
        return "interface{" + "; ".join(parts) + "}"

    def zero_value(self) -> str:
        return "nil"


@dataclass(eq=False)
class CustomType(Type):
    """Reference to a named type.

    `decl` is filled by negotiation; `package` is None for local types.
    """

    name: str
    package: ImportStmt | None = field(default=None, repr=False)
    decl: TypeDecl | None = field(default=None, repr=False)
    kind = KIND_CUSTOM

    def known(self) -> bool:
        return self.decl is not None

    def __str__(self) -> str:
        if self.package is None:
            return self.name
        return self.package.name + "." + self.name

    def root_type(self) -> Type:
        if self.decl is None or self.decl.aliased_type is None:
            raise InternalError("unresolved type " + self.name)
        current = self.decl.aliased_type
        while isinstance(current, CustomType):
            current = current.decl.aliased_type
        return current

    def zero_value(self) -> str:
        root = self.root_type()
        if isinstance(root, (StructType, ArrayType)):
            return str(self) + "{}"
        return root.zero_value()


@dataclass(eq=False)
class GenericParamType(Type):
    """Placeholder for a generic parameter inside an uninstantiated body."""

    name: str
    concrete: Type | None = None
    kind = KIND_GENERIC_PARAM

    def known(self) -> bool:
        if self.concrete is None:
            return False
        return self.concrete.known()

    def __str__(self) -> str:
        if self.concrete is None:
            return self.name
        return str(self.concrete)

    def zero_value(self) -> str:
        if self.concrete is None:
            raise InternalError("zero value of unbound generic parameter " + self.name)
        return self.concrete.zero_value()


@dataclass(eq=False)
class GenericInstanceType(Type):
    """Name[T1, T2] as written in source, before instantiation."""

    name: str
    params: list[Type]
    package: ImportStmt | None = field(default=None, repr=False)
    # Filled by negotiation.
    generic: GenericStruct | None = field(default=None, repr=False)
    kind = KIND_GENERIC_INST

    def known(self) -> bool:
        for p in self.params:
            if not p.known():
                return False
        return True

    def __str__(self) -> str:
        parts: list[str] = []
        for p in self.params:
            parts.append(str(p))
        prefix = "" if self.package is None else self.package.name + "."
        return prefix + self.name + "[" + ", ".join(parts) + "]"

    def zero_value(self) -> str:
        raise InternalError("zero value of uninstantiated generic " + str(self))

    def children(self) -> list[Type]:
        return list(self.params)


@dataclass(eq=False)
class UnknownType(Type):
    """`_`: a type still to be inferred."""

    kind = KIND_UNKNOWN

    def known(self) -> bool:
        return False

    def __str__(self) -> str:
        return "_"

    def zero_value(self) -> str:
        return "nil"


# Singletons for the types untyped literals default to.
BOOL: SimpleType = SimpleType("bool")
INT: SimpleType = SimpleType("int")
FLOAT64: SimpleType = SimpleType("float64")
COMPLEX128: SimpleType = SimpleType("complex128")
RUNE: SimpleType = SimpleType("rune")
STRING: SimpleType = SimpleType("string")
ERROR: SimpleType = SimpleType("error")
EMPTY_IFACE: IfaceType = IfaceType("")
# The builtin error type is the interface { Error() string }.
ERROR_IFACE: IfaceType = IfaceType("error", ["Error"], {"Error": FuncType([], [STRING])})


# ============================================================
# CLASSIFICATION
# ============================================================


def underlying(t: Type) -> Type:
    """The type with every name stripped off."""
    if isinstance(t, CustomType):
        return t.root_type()
    if isinstance(t, GenericParamType) and t.concrete is not None:
        return underlying(t.concrete)
    return t


def _simple_name(t: Type) -> str:
    u = underlying(t)
    if isinstance(u, SimpleType):
        return u.name
    return ""


def is_bool(t: Type) -> bool:
    return _simple_name(t) == "bool"


def is_string(t: Type) -> bool:
    return _simple_name(t) == "string"


def is_integer(t: Type) -> bool:
    return _simple_name(t) in _INT_NAMES


def is_float(t: Type) -> bool:
    return _simple_name(t) in _FLOAT_NAMES


def is_complex(t: Type) -> bool:
    return _simple_name(t) in _COMPLEX_NAMES


def is_numeric(t: Type) -> bool:
    return is_integer(t) or is_float(t) or is_complex(t)


def is_nillable(t: Type) -> bool:
    u = underlying(t)
    if isinstance(u, SimpleType):
        return u.name == "error"
    return isinstance(u, (SliceType, MapType, ChanType, FuncType, PointerType, IfaceType))


def is_named(t: Type) -> bool:
    return isinstance(t, (CustomType, SimpleType))


def contains_generics(t: Type) -> bool:
    """True when a generic placeholder is reachable from t."""
    found: list[bool] = []

    def visit(sub: Type) -> bool:
        if isinstance(sub, (GenericParamType, GenericInstanceType)):
            found.append(True)
            return False
        return True

    t.map_subtypes(visit)
    return len(found) > 0


# ============================================================
# IDENTITY / ASSIGNABILITY
# ============================================================


def _all_identical(xs: list[Type], ys: list[Type]) -> bool:
    if len(xs) != len(ys):
        return False
    for x, y in zip(xs, ys):
        if not identical(x, y):
            return False
    return True


def identical(a: Type, b: Type) -> bool:
    """Go type identity. Named types are identical only to themselves."""
    if a is b:
        return True
    if isinstance(a, GenericParamType) and a.concrete is not None:
        return identical(a.concrete, b)
    if isinstance(b, GenericParamType) and b.concrete is not None:
        return identical(a, b.concrete)
    if a.kind != b.kind:
        return False
    if isinstance(a, SimpleType) and isinstance(b, SimpleType):
        return _CANONICAL_SIMPLE.get(a.name, a.name) == _CANONICAL_SIMPLE.get(b.name, b.name)
    if isinstance(a, ArrayType) and isinstance(b, ArrayType):
        return a.size == b.size and identical(a.of, b.of)
    if isinstance(a, SliceType) and isinstance(b, SliceType):
        return identical(a.of, b.of)
    if isinstance(a, MapType) and isinstance(b, MapType):
        return identical(a.by, b.by) and identical(a.of, b.of)
    if isinstance(a, PointerType) and isinstance(b, PointerType):
        return identical(a.to, b.to)
    if isinstance(a, ChanType) and isinstance(b, ChanType):
        return a.dir == b.dir and identical(a.of, b.of)
    if isinstance(a, FuncType) and isinstance(b, FuncType):
        return (
            a.variadic == b.variadic
            and _all_identical(a.args, b.args)
            and _all_identical(a.results, b.results)
        )
    if isinstance(a, TupleType) and isinstance(b, TupleType):
        return _all_identical(a.members, b.members)
    if isinstance(a, StructType) and isinstance(b, StructType):
        if a.keys != b.keys:
            return False
        for k in a.keys:
            if not identical(a.members[k], b.members[k]):
                return False
        return True
    if isinstance(a, IfaceType) and isinstance(b, IfaceType):
        if sorted(a.keys) != sorted(b.keys):
            return False
        for k in a.keys:
            if not identical(a.methods[k], b.methods[k]):
                return False
        return True
    if isinstance(a, CustomType) and isinstance(b, CustomType):
        if a.decl is not None and b.decl is not None:
            return a.decl is b.decl
        return str(a) == str(b)
    if isinstance(a, GenericInstanceType) and isinstance(b, GenericInstanceType):
        return str(a) == str(b) and _all_identical(a.params, b.params)
    if isinstance(a, GenericParamType) and isinstance(b, GenericParamType):
        return a.name == b.name
    return False


def iface_of(t: Type) -> IfaceType | None:
    """The interface t denotes, with error spelled out; None for concrete types."""
    u = underlying(t)
    if isinstance(u, IfaceType):
        return u
    if isinstance(u, SimpleType) and u.name == "error":
        return ERROR_IFACE
    return None


def method_set(t: Type) -> dict[str, FuncType]:
    """Methods callable on a value of type t.

    Struct methods take pointer receivers, so only *T carries them.
    """
    if isinstance(t, PointerType) and isinstance(t.to, CustomType) and t.to.decl is not None:
        result: dict[str, FuncType] = {}
        for name, fn in t.to.decl.methods.items():
            if isinstance(fn.typ, FuncType):
                result[name] = fn.typ
        return result
    iface = iface_of(t)
    if iface is not None:
        return dict(iface.methods)
    return {}


def missing_method(t: Type, iface: IfaceType) -> str | None:
    """Name of the first interface method t lacks, None if t implements iface."""
    methods = method_set(t)
    for name in iface.keys:
        if name not in methods or not identical(methods[name], iface.methods[name]):
            return name
    return None


def implements(t: Type, iface: IfaceType) -> bool:
    return missing_method(t, iface) is None


def assignable(value: Type, target: Type) -> bool:
    """Whether a value of type `value` may be stored in a `target` slot."""
    if identical(value, target):
        return True
    target_iface = iface_of(target)
    if target_iface is not None and implements(value, target_iface):
        return True
    target_u = underlying(target)
    value_u = underlying(value)
    if (not isinstance(value, CustomType) or not isinstance(target, CustomType)) and identical(
        value_u, target_u
    ):
        return True
    if (
        isinstance(value_u, ChanType)
        and isinstance(target_u, ChanType)
        and value_u.dir == CHAN_BI
        and identical(value_u.of, target_u.of)
    ):
        return True
    return False


def convertible(value: Type, target: Type) -> bool:
    """Go conversion rules, minus unsafe.Pointer."""
    if assignable(value, target):
        return True
    value_u = underlying(value)
    target_u = underlying(target)
    if identical(value_u, target_u):
        return True
    if is_numeric(value_u) and is_numeric(target_u):
        return not (is_complex(value_u) != is_complex(target_u))
    if is_string(target_u):
        if is_integer(value_u):
            return True
        if isinstance(value_u, SliceType) and _simple_name(value_u.of) in ("uint8", "byte", "int32", "rune"):
            return True
    if is_string(value_u) and isinstance(target_u, SliceType):
        return _simple_name(target_u.of) in ("uint8", "byte", "int32", "rune")
    if isinstance(value_u, PointerType) and isinstance(target_u, PointerType):
        return identical(underlying(value_u.to), underlying(target_u.to))
    return False


# ============================================================
# ENCODINGS
# ============================================================


def type_key(t: Type) -> str:
    """Structural encoding of t, equal for identical types."""
    if isinstance(t, SimpleType):
        return _CANONICAL_SIMPLE.get(t.name, t.name)
    if isinstance(t, ArrayType):
        return "[" + str(t.size) + "]" + type_key(t.of)
    if isinstance(t, SliceType):
        return "[]" + type_key(t.of)
    if isinstance(t, MapType):
        return "map[" + type_key(t.by) + "]" + type_key(t.of)
    if isinstance(t, PointerType):
        return "*" + type_key(t.to)
    if isinstance(t, ChanType):
        return "chan(" + t.dir + ")" + type_key(t.of)
    if isinstance(t, FuncType):
        args = [type_key(a) for a in t.args]
        results = [type_key(r) for r in t.results]
        dots = "..." if t.variadic else ""
        return "func(" + ",".join(args) + dots + ")(" + ",".join(results) + ")"
    if isinstance(t, TupleType):
        return "(" + ",".join(type_key(m) for m in t.members) + ")"
    if isinstance(t, StructType):
        fields = [k + " " + type_key(t.members[k]) for k in t.keys]
        return "struct{" + ";".join(fields) + "}"
    if isinstance(t, IfaceType):
        methods = [k + type_key(t.methods[k]) for k in sorted(t.keys)]
        return "interface{" + ";".join(methods) + "}"
    if isinstance(t, CustomType):
        if t.package is not None:
            return t.package.path + "." + t.name
        if t.decl is not None:
            # Same-named declarations in different scopes are different types.
            return t.name + "#" + str(id(t.decl))
        return t.name
    if isinstance(t, GenericParamType):
        if t.concrete is not None:
            return type_key(t.concrete)
        return "$" + t.name
    if isinstance(t, GenericInstanceType):
        return t.name + "[" + ",".join(type_key(p) for p in t.params) + "]"
    return "_"


def mangle(t: Type) -> str:
    """Identifier-safe encoding of t, used to name instantiations."""
    if isinstance(t, SimpleType):
        return t.name
    if isinstance(t, ArrayType):
        return "Arr" + str(t.size) + "_" + mangle(t.of)
    if isinstance(t, SliceType):
        return "Sl_" + mangle(t.of)
    if isinstance(t, MapType):
        return "Map_" + mangle(t.by) + "_" + mangle(t.of)
    if isinstance(t, PointerType):
        return "Ptr_" + mangle(t.to)
    if isinstance(t, ChanType):
        prefix = {CHAN_BI: "Chan_", CHAN_RECV: "RChan_", CHAN_SEND: "SChan_"}[t.dir]
        return prefix + mangle(t.of)
    if isinstance(t, FuncType):
        parts = ["Fn" + str(len(t.args))]
        for a in t.args:
            parts.append(mangle(a))
        parts.append("R" + str(len(t.results)))
        for r in t.results:
            parts.append(mangle(r))
        return "_".join(parts)
    if isinstance(t, StructType):
        parts = ["Struct" + str(len(t.keys))]
        for k in t.keys:
            parts.append(k)
            parts.append(mangle(t.members[k]))
        return "_".join(parts)
    if isinstance(t, IfaceType):
        if len(t.keys) == 0:
            return "Any"
        return "Iface_" + "_".join(sorted(t.keys))
    if isinstance(t, CustomType):
        if t.package is not None:
            return t.package.name + "_" + t.name
        return t.name
    if isinstance(t, GenericParamType) and t.concrete is not None:
        return mangle(t.concrete)
    raise InternalError("cannot mangle type " + str(t))
