"""Have AST - parse-time node definitions, annotated in place by negotiation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator

from .errors import NegotiationError
from .types import CustomType, FuncType, IfaceType, SimpleType, StructType, Type

BLANK: str = "_"


# ============================================================
# POSITION
# ============================================================


@dataclass
class Pos:
    """Source position, 1-indexed."""

    line: int
    col: int


# ============================================================
# OBJECTS
# ============================================================

OBJECT_VAR: str = "var"
OBJECT_TYPE: str = "type"
OBJECT_PACKAGE: str = "package"
OBJECT_LABEL: str = "label"
OBJECT_GENERIC: str = "generic"


@dataclass
class Variable:
    """A named value. For top-level functions `init` is the FuncDecl."""

    pos: Pos
    name: str
    typ: Type
    init: Expr | None = field(default=None, repr=False, compare=False)
    object_type = OBJECT_VAR


@dataclass
class Package:
    """Resolved import: Go package name, import path and exported members.

    `values` maps member names to their types; `types` maps exported type
    names to declarations.
    """

    name: str
    path: str
    values: dict[str, Type] = field(default_factory=dict)
    types: dict[str, TypeDecl] = field(default_factory=dict)


# ============================================================
# STATEMENTS
# ============================================================


@dataclass
class Stmt:
    """Base for all statements."""

    pos: Pos
    # Label attached to this statement, if any.
    label: LabelStmt | None = field(default=None, init=False, repr=False, compare=False)


@dataclass
class CodeBlock:
    """An indented body with its own label table."""

    statements: list[Stmt]
    labels: dict[str, LabelStmt] = field(default_factory=dict)

    def add_label(self, label: LabelStmt) -> None:
        if label.name in self.labels:
            raise NegotiationError.at(
                "label `" + label.name + "` declared more than once", label.pos
            )
        self.labels[label.name] = label


@dataclass
class VarDecl:
    """One group of a declaration chain: `a, b T = x, y`.

    Trailing names without an initializer get their zero value.
    """

    vars: list[Variable]
    inits: list[Expr]

    def pairs(self) -> Iterator[tuple[Variable, Expr | None]]:
        for i, v in enumerate(self.vars):
            init: Expr | None = None
            if i < len(self.inits):
                init = self.inits[i]
            yield v, init


def chain_pairs(chain: list[VarDecl]) -> Iterator[tuple[Variable, Expr | None]]:
    """Every variable/initializer pair of a declaration chain, in order."""
    for vd in chain:
        yield from vd.pairs()


def chain_vars(chain: list[VarDecl]) -> list[Variable]:
    result: list[Variable] = []
    for vd in chain:
        result.extend(vd.vars)
    return result


@dataclass
class VarStmt(Stmt):
    """var a, b = x, y; also top-level function declarations."""

    vars: list[VarDecl]
    is_func: bool = False


@dataclass
class AssignStmt(Stmt):
    """a, b = x, y or a op= x."""

    lhs: list[Expr]
    rhs: list[Expr]
    op: str


@dataclass
class SendStmt(Stmt):
    """ch <- v."""

    lhs: Expr
    rhs: Expr


@dataclass
class ExprStmt(Stmt):
    """Expression used as a statement."""

    expr: Expr


@dataclass
class PassStmt(Stmt):
    """pass - emits nothing."""


@dataclass
class LabelStmt(Stmt):
    """label NAME. Names the statement that follows it."""

    name: str
    branchable: Stmt | None = field(default=None, init=False, repr=False, compare=False)
    used: bool = field(default=False, init=False, repr=False, compare=False)
    object_type = OBJECT_LABEL


@dataclass
class ImportStmt(Stmt):
    """import [alias] "path". `name` defaults to the package name."""

    name: str
    path: str
    alias: bool = False
    package: Package | None = field(default=None, init=False, repr=False, compare=False)
    object_type = OBJECT_PACKAGE


@dataclass
class IfBranch(Stmt):
    """One branch of an if chain; no condition means the trailing else."""

    scoped_var: Stmt | None
    condition: Expr | None
    code: CodeBlock


@dataclass
class IfStmt(Stmt):
    branches: list[IfBranch]


@dataclass
class SwitchBranch(Stmt):
    """case v1, v2: / default: (values is None).

    Type switches bind a fresh variable per branch.
    """

    values: list[Expr] | None
    code: CodeBlock
    type_switch_var: Variable | None = field(default=None, init=False, repr=False, compare=False)


@dataclass
class SwitchStmt(Stmt):
    """switch [init;] [value]:

    `value` is an ExprStmt for value switches, a VarStmt whose single
    initializer is a `.(type)` assertion for binding type switches, or an
    ExprStmt holding that assertion for plain ones.
    """

    scoped_var: Stmt | None
    value: Stmt | None
    branches: list[SwitchBranch]


@dataclass
class ForStmt(Stmt):
    scoped_var: Stmt | None
    condition: Expr | None
    repeat_stmt: Stmt | None
    code: CodeBlock


@dataclass
class ForRangeStmt(Stmt):
    """for var k, v in xs: (scoped) or for k, v in xs: (outside variables)."""

    scoped_vars: VarDecl | None
    outside_vars: list[Expr] | None
    series: Expr
    code: CodeBlock


@dataclass
class BranchStmt(Stmt):
    """break / continue / goto, with an optional label."""

    keyword: str
    right: Ident | None
    goto_label: LabelStmt | None = field(default=None, init=False, repr=False, compare=False)
    branchable: Stmt | None = field(default=None, init=False, repr=False, compare=False)


@dataclass
class ReturnStmt(Stmt):
    values: list[Expr]
    func: FuncDecl | None = field(default=None, init=False, repr=False, compare=False)


WHEN_IS: str = "is"
WHEN_IMPLEMENTS: str = "implements"
WHEN_DEFAULT: str = "default"


@dataclass
class WhenPredicate:
    """`is T`, `implements I` or `default`; target is None for default."""

    kind: str
    target: Type | None


@dataclass
class WhenBranch(Stmt):
    predicates: list[WhenPredicate]
    code: CodeBlock
    active: bool = field(default=False, init=False)


@dataclass
class WhenStmt(Stmt):
    """Compile-time branch over type predicates; one branch is emitted."""

    args: list[Type]
    branches: list[WhenBranch]


@dataclass
class TypeDecl(Stmt):
    """Named type: `type N T`. Builtin types have no aliased type."""

    name: str
    aliased_type: Type | None
    methods: dict[str, FuncDecl] = field(default_factory=dict, repr=False)
    # Declared inside a function body rather than at unit scope.
    local: bool = field(default=False, init=False, compare=False)
    object_type = OBJECT_TYPE

    def declared_type(self) -> Type:
        if self.aliased_type is None:
            return SimpleType(self.name)
        return CustomType(self.name, decl=self)


@dataclass
class StructStmt(Stmt):
    """struct N: fields and methods. Methods live in decl.methods."""

    struct: StructType
    decl: TypeDecl


@dataclass
class IfaceStmt(Stmt):
    """interface N: method signatures."""

    iface: IfaceType
    decl: TypeDecl


@dataclass
class GenericFunc(Stmt):
    """Uninstantiated func template.

    `code` is the declaration's source text, `line_offset` the source line
    it starts on, `imports` the imports in effect where it was declared.
    """

    params: list[str]
    func: FuncDecl
    code: str
    imports: list[ImportStmt]
    line_offset: int
    object_type = OBJECT_GENERIC

    @property
    def name(self) -> str:
        return self.func.name


@dataclass
class GenericStruct(Stmt):
    """Uninstantiated struct template; same layout as GenericFunc."""

    params: list[str]
    struct: StructType
    code: str
    imports: list[ImportStmt]
    line_offset: int
    object_type = OBJECT_GENERIC

    @property
    def name(self) -> str:
        return self.struct.name


# ============================================================
# EXPRESSIONS
# ============================================================


@dataclass
class Expr:
    """Base for all expressions. `typ` is set by negotiation."""

    pos: Pos
    typ: Type | None = field(default=None, init=False, repr=False, compare=False)


LIT_INT: str = "int"
LIT_FLOAT: str = "float"
LIT_IMAG: str = "imag"
LIT_STRING: str = "string"
LIT_RUNE: str = "rune"
LIT_BOOL: str = "bool"


@dataclass
class BasicLit(Expr):
    """Literal; `value` is the source spelling, emitted verbatim."""

    kind: str
    value: str


@dataclass
class NilExpr(Expr):
    pass


@dataclass
class BlankExpr(Expr):
    """`_` on the left of an assignment."""


COMPOUND_EMPTY: str = "empty"
COMPOUND_LISTLIKE: str = "listlike"
COMPOUND_MAPLIKE: str = "maplike"


@dataclass
class CompoundLit(Expr):
    """T{a, b} or T{k: v}. `left` is None for elided nested literals.

    Map-like elements are stored flat: key, value, key, value...
    """

    left: Expr | None
    kind: str
    elems: list[Expr]

    def key_vals(self) -> Iterator[tuple[Expr, Expr]]:
        for i in range(len(self.elems) // 2):
            yield self.elems[i * 2], self.elems[i * 2 + 1]


@dataclass
class BinaryOp(Expr):
    op: str
    left: Expr
    right: Expr


@dataclass
class UnaryOp(Expr):
    op: str
    right: Expr


@dataclass
class Ident(Expr):
    name: str
    # Variable, TypeDecl, ImportStmt, GenericFunc, GenericStruct or LabelStmt.
    obj: object | None = field(default=None, init=False, repr=False, compare=False)
    # Set for field keys of struct literals, which bind no object.
    member_name: bool = field(default=False, init=False)


@dataclass
class DotSelector(Expr):
    left: Expr
    right: Ident


@dataclass
class ArrayExpr(Expr):
    """x[i], or name[T1, T2] when `left` names a generic."""

    left: Expr
    index: list[Expr]
    # Instantiated object when this is a generic instantiation.
    obj: object | None = field(default=None, init=False, repr=False, compare=False)
    go_name: str = field(default="", init=False)


@dataclass
class SliceExpr(Expr):
    """x[lo:hi]; either bound may be omitted."""

    left: Expr
    low: Expr | None
    high: Expr | None


@dataclass
class TypeAssertion(Expr):
    """x.(T); x.(type) inside a type switch has right None."""

    left: Expr
    right: TypeExpr | None

    @property
    def for_switch(self) -> bool:
        return self.right is None


@dataclass
class TypeExpr(Expr):
    """A type used in expression position (conversions, make, new)."""

    type_: Type


@dataclass
class FuncCallExpr(Expr):
    left: Expr
    args: list[Expr]
    ellipsis: bool = False
    # Conversion target when `left` denotes a type.
    conversion: Type | None = field(default=None, init=False, repr=False, compare=False)


@dataclass
class FuncDecl(Expr):
    """Function body: top-level func, method or literal (empty name)."""

    name: str
    args: list[VarDecl]
    results: list[VarDecl]
    code: CodeBlock
    variadic: bool = False
    receiver: Variable | None = None
    ptr_receiver: bool = False

    @property
    def func_type(self) -> FuncType:
        if not isinstance(self.typ, FuncType):
            raise NegotiationError.at("function " + self.name + " has no signature yet", self.pos)
        return self.typ


# ============================================================
# TOP LEVEL
# ============================================================

# Statements legal at the outermost scope of a unit.
TopLevelNode = (
    VarStmt
    | AssignStmt
    | SendStmt
    | ExprStmt
    | PassStmt
    | IfStmt
    | SwitchStmt
    | ForStmt
    | ForRangeStmt
    | BranchStmt
    | ReturnStmt
    | LabelStmt
    | ImportStmt
    | WhenStmt
    | TypeDecl
    | StructStmt
    | IfaceStmt
    | GenericFunc
    | GenericStruct
)

STATE_UNCHECKED: str = "unchecked"
STATE_NEGOTIATING: str = "negotiating"
STATE_NEGOTIATED: str = "negotiated"
STATE_FAILED: str = "failed"
STATE_GENERATED: str = "generated"


@dataclass
class TopLevelStmt:
    """A top-level statement with its declared and referenced names."""

    stmt: TopLevelNode
    decls: list[str] = field(default_factory=list)
    deps: list[str] = field(default_factory=list)
    state: str = STATE_UNCHECKED


def type_switch_parts(value: Stmt | None) -> tuple[TypeAssertion | None, Variable | None]:
    """The `.(type)` assertion of a switch header and the variable it binds, if any."""
    if isinstance(value, ExprStmt):
        if isinstance(value.expr, TypeAssertion) and value.expr.for_switch:
            return value.expr, None
        return None, None
    if isinstance(value, VarStmt) and len(value.vars) == 1 and len(value.vars[0].inits) == 1:
        init = value.vars[0].inits[0]
        if isinstance(init, TypeAssertion) and init.for_switch:
            return init, value.vars[0].vars[0]
    return None, None
