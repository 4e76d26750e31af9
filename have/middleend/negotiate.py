"""Negotiation: type checking and resolution of one top-level statement.

A Negotiator walks a statement, resolves every identifier and type name,
fills the `typ`/`obj` annotations the backend reads, and raises
NegotiationError on the first problem. Unit-level names are looked up
through the owning Unit, which negotiates declarations on demand.

Untyped constants follow Go: a literal takes the type the context
expects when it fits, and otherwise its default type (int, float64,
complex128, rune, string or bool).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from ..ast import (
    BLANK,
    COMPOUND_LISTLIKE,
    COMPOUND_MAPLIKE,
    LIT_BOOL,
    LIT_FLOAT,
    LIT_IMAG,
    LIT_INT,
    LIT_RUNE,
    LIT_STRING,
    WHEN_DEFAULT,
    WHEN_IS,
    ArrayExpr,
    AssignStmt,
    BasicLit,
    BinaryOp,
    BlankExpr,
    BranchStmt,
    CodeBlock,
    CompoundLit,
    DotSelector,
    Expr,
    ExprStmt,
    ForRangeStmt,
    ForStmt,
    FuncCallExpr,
    FuncDecl,
    GenericFunc,
    GenericStruct,
    Ident,
    IfaceStmt,
    IfStmt,
    ImportStmt,
    LabelStmt,
    NilExpr,
    Package,
    PassStmt,
    Pos,
    ReturnStmt,
    SendStmt,
    SliceExpr,
    Stmt,
    StructStmt,
    SwitchBranch,
    SwitchStmt,
    TopLevelNode,
    TypeAssertion,
    TypeDecl,
    TypeExpr,
    UnaryOp,
    Variable,
    VarStmt,
    WhenPredicate,
    WhenStmt,
    type_switch_parts,
)
from ..context import BuiltinFunc, Context
from ..errors import InternalError, NegotiationError, unreachable
from ..types import (
    BOOL,
    CHAN_RECV,
    CHAN_SEND,
    COMPLEX128,
    EMPTY_IFACE,
    FLOAT64,
    INT,
    RUNE,
    STRING,
    ArrayType,
    ChanType,
    CustomType,
    FuncType,
    GenericInstanceType,
    GenericParamType,
    IfaceType,
    MapType,
    PointerType,
    SimpleType,
    SliceType,
    StructType,
    TupleType,
    Type,
    UnknownType,
    assignable,
    convertible,
    identical,
    iface_of,
    implements,
    is_bool,
    is_complex,
    is_float,
    is_integer,
    is_nillable,
    is_numeric,
    is_string,
    missing_method,
    underlying,
)
from .generics import instantiate

if TYPE_CHECKING:
    from ..compiler import Unit

LOGIC_OPS: set[str] = {"&&", "||"}
EQUALITY_OPS: set[str] = {"==", "!="}
ORDER_OPS: set[str] = {"<", "<=", ">", ">="}
SHIFT_OPS: set[str] = {"<<", ">>"}
INTEGER_OPS: set[str] = {"%", "&", "|", "^", "&^"}

# Untyped constant kinds, lowest to highest rank.
_LITERAL_DEFAULTS: dict[str, Type] = {
    LIT_INT: INT,
    LIT_RUNE: RUNE,
    LIT_FLOAT: FLOAT64,
    LIT_IMAG: COMPLEX128,
    LIT_STRING: STRING,
    LIT_BOOL: BOOL,
}
_NUMERIC_RANK: dict[str, int] = {LIT_INT: 0, LIT_RUNE: 1, LIT_FLOAT: 2, LIT_IMAG: 3}


def _void() -> TupleType:
    return TupleType([])


def _describe(e: Expr) -> str:
    """Short source-like text for error messages."""
    if isinstance(e, Ident):
        return e.name
    if isinstance(e, BasicLit):
        return e.value
    if isinstance(e, NilExpr):
        return "nil"
    if isinstance(e, DotSelector):
        return _describe(e.left) + "." + e.right.name
    if isinstance(e, FuncCallExpr):
        return _describe(e.left) + "()"
    if isinstance(e, ArrayExpr):
        return _describe(e.left) + "[...]"
    if isinstance(e, TypeExpr):
        return str(e.type_)
    if isinstance(e, UnaryOp):
        return e.op + _describe(e.right)
    if isinstance(e, CompoundLit):
        return "composite literal"
    if isinstance(e, FuncDecl):
        return "func literal"
    return "expression"


def _integral(text: str) -> bool:
    try:
        return float(text.replace("_", "")).is_integer()
    except ValueError:
        return False


def _is_loop(stmt: Stmt) -> bool:
    return isinstance(stmt, (ForStmt, ForRangeStmt))


# ============================================================
# TERMINATION
# ============================================================


def _breaks_to(stmts: list[Stmt], target: Stmt) -> bool:
    """Whether a break inside stmts leaves `target`."""
    for s in stmts:
        if isinstance(s, BranchStmt) and s.keyword == "break" and s.branchable is target:
            return True
        if isinstance(s, IfStmt):
            for br in s.branches:
                if _breaks_to(br.code.statements, target):
                    return True
        elif isinstance(s, SwitchStmt):
            for sbr in s.branches:
                if _breaks_to(sbr.code.statements, target):
                    return True
        elif isinstance(s, (ForStmt, ForRangeStmt)):
            if _breaks_to(s.code.statements, target):
                return True
        elif isinstance(s, WhenStmt):
            for wbr in s.branches:
                if wbr.active and _breaks_to(wbr.code.statements, target):
                    return True
    return False


def terminates(stmts: list[Stmt]) -> bool:
    """Go's terminating-statement rule, applied to the last statement."""
    if len(stmts) == 0:
        return False
    last = stmts[-1]
    if isinstance(last, ReturnStmt):
        return True
    if isinstance(last, BranchStmt):
        return last.keyword == "goto"
    if isinstance(last, ExprStmt):
        call = last.expr
        return (
            isinstance(call, FuncCallExpr)
            and isinstance(call.left, Ident)
            and isinstance(call.left.obj, BuiltinFunc)
            and call.left.obj.name == "panic"
        )
    if isinstance(last, IfStmt):
        if last.branches[-1].condition is not None:
            return False
        for br in last.branches:
            if not terminates(br.code.statements):
                return False
        return True
    if isinstance(last, ForStmt):
        return last.condition is None and not _breaks_to(last.code.statements, last)
    if isinstance(last, SwitchStmt):
        has_default = False
        for sbr in last.branches:
            if sbr.values is None:
                has_default = True
            if not terminates(sbr.code.statements) or _breaks_to(sbr.code.statements, last):
                return False
        return has_default
    if isinstance(last, WhenStmt):
        for wbr in last.branches:
            if wbr.active:
                return terminates(wbr.code.statements)
        return False
    return False


# ============================================================
# NEGOTIATOR
# ============================================================


class Negotiator:
    """Negotiates statements against a unit's scope and a set of imports."""

    def __init__(self, ctx: Context, unit: Unit, imports: list[ImportStmt]):
        self.ctx: Context = ctx
        self.unit: Unit = unit
        self.imports: dict[str, ImportStmt] = {}
        for imp in imports:
            self.imports[imp.name] = imp
        self.scopes: list[dict[str, object]] = []
        self.funcs: list[FuncDecl] = []
        self.blocks: list[CodeBlock] = []
        self.branchables: list[Stmt] = []

    # ── Scopes ───────────────────────────────────────────────

    def push(self) -> None:
        self.scopes.append({})

    def pop(self) -> None:
        self.scopes.pop()

    def declare(self, name: str, obj: object, pos: Pos) -> None:
        if name == BLANK or name == "":
            return
        scope = self.scopes[-1]
        if name in scope:
            raise NegotiationError.at(name + " redeclared in this block", pos)
        scope[name] = obj

    def lookup(self, name: str, pos: Pos) -> object:
        """Resolve a name: locals, then unit, then file imports, then universe."""
        for scope in reversed(self.scopes):
            if name in scope:
                return scope[name]
        obj = self.unit.lookup(name, pos)
        if obj is not None:
            return obj
        if name in self.imports:
            return self.imports[name]
        obj = self.ctx.builtin(name)
        if obj is not None:
            return obj
        raise NegotiationError.at("undefined: " + name, pos)

    def package(self, imp: ImportStmt, pos: Pos) -> Package:
        if imp.package is None:
            pkg = self.ctx.resolve_import(imp.path)
            if pkg is None:
                raise NegotiationError.at('cannot find package "' + imp.path + '"', pos)
            imp.package = pkg
        return imp.package

    # ── Types ────────────────────────────────────────────────

    def resolve_type(self, t: Type, pos: Pos) -> Type:
        """Bind every name inside t and instantiate generic references."""
        if isinstance(t, (SimpleType, UnknownType)):
            return t
        if isinstance(t, CustomType):
            if t.decl is not None:
                return t
            if t.package is not None:
                pkg = self.package(t.package, pos)
                decl = pkg.types.get(t.name)
                if decl is None:
                    raise NegotiationError.at("undefined: " + str(t), pos)
                return CustomType(t.name, t.package, decl)
            return self._named_type(t.name, pos)
        if isinstance(t, ArrayType):
            return ArrayType(t.size, self.resolve_type(t.of, pos))
        if isinstance(t, SliceType):
            return SliceType(self.resolve_type(t.of, pos))
        if isinstance(t, MapType):
            key = self.resolve_type(t.by, pos)
            if isinstance(underlying(key), (SliceType, MapType, FuncType)):
                raise NegotiationError.at("invalid map key type " + str(key), pos)
            return MapType(key, self.resolve_type(t.of, pos))
        if isinstance(t, PointerType):
            return PointerType(self.resolve_type(t.to, pos))
        if isinstance(t, ChanType):
            return ChanType(self.resolve_type(t.of, pos), t.dir)
        if isinstance(t, FuncType):
            return self.resolve_func_type(t, pos)
        if isinstance(t, TupleType):
            return TupleType([self.resolve_type(m, pos) for m in t.members])
        if isinstance(t, StructType):
            for k in t.keys:
                t.members[k] = self.resolve_type(t.members[k], pos)
            return t
        if isinstance(t, IfaceType):
            for k in t.keys:
                t.methods[k] = self.resolve_func_type(t.methods[k], pos)
            return t
        if isinstance(t, GenericInstanceType):
            generic = t.generic
            if generic is None:
                if t.package is not None:
                    raise NegotiationError.at("cannot instantiate imported type " + str(t), pos)
                obj = self.lookup(t.name, pos)
                if not isinstance(obj, GenericStruct):
                    raise NegotiationError.at(t.name + " is not a generic type", pos)
                generic = obj
                t.generic = obj
            args: list[Type] = []
            for p in t.params:
                args.append(self.resolve_type(p, pos))
            return self._struct_instance(generic, args, pos)
        if isinstance(t, GenericParamType):
            if t.concrete is None:
                raise NegotiationError.at("unbound type parameter " + t.name, pos)
            return self.resolve_type(t.concrete, pos)
        raise InternalError("unexpected type kind " + type(t).__name__)

    def resolve_func_type(self, t: FuncType, pos: Pos) -> FuncType:
        args: list[Type] = []
        for a in t.args:
            args.append(self.resolve_type(a, pos))
        results: list[Type] = []
        for r in t.results:
            results.append(self.resolve_type(r, pos))
        return FuncType(args, results, t.variadic)

    def _named_type(self, name: str, pos: Pos) -> Type:
        obj = self.lookup(name, pos)
        if isinstance(obj, TypeDecl):
            return obj.declared_type()
        if isinstance(obj, GenericStruct):
            raise NegotiationError.at("cannot use generic type " + name + " without instantiation", pos)
        raise NegotiationError.at(name + " is not a type", pos)

    def _struct_instance(self, generic: GenericStruct, args: list[Type], pos: Pos) -> CustomType:
        inst = instantiate(generic, args, pos, self.ctx, self.unit.negotiate_instance, self.unit)
        if not isinstance(inst.obj, TypeDecl):
            raise InternalError("struct instantiation without a declaration")
        return CustomType(inst.go_name, decl=inst.obj)

    def _generic_target(self, e: Expr) -> GenericFunc | GenericStruct | None:
        if not isinstance(e, Ident):
            return None
        obj = self.lookup(e.name, e.pos)
        if isinstance(obj, (GenericFunc, GenericStruct)):
            e.obj = obj
            return obj
        return None

    def as_type(self, e: Expr) -> Type | None:
        """The type e denotes, or None when e is a value expression."""
        t: Type | None = None
        if isinstance(e, TypeExpr):
            t = self.resolve_type(e.type_, e.pos)
        elif isinstance(e, Ident):
            obj = self.lookup(e.name, e.pos)
            if isinstance(obj, TypeDecl):
                e.obj = obj
                t = obj.declared_type()
        elif isinstance(e, DotSelector) and isinstance(e.left, Ident):
            obj = self.lookup(e.left.name, e.left.pos)
            if isinstance(obj, ImportStmt):
                decl = self.package(obj, e.pos).types.get(e.right.name)
                if decl is not None:
                    e.left.obj = obj
                    t = CustomType(e.right.name, obj, decl)
        elif isinstance(e, ArrayExpr):
            generic = self._generic_target(e.left)
            if isinstance(generic, GenericStruct):
                args: list[Type] = []
                for idx in e.index:
                    args.append(self.expr_to_type(idx))
                custom = self._struct_instance(generic, args, e.pos)
                e.obj = custom.decl
                e.go_name = custom.name
                t = custom
        elif isinstance(e, UnaryOp) and e.op == "*":
            inner = self.as_type(e.right)
            if inner is not None:
                t = PointerType(inner)
        if t is not None:
            e.typ = t
        return t

    def expr_to_type(self, e: Expr) -> Type:
        t = self.as_type(e)
        if t is None:
            raise NegotiationError.at(_describe(e) + " is not a type", e.pos)
        return t

    # ── Top level ────────────────────────────────────────────

    def declare_header(self, stmt: TopLevelNode) -> None:
        """Negotiate what other statements may use while this one is in progress."""
        if isinstance(stmt, VarStmt) and stmt.is_func:
            fn = stmt.vars[0].inits[0]
            if not isinstance(fn, FuncDecl):
                raise InternalError("function statement without a body")
            stmt.vars[0].vars[0].typ = self.signature(fn)
        elif isinstance(stmt, StructStmt):
            receiver = PointerType(stmt.decl.declared_type())
            for fn in stmt.decl.methods.values():
                if fn.receiver is not None:
                    fn.receiver.typ = receiver
                self.signature(fn)

    def negotiate_top(self, stmt: TopLevelNode) -> None:
        if isinstance(stmt, VarStmt):
            if stmt.is_func:
                fn = stmt.vars[0].inits[0]
                if not isinstance(fn, FuncDecl):
                    raise InternalError("function statement without a body")
                self.func_body(fn)
            else:
                self.push()
                self.var_stmt(stmt, False)
                self.pop()
        elif isinstance(stmt, ImportStmt):
            self.package(stmt, stmt.pos)
        elif isinstance(stmt, TypeDecl):
            self.type_decl(stmt)
        elif isinstance(stmt, StructStmt):
            self.struct_stmt(stmt)
        elif isinstance(stmt, IfaceStmt):
            self.iface_stmt(stmt)
        elif isinstance(stmt, (GenericFunc, GenericStruct)):
            if len(set(stmt.params)) != len(stmt.params):
                raise NegotiationError.at("duplicate type parameter in " + stmt.name, stmt.pos)
        elif isinstance(
            stmt,
            (
                AssignStmt,
                SendStmt,
                ExprStmt,
                PassStmt,
                IfStmt,
                SwitchStmt,
                ForStmt,
                ForRangeStmt,
                BranchStmt,
                ReturnStmt,
                LabelStmt,
                WhenStmt,
            ),
        ):
            self.push()
            self.stmt(stmt)
            self.pop()
        else:
            unreachable(stmt)

    def type_decl(self, decl: TypeDecl) -> None:
        if decl.aliased_type is None:
            return
        decl.aliased_type = self.resolve_type(decl.aliased_type, decl.pos)
        self._check_alias_cycle(decl)

    def _check_alias_cycle(self, decl: TypeDecl) -> None:
        seen: list[TypeDecl] = [decl]
        current = decl.aliased_type
        while isinstance(current, CustomType):
            target = current.decl
            if target is None:
                obj = self.unit.peek(current.name)
                target = obj if isinstance(obj, TypeDecl) else None
            if target is None:
                return
            for s in seen:
                if s is target:
                    raise NegotiationError.at("invalid recursive type " + decl.name, decl.pos)
            seen.append(target)
            current = target.aliased_type

    def struct_stmt(self, stmt: StructStmt) -> None:
        st = stmt.struct
        for k in st.keys:
            t = self.resolve_type(st.members[k], stmt.pos)
            if isinstance(t, CustomType) and t.decl is stmt.decl:
                raise NegotiationError.at("invalid recursive type " + stmt.decl.name, stmt.pos)
            st.members[k] = t
        for fn in stmt.decl.methods.values():
            self.func_body(fn)

    def iface_stmt(self, stmt: IfaceStmt) -> None:
        iface = stmt.iface
        for k in iface.keys:
            iface.methods[k] = self.resolve_func_type(iface.methods[k], stmt.pos)

    # ── Functions ────────────────────────────────────────────

    def signature(self, fn: FuncDecl) -> FuncType:
        args: list[Type] = []
        for group in fn.args:
            for v in group.vars:
                v.typ = self.resolve_type(v.typ, v.pos)
                args.append(v.typ)
        results: list[Type] = []
        for group in fn.results:
            for v in group.vars:
                v.typ = self.resolve_type(v.typ, v.pos)
                results.append(v.typ)
        ft = FuncType(args, results, fn.variadic)
        fn.typ = ft
        return ft

    def func_body(self, fn: FuncDecl) -> None:
        if not isinstance(fn.typ, FuncType):
            self.signature(fn)
        self.push()
        if fn.receiver is not None:
            self.declare(fn.receiver.name, fn.receiver, fn.receiver.pos)
        for group in fn.args:
            for v in group.vars:
                self.declare(v.name, v, v.pos)
        saved_blocks = self.blocks
        saved_branchables = self.branchables
        self.blocks = []
        self.branchables = []
        self.funcs.append(fn)
        self.block(fn.code)
        if len(fn.func_type.results) > 0 and not terminates(fn.code.statements):
            raise NegotiationError.at("missing return at end of " + (fn.name or "func literal"), fn.pos)
        self.funcs.pop()
        self.blocks = saved_blocks
        self.branchables = saved_branchables
        self.pop()

    # ── Statements ───────────────────────────────────────────

    def block(self, code: CodeBlock) -> None:
        self.push()
        self.blocks.append(code)
        self._attach_labels(code.statements, code)
        for s in code.statements:
            self.stmt(s)
        self._check_labels_used(code)
        self.blocks.pop()
        self.pop()

    def inline_block(self, code: CodeBlock) -> None:
        """Negotiate a body that is emitted into the enclosing block.

        Its names and labels go into the enclosing scope and label table.
        """
        if len(self.blocks) == 0:
            self.blocks.append(code)
            self._attach_labels(code.statements, code)
            for s in code.statements:
                self.stmt(s)
            self._check_labels_used(code)
            self.blocks.pop()
            return
        self._attach_labels(code.statements, self.blocks[-1])
        for s in code.statements:
            self.stmt(s)

    def _attach_labels(self, stmts: list[Stmt], table: CodeBlock) -> None:
        for i, s in enumerate(stmts):
            if isinstance(s, LabelStmt):
                table.add_label(s)
                if i + 1 < len(stmts):
                    s.branchable = stmts[i + 1]
                    stmts[i + 1].label = s

    def _check_labels_used(self, code: CodeBlock) -> None:
        for label in code.labels.values():
            if not label.used:
                raise NegotiationError.at("label " + label.name + " defined and not used", label.pos)

    def stmt(self, s: Stmt) -> None:
        if isinstance(s, VarStmt):
            self.var_stmt(s, True)
        elif isinstance(s, AssignStmt):
            self.assign_stmt(s)
        elif isinstance(s, SendStmt):
            self.send_stmt(s)
        elif isinstance(s, ExprStmt):
            self.expr(s.expr)
        elif isinstance(s, (PassStmt, LabelStmt)):
            pass
        elif isinstance(s, BranchStmt):
            self.branch_stmt(s)
        elif isinstance(s, ReturnStmt):
            self.return_stmt(s)
        elif isinstance(s, IfStmt):
            self.if_stmt(s)
        elif isinstance(s, SwitchStmt):
            self.switch_stmt(s)
        elif isinstance(s, ForStmt):
            self.for_stmt(s)
        elif isinstance(s, ForRangeStmt):
            self.for_range_stmt(s)
        elif isinstance(s, WhenStmt):
            self.when_stmt(s)
        elif isinstance(s, TypeDecl):
            s.local = True
            self.declare(s.name, s, s.pos)
            self.type_decl(s)
        else:
            raise InternalError("unexpected statement " + type(s).__name__)

    def var_stmt(self, stmt: VarStmt, declare: bool) -> None:
        """Type every variable of a declaration chain; locals become visible after it."""
        for group in stmt.vars:
            declared: Type | None = None
            first = group.vars[0]
            if not isinstance(first.typ, UnknownType):
                declared = self.resolve_type(first.typ, first.pos)
            if len(group.vars) > 1 and len(group.inits) == 1:
                values = self.multi_values(group.inits, [declared] * len(group.vars), True)
                if len(values) > 1 and len(stmt.vars) > 1:
                    raise NegotiationError.at(
                        "multiple-value " + _describe(group.inits[0]) + " in a declaration chain",
                        group.inits[0].pos,
                    )
            else:
                values = []
                for init in group.inits:
                    values.append((self.value(init, declared), init))
            if len(values) > len(group.vars):
                raise NegotiationError.at(
                    "assignment mismatch: "
                    + str(len(group.vars))
                    + " variables but "
                    + str(len(values))
                    + " values",
                    first.pos,
                )
            for i, v in enumerate(group.vars):
                if i < len(values):
                    t, init = values[i]
                    if declared is not None:
                        self.check_assign(t, declared, init, "variable declaration")
                        v.typ = declared
                    else:
                        v.typ = t
                elif declared is not None:
                    v.typ = declared
                else:
                    raise NegotiationError.at("missing type or initializer for " + v.name, v.pos)
        if declare:
            for group in stmt.vars:
                for v in group.vars:
                    self.declare(v.name, v, v.pos)

    def assign_stmt(self, s: AssignStmt) -> None:
        if s.op == "++" or s.op == "--":
            t = self.value(s.lhs[0])
            self._check_lhs(s.lhs[0])
            if not is_numeric(t):
                raise NegotiationError.at(
                    "invalid operation: " + _describe(s.lhs[0]) + s.op + " (non-numeric type " + str(t) + ")",
                    s.pos,
                )
            return
        if s.op == "=":
            targets: list[Type | None] = []
            for lhs in s.lhs:
                if isinstance(lhs, BlankExpr):
                    targets.append(None)
                    continue
                targets.append(self.value(lhs))
                self._check_lhs(lhs)
            values = self.multi_values(s.rhs, targets, len(s.lhs) > 1)
            if len(values) != len(s.lhs):
                raise NegotiationError.at(
                    "assignment mismatch: "
                    + str(len(s.lhs))
                    + " variables but "
                    + str(len(values))
                    + " values",
                    s.pos,
                )
            for target, (t, e) in zip(targets, values):
                if target is not None:
                    self.check_assign(t, target, e, "assignment")
            return
        if len(s.lhs) != 1 or len(s.rhs) != 1:
            raise NegotiationError.at("assignment operation " + s.op + " requires single-valued expressions", s.pos)
        op = s.op[:-1]
        lt = self.value(s.lhs[0])
        self._check_lhs(s.lhs[0])
        if op in SHIFT_OPS:
            rt = self.value(s.rhs[0])
        else:
            rt = self.value(s.rhs[0], lt)
        self.check_operator(op, lt, rt, s.lhs[0], s.rhs[0], s.pos)

    def _check_lhs(self, e: Expr) -> None:
        ok = False
        if isinstance(e, Ident):
            ok = isinstance(e.obj, Variable)
        elif isinstance(e, DotSelector):
            ok = not isinstance(e.left, Ident) or not isinstance(e.left.obj, ImportStmt)
        elif isinstance(e, ArrayExpr):
            ok = e.left.typ is not None and not is_string(e.left.typ)
        elif isinstance(e, UnaryOp):
            ok = e.op == "*"
        if not ok:
            raise NegotiationError.at("cannot assign to " + _describe(e), e.pos)

    def send_stmt(self, s: SendStmt) -> None:
        ct = self.value(s.lhs)
        u = underlying(ct)
        if not isinstance(u, ChanType):
            raise NegotiationError.at(
                "invalid operation: cannot send to non-chan type " + str(ct), s.pos
            )
        if u.dir == CHAN_RECV:
            raise NegotiationError.at(
                "invalid operation: cannot send to receive-only channel " + _describe(s.lhs), s.pos
            )
        vt = self.value(s.rhs, u.of)
        self.check_assign(vt, u.of, s.rhs, "send")

    def branch_stmt(self, s: BranchStmt) -> None:
        if s.right is not None:
            label = self._find_label(s.right.name)
            if label is None:
                raise NegotiationError.at("label " + s.right.name + " not defined", s.right.pos)
            s.right.obj = label
            label.used = True
            s.goto_label = label
            if s.keyword == "goto":
                return
            target = label.branchable
            enclosing = False
            for b in self.branchables:
                if b is target:
                    enclosing = True
            if target is None or not enclosing:
                raise NegotiationError.at("invalid " + s.keyword + " label " + label.name, s.right.pos)
            if s.keyword == "continue" and not _is_loop(target):
                raise NegotiationError.at("invalid continue label " + label.name, s.right.pos)
            s.branchable = target
            return
        for b in reversed(self.branchables):
            if s.keyword == "break" or _is_loop(b):
                s.branchable = b
                return
        if s.keyword == "break":
            raise NegotiationError.at("break is not in a loop or switch", s.pos)
        raise NegotiationError.at("continue is not in a loop", s.pos)

    def _find_label(self, name: str) -> LabelStmt | None:
        for code in reversed(self.blocks):
            if name in code.labels:
                return code.labels[name]
        return None

    def return_stmt(self, s: ReturnStmt) -> None:
        if len(self.funcs) == 0:
            raise NegotiationError.at("return outside function", s.pos)
        fn = self.funcs[-1]
        s.func = fn
        results = fn.func_type.results
        targets: list[Type | None] = list(results)
        values = self.multi_values(s.values, targets, len(results) > 1)
        if len(values) < len(results):
            raise NegotiationError.at("not enough return values", s.pos)
        if len(values) > len(results):
            raise NegotiationError.at("too many return values", s.pos)
        for r, (t, e) in zip(results, values):
            self.check_assign(t, r, e, "return statement")

    def if_stmt(self, s: IfStmt) -> None:
        self.push()
        for br in s.branches:
            if br.scoped_var is not None:
                self.stmt(br.scoped_var)
            if br.condition is not None:
                t = self.value(br.condition, BOOL)
                if not is_bool(t):
                    raise NegotiationError.at(
                        "non-boolean condition in if statement: "
                        + _describe(br.condition)
                        + " (type "
                        + str(t)
                        + ")",
                        br.condition.pos,
                    )
            self.block(br.code)
        self.pop()

    def _check_defaults(self, branches: list[SwitchBranch]) -> None:
        seen = False
        for br in branches:
            if br.values is None:
                if seen:
                    raise NegotiationError.at("multiple defaults in switch", br.pos)
                seen = True

    def switch_stmt(self, s: SwitchStmt) -> None:
        self.push()
        if s.scoped_var is not None:
            self.stmt(s.scoped_var)
        self._check_defaults(s.branches)
        assertion, bind = type_switch_parts(s.value)
        if assertion is not None:
            self._type_switch(s, assertion, bind)
            self.pop()
            return
        value_t: Type | None = None
        if s.value is not None:
            if not isinstance(s.value, ExprStmt):
                raise NegotiationError.at("switch value must be an expression", s.value.pos)
            value_t = self.value(s.value.expr)
        self.branchables.append(s)
        for br in s.branches:
            for v in br.values or []:
                if value_t is None:
                    t = self.value(v, BOOL)
                    if not is_bool(t):
                        raise NegotiationError.at(
                            "invalid case " + _describe(v) + " in switch (mismatched types " + str(t) + " and bool)",
                            v.pos,
                        )
                    continue
                t = self.value(v, value_t)
                if not assignable(t, value_t) and not assignable(value_t, t):
                    raise NegotiationError.at(
                        "invalid case "
                        + _describe(v)
                        + " in switch (mismatched types "
                        + str(t)
                        + " and "
                        + str(value_t)
                        + ")",
                        v.pos,
                    )
            self.block(br.code)
        self.branchables.pop()
        self.pop()

    def _type_switch(self, s: SwitchStmt, assertion: TypeAssertion, bind: Variable | None) -> None:
        xt = self.value(assertion.left)
        iface = iface_of(xt)
        if iface is None:
            raise NegotiationError.at(
                _describe(assertion.left) + " (type " + str(xt) + ") is not an interface", assertion.pos
            )
        assertion.typ = xt
        if bind is not None:
            bind.typ = xt
        self.branchables.append(s)
        for br in s.branches:
            case_types: list[Type] = []
            for v in br.values or []:
                if isinstance(v, NilExpr):
                    v.typ = xt
                    continue
                if not isinstance(v, TypeExpr):
                    raise InternalError("type switch case is not a type")
                t = self.resolve_type(v.type_, v.pos)
                v.typ = t
                if iface_of(t) is None and not implements(t, iface):
                    raise NegotiationError.at(
                        "impossible type switch case: "
                        + _describe(assertion.left)
                        + " (type "
                        + str(xt)
                        + ") cannot have dynamic type "
                        + str(t)
                        + " (missing method "
                        + str(missing_method(t, iface))
                        + ")",
                        v.pos,
                    )
                case_types.append(t)
            self.push()
            if bind is not None:
                bt = xt
                if br.values is not None and len(br.values) == 1 and len(case_types) == 1:
                    bt = case_types[0]
                var = Variable(bind.pos, bind.name, bt)
                br.type_switch_var = var
                self.declare(var.name, var, var.pos)
            self.block(br.code)
            self.pop()
        self.branchables.pop()

    def for_stmt(self, s: ForStmt) -> None:
        self.push()
        if s.scoped_var is not None:
            self.stmt(s.scoped_var)
        if s.condition is not None:
            t = self.value(s.condition, BOOL)
            if not is_bool(t):
                raise NegotiationError.at(
                    "non-boolean condition in for statement: " + _describe(s.condition), s.condition.pos
                )
        if s.repeat_stmt is not None:
            self.stmt(s.repeat_stmt)
        self.branchables.append(s)
        self.block(s.code)
        self.branchables.pop()
        self.pop()

    def for_range_stmt(self, s: ForRangeStmt) -> None:
        st = self.value(s.series)
        u = underlying(st)
        if isinstance(u, PointerType) and isinstance(underlying(u.to), ArrayType):
            u = underlying(u.to)
        types: list[Type]
        if isinstance(u, (SliceType, ArrayType)):
            types = [INT, u.of]
        elif is_string(u):
            types = [INT, RUNE]
        elif isinstance(u, MapType):
            types = [u.by, u.of]
        elif isinstance(u, ChanType) and u.dir != CHAN_SEND:
            types = [u.of]
        else:
            raise NegotiationError.at(
                "cannot range over " + _describe(s.series) + " (type " + str(st) + ")", s.series.pos
            )
        count = len(s.scoped_vars.vars) if s.scoped_vars is not None else len(s.outside_vars or [])
        if count > len(types):
            raise NegotiationError.at(
                "range clause permits at most " + str(len(types)) + " iteration variables", s.pos
            )
        self.push()
        if s.scoped_vars is not None:
            for v, t in zip(s.scoped_vars.vars, types):
                v.typ = t
                self.declare(v.name, v, v.pos)
        else:
            for o, t in zip(s.outside_vars or [], types):
                if isinstance(o, BlankExpr):
                    continue
                ot = self.value(o)
                self._check_lhs(o)
                self.check_assign(t, ot, s.series, "range")
        self.branchables.append(s)
        self.block(s.code)
        self.branchables.pop()
        self.pop()

    def when_stmt(self, s: WhenStmt) -> None:
        """Pick the first branch whose predicates hold; only it is negotiated."""
        args: list[Type] = []
        for a in s.args:
            args.append(self.resolve_type(a, s.pos))
        s.args = args
        chosen = None
        for br in s.branches:
            preds = br.predicates
            if len(preds) == 1 and preds[0].kind == WHEN_DEFAULT:
                matched = True
            else:
                if len(preds) != len(args):
                    raise NegotiationError.at(
                        "when branch has "
                        + str(len(preds))
                        + " predicates for "
                        + str(len(args))
                        + " types",
                        br.pos,
                    )
                matched = True
                for p, arg in zip(preds, args):
                    if not self._predicate(p, arg, br.pos):
                        matched = False
            if matched and chosen is None:
                chosen = br
        if chosen is not None:
            chosen.active = True
            self.inline_block(chosen.code)

    def _predicate(self, p: WhenPredicate, arg: Type, pos: Pos) -> bool:
        if p.kind == WHEN_DEFAULT or p.target is None:
            return True
        target = self.resolve_type(p.target, pos)
        p.target = target
        if p.kind == WHEN_IS:
            return identical(arg, target)
        iface = iface_of(target)
        if iface is None:
            raise NegotiationError.at(str(target) + " is not an interface", pos)
        return implements(arg, iface)

    # ── Values ───────────────────────────────────────────────

    def check_assign(self, t: Type, target: Type, e: Expr, context: str) -> None:
        if not assignable(t, target):
            raise NegotiationError.at(
                "cannot use "
                + _describe(e)
                + " (type "
                + str(t)
                + ") as type "
                + str(target)
                + " in "
                + context,
                e.pos,
            )

    def value(self, e: Expr, expected: Type | None = None) -> Type:
        """Negotiate e where exactly one value is required."""
        t = self.expr(e, expected)
        if isinstance(t, TupleType):
            if len(t.members) == 0:
                raise NegotiationError.at(_describe(e) + " (no value) used as value", e.pos)
            raise NegotiationError.at("multiple-value " + _describe(e) + " in single-value context", e.pos)
        return t

    def multi_values(
        self, exprs: list[Expr], targets: list[Type | None], spread: bool
    ) -> list[tuple[Type, Expr]]:
        """Types of an expression list; a lone multi-value call spreads when allowed."""
        if spread and len(exprs) == 1 and isinstance(exprs[0], FuncCallExpr):
            t = self.expr(exprs[0])
            if isinstance(t, TupleType):
                if len(t.members) == 0:
                    raise NegotiationError.at(_describe(exprs[0]) + " (no value) used as value", exprs[0].pos)
                return [(m, exprs[0]) for m in t.members]
            return [(t, exprs[0])]
        result: list[tuple[Type, Expr]] = []
        for i, e in enumerate(exprs):
            target = targets[i] if i < len(targets) else None
            result.append((self.value(e, target), e))
        return result

    # ── Expressions ──────────────────────────────────────────

    def expr(self, e: Expr, expected: Type | None = None) -> Type:
        """Negotiate e, record its type on the node and return it."""
        t = self._expr(e, expected)
        e.typ = t
        return t

    def _expr(self, e: Expr, expected: Type | None) -> Type:
        if isinstance(e, BasicLit):
            return self.basic_lit(e, expected)
        if isinstance(e, NilExpr):
            if expected is None or not is_nillable(expected):
                if expected is None:
                    raise NegotiationError.at("use of untyped nil", e.pos)
                raise NegotiationError.at("cannot use nil as type " + str(expected), e.pos)
            return expected
        if isinstance(e, BlankExpr):
            raise NegotiationError.at("cannot use _ as value", e.pos)
        if isinstance(e, Ident):
            return self.ident(e)
        if isinstance(e, DotSelector):
            return self.selector(e)
        if isinstance(e, ArrayExpr):
            return self.index_expr(e)
        if isinstance(e, SliceExpr):
            return self.slice_expr(e)
        if isinstance(e, TypeAssertion):
            return self.type_assertion(e)
        if isinstance(e, TypeExpr):
            raise NegotiationError.at("type " + str(e.type_) + " is not an expression", e.pos)
        if isinstance(e, FuncCallExpr):
            return self.call(e, expected)
        if isinstance(e, CompoundLit):
            return self.compound_lit(e, expected)
        if isinstance(e, BinaryOp):
            return self.binary(e, expected)
        if isinstance(e, UnaryOp):
            return self.unary(e, expected)
        if isinstance(e, FuncDecl):
            ft = self.signature(e)
            self.func_body(e)
            return ft
        raise InternalError("unexpected expression " + type(e).__name__)

    def basic_lit(self, e: BasicLit, expected: Type | None) -> Type:
        if expected is not None:
            if e.kind == LIT_INT or e.kind == LIT_RUNE:
                if is_numeric(expected):
                    return expected
            elif e.kind == LIT_FLOAT:
                if is_float(expected) or is_complex(expected):
                    return expected
                if is_integer(expected) and _integral(e.value):
                    return expected
            elif e.kind == LIT_IMAG:
                if is_complex(expected):
                    return expected
            elif e.kind == LIT_STRING:
                if is_string(expected):
                    return expected
            elif e.kind == LIT_BOOL:
                if is_bool(expected):
                    return expected
        return _LITERAL_DEFAULTS[e.kind]

    def ident(self, e: Ident) -> Type:
        obj = self.lookup(e.name, e.pos)
        e.obj = obj
        if isinstance(obj, Variable):
            if not obj.typ.known():
                raise NegotiationError.at("use of " + e.name + " before its type is known", e.pos)
            return obj.typ
        if isinstance(obj, TypeDecl):
            raise NegotiationError.at(e.name + " (type) is not an expression", e.pos)
        if isinstance(obj, ImportStmt):
            raise NegotiationError.at("use of package " + e.name + " without selector", e.pos)
        if isinstance(obj, (GenericFunc, GenericStruct)):
            raise NegotiationError.at("cannot use generic " + e.name + " without instantiation", e.pos)
        if isinstance(obj, BuiltinFunc):
            raise NegotiationError.at(e.name + " (built-in function) must be called", e.pos)
        raise InternalError("unexpected object for " + e.name)

    def selector(self, e: DotSelector) -> Type:
        name = e.right.name
        if isinstance(e.left, Ident):
            obj = self.lookup(e.left.name, e.left.pos)
            if isinstance(obj, ImportStmt):
                e.left.obj = obj
                pkg = self.package(obj, e.left.pos)
                if name in pkg.values:
                    return pkg.values[name]
                if name in pkg.types:
                    raise NegotiationError.at(_describe(e) + " (type) is not an expression", e.pos)
                raise NegotiationError.at("undefined: " + _describe(e), e.pos)
        lt = self.value(e.left)
        base = lt
        if isinstance(lt, PointerType):
            base = lt.to
        u = underlying(base)
        if isinstance(u, StructType) and name in u.members:
            return u.members[name]
        if isinstance(base, CustomType) and base.decl is not None and name in base.decl.methods:
            fn = base.decl.methods[name]
            if not isinstance(fn.typ, FuncType):
                raise NegotiationError.at("method " + name + " used before its signature is known", e.pos)
            return fn.typ
        if not isinstance(lt, PointerType):
            iface = iface_of(lt)
            if iface is not None and name in iface.methods:
                return iface.methods[name]
        raise NegotiationError.at(
            _describe(e)
            + " undefined (type "
            + str(lt)
            + " has no field or method "
            + name
            + ")",
            e.pos,
        )

    def _index(self, e: Expr) -> None:
        t = self.value(e, INT)
        if not is_integer(t):
            raise NegotiationError.at(
                "invalid index " + _describe(e) + " (type " + str(t) + " must be integer)", e.pos
            )

    def index_expr(self, e: ArrayExpr) -> Type:
        generic = self._generic_target(e.left)
        if generic is not None:
            if isinstance(generic, GenericStruct):
                raise NegotiationError.at(generic.name + "[...] (type) is not an expression", e.pos)
            args: list[Type] = []
            for idx in e.index:
                args.append(self.expr_to_type(idx))
            inst = instantiate(generic, args, e.pos, self.ctx, self.unit.negotiate_instance, self.unit)
            e.obj = inst.obj
            e.go_name = inst.go_name
            if not isinstance(inst.obj, Variable) or not isinstance(inst.obj.typ, FuncType):
                raise NegotiationError.at(inst.go_name + " used before its signature is known", e.pos)
            return inst.obj.typ
        if len(e.index) != 1:
            raise NegotiationError.at("index expression takes exactly one index", e.pos)
        lt = self.value(e.left)
        u = underlying(lt)
        if isinstance(u, PointerType) and isinstance(underlying(u.to), ArrayType):
            u = underlying(u.to)
        if isinstance(u, (SliceType, ArrayType)):
            self._index(e.index[0])
            return u.of
        if isinstance(u, MapType):
            kt = self.value(e.index[0], u.by)
            self.check_assign(kt, u.by, e.index[0], "map index")
            return u.of
        if is_string(u):
            self._index(e.index[0])
            return SimpleType("byte")
        raise NegotiationError.at("cannot index " + _describe(e.left) + " (type " + str(lt) + ")", e.pos)

    def slice_expr(self, e: SliceExpr) -> Type:
        lt = self.value(e.left)
        u = underlying(lt)
        if isinstance(u, PointerType) and isinstance(underlying(u.to), ArrayType):
            u = underlying(u.to)
        for bound in (e.low, e.high):
            if bound is not None:
                self._index(bound)
        if isinstance(u, SliceType) or is_string(u):
            return lt
        if isinstance(u, ArrayType):
            return SliceType(u.of)
        raise NegotiationError.at("cannot slice " + _describe(e.left) + " (type " + str(lt) + ")", e.pos)

    def type_assertion(self, e: TypeAssertion) -> Type:
        if e.right is None:
            raise NegotiationError.at("use of .(type) outside type switch", e.pos)
        lt = self.value(e.left)
        iface = iface_of(lt)
        if iface is None:
            raise NegotiationError.at(
                "invalid type assertion: " + _describe(e.left) + " (non-interface type " + str(lt) + " on left)",
                e.pos,
            )
        target = self.resolve_type(e.right.type_, e.right.pos)
        e.right.typ = target
        if iface_of(target) is None and not implements(target, iface):
            raise NegotiationError.at(
                "impossible type assertion: "
                + str(target)
                + " does not implement "
                + str(lt)
                + " (missing method "
                + str(missing_method(target, iface))
                + ")",
                e.pos,
            )
        return target

    # ── Calls ────────────────────────────────────────────────

    def call(self, e: FuncCallExpr, expected: Type | None) -> Type:
        target = self.as_type(e.left)
        if target is not None:
            if len(e.args) != 1 or e.ellipsis:
                raise NegotiationError.at("conversion to " + str(target) + " takes exactly one argument", e.pos)
            at = self.value(e.args[0], target)
            if not convertible(at, target):
                raise NegotiationError.at(
                    "cannot convert " + _describe(e.args[0]) + " (type " + str(at) + ") to type " + str(target),
                    e.pos,
                )
            e.conversion = target
            return target
        if isinstance(e.left, Ident):
            obj = self.lookup(e.left.name, e.left.pos)
            if isinstance(obj, BuiltinFunc):
                e.left.obj = obj
                return self.builtin_call(e, obj.name)
        ft = self.value(e.left)
        u = underlying(ft)
        if not isinstance(u, FuncType):
            raise NegotiationError.at(
                "cannot call non-function " + _describe(e.left) + " (type " + str(ft) + ")", e.pos
            )
        self._call_args(e, u)
        if len(u.results) == 1:
            return u.results[0]
        return TupleType(list(u.results))

    def _call_args(self, e: FuncCallExpr, ft: FuncType) -> None:
        name = _describe(e.left)
        params = ft.args
        if e.ellipsis:
            if not ft.variadic:
                raise NegotiationError.at("cannot use ... in call to non-variadic " + name, e.pos)
            if len(e.args) != len(params):
                raise NegotiationError.at("wrong number of arguments in call to " + name, e.pos)
            for arg, p in zip(e.args, params):
                self.check_assign(self.value(arg, p), p, arg, "argument to " + name)
            return
        fixed = params
        elem: Type | None = None
        if ft.variadic:
            fixed = params[:-1]
            last = params[-1]
            if isinstance(last, SliceType):
                elem = last.of
        targets: list[Type | None] = []
        for i in range(len(e.args)):
            if i < len(fixed):
                targets.append(fixed[i])
            else:
                targets.append(elem)
        values = self.multi_values(e.args, targets, len(params) > 1 or ft.variadic)
        if len(values) < len(fixed):
            raise NegotiationError.at("not enough arguments in call to " + name, e.pos)
        if not ft.variadic and len(values) > len(params):
            raise NegotiationError.at("too many arguments in call to " + name, e.pos)
        for i, (t, arg) in enumerate(values):
            p = fixed[i] if i < len(fixed) else elem
            if p is not None:
                self.check_assign(t, p, arg, "argument to " + name)

    def _arity(self, e: FuncCallExpr, name: str, lo: int, hi: int) -> None:
        if len(e.args) < lo:
            raise NegotiationError.at("not enough arguments in call to " + name, e.pos)
        if len(e.args) > hi:
            raise NegotiationError.at("too many arguments in call to " + name, e.pos)

    def builtin_call(self, e: FuncCallExpr, name: str) -> Type:
        args = e.args
        if e.ellipsis and name != "append":
            raise NegotiationError.at("invalid use of ... with built-in " + name, e.pos)
        if name == "len" or name == "cap":
            self._arity(e, name, 1, 1)
            t = self.value(args[0])
            u = underlying(t)
            if isinstance(u, PointerType) and isinstance(underlying(u.to), ArrayType):
                u = underlying(u.to)
            ok = isinstance(u, (SliceType, ArrayType, ChanType))
            if name == "len":
                ok = ok or isinstance(u, MapType) or is_string(u)
            if not ok:
                raise NegotiationError.at(
                    "invalid argument " + _describe(args[0]) + " (type " + str(t) + ") for " + name, e.pos
                )
            return INT
        if name == "append":
            self._arity(e, name, 1, 1 << 30)
            st = self.value(args[0])
            su = underlying(st)
            if not isinstance(su, SliceType):
                raise NegotiationError.at(
                    "first argument to append must be a slice; have " + _describe(args[0]) + " (type " + str(st) + ")",
                    e.pos,
                )
            if e.ellipsis:
                self._arity(e, name, 2, 2)
                rest = self.value(args[1], st)
                byte_string = is_string(rest) and identical(su.of, SimpleType("uint8"))
                if not byte_string:
                    self.check_assign(rest, st, args[1], "argument to append")
                return st
            for arg in args[1:]:
                self.check_assign(self.value(arg, su.of), su.of, arg, "argument to append")
            return st
        if name == "make":
            self._arity(e, name, 1, 3)
            t = self.expr_to_type(args[0])
            u = underlying(t)
            if isinstance(u, SliceType):
                self._arity(e, name, 2, 3)
            elif isinstance(u, (MapType, ChanType)):
                self._arity(e, name, 1, 2)
            else:
                raise NegotiationError.at("cannot make " + str(t), e.pos)
            for arg in args[1:]:
                self._index(arg)
            return t
        if name == "new":
            self._arity(e, name, 1, 1)
            return PointerType(self.expr_to_type(args[0]))
        if name == "delete":
            self._arity(e, name, 2, 2)
            mt = self.value(args[0])
            mu = underlying(mt)
            if not isinstance(mu, MapType):
                raise NegotiationError.at(
                    "first argument to delete must be a map; have " + _describe(args[0]) + " (type " + str(mt) + ")",
                    e.pos,
                )
            self.check_assign(self.value(args[1], mu.by), mu.by, args[1], "argument to delete")
            return _void()
        if name == "panic":
            self._arity(e, name, 1, 1)
            self.value(args[0], EMPTY_IFACE)
            return _void()
        if name == "print" or name == "println":
            for arg in args:
                self.value(arg)
            return _void()
        if name == "copy":
            self._arity(e, name, 2, 2)
            dt = self.value(args[0])
            src = self.value(args[1])
            du = underlying(dt)
            su = underlying(src)
            if not isinstance(du, SliceType):
                raise NegotiationError.at("copy expects slice arguments", e.pos)
            if is_string(su) and identical(du.of, SimpleType("uint8")):
                return INT
            if not isinstance(su, SliceType) or not identical(du.of, su.of):
                raise NegotiationError.at(
                    "arguments to copy have different element types: " + str(dt) + " and " + str(src), e.pos
                )
            return INT
        raise InternalError("unknown builtin " + name)

    # ── Composite literals ───────────────────────────────────

    def compound_lit(self, e: CompoundLit, expected: Type | None) -> Type:
        result: Type
        if e.left is not None:
            lit = self.expr_to_type(e.left)
            result = lit
        else:
            if expected is None:
                raise NegotiationError.at("missing type in composite literal", e.pos)
            lit = expected
            result = expected
            if isinstance(expected, PointerType):
                lit = expected.to
        u = underlying(lit)
        if isinstance(u, StructType):
            self._struct_lit(e, u, lit)
        elif isinstance(u, SliceType):
            self._list_lit(e, u.of, -1)
        elif isinstance(u, ArrayType):
            self._list_lit(e, u.of, u.size)
        elif isinstance(u, MapType):
            if e.kind == COMPOUND_LISTLIKE:
                raise NegotiationError.at("missing key in map literal", e.pos)
            for key, val in e.key_vals():
                self.check_assign(self.value(key, u.by), u.by, key, "map key")
                self.check_assign(self.value(val, u.of), u.of, val, "map value")
        else:
            raise NegotiationError.at("invalid composite literal type " + str(lit), e.pos)
        return result

    def _struct_lit(self, e: CompoundLit, st: StructType, lit: Type) -> None:
        if e.kind == COMPOUND_LISTLIKE:
            if len(e.elems) < len(st.keys):
                raise NegotiationError.at("too few values in " + str(lit) + " literal", e.pos)
            if len(e.elems) > len(st.keys):
                raise NegotiationError.at("too many values in " + str(lit) + " literal", e.pos)
            for k, el in zip(st.keys, e.elems):
                member = st.members[k]
                self.check_assign(self.value(el, member), member, el, "field value")
            return
        if e.kind != COMPOUND_MAPLIKE:
            return
        seen: set[str] = set()
        for key, val in e.key_vals():
            if not isinstance(key, Ident):
                raise NegotiationError.at("invalid field name " + _describe(key) + " in struct literal", key.pos)
            key.member_name = True
            if key.name not in st.members:
                raise NegotiationError.at(
                    "unknown field " + key.name + " in struct literal of type " + str(lit), key.pos
                )
            if key.name in seen:
                raise NegotiationError.at("duplicate field name " + key.name + " in struct literal", key.pos)
            seen.add(key.name)
            member = st.members[key.name]
            key.typ = member
            self.check_assign(self.value(val, member), member, val, "field value")

    def _list_lit(self, e: CompoundLit, of: Type, size: int) -> None:
        if e.kind == COMPOUND_MAPLIKE:
            for key, val in e.key_vals():
                self._index(key)
                self.check_assign(self.value(val, of), of, val, "array or slice literal")
            return
        if size >= 0 and len(e.elems) > size:
            raise NegotiationError.at(
                "array index " + str(size) + " out of bounds [0:" + str(size) + "]", e.pos
            )
        for el in e.elems:
            self.check_assign(self.value(el, of), of, el, "array or slice literal")

    # ── Operators ────────────────────────────────────────────

    def _untyped(self, e: Expr) -> bool:
        """Whether e is an untyped constant expression."""
        if isinstance(e, (BasicLit, NilExpr)):
            return True
        if isinstance(e, UnaryOp):
            return e.op in ("+", "-", "^", "!") and self._untyped(e.right)
        if isinstance(e, BinaryOp):
            if e.op in EQUALITY_OPS or e.op in ORDER_OPS:
                return False
            if e.op in SHIFT_OPS:
                return self._untyped(e.left)
            return self._untyped(e.left) and self._untyped(e.right)
        return False

    def _untyped_default(self, e: Expr) -> Type | None:
        """Default type of an untyped constant expression; the higher numeric kind wins."""
        kind = self._untyped_kind(e)
        if kind is None:
            return None
        return _LITERAL_DEFAULTS[kind]

    def _untyped_kind(self, e: Expr) -> str | None:
        if isinstance(e, BasicLit):
            return e.kind
        if isinstance(e, UnaryOp):
            return self._untyped_kind(e.right)
        if isinstance(e, BinaryOp):
            left = self._untyped_kind(e.left)
            if e.op in SHIFT_OPS:
                return left
            right = self._untyped_kind(e.right)
            if left in _NUMERIC_RANK and right in _NUMERIC_RANK:
                if _NUMERIC_RANK[right] > _NUMERIC_RANK[left]:
                    return right
            return left
        return None

    def _operands(self, e: BinaryOp, expected: Type | None) -> tuple[Type, Type]:
        left_untyped = self._untyped(e.left)
        right_untyped = self._untyped(e.right)
        if left_untyped and right_untyped:
            target = expected
            if target is None or not (is_numeric(target) or is_string(target) or is_bool(target)):
                target = self._untyped_default(e)
            return self.value(e.left, target), self.value(e.right, target)
        if left_untyped:
            rt = self.value(e.right, expected)
            return self.value(e.left, rt), rt
        lt = self.value(e.left, expected)
        return lt, self.value(e.right, lt)

    def binary(self, e: BinaryOp, expected: Type | None) -> Type:
        op = e.op
        if op in SHIFT_OPS:
            if self._untyped(e.left) and self._untyped(e.right):
                # Constant shift: computed as an integer, then converted.
                lt = self.value(e.left, INT)
                rt = self.value(e.right)
                self.check_operator(op, lt, rt, e.left, e.right, e.pos)
                if expected is not None and is_numeric(expected):
                    return expected
                return lt
            lt = self.value(e.left, expected)
            rt = self.value(e.right)
            self.check_operator(op, lt, rt, e.left, e.right, e.pos)
            return lt
        comparison = op in EQUALITY_OPS or op in ORDER_OPS
        lt, rt = self._operands(e, None if comparison else expected)
        self.check_operator(op, lt, rt, e.left, e.right, e.pos)
        if comparison:
            if expected is not None and is_bool(expected):
                return expected
            return BOOL
        return lt

    def check_operator(self, op: str, lt: Type, rt: Type, left: Expr, right: Expr, pos: Pos) -> None:
        """Operand rules of a binary operator, shared by `x op y` and `x op= y`."""
        if op in SHIFT_OPS:
            if not is_integer(lt) or not is_integer(rt):
                raise NegotiationError.at(
                    "invalid operation: shift of " + _describe(left) + " (type " + str(lt) + ") by " + str(rt),
                    pos,
                )
            return
        if op in EQUALITY_OPS:
            if not assignable(lt, rt) and not assignable(rt, lt):
                raise NegotiationError.at(
                    "invalid operation: mismatched types " + str(lt) + " and " + str(rt), pos
                )
            nil_side = isinstance(left, NilExpr) or isinstance(right, NilExpr)
            if not nil_side and isinstance(underlying(lt), (SliceType, MapType, FuncType)):
                raise NegotiationError.at(
                    "invalid operation: " + str(lt) + " can only be compared to nil", pos
                )
            return
        if not identical(lt, rt):
            raise NegotiationError.at(
                "invalid operation: mismatched types " + str(lt) + " and " + str(rt), pos
            )
        ok = False
        if op in LOGIC_OPS:
            ok = is_bool(lt)
        elif op in ORDER_OPS:
            ok = (is_numeric(lt) and not is_complex(lt)) or is_string(lt)
        elif op == "+":
            ok = is_numeric(lt) or is_string(lt)
        elif op in INTEGER_OPS:
            ok = is_integer(lt)
        elif op in ("-", "*", "/"):
            ok = is_numeric(lt)
        if not ok:
            raise NegotiationError.at(
                "invalid operation: operator " + op + " not defined on " + _describe(left) + " (type " + str(lt) + ")",
                pos,
            )

    def unary(self, e: UnaryOp, expected: Type | None) -> Type:
        op = e.op
        if op == "&":
            inner: Type | None = None
            if isinstance(expected, PointerType):
                inner = expected.to
            t = self.value(e.right, inner)
            if not isinstance(e.right, CompoundLit) and not self._addressable(e.right):
                raise NegotiationError.at("cannot take the address of " + _describe(e.right), e.pos)
            return PointerType(t)
        if op == "*":
            t = self.value(e.right)
            u = underlying(t)
            if not isinstance(u, PointerType):
                raise NegotiationError.at(
                    "invalid indirect of " + _describe(e.right) + " (type " + str(t) + ")", e.pos
                )
            return u.to
        if op == "<-":
            t = self.value(e.right)
            u = underlying(t)
            if not isinstance(u, ChanType) or u.dir == CHAN_SEND:
                raise NegotiationError.at(
                    "invalid operation: cannot receive from " + _describe(e.right) + " (type " + str(t) + ")",
                    e.pos,
                )
            return u.of
        t = self.value(e.right, expected)
        ok = False
        if op == "!":
            ok = is_bool(t)
        elif op == "-" or op == "+":
            ok = is_numeric(t)
        elif op == "^":
            ok = is_integer(t)
        if not ok:
            raise NegotiationError.at(
                "invalid operation: operator " + op + " not defined on " + _describe(e.right) + " (type " + str(t) + ")",
                e.pos,
            )
        return t

    def _addressable(self, e: Expr) -> bool:
        if isinstance(e, Ident):
            return isinstance(e.obj, Variable)
        if isinstance(e, DotSelector):
            return not isinstance(e.left, Ident) or not isinstance(e.left.obj, ImportStmt)
        if isinstance(e, ArrayExpr):
            return e.left.typ is not None and not isinstance(underlying(e.left.typ), MapType)
        if isinstance(e, UnaryOp):
            return e.op == "*"
        return False
