"""Dependency tracking for top-level statements.

`decls` lists the names a statement introduces at unit scope, `deps` the
free identifier and type names it references without binding them. Both
are computed once per statement right after parsing.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..ast import (
    COMPOUND_MAPLIKE,
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
    PassStmt,
    ReturnStmt,
    SendStmt,
    SliceExpr,
    Stmt,
    StructStmt,
    SwitchStmt,
    TopLevelNode,
    TopLevelStmt,
    TypeAssertion,
    TypeDecl,
    TypeExpr,
    UnaryOp,
    VarStmt,
    WhenStmt,
    chain_pairs,
    chain_vars,
)
from ..errors import InternalError, unreachable
from ..types import (
    BUILTIN_TYPE_NAMES,
    ArrayType,
    CustomType,
    GenericInstanceType,
    GenericParamType,
    IfaceType,
    MapType,
    SliceType,
    StructType,
    Type,
)

BUILTIN_FUNCS: list[str] = [
    "append",
    "cap",
    "copy",
    "delete",
    "len",
    "make",
    "new",
    "panic",
    "print",
    "println",
]

# Names visible everywhere without a declaration.
UNIVERSE_NAMES: set[str] = set(BUILTIN_TYPE_NAMES) | set(BUILTIN_FUNCS) | {
    "true",
    "false",
    "nil",
    "iota",
}

TOP_LEVEL_KINDS = (
    VarStmt,
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
    ImportStmt,
    WhenStmt,
    TypeDecl,
    StructStmt,
    IfaceStmt,
    GenericFunc,
    GenericStruct,
)


# ============================================================
# DECLS
# ============================================================


def decls(stmt: TopLevelNode) -> list[str]:
    """Names the statement introduces at unit scope."""
    if isinstance(stmt, VarStmt):
        result: list[str] = []
        for v in chain_vars(stmt.vars):
            if v.name != "_":
                result.append(v.name)
        return result
    if isinstance(stmt, StructStmt):
        return [stmt.decl.name]
    if isinstance(stmt, TypeDecl):
        return [stmt.name]
    if isinstance(stmt, IfaceStmt):
        return [stmt.decl.name]
    if isinstance(stmt, GenericFunc):
        return [stmt.name]
    if isinstance(stmt, GenericStruct):
        return [stmt.name]
    if isinstance(
        stmt,
        (
            ImportStmt,
            AssignStmt,
            SendStmt,
            SwitchStmt,
            ExprStmt,
            IfStmt,
            ForStmt,
            ForRangeStmt,
            BranchStmt,
            LabelStmt,
            PassStmt,
            ReturnStmt,
            WhenStmt,
        ),
    ):
        return []
    unreachable(stmt)


# ============================================================
# DEPS
# ============================================================


@dataclass
class _DepsCtx:
    scopes: list[set[str]]
    # Insertion-ordered set of free names.
    free: dict[str, None] = field(default_factory=dict)

    def push(self) -> None:
        self.scopes.append(set())

    def pop(self) -> None:
        self.scopes.pop()

    def bind(self, name: str) -> None:
        self.scopes[-1].add(name)

    def use(self, name: str) -> None:
        if name in UNIVERSE_NAMES or name == "_":
            return
        for scope in self.scopes:
            if name in scope:
                return
        self.free[name] = None


def deps(stmt: TopLevelNode) -> list[str]:
    """Free names the statement references, in first-use order."""
    ctx = _DepsCtx([set()])
    for name in decls(stmt):
        ctx.bind(name)
    if isinstance(stmt, TOP_LEVEL_KINDS):
        _walk_stmt(stmt, ctx)
        return list(ctx.free)
    unreachable(stmt)


def top_level(stmt: Stmt) -> TopLevelStmt:
    """Wrap a parsed statement with its decls and deps."""
    if not isinstance(stmt, TOP_LEVEL_KINDS):
        raise InternalError("not a top-level statement: " + type(stmt).__name__)
    return TopLevelStmt(stmt, decls(stmt), deps(stmt))


def _walk_type(t: Type, ctx: _DepsCtx) -> None:
    def visit(sub: Type) -> bool:
        if isinstance(sub, CustomType):
            if sub.package is None:
                ctx.use(sub.name)
            return False
        if isinstance(sub, GenericInstanceType):
            if sub.package is None:
                ctx.use(sub.name)
            return True
        if isinstance(sub, GenericParamType):
            return False
        if isinstance(sub, IfaceType):
            for name in sub.keys:
                _walk_type(sub.methods[name], ctx)
            return False
        return True

    t.map_subtypes(visit)


def _walk_block(block: CodeBlock, ctx: _DepsCtx) -> None:
    ctx.push()
    for s in block.statements:
        _walk_stmt(s, ctx)
    ctx.pop()


def _walk_func(fn: FuncDecl, ctx: _DepsCtx) -> None:
    ctx.push()
    if fn.receiver is not None:
        ctx.bind(fn.receiver.name)
    for v in chain_vars(fn.args):
        _walk_type(v.typ, ctx)
        ctx.bind(v.name)
    for v in chain_vars(fn.results):
        _walk_type(v.typ, ctx)
    _walk_block(fn.code, ctx)
    ctx.pop()


def _walk_var_stmt(stmt: VarStmt, ctx: _DepsCtx) -> None:
    for v, init in chain_pairs(stmt.vars):
        _walk_type(v.typ, ctx)
        if init is not None:
            _walk_expr(init, ctx)
    for v in chain_vars(stmt.vars):
        ctx.bind(v.name)


def _walk_optional(stmt: Stmt | None, ctx: _DepsCtx) -> None:
    if stmt is not None:
        _walk_stmt(stmt, ctx)


def _walk_stmt(stmt: Stmt, ctx: _DepsCtx) -> None:
    if isinstance(stmt, VarStmt):
        _walk_var_stmt(stmt, ctx)
    elif isinstance(stmt, AssignStmt):
        for e in stmt.lhs:
            _walk_expr(e, ctx)
        for e in stmt.rhs:
            _walk_expr(e, ctx)
    elif isinstance(stmt, SendStmt):
        _walk_expr(stmt.lhs, ctx)
        _walk_expr(stmt.rhs, ctx)
    elif isinstance(stmt, ExprStmt):
        _walk_expr(stmt.expr, ctx)
    elif isinstance(stmt, ReturnStmt):
        for e in stmt.values:
            _walk_expr(e, ctx)
    elif isinstance(stmt, IfStmt):
        # An initializer stays in scope for every later branch.
        ctx.push()
        for branch in stmt.branches:
            _walk_optional(branch.scoped_var, ctx)
            if branch.condition is not None:
                _walk_expr(branch.condition, ctx)
            _walk_block(branch.code, ctx)
        ctx.pop()
    elif isinstance(stmt, SwitchStmt):
        _walk_switch(stmt, ctx)
    elif isinstance(stmt, ForStmt):
        ctx.push()
        _walk_optional(stmt.scoped_var, ctx)
        if stmt.condition is not None:
            _walk_expr(stmt.condition, ctx)
        _walk_optional(stmt.repeat_stmt, ctx)
        _walk_block(stmt.code, ctx)
        ctx.pop()
    elif isinstance(stmt, ForRangeStmt):
        _walk_expr(stmt.series, ctx)
        ctx.push()
        if stmt.scoped_vars is not None:
            for v in stmt.scoped_vars.vars:
                ctx.bind(v.name)
        if stmt.outside_vars is not None:
            for e in stmt.outside_vars:
                _walk_expr(e, ctx)
        _walk_block(stmt.code, ctx)
        ctx.pop()
    elif isinstance(stmt, WhenStmt):
        for t in stmt.args:
            _walk_type(t, ctx)
        for branch in stmt.branches:
            for pred in branch.predicates:
                if pred.target is not None:
                    _walk_type(pred.target, ctx)
            _walk_block(branch.code, ctx)
    elif isinstance(stmt, TypeDecl):
        ctx.bind(stmt.name)
        if stmt.aliased_type is not None:
            _walk_type(stmt.aliased_type, ctx)
    elif isinstance(stmt, StructStmt):
        ctx.bind(stmt.decl.name)
        _walk_struct(stmt.struct, ctx)
    elif isinstance(stmt, IfaceStmt):
        ctx.bind(stmt.decl.name)
        _walk_type(stmt.iface, ctx)
    elif isinstance(stmt, GenericFunc):
        ctx.push()
        for p in stmt.params:
            ctx.bind(p)
        _walk_func(stmt.func, ctx)
        ctx.pop()
    elif isinstance(stmt, GenericStruct):
        ctx.push()
        for p in stmt.params:
            ctx.bind(p)
        _walk_struct(stmt.struct, ctx)
        ctx.pop()
    elif isinstance(stmt, (PassStmt, BranchStmt, LabelStmt, ImportStmt)):
        pass
    else:
        raise InternalError("deps: unexpected statement " + type(stmt).__name__)


def _walk_struct(struct: StructType, ctx: _DepsCtx) -> None:
    for k in struct.keys:
        _walk_type(struct.members[k], ctx)
    for fn in struct.methods.values():
        _walk_func(fn, ctx)


def _walk_switch(stmt: SwitchStmt, ctx: _DepsCtx) -> None:
    ctx.push()
    _walk_optional(stmt.scoped_var, ctx)
    binding: str | None = None
    if isinstance(stmt.value, VarStmt):
        for _, init in chain_pairs(stmt.value.vars):
            if init is not None:
                _walk_expr(init, ctx)
        binding = stmt.value.vars[0].vars[0].name
    else:
        _walk_optional(stmt.value, ctx)
    for branch in stmt.branches:
        ctx.push()
        if binding is not None:
            ctx.bind(binding)
        for e in branch.values or []:
            _walk_expr(e, ctx)
        _walk_block(branch.code, ctx)
        ctx.pop()
    ctx.pop()


def _keys_are_exprs(lit: CompoundLit) -> bool:
    """Map, slice and array literals key by value; struct literals by field name."""
    if isinstance(lit.left, TypeExpr):
        return isinstance(lit.left.type_, (MapType, SliceType, ArrayType))
    return False


def _walk_expr(expr: Expr, ctx: _DepsCtx) -> None:
    if isinstance(expr, (BasicLit, NilExpr, BlankExpr)):
        return
    if isinstance(expr, Ident):
        ctx.use(expr.name)
    elif isinstance(expr, CompoundLit):
        if expr.left is not None:
            _walk_expr(expr.left, ctx)
        if expr.kind == COMPOUND_MAPLIKE:
            keyed_by_value = _keys_are_exprs(expr)
            for key, val in expr.key_vals():
                if keyed_by_value or not isinstance(key, Ident):
                    _walk_expr(key, ctx)
                _walk_expr(val, ctx)
        else:
            for e in expr.elems:
                _walk_expr(e, ctx)
    elif isinstance(expr, BinaryOp):
        _walk_expr(expr.left, ctx)
        _walk_expr(expr.right, ctx)
    elif isinstance(expr, UnaryOp):
        _walk_expr(expr.right, ctx)
    elif isinstance(expr, DotSelector):
        _walk_expr(expr.left, ctx)
    elif isinstance(expr, ArrayExpr):
        _walk_expr(expr.left, ctx)
        for e in expr.index:
            _walk_expr(e, ctx)
    elif isinstance(expr, SliceExpr):
        _walk_expr(expr.left, ctx)
        if expr.low is not None:
            _walk_expr(expr.low, ctx)
        if expr.high is not None:
            _walk_expr(expr.high, ctx)
    elif isinstance(expr, TypeAssertion):
        _walk_expr(expr.left, ctx)
        if expr.right is not None:
            _walk_type(expr.right.type_, ctx)
    elif isinstance(expr, TypeExpr):
        _walk_type(expr.type_, ctx)
    elif isinstance(expr, FuncCallExpr):
        _walk_expr(expr.left, ctx)
        for e in expr.args:
            _walk_expr(e, ctx)
    elif isinstance(expr, FuncDecl):
        _walk_func(expr, ctx)
    else:
        raise InternalError("deps: unexpected expression " + type(expr).__name__)
