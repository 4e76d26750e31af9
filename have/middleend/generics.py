"""Generics engine: on-demand instantiation of func and struct templates.

Templates keep their declaration's source text. An instantiation re-parses
that text with every parameter name bound to a concrete type, renames the
result, and negotiates it like any other top-level statement. Results are
cached per (template, argument types) in the Context:

    in_progress  the entry exists from before parsing until negotiation
                 ends; recursive references get the in-progress object
    complete     negotiated, emitted after the unit's own statements
    failed       the error list is kept and every later request fails
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

from ..ast import (
    FuncDecl,
    GenericFunc,
    GenericStruct,
    ImportStmt,
    Pos,
    StructStmt,
    TopLevelStmt,
    VarStmt,
)
from ..context import INST_COMPLETE, INST_FAILED, Context, Instantiation, InstKey
from ..errors import CompileError, InstantiationError, InternalError, NegotiationError
from ..frontend.parse import parse
from ..types import CustomType, Type, mangle, type_key
from .deps import decls, deps

if TYPE_CHECKING:
    from ..compiler import Unit

logger = logging.getLogger(__name__)

# Negotiates a freshly parsed instance against the declaring unit.
NegotiateInstance = Callable[[TopLevelStmt, list[ImportStmt]], None]


def instance_name(base: str, args: list[Type]) -> str:
    """Go name of an instantiation: max__int, Pair__string_Sl_int."""
    parts: list[str] = []
    for a in args:
        parts.append(mangle(a))
    return base + "__" + "_".join(parts)


def _local_type(t: Type) -> CustomType | None:
    """The first function-local named type inside t, if any."""
    found: list[CustomType] = []

    def visit(sub: Type) -> bool:
        if isinstance(sub, CustomType) and sub.decl is not None and sub.decl.local:
            found.append(sub)
        return len(found) == 0

    t.map_subtypes(visit)
    if len(found) > 0:
        return found[0]
    return None


def _args_text(args: list[Type]) -> str:
    return "[" + ", ".join(str(a) for a in args) + "]"


def instantiate(
    generic: GenericFunc | GenericStruct,
    args: list[Type],
    pos: Pos,
    ctx: Context,
    negotiate: NegotiateInstance,
    unit: Unit | None = None,
) -> Instantiation:
    """Return the instantiation of `generic` for `args`, creating it if needed.

    Raises NegotiationError for a wrong argument count and
    InstantiationError when this or an earlier attempt failed.
    """
    if len(args) != len(generic.params):
        raise NegotiationError.at(
            "wrong number of type arguments for "
            + generic.name
            + ": expected "
            + str(len(generic.params))
            + ", got "
            + str(len(args)),
            pos,
        )
    for a in args:
        if not a.known():
            raise NegotiationError.at("cannot instantiate " + generic.name + " with " + str(a), pos)
        local = _local_type(a)
        if local is not None:
            raise NegotiationError.at(
                "cannot use local type " + local.name + " as type argument to " + generic.name, pos
            )
    key: InstKey = (id(generic), tuple(type_key(a) for a in args))
    inst = ctx.instantiations.get(key)
    if inst is not None:
        logger.debug("instantiation cache hit: %s (%s)", inst.go_name, inst.state)
        if inst.state == INST_FAILED:
            raise InstantiationError(
                "instantiation of " + generic.name + _args_text(args) + " failed",
                pos.line,
                pos.col,
                inst.errors,
            )
        return inst
    declared = unit.peek if unit is not None else None
    go_name = ctx.claim_name(instance_name(generic.name, args), declared)
    inst = Instantiation(generic, list(args), go_name, unit=unit)
    ctx.add_instantiation(key, inst)
    logger.debug("instantiating %s%s as %s", generic.name, _args_text(args), go_name)
    try:
        type_args: dict[str, Type] = {}
        for name, arg in zip(generic.params, args):
            type_args[name] = arg
        stmts = parse(generic.code, generic.line_offset, type_args, generic.imports)
        if len(stmts) != 1:
            raise InternalError(
                "template " + generic.name + " re-parsed into " + str(len(stmts)) + " statements"
            )
        top = stmts[0]
        inst.obj = _rename(top, go_name)
        top.decls = decls(top.stmt)
        top.deps = deps(top.stmt)
        inst.stmt = top
        negotiate(top, generic.imports)
    except CompileError as e:
        inst.state = INST_FAILED
        inst.errors = [e]
        logger.debug("instantiation %s failed: %s", go_name, e)
        raise InstantiationError(
            "cannot instantiate " + generic.name + _args_text(args), pos.line, pos.col, inst.errors
        ) from e
    inst.state = INST_COMPLETE
    return inst


def _rename(top: TopLevelStmt, go_name: str) -> object:
    """Give a re-parsed template its instance name; return the declared object."""
    stmt = top.stmt
    if isinstance(stmt, VarStmt) and stmt.is_func:
        v = stmt.vars[0].vars[0]
        v.name = go_name
        fn = stmt.vars[0].inits[0]
        if isinstance(fn, FuncDecl):
            fn.name = go_name
        return v
    if isinstance(stmt, StructStmt):
        stmt.decl.name = go_name
        stmt.struct.name = go_name
        return stmt.decl
    raise InternalError("unexpected template statement " + type(stmt).__name__)
