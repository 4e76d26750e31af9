"""Compilation unit: registers declarations, negotiates, then generates.

Each top-level statement moves unchecked -> negotiating -> negotiated ->
generated, or ends in failed. Statements negotiate in source order, and a
unit-level lookup that reaches an unchecked declaration negotiates it first,
so forward references work without a separate sort.
"""

from __future__ import annotations

import logging

from .ast import (
    BLANK,
    STATE_FAILED,
    STATE_GENERATED,
    STATE_NEGOTIATED,
    STATE_NEGOTIATING,
    STATE_UNCHECKED,
    GenericFunc,
    GenericStruct,
    IfaceStmt,
    ImportStmt,
    Pos,
    StructStmt,
    TopLevelNode,
    TopLevelStmt,
    TypeDecl,
    Variable,
    VarStmt,
    chain_vars,
)
from .backend.go import CodeChunk, GoEmitter
from .context import Context
from .errors import CompileError, CompileFailed, InternalError, NegotiationError
from .frontend.parse import parse
from .middleend.negotiate import Negotiator

logger = logging.getLogger(__name__)


def _declared(stmt: TopLevelNode) -> list[tuple[str, object, Pos]]:
    """Unit-scope objects a statement declares, with their positions."""
    if isinstance(stmt, VarStmt):
        result: list[tuple[str, object, Pos]] = []
        for v in chain_vars(stmt.vars):
            result.append((v.name, v, v.pos))
        return result
    if isinstance(stmt, (StructStmt, IfaceStmt)):
        return [(stmt.decl.name, stmt.decl, stmt.pos)]
    if isinstance(stmt, TypeDecl):
        return [(stmt.name, stmt, stmt.pos)]
    if isinstance(stmt, (GenericFunc, GenericStruct)):
        return [(stmt.name, stmt, stmt.pos)]
    return []


def _describe(top: TopLevelStmt) -> str:
    if len(top.decls) > 0:
        return ", ".join(top.decls)
    return type(top.stmt).__name__ + " at line " + str(top.stmt.pos.line)


class Unit:
    """One source file's statements plus the state shared while compiling them."""

    def __init__(self, stmts: list[TopLevelStmt], context: Context | None = None):
        self.stmts: list[TopLevelStmt] = stmts
        self.context: Context = context if context is not None else Context()
        self.objects: dict[str, object] = {}
        self.owners: dict[str, TopLevelStmt] = {}
        self.imports: list[ImportStmt] = []
        self.errors: list[CompileError] = []
        self._registered = False

    def _fail(self, top: TopLevelStmt, err: CompileError) -> None:
        top.state = STATE_FAILED
        self.errors.append(err)
        logger.debug("%s failed: %s", _describe(top), err)

    def register(self) -> None:
        """Bind every declared name to its object; duplicates fail their statement."""
        if self._registered:
            return
        self._registered = True
        import_names: set[str] = set()
        for top in self.stmts:
            if isinstance(top.stmt, ImportStmt):
                imp = top.stmt
                if imp.name in import_names:
                    self._fail(top, NegotiationError.at(imp.name + " redeclared in this block", imp.pos))
                    continue
                import_names.add(imp.name)
                self.imports.append(imp)
        for top in self.stmts:
            for name, obj, pos in _declared(top.stmt):
                if name == BLANK:
                    continue
                if name in self.objects or name in import_names:
                    self._fail(top, NegotiationError.at(name + " redeclared in this block", pos))
                    break
                self.objects[name] = obj
                self.owners[name] = top

    def peek(self, name: str) -> object | None:
        """The unit-level object for name, without negotiating it."""
        return self.objects.get(name)

    def lookup(self, name: str, pos: Pos) -> object | None:
        """Unit-level object for name, negotiating its statement on first use."""
        obj = self.objects.get(name)
        if obj is None:
            return None
        owner = self.owners[name]
        if owner.state == STATE_UNCHECKED:
            self._ensure(owner)
        if owner.state == STATE_FAILED:
            raise NegotiationError.at("invalid use of " + name + ", whose declaration has errors", pos)
        if owner.state == STATE_NEGOTIATING and isinstance(obj, Variable) and not obj.typ.known():
            raise NegotiationError.at("initialization cycle: " + name + " refers to itself", pos)
        return obj

    def _negotiate(self, top: TopLevelStmt, imports: list[ImportStmt]) -> None:
        top.state = STATE_NEGOTIATING
        logger.debug("negotiating %s", _describe(top))
        neg = Negotiator(self.context, self, imports)
        neg.declare_header(top.stmt)
        for dep in top.deps:
            owner = self.owners.get(dep)
            if owner is not None and owner.state == STATE_UNCHECKED:
                self._ensure(owner)
        neg.negotiate_top(top.stmt)
        top.state = STATE_NEGOTIATED

    def _ensure(self, top: TopLevelStmt) -> None:
        try:
            self._negotiate(top, self.imports)
        except CompileError as e:
            self._fail(top, e)

    def negotiate_instance(self, top: TopLevelStmt, imports: list[ImportStmt]) -> None:
        """Negotiate an instantiated template; errors propagate to the generics engine."""
        try:
            self._negotiate(top, imports)
        except CompileError:
            top.state = STATE_FAILED
            raise

    def negotiate(self) -> list[CompileError]:
        """Negotiate every statement; return the errors, empty on success."""
        self.register()
        for top in self.stmts:
            if top.state == STATE_UNCHECKED:
                self._ensure(top)
        return self.errors

    def generate(self, chunk: CodeChunk) -> None:
        """Append the Go text of every statement, then of the unit's instantiations."""
        if len(self.errors) > 0:
            raise InternalError("generate called on a unit with errors")
        for top in self.stmts:
            if top.state != STATE_NEGOTIATED:
                raise InternalError("generating " + _describe(top) + " in state " + top.state)
        emitter = GoEmitter()
        for top in self.stmts:
            chunk.write(emitter.emit(top.stmt))
            top.state = STATE_GENERATED
        for inst in self.context.completed_instantiations(self):
            if inst.stmt is None or inst.stmt.state != STATE_NEGOTIATED:
                raise InternalError("instantiation " + inst.go_name + " was not negotiated")
            logger.debug("generating instantiation %s", inst.go_name)
            chunk.write(emitter.emit(inst.stmt.stmt))
            inst.stmt.state = STATE_GENERATED


def compile_source(text: str, context: Context | None = None) -> str:
    """Compile Have source text to Go source text.

    Raises CompileFailed with every error found.
    """
    try:
        stmts = parse(text)
    except CompileError as e:
        raise CompileFailed([e]) from e
    unit = Unit(stmts, context)
    errors = unit.negotiate()
    if len(errors) > 0:
        raise CompileFailed(errors)
    chunk = CodeChunk()
    unit.generate(chunk)
    return chunk.read_all()
