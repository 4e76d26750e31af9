"""GoEmitter: negotiated Have AST -> Go source text.

Pure syntax emission - no analysis. Every type the output mentions comes
from the `typ` annotations negotiation left on the tree; generation never
reports user errors.
"""

from __future__ import annotations

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
    TypeAssertion,
    TypeDecl,
    TypeExpr,
    UnaryOp,
    VarDecl,
    VarStmt,
    WhenStmt,
    type_switch_parts,
)
from ..context import BuiltinFunc
from ..errors import InternalError, unreachable
from ..types import SliceType, TupleType, Type


class CodeChunk:
    """Append-only output buffer shared by every statement of a unit."""

    def __init__(self) -> None:
        self.parts: list[str] = []

    def write(self, text: str) -> None:
        self.parts.append(text)

    def read_all(self) -> str:
        return "".join(self.parts)


def _typ(e: Expr) -> Type:
    if e.typ is None:
        raise InternalError("generating an expression that was never negotiated")
    return e.typ


def _params(fn: FuncDecl) -> str:
    groups: list[str] = []
    for i, group in enumerate(fn.args):
        names: list[str] = []
        for v in group.vars:
            names.append(v.name)
        t = group.vars[0].typ
        if fn.variadic and i == len(fn.args) - 1 and isinstance(t, SliceType):
            text = "..." + str(t.of)
        else:
            text = str(t)
        groups.append(", ".join(names) + " " + text)
    return ", ".join(groups)


def _results(fn: FuncDecl) -> str:
    types: list[str] = []
    for group in fn.results:
        for v in group.vars:
            types.append(str(v.typ))
    if len(types) == 0:
        return ""
    if len(types) == 1:
        return " " + types[0]
    return " (" + ", ".join(types) + ")"


class GoEmitter:
    """Emit Go text for negotiated top-level statements."""

    def __init__(self) -> None:
        self.output: list[str] = []
        self.indent = 0

    def emit(self, stmt: TopLevelNode) -> str:
        """Render one top-level statement; empty when it produces no code."""
        self.output = []
        self.indent = 0
        self._emit_top(stmt)
        if len(self.output) == 0:
            return ""
        return "\n".join(self.output) + "\n"

    def _line(self, text: str) -> None:
        """Emit a line with current indentation."""
        self.output.append("\t" * self.indent + text)

    # ── Declarations ─────────────────────────────────────────

    def _emit_top(self, stmt: TopLevelNode) -> None:
        if isinstance(stmt, ImportStmt):
            if stmt.alias:
                self._line("import " + stmt.name + ' "' + stmt.path + '"')
            else:
                self._line('import "' + stmt.path + '"')
        elif isinstance(stmt, StructStmt):
            self._emit_struct(stmt)
        elif isinstance(stmt, IfaceStmt):
            self._line("type " + stmt.decl.name + " interface {")
            for k in stmt.iface.keys:
                self._line("\t" + k + stmt.iface.methods[k].header())
            self._line("}")
        elif isinstance(stmt, (GenericFunc, GenericStruct)):
            pass
        elif isinstance(
            stmt,
            (
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
                WhenStmt,
                TypeDecl,
            ),
        ):
            self._emit_stmt(stmt)
        else:
            unreachable(stmt)

    def _emit_struct(self, stmt: StructStmt) -> None:
        name = stmt.decl.name
        self._line("type " + name + " struct {")
        for k in stmt.struct.keys:
            self._line("\t" + k + " " + str(stmt.struct.members[k]))
        self._line("}")
        for fn in stmt.decl.methods.values():
            receiver = "self"
            if fn.receiver is not None:
                receiver = fn.receiver.name
            self._line(
                "func (" + receiver + " *" + name + ") " + fn.name + "(" + _params(fn) + ")" + _results(fn) + " {"
            )
            self._emit_block(fn.code)
            self._line("}")

    def _emit_func(self, fn: FuncDecl) -> None:
        self._line("func " + fn.name + "(" + _params(fn) + ")" + _results(fn) + " {")
        self._emit_block(fn.code)
        self._line("}")

    # ── Statements ───────────────────────────────────────────

    def _emit_block(self, code: CodeBlock) -> None:
        self.indent += 1
        for s in code.statements:
            self._emit_stmt(s)
        self.indent -= 1

    def _emit_stmt(self, stmt: Stmt) -> None:
        if isinstance(stmt, VarStmt):
            if stmt.is_func:
                fn = stmt.vars[0].inits[0]
                if not isinstance(fn, FuncDecl):
                    raise InternalError("function statement without a body")
                self._emit_func(fn)
            else:
                self._line("var " + self._var_chain(stmt.vars, " = "))
        elif isinstance(stmt, (AssignStmt, SendStmt, ExprStmt)):
            self._line(self._simple(stmt))
        elif isinstance(stmt, PassStmt):
            pass
        elif isinstance(stmt, LabelStmt):
            self.output.append("\t" * max(self.indent - 1, 0) + stmt.name + ":")
        elif isinstance(stmt, BranchStmt):
            if stmt.right is not None:
                self._line(stmt.keyword + " " + stmt.right.name)
            else:
                self._line(stmt.keyword)
        elif isinstance(stmt, ReturnStmt):
            if len(stmt.values) == 0:
                self._line("return")
            else:
                self._line("return " + self._expr_list(stmt.values))
        elif isinstance(stmt, IfStmt):
            self._emit_if(stmt)
        elif isinstance(stmt, SwitchStmt):
            self._emit_switch(stmt)
        elif isinstance(stmt, ForStmt):
            self._emit_for(stmt)
        elif isinstance(stmt, ForRangeStmt):
            self._emit_for_range(stmt)
        elif isinstance(stmt, WhenStmt):
            for br in stmt.branches:
                if br.active:
                    for s in br.code.statements:
                        self._emit_stmt(s)
        elif isinstance(stmt, TypeDecl):
            self._line("type " + stmt.name + " " + str(stmt.aliased_type))
        else:
            raise InternalError("unexpected statement " + type(stmt).__name__)

    def _var_chain(self, chain: list[VarDecl], assign: str) -> str:
        """Names and values of a declaration chain, each value converted to its variable's type."""
        names: list[str] = []
        values: list[str] = []
        for group in chain:
            spread = len(group.inits) == 1 and isinstance(group.inits[0].typ, TupleType)
            for v in group.vars:
                names.append(v.name)
            if spread:
                values.append(self._expr(group.inits[0]))
                continue
            for v, init in group.pairs():
                if init is None:
                    values.append("(" + str(v.typ) + ")(" + v.typ.zero_value() + ")")
                else:
                    values.append("(" + str(v.typ) + ")(" + self._expr(init) + ")")
        return ", ".join(names) + assign + ", ".join(values)

    def _simple(self, stmt: Stmt) -> str:
        """Text of a statement legal in an if/for/switch header."""
        if isinstance(stmt, VarStmt):
            return self._var_chain(stmt.vars, " := ")
        if isinstance(stmt, AssignStmt):
            if stmt.op == "++" or stmt.op == "--":
                return self._expr(stmt.lhs[0]) + stmt.op
            return self._expr_list(stmt.lhs) + " " + stmt.op + " " + self._expr_list(stmt.rhs)
        if isinstance(stmt, SendStmt):
            return self._expr(stmt.lhs) + " <- " + self._expr(stmt.rhs)
        if isinstance(stmt, ExprStmt):
            return self._expr(stmt.expr)
        raise InternalError("unexpected header statement " + type(stmt).__name__)

    def _header(self, init: Stmt | None, rest: str) -> str:
        if init is None:
            return rest
        return self._simple(init) + "; " + rest

    def _emit_if(self, stmt: IfStmt) -> None:
        for i, br in enumerate(stmt.branches):
            if br.condition is None:
                self._line("} else {")
            else:
                text = self._header(br.scoped_var, self._expr(br.condition))
                if i == 0:
                    self._line("if " + text + " {")
                else:
                    self._line("} else if " + text + " {")
            self._emit_block(br.code)
        self._line("}")

    def _emit_switch(self, stmt: SwitchStmt) -> None:
        assertion, bind = type_switch_parts(stmt.value)
        value = ""
        if assertion is not None:
            value = self._expr(assertion.left) + ".(type)"
            if bind is not None:
                value = bind.name + " := " + value
        elif stmt.value is not None:
            value = self._simple(stmt.value)
        head = "switch"
        if stmt.scoped_var is not None:
            head += " " + self._simple(stmt.scoped_var) + ";"
        if value != "":
            head += " " + value
        self._line(head + " {")
        for br in stmt.branches:
            if br.values is None:
                self._line("default:")
            else:
                self._line("case " + self._expr_list(br.values) + ":")
            self._emit_block(br.code)
        self._line("}")

    def _emit_for(self, stmt: ForStmt) -> None:
        if stmt.scoped_var is None and stmt.repeat_stmt is None:
            if stmt.condition is None:
                self._line("for {")
            else:
                self._line("for " + self._expr(stmt.condition) + " {")
        else:
            init = "" if stmt.scoped_var is None else self._simple(stmt.scoped_var)
            cond = "" if stmt.condition is None else self._expr(stmt.condition)
            post = "" if stmt.repeat_stmt is None else self._simple(stmt.repeat_stmt)
            self._line("for " + init + "; " + cond + "; " + post + " {")
        self._emit_block(stmt.code)
        self._line("}")

    def _emit_for_range(self, stmt: ForRangeStmt) -> None:
        series = self._expr(stmt.series)
        if stmt.scoped_vars is not None and len(stmt.scoped_vars.vars) > 0:
            names: list[str] = []
            for v in stmt.scoped_vars.vars:
                names.append(v.name)
            self._line("for " + ", ".join(names) + " := range " + series + " {")
        elif stmt.outside_vars:
            self._line("for " + self._expr_list(stmt.outside_vars) + " = range " + series + " {")
        else:
            self._line("for range " + series + " {")
        self._emit_block(stmt.code)
        self._line("}")

    # ── Expressions ──────────────────────────────────────────

    def _expr_list(self, exprs: list[Expr]) -> str:
        parts: list[str] = []
        for e in exprs:
            parts.append(self._expr(e))
        return ", ".join(parts)

    def _expr(self, e: Expr) -> str:
        if isinstance(e, BasicLit):
            return e.value
        if isinstance(e, NilExpr):
            return "nil"
        if isinstance(e, BlankExpr):
            return "_"
        if isinstance(e, Ident):
            return e.name
        if isinstance(e, BinaryOp):
            return "(" + self._expr(e.left) + " " + e.op + " " + self._expr(e.right) + ")"
        if isinstance(e, UnaryOp):
            return "(" + e.op + self._expr(e.right) + ")"
        if isinstance(e, DotSelector):
            return self._expr(e.left) + "." + e.right.name
        if isinstance(e, ArrayExpr):
            if e.go_name != "":
                return e.go_name
            return self._expr(e.left) + "[" + self._expr_list(e.index) + "]"
        if isinstance(e, SliceExpr):
            low = "" if e.low is None else self._expr(e.low)
            high = "" if e.high is None else self._expr(e.high)
            return self._expr(e.left) + "[" + low + ":" + high + "]"
        if isinstance(e, TypeAssertion):
            if e.right is None:
                return self._expr(e.left) + ".(type)"
            return self._expr(e.left) + ".(" + str(_typ(e.right)) + ")"
        if isinstance(e, TypeExpr):
            return str(_typ(e))
        if isinstance(e, FuncCallExpr):
            return self._call(e)
        if isinstance(e, CompoundLit):
            return self._compound(e)
        if isinstance(e, FuncDecl):
            return self._func_lit(e)
        raise InternalError("unexpected expression " + type(e).__name__)

    def _call(self, e: FuncCallExpr) -> str:
        if e.conversion is not None:
            return "(" + str(e.conversion) + ")(" + self._expr(e.args[0]) + ")"
        # make and new take a type as their first argument.
        type_arg = (
            isinstance(e.left, Ident)
            and isinstance(e.left.obj, BuiltinFunc)
            and e.left.obj.name in ("make", "new")
        )
        args: list[str] = []
        for i, arg in enumerate(e.args):
            if i == 0 and type_arg:
                args.append(str(_typ(arg)))
            else:
                args.append(self._expr(arg))
        text = self._expr(e.left) + "(" + ", ".join(args)
        if e.ellipsis:
            text += "..."
        return text + ")"

    def _compound(self, e: CompoundLit) -> str:
        elems: list[str] = []
        if e.kind == COMPOUND_MAPLIKE:
            for key, val in e.key_vals():
                elems.append(self._expr(key) + ": " + self._expr(val))
        else:
            for el in e.elems:
                elems.append(self._expr(el))
        body = "{" + ", ".join(elems) + "}"
        if e.left is None:
            return body
        return str(_typ(e.left)) + body

    def _func_lit(self, fn: FuncDecl) -> str:
        """Function literal; the body is rendered into a nested buffer."""
        saved = self.output
        self.output = []
        self._emit_block(fn.code)
        body = self.output
        self.output = saved
        lines = ["func(" + _params(fn) + ")" + _results(fn) + " {"]
        lines.extend(body)
        lines.append("\t" * self.indent + "}")
        return "\n".join(lines)
