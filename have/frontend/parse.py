"""Have parser - recursive descent, one method per grammar production."""

from __future__ import annotations

from ..ast import (
    COMPOUND_EMPTY,
    COMPOUND_LISTLIKE,
    COMPOUND_MAPLIKE,
    LIT_BOOL,
    LIT_FLOAT,
    LIT_IMAG,
    LIT_INT,
    LIT_RUNE,
    LIT_STRING,
    WHEN_DEFAULT,
    WHEN_IMPLEMENTS,
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
    IfBranch,
    IfStmt,
    ImportStmt,
    LabelStmt,
    NilExpr,
    PassStmt,
    Pos,
    ReturnStmt,
    SendStmt,
    SliceExpr,
    Stmt,
    StructStmt,
    SwitchBranch,
    SwitchStmt,
    TopLevelStmt,
    TypeAssertion,
    TypeDecl,
    TypeExpr,
    UnaryOp,
    VarDecl,
    Variable,
    VarStmt,
    WhenBranch,
    WhenPredicate,
    WhenStmt,
    type_switch_parts,
)
from ..errors import CompileError
from ..middleend.deps import top_level
from ..types import (
    BUILTIN_TYPE_NAMES,
    CHAN_RECV,
    CHAN_SEND,
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
    Type,
    UnknownType,
)
from .tokens import (
    TK_DEDENT,
    TK_EOF,
    TK_FLOAT,
    TK_IDENT,
    TK_IMAG,
    TK_INDENT,
    TK_INT,
    TK_NEWLINE,
    TK_OP,
    TK_RUNE,
    TK_STRING,
    Token,
    tokenize,
)

ASSIGN_OPS: set[str] = {
    "=",
    "+=",
    "-=",
    "*=",
    "/=",
    "%=",
    "&=",
    "|=",
    "^=",
    "<<=",
    ">>=",
    "&^=",
}

BINARY_PRECEDENCE: dict[str, int] = {
    "||": 1,
    "&&": 2,
    "==": 3,
    "!=": 3,
    "<": 3,
    "<=": 3,
    ">": 3,
    ">=": 3,
    "+": 4,
    "-": 4,
    "|": 4,
    "^": 4,
    "*": 5,
    "/": 5,
    "%": 5,
    "<<": 5,
    ">>": 5,
    "&": 5,
    "&^": 5,
}

UNARY_OPS: set[str] = {"+", "-", "!", "^", "*", "&", "<-"}

LAYOUT_TOKENS: set[str] = {TK_NEWLINE, TK_INDENT, TK_DEDENT, TK_EOF}

_BUILTIN_TYPES: set[str] = set(BUILTIN_TYPE_NAMES)


class ParseError(CompileError):
    """Parse error with location info."""


def _int_value(text: str) -> int:
    """Value of a Go integer literal."""
    text = text.replace("_", "")
    if len(text) > 1 and text[0] == "0" and text[1].isdigit():
        return int(text, 8)
    return int(text, 0)


class Parser:
    """Recursive descent parser for Have.

    `type_args` binds generic parameter names to concrete types while an
    instantiation is re-parsed; `imports` seeds the file's import table.
    """

    def __init__(
        self,
        tokens: list[Token],
        lines: list[str],
        first_line: int = 1,
        type_args: dict[str, Type] | None = None,
        imports: list[ImportStmt] | None = None,
    ):
        self.tokens: list[Token] = tokens
        self.pos: int = 0
        self.lines: list[str] = lines
        self.first_line: int = first_line
        self.last_line: int = first_line
        self.type_args: dict[str, Type] = dict(type_args) if type_args else {}
        self.generic_params: set[str] = set()
        self.file_imports: list[ImportStmt] = []
        self.imports: dict[str, ImportStmt] = {}
        for imp in imports or []:
            self._add_import(imp)

    # ── Helpers ──────────────────────────────────────────────

    def current(self) -> Token:
        return self.tokens[self.pos]

    def peek(self, offset: int) -> Token:
        idx = self.pos + offset
        if idx >= len(self.tokens):
            return self.tokens[len(self.tokens) - 1]
        return self.tokens[idx]

    def advance(self) -> Token:
        tok = self.tokens[self.pos]
        if tok.type not in LAYOUT_TOKENS:
            self.last_line = tok.line
        if tok.type != TK_EOF:
            self.pos += 1
        return tok

    def at(self, value: str) -> bool:
        tok = self.current()
        return tok.value == value and tok.type not in LAYOUT_TOKENS

    def at_type(self, type_: str) -> bool:
        return self.current().type == type_

    def at_ident(self) -> bool:
        return self.current().type == TK_IDENT

    def expect(self, value: str) -> Token:
        tok = self.current()
        if tok.value != value or tok.type in LAYOUT_TOKENS:
            raise self.error("expected '" + value + "', got " + self._describe(tok))
        return self.advance()

    def expect_type(self, type_: str) -> Token:
        tok = self.current()
        if tok.type != type_:
            raise self.error("expected " + type_ + ", got " + self._describe(tok))
        return self.advance()

    def expect_ident(self) -> Token:
        tok = self.current()
        if tok.type != TK_IDENT:
            raise self.error("expected identifier, got " + self._describe(tok))
        return self.advance()

    def error(self, msg: str) -> ParseError:
        tok = self.current()
        return ParseError(msg, tok.line, tok.col)

    def _describe(self, tok: Token) -> str:
        if tok.type in LAYOUT_TOKENS:
            return tok.type
        return "'" + tok.value + "'"

    def _pos(self) -> Pos:
        tok = self.current()
        return Pos(tok.line, tok.col)

    def _tok_pos(self, tok: Token) -> Pos:
        return Pos(tok.line, tok.col)

    def _add_import(self, imp: ImportStmt) -> None:
        self.imports[imp.name] = imp
        self.file_imports.append(imp)

    def _source_text(self, start_line: int, end_line: int) -> str:
        lo = start_line - self.first_line
        hi = end_line - self.first_line + 1
        return "\n".join(self.lines[lo:hi])

    def _end_stmt(self) -> None:
        """Consume the end of a simple statement."""
        if self.pos > 0 and self.tokens[self.pos - 1].type == TK_DEDENT:
            # A trailing function literal already closed the line.
            return
        if self.at_type(TK_EOF):
            return
        self.expect_type(TK_NEWLINE)

    def _at_stmt_end(self) -> bool:
        return self.current().type in LAYOUT_TOKENS

    def _at_decl_group_start(self, offset: int = 0, typed: bool = False) -> bool:
        """Lookahead: `name, name =` (or `name T` when typed) starts a declaration group."""
        i = self.pos + offset
        if i >= len(self.tokens) or self.tokens[i].type != TK_IDENT:
            return False
        i += 1
        while (
            i + 1 < len(self.tokens)
            and self.tokens[i].value == ","
            and self.tokens[i].type == TK_OP
            and self.tokens[i + 1].type == TK_IDENT
        ):
            i += 2
        nxt = self.tokens[i]
        if nxt.type == TK_OP and nxt.value == "=":
            return True
        if typed:
            return nxt.type == TK_IDENT or nxt.value in ("map", "chan", "func", "interface")
        return False

    def _header_has(self, value: str) -> bool:
        """Lookahead: does `value` occur at bracket depth 0 before the header's colon?"""
        depth = 0
        i = self.pos
        while i < len(self.tokens):
            tok = self.tokens[i]
            if tok.type in LAYOUT_TOKENS:
                return False
            if tok.type == TK_OP and tok.value in ("(", "[", "{"):
                depth += 1
            elif tok.type == TK_OP and tok.value in (")", "]", "}"):
                depth -= 1
            elif depth == 0 and tok.value == value and tok.type != TK_STRING:
                return True
            elif depth == 0 and tok.type == TK_OP and tok.value == ":":
                return False
            i += 1
        return False

    def _func_is_literal(self) -> bool:
        """Lookahead from `func`: a body colon after the signature means a literal."""
        depth = 0
        i = self.pos + 1
        seen_params = False
        while i < len(self.tokens):
            tok = self.tokens[i]
            if tok.type in LAYOUT_TOKENS:
                return False
            if tok.type == TK_OP and tok.value in ("(", "[", "{"):
                depth += 1
            elif tok.type == TK_OP and tok.value in (")", "]", "}"):
                if depth == 0:
                    return False
                depth -= 1
                if depth == 0:
                    seen_params = True
            elif depth == 0 and seen_params and tok.type == TK_OP:
                if tok.value == ":":
                    return True
                if tok.value in (",", "=", ";"):
                    return False
            i += 1
        return False

    # ── Top Level ────────────────────────────────────────────

    def parse_program(self) -> list[Stmt]:
        stmts: list[Stmt] = []
        while not self.at_type(TK_EOF):
            if self.at_type(TK_INDENT):
                raise self.error("unexpected indent")
            if self.at_type(TK_NEWLINE):
                self.advance()
                continue
            stmts.append(self.parse_top_level())
        return stmts

    def parse_top_level(self) -> Stmt:
        if self.at("import"):
            return self.parse_import()
        if self.at("func"):
            return self.parse_func_stmt()
        if self.at("struct"):
            return self.parse_struct_stmt()
        if self.at("interface"):
            return self.parse_iface_stmt()
        return self.parse_stmt()

    def parse_import(self) -> ImportStmt:
        pos = self._pos()
        self.expect("import")
        name = ""
        alias = False
        if self.at_ident():
            name = self.advance().value
            alias = True
        tok = self.current()
        if tok.type != TK_STRING:
            raise self.error("expected import path, got " + self._describe(tok))
        self.advance()
        path = tok.value[1:-1]
        if not alias:
            name = path.split("/")[-1]
        imp = ImportStmt(pos, name, path, alias)
        self._add_import(imp)
        self._end_stmt()
        return imp

    def parse_generic_params(self) -> list[str]:
        self.expect("[")
        params: list[str] = [self.expect_ident().value]
        while self.at(","):
            self.advance()
            params.append(self.expect_ident().value)
        self.expect("]")
        return params

    def parse_func_stmt(self) -> VarStmt | GenericFunc:
        pos = self._pos()
        start_line = self.current().line
        self.expect("func")
        name_tok = self.expect_ident()
        params: list[str] = []
        if self.at("["):
            params = self.parse_generic_params()
        if len(params) > 0 and len(self.type_args) == 0:
            self.generic_params = set(params)
            fn = self.parse_func_rest(pos, name_tok.value)
            self.generic_params = set()
            code = self._source_text(start_line, self.last_line)
            return GenericFunc(pos, params, fn, code, list(self.file_imports), start_line)
        fn = self.parse_func_rest(pos, name_tok.value)
        if len(params) > 0:
            self._check_bound(params)
        v = Variable(self._tok_pos(name_tok), name_tok.value, UnknownType(), init=fn)
        return VarStmt(pos, [VarDecl([v], [fn])], is_func=True)

    def _check_bound(self, params: list[str]) -> None:
        for p in params:
            if p not in self.type_args:
                raise self.error("no type bound for generic parameter " + p)

    def parse_func_rest(self, pos: Pos, name: str) -> FuncDecl:
        """Signature and body after `func name`."""
        self.expect("(")
        args, variadic = self.parse_params()
        self.expect(")")
        results = self.parse_results()
        code = self.parse_block()
        return FuncDecl(pos, name, args, results, code, variadic)

    def parse_params(self) -> tuple[list[VarDecl], bool]:
        """Params = ( Names Type ( ',' Names Type )* )?  with a trailing `...T`."""
        groups: list[VarDecl] = []
        variadic = False
        if self.at(")"):
            return groups, variadic
        while True:
            names: list[Variable] = []
            while True:
                tok = self.expect_ident()
                names.append(Variable(self._tok_pos(tok), tok.value, UnknownType()))
                if self.at(","):
                    self.advance()
                    continue
                break
            typ: Type
            if self.at("..."):
                self.advance()
                variadic = True
                typ = SliceType(self.parse_type())
            else:
                typ = self.parse_type()
            for v in names:
                v.typ = typ
            groups.append(VarDecl(names, []))
            if variadic or not self.at(","):
                break
            self.advance()
        return groups, variadic

    def parse_results(self) -> list[VarDecl]:
        pos = self._pos()
        types: list[Type] = []
        if self.at(":"):
            return []
        if self.at("("):
            self.advance()
            types.append(self.parse_type())
            while self.at(","):
                self.advance()
                types.append(self.parse_type())
            self.expect(")")
        else:
            types.append(self.parse_type())
        result: list[VarDecl] = []
        for t in types:
            result.append(VarDecl([Variable(pos, "", t)], []))
        return result

    def parse_block(self) -> CodeBlock:
        """Block = ':' NEWLINE INDENT Stmt+ DEDENT"""
        self.expect(":")
        self.expect_type(TK_NEWLINE)
        self.expect_type(TK_INDENT)
        stmts: list[Stmt] = []
        while not self.at_type(TK_DEDENT) and not self.at_type(TK_EOF):
            stmts.append(self.parse_stmt())
        self.expect_type(TK_DEDENT)
        return CodeBlock(stmts)

    def _open_body(self) -> None:
        self.expect(":")
        self.expect_type(TK_NEWLINE)
        self.expect_type(TK_INDENT)

    def parse_struct_stmt(self) -> StructStmt | GenericStruct:
        pos = self._pos()
        start_line = self.current().line
        self.expect("struct")
        name = self.expect_ident().value
        params: list[str] = []
        if self.at("["):
            params = self.parse_generic_params()
        generic = len(params) > 0 and len(self.type_args) == 0
        if generic:
            self.generic_params = set(params)
        struct = StructType(name)
        decl = TypeDecl(pos, name, struct)
        self._open_body()
        while not self.at_type(TK_DEDENT):
            if self.at("pass"):
                self.advance()
                self._end_stmt()
                continue
            if self.at("func"):
                mpos = self._pos()
                self.advance()
                mname = self.expect_ident().value
                if mname in decl.methods or mname in struct.members:
                    raise ParseError("duplicate member " + mname, mpos.line, mpos.col)
                fn = self.parse_func_rest(mpos, mname)
                fn.receiver = Variable(mpos, "self", UnknownType())
                fn.ptr_receiver = True
                decl.methods[mname] = fn
                struct.methods[mname] = fn
                continue
            names: list[Token] = [self.expect_ident()]
            while self.at(","):
                self.advance()
                names.append(self.expect_ident())
            typ = self.parse_type()
            self._end_stmt()
            for tok in names:
                if tok.value in struct.members or tok.value in decl.methods:
                    raise ParseError("duplicate member " + tok.value, tok.line, tok.col)
                struct.keys.append(tok.value)
                struct.members[tok.value] = typ
        self.expect_type(TK_DEDENT)
        if generic:
            self.generic_params = set()
            code = self._source_text(start_line, self.last_line)
            return GenericStruct(pos, params, struct, code, list(self.file_imports), start_line)
        if len(params) > 0:
            self._check_bound(params)
        return StructStmt(pos, struct, decl)

    def parse_iface_stmt(self) -> IfaceStmt:
        pos = self._pos()
        self.expect("interface")
        name = self.expect_ident().value
        iface = IfaceType(name)
        decl = TypeDecl(pos, name, iface)
        self._open_body()
        while not self.at_type(TK_DEDENT):
            if self.at("pass"):
                self.advance()
                self._end_stmt()
                continue
            self.expect("func")
            mtok = self.expect_ident()
            if mtok.value in iface.methods:
                raise ParseError("duplicate method " + mtok.value, mtok.line, mtok.col)
            sig = self.parse_signature()
            self._end_stmt()
            iface.keys.append(mtok.value)
            iface.methods[mtok.value] = sig
        self.expect_type(TK_DEDENT)
        return IfaceStmt(pos, iface, decl)

    def parse_type_decl(self) -> TypeDecl:
        pos = self._pos()
        self.expect("type")
        name = self.expect_ident().value
        typ = self.parse_type()
        self._end_stmt()
        return TypeDecl(pos, name, typ)

    # ── Types ────────────────────────────────────────────────

    def parse_signature(self) -> FuncType:
        """Signature = '(' ParamTypes ')' Results, parameter names optional."""
        self.expect("(")
        entries: list[tuple[Type, Type | None]] = []
        variadic = False
        while not self.at(")"):
            if self.at("..."):
                self.advance()
                variadic = True
                entries.append((SliceType(self.parse_type()), None))
            else:
                first = self.parse_type()
                second: Type | None = None
                if not self.at(",") and not self.at(")"):
                    if self.at("..."):
                        self.advance()
                        variadic = True
                        second = SliceType(self.parse_type())
                    else:
                        second = self.parse_type()
                entries.append((first, second))
            if not self.at(","):
                break
            self.advance()
        self.expect(")")
        named = False
        for _, second in entries:
            if second is not None:
                named = True
        args: list[Type] = []
        if named:
            # `a, b int` - bare names take the type of the next named entry.
            pending = 0
            for _, second in entries:
                pending += 1
                if second is not None:
                    for _ in range(pending):
                        args.append(second)
                    pending = 0
            if pending > 0:
                raise self.error("mixed named and unnamed parameters")
        else:
            for first, _ in entries:
                args.append(first)
        results: list[Type] = []
        if self.at("("):
            self.advance()
            results.append(self.parse_type())
            while self.at(","):
                self.advance()
                results.append(self.parse_type())
            self.expect(")")
        elif self._at_type_start():
            results.append(self.parse_type())
        return FuncType(args, results, variadic)

    def _at_type_start(self) -> bool:
        tok = self.current()
        if tok.type == TK_IDENT:
            return True
        if tok.type in LAYOUT_TOKENS:
            return False
        return tok.value in ("[", "*", "map", "chan", "func", "interface") or (
            tok.value == "<-" and self.peek(1).value == "chan"
        )

    def parse_type(self) -> Type:
        tok = self.current()
        if self.at("*"):
            self.advance()
            return PointerType(self.parse_type())
        if self.at("["):
            self.advance()
            if self.at("]"):
                self.advance()
                return SliceType(self.parse_type())
            size_tok = self.current()
            if size_tok.type != TK_INT:
                raise self.error("expected array size, got " + self._describe(size_tok))
            self.advance()
            self.expect("]")
            return ArrayType(_int_value(size_tok.value), self.parse_type())
        if self.at("map"):
            self.advance()
            self.expect("[")
            key = self.parse_type()
            self.expect("]")
            return MapType(key, self.parse_type())
        if self.at("chan"):
            self.advance()
            if self.at("<-"):
                self.advance()
                return ChanType(self.parse_type(), CHAN_SEND)
            return ChanType(self.parse_type())
        if self.at("<-"):
            self.advance()
            self.expect("chan")
            return ChanType(self.parse_type(), CHAN_RECV)
        if self.at("func"):
            self.advance()
            return self.parse_signature()
        if self.at("interface"):
            self.advance()
            self.expect("{")
            self.expect("}")
            return IfaceType("")
        if self.at("("):
            self.advance()
            inner = self.parse_type()
            self.expect(")")
            return inner
        if tok.type == TK_IDENT:
            self.advance()
            name = tok.value
            if name in self.type_args:
                return self.type_args[name]
            if name in self.generic_params:
                return GenericParamType(name)
            if self.at(".") and name in self.imports:
                self.advance()
                member = self.expect_ident().value
                return CustomType(member, package=self.imports[name])
            if self.at("["):
                self.advance()
                params: list[Type] = [self.parse_type()]
                while self.at(","):
                    self.advance()
                    params.append(self.parse_type())
                self.expect("]")
                return GenericInstanceType(name, params)
            if name in _BUILTIN_TYPES:
                return SimpleType(name)
            return CustomType(name)
        raise self.error("expected type, got " + self._describe(tok))

    # ── Statements ───────────────────────────────────────────

    def parse_stmt(self) -> Stmt:
        tok = self.current()
        if tok.type == TK_INDENT:
            raise self.error("unexpected indent")
        if self.at("var"):
            pos = self._pos()
            self.advance()
            var_stmt = VarStmt(pos, self.parse_var_chain(True))
            self._end_stmt()
            return var_stmt
        if self.at("type"):
            return self.parse_type_decl()
        if self.at("if"):
            return self.parse_if_stmt()
        if self.at("for"):
            return self.parse_for_stmt()
        if self.at("switch"):
            return self.parse_switch_stmt()
        if self.at("when"):
            return self.parse_when_stmt()
        if self.at("label"):
            pos = self._pos()
            self.advance()
            name = self.expect_ident().value
            self._end_stmt()
            return LabelStmt(pos, name)
        if self.at("break") or self.at("continue") or self.at("goto"):
            pos = self._pos()
            keyword = self.advance().value
            right: Ident | None = None
            if self.at_ident():
                name_tok = self.advance()
                right = Ident(self._tok_pos(name_tok), name_tok.value)
            elif keyword == "goto":
                raise self.error("goto requires a label")
            self._end_stmt()
            return BranchStmt(pos, keyword, right)
        if self.at("return"):
            pos = self._pos()
            self.advance()
            values: list[Expr] = []
            if not self._at_stmt_end():
                values = self.parse_expr_list()
            self._end_stmt()
            return ReturnStmt(pos, values)
        if self.at("pass"):
            pos = self._pos()
            self.advance()
            self._end_stmt()
            return PassStmt(pos)
        if self.at("func"):
            if self.peek(1).type == TK_IDENT:
                raise self.error("function declarations are only allowed at top level")
        if self.at("import") or self.at("struct") or self.at("interface"):
            raise self.error(tok.value + " is only allowed at top level")
        stmt = self.parse_simple_stmt()
        self._end_stmt()
        return stmt

    def parse_var_chain(self, typed: bool) -> list[VarDecl]:
        """Chain = Group ( ',' Group )*;  Group = Names [Type] ['=' Exprs]"""
        groups: list[VarDecl] = []
        while True:
            names: list[Variable] = []
            tok = self.expect_ident()
            names.append(Variable(self._tok_pos(tok), tok.value, UnknownType()))
            while self.at(","):
                self.advance()
                tok = self.expect_ident()
                names.append(Variable(self._tok_pos(tok), tok.value, UnknownType()))
            typ: Type | None = None
            if typed and not self.at("=") and not self.at(",") and not self._at_stmt_end():
                typ = self.parse_type()
            inits: list[Expr] = []
            if self.at("="):
                self.advance()
                inits.append(self.parse_expr())
                while self.at(",") and not self._at_decl_group_start(1, typed):
                    self.advance()
                    inits.append(self.parse_expr())
            if typ is not None:
                for v in names:
                    v.typ = typ
            groups.append(VarDecl(names, inits))
            if self.at(",") and self._at_decl_group_start(1, typed):
                self.advance()
                continue
            break
        return groups

    def parse_header_item(self) -> Stmt:
        """Scoped declaration (`a = 1, b = 2`) or any simple statement."""
        if self._at_decl_group_start():
            pos = self._pos()
            return VarStmt(pos, self.parse_var_chain(False))
        return self.parse_simple_stmt()

    def parse_simple_stmt(self) -> Stmt:
        pos = self._pos()
        lhs = self.parse_expr_list()
        tok = self.current()
        if tok.type == TK_OP and tok.value in ASSIGN_OPS:
            self.advance()
            rhs = self.parse_expr_list()
            return AssignStmt(pos, lhs, rhs, tok.value)
        if self.at("++") or self.at("--"):
            op = self.advance().value
            if len(lhs) != 1:
                raise ParseError(op + " takes a single operand", pos.line, pos.col)
            return AssignStmt(pos, lhs, [], op)
        if self.at("<-"):
            self.advance()
            if len(lhs) != 1:
                raise ParseError("send takes a single channel", pos.line, pos.col)
            return SendStmt(pos, lhs[0], self.parse_expr())
        if len(lhs) != 1:
            raise self.error("expected assignment, got " + self._describe(tok))
        return ExprStmt(pos, lhs[0])

    def parse_if_stmt(self) -> IfStmt:
        pos = self._pos()
        self.expect("if")
        branches: list[IfBranch] = []
        init, cond = self.parse_if_header()
        branches.append(IfBranch(pos, init, cond, self.parse_block()))
        while self.at("elif"):
            bpos = self._pos()
            self.advance()
            init, cond = self.parse_if_header()
            branches.append(IfBranch(bpos, init, cond, self.parse_block()))
        if self.at("else"):
            bpos = self._pos()
            self.advance()
            branches.append(IfBranch(bpos, None, None, self.parse_block()))
        return IfStmt(pos, branches)

    def parse_if_header(self) -> tuple[Stmt | None, Expr]:
        init: Stmt | None = None
        if self._header_has(";"):
            init = self.parse_header_item()
            self.expect(";")
        return init, self.parse_expr()

    def parse_for_stmt(self) -> ForStmt | ForRangeStmt:
        pos = self._pos()
        self.expect("for")
        if self.at(":"):
            return ForStmt(pos, None, None, None, self.parse_block())
        if self.at("var"):
            self.advance()
            names: list[Variable] = []
            tok = self.expect_ident()
            names.append(Variable(self._tok_pos(tok), tok.value, UnknownType()))
            while self.at(","):
                self.advance()
                tok = self.expect_ident()
                names.append(Variable(self._tok_pos(tok), tok.value, UnknownType()))
            self.expect("in")
            series = self.parse_expr()
            return ForRangeStmt(pos, VarDecl(names, []), None, series, self.parse_block())
        if self._header_has(";"):
            init: Stmt | None = None
            cond: Expr | None = None
            repeat: Stmt | None = None
            if not self.at(";"):
                init = self.parse_header_item()
            self.expect(";")
            if not self.at(";"):
                cond = self.parse_expr()
            self.expect(";")
            if not self.at(":"):
                repeat = self.parse_simple_stmt()
            return ForStmt(pos, init, cond, repeat, self.parse_block())
        if self._header_has("in"):
            outside = self.parse_expr_list()
            self.expect("in")
            series = self.parse_expr()
            return ForRangeStmt(pos, None, outside, series, self.parse_block())
        cond = self.parse_expr()
        return ForStmt(pos, None, cond, None, self.parse_block())

    def parse_switch_stmt(self) -> SwitchStmt:
        pos = self._pos()
        self.expect("switch")
        init: Stmt | None = None
        value: Stmt | None = None
        if not self.at(":"):
            if self._header_has(";"):
                if not self.at(";"):
                    init = self.parse_header_item()
                self.expect(";")
            if not self.at(":"):
                value = self.parse_header_item()
        type_switch = type_switch_parts(value)[0] is not None
        self._open_body()
        branches: list[SwitchBranch] = []
        while not self.at_type(TK_DEDENT):
            bpos = self._pos()
            if self.at("default"):
                self.advance()
                branches.append(SwitchBranch(bpos, None, self.parse_block()))
                continue
            self.expect("case")
            values: list[Expr] = [self.parse_case_value(type_switch)]
            while self.at(","):
                self.advance()
                values.append(self.parse_case_value(type_switch))
            branches.append(SwitchBranch(bpos, values, self.parse_block()))
        self.expect_type(TK_DEDENT)
        return SwitchStmt(pos, init, value, branches)

    def parse_case_value(self, type_switch: bool) -> Expr:
        if not type_switch:
            return self.parse_expr()
        pos = self._pos()
        if self.at_ident() and self.current().value == "nil":
            self.advance()
            return NilExpr(pos)
        return TypeExpr(pos, self.parse_type())

    def parse_when_stmt(self) -> WhenStmt:
        pos = self._pos()
        self.expect("when")
        args: list[Type] = [self.parse_type()]
        while self.at(","):
            self.advance()
            args.append(self.parse_type())
        self._open_body()
        branches: list[WhenBranch] = []
        while not self.at_type(TK_DEDENT):
            bpos = self._pos()
            preds: list[WhenPredicate] = []
            while True:
                if self.at("is"):
                    self.advance()
                    preds.append(WhenPredicate(WHEN_IS, self.parse_type()))
                elif self.at("implements"):
                    self.advance()
                    preds.append(WhenPredicate(WHEN_IMPLEMENTS, self.parse_type()))
                elif self.at("default"):
                    self.advance()
                    preds.append(WhenPredicate(WHEN_DEFAULT, None))
                else:
                    raise self.error(
                        "expected 'is', 'implements' or 'default', got "
                        + self._describe(self.current())
                    )
                if not self.at(","):
                    break
                self.advance()
            branches.append(WhenBranch(bpos, preds, self.parse_block()))
        self.expect_type(TK_DEDENT)
        return WhenStmt(pos, args, branches)

    # ── Expressions ──────────────────────────────────────────

    def parse_expr_list(self) -> list[Expr]:
        exprs: list[Expr] = [self.parse_expr()]
        while self.at(","):
            self.advance()
            exprs.append(self.parse_expr())
        return exprs

    def parse_expr(self) -> Expr:
        return self.parse_binary(1)

    def parse_binary(self, min_prec: int) -> Expr:
        """Binary = Unary ( BinOp Binary )*, by precedence climbing."""
        left = self.parse_unary()
        while True:
            tok = self.current()
            if tok.type != TK_OP or tok.value not in BINARY_PRECEDENCE:
                return left
            prec = BINARY_PRECEDENCE[tok.value]
            if prec < min_prec:
                return left
            self.advance()
            right = self.parse_binary(prec + 1)
            left = BinaryOp(left.pos, tok.value, left, right)

    def parse_unary(self) -> Expr:
        """Unary = UnaryOp Unary | Postfix"""
        tok = self.current()
        if tok.type == TK_OP and tok.value in UNARY_OPS:
            if tok.value == "<-" and self.peek(1).value == "chan":
                return self.parse_postfix()
            pos = self._pos()
            self.advance()
            operand = self.parse_unary()
            return UnaryOp(pos, tok.value, operand)
        return self.parse_postfix()

    def parse_postfix(self) -> Expr:
        """Postfix = Operand ( Selector | TypeAssert | Index | Slice | Call | Composite )*"""
        expr = self.parse_operand()
        while True:
            if self.at("."):
                self.advance()
                if self.at("("):
                    self.advance()
                    if self.at("type"):
                        self.advance()
                        self.expect(")")
                        expr = TypeAssertion(expr.pos, expr, None)
                    else:
                        tpos = self._pos()
                        typ = self.parse_type()
                        self.expect(")")
                        expr = TypeAssertion(expr.pos, expr, TypeExpr(tpos, typ))
                else:
                    name_tok = self.expect_ident()
                    expr = DotSelector(expr.pos, expr, Ident(self._tok_pos(name_tok), name_tok.value))
            elif self.at("["):
                self.advance()
                low: Expr | None = None
                if not self.at(":"):
                    low = self.parse_expr()
                if self.at(":"):
                    self.advance()
                    high: Expr | None = None
                    if not self.at("]"):
                        high = self.parse_expr()
                    self.expect("]")
                    expr = SliceExpr(expr.pos, expr, low, high)
                    continue
                index: list[Expr] = []
                if low is not None:
                    index.append(low)
                while self.at(","):
                    self.advance()
                    index.append(self.parse_expr())
                self.expect("]")
                expr = ArrayExpr(expr.pos, expr, index)
            elif self.at("("):
                self.advance()
                args: list[Expr] = []
                ellipsis = False
                while not self.at(")"):
                    args.append(self.parse_expr())
                    if self.at("..."):
                        self.advance()
                        ellipsis = True
                    if not self.at(","):
                        break
                    self.advance()
                self.expect(")")
                expr = FuncCallExpr(expr.pos, expr, args, ellipsis)
            elif self.at("{") and isinstance(expr, (Ident, DotSelector, ArrayExpr, TypeExpr)):
                expr = self.parse_composite(expr)
            else:
                break
        return expr

    def parse_composite(self, left: Expr | None) -> CompoundLit:
        """Composite = '{' ( Element ( ':' Element )? ( ',' ... )* ','? )? '}'"""
        pos = left.pos if left is not None else self._pos()
        self.expect("{")
        kind = COMPOUND_EMPTY
        elems: list[Expr] = []
        while not self.at("}"):
            first = self.parse_element()
            if self.at(":"):
                if kind == COMPOUND_LISTLIKE:
                    raise self.error("mixture of keyed and positional elements")
                self.advance()
                kind = COMPOUND_MAPLIKE
                elems.append(first)
                elems.append(self.parse_element())
            else:
                if kind == COMPOUND_MAPLIKE:
                    raise self.error("mixture of keyed and positional elements")
                kind = COMPOUND_LISTLIKE
                elems.append(first)
            if not self.at(","):
                break
            self.advance()
        self.expect("}")
        return CompoundLit(pos, left, kind, elems)

    def parse_element(self) -> Expr:
        if self.at("{"):
            return self.parse_composite(None)
        return self.parse_expr()

    def parse_operand(self) -> Expr:
        tok = self.current()
        pos = self._pos()

        # Literals
        if tok.type == TK_INT:
            self.advance()
            return BasicLit(pos, LIT_INT, tok.value)
        if tok.type == TK_FLOAT:
            self.advance()
            return BasicLit(pos, LIT_FLOAT, tok.value)
        if tok.type == TK_IMAG:
            self.advance()
            return BasicLit(pos, LIT_IMAG, tok.value)
        if tok.type == TK_STRING:
            self.advance()
            return BasicLit(pos, LIT_STRING, tok.value)
        if tok.type == TK_RUNE:
            self.advance()
            return BasicLit(pos, LIT_RUNE, tok.value)

        if tok.type == TK_IDENT:
            self.advance()
            if tok.value == "true" or tok.value == "false":
                return BasicLit(pos, LIT_BOOL, tok.value)
            if tok.value == "nil":
                return NilExpr(pos)
            if tok.value == "_":
                return BlankExpr(pos)
            if tok.value in self.type_args:
                return TypeExpr(pos, self.type_args[tok.value])
            return Ident(pos, tok.value)

        if self.at("("):
            self.advance()
            inner = self.parse_expr()
            self.expect(")")
            return inner

        # Types in expression position: conversions, composite literals, make/new.
        if self.at("[") or self.at("map") or self.at("chan") or self.at("interface"):
            return TypeExpr(pos, self.parse_type())
        if self.at("<-") and self.peek(1).value == "chan":
            return TypeExpr(pos, self.parse_type())

        if self.at("func"):
            if self._func_is_literal():
                self.advance()
                return self.parse_func_rest(pos, "")
            return TypeExpr(pos, self.parse_type())

        raise self.error("expected expression, got " + self._describe(tok))


def parse(
    source: str,
    first_line: int = 1,
    type_args: dict[str, Type] | None = None,
    imports: list[ImportStmt] | None = None,
) -> list[TopLevelStmt]:
    """Tokenize and parse source into top-level statements with their decls and deps."""
    tokens = tokenize(source, first_line)
    parser = Parser(tokens, source.split("\n"), first_line, type_args, imports)
    result: list[TopLevelStmt] = []
    for node in parser.parse_program():
        result.append(top_level(node))
    return result
