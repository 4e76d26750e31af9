"""Have tokenizer - lexes source into a flat token list with layout tokens.

Indentation is significant: a deeper line opens a block (INDENT), a
shallower one closes blocks (DEDENT), and every logical line ends with
NEWLINE. Inside (), [] and {} line breaks are ignored.
"""

from __future__ import annotations

from ..errors import CompileError


# Token type constants
TK_INT = "INT"
TK_FLOAT = "FLOAT"
TK_IMAG = "IMAG"
TK_STRING = "STRING"
TK_RUNE = "RUNE"
TK_IDENT = "IDENT"
TK_OP = "OP"
TK_NEWLINE = "NEWLINE"
TK_INDENT = "INDENT"
TK_DEDENT = "DEDENT"
TK_EOF = "EOF"

KEYWORDS: set[str] = {
    "break",
    "case",
    "chan",
    "continue",
    "default",
    "elif",
    "else",
    "for",
    "func",
    "goto",
    "if",
    "implements",
    "import",
    "in",
    "interface",
    "is",
    "label",
    "map",
    "pass",
    "return",
    "struct",
    "switch",
    "type",
    "var",
    "when",
}

# Multi-character operators, sorted by length descending for greedy matching
MULTI_OPS: list[str] = [
    "<<=",
    ">>=",
    "&^=",
    "...",
    "&&",
    "||",
    "<-",
    "++",
    "--",
    "==",
    "!=",
    "<=",
    ">=",
    ":=",
    "+=",
    "-=",
    "*=",
    "/=",
    "%=",
    "&=",
    "|=",
    "^=",
    "<<",
    ">>",
    "&^",
]

SINGLE_OPS: set[str] = {
    "+",
    "-",
    "*",
    "/",
    "%",
    "&",
    "|",
    "^",
    "~",
    "!",
    "<",
    ">",
    "=",
    "(",
    ")",
    "[",
    "]",
    "{",
    "}",
    ",",
    ";",
    ":",
    ".",
}

OPENERS: set[str] = {"(", "[", "{"}
CLOSERS: set[str] = {")", "]", "}"}

TAB_WIDTH = 8


class TokenizeError(CompileError):
    """Error during tokenization."""


class Token:
    """A token with type, value, and position."""

    def __init__(self, type_: str, value: str, line: int, col: int):
        self.type: str = type_
        self.value: str = value
        self.line: int = line
        self.col: int = col

    def __repr__(self) -> str:
        return (
            "Token("
            + self.type
            + ", "
            + repr(self.value)
            + ", "
            + str(self.line)
            + ", "
            + str(self.col)
            + ")"
        )


def _is_digit(c: str) -> bool:
    return c >= "0" and c <= "9"


def _is_hex(c: str) -> bool:
    return (c >= "0" and c <= "9") or (c >= "a" and c <= "f") or (c >= "A" and c <= "F")


def _is_alpha(c: str) -> bool:
    return (c >= "a" and c <= "z") or (c >= "A" and c <= "Z") or c == "_"


def _is_alnum(c: str) -> bool:
    return _is_alpha(c) or _is_digit(c)


def _indent_width(source: str, pos: int) -> tuple[int, int]:
    """Measure leading whitespace at pos. Returns (width, new_pos)."""
    width = 0
    while pos < len(source):
        c = source[pos]
        if c == " ":
            width += 1
        elif c == "\t":
            width = (width // TAB_WIDTH + 1) * TAB_WIDTH
        elif c == "\r":
            pass
        else:
            break
        pos += 1
    return width, pos


def _scan_number(source: str, pos: int, line: int, col: int) -> tuple[str, int]:
    """Scan a numeric literal starting at pos. Returns (token type, end)."""
    length = len(source)
    start = pos
    if source[pos] == "0" and pos + 1 < length and source[pos + 1] in "xXbBoO":
        base = source[pos + 1].lower()
        pos += 2
        digits_start = pos
        while pos < length and (_is_hex(source[pos]) or source[pos] == "_"):
            pos += 1
        if pos == digits_start:
            raise TokenizeError("malformed 0" + base + " literal", line, col)
        return TK_INT, pos
    while pos < length and (_is_digit(source[pos]) or source[pos] == "_"):
        pos += 1
    type_ = TK_INT
    if pos + 1 < length and source[pos] == "." and _is_digit(source[pos + 1]):
        type_ = TK_FLOAT
        pos += 1
        while pos < length and (_is_digit(source[pos]) or source[pos] == "_"):
            pos += 1
    if pos < length and (source[pos] == "e" or source[pos] == "E"):
        type_ = TK_FLOAT
        pos += 1
        if pos < length and (source[pos] == "+" or source[pos] == "-"):
            pos += 1
        if pos >= length or not _is_digit(source[pos]):
            raise TokenizeError("invalid float exponent", line, col)
        while pos < length and _is_digit(source[pos]):
            pos += 1
    if pos < length and source[pos] == "i":
        type_ = TK_IMAG
        pos += 1
    if pos < length and _is_alpha(source[pos]):
        raise TokenizeError("invalid character in number: " + repr(source[start:pos + 1]), line, col)
    return type_, pos


def _scan_quoted(source: str, pos: int, quote: str, line: int, col: int) -> int:
    """Scan a quoted literal starting at its opening quote. Returns end."""
    length = len(source)
    what = "rune" if quote == "'" else "string"
    pos += 1
    while pos < length and source[pos] != quote:
        if source[pos] == "\n":
            raise TokenizeError("unterminated " + what + " literal", line, col)
        if source[pos] == "\\" and quote != "`":
            pos += 1
            if pos >= length or source[pos] == "\n":
                raise TokenizeError("unterminated " + what + " literal", line, col)
        pos += 1
    if pos >= length:
        raise TokenizeError("unterminated " + what + " literal", line, col)
    return pos + 1


def tokenize(source: str, first_line: int = 1) -> list[Token]:
    """Tokenize Have source into a flat list ending with TK_EOF.

    `first_line` numbers the first source line, so that text cut out of a
    larger file reports positions in that file.
    """
    tokens: list[Token] = []
    indents: list[int] = [0]
    depth = 0
    pos = 0
    line = first_line
    col = 1
    length = len(source)
    at_line_start = True

    while pos < length:
        if at_line_start and depth == 0:
            width, after = _indent_width(source, pos)
            col += after - pos
            pos = after
            if pos >= length:
                break
            c = source[pos]
            # Blank and comment-only lines carry no layout.
            if c == "\n" or c == "#":
                while pos < length and source[pos] != "\n":
                    pos += 1
                if pos < length:
                    pos += 1
                line += 1
                col = 1
                continue
            at_line_start = False
            if width > indents[-1]:
                indents.append(width)
                tokens.append(Token(TK_INDENT, "", line, col))
            else:
                while width < indents[-1]:
                    indents.pop()
                    tokens.append(Token(TK_DEDENT, "", line, col))
                if width != indents[-1]:
                    raise TokenizeError(
                        "unindent does not match any outer indentation level", line, col
                    )

        c = source[pos]

        # Newlines
        if c == "\n":
            if depth == 0:
                if not at_line_start:
                    tokens.append(Token(TK_NEWLINE, "", line, col))
                at_line_start = True
            pos += 1
            line += 1
            col = 1
            continue

        # Whitespace
        if c == " " or c == "\t" or c == "\r":
            pos += 1
            col += 1
            continue

        # Line comment: #
        if c == "#":
            while pos < length and source[pos] != "\n":
                pos += 1
            continue

        start_pos = pos
        start_col = col

        # Number
        if _is_digit(c) or (c == "." and pos + 1 < length and _is_digit(source[pos + 1])):
            type_, pos = _scan_number(source, pos, line, col)
            col += pos - start_pos
            tokens.append(Token(type_, source[start_pos:pos], line, start_col))
            continue

        # String, raw string and rune literals keep their quotes.
        if c == '"' or c == "`" or c == "'":
            pos = _scan_quoted(source, pos, c, line, col)
            col += pos - start_pos
            type_ = TK_RUNE if c == "'" else TK_STRING
            tokens.append(Token(type_, source[start_pos:pos], line, start_col))
            continue

        # Identifier or keyword
        if _is_alpha(c):
            while pos < length and _is_alnum(source[pos]):
                pos += 1
                col += 1
            word = source[start_pos:pos]
            if word in KEYWORDS:
                tokens.append(Token(word, word, line, start_col))
            else:
                tokens.append(Token(TK_IDENT, word, line, start_col))
            continue

        # Multi-character operators
        matched = False
        for op in MULTI_OPS:
            op_len = len(op)
            if pos + op_len <= length and source[pos : pos + op_len] == op:
                tokens.append(Token(TK_OP, op, line, start_col))
                pos += op_len
                col += op_len
                matched = True
                break
        if matched:
            continue

        # Single-character operators
        if c in SINGLE_OPS:
            if c in OPENERS:
                depth += 1
            elif c in CLOSERS:
                if depth == 0:
                    raise TokenizeError("unmatched " + repr(c), line, col)
                depth -= 1
            tokens.append(Token(TK_OP, c, line, start_col))
            pos += 1
            col += 1
            continue

        raise TokenizeError("unexpected character: " + repr(c), line, col)

    if depth > 0:
        raise TokenizeError("unexpected end of input inside brackets", line, col)
    if tokens and tokens[-1].type not in (TK_NEWLINE, TK_DEDENT, TK_INDENT):
        tokens.append(Token(TK_NEWLINE, "", line, col))
    while len(indents) > 1:
        indents.pop()
        tokens.append(Token(TK_DEDENT, "", line, col))
    tokens.append(Token(TK_EOF, "", line, col))
    return tokens
