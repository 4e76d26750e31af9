"""Error taxonomy for the Have compiler."""

from __future__ import annotations

from typing import TYPE_CHECKING, Never, NoReturn

if TYPE_CHECKING:
    from .ast import Pos


class CompileError(Exception):
    """User-facing compile error with location info."""

    def __init__(self, msg: str, line: int, col: int):
        self.msg: str = msg
        self.line: int = line
        self.col: int = col
        super().__init__(msg + " at line " + str(line) + " col " + str(col))


class NegotiationError(CompileError):
    """Type negotiation failed for a node."""

    @classmethod
    def at(cls, msg: str, pos: Pos) -> NegotiationError:
        return cls(msg, pos.line, pos.col)


class InstantiationError(CompileError):
    """A generic instantiation failed; carries the nested run's errors."""

    def __init__(self, msg: str, line: int, col: int, errors: list[CompileError]):
        self.errors: list[CompileError] = errors
        super().__init__(msg, line, col)

    def __str__(self) -> str:
        lines = [super().__str__()]
        for e in self.errors:
            lines.append("  " + str(e))
        return "\n".join(lines)


class CompileFailed(Exception):
    """Raised by the convenience entry points when a unit has errors."""

    def __init__(self, errors: list[CompileError]):
        self.errors: list[CompileError] = errors
        super().__init__("\n".join(str(e) for e in errors))


class InternalError(Exception):
    """Internal-consistency failure. Never a user error."""


def unreachable(node: Never) -> NoReturn:
    """Terminates an exhaustive dispatch over a closed node union."""
    raise InternalError("unexpected node kind " + type(node).__name__)
