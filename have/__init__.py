"""Have: an indentation-structured, Go-like language compiled to Go source."""

from .ast import Package as Package
from .compiler import Unit as Unit, compile_source as compile_source
from .context import Context as Context, MemoryResolver as MemoryResolver
from .errors import (
    CompileError as CompileError,
    CompileFailed as CompileFailed,
    InstantiationError as InstantiationError,
    InternalError as InternalError,
    NegotiationError as NegotiationError,
)
