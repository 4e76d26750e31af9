"""Compiler context: builtin tables, instantiation cache and import resolver.

A Context is created once per compilation and handed to every unit and
negotiator. Nothing here is module-global, so independent compilations
never share cached instantiations.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable

from .ast import GenericFunc, GenericStruct, Package, Pos, TopLevelStmt, TypeDecl
from .errors import CompileError
from .middleend.deps import BUILTIN_FUNCS
from .types import BUILTIN_TYPE_NAMES, Type

if TYPE_CHECKING:
    from .compiler import Unit

Resolver = Callable[[str], "Package | None"]

INST_IN_PROGRESS: str = "in_progress"
INST_COMPLETE: str = "complete"
INST_FAILED: str = "failed"


@dataclass
class BuiltinFunc:
    """A predeclared function such as len or append. Only callable."""

    name: str
    object_type = "builtin"


@dataclass(eq=False)
class Instantiation:
    """Cache record for one (template, type arguments) pair."""

    generic: GenericFunc | GenericStruct
    args: list[Type]
    go_name: str
    unit: Unit | None = None
    state: str = INST_IN_PROGRESS
    # Variable for functions, TypeDecl for structs.
    obj: object | None = None
    stmt: TopLevelStmt | None = None
    errors: list[CompileError] = field(default_factory=list)


InstKey = tuple[int, tuple[str, ...]]


def _resolve_nothing(path: str) -> Package | None:
    return None


class MemoryResolver:
    """Resolves import paths from a fixed dict of packages."""

    def __init__(self, packages: dict[str, Package] | None = None):
        self.packages: dict[str, Package] = dict(packages) if packages else {}

    def add(self, package: Package) -> None:
        self.packages[package.path] = package

    def __call__(self, path: str) -> Package | None:
        return self.packages.get(path)


class Context:
    """State shared by every unit of one compilation."""

    def __init__(self, resolver: Resolver | None = None):
        self.resolver: Resolver = resolver if resolver is not None else _resolve_nothing
        self.builtin_types: dict[str, TypeDecl] = {}
        for name in BUILTIN_TYPE_NAMES:
            self.builtin_types[name] = TypeDecl(Pos(0, 0), name, None)
        self.builtin_funcs: dict[str, BuiltinFunc] = {}
        for name in BUILTIN_FUNCS:
            self.builtin_funcs[name] = BuiltinFunc(name)
        self.instantiations: dict[InstKey, Instantiation] = {}
        self._inst_order: list[Instantiation] = []
        self._inst_names: set[str] = set()
        self._packages: dict[str, Package | None] = {}

    def builtin(self, name: str) -> object | None:
        """Universe lookup: a builtin TypeDecl, a BuiltinFunc or None."""
        if name in self.builtin_types:
            return self.builtin_types[name]
        return self.builtin_funcs.get(name)

    def resolve_import(self, path: str) -> Package | None:
        if path not in self._packages:
            self._packages[path] = self.resolver(path)
        return self._packages[path]

    def claim_name(self, name: str, declared: Callable[[str], object | None] | None = None) -> str:
        """Reserve a Go name for an instantiation.

        A name already claimed by another instantiation, or one `declared`
        resolves to an object, gets the first free `_2`, `_3`, ... suffix.
        """
        candidate = name
        n = 1
        while candidate in self._inst_names or (declared is not None and declared(candidate) is not None):
            n += 1
            candidate = name + "_" + str(n)
        self._inst_names.add(candidate)
        return candidate

    def add_instantiation(self, key: InstKey, inst: Instantiation) -> None:
        self.instantiations[key] = inst
        self._inst_order.append(inst)

    def completed_instantiations(self, unit: Unit | None = None) -> list[Instantiation]:
        """Completed instantiations in creation order, optionally for one unit."""
        result: list[Instantiation] = []
        for inst in self._inst_order:
            if inst.state != INST_COMPLETE:
                continue
            if unit is not None and inst.unit is not unit:
                continue
            result.append(inst)
        return result
