"""Untyped parameter values as they appear in an exchange structure.

A parameter carries no identity beyond its value: two parameters compare
equal when their variant and contents are equal.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, Union


@dataclass(frozen=True)
class Integer:
    """Integer literal, e.g. ``42`` or ``-7``."""

    value: int


@dataclass(frozen=True)
class Real:
    """Real literal, e.g. ``1.0``, ``-2.`` or ``1.5E-3``."""

    value: float


@dataclass(frozen=True)
class String:
    """String literal with control directives already decoded."""

    value: str


@dataclass(frozen=True)
class Enumeration:
    """Enumeration literal ``.NAME.``; booleans and logicals are ``.T.``, ``.F.``, ``.U.``."""

    name: str


@dataclass(frozen=True)
class Binary:
    """Binary literal ``"0A3F"``.

    ``unused_bits`` is the leading hex digit of the literal: the number of
    unused high-order bits in the first nibble of ``hex_digits``.
    """

    unused_bits: int
    hex_digits: str

    @property
    def bits(self) -> str:
        """Return the value as a string of '0'/'1' characters."""
        if not self.hex_digits:
            return ""
        full = "".join(f"{int(c, 16):04b}" for c in self.hex_digits)
        return full[self.unused_bits:]


@dataclass(frozen=True)
class EntityRef:
    """Reference to an entity instance, ``#123``."""

    id: int


@dataclass(frozen=True)
class Unset:
    """The ``$`` sentinel: value not provided."""

    def __repr__(self) -> str:
        return "UNSET"


@dataclass(frozen=True)
class Inapplicable:
    """The ``*`` sentinel: value derived by the schema, omitted from the file."""

    def __repr__(self) -> str:
        return "INAPPLICABLE"


UNSET = Unset()
INAPPLICABLE = Inapplicable()


@dataclass(frozen=True)
class ParamList:
    """Parenthesized aggregate of parameters; may nest arbitrarily."""

    items: tuple["Parameter", ...] = field(default_factory=tuple)

    def __init__(self, items: "tuple[Parameter, ...] | list[Parameter]" = ()) -> None:
        object.__setattr__(self, "items", tuple(items))

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self) -> Iterator["Parameter"]:
        return iter(self.items)

    def __getitem__(self, index: int) -> "Parameter":
        return self.items[index]


@dataclass(frozen=True)
class TypedParameter:
    """Typed parameter ``KEYWORD(param)``, used for values of SELECT types."""

    keyword: str
    parameter: "Parameter"


Parameter = Union[
    Integer,
    Real,
    String,
    Enumeration,
    Binary,
    EntityRef,
    Unset,
    Inapplicable,
    ParamList,
    TypedParameter,
]


def kind_name(param: Parameter) -> str:
    """Return a short human-readable name for a parameter's variant."""
    names = {
        Integer: "integer",
        Real: "real",
        String: "string",
        Enumeration: "enumeration",
        Binary: "binary",
        EntityRef: "entity reference",
        Unset: "unset ($)",
        Inapplicable: "omitted (*)",
        ParamList: "list",
        TypedParameter: "typed parameter",
    }
    name = names.get(type(param), type(param).__name__)
    if isinstance(param, TypedParameter):
        return f"{name} {param.keyword}"
    return name


def iter_references(params: "tuple[Parameter, ...] | list[Parameter]") -> Iterator[int]:
    """Yield every entity id referenced in ``params``, depth-first, in order."""
    for param in params:
        if isinstance(param, EntityRef):
            yield param.id
        elif isinstance(param, ParamList):
            yield from iter_references(param.items)
        elif isinstance(param, TypedParameter):
            yield from iter_references((param.parameter,))
