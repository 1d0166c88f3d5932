"""Typed entity values produced by resolution."""

from __future__ import annotations

import weakref
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterator

if TYPE_CHECKING:
    from stepfile.records import Record
    from stepfile.table import EntityTable


class Reference:
    """Id-keyed link to an entity instance in an EntityTable.

    Entity-valued attributes hold References rather than the target
    entity itself, so cyclic instance graphs never become object cycles.
    The table is held weakly.
    """

    __slots__ = ("id", "_table")

    def __init__(self, entity_id: int, table: EntityTable | None = None) -> None:
        self.id = entity_id
        self._table = weakref.ref(table) if table is not None else None

    @property
    def table(self) -> EntityTable:
        table = self._table() if self._table is not None else None
        if table is None:
            raise ReferenceError(f"#{self.id} is not bound to a live entity table")
        return table

    def get(self) -> Any:
        """Return the typed entity this reference points to."""
        return self.table.resolve(self.id)

    def record(self) -> Record:
        """Return the untyped record this reference points to."""
        return self.table.lookup(self.id)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Reference):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(("Reference", self.id))

    def __repr__(self) -> str:
        return f"Reference(#{self.id})"


class _Unknown:
    """The LOGICAL value UNKNOWN (``.U.``)."""

    _instance: _Unknown | None = None

    def __new__(cls) -> _Unknown:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        raise TypeError("UNKNOWN has no boolean value")

    def __repr__(self) -> str:
        return "UNKNOWN"


UNKNOWN = _Unknown()


@dataclass(frozen=True)
class TypedValue:
    """A value of a SELECT attribute tagged with its defined type, e.g. LENGTH_MEASURE(2.0)."""

    type_name: str
    value: Any


@dataclass
class Entity:
    """A resolved simple entity instance.

    ``type_names`` holds the entity's type and all of its supertypes.
    Attributes are reachable by item access or as Python attributes.
    """

    type_name: str
    attributes: dict[str, Any] = field(default_factory=dict)
    id: int | None = None
    type_names: frozenset[str] = field(default_factory=frozenset, compare=False)

    def has_type(self, name: str) -> bool:
        """Return whether the instance is of type ``name`` or a subtype of it."""
        return name.upper() in self.type_names or name.upper() == self.type_name

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        attributes = self.__dict__.get("attributes", {})
        if name in attributes:
            return attributes[name]
        raise AttributeError(f"'{self.type_name}' has no attribute '{name}'")

    def __getitem__(self, name: str) -> Any:
        return self.attributes[name]

    def as_dict(self) -> dict[str, Any]:
        return dict(self.attributes)


@dataclass
class ComplexEntity:
    """A resolved complex instance: several simple-entity parts under one id."""

    id: int
    parts: dict[str, Entity] = field(default_factory=dict)

    @property
    def type_names(self) -> frozenset[str]:
        names: set[str] = set()
        for part in self.parts.values():
            names |= part.type_names
            names.add(part.type_name)
        return frozenset(names)

    def has_type(self, name: str) -> bool:
        """Return whether any part is of type ``name`` or a subtype of it."""
        return any(part.has_type(name) for part in self.parts.values())

    def part(self, name: str) -> Entity:
        """Return the part declared as ``name``, or the first part that is a subtype of it."""
        exact = self.parts.get(name.upper())
        if exact is not None:
            return exact
        for part in self.parts.values():
            if part.has_type(name):
                return part
        raise KeyError(f"#{self.id} has no part of type '{name}'")

    @property
    def attributes(self) -> dict[str, Any]:
        """All attributes of all parts, in part order."""
        merged: dict[str, Any] = {}
        for part in self.parts.values():
            merged.update(part.attributes)
        return merged

    def __iter__(self) -> Iterator[Entity]:
        return iter(self.parts.values())

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        for part in self.__dict__.get("parts", {}).values():
            if name in part.attributes:
                return part.attributes[name]
        raise AttributeError(f"#{self.id} has no attribute '{name}'")

    def __getitem__(self, name: str) -> Any:
        return self.attributes[name]
