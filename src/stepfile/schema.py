"""Schema descriptors: the expected shape of each entity type.

Descriptors are positional: an entity's attributes are listed in the order
their values appear in an instance, with inherited attributes first.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Iterable

from stepfile.errors import SchemaError

if TYPE_CHECKING:
    from stepfile.holder import Holder


class SimpleType(Enum):
    """Built-in EXPRESS simple types."""

    INTEGER = "INTEGER"
    REAL = "REAL"
    NUMBER = "NUMBER"
    STRING = "STRING"
    BOOLEAN = "BOOLEAN"
    LOGICAL = "LOGICAL"
    BINARY = "BINARY"


class AggregateKind(Enum):
    """EXPRESS aggregation types."""

    LIST = "LIST"
    SET = "SET"
    BAG = "BAG"
    ARRAY = "ARRAY"


@dataclass
class TypeDefinition:
    """Base class for all type descriptors."""

    name: str

    @property
    def is_entity(self) -> bool:
        return False

    def describe(self) -> str:
        """Return a short description used in error messages."""
        return self.name


@dataclass
class TypeRef(TypeDefinition):
    """Reference to a named type, resolved through the registry on use.

    Allows descriptors to refer to types that are declared later, including
    self-referencing entities.
    """


@dataclass
class SimpleTypeDefinition(TypeDefinition):
    """One of the built-in simple types."""

    simple: SimpleType


@dataclass
class DefinedTypeDefinition(TypeDefinition):
    """``TYPE name = <underlying>;``: a named rendering of another type."""

    underlying: TypeDefinition


@dataclass
class EnumerationTypeDefinition(TypeDefinition):
    """``TYPE name = ENUMERATION OF (...);``"""

    items: list[str] = field(default_factory=list)

    def find_item(self, name: str) -> str | None:
        """Return the declared spelling of an item, matched case-insensitively."""
        upper = name.upper()
        for item in self.items:
            if item.upper() == upper:
                return item
        return None


@dataclass
class SelectTypeDefinition(TypeDefinition):
    """``TYPE name = SELECT (...);``: one of several named types."""

    options: list[str] = field(default_factory=list)


@dataclass
class AggregateTypeDefinition(TypeDefinition):
    """LIST / SET / BAG / ARRAY of an element type, with optional bounds."""

    element: TypeDefinition
    aggregate: AggregateKind = AggregateKind.LIST
    lower: int = 0
    upper: int | None = None

    def describe(self) -> str:
        upper = "?" if self.upper is None else str(self.upper)
        return f"{self.aggregate.value} [{self.lower}:{upper}] OF {self.element.describe()}"


@dataclass
class Attribute:
    """One explicit attribute slot of an entity."""

    name: str
    type_def: TypeDefinition
    optional: bool = False
    derived: bool = False


@dataclass
class EntityDefinition(TypeDefinition):
    """Descriptor for an entity type.

    ``attributes`` holds only the attributes declared on this entity;
    ``SchemaRegistry.attributes_of`` adds the inherited ones.
    ``derived_overrides`` names inherited attributes that this entity
    redeclares as DERIVE, as ``(supertype, attribute)`` pairs; instances
    carry ``*`` in those positions.

    ``holder`` optionally overrides the Holder class used to build
    instances, and ``factory`` the callable that receives the resolved
    attributes as keyword arguments.
    """

    attributes: list[Attribute] = field(default_factory=list)
    supertypes: list[str] = field(default_factory=list)
    abstract: bool = False
    derived_overrides: list[tuple[str, str]] = field(default_factory=list)
    holder: type[Holder] | None = None
    factory: Callable[..., Any] | None = None

    @property
    def is_entity(self) -> bool:
        return True

    def get_attribute(self, name: str) -> Attribute | None:
        """Get an own attribute by name."""
        for attr in self.attributes:
            if attr.name.lower() == name.lower():
                return attr
        return None


# Shared simple type descriptors
INTEGER = SimpleTypeDefinition("INTEGER", SimpleType.INTEGER)
REAL = SimpleTypeDefinition("REAL", SimpleType.REAL)
NUMBER = SimpleTypeDefinition("NUMBER", SimpleType.NUMBER)
STRING = SimpleTypeDefinition("STRING", SimpleType.STRING)
BOOLEAN = SimpleTypeDefinition("BOOLEAN", SimpleType.BOOLEAN)
LOGICAL = SimpleTypeDefinition("LOGICAL", SimpleType.LOGICAL)
BINARY = SimpleTypeDefinition("BINARY", SimpleType.BINARY)


def list_of(
    element: TypeDefinition | str, lower: int = 0, upper: int | None = None
) -> AggregateTypeDefinition:
    """Shorthand for a LIST descriptor; a string element becomes a TypeRef."""
    if isinstance(element, str):
        element = TypeRef(element)
    name = f"LIST OF {element.name}"
    return AggregateTypeDefinition(name, element, AggregateKind.LIST, lower, upper)


def set_of(
    element: TypeDefinition | str, lower: int = 0, upper: int | None = None
) -> AggregateTypeDefinition:
    """Shorthand for a SET descriptor; a string element becomes a TypeRef."""
    if isinstance(element, str):
        element = TypeRef(element)
    name = f"SET OF {element.name}"
    return AggregateTypeDefinition(name, element, AggregateKind.SET, lower, upper)


class SchemaRegistry:
    """Registry of all entity and type descriptors of one schema.

    Names are case-insensitive and stored upper-case, matching the
    keywords that appear in exchange structures.
    """

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._types: dict[str, TypeDefinition] = {}
        self._attribute_cache: dict[str, list[Attribute]] = {}
        self._ancestor_cache: dict[str, frozenset[str]] = {}
        self._register_simple_types()

    def _register_simple_types(self) -> None:
        """Register the built-in simple types."""
        for td in (INTEGER, REAL, NUMBER, STRING, BOOLEAN, LOGICAL, BINARY):
            self._types[td.name] = td

    @classmethod
    def from_express(cls, text: str) -> SchemaRegistry:
        """Build a registry from EXPRESS schema text (a subset of ISO 10303-11)."""
        from stepfile.parsing.express_parser import ExpressParser

        return ExpressParser().parse(text)

    def register(
        self, type_def: TypeDefinition, holder: type[Holder] | None = None
    ) -> TypeDefinition:
        """Register a type definition under its upper-cased name.

        ``holder`` sets the Holder class used to build instances of an
        entity definition.
        """
        key = type_def.name.upper()
        if isinstance(type_def, TypeRef):
            raise SchemaError(f"Cannot register unresolved reference '{type_def.name}'")
        if key in self._types:
            raise SchemaError(f"Type '{type_def.name}' is already defined")
        if holder is not None:
            if not isinstance(type_def, EntityDefinition):
                raise SchemaError(f"Holder given for non-entity type '{type_def.name}'")
            type_def.holder = holder
        self._types[key] = type_def
        self._attribute_cache.clear()
        self._ancestor_cache.clear()
        return type_def

    def bind(self, name: str, factory: Callable[..., Any]) -> None:
        """Construct instances of entity ``name`` with ``factory(**attributes)``."""
        self.entity(name).factory = factory

    def get(self, name: str) -> TypeDefinition | None:
        """Get a type by name."""
        return self._types.get(name.upper())

    def get_or_raise(self, name: str) -> TypeDefinition:
        """Get a type by name, raising if not found."""
        type_def = self._types.get(name.upper())
        if type_def is None:
            raise KeyError(f"Type '{name}' not found")
        return type_def

    def entity(self, name: str) -> EntityDefinition:
        """Get an entity definition by name, raising if absent or not an entity."""
        type_def = self.get_or_raise(name)
        if not isinstance(type_def, EntityDefinition):
            raise SchemaError(f"Type '{name}' is not an entity")
        return type_def

    def resolve_type(self, type_def: TypeDefinition) -> TypeDefinition:
        """Follow a TypeRef to the registered definition."""
        if isinstance(type_def, TypeRef):
            target = self._types.get(type_def.name.upper())
            if target is None:
                raise SchemaError(f"Type '{type_def.name}' is referenced but not defined")
            return target
        return type_def

    def underlying(self, type_def: TypeDefinition) -> TypeDefinition:
        """Resolve through references and defined types to the base type."""
        type_def = self.resolve_type(type_def)
        while isinstance(type_def, DefinedTypeDefinition):
            type_def = self.resolve_type(type_def.underlying)
        return type_def

    def list_types(self) -> list[str]:
        """List all registered type names."""
        return list(self._types.keys())

    def list_entities(self) -> list[str]:
        """List registered entity names."""
        return [n for n, td in self._types.items() if isinstance(td, EntityDefinition)]

    def __contains__(self, name: str) -> bool:
        return name.upper() in self._types

    def validate(self) -> None:
        """Check that every named type, supertype and select option is defined.

        Raises:
            SchemaError: On the first dangling name or supertype cycle found.
        """
        for type_def in list(self._types.values()):
            if isinstance(type_def, EntityDefinition):
                self._linearize(type_def)
                for attr in type_def.attributes:
                    self._check_type(attr.type_def)
                for owner, name in type_def.derived_overrides:
                    if owner.upper() not in self.ancestors(type_def):
                        raise SchemaError(
                            f"Entity '{type_def.name}' redeclares '{owner}.{name}' "
                            f"but '{owner}' is not a supertype"
                        )
            elif isinstance(type_def, SelectTypeDefinition):
                self.select_entities(type_def)
            else:
                self._check_type(type_def)

    def _check_type(self, type_def: TypeDefinition, seen: frozenset[str] = frozenset()) -> None:
        type_def = self.resolve_type(type_def)
        if isinstance(type_def, DefinedTypeDefinition):
            key = type_def.name.upper()
            if key in seen:
                raise SchemaError(f"Defined type '{type_def.name}' refers to itself")
            self._check_type(type_def.underlying, seen | {key})
        elif isinstance(type_def, AggregateTypeDefinition):
            self._check_type(type_def.element, seen)

    # ---- inheritance ----

    def _definition(self, entity: EntityDefinition | str) -> EntityDefinition:
        if isinstance(entity, EntityDefinition):
            return entity
        return self.entity(entity)

    def ancestors(self, entity: EntityDefinition | str) -> frozenset[str]:
        """Return the entity's name and the names of all its supertypes."""
        definition = self._definition(entity)
        key = definition.name.upper()
        cached = self._ancestor_cache.get(key)
        if cached is not None and self._types.get(key) is definition:
            return cached

        seen: set[str] = set()
        stack = [definition]
        while stack:
            current = stack.pop()
            name = current.name.upper()
            if name in seen:
                continue
            seen.add(name)
            for sup in current.supertypes:
                if sup.upper() not in self._types:
                    raise SchemaError(
                        f"Entity '{current.name}' has unknown supertype '{sup}'"
                    )
                stack.append(self.entity(sup))
        result = frozenset(seen)
        if self._types.get(key) is definition:
            self._ancestor_cache[key] = result
        return result

    def is_subtype(self, sub: str, sup: str) -> bool:
        """Return whether entity ``sub`` is ``sup`` or one of its subtypes."""
        td = self.get(sub)
        if not isinstance(td, EntityDefinition):
            return False
        return sup.upper() in self.ancestors(td)

    def _linearize(self, definition: EntityDefinition) -> list[EntityDefinition]:
        """Supertypes depth-first in declaration order, each once, then the entity."""
        order: list[EntityDefinition] = []
        seen: set[str] = set()

        def visit(current: EntityDefinition, path: tuple[str, ...]) -> None:
            name = current.name.upper()
            if name in path:
                raise SchemaError(f"Cyclic supertype declaration involving '{current.name}'")
            if name in seen:
                return
            for sup in current.supertypes:
                if sup.upper() not in self._types:
                    raise SchemaError(
                        f"Entity '{current.name}' has unknown supertype '{sup}'"
                    )
                visit(self.entity(sup), path + (name,))
            seen.add(name)
            order.append(current)

        visit(definition, ())
        return order

    def _derived_slots(self, definitions: Iterable[EntityDefinition]) -> set[tuple[str, str]]:
        slots: set[tuple[str, str]] = set()
        for d in definitions:
            for owner, attr in d.derived_overrides:
                slots.add((owner.upper(), attr.lower()))
        return slots

    def attributes_of(self, entity: EntityDefinition | str) -> list[Attribute]:
        """Return all explicit attributes of an entity, inherited ones first.

        Attributes redeclared as DERIVE by the entity or any of its
        supertypes are returned with ``derived=True``.
        """
        definition = self._definition(entity)
        key = definition.name.upper()
        registered = self._types.get(key) is definition
        if registered and key in self._attribute_cache:
            return self._attribute_cache[key]

        chain = self._linearize(definition)
        derived = self._derived_slots(chain)
        result = self._with_derived(chain, derived)
        if registered:
            self._attribute_cache[key] = result
        return result

    def own_attributes(
        self,
        entity: EntityDefinition | str,
        derived_by: Iterable[EntityDefinition | str] = (),
    ) -> list[Attribute]:
        """Return only the attributes declared on ``entity`` itself.

        Used for the parts of a complex instance, where each part carries
        the attributes of its own entity. ``derived_by`` lists the other
        entities of the instance, whose DERIVE redeclarations apply.
        """
        definition = self._definition(entity)
        related = [definition] + [self._definition(d) for d in derived_by]
        chains: list[EntityDefinition] = []
        for d in related:
            chains.extend(self._linearize(d))
        return self._with_derived([definition], self._derived_slots(chains))

    @staticmethod
    def _with_derived(
        chain: list[EntityDefinition], derived: set[tuple[str, str]]
    ) -> list[Attribute]:
        result = []
        for d in chain:
            owner = d.name.upper()
            for attr in d.attributes:
                if not attr.derived and (owner, attr.name.lower()) in derived:
                    attr = Attribute(attr.name, attr.type_def, attr.optional, derived=True)
                result.append(attr)
        return result

    def select_entities(self, select: SelectTypeDefinition) -> set[str]:
        """Return the entity names reachable through a select, nested selects included."""
        found: set[str] = set()
        pending = [select]
        seen: set[str] = set()
        while pending:
            current = pending.pop()
            if current.name.upper() in seen:
                continue
            seen.add(current.name.upper())
            for option in current.options:
                td = self.get(option)
                if td is None:
                    raise SchemaError(f"Select '{current.name}' has unknown option '{option}'")
                td = self.underlying(td)
                if isinstance(td, EntityDefinition):
                    found.add(td.name.upper())
                elif isinstance(td, SelectTypeDefinition):
                    pending.append(td)
        return found

    def select_option(self, select: SelectTypeDefinition, keyword: str) -> TypeDefinition | None:
        """Find the non-entity type named ``keyword`` among a select's options."""
        keyword = keyword.upper()
        pending = [select]
        seen: set[str] = set()
        while pending:
            current = pending.pop()
            if current.name.upper() in seen:
                continue
            seen.add(current.name.upper())
            for option in current.options:
                td = self.get(option)
                if td is None:
                    continue
                if td.name.upper() == keyword and not isinstance(td, EntityDefinition):
                    return td
                if isinstance(td, SelectTypeDefinition):
                    pending.append(td)
        return None
