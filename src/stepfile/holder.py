"""Two-phase construction of typed entities from untyped records.

A Holder mirrors a record's parameter list one-to-one against an entity's
attribute descriptors. Primitive values are converted while the holder is
built; entity references stay as ids until ``into_entity`` resolves them
through the table. This split is what lets references point forward in
the file or form cycles.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from stepfile.entity import UNKNOWN, Entity, TypedValue
from stepfile.errors import (
    ArityError,
    TypeMismatchError,
    UnexpectedInapplicableError,
    UnexpectedUnsetError,
)
from stepfile.parameters import (
    Binary,
    EntityRef,
    Enumeration,
    Inapplicable,
    Integer,
    Parameter,
    ParamList,
    Real,
    String,
    TypedParameter,
    Unset,
    kind_name,
)
from stepfile.schema import (
    AggregateTypeDefinition,
    Attribute,
    DefinedTypeDefinition,
    EntityDefinition,
    EnumerationTypeDefinition,
    SelectTypeDefinition,
    SimpleType,
    SimpleTypeDefinition,
    TypeDefinition,
)

if TYPE_CHECKING:
    from stepfile.table import ResolutionContext


@dataclass(frozen=True)
class HeldReference:
    """An entity reference waiting to be resolved, with the type it must satisfy."""

    id: int
    expected: TypeDefinition
    attribute: str


@dataclass
class HeldTyped:
    """A typed SELECT value whose inner value may still contain references."""

    type_name: str
    value: Any


class Holder(ABC):
    """Capability interface for building one entity type from a record.

    ``from_record`` checks arity and converts parameters into the holder
    shape; ``into_entity`` resolves the held references and produces the
    final typed value.
    """

    @classmethod
    @abstractmethod
    def from_record(
        cls,
        definition: EntityDefinition,
        parameters: tuple[Parameter, ...],
        context: ResolutionContext,
        attributes: list[Attribute] | None = None,
    ) -> Holder:
        """Build a holder from a record's parameters."""

    @abstractmethod
    def into_entity(self, context: ResolutionContext) -> Any:
        """Resolve held references and build the typed value."""


@dataclass
class EntityHolder(Holder):
    """Descriptor-driven holder used for every entity type by default.

    Parts of a complex instance are always built as generic Entity values,
    bypassing any bound factory.
    """

    definition: EntityDefinition
    attributes: list[Attribute]
    values: list[Any] = field(default_factory=list)
    complex_part: bool = False

    @classmethod
    def from_record(
        cls,
        definition: EntityDefinition,
        parameters: tuple[Parameter, ...],
        context: ResolutionContext,
        attributes: list[Attribute] | None = None,
    ) -> EntityHolder:
        if attributes is None:
            attributes = context.registry.attributes_of(definition)
        if len(parameters) != len(attributes):
            raise ArityError(definition.name, len(attributes), len(parameters))

        values = [
            hold_attribute(param, attr, context)
            for attr, param in zip(attributes, parameters)
        ]
        return cls(definition=definition, attributes=attributes, values=values)

    def into_entity(self, context: ResolutionContext) -> Any:
        resolved: dict[str, Any] = {}
        for attr, value in zip(self.attributes, self.values):
            if attr.derived:
                continue
            resolved[attr.name] = release(value, context)

        factory = self.definition.factory
        if factory is not None and not self.complex_part:
            return factory(**resolved)
        return Entity(
            type_name=self.definition.name.upper(),
            attributes=resolved,
            id=context.current_id,
            type_names=context.registry.ancestors(self.definition),
        )


def hold_attribute(param: Parameter, attr: Attribute, context: ResolutionContext) -> Any:
    """Convert the parameter of one attribute slot into its held form."""
    if isinstance(param, Inapplicable):
        if attr.derived:
            return None
        raise UnexpectedInapplicableError(attr.name)
    if attr.derived:
        raise TypeMismatchError(attr.name, "omitted (*) for derived attribute", kind_name(param))
    if isinstance(param, Unset):
        if attr.optional:
            return None
        raise UnexpectedUnsetError(attr.name)
    return hold(param, attr.type_def, attr.name, context)


def hold(
    param: Parameter, type_def: TypeDefinition, attribute: str, context: ResolutionContext
) -> Any:
    """Convert one parameter against a type descriptor.

    Entity references become HeldReference placeholders; everything else
    is converted to its Python value.
    """
    registry = context.registry
    type_def = registry.resolve_type(type_def)

    if isinstance(type_def, DefinedTypeDefinition):
        # Some writers wrap values of a defined type even outside a select
        if isinstance(param, TypedParameter) and param.keyword.upper() == type_def.name.upper():
            param = param.parameter
        return hold(param, type_def.underlying, attribute, context)

    if isinstance(type_def, SimpleTypeDefinition):
        return _convert_simple(param, type_def.simple, attribute, context)

    if isinstance(type_def, EnumerationTypeDefinition):
        if not isinstance(param, Enumeration):
            raise _mismatch(attribute, type_def.describe(), param)
        item = type_def.find_item(param.name)
        if item is None:
            if context.config.strict_enumerations:
                raise TypeMismatchError(
                    attribute, f"one of {type_def.name} {type_def.items}", f".{param.name}."
                )
            return param.name.lower()
        return item

    if isinstance(type_def, EntityDefinition):
        if isinstance(param, EntityRef):
            return HeldReference(param.id, type_def, attribute)
        raise _mismatch(attribute, f"reference to {type_def.name}", param)

    if isinstance(type_def, SelectTypeDefinition):
        if isinstance(param, EntityRef):
            return HeldReference(param.id, type_def, attribute)
        if isinstance(param, TypedParameter):
            option = registry.select_option(type_def, param.keyword)
            if option is None:
                raise TypeMismatchError(
                    attribute, f"a type selectable by {type_def.name}", param.keyword
                )
            inner = hold(param.parameter, option, attribute, context)
            return HeldTyped(option.name.upper(), inner)
        raise _mismatch(attribute, f"{type_def.name} (reference or typed parameter)", param)

    if isinstance(type_def, AggregateTypeDefinition):
        if not isinstance(param, ParamList):
            raise _mismatch(attribute, type_def.describe(), param)
        count = len(param)
        if count < type_def.lower or (type_def.upper is not None and count > type_def.upper):
            raise TypeMismatchError(
                attribute, type_def.describe(), f"aggregate of {count} elements"
            )
        return [hold(item, type_def.element, attribute, context) for item in param]

    raise TypeMismatchError(attribute, type_def.describe(), kind_name(param))


def _convert_simple(
    param: Parameter, simple: SimpleType, attribute: str, context: ResolutionContext
) -> Any:
    if simple is SimpleType.INTEGER:
        if isinstance(param, Integer):
            return param.value
    elif simple is SimpleType.REAL:
        if isinstance(param, Real):
            return param.value
        if isinstance(param, Integer) and context.config.accept_integer_as_real:
            return float(param.value)
    elif simple is SimpleType.NUMBER:
        if isinstance(param, (Integer, Real)):
            return param.value
    elif simple is SimpleType.STRING:
        if isinstance(param, String):
            return param.value
    elif simple is SimpleType.BOOLEAN:
        if isinstance(param, Enumeration) and param.name in ("T", "F"):
            return param.name == "T"
    elif simple is SimpleType.LOGICAL:
        if isinstance(param, Enumeration) and param.name in ("T", "F", "U"):
            return {"T": True, "F": False, "U": UNKNOWN}[param.name]
    elif simple is SimpleType.BINARY:
        if isinstance(param, Binary):
            return param
    raise _mismatch(attribute, simple.value, param)


def _mismatch(attribute: str, expected: str, param: Parameter) -> TypeMismatchError:
    return TypeMismatchError(attribute, expected, kind_name(param))


def release(value: Any, context: ResolutionContext) -> Any:
    """Resolve the references inside a held value, returning the final value."""
    if isinstance(value, HeldReference):
        return context.visit(value.id, value.expected, value.attribute)
    if isinstance(value, HeldTyped):
        return TypedValue(value.type_name, release(value.value, context))
    if isinstance(value, list):
        return [release(item, context) for item in value]
    return value
