"""stepfile - Parse ISO 10303-21 exchange structures into typed entity graphs."""

from __future__ import annotations

import threading
from typing import Any

from stepfile.config import ResolverConfig
from stepfile.entity import UNKNOWN, ComplexEntity, Entity, Reference, TypedValue
from stepfile.errors import (
    ArityError,
    ConstructionError,
    DepthExceededError,
    DuplicateIdError,
    LexError,
    ParseError,
    ResolutionError,
    SchemaError,
    StepError,
    TypeMismatchError,
    UnexpectedInapplicableError,
    UnexpectedUnsetError,
    UnknownEntityTypeError,
    UnresolvedReferenceError,
)
from stepfile.holder import EntityHolder, Holder
from stepfile.parameters import (
    INAPPLICABLE,
    UNSET,
    Binary,
    EntityRef,
    Enumeration,
    Integer,
    ParamList,
    Real,
    String,
    TypedParameter,
)
from stepfile.parsing import ExpressParser, StepParser
from stepfile.records import DataSection, ExchangeFile, Header, Record, SimpleRecord
from stepfile.schema import (
    AggregateTypeDefinition,
    Attribute,
    DefinedTypeDefinition,
    EntityDefinition,
    EnumerationTypeDefinition,
    SchemaRegistry,
    SelectTypeDefinition,
    SimpleType,
    SimpleTypeDefinition,
    TypeDefinition,
    TypeRef,
)
from stepfile.table import EntityTable, ResolutionReport, ResolutionState

__all__ = [
    # Main API
    "parse_record",
    "parse_data_section",
    "parse_exchange_file",
    "build_entity_table",
    "resolve_entity",
    "StepParser",
    "ExpressParser",
    "EntityTable",
    "ResolverConfig",
    "ResolutionReport",
    "ResolutionState",
    # Records and parameters
    "Record",
    "SimpleRecord",
    "Header",
    "DataSection",
    "ExchangeFile",
    "Integer",
    "Real",
    "String",
    "Enumeration",
    "Binary",
    "EntityRef",
    "ParamList",
    "TypedParameter",
    "UNSET",
    "INAPPLICABLE",
    # Schema descriptors
    "SchemaRegistry",
    "TypeDefinition",
    "TypeRef",
    "SimpleType",
    "SimpleTypeDefinition",
    "DefinedTypeDefinition",
    "EnumerationTypeDefinition",
    "SelectTypeDefinition",
    "AggregateTypeDefinition",
    "EntityDefinition",
    "Attribute",
    # Construction
    "Holder",
    "EntityHolder",
    "Entity",
    "ComplexEntity",
    "Reference",
    "TypedValue",
    "UNKNOWN",
    # Errors
    "StepError",
    "LexError",
    "ParseError",
    "DuplicateIdError",
    "SchemaError",
    "ResolutionError",
    "UnresolvedReferenceError",
    "UnknownEntityTypeError",
    "ArityError",
    "TypeMismatchError",
    "UnexpectedUnsetError",
    "UnexpectedInapplicableError",
    "DepthExceededError",
    "ConstructionError",
]

__version__ = "0.1.0"

# StepParser keeps lexer state between calls, so each thread gets its own
_local = threading.local()


def _parser() -> StepParser:
    parser = getattr(_local, "parser", None)
    if parser is None:
        parser = StepParser()
        _local.parser = parser
    return parser


def parse_record(text: str) -> Record:
    """Parse a single instance (``#id = ...;``) or unnamed header record."""
    return _parser().parse_record(text)


def parse_data_section(text: str) -> DataSection:
    """Parse a ``DATA; ... ENDSEC;`` block or a bare run of instances."""
    return _parser().parse_data_section(text)


def parse_exchange_file(text: str) -> ExchangeFile:
    """Parse a complete ``ISO-10303-21; ... END-ISO-10303-21;`` exchange structure."""
    return _parser().parse(text)


def build_entity_table(
    source: DataSection | ExchangeFile,
    registry: SchemaRegistry | None = None,
    config: ResolverConfig | None = None,
) -> EntityTable:
    """Index every record of a data section or exchange file by id."""
    if isinstance(source, ExchangeFile):
        return EntityTable.from_exchange(source, registry, config)
    return EntityTable.from_data_section(source, registry, config)


def resolve_entity(
    table: EntityTable, entity_id: int, expected: EntityDefinition | str | None = None
) -> Any:
    """Resolve one id of ``table`` into its typed entity."""
    return table.resolve(entity_id, expected)
