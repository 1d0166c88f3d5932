"""Parser for a subset of EXPRESS (ISO 10303-11) schemas.

Reads enough of a schema to produce the positional descriptors used when
resolving instances: defined, enumeration, select and aggregate types, and
entities with their supertypes, explicit attributes and redeclared derived
attributes. Rules, functions, WHERE, UNIQUE and INVERSE clauses are not
supported.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import ply.yacc as yacc

from stepfile.errors import SchemaError
from stepfile.parsing.express_lexer import ExpressLexer
from stepfile.parsing.step_lexer import line_and_column
from stepfile.schema import (
    BINARY,
    BOOLEAN,
    INTEGER,
    LOGICAL,
    NUMBER,
    REAL,
    STRING,
    AggregateKind,
    AggregateTypeDefinition,
    Attribute,
    DefinedTypeDefinition,
    EntityDefinition,
    EnumerationTypeDefinition,
    SchemaRegistry,
    SelectTypeDefinition,
    TypeDefinition,
    TypeRef,
)

_UNSUPPORTED = {"WHERE", "INVERSE", "UNIQUE", "RULE", "FUNCTION", "PROCEDURE", "CONSTANT", "USE", "REFERENCE"}


@dataclass
class AttributeSpec:
    """Explicit attribute declaration before registration."""

    names: list[str]
    type_def: TypeDefinition
    optional: bool = False


@dataclass
class DerivedSpec:
    """Derived attribute; ``owner`` is set for ``SELF\\owner.name`` redeclarations."""

    name: str
    owner: str | None = None
    expression: str = ""


@dataclass
class EntitySpec:
    """Entity declaration before registration."""

    name: str
    supertypes: list[str] = field(default_factory=list)
    abstract: bool = False
    attributes: list[AttributeSpec] = field(default_factory=list)
    derived: list[DerivedSpec] = field(default_factory=list)


class ExpressParser:
    """Parser for EXPRESS schema text, producing a SchemaRegistry."""

    tokens = ExpressLexer.tokens

    def __init__(self) -> None:
        self.lexer = ExpressLexer()
        self.lexer.build()
        self.parser: yacc.LRParser = None  # type: ignore

    def p_schema(self, p: yacc.YaccProduction) -> None:
        """schema : SCHEMA ID SEMI declaration_list END_SCHEMA SEMI"""
        p[0] = (p[2], p[4])

    def p_declaration_list_empty(self, p: yacc.YaccProduction) -> None:
        """declaration_list : """
        p[0] = []

    def p_declaration_list(self, p: yacc.YaccProduction) -> None:
        """declaration_list : declaration_list declaration"""
        p[0] = p[1]
        p[0].append(p[2])

    def p_declaration(self, p: yacc.YaccProduction) -> None:
        """declaration : type_decl
                       | entity_decl"""
        p[0] = p[1]

    # ---- TYPE declarations ----

    def p_type_decl(self, p: yacc.YaccProduction) -> None:
        """type_decl : TYPE ID EQUALS underlying_type SEMI END_TYPE SEMI"""
        name, underlying = p[2], p[4]
        if isinstance(underlying, (EnumerationTypeDefinition, SelectTypeDefinition)):
            underlying.name = name
            p[0] = underlying
        else:
            p[0] = DefinedTypeDefinition(name, underlying)

    def p_underlying_type_base(self, p: yacc.YaccProduction) -> None:
        """underlying_type : base_type"""
        p[0] = p[1]

    def p_underlying_type_enumeration(self, p: yacc.YaccProduction) -> None:
        """underlying_type : ENUMERATION OF LPAREN id_list RPAREN"""
        p[0] = EnumerationTypeDefinition("", items=p[4])

    def p_underlying_type_select(self, p: yacc.YaccProduction) -> None:
        """underlying_type : SELECT LPAREN id_list RPAREN"""
        p[0] = SelectTypeDefinition("", options=p[3])

    def p_base_type_simple(self, p: yacc.YaccProduction) -> None:
        """base_type : simple_type"""
        p[0] = p[1]

    def p_base_type_named(self, p: yacc.YaccProduction) -> None:
        """base_type : ID"""
        p[0] = TypeRef(p[1])

    def p_base_type_aggregate(self, p: yacc.YaccProduction) -> None:
        """base_type : aggregate_type"""
        p[0] = p[1]

    def p_simple_type(self, p: yacc.YaccProduction) -> None:
        """simple_type : INTEGER
                       | REAL
                       | NUMBER
                       | STRING
                       | BOOLEAN
                       | LOGICAL
                       | BINARY"""
        simple = {
            "INTEGER": INTEGER,
            "REAL": REAL,
            "NUMBER": NUMBER,
            "STRING": STRING,
            "BOOLEAN": BOOLEAN,
            "LOGICAL": LOGICAL,
            "BINARY": BINARY,
        }
        p[0] = simple[p[1].upper()]

    def p_simple_type_width(self, p: yacc.YaccProduction) -> None:
        """simple_type : STRING LPAREN INT RPAREN
                       | STRING LPAREN INT RPAREN FIXED
                       | BINARY LPAREN INT RPAREN
                       | BINARY LPAREN INT RPAREN FIXED
                       | REAL LPAREN INT RPAREN"""
        # Width and precision specifications do not affect decoding
        p[0] = {"STRING": STRING, "BINARY": BINARY, "REAL": REAL}[p[1].upper()]

    def p_aggregate_type(self, p: yacc.YaccProduction) -> None:
        """aggregate_type : aggregate_kind bound_spec OF element_modifiers base_type"""
        kind = p[1]
        lower, upper = p[2]
        element = p[5]
        p[0] = AggregateTypeDefinition(
            f"{kind.value} OF {element.name}", element, kind, lower, upper
        )

    def p_aggregate_type_unbounded(self, p: yacc.YaccProduction) -> None:
        """aggregate_type : aggregate_kind OF element_modifiers base_type"""
        kind = p[1]
        element = p[4]
        p[0] = AggregateTypeDefinition(f"{kind.value} OF {element.name}", element, kind)

    def p_aggregate_kind(self, p: yacc.YaccProduction) -> None:
        """aggregate_kind : LIST
                          | SET
                          | BAG
                          | ARRAY"""
        p[0] = AggregateKind(p[1].upper())

    def p_bound_spec(self, p: yacc.YaccProduction) -> None:
        """bound_spec : LBRACKET INT COLON INT RBRACKET"""
        p[0] = (p[2], p[4])

    def p_bound_spec_open(self, p: yacc.YaccProduction) -> None:
        """bound_spec : LBRACKET INT COLON QUESTION RBRACKET"""
        p[0] = (p[2], None)

    def p_element_modifiers(self, p: yacc.YaccProduction) -> None:
        """element_modifiers :
                             | UNIQUE
                             | OPTIONAL
                             | OPTIONAL UNIQUE"""
        p[0] = None

    # ---- ENTITY declarations ----

    def p_entity_decl(self, p: yacc.YaccProduction) -> None:
        """entity_decl : ENTITY ID subsuper SEMI attribute_list derive_clause END_ENTITY SEMI"""
        abstract, supertypes = p[3]
        p[0] = EntitySpec(
            name=p[2],
            supertypes=supertypes,
            abstract=abstract,
            attributes=p[5],
            derived=p[6],
        )

    def p_subsuper(self, p: yacc.YaccProduction) -> None:
        """subsuper : supertype_decl subtype_decl"""
        p[0] = (p[1], p[2])

    def p_subsuper_supertype_only(self, p: yacc.YaccProduction) -> None:
        """subsuper : supertype_decl"""
        p[0] = (p[1], [])

    def p_subsuper_subtype_only(self, p: yacc.YaccProduction) -> None:
        """subsuper : subtype_decl"""
        p[0] = (False, p[1])

    def p_subsuper_empty(self, p: yacc.YaccProduction) -> None:
        """subsuper : """
        p[0] = (False, [])

    def p_supertype_decl_abstract(self, p: yacc.YaccProduction) -> None:
        """supertype_decl : ABSTRACT SUPERTYPE
                          | ABSTRACT SUPERTYPE OF LPAREN supertype_expr RPAREN
                          | ABSTRACT"""
        p[0] = True

    def p_supertype_decl(self, p: yacc.YaccProduction) -> None:
        """supertype_decl : SUPERTYPE OF LPAREN supertype_expr RPAREN"""
        p[0] = False

    def p_supertype_expr(self, p: yacc.YaccProduction) -> None:
        """supertype_expr : supertype_term
                          | supertype_expr ANDOR supertype_term
                          | supertype_expr AND supertype_term"""
        # Subtype constraints are parsed but have no effect on decoding
        p[0] = None

    def p_supertype_term(self, p: yacc.YaccProduction) -> None:
        """supertype_term : ID
                          | ONEOF LPAREN supertype_expr_list RPAREN
                          | LPAREN supertype_expr RPAREN"""
        p[0] = None

    def p_supertype_expr_list(self, p: yacc.YaccProduction) -> None:
        """supertype_expr_list : supertype_expr
                               | supertype_expr_list COMMA supertype_expr"""
        p[0] = None

    def p_subtype_decl(self, p: yacc.YaccProduction) -> None:
        """subtype_decl : SUBTYPE OF LPAREN id_list RPAREN"""
        p[0] = p[4]

    def p_attribute_list_empty(self, p: yacc.YaccProduction) -> None:
        """attribute_list : """
        p[0] = []

    def p_attribute_list(self, p: yacc.YaccProduction) -> None:
        """attribute_list : attribute_list attribute_decl"""
        p[0] = p[1]
        p[0].append(p[2])

    def p_attribute_decl(self, p: yacc.YaccProduction) -> None:
        """attribute_decl : id_list COLON base_type SEMI"""
        p[0] = AttributeSpec(names=p[1], type_def=p[3])

    def p_attribute_decl_optional(self, p: yacc.YaccProduction) -> None:
        """attribute_decl : id_list COLON OPTIONAL base_type SEMI"""
        p[0] = AttributeSpec(names=p[1], type_def=p[4], optional=True)

    def p_derive_clause_empty(self, p: yacc.YaccProduction) -> None:
        """derive_clause : """
        p[0] = []

    def p_derive_clause(self, p: yacc.YaccProduction) -> None:
        """derive_clause : DERIVE derive_list"""
        p[0] = p[2]

    def p_derive_list_single(self, p: yacc.YaccProduction) -> None:
        """derive_list : derive_item"""
        p[0] = [p[1]]

    def p_derive_list_multiple(self, p: yacc.YaccProduction) -> None:
        """derive_list : derive_list derive_item"""
        p[0] = p[1]
        p[0].append(p[2])

    def p_derive_item(self, p: yacc.YaccProduction) -> None:
        """derive_item : ID COLON base_type EXPRESSION"""
        p[0] = DerivedSpec(name=p[1], expression=p[4])

    def p_derive_item_redeclared(self, p: yacc.YaccProduction) -> None:
        """derive_item : SELF BACKSLASH ID DOT ID COLON base_type EXPRESSION"""
        p[0] = DerivedSpec(name=p[5], owner=p[3], expression=p[8])

    def p_id_list_single(self, p: yacc.YaccProduction) -> None:
        """id_list : ID"""
        p[0] = [p[1]]

    def p_id_list_multiple(self, p: yacc.YaccProduction) -> None:
        """id_list : id_list COMMA ID"""
        p[0] = p[1] + [p[3]]

    def p_error(self, p: yacc.YaccProduction) -> None:
        data = self.lexer.data
        if not p:
            line, column = line_and_column(data, len(data))
            raise SchemaError("Unexpected end of EXPRESS text", line=line, column=column)
        line, column = line_and_column(data, p.lexpos)
        if p.type in _UNSUPPORTED:
            message = f"EXPRESS {p.value} declarations are not supported"
        else:
            message = f"Syntax error at '{p.value}'"
        raise SchemaError(message, offset=p.lexpos, line=line, column=column)

    def build(self, **kwargs: Any) -> None:
        """Build the parser."""
        kwargs.setdefault("errorlog", yacc.NullLogger())
        self.parser = yacc.yacc(module=self, start="schema", **kwargs)

    def parse(self, data: str) -> SchemaRegistry:
        """Parse EXPRESS text and return a populated SchemaRegistry."""
        if self.parser is None:
            self.build(debug=False, write_tables=False)

        self.lexer.input(data)
        result = self.parser.parse(lexer=self.lexer.lexer)
        if result is None:
            raise SchemaError("Empty EXPRESS text")
        name, declarations = result

        registry = SchemaRegistry(name)
        for decl in declarations:
            if isinstance(decl, EntitySpec):
                registry.register(self._build_entity(decl))
            else:
                registry.register(decl)
        registry.validate()
        return registry

    @staticmethod
    def _build_entity(spec: EntitySpec) -> EntityDefinition:
        attributes = [
            Attribute(name, attr.type_def, optional=attr.optional)
            for attr in spec.attributes
            for name in attr.names
        ]
        overrides = [(d.owner, d.name) for d in spec.derived if d.owner is not None]
        return EntityDefinition(
            name=spec.name,
            attributes=attributes,
            supertypes=spec.supertypes,
            abstract=spec.abstract,
            derived_overrides=overrides,
        )
