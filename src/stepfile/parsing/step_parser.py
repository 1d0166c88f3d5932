"""Parser for ISO 10303-21 exchange structures."""

from __future__ import annotations

from typing import Any

import ply.yacc as yacc

from stepfile.errors import ParseError
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
from stepfile.parsing.assembler import assemble_data_section, assemble_exchange_file
from stepfile.parsing.step_lexer import StepLexer, line_and_column
from stepfile.records import DataSection, ExchangeFile, Header, Record, SimpleRecord


class StepParser:
    """Parser for exchange structures, data sections and single records.

    The same grammar backs every entry point, so a fragment parses to the
    same Record whether it is read alone or as part of a whole section.
    """

    tokens = StepLexer.tokens

    def __init__(self) -> None:
        self.lexer = StepLexer()
        self.lexer.build()
        self.parsers: dict[str, yacc.LRParser] = {}
        self._active: yacc.LRParser | None = None

    # ---- exchange structure ----

    def p_exchange_file(self, p: yacc.YaccProduction) -> None:
        """exchange_file : ISO SEMI header_section data_section_list END_ISO SEMI"""
        p[0] = assemble_exchange_file(p[3], p[4])

    def p_header_section(self, p: yacc.YaccProduction) -> None:
        """header_section : HEADER SEMI header_record_list ENDSEC SEMI"""
        p[0] = Header(records=p[3])

    def p_header_record_list_empty(self, p: yacc.YaccProduction) -> None:
        """header_record_list : """
        p[0] = []

    def p_header_record_list(self, p: yacc.YaccProduction) -> None:
        """header_record_list : header_record_list header_record"""
        p[0] = p[1]
        p[0].append(p[2])

    def p_header_record(self, p: yacc.YaccProduction) -> None:
        """header_record : simple_record SEMI"""
        keyword, params, offset, line = p[1]
        p[0] = Record(id=None, keyword=keyword, parameters=params, offset=offset, line=line)

    def p_data_section_list_empty(self, p: yacc.YaccProduction) -> None:
        """data_section_list : """
        p[0] = []

    def p_data_section_list(self, p: yacc.YaccProduction) -> None:
        """data_section_list : data_section_list data_section"""
        p[0] = p[1]
        p[0].append(p[2])

    # ---- data sections ----

    def p_data_block_section(self, p: yacc.YaccProduction) -> None:
        """data_block : data_section"""
        p[0] = p[1]

    def p_data_block_bare(self, p: yacc.YaccProduction) -> None:
        """data_block : entity_instance_list"""
        p[0] = assemble_data_section(p[1])

    def p_data_section(self, p: yacc.YaccProduction) -> None:
        """data_section : data_open entity_instance_list ENDSEC SEMI"""
        p[0] = assemble_data_section(p[2], parameters=p[1])

    def p_data_open(self, p: yacc.YaccProduction) -> None:
        """data_open : DATA SEMI"""
        p[0] = ()

    def p_data_open_parameters(self, p: yacc.YaccProduction) -> None:
        """data_open : DATA LPAREN parameter_list RPAREN SEMI"""
        p[0] = tuple(p[3])

    def p_entity_instance_list_empty(self, p: yacc.YaccProduction) -> None:
        """entity_instance_list : """
        p[0] = []

    def p_entity_instance_list(self, p: yacc.YaccProduction) -> None:
        """entity_instance_list : entity_instance_list entity_instance"""
        p[0] = p[1]
        p[0].append(p[2])

    # ---- records ----

    def p_record_instance(self, p: yacc.YaccProduction) -> None:
        """record : entity_instance"""
        p[0] = p[1]

    def p_record_header(self, p: yacc.YaccProduction) -> None:
        """record : header_record"""
        p[0] = p[1]

    def p_entity_instance_simple(self, p: yacc.YaccProduction) -> None:
        """entity_instance : ENTITY_NAME EQUALS simple_record SEMI"""
        keyword, params, _, _ = p[3]
        p[0] = Record(
            id=p[1],
            keyword=keyword,
            parameters=params,
            offset=p.lexpos(1),
            line=p.lineno(1),
        )

    def p_entity_instance_complex(self, p: yacc.YaccProduction) -> None:
        """entity_instance : ENTITY_NAME EQUALS LPAREN simple_record_list RPAREN SEMI"""
        parts = [SimpleRecord(keyword, params) for keyword, params, _, _ in p[4]]
        p[0] = Record.complex(p[1], parts, offset=p.lexpos(1), line=p.lineno(1))

    def p_simple_record_list_single(self, p: yacc.YaccProduction) -> None:
        """simple_record_list : simple_record"""
        p[0] = [p[1]]

    def p_simple_record_list_multiple(self, p: yacc.YaccProduction) -> None:
        """simple_record_list : simple_record_list simple_record"""
        p[0] = p[1]
        p[0].append(p[2])

    def p_simple_record(self, p: yacc.YaccProduction) -> None:
        """simple_record : KEYWORD LPAREN parameter_list RPAREN"""
        p[0] = (p[1], tuple(p[3]), p.lexpos(1), p.lineno(1))

    def p_simple_record_empty(self, p: yacc.YaccProduction) -> None:
        """simple_record : KEYWORD LPAREN RPAREN"""
        p[0] = (p[1], (), p.lexpos(1), p.lineno(1))

    # ---- parameters ----

    def p_parameter_list_single(self, p: yacc.YaccProduction) -> None:
        """parameter_list : parameter"""
        p[0] = [p[1]]

    def p_parameter_list_multiple(self, p: yacc.YaccProduction) -> None:
        """parameter_list : parameter_list COMMA parameter"""
        p[0] = p[1]
        p[0].append(p[3])

    def p_parameter_integer(self, p: yacc.YaccProduction) -> None:
        """parameter : INTEGER"""
        p[0] = Integer(p[1])

    def p_parameter_real(self, p: yacc.YaccProduction) -> None:
        """parameter : REAL"""
        p[0] = Real(p[1])

    def p_parameter_string(self, p: yacc.YaccProduction) -> None:
        """parameter : STRING"""
        p[0] = String(p[1])

    def p_parameter_enumeration(self, p: yacc.YaccProduction) -> None:
        """parameter : ENUMERATION"""
        p[0] = Enumeration(p[1])

    def p_parameter_binary(self, p: yacc.YaccProduction) -> None:
        """parameter : BINARY"""
        unused_bits, digits = p[1]
        p[0] = Binary(unused_bits, digits)

    def p_parameter_reference(self, p: yacc.YaccProduction) -> None:
        """parameter : ENTITY_NAME"""
        p[0] = EntityRef(p[1])

    def p_parameter_unset(self, p: yacc.YaccProduction) -> None:
        """parameter : DOLLAR"""
        p[0] = UNSET

    def p_parameter_inapplicable(self, p: yacc.YaccProduction) -> None:
        """parameter : STAR"""
        p[0] = INAPPLICABLE

    def p_parameter_list_value(self, p: yacc.YaccProduction) -> None:
        """parameter : LPAREN parameter_list RPAREN"""
        p[0] = ParamList(p[2])

    def p_parameter_empty_list(self, p: yacc.YaccProduction) -> None:
        """parameter : LPAREN RPAREN"""
        p[0] = ParamList(())

    def p_parameter_typed(self, p: yacc.YaccProduction) -> None:
        """parameter : KEYWORD LPAREN parameter RPAREN"""
        p[0] = TypedParameter(p[1], p[3])

    def p_error(self, p: yacc.YaccProduction) -> None:
        expected = self._expected_tokens()
        data = self.lexer.data
        if p:
            line, column = line_and_column(data, p.lexpos)
            raise ParseError(
                f"Syntax error at {p.type} {p.value!r}",
                found=p.type,
                value=p.value,
                expected=expected,
                offset=p.lexpos,
                line=line,
                column=column,
            )
        line, column = line_and_column(data, len(data))
        raise ParseError(
            "Syntax error at end of input",
            expected=expected,
            offset=len(data),
            line=line,
            column=column,
        )

    def _expected_tokens(self) -> tuple[str, ...]:
        """Token types acceptable in the state where the parser failed."""
        parser = self._active
        statestack = getattr(parser, "statestack", None)
        if parser is None or not statestack:
            return ()
        actions = parser.action.get(statestack[-1], {})
        return tuple(sorted("end of input" if t == "$end" else t for t in actions))

    def build(self, start: str = "exchange_file", **kwargs: Any) -> yacc.LRParser:
        """Build the parser for one start symbol."""
        kwargs.setdefault("debug", False)
        kwargs.setdefault("write_tables", False)
        # Rules not reachable from this start symbol are expected
        kwargs.setdefault("errorlog", yacc.NullLogger())
        parser = yacc.yacc(module=self, start=start, **kwargs)
        self.parsers[start] = parser
        return parser

    def _parse(self, start: str, data: str) -> Any:
        parser = self.parsers.get(start)
        if parser is None:
            parser = self.build(start)
        self._active = parser
        self.lexer.input(data)
        try:
            return parser.parse(lexer=self.lexer.lexer)
        finally:
            self._active = None

    def parse(self, data: str) -> ExchangeFile:
        """Parse a complete exchange structure."""
        return self._parse("exchange_file", data)

    def parse_data_section(self, data: str) -> DataSection:
        """Parse one ``DATA; ... ENDSEC;`` block, or a bare run of instances."""
        return self._parse("data_block", data)

    def parse_record(self, data: str) -> Record:
        """Parse a single ``#id = ...;`` instance or unnamed header record."""
        return self._parse("record", data)
