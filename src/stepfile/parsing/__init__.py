"""Parsing module for exchange structures and EXPRESS schemas."""

from stepfile.parsing.assembler import assemble_data_section, assemble_exchange_file
from stepfile.parsing.express_parser import ExpressParser
from stepfile.parsing.step_lexer import StepLexer, decode_string
from stepfile.parsing.step_parser import StepParser

__all__ = [
    "ExpressParser",
    "StepLexer",
    "StepParser",
    "assemble_data_section",
    "assemble_exchange_file",
    "decode_string",
]
