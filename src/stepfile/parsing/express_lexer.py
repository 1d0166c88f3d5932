"""Lexer for the EXPRESS schema subset."""

import ply.lex as lex

from stepfile.errors import SchemaError
from stepfile.parsing.step_lexer import line_and_column


class ExpressLexer:
    """Lexer for tokenizing EXPRESS schema text.

    EXPRESS is case-insensitive; keywords are matched in any case and
    identifiers keep their spelling.
    """

    # Reserved keywords
    reserved = {
        "SCHEMA": "SCHEMA",
        "END_SCHEMA": "END_SCHEMA",
        "TYPE": "TYPE",
        "END_TYPE": "END_TYPE",
        "ENTITY": "ENTITY",
        "END_ENTITY": "END_ENTITY",
        "ENUMERATION": "ENUMERATION",
        "SELECT": "SELECT",
        "OF": "OF",
        "LIST": "LIST",
        "SET": "SET",
        "BAG": "BAG",
        "ARRAY": "ARRAY",
        "UNIQUE": "UNIQUE",
        "OPTIONAL": "OPTIONAL",
        "INTEGER": "INTEGER",
        "REAL": "REAL",
        "NUMBER": "NUMBER",
        "STRING": "STRING",
        "BOOLEAN": "BOOLEAN",
        "LOGICAL": "LOGICAL",
        "BINARY": "BINARY",
        "FIXED": "FIXED",
        "ABSTRACT": "ABSTRACT",
        "SUPERTYPE": "SUPERTYPE",
        "SUBTYPE": "SUBTYPE",
        "ONEOF": "ONEOF",
        "ANDOR": "ANDOR",
        "AND": "AND",
        "DERIVE": "DERIVE",
        "SELF": "SELF",
        "WHERE": "WHERE",
        "INVERSE": "INVERSE",
        "RULE": "RULE",
        "FUNCTION": "FUNCTION",
        "PROCEDURE": "PROCEDURE",
        "CONSTANT": "CONSTANT",
        "USE": "USE",
        "REFERENCE": "REFERENCE",
    }

    # Token list
    tokens = [
        "ID",
        "INT",
        "EXPRESSION",
        "LPAREN",
        "RPAREN",
        "LBRACKET",
        "RBRACKET",
        "COMMA",
        "SEMI",
        "COLON",
        "EQUALS",
        "QUESTION",
        "BACKSLASH",
        "DOT",
    ] + sorted(set(reserved.values()))

    # Simple tokens
    t_LPAREN = r"\("
    t_RPAREN = r"\)"
    t_LBRACKET = r"\["
    t_RBRACKET = r"\]"
    t_COMMA = r","
    t_SEMI = r";"
    t_COLON = r":"
    t_EQUALS = r"="
    t_QUESTION = r"\?"
    t_BACKSLASH = r"\\"
    t_DOT = r"\."

    # Ignored characters (spaces, tabs, and carriage returns)
    t_ignore = " \t\r"

    # Line comments
    t_ignore_LINE_COMMENT = r"--[^\n]*"

    def __init__(self) -> None:
        self.lexer: lex.Lexer = None  # type: ignore
        self.data = ""

    def t_ignore_COMMENT(self, t: lex.LexToken) -> None:
        r"\(\*(.|\n)*?\*\)"
        t.lexer.lineno += t.value.count("\n")

    def t_EXPRESSION(self, t: lex.LexToken) -> lex.LexToken:
        r":=[^;]*;"
        # Derived-attribute expressions are kept as text, not evaluated
        t.lexer.lineno += t.value.count("\n")
        t.value = t.value[2:-1].strip()
        return t

    def t_INT(self, t: lex.LexToken) -> lex.LexToken:
        r"\d+"
        t.value = int(t.value)
        return t

    def t_ID(self, t: lex.LexToken) -> lex.LexToken:
        r"[A-Za-z][A-Za-z0-9_]*"
        # Check if it's a reserved word
        t.type = self.reserved.get(t.value.upper(), "ID")
        return t

    def t_NEWLINE(self, t: lex.LexToken) -> None:
        r"\n+"
        t.lexer.lineno += len(t.value)

    def t_error(self, t: lex.LexToken) -> None:
        line, column = line_and_column(self.data, t.lexpos)
        raise SchemaError(
            f"Illegal character {t.value[0]!r} in EXPRESS text",
            offset=t.lexpos,
            line=line,
            column=column,
        )

    def build(self, **kwargs) -> None:  # type: ignore
        """Build the lexer."""
        self.lexer = lex.lex(module=self, **kwargs)

    def input(self, data: str) -> None:
        """Set the input string to tokenize."""
        self.data = data
        self.lexer.input(data)
        self.lexer.lineno = 1

    def token(self) -> lex.LexToken | None:
        """Return the next token."""
        return self.lexer.token()

    def tokenize(self, data: str) -> list[lex.LexToken]:
        """Tokenize the input and return all tokens."""
        self.input(data)
        tokens = []
        while True:
            tok = self.token()
            if tok is None:
                break
            tokens.append(tok)
        return tokens
