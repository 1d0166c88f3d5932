"""Lexer for ISO 10303-21 exchange structures."""

from __future__ import annotations

import re
from typing import Iterator

import ply.lex as lex

from stepfile.errors import LexError

_ALPHABET_DIRECTIVE = re.compile(r"\\P[A-I]\\")


def line_and_column(data: str, offset: int) -> tuple[int, int]:
    """Return the 1-based line and column of ``offset`` in ``data``."""
    line = data.count("\n", 0, offset) + 1
    column = offset - data.rfind("\n", 0, offset)
    return line, column


def decode_string(body: str) -> str:
    """Decode the contents of a string literal (without the outer quotes).

    Handles doubled apostrophes and the control directives ``\\\\``,
    ``\\S\\``, ``\\X\\``, ``\\X2\\ ... \\X0\\``, ``\\X4\\ ... \\X0\\`` and
    ``\\PA\\``. Line breaks inside a literal are not part of its value.
    A backslash that starts no known directive is kept as-is.

    Raises:
        ValueError: If a directive is malformed.
    """
    body = body.replace("\r", "").replace("\n", "")
    out: list[str] = []
    i = 0
    n = len(body)
    while i < n:
        c = body[i]
        if c == "'":
            out.append("'")
            i += 2
            continue
        if c != "\\":
            out.append(c)
            i += 1
            continue

        if body.startswith("\\\\", i):
            out.append("\\")
            i += 2
        elif body.startswith("\\X2\\", i) or body.startswith("\\X4\\", i):
            width = 4 if body[i + 2] == "2" else 8
            end = body.find("\\X0\\", i + 4)
            if end < 0:
                raise ValueError("Unterminated \\X2\\ or \\X4\\ directive")
            digits = body[i + 4:end]
            if len(digits) % width:
                raise ValueError(f"Bad hex length in extended directive: {digits!r}")
            for k in range(0, len(digits), width):
                out.append(chr(int(digits[k:k + width], 16)))
            i = end + 4
        elif body.startswith("\\X\\", i):
            digits = body[i + 3:i + 5]
            if len(digits) != 2:
                raise ValueError("Truncated \\X\\ directive")
            out.append(chr(int(digits, 16)))
            i += 5
        elif body.startswith("\\S\\", i):
            if i + 3 >= n:
                raise ValueError("Truncated \\S\\ directive")
            out.append(chr(ord(body[i + 3]) + 128))
            i += 5 if body[i + 3] == "'" else 4
        elif _ALPHABET_DIRECTIVE.match(body, i):
            i += 4
        else:
            out.append("\\")
            i += 1
    return "".join(out)


class StepLexer:
    """Lexer for tokenizing exchange structure text."""

    # Reserved section keywords
    reserved = {
        "HEADER": "HEADER",
        "DATA": "DATA",
        "ENDSEC": "ENDSEC",
    }

    # Token list
    tokens = [
        "ISO",
        "END_ISO",
        "KEYWORD",
        "ENTITY_NAME",
        "INTEGER",
        "REAL",
        "STRING",
        "BINARY",
        "ENUMERATION",
        "DOLLAR",
        "STAR",
        "LPAREN",
        "RPAREN",
        "COMMA",
        "SEMI",
        "EQUALS",
    ] + list(reserved.values())

    # Simple tokens
    t_DOLLAR = r"\$"
    t_STAR = r"\*"
    t_LPAREN = r"\("
    t_RPAREN = r"\)"
    t_COMMA = r","
    t_SEMI = r";"
    t_EQUALS = r"="

    # Ignored characters (newlines are counted in t_NEWLINE)
    t_ignore = " \t\r\f"

    def __init__(self) -> None:
        self.lexer: lex.Lexer = None  # type: ignore
        self.data = ""

    def t_COMMENT(self, t: lex.LexToken) -> None:
        r"/\*(.|\n)*?\*/"
        t.lexer.lineno += t.value.count("\n")

    def t_END_ISO(self, t: lex.LexToken) -> lex.LexToken:
        r"END-ISO-10303-21"
        return t

    def t_ISO(self, t: lex.LexToken) -> lex.LexToken:
        r"ISO-10303-21"
        return t

    def t_REAL(self, t: lex.LexToken) -> lex.LexToken:
        r"[+-]?\d+(\.\d*([eE][+-]?\d+)?|[eE][+-]?\d+)"
        t.value = float(t.value)
        return t

    def t_INTEGER(self, t: lex.LexToken) -> lex.LexToken:
        r"[+-]?\d+"
        t.value = int(t.value)
        return t

    def t_ENTITY_NAME(self, t: lex.LexToken) -> lex.LexToken:
        r"\#\d+"
        t.value = int(t.value[1:])
        return t

    def t_STRING(self, t: lex.LexToken) -> lex.LexToken:
        r"'([^']|'')*'"
        start = t.lexpos
        t.lexer.lineno += t.value.count("\n")
        try:
            t.value = decode_string(t.value[1:-1])
        except ValueError as exc:
            raise self._error(str(exc), start) from exc
        return t

    def t_BINARY(self, t: lex.LexToken) -> lex.LexToken:
        r'"[0-3][0-9A-Fa-f]*"'
        t.value = (int(t.value[1]), t.value[2:-1].upper())
        return t

    def t_ENUMERATION(self, t: lex.LexToken) -> lex.LexToken:
        r"\.[A-Za-z_][A-Za-z0-9_]*\."
        t.value = t.value[1:-1].upper()
        return t

    def t_KEYWORD(self, t: lex.LexToken) -> lex.LexToken:
        r"!?[A-Za-z_][A-Za-z0-9_]*"
        # Check if it's a reserved word
        t.type = self.reserved.get(t.value, "KEYWORD")
        return t

    def t_NEWLINE(self, t: lex.LexToken) -> None:
        r"\n+"
        t.lexer.lineno += len(t.value)
        # Newlines produce no token

    def t_error(self, t: lex.LexToken) -> None:
        char = t.value[0]
        if char == "'":
            message = "Unterminated string literal"
        elif char == '"':
            message = "Malformed binary literal"
        elif t.value.startswith("/*"):
            message = "Unterminated comment"
        else:
            message = f"Illegal character {char!r}"
        raise self._error(message, t.lexpos)

    def _error(self, message: str, offset: int) -> LexError:
        line, column = line_and_column(self.data, offset)
        return LexError(message, offset=offset, line=line, column=column)

    def build(self, **kwargs) -> None:  # type: ignore
        """Build the lexer."""
        self.lexer = lex.lex(module=self, **kwargs)

    def input(self, data: str, pos: int = 0) -> None:
        """Set the input string to tokenize, starting at character ``pos``."""
        if self.lexer is None:
            self.build()
        self.data = data
        self.lexer.input(data)
        self.lexer.lexpos = pos
        self.lexer.lineno = data.count("\n", 0, pos) + 1

    def token(self) -> lex.LexToken | None:
        """Return the next token."""
        return self.lexer.token()

    def iter_tokens(self, data: str, pos: int = 0) -> Iterator[lex.LexToken]:
        """Lazily yield tokens of ``data`` starting at character ``pos``."""
        self.input(data, pos)
        while True:
            tok = self.token()
            if tok is None:
                return
            yield tok

    def tokenize(self, data: str) -> list[lex.LexToken]:
        """Tokenize the input and return all tokens."""
        return list(self.iter_tokens(data))
