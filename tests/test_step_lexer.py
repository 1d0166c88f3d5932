"""Tests for the exchange-structure lexer."""

import pytest

from stepfile.errors import LexError
from stepfile.parsing.step_lexer import StepLexer, decode_string, line_and_column


@pytest.fixture
def lexer():
    lexer = StepLexer()
    lexer.build()
    return lexer


def types_of(lexer, text):
    return [t.type for t in lexer.tokenize(text)]


class TestTokens:
    """Tests for token classification."""

    def test_tokenize_simple_instance(self, lexer):
        """Test tokenizing a simple entity instance."""
        assert types_of(lexer, "#10 = POINT(1.0, 2.0, $);") == [
            "ENTITY_NAME",
            "EQUALS",
            "KEYWORD",
            "LPAREN",
            "REAL",
            "COMMA",
            "REAL",
            "COMMA",
            "DOLLAR",
            "RPAREN",
            "SEMI",
        ]

    def test_entity_name_value(self, lexer):
        """Test that instance names carry their integer id."""
        tokens = lexer.tokenize("#42")
        assert tokens[0].value == 42

    def test_integer_and_real(self, lexer):
        """Test distinguishing integers from reals in all spellings."""
        tokens = lexer.tokenize("42 -7 +3 1.0 -2. 1.5E-3 2e10")
        assert [t.type for t in tokens] == [
            "INTEGER",
            "INTEGER",
            "INTEGER",
            "REAL",
            "REAL",
            "REAL",
            "REAL",
        ]
        assert [t.value for t in tokens] == [42, -7, 3, 1.0, -2.0, 1.5e-3, 2e10]

    def test_enumeration(self, lexer):
        """Test that enumeration values are upper-cased without dots."""
        tokens = lexer.tokenize(".T. .unspecified.")
        assert [t.type for t in tokens] == ["ENUMERATION", "ENUMERATION"]
        assert [t.value for t in tokens] == ["T", "UNSPECIFIED"]

    def test_binary(self, lexer):
        """Test binary literal values."""
        tokens = lexer.tokenize('"0A3F"')
        assert tokens[0].type == "BINARY"
        assert tokens[0].value == (0, "A3F")

    def test_sentinels(self, lexer):
        """Test the unset and omitted sentinels."""
        assert types_of(lexer, "$ *") == ["DOLLAR", "STAR"]

    def test_section_keywords(self, lexer):
        """Test reserved section keywords and file delimiters."""
        text = "ISO-10303-21; HEADER; ENDSEC; DATA; ENDSEC; END-ISO-10303-21;"
        assert types_of(lexer, text) == [
            "ISO",
            "SEMI",
            "HEADER",
            "SEMI",
            "ENDSEC",
            "SEMI",
            "DATA",
            "SEMI",
            "ENDSEC",
            "SEMI",
            "END_ISO",
            "SEMI",
        ]

    def test_user_defined_keyword(self, lexer):
        """Test that user-defined keywords keep their leading '!'."""
        tokens = lexer.tokenize("!MY_ENTITY")
        assert tokens[0].type == "KEYWORD"
        assert tokens[0].value == "!MY_ENTITY"

    def test_comments_skipped(self, lexer):
        """Test that comments produce no tokens."""
        assert types_of(lexer, "/* a\ncomment */ #1") == ["ENTITY_NAME"]

    def test_line_numbers(self, lexer):
        """Test that line numbers account for newlines inside comments and strings."""
        tokens = lexer.tokenize("/* one\ntwo */\n'a\nb'\n#1")
        assert tokens[0].lineno == 3
        assert tokens[1].lineno == 5

    def test_iter_tokens_from_offset(self, lexer):
        """Test lexing lazily from the middle of the text."""
        text = "#1 = A();\n#2 = B();"
        start = text.index("#2")
        tokens = list(lexer.iter_tokens(text, start))
        assert tokens[0].value == 2
        assert tokens[0].lineno == 2


class TestStrings:
    """Tests for string literals and control directives."""

    def test_plain_string(self, lexer):
        """Test a simple string literal."""
        tokens = lexer.tokenize("'hello world'")
        assert tokens[0].type == "STRING"
        assert tokens[0].value == "hello world"

    def test_doubled_apostrophe(self):
        """Test that a doubled apostrophe decodes to one."""
        assert decode_string("it''s") == "it's"

    def test_backslash(self):
        """Test the escaped backslash directive."""
        assert decode_string("a\\\\b") == "a\\b"

    def test_x2_directive(self):
        """Test UCS-2 hex encoding."""
        assert decode_string("\\X2\\00E9\\X0\\t\\X2\\00E900E8\\X0\\") == "\u00e9t\u00e9\u00e8"

    def test_x4_directive(self):
        """Test UCS-4 hex encoding."""
        assert decode_string("\\X4\\0001F600\\X0\\") == "\U0001F600"

    def test_x_directive(self):
        """Test ISO 8859-1 hex encoding."""
        assert decode_string("caf\\X\\E9") == "caf\u00e9"

    def test_s_directive(self):
        """Test the high-half directive."""
        assert decode_string("\\S\\i") == chr(ord("i") + 128)

    def test_alphabet_directive_ignored(self):
        """Test that alphabet switches produce no characters."""
        assert decode_string("\\PA\\abc") == "abc"

    def test_line_breaks_dropped(self):
        """Test that line breaks inside a literal are not part of its value."""
        assert decode_string("ab\r\ncd") == "abcd"

    def test_unknown_backslash_kept(self):
        """Test that a backslash starting no directive is kept."""
        assert decode_string("C:\\temp") == "C:\\temp"

    def test_unterminated_extended_directive(self, lexer):
        """Test that a malformed directive is a lexing error at the literal."""
        with pytest.raises(LexError) as exc_info:
            lexer.tokenize("#1 = A('\\X2\\00E9');")
        assert exc_info.value.offset == 7


class TestLexErrors:
    """Tests for lexing failures."""

    def test_illegal_character(self, lexer):
        """Test error on an illegal character, with its location."""
        with pytest.raises(LexError) as exc_info:
            lexer.tokenize("#1 = A(\n  @);")
        error = exc_info.value
        assert error.offset == 10
        assert error.line == 2
        assert error.column == 3
        assert "Illegal character" in str(error)

    def test_lex_error_is_syntax_error(self, lexer):
        """Test that lexing errors are SyntaxErrors."""
        with pytest.raises(SyntaxError):
            lexer.tokenize("#1 = A(@);")

    def test_unterminated_string(self, lexer):
        """Test error on a string literal without a closing quote."""
        with pytest.raises(LexError, match="Unterminated string"):
            lexer.tokenize("#1 = A('abc);")

    def test_unterminated_comment(self, lexer):
        """Test error on a comment without a closing delimiter."""
        with pytest.raises(LexError, match="Unterminated comment"):
            lexer.tokenize("#1 = A(); /* never closed")

    def test_malformed_binary(self, lexer):
        """Test error on a binary literal with a bad leading digit."""
        with pytest.raises(LexError, match="Malformed binary"):
            lexer.tokenize('"7FF"')


class TestLineAndColumn:
    """Tests for offset to line/column conversion."""

    def test_first_line(self):
        assert line_and_column("abc", 1) == (1, 2)

    def test_later_line(self):
        assert line_and_column("ab\ncd\nef", 7) == (3, 2)
