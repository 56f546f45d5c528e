"""
Unit tests for the livecontrol expression lexer.
"""

import pytest
from livecontrol.expr import tokenize, Lexer, TokenType, LexerError


class TestLexerBasics:
    """Test basic lexer functionality."""

    def test_empty_source(self):
        """Empty source produces only EOF."""
        tokens = tokenize("")
        assert len(tokens) == 1
        assert tokens[0].type == TokenType.EOF

    def test_whitespace_and_newlines(self):
        """Whitespace, including newlines, is insignificant."""
        tokens = tokenize("  \t\n  \r\n ")
        assert [t.type for t in tokens] == [TokenType.EOF]

    def test_simple_expression(self):
        """A call with arithmetic tokenizes in order."""
        tokens = tokenize("clamp(x * 2, 0, 1)")
        types = [t.type for t in tokens]
        assert types == [
            TokenType.IDENTIFIER,
            TokenType.LPAREN,
            TokenType.IDENTIFIER,
            TokenType.STAR,
            TokenType.INT_LITERAL,
            TokenType.COMMA,
            TokenType.INT_LITERAL,
            TokenType.COMMA,
            TokenType.INT_LITERAL,
            TokenType.RPAREN,
            TokenType.EOF,
        ]

    def test_identifier_value(self):
        """Identifier token has correct value."""
        tokens = tokenize("i_rn0")
        assert tokens[0].type == TokenType.IDENTIFIER
        assert tokens[0].value == "i_rn0"

    def test_position_tracking(self):
        """Token positions are tracked correctly."""
        tokens = tokenize("a = t + 1")
        assert tokens[0].span.start.line == 1
        assert tokens[0].span.start.column == 1
        # 't' starts at column 5
        assert tokens[2].span.start.column == 5

    def test_multiline_position_tracking(self):
        """Position tracking across multiple lines."""
        tokens = tokenize("a = 1;\nb = 2")
        idents = [t for t in tokens if t.type == TokenType.IDENTIFIER]
        assert idents[0].span.start.line == 1
        assert idents[1].span.start.line == 2

    def test_comment_skipped(self):
        """A '#' comment runs to end of line."""
        tokens = tokenize("t # the beat\n+ 1")
        types = [t.type for t in tokens]
        assert types == [TokenType.IDENTIFIER, TokenType.PLUS, TokenType.INT_LITERAL, TokenType.EOF]

    def test_lexer_is_iterable(self):
        """Iterating a Lexer yields the same tokens as tokenize()."""
        assert [t.type for t in Lexer("1 + 2")] == [t.type for t in tokenize("1 + 2")]


class TestNumbers:
    """Test numeric literal scanning."""

    def test_int_literal(self):
        tokens = tokenize("42")
        assert tokens[0].type == TokenType.INT_LITERAL
        assert tokens[0].value == 42

    def test_float_literal(self):
        tokens = tokenize("3.25")
        assert tokens[0].type == TokenType.FLOAT_LITERAL
        assert tokens[0].value == 3.25

    def test_leading_dot_float(self):
        """'.5' is a float."""
        tokens = tokenize(".5")
        assert tokens[0].type == TokenType.FLOAT_LITERAL
        assert tokens[0].value == 0.5

    def test_scientific_notation(self):
        """Exponents make a float, with optional sign."""
        tokens = tokenize("1e-3 2E+2 5e1")
        values = [t.value for t in tokens if t.type == TokenType.FLOAT_LITERAL]
        assert values == [0.001, 200.0, 50.0]

    def test_bad_exponent(self):
        """An exponent without digits is E002."""
        with pytest.raises(LexerError) as exc_info:
            tokenize("1e+")
        assert exc_info.value.code == "E002"


class TestOperators:
    """Test operator and keyword scanning."""

    def test_two_char_operators(self):
        tokens = tokenize("== != <= >= ** && ||")
        types = [t.type for t in tokens[:-1]]
        assert types == [
            TokenType.EQ, TokenType.NE, TokenType.LE, TokenType.GE,
            TokenType.DOUBLE_STAR, TokenType.AND, TokenType.OR,
        ]

    def test_single_char_operators(self):
        tokens = tokenize("+ - * / % ^ < > ! = ;")
        types = [t.type for t in tokens[:-1]]
        assert types == [
            TokenType.PLUS, TokenType.MINUS, TokenType.STAR, TokenType.SLASH,
            TokenType.PERCENT, TokenType.CARET, TokenType.LT, TokenType.GT,
            TokenType.NOT, TokenType.ASSIGN, TokenType.SEMICOLON,
        ]

    def test_word_operators(self):
        """'and', 'or' and 'not' are the same tokens as their symbols."""
        tokens = tokenize("a and b or not c")
        types = [t.type for t in tokens if t.type != TokenType.IDENTIFIER]
        assert types == [TokenType.AND, TokenType.OR, TokenType.NOT, TokenType.EOF]

    def test_bool_literals_both_spellings(self):
        tokens = tokenize("true false True False")
        assert [t.value for t in tokens[:-1]] == [True, False, True, False]
        assert all(t.type == TokenType.BOOL_LITERAL for t in tokens[:-1])

    def test_ternary_keywords(self):
        tokens = tokenize("a if c else b")
        assert tokens[1].type == TokenType.IF
        assert tokens[3].type == TokenType.ELSE


class TestLexerErrors:
    """Test lexer error reporting."""

    def test_unexpected_character(self):
        """Unknown characters are E001 with a location."""
        with pytest.raises(LexerError) as exc_info:
            tokenize("t @ 2")
        err = exc_info.value
        assert err.code == "E001"
        assert err.diagnostic.span.start.column == 3

    def test_lone_ampersand(self):
        """A single '&' is E003."""
        with pytest.raises(LexerError) as exc_info:
            tokenize("a & b")
        assert exc_info.value.code == "E003"

    def test_lone_pipe(self):
        with pytest.raises(LexerError) as exc_info:
            tokenize("a | b")
        assert exc_info.value.code == "E003"

    def test_error_formats_source_line(self):
        """The formatted diagnostic echoes the offending text."""
        with pytest.raises(LexerError) as exc_info:
            tokenize("sin($)")
        assert "sin($)" in exc_info.value.diagnostic.format()
