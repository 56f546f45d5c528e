"""
Token types for the livecontrol expression lexer.

The expression language is a small infix grammar: arithmetic, comparison,
boolean logic, function calls, tuples and (inside context programs)
assignment statements separated by semicolons.

Error code ranges:
- E0xx: Lexer errors
- E1xx: Parser errors
- E2xx: Resolution errors
- E3xx: Structural/configuration errors
"""

from enum import Enum, auto
from dataclasses import dataclass
from typing import Any, Optional


class TokenType(Enum):
    """All token types recognized by the expression lexer."""

    # --- Literals ---
    INT_LITERAL = auto()        # 42
    FLOAT_LITERAL = auto()      # 3.14, 1e-9, .5
    BOOL_LITERAL = auto()       # true, false, True, False

    # --- Identifiers ---
    IDENTIFIER = auto()         # signal, binding or function names

    # --- Keywords ---
    IF = auto()                 # if (ternary)
    ELSE = auto()               # else (ternary)

    # --- Arithmetic operators ---
    PLUS = auto()               # +
    MINUS = auto()              # -
    STAR = auto()               # *
    SLASH = auto()              # /
    PERCENT = auto()            # %
    CARET = auto()              # ^ (power)
    DOUBLE_STAR = auto()        # ** (power)

    # --- Comparison operators ---
    LT = auto()                 # <
    GT = auto()                 # >
    LE = auto()                 # <=
    GE = auto()                 # >=
    EQ = auto()                 # ==
    NE = auto()                 # !=

    # --- Logical operators ---
    AND = auto()                # and, &&
    OR = auto()                 # or, ||
    NOT = auto()                # not, !

    # --- Assignment ---
    ASSIGN = auto()             # =

    # --- Delimiters ---
    LPAREN = auto()             # (
    RPAREN = auto()             # )
    COMMA = auto()              # ,
    SEMICOLON = auto()          # ; (statement separator in programs)

    # --- Special ---
    EOF = auto()                # end of input


@dataclass(frozen=True)
class SourceLocation:
    """Represents a position in expression source."""
    line: int           # 1-indexed line number
    column: int         # 1-indexed column number
    offset: int         # 0-indexed character offset from start
    filename: Optional[str] = None

    def __str__(self) -> str:
        if self.filename:
            return f"{self.filename}:{self.line}:{self.column}"
        return f"{self.line}:{self.column}"


@dataclass(frozen=True)
class SourceSpan:
    """Represents a range in expression source."""
    start: SourceLocation
    end: SourceLocation

    def __str__(self) -> str:
        if self.start.filename:
            return f"{self.start.filename}:{self.start.line}:{self.start.column}-{self.end.line}:{self.end.column}"
        return f"{self.start.line}:{self.start.column}-{self.end.line}:{self.end.column}"


# Used for values and errors that do not come from parsed text
NO_LOCATION = SourceLocation(1, 1, 0)
NO_SPAN = SourceSpan(NO_LOCATION, NO_LOCATION)


@dataclass(frozen=True)
class Token:
    """A single token from the lexer."""
    type: TokenType
    value: Any              # int, float, bool or identifier text
    lexeme: str             # The original source text
    span: SourceSpan        # Location in source

    def __str__(self) -> str:
        if self.type in (TokenType.INT_LITERAL, TokenType.FLOAT_LITERAL,
                         TokenType.BOOL_LITERAL, TokenType.IDENTIFIER):
            return f"{self.type.name}({self.value!r})"
        return self.type.name


# Keyword mapping - maps word to token type
KEYWORDS: dict[str, TokenType] = {
    "if": TokenType.IF,
    "else": TokenType.ELSE,

    # Logical operators (word form)
    "and": TokenType.AND,
    "or": TokenType.OR,
    "not": TokenType.NOT,

    # Boolean literals, both spellings
    "True": TokenType.BOOL_LITERAL,
    "False": TokenType.BOOL_LITERAL,
    "true": TokenType.BOOL_LITERAL,
    "false": TokenType.BOOL_LITERAL,
}


def is_comparison_token(token_type: TokenType) -> bool:
    """Check if a token type is a comparison operator."""
    return token_type in (TokenType.LT, TokenType.GT, TokenType.LE,
                          TokenType.GE, TokenType.EQ, TokenType.NE)
