"""
Expression language front end.

This package provides:
- Lexer: Tokenizes expression text
- Parser: Builds an AST from tokens
- Errors: Diagnostics and the engine's exception taxonomy

Usage:
    from livecontrol.expr import parse_expression, parse_program

    expr = parse_expression("clamp(x, 0, 1)")
    prog = parse_program("a = t * 2; b = a + 1")
"""

from .tokens import (
    Token,
    TokenType,
    SourceLocation,
    SourceSpan,
    NO_SPAN,
    KEYWORDS,
)

from .lexer import (
    Lexer,
    tokenize,
)

from .parser import (
    Parser,
    parse_expression,
    parse_program,
    clear_cache,
)

from .ast import (
    AstNode,
    AstVisitor,
    Expression,
    Literal,
    Identifier,
    BinaryOp,
    UnaryOp,
    FunctionCall,
    TupleLiteral,
    ConditionalExpr,
    Statement,
    Assignment,
    ExpressionStatement,
    Program,
    free_names,
)

from .errors import (
    ErrorSeverity,
    Diagnostic,
    DiagnosticCollector,
    LivecodeError,
    MalformedExpression,
    LexerError,
    ParserError,
    UnknownIdentifier,
    TypeMismatch,
    StructuralMismatch,
    ConfigurationError,
)

__all__ = [
    # Tokens
    'Token',
    'TokenType',
    'SourceLocation',
    'SourceSpan',
    'NO_SPAN',
    'KEYWORDS',

    # Lexer / parser
    'Lexer',
    'tokenize',
    'Parser',
    'parse_expression',
    'parse_program',
    'clear_cache',

    # AST
    'AstNode',
    'AstVisitor',
    'Expression',
    'Literal',
    'Identifier',
    'BinaryOp',
    'UnaryOp',
    'FunctionCall',
    'TupleLiteral',
    'ConditionalExpr',
    'Statement',
    'Assignment',
    'ExpressionStatement',
    'Program',
    'free_names',

    # Errors
    'ErrorSeverity',
    'Diagnostic',
    'DiagnosticCollector',
    'LivecodeError',
    'MalformedExpression',
    'LexerError',
    'ParserError',
    'UnknownIdentifier',
    'TypeMismatch',
    'StructuralMismatch',
    'ConfigurationError',
]
