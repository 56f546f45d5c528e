"""
Recursive descent parser for the livecontrol expression language.

Converts a token stream into an AST. Two entry points:
- `parse_expression`: a single expression (a control value)
- `parse_program`: ';'-separated statements (a context snippet)
"""

from functools import lru_cache
from typing import List, Optional
from .tokens import Token, TokenType, SourceSpan
from .lexer import tokenize
from .ast import (
    Expression, Literal, Identifier, BinaryOp, UnaryOp,
    FunctionCall, TupleLiteral, ConditionalExpr,
    Statement, Assignment, ExpressionStatement, Program,
)
from .errors import (
    ParserError,
    error_unexpected_token,
    error_unexpected_eof,
    error_empty_expression,
    error_invalid_assignment_target,
)


class Parser:
    """
    Recursive descent parser for expressions and context programs.

    Usage:
        parser = Parser(tokenize("sin(t) * 0.5"))
        expr = parser.parse_expression()

    Precedence climbing, lowest to highest:
        Lowest:  a if c else b
                 or ||
                 and &&
                 == !=
                 < > <= >=
                 + -
                 * / %
                 ^ ** (power, right-associative)
        Highest: unary (- ! not)
    """

    # Operator precedence levels (higher = tighter binding)
    PRECEDENCE = {
        TokenType.OR: 1,
        TokenType.AND: 2,
        TokenType.EQ: 3,
        TokenType.NE: 3,
        TokenType.LT: 4,
        TokenType.GT: 4,
        TokenType.LE: 4,
        TokenType.GE: 4,
        TokenType.PLUS: 5,
        TokenType.MINUS: 5,
        TokenType.STAR: 6,
        TokenType.SLASH: 6,
        TokenType.PERCENT: 6,
        TokenType.CARET: 8,
        TokenType.DOUBLE_STAR: 8,
    }

    # Unary binds between multiplicative and power, so -x^2 == -(x^2)
    UNARY_PRECEDENCE = 7

    RIGHT_ASSOCIATIVE = {TokenType.CARET, TokenType.DOUBLE_STAR}

    def __init__(self, tokens: List[Token], source: Optional[str] = None):
        self.tokens = tokens
        self.source = source
        self.pos = 0

    # =========================================================================
    # Token Navigation
    # =========================================================================

    def _current(self) -> Token:
        if self.pos >= len(self.tokens):
            return self.tokens[-1]  # EOF
        return self.tokens[self.pos]

    def _peek(self, offset: int = 0) -> Token:
        idx = self.pos + offset
        if idx >= len(self.tokens):
            return self.tokens[-1]
        return self.tokens[idx]

    def _is_at_end(self) -> bool:
        return self._current().type == TokenType.EOF

    def _check(self, token_type: TokenType) -> bool:
        return self._current().type == token_type

    def _check_any(self, *token_types: TokenType) -> bool:
        return self._current().type in token_types

    def _advance(self) -> Token:
        token = self._current()
        if not self._is_at_end():
            self.pos += 1
        return token

    def _consume(self, token_type: TokenType, expected: str) -> Token:
        """Consume token of expected type, or raise error."""
        if self._check(token_type):
            return self._advance()
        self._error(expected)

    def _match(self, *token_types: TokenType) -> Optional[Token]:
        if self._current().type in token_types:
            return self._advance()
        return None

    def _source_line(self, line: int) -> Optional[str]:
        if self.source is None:
            return None
        lines = self.source.splitlines()
        if 1 <= line <= len(lines):
            return lines[line - 1]
        return None

    def _error(self, expected: str) -> None:
        """Raise a parser error."""
        token = self._current()
        source_line = self._source_line(token.span.start.line)
        if token.type == TokenType.EOF:
            raise error_unexpected_eof(expected, token.span, source_line)
        raise error_unexpected_token(expected, repr(token.lexeme), token.span, source_line)

    def _span_from(self, start: Token) -> SourceSpan:
        """Create a span from start token to the previous token's end."""
        end_token = self.tokens[max(0, self.pos - 1)]
        return SourceSpan(start.span.start, end_token.span.end)

    # =========================================================================
    # Entry Points
    # =========================================================================

    def parse_expression(self) -> Expression:
        """Parse exactly one expression and require end of input."""
        if self._is_at_end():
            raise error_empty_expression(self.source)
        expr = self._parse_expression()
        if not self._is_at_end():
            self._error("end of expression")
        return expr

    def parse_program(self) -> Program:
        """Parse ';'-separated statements. Empty programs are allowed."""
        start = self._current()
        statements: List[Statement] = []

        while not self._is_at_end():
            if self._match(TokenType.SEMICOLON):
                continue
            statements.append(self._parse_statement())
            if not self._is_at_end():
                self._consume(TokenType.SEMICOLON, "';'")

        return Program(span=self._span_from(start), statements=statements)

    # =========================================================================
    # Statements
    # =========================================================================

    def _parse_statement(self) -> Statement:
        start = self._current()
        if self._check(TokenType.IDENTIFIER) and self._peek(1).type == TokenType.ASSIGN:
            name = self._advance().value
            self._advance()  # consume '='
            value = self._parse_expression()
            return Assignment(span=self._span_from(start), target=name, value=value)

        expr = self._parse_expression()
        if self._check(TokenType.ASSIGN):
            raise error_invalid_assignment_target(
                expr.span, self._source_line(expr.span.start.line)
            )
        return ExpressionStatement(span=expr.span, expression=expr)

    # =========================================================================
    # Expression Parsing (Precedence Climbing)
    # =========================================================================

    def _parse_expression(self) -> Expression:
        return self._parse_conditional_expr()

    def _parse_conditional_expr(self) -> Expression:
        """Parse a ternary: expr if condition else expr."""
        true_branch = self._parse_binary_expr(0)

        if not self._match(TokenType.IF):
            return true_branch

        condition = self._parse_binary_expr(0)
        self._consume(TokenType.ELSE, "'else'")
        false_branch = self._parse_conditional_expr()

        return ConditionalExpr(
            span=SourceSpan(true_branch.span.start, false_branch.span.end),
            condition=condition,
            true_branch=true_branch,
            false_branch=false_branch
        )

    def _parse_binary_expr(self, min_precedence: int) -> Expression:
        """Parse binary expressions with precedence climbing."""
        left = self._parse_unary_expr()

        while True:
            op_token = self._current()
            precedence = self.PRECEDENCE.get(op_token.type)

            if precedence is None or precedence < min_precedence:
                break

            self._advance()

            next_precedence = precedence if op_token.type in self.RIGHT_ASSOCIATIVE else precedence + 1
            right = self._parse_binary_expr(next_precedence)

            left = BinaryOp(
                span=SourceSpan(left.span.start, right.span.end),
                left=left,
                operator=op_token.type,
                right=right
            )

        return left

    def _parse_unary_expr(self) -> Expression:
        """Parse unary expressions (-, !, not)."""
        if self._check_any(TokenType.NOT, TokenType.MINUS, TokenType.PLUS):
            op = self._advance()
            operand = self._parse_binary_expr(self.UNARY_PRECEDENCE + 1)
            if op.type == TokenType.PLUS:
                return operand
            return UnaryOp(
                span=SourceSpan(op.span.start, operand.span.end),
                operator=op.type,
                operand=operand
            )

        return self._parse_primary_expr()

    def _parse_call(self, name_token: Token) -> FunctionCall:
        self._consume(TokenType.LPAREN, "'('")
        args: List[Expression] = []

        if not self._check(TokenType.RPAREN):
            args.append(self._parse_expression())
            while self._match(TokenType.COMMA):
                if self._check(TokenType.RPAREN):
                    break  # Allow trailing comma
                args.append(self._parse_expression())

        self._consume(TokenType.RPAREN, "')'")
        return FunctionCall(
            span=self._span_from(name_token),
            name=name_token.value,
            arguments=args,
        )

    def _parse_grouped_or_tuple(self) -> Expression:
        """Parse '(expr)' or a tuple '(a, b, ...)'."""
        start = self._advance()  # consume '('

        if self._match(TokenType.RPAREN):
            return TupleLiteral(span=self._span_from(start), elements=[])

        first = self._parse_expression()
        if self._match(TokenType.RPAREN):
            return first

        elements = [first]
        while self._match(TokenType.COMMA):
            if self._check(TokenType.RPAREN):
                break
            elements.append(self._parse_expression())
        self._consume(TokenType.RPAREN, "')' or ','")
        return TupleLiteral(span=self._span_from(start), elements=elements)

    def _parse_primary_expr(self) -> Expression:
        """Parse primary expressions (literals, names, calls, groups)."""
        token = self._current()

        if token.type in (TokenType.INT_LITERAL, TokenType.FLOAT_LITERAL,
                          TokenType.BOOL_LITERAL):
            self._advance()
            return Literal(span=token.span, value=token.value, literal_type=token.type)

        if token.type == TokenType.IDENTIFIER:
            self._advance()
            if self._check(TokenType.LPAREN):
                return self._parse_call(token)
            return Identifier(span=token.span, name=token.value)

        if token.type == TokenType.LPAREN:
            return self._parse_grouped_or_tuple()

        self._error("expression")


def parse_expression(source: str) -> Expression:
    """
    Parse expression text into an AST.

    Raises:
        LexerError, ParserError: If the text is malformed
    """
    return _parse_expression_cached(source)


def parse_program(source: str) -> Program:
    """
    Parse a context program (';'-separated statements) into an AST.

    Raises:
        LexerError, ParserError: If the text is malformed
    """
    return _parse_program_cached(source)


@lru_cache(maxsize=4096)
def _parse_expression_cached(source: str) -> Expression:
    return Parser(tokenize(source), source).parse_expression()


@lru_cache(maxsize=1024)
def _parse_program_cached(source: str) -> Program:
    return Parser(tokenize(source), source).parse_program()


def clear_cache() -> None:
    """Drop memoised parse results."""
    _parse_expression_cached.cache_clear()
    _parse_program_cached.cache_clear()
