"""
Tree-walking interpreter for expressions and context programs.

Evaluation is pure: an expression reads names from a namespace mapping and
calls builtins. Context programs additionally produce a dict of new
bindings, which the evaluation context layers on top of what it had.
"""

import math
from collections import ChainMap
from typing import Dict, Mapping, Optional

from .values import (
    Value, ValueKind, EMPTY,
    int_val, float_val, bool_val, tuple_val,
)
from .builtins import BuiltinRegistry, get_builtin_registry
from ..expr.ast import (
    Expression, Literal, Identifier, BinaryOp, UnaryOp,
    FunctionCall, TupleLiteral, ConditionalExpr,
    Assignment, ExpressionStatement, Program,
)
from ..expr.errors import (
    LivecodeError,
    error_unknown_identifier,
    error_unknown_function,
    error_type_mismatch,
)
from ..expr.tokens import TokenType


_ARITHMETIC = {TokenType.PLUS, TokenType.MINUS, TokenType.STAR,
               TokenType.SLASH, TokenType.PERCENT, TokenType.CARET,
               TokenType.DOUBLE_STAR}

_ORDERING = {TokenType.LT, TokenType.GT, TokenType.LE, TokenType.GE}

_OPERATOR_TEXT = {
    TokenType.PLUS: "+", TokenType.MINUS: "-", TokenType.STAR: "*",
    TokenType.SLASH: "/", TokenType.PERCENT: "%", TokenType.CARET: "^",
    TokenType.DOUBLE_STAR: "**", TokenType.LT: "<", TokenType.GT: ">",
    TokenType.LE: "<=", TokenType.GE: ">=", TokenType.EQ: "==",
    TokenType.NE: "!=", TokenType.AND: "and", TokenType.OR: "or",
    TokenType.NOT: "not",
}


def _ieee_divide(a: float, b: float) -> float:
    if b != 0.0:
        return a / b
    if a == 0.0 or math.isnan(a):
        return math.nan
    return math.copysign(math.inf, a) * math.copysign(1.0, b)


# Integer powers stay exact while the result fits in this many bits
INT_POWER_BITS = 63


def _truncated_divide(a: int, b: int) -> int:
    q = abs(a) // abs(b)
    return q if (a < 0) == (b < 0) else -q


def _float_power(a: float, b: float) -> float:
    try:
        return math.pow(a, b)
    except ValueError:
        return math.nan
    except OverflowError:
        return -math.inf if a < 0 and b % 2 == 1 else math.inf


class Interpreter:
    """
    Tree-walking evaluator.

    Evaluates AST nodes by dispatching to node-specific methods. One
    interpreter can be shared; it holds no per-evaluation state.
    """

    def __init__(self, registry: Optional[BuiltinRegistry] = None):
        self.registry = registry or get_builtin_registry()

    def evaluate(self, expr: Expression, namespace: Mapping[str, Value],
                 source: Optional[str] = None) -> Value:
        """Evaluate an expression against a namespace."""
        try:
            return self._evaluate(expr, namespace)
        except LivecodeError as e:
            if e.diagnostic.source_line is None and source is not None:
                e.diagnostic.source_line = source
            raise

    def run_program(self, program: Program, namespace: Mapping[str, Value],
                    source: Optional[str] = None) -> Dict[str, Value]:
        """
        Run a context program and return the bindings it assigned.

        Statements see the bindings assigned by earlier statements.
        """
        assigned: Dict[str, Value] = {}
        scope = ChainMap(assigned, namespace)
        try:
            for stmt in program.statements:
                if isinstance(stmt, Assignment):
                    assigned[stmt.target] = self._evaluate(stmt.value, scope)
                elif isinstance(stmt, ExpressionStatement):
                    self._evaluate(stmt.expression, scope)
        except LivecodeError as e:
            if e.diagnostic.source_line is None and source is not None:
                e.diagnostic.source_line = source
            raise
        return assigned

    def program_value(self, program: Program, namespace: Mapping[str, Value]) -> Value:
        """Value of the last expression statement, or EMPTY."""
        assigned: Dict[str, Value] = {}
        scope = ChainMap(assigned, namespace)
        result = EMPTY
        for stmt in program.statements:
            if isinstance(stmt, Assignment):
                assigned[stmt.target] = self._evaluate(stmt.value, scope)
                result = EMPTY
            else:
                result = self._evaluate(stmt.expression, scope)
        return result

    # =========================================================================
    # Dispatch
    # =========================================================================

    def _evaluate(self, expr: Expression, ns: Mapping[str, Value]) -> Value:
        if isinstance(expr, Literal):
            return self._eval_literal(expr)
        elif isinstance(expr, Identifier):
            return self._eval_identifier(expr, ns)
        elif isinstance(expr, BinaryOp):
            return self._eval_binary_op(expr, ns)
        elif isinstance(expr, UnaryOp):
            return self._eval_unary_op(expr, ns)
        elif isinstance(expr, FunctionCall):
            return self._eval_function_call(expr, ns)
        elif isinstance(expr, TupleLiteral):
            return tuple_val(self._evaluate(e, ns) for e in expr.elements)
        elif isinstance(expr, ConditionalExpr):
            return self._eval_conditional(expr, ns)
        else:
            raise error_type_mismatch("expression", type(expr).__name__)

    def _eval_literal(self, lit: Literal) -> Value:
        if lit.literal_type == TokenType.INT_LITERAL:
            return int_val(lit.value)
        elif lit.literal_type == TokenType.FLOAT_LITERAL:
            return float_val(lit.value)
        return bool_val(lit.value)

    def _eval_identifier(self, ident: Identifier, ns: Mapping[str, Value]) -> Value:
        try:
            return ns[ident.name]
        except KeyError:
            raise error_unknown_identifier(ident.name, ident.span) from None

    def _eval_binary_op(self, op: BinaryOp, ns: Mapping[str, Value]) -> Value:
        # Short-circuit logical operators
        if op.operator in (TokenType.AND, TokenType.OR):
            left = self._expect_bool(self._evaluate(op.left, ns), op)
            if op.operator == TokenType.AND and not left:
                return bool_val(False)
            if op.operator == TokenType.OR and left:
                return bool_val(True)
            return bool_val(self._expect_bool(self._evaluate(op.right, ns), op))

        left = self._evaluate(op.left, ns)
        right = self._evaluate(op.right, ns)

        if op.operator in (TokenType.EQ, TokenType.NE):
            if left.is_number and right.is_number:
                same = left.as_float() == right.as_float()
            elif left.kind == right.kind:
                same = left.data == right.data
            else:
                raise self._operand_error(op, left, right)
            return bool_val(same if op.operator == TokenType.EQ else not same)

        if not (left.is_number and right.is_number):
            raise self._operand_error(op, left, right)

        if op.operator in _ORDERING:
            a, b = left.as_float(), right.as_float()
            if op.operator == TokenType.LT:
                return bool_val(a < b)
            if op.operator == TokenType.GT:
                return bool_val(a > b)
            if op.operator == TokenType.LE:
                return bool_val(a <= b)
            return bool_val(a >= b)

        return self._arithmetic(op.operator, left, right)

    def _arithmetic(self, operator: TokenType, left: Value, right: Value) -> Value:
        both_int = left.kind == ValueKind.INT and right.kind == ValueKind.INT

        if operator == TokenType.PLUS:
            return int_val(left.data + right.data) if both_int else float_val(left.as_float() + right.as_float())
        if operator == TokenType.MINUS:
            return int_val(left.data - right.data) if both_int else float_val(left.as_float() - right.as_float())
        if operator == TokenType.STAR:
            return int_val(left.data * right.data) if both_int else float_val(left.as_float() * right.as_float())
        if operator == TokenType.SLASH:
            if both_int and right.data != 0:
                return int_val(_truncated_divide(left.data, right.data))
            return float_val(_ieee_divide(left.as_float(), right.as_float()))
        if operator == TokenType.PERCENT:
            if right.as_float() == 0.0:
                return float_val(math.nan)
            if both_int:
                return int_val(left.data - right.data * _truncated_divide(left.data, right.data))
            return float_val(left.as_float() % right.as_float())

        # power
        if both_int and right.data >= 0:
            base = abs(left.data)
            if base <= 1 or right.data * math.log2(base) <= INT_POWER_BITS:
                return int_val(left.data ** right.data)
        return float_val(_float_power(left.as_float(), right.as_float()))

    def _eval_unary_op(self, op: UnaryOp, ns: Mapping[str, Value]) -> Value:
        operand = self._evaluate(op.operand, ns)

        if op.operator == TokenType.MINUS:
            if operand.kind == ValueKind.INT:
                return int_val(-operand.data)
            if operand.kind == ValueKind.FLOAT:
                return float_val(-operand.data)
            raise error_type_mismatch("number after '-'", operand.kind.value, op.span)

        return bool_val(not self._expect_bool(operand, op))

    def _eval_function_call(self, call: FunctionCall, ns: Mapping[str, Value]) -> Value:
        func = self.registry.get_function(call.name)
        if func is None:
            raise error_unknown_function(call.name, call.span)
        args = [self._evaluate(arg, ns) for arg in call.arguments]
        try:
            return func(*args)
        except LivecodeError as e:
            if e.diagnostic.span.start.offset == 0 and call.span.start.offset != 0:
                e.diagnostic.span = call.span
            raise

    def _eval_conditional(self, expr: ConditionalExpr, ns: Mapping[str, Value]) -> Value:
        condition = self._evaluate(expr.condition, ns)
        if self._expect_bool(condition, expr):
            return self._evaluate(expr.true_branch, ns)
        return self._evaluate(expr.false_branch, ns)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _expect_bool(self, value: Value, node) -> bool:
        if value.kind != ValueKind.BOOL:
            raise error_type_mismatch("bool", value.kind.value, node.span)
        return value.data

    def _operand_error(self, op: BinaryOp, left: Value, right: Value) -> LivecodeError:
        text = _OPERATOR_TEXT.get(op.operator, op.operator.name)
        return error_type_mismatch(
            f"numbers for '{text}'",
            f"{left.kind.value} and {right.kind.value}",
            op.span,
        )


_default: Optional[Interpreter] = None


def get_interpreter() -> Interpreter:
    """Shared interpreter bound to the global builtin registry."""
    global _default
    if _default is None:
        _default = Interpreter()
    return _default
