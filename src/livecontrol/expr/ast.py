"""
Abstract Syntax Tree (AST) node definitions for the expression language.

An expression parses to a single `Expression` node. A context program
(several `name = expr` statements separated by ';') parses to a `Program`.
Nodes are plain dataclasses and are never mutated after parsing, so a
parsed tree can be shared freely between contexts and threads.
"""

from dataclasses import dataclass, field
from typing import List, Union, Any, Set
from abc import ABC
from .tokens import SourceSpan, TokenType


# =============================================================================
# Base Classes
# =============================================================================

@dataclass(frozen=True)
class AstNode(ABC):
    """Base class for all AST nodes."""
    span: SourceSpan  # Source location for error reporting

    def accept(self, visitor: "AstVisitor") -> Any:
        """Accept a visitor for traversal."""
        method_name = f"visit_{self.__class__.__name__}"
        method = getattr(visitor, method_name, visitor.generic_visit)
        return method(self)


class AstVisitor(ABC):
    """Base class for AST visitors."""

    def generic_visit(self, node: AstNode) -> Any:
        """Default visit method."""
        raise NotImplementedError(f"No visitor for {node.__class__.__name__}")


# =============================================================================
# Expression Nodes
# =============================================================================

@dataclass(frozen=True)
class Expression(AstNode):
    """Base class for all expressions."""
    pass


@dataclass(frozen=True)
class Literal(Expression):
    """A literal value (int, float, bool)."""
    value: Union[int, float, bool]
    literal_type: TokenType  # INT_LITERAL, FLOAT_LITERAL, BOOL_LITERAL


@dataclass(frozen=True)
class Identifier(Expression):
    """A signal, binding or constant reference."""
    name: str


@dataclass(frozen=True)
class BinaryOp(Expression):
    """A binary operation (e.g., a + b, x && y)."""
    left: Expression
    operator: TokenType
    right: Expression


@dataclass(frozen=True)
class UnaryOp(Expression):
    """A unary operation (e.g., !x, -n)."""
    operator: TokenType
    operand: Expression


@dataclass(frozen=True)
class FunctionCall(Expression):
    """A builtin function call (e.g., clamp(x, 0, 1))."""
    name: str
    arguments: List[Expression] = field(default_factory=list)

    def __hash__(self) -> int:
        return hash((self.name, tuple(self.arguments), self.span))


@dataclass(frozen=True)
class TupleLiteral(Expression):
    """A parenthesised tuple (e.g., (1, 2, 3))."""
    elements: List[Expression] = field(default_factory=list)

    def __hash__(self) -> int:
        return hash((tuple(self.elements), self.span))


@dataclass(frozen=True)
class ConditionalExpr(Expression):
    """A ternary conditional expression (a if condition else b)."""
    condition: Expression
    true_branch: Expression
    false_branch: Expression


# =============================================================================
# Program Nodes
# =============================================================================

@dataclass(frozen=True)
class Statement(AstNode):
    """Base class for program statements."""
    pass


@dataclass(frozen=True)
class Assignment(Statement):
    """Binds a name for the statements that follow (e.g., a = t * 2)."""
    target: str
    value: Expression


@dataclass(frozen=True)
class ExpressionStatement(Statement):
    """A bare expression, evaluated for its value."""
    expression: Expression


@dataclass(frozen=True)
class Program(AstNode):
    """A ';'-separated list of statements.

    The value of a program is the value of its last expression statement,
    or empty when it ends with an assignment.
    """
    statements: List[Statement] = field(default_factory=list)

    def __hash__(self) -> int:
        return hash((tuple(self.statements), self.span))

    @property
    def assigned_names(self) -> List[str]:
        """Names assigned by this program, in first-assignment order."""
        seen = []
        for stmt in self.statements:
            if isinstance(stmt, Assignment) and stmt.target not in seen:
                seen.append(stmt.target)
        return seen


# =============================================================================
# Visitor Helpers
# =============================================================================

class NameCollector(AstVisitor):
    """Collects every identifier and function name an expression reads."""

    def __init__(self):
        self.names: Set[str] = set()
        self.functions: Set[str] = set()

    def generic_visit(self, node: AstNode) -> None:
        for name, value in node.__dict__.items():
            if name == "span":
                continue
            if isinstance(value, AstNode):
                value.accept(self)
            elif isinstance(value, list):
                for item in value:
                    if isinstance(item, AstNode):
                        item.accept(self)

    def visit_Identifier(self, node: Identifier) -> None:
        self.names.add(node.name)

    def visit_FunctionCall(self, node: FunctionCall) -> None:
        self.functions.add(node.name)
        self.generic_visit(node)


def free_names(node: AstNode) -> Set[str]:
    """Identifiers read by an expression or program (not function names)."""
    collector = NameCollector()
    node.accept(collector)
    return collector.names
