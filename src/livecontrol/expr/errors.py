"""
Expression and engine exceptions.

Error code ranges:
- E0xx: Lexer errors (malformed expression)
- E1xx: Parser errors (malformed expression)
- E2xx: Resolution errors (unknown identifier, type mismatch)
- E3xx: Structural and configuration errors
- W4xx: Numeric warnings (spring divergence, never raised)
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Tuple
from .tokens import SourceSpan, NO_SPAN


class ErrorSeverity(Enum):
    """Severity levels for diagnostics."""
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    HINT = "hint"


@dataclass
class Diagnostic:
    """A single diagnostic message (error, warning, etc.)."""
    code: str                       # E001, E101, etc.
    message: str                    # Human-readable message
    severity: ErrorSeverity
    span: SourceSpan = NO_SPAN
    source_line: Optional[str] = None   # The expression text the error came from
    hints: List[str] = field(default_factory=list)

    def format(self, show_source: bool = True) -> str:
        """Format the diagnostic for display."""
        parts = [f"{self.span.start}: {self.severity.value}[{self.code}]: {self.message}"]

        # Source line with caret
        if show_source and self.source_line is not None:
            parts.append("  |")
            line_num = str(self.span.start.line)
            parts.append(f"{line_num:>3} | {self.source_line}")

            col = self.span.start.column
            if self.span.start.line == self.span.end.line:
                end_col = self.span.end.column
            else:
                end_col = len(self.source_line) + 1
            underline_len = max(1, end_col - col)
            parts.append(f"    | {' ' * (col - 1)}{'^' * underline_len}")

        for hint in self.hints:
            parts.append(f"    = hint: {hint}")

        return "\n".join(parts)


class LivecodeError(Exception):
    """Base exception for all engine errors."""

    def __init__(self, diagnostic: Diagnostic):
        self.diagnostic = diagnostic
        super().__init__(diagnostic.message)

    @property
    def code(self) -> str:
        return self.diagnostic.code

    def __str__(self) -> str:
        return self.diagnostic.format()


class MalformedExpression(LivecodeError):
    """Expression text could not be tokenized or parsed."""
    pass


class LexerError(MalformedExpression):
    """Error during lexical analysis (E0xx)."""
    pass


class ParserError(MalformedExpression):
    """Error during parsing (E1xx)."""
    pass


class UnknownIdentifier(LivecodeError):
    """A name was not found in the evaluation context (E201)."""

    def __init__(self, diagnostic: Diagnostic, name: str):
        self.name = name
        super().__init__(diagnostic)


class TypeMismatch(LivecodeError):
    """A value had the wrong kind for an operation or coercion (E202-E205)."""
    pass


class StructuralMismatch(LivecodeError):
    """A repeat or lazy tree does not match its declared shape (E301)."""
    pass


class ConfigurationError(LivecodeError):
    """The declarative source or engine settings are invalid (E302-E304)."""
    pass


# --- Lexer error codes ---

def error_unexpected_character(char: str, span: SourceSpan, source_line: str = None) -> LexerError:
    """E001: Unexpected character."""
    diag = Diagnostic(
        code="E001",
        message=f"unexpected character '{char}'",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return LexerError(diag)


def error_invalid_number_literal(text: str, span: SourceSpan, source_line: str = None) -> LexerError:
    """E002: Invalid number literal."""
    diag = Diagnostic(
        code="E002",
        message=f"invalid number literal '{text}'",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return LexerError(diag)


def error_lone_operator(char: str, span: SourceSpan, source_line: str = None) -> LexerError:
    """E003: Single '&' or '|' where a doubled operator was expected."""
    diag = Diagnostic(
        code="E003",
        message=f"unexpected '{char}'",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
        hints=[f"use '{char}{char}' for the logical operator"],
    )
    return LexerError(diag)


# --- Parser error codes ---

def error_unexpected_token(expected: str, found: str, span: SourceSpan,
                           source_line: str = None) -> ParserError:
    """E101: Unexpected token."""
    diag = Diagnostic(
        code="E101",
        message=f"expected {expected}, found {found}",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return ParserError(diag)


def error_unexpected_eof(expected: str, span: SourceSpan, source_line: str = None) -> ParserError:
    """E102: Unexpected end of input."""
    diag = Diagnostic(
        code="E102",
        message=f"unexpected end of expression, expected {expected}",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return ParserError(diag)


def error_empty_expression(source_line: str = None) -> ParserError:
    """E103: Empty expression."""
    diag = Diagnostic(
        code="E103",
        message="empty expression",
        severity=ErrorSeverity.ERROR,
        source_line=source_line,
    )
    return ParserError(diag)


def error_invalid_assignment_target(span: SourceSpan, source_line: str = None) -> ParserError:
    """E104: Left side of '=' is not a name."""
    diag = Diagnostic(
        code="E104",
        message="can only assign to a name",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return ParserError(diag)


# --- Resolution error codes ---

def error_unknown_identifier(name: str, span: SourceSpan = NO_SPAN,
                             source_line: str = None) -> UnknownIdentifier:
    """E201: Identifier not bound in the evaluation context."""
    diag = Diagnostic(
        code="E201",
        message=f"unknown identifier '{name}'",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return UnknownIdentifier(diag, name)


def error_type_mismatch(expected: str, found: str, span: SourceSpan = NO_SPAN,
                        source_line: str = None) -> TypeMismatch:
    """E202: Type mismatch."""
    diag = Diagnostic(
        code="E202",
        message=f"type mismatch: expected {expected}, found {found}",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return TypeMismatch(diag)


def error_wrong_arity(name: str, expected: str, found: int, span: SourceSpan = NO_SPAN,
                      source_line: str = None) -> TypeMismatch:
    """E203: Function called with the wrong number of arguments."""
    diag = Diagnostic(
        code="E203",
        message=f"{name}() takes {expected} argument(s), got {found}",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return TypeMismatch(diag)


def error_unknown_function(name: str, span: SourceSpan = NO_SPAN,
                           source_line: str = None) -> UnknownIdentifier:
    """E204: Call to a function that is not in the builtin table."""
    diag = Diagnostic(
        code="E204",
        message=f"unknown function '{name}'",
        severity=ErrorSeverity.ERROR,
        span=span,
        source_line=source_line,
    )
    return UnknownIdentifier(diag, name)


def error_invalid_binding(name: str, found: str) -> TypeMismatch:
    """E205: A definition layer was given a non-numeric constant."""
    diag = Diagnostic(
        code="E205",
        message=f"binding '{name}' must be a number, bool or tuple, found {found}",
        severity=ErrorSeverity.ERROR,
    )
    return TypeMismatch(diag)


# --- Structural and configuration error codes ---

def error_structural_mismatch(message: str, path: str = "") -> StructuralMismatch:
    """E301: Repeat/lazy shape does not match the declared arity."""
    where = f" at '{path}'" if path else ""
    diag = Diagnostic(
        code="E301",
        message=f"{message}{where}",
        severity=ErrorSeverity.ERROR,
    )
    return StructuralMismatch(diag)


def error_expansion_too_large(count: int, limit: int) -> ConfigurationError:
    """E302: Repeat expansion exceeds the item limit."""
    diag = Diagnostic(
        code="E302",
        message=f"repeat expands to {count} items, limit is {limit}",
        severity=ErrorSeverity.ERROR,
        hints=["raise engine.max_items or LIVECONTROL_MAX_ITEMS if this is intended"],
    )
    return ConfigurationError(diag)


def error_nesting_too_deep(depth: int, limit: int) -> ConfigurationError:
    """E303: Repeat nesting exceeds the depth limit."""
    diag = Diagnostic(
        code="E303",
        message=f"repeat nesting depth {depth} exceeds limit {limit}",
        severity=ErrorSeverity.ERROR,
        hints=["raise engine.max_depth or LIVECONTROL_MAX_DEPTH if this is intended"],
    )
    return ConfigurationError(diag)


def error_invalid_config(message: str, path: str = "") -> ConfigurationError:
    """E304: Invalid declarative source or engine setting."""
    where = f" at '{path}'" if path else ""
    diag = Diagnostic(
        code="E304",
        message=f"{message}{where}",
        severity=ErrorSeverity.ERROR,
    )
    return ConfigurationError(diag)


# --- Warnings ---

def warning_numeric_divergence(path: str) -> Diagnostic:
    """W401: Spring filter produced a non-finite value and was reset."""
    return Diagnostic(
        code="W401",
        message=f"spring filter diverged at '{path or '<root>'}', reset to target",
        severity=ErrorSeverity.WARNING,
        hints=["look for an infinite or nan target feeding this field"],
    )


class DiagnosticCollector:
    """
    Diagnostics gathered while resolving one frame, keyed by control path.

    A control that fails is recorded here and left out of the frame, so the
    other controls still resolve. Drivers report `first_error` once per
    frame and `clear()` before the next.
    """

    def __init__(self):
        self.entries: List[Tuple[str, Diagnostic]] = []

    def add(self, path: str, diagnostic: Diagnostic) -> None:
        self.entries.append((path, diagnostic))

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def errors(self) -> List[Tuple[str, Diagnostic]]:
        return [(p, d) for p, d in self.entries if d.severity == ErrorSeverity.ERROR]

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def failed_paths(self) -> List[str]:
        return [p for p, _ in self.errors]

    @property
    def first_error(self) -> Optional[Tuple[str, Diagnostic]]:
        errors = self.errors
        return errors[0] if errors else None

    def clear(self) -> None:
        self.entries.clear()

    def report(self, show_source: bool = True) -> str:
        """One block per diagnostic, each headed by the control path."""
        blocks = [f"in '{path or '<root>'}':\n{d.format(show_source)}" for path, d in self.entries]
        errors = len(self.errors)
        if errors:
            blocks.append(f"{errors} control(s) failed to resolve")
        return "\n\n".join(blocks)
