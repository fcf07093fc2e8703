"""
Error taxonomy for schemedoc.

EvaluationError and its subclasses are raised while a fragment is being
evaluated; the kernel catches them and turns them into an error outcome.
FormattingError means a value cannot be rendered deterministically and is
fatal to a document build.
"""

from dataclasses import dataclass
from typing import Optional


class SchemeDocError(Exception):
    """Base class for every error raised by schemedoc."""


class EvaluationError(SchemeDocError):
    """An error raised while evaluating Scheme code."""

    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ReadError(EvaluationError):
    """Malformed or unbalanced source text."""
    kind = "read"


class SchemeSyntaxError(EvaluationError):
    """A special form or macro use with an invalid shape."""
    kind = "syntax"


class UnboundVariable(EvaluationError):
    kind = "unbound-variable"

    def __init__(self, name: str):
        super().__init__(f"{name}: undefined; cannot reference an identifier before its definition")
        self.name = name


class WrongType(EvaluationError):
    kind = "wrong-type"


class ArityError(EvaluationError):
    kind = "arity"


class DivisionByZero(EvaluationError):
    kind = "div-by-zero"


class UserError(EvaluationError):
    """Raised by the (error ...) primitive."""
    kind = "user"


class RecursionDepthExceeded(EvaluationError):
    kind = "recursion"


def classify_exception(exc: BaseException) -> tuple[str, str]:
    """
    Map an exception raised during evaluation to an (error kind, message) pair.

    EvaluationErrors carry their own kind. Python errors that escape the
    interpreter are named after their type, e.g. ValueError -> "value-error".
    """
    if isinstance(exc, EvaluationError):
        return exc.kind, exc.message
    if isinstance(exc, RecursionError):
        return RecursionDepthExceeded.kind, "maximum recursion depth exceeded"
    name = type(exc).__name__
    kind = "".join("-" + c.lower() if c.isupper() else c for c in name).lstrip("-")
    return kind, str(exc)


@dataclass(frozen=True)
class Location:
    """Where a fragment lives inside a document."""
    document: str = "<string>"
    block: Optional[int] = None
    fragment: Optional[int] = None
    line: Optional[int] = None

    def __str__(self) -> str:
        parts = [self.document]
        if self.line is not None:
            parts.append(f"line {self.line}")
        if self.block is not None:
            parts.append(f"block {self.block}")
        if self.fragment is not None:
            parts.append(f"fragment {self.fragment}")
        return ", ".join(parts)


class FormattingError(SchemeDocError):
    """A value that cannot be rendered deterministically."""

    def __init__(self, message: str, location: Optional[Location] = None):
        self.message = message
        self.location = location
        super().__init__(f"{location}: {message}" if location else message)

    def with_location(self, location: Location) -> "FormattingError":
        return FormattingError(self.message, location)


class DocumentError(SchemeDocError):
    """A document that cannot be parsed or loaded."""
