"""
schemedoc: evaluates the Scheme examples of a guide and renders their output.

This package provides a small documentation example evaluator where:
- Example blocks are split into fragments, one per top-level form
- Fragments are evaluated in order against a persistent session environment
- Printed output, values and errors are rendered into the built document
"""

from schemedoc.kernel import EvalKernel, ExecutionResult, OutcomeKind
from schemedoc.document import Document, Block, BlockType, Fragment
from schemedoc.session import SessionManager
from schemedoc.builder import DocumentBuilder, BuildReport, FragmentRecord
from schemedoc.errors import (
    SchemeDocError,
    EvaluationError,
    FormattingError,
    DocumentError,
    Location,
)

__version__ = "0.1.0"
__all__ = [
    "EvalKernel",
    "ExecutionResult",
    "OutcomeKind",
    "Document",
    "Block",
    "BlockType",
    "Fragment",
    "SessionManager",
    "DocumentBuilder",
    "BuildReport",
    "FragmentRecord",
    "SchemeDocError",
    "EvaluationError",
    "FormattingError",
    "DocumentError",
    "Location",
]
