"""
EvalKernel: persistent Scheme kernel that evaluates example fragments.
"""

import sys
from typing import Any, Optional
from dataclasses import dataclass
from enum import Enum

from IPython.utils.capture import capture_output

from schemedoc.builtins import standard_environment
from schemedoc.datatypes import Symbol, Void
from schemedoc.environment import Environment
from schemedoc.errors import classify_exception
from schemedoc.evaluator import evaluate
from schemedoc.printer import PrintedValue, to_write
from schemedoc.reader import read_all

# Python frames allowed while a fragment runs; each Scheme call uses a few
RECURSION_LIMIT = 10000


class OutcomeKind(str, Enum):
    """Tag of an evaluation outcome."""
    VALUE = "value"
    EFFECT = "effect"
    ERROR = "error"


@dataclass(frozen=True)
class ExecutionResult:
    """
    Result of evaluating one fragment.

    Exactly one of value / effect / error describes the outcome; `output`
    holds whatever the fragment printed, whichever the outcome.
    """
    kind: OutcomeKind
    output: str = ""
    value: Any = None
    error_kind: Optional[str] = None
    error_message: Optional[str] = None
    execution_count: int = 0

    @property
    def success(self) -> bool:
        return self.kind is not OutcomeKind.ERROR

    @property
    def error(self) -> Optional[str]:
        if self.kind is OutcomeKind.ERROR:
            return f"{self.error_kind}: {self.error_message}"
        return None

    def to_outputs(self) -> list[dict[str, Any]]:
        """
        Convert to the list of output dicts stored on a document block.

        Raises:
            FormattingError: if the value has no deterministic printed form
        """
        outputs = []
        if self.output:
            outputs.append({
                "type": "stream",
                "name": "stdout",
                "text": self.output,
            })
        if self.kind is OutcomeKind.VALUE:
            outputs.append({
                "type": "execute_result",
                "data": {"text/plain": to_write(self.value)},
                "execution_count": self.execution_count,
            })
        elif self.kind is OutcomeKind.ERROR:
            outputs.append({
                "type": "error",
                "ename": self.error_kind,
                "evalue": self.error_message,
                "traceback": [],
            })
        return outputs

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "kind": self.kind.value,
            "output": self.output,
            "value": to_write(self.value) if self.kind is OutcomeKind.VALUE else None,
            "error_kind": self.error_kind,
            "error_message": self.error_message,
            "execution_count": self.execution_count,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ExecutionResult":
        """Create from dictionary. Values come back as their printed text."""
        kind = OutcomeKind(data["kind"])
        value = data.get("value")
        return cls(
            kind=kind,
            output=data.get("output", ""),
            value=PrintedValue(value) if kind is OutcomeKind.VALUE else None,
            error_kind=data.get("error_kind"),
            error_message=data.get("error_message"),
            execution_count=data.get("execution_count", 0),
        )


class EvalKernel:
    """
    Persistent Scheme kernel that maintains evaluation state.

    This kernel provides:
    - A top-level environment that persists across fragments
    - Capture of everything a fragment prints to standard output
    - Rollback of top-level bindings when a fragment fails
    - Execution history
    """

    def __init__(self, environment: Optional[Environment] = None):
        """Initialize the kernel with a fresh standard environment, or a given one."""
        self.env = environment if environment is not None else standard_environment()
        self.execution_count = 0
        self._history: list[tuple[int, str, ExecutionResult]] = []
        self._builtins = dict(self.env.bindings)

    def execute_fragment(self, source: str) -> ExecutionResult:
        """
        Evaluate one fragment and return its outcome.

        Every datum in the source is evaluated in order; the fragment's
        value is the last one's. If anything raises, the top-level bindings
        go back to what they were before the fragment started.

        Args:
            source: Scheme source text

        Returns:
            ExecutionResult describing the outcome
        """
        self.execution_count += 1
        snapshot = self.env.snapshot()
        value: Any = None
        failure: Optional[BaseException] = None

        recursion_limit = sys.getrecursionlimit()
        sys.setrecursionlimit(max(recursion_limit, RECURSION_LIMIT))
        try:
            with capture_output(stdout=True, stderr=False, display=False) as captured:
                try:
                    value = self._evaluate_source(source)
                except Exception as e:
                    failure = e
        finally:
            sys.setrecursionlimit(recursion_limit)

        output = captured.stdout

        if failure is not None:
            self.env.restore(snapshot)
            error_kind, error_message = classify_exception(failure)
            result = ExecutionResult(
                kind=OutcomeKind.ERROR,
                output=output,
                error_kind=error_kind,
                error_message=error_message,
                execution_count=self.execution_count,
            )
        elif isinstance(value, Void):
            result = ExecutionResult(
                kind=OutcomeKind.EFFECT,
                output=output,
                execution_count=self.execution_count,
            )
        else:
            result = ExecutionResult(
                kind=OutcomeKind.VALUE,
                output=output,
                value=value,
                execution_count=self.execution_count,
            )

        self._history.append((self.execution_count, source, result))

        return result

    def _evaluate_source(self, source: str) -> Any:
        value: Any = None
        forms = read_all(source)
        if not forms:
            return Void()
        for form in forms:
            value = evaluate(form, self.env)
        return value

    def get_namespace(self) -> dict:
        """
        Get the user-defined top-level bindings.

        Builtins that still hold their original value are left out.
        """
        ns = {}
        for key, value in self.env.bindings.items():
            if key in self._builtins and self._builtins[key] is value:
                continue
            ns[key] = value
        return ns

    def restore_namespace(self, namespace: dict):
        """
        Restore bindings from a previous session.

        Args:
            namespace: Dictionary of bindings to restore
        """
        for key, value in namespace.items():
            self.env.define(Symbol(key), value)

    def get_history(self) -> list[tuple[int, str, ExecutionResult]]:
        """Get execution history."""
        return self._history.copy()

    def clear_history(self):
        """Clear execution history."""
        self._history.clear()

    def reset(self):
        """Reset the kernel to a clean state."""
        self.env.restore(self._builtins)
        self.env.rename_counter = 0
        self.execution_count = 0
        self._history.clear()

    def get_variable(self, name: str) -> Any:
        """Get a variable from the top-level environment."""
        return self.env.bindings.get(name)

    def set_variable(self, name: str, value: Any):
        """Set a variable in the top-level environment."""
        self.env.define(Symbol(name), value)

    def del_variable(self, name: str):
        """Delete a variable from the top-level environment."""
        if name in self.env.bindings:
            del self.env.bindings[name]

    def get_defined_names(self) -> list[str]:
        """Get list of user-defined names."""
        return list(self.get_namespace())
