"""
Tests for EvalKernel.
"""

import sys

import pytest

from schemedoc.datatypes import Symbol
from schemedoc.errors import FormattingError
from schemedoc.kernel import EvalKernel, ExecutionResult, OutcomeKind
from schemedoc.printer import PrintedValue


class TestEvalKernel:
    """Test cases for EvalKernel."""

    def setup_method(self):
        """Set up a fresh kernel for each test."""
        self.kernel = EvalKernel()

    def run(self, *sources):
        return [self.kernel.execute_fragment(source) for source in sources]

    def test_define_then_use(self):
        define, use = self.run("(define x 5)", "(+ x 1)")

        assert define.kind is OutcomeKind.EFFECT
        assert define.output == ""
        assert use.kind is OutcomeKind.VALUE
        assert use.value == 6

    def test_error_does_not_stop_the_session(self):
        failed, ok = self.run("(/ 1 0)", "(+ 1 1)")

        assert failed.kind is OutcomeKind.ERROR
        assert failed.error_kind == "div-by-zero"
        assert failed.error_message == "/: division by zero"
        assert ok.kind is OutcomeKind.VALUE
        assert ok.value == 2

    def test_display_is_an_effect(self):
        (result,) = self.run('(display "hi")')

        assert result.kind is OutcomeKind.EFFECT
        assert result.output == "hi"
        assert result.value is None

    def test_output_kept_alongside_value(self):
        (result,) = self.run('(begin (display "computing") 42)')

        assert result.kind is OutcomeKind.VALUE
        assert result.output == "computing"
        assert result.value == 42

    def test_output_kept_alongside_error(self):
        (result,) = self.run('(begin (display "before") (car 5))')

        assert result.kind is OutcomeKind.ERROR
        assert result.output == "before"
        assert result.error_kind == "wrong-type"

    def test_stdout_restored_after_error(self):
        stdout = sys.stdout
        self.run("(error \"boom\")")
        assert sys.stdout is stdout

    def test_dependent_fragment_fails_when_binding_failed(self):
        failed, dependent = self.run("(define y (car '()))", "y")

        assert not failed.success
        assert dependent.kind is OutcomeKind.ERROR
        assert dependent.error_kind == "unbound-variable"
        assert dependent.error_message.startswith("y: undefined")

    def test_failed_fragment_rolls_back_bindings(self):
        self.run("(define keep 1)")
        before = self.kernel.env.snapshot()

        (result,) = self.run("(define a 1) (set! keep 2) (car '())")

        assert not result.success
        assert self.kernel.env.snapshot() == before
        assert self.kernel.get_variable("a") is None
        assert self.kernel.get_variable("keep") == 1

    def test_closure_state_is_not_rolled_back(self):
        self.run("(define counter (let ((n 0)) (lambda () (set! n (+ n 1)) n)))")
        self.run("(begin (counter) (car '()))")
        (result,) = self.run("(counter)")
        assert result.value == 2

    def test_multiple_forms_value_of_last(self):
        (result,) = self.run("1 2 3")
        assert result.value == 3

    def test_empty_fragment_is_effect(self):
        (result,) = self.run("; nothing here")
        assert result.kind is OutcomeKind.EFFECT

    def test_read_error(self):
        (result,) = self.run("(+ 1")
        assert result.error_kind == "read"

    def test_syntax_error(self):
        (result,) = self.run("(if)")
        assert result.error_kind == "syntax"

    def test_arity_error(self):
        (result,) = self.run("((lambda (x) x))")
        assert result.error_kind == "arity"

    def test_user_error(self):
        (result,) = self.run('(error "custom failure")')
        assert result.error == "user: custom failure"

    def test_deep_recursion(self):
        self.run("(define (deep n) (if (= n 0) 0 (+ 1 (deep (- n 1)))))")
        (result,) = self.run("(deep 100000)")
        assert result.error_kind == "recursion"

    def test_non_tail_recursion_is_deep_enough(self):
        self.run("(define (fact n) (if (= n 0) 1 (* n (fact (- n 1)))))")
        (result,) = self.run("(fact 1000)")

        assert result.kind is OutcomeKind.VALUE
        assert len(str(result.value)) == 2568

    def test_recursion_limit_restored(self):
        limit = sys.getrecursionlimit()
        self.run("(define (deep n) (if (= n 0) 0 (+ 1 (deep (- n 1)))))", "(deep 10)")
        assert sys.getrecursionlimit() == limit

    def test_big_integers_print_in_full(self):
        displayed, returned = self.run("(display (expt 10 5000))", "(expt 10 5000)")

        assert displayed.kind is OutcomeKind.EFFECT
        assert displayed.output == "1" + "0" * 5000
        assert returned.to_outputs()[0]["data"]["text/plain"] == "1" + "0" * 5000

    def test_execution_count_and_history(self):
        self.run("(define x 1)", "x")

        assert self.kernel.execution_count == 2
        history = self.kernel.get_history()
        assert [code for _, code, _ in history] == ["(define x 1)", "x"]

        self.kernel.clear_history()
        assert self.kernel.get_history() == []

    def test_namespace_excludes_untouched_builtins(self):
        self.run("(define x 1)", "(define (car p) 'mine)")

        namespace = self.kernel.get_namespace()
        assert set(namespace) == {"x", "car"}
        assert sorted(self.kernel.get_defined_names()) == ["car", "x"]

    def test_variable_access(self):
        self.kernel.set_variable("z", 10)
        (result,) = self.run("(* z 2)")
        assert result.value == 20

        self.kernel.del_variable("z")
        (result,) = self.run("z")
        assert result.error_kind == "unbound-variable"

    def test_reset(self):
        self.run("(define x 1)", "(define car 0)")
        self.kernel.reset()

        assert self.kernel.execution_count == 0
        assert self.kernel.get_defined_names() == []
        (result,) = self.run("(car '(1 2))")
        assert result.value == 1


class TestExecutionResult:
    """Test cases for ExecutionResult conversions."""

    def test_to_outputs_value(self):
        result = ExecutionResult(kind=OutcomeKind.VALUE, output="hi\n", value=[1, Symbol("a")], execution_count=3)

        outputs = result.to_outputs()
        assert outputs[0] == {"type": "stream", "name": "stdout", "text": "hi\n"}
        assert outputs[1]["type"] == "execute_result"
        assert outputs[1]["data"]["text/plain"] == "(1 a)"

    def test_to_outputs_effect_without_output(self):
        result = ExecutionResult(kind=OutcomeKind.EFFECT)
        assert result.to_outputs() == []

    def test_to_outputs_error(self):
        result = ExecutionResult(kind=OutcomeKind.ERROR, error_kind="div-by-zero", error_message="/: division by zero")
        (output,) = result.to_outputs()
        assert output["ename"] == "div-by-zero"
        assert output["evalue"] == "/: division by zero"

    def test_to_outputs_unrenderable(self):
        result = ExecutionResult(kind=OutcomeKind.VALUE, value=object())
        with pytest.raises(FormattingError):
            result.to_outputs()

    def test_dict_round_trip_keeps_printed_value(self):
        result = ExecutionResult(kind=OutcomeKind.VALUE, output="x", value="str", execution_count=1)
        restored = ExecutionResult.from_dict(result.to_dict())

        assert restored.kind is OutcomeKind.VALUE
        assert restored.output == "x"
        assert restored.value == PrintedValue('"str"')
        assert restored.to_outputs() == result.to_outputs()

    def test_results_are_immutable(self):
        result = ExecutionResult(kind=OutcomeKind.EFFECT)
        with pytest.raises(Exception):
            result.output = "changed"
