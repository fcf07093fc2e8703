"""
Tests for the evaluator and builtins.
"""

import io
import sys
from fractions import Fraction

import pytest

from schemedoc.builtins import standard_environment
from schemedoc.datatypes import DottedList, Symbol, UNSPECIFIED
from schemedoc.errors import (
    ArityError,
    DivisionByZero,
    SchemeSyntaxError,
    UnboundVariable,
    UserError,
    WrongType,
)
from schemedoc.evaluator import evaluate
from schemedoc.printer import to_write
from schemedoc.reader import read_all


class TestEvaluator:
    """Test cases for core special forms."""

    def setup_method(self):
        self.env = standard_environment()

    def eval(self, source):
        value = UNSPECIFIED
        for form in read_all(source):
            value = evaluate(form, self.env)
        return value

    def test_self_evaluating(self):
        assert self.eval("42") == 42
        assert self.eval('"hi"') == "hi"
        assert self.eval("#t") is True

    def test_define_and_reference(self):
        assert self.eval("(define x 5)") is UNSPECIFIED
        assert self.eval("(+ x 1)") == 6

    def test_unbound_variable(self):
        with pytest.raises(UnboundVariable) as exc_info:
            self.eval("nope")
        assert "nope: undefined" in str(exc_info.value)

    def test_define_procedure(self):
        self.eval("(define (square n) (* n n))")
        assert self.eval("(square 7)") == 49
        assert to_write(self.eval("square")) == "#<procedure:square>"

    def test_lambda_with_rest_args(self):
        self.eval("(define f (lambda (a . rest) rest))")
        assert self.eval("(f 1 2 3)") == [2, 3]
        assert self.eval("((lambda args args) 1 2)") == [1, 2]

    def test_arity_mismatch(self):
        self.eval("(define (f x) x)")
        with pytest.raises(ArityError) as exc_info:
            self.eval("(f 1 2)")
        assert "f: arity mismatch" in str(exc_info.value)

    def test_if_and_truthiness(self):
        assert self.eval("(if 0 'yes 'no)") == "yes"
        assert self.eval("(if '() 'yes 'no)") == "yes"
        assert self.eval("(if #f 'yes 'no)") == "no"

    def test_let_forms(self):
        assert self.eval("(let ((a 1) (b 2)) (+ a b))") == 3
        assert self.eval("(let* ((a 1) (b (+ a 1))) b)") == 2
        assert self.eval(
            "(letrec ((even? (lambda (n) (if (= n 0) #t (odd? (- n 1)))))"
            "         (odd? (lambda (n) (if (= n 0) #f (even? (- n 1))))))"
            "  (even? 10))"
        ) is True

    def test_named_let(self):
        assert self.eval("(let loop ((i 0) (acc '())) (if (= i 3) acc (loop (+ i 1) (cons i acc))))") == [2, 1, 0]

    def test_set_bang(self):
        self.eval("(define counter 0)")
        self.eval("(set! counter (+ counter 1))")
        assert self.eval("counter") == 1

    def test_set_bang_unbound(self):
        with pytest.raises(UnboundVariable):
            self.eval("(set! ghost 1)")

    def test_closures_keep_state(self):
        self.eval("(define (make-counter) (let ((n 0)) (lambda () (set! n (+ n 1)) n)))")
        self.eval("(define c (make-counter))")
        self.eval("(c)")
        assert self.eval("(c)") == 2

    def test_cond(self):
        self.eval("(define (sign n) (cond ((< n 0) 'neg) ((= n 0) 'zero) (else 'pos)))")
        assert self.eval("(sign -3)") == "neg"
        assert self.eval("(sign 0)") == "zero"
        assert self.eval("(sign 9)") == "pos"

    def test_cond_arrow(self):
        assert self.eval("(cond ((assv 2 '((1 . one) (2 . two))) => cdr) (else #f))") == "two"

    def test_case(self):
        assert self.eval("(case 3 ((1 2) 'low) ((3 4) 'mid) (else 'high))") == "mid"
        assert self.eval("(case 9 ((1) 'one) (else 'other))") == "other"

    def test_and_or(self):
        assert self.eval("(and 1 2 3)") == 3
        assert self.eval("(and 1 #f 3)") is False
        assert self.eval("(or #f 2)") == 2
        assert self.eval("(and)") is True
        assert self.eval("(or)") is False

    def test_when_unless(self):
        assert self.eval("(when #t 1 2)") == 2
        assert self.eval("(unless #t 1)") is UNSPECIFIED

    def test_quasiquote(self):
        self.eval("(define xs '(2 3))")
        assert to_write(self.eval("`(1 ,@xs ,(+ 2 2))")) == "(1 2 3 4)"
        assert to_write(self.eval("`(a . ,(car xs))")) == "(a . 2)"

    def test_nested_quasiquote_keeps_inner_unquote(self):
        assert to_write(self.eval("`(a `(b ,(c ,(+ 1 2))))")) == "(a (quasiquote (b (unquote (c 3)))))"

    def test_tail_calls_do_not_grow_the_stack(self):
        self.eval("(define (count-down n) (if (= n 0) 'done (count-down (- n 1))))")
        assert self.eval("(count-down 100000)") == "done"

    def test_special_forms_can_be_shadowed(self):
        self.eval("(define (list . xs) xs)")
        self.eval("(define (if a b c) (list a b c))")
        assert self.eval("(if 1 2 3)") == [1, 2, 3]

    def test_empty_application(self):
        with pytest.raises(SchemeSyntaxError):
            self.eval("()")

    def test_applying_non_procedure(self):
        with pytest.raises(WrongType) as exc_info:
            self.eval("(5 1)")
        assert "not a procedure" in str(exc_info.value)

    def test_duplicate_parameters_rejected(self):
        with pytest.raises(SchemeSyntaxError):
            self.eval("(lambda (x x) x)")

    def test_gensym_is_deterministic_per_environment(self):
        first = self.eval("(gensym)")
        second = self.eval("(gensym 'tmp)")
        assert first == "g.1"
        assert second == "tmp.2"
        assert standard_environment().fresh_symbol("g") == "g.1"


class TestBuiltins:
    """Test cases for primitive procedures."""

    def setup_method(self):
        self.env = standard_environment()

    def eval(self, source):
        value = UNSPECIFIED
        for form in read_all(source):
            value = evaluate(form, self.env)
        return value

    def test_exact_division(self):
        assert self.eval("(/ 1 3)") == Fraction(1, 3)
        assert self.eval("(/ 6 3)") == 2
        assert to_write(self.eval("(/ 1 3)")) == "1/3"

    def test_division_by_zero(self):
        with pytest.raises(DivisionByZero) as exc_info:
            self.eval("(/ 1 0)")
        assert str(exc_info.value) == "/: division by zero"

    def test_quotient_by_zero(self):
        with pytest.raises(DivisionByZero):
            self.eval("(quotient 1 0)")

    def test_arithmetic_type_error(self):
        with pytest.raises(WrongType) as exc_info:
            self.eval('(+ 1 "2")')
        assert "+: contract violation" in str(exc_info.value)

    def test_comparisons(self):
        assert self.eval("(< 1 2 3)") is True
        assert self.eval("(< 1 3 2)") is False
        assert self.eval("(= 1 1.0)") is True

    def test_list_operations(self):
        assert self.eval("(map + '(1 2) '(10 20))") == [11, 22]
        assert self.eval("(filter odd? '(1 2 3 4 5))") == [1, 3, 5]
        assert self.eval("(foldl cons '() '(1 2 3))") == [3, 2, 1]
        assert self.eval("(foldr cons '() '(1 2 3))") == [1, 2, 3]
        assert self.eval("(apply + 1 '(2 3))") == 6
        assert self.eval("(append '(1) '(2) '(3 4))") == [1, 2, 3, 4]
        assert self.eval("(reverse '(1 2 3))") == [3, 2, 1]
        assert self.eval("(length '(1 2 3))") == 3
        assert self.eval("(list-ref '(a b c) 1)") == "b"

    def test_cons_builds_pairs(self):
        assert self.eval("(cons 1 '(2))") == [1, 2]
        assert self.eval("(cons 1 2)") == DottedList([1], 2)
        assert self.eval("(cdr (cons 1 2))") == 2

    def test_car_of_empty_list(self):
        with pytest.raises(WrongType) as exc_info:
            self.eval("(car '())")
        assert "car: contract violation" in str(exc_info.value)

    def test_assoc_and_member(self):
        assert to_write(self.eval("(assoc \"b\" '((\"a\" . 1) (\"b\" . 2)))")) == '("b" . 2)'
        assert self.eval("(member 2 '(1 2 3))") == [2, 3]
        assert self.eval("(memq 'z '(a b))") is False

    def test_equality(self):
        assert self.eval("(equal? '(1 (2)) '(1 (2)))") is True
        assert self.eval("(eqv? 2 2)") is True
        assert self.eval("(eq? 'a 'a)") is True
        assert self.eval('(equal? "a" (quote a))') is False

    def test_strings(self):
        assert self.eval('(string-append "foo" "bar")') == "foobar"
        assert self.eval('(string-length "four")') == 4
        assert self.eval('(substring "hello" 1 3)') == "el"
        assert self.eval("(symbol->string 'abc)") == "abc"
        assert self.eval('(string->symbol "abc")') == Symbol("abc")

    def test_format(self):
        assert self.eval('(format "~a and ~s" "x" "y")') == 'x and "y"'
        assert self.eval('(format "100~~")') == "100~"

    def test_format_argument_count(self):
        with pytest.raises(ArityError):
            self.eval('(format "~a ~a" 1)')

    def test_display_writes_to_stdout(self, monkeypatch):
        buffer = io.StringIO()
        monkeypatch.setattr(sys, "stdout", buffer)
        self.eval('(display "hi") (newline) (write "hi") (displayln 3) (printf "~a!" 1)')
        assert buffer.getvalue() == 'hi\n"hi"3\n1!'

    def test_error_with_message_and_irritants(self):
        with pytest.raises(UserError) as exc_info:
            self.eval('(error "bad thing:" 42)')
        assert str(exc_info.value) == "bad thing: 42"

    def test_error_with_who(self):
        with pytest.raises(UserError) as exc_info:
            self.eval("(error 'my-proc \"expected ~a\" 3)")
        assert str(exc_info.value) == "my-proc: expected 3"

    def test_vectors(self):
        assert self.eval("(vector-ref (vector 1 2 3) 2)") == 3
        assert self.eval("(vector->list #(1 2))") == [1, 2]

    def test_primitive_arity(self):
        with pytest.raises(ArityError) as exc_info:
            self.eval("(car 1 2)")
        assert "expected: 1" in str(exc_info.value)
