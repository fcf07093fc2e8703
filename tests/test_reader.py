"""
Tests for the reader.
"""

from fractions import Fraction

import pytest

from schemedoc.datatypes import Char, DottedList, Symbol
from schemedoc.errors import ReadError
from schemedoc.reader import IncompleteInput, is_complete, read, read_all, split_fragments


class TestRead:
    """Test cases for reading single data."""

    def test_numbers(self):
        assert read("42") == 42
        assert read("-7") == -7
        assert read("3.5") == 3.5
        assert read("1/2") == Fraction(1, 2)
        assert read("4/2") == 2
        assert isinstance(read("4/2"), int)

    def test_booleans(self):
        assert read("#t") is True
        assert read("#f") is False
        assert read("#true") is True
        assert read("#false") is False

    def test_symbols(self):
        value = read("swap!")
        assert isinstance(value, Symbol)
        assert value == "swap!"
        assert read("...") == "..."

    def test_strings_with_escapes(self):
        assert read(r'"a\nb"') == "a\nb"
        assert read(r'"say \"hi\""') == 'say "hi"'

    def test_characters(self):
        assert read(r"#\a") == Char("a")
        assert read(r"#\space") == Char(" ")
        assert read(r"#\newline") == Char("\n")

    def test_lists_and_brackets(self):
        assert read("(1 2 3)") == [1, 2, 3]
        assert read("[a b]") == [Symbol("a"), Symbol("b")]
        assert read("()") == []

    def test_dotted_pair(self):
        value = read("(1 . 2)")
        assert value == DottedList([1], 2)

    def test_dotted_list_tail_merges(self):
        assert read("(1 . (2 3))") == [1, 2, 3]

    def test_vector(self):
        assert read("#(1 2)") == (1, 2)

    def test_quote_prefixes(self):
        assert read("'x") == [Symbol("quote"), Symbol("x")]
        assert read("`(a ,b ,@c)") == [
            Symbol("quasiquote"),
            [Symbol("a"), [Symbol("unquote"), Symbol("b")], [Symbol("unquote-splicing"), Symbol("c")]],
        ]

    def test_comments_are_skipped(self):
        assert read_all("; line\n1 #| block |# 2 #;(ignored) 3") == [1, 2, 3]
        assert read("(1 #;2 3)") == [1, 3]

    def test_unbalanced_close(self):
        with pytest.raises(ReadError):
            read(")")

    def test_mismatched_brackets(self):
        with pytest.raises(ReadError):
            read("(1 2]")

    def test_incomplete_list(self):
        with pytest.raises(IncompleteInput):
            read("(1 2")

    def test_unterminated_string(self):
        with pytest.raises(IncompleteInput):
            read('"abc')

    def test_bad_hash_syntax(self):
        with pytest.raises(ReadError):
            read("#z")

    def test_more_than_one_datum(self):
        with pytest.raises(ReadError):
            read("1 2")


class TestSplitFragments:
    """Test cases for splitting a block into fragments."""

    def test_one_span_per_datum(self):
        spans = split_fragments("(define x 5)\n(+ x 1)\n")
        assert [s.text for s in spans] == ["(define x 5)", "(+ x 1)"]
        assert [s.line for s in spans] == [1, 2]

    def test_multiline_datum_keeps_layout(self):
        source = "(define (f x)\n  (* x 2))\n\n(f 4)"
        spans = split_fragments(source)
        assert spans[0].text == "(define (f x)\n  (* x 2))"
        assert spans[1].line == 4

    def test_comments_between_data_are_dropped(self):
        spans = split_fragments("; setup\n1\n; more\n2")
        assert [s.text for s in spans] == ["1", "2"]

    def test_unreadable_tail_becomes_last_fragment(self):
        spans = split_fragments("(+ 1 2)\n(oops\n")
        assert len(spans) == 2
        assert spans[1].text == "(oops"
        assert spans[1].line == 2

    def test_empty_text(self):
        assert split_fragments("   \n") == []


class TestIsComplete:

    def test_complete(self):
        assert is_complete("(+ 1 2)")
        assert is_complete("")

    def test_open_list(self):
        assert not is_complete("(define (f x)")

    def test_open_string(self):
        assert not is_complete('(display "hi')

    def test_malformed_counts_as_complete(self):
        # Evaluating it reports the read error
        assert is_complete(")")
