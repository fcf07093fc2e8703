"""
Runtime data types shared by the reader, evaluator and printer.

Lists are plain Python lists and vectors are tuples. The classes here cover
what Python has no native counterpart for.
"""

from fractions import Fraction
from typing import Any


class Symbol(str):
    """A Scheme symbol. Compares equal to its name."""

    __slots__ = ()

    def __repr__(self):
        return f"Symbol({str.__repr__(self)})"


class Renamed(Symbol):
    """
    A symbol a macro template introduced, renamed for hygiene.

    Where nothing binds the new name, it stands for `original` as seen from
    `env`, the environment the macro was defined in.
    """

    def __new__(cls, name: str, original: str, env: Any):
        self = super().__new__(cls, name)
        self.original = original
        self.env = env
        return self

    def __getnewargs__(self):
        return (str(self), self.original, self.env)


def original_name(symbol: str) -> str:
    """The name a symbol had before any hygienic renaming."""
    while isinstance(symbol, Renamed):
        symbol = symbol.original
    return symbol


class Char(str):
    """A single character datum, written #\\a."""

    __slots__ = ()

    def __repr__(self):
        return f"Char({str.__repr__(self)})"


class DottedList:
    """An improper list: (a b . c)."""

    __slots__ = ("items", "tail")

    def __init__(self, items: list, tail: Any):
        self.items = list(items)
        self.tail = tail

    def __eq__(self, other):
        return (
            isinstance(other, DottedList)
            and self.items == other.items
            and self.tail == other.tail
        )

    __hash__ = None

    def __repr__(self):
        return f"DottedList({self.items!r}, {self.tail!r})"


class Void:
    """The unspecified value returned by define, set!, display and friends."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __reduce__(self):
        return (Void, ())

    def __repr__(self):
        return "UNSPECIFIED"


UNSPECIFIED = Void()

QUOTE = Symbol("quote")
QUASIQUOTE = Symbol("quasiquote")
UNQUOTE = Symbol("unquote")
UNQUOTE_SPLICING = Symbol("unquote-splicing")
ELLIPSIS = Symbol("...")
UNDERSCORE = Symbol("_")
ELSE = Symbol("else")
ARROW = Symbol("=>")


def is_true(value: Any) -> bool:
    """Only #f is false."""
    return value is not False


class SchemeObject:
    """Base for runtime values that know their own printed form."""

    def scheme_repr(self) -> str:
        raise NotImplementedError


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Fraction)) and not isinstance(value, bool)


def is_exact(value: Any) -> bool:
    return isinstance(value, (int, Fraction)) and not isinstance(value, bool)


def is_eqv(a: Any, b: Any) -> bool:
    """eqv?: identity, except numbers, symbols and characters compare by value."""
    if isinstance(a, bool) or isinstance(b, bool):
        return a is b
    if is_number(a) and is_number(b):
        return is_exact(a) == is_exact(b) and a == b
    if isinstance(a, Symbol) and isinstance(b, Symbol):
        return str(a) == str(b)
    if isinstance(a, Char) and isinstance(b, Char):
        return str(a) == str(b)
    if isinstance(a, list) and isinstance(b, list) and not a and not b:
        return True
    return a is b


def is_equal(a: Any, b: Any) -> bool:
    """equal?: structural equality over lists, vectors and strings."""
    if isinstance(a, list) and isinstance(b, list):
        return len(a) == len(b) and all(is_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, tuple) and isinstance(b, tuple):
        return len(a) == len(b) and all(is_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, DottedList) and isinstance(b, DottedList):
        return is_equal(a.items, b.items) and is_equal(a.tail, b.tail)
    if type(a) is str and type(b) is str:
        return a == b
    return is_eqv(a, b)
