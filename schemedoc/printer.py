"""
Printer: deterministic written and displayed representations of values.

Every value the interpreter can produce has a printed form that does not
depend on memory addresses, timestamps or hash ordering. Anything else is
refused with a FormattingError.
"""

import math
import sys
from fractions import Fraction
from typing import Any

from schemedoc.datatypes import Char, DottedList, SchemeObject, Symbol, Void, original_name
from schemedoc.errors import FormattingError

# Exact integers are written in full, whatever their size
if hasattr(sys, "set_int_max_str_digits"):
    sys.set_int_max_str_digits(0)

_CHAR_SPELLINGS = {
    " ": "space",
    "\n": "newline",
    "\t": "tab",
    "\0": "nul",
    "\r": "return",
    "\b": "backspace",
    "\x7f": "delete",
    "\x1b": "escape",
}

_STRING_ESCAPES = {
    "\\": "\\\\",
    '"': '\\"',
    "\n": "\\n",
    "\t": "\\t",
    "\r": "\\r",
    "\a": "\\a",
    "\0": "\\0",
}


class PrintedValue(SchemeObject):
    """A value known only by its printed text, e.g. restored from a saved result."""

    def __init__(self, text: str):
        self.text = text

    def scheme_repr(self) -> str:
        return self.text

    def __eq__(self, other):
        return isinstance(other, PrintedValue) and other.text == self.text

    def __hash__(self):
        return hash(self.text)

    def __repr__(self):
        return f"PrintedValue({self.text!r})"


def _format_float(value: float) -> str:
    if math.isnan(value):
        return "+nan.0"
    if math.isinf(value):
        return "+inf.0" if value > 0 else "-inf.0"
    return repr(value)


def _format_string(value: str) -> str:
    return '"' + "".join(_STRING_ESCAPES.get(ch, ch) for ch in value) + '"'


def _format_char(value: str) -> str:
    return "#\\" + _CHAR_SPELLINGS.get(value, value)


def _format(value: Any, write: bool) -> str:
    if value is True:
        return "#t"
    if value is False:
        return "#f"
    if isinstance(value, Symbol):
        return str(original_name(value))
    if isinstance(value, Char):
        return _format_char(value) if write else str(value)
    if isinstance(value, str):
        return _format_string(value) if write else value
    if isinstance(value, int):
        return str(value)
    if isinstance(value, Fraction):
        return f"{value.numerator}/{value.denominator}"
    if isinstance(value, float):
        return _format_float(value)
    if isinstance(value, list):
        return "(" + " ".join(_format(item, write) for item in value) + ")"
    if isinstance(value, DottedList):
        items = " ".join(_format(item, write) for item in value.items)
        return f"({items} . {_format(value.tail, write)})"
    if isinstance(value, tuple):
        return "#(" + " ".join(_format(item, write) for item in value) + ")"
    if isinstance(value, Void):
        return "#<void>"
    if isinstance(value, SchemeObject):
        return value.scheme_repr()
    raise FormattingError(
        f"cannot render a value of type {type(value).__name__} deterministically"
    )


def to_write(value: Any) -> str:
    """The `write` representation: strings quoted, characters as #\\x."""
    return _format(value, write=True)


def to_display(value: Any) -> str:
    """The `display` representation: strings and characters verbatim."""
    return _format(value, write=False)


def describe(value: Any) -> str:
    """Written form for error messages; never raises."""
    try:
        return to_write(value)
    except FormattingError:
        return f"#<{type(value).__name__}>"
