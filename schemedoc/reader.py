"""
Reader: turns Scheme source text into data.

Besides plain parsing, the reader keeps the source span of every top-level
datum so that an example block can be split into fragments whose echoed
text is exactly what the author wrote.
"""

import re
from dataclasses import dataclass
from fractions import Fraction
from typing import Any, Iterator, NamedTuple

from schemedoc.datatypes import (
    Char,
    DottedList,
    QUASIQUOTE,
    QUOTE,
    Symbol,
    UNQUOTE,
    UNQUOTE_SPLICING,
)
from schemedoc.errors import ReadError


class IncompleteInput(ReadError):
    """Input ended inside a list or string; more text may complete it."""


_TOKEN_RE = re.compile(
    r"""
      (?P<ws>\s+)
    | (?P<comment>;[^\n]*)
    | (?P<block_comment>\#\|.*?\|\#)
    | (?P<datum_comment>\#;)
    | (?P<vector>\#\()
    | (?P<open>[(\[])
    | (?P<close>[)\]])
    | (?P<prefix>'|`|,@|,)
    | (?P<string>"(?:[^"\\]|\\.)*")
    | (?P<unterminated>")
    | (?P<char>\#\\(?:[A-Za-z]+|.))
    | (?P<atom>[^\s()\[\]";'`,]+)
    """,
    re.VERBOSE | re.DOTALL,
)

_INT_RE = re.compile(r"[+-]?\d+\Z")
_RATIONAL_RE = re.compile(r"[+-]?\d+/\d+\Z")
_FLOAT_RE = re.compile(r"[+-]?(\d+\.\d*|\.\d+|\d+)(e[+-]?\d+)?\Z", re.IGNORECASE)

_SPECIAL_FLOATS = {
    "+inf.0": float("inf"),
    "-inf.0": float("-inf"),
    "+nan.0": float("nan"),
    "-nan.0": float("nan"),
}

_PREFIXES = {
    "'": QUOTE,
    "`": QUASIQUOTE,
    ",": UNQUOTE,
    ",@": UNQUOTE_SPLICING,
}

_STRING_ESCAPES = {
    "\\": "\\",
    '"': '"',
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "a": "\a",
    "0": "\0",
}

CHAR_NAMES = {
    "space": " ",
    "newline": "\n",
    "tab": "\t",
    "nul": "\0",
    "null": "\0",
    "return": "\r",
    "linefeed": "\n",
    "backspace": "\b",
    "delete": "\x7f",
    "escape": "\x1b",
}


class Token(NamedTuple):
    kind: str
    text: str
    start: int
    end: int
    line: int


@dataclass(frozen=True)
class SourceSpan:
    """A top-level datum's text and where it sits in the source."""
    text: str
    start: int
    end: int
    line: int


def tokenize(text: str) -> Iterator[Token]:
    """Yield tokens, skipping whitespace and comments."""
    pos = 0
    line = 1
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            raise ReadError(f"read: unexpected character {text[pos]!r} at line {line}")
        kind = match.lastgroup
        value = match.group()
        if kind == "unterminated":
            raise IncompleteInput(f"read: unterminated string starting at line {line}")
        if kind not in ("ws", "comment", "block_comment"):
            yield Token(kind, value, pos, match.end(), line)
        line += value.count("\n")
        pos = match.end()


def _parse_string(token: Token) -> str:
    body = token.text[1:-1]
    out = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\":
            i += 1
            esc = body[i]
            if esc not in _STRING_ESCAPES:
                raise ReadError(f"read: unknown escape sequence \\{esc} in string at line {token.line}")
            out.append(_STRING_ESCAPES[esc])
        else:
            out.append(ch)
        i += 1
    return "".join(out)


def _parse_char(token: Token) -> Char:
    name = token.text[2:]
    if len(name) == 1:
        return Char(name)
    if name.lower() in CHAR_NAMES:
        return Char(CHAR_NAMES[name.lower()])
    raise ReadError(f"read: bad character constant #\\{name} at line {token.line}")


def parse_atom(text: str) -> Any:
    """Parse a number, boolean or symbol from its token text."""
    if text in ("#t", "#true"):
        return True
    if text in ("#f", "#false"):
        return False
    if _INT_RE.match(text):
        return int(text)
    if _RATIONAL_RE.match(text):
        num, den = text.split("/")
        if int(den) == 0:
            raise ReadError(f"read: division by zero in {text}")
        value = Fraction(int(num), int(den))
        return value.numerator if value.denominator == 1 else value
    if _FLOAT_RE.match(text):
        return float(text)
    if text in _SPECIAL_FLOATS:
        return _SPECIAL_FLOATS[text]
    if text.startswith("#"):
        raise ReadError(f"read: bad syntax {text}")
    return Symbol(text)


class Parser:
    """Recursive-descent parser over the token stream of one source text."""

    def __init__(self, text: str):
        self.text = text
        self.tokens = list(tokenize(text))
        self.pos = 0

    def at_end(self) -> bool:
        return self.pos >= len(self.tokens)

    def peek(self) -> Token:
        return self.tokens[self.pos]

    def next(self) -> Token:
        if self.at_end():
            raise IncompleteInput("read: unexpected end of input")
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def read(self) -> Any:
        token = self.next()
        kind = token.kind
        if kind == "open":
            return self._read_list(token)
        if kind == "vector":
            items = self._read_list(token)
            if isinstance(items, DottedList):
                raise ReadError(f"read: illegal use of `.` in vector at line {token.line}")
            return tuple(items)
        if kind == "close":
            raise ReadError(f"read: unexpected `{token.text}` at line {token.line}")
        if kind == "prefix":
            return [_PREFIXES[token.text], self.read()]
        if kind == "datum_comment":
            self.read()
            return self.read()
        if kind == "string":
            return _parse_string(token)
        if kind == "char":
            return _parse_char(token)
        if token.text == ".":
            raise ReadError(f"read: illegal use of `.` at line {token.line}")
        return parse_atom(token.text)

    def _read_list(self, open_token: Token):
        closer = "]" if open_token.text == "[" else ")"
        items = []
        while True:
            if self.at_end():
                raise IncompleteInput(f"read: expected a `{closer}` to close `{open_token.text}` opened at line {open_token.line}")
            token = self.peek()
            if token.kind == "close":
                self.pos += 1
                if token.text != closer:
                    raise ReadError(f"read: unexpected `{token.text}` at line {token.line}; expected `{closer}`")
                return items
            if token.kind == "datum_comment":
                self.pos += 1
                self.read()
                continue
            if token.kind == "atom" and token.text == ".":
                self.pos += 1
                if not items:
                    raise ReadError(f"read: illegal use of `.` at line {token.line}")
                tail = self.read()
                end = self.next()
                if end.kind != "close" or end.text != closer:
                    raise ReadError(f"read: illegal use of `.` at line {token.line}")
                if isinstance(tail, list):
                    return items + tail
                if isinstance(tail, DottedList):
                    return DottedList(items + tail.items, tail.tail)
                return DottedList(items, tail)
            items.append(self.read())

    def read_all(self) -> list:
        data = []
        while not self.at_end():
            if self.peek().kind == "datum_comment":
                self.pos += 1
                self.read()
                continue
            data.append(self.read())
        return data


def read(text: str) -> Any:
    """Read exactly one datum from text."""
    parser = Parser(text)
    if parser.at_end():
        raise ReadError("read: no datum in input")
    datum = parser.read()
    if not parser.at_end():
        raise ReadError("read: more than one datum in input")
    return datum


def read_all(text: str) -> list:
    """Read every datum in text."""
    return Parser(text).read_all()


def split_fragments(text: str) -> list[SourceSpan]:
    """
    Split source text into one span per top-level datum.

    When the text stops being readable, everything from the start of the
    unreadable datum to the end becomes a single last span, so evaluating it
    reports the read error in its proper place.
    """
    spans = []
    try:
        parser = Parser(text)
    except ReadError:
        stripped = text.strip()
        if stripped:
            offset = text.index(stripped)
            spans.append(SourceSpan(stripped, offset, offset + len(stripped), text.count("\n", 0, offset) + 1))
        return spans

    while not parser.at_end():
        first = parser.peek()
        try:
            parser.read()
        except ReadError:
            rest = text[first.start:].rstrip()
            spans.append(SourceSpan(rest, first.start, first.start + len(rest), first.line))
            break
        last = parser.tokens[parser.pos - 1]
        spans.append(SourceSpan(text[first.start:last.end], first.start, last.end, first.line))
    return spans


def is_complete(text: str) -> bool:
    """True unless text ends inside an open list or string."""
    try:
        read_all(text)
    except IncompleteInput:
        return False
    except ReadError:
        return True
    return True
