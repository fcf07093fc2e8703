"""
Primitive procedures and the standard environment.

Output primitives write to whatever sys.stdout is at call time, so the
kernel's capture of standard output sees everything a fragment prints.
"""

import functools
import math
import operator
import sys
from fractions import Fraction
from typing import Any, Callable, Optional

from schemedoc.datatypes import (
    Char,
    DottedList,
    Symbol,
    UNSPECIFIED,
    Void,
    is_equal,
    is_eqv,
    is_exact,
    is_number,
    is_true,
)
from schemedoc.environment import Environment
from schemedoc.errors import ArityError, DivisionByZero, ReadError, UserError, WrongType
from schemedoc.evaluator import Primitive, Procedure, apply_procedure
from schemedoc.printer import describe, to_display, to_write
from schemedoc.reader import parse_atom

PRIMITIVES: dict[str, Primitive] = {}


def primitive(name: str, min_args: int = 0, max_args: Optional[int] = None):
    """Register a Python function as a Scheme primitive."""
    def register(func: Callable) -> Callable:
        PRIMITIVES[name] = Primitive(name, func, min_args, max_args)
        return func
    return register


def _check(predicate: Callable[[Any], bool], value: Any, expected: str, who: str):
    if not predicate(value):
        raise WrongType(f"{who}: contract violation\n  expected: {expected}\n  given: {describe(value)}")


def _check_numbers(who: str, args) -> None:
    for arg in args:
        _check(is_number, arg, "number?", who)


def _normalize(value):
    if isinstance(value, Fraction) and value.denominator == 1:
        return value.numerator
    return value


def _is_list(value) -> bool:
    return isinstance(value, list)


def _is_procedure(value) -> bool:
    return isinstance(value, (Primitive, Procedure))


def _is_integer(value) -> bool:
    return (isinstance(value, int) and not isinstance(value, bool)) or (
        isinstance(value, float) and value.is_integer()
    )


# ---------------------------------------------------------------------- #
# Numbers
# ---------------------------------------------------------------------- #

@primitive("+")
def _add(*args):
    _check_numbers("+", args)
    return _normalize(sum(args, 0))


@primitive("*")
def _mul(*args):
    _check_numbers("*", args)
    return _normalize(functools.reduce(operator.mul, args, 1))


@primitive("-", 1)
def _sub(first, *rest):
    _check_numbers("-", (first,) + rest)
    if not rest:
        return -first
    return _normalize(functools.reduce(operator.sub, rest, first))


def _divide(a, b):
    if b == 0:
        raise DivisionByZero("/: division by zero")
    if is_exact(a) and is_exact(b):
        return _normalize(Fraction(a) / Fraction(b))
    return a / b


@primitive("/", 1)
def _div(first, *rest):
    _check_numbers("/", (first,) + rest)
    if not rest:
        return _divide(1, first)
    return functools.reduce(_divide, rest, first)


def _integer_division(name: str, func: Callable):
    def divide(a, b):
        _check(_is_integer, a, "integer?", name)
        _check(_is_integer, b, "integer?", name)
        if b == 0:
            raise DivisionByZero(f"{name}: undefined for 0")
        return func(a, b)
    return divide


def _quotient(a, b):
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b >= 0) else -q


def _remainder(a, b):
    return a - b * _quotient(a, b)


PRIMITIVES["quotient"] = Primitive("quotient", _integer_division("quotient", _quotient), 2, 2)
PRIMITIVES["remainder"] = Primitive("remainder", _integer_division("remainder", _remainder), 2, 2)
PRIMITIVES["modulo"] = Primitive("modulo", _integer_division("modulo", operator.mod), 2, 2)


def _comparison(name: str, op: Callable[[Any, Any], bool]):
    def compare(*args):
        for arg in args:
            _check(is_number, arg, "real?", name)
        return all(op(a, b) for a, b in zip(args, args[1:]))
    return compare


for _name, _op in [("=", operator.eq), ("<", operator.lt), (">", operator.gt), ("<=", operator.le), (">=", operator.ge)]:
    PRIMITIVES[_name] = Primitive(_name, _comparison(_name, _op), 1)


@primitive("abs", 1, 1)
def _abs(x):
    _check(is_number, x, "real?", "abs")
    return abs(x)


@primitive("min", 1)
def _min(*args):
    _check_numbers("min", args)
    result = min(args)
    return float(result) if any(isinstance(a, float) for a in args) else result


@primitive("max", 1)
def _max(*args):
    _check_numbers("max", args)
    result = max(args)
    return float(result) if any(isinstance(a, float) for a in args) else result


@primitive("add1", 1, 1)
def _add1(x):
    _check(is_number, x, "number?", "add1")
    return x + 1


@primitive("sub1", 1, 1)
def _sub1(x):
    _check(is_number, x, "number?", "sub1")
    return x - 1


@primitive("expt", 2, 2)
def _expt(base, power):
    _check_numbers("expt", (base, power))
    if is_exact(base) and isinstance(power, int) and power < 0:
        return _normalize(Fraction(base) ** power)
    return _normalize(base ** power)


@primitive("sqrt", 1, 1)
def _sqrt(x):
    _check(is_number, x, "number?", "sqrt")
    if isinstance(x, int) and x >= 0:
        root = math.isqrt(x)
        if root * root == x:
            return root
    return math.sqrt(x)


@primitive("gcd")
def _gcd(*args):
    for arg in args:
        _check(_is_integer, arg, "integer?", "gcd")
    return functools.reduce(math.gcd, args, 0)


@primitive("lcm")
def _lcm(*args):
    for arg in args:
        _check(_is_integer, arg, "integer?", "lcm")
    return functools.reduce(lambda a, b: abs(a * b) // math.gcd(a, b) if a and b else 0, args, 1)


@primitive("exact->inexact", 1, 1)
def _exact_to_inexact(x):
    _check(is_number, x, "number?", "exact->inexact")
    return float(x)


@primitive("inexact->exact", 1, 1)
def _inexact_to_exact(x):
    _check(is_number, x, "number?", "inexact->exact")
    if isinstance(x, float):
        return _normalize(Fraction(x))
    return x


@primitive("floor", 1, 1)
def _floor(x):
    _check(is_number, x, "real?", "floor")
    return float(math.floor(x)) if isinstance(x, float) else math.floor(x)


@primitive("ceiling", 1, 1)
def _ceiling(x):
    _check(is_number, x, "real?", "ceiling")
    return float(math.ceil(x)) if isinstance(x, float) else math.ceil(x)


@primitive("round", 1, 1)
def _round(x):
    _check(is_number, x, "real?", "round")
    return float(round(x)) if isinstance(x, float) else round(x)


@primitive("truncate", 1, 1)
def _truncate(x):
    _check(is_number, x, "real?", "truncate")
    return float(math.trunc(x)) if isinstance(x, float) else math.trunc(x)


@primitive("number->string", 1, 1)
def _number_to_string(x):
    _check(is_number, x, "number?", "number->string")
    return to_write(x)


@primitive("string->number", 1, 1)
def _string_to_number(text):
    _check(lambda v: type(v) is str, text, "string?", "string->number")
    try:
        value = parse_atom(text)
    except ReadError:
        return False
    return value if is_number(value) else False


for _name, _pred in [
    ("number?", is_number),
    ("integer?", _is_integer),
    ("exact?", is_exact),
    ("inexact?", lambda v: isinstance(v, float)),
    ("zero?", lambda v: v == 0),
    ("positive?", lambda v: v > 0),
    ("negative?", lambda v: v < 0),
    ("even?", lambda v: v % 2 == 0),
    ("odd?", lambda v: v % 2 == 1),
]:
    PRIMITIVES[_name] = Primitive(_name, _pred, 1, 1)


# ---------------------------------------------------------------------- #
# Pairs and lists
# ---------------------------------------------------------------------- #

def _is_pair(value) -> bool:
    return (isinstance(value, list) and bool(value)) or isinstance(value, DottedList)


@primitive("cons", 2, 2)
def _cons(head, tail):
    if isinstance(tail, list):
        return [head] + tail
    if isinstance(tail, DottedList):
        return DottedList([head] + tail.items, tail.tail)
    return DottedList([head], tail)


@primitive("car", 1, 1)
def _car(pair):
    _check(_is_pair, pair, "pair?", "car")
    return pair[0] if isinstance(pair, list) else pair.items[0]


@primitive("cdr", 1, 1)
def _cdr(pair):
    _check(_is_pair, pair, "pair?", "cdr")
    if isinstance(pair, list):
        return pair[1:]
    if len(pair.items) == 1:
        return pair.tail
    return DottedList(pair.items[1:], pair.tail)


def _compose_cxr(name: str):
    steps = name[1:-1][::-1]

    def cxr(value):
        for step in steps:
            _check(_is_pair, value, "pair?", name)
            value = _car(value) if step == "a" else _cdr(value)
        return value
    return cxr


for _name in ["caar", "cadr", "cdar", "cddr", "caddr", "cdddr", "cadddr"]:
    PRIMITIVES[_name] = Primitive(_name, _compose_cxr(_name), 1, 1)


@primitive("list")
def _list(*items):
    return list(items)


@primitive("length", 1, 1)
def _length(items):
    _check(_is_list, items, "list?", "length")
    return len(items)


@primitive("append")
def _append(*lists):
    if not lists:
        return []
    result = []
    for items in lists[:-1]:
        _check(_is_list, items, "list?", "append")
        result.extend(items)
    last = lists[-1]
    if isinstance(last, list):
        return result + last
    if not result:
        return last
    if isinstance(last, DottedList):
        return DottedList(result + last.items, last.tail)
    return DottedList(result, last)


@primitive("reverse", 1, 1)
def _reverse(items):
    _check(_is_list, items, "list?", "reverse")
    return items[::-1]


@primitive("list-ref", 2, 2)
def _list_ref(items, index):
    _check(_is_list, items, "list?", "list-ref")
    _check(lambda v: isinstance(v, int) and not isinstance(v, bool) and 0 <= v < len(items), index, f"index less than {len(items)}", "list-ref")
    return items[index]


@primitive("list-tail", 2, 2)
def _list_tail(items, k):
    _check(_is_list, items, "list?", "list-tail")
    _check(lambda v: isinstance(v, int) and not isinstance(v, bool) and 0 <= v <= len(items), k, f"index at most {len(items)}", "list-tail")
    return items[k:]


@primitive("range", 1, 3)
def _range(*args):
    for arg in args:
        _check(lambda v: isinstance(v, int) and not isinstance(v, bool), arg, "exact-integer?", "range")
    return list(range(*args))


def _check_procedure(proc, who):
    _check(_is_procedure, proc, "procedure?", who)


@primitive("map", 2)
def _map(proc, *lists):
    _check_procedure(proc, "map")
    for items in lists:
        _check(_is_list, items, "list?", "map")
    if len({len(items) for items in lists}) > 1:
        raise WrongType("map: all lists must have same size")
    return [apply_procedure(proc, list(args)) for args in zip(*lists)]


@primitive("for-each", 2)
def _for_each(proc, *lists):
    _check_procedure(proc, "for-each")
    for items in lists:
        _check(_is_list, items, "list?", "for-each")
    if len({len(items) for items in lists}) > 1:
        raise WrongType("for-each: all lists must have same size")
    for args in zip(*lists):
        apply_procedure(proc, list(args))
    return UNSPECIFIED


@primitive("filter", 2, 2)
def _filter(pred, items):
    _check_procedure(pred, "filter")
    _check(_is_list, items, "list?", "filter")
    return [item for item in items if is_true(apply_procedure(pred, [item]))]


@primitive("foldl", 3)
def _foldl(proc, init, *lists):
    _check_procedure(proc, "foldl")
    acc = init
    for args in zip(*lists):
        acc = apply_procedure(proc, list(args) + [acc])
    return acc


@primitive("foldr", 3)
def _foldr(proc, init, *lists):
    _check_procedure(proc, "foldr")
    acc = init
    for args in reversed(list(zip(*lists))):
        acc = apply_procedure(proc, list(args) + [acc])
    return acc


@primitive("apply", 2)
def _apply(proc, *args):
    _check_procedure(proc, "apply")
    last = args[-1]
    _check(_is_list, last, "list?", "apply")
    return apply_procedure(proc, list(args[:-1]) + last)


def _member_with(name: str, same: Callable[[Any, Any], bool]):
    def member(item, items):
        _check(_is_list, items, "list?", name)
        for i, candidate in enumerate(items):
            if same(item, candidate):
                return items[i:]
        return False
    return member


def _assoc_with(name: str, same: Callable[[Any, Any], bool]):
    def assoc(key, alist):
        _check(_is_list, alist, "list?", name)
        for entry in alist:
            _check(_is_pair, entry, "pair?", name)
            if same(key, _car(entry)):
                return entry
        return False
    return assoc


for _name, _same in [("memq", is_eqv), ("memv", is_eqv), ("member", is_equal)]:
    PRIMITIVES[_name] = Primitive(_name, _member_with(_name, _same), 2, 2)
for _name, _same in [("assq", is_eqv), ("assv", is_eqv), ("assoc", is_equal)]:
    PRIMITIVES[_name] = Primitive(_name, _assoc_with(_name, _same), 2, 2)


# ---------------------------------------------------------------------- #
# Predicates and equality
# ---------------------------------------------------------------------- #

for _name, _pred in [
    ("null?", lambda v: isinstance(v, list) and not v),
    ("pair?", _is_pair),
    ("list?", _is_list),
    ("symbol?", lambda v: isinstance(v, Symbol)),
    ("string?", lambda v: type(v) is str),
    ("char?", lambda v: isinstance(v, Char)),
    ("boolean?", lambda v: isinstance(v, bool)),
    ("procedure?", _is_procedure),
    ("vector?", lambda v: isinstance(v, tuple)),
    ("void?", lambda v: isinstance(v, Void)),
    ("not", lambda v: v is False),
]:
    PRIMITIVES[_name] = Primitive(_name, _pred, 1, 1)

PRIMITIVES["empty?"] = Primitive("empty?", PRIMITIVES["null?"].func, 1, 1)
PRIMITIVES["first"] = Primitive("first", PRIMITIVES["car"].func, 1, 1)
PRIMITIVES["rest"] = Primitive("rest", PRIMITIVES["cdr"].func, 1, 1)
PRIMITIVES["second"] = Primitive("second", PRIMITIVES["cadr"].func, 1, 1)
PRIMITIVES["eq?"] = Primitive("eq?", is_eqv, 2, 2)
PRIMITIVES["eqv?"] = Primitive("eqv?", is_eqv, 2, 2)
PRIMITIVES["equal?"] = Primitive("equal?", is_equal, 2, 2)


# ---------------------------------------------------------------------- #
# Strings, characters and symbols
# ---------------------------------------------------------------------- #

def _is_string(value) -> bool:
    return type(value) is str


@primitive("string-append")
def _string_append(*parts):
    for part in parts:
        _check(_is_string, part, "string?", "string-append")
    return "".join(parts)


@primitive("string-length", 1, 1)
def _string_length(text):
    _check(_is_string, text, "string?", "string-length")
    return len(text)


@primitive("substring", 2, 3)
def _substring(text, start, end=None):
    _check(_is_string, text, "string?", "substring")
    end = len(text) if end is None else end
    if not (isinstance(start, int) and isinstance(end, int) and 0 <= start <= end <= len(text)):
        raise WrongType(f"substring: index out of range\n  start: {start}\n  end: {end}\n  string: {to_write(text)}")
    return text[start:end]


@primitive("string-ref", 2, 2)
def _string_ref(text, index):
    _check(_is_string, text, "string?", "string-ref")
    _check(lambda v: isinstance(v, int) and 0 <= v < len(text), index, f"index less than {len(text)}", "string-ref")
    return Char(text[index])


@primitive("string-upcase", 1, 1)
def _string_upcase(text):
    _check(_is_string, text, "string?", "string-upcase")
    return text.upper()


@primitive("string-downcase", 1, 1)
def _string_downcase(text):
    _check(_is_string, text, "string?", "string-downcase")
    return text.lower()


@primitive("string", 0)
def _string(*chars):
    for ch in chars:
        _check(lambda v: isinstance(v, Char), ch, "char?", "string")
    return "".join(chars)


@primitive("string->list", 1, 1)
def _string_to_list(text):
    _check(_is_string, text, "string?", "string->list")
    return [Char(ch) for ch in text]


@primitive("list->string", 1, 1)
def _list_to_string(chars):
    _check(_is_list, chars, "list?", "list->string")
    return _string(*chars)


@primitive("char->integer", 1, 1)
def _char_to_integer(ch):
    _check(lambda v: isinstance(v, Char), ch, "char?", "char->integer")
    return ord(ch)


@primitive("integer->char", 1, 1)
def _integer_to_char(code):
    _check(lambda v: isinstance(v, int) and 0 <= v <= 0x10FFFF, code, "valid-unicode-scalar-value?", "integer->char")
    return Char(chr(code))


@primitive("symbol->string", 1, 1)
def _symbol_to_string(sym):
    _check(lambda v: isinstance(v, Symbol), sym, "symbol?", "symbol->string")
    return str(sym)


@primitive("string->symbol", 1, 1)
def _string_to_symbol(text):
    _check(_is_string, text, "string?", "string->symbol")
    return Symbol(text)


def _string_comparison(name: str, op: Callable[[str, str], bool]):
    def compare(*args):
        for arg in args:
            _check(_is_string, arg, "string?", name)
        return all(op(a, b) for a, b in zip(args, args[1:]))
    return compare


for _name, _op in [("string=?", operator.eq), ("string<?", operator.lt), ("string>?", operator.gt)]:
    PRIMITIVES[_name] = Primitive(_name, _string_comparison(_name, _op), 1)


# ---------------------------------------------------------------------- #
# Vectors
# ---------------------------------------------------------------------- #

@primitive("vector")
def _vector(*items):
    return tuple(items)


@primitive("make-vector", 1, 2)
def _make_vector(size, fill=0):
    _check(lambda v: isinstance(v, int) and v >= 0, size, "exact-nonnegative-integer?", "make-vector")
    return (fill,) * size


@primitive("vector-ref", 2, 2)
def _vector_ref(vec, index):
    _check(lambda v: isinstance(v, tuple), vec, "vector?", "vector-ref")
    _check(lambda v: isinstance(v, int) and 0 <= v < len(vec), index, f"index less than {len(vec)}", "vector-ref")
    return vec[index]


@primitive("vector-length", 1, 1)
def _vector_length(vec):
    _check(lambda v: isinstance(v, tuple), vec, "vector?", "vector-length")
    return len(vec)


@primitive("vector->list", 1, 1)
def _vector_to_list(vec):
    _check(lambda v: isinstance(v, tuple), vec, "vector?", "vector->list")
    return list(vec)


@primitive("list->vector", 1, 1)
def _list_to_vector(items):
    _check(_is_list, items, "list?", "list->vector")
    return tuple(items)


# ---------------------------------------------------------------------- #
# Output
# ---------------------------------------------------------------------- #

@primitive("display", 1, 1)
def _display(value):
    sys.stdout.write(to_display(value))
    return UNSPECIFIED


@primitive("displayln", 1, 1)
def _displayln(value):
    sys.stdout.write(to_display(value) + "\n")
    return UNSPECIFIED


@primitive("write", 1, 1)
def _write(value):
    sys.stdout.write(to_write(value))
    return UNSPECIFIED


@primitive("newline", 0, 0)
def _newline():
    sys.stdout.write("\n")
    return UNSPECIFIED


def format_directives(who: str, template: str, args: tuple) -> str:
    """Expand ~a ~s ~v ~n ~% ~~ directives."""
    _check(_is_string, template, "string?", who)
    out = []
    remaining = list(args)
    needed = sum(1 for i, ch in enumerate(template) if ch == "~" and template[i + 1:i + 2].lower() in ("a", "s", "v"))
    i = 0
    while i < len(template):
        ch = template[i]
        if ch != "~":
            out.append(ch)
            i += 1
            continue
        directive = template[i + 1:i + 2].lower()
        if directive in ("a", "s", "v"):
            if not remaining:
                raise ArityError(f"{who}: format string requires {needed} arguments, given {len(args)}")
            value = remaining.pop(0)
            out.append(to_display(value) if directive == "a" else to_write(value))
        elif directive in ("n", "%"):
            out.append("\n")
        elif directive == "~":
            out.append("~")
        else:
            raise WrongType(f"{who}: ill-formed pattern string\n  explanation: tag `~{directive}` not allowed")
        i += 2
    if remaining:
        raise ArityError(f"{who}: format string requires {needed} arguments, given {len(args)}")
    return "".join(out)


@primitive("format", 1)
def _format(template, *args):
    return format_directives("format", template, args)


@primitive("printf", 1)
def _printf(template, *args):
    sys.stdout.write(format_directives("printf", template, args))
    return UNSPECIFIED


# ---------------------------------------------------------------------- #
# Control
# ---------------------------------------------------------------------- #

@primitive("error", 1)
def _error(first, *rest):
    """(error "message" irritant ...) or (error 'who "format" arg ...)"""
    if isinstance(first, Symbol):
        if rest and _is_string(rest[0]):
            message = format_directives("error", rest[0], rest[1:])
            raise UserError(f"{first}: {message}")
        raise UserError(f"error: {first}" + "".join(" " + to_write(r) for r in rest))
    _check(_is_string, first, "(or/c symbol? string?)", "error")
    raise UserError(first + "".join(" " + to_write(r) for r in rest))


@primitive("void")
def _void(*args):
    return UNSPECIFIED


def standard_environment() -> Environment:
    """A fresh top-level environment holding every primitive."""
    env = Environment(dict(PRIMITIVES))
    env.define(Symbol("empty"), [])
    return env
