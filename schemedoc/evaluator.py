"""
Evaluator: special forms, procedures and the eval loop.

The environment is always passed explicitly. Special forms return either a
final value or a TailCall, which the eval loop continues with instead of
recursing, so procedures that loop through tail calls run in constant
Python stack.
"""

from typing import Any, Callable, NamedTuple, Optional

from schemedoc.datatypes import (
    ARROW,
    DottedList,
    ELLIPSIS,
    ELSE,
    QUASIQUOTE,
    QUOTE,
    SchemeObject,
    Symbol,
    UNDERSCORE,
    UNQUOTE,
    UNQUOTE_SPLICING,
    UNSPECIFIED,
    is_eqv,
    is_true,
    original_name,
)
from schemedoc.environment import Environment
from schemedoc.errors import (
    ArityError,
    DivisionByZero,
    SchemeSyntaxError,
    WrongType,
)
from schemedoc.macros import Macro, make_syntax_rules
from schemedoc.printer import describe


class TailCall(NamedTuple):
    expr: Any
    env: Environment


class Procedure(SchemeObject):
    """A closure created by lambda or define."""

    def __init__(self, params: list, rest: Optional[Symbol], body: list, env: Environment, name: Optional[str] = None):
        self.params = params
        self.rest = rest
        self.body = body
        self.env = env
        self.name = name

    def scheme_repr(self) -> str:
        return f"#<procedure:{self.name}>" if self.name else "#<procedure>"

    def bind(self, args: list) -> Environment:
        """Create the frame for one call of this procedure."""
        n = len(self.params)
        if len(args) < n or (self.rest is None and len(args) > n):
            expected = f"at least {n}" if self.rest is not None else str(n)
            raise ArityError(
                f"{self.name or 'procedure'}: arity mismatch;\n"
                f" the expected number of arguments does not match the given number\n"
                f"  expected: {expected}\n  given: {len(args)}"
            )
        env = Environment(dict(zip(self.params, args)), parent=self.env)
        if self.rest is not None:
            env.define(self.rest, list(args[n:]))
        return env


class Primitive(SchemeObject):
    """A procedure implemented in Python."""

    def __init__(self, name: str, func: Callable, min_args: int = 0, max_args: Optional[int] = None):
        self.name = name
        self.func = func
        self.min_args = min_args
        self.max_args = max_args

    def scheme_repr(self) -> str:
        return f"#<procedure:{self.name}>"

    def __call__(self, *args):
        if len(args) < self.min_args or (self.max_args is not None and len(args) > self.max_args):
            if self.max_args is None:
                expected = f"at least {self.min_args}"
            elif self.min_args == self.max_args:
                expected = str(self.min_args)
            else:
                expected = f"{self.min_args} to {self.max_args}"
            raise ArityError(
                f"{self.name}: arity mismatch;\n"
                f" the expected number of arguments does not match the given number\n"
                f"  expected: {expected}\n  given: {len(args)}"
            )
        try:
            return self.func(*args)
        except ZeroDivisionError:
            raise DivisionByZero(f"{self.name}: division by zero") from None
        except TypeError as exc:
            raise WrongType(f"{self.name}: contract violation\n  {exc}") from None


# ---------------------------------------------------------------------- #
# Special forms
# ---------------------------------------------------------------------- #

SPECIAL_FORMS: dict[str, Callable[[list, Environment], Any]] = {}

AUXILIARY_KEYWORDS = frozenset({ELSE, ARROW, UNDERSCORE, ELLIPSIS, UNQUOTE, UNQUOTE_SPLICING})


def special_form(name: str):
    """Register a handler for (name ...) forms."""
    def register(func):
        SPECIAL_FORMS[name] = func
        return func
    return register


def reserved_names() -> frozenset:
    """Names a macro template never renames."""
    return frozenset(SPECIAL_FORMS) | AUXILIARY_KEYWORDS


def _expect(condition: bool, form: list, detail: str = "bad syntax"):
    if not condition:
        raise SchemeSyntaxError(f"{form[0]}: {detail} in: {describe(form)}")


def _body(body: list, env: Environment):
    """Evaluate all but the last expression; hand the last back as a tail call."""
    if not body:
        return UNSPECIFIED
    for expr in body[:-1]:
        evaluate(expr, env)
    return TailCall(body[-1], env)


def _parse_params(params, form) -> tuple[list, Optional[Symbol]]:
    if isinstance(params, Symbol):
        return [], params
    if isinstance(params, list):
        names, rest = params, None
    elif isinstance(params, DottedList):
        names, rest = params.items, params.tail
        _expect(isinstance(rest, Symbol), form, "not an identifier for rest argument")
    else:
        raise SchemeSyntaxError(f"{form[0]}: bad argument sequence in: {describe(form)}")
    for name in names:
        _expect(isinstance(name, Symbol), form, f"not an identifier: {describe(name)}")
    seen = set()
    for name in names + ([rest] if rest is not None else []):
        _expect(name not in seen, form, f"duplicate argument name: {name}")
        seen.add(name)
    return list(names), rest


def _parse_bindings(bindings, form) -> list[tuple[Symbol, Any]]:
    _expect(isinstance(bindings, list), form, "expected a sequence of bindings")
    pairs = []
    for binding in bindings:
        _expect(
            isinstance(binding, list) and len(binding) == 2 and isinstance(binding[0], Symbol),
            form,
            f"bad binding: {describe(binding)}",
        )
        pairs.append((binding[0], binding[1]))
    return pairs


@special_form("quote")
def _quote(form, env):
    _expect(len(form) == 2, form)
    return form[1]


@special_form("quasiquote")
def _quasiquote(form, env):
    _expect(len(form) == 2, form)
    return _quasi(form[1], env, 1)


def _quasi(template, env, depth):
    if isinstance(template, list):
        if not template:
            return []
        head = template[0]
        if isinstance(head, Symbol) and len(template) == 2:
            if head == UNQUOTE:
                if depth == 1:
                    return evaluate(template[1], env)
                return [UNQUOTE, _quasi(template[1], env, depth - 1)]
            if head == QUASIQUOTE:
                return [QUASIQUOTE, _quasi(template[1], env, depth + 1)]
        out = []
        for i, item in enumerate(template):
            if depth == 1 and i > 0 and i == len(template) - 2 and isinstance(item, Symbol) and item == UNQUOTE:
                # `(a . ,b) reads as (a unquote b)
                tail = evaluate(template[-1], env)
                if isinstance(tail, list):
                    return out + tail
                if isinstance(tail, DottedList):
                    return DottedList(out + tail.items, tail.tail)
                return DottedList(out, tail)
            if (
                depth == 1
                and isinstance(item, list)
                and len(item) == 2
                and isinstance(item[0], Symbol)
                and item[0] == UNQUOTE_SPLICING
            ):
                spliced = evaluate(item[1], env)
                if not isinstance(spliced, list):
                    raise WrongType(f"unquote-splicing: contract violation\n  expected: list?\n  given: {describe(spliced)}")
                out.extend(spliced)
            else:
                out.append(_quasi(item, env, depth))
        return out
    if isinstance(template, DottedList):
        items = _quasi(template.items, env, depth)
        tail = _quasi(template.tail, env, depth)
        if isinstance(tail, list):
            return items + tail
        return DottedList(items, tail)
    if isinstance(template, tuple):
        return tuple(_quasi(list(template), env, depth))
    return template


@special_form("if")
def _if(form, env):
    _expect(len(form) in (3, 4), form)
    if is_true(evaluate(form[1], env)):
        return TailCall(form[2], env)
    if len(form) == 4:
        return TailCall(form[3], env)
    return UNSPECIFIED


@special_form("define")
def _define(form, env):
    _expect(len(form) >= 2, form)
    target = form[1]
    if isinstance(target, Symbol):
        _expect(len(form) == 3, form, "bad syntax (multiple expressions after identifier)")
        value = evaluate(form[2], env)
        if isinstance(value, (Procedure, Macro)) and value.name is None:
            value.name = str(target)
        env.define(target, value)
        return UNSPECIFIED
    if isinstance(target, list) and target:
        name, params = target[0], target[1:]
    elif isinstance(target, DottedList):
        name = target.items[0]
        params = DottedList(target.items[1:], target.tail) if len(target.items) > 1 else target.tail
    else:
        raise SchemeSyntaxError(f"define: bad syntax in: {describe(form)}")
    _expect(isinstance(name, Symbol), form, f"not an identifier: {describe(name)}")
    _expect(len(form) >= 3, form, "no expression for procedure body")
    names, rest = _parse_params(params, form)
    env.define(name, Procedure(names, rest, form[2:], env, str(name)))
    return UNSPECIFIED


@special_form("set!")
def _set(form, env):
    _expect(len(form) == 3 and isinstance(form[1], Symbol), form)
    env.assign(form[1], evaluate(form[2], env))
    return UNSPECIFIED


@special_form("lambda")
def _lambda(form, env):
    _expect(len(form) >= 3, form)
    names, rest = _parse_params(form[1], form)
    return Procedure(names, rest, form[2:], env)


SPECIAL_FORMS["λ"] = _lambda


@special_form("begin")
def _begin(form, env):
    return _body(form[1:], env)


@special_form("let")
def _let(form, env):
    _expect(len(form) >= 3, form)
    if isinstance(form[1], Symbol):
        # Named let
        _expect(len(form) >= 4, form)
        name = form[1]
        pairs = _parse_bindings(form[2], form)
        values = [evaluate(expr, env) for _, expr in pairs]
        loop_env = Environment(parent=env)
        proc = Procedure([var for var, _ in pairs], None, form[3:], loop_env, str(name))
        loop_env.define(name, proc)
        return _body(proc.body, proc.bind(values))
    pairs = _parse_bindings(form[1], form)
    names = [var for var, _ in pairs]
    _expect(len(set(names)) == len(names), form, "duplicate identifier")
    values = [evaluate(expr, env) for _, expr in pairs]
    return _body(form[2:], env.extend(names, values))


@special_form("let*")
def _let_star(form, env):
    _expect(len(form) >= 3, form)
    for name, expr in _parse_bindings(form[1], form):
        env = env.extend([name], [evaluate(expr, env)])
    return _body(form[2:], env)


@special_form("letrec")
def _letrec(form, env):
    _expect(len(form) >= 3, form)
    pairs = _parse_bindings(form[1], form)
    inner = Environment({name: UNSPECIFIED for name, _ in pairs}, parent=env)
    for name, expr in pairs:
        value = evaluate(expr, inner)
        if isinstance(value, Procedure) and value.name is None:
            value.name = str(name)
        inner.define(name, value)
    return _body(form[2:], inner)


SPECIAL_FORMS["letrec*"] = _letrec


@special_form("cond")
def _cond(form, env):
    for clause in form[1:]:
        _expect(isinstance(clause, list) and clause, form, "bad clause")
        test = clause[0]
        if isinstance(test, Symbol) and test == ELSE and not env.is_bound(ELSE):
            return _body(clause[1:], env)
        value = evaluate(test, env)
        if not is_true(value):
            continue
        if len(clause) == 1:
            return value
        if isinstance(clause[1], Symbol) and clause[1] == ARROW:
            _expect(len(clause) == 3, form, "bad `=>` clause")
            return apply_procedure(evaluate(clause[2], env), [value])
        return _body(clause[1:], env)
    return UNSPECIFIED


@special_form("case")
def _case(form, env):
    _expect(len(form) >= 2, form)
    key = evaluate(form[1], env)
    for clause in form[2:]:
        _expect(isinstance(clause, list) and clause, form, "bad clause")
        data = clause[0]
        if isinstance(data, Symbol) and data == ELSE:
            return _body(clause[1:], env)
        _expect(isinstance(data, list), form, "bad clause")
        if any(is_eqv(key, datum) for datum in data):
            return _body(clause[1:], env)
    return UNSPECIFIED


@special_form("and")
def _and(form, env):
    if len(form) == 1:
        return True
    for expr in form[1:-1]:
        if not is_true(evaluate(expr, env)):
            return False
    return TailCall(form[-1], env)


@special_form("or")
def _or(form, env):
    if len(form) == 1:
        return False
    for expr in form[1:-1]:
        value = evaluate(expr, env)
        if is_true(value):
            return value
    return TailCall(form[-1], env)


@special_form("when")
def _when(form, env):
    _expect(len(form) >= 3, form)
    if is_true(evaluate(form[1], env)):
        return _body(form[2:], env)
    return UNSPECIFIED


@special_form("unless")
def _unless(form, env):
    _expect(len(form) >= 3, form)
    if not is_true(evaluate(form[1], env)):
        return _body(form[2:], env)
    return UNSPECIFIED


@special_form("gensym")
def _gensym(form, env):
    _expect(len(form) <= 2, form)
    base = "g"
    if len(form) == 2:
        prefix = evaluate(form[1], env)
        if not isinstance(prefix, str):
            raise WrongType(f"gensym: contract violation\n  expected: (or/c symbol? string?)\n  given: {describe(prefix)}")
        base = str(prefix)
    return env.fresh_symbol(base)


# Macros


@special_form("syntax-rules")
def _syntax_rules(form, env):
    return make_syntax_rules(form[1:], env)


@special_form("define-syntax")
def _define_syntax(form, env):
    _expect(len(form) == 3 and isinstance(form[1], Symbol), form)
    transformer = evaluate(form[2], env)
    if not isinstance(transformer, Macro):
        raise SchemeSyntaxError(f"define-syntax: expected a syntax-rules transformer, given: {describe(transformer)}")
    transformer.name = str(form[1])
    env.define(form[1], transformer)
    return UNSPECIFIED


@special_form("define-syntax-rule")
def _define_syntax_rule(form, env):
    _expect(len(form) == 3, form)
    pattern = form[1]
    if isinstance(pattern, list):
        _expect(bool(pattern) and isinstance(pattern[0], Symbol), form)
        name = pattern[0]
    elif isinstance(pattern, DottedList):
        _expect(isinstance(pattern.items[0], Symbol), form)
        name = pattern.items[0]
    else:
        raise SchemeSyntaxError(f"define-syntax-rule: bad syntax in: {describe(form)}")
    env.define(name, Macro([], [(pattern, form[2])], env, str(name)))
    return UNSPECIFIED


def _bind_syntax(form, env, recursive: bool):
    _expect(len(form) >= 3, form)
    pairs = _parse_bindings(form[1], form)
    inner = Environment(parent=env)
    for name, transformer_form in pairs:
        transformer = evaluate(transformer_form, inner if recursive else env)
        if not isinstance(transformer, Macro):
            raise SchemeSyntaxError(f"{form[0]}: expected a syntax-rules transformer for {name}")
        transformer.name = str(name)
        inner.define(name, transformer)
    return _body(form[2:], inner)


@special_form("let-syntax")
def _let_syntax(form, env):
    return _bind_syntax(form, env, recursive=False)


@special_form("letrec-syntax")
def _letrec_syntax(form, env):
    return _bind_syntax(form, env, recursive=True)


@special_form("macroexpand-1")
def _macroexpand_1(form, env):
    _expect(len(form) == 2, form)
    expanded, _ = macroexpand_once(evaluate(form[1], env), env)
    return expanded


@special_form("macroexpand")
def _macroexpand(form, env):
    _expect(len(form) == 2, form)
    return macroexpand_all(evaluate(form[1], env), env)


def _macro_for(form, env) -> Optional[Macro]:
    if isinstance(form, list) and form and isinstance(form[0], Symbol):
        frame, key = env.resolve(form[0])
        if frame is not None and isinstance(frame.bindings[key], Macro):
            return frame.bindings[key]
    return None


def macroexpand_once(form, env: Environment) -> tuple[Any, bool]:
    """Expand form once if its head names a macro. Returns (form, expanded?)."""
    macro = _macro_for(form, env)
    if macro is None:
        return form, False
    return macro.expand(form, reserved_names()), True


def macroexpand_all(form, env: Environment) -> Any:
    """Expand form and every subform, except inside quote and quasiquote."""
    expanded = True
    while expanded:
        form, expanded = macroexpand_once(form, env)
    if not isinstance(form, list) or not form:
        return form
    head = form[0]
    if isinstance(head, Symbol) and head in (QUOTE, QUASIQUOTE) and not env.is_bound(head):
        return form
    return [macroexpand_all(item, env) for item in form]


# ---------------------------------------------------------------------- #
# Eval / apply
# ---------------------------------------------------------------------- #

def evaluate(expr: Any, env: Environment) -> Any:
    """Evaluate expr in env."""
    while True:
        if isinstance(expr, Symbol):
            value = env.lookup(expr)
            if isinstance(value, Macro):
                raise SchemeSyntaxError(f"{original_name(expr)}: bad syntax")
            return value

        if isinstance(expr, list):
            if not expr:
                raise SchemeSyntaxError(
                    "#%app: missing procedure expression;\n"
                    " probably originally (), which is an illegal empty application"
                )
            head = expr[0]
            if isinstance(head, Symbol):
                frame, key = env.resolve(head)
                if frame is None and head in SPECIAL_FORMS:
                    result = SPECIAL_FORMS[head](expr, env)
                    if isinstance(result, TailCall):
                        expr, env = result
                        continue
                    return result
                if frame is not None and isinstance(frame.bindings[key], Macro):
                    expr = frame.bindings[key].expand(expr, reserved_names())
                    continue

            proc = evaluate(head, env)
            args = [evaluate(arg, env) for arg in expr[1:]]
            if isinstance(proc, Procedure):
                env = proc.bind(args)
                for body_expr in proc.body[:-1]:
                    evaluate(body_expr, env)
                expr = proc.body[-1]
                continue
            return apply_procedure(proc, args)

        if isinstance(expr, DottedList):
            raise SchemeSyntaxError(f"#%app: bad syntax (illegal use of `.`) in: {describe(expr)}")

        return expr


def apply_procedure(proc: Any, args: list) -> Any:
    """Call a procedure value with already-evaluated arguments."""
    if isinstance(proc, Primitive):
        return proc(*args)
    if isinstance(proc, Procedure):
        env = proc.bind(args)
        result = UNSPECIFIED
        for expr in proc.body:
            result = evaluate(expr, env)
        return result
    raise WrongType(
        "application: not a procedure;\n"
        " expected a procedure that can be applied to arguments\n"
        f"  given: {describe(proc)}"
    )
