"""
syntax-rules macros.

A Macro holds an ordered list of (pattern, template) rules plus the
environment it was defined in. Expansion matches the use against each
pattern in turn and instantiates the first matching template.

Hygiene is done by renaming: every symbol the template introduces is
replaced by a fresh Renamed symbol (consistently within one expansion).
Pattern variables, special-form names and auxiliary keywords, and symbols
inside quoted parts of the template are left alone. A renamed symbol that
nothing binds is looked up by its original name in the definition
environment, so free references in a template see the definition site
while temporaries never capture, or get captured by, the user's variables.
"""

from typing import Any, Iterable, Optional

from schemedoc.datatypes import (
    DottedList,
    ELLIPSIS,
    QUASIQUOTE,
    QUOTE,
    Renamed,
    SchemeObject,
    Symbol,
    UNDERSCORE,
    UNQUOTE,
    UNQUOTE_SPLICING,
    is_equal,
    original_name,
)
from schemedoc.environment import Environment
from schemedoc.errors import SchemeSyntaxError
from schemedoc.printer import describe


class _Repeated(list):
    """Matches of a pattern variable that sits under an ellipsis."""


def _is_ellipsis(item) -> bool:
    return isinstance(item, Symbol) and item == ELLIPSIS


class Macro(SchemeObject):
    """A syntax-rules transformer."""

    def __init__(
        self,
        literals: Iterable[Symbol],
        rules: list[tuple[Any, Any]],
        env: Environment,
        name: Optional[str] = None,
    ):
        self.literals = frozenset(literals)
        self.rules = rules
        self.env = env
        self.name = name

    def scheme_repr(self) -> str:
        return f"#<syntax:{self.name}>" if self.name else "#<syntax>"

    # ------------------------------------------------------------------ #
    # Expansion
    # ------------------------------------------------------------------ #

    def expand(self, form: list, reserved: frozenset) -> Any:
        """
        Expand one use of this macro.

        Args:
            form: The whole macro use, keyword included
            reserved: Names never renamed (special forms, auxiliary keywords)

        Returns:
            The expansion, not yet evaluated
        """
        for pattern, template in self.rules:
            bindings: dict[str, Any] = {}
            if self._match_rule(pattern, form, bindings):
                return self._instantiate(template, bindings, {}, reserved, quoted=False)
        raise SchemeSyntaxError(f"{self.name or 'macro'}: bad syntax in: {describe(form)}")

    def _match_rule(self, pattern, form, bindings) -> bool:
        # The keyword position of the pattern is ignored.
        if isinstance(pattern, list):
            return self._match_sequence(pattern[1:], None, form[1:], bindings)
        if isinstance(pattern, DottedList):
            return self._match_sequence(pattern.items[1:], pattern.tail, form[1:], bindings)
        return False

    def _match(self, pattern, form, bindings) -> bool:
        if isinstance(pattern, Symbol):
            if pattern == UNDERSCORE:
                return True
            if pattern in self.literals:
                return isinstance(form, Symbol) and original_name(form) == pattern
            bindings[pattern] = form
            return True
        if isinstance(pattern, list):
            return isinstance(form, list) and self._match_sequence(pattern, None, form, bindings)
        if isinstance(pattern, DottedList):
            if isinstance(form, list):
                return self._match_sequence(pattern.items, pattern.tail, form, bindings)
            if isinstance(form, DottedList):
                if len(form.items) < len(pattern.items):
                    return False
                head = form.items[:len(pattern.items)]
                rest = form.items[len(pattern.items):]
                tail = DottedList(rest, form.tail) if rest else form.tail
                return (
                    self._match_sequence(pattern.items, None, head, bindings)
                    and self._match(pattern.tail, tail, bindings)
                )
            return False
        if isinstance(pattern, tuple):
            return isinstance(form, tuple) and self._match_sequence(list(pattern), None, list(form), bindings)
        return is_equal(pattern, form)

    def _match_sequence(self, patterns: list, tail, forms: list, bindings) -> bool:
        position = self._ellipsis_position(patterns)
        if position is None:
            if len(forms) < len(patterns) or (tail is None and len(forms) != len(patterns)):
                return False
            for pattern, form in zip(patterns, forms):
                if not self._match(pattern, form, bindings):
                    return False
            if tail is not None:
                return self._match(tail, forms[len(patterns):], bindings)
            return True

        before = patterns[:position]
        repeated = patterns[position]
        after = patterns[position + 2:]
        if self._ellipsis_position(after) is not None:
            raise SchemeSyntaxError(f"{self.name or 'syntax-rules'}: more than one ellipsis in a sequence pattern")
        if len(forms) < len(before) + len(after):
            return False
        count = len(forms) - len(before) - len(after)

        for pattern, form in zip(before, forms):
            if not self._match(pattern, form, bindings):
                return False

        matches = []
        for form in forms[position:position + count]:
            sub_bindings: dict[str, Any] = {}
            if not self._match(repeated, form, sub_bindings):
                return False
            matches.append(sub_bindings)
        for var in self._pattern_vars(repeated):
            bindings[var] = _Repeated(match[var] for match in matches)

        rest = forms[position + count:]
        for pattern, form in zip(after, rest):
            if not self._match(pattern, form, bindings):
                return False
        if tail is not None:
            return self._match(tail, [], bindings)
        return True

    def _ellipsis_position(self, patterns: list) -> Optional[int]:
        if ELLIPSIS in self.literals:
            return None
        for i in range(len(patterns) - 1):
            if _is_ellipsis(patterns[i + 1]):
                return i
        return None

    def _pattern_vars(self, pattern) -> list[Symbol]:
        if isinstance(pattern, Symbol):
            if pattern in (UNDERSCORE, ELLIPSIS) or pattern in self.literals:
                return []
            return [pattern]
        if isinstance(pattern, (list, tuple)):
            found = []
            for item in pattern:
                found.extend(self._pattern_vars(item))
            return found
        if isinstance(pattern, DottedList):
            return self._pattern_vars(pattern.items) + self._pattern_vars(pattern.tail)
        return []

    # ------------------------------------------------------------------ #
    # Template instantiation
    # ------------------------------------------------------------------ #

    def _instantiate(self, template, bindings, renames, reserved, quoted, escaped=False):
        if isinstance(template, Symbol):
            if template in bindings:
                value = bindings[template]
                if isinstance(value, _Repeated):
                    raise SchemeSyntaxError(
                        f"{self.name or 'syntax-rules'}: missing ellipsis with pattern variable in template: {template}"
                    )
                return value
            if quoted or template in reserved:
                return template
            if template not in renames:
                fresh = self.env.fresh_symbol(original_name(template))
                renames[template] = Renamed(fresh, template, self.env)
            return renames[template]

        if isinstance(template, list):
            head = template[0] if template and isinstance(template[0], Symbol) else None
            if not escaped and len(template) == 2 and head == ELLIPSIS:
                return self._instantiate(template[1], bindings, renames, reserved, quoted, escaped=True)
            if head in (QUOTE, QUASIQUOTE):
                quoted = True
            elif quoted and head in (UNQUOTE, UNQUOTE_SPLICING):
                quoted = False
            return self._instantiate_sequence(template, bindings, renames, reserved, quoted, escaped)

        if isinstance(template, DottedList):
            items = self._instantiate_sequence(template.items, bindings, renames, reserved, quoted, escaped)
            tail = self._instantiate(template.tail, bindings, renames, reserved, quoted, escaped)
            if isinstance(tail, list):
                return items + tail
            if isinstance(tail, DottedList):
                return DottedList(items + tail.items, tail.tail)
            return DottedList(items, tail)

        if isinstance(template, tuple):
            return tuple(self._instantiate_sequence(list(template), bindings, renames, reserved, quoted, escaped))

        return template

    def _instantiate_sequence(self, templates, bindings, renames, reserved, quoted, escaped) -> list:
        out = []
        i = 0
        while i < len(templates):
            sub = templates[i]
            depth = 0
            if not escaped:
                while i + 1 + depth < len(templates) and _is_ellipsis(templates[i + 1 + depth]):
                    depth += 1
            if depth == 0:
                out.append(self._instantiate(sub, bindings, renames, reserved, quoted, escaped))
            else:
                out.extend(self._instantiate_repeated(sub, depth, bindings, renames, reserved, quoted))
            i += 1 + depth
        return out

    def _instantiate_repeated(self, template, depth, bindings, renames, reserved, quoted) -> list:
        names = [
            var for var in self._template_symbols(template)
            if isinstance(bindings.get(var), _Repeated)
        ]
        if not names:
            raise SchemeSyntaxError(
                f"{self.name or 'syntax-rules'}: no pattern variables before ellipsis in template"
            )
        lengths = {len(bindings[var]) for var in names}
        if len(lengths) > 1:
            raise SchemeSyntaxError(
                f"{self.name or 'syntax-rules'}: incompatible ellipsis match counts for template"
            )

        results = []
        for k in range(lengths.pop()):
            inner = dict(bindings)
            for var in names:
                inner[var] = bindings[var][k]
            if depth > 1:
                results.extend(self._instantiate_repeated(template, depth - 1, inner, renames, reserved, quoted))
            else:
                results.append(self._instantiate(template, inner, renames, reserved, quoted))
        return results

    def _template_symbols(self, template) -> list[Symbol]:
        if isinstance(template, Symbol):
            return [template]
        if isinstance(template, (list, tuple)):
            found = []
            for item in template:
                found.extend(self._template_symbols(item))
            return found
        if isinstance(template, DottedList):
            return self._template_symbols(template.items) + self._template_symbols(template.tail)
        return []


def make_syntax_rules(operands: list, env: Environment, name: Optional[str] = None) -> Macro:
    """
    Build a Macro from the operands of (syntax-rules (literal ...) (pattern template) ...).
    """
    if not operands or not isinstance(operands[0], list):
        raise SchemeSyntaxError("syntax-rules: expected a list of literals")
    literals = operands[0]
    for literal in literals:
        if not isinstance(literal, Symbol):
            raise SchemeSyntaxError(f"syntax-rules: literal is not an identifier: {describe(literal)}")

    rules = []
    for clause in operands[1:]:
        if not isinstance(clause, list) or len(clause) != 2:
            raise SchemeSyntaxError(f"syntax-rules: bad clause: {describe(clause)}")
        pattern, template = clause
        if not isinstance(pattern, (list, DottedList)):
            raise SchemeSyntaxError(f"syntax-rules: pattern must be a list: {describe(pattern)}")
        rules.append((pattern, template))
    return Macro(literals, rules, env, name)
