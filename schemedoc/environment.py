"""
Environment: lexical frames of name -> value bindings.

The top-level frame of a session is snapshotted before each fragment so a
failing fragment can be rolled back without leaking its bindings.
"""

from typing import Any, Iterable, Optional

from schemedoc.datatypes import Renamed, Symbol, original_name
from schemedoc.errors import ArityError, UnboundVariable


class Environment:
    """One frame of bindings plus a link to the enclosing frame."""

    def __init__(self, bindings: Optional[dict] = None, parent: Optional["Environment"] = None):
        self.bindings: dict[str, Any] = dict(bindings or {})
        self.parent = parent
        # Counter for hygienic renames; only the root frame's is used.
        self.rename_counter = 0

    def find(self, name: str) -> Optional["Environment"]:
        """Return the innermost frame binding name, or None."""
        env = self
        while env is not None:
            if name in env.bindings:
                return env
            env = env.parent
        return None

    def resolve(self, name: str) -> tuple[Optional["Environment"], str]:
        """
        Return (frame, key) for name.

        A macro-renamed symbol that nothing binds resolves to its original
        name in the macro's definition environment.
        """
        env = self
        while True:
            frame = env.find(name)
            if frame is not None or not isinstance(name, Renamed):
                return frame, name
            env, name = name.env, name.original

    def is_bound(self, name: str) -> bool:
        return self.resolve(name)[0] is not None

    def lookup(self, name: str) -> Any:
        env, key = self.resolve(name)
        if env is None:
            raise UnboundVariable(original_name(name))
        return env.bindings[key]

    def define(self, name: str, value: Any):
        self.bindings[name] = value

    def assign(self, name: str, value: Any):
        """set!: rebind an existing variable in the frame that holds it."""
        env, key = self.resolve(name)
        if env is None:
            raise UnboundVariable(original_name(name))
        env.bindings[key] = value

    def extend(self, names: Iterable[str], values: Iterable[Any]) -> "Environment":
        """Create a child frame binding names to values pairwise."""
        names = list(names)
        values = list(values)
        if len(names) != len(values):
            raise ArityError(f"expected {len(names)} values, given {len(values)}")
        return Environment(dict(zip(names, values)), parent=self)

    def root(self) -> "Environment":
        env = self
        while env.parent is not None:
            env = env.parent
        return env

    def fresh_symbol(self, base: str) -> Symbol:
        """Generate a symbol no source text in this session has used."""
        root = self.root()
        root.rename_counter += 1
        return Symbol(f"{base}.{root.rename_counter}")

    def snapshot(self) -> dict[str, Any]:
        """Copy of this frame's bindings."""
        return dict(self.bindings)

    def restore(self, snapshot: dict[str, Any]):
        """Put this frame's bindings back to a snapshot."""
        self.bindings.clear()
        self.bindings.update(snapshot)

    def names(self) -> list[str]:
        return list(self.bindings)
