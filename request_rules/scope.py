"""Input scopes and the handle the evaluator reads and writes through."""

from enum import Enum
from typing import Any, Dict, Iterable, Optional

from .errors import RuleDefinitionError


class Scope(Enum):
    """Named bag of request input values."""

    QUERY = "query"
    BODY = "body"

    @classmethod
    def from_name(cls, name) -> "Scope":
        """
        Resolve a scope from its value or member name.

        Args:
            name: Scope member, value ("query") or member name ("QUERY")

        Returns:
            Matching Scope member

        Raises:
            RuleDefinitionError: If the name is not a known scope
        """
        if isinstance(name, cls):
            return name
        try:
            return _SCOPE_LOOKUP[str(name).strip().lower()]
        except KeyError:
            raise RuleDefinitionError(f"Unknown scope: {name!r}") from None


# Built once; both "query" and "QUERY" resolve through the lowercased key
_SCOPE_LOOKUP: Dict[str, Scope] = {member.value: member for member in Scope}


class ScopeValues:
    """
    Explicit handle on one scope's input mapping.

    The wrapped dict is the caller's own object. Rule evaluation writes
    back into it (default seeding, boolean coercion), so the caller sees
    the normalized values after evaluation without any extra step.
    """

    def __init__(self, scope: Scope, values: Optional[Dict[str, Any]] = None,
                 string_encoded: bool = False):
        """
        Args:
            scope: Scope these values belong to
            values: Mapping of property name to raw value (mutated in place)
            string_encoded: True when raw values arrive as strings
                (query parameters, form bodies)
        """
        self.scope = scope
        self.values = values if values is not None else {}
        self.string_encoded = string_encoded

    def __contains__(self, name: str) -> bool:
        return name in self.values

    def get(self, name: str, default: Any = None) -> Any:
        return self.values.get(name, default)

    def set(self, name: str, value: Any) -> None:
        self.values[name] = value

    def keys(self) -> Iterable[str]:
        return self.values.keys()

    def __repr__(self) -> str:
        return (f"ScopeValues(scope={self.scope.value!r}, "
                f"keys={list(self.values)!r}, string_encoded={self.string_encoded})")
