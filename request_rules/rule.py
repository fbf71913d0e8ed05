"""
Rule - the constraint set for one named request property.

A Rule is built with chained calls and then handed to a Ruleset:

    Rule("age").required().type(PropertyType.NUMBER).min(0).max(120)

Builder methods return the same instance. Once built, the Ruleset drives the
eval_* methods. Two of them write into the scope they evaluate against, and
that write is part of their contract:

- eval_required() seeds an absent property with its default (or None), so
  every later reader of the scope sees a defined value.
- eval_type() replaces a string token ("yes", "0", ...) with the primitive
  bool when BOOLEAN matches in a string-encoded scope.

Nested object rules are not supported: OBJECT and ARRAY match on shape
(mapping / sequence) only and never descend into their members.
"""

import copy
import logging
import math
import re
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from .errors import RuleDefinitionError
from .scope import ScopeValues

logger = logging.getLogger(__name__)


class PropertyType(Enum):
    """Primitive shapes a value can be validated against."""

    NUMBER = "number"
    STRING = "string"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"
    NULL = "null"

    @classmethod
    def from_name(cls, name) -> "PropertyType":
        """
        Resolve a type from its member name or value ("NUMBER", "number").

        Raises:
            RuleDefinitionError: If the name is not a known type
        """
        if isinstance(name, cls):
            return name
        try:
            return _TYPE_LOOKUP[str(name).strip().lower()]
        except KeyError:
            raise RuleDefinitionError(f"Unknown property type: {name!r}") from None


_TYPE_LOOKUP: Dict[str, PropertyType] = {member.value: member for member in PropertyType}

# Bounds on these types measure length/size, so a negative bound is never meaningful
SIZED_TYPES = frozenset({PropertyType.STRING, PropertyType.ARRAY, PropertyType.OBJECT})

BOOLEAN_TRUE_TOKENS = frozenset({"true", "1", "on", "yes"})
BOOLEAN_FALSE_TOKENS = frozenset({"false", "0", "off", "no"})

_NUMERIC_STRING = re.compile(r"^\s*[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?\s*$")

_SCALAR_TYPES = (str, int, float, bool, type(None))


def to_number(value: Any) -> Optional[Union[int, float]]:
    """
    Return the numeric value of a NUMBER-compatible value.

    Native ints and floats count (bools and NaN do not), as do strings
    holding a decimal or exponent literal such as "42", " -1.5 " or "2e3".

    Returns:
        int or float, or None if the value is not numeric
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return None if math.isnan(value) else value
    if isinstance(value, str) and _NUMERIC_STRING.match(value):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            return float(text)
    return None


def coerce_boolean(value: Any) -> Optional[bool]:
    """
    Coerce a string token to bool.

    Tokens are matched case-insensitively after stripping whitespace.
    Anything outside the two token sets fails coercion.

    Returns:
        True/False, or None when the value is not a boolean token
    """
    if isinstance(value, bool):
        return value
    if not isinstance(value, str):
        return None
    token = value.strip().lower()
    if token in BOOLEAN_TRUE_TOKENS:
        return True
    if token in BOOLEAN_FALSE_TOKENS:
        return False
    return None


def matches_type(property_type: PropertyType, value: Any) -> bool:
    """Structural type test, without any coercion."""
    if property_type is PropertyType.NUMBER:
        return to_number(value) is not None
    if property_type is PropertyType.STRING:
        return isinstance(value, str)
    if property_type is PropertyType.BOOLEAN:
        return isinstance(value, bool)
    if property_type is PropertyType.ARRAY:
        return isinstance(value, (list, tuple))
    if property_type is PropertyType.OBJECT:
        return isinstance(value, Mapping)
    return value is None


def _same_value(value: Any, member: Any) -> bool:
    # True == 1 in Python; enum membership must not conflate them
    return isinstance(value, bool) == isinstance(member, bool) and value == member


class Rule:
    """Accumulated constraints for one property, plus their evaluators."""

    def __init__(self, property_name: str):
        """
        Args:
            property_name: Name of the property in its scope (non-empty)

        Raises:
            RuleDefinitionError: If the name is empty or not a string
        """
        if not isinstance(property_name, str) or not property_name:
            raise RuleDefinitionError("Rule property name must be a non-empty string")

        self._property = property_name

        self.is_required = False
        self.types: List[PropertyType] = []
        self.enum_values: Optional[List[Any]] = None

        self.min_value: Optional[int] = None
        self.max_value: Optional[int] = None

        self.default_value: Any = None
        self.has_default = False

        # Set by eval_type(); reused by the bound checks of the same pass
        self.matched_type: Optional[PropertyType] = None

    @property
    def property_name(self) -> str:
        return self._property

    def __repr__(self) -> str:
        return f"Rule({self._property!r}, {self.describe()!r})"

    # Constraints

    def required(self, flag: bool = True) -> "Rule":
        """This property has to exist in its scope."""
        self.is_required = bool(flag)
        return self

    def type(self, property_type: Union[PropertyType, str]) -> "Rule":
        """Accept values of this type, in addition to any already accepted."""
        property_type = PropertyType.from_name(property_type)
        if property_type not in self.types:
            self.types.append(property_type)
        return self

    def min(self, value: Optional[int]) -> "Rule":
        """Set the inclusive lower bound (value, length or size)."""
        self.min_value = self._bound(value, "min")
        return self

    def max(self, value: Optional[int]) -> "Rule":
        """Set the inclusive upper bound (value, length or size)."""
        self.max_value = self._bound(value, "max")
        return self

    def default(self, value: Any) -> "Rule":
        """Value seeded into the scope when the property is absent."""
        self.default_value = value
        self.has_default = True
        return self

    def enum(self, values: Sequence[Any]) -> "Rule":
        """Restrict accepted values to an explicit allow-list of scalars."""
        if isinstance(values, (str, bytes)) or not isinstance(values, Sequence):
            raise RuleDefinitionError(
                f"Enum for '{self._property}' must be a sequence of values"
            )
        if not values:
            raise RuleDefinitionError(f"Enum for '{self._property}' can not be empty")
        for value in values:
            if not isinstance(value, _SCALAR_TYPES):
                raise RuleDefinitionError(
                    f"Enum for '{self._property}' contains non-scalar value {value!r}"
                )
        self.enum_values = list(values)
        return self

    def _bound(self, value: Optional[int], name: str) -> Optional[int]:
        if value is not None and (isinstance(value, bool) or not isinstance(value, int)):
            raise RuleDefinitionError(
                f"{name} for '{self._property}' must be an integer, got {value!r}"
            )
        return value

    def check(self) -> "Rule":
        """
        Verify the constraints are consistent with each other.

        Raises:
            RuleDefinitionError: If bounds are set without a type, min is
                greater than max, or a negative bound is set on a rule whose
                every type is measured by size
        """
        bounds = [b for b in (self.min_value, self.max_value) if b is not None]

        if bounds and not self.types:
            raise RuleDefinitionError(
                f"Rule '{self._property}' sets min/max without any type"
            )
        if (self.min_value is not None and self.max_value is not None
                and self.min_value > self.max_value):
            raise RuleDefinitionError(
                f"Rule '{self._property}' has min {self.min_value} > max {self.max_value}"
            )
        if self.types and set(self.types) <= SIZED_TYPES and any(b < 0 for b in bounds):
            raise RuleDefinitionError(
                f"Rule '{self._property}' sets a negative length/size bound"
            )
        return self

    def describe(self) -> Dict[str, Any]:
        """Return a JSON-compatible description of the configured constraints."""
        description: Dict[str, Any] = {
            "property": self._property,
            "required": self.is_required,
            "types": [t.name for t in self.types],
        }
        if self.enum_values is not None:
            description["enum"] = list(self.enum_values)
        if self.min_value is not None:
            description["min"] = self.min_value
        if self.max_value is not None:
            description["max"] = self.max_value
        if self.has_default:
            description["default"] = self.default_value
        return description

    # Eval methods

    def eval_required(self, scope: ScopeValues) -> bool:
        """
        Test whether the property is present in the scope.

        Postcondition: the property is present afterwards. When it was
        absent it is seeded with a copy of the default, or None when no
        default is configured.

        Returns:
            True if the property was present before the call
        """
        if self._property in scope:
            return True

        seeded = copy.deepcopy(self.default_value) if self.has_default else None
        scope.set(self._property, seeded)
        return False

    def eval_type(self, value: Any, scope: ScopeValues) -> bool:
        """
        Test the value against the accepted types and the enum allow-list.

        Types are tried in declaration order and the first match wins.
        Postconditions: matched_type holds that first match, or None when
        the check fails. In a string-encoded scope a BOOLEAN match on a
        string token writes the coerced bool back into the scope.

        Returns:
            True if some accepted type matches and the value is in the enum
            (when one is configured); an empty type list matches anything
        """
        self.matched_type = None

        matched = None
        for property_type in self.types:
            if matches_type(property_type, value):
                matched = property_type
                break
            if property_type is PropertyType.BOOLEAN and scope.string_encoded:
                coerced = coerce_boolean(value)
                if coerced is not None:
                    logger.debug(
                        "Coerced boolean token",
                        extra={'property': self._property, 'scope': scope.scope.value,
                               'raw': value, 'coerced': coerced}
                    )
                    value = coerced
                    scope.set(self._property, coerced)
                    matched = property_type
                    break

        if self.types and matched is None:
            return False

        if self.enum_values is not None and not self._in_enum(value, matched):
            return False

        self.matched_type = matched
        return True

    def _in_enum(self, value: Any, matched: Optional[PropertyType]) -> bool:
        candidates = [value]
        # A numeric string compares by the number it holds
        if matched is PropertyType.NUMBER:
            candidates.append(to_number(value))
        return any(
            _same_value(candidate, member)
            for candidate in candidates for member in self.enum_values
        )

    def eval_min(self, value: Any, scope: ScopeValues) -> bool:
        """Test the lower bound. Passes when no bound applies to the value."""
        measured = self._measure(value, scope)
        if measured is None or self.min_value is None:
            return True
        return measured >= self.min_value

    def eval_max(self, value: Any, scope: ScopeValues) -> bool:
        """Test the upper bound. Passes when no bound applies to the value."""
        measured = self._measure(value, scope)
        if measured is None or self.max_value is None:
            return True
        return measured <= self.max_value

    def _measure(self, value: Any, scope: ScopeValues) -> Optional[Union[int, float]]:
        """
        Return the quantity a bound is compared against.

        Reuses matched_type while it still holds for the value, otherwise
        runs eval_type(). A failed type check yields None so the bound is
        skipped rather than reported on top of the type error.
        """
        if not self.types:
            return None

        if self.matched_type is None or not matches_type(self.matched_type, value):
            if not self.eval_type(value, scope):
                return None

        if self.matched_type is PropertyType.NUMBER:
            return to_number(value)
        if self.matched_type in SIZED_TYPES:
            return len(value)
        return None
