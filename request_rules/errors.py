"""
Validation error taxonomy and the per-scope error report.

Violations found while evaluating rules are data, not exceptions: they are
collected into an ErrorReport and handed back to the caller in one piece.
Exceptions in this module are reserved for misuse (RuleDefinitionError),
broken configuration (ConfigError) and the opt-in RulesetViolation.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple


class ErrorKind(Enum):
    """Closed set of violations a ruleset can report."""

    UNKNOWN_PROPERTY_NAME = "UNKNOWN_PROPERTY_NAME"
    MISSING_REQUIRED_PROPERTY = "MISSING_REQUIRED_PROPERTY"
    INVALID_PROPERTY_TYPE = "INVALID_PROPERTY_TYPE"
    INVALID_PROPERTY_VALUE = "INVALID_PROPERTY_VALUE"
    VALUE_MIN_ERROR = "VALUE_MIN_ERROR"
    VALUE_MAX_ERROR = "VALUE_MAX_ERROR"


class RuleDefinitionError(ValueError):
    """A rule was built with invalid or contradictory constraints."""


class ConfigError(RuntimeError):
    """Configuration could not be loaded or failed schema validation."""


@dataclass(frozen=True)
class ValidationError:
    """
    One detected violation.

    `scope` is the scope's wire name ("query", "body"). `detail` is the
    expected value for the kind: accepted type names, enum members or the
    bound. Kinds with nothing to expect leave it as None.
    """

    scope: str
    property_name: str
    kind: ErrorKind
    detail: Any = None

    @property
    def message(self) -> str:
        """Human-readable description of the violation."""
        if self.kind is ErrorKind.UNKNOWN_PROPERTY_NAME:
            return f"Unknown property name '{self.property_name}'"
        if self.kind is ErrorKind.MISSING_REQUIRED_PROPERTY:
            return f"Property '{self.property_name}' is required"
        if self.kind is ErrorKind.INVALID_PROPERTY_TYPE:
            return f"Value must be of type {' or '.join(self.detail)}"
        if self.kind is ErrorKind.INVALID_PROPERTY_VALUE:
            values = " or ".join(repr(v) for v in self.detail)
            return f"Value must be exactly: {values}"
        if self.kind is ErrorKind.VALUE_MIN_ERROR:
            return f"Value must be larger or equal to {self.detail}"
        return f"Value must be smaller or equal to {self.detail}"

    @property
    def payload(self) -> Any:
        """Value published under the error kind in the wire report."""
        return self.detail if self.detail is not None else self.message


class ErrorReport:
    """
    Violations indexed by scope, then property name.

    Entries are append-only: a later violation for the same scope and
    property is added after the earlier ones, never in place of them.
    """

    def __init__(self):
        self._errors: Dict[str, Dict[str, List[ValidationError]]] = {}

    def add(self, error: ValidationError) -> "ErrorReport":
        by_property = self._errors.setdefault(error.scope, {})
        by_property.setdefault(error.property_name, []).append(error)
        return self

    def errors_for(self, scope: str, property_name: str) -> List[ValidationError]:
        """
        Return the violations recorded for one property, in detection order.

        Args:
            scope: Scope wire name ("query", "body")
            property_name: Property to look up

        Returns:
            List of ValidationError (empty if the property is clean)
        """
        return list(self._errors.get(scope, {}).get(property_name, []))

    def kinds_for(self, scope: str, property_name: str) -> List[ErrorKind]:
        return [e.kind for e in self.errors_for(scope, property_name)]

    def scopes(self) -> List[str]:
        return list(self._errors)

    def clear(self) -> None:
        self._errors.clear()

    def __iter__(self) -> Iterator[ValidationError]:
        for by_property in self._errors.values():
            for errors in by_property.values():
                yield from errors

    def __len__(self) -> int:
        return sum(1 for _ in self)

    def __bool__(self) -> bool:
        return bool(self._errors)

    def __eq__(self, other) -> bool:
        if not isinstance(other, ErrorReport):
            return NotImplemented
        return self._errors == other._errors

    def items(self) -> Iterator[Tuple[str, str, List[ValidationError]]]:
        for scope, by_property in self._errors.items():
            for name, errors in by_property.items():
                yield scope, name, list(errors)

    def to_dict(self) -> Dict[str, Dict[str, Dict[str, Any]]]:
        """
        Render the wire shape.

        Returns:
            {scope: {property_name: {error_kind: expected_value_or_message}}}
        """
        return {
            scope: {
                name: {e.kind.value: e.payload for e in errors}
                for name, errors in by_property.items()
            }
            for scope, by_property in self._errors.items()
        }

    def __repr__(self) -> str:
        return f"ErrorReport({self.to_dict()!r})"


class RulesetViolation(Exception):
    """
    Raised by ValidationService when configured to raise on errors.

    Carries the full report so a transport layer can answer with a
    single 422 listing every problem at once.
    """

    status_code = 422

    def __init__(self, report: ErrorReport, ruleset_name: Optional[str] = None):
        self.report = report
        self.ruleset_name = ruleset_name
        super().__init__(
            f"Ruleset {ruleset_name or '<inline>'} failed with {len(report)} error(s)"
        )
