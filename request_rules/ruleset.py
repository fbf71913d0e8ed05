"""
Ruleset - runs Rules against scope inputs and collects every violation.

Evaluation never stops at the first failure. Each scope with registered
rules is checked for unknown property names first, then every rule runs in
declaration order, and all findings land in one ErrorReport.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Union

from .errors import ErrorKind, ErrorReport, RuleDefinitionError, ValidationError
from .rule import Rule
from .scope import Scope, ScopeValues

logger = logging.getLogger(__name__)


class Ruleset:
    """Aggregates rules per scope and evaluates them against bound inputs."""

    def __init__(self, inputs: Optional[Dict[Any, Dict[str, Any]]] = None,
                 string_encoded_scopes: Iterable[Any] = (Scope.QUERY,)):
        """
        Initialize ruleset.

        Args:
            inputs: Optional mapping of scope to that scope's input dict.
                The dicts are mutated in place during evaluation.
            string_encoded_scopes: Scopes whose raw values arrive as strings
                and get boolean token coercion
        """
        self.string_encoded_scopes = {Scope.from_name(s) for s in string_encoded_scopes}
        self.errors = ErrorReport()

        self._rules: Dict[Scope, List[Rule]] = {}
        self._inputs: Dict[Scope, ScopeValues] = {}

        for scope, values in (inputs or {}).items():
            self.bind(scope, values)

    def bind(self, scope: Union[Scope, str], values: Dict[str, Any]) -> "Ruleset":
        """Attach (or replace) the input mapping for a scope."""
        scope = Scope.from_name(scope)
        self._inputs[scope] = ScopeValues(
            scope, values, string_encoded=scope in self.string_encoded_scopes
        )
        return self

    def add(self, scope: Union[Scope, str], rules: Iterable[Rule]) -> "Ruleset":
        """
        Register rules for a scope. Repeated calls accumulate.

        Raises:
            RuleDefinitionError: If a rule is inconsistent or its property
                name is already covered in this scope
        """
        scope = Scope.from_name(scope)
        known = set(self.property_names(scope))

        accepted = []
        for rule in rules:
            if not isinstance(rule, Rule):
                raise RuleDefinitionError(f"Expected a Rule, got {type(rule).__name__}")
            rule.check()
            if rule.property_name in known:
                raise RuleDefinitionError(
                    f"Duplicate rule for '{rule.property_name}' in scope '{scope.value}'"
                )
            known.add(rule.property_name)
            accepted.append(rule)

        # All or nothing: a rejected batch leaves the scope as it was
        self._rules.setdefault(scope, []).extend(accepted)
        return self

    def property_names(self, scope: Union[Scope, str]) -> List[str]:
        """Return the property names covered by a scope's rules."""
        return [rule.property_name for rule in self._rules.get(Scope.from_name(scope), [])]

    def values(self, scope: Union[Scope, str]) -> Dict[str, Any]:
        """Return the (possibly normalized) input mapping bound to a scope."""
        scope_values = self._inputs.get(Scope.from_name(scope))
        return scope_values.values if scope_values is not None else {}

    @property
    def is_valid(self) -> bool:
        return not self.errors

    # ----

    def evaluate(self) -> bool:
        """
        Evaluate every registered rule against its scope.

        The error accumulator is reset first, so each call reports on the
        current inputs only. Scopes without registered rules are not
        inspected; a scope with rules but no bound input is evaluated as an
        empty mapping.

        Returns:
            True if no violations were found; details are in self.errors
        """
        self.errors = ErrorReport()

        for scope, rules in self._rules.items():
            if scope not in self._inputs:
                self.bind(scope, {})
            scope_values = self._inputs[scope]

            self._eval_property_name_diff(rules, scope_values)

            for rule in rules:
                self._eval_rule(rule, scope_values)

        logger.debug(
            "Ruleset evaluated",
            extra={'scopes': [s.value for s in self._rules], 'error_count': len(self.errors)}
        )
        return self.is_valid

    def query(self, rules: Iterable[Rule], values: Dict[str, Any]) -> Union[bool, ErrorReport]:
        """
        Register rules for query parameters, bind the values and evaluate.

        Returns:
            True if everything registered so far is valid, else the report
        """
        return self._check(Scope.QUERY, rules, values)

    def body(self, rules: Iterable[Rule], values: Dict[str, Any]) -> Union[bool, ErrorReport]:
        """
        Register rules for the request body, bind the values and evaluate.

        Returns:
            True if everything registered so far is valid, else the report
        """
        return self._check(Scope.BODY, rules, values)

    def _check(self, scope: Scope, rules: Iterable[Rule],
               values: Dict[str, Any]) -> Union[bool, ErrorReport]:
        self.add(scope, rules)
        self.bind(scope, values)
        return True if self.evaluate() else self.errors

    # ----

    def _add_error(self, scope: Scope, name: str, kind: ErrorKind, detail: Any = None) -> None:
        self.errors.add(ValidationError(scope.value, name, kind, detail))

    def _eval_property_name_diff(self, rules: List[Rule], scope_values: ScopeValues) -> None:
        """Report every input key that no rule in the scope covers."""
        covered = {rule.property_name for rule in rules}

        # Input order, not set order, so reports are stable
        for name in list(scope_values.keys()):
            if name not in covered:
                self._add_error(scope_values.scope, name, ErrorKind.UNKNOWN_PROPERTY_NAME)

    def _eval_rule(self, rule: Rule, scope_values: ScopeValues) -> None:
        """Evaluate one rule, recording each failed constraint."""
        scope = scope_values.scope
        name = rule.property_name

        if not rule.eval_required(scope_values):
            # Absent optional property: valid, nothing more to check
            if rule.is_required:
                self._add_error(scope, name, ErrorKind.MISSING_REQUIRED_PROPERTY)
            return

        value = scope_values.get(name)

        if (rule.types or rule.enum_values is not None) and not rule.eval_type(value, scope_values):
            if rule.enum_values is not None:
                self._add_error(scope, name, ErrorKind.INVALID_PROPERTY_VALUE,
                                list(rule.enum_values))
            else:
                self._add_error(scope, name, ErrorKind.INVALID_PROPERTY_TYPE,
                                [t.name for t in rule.types])

        # Re-read: eval_type may have replaced a boolean token
        value = scope_values.get(name)

        if rule.min_value is not None and not rule.eval_min(value, scope_values):
            self._add_error(scope, name, ErrorKind.VALUE_MIN_ERROR, rule.min_value)

        if rule.max_value is not None and not rule.eval_max(value, scope_values):
            self._add_error(scope, name, ErrorKind.VALUE_MAX_ERROR, rule.max_value)

        logger.debug(
            "Rule evaluated",
            extra={'scope': scope.value, 'property': name,
                   'matched_type': rule.matched_type.name if rule.matched_type else None,
                   'errors': [k.value for k in self.errors.kinds_for(scope.value, name)]}
        )
