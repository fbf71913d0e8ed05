"""
Rule Loader - builds Rule objects from declarative ruleset definitions.

A ruleset definition maps scopes to lists of rule mappings:

    rulesets:
      search:
        metadata:
          description: "Search endpoint"
        query:
          - property: q
            required: true
            type: string
            min: 1
          - property: page
            type: number
            default: 1

Each rule mapping mirrors the Rule builder: `type` takes one name or a list
(declaration order is kept), and the presence of a `default` key, even with
a null value, configures a default.

Every ruleset is built once when the loader is created so that a broken
definition fails at load time rather than on the first request. Callers get
fresh Rule instances from load_ruleset() each time, because Rules cache
their matched type during evaluation.
"""

import logging
from typing import Any, Dict, List

from .errors import ConfigError, RuleDefinitionError
from .rule import Rule
from .scope import Scope

logger = logging.getLogger(__name__)


class RuleLoader:
    """Builds Rules from ruleset definitions"""

    def __init__(self, rulesets_config: Dict[str, Any]):
        """
        Initialize rule loader.

        Args:
            rulesets_config: Parsed ruleset definitions (see module docstring)

        Raises:
            ConfigError: If any rule definition is inconsistent
        """
        self.rulesets = rulesets_config.get("rulesets", {})

        for name in self.rulesets:
            try:
                self.load_ruleset(name)
            except RuleDefinitionError as e:
                raise ConfigError(f"Ruleset '{name}' is invalid: {e}") from e

    def ruleset_names(self) -> List[str]:
        return list(self.rulesets)

    def get_metadata(self, ruleset_name: str) -> Dict[str, Any]:
        return dict(self._get_definition(ruleset_name).get("metadata", {}))

    def load_ruleset(self, ruleset_name: str) -> Dict[Scope, List[Rule]]:
        """
        Build the rules of one ruleset.

        Args:
            ruleset_name: Name of the ruleset

        Returns:
            Dict mapping each scope the ruleset defines to its Rules, in
            declaration order. Scopes the ruleset omits are absent.

        Raises:
            ValueError: If the ruleset is unknown
            RuleDefinitionError: If a rule definition is inconsistent
        """
        definition = self._get_definition(ruleset_name)

        scoped_rules = {}
        for scope in Scope:
            if scope.value not in definition:
                continue

            rules = [self.build_rule(d) for d in definition[scope.value] or []]
            names = [rule.property_name for rule in rules]
            duplicates = sorted({n for n in names if names.count(n) > 1})
            if duplicates:
                raise RuleDefinitionError(
                    f"Duplicate rules in scope '{scope.value}': {', '.join(duplicates)}"
                )
            scoped_rules[scope] = rules

        logger.debug(
            "Ruleset built",
            extra={'ruleset': ruleset_name,
                   'rule_counts': {s.value: len(r) for s, r in scoped_rules.items()}}
        )
        return scoped_rules

    def _get_definition(self, ruleset_name: str) -> Dict[str, Any]:
        if ruleset_name not in self.rulesets:
            raise ValueError(f"Unknown ruleset: {ruleset_name}")
        return self.rulesets[ruleset_name] or {}

    @staticmethod
    def build_rule(definition: Dict[str, Any]) -> Rule:
        """
        Build and check one Rule from its mapping.

        Args:
            definition: Rule mapping with `property` and optional `required`,
                `type`, `min`, `max`, `default` and `enum` keys

        Returns:
            Configured Rule

        Raises:
            RuleDefinitionError: If the definition is inconsistent
        """
        if "property" not in definition:
            raise RuleDefinitionError(f"Rule definition has no property name: {definition!r}")

        rule = Rule(definition["property"])

        if definition.get("required"):
            rule.required()

        types = definition.get("type")
        if types is not None:
            for property_type in [types] if isinstance(types, str) else types:
                rule.type(property_type)

        if "enum" in definition:
            rule.enum(definition["enum"])
        if definition.get("min") is not None:
            rule.min(definition["min"])
        if definition.get("max") is not None:
            rule.max(definition["max"])
        if "default" in definition:
            rule.default(definition["default"])

        return rule.check()
