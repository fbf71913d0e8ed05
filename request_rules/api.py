"""
Public API for request-rules

This is the "front door" - validates request inputs against rulesets loaded
from configuration.
"""

import logging
from typing import Any, Dict, Optional

from .config_loader import ConfigLoader
from .errors import RulesetViolation
from .rule_loader import RuleLoader
from .ruleset import Ruleset
from .scope import Scope

logger = logging.getLogger(__name__)


class ValidationService:
    """
    Main validation service class.

    Validates query parameters and body fields against named rulesets from
    the configured ruleset file.

    Example:
        from request_rules import ValidationService

        service = ValidationService()
        outcome = service.validate("search", query=dict(request.args))
        if not outcome["valid"]:
            return outcome["errors"], 422

        # Pick up edited ruleset definitions
        service.reload_rulesets()
    """

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize validation service.

        Args:
            config_path: Path to a local-config.yaml; defaults to the
                bundled configuration

        Raises:
            ConfigError: If configuration or ruleset definitions are invalid
        """
        self._config_path = config_path
        self._initialize()

    def _initialize(self):
        """Load configuration and build the rule loader."""
        self.config_loader = ConfigLoader(self._config_path)
        self.rule_loader = RuleLoader(self.config_loader.get_rulesets_config())

    def discover_rulesets(self) -> Dict[str, Dict[str, Any]]:
        """
        Discover available rulesets and the constraints they declare.

        Returns:
            Dict mapping ruleset_name to {metadata, scopes} where scopes maps
            each scope name to a list of rule descriptions
        """
        result = {}
        for name in self.rule_loader.ruleset_names():
            scoped_rules = self.rule_loader.load_ruleset(name)
            result[name] = {
                "metadata": self.rule_loader.get_metadata(name),
                "scopes": {
                    scope.value: [rule.describe() for rule in rules]
                    for scope, rules in scoped_rules.items()
                },
            }
        return result

    def validate(
        self,
        ruleset_name: str,
        query: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
        raise_on_errors: Optional[bool] = None,
    ) -> Dict[str, Any]:
        """
        Validate request inputs against a ruleset.

        The query and body dicts are normalized in place: absent optional
        properties are seeded with their default (or None) and boolean
        tokens in string-encoded scopes become bools.

        Args:
            ruleset_name: Ruleset to apply
            query: Query parameters (property name -> raw value)
            body: Body fields (property name -> raw value)
            raise_on_errors: Override the configured raise_on_errors

        Returns:
            {"valid": bool, "errors": {scope: {property: {error_kind: expected}}}}

        Raises:
            ValueError: If the ruleset is unknown
            RulesetViolation: If validation fails and raising is enabled
        """
        scoped_rules = self.rule_loader.load_ruleset(ruleset_name)
        inputs = {Scope.QUERY: query, Scope.BODY: body}

        ruleset = Ruleset(string_encoded_scopes=self.config_loader.get_string_encoded_scopes())
        for scope, rules in scoped_rules.items():
            values = inputs[scope]
            ruleset.bind(scope, values if values is not None else {})
            ruleset.add(scope, rules)

        is_valid = ruleset.evaluate()

        logger.info(
            "Validation completed",
            extra={'ruleset': ruleset_name, 'valid': is_valid,
                   'error_count': len(ruleset.errors)}
        )

        if raise_on_errors is None:
            raise_on_errors = self.config_loader.get_raise_on_errors()
        if not is_valid and raise_on_errors:
            raise RulesetViolation(ruleset.errors, ruleset_name)

        return {"valid": is_valid, "errors": ruleset.errors.to_dict()}

    def reload_rulesets(self) -> None:
        """
        Reload ruleset definitions from their source.

        Remote ruleset files are refetched even if cached.
        """
        logger.info("Reloading rulesets")
        self.config_loader.reload()
        self.rule_loader = RuleLoader(self.config_loader.get_rulesets_config())

    def get_config_age(self) -> Optional[float]:
        """
        Get age of the loaded ruleset definitions in seconds.

        Returns:
            Age in seconds, or None if nothing is loaded
        """
        return self.config_loader.get_config_age()
