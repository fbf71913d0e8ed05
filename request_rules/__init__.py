"""
request-rules: declarative validation for request query parameters and bodies

This library provides:
- Fluent per-property rules (presence, types, enums, min/max, defaults)
- A ruleset evaluator that reports every violation, per scope and property
- Boolean token coercion and default seeding written back into the inputs
- Rulesets declared in YAML, loaded locally or from a remote URL
- A JSON-RPC server for non-Python callers

Example:
    from request_rules import Rule, Ruleset, PropertyType, Scope

    query = {"age": "200"}
    ruleset = Ruleset({Scope.QUERY: query})
    ruleset.add(Scope.QUERY, [
        Rule("age").required().type(PropertyType.NUMBER).min(0).max(120),
    ])
    if not ruleset.evaluate():
        print(ruleset.errors.to_dict())
        # {'query': {'age': {'VALUE_MAX_ERROR': 120}}}
"""

from .api import ValidationService
from .errors import (
    ConfigError,
    ErrorKind,
    ErrorReport,
    RuleDefinitionError,
    RulesetViolation,
    ValidationError,
)
from .rule import PropertyType, Rule
from .ruleset import Ruleset
from .scope import Scope, ScopeValues

__version__ = "0.1.0"
__all__ = [
    "ConfigError",
    "ErrorKind",
    "ErrorReport",
    "PropertyType",
    "Rule",
    "RuleDefinitionError",
    "Ruleset",
    "RulesetViolation",
    "Scope",
    "ScopeValues",
    "ValidationError",
    "ValidationService",
]
