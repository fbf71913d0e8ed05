"""
Tests for Ruleset

Covers unknown-property detection, the per-rule evaluation order, error
aggregation across properties and scopes, and the report's wire shape.
"""
import copy

import pytest
from request_rules import (
    ErrorKind,
    ErrorReport,
    PropertyType,
    Rule,
    RuleDefinitionError,
    Ruleset,
    Scope,
    ValidationError,
)


def age_rule():
    return Rule("age").required().type(PropertyType.NUMBER).min(0).max(120)


class TestRegistration:
    """Test add() / bind()."""

    def test_add_is_cumulative(self):
        """Test rules from several add() calls are all registered."""
        ruleset = Ruleset()
        ruleset.add(Scope.QUERY, [Rule("a")]).add("query", [Rule("b")])
        assert ruleset.property_names(Scope.QUERY) == ["a", "b"]

    def test_duplicate_property_rejected(self):
        """Test the same property can not be covered twice in one scope."""
        ruleset = Ruleset().add(Scope.BODY, [Rule("a")])
        with pytest.raises(RuleDefinitionError):
            ruleset.add(Scope.BODY, [Rule("a")])

    def test_same_property_in_two_scopes(self):
        """Test scopes have independent property namespaces."""
        ruleset = Ruleset().add(Scope.BODY, [Rule("a")]).add(Scope.QUERY, [Rule("a")])
        assert ruleset.property_names(Scope.BODY) == ["a"]
        assert ruleset.property_names(Scope.QUERY) == ["a"]

    def test_inconsistent_rule_rejected(self):
        """Test add() runs the rule consistency check."""
        with pytest.raises(RuleDefinitionError):
            Ruleset().add(Scope.BODY, [Rule("a").min(1)])

    def test_non_rule_rejected(self):
        """Test only Rule instances are accepted."""
        with pytest.raises(RuleDefinitionError):
            Ruleset().add(Scope.BODY, ["a"])

    def test_rejected_batch_registers_nothing(self):
        """Test a batch with one bad rule leaves the scope unchanged and can be retried."""
        ruleset = Ruleset({Scope.BODY: {"b": 1}})
        with pytest.raises(RuleDefinitionError):
            ruleset.add(Scope.BODY, [Rule("a"), Rule("b").min(1)])

        assert ruleset.property_names(Scope.BODY) == []
        ruleset.add(Scope.BODY, [Rule("a"), Rule("b")])
        assert ruleset.property_names(Scope.BODY) == ["a", "b"]

    def test_rejected_batch_keeps_scope_open(self):
        """Test a failed add() does not turn the scope into one that rejects every key."""
        ruleset = Ruleset({Scope.BODY: {"x": 1}})
        with pytest.raises(RuleDefinitionError):
            ruleset.add(Scope.BODY, [Rule("a").min(1)])

        assert ruleset.evaluate() is True

    def test_unknown_scope(self):
        """Test an unknown scope name is rejected."""
        with pytest.raises(RuleDefinitionError):
            Ruleset().add("headers", [Rule("a")])


class TestOptionalAndRequired:
    """Test presence handling."""

    def test_absent_optional_is_valid_and_seeded(self):
        """Test an absent optional property yields no error and gets None."""
        query = {}
        ruleset = Ruleset({Scope.QUERY: query}).add(
            Scope.QUERY, [Rule("page").type(PropertyType.NUMBER).min(1)]
        )
        assert ruleset.evaluate() is True
        assert query == {"page": None}

    def test_absent_optional_gets_default(self):
        """Test the configured default is seeded."""
        query = {}
        ruleset = Ruleset({Scope.QUERY: query}).add(
            Scope.QUERY, [Rule("page").type(PropertyType.NUMBER).default(1)]
        )
        assert ruleset.evaluate() is True
        assert query == {"page": 1}

    def test_absent_required_reports_once(self):
        """Test a missing required property yields exactly one error and no type/bound errors."""
        ruleset = Ruleset({Scope.BODY: {}}).add(Scope.BODY, [age_rule()])
        assert ruleset.evaluate() is False
        assert ruleset.errors.kinds_for("body", "age") == [ErrorKind.MISSING_REQUIRED_PROPERTY]
        assert len(ruleset.errors) == 1

    def test_unbound_scope_treated_as_empty(self):
        """Test a scope with rules but no input is evaluated as empty and seeded."""
        ruleset = Ruleset().add(Scope.BODY, [Rule("a").default("x")])
        assert ruleset.evaluate() is True
        assert ruleset.values(Scope.BODY) == {"a": "x"}


class TestTypeAndValue:
    """Test type and enum failures."""

    def test_invalid_type_detail(self):
        """Test INVALID_PROPERTY_TYPE carries the accepted type names."""
        rule = Rule("a").type(PropertyType.NUMBER).type(PropertyType.NULL)
        ruleset = Ruleset({Scope.BODY: {"a": "x"}}).add(Scope.BODY, [rule])

        assert ruleset.evaluate() is False
        errors = ruleset.errors.errors_for("body", "a")
        assert [e.kind for e in errors] == [ErrorKind.INVALID_PROPERTY_TYPE]
        assert errors[0].detail == ["NUMBER", "NULL"]

    def test_enum_mismatch_is_value_error(self):
        """Test an enum mismatch reports INVALID_PROPERTY_VALUE, never INVALID_PROPERTY_TYPE."""
        rule = Rule("sort").type(PropertyType.STRING).enum(["a", "b"])
        ruleset = Ruleset({Scope.QUERY: {"sort": "c"}}).add(Scope.QUERY, [rule])

        assert ruleset.evaluate() is False
        errors = ruleset.errors.errors_for("query", "sort")
        assert [e.kind for e in errors] == [ErrorKind.INVALID_PROPERTY_VALUE]
        assert errors[0].detail == ["a", "b"]

    def test_enum_with_wrong_type_is_value_error(self):
        """Test a type mismatch on an enum rule is still reported as a value error."""
        rule = Rule("level").type(PropertyType.NUMBER).enum([1, 2])
        ruleset = Ruleset({Scope.BODY: {"level": "high"}}).add(Scope.BODY, [rule])

        ruleset.evaluate()
        assert ruleset.errors.kinds_for("body", "level") == [ErrorKind.INVALID_PROPERTY_VALUE]

    def test_enum_without_type(self):
        """Test an enum is enforced even when no type is declared."""
        ruleset = Ruleset({Scope.BODY: {"mode": "z"}}).add(Scope.BODY, [Rule("mode").enum(["x", "y"])])
        ruleset.evaluate()
        assert ruleset.errors.kinds_for("body", "mode") == [ErrorKind.INVALID_PROPERTY_VALUE]

    def test_numeric_enum_matches_query_string(self):
        """Test "10" in the query is a member of a numeric enum, and "15" is not."""
        rule = Rule("limit").type(PropertyType.NUMBER).enum([10, 20])
        ruleset = Ruleset({Scope.QUERY: {"limit": "10"}}).add(Scope.QUERY, [rule])
        assert ruleset.evaluate() is True

        ruleset.bind(Scope.QUERY, {"limit": "15"})
        assert ruleset.evaluate() is False
        assert ruleset.errors.to_dict() == {"query": {"limit": {"INVALID_PROPERTY_VALUE": [10, 20]}}}

    def test_numeric_enum_keeps_bool_apart(self):
        """Test True is not accepted by an enum of 1 even when BOOLEAN is also allowed."""
        rule = Rule("level").type(PropertyType.NUMBER).type(PropertyType.BOOLEAN).enum([0, 1])
        ruleset = Ruleset({Scope.BODY: {"level": True}}).add(Scope.BODY, [rule])

        assert ruleset.evaluate() is False
        assert ruleset.errors.kinds_for("body", "level") == [ErrorKind.INVALID_PROPERTY_VALUE]

    def test_type_error_suppresses_bounds(self):
        """Test a value of the wrong type gets no min/max errors on top."""
        ruleset = Ruleset({Scope.BODY: {"age": "old"}}).add(Scope.BODY, [age_rule()])
        ruleset.evaluate()
        assert ruleset.errors.kinds_for("body", "age") == [ErrorKind.INVALID_PROPERTY_TYPE]

    def test_boolean_token_coerced_in_query(self):
        """Test "yes" in the query becomes True in the caller's mapping."""
        query = {"in_stock": "yes"}
        ruleset = Ruleset({Scope.QUERY: query}).add(
            Scope.QUERY, [Rule("in_stock").type(PropertyType.BOOLEAN)]
        )
        assert ruleset.evaluate() is True
        assert query["in_stock"] is True

    def test_boolean_token_in_body_not_coerced(self):
        """Test the body scope is not string-encoded by default."""
        body = {"flag": "yes"}
        ruleset = Ruleset({Scope.BODY: body}).add(Scope.BODY, [Rule("flag").type(PropertyType.BOOLEAN)])
        assert ruleset.evaluate() is False
        assert body["flag"] == "yes"

    def test_string_encoded_scopes_configurable(self):
        """Test a form-encoded body can opt into coercion."""
        body = {"flag": "off"}
        ruleset = Ruleset({Scope.BODY: body}, string_encoded_scopes=["body"]).add(
            Scope.BODY, [Rule("flag").type(PropertyType.BOOLEAN)]
        )
        assert ruleset.evaluate() is True
        assert body["flag"] is False


class TestBounds:
    """Test min/max reporting."""

    def test_end_to_end_max_error(self):
        """Test a numeric string over the max yields one VALUE_MAX_ERROR with the bound."""
        ruleset = Ruleset({Scope.QUERY: {"age": "200"}}).add(Scope.QUERY, [age_rule()])

        assert ruleset.evaluate() is False
        errors = ruleset.errors.errors_for("query", "age")
        assert [e.kind for e in errors] == [ErrorKind.VALUE_MAX_ERROR]
        assert errors[0].detail == 120
        assert ruleset.errors.to_dict() == {"query": {"age": {"VALUE_MAX_ERROR": 120}}}

    def test_zero_min_is_enforced(self):
        """Test a bound of 0 is honored."""
        ruleset = Ruleset({Scope.BODY: {"age": -1}}).add(Scope.BODY, [age_rule()])
        ruleset.evaluate()
        assert ruleset.errors.errors_for("body", "age")[0].detail == 0
        assert ruleset.errors.kinds_for("body", "age") == [ErrorKind.VALUE_MIN_ERROR]

    def test_length_bound_on_matched_string(self):
        """Test STRING declared first measures "5" by length."""
        rule = Rule("code").type(PropertyType.STRING).type(PropertyType.NUMBER).min(2)
        ruleset = Ruleset({Scope.QUERY: {"code": "5"}}).add(Scope.QUERY, [rule])
        ruleset.evaluate()
        assert ruleset.errors.kinds_for("query", "code") == [ErrorKind.VALUE_MIN_ERROR]

    def test_value_bound_on_matched_number(self):
        """Test NUMBER declared first measures "5" by value."""
        rule = Rule("code").type(PropertyType.NUMBER).type(PropertyType.STRING).min(2)
        ruleset = Ruleset({Scope.QUERY: {"code": "5"}}).add(Scope.QUERY, [rule])
        assert ruleset.evaluate() is True

    def test_array_size(self):
        """Test ARRAY bounds count elements."""
        rule = Rule("tags").type(PropertyType.ARRAY).min(1).max(2)
        ruleset = Ruleset({Scope.BODY: {"tags": ["a", "b", "c"]}}).add(Scope.BODY, [rule])
        ruleset.evaluate()
        assert ruleset.errors.to_dict() == {"body": {"tags": {"VALUE_MAX_ERROR": 2}}}


class TestUnknownProperties:
    """Test detection of properties no rule covers."""

    def test_unknown_property(self):
        """Test an uncovered key yields exactly one UNKNOWN_PROPERTY_NAME."""
        ruleset = Ruleset({Scope.QUERY: {"foo": "1"}}).add(Scope.QUERY, [Rule("q")])
        assert ruleset.evaluate() is False
        assert ruleset.errors.kinds_for("query", "foo") == [ErrorKind.UNKNOWN_PROPERTY_NAME]
        assert len(ruleset.errors) == 1

    def test_unknown_property_alongside_rule_failures(self):
        """Test unknown keys are reported independently of other failures."""
        ruleset = Ruleset({Scope.BODY: {"foo": 1, "age": "x"}}).add(Scope.BODY, [age_rule()])
        ruleset.evaluate()
        assert ruleset.errors.kinds_for("body", "foo") == [ErrorKind.UNKNOWN_PROPERTY_NAME]
        assert ruleset.errors.kinds_for("body", "age") == [ErrorKind.INVALID_PROPERTY_TYPE]

    def test_empty_rule_list_rejects_all_keys(self):
        """Test a scope registered with no rules accepts no properties."""
        ruleset = Ruleset({Scope.QUERY: {"a": 1, "b": 2}}).add(Scope.QUERY, [])
        ruleset.evaluate()
        assert [e.property_name for e in ruleset.errors] == ["a", "b"]

    def test_unregistered_scope_not_inspected(self):
        """Test inputs of a scope without rules are ignored."""
        ruleset = Ruleset({Scope.QUERY: {"utm_source": "x"}, Scope.BODY: {}})
        ruleset.add(Scope.BODY, [Rule("a")])
        assert ruleset.evaluate() is True


class TestAggregation:
    """Test that evaluation collects everything in one pass."""

    def test_errors_across_scopes(self):
        """Test failures in several properties and scopes all appear."""
        query = {"sort": "random", "extra": "1"}
        body = {"username": "ab"}
        ruleset = Ruleset({Scope.QUERY: query, Scope.BODY: body})
        ruleset.add(Scope.QUERY, [Rule("sort").type(PropertyType.STRING).enum(["new", "old"])])
        ruleset.add(Scope.BODY, [
            Rule("username").required().type(PropertyType.STRING).min(3),
            Rule("email").required().type(PropertyType.STRING),
        ])

        assert ruleset.evaluate() is False
        assert ruleset.errors.to_dict() == {
            "query": {
                "extra": {"UNKNOWN_PROPERTY_NAME": "Unknown property name 'extra'"},
                "sort": {"INVALID_PROPERTY_VALUE": ["new", "old"]},
            },
            "body": {
                "username": {"VALUE_MIN_ERROR": 3},
                "email": {"MISSING_REQUIRED_PROPERTY": "Property 'email' is required"},
            },
        }

    def test_idempotent_on_fresh_inputs(self):
        """Test two passes over copies of the same input give identical reports."""
        original = {"age": "200", "foo": "bar"}

        def run():
            ruleset = Ruleset({Scope.QUERY: copy.deepcopy(original)})
            ruleset.add(Scope.QUERY, [age_rule(), Rule("flag").type(PropertyType.BOOLEAN)])
            ruleset.evaluate()
            return ruleset.errors

        assert run() == run()

    def test_evaluate_resets_errors(self):
        """Test a second evaluate() reports only the current inputs."""
        query = {"age": "200"}
        ruleset = Ruleset({Scope.QUERY: query}).add(Scope.QUERY, [age_rule()])
        assert ruleset.evaluate() is False

        query["age"] = "20"
        assert ruleset.evaluate() is True
        assert not ruleset.errors

    def test_query_entry_point(self):
        """Test the one-shot query() helper returns True or the report."""
        assert Ruleset().query([age_rule()], {"age": "30"}) is True

        report = Ruleset().query([age_rule()], {"age": "-5"})
        assert isinstance(report, ErrorReport)
        assert report.kinds_for("query", "age") == [ErrorKind.VALUE_MIN_ERROR]

    def test_body_entry_point(self):
        """Test the one-shot body() helper."""
        report = Ruleset().body([age_rule()], {})
        assert report.kinds_for("body", "age") == [ErrorKind.MISSING_REQUIRED_PROPERTY]


class TestErrorReport:
    """Test ErrorReport behaviour."""

    def test_append_only(self):
        """Test later errors for a property are appended, not replaced."""
        report = ErrorReport()
        report.add(ValidationError("body", "a", ErrorKind.VALUE_MIN_ERROR, 1))
        report.add(ValidationError("body", "a", ErrorKind.VALUE_MAX_ERROR, 0))

        assert report.kinds_for("body", "a") == [ErrorKind.VALUE_MIN_ERROR, ErrorKind.VALUE_MAX_ERROR]
        assert report.to_dict() == {"body": {"a": {"VALUE_MIN_ERROR": 1, "VALUE_MAX_ERROR": 0}}}
        assert len(report) == 2

    def test_messages(self):
        """Test human-readable messages per kind."""
        assert ValidationError("q", "a", ErrorKind.INVALID_PROPERTY_TYPE,
                               ["NUMBER", "STRING"]).message == "Value must be of type NUMBER or STRING"
        assert ValidationError("q", "a", ErrorKind.VALUE_MAX_ERROR, 5).message == \
            "Value must be smaller or equal to 5"
        assert ValidationError("q", "a", ErrorKind.INVALID_PROPERTY_VALUE,
                               ["x", "y"]).message == "Value must be exactly: 'x' or 'y'"

    def test_empty_report(self):
        """Test an empty report is falsy and renders as {}."""
        report = ErrorReport()
        assert not report
        assert report.to_dict() == {}
        assert list(report) == []
