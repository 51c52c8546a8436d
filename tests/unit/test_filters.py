"""Unit tests for asset filter evaluation."""

import re

import pytest

from ontology_bridge.config import FilterRule
from ontology_bridge.domain.models import ResolvedNode
from ontology_bridge.mapping.filters import adheres_to_filter, matches, rule_matches


def rule(parameter: str, regex: str) -> FilterRule:
    return FilterRule.model_construct(parameter=parameter, regex=regex)


class TestRuleMatches:
    """Tests for single rules."""

    def test_search_semantics(self) -> None:
        """Patterns match anywhere unless anchored."""
        assert rule_matches(rule("name", "Floor"), {"name": "Floor 1"})
        assert rule_matches(rule("name", "1$"), {"name": "Floor 1"})
        assert not rule_matches(rule("name", "^1"), {"name": "Floor 1"})

    def test_unknown_field_never_matches(self) -> None:
        assert not rule_matches(rule("color", ".*"), {"name": "Floor 1"})

    def test_invalid_regex_raises(self) -> None:
        with pytest.raises(re.error):
            rule_matches(rule("name", "("), {"name": "x"})


class TestMatches:
    """Tests for OR-of-ANDs evaluation."""

    def test_empty_filter_passes(self) -> None:
        assert matches({"name": "anything"}, [])

    def test_all_rules_of_a_group_must_match(self) -> None:
        fields = {"name": "Floor 1", "templateID": "st-floor"}

        assert matches(fields, [[rule("name", "Floor"), rule("templateID", "floor")]])
        assert not matches(fields, [[rule("name", "Floor"), rule("templateID", "room")]])

    def test_any_group_may_match(self) -> None:
        fields = {"name": "Floor 1", "templateID": "st-floor"}

        assert matches(fields, [[rule("name", "Room")], [rule("templateID", "floor")]])
        assert not matches(fields, [[rule("name", "Room")], [rule("templateID", "room")]])


class TestAdheresToFilter:
    """Tests for filtering resolved nodes."""

    def test_node_fields(self) -> None:
        node = ResolvedNode(id="a1", name="Valve 1", template_id="at-valve", is_master=True)

        assert node.filter_fields() == {
            "id": "a1",
            "name": "Valve 1",
            "templateID": "at-valve",
            "is_master": "1",
        }
        assert adheres_to_filter(node, [[rule("is_master", "^1$"), rule("id", "^a1$")]])
        assert not adheres_to_filter(node, [[rule("is_master", "^0$")]])


class TestFilterRule:
    """Tests for filter rule validation."""

    def test_invalid_regex_rejected(self) -> None:
        with pytest.raises(ValueError):
            FilterRule(parameter="name", regex="(")
