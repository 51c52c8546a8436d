"""Asset filter evaluation.

A filter is a list of rule groups. A node passes when every rule of at least
one group matches; an empty filter passes everything. Rules address node
fields through :meth:`ResolvedNode.filter_fields`.
"""

import re
from collections.abc import Mapping, Sequence
from functools import lru_cache
from typing import Protocol

from ontology_bridge.domain.models import ResolvedNode


class Rule(Protocol):
    parameter: str
    regex: str


AssetFilter = Sequence[Sequence[Rule]]


@lru_cache(maxsize=256)
def _compile(regex: str) -> re.Pattern[str]:
    return re.compile(regex)


def rule_matches(rule: Rule, fields: Mapping[str, str]) -> bool:
    """Check a single rule against a field table.

    Rules naming a field the node does not expose never match.

    Raises:
        re.error: If the rule's regex is invalid.
    """
    value = fields.get(rule.parameter)
    if value is None:
        return False
    return _compile(rule.regex).search(value) is not None


def matches(fields: Mapping[str, str], asset_filter: AssetFilter) -> bool:
    """Evaluate an OR-of-ANDs filter against a field table."""
    if not asset_filter:
        return True
    return any(
        all(rule_matches(rule, fields) for rule in group) for group in asset_filter
    )


def adheres_to_filter(node: ResolvedNode, asset_filter: AssetFilter) -> bool:
    """Whether a resolved node passes the asset filter."""
    return matches(node.filter_fields(), asset_filter)
