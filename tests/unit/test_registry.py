"""Unit tests for the state registry."""

from pathlib import Path

from ontology_bridge.domain.models import Attribute, Datapoint, Subtype
from ontology_bridge.state.registry import StateRegistry


def setpoint(provider_id: str = "dp1") -> Datapoint:
    return Datapoint(
        subtype=Subtype.OUTPUT,
        provider_id=provider_id,
        attribute_name_prefix="Setpoint",
        attributes=[Attribute("Setpoint.comfort"), Attribute("Setpoint.eco")],
    )


class TestVersions:
    """Tests for ontology version persistence."""

    def test_unknown_account(self, registry: StateRegistry) -> None:
        assert registry.get_version(1) is None

    def test_set_and_get(self, registry: StateRegistry) -> None:
        registry.set_version(1, 5)
        registry.set_version(1, 6)
        registry.set_version(2, 1)

        assert registry.get_version(1) == 6
        assert {k: v[0] for k, v in registry.versions().items()} == {1: 6, 2: 1}

    def test_survives_reopen(self, tmp_path: Path) -> None:
        db_path = tmp_path / "bridge.db"
        StateRegistry(db_path).set_version(1, 9)

        assert StateRegistry(db_path).get_version(1) == 9


class TestAssets:
    """Tests for asset and datapoint mappings."""

    def test_save_asset(self, registry: StateRegistry) -> None:
        registry.save_asset(1, "p1", "open_bos_a1", 10, "a1", [setpoint()])

        assert registry.get_asset_id(1, "p1", "open_bos_a1") == 10
        assert registry.get_asset_id(1, "p2", "open_bos_a1") is None
        assert registry.asset_count(1) == 1

    def test_datapoints_by_provider(self, registry: StateRegistry) -> None:
        registry.save_asset(1, "p1", "open_bos_a1", 10, "a1", [setpoint()])
        registry.save_asset(1, "p2", "open_bos_a1", 20, "a1", [setpoint()])

        mappings = registry.datapoints_by_provider(1, "dp1")

        assert [m.asset_id for m in mappings] == [10, 20]
        assert mappings[0].subtype is Subtype.OUTPUT
        assert mappings[0].attribute_name_prefix == "Setpoint"
        assert mappings[0].attribute_names == ("Setpoint.comfort", "Setpoint.eco")
        assert registry.datapoints_by_provider(2, "dp1") == []

    def test_datapoint_by_attribute(self, registry: StateRegistry) -> None:
        registry.save_asset(1, "p1", "open_bos_a1", 10, "a1", [setpoint()])

        mapping = registry.datapoint_by_attribute(10, "Setpoint.eco")

        assert mapping is not None
        assert mapping.provider_id == "dp1"
        assert registry.datapoint_by_attribute(10, "Other") is None

    def test_resave_replaces_datapoints(self, registry: StateRegistry) -> None:
        registry.save_asset(1, "p1", "open_bos_a1", 10, "a1", [setpoint("dp1")])
        registry.save_asset(1, "p1", "open_bos_a1", 10, "a1", [setpoint("dp2")])

        assert registry.datapoints_by_provider(1, "dp1") == []
        assert len(registry.datapoints_by_provider(1, "dp2")) == 1


class TestAlarms:
    """Tests for alarm rule mappings."""

    def test_alarm_rules(self, registry: StateRegistry) -> None:
        assert registry.get_alarm_rule(1, 10, "Temperature") is None

        registry.save_alarm(1, 10, "Temperature", 100, "s1")
        registry.save_alarm(1, 20, "Temperature", 200, "s1")

        assert registry.get_alarm_rule(1, 10, "Temperature") == 100
        assert registry.rules_for_session(1, "s1") == [100, 200]
        assert registry.rules_for_session(1, "s2") == []

    def test_alarm_by_rule_returns_latest_session(self, registry: StateRegistry) -> None:
        registry.save_alarm(1, 10, "Temperature", 100, "s1")
        registry.save_alarm(1, 10, "Temperature", 100, "s2")

        alarm = registry.alarm_by_rule(100)

        assert alarm is not None
        assert alarm.session_id == "s2"
        assert alarm.account_id == 1
        assert registry.alarm_by_rule(999) is None
