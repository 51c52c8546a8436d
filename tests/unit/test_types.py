"""Unit tests for data type resolution."""

from ontology_bridge.ontology.schema import DataTypeField, DataTypeRecord, UnitRecord
from ontology_bridge.ontology.types import TypeResolver


def _temperature() -> DataTypeRecord:
    return DataTypeRecord(id="dt-temp", name="Temperature", unit_id="u-c", min=-40, max=120)


class TestTypeResolver:
    """Tests for TypeResolver."""

    def test_primitive_type_uses_type_name(self) -> None:
        """A primitive type yields one attribute named after the type."""
        resolver = TypeResolver([_temperature()], [UnitRecord(id="u-c", symbol="°C")])

        leaves = resolver.resolve("dt-temp")

        assert len(leaves) == 1
        assert leaves[0].path == "Temperature"
        assert leaves[0].unit == "°C"
        assert leaves[0].min == -40
        assert leaves[0].max == 120

    def test_explicit_root_name(self) -> None:
        """The root name overrides the type name."""
        resolver = TypeResolver([_temperature()])

        assert [leaf.path for leaf in resolver.resolve("dt-temp", "Supply")] == ["Supply"]

    def test_unnamed_type_falls_back_to_id(self) -> None:
        """A type without a name is rooted at its id."""
        resolver = TypeResolver([DataTypeRecord(id="dt-raw")])

        assert [leaf.path for leaf in resolver.resolve("dt-raw")] == ["dt-raw"]

    def test_complex_type_flattens_fields(self) -> None:
        """A complex type with three primitive fields yields three dotted attributes."""
        setpoint = DataTypeRecord(
            id="dt-setpoint",
            name="SetpointType",
            fields=[
                DataTypeField(name="comfort", type_id="dt-temp"),
                DataTypeField(name="eco", type_id="dt-temp"),
                DataTypeField(name="standby", type_id="dt-temp"),
            ],
        )
        resolver = TypeResolver([_temperature(), setpoint])

        leaves = resolver.resolve("dt-setpoint", "Setpoint")

        assert [leaf.path for leaf in leaves] == [
            "Setpoint.comfort",
            "Setpoint.eco",
            "Setpoint.standby",
        ]
        assert all(leaf.min == -40 for leaf in leaves)

    def test_nested_complex_type(self) -> None:
        """Nested complex types are joined along the full field path."""
        inner = DataTypeRecord(
            id="dt-inner",
            name="Inner",
            fields=[
                DataTypeField(name="heating", type_id="dt-temp"),
                DataTypeField(name="cooling", type_id="dt-temp"),
            ],
        )
        outer = DataTypeRecord(
            id="dt-outer",
            name="Outer",
            fields=[
                DataTypeField(name="comfort", type_id="dt-inner"),
                DataTypeField(name="eco", type_id="dt-temp"),
            ],
        )
        resolver = TypeResolver([_temperature(), inner, outer])

        paths = [leaf.path for leaf in resolver.resolve("dt-outer", "Setpoint")]

        assert paths == ["Setpoint.comfort.heating", "Setpoint.comfort.cooling", "Setpoint.eco"]

    def test_unknown_type_yields_nothing(self) -> None:
        """An unknown type id resolves to no attributes."""
        resolver = TypeResolver([])

        assert resolver.resolve("missing") == []

    def test_unknown_field_type_is_skipped(self) -> None:
        """Fields referencing unknown types are left out."""
        record = DataTypeRecord(
            id="dt-mixed",
            name="Mixed",
            fields=[
                DataTypeField(name="known", type_id="dt-temp"),
                DataTypeField(name="unknown", type_id="dt-missing"),
            ],
        )
        resolver = TypeResolver([_temperature(), record])

        assert [leaf.path for leaf in resolver.resolve("dt-mixed")] == ["Mixed.known"]

    def test_cyclic_type_terminates(self) -> None:
        """A type containing itself does not recurse forever."""
        record = DataTypeRecord(
            id="dt-loop",
            name="Loop",
            fields=[
                DataTypeField(name="value", type_id="dt-temp"),
                DataTypeField(name="next", type_id="dt-loop"),
            ],
        )
        resolver = TypeResolver([_temperature(), record])

        assert [leaf.path for leaf in resolver.resolve("dt-loop")] == ["Loop.value"]

    def test_unknown_unit_has_no_symbol(self) -> None:
        """A type referencing an unknown unit keeps no unit."""
        resolver = TypeResolver([_temperature()], [])

        assert resolver.resolve("dt-temp")[0].unit is None

    def test_results_are_independent_copies(self) -> None:
        """Mutating a returned list does not affect later resolutions."""
        resolver = TypeResolver([_temperature()])

        first = resolver.resolve("dt-temp")
        first.clear()

        assert len(resolver.resolve("dt-temp")) == 1
