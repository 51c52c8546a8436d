"""Unit tests for complex value flattening and reconstruction."""

import pytest

from ontology_bridge.domain.errors import DataInconsistencyError
from ontology_bridge.mapping.complex import (
    decode_value,
    encode_value,
    flatten,
    is_complex,
    reconstruct,
)


class TestFlatten:
    """Tests for flatten."""

    def test_flat_object(self) -> None:
        assert flatten({"a": 1, "b": "x"}) == {"a": 1, "b": "x"}

    def test_nested_object(self) -> None:
        assert flatten({"a": {"b": 1, "c": 2}}) == {"a.b": 1, "a.c": 2}

    def test_prefix(self) -> None:
        value = {"comfort": {"heating": 21.5, "cooling": 24}, "eco": 18}

        assert flatten(value, "Setpoint") == {
            "Setpoint.comfort.heating": 21.5,
            "Setpoint.comfort.cooling": 24,
            "Setpoint.eco": 18,
        }

    def test_arrays_are_leaves(self) -> None:
        assert flatten({"a": [1, 2, {"b": 3}]}) == {"a": [1, 2, {"b": 3}]}

    def test_null_leaf_is_kept(self) -> None:
        assert flatten({"a": None}) == {"a": None}

    def test_empty_object(self) -> None:
        assert flatten({}) == {}


class TestReconstruct:
    """Tests for reconstruct."""

    def test_nested(self) -> None:
        flat = {"a.b": 1, "a.c": 2}

        assert reconstruct(flat, ["a.b", "a.c"]) == {"a": {"b": 1, "c": 2}}

    def test_mixed_depths(self) -> None:
        flat = {"x": True, "a.b.c": 1, "a.d": "y"}

        assert reconstruct(flat, ["x", "a.b.c", "a.d"]) == {
            "x": True,
            "a": {"b": {"c": 1}, "d": "y"},
        }

    def test_only_named_attributes_are_used(self) -> None:
        flat = {"a.b": 1, "a.c": 2, "other": 3}

        assert reconstruct(flat, ["a.b"]) == {"a": {"b": 1}}

    def test_missing_attribute(self) -> None:
        with pytest.raises(DataInconsistencyError):
            reconstruct({"a.b": 1}, ["a.b", "a.c"])

    def test_leaf_and_object_conflict(self) -> None:
        with pytest.raises(DataInconsistencyError):
            reconstruct({"a": 1, "a.b": 2}, ["a", "a.b"])

    def test_inverse_of_flatten(self) -> None:
        value = {"comfort": {"heating": 21.5, "cooling": 24}, "eco": 18, "mode": "auto"}
        flat = flatten(value)

        assert reconstruct(flat, list(flat)) == value


class TestDecodeValue:
    """Tests for mapping incoming values onto attributes."""

    def test_scalar_to_single_attribute(self) -> None:
        assert decode_value(21.5, ["Temperature"], "Temperature") == {"Temperature": 21.5}

    def test_object_is_flattened_under_prefix(self) -> None:
        names = ["Setpoint.comfort", "Setpoint.eco"]

        assert decode_value({"comfort": 21, "eco": 18}, names, "Setpoint") == {
            "Setpoint.comfort": 21,
            "Setpoint.eco": 18,
        }

    def test_scalar_for_complex_datapoint(self) -> None:
        with pytest.raises(DataInconsistencyError):
            decode_value(21, ["Setpoint.comfort", "Setpoint.eco"], "Setpoint")

    def test_scalar_without_attributes(self) -> None:
        with pytest.raises(DataInconsistencyError):
            decode_value(21, [], "Setpoint")

    def test_is_complex(self) -> None:
        assert is_complex({"a": 1})
        assert not is_complex([1, 2])
        assert not is_complex(3)


class TestEncodeValue:
    """Tests for assembling outgoing values."""

    def test_single_attribute_yields_scalar(self) -> None:
        assert encode_value({"Temperature": 20}, ["Temperature"], "Temperature") == 20

    def test_complex_value_is_rebuilt_below_prefix(self) -> None:
        flat = {"Setpoint.comfort.heating": 21, "Setpoint.eco": 18, "Other": 1}
        names = ["Setpoint.comfort.heating", "Setpoint.eco"]

        assert encode_value(flat, names, "Setpoint") == {"comfort": {"heating": 21}, "eco": 18}

    def test_single_nested_attribute_yields_object(self) -> None:
        assert encode_value({"Setpoint.eco": 18}, ["Setpoint.eco"], "Setpoint") == {"eco": 18}

    def test_missing_value(self) -> None:
        with pytest.raises(DataInconsistencyError):
            encode_value({}, ["Temperature"], "Temperature")

    def test_attribute_outside_prefix(self) -> None:
        with pytest.raises(DataInconsistencyError):
            encode_value({"Other.eco": 1}, ["Other.eco"], "Setpoint")

    def test_round_trip(self) -> None:
        value = {"comfort": {"heating": 21.5, "cooling": 24}, "eco": 18}
        flat = decode_value(value, [], "Setpoint")

        assert encode_value(flat, list(flat), "Setpoint") == value
