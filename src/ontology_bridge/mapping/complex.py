"""Flattening and reconstruction of complex values along dotted attribute paths.

Complex datapoint values arrive as nested JSON objects. They are stored as
flat attributes whose names are the dot-joined path of object keys, and
reassembled into nested objects before being written back to the vendor.
The path is the sole identity of a leaf; key order is irrelevant.
"""

from collections import defaultdict
from collections.abc import Mapping, Sequence
from typing import TypeAlias

from ontology_bridge.domain.errors import DataInconsistencyError

SEPARATOR = "."

Scalar: TypeAlias = str | int | float | bool | None
ComplexValue: TypeAlias = Scalar | Mapping[str, "ComplexValue"] | list["ComplexValue"]
"""A live value: a scalar, a nested object, or an array (arrays are leaves)."""


def is_complex(value: ComplexValue) -> bool:
    """Whether a value is a nested object that flattens into several leaves."""
    return isinstance(value, Mapping)


def join_path(prefix: str, key: str) -> str:
    return f"{prefix}{SEPARATOR}{key}" if prefix else key


def flatten(value: Mapping[str, ComplexValue], prefix: str = "") -> dict[str, ComplexValue]:
    """Flatten a nested object into dotted-path leaf values.

    Args:
        value: Nested object.
        prefix: Path prepended to every key.

    Returns:
        Map of dotted path to terminal value.

    Examples:
        >>> flatten({"a": {"b": 1, "c": 2}})
        {'a.b': 1, 'a.c': 2}
        >>> flatten({"heating": 21.5}, "Setpoint")
        {'Setpoint.heating': 21.5}
    """
    flat: dict[str, ComplexValue] = {}
    for key, item in value.items():
        path = join_path(prefix, key)
        if isinstance(item, Mapping):
            flat.update(flatten(item, path))
        else:
            flat[path] = item
    return flat


def reconstruct(
    flat: Mapping[str, ComplexValue],
    attribute_names: Sequence[str],
) -> dict[str, ComplexValue]:
    """Rebuild a nested object from dotted-path attributes.

    Names containing a separator are grouped by their first segment and
    rebuilt recursively; names without one are assigned directly.

    Args:
        flat: Attribute values keyed by attribute name.
        attribute_names: Names of the attributes making up the object.

    Returns:
        Nested object.

    Raises:
        DataInconsistencyError: If a named attribute has no value, or a name
            is used both as a leaf and as an object.

    Examples:
        >>> reconstruct({"a.b": 1, "a.c": 2}, ["a.b", "a.c"])
        {'a': {'b': 1, 'c': 2}}
    """
    nested: dict[str, ComplexValue] = {}
    buckets: dict[str, list[str]] = defaultdict(list)

    for name in attribute_names:
        if name not in flat:
            raise DataInconsistencyError(f"no value for attribute {name!r}")
        head, sep, _ = name.partition(SEPARATOR)
        if sep:
            buckets[head].append(name)
        else:
            nested[name] = flat[name]

    for head, names in buckets.items():
        if head in nested:
            raise DataInconsistencyError(f"attribute {head!r} is both a value and an object")
        offset = len(head) + len(SEPARATOR)
        nested[head] = reconstruct(
            {name[offset:]: flat[name] for name in names},
            [name[offset:] for name in names],
        )
    return nested


def decode_value(
    value: ComplexValue,
    attribute_names: Sequence[str],
    prefix: str,
) -> dict[str, ComplexValue]:
    """Map an incoming datapoint value onto its attributes.

    Nested objects are flattened under ``prefix``. Any other value is assigned
    to the datapoint's single attribute.

    Raises:
        DataInconsistencyError: If a non-object value arrives for a datapoint
            that does not have exactly one attribute.
    """
    if isinstance(value, Mapping):
        return flatten(value, prefix)
    if len(attribute_names) != 1:
        raise DataInconsistencyError(
            f"received non-complex value {value!r} for {prefix!r}, "
            f"which has {len(attribute_names)} attributes"
        )
    return {attribute_names[0]: value}


def encode_value(
    flat: Mapping[str, ComplexValue],
    attribute_names: Sequence[str],
    prefix: str,
) -> ComplexValue:
    """Assemble the outgoing value of a datapoint from its attribute values.

    The inverse of :func:`decode_value`: a single attribute named exactly
    ``prefix`` yields its scalar, otherwise the attributes below ``prefix``
    are reconstructed into a nested object.

    Raises:
        DataInconsistencyError: If an attribute is missing from ``flat`` or
            does not live below ``prefix``.
    """
    if len(attribute_names) == 1 and attribute_names[0] == prefix:
        if prefix not in flat:
            raise DataInconsistencyError(f"no value for attribute {prefix!r}")
        return flat[prefix]

    root = f"{prefix}{SEPARATOR}" if prefix else ""
    relative: dict[str, ComplexValue] = {}
    for name in attribute_names:
        if not name.startswith(root):
            raise DataInconsistencyError(f"attribute {name!r} is not part of {prefix!r}")
        if name not in flat:
            raise DataInconsistencyError(f"no value for attribute {name!r}")
        relative[name[len(root) :]] = flat[name]
    return reconstruct(relative, list(relative))
