"""Value mapping between the vendor ontology and platform attributes."""

from ontology_bridge.mapping.complex import (
    ComplexValue,
    decode_value,
    encode_value,
    flatten,
    reconstruct,
)
from ontology_bridge.mapping.filters import adheres_to_filter, matches

__all__ = [
    "ComplexValue",
    "adheres_to_filter",
    "decode_value",
    "encode_value",
    "flatten",
    "matches",
    "reconstruct",
]
