"""Domain models for the Ontology Bridge."""

from ontology_bridge.domain.errors import (
    BridgeError,
    DataInconsistencyError,
    LookupMissError,
    NoUpdateError,
    TransportError,
)
from ontology_bridge.domain.models import (
    AssetType,
    Datapoint,
    LeafAttribute,
    ResolvedNode,
    Subtype,
)

__all__ = [
    "AssetType",
    "BridgeError",
    "DataInconsistencyError",
    "Datapoint",
    "LeafAttribute",
    "LookupMissError",
    "NoUpdateError",
    "ResolvedNode",
    "Subtype",
    "TransportError",
]
