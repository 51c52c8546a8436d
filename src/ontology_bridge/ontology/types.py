"""Recursive resolution of ontology data types into leaf attributes."""

import logging
from collections.abc import Iterable

from ontology_bridge.domain.models import LeafAttribute
from ontology_bridge.ontology.schema import DataTypeRecord, UnitRecord
from ontology_bridge.observability.metrics import METRICS

logger = logging.getLogger(__name__)


class TypeResolver:
    """Flattens primitive and complex data types into leaf attributes.

    A complex data type has fields, each referencing another data type by id.
    Resolution walks the fields depth first and emits one LeafAttribute per
    primitive type reached, named by the dot-joined path of field names below
    a root name. Callers usually pass the owning datapoint name as root; the
    type name (or id) is used otherwise.

    Instances are scoped to a single ontology; results are memoised per
    type id and root name.
    """

    def __init__(
        self,
        data_types: Iterable[DataTypeRecord],
        units: Iterable[UnitRecord] = (),
    ):
        """Initialize the resolver.

        Args:
            data_types: All data type definitions of the ontology.
            units: Unit catalog used to translate unit ids into symbols.
        """
        self._types: dict[str, DataTypeRecord] = {dt.id: dt for dt in data_types}
        self._units: dict[str, str] = {u.id: u.symbol for u in units}
        self._cache: dict[tuple[str, str], list[LeafAttribute]] = {}

    def resolve(self, type_id: str, name: str | None = None) -> list[LeafAttribute]:
        """Resolve a data type into its leaf attributes.

        Args:
            type_id: Id of the data type to resolve.
            name: Root path segment. Defaults to the type name, or its id
                when the type has no name.

        Returns:
            Leaf attributes in field declaration order. Empty if the type
            is unknown.
        """
        data_type = self._types.get(type_id)
        if data_type is None:
            logger.warning("Data type %s not found", type_id)
            METRICS.lookup_misses_total.labels(kind="type").inc()
            return []

        root = name or data_type.display_name
        cached = self._cache.get((type_id, root))
        if cached is None:
            cached = self._unwrap(data_type, root, frozenset())
            self._cache[(type_id, root)] = cached
        return list(cached)

    def _unwrap(
        self,
        data_type: DataTypeRecord,
        path: str,
        visiting: frozenset[str],
    ) -> list[LeafAttribute]:
        if not data_type.fields:
            return [self._leaf(data_type, path)]

        visiting = visiting | {data_type.id}
        result: list[LeafAttribute] = []
        for type_field in data_type.fields:
            field_path = f"{path}.{type_field.name}"
            child = self._types.get(type_field.type_id)
            if child is None:
                logger.warning(
                    "Data type %s referenced by field %s not found",
                    type_field.type_id,
                    field_path,
                )
                METRICS.lookup_misses_total.labels(kind="type").inc()
                continue
            if child.id in visiting:
                logger.warning(
                    "Cyclic data type reference %s at %s, skipping field",
                    child.id,
                    field_path,
                )
                METRICS.lookup_misses_total.labels(kind="type_cycle").inc()
                continue
            result.extend(self._unwrap(child, field_path, visiting))
        return result

    def _leaf(self, data_type: DataTypeRecord, path: str) -> LeafAttribute:
        return LeafAttribute(
            path=path,
            unit=self._unit_symbol(data_type.unit_id),
            min=data_type.min,
            max=data_type.max,
            enums=dict(data_type.enums),
        )

    def _unit_symbol(self, unit_id: str) -> str | None:
        if not unit_id:
            return None
        symbol = self._units.get(unit_id)
        if symbol is None:
            logger.warning("Unit %s not found", unit_id)
            METRICS.lookup_misses_total.labels(kind="unit").inc()
        return symbol
