"""Synthesis of the locational/functional asset tree from a flat ontology."""

import logging
import re
from collections import defaultdict
from collections.abc import Iterable, Mapping

from ontology_bridge.domain.errors import DataInconsistencyError
from ontology_bridge.domain.models import (
    ROOT_NAME,
    ROOT_TEMPLATE_ID,
    Attribute,
    AttributeBinding,
    Datapoint,
    ResolvedNode,
)
from ontology_bridge.mapping.complex import decode_value
from ontology_bridge.mapping.filters import AssetFilter, adheres_to_filter
from ontology_bridge.observability.metrics import METRICS
from ontology_bridge.ontology.schema import (
    AssetRecord,
    DatapointRecord,
    Ontology,
    PropertyRecord,
    SpaceRecord,
)

logger = logging.getLogger(__name__)

ROOT_ID = ""


class HierarchyBuilder:
    """Builds the resolved asset tree of one ontology.

    Spaces form the locational tree below a synthetic root (id ``""``).
    Assets attached to a space become locational leaves of that space;
    assets attached to no space become functional children of the root.
    Every node carries the datapoints and properties bound to it, resolved
    through the catalog lookup.

    All state is local to the instance; one builder serves one build.
    """

    def __init__(
        self,
        ontology: Ontology,
        lookup: Mapping[str, AttributeBinding],
        asset_filter: AssetFilter = (),
    ):
        """Initialize the builder.

        Args:
            ontology: The ontology document.
            lookup: Datapoint/property template id to resolved attributes,
                as produced by the catalog build for the same ontology.
            asset_filter: OR-of-ANDs filter rules pruning spaces and assets.
        """
        self._ontology = ontology
        self._lookup = lookup
        self._filter = asset_filter

        self._spaces: dict[str, SpaceRecord] = {}
        self._children: dict[str, list[str]] = defaultdict(list)
        self._assets: dict[str, AssetRecord] = {}
        self._datapoints_by_asset: dict[str, list[DatapointRecord]] = defaultdict(list)
        self._datapoints_by_space: dict[str, list[DatapointRecord]] = defaultdict(list)
        self._properties_by_asset: dict[str, list[PropertyRecord]] = defaultdict(list)
        self._properties_by_space: dict[str, list[PropertyRecord]] = defaultdict(list)

    def build(self) -> ResolvedNode:
        """Build the tree and return its root."""
        self._index_spaces()
        self._index_instances()

        root = ResolvedNode(
            id=ROOT_ID,
            name=ROOT_NAME,
            template_id=ROOT_TEMPLATE_ID,
            datapoints=self._bind(self._ontology.orphan_datapoints(), ()),
        )
        self._populate(root, frozenset({ROOT_ID}))

        for asset in self._unassociated_assets():
            root.functional_children.append(self._asset_node(asset, is_master=False))

        logger.debug(
            "Built hierarchy: %d nodes, %d functional children",
            root.count(),
            len(root.functional_children),
        )
        return root

    def _index_spaces(self) -> None:
        for space in self._ontology.spaces:
            if space.id == ROOT_ID:
                logger.warning("Space %r has an empty id, skipping", space.name)
                continue
            if space.id in self._spaces:
                logger.warning("Duplicate space id %s, last definition wins", space.id)
            self._spaces[space.id] = space

        for space in self._ontology.spaces:
            if space.id == ROOT_ID:
                continue
            if space.parent_id != ROOT_ID and space.parent_id not in self._spaces:
                logger.debug(
                    "Space %s references unknown parent %s and is unreachable",
                    space.id,
                    space.parent_id,
                )
                continue
            self._children[space.parent_id].append(space.id)

        for asset in self._ontology.assets:
            self._assets[asset.id] = asset

    def _index_instances(self) -> None:
        # A malformed instance carrying both ids is indexed under both owners.
        for dp in self._ontology.datapoints:
            if dp.asset_id:
                self._datapoints_by_asset[dp.asset_id].append(dp)
            if dp.space_id:
                self._datapoints_by_space[dp.space_id].append(dp)
        for prop in self._ontology.properties:
            if prop.asset_id:
                self._properties_by_asset[prop.asset_id].append(prop)
            if prop.space_id:
                self._properties_by_space[prop.space_id].append(prop)

    def _populate(self, node: ResolvedNode, ancestors: frozenset[str]) -> None:
        """Attach child spaces and assets of ``node``'s space, recursively."""
        for space_id in self._children.get(node.id, []):
            if space_id in ancestors:
                logger.warning(
                    "Space %s is its own ancestor, not descending again", space_id
                )
                METRICS.data_inconsistencies_total.labels(source="hierarchy").inc()
                continue
            space = self._spaces[space_id]
            child = ResolvedNode(
                id=space.id,
                name=space.name,
                template_id=space.template_id,
                datapoints=self._bind(
                    self._datapoints_by_space.get(space.id, []),
                    self._properties_by_space.get(space.id, []),
                ),
            )
            self._populate(child, ancestors | {space.id})
            if self._passes(child, "space"):
                self._attach(node, child)

        space = self._spaces.get(node.id)
        if space is None:
            return
        for ref in space.assets:
            asset = self._assets.get(ref.id)
            if asset is None:
                logger.warning("Asset %s in space %s not found, skipping", ref.id, space.id)
                METRICS.lookup_misses_total.labels(kind="asset").inc()
                continue
            child = self._asset_node(asset, is_master=ref.master)
            if self._passes(child, "asset"):
                self._attach(node, child)

    def _asset_node(self, asset: AssetRecord, is_master: bool) -> ResolvedNode:
        return ResolvedNode(
            id=asset.id,
            name=asset.name,
            template_id=asset.template_id,
            is_master=is_master,
            datapoints=self._bind(
                self._datapoints_by_asset.get(asset.id, []),
                self._properties_by_asset.get(asset.id, []),
            ),
        )

    def _unassociated_assets(self) -> list[AssetRecord]:
        attached = {ref.id for space in self._ontology.spaces for ref in space.assets}
        return [asset for asset in self._ontology.assets if asset.id not in attached]

    def _attach(self, parent: ResolvedNode, child: ResolvedNode) -> None:
        if child.id in parent.locational_children:
            logger.warning(
                "Duplicate child id %s under %r, replacing previous entry",
                child.id,
                parent.name,
            )
            METRICS.data_inconsistencies_total.labels(source="hierarchy").inc()
        parent.locational_children[child.id] = child

    def _passes(self, node: ResolvedNode, kind: str) -> bool:
        try:
            adheres = adheres_to_filter(node, self._filter)
        except re.error as e:
            logger.error("Checking if %s %s adheres to filter: %s", kind, node.id, e)
            return False
        if not adheres:
            logger.debug(
                "Skipped %s ID %s name %r due to asset filter rule", kind, node.id, node.name
            )
            METRICS.skipped_by_filter_total.labels(kind=kind).inc()
        return adheres

    def _bind(
        self,
        datapoints: Iterable[DatapointRecord],
        properties: Iterable[PropertyRecord],
    ) -> list[Datapoint]:
        """Join instances to their template attributes via the lookup."""
        bound: list[Datapoint] = []
        for dp in datapoints:
            binding = self._binding(dp.template_id, "datapoint")
            if binding is not None:
                bound.append(self._datapoint(dp.id, binding))

        for prop in properties:
            binding = self._binding(prop.template_id, "property")
            if binding is None:
                continue
            datapoint = self._datapoint(prop.id, binding)
            if prop.value is not None:
                try:
                    datapoint.data = decode_value(
                        prop.value,
                        datapoint.attribute_names,
                        datapoint.attribute_name_prefix,
                    )
                except DataInconsistencyError as e:
                    logger.error("Property %s dropped: %s", prop.id, e)
                    METRICS.data_inconsistencies_total.labels(source="property").inc()
                    continue
            bound.append(datapoint)
        return bound

    def _binding(self, template_id: str, kind: str) -> AttributeBinding | None:
        binding = self._lookup.get(template_id)
        if binding is None:
            logger.warning("No template found for %s template %s", kind, template_id)
            METRICS.lookup_misses_total.labels(kind="template").inc()
        return binding

    @staticmethod
    def _datapoint(provider_id: str, binding: AttributeBinding) -> Datapoint:
        return Datapoint(
            subtype=binding.subtype,
            provider_id=provider_id,
            attribute_name_prefix=binding.name,
            attributes=[Attribute(name=name) for name in binding.attribute_names],
        )


def build_hierarchy(
    ontology: Ontology,
    lookup: Mapping[str, AttributeBinding],
    asset_filter: AssetFilter = (),
) -> ResolvedNode:
    """Build the resolved asset tree of an ontology.

    Args:
        ontology: The ontology document.
        lookup: Template attribute lookup from the catalog build.
        asset_filter: Filter rule groups; empty keeps every node.

    Returns:
        The synthetic root node.
    """
    return HierarchyBuilder(ontology, lookup, asset_filter).build()
