"""Merging of asset/space templates with their resolved datapoint metadata."""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from ontology_bridge.domain.models import (
    MASTER_ATTRIBUTE,
    MASTER_ENUM,
    ROOT_TEMPLATE_ID,
    AssetTemplate,
    AssetType,
    AttributeBinding,
    DatapointTemplateInfo,
    ExportedAttribute,
    LeafAttribute,
    PropertyTemplateInfo,
    Subtype,
)
from ontology_bridge.ontology.schema import (
    DatapointTemplateRecord,
    Ontology,
    PropertyTemplateRecord,
    TemplateRecord,
)
from ontology_bridge.ontology.types import TypeResolver

logger = logging.getLogger(__name__)

DEFAULT_ASSET_TYPE_PREFIX = "open_bos_"
TRANSLATION_PREFIX = "OpenBOS "


@dataclass
class Catalog:
    """Result of a single catalog build.

    The lookup joins datapoint/property template ids to their resolved
    attributes. It belongs to this build only and is passed explicitly to
    the hierarchy builder.
    """

    templates: list[AssetTemplate] = field(default_factory=list)
    asset_types: list[AssetType] = field(default_factory=list)
    lookup: dict[str, AttributeBinding] = field(default_factory=dict)


def _partition_by_owner(
    records: list[DatapointTemplateRecord] | list[PropertyTemplateRecord],
    kind: str,
) -> dict[str, list[Any]]:
    """Group datapoint or property templates by owning asset/space template id."""
    owned: dict[str, list[Any]] = defaultdict(list)
    for record in records:
        if record.asset_template_id and record.space_template_id:
            logger.warning(
                "%s template %s has both asset and space template ID", kind, record.id
            )
            continue
        owner = record.asset_template_id or record.space_template_id
        if not owner:
            logger.warning(
                "%s template %s has neither asset nor space template ID", kind, record.id
            )
            continue
        owned[owner].append(record)
    return owned


def _orphan_datapoint_templates(ontology: Ontology) -> list[DatapointTemplateRecord]:
    """Datapoint templates referenced by datapoints without asset or space."""
    referenced = {dp.template_id for dp in ontology.orphan_datapoints()}
    return [dt for dt in ontology.datapoint_templates if dt.id in referenced]


def _enum_mapping(enums: dict[str, str]) -> list[dict[str, Any]]:
    mapping: list[dict[str, Any]] = []
    for ordinal, label in enums.items():
        try:
            value: Any = int(ordinal)
        except ValueError:
            value = ordinal
        mapping.append({"value": value, "map": label})
    return mapping


def _export_attribute(leaf: LeafAttribute, subtype: Subtype) -> ExportedAttribute:
    return ExportedAttribute(
        name=leaf.path,
        subtype=subtype,
        min=leaf.min,
        max=leaf.max,
        unit=leaf.unit,
        enum=_enum_mapping(leaf.enums),
    )


def master_attribute() -> ExportedAttribute:
    """The synthetic master/slave property appended to every asset type."""
    return ExportedAttribute(
        name=MASTER_ATTRIBUTE,
        subtype=Subtype.PROPERTY,
        is_digital=True,
        enum=[{"value": value, "map": label} for value, label in MASTER_ENUM.items()],
    )


def resolve_templates(
    ontology: Ontology,
    resolver: TypeResolver | None = None,
) -> list[AssetTemplate]:
    """Attach resolved datapoints and properties to every asset and space template.

    A synthetic ``root`` space template is appended, owning the datapoint
    templates referenced by orphan datapoints. A vendor template with the
    reserved ``root`` id is folded into it.

    Args:
        ontology: The ontology document.
        resolver: Type resolver for the ontology. Created if not given.

    Returns:
        Asset templates first, then space templates, then the root template.
    """
    if resolver is None:
        resolver = TypeResolver(ontology.data_types, ontology.units)

    datapoints_by_owner = _partition_by_owner(ontology.datapoint_templates, "datapoint")
    properties_by_owner = _partition_by_owner(ontology.property_templates, "property")
    root_owned = datapoints_by_owner[ROOT_TEMPLATE_ID]
    owned_ids = {dt.id for dt in root_owned}
    root_owned.extend(
        dt for dt in _orphan_datapoint_templates(ontology) if dt.id not in owned_ids
    )

    sources: list[tuple[TemplateRecord, bool]] = [
        (t, False) for t in ontology.asset_templates
    ]
    sources += [(t, True) for t in ontology.space_templates]
    for record, _ in sources:
        if record.id == ROOT_TEMPLATE_ID:
            logger.warning(
                "Template id %s is reserved, merging its datapoints into the root template",
                ROOT_TEMPLATE_ID,
            )
    sources = [(t, is_space) for t, is_space in sources if t.id != ROOT_TEMPLATE_ID]
    sources.append((TemplateRecord(id=ROOT_TEMPLATE_ID, name=ROOT_TEMPLATE_ID), True))

    templates: list[AssetTemplate] = []
    for record, is_space in sources:
        datapoints = tuple(
            DatapointTemplateInfo(
                id=dt.id,
                name=dt.name,
                direction=dt.direction,
                attributes=tuple(resolver.resolve(dt.type_id, dt.name or None)),
            )
            for dt in datapoints_by_owner.get(record.id, [])
        )
        properties = tuple(
            PropertyTemplateInfo(
                id=pt.id,
                name=pt.name,
                attributes=tuple(resolver.resolve(pt.type_id, pt.name or None)),
            )
            for pt in properties_by_owner.get(record.id, [])
        )
        templates.append(
            AssetTemplate(
                id=record.id,
                name=record.name,
                tags=tuple(record.tags),
                datapoints=datapoints,
                properties=properties,
                is_space=is_space,
            )
        )
    return templates


def to_asset_type(
    template: AssetTemplate,
    prefix: str = DEFAULT_ASSET_TYPE_PREFIX,
) -> AssetType:
    """Convert a resolved template into the exported asset type schema.

    Attribute names are unique within an asset type. Datapoints sharing a
    data type share its attribute; the first definition is exported.
    """
    asset_type = AssetType(
        name=f"{prefix}{template.id}",
        translation={"en": f"{TRANSLATION_PREFIX}{template.name}"},
    )
    seen: set[str] = {MASTER_ATTRIBUTE}
    owners: list[DatapointTemplateInfo | PropertyTemplateInfo] = [*template.datapoints]
    owners += template.properties
    for owner in owners:
        for leaf in owner.attributes:
            if leaf.path in seen:
                logger.warning(
                    "Attribute %s of %s already defined on template %s",
                    leaf.path,
                    owner.id,
                    template.id,
                )
                continue
            seen.add(leaf.path)
            asset_type.attributes.append(_export_attribute(leaf, owner.subtype))
    asset_type.attributes.append(master_attribute())
    return asset_type


def _root_name(owner: DatapointTemplateInfo | PropertyTemplateInfo) -> str:
    """Root path segment of the owner's attributes."""
    if owner.name or not owner.attributes:
        return owner.name
    return owner.attributes[0].path.split(".", 1)[0]


def build_catalog(
    ontology: Ontology,
    asset_type_prefix: str = DEFAULT_ASSET_TYPE_PREFIX,
) -> Catalog:
    """Build exported asset types and the template attribute lookup.

    Args:
        ontology: The ontology document.
        asset_type_prefix: Prefix of exported asset type names.

    Returns:
        Catalog with templates, asset types and the per-build lookup.
    """
    catalog = Catalog()
    catalog.templates = resolve_templates(ontology)
    for template in catalog.templates:
        catalog.asset_types.append(to_asset_type(template, asset_type_prefix))
        for dp in template.datapoints:
            catalog.lookup[dp.id] = AttributeBinding(
                name=_root_name(dp),
                subtype=dp.subtype,
                attribute_names=tuple(leaf.path for leaf in dp.attributes),
            )
        for prop in template.properties:
            catalog.lookup[prop.id] = AttributeBinding(
                name=_root_name(prop),
                subtype=prop.subtype,
                attribute_names=tuple(leaf.path for leaf in prop.attributes),
            )

    logger.debug(
        "Built catalog: %d asset types, %d datapoint/property templates",
        len(catalog.asset_types),
        len(catalog.lookup),
    )
    return catalog
