"""Vendor ontology ingestion: schema, type resolution, catalog and hierarchy."""

from ontology_bridge.ontology.catalog import Catalog, build_catalog
from ontology_bridge.ontology.hierarchy import HierarchyBuilder, build_hierarchy
from ontology_bridge.ontology.schema import Ontology
from ontology_bridge.ontology.types import TypeResolver

__all__ = [
    "Catalog",
    "HierarchyBuilder",
    "Ontology",
    "TypeResolver",
    "build_catalog",
    "build_hierarchy",
]
