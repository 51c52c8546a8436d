"""Ontology Bridge: vendor building ontology to asset hierarchy synchronization."""

__version__ = "0.1.0"
