"""Observability components: logging, metrics, and health checks."""

from ontology_bridge.observability.health import HealthServer
from ontology_bridge.observability.logging import setup_logging
from ontology_bridge.observability.metrics import METRICS, MetricsServer

__all__ = ["setup_logging", "METRICS", "MetricsServer", "HealthServer"]
