"""Prometheus metrics for the Ontology Bridge."""

import threading
from http.server import HTTPServer, SimpleHTTPRequestHandler
from typing import Any

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


# Metric definitions
class BridgeMetrics:
    """Collection of Prometheus metrics for the bridge."""

    def __init__(self) -> None:
        """Initialize metrics."""
        # Ontology ingestion
        self.ontology_fetches_total = Counter(
            "ontology_bridge_ontology_fetches_total",
            "Total number of full ontology fetches",
        )

        self.version_checks_total = Counter(
            "ontology_bridge_version_checks_total",
            "Total number of ontology version checks",
            ["result"],  # 'changed' or 'unchanged'
        )

        self.rebuilds_total = Counter(
            "ontology_bridge_rebuilds_total",
            "Total number of hierarchy rebuilds",
            ["result"],  # 'success' or 'failure'
        )

        self.rebuild_duration_seconds = Histogram(
            "ontology_bridge_rebuild_duration_seconds",
            "Duration of type resolution, catalog and hierarchy build",
            buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0, 30.0],
        )

        self.lookup_misses_total = Counter(
            "ontology_bridge_lookup_misses_total",
            "Template, type or unit ids that could not be resolved",
            ["kind"],  # type, type_cycle, unit, template, asset
        )

        self.data_inconsistencies_total = Counter(
            "ontology_bridge_data_inconsistencies_total",
            "Values or structures dropped because they did not fit the model",
            ["source"],  # property, livedata, hierarchy, output
        )

        self.skipped_by_filter_total = Counter(
            "ontology_bridge_skipped_by_filter_total",
            "Nodes pruned by the asset filter",
            ["kind"],  # 'space' or 'asset'
        )

        self.ontology_version = Gauge(
            "ontology_bridge_ontology_version",
            "Last committed ontology version",
            ["account_id"],
        )

        self.hierarchy_nodes = Gauge(
            "ontology_bridge_hierarchy_nodes",
            "Number of nodes in the last built hierarchy",
            ["account_id"],
        )

        # Outbound platform
        self.assets_created_total = Counter(
            "ontology_bridge_assets_created_total",
            "Total number of assets created on the platform",
        )

        self.data_upserts_total = Counter(
            "ontology_bridge_data_upserts_total",
            "Total number of data upserts to the platform",
            ["source"],  # 'hierarchy' or 'livedata'
        )

        self.alarms_total = Counter(
            "ontology_bridge_alarms_total",
            "Total number of alarm events processed",
            ["action"],  # rule_created, status_updated, acknowledged
        )

        self.outputs_forwarded_total = Counter(
            "ontology_bridge_outputs_forwarded_total",
            "Total number of output writes forwarded to the vendor",
        )

        self.platform_retries_total = Counter(
            "ontology_bridge_platform_retries_total",
            "Total platform request retry attempts",
        )

        # Webhook
        self.webhook_requests_total = Counter(
            "ontology_bridge_webhook_requests_total",
            "Total number of webhook requests received",
            ["topic", "status"],
        )

        self.errors_total = Counter(
            "ontology_bridge_errors_total",
            "Total number of errors",
            ["error_type"],
        )


# Global metrics instance
METRICS = BridgeMetrics()


class MetricsHandler(SimpleHTTPRequestHandler):
    """HTTP handler for Prometheus metrics endpoint."""

    def do_GET(self) -> None:
        """Handle GET requests."""
        if self.path == "/metrics":
            self.send_response(200)
            self.send_header("Content-Type", CONTENT_TYPE_LATEST)
            self.end_headers()
            self.wfile.write(generate_latest())
        else:
            self.send_response(404)
            self.end_headers()

    def log_message(self, format: str, *args: Any) -> None:
        """Suppress request logging."""
        pass


class MetricsServer:
    """HTTP server for Prometheus metrics."""

    def __init__(self, port: int = 9090):
        """Initialize the metrics server.

        Args:
            port: Port to listen on.
        """
        self.port = port
        self._server: HTTPServer | None = None
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Start the metrics server in a background thread."""
        self._server = HTTPServer(("0.0.0.0", self.port), MetricsHandler)
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the metrics server."""
        if self._server:
            self._server.shutdown()
