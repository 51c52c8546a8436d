"""Health check endpoint for the Ontology Bridge."""

import json
import threading
import time
from http.server import BaseHTTPRequestHandler, HTTPServer
from typing import Any, Callable


class HealthHandler(BaseHTTPRequestHandler):
    """HTTP handler for health check endpoint."""

    check_func: Callable[[], dict[str, Any]] | None = None

    def do_GET(self) -> None:
        """Handle GET requests."""
        if self.path == "/health":
            self._handle_health()
        elif self.path == "/ready":
            self._handle_ready()
        elif self.path == "/live":
            self._handle_live()
        else:
            self.send_response(404)
            self.end_headers()

    def _handle_health(self) -> None:
        """Handle /health endpoint."""
        if self.check_func:
            health = self.check_func()
        else:
            health = {"status": "unknown"}

        status_code = 200 if health.get("status") == "healthy" else 503

        self.send_response(status_code)
        self.send_header("Content-Type", "application/json")
        self.end_headers()
        self.wfile.write(json.dumps(health).encode())

    def _handle_ready(self) -> None:
        """Handle /ready endpoint (Kubernetes readiness probe)."""
        if self.check_func:
            health = self.check_func()
            ready = health.get("synced_accounts", 0) > 0
        else:
            ready = False

        self.send_response(200 if ready else 503)
        self.end_headers()

    def _handle_live(self) -> None:
        """Handle /live endpoint (Kubernetes liveness probe)."""
        self.send_response(200)
        self.end_headers()

    def log_message(self, format: str, *args: Any) -> None:
        """Suppress request logging."""
        pass


class HealthServer:
    """HTTP server for health checks."""

    def __init__(
        self,
        port: int = 8080,
        check_func: Callable[[], dict[str, Any]] | None = None,
    ):
        """Initialize the health server.

        Args:
            port: Port to listen on.
            check_func: Function that returns health status dict.
        """
        self.port = port
        self._check_func = check_func
        self._server: HTTPServer | None = None
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Start the health server in a background thread."""

        class Handler(HealthHandler):
            check_func = self._check_func

        self._server = HTTPServer(("0.0.0.0", self.port), Handler)
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        """Stop the health server."""
        if self._server:
            self._server.shutdown()


def create_health_checker(orchestrator: Any) -> Callable[[], dict[str, Any]]:
    """Create a health check function.

    Args:
        orchestrator: Orchestrator whose per-account sync state is reported.

    Returns:
        Function that returns health status dict.
    """

    def check() -> dict[str, Any]:
        last_success = dict(orchestrator.last_success)
        last_failure = dict(orchestrator.last_failure)
        failing = [
            account_id
            for account_id, failed_at in last_failure.items()
            if failed_at > last_success.get(account_id, 0.0)
        ]

        return {
            "status": "degraded" if failing else "healthy",
            "timestamp": int(time.time() * 1000),
            "synced_accounts": len(last_success),
            "failing_accounts": sorted(failing),
            "in_flight": sorted(orchestrator.gate.in_flight()),
        }

    return check
