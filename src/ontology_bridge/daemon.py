"""Main daemon orchestration for the Ontology Bridge."""

import logging
import signal
import threading
from datetime import UTC, datetime
from typing import Any

from ontology_bridge.config import AccountConfig, BridgeConfig
from ontology_bridge.observability.health import HealthServer, create_health_checker
from ontology_bridge.observability.metrics import METRICS, MetricsServer
from ontology_bridge.platform.client import PlatformClient
from ontology_bridge.state.registry import StateRegistry
from ontology_bridge.sync.alarms import acknowledge_from_platform
from ontology_bridge.sync.orchestrator import Orchestrator
from ontology_bridge.sync.outputs import forward_output
from ontology_bridge.webhook.server import WebhookDispatcher, WebhookServer

logger = logging.getLogger(__name__)


class BridgeDaemon:
    """Main daemon keeping the platform in sync with the vendor ontologies."""

    def __init__(self, config: BridgeConfig):
        """Initialize the bridge daemon.

        Args:
            config: Bridge configuration.
        """
        self.config = config
        self._shutdown = threading.Event()
        self._threads: list[threading.Thread] = []

        self._init_logging()

        self.registry = StateRegistry(config.state.db_path)
        self.platform = PlatformClient(
            config.platform.base_url,
            api_token=(
                config.platform.api_token.get_secret_value()
                if config.platform.api_token
                else None
            ),
            timeout=config.platform.timeout_seconds,
            client_reference=config.platform.client_reference,
        )
        self.orchestrator = Orchestrator(config, self.registry, self.platform)

        # Observability servers
        self.metrics_server = MetricsServer(config.observability.metrics_port)
        self.health_server = HealthServer(
            config.observability.health_port,
            check_func=create_health_checker(self.orchestrator),
        )

        self.webhook_server: WebhookServer | None = None
        if config.webhook.enabled:
            self.webhook_server = WebhookServer(
                WebhookDispatcher(self.orchestrator),
                host=config.webhook.host,
                port=config.webhook.port,
            )

    def _init_logging(self) -> None:
        """Initialize logging configuration."""
        from ontology_bridge.observability.logging import setup_logging

        setup_logging(
            level=self.config.observability.log_level,
            format_type=self.config.observability.log_format,
        )

    def _run_account(self, account: AccountConfig) -> None:
        """Sync an account, then again after every refresh interval."""
        interval = account.refresh_interval_hours * 3600
        while not self._shutdown.is_set():
            try:
                self.orchestrator.sync_account(account, subscribe=self.config.webhook.enabled)
            except Exception as e:
                logger.error("Sync of account %d failed: %s", account.id, e)
                METRICS.errors_total.labels(error_type="sync").inc()
            self._shutdown.wait(interval)

    def _poll_outputs(self, since: datetime) -> datetime:
        """Forward output writes made on the platform since the last poll."""
        polled_at = datetime.now(UTC)
        for change in self.platform.list_output_changes(since):
            forward_output(
                change,
                self.registry,
                self.platform,
                self.orchestrator.vendor,
                self.config.platform.client_reference,
            )
        return polled_at

    def _poll_alarms(self, since: datetime) -> datetime:
        """Forward alarm acknowledgements made on the platform since the last poll."""
        polled_at = datetime.now(UTC)
        for change in self.platform.list_alarm_changes(since):
            acknowledge_from_platform(
                change, self.registry, self.orchestrator.vendor, self.platform
            )
        return polled_at

    def _listen(self, name: str, poll: Any) -> None:
        """Poll the platform for changes until shutdown."""
        since = datetime.now(UTC)
        while not self._shutdown.is_set():
            try:
                since = poll(since)
            except Exception as e:
                logger.error("Listening for %s changes: %s", name, e)
                METRICS.errors_total.labels(error_type=f"{name}_listener").inc()
            self._shutdown.wait(self.config.platform.poll_interval_seconds)

    def _spawn(self, name: str, target: Any, *args: Any) -> None:
        thread = threading.Thread(target=target, args=args, name=name, daemon=True)
        thread.start()
        self._threads.append(thread)

    def start(self) -> None:
        """Start the bridge daemon."""
        logger.info("Starting Ontology Bridge daemon")

        # Start observability endpoints
        self.metrics_server.start()
        self.health_server.start()

        if self.webhook_server:
            self.webhook_server.start()

        accounts = self.config.enabled_accounts
        if not accounts:
            logger.info("No enabled accounts configured")
        for account in accounts:
            logger.info(
                "Account %d: gateway %s, refresh every %.1fh, projects %s",
                account.id,
                account.gateway_id,
                account.refresh_interval_hours,
                account.project_ids,
            )
            self._spawn(f"account-{account.id}", self._run_account, account)

        self._spawn("output-listener", self._listen, "output", self._poll_outputs)
        self._spawn("alarm-listener", self._listen, "alarm", self._poll_alarms)

    def run(self) -> None:
        """Run the main daemon loop."""
        self.start()

        try:
            while not self._shutdown.is_set():
                self._shutdown.wait(1.0)
        except KeyboardInterrupt:
            logger.info("Received interrupt signal")

        self.shutdown()

    def shutdown(self) -> None:
        """Gracefully shut down the daemon."""
        if self._shutdown.is_set() and not self._threads:
            return
        logger.info("Shutting down Ontology Bridge daemon")
        self._shutdown.set()

        for thread in self._threads:
            thread.join(timeout=5)
        self._threads.clear()

        if self.webhook_server:
            self.webhook_server.stop()

        self.platform.close()

        # Stop observability servers
        self.health_server.stop()
        self.metrics_server.stop()

        logger.info("Daemon shutdown complete")


def run_daemon(config: BridgeConfig) -> None:
    """Run the bridge daemon.

    Args:
        config: Bridge configuration.
    """
    daemon = BridgeDaemon(config)

    # Set up signal handlers
    def signal_handler(signum: int, frame: Any) -> None:
        logger.info("Received signal %d", signum)
        daemon._shutdown.set()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    daemon.run()
