"""Webhook endpoint receiving vendor subscription events.

Events are posted to ``/{account_id}/{topic}``:

- ``ontology-version``: structure version changed, triggers a collect.
- ``ontology-livedata``: new datapoint and property values.
- ``ontology-livealarm``: alarm events.
"""

import json
import logging
import re
import threading
from collections.abc import Callable
from datetime import UTC, datetime
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any

from pydantic import ValidationError

from ontology_bridge.config import AccountConfig
from ontology_bridge.domain.errors import TransportError
from ontology_bridge.observability.metrics import METRICS
from ontology_bridge.ontology.client import TOPIC_LIVEALARM, TOPIC_LIVEDATA, TOPIC_VERSION
from ontology_bridge.ontology.schema import (
    LiveAlarmRecord,
    LiveDataNotification,
    VersionNotification,
)
from ontology_bridge.sync.alarms import AlarmUpdate, apply_alarm, parse_alarm_timestamp
from ontology_bridge.sync.livedata import LiveDataUpdate, apply_livedata
from ontology_bridge.sync.orchestrator import Orchestrator

logger = logging.getLogger(__name__)

PATH_PATTERN = re.compile(r"^/(\d+)/([^/]+)/?$")

STRUCTURE_VERSION = "StructureVersion"
GOOD_QUALITY = "good"


class BadRequest(Exception):
    """The request body does not have the shape its topic requires."""


def parse_timestamp(value: str) -> datetime:
    """Parse an RFC 3339 timestamp; naive values are taken as UTC.

    Raises:
        ValueError: If the value is not a valid timestamp.
    """
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class WebhookDispatcher:
    """Routes webhook requests to the sync operations of their account."""

    def __init__(
        self,
        orchestrator: Orchestrator,
        trigger_collect: Callable[[int], Any] | None = None,
    ):
        """Initialize the dispatcher.

        Args:
            orchestrator: Orchestrator owning registry, platform and accounts.
            trigger_collect: Starts a collect of an account id. Defaults to a
                background thread, so the request returns before the collect
                finishes.
        """
        self._orchestrator = orchestrator
        self._trigger_collect = trigger_collect or self._collect_in_background
        self._handlers: dict[str, Callable[[AccountConfig, Any], None]] = {
            TOPIC_VERSION: self._handle_version,
            TOPIC_LIVEDATA: self._handle_livedata,
            TOPIC_LIVEALARM: self._handle_livealarm,
        }

    def _collect_in_background(self, account_id: int) -> None:
        threading.Thread(
            target=self._orchestrator.collect_by_id,
            args=(account_id,),
            name=f"collect-{account_id}",
            daemon=True,
        ).start()

    def dispatch(self, path: str, body: bytes) -> int:
        """Handle one request.

        Returns:
            HTTP status code of the response.
        """
        status, topic = self._dispatch(path.split("?", 1)[0], body)
        METRICS.webhook_requests_total.labels(topic=topic, status=str(status)).inc()
        if status >= 400:
            logger.error("Webhook error response: status=%d path=%s", status, path)
        return status

    def _dispatch(self, path: str, body: bytes) -> tuple[int, str]:
        match = PATH_PATTERN.match(path)
        if match is None:
            logger.warning("Invalid URL path, missing or invalid account ID: %s", path)
            return 400, "invalid"

        account_id, topic = int(match.group(1)), match.group(2)
        handler = self._handlers.get(topic)
        if handler is None:
            return 404, "unknown"

        account = self._orchestrator.config.account(account_id)
        if account is None:
            logger.warning("Webhook for unknown account %d", account_id)
            return 404, topic
        if not account.enable:
            logger.debug("Ignoring %s event of disabled account %d", topic, account_id)
            return 200, topic

        try:
            payload = json.loads(body)
        except ValueError as e:
            logger.error("Failed to parse request body of %s: %s", topic, e)
            return 400, topic

        try:
            handler(account, payload)
        except (BadRequest, ValidationError) as e:
            logger.error("Invalid %s request body: %s", topic, e)
            return 400, topic
        except TransportError as e:
            logger.error("Handling %s event of account %d failed: %s", topic, account_id, e)
            METRICS.errors_total.labels(error_type="webhook").inc()
            return 500, topic
        return 200, topic

    def _handle_version(self, account: AccountConfig, payload: Any) -> None:
        notification = VersionNotification.model_validate(payload)
        if notification.notification_identifier != STRUCTURE_VERSION:
            logger.warning(
                "Unknown NotificationIdentifier: %s", notification.notification_identifier
            )
            return
        logger.info(
            "Collecting structure version update for account %d: version %d",
            account.id,
            notification.version,
        )
        self._trigger_collect(account.id)

    def _handle_livedata(self, account: AccountConfig, payload: Any) -> None:
        notification = LiveDataNotification.model_validate(payload)
        for item in notification.items:
            try:
                timestamp = parse_timestamp(item.timestamp)
            except ValueError as e:
                logger.warning(
                    "Invalid timestamp %r for datapoint %s: %s", item.timestamp, item.id, e
                )
                continue
            if item.quality.lower() != GOOD_QUALITY:
                logger.info(
                    "Received bad quality data for %s: is_property=%s quality=%s",
                    item.id,
                    item.is_property,
                    item.quality,
                )
                continue
            apply_livedata(
                LiveDataUpdate(
                    account_id=account.id,
                    provider_id=item.id,
                    timestamp=timestamp,
                    value=item.value,
                ),
                self._orchestrator.registry,
                self._orchestrator.platform,
            )
        logger.debug(
            "Processed live data update %s (%d items)", notification.id, len(notification.items)
        )

    def _handle_livealarm(self, account: AccountConfig, payload: Any) -> None:
        if not isinstance(payload, list):
            raise BadRequest("expected a list of alarms")
        records = [LiveAlarmRecord.model_validate(item) for item in payload]
        for record in records:
            try:
                timestamp = parse_alarm_timestamp(record.time_stamp)
            except ValueError as e:
                logger.warning("Invalid timestamp for alarm %s: %s", record.session_id, e)
                continue
            if record.quality.lower() != GOOD_QUALITY:
                logger.debug(
                    "Received alarm with bad quality for %s: quality=%s",
                    record.session_id,
                    record.quality,
                )
                continue
            apply_alarm(
                AlarmUpdate.from_record(account.id, record, timestamp),
                self._orchestrator.registry,
                self._orchestrator.platform,
            )


class WebhookHandler(BaseHTTPRequestHandler):
    """HTTP handler for vendor webhook requests."""

    dispatcher: WebhookDispatcher | None = None

    def do_POST(self) -> None:
        """Handle POST requests."""
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length) if length else b""

        status = self.dispatcher.dispatch(self.path, body) if self.dispatcher else 503
        self.send_response(status)
        self.end_headers()

    def log_message(self, format: str, *args: Any) -> None:
        """Suppress request logging."""
        pass


class WebhookServer:
    """HTTP server for vendor webhooks."""

    def __init__(
        self,
        dispatcher: WebhookDispatcher,
        host: str = "0.0.0.0",
        port: int = 8081,
    ):
        """Initialize the webhook server.

        Args:
            dispatcher: Dispatcher handling the requests.
            host: Interface to bind.
            port: Port to listen on; 0 picks a free port.
        """
        self.host = host
        self.port = port
        self._dispatcher = dispatcher
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Start the webhook server in a background thread."""

        class Handler(WebhookHandler):
            dispatcher = self._dispatcher

        self._server = ThreadingHTTPServer((self.host, self.port), Handler)
        self.port = self._server.server_address[1]
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()
        logger.info("Webhook server listening on %s:%d", self.host, self.port)

    def stop(self) -> None:
        """Stop the webhook server."""
        if self._server:
            self._server.shutdown()
            self._server.server_close()
